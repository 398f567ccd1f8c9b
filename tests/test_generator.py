"""Tests for generation orchestration."""

import asyncio
from datetime import date

import pytest

from agents.summarizer import Completion, is_retryable_interactive
from conftest import FakeCollector, FakeSummarizer, FixedClock, et, make_bundle
from generator import Outcome, SummaryGenerator
from models.summary import Region, SummaryRecord
from refresh_gate import RefreshGate
from store import SummaryStore

TODAY = date(2025, 1, 15)


class BlockingCollector(FakeCollector):
    """Collector that waits until released."""

    def __init__(self, bundle):
        super().__init__(bundle)
        self.release = asyncio.Event()

    async def collect(self, region):
        self.calls.append(region)
        await self.release.wait()
        return self.bundle


class ExplodingCollector(FakeCollector):
    async def collect(self, region):
        raise RuntimeError("collector bug")


def make_generator(config, bundle=None, completion=None, clock=None, collector=None):
    clock = clock or FixedClock(et(2025, 1, 15, 23, 0))
    return SummaryGenerator(
        config,
        collector=collector or FakeCollector(bundle or make_bundle()),
        summarizer=FakeSummarizer(completion),
        store=SummaryStore(config.summary_file, clock=clock),
        gate=RefreshGate(config.refresh_marker_file, bypass=config.dev_mode),
        clock=clock,
    )


async def seed_record(generator, hour, minute):
    await generator.store.save(SummaryRecord(
        date=TODAY,
        news="earlier",
        generated_at=et(2025, 1, 15, hour, minute),
        automated=True,
    ))


# ── Scheduled pass ──────────────────────────────────────────────


class TestGenerateDaily:
    @pytest.mark.asyncio
    async def test_saves_record(self, config):
        generator = make_generator(config)

        result = await generator.generate_daily()

        assert result.outcome is Outcome.SAVED
        assert result.record.automated is True
        assert result.record.generated_at == et(2025, 1, 15, 23, 0)
        stored = await generator.store.load(TODAY)
        assert stored.news == "Central bank holds rates steady."
        assert stored.forward_looking == "Watch tomorrow's inflation report."
        assert generator.last_generation_date == TODAY
        assert not generator.is_generating

    @pytest.mark.asyncio
    async def test_uses_automated_policy_and_full_length(self, config):
        generator = make_generator(config)

        await generator.generate_daily()

        assert generator.summarizer.policies[0].candidates == ("test-model", "fallback-model")
        prompt = generator.summarizer.prompts[0]
        assert "NEWS HIGHLIGHTS (max 500 words)" in prompt
        assert "closed for the day" in prompt

    @pytest.mark.asyncio
    async def test_weekend_framing(self, config):
        generator = make_generator(config, clock=FixedClock(et(2025, 1, 18, 23, 0)))

        await generator.generate_daily()

        assert "closed for the weekend" in generator.summarizer.prompts[0]

    @pytest.mark.asyncio
    async def test_second_pass_same_day_skipped(self, config):
        generator = make_generator(config)

        await generator.generate_daily()
        result = await generator.generate_daily()

        assert result.outcome is Outcome.ALREADY_GENERATED
        assert len(generator.collector.calls) == 1

    @pytest.mark.asyncio
    async def test_next_day_runs_again(self, config):
        clock = FixedClock(et(2025, 1, 15, 23, 0))
        generator = make_generator(config, clock=clock)

        await generator.generate_daily()
        clock.now = et(2025, 1, 16, 23, 0)
        result = await generator.generate_daily()

        assert result.ok
        assert generator.last_generation_date == date(2025, 1, 16)

    @pytest.mark.asyncio
    async def test_overwrites_existing_record(self, config):
        generator = make_generator(config)
        await seed_record(generator, 23, 1)

        result = await generator.generate_daily()

        assert result.ok
        assert (await generator.store.load(TODAY)).news == "Central bank holds rates steady."

    @pytest.mark.asyncio
    async def test_insufficient_data(self, config):
        generator = make_generator(config, bundle=make_bundle(news=False, finance=False))

        result = await generator.generate_daily()

        assert result.outcome is Outcome.INSUFFICIENT_DATA
        assert generator.summarizer.prompts == []
        assert await generator.store.load(TODAY) is None
        assert generator.last_generation_date is None

    @pytest.mark.asyncio
    async def test_completion_failure_not_memoized(self, config):
        generator = make_generator(config, completion=Completion(ok=False, attempts=3, error="all models failed"))

        first = await generator.generate_daily()
        second = await generator.generate_daily()

        assert first.outcome is Outcome.COMPLETION_FAILED
        assert second.outcome is Outcome.COMPLETION_FAILED
        assert len(generator.collector.calls) == 2
        assert await generator.store.load(TODAY) is None

    @pytest.mark.asyncio
    async def test_unstructured_reply_saved_with_empty_sections(self, config):
        generator = make_generator(config, completion=Completion(ok=True, text="Just prose.", model="m", attempts=1))

        result = await generator.generate_daily()

        assert result.ok
        assert result.record.news == ""
        assert not result.record.has_content

    @pytest.mark.asyncio
    async def test_save_failure(self, config):
        config.summary_file.mkdir(parents=True)
        generator = make_generator(config)

        result = await generator.generate_daily()

        assert result.outcome is Outcome.SAVE_FAILED
        assert generator.last_generation_date is None

    @pytest.mark.asyncio
    async def test_unexpected_error_releases_flag(self, config):
        generator = make_generator(config, collector=ExplodingCollector(make_bundle()))

        result = await generator.generate_daily()

        assert result.outcome is Outcome.COMPLETION_FAILED
        assert not generator.is_generating


# ── Checkpoints ─────────────────────────────────────────────────


class TestCheckpoint:
    @pytest.mark.asyncio
    async def test_generates_when_missing(self, config):
        generator = make_generator(config, clock=FixedClock(et(2025, 1, 15, 23, 5)))

        result = await generator.run_checkpoint("23:05 check")

        assert result.ok
        assert generator.last_generation_date == TODAY

    @pytest.mark.asyncio
    async def test_generates_when_record_predates_cutoff(self, config):
        generator = make_generator(config, clock=FixedClock(et(2025, 1, 15, 23, 30)))
        await seed_record(generator, 14, 0)

        result = await generator.run_checkpoint("23:30 check")

        assert result.ok
        assert (await generator.store.load(TODAY)).generated_at == et(2025, 1, 15, 23, 30)

    @pytest.mark.asyncio
    async def test_skips_when_record_after_cutoff(self, config):
        generator = make_generator(config, clock=FixedClock(et(2025, 1, 15, 23, 50)))
        await seed_record(generator, 23, 1)

        result = await generator.run_checkpoint("23:50 check")

        assert result.outcome is Outcome.ALREADY_GENERATED
        assert generator.collector.calls == []

    @pytest.mark.asyncio
    async def test_cutoff_compares_instants(self, config):
        generator = make_generator(config, clock=FixedClock(et(2025, 1, 15, 23, 5)))
        # 04:01 UTC on the 16th is 23:01 EST on the 15th
        await generator.store.save(SummaryRecord(
            date=TODAY, news="x", generated_at="2025-01-16T04:01:00Z", automated=True,
        ))

        result = await generator.run_checkpoint("23:05 check")

        assert result.outcome is Outcome.ALREADY_GENERATED

    @pytest.mark.asyncio
    async def test_skips_after_same_day_success(self, config):
        generator = make_generator(config, clock=FixedClock(et(2025, 1, 15, 23, 30)))
        generator.last_generation_date = TODAY

        result = await generator.run_checkpoint("23:30 check")

        assert result.outcome is Outcome.ALREADY_GENERATED
        assert generator.collector.calls == []

    def test_scheduled_cutoff(self, config):
        generator = make_generator(config)

        assert generator.scheduled_cutoff(TODAY) == et(2025, 1, 15, 23, 0)


# ── Manual refresh ──────────────────────────────────────────────


class TestRefresh:
    @pytest.mark.asyncio
    async def test_once_per_client_per_day(self, config):
        generator = make_generator(config)

        first = await generator.refresh("10.0.0.5")
        second = await generator.refresh("10.0.0.5")
        other = await generator.refresh("10.0.0.6")

        assert first.outcome is Outcome.SAVED
        assert first.record.automated is False
        assert second.outcome is Outcome.QUOTA_EXCEEDED
        assert other.outcome is Outcome.SAVED

    @pytest.mark.asyncio
    async def test_quota_resets_next_day(self, config):
        clock = FixedClock(et(2025, 1, 15, 12, 0))
        generator = make_generator(config, clock=clock)

        await generator.refresh("10.0.0.5")
        clock.now = et(2025, 1, 16, 0, 1)

        assert (await generator.refresh("10.0.0.5")).ok

    @pytest.mark.asyncio
    async def test_quota_survives_restart(self, config):
        await make_generator(config).refresh("10.0.0.5")

        result = await make_generator(config).refresh("10.0.0.5")

        assert result.outcome is Outcome.QUOTA_EXCEEDED

    @pytest.mark.asyncio
    async def test_dev_mode_bypasses_quota(self, config):
        config.dev_mode = True
        generator = make_generator(config)

        await generator.refresh("10.0.0.5")

        assert (await generator.refresh("10.0.0.5")).ok

    @pytest.mark.asyncio
    async def test_failure_does_not_consume_quota(self, config):
        generator = make_generator(config, completion=Completion(ok=False, attempts=3, error="x"))

        await generator.refresh("10.0.0.5")

        assert await generator.gate.allowed("10.0.0.5", TODAY)

    @pytest.mark.asyncio
    async def test_interactive_policy_and_short_sections(self, config):
        generator = make_generator(config)

        await generator.refresh("10.0.0.5")

        assert generator.summarizer.policies[0].retry_on is is_retryable_interactive
        assert "NEWS HIGHLIGHTS (max 300 words)" in generator.summarizer.prompts[0]

    @pytest.mark.asyncio
    async def test_region_override(self, config):
        generator = make_generator(config)

        result = await generator.refresh("10.0.0.5", Region("fr", "FR"))

        assert result.ok
        assert generator.collector.calls == [Region("fr", "FR")]
        assert "in French" in generator.summarizer.prompts[0]
        assert await generator.store.load(TODAY, "fr", "FR") is not None
        assert await generator.store.load(TODAY, "en", "US") is None

    @pytest.mark.asyncio
    async def test_timeout(self, config):
        config.manual_timeout_seconds = 0.05
        generator = make_generator(config, collector=BlockingCollector(make_bundle()))

        result = await generator.refresh("10.0.0.5")

        assert result.outcome is Outcome.TIMED_OUT
        assert not generator.is_generating
        assert await generator.gate.allowed("10.0.0.5", TODAY)


# ── Single flight ───────────────────────────────────────────────


class TestSingleFlight:
    @pytest.mark.asyncio
    async def test_overlapping_requests_are_dropped(self, config):
        collector = BlockingCollector(make_bundle())
        generator = make_generator(config, collector=collector)

        running = asyncio.create_task(generator.generate_daily())
        await asyncio.sleep(0)
        assert generator.is_generating

        assert (await generator.generate_daily()).outcome is Outcome.BUSY
        assert (await generator.run_checkpoint("23:05 check")).outcome is Outcome.BUSY
        assert (await generator.refresh("10.0.0.5")).outcome is Outcome.BUSY
        assert generator.trigger_manual_generation() is False

        collector.release.set()
        assert (await running).ok
        assert len(collector.calls) == 1
        assert not generator.is_generating

    @pytest.mark.asyncio
    async def test_trigger_manual_generation(self, config):
        generator = make_generator(config)

        assert generator.trigger_manual_generation() is True
        await asyncio.gather(*list(generator._background))

        stored = await generator.store.load(TODAY)
        assert stored.automated is True
        assert generator.get_status()["last_generation_date"] == "2025-01-15"

    def test_get_status(self, config):
        status = make_generator(config).get_status()

        assert status == {
            "is_generating": False,
            "last_generation_date": None,
            "region": {"language": "en", "country": "US", "timezone": "America/New_York"},
        }

    @pytest.mark.asyncio
    async def test_log_startup_state(self, config):
        generator = make_generator(config)
        assert await generator.log_startup_state() is None

        await generator.generate_daily()

        assert (await generator.log_startup_state()).date == TODAY
