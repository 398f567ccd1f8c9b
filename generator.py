"""Digest generation orchestration.

SummaryGenerator owns the one generation pipeline and the three ways into it:

Entry Points:
    generate_daily(): scheduled pass (23:00 exchange time). Always
        regenerates and overwrites today's record, unless a pass is already
        running or one already succeeded today in this process.
    run_checkpoint(label): safety-net passes (23:05, 23:30, 23:50). Generate
        only if today's stored record is missing or was generated before
        today's scheduled time.
    refresh(client_id, region): manual pass. One success per client per day
        (RefreshGate), interactive retry policy, shorter sections, and an
        overall timeout.

Pipeline Flow:
    1. COLLECT: news, trends and finance concurrently (DataCollector)
    2. GUARD: abort without saving unless news or finance is present
    3. PROMPT: build_prompt with weekend/closed flags from the market calendar
    4. COMPLETE: SummarizerAgent under the automated or interactive policy
    5. PARSE: parse_sections (missing sections saved as empty strings)
    6. SAVE: SummaryStore.save

Concurrency:
    is_generating is a single-flight flag; overlapping attempts are dropped
    (reported as BUSY), never queued. All state lives on the instance.
"""

import asyncio
import logging
import time
import uuid
from dataclasses import dataclass
from datetime import date, datetime, timezone
from enum import Enum
from typing import Any, Callable

from agents.prompts import DEFAULT_WORD_LIMIT, INTERACTIVE_WORD_LIMIT, SYSTEM_INSTRUCTIONS, build_prompt
from agents.summarizer import SummarizerAgent
from collectors import DataCollector
from config import Config, parse_clock_time
from market_calendar import is_market_open, is_weekend
from models.summary import Region, SummaryRecord
from observability.logging import clear_context, set_run_context
from observability.tracing import trace_operation
from refresh_gate import RefreshGate
from sections import parse_sections
from store import SummaryStore

logger = logging.getLogger(__name__)


class Outcome(str, Enum):
    """Result of one generation request."""

    SAVED = "saved"
    INSUFFICIENT_DATA = "insufficient_data"
    COMPLETION_FAILED = "completion_failed"
    SAVE_FAILED = "save_failed"
    QUOTA_EXCEEDED = "quota_exceeded"
    TIMED_OUT = "timed_out"
    BUSY = "busy"
    ALREADY_GENERATED = "already_generated"

    @property
    def message(self) -> str:
        return _OUTCOME_MESSAGES[self]


_OUTCOME_MESSAGES = {
    Outcome.SAVED: "Summary generated and saved",
    Outcome.INSUFFICIENT_DATA: "Not enough data available to generate a summary (news and market data both unavailable)",
    Outcome.COMPLETION_FAILED: "The AI service could not produce a summary, please try again later",
    Outcome.SAVE_FAILED: "Summary was generated but could not be saved",
    Outcome.QUOTA_EXCEEDED: "Summary already refreshed today, try again tomorrow",
    Outcome.TIMED_OUT: "Summary generation timed out, please try again",
    Outcome.BUSY: "Summary generation already in progress",
    Outcome.ALREADY_GENERATED: "Summary already generated for today",
}


@dataclass
class GenerationResult:
    """Outcome of one request plus the saved record, if any."""

    outcome: Outcome
    record: SummaryRecord | None = None
    duration: float = 0.0

    @property
    def ok(self) -> bool:
        return self.outcome is Outcome.SAVED

    @property
    def message(self) -> str:
        return self.outcome.message


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


class SummaryGenerator:
    """Runs generation passes and tracks in-memory generation state.

    Attributes:
        is_generating: True while a pass is in flight
        last_generation_date: Exchange-local date of the last successful
            scheduled or checkpoint pass in this process

    Example:
        >>> generator = SummaryGenerator(config, collector, summarizer, store, gate)
        >>> result = await generator.generate_daily()
        >>> result.outcome
        <Outcome.SAVED: 'saved'>
    """

    def __init__(
        self,
        config: Config,
        collector: DataCollector,
        summarizer: SummarizerAgent,
        store: SummaryStore,
        gate: RefreshGate,
        clock: Callable[[], datetime] = _utc_now,
    ):
        self.config = config
        self.collector = collector
        self.summarizer = summarizer
        self.store = store
        self.gate = gate
        self._clock = clock
        self.is_generating = False
        self.last_generation_date: date | None = None
        self._background: set[asyncio.Task] = set()

    @property
    def region(self) -> Region:
        """Region of the scheduled digest."""
        return Region(self.config.language, self.config.country)

    def now(self) -> datetime:
        """Current instant in the exchange time zone."""
        return self._clock().astimezone(self.config.tz)

    def today(self) -> date:
        """Current exchange-local calendar date."""
        return self.now().date()

    def scheduled_cutoff(self, day: date) -> datetime:
        """Instant of the scheduled pass on a given exchange-local day."""
        hour, minute = parse_clock_time(self.config.daily_run_time)
        return datetime(day.year, day.month, day.day, hour, minute, tzinfo=self.config.tz)

    async def _run_pipeline(self, region: Region, automated: bool, interactive: bool) -> GenerationResult:
        """Collect, prompt, complete, parse and save one digest."""
        start = time.time()
        now = self.now()
        day = now.date()
        logger.info(
            "Generation started | date=%s region=%s automated=%s interactive=%s",
            day, region, automated, interactive,
        )

        bundle = await self.collector.collect(region)
        if not bundle.has_core_data:
            logger.warning("Generation aborted, insufficient data | date=%s region=%s", day, region)
            return GenerationResult(Outcome.INSUFFICIENT_DATA, duration=time.time() - start)

        prompt = build_prompt(
            bundle,
            is_weekend(now),
            not is_market_open(now),
            word_limit=INTERACTIVE_WORD_LIMIT if interactive else DEFAULT_WORD_LIMIT,
            language=region.language,
        )
        policy = self.summarizer.interactive_policy() if interactive else self.summarizer.automated_policy()
        completion = await self.summarizer.complete(prompt, SYSTEM_INSTRUCTIONS, policy=policy)
        if not completion.ok:
            return GenerationResult(Outcome.COMPLETION_FAILED, duration=time.time() - start)

        sections = parse_sections(completion.text)
        if sections.is_empty:
            logger.warning("Reply had no recognizable sections | model=%s chars=%d", completion.model, len(completion.text))

        record = SummaryRecord.from_sections(sections, day, region, self.now(), automated)
        if not await self.store.save(record):
            return GenerationResult(Outcome.SAVE_FAILED, record=record, duration=time.time() - start)

        duration = time.time() - start
        logger.info(
            "Generation done | date=%s region=%s model=%s duration=%.1fs",
            day, region, completion.model, duration,
        )
        return GenerationResult(Outcome.SAVED, record=record, duration=duration)

    async def _run_exclusive(
        self,
        region: Region,
        automated: bool,
        interactive: bool,
        trigger: str,
    ) -> GenerationResult:
        """Run the pipeline under the single-flight flag and a fresh run id."""
        if self.is_generating:
            logger.info("Generation already in progress, skipping | region=%s", region)
            return GenerationResult(Outcome.BUSY)

        self.is_generating = True
        set_run_context(uuid.uuid4().hex[:8], trigger=trigger)
        try:
            with trace_operation("generation", {"region": str(region), "trigger": trigger}) as span_attrs:
                result = await self._run_pipeline(region, automated, interactive)
                span_attrs["outcome"] = result.outcome.value
            return result
        except asyncio.CancelledError:
            logger.info("Generation cancelled | region=%s", region)
            raise
        except Exception as e:
            logger.error("Generation error | type=%s error=%s", type(e).__name__, e, exc_info=True)
            return GenerationResult(Outcome.COMPLETION_FAILED)
        finally:
            self.is_generating = False
            clear_context()

    async def generate_daily(self, trigger: str = "daily") -> GenerationResult:
        """Scheduled pass: regenerate today's digest for the configured region."""
        today = self.today()
        if self.is_generating:
            logger.info("Scheduled pass skipped, generation in progress | date=%s", today)
            return GenerationResult(Outcome.BUSY)
        if self.last_generation_date == today:
            logger.info("Scheduled pass skipped, already generated | date=%s", today)
            return GenerationResult(Outcome.ALREADY_GENERATED)

        result = await self._run_exclusive(self.region, automated=True, interactive=False, trigger=trigger)
        if result.ok:
            self.last_generation_date = today
        return result

    async def run_checkpoint(self, label: str) -> GenerationResult:
        """Checkpoint pass: generate only if no post-cutoff record exists for today."""
        today = self.today()
        if self.last_generation_date == today:
            logger.info("Checkpoint skipped, already generated today | label=%s date=%s", label, today)
            return GenerationResult(Outcome.ALREADY_GENERATED)
        region = self.region
        existing = await self.store.load(today, region.language, region.country)
        cutoff = self.scheduled_cutoff(today)
        if existing is not None and existing.generated_at is not None and existing.generated_at >= cutoff:
            logger.info(
                "Checkpoint skipped, summary present | label=%s date=%s generated_at=%s",
                label, today, existing.generated_at.isoformat(),
            )
            return GenerationResult(Outcome.ALREADY_GENERATED)

        logger.info("Checkpoint generating | label=%s date=%s", label, today)
        result = await self._run_exclusive(region, automated=True, interactive=False, trigger="checkpoint")
        if result.ok:
            self.last_generation_date = today
        return result

    async def refresh(self, client_id: str, region: Region | None = None) -> GenerationResult:
        """Manual pass for one client, at most one success per day.

        Args:
            client_id: Caller identity (client address)
            region: Region to generate for (defaults to the configured one)

        Returns:
            GenerationResult; the client is marked only when the outcome is SAVED
        """
        region = region or self.region
        today = self.today()
        if self.is_generating:
            return GenerationResult(Outcome.BUSY)
        if not await self.gate.allowed(client_id, today):
            logger.info("Manual refresh refused, quota used | client=%s date=%s", client_id, today)
            return GenerationResult(Outcome.QUOTA_EXCEEDED)

        try:
            result = await asyncio.wait_for(
                self._run_exclusive(region, automated=False, interactive=True, trigger="manual"),
                timeout=self.config.manual_timeout_seconds,
            )
        except asyncio.TimeoutError:
            logger.warning(
                "Manual refresh timed out | client=%s timeout=%.0fs",
                client_id, self.config.manual_timeout_seconds,
            )
            return GenerationResult(Outcome.TIMED_OUT, duration=self.config.manual_timeout_seconds)

        if result.ok:
            await self.gate.mark(client_id, today)
        return result

    def trigger_manual_generation(self) -> bool:
        """Start a scheduled-style pass in the background.

        Returns:
            False if a pass is already in flight, True if one was started
        """
        if self.is_generating:
            return False
        task = asyncio.create_task(self.generate_daily(trigger="admin"))
        self._background.add(task)
        task.add_done_callback(self._background.discard)
        return True

    def get_status(self) -> dict[str, Any]:
        """In-memory generation state for the status endpoint."""
        return {
            "is_generating": self.is_generating,
            "last_generation_date": self.last_generation_date.isoformat() if self.last_generation_date else None,
            "region": {
                "language": self.config.language,
                "country": self.config.country,
                "timezone": self.config.market_timezone,
            },
        }

    async def log_startup_state(self) -> SummaryRecord | None:
        """Log whether today's digest already exists; returns it if so."""
        today = self.today()
        record = await self.store.load(today, self.config.language, self.config.country)
        if record is None:
            logger.info("No summary yet for today | date=%s region=%s", today, self.region)
        else:
            logger.info(
                "Summary present for today | date=%s region=%s generated_at=%s automated=%s",
                today, self.region,
                record.generated_at.isoformat() if record.generated_at else "-",
                record.automated,
            )
        return record

    async def close(self) -> None:
        """Cancel background passes started by trigger_manual_generation."""
        for task in list(self._background):
            task.cancel()
        if self._background:
            await asyncio.gather(*self._background, return_exceptions=True)
