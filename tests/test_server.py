"""Tests for the HTTP API."""

import asyncio

import pytest
from aiohttp import test_utils

from conftest import FakeCollector, FakeSummarizer, FixedClock, et, make_bundle
from generator import SummaryGenerator
from refresh_gate import RefreshGate
from server import client_ip, create_app, is_admin, normalize_ip
from store import SummaryStore

OUTSIDER = {"X-Forwarded-For": "203.0.113.9"}


def build_app(config, bundle=None):
    clock = FixedClock(et(2025, 1, 15, 23, 0))
    store = SummaryStore(config.summary_file, clock=clock)
    generator = SummaryGenerator(
        config,
        collector=FakeCollector(bundle or make_bundle()),
        summarizer=FakeSummarizer(),
        store=store,
        gate=RefreshGate(config.refresh_marker_file),
        clock=clock,
    )
    return create_app(config, generator, store), generator


def client_for(app) -> test_utils.TestClient:
    return test_utils.TestClient(test_utils.TestServer(app))


# ── Addresses ───────────────────────────────────────────────────


class TestAddresses:
    @pytest.mark.parametrize("raw, expected", [
        ("::ffff:127.0.0.1", "127.0.0.1"),
        ("::FFFF:10.0.0.1", "10.0.0.1"),
        (" 10.0.0.2 ", "10.0.0.2"),
        ("::1", "::1"),
        (None, ""),
    ])
    def test_normalize_ip(self, raw, expected):
        assert normalize_ip(raw) == expected

    def test_is_admin_with_mapped_address(self):
        assert is_admin("::ffff:127.0.0.1", ["127.0.0.1"])
        assert not is_admin("10.0.0.1", ["127.0.0.1", "::1"])

    def test_client_ip_prefers_first_forwarded_entry(self):
        class Request:
            headers = {"X-Forwarded-For": "198.51.100.7, 10.0.0.1"}
            remote = "10.0.0.1"

        assert client_ip(Request(), trust_proxy=True) == "198.51.100.7"
        assert client_ip(Request(), trust_proxy=False) == "10.0.0.1"


# ── Public routes ───────────────────────────────────────────────


class TestPublicRoutes:
    @pytest.mark.asyncio
    async def test_health(self, config):
        app, _ = build_app(config)

        async with client_for(app) as client:
            resp = await client.get("/health")
            body = await resp.json()

        assert resp.status == 200
        assert body["status"] == "ok"
        assert body["generating"] is False

    @pytest.mark.asyncio
    async def test_save_then_fetch(self, config):
        app, _ = build_app(config)

        async with client_for(app) as client:
            saved = await client.post("/api/summary/save", json={
                "date": "2025-01-10",
                "language": "fr",
                "country": "FR",
                "news": "nouvelles",
                "finance": "marche",
            })
            fetched = await client.get("/api/summary/daily", params={
                "date": "2025-01-10", "language": "fr", "country": "FR",
            })
            saved_body, body = await saved.json(), await fetched.json()

        assert saved.status == 200
        assert saved_body["success"] is True
        assert body["success"] is True
        assert body["summary"]["news"] == "nouvelles"
        assert body["summary"]["finance"] == "marche"
        assert body["summary"]["automated"] is False
        assert body["summary"]["date"] == "2025-01-10"

    @pytest.mark.asyncio
    async def test_save_uppercases_country(self, config):
        app, generator = build_app(config)

        async with client_for(app) as client:
            await client.post("/api/summary/save", json={
                "date": "2025-01-10", "language": "en", "country": "us", "news": "lower",
            })
            fetched = await client.get("/api/summary/daily", params={"date": "2025-01-10", "country": "us"})
            body = await fetched.json()

        assert body["success"] is True
        assert body["country"] == "US"
        assert [(e.language, e.country) for e in await generator.store.list_all()] == [("en", "US")]

    @pytest.mark.asyncio
    @pytest.mark.parametrize("path, payload", [
        ("/api/summary/save", {"date": "2025-01-10", "news": "x", "country": 7}),
        ("/api/summary/save", {"date": "2025-01-10", "news": "x", "language": ["en"]}),
        ("/api/summary/refresh", {"country": {"code": "US"}}),
    ])
    async def test_non_string_region_rejected(self, config, path, payload):
        app, generator = build_app(config)

        async with client_for(app) as client:
            resp = await client.post(path, json=payload)
            body = await resp.json()

        assert resp.status == 400
        assert "must be a string" in body["message"]
        assert generator.collector.calls == []

    @pytest.mark.asyncio
    async def test_refresh_uppercases_country(self, config):
        app, generator = build_app(config)

        async with client_for(app) as client:
            resp = await client.post("/api/summary/refresh", json={"language": "de", "country": "de"})

        assert resp.status == 200
        assert await generator.store.load(generator.today(), "de", "DE") is not None

    @pytest.mark.asyncio
    async def test_daily_not_found(self, config):
        app, _ = build_app(config)

        async with client_for(app) as client:
            resp = await client.get("/api/summary/daily", params={"date": "2025-01-10"})
            body = await resp.json()

        assert resp.status == 200
        assert body["success"] is False
        assert body["language"] == "en"
        assert body["country"] == "US"

    @pytest.mark.asyncio
    async def test_daily_invalid_date(self, config):
        app, _ = build_app(config)

        async with client_for(app) as client:
            resp = await client.get("/api/summary/daily", params={"date": "2025-02-30"})

        assert resp.status == 400

    @pytest.mark.asyncio
    @pytest.mark.parametrize("payload, message", [
        ({"news": "x"}, "Date is required"),
        ({"date": "2025-01-10"}, "No summary data provided"),
        ({"date": "2025-01-10", "news": "", "trends": ""}, "No summary data provided"),
        ({"date": "01/10/2025", "news": "x"}, "Invalid date"),
        ({"date": "2025-01-10", "news": 42}, "must be a string"),
    ])
    async def test_save_validation(self, config, payload, message):
        app, _ = build_app(config)

        async with client_for(app) as client:
            resp = await client.post("/api/summary/save", json=payload)
            body = await resp.json()

        assert resp.status == 400
        assert message in body["message"]

    @pytest.mark.asyncio
    async def test_save_rejects_non_json(self, config):
        app, _ = build_app(config)

        async with client_for(app) as client:
            resp = await client.post("/api/summary/save", data="not json")

        assert resp.status == 400

    @pytest.mark.asyncio
    async def test_history_newest_first(self, config):
        app, _ = build_app(config)

        async with client_for(app) as client:
            for day in ("2025-01-08", "2025-01-12", "2025-01-10"):
                await client.post("/api/summary/save", json={"date": day, "news": day})
            resp = await client.get("/api/summary/history")
            body = await resp.json()

        assert [row["date"] for row in body["summaries"]] == ["2025-01-12", "2025-01-10", "2025-01-08"]
        assert body["summaries"][0]["has_content"] is True

    @pytest.mark.asyncio
    async def test_refresh_quota(self, config):
        app, _ = build_app(config)

        async with client_for(app) as client:
            first = await client.post("/api/summary/refresh", headers=OUTSIDER)
            second = await client.post("/api/summary/refresh", headers=OUTSIDER)
            first_body, second_body = await first.json(), await second.json()

        assert first.status == 200
        assert first_body["success"] is True
        assert first_body["summary"]["news"] == "Central bank holds rates steady."
        assert second.status == 429
        assert second_body["outcome"] == "quota_exceeded"

    @pytest.mark.asyncio
    async def test_refresh_region_from_body(self, config):
        app, generator = build_app(config)

        async with client_for(app) as client:
            resp = await client.post("/api/summary/refresh", json={"language": "de", "country": "DE"})

        assert resp.status == 200
        assert await generator.store.load(generator.today(), "de", "DE") is not None

    @pytest.mark.asyncio
    async def test_refresh_insufficient_data(self, config):
        app, _ = build_app(config, bundle=make_bundle(news=False, finance=False))

        async with client_for(app) as client:
            resp = await client.post("/api/summary/refresh")
            body = await resp.json()

        assert resp.status == 503
        assert body["success"] is False


# ── Admin routes ────────────────────────────────────────────────


class TestAdminRoutes:
    @pytest.mark.asyncio
    async def test_outsider_forbidden(self, config):
        app, _ = build_app(config)

        async with client_for(app) as client:
            status = await client.get("/api/summary/automation-status", headers=OUTSIDER)
            trigger = await client.post("/api/summary/trigger-automated", headers=OUTSIDER)

        assert status.status == 403
        assert trigger.status == 403

    @pytest.mark.asyncio
    async def test_mapped_loopback_allowed(self, config):
        app, _ = build_app(config)

        async with client_for(app) as client:
            resp = await client.get(
                "/api/summary/automation-status",
                headers={"X-Forwarded-For": "::ffff:127.0.0.1"},
            )
            body = await resp.json()

        assert resp.status == 200
        assert body["is_generating"] is False
        assert body["region"]["country"] == "US"

    @pytest.mark.asyncio
    async def test_forwarded_header_ignored_without_trust(self, config):
        config.trust_proxy = False
        app, _ = build_app(config)

        async with client_for(app) as client:
            resp = await client.get("/api/summary/automation-status", headers=OUTSIDER)

        assert resp.status == 200

    @pytest.mark.asyncio
    async def test_trigger_starts_background_pass(self, config):
        app, generator = build_app(config)

        async with client_for(app) as client:
            resp = await client.post("/api/summary/trigger-automated")
            body = await resp.json()
            await asyncio.gather(*list(generator._background))
            status = await (await client.get("/api/summary/automation-status")).json()

        assert body["success"] is True
        assert status["last_generation_date"] == "2025-01-15"

    @pytest.mark.asyncio
    async def test_trigger_while_busy(self, config):
        app, generator = build_app(config)
        generator.is_generating = True

        async with client_for(app) as client:
            resp = await client.post("/api/summary/trigger-automated")
            body = await resp.json()

        assert resp.status == 200
        assert body["success"] is False
