"""Shared fixtures and fakes for the digest test suite.

Network sources, the completion endpoint, the clock and sleep are all
replaced with in-process fakes; nothing here opens a socket except the
aiohttp test server used by test_server.py.
"""

import sys
from datetime import datetime, timedelta
from pathlib import Path
from zoneinfo import ZoneInfo

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

import pytest  # noqa: E402

from agents.summarizer import Completion, automated_policy, interactive_policy  # noqa: E402
from config import Config  # noqa: E402
from models.market import CollectedDataBundle, FinanceSnapshot, Headline, Quote, TrendingTopic  # noqa: E402

ET = ZoneInfo("America/New_York")

SAMPLE_REPLY = """**NEWS HIGHLIGHTS**
Central bank holds rates steady.

**TRENDING TOPICS**
Sports: championship final.

**MARKET OVERVIEW**
The primary index was up slightly in today's trading.

**LOOKING AHEAD**
Watch tomorrow's inflation report."""


def et(year: int, month: int, day: int, hour: int = 0, minute: int = 0) -> datetime:
    """Aware datetime in exchange time."""
    return datetime(year, month, day, hour, minute, tzinfo=ET)


class FixedClock:
    """Callable clock that tests can move."""

    def __init__(self, now: datetime):
        self.now = now

    def __call__(self) -> datetime:
        return self.now


class SleepRecorder:
    """Async sleep replacement that records requested delays."""

    def __init__(self, clock: FixedClock | None = None):
        self.calls: list[float] = []
        self.clock = clock

    async def __call__(self, delay: float) -> None:
        self.calls.append(delay)
        if self.clock is not None:
            self.clock.now = self.clock.now + timedelta(seconds=delay)


class FakeCollector:
    """DataCollector stand-in returning a fixed bundle."""

    def __init__(self, bundle: CollectedDataBundle):
        self.bundle = bundle
        self.calls = []

    async def collect(self, region):
        self.calls.append(region)
        return self.bundle


class FakeSummarizer:
    """SummarizerAgent stand-in returning a fixed completion."""

    def __init__(self, completion: Completion | None = None):
        self.completion = completion or Completion(ok=True, text=SAMPLE_REPLY, model="test-model", attempts=1)
        self.prompts: list[str] = []
        self.policies = []

    def automated_policy(self):
        return automated_policy(("test-model", "fallback-model"))

    def interactive_policy(self):
        return interactive_policy("test-model")

    async def complete(self, prompt, system_instructions=None, models=None, policy=None):
        self.prompts.append(prompt)
        self.policies.append(policy)
        return self.completion


def make_bundle(news: bool = True, trends: bool = True, finance: bool = True) -> CollectedDataBundle:
    """Bundle with any combination of sources available."""
    snapshot = None
    if finance:
        snapshot = FinanceSnapshot(
            primary_symbol="^IXIC",
            primary_index=Quote(price=17000.5, change=85.0, change_percent=0.5),
            equities={
                "AAPL": Quote(price=190.0, change=-1.9, change_percent=-1.0),
                "MSFT": Quote(price=410.25, change=8.2, change_percent=2.04),
            },
            crypto={"BTC-USD": Quote(price=65000.0, change=650.0, change_percent=1.01)},
            errors={"TSLA": "HTTP 404 from quote endpoint"},
        )
    return CollectedDataBundle(
        news=[
            Headline(title="Central bank holds rates", description="Policy unchanged for a third meeting", source="Wire"),
            Headline(title="Tech earnings beat estimates", source="Daily"),
        ] if news else None,
        trends=[TrendingTopic(title="championship final", traffic="500K+"), TrendingTopic(title="new phone")]
        if trends else None,
        finance=snapshot,
    )


@pytest.fixture
def config(tmp_path) -> Config:
    """Configuration pointing all storage at a temp directory."""
    return Config(
        llm_api_key="test-key",
        news_api_key="news-key",
        data_dir=tmp_path / "data",
        log_dir=tmp_path / "log",
        trends_retry_delay=3.0,
    )


@pytest.fixture
def bundle() -> CollectedDataBundle:
    return make_bundle()
