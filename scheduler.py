"""Wall-clock daily triggers.

Each job fires once a day at a fixed HH:MM in the exchange time zone. Jobs
are independent: each has its own sleep loop, and a fired action runs as
its own task so a slow pass never delays another job's trigger. The
scheduler knows nothing about generation; it only calls the actions it was
given.

Daylight-saving transitions are handled by building each fire time from
the local calendar date and wall-clock time in the configured zone.
"""

import asyncio
import logging
from dataclasses import dataclass
from datetime import date, datetime, timedelta, timezone
from typing import Any, Awaitable, Callable
from zoneinfo import ZoneInfo

from config import Config, parse_clock_time

logger = logging.getLogger(__name__)


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


def _at(day: date, hour: int, minute: int, tz: ZoneInfo) -> datetime:
    return datetime(day.year, day.month, day.day, hour, minute, tzinfo=tz)


def next_fire_time(now: datetime, hour: int, minute: int, tz: ZoneInfo) -> datetime:
    """First instant strictly after now whose local wall-clock time is hour:minute."""
    local = now.astimezone(tz)
    candidate = _at(local.date(), hour, minute, tz)
    if candidate <= local:
        candidate = _at(local.date() + timedelta(days=1), hour, minute, tz)
    return candidate


@dataclass(frozen=True)
class DailyJob:
    """One daily trigger."""

    name: str
    hour: int
    minute: int
    action: Callable[[], Awaitable[Any]]

    @property
    def at(self) -> str:
        return f"{self.hour:02d}:{self.minute:02d}"


class DailyScheduler:
    """Runs registered actions once a day at fixed local times.

    Example:
        >>> scheduler = DailyScheduler(ZoneInfo("America/New_York"))
        >>> scheduler.add_job("daily", "23:00", generator.generate_daily)
        >>> scheduler.start()
        >>> ...
        >>> await scheduler.stop()
    """

    def __init__(
        self,
        tz: ZoneInfo,
        clock: Callable[[], datetime] = _utc_now,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        self.tz = tz
        self._clock = clock
        self._sleep = sleep
        self.jobs: list[DailyJob] = []
        self._loops: list[asyncio.Task] = []
        self._running: set[asyncio.Task] = set()

    def add_job(self, name: str, at: str, action: Callable[[], Awaitable[Any]]) -> DailyJob:
        """Register an action to run every day at 'HH:MM' local time.

        Raises:
            ValueError: If at is not a valid HH:MM time
        """
        hour, minute = parse_clock_time(at)
        job = DailyJob(name=name, hour=hour, minute=minute, action=action)
        self.jobs.append(job)
        return job

    def next_runs(self) -> list[tuple[str, datetime]]:
        """Next fire time of every job, soonest first."""
        now = self._clock()
        runs = [(job.name, next_fire_time(now, job.hour, job.minute, self.tz)) for job in self.jobs]
        return sorted(runs, key=lambda run: run[1])

    async def _fire(self, job: DailyJob) -> None:
        logger.info("Scheduled trigger | job=%s at=%s", job.name, job.at)
        try:
            await job.action()
        except asyncio.CancelledError:
            raise
        except Exception as e:
            logger.error("Scheduled job failed | job=%s error=%s", job.name, e, exc_info=True)

    def _spawn(self, job: DailyJob) -> asyncio.Task:
        task = asyncio.create_task(self._fire(job), name=f"job:{job.name}")
        self._running.add(task)
        task.add_done_callback(self._running.discard)
        return task

    async def run_job(self, job: DailyJob, max_fires: int | None = None) -> None:
        """Sleep until each fire time and trigger the job.

        Args:
            job: Job to run
            max_fires: Stop after this many triggers (None = forever)
        """
        fires = 0
        last_fire: datetime | None = None
        while max_fires is None or fires < max_fires:
            now = self._clock()
            if last_fire is not None and now < last_fire:
                now = last_fire
            fire_at = next_fire_time(now, job.hour, job.minute, self.tz)
            delay = fire_at.timestamp() - self._clock().timestamp()
            logger.debug("Next trigger | job=%s fire_at=%s delay=%.0fs", job.name, fire_at.isoformat(), delay)
            await self._sleep(max(delay, 0.0))
            last_fire = fire_at
            fires += 1
            self._spawn(job)

    def start(self) -> None:
        """Start one sleep loop per registered job."""
        for job in self.jobs:
            self._loops.append(asyncio.create_task(self.run_job(job), name=f"schedule:{job.name}"))
        logger.info(
            "Scheduler started | tz=%s jobs=%s",
            self.tz.key, ",".join(f"{job.name}@{job.at}" for job in self.jobs),
        )

    async def stop(self) -> None:
        """Cancel all loops and any triggered actions still running."""
        tasks = [*self._loops, *self._running]
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)
        self._loops.clear()
        logger.info("Scheduler stopped")


def build_scheduler(config: Config, generator: Any, **kwargs) -> DailyScheduler:
    """Scheduler with the daily pass and its checkpoints registered.

    Args:
        config: Provides the time zone, daily run time and checkpoint times
        generator: Object with generate_daily() and run_checkpoint(label)
        **kwargs: Passed to DailyScheduler (clock, sleep)
    """
    scheduler = DailyScheduler(config.tz, **kwargs)
    scheduler.add_job("daily", config.daily_run_time, generator.generate_daily)
    for at in config.checkpoint_times:
        label = f"{at} check"
        scheduler.add_job(f"checkpoint-{at}", at, lambda label=label: generator.run_checkpoint(label))
    return scheduler
