"""Upstream data collectors.

Three independent sources feed one generation attempt:
    news: top headlines for the region (collectors.news)
    trends: trending searches for the region (collectors.trends)
    finance: classified market quotes (collectors.finance)

DataCollector runs all three concurrently over one pooled HTTP session and
returns a CollectedDataBundle. A source that fails shows up as None in the
bundle; no collector fault ever reaches the caller.
"""

import asyncio
import logging
from typing import Any, Awaitable, Callable

import aiohttp

from collectors.finance import collect_finance
from collectors.news import collect_news
from collectors.trends import collect_trends
from config import Config
from models.market import CollectedDataBundle
from models.summary import Region

logger = logging.getLogger(__name__)


class DataCollector:
    """Collects news, trends and finance data for one generation attempt.

    The three source functions are injectable so tests can replace network
    access with canned results.

    Example:
        >>> collector = DataCollector(config)
        >>> bundle = await collector.collect(Region("en", "US"))
        >>> bundle.has_core_data
        True
    """

    def __init__(
        self,
        config: Config,
        news: Callable[..., Awaitable[Any]] = collect_news,
        trends: Callable[..., Awaitable[Any]] = collect_trends,
        finance: Callable[..., Awaitable[Any]] = collect_finance,
        max_concurrent: int = 20,
    ):
        self.config = config
        self._news = news
        self._trends = trends
        self._finance = finance
        self._max_concurrent = max_concurrent

    async def collect(self, region: Region) -> CollectedDataBundle:
        """Run all collectors concurrently and bundle their results."""
        connector = aiohttp.TCPConnector(limit=self._max_concurrent)
        async with aiohttp.ClientSession(connector=connector) as session:
            results = await asyncio.gather(
                self._news(session, self.config, region),
                self._trends(session, self.config, region),
                self._finance(session, self.config),
                return_exceptions=True,
            )

        for name, result in zip(("news", "trends", "finance"), results):
            if isinstance(result, asyncio.CancelledError):
                raise result
            if isinstance(result, BaseException):
                logger.error(
                    "Collector raised | source=%s error=%s", name, result,
                    exc_info=(type(result), result, result.__traceback__),
                )
        news, trends, finance = (
            None if isinstance(result, BaseException) else result for result in results
        )

        bundle = CollectedDataBundle(news=news, trends=trends, finance=finance)
        logger.info(
            "Data collected | region=%s news=%s trends=%s finance=%s",
            region, bundle.has_news, bundle.has_trends, bundle.has_finance,
        )
        return bundle


__all__ = ["DataCollector", "collect_finance", "collect_news", "collect_trends"]
