"""Trending-search collector.

Reads the daily trending-searches RSS feed for a region with feedparser and
keeps the top 25 topics with their approximate traffic. Empty or failed
responses are retried with a fixed delay before giving up.
"""

import asyncio
import logging
from typing import Awaitable, Callable

import aiohttp
import feedparser

from collectors.http import get_text
from config import Config
from models.market import TrendingTopic
from models.summary import Region
from retry import RetryExhausted, RetryPolicy, execute_with_policy

logger = logging.getLogger(__name__)

TRENDS_LIMIT = 25

FeedFetcher = Callable[[aiohttp.ClientSession, Config, Region], Awaitable[str]]


async def fetch_trending_feed(
    session: aiohttp.ClientSession,
    config: Config,
    region: Region,
) -> str:
    """Request the raw trending-searches RSS document for a region."""
    return await get_text(
        session,
        config.trends_url,
        params={"geo": region.country.upper(), "hl": region.language},
        timeout=config.collector_timeout,
    )


def parse_trending_feed(content: str, limit: int = TRENDS_LIMIT) -> list[TrendingTopic]:
    """Parse RSS content into TrendingTopic records.

    Entries without titles are skipped. Traffic comes from the feed's
    approx_traffic extension element when present.
    """
    feed = feedparser.parse(content)
    topics = []
    for entry in feed.entries:
        title = entry.get("title", "").strip()
        if not title:
            continue
        traffic = (entry.get("ht_approx_traffic") or "").strip() or "N/A"
        topics.append(TrendingTopic(title=title, traffic=traffic))
        if len(topics) >= limit:
            break
    return topics


async def collect_trends(
    session: aiohttp.ClientSession,
    config: Config,
    region: Region,
    fetch: FeedFetcher = fetch_trending_feed,
    sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
) -> list[TrendingTopic] | None:
    """Collect trending topics, retrying empty or failed responses.

    Returns:
        Up to 25 topics, or None after 1 + trends_retries failed attempts
    """
    policy = RetryPolicy(
        max_attempts=1 + config.trends_retries,
        delays=(config.trends_retry_delay,),
    )

    async def attempt(_candidate) -> list[TrendingTopic]:
        content = await fetch(session, config, region)
        return parse_trending_feed(content)

    try:
        topics = await execute_with_policy(
            attempt,
            policy,
            accept=bool,
            sleep=sleep,
            label="trends",
        )
    except RetryExhausted as e:
        logger.warning(
            "Trends unavailable | region=%s attempts=%d error=%s",
            region, e.attempts, e.last_error,
        )
        return None

    logger.info("Trends collected | region=%s topics=%d", region, len(topics))
    return topics
