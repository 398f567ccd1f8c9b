"""Top-headline collector.

Issues one request to the headline provider for the region and normalizes
up to five articles into Headline records.

Result Convention:
    list[Headline]: request succeeded (may be empty)
    None: provider not configured, HTTP error, timeout or malformed payload
"""

import asyncio
import logging
from typing import Any, Awaitable, Callable

import aiohttp

from collectors.http import get_json
from config import Config
from models.market import Headline
from models.summary import Region

logger = logging.getLogger(__name__)

NEWS_PAGE_SIZE = 5
NEWS_CATEGORY = "general"

HeadlineFetcher = Callable[[aiohttp.ClientSession, Config, Region], Awaitable[Any]]


async def fetch_top_headlines(
    session: aiohttp.ClientSession,
    config: Config,
    region: Region,
) -> Any:
    """Request the raw top-headlines payload for a region."""
    params = {
        "country": region.country.lower(),
        "language": region.language,
        "category": NEWS_CATEGORY,
        "pageSize": NEWS_PAGE_SIZE,
    }
    return await get_json(
        session,
        config.news_api_url,
        params=params,
        headers={"X-Api-Key": config.news_api_key},
        timeout=config.collector_timeout,
    )


def parse_headlines(payload: Any, limit: int = NEWS_PAGE_SIZE) -> list[Headline]:
    """Normalize a top-headlines payload into Headline records.

    Raises:
        ValueError: If the payload has no article list
    """
    if not isinstance(payload, dict) or not isinstance(payload.get("articles"), list):
        raise ValueError("headline payload has no 'articles' list")

    headlines = []
    for article in payload["articles"][:limit]:
        if not isinstance(article, dict):
            continue
        source = article.get("source") or {}
        headlines.append(Headline(
            title=article.get("title") or "Unknown",
            description=article.get("description") or "",
            source=(source.get("name") if isinstance(source, dict) else None) or article.get("author") or "",
        ))
    return headlines


async def collect_news(
    session: aiohttp.ClientSession,
    config: Config,
    region: Region,
    fetch: HeadlineFetcher = fetch_top_headlines,
) -> list[Headline] | None:
    """Collect top headlines, or None when the source is unavailable."""
    if not config.news_api_key:
        logger.warning("News source not configured | region=%s", region)
        return None

    try:
        payload = await fetch(session, config, region)
        headlines = parse_headlines(payload)
    except asyncio.CancelledError:
        raise
    except asyncio.TimeoutError:
        logger.warning("News request timed out | region=%s timeout=%ds", region, config.collector_timeout)
        return None
    except Exception as e:
        logger.warning("News collection failed | region=%s error=%s: %s", region, type(e).__name__, e)
        return None

    logger.info("News collected | region=%s headlines=%d", region, len(headlines))
    return headlines
