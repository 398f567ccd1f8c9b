"""Market quote collector.

Fetches one quote per configured symbol, all requests outstanding at once,
and classifies each result into the primary index, crypto or equity bucket.

Partial Failure:
    A symbol that fails (HTTP error, timeout, malformed chart payload) is
    recorded in FinanceSnapshot.errors and the remaining symbols are kept.
    Only when every symbol fails does the collector report None.

Classification:
    '-USD' suffix               -> crypto
    configured primary index    -> primary index (default ^IXIC)
    anything else               -> equity (other indices and FX included)
"""

import asyncio
import logging
from typing import Any, Awaitable, Callable

import aiohttp

from collectors.http import UpstreamError, get_json
from config import Config
from market_calendar import is_crypto_symbol
from models.market import FinanceSnapshot, Quote, SymbolClass

logger = logging.getLogger(__name__)

QuoteFetcher = Callable[[aiohttp.ClientSession, Config, str], Awaitable[Quote]]


def classify_symbol(symbol: str, primary_index: str) -> SymbolClass:
    """Assign a symbol to exactly one reporting bucket."""
    if is_crypto_symbol(symbol):
        return SymbolClass.CRYPTO
    if symbol == primary_index:
        return SymbolClass.PRIMARY_INDEX
    return SymbolClass.EQUITY


def parse_chart_payload(payload: Any) -> Quote:
    """Build a Quote from a chart API response.

    Raises:
        ValueError: If the payload carries an error or has no price
    """
    chart = payload.get("chart") if isinstance(payload, dict) else None
    if not isinstance(chart, dict):
        raise ValueError("quote payload has no 'chart' object")
    if chart.get("error"):
        error = chart["error"]
        description = error.get("description") if isinstance(error, dict) else error
        raise ValueError(f"chart error: {description}")

    results = chart.get("result") or []
    meta = results[0].get("meta", {}) if results and isinstance(results[0], dict) else {}
    price = meta.get("regularMarketPrice")
    if price is None:
        raise ValueError("quote payload has no regularMarketPrice")

    previous = meta.get("chartPreviousClose") or meta.get("previousClose")
    change = change_percent = None
    if previous:
        change = price - previous
        change_percent = change / previous * 100
    return Quote(price=price, change=change, change_percent=change_percent)


async def fetch_quote(session: aiohttp.ClientSession, config: Config, symbol: str) -> Quote:
    """Fetch and parse the latest quote for one symbol."""
    payload = await get_json(
        session,
        config.quote_url.format(symbol=symbol),
        params={"interval": "1d", "range": "1d"},
        timeout=config.collector_timeout,
    )
    return parse_chart_payload(payload)


async def fetch_quotes(
    session: aiohttp.ClientSession,
    config: Config,
    symbols: list[str],
    fetch: QuoteFetcher = fetch_quote,
) -> tuple[dict[str, Quote], dict[str, str]]:
    """Fetch quotes for all symbols concurrently.

    Returns:
        Tuple of (quotes by symbol, error message by symbol)
    """
    tasks = [fetch(session, config, symbol) for symbol in symbols]
    results = await asyncio.gather(*tasks, return_exceptions=True)

    quotes: dict[str, Quote] = {}
    errors: dict[str, str] = {}
    for symbol, result in zip(symbols, results):
        if isinstance(result, asyncio.CancelledError):
            raise result
        if isinstance(result, BaseException):
            if isinstance(result, UpstreamError):
                message = str(result)
            elif isinstance(result, asyncio.TimeoutError):
                message = "timed out"
            else:
                message = f"{type(result).__name__}: {result}"
            errors[symbol] = message
            logger.debug("Quote failed | symbol=%s error=%s", symbol, message)
        else:
            quotes[symbol] = result
    return quotes, errors


def build_snapshot(
    quotes: dict[str, Quote],
    errors: dict[str, str],
    primary_index: str,
) -> FinanceSnapshot:
    """Classify fetched quotes into a FinanceSnapshot."""
    snapshot = FinanceSnapshot(primary_symbol=primary_index, errors=dict(errors))
    for symbol, quote in quotes.items():
        bucket = classify_symbol(symbol, primary_index)
        if bucket is SymbolClass.PRIMARY_INDEX:
            snapshot.primary_index = quote
        elif bucket is SymbolClass.CRYPTO:
            snapshot.crypto[symbol] = quote
        else:
            snapshot.equities[symbol] = quote
    return snapshot


async def collect_finance(
    session: aiohttp.ClientSession,
    config: Config,
    fetch: QuoteFetcher = fetch_quote,
) -> FinanceSnapshot | None:
    """Collect and classify quotes for the configured symbols.

    Returns:
        Snapshot with per-symbol errors, or None when no symbol succeeded
    """
    symbols = list(dict.fromkeys(config.finance_symbols))
    try:
        quotes, errors = await fetch_quotes(session, config, symbols, fetch=fetch)
    except asyncio.CancelledError:
        raise
    except Exception as e:
        logger.warning("Finance collection failed | error=%s: %s", type(e).__name__, e)
        return None

    if not quotes:
        logger.warning("Finance unavailable | symbols=%d errors=%d", len(symbols), len(errors))
        return None

    snapshot = build_snapshot(quotes, errors, config.primary_index)
    logger.info(
        "Finance collected | quotes=%d equities=%d crypto=%d errors=%d",
        snapshot.quote_count, len(snapshot.equities), len(snapshot.crypto), len(errors),
    )
    return snapshot
