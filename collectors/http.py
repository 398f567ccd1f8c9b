"""Shared HTTP helpers for the upstream collectors.

Every collector talks to a public HTTP API through one pooled aiohttp
session. These helpers add the browser-like User-Agent, the certifi CA
bundle, and the SSL fallback used for servers with broken certificates.
"""

import logging
import ssl
from typing import Any

import aiohttp
import certifi

logger = logging.getLogger(__name__)

# Browser-like User-Agent to avoid being blocked by some servers
USER_AGENT = (
    "Mozilla/5.0 (Macintosh; Intel Mac OS X 10_15_7) "
    "AppleWebKit/537.36 (KHTML, like Gecko) "
    "Chrome/120.0.0.0 Safari/537.36"
)


class UpstreamError(Exception):
    """An upstream API answered with a non-200 status or an unusable body."""

    def __init__(self, message: str, status: int | None = None):
        super().__init__(message)
        self.status = status


def create_ssl_context(verify: bool = True) -> ssl.SSLContext:
    """Create SSL context with optional certificate verification.

    Args:
        verify: If True, verify SSL certificates using certifi bundle.
                If False, disable verification (for problematic servers).

    Returns:
        Configured SSL context
    """
    if verify:
        return ssl.create_default_context(cafile=certifi.where())
    ctx = ssl.create_default_context()
    ctx.check_hostname = False
    ctx.verify_mode = ssl.CERT_NONE
    return ctx


async def _get(
    session: aiohttp.ClientSession,
    url: str,
    *,
    params: dict[str, Any] | None,
    headers: dict[str, str] | None,
    timeout: int,
    as_json: bool,
    verify_ssl: bool = True,
) -> Any:
    request_headers = {"User-Agent": USER_AGENT, **(headers or {})}
    try:
        async with session.get(
            url,
            params=params,
            headers=request_headers,
            timeout=aiohttp.ClientTimeout(total=timeout),
            ssl=create_ssl_context(verify_ssl),
        ) as resp:
            if resp.status != 200:
                raise UpstreamError(f"HTTP {resp.status} from {url}", status=resp.status)
            if as_json:
                return await resp.json(content_type=None)
            return await resp.text()
    except aiohttp.ClientSSLError:
        if not verify_ssl:
            raise
        logger.debug("SSL error, retrying without verification: %s", url)
        return await _get(
            session, url, params=params, headers=headers, timeout=timeout,
            as_json=as_json, verify_ssl=False,
        )


async def get_json(
    session: aiohttp.ClientSession,
    url: str,
    *,
    params: dict[str, Any] | None = None,
    headers: dict[str, str] | None = None,
    timeout: int = 15,
) -> Any:
    """GET a URL and decode the JSON body.

    Raises:
        UpstreamError: On a non-200 response
        aiohttp.ClientError, asyncio.TimeoutError, ValueError: On transport
            or decoding faults (collectors catch these)
    """
    return await _get(session, url, params=params, headers=headers, timeout=timeout, as_json=True)


async def get_text(
    session: aiohttp.ClientSession,
    url: str,
    *,
    params: dict[str, Any] | None = None,
    headers: dict[str, str] | None = None,
    timeout: int = 15,
) -> str:
    """GET a URL and return the body as text (see get_json for errors)."""
    return await _get(session, url, params=params, headers=headers, timeout=timeout, as_json=False)
