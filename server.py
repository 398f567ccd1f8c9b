"""HTTP API for the daily digest.

Routes:
    GET  /health                           liveness probe
    GET  /api/summary/daily                one archived digest (date, language, country)
    GET  /api/summary/history              archive listing, newest first
    POST /api/summary/save                 store a digest supplied by the caller
    POST /api/summary/refresh              manual generation (once per client per day)
    POST /api/summary/trigger-automated    admin: start a scheduled-style pass
    GET  /api/summary/automation-status    admin: in-memory generation state

Admin routes accept only callers whose address is on the ADMIN_IPS list.
IPv4-mapped IPv6 addresses ('::ffff:127.0.0.1') are compared as plain IPv4.
When TRUST_PROXY is set, the first X-Forwarded-For entry is the caller.
"""

import functools
import logging
from datetime import datetime, timezone
from typing import Awaitable, Callable

from aiohttp import web

from config import Config
from generator import Outcome, SummaryGenerator
from models.summary import DEFAULT_COUNTRY, DEFAULT_LANGUAGE, Region, SummaryRecord
from store import SummaryStore, parse_date_key

logger = logging.getLogger(__name__)

CONFIG_KEY = web.AppKey("config", Config)
GENERATOR_KEY = web.AppKey("generator", SummaryGenerator)
STORE_KEY = web.AppKey("store", SummaryStore)

Handler = Callable[[web.Request], Awaitable[web.StreamResponse]]

_MAPPED_PREFIX = "::ffff:"

# HTTP status reported for each manual refresh outcome
_OUTCOME_STATUS = {
    Outcome.SAVED: 200,
    Outcome.QUOTA_EXCEEDED: 429,
    Outcome.BUSY: 409,
    Outcome.TIMED_OUT: 504,
    Outcome.INSUFFICIENT_DATA: 503,
    Outcome.COMPLETION_FAILED: 502,
    Outcome.SAVE_FAILED: 500,
    Outcome.ALREADY_GENERATED: 409,
}

# Request field -> SummaryRecord field for the save endpoint
_SECTION_FIELDS = {
    "news": "news",
    "trends": "trends",
    "finance": "market_overview",
    "overall": "forward_looking",
}


def normalize_ip(address: str | None) -> str:
    """Strip the IPv4-mapped IPv6 prefix and surrounding whitespace."""
    address = (address or "").strip()
    if address.lower().startswith(_MAPPED_PREFIX):
        return address[len(_MAPPED_PREFIX):]
    return address


def client_ip(request: web.Request, trust_proxy: bool) -> str:
    """Caller address, honoring X-Forwarded-For when the proxy is trusted."""
    if trust_proxy:
        forwarded = request.headers.get("X-Forwarded-For", "")
        if forwarded:
            return normalize_ip(forwarded.split(",")[0])
    return normalize_ip(request.remote)


def is_admin(address: str, admin_ips: list[str]) -> bool:
    return normalize_ip(address) in {normalize_ip(ip) for ip in admin_ips}


def _error(status: int, message: str) -> web.Response:
    return web.json_response({"success": False, "message": message}, status=status)


def admin_only(handler: Handler) -> Handler:
    """Reject callers that are not on the admin allow-list with 403."""

    @functools.wraps(handler)
    async def wrapper(request: web.Request) -> web.StreamResponse:
        config = request.app[CONFIG_KEY]
        address = client_ip(request, config.trust_proxy)
        if not is_admin(address, config.admin_ips):
            logger.warning("Admin route refused | path=%s client=%s", request.path, address)
            return _error(403, "Forbidden: admin access only")
        return await handler(request)

    return wrapper


def _record_payload(record: SummaryRecord) -> dict:
    payload = record.to_archive()
    payload["date"] = record.date.isoformat()
    return payload


def _request_region(values, default: Region) -> Region:
    """Language/country from a body or query, country upper-cased like the CLI.

    Raises:
        ValueError: If either value is present but not a string
    """
    fields = {}
    for name in ("language", "country"):
        value = values.get(name)
        if value is not None and not isinstance(value, str):
            raise ValueError(f"Field '{name}' must be a string")
        fields[name] = (value or "").strip() or getattr(default, name)
    return Region(fields["language"], fields["country"].upper())


async def health(request: web.Request) -> web.Response:
    """Health check endpoint."""
    generator = request.app[GENERATOR_KEY]
    return web.json_response({
        "status": "ok",
        "service": "daily-digest",
        "generating": generator.is_generating,
        "timestamp": datetime.now(timezone.utc).isoformat(),
    })


async def get_daily(request: web.Request) -> web.Response:
    """Return the digest for ?date=YYYY-MM-DD&language=&country= (today by default)."""
    generator = request.app[GENERATOR_KEY]
    store = request.app[STORE_KEY]

    date_param = request.query.get("date")
    day = parse_date_key(date_param) if date_param else generator.today()
    if day is None:
        return _error(400, f"Invalid date '{date_param}', expected YYYY-MM-DD")
    region = _request_region(request.query, Region(DEFAULT_LANGUAGE, DEFAULT_COUNTRY))
    language, country = region.language, region.country

    record = await store.load(day, language, country)
    base = {"date": day.isoformat(), "language": language, "country": country}
    if record is None:
        return web.json_response({
            "success": False,
            "message": f"No summary found for {day.isoformat()} ({country}, {language})",
            **base,
        })
    return web.json_response({"success": True, "summary": _record_payload(record), **base})


async def get_history(request: web.Request) -> web.Response:
    """Return every archived digest as listing rows, newest first."""
    entries = await request.app[STORE_KEY].list_all()
    return web.json_response({
        "success": True,
        "summaries": [entry.model_dump(mode="json") for entry in entries],
    })


async def save_summary(request: web.Request) -> web.Response:
    """Store a digest supplied in the request body.

    Body: {date, language?, country?, news?, trends?, finance?, overall?}
    A date and at least one non-empty section are required.
    """
    generator = request.app[GENERATOR_KEY]
    store = request.app[STORE_KEY]

    try:
        body = await request.json()
    except ValueError:
        return _error(400, "Request body must be JSON")
    if not isinstance(body, dict):
        return _error(400, "Request body must be a JSON object")

    date_value = body.get("date")
    if not date_value:
        return _error(400, "Date is required")
    day = parse_date_key(str(date_value))
    if day is None:
        return _error(400, f"Invalid date '{date_value}', expected YYYY-MM-DD")

    sections = {}
    for key, field in _SECTION_FIELDS.items():
        value = body.get(key)
        if value is None:
            continue
        if not isinstance(value, str):
            return _error(400, f"Field '{key}' must be a string")
        sections[field] = value
    if not any(sections.values()):
        return _error(400, "No summary data provided")
    try:
        region = _request_region(body, Region(DEFAULT_LANGUAGE, DEFAULT_COUNTRY))
    except ValueError as e:
        return _error(400, str(e))

    record = SummaryRecord(
        date=day,
        language=region.language,
        country=region.country,
        generated_at=generator.now(),
        automated=False,
        **sections,
    )
    if not await store.save(record):
        return _error(500, "Failed to save daily summary")
    return web.json_response({
        "success": True,
        "message": f"Daily summary saved successfully for {record.country} ({record.language})",
        "summary": _record_payload(record),
    })


async def refresh_summary(request: web.Request) -> web.Response:
    """Manual generation for the calling client; optional body {language, country}."""
    config = request.app[CONFIG_KEY]
    generator = request.app[GENERATOR_KEY]

    body = {}
    if request.can_read_body:
        try:
            body = await request.json()
        except ValueError:
            return _error(400, "Request body must be JSON")
        if not isinstance(body, dict):
            return _error(400, "Request body must be a JSON object")

    try:
        region = _request_region(body, Region(config.language, config.country))
    except ValueError as e:
        return _error(400, str(e))
    client = client_ip(request, config.trust_proxy)
    result = await generator.refresh(client, region)

    payload = {
        "success": result.ok,
        "outcome": result.outcome.value,
        "message": result.message,
    }
    if result.ok and result.record is not None:
        payload["summary"] = _record_payload(result.record)
    return web.json_response(payload, status=_OUTCOME_STATUS[result.outcome])


@admin_only
async def trigger_automated(request: web.Request) -> web.Response:
    """Start a scheduled-style pass in the background."""
    generator = request.app[GENERATOR_KEY]
    if not generator.trigger_manual_generation():
        return web.json_response({"success": False, "message": "Automated generation already in progress"})
    logger.info("Automated generation triggered by admin")
    return web.json_response({"success": True, "message": "Automated summary generation triggered"})


@admin_only
async def automation_status(request: web.Request) -> web.Response:
    """Report in-memory generation state."""
    return web.json_response({"success": True, **request.app[GENERATOR_KEY].get_status()})


def create_app(config: Config, generator: SummaryGenerator, store: SummaryStore) -> web.Application:
    """Build the aiohttp application with all digest routes registered."""
    app = web.Application()
    app[CONFIG_KEY] = config
    app[GENERATOR_KEY] = generator
    app[STORE_KEY] = store

    app.router.add_get("/health", health)
    app.router.add_get("/api/summary/daily", get_daily)
    app.router.add_get("/api/summary/history", get_history)
    app.router.add_post("/api/summary/save", save_summary)
    app.router.add_post("/api/summary/refresh", refresh_summary)
    app.router.add_post("/api/summary/trigger-automated", trigger_automated)
    app.router.add_get("/api/summary/automation-status", automation_status)
    return app
