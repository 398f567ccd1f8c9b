"""Tracing using Logfire/OpenTelemetry.

Optional spans around generation passes, plus automatic instrumentation of
the PydanticAI agent calls made by the completion client. When tracing is
disabled every helper here is a no-op, so callers never branch on it.

Enable via configuration:
    ENABLE_LOGFIRE=true
    LOGFIRE_TOKEN=your-token  # Optional, spans are only exported with a token

Usage:
    >>> from observability.tracing import setup_tracing, trace_operation
    >>> setup_tracing(enabled=True, service_name="daily-digest")
    >>> with trace_operation("generation", {"region": "en-US"}) as attrs:
    ...     attrs["outcome"] = "saved"
"""

import logging
import time
from contextlib import contextmanager
from dataclasses import dataclass, field
from typing import Any, Generator

import logfire

logger = logging.getLogger(__name__)

SERVICE_NAME = "daily-digest"


@dataclass
class TracingContext:
    """Process-wide tracing state."""
    enabled: bool = False
    service_name: str = SERVICE_NAME
    token: str = ""
    _logfire_configured: bool = field(default=False, init=False)


_context = TracingContext()


def setup_tracing(
    enabled: bool = False,
    service_name: str = SERVICE_NAME,
    token: str = "",
) -> TracingContext:
    """Set up tracing with Logfire.

    Args:
        enabled: Whether to enable tracing
        service_name: Name of the service for tracing
        token: Logfire authentication token

    Returns:
        TracingContext for the process
    """
    _context.enabled = enabled
    _context.service_name = service_name
    _context.token = token
    _context._logfire_configured = False

    if not enabled:
        logger.debug("Tracing disabled")
        return _context

    try:
        logfire.configure(
            service_name=service_name,
            token=token or None,
            send_to_logfire="if-token-present",
            console=False,
        )
        logfire.instrument_pydantic_ai()
        _context._logfire_configured = True
        logger.info("Logfire tracing enabled | service=%s", service_name)
    except Exception as e:
        logger.error("Failed to configure Logfire | error=%s", e, exc_info=True)
        _context.enabled = False

    return _context


@contextmanager
def trace_operation(
    name: str,
    attributes: dict[str, Any] | None = None,
) -> Generator[dict[str, Any], None, None]:
    """Span around an operation.

    Args:
        name: Span name
        attributes: Attributes attached when the span opens

    Yields:
        Dict whose entries are attached to the span when it closes
    """
    start = time.monotonic()
    result_attrs: dict[str, Any] = {}
    try:
        if _context.enabled and _context._logfire_configured:
            with logfire.span(name, **(attributes or {})) as span:
                yield result_attrs
                for key, value in result_attrs.items():
                    span.set_attribute(key, value)
        else:
            yield result_attrs
    finally:
        logger.debug("Operation timed | name=%s duration=%.2fs", name, time.monotonic() - start)
