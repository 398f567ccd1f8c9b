"""Logging infrastructure for the digest service.

setup_logging:
    Console plus rotating file handlers, text or JSON output.

set_run_context / clear_context:
    Context variables stamped onto every log line of a generation pass.

setup_tracing / trace_operation:
    Optional Logfire spans and PydanticAI instrumentation.

Example:
    >>> from observability import setup_logging, set_run_context
    >>> setup_logging(config)
    >>> set_run_context("a1b2c3d4", trigger="checkpoint")
"""

from observability.logging import clear_context, set_run_context, setup_logging
from observability.tracing import setup_tracing, trace_operation

__all__ = [
    "clear_context",
    "set_run_context",
    "setup_logging",
    "setup_tracing",
    "trace_operation",
]
