"""Composable retry policy shared by the completion client and collectors.

A RetryPolicy describes how many attempts to make, how long to wait between
them, and which candidate to hand each attempt. Candidates let one policy
express both "retry the same model with backoff" and "fall through a list
of fallback models" without separate code paths.

Attempt Rules:
    - Attempt i (0-based) receives candidates[min(i, len(candidates) - 1)]
    - The wait after failed attempt i is delays[min(i, len(delays) - 1)]
    - No wait follows the final attempt
    - An exception is retried only if retry_on(exc) is True; otherwise it
      ends the loop immediately
    - A result rejected by accept() counts as a failed attempt

Example:
    >>> policy = RetryPolicy(max_attempts=3, delays=(2.0, 4.0, 8.0))
    >>> text = await execute_with_policy(call_model, policy, label="completion")
"""

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Sequence

logger = logging.getLogger(__name__)

Sleep = Callable[[float], Awaitable[None]]


class RetryExhausted(Exception):
    """Raised when every attempt of a policy has failed.

    Attributes:
        attempts: Number of attempts actually made
        last_error: Exception from the final attempt (None if it was rejected)
    """

    def __init__(self, message: str, attempts: int, last_error: BaseException | None = None):
        super().__init__(message)
        self.attempts = attempts
        self.last_error = last_error


class RejectedResult(Exception):
    """Marks a result refused by a policy's accept() check."""


def _always(_: BaseException) -> bool:
    return True


@dataclass(frozen=True)
class RetryPolicy:
    """How many attempts to make and what each attempt is given.

    Attributes:
        max_attempts: Total attempts including the first
        delays: Seconds to wait after each failed attempt (last value reused)
        candidates: Value passed to each attempt (last value reused); empty
            means attempts receive None
        retry_on: Predicate deciding whether an exception is retryable
    """

    max_attempts: int = 3
    delays: tuple[float, ...] = (0.0,)
    candidates: tuple[Any, ...] = ()
    retry_on: Callable[[BaseException], bool] = field(default=_always)

    def candidate_for(self, attempt: int) -> Any:
        if not self.candidates:
            return None
        return self.candidates[min(attempt, len(self.candidates) - 1)]

    def delay_after(self, attempt: int) -> float:
        if not self.delays:
            return 0.0
        return self.delays[min(attempt, len(self.delays) - 1)]


def fallback_chain(primary: str, fallbacks: Sequence[str]) -> tuple[str, ...]:
    """Ordered, de-duplicated candidate list with the primary first."""
    return tuple(dict.fromkeys([primary, *fallbacks]))


async def execute_with_policy(
    operation: Callable[[Any], Awaitable[Any]],
    policy: RetryPolicy,
    accept: Callable[[Any], bool] | None = None,
    sleep: Sleep = asyncio.sleep,
    label: str = "operation",
) -> Any:
    """Run an async operation under a retry policy.

    Args:
        operation: Coroutine function called with the attempt's candidate
        policy: Attempt/delay/candidate rules
        accept: Optional result check; rejected results are retried
        sleep: Injectable sleep (tests pass a recorder)
        label: Name used in log messages

    Returns:
        The first accepted result

    Raises:
        RetryExhausted: When all attempts fail or a non-retryable error occurs
        asyncio.CancelledError: Always propagated
    """
    last_error: BaseException | None = None
    attempts = 0

    for attempt in range(max(policy.max_attempts, 1)):
        candidate = policy.candidate_for(attempt)
        attempts = attempt + 1
        try:
            result = await operation(candidate)
            if accept is not None and not accept(result):
                raise RejectedResult(f"{label} returned an unusable result")
            if attempt > 0:
                logger.info("Retry succeeded | op=%s attempt=%d candidate=%s", label, attempts, candidate)
            return result
        except asyncio.CancelledError:
            raise
        except Exception as e:
            last_error = e
            retryable = isinstance(e, RejectedResult) or policy.retry_on(e)
            logger.warning(
                "Attempt failed | op=%s attempt=%d/%d candidate=%s retryable=%s error=%s: %s",
                label, attempts, policy.max_attempts, candidate, retryable, type(e).__name__, e,
            )
            if not retryable:
                break

        if attempt < policy.max_attempts - 1:
            delay = policy.delay_after(attempt)
            if delay > 0:
                await sleep(delay)

    raise RetryExhausted(
        f"{label} failed after {attempts} attempt(s): {last_error}",
        attempts=attempts,
        last_error=last_error,
    )
