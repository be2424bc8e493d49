"""Fixed-delay retry helper for transient failures."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable
from typing import TypeVar

from .errors import VcmTransportError

_LOGGER = logging.getLogger(__name__)

T = TypeVar("T")


async def retry(
    operation: Callable[[], Awaitable[T]],
    *,
    max_attempts: int,
    delay: float,
    retry_on: tuple[type[Exception], ...] = (VcmTransportError,),
    retry_if: Callable[[T], bool] | None = None,
    on_attempt: Callable[[int], None] | None = None,
    description: str = "operation",
) -> T:
    """Run an async operation up to max_attempts times.

    Waits `delay` seconds between attempts, never after the last one.
    Exceptions outside `retry_on` propagate immediately.

    Args:
        operation: Coroutine factory to run (no arguments).
        max_attempts: Maximum number of attempts.
        delay: Fixed delay between attempts (seconds).
        retry_on: Exception types that trigger another attempt.
        retry_if: Optional predicate; a result for which it returns True
            is treated as a failed attempt.
        on_attempt: Called with the 1-based attempt number before each attempt.
        description: Label used in log messages.

    Returns:
        Result of the first successful attempt, or the last result when the
        attempts were exhausted by `retry_if`.

    Raises:
        The last retryable exception if every attempt raised.
    """
    if max_attempts < 1:
        raise ValueError("max_attempts must be at least 1")

    last_error: Exception | None = None
    for attempt in range(1, max_attempts + 1):
        if on_attempt is not None:
            on_attempt(attempt)
        try:
            result = await operation()
        except retry_on as err:
            last_error = err
            _LOGGER.warning(
                "Attempt %d/%d of %s failed: %s",
                attempt,
                max_attempts,
                description,
                err,
            )
        else:
            if retry_if is None or not retry_if(result):
                return result
            last_error = None
            if attempt == max_attempts:
                return result
            _LOGGER.warning(
                "Attempt %d/%d of %s did not succeed",
                attempt,
                max_attempts,
                description,
            )

        if attempt < max_attempts:
            await asyncio.sleep(delay)

    if last_error is not None:
        raise last_error
    raise RuntimeError(f"Retry of {description} ended without a result")
