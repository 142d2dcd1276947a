"""Retry with exponential backoff for outbound calls.

Delay before attempt ``n + 1`` is ``base_delay * 2 ** (n - 1)``, capped at
``max_delay``.

Usage:
    result = await retry_with_backoff(
        lambda: client.get(url),
        retry_on=(httpx.TransportError,),
    )
"""

import asyncio
from typing import Awaitable, Callable, Tuple, Type, TypeVar

from libs.common.logging import get_logger

logger = get_logger(__name__)

T = TypeVar("T")


class RetryExhaustedError(Exception):
    """Raised when every attempt failed."""

    def __init__(self, message: str, last_exception: Exception, attempts: int):
        super().__init__(message)
        self.last_exception = last_exception
        self.attempts = attempts


def backoff_delay(attempt: int, base_delay: float, max_delay: float) -> float:
    return min(base_delay * (2 ** (attempt - 1)), max_delay)


async def retry_with_backoff(
    func: Callable[[], Awaitable[T]],
    *,
    max_retries: int = 3,
    base_delay: float = 1.0,
    max_delay: float = 30.0,
    retry_on: Tuple[Type[BaseException], ...] = (Exception,),
    sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
) -> T:
    """Call ``func`` up to ``max_retries`` times.

    Exceptions outside ``retry_on`` propagate immediately.
    """
    last_exception: Exception = RuntimeError("no attempts made")
    for attempt in range(1, max_retries + 1):
        try:
            return await func()
        except retry_on as exc:
            last_exception = exc
            if attempt >= max_retries:
                break
            delay = backoff_delay(attempt, base_delay, max_delay)
            logger.warning(
                "Attempt %s/%s failed (%s), retrying in %.2fs",
                attempt,
                max_retries,
                exc,
                delay,
            )
            await sleep(delay)

    raise RetryExhaustedError(
        f"Operation failed after {max_retries} attempts",
        last_exception=last_exception,
        attempts=max_retries,
    ) from last_exception
