"""Bounded retry for transient fetch failures."""

import asyncio
import logging
from typing import Awaitable, Callable, TypeVar

from config.exceptions import FetchError

logger = logging.getLogger(__name__)

T = TypeVar("T")


async def retry_fetch(
    operation: Callable[[], Awaitable[T]],
    attempts: int,
    delay: float,
    description: str = "fetch",
) -> T:
    """Await ``operation`` up to ``attempts`` times.

    Only ``FetchError`` (which covers markup, challenge and browser timeout
    failures) is retried; anything else propagates on the first occurrence.

    Raises:
        FetchError: The error of the last attempt.
    """
    last_error: FetchError | None = None
    for attempt in range(1, attempts + 1):
        try:
            return await operation()
        except FetchError as e:
            last_error = e
            logger.warning("%s failed (attempt %d/%d): %s", description, attempt, attempts, e)
            if attempt < attempts and delay > 0:
                await asyncio.sleep(delay)
    raise last_error
