"""Exponential backoff for transient backend failures."""

import asyncio
import logging
import random
import time
from typing import Awaitable, Callable, Optional, TypeVar

from ..exceptions import BackendUnavailableError

logger = logging.getLogger(__name__)

T = TypeVar("T")


def backoff_delay(attempt: int, base_delay: float, max_delay: float) -> float:
    """Delay before retry number ``attempt`` (1-based), with jitter."""
    delay = min(max_delay, base_delay * (2 ** (attempt - 1)))
    return delay * (0.5 + random.random() / 2)


def retry_with_backoff(func: Callable[[], T],
                       attempts: int,
                       base_delay: float,
                       max_delay: float,
                       is_transient: Callable[[BaseException], bool],
                       operation: str = "operation",
                       sleep: Optional[Callable[[float], None]] = None) -> T:
    """
    Call ``func`` until it succeeds, retrying transient failures.

    Non-transient exceptions propagate immediately. When every attempt fails
    with a transient error, BackendUnavailableError is raised from the last one.
    """
    sleep = sleep or time.sleep
    last_error: Optional[BaseException] = None
    for attempt in range(1, attempts + 1):
        try:
            return func()
        except Exception as e:
            if not is_transient(e):
                raise
            last_error = e
            if attempt == attempts:
                break
            delay = backoff_delay(attempt, base_delay, max_delay)
            logger.warning(f"{operation} failed transiently (attempt {attempt}/{attempts}): {e}; "
                           f"retrying in {delay:.2f}s")
            sleep(delay)

    logger.error(f"{operation} failed after {attempts} attempts: {last_error}")
    raise BackendUnavailableError(f"{operation} failed after {attempts} attempts",
                                  details={"cause": str(last_error)}) from last_error


async def retry_with_backoff_async(func: Callable[[], Awaitable[T]],
                                   attempts: int,
                                   base_delay: float,
                                   max_delay: float,
                                   is_transient: Callable[[BaseException], bool],
                                   operation: str = "operation") -> T:
    """Async variant of :func:`retry_with_backoff`."""
    last_error: Optional[BaseException] = None
    for attempt in range(1, attempts + 1):
        try:
            return await func()
        except Exception as e:
            if not is_transient(e):
                raise
            last_error = e
            if attempt == attempts:
                break
            delay = backoff_delay(attempt, base_delay, max_delay)
            logger.warning(f"{operation} failed transiently (attempt {attempt}/{attempts}): {e}; "
                           f"retrying in {delay:.2f}s")
            await asyncio.sleep(delay)

    logger.error(f"{operation} failed after {attempts} attempts: {last_error}")
    raise BackendUnavailableError(f"{operation} failed after {attempts} attempts",
                                  details={"cause": str(last_error)}) from last_error
