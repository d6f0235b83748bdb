"""Retry utilities with exponential backoff."""

import asyncio
import logging
import random
from typing import Awaitable, Callable, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar('T')


async def exponential_backoff(
    func: Callable[[], Awaitable[T]],
    max_attempts: int = 3,
    initial_delay: float = 1.0,
    max_delay: float = 60.0,
    backoff_factor: float = 2.0,
    jitter: bool = True,
    exceptions: tuple = (Exception,)
) -> T:
    """
    Await a coroutine function with exponential backoff retry logic.

    Args:
        func: Async function to execute
        max_attempts: Maximum number of attempts (1 disables retrying)
        initial_delay: Initial delay between retries (seconds)
        max_delay: Maximum delay between retries (seconds)
        backoff_factor: Multiplier for delay after each failure
        jitter: Whether to add random jitter to delays
        exceptions: Tuple of exceptions to catch and retry on

    Raises:
        The last exception encountered if all attempts fail
    """
    delay = initial_delay

    for attempt in range(max_attempts):
        try:
            return await func()
        except exceptions as e:
            if attempt == max_attempts - 1:
                if max_attempts > 1:
                    logger.error(f"Function failed after {max_attempts} attempts: {e}")
                raise

            if jitter:
                # ±25% of the delay
                jitter_range = delay * 0.25
                actual_delay = delay + random.uniform(-jitter_range, jitter_range)
            else:
                actual_delay = delay

            actual_delay = min(actual_delay, max_delay)

            logger.warning(
                f"Attempt {attempt + 1}/{max_attempts} failed: {e}. "
                f"Retrying in {actual_delay:.2f} seconds..."
            )

            await asyncio.sleep(actual_delay)
            delay *= backoff_factor

    raise ValueError("max_attempts must be at least 1")
