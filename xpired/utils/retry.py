"""
Retry utility for transient failures of the durable task store.

Retry policy:
- Exponential backoff with jitter
- Only retries the exception types passed in ``retry_on``
- Preserves original exception on final failure
- No logging inside utility (caller handles logging)
"""

import random
import time
from typing import Any, Callable, Tuple, Type


# Default retry configuration
DEFAULT_RETRIES = 2
DEFAULT_BASE_DELAY = 0.2
DEFAULT_MAX_DELAY = 2.0


def backoff_delay(attempt: int, base_delay: float, max_delay: float, jitter: float = 0.0) -> float:
    """Delay before retry number ``attempt`` (1-based), capped at ``max_delay``."""
    delay = min(base_delay * (2 ** max(attempt - 1, 0)), max_delay)
    if jitter:
        delay += delay * jitter * (random.random() * 2 - 1)
    return max(0.0, delay)


def retry_sync(
    fn: Callable[[], Any],
    *,
    retry_on: Tuple[Type[BaseException], ...],
    retries: int = DEFAULT_RETRIES,
    base_delay: float = DEFAULT_BASE_DELAY,
    max_delay: float = DEFAULT_MAX_DELAY,
    sleep: Callable[[float], None] = time.sleep,
) -> Any:
    """
    Call ``fn`` and retry it on ``retry_on`` exceptions with exponential backoff.

    Args:
        fn: Zero-argument callable
        retry_on: Exception types considered transient
        retries: Number of retry attempts (total attempts: retries + 1)
        base_delay: Base delay in seconds
        max_delay: Maximum delay in seconds
        sleep: Injected for tests

    Raises:
        The last exception once retries are exhausted; anything not in
        ``retry_on`` immediately.
    """
    for attempt in range(retries + 1):
        try:
            return fn()
        except retry_on:
            if attempt >= retries:
                raise
            sleep(backoff_delay(attempt + 1, base_delay, max_delay, jitter=0.2))
    raise RuntimeError("retry_sync: unexpected end of retry loop")
