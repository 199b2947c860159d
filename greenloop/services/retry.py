"""
greenloop.services.retry — Caller-Side Retry for Lock Timeouts
===============================================================

The engine raises :class:`~greenloop.errors.ConcurrencyError` and never
retries on its own.  Callers that want to retry wrap the call here:
exponential backoff with jitter, bounded attempts.
"""

from __future__ import annotations

import logging
import random
import time
from collections.abc import Callable
from typing import ParamSpec, TypeVar

from greenloop.errors import ConcurrencyError

logger = logging.getLogger(__name__)

P = ParamSpec("P")
T = TypeVar("T")

DEFAULT_ATTEMPTS = 3
DEFAULT_BASE_DELAY = 0.1
DEFAULT_MAX_DELAY = 2.0


def backoff_delay(attempt: int, base_delay: float, max_delay: float) -> float:
    """Delay before retry number *attempt* (1-based), jitter included."""
    backoff = min(base_delay * (2 ** (attempt - 1)), max_delay)
    return backoff + random.uniform(0, backoff * 0.5)


def retry_on_concurrency(
    func: Callable[P, T],
    *args: P.args,
    attempts: int = DEFAULT_ATTEMPTS,
    base_delay: float = DEFAULT_BASE_DELAY,
    max_delay: float = DEFAULT_MAX_DELAY,
    sleep: Callable[[float], None] = time.sleep,
    **kwargs: P.kwargs,
) -> T:
    """Call ``func(*args, **kwargs)``, retrying on :class:`ConcurrencyError`.

    Any other exception propagates immediately.  After *attempts* failures
    the last ``ConcurrencyError`` is re-raised.
    """
    if attempts < 1:
        raise ValueError("attempts must be >= 1")

    for attempt in range(1, attempts + 1):
        try:
            return func(*args, **kwargs)
        except ConcurrencyError:
            if attempt == attempts:
                logger.error(
                    "Giving up on %s after %d attempts",
                    getattr(func, "__name__", func), attempts,
                )
                raise
            wait = backoff_delay(attempt, base_delay, max_delay)
            logger.warning(
                "Lock timeout in %s (attempt %d/%d). Retrying in %.2fs",
                getattr(func, "__name__", func), attempt, attempts, wait,
            )
            sleep(wait)
    raise AssertionError("unreachable")
