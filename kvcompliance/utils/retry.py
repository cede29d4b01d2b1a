from __future__ import annotations
import logging
import time
from typing import Any, Callable, TypeVar

from ..errors import ThrottledError

LOGGER = logging.getLogger(__name__)

T = TypeVar("T")


def call_with_retry(
    fn: Callable[..., T],
    *args: Any,
    attempts: int = 3,
    backoff: float = 2.0,
    sleep: Callable[[float], None] = time.sleep,
    label: str = "",
    **kwargs: Any,
) -> T:
    """Call fn, backing off and retrying while it raises ThrottledError.

    The last ThrottledError propagates once `attempts` calls have been throttled.
    """
    attempts = max(1, attempts)
    name = label or getattr(fn, "__name__", "call")
    for attempt in range(1, attempts + 1):
        try:
            return fn(*args, **kwargs)
        except ThrottledError as exc:
            if attempt == attempts:
                LOGGER.warning("Throttled %d time(s) on %s; giving up", attempts, name)
                raise
            delay = exc.retry_after if exc.retry_after is not None else backoff * (2 ** (attempt - 1))
            LOGGER.info("Throttled on %s (attempt %d/%d); retrying in %.1fs", name, attempt, attempts, delay)
            sleep(delay)
    raise AssertionError("unreachable")  # pragma: no cover
