"""
Purpose: Retry helper with exponential backoff and jitter.
Constraints: Utility only; callers decide which exceptions are retriable.
"""

# Imports
import random
import time
from typing import Callable, Iterable, Optional, TypeVar

T = TypeVar("T")


def backoff_delay(attempt: int, base_delay: float, jitter: float = 0.0, max_delay: Optional[float] = None) -> float:
    """Delay before retry number `attempt` (0-based): base * 2**attempt + uniform(0, jitter)."""
    delay = base_delay * (2 ** attempt)
    if max_delay is not None:
        delay = min(max_delay, delay)
    if jitter:
        delay += random.uniform(0, jitter)
    return delay


# Public API
def retry(
    func: Callable[[], T],
    *,
    attempts: int = 4,
    base_delay: float = 1.0,
    max_delay: Optional[float] = None,
    jitter: float = 1.0,
    exceptions: Iterable[type] = (Exception,),
    should_retry: Optional[Callable[[BaseException], bool]] = None,
    on_retry: Optional[Callable[[int, BaseException, float], None]] = None,
    sleep: Callable[[float], None] = time.sleep,
) -> T:
    """Call func up to `attempts` times, sleeping with exponential backoff between failures.

    Exceptions rejected by `should_retry` are re-raised at once without sleeping.
    After the last attempt the final exception propagates unchanged.
    """
    if attempts < 1:
        raise ValueError("attempts must be >= 1")
    last_exc: Optional[BaseException] = None
    for attempt in range(attempts):
        try:
            return func()
        except tuple(exceptions) as exc:  # type: ignore[misc]
            last_exc = exc
            if should_retry is not None and not should_retry(exc):
                raise
            if attempt + 1 >= attempts:
                raise
            delay = backoff_delay(attempt, base_delay, jitter, max_delay)
            if on_retry:
                on_retry(attempt + 1, exc, delay)
            sleep(delay)
    raise last_exc if last_exc else RuntimeError("retry: failed without exception")
