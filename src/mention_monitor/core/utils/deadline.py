"""
Purpose: Wall-clock bound on a blocking call, independent of socket-level timeouts.
Constraints: Utility only; an overrunning call is abandoned on a daemon thread, not interrupted.
"""

# Imports
import threading
from typing import Any, Callable, Dict, TypeVar

T = TypeVar("T")


class DeadlineExceeded(TimeoutError):
    pass


# Public API
def call_with_deadline(func: Callable[[], T], timeout: float, name: str = "call") -> T:
    """Run func on its own thread and wait at most `timeout` seconds for it.

    Each call gets a fresh worker, so a hung call never delays the next one.
    Exceptions raised by func are re-raised in the caller.
    """
    outcome: Dict[str, Any] = {}

    def target() -> None:
        try:
            outcome["value"] = func()
        except BaseException as exc:  # handed back to the caller below
            outcome["error"] = exc

    worker = threading.Thread(target=target, name=f"deadline-{name}", daemon=True)
    worker.start()
    worker.join(timeout)
    if worker.is_alive():
        raise DeadlineExceeded(f"{name} did not finish within {timeout:g} seconds")
    if "error" in outcome:
        raise outcome["error"]
    return outcome["value"]
