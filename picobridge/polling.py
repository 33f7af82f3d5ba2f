"""
Fixed-delay bounded polling.

Both the capability settle check and the bootstrap completion check run on
`poll_until`. There is no backoff and no jitter; the loop is bounded by an
attempt counter and can be cut short with a `threading.Event`.
"""

from __future__ import annotations

import threading
import time
from typing import Any, Callable, Optional, TypeVar

import structlog

from .errors import BridgeError, PollCancelledError, PollTimeoutError
from .resolver import resolve_root

log = structlog.get_logger(__name__)

T = TypeVar("T")


def _waiter(cancel: Optional[threading.Event], sleep: Optional[Callable[[float], Any]]) -> Callable[[float], bool]:
    """A wait function returning True once cancellation was requested."""
    if sleep is None:
        if cancel is not None:
            return cancel.wait

        def _sleep(seconds: float) -> bool:
            time.sleep(seconds)
            return False

        return _sleep

    def _injected(seconds: float) -> bool:
        sleep(seconds)
        return cancel is not None and cancel.is_set()

    return _injected


def poll_until(
    attempt: Callable[[], T],
    *,
    until: Callable[[T], bool] = bool,
    interval_s: float = 1.0,
    max_attempts: int = 30,
    cancel: Optional[threading.Event] = None,
    sleep: Optional[Callable[[float], Any]] = None,
    describe: str = "condition",
) -> T:
    """
    Call `attempt` until `until(result)` holds, at most `max_attempts` times.

    Waits `interval_s` between attempts only, so success on attempt N costs
    N - 1 waits. Raises PollTimeoutError once the budget is spent and
    PollCancelledError if `cancel` is set before an attempt or during a wait.
    Without `sleep` the wait is `cancel.wait` (or `time.sleep`); an injected
    `sleep` is always used and `cancel` is checked after it returns.
    """
    if max_attempts < 1:
        raise ValueError("max_attempts must be >= 1")
    wait = _waiter(cancel, sleep)

    for n in range(1, max_attempts + 1):
        if cancel is not None and cancel.is_set():
            raise PollCancelledError(f"polling for {describe} cancelled", attempts=n - 1)
        value = attempt()
        if until(value):
            log.debug("poll.satisfied", what=describe, attempt=n)
            return value
        log.debug("poll.pending", what=describe, attempt=n, max_attempts=max_attempts)
        if n == max_attempts:
            break
        if wait(interval_s):
            raise PollCancelledError(f"polling for {describe} cancelled", attempts=n)

    raise PollTimeoutError(
        f"{describe} not reached after {max_attempts} attempts",
        attempts=max_attempts,
    )


def wait_for_root(
    transport,
    *,
    interval_s: float = 0.5,
    max_attempts: int = 10,
    cancel: Optional[threading.Event] = None,
    sleep: Optional[Callable[[float], Any]] = None,
) -> str:
    """Wait for a starting engine to answer the root context lookup."""

    def _try() -> Optional[str]:
        try:
            return resolve_root(transport)
        except BridgeError as exc:
            log.debug("engine.not_ready", error=str(exc))
            return None

    return poll_until(
        _try,
        interval_s=interval_s,
        max_attempts=max_attempts,
        cancel=cancel,
        sleep=sleep,
        describe="engine root context",
    )
