"""Fixed-interval polling of an external status with a hard deadline.

`poll_until` is a single-shot state machine: it starts pending and ends in
exactly one of `SUCCEEDED`, `FAILED` or `TIMED_OUT`. Only the observation is
retried; a fetch that raises or yields `None` counts as "status unknown".
When a `cancel` event is given it replaces `sleep` between fetches, so setting
it ends the wait immediately.
"""

from __future__ import annotations

import threading
import time
from dataclasses import dataclass
from enum import Enum
from typing import Callable, Generic, Optional, TypeVar

T = TypeVar("T")

# interval, timeout (seconds)
STACK_READY = (15.0, 900.0)
STACK_APPEAR = (15.0, 60.0)
OPERATOR_AVAILABLE = (10.0, 300.0)
STACK_DESTROY = (30.0, 1800.0)


class PollOutcome(str, Enum):
    SUCCEEDED = "succeeded"
    FAILED = "failed"
    TIMED_OUT = "timed_out"


@dataclass(frozen=True)
class PollResult(Generic[T]):
    outcome: PollOutcome
    last_status: Optional[T]
    attempts: int
    elapsed: float
    message: str = ""

    @property
    def succeeded(self) -> bool:
        return self.outcome is PollOutcome.SUCCEEDED


def poll_until(
    fetch: Callable[[], Optional[T]],
    success: Callable[[T], bool],
    failure: Callable[[T], bool],
    interval: float,
    timeout: float,
    *,
    clock: Callable[[], float] = time.monotonic,
    sleep: Callable[[float], None] = time.sleep,
    on_tick: Callable[[Optional[T], int, float], None] | None = None,
    on_error: Callable[[Exception], None] | None = None,
    cancel: threading.Event | None = None,
) -> PollResult[T]:
    started = clock()
    attempts = 0
    last: Optional[T] = None
    while True:
        attempts += 1
        status: Optional[T]
        try:
            status = fetch()
        except Exception as exc:  # noqa: BLE001 - a failed observation is "unknown"
            if on_error is not None:
                on_error(exc)
            status = None
        elapsed = clock() - started
        if status is not None:
            last = status
            if success(status):
                return PollResult(PollOutcome.SUCCEEDED, status, attempts, elapsed)
            if failure(status):
                return PollResult(PollOutcome.FAILED, status, attempts, elapsed, f"terminal status: {status}")
        if on_tick is not None:
            on_tick(status, attempts, elapsed)
        if elapsed >= timeout:
            return PollResult(PollOutcome.TIMED_OUT, last, attempts, elapsed, f"timed out after {int(timeout)}s")
        if cancel is None:
            sleep(interval)
        elif cancel.is_set() or cancel.wait(interval):
            return PollResult(PollOutcome.TIMED_OUT, last, attempts, clock() - started, "cancelled")
