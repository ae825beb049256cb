from __future__ import annotations

import threading
import time
from typing import Optional

from hypothesis import given, settings
from hypothesis import strategies as st

from helpers import FakeClock
from pkoctl.core.poll import PollOutcome, poll_until


def _script(*statuses: Optional[str]):
    calls: list[int] = []
    queue = list(statuses)

    def fetch() -> Optional[str]:
        calls.append(1)
        return queue.pop(0) if len(queue) > 1 else queue[0]

    return fetch, calls


def _poll(fetch, interval: float, timeout: float, clock: FakeClock, **kwargs):
    return poll_until(
        fetch,
        lambda status: status == "succeeded",
        lambda status: status == "failed",
        interval,
        timeout,
        clock=clock,
        sleep=clock.sleep,
        **kwargs,
    )


def test_success_after_three_running_polls() -> None:
    clock = FakeClock()
    fetch, calls = _script("running", "running", "running", "succeeded")
    result = _poll(fetch, 15, 60, clock)
    assert result.outcome is PollOutcome.SUCCEEDED
    assert result.succeeded
    assert len(calls) == 4
    assert result.attempts == 4
    assert clock.sleeps == [15, 15, 15]
    assert 45 <= result.elapsed <= 60


def test_failure_short_circuits_without_sleeping() -> None:
    clock = FakeClock()
    fetch, calls = _script("failed")
    result = _poll(fetch, 30, 1800, clock)
    assert result.outcome is PollOutcome.FAILED
    assert result.last_status == "failed"
    assert len(calls) == 1
    assert clock.sleeps == []


def test_zero_timeout_fetches_exactly_once() -> None:
    clock = FakeClock()
    fetch, calls = _script("running")
    result = _poll(fetch, 15, 0, clock)
    assert result.outcome is PollOutcome.TIMED_OUT
    assert len(calls) == 1
    assert result.last_status == "running"


def test_fetch_errors_are_unknown_and_polling_continues() -> None:
    clock = FakeClock()
    seen: list[Exception] = []
    attempts: list[int] = []

    def fetch() -> Optional[str]:
        attempts.append(1)
        if len(attempts) < 3:
            raise RuntimeError("connection refused")
        return "succeeded"

    result = _poll(fetch, 10, 300, clock, on_error=seen.append)
    assert result.outcome is PollOutcome.SUCCEEDED
    assert len(seen) == 2
    assert clock.sleeps == [10, 10]


def test_timeout_keeps_last_known_status_and_reports_ticks() -> None:
    clock = FakeClock()
    ticks: list[tuple[Optional[str], int, float]] = []
    fetch, _calls = _script("running", None, None)
    result = _poll(fetch, 15, 60, clock, on_tick=lambda s, n, e: ticks.append((s, n, e)))
    assert result.outcome is PollOutcome.TIMED_OUT
    assert result.last_status == "running"
    assert result.message == "timed out after 60s"
    assert [n for _s, n, _e in ticks] == [1, 2, 3, 4, 5]
    assert ticks[0][0] == "running"
    assert ticks[1][0] is None


def test_cancel_token_stops_the_loop() -> None:
    clock = FakeClock()
    cancel = threading.Event()
    cancel.set()
    fetch, calls = _script("running")
    result = _poll(fetch, 15, 900, clock, cancel=cancel)
    assert result.outcome is PollOutcome.TIMED_OUT
    assert result.message == "cancelled"
    assert len(calls) == 1


def test_cancel_interrupts_a_long_interval() -> None:
    cancel = threading.Event()
    fetch, calls = _script("running")
    slept: list[float] = []
    timer = threading.Timer(0.05, cancel.set)
    timer.start()
    started = time.monotonic()
    try:
        result = poll_until(
            fetch,
            lambda status: status == "succeeded",
            lambda status: status == "failed",
            30,
            900,
            sleep=slept.append,
            cancel=cancel,
        )
    finally:
        timer.cancel()
    assert result.message == "cancelled"
    assert len(calls) == 1
    assert slept == []
    assert time.monotonic() - started < 10


@given(
    interval=st.integers(min_value=1, max_value=60),
    timeout=st.integers(min_value=0, max_value=600),
    statuses=st.lists(st.sampled_from(["running", None, "pending"]), min_size=1, max_size=5),
)
@settings(deadline=None)
def test_monitor_terminates_within_timeout_plus_interval(interval: int, timeout: int, statuses: list) -> None:
    clock = FakeClock()
    fetch, calls = _script(*statuses)
    result = _poll(fetch, interval, timeout, clock)
    assert result.outcome is PollOutcome.TIMED_OUT
    assert timeout <= clock.now < timeout + interval
    assert all(step == interval for step in clock.sleeps)
    assert len(calls) == len(clock.sleeps) + 1
