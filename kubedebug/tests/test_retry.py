"""
Tests for optimistic-concurrency retry.

Goal: conflicts are retried at most ``steps`` times, anything else surfaces
immediately, and a stop request ends retrying.
"""

import threading
import time

import pytest
from kubernetes.client.rest import ApiException

from kubedebug.controller.retry import Backoff, is_conflict, retry_on_conflict
from kubedebug.core import ConflictRetryExhausted, ReconcileCancelled

FAST = Backoff(steps=4, duration=0.001, factor=2.0, jitter=0.1)


class _Flaky:
    def __init__(self, conflicts, error_status=409, result="ok"):
        self.conflicts = conflicts
        self.error_status = error_status
        self.result = result
        self.calls = 0

    def __call__(self):
        self.calls += 1
        if self.calls <= self.conflicts:
            raise ApiException(status=self.error_status, reason="Injected")
        return self.result


def test_success_after_conflicts():
    fn = _Flaky(conflicts=3)
    assert retry_on_conflict(fn, backoff=FAST) == "ok"
    assert fn.calls == 4


def test_retry_bound_raises_exhausted():
    fn = _Flaky(conflicts=100)
    with pytest.raises(ConflictRetryExhausted) as exc:
        retry_on_conflict(fn, backoff=FAST)

    assert fn.calls == FAST.steps
    assert isinstance(exc.value.__cause__, ApiException)
    assert exc.value.__cause__.status == 409


def test_non_conflict_error_is_not_retried():
    fn = _Flaky(conflicts=1, error_status=500)
    with pytest.raises(ApiException) as exc:
        retry_on_conflict(fn, backoff=FAST)

    assert exc.value.status == 500
    assert fn.calls == 1


def test_other_exceptions_propagate_unchanged():
    def boom():
        raise KeyError("missing")

    with pytest.raises(KeyError):
        retry_on_conflict(boom, backoff=FAST)


def test_stop_set_before_first_attempt():
    stop = threading.Event()
    stop.set()
    fn = _Flaky(conflicts=0)

    with pytest.raises(ReconcileCancelled):
        retry_on_conflict(fn, backoff=FAST, stop=stop)
    assert fn.calls == 0


def test_stop_during_wait_cancels():
    stop = threading.Event()
    fn = _Flaky(conflicts=100)
    slow = Backoff(steps=5, duration=5.0, factor=1.0, jitter=0.0)

    timer = threading.Timer(0.05, stop.set)
    timer.start()
    started = time.monotonic()
    try:
        with pytest.raises(ReconcileCancelled):
            retry_on_conflict(fn, backoff=slow, stop=stop)
    finally:
        timer.cancel()

    assert fn.calls == 1
    assert time.monotonic() - started < 2.0


def test_deadline_stops_retrying():
    fn = _Flaky(conflicts=100)
    slow = Backoff(steps=5, duration=1.0, factor=1.0, jitter=0.0)

    with pytest.raises(ReconcileCancelled):
        retry_on_conflict(fn, backoff=slow, deadline=time.monotonic() + 0.1)
    assert fn.calls == 1


def test_backoff_delays():
    delays = list(Backoff(steps=5, duration=0.01, factor=2.0, jitter=0.0).delays())
    assert delays == pytest.approx([0.01, 0.02, 0.04, 0.08])

    jittered = list(Backoff(steps=3, duration=1.0, factor=1.0, jitter=0.5).delays())
    assert all(1.0 <= d <= 1.5 for d in jittered)

    with pytest.raises(ValueError):
        Backoff(steps=0)


def test_is_conflict():
    assert is_conflict(ApiException(status=409))
    assert not is_conflict(ApiException(status=404))
    assert not is_conflict(RuntimeError("409"))
