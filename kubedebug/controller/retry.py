"""
Optimistic-concurrency retry.

Objects are written back with the resourceVersion they were read at; the API
server answers 409 Conflict when someone else wrote in between. The caller's
function must re-read the object on every attempt so each retry works on the
latest state.
"""

import random
import threading
import time
from dataclasses import dataclass
from typing import Callable, Iterator, Optional, TypeVar

from kubernetes.client.rest import ApiException

from ..core.errors import ConflictRetryExhausted, ReconcileCancelled
from .metrics import track_conflict

T = TypeVar("T")


@dataclass(frozen=True)
class Backoff:
    """Attempt budget and the delays between attempts."""

    steps: int = 5
    duration: float = 0.01
    factor: float = 2.0
    jitter: float = 0.1

    def __post_init__(self) -> None:
        if self.steps < 1:
            raise ValueError("backoff needs at least one step")

    def delays(self) -> Iterator[float]:
        """Delay before each retry: ``steps - 1`` values, growing by ``factor``."""
        delay = self.duration
        for _ in range(self.steps - 1):
            yield delay + random.uniform(0, delay * self.jitter)
            delay *= self.factor


DEFAULT_BACKOFF = Backoff()


def is_conflict(error: BaseException) -> bool:
    return isinstance(error, ApiException) and error.status == 409


def retry_on_conflict(
    fn: Callable[[], T],
    backoff: Backoff = DEFAULT_BACKOFF,
    stop: Optional[threading.Event] = None,
    deadline: Optional[float] = None,
) -> T:
    """
    Call ``fn`` until it stops raising 409 Conflict or the budget runs out.

    Args:
        fn: Read-modify-write function; must re-read the object itself
        backoff: Attempt budget and delay schedule
        stop: Abandon retrying once set
        deadline: ``time.monotonic()`` value after which no retry is started

    Returns:
        Whatever ``fn`` returns on its first non-conflicting call

    Raises:
        ConflictRetryExhausted: Every attempt conflicted
        ReconcileCancelled: ``stop`` was set or ``deadline`` passed between attempts
        Exception: Anything ``fn`` raises other than a conflict, unchanged
    """
    delays = backoff.delays()
    last_conflict: Optional[ApiException] = None

    for attempt in range(backoff.steps):
        if stop is not None and stop.is_set():
            raise ReconcileCancelled("stop requested before write") from last_conflict

        try:
            return fn()
        except ApiException as e:
            if not is_conflict(e):
                raise
            last_conflict = e
            track_conflict()

        if attempt == backoff.steps - 1:
            break

        delay = next(delays)
        if deadline is not None and time.monotonic() + delay > deadline:
            raise ReconcileCancelled("deadline reached while retrying conflict") from last_conflict
        if stop is not None:
            if stop.wait(delay):
                raise ReconcileCancelled("stop requested while retrying conflict") from last_conflict
        else:
            time.sleep(delay)

    raise ConflictRetryExhausted(
        f"write still conflicting after {backoff.steps} attempts"
    ) from last_conflict
