"""Bounded polling helper used for service and cluster convergence waits."""

import time
from typing import Any, Callable, Tuple

from dockerupgrader.errors import UpgraderError
from dockerupgrader.models import PollOutcome, PollResult


def poll(
    check: Callable[[], Tuple[bool, Any]],
    interval: float,
    max_attempts: int,
    sleep: Callable[[float], None] = time.sleep,
) -> PollResult:
    """Call ``check`` until it reports done or ``max_attempts`` is exhausted.

    ``check`` returns ``(done, value)``. An :class:`UpgraderError` raised by the
    check ends polling with ``PollOutcome.ERROR``; the last value seen is kept on
    timeout so callers can report what was still pending.
    """
    attempts = max(1, max_attempts)
    value = None

    for attempt in range(1, attempts + 1):
        try:
            done, value = check()
        except UpgraderError as exc:
            return PollResult(PollOutcome.ERROR, value=value, attempts=attempt, error=str(exc))

        if done:
            return PollResult(PollOutcome.CONVERGED, value=value, attempts=attempt)

        if attempt < attempts:
            sleep(interval)

    return PollResult(PollOutcome.TIMED_OUT, value=value, attempts=attempts)
