"""Fixed-interval polling primitives."""

import logging
import time
from dataclasses import dataclass
from typing import Callable

logger = logging.getLogger(__name__)

Probe = Callable[[], bool]
Sleep = Callable[[float], None]


@dataclass
class PollResult:
    """Outcome of a poll: whether the probe succeeded and how many times it ran."""

    succeeded: bool
    attempts: int

    @property
    def timed_out(self) -> bool:
        return not self.succeeded


def poll(probe: Probe, max_attempts: int, interval: float, sleep: Sleep = time.sleep) -> PollResult:
    """
    Run ``probe`` until it returns True or ``max_attempts`` runs are used up.

    The probe runs immediately, then once more after each ``interval`` sleep.
    No backoff: the spacing is fixed. A failing run therefore sleeps
    ``max_attempts - 1`` times.
    """
    if max_attempts < 1:
        raise ValueError("max_attempts must be at least 1")

    attempts = 1
    while not probe():
        if attempts >= max_attempts:
            logger.debug(f"Probe failed {attempts} times, giving up")
            return PollResult(succeeded=False, attempts=attempts)
        sleep(interval)
        attempts += 1
    return PollResult(succeeded=True, attempts=attempts)


def wait_until(probe: Probe, interval: float, sleep: Sleep = time.sleep) -> int:
    """Run ``probe`` every ``interval`` seconds until it returns True, with no attempt ceiling.

    Returns the number of probe runs.
    """
    attempts = 1
    while not probe():
        sleep(interval)
        attempts += 1
    return attempts
