"""Back-off helper for loops that poll until work becomes available."""

from __future__ import annotations

import time
from dataclasses import dataclass

# Number of calls that only yield the processor before real sleeping starts.
SPINS = 65535

# Longest single sleep, in nanoseconds.
MAX_SLEEP_NS = 1_000_000_000


@dataclass
class Sleeper:
    """Yields the processor for SPINS calls, then sleeps for growing periods.

    After the spin phase each call sleeps, starting at one nanosecond and
    multiplying the period by ten per call, up to one second. A Sleeper is not
    thread-safe and should be discarded once the waiting loop is done.
    """

    loop: int = 0
    at_ns: int = 0

    def sleep(self) -> None:
        """Yield or sleep once, advancing the back-off state."""
        if self.loop < SPINS:
            time.sleep(0)
            self.loop += 1
            return

        if self.at_ns == 0:
            self.at_ns = 1

        time.sleep(self.at_ns / 1e9)

        if self.at_ns < MAX_SLEEP_NS:
            self.at_ns = min(self.at_ns * 10, MAX_SLEEP_NS)