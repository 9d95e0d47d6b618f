"""Call-rate limiting for filesystem probes and mutations.

A RateLimiter is attached to one call site (lstat probes, or
unlink/rmdir mutations). Each throttled operation records itself with
``record_call_and_maybe_delay()``. Once enough wall time has passed for
the measured rate to mean something, a rate above the target causes a
short sleep sized so that, spread over the next 100 calls, the average
rate falls back to the target. This converges smoothly instead of
stalling hard whenever the target is exceeded.
"""

import logging
import time
from collections.abc import Callable

logger = logging.getLogger(__name__)

# Minimum elapsed time before a measured rate is considered meaningful.
LEAD_IN_SECONDS = 1.0

# Targets below this are treated as "no limit".
MINIMUM_RATE_LIMIT = 1.0

# Number of upcoming calls the required slowdown is spread across.
DELAY_SPREAD_CALLS = 100

# Delays at or below this are not worth a sleep() call.
NOISE_FLOOR_SECONDS = 10e-6


class RateLimiter:
    """Throttles a burst-prone call site to a target long-run call rate.

    Args:
        name: Label used in log and profile messages (e.g. "stat").
        target_rate: Target calls per second. 0, or anything below
            MINIMUM_RATE_LIMIT, means unlimited.
        lead_in: Seconds to wait before measuring the rate.
        clock: Monotonic time source in seconds.
        sleep: Function used to apply a delay.
    """

    def __init__(
        self,
        name: str,
        target_rate: float = 0.0,
        *,
        lead_in: float = LEAD_IN_SECONDS,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self.name = name
        self._lead_in = lead_in
        self._clock = clock
        self._sleep = sleep
        self._start: float | None = None
        self._count = 0
        self._target_rate = 0.0
        self.target_rate = target_rate

    @property
    def target_rate(self) -> float:
        """Target calls per second (0.0 when unlimited)."""
        return self._target_rate

    @target_rate.setter
    def target_rate(self, value: float) -> None:
        self._target_rate = value if value >= MINIMUM_RATE_LIMIT else 0.0

    @property
    def is_limited(self) -> bool:
        """True if a target rate is in effect."""
        return self._target_rate > 0.0

    @property
    def call_count(self) -> int:
        """Number of calls recorded so far."""
        return self._count

    @property
    def elapsed(self) -> float:
        """Seconds since the first recorded call (0.0 before any call)."""
        if self._start is None:
            return 0.0
        return self._clock() - self._start

    @property
    def rate(self) -> float:
        """Achieved calls per second since the first call."""
        dt = self.elapsed
        if dt <= 0.0:
            return 0.0
        return self._count / dt

    def record_call_and_maybe_delay(self) -> float:
        """Record one call, sleeping first if the rate is above target.

        Returns:
            The delay applied, in seconds (0.0 if none).
        """
        if self._start is None:
            self._start = self._clock()

        delay = 0.0
        if self._target_rate > 0.0:
            dt = self._clock() - self._start
            if dt > self._lead_in:
                current_rate = self._count / dt
                logger.debug("%s: rate = %.1f calls/sec", self.name, current_rate)
                if current_rate > self._target_rate:
                    delay = ((self._count / self._target_rate) - dt) / DELAY_SPREAD_CALLS
                    if delay > NOISE_FLOOR_SECONDS:
                        logger.debug(
                            "%s: sleeping for %.0f microseconds", self.name, delay * 1e6
                        )
                        self._sleep(delay)
                    else:
                        delay = 0.0

        self._count += 1
        return delay

    def profile(self, level: int = logging.DEBUG) -> str:
        """Log a summary of the calls made through this limiter.

        Args:
            level: Logging level for the summary line.

        Returns:
            The summary text.
        """
        if self._start is None:
            message = f"{self.name}: no profiling data (no calls to {self.name})"
        else:
            dt = self.elapsed
            if dt > self._lead_in:
                message = (
                    f"{self.name}: {self._count} calls over {dt:.3f} seconds "
                    f"({self.rate:.0f} calls/sec)"
                )
            else:
                seconds = f"{self._lead_in:g} second{'' if self._lead_in == 1 else 's'}"
                message = (
                    f"{self.name}: no profiling data (statistics gathering requires {seconds})"
                )
        logger.log(level, "%s", message)
        return message
