# breakerlink/core/engine_clock.py
"""
Engine clock.

Single time authority for the engine: a monotonic reading used for
grace-period timing and an ISO-8601 wall-clock timestamp used for history.
REALTIME follows the host clocks; STEPPED only moves when step() is called,
which keeps fault-detector and synthetic-feed tests deterministic.
"""

import logging
import time
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from enum import Enum

logger = logging.getLogger(__name__)

__all__ = ["TimeMode", "ClockState", "EngineClock"]


class TimeMode(Enum):
    """Engine clock operation modes."""

    REALTIME = "realtime"
    STEPPED = "stepped"


@dataclass
class ClockState:
    """State container for the engine clock."""

    mode: TimeMode = TimeMode.REALTIME
    monotonic_start: float = 0.0
    stepped_elapsed: float = 0.0
    wall_start: datetime | None = None
    last_timestamp: datetime | None = None


class EngineClock:
    """Monotonic and wall-clock time for one engine instance.

    Example:
        >>> clock = EngineClock(mode=TimeMode.STEPPED)
        >>> t0 = clock.monotonic()
        >>> clock.step(0.5)
        >>> clock.monotonic() - t0
        0.5
    """

    def __init__(
        self,
        mode: TimeMode = TimeMode.REALTIME,
        start: datetime | None = None,
    ):
        """Initialise the clock.

        Args:
            mode: REALTIME or STEPPED
            start: Wall-clock origin for STEPPED mode (defaults to now, UTC)
        """
        self.state = ClockState(mode=mode)
        self.state.monotonic_start = time.monotonic()
        self.state.wall_start = start or datetime.now(timezone.utc)

        logger.debug(f"EngineClock configured: mode={mode.value}")

    @property
    def mode(self) -> TimeMode:
        return self.state.mode

    # ----------------------------------------------------------------
    # Time queries
    # ----------------------------------------------------------------

    def monotonic(self) -> float:
        """Seconds since the clock was created, never going backwards."""
        if self.state.mode == TimeMode.STEPPED:
            return self.state.stepped_elapsed
        return time.monotonic() - self.state.monotonic_start

    def wall_time(self) -> datetime:
        """Current wall-clock time as an aware UTC datetime."""
        if self.state.mode == TimeMode.STEPPED:
            return self.state.wall_start + timedelta(
                seconds=self.state.stepped_elapsed
            )
        return datetime.now(timezone.utc)

    def timestamp(self) -> str:
        """ISO-8601 timestamp, non-decreasing across calls.

        A host clock that steps backwards (NTP correction) repeats the last
        issued timestamp instead of going back in time.
        """
        current = self.wall_time()
        last = self.state.last_timestamp
        if last is not None and current < last:
            current = last
        self.state.last_timestamp = current
        return current.isoformat(timespec="milliseconds")

    # ----------------------------------------------------------------
    # Time control
    # ----------------------------------------------------------------

    def step(self, delta_seconds: float) -> None:
        """Manually advance the clock (STEPPED mode only).

        Args:
            delta_seconds: Amount of time to advance in seconds

        Raises:
            ValueError: If delta_seconds is negative
            RuntimeError: If the clock is not in STEPPED mode
        """
        if delta_seconds < 0:
            raise ValueError(f"Cannot step negative time: {delta_seconds}")
        if self.state.mode != TimeMode.STEPPED:
            raise RuntimeError(
                f"step() only valid in STEPPED mode, "
                f"current mode is {self.state.mode.value}"
            )
        self.state.stepped_elapsed += delta_seconds

    def get_status(self) -> dict:
        """Return clock mode and current readings."""
        return {
            "mode": self.state.mode.value,
            "monotonic": self.monotonic(),
            "wall_time": self.wall_time().isoformat(),
        }
