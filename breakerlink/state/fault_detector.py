# breakerlink/state/fault_detector.py
"""
Breaker fault detection and state machine.

Turns the previous breaker table plus one telemetry update into the next
table, the history entries for every state change and any switch-off
commands the device must be sent to match the local decision.

Per load breaker, evaluated once per telemetry record (or synthetic tick):

1. Device reports off, was on: the trip reason is, in order, Overload
   (measurement1 >= max), ShortCircuit (min set and 0 < measurement1 < min),
   SystemOff (master just went off), otherwise Manual.
2. Device reports on but local limits are violated: the breaker is switched
   off here (Overload / ShortCircuit only) and an off command is queued.
3. Off -> on: always Manual, no limit checks.
4. A grace period delays rule 2 until the breach has lasted that long,
   measured on the engine clock between successive records.

Master cascade: the master going off forces every load off with SystemOff,
overriding any other reason. The master coming on switches no load on.
"""

from dataclasses import dataclass, field, replace

from breakerlink.core.logging_system import get_logger
from breakerlink.protocols.base_profile import TelemetryUpdate
from breakerlink.state.breaker_table import Breaker, BreakerTable, TripReason
from breakerlink.state.history import HistoryLog, LogType

__all__ = [
    "Detection",
    "FaultDetector",
    "threshold_violation",
    "classify_trip",
]

logger = get_logger(__name__)


@dataclass
class Detection:
    """Outcome of one detector invocation.

    Attributes:
        table: The next breaker table snapshot
        history: One entry per state change, in slot order, one timestamp
        overrides: Breakers switched off locally whose off command must
            still be sent to the device
        trips: Breakers that went off for Overload or ShortCircuit
    """

    table: BreakerTable
    history: list[HistoryLog] = field(default_factory=list)
    overrides: list[Breaker] = field(default_factory=list)
    trips: list[Breaker] = field(default_factory=list)

    @property
    def changed(self) -> bool:
        return bool(self.history)


def threshold_violation(breaker: Breaker, measurement: float) -> TripReason | None:
    """Limit check for one reading; Overload wins over ShortCircuit.

    A minimum threshold of 0 (or unset) disables the short-circuit check,
    and a zero reading never counts as a short circuit.
    """
    if breaker.is_overall:
        return None
    if breaker.max_threshold is not None and measurement >= breaker.max_threshold:
        return TripReason.OVERLOAD
    if breaker.min_threshold is not None and 0 < measurement < breaker.min_threshold:
        return TripReason.SHORT_CIRCUIT
    return None


def classify_trip(breaker: Breaker, measurement: float) -> TripReason:
    """Reason for a device-reported on -> off transition of a load.

    Only consulted while the master stays on; loads behind a master that
    went off are recorded as SystemOff by the cascade instead.
    """
    violation = threshold_violation(breaker, measurement)
    if violation is not None:
        return violation
    return TripReason.MANUAL


class FaultDetector:
    """
    Stateful breaker state machine.

    The only state kept between invocations is the start time of each
    ongoing threshold breach (for grace periods), keyed by breaker slot.
    Callers must serialise invocations.

    Example:
        >>> detector = FaultDetector()
        >>> result = detector.evaluate(table, update, now=clock.monotonic(),
        ...                            timestamp=clock.timestamp())
        >>> table = result.table
    """

    def __init__(self):
        self._breach_started: dict[int, float] = {}

    def reset(self) -> None:
        """Forget all breach timers (connection teardown)."""
        self._breach_started.clear()

    def breach_started(self, index: int) -> float | None:
        """Monotonic time the current breach of a slot began, if any."""
        return self._breach_started.get(index)

    # ----------------------------------------------------------------
    # Telemetry evaluation
    # ----------------------------------------------------------------

    def evaluate(
        self,
        table: BreakerTable,
        update: TelemetryUpdate,
        now: float,
        timestamp: str,
    ) -> Detection:
        """Apply one telemetry update.

        Args:
            table: Current breaker table
            update: Interpreted telemetry record
            now: Engine monotonic time in seconds
            timestamp: ISO-8601 timestamp shared by every history entry

        Returns:
            Detection with the next table, history, overrides and trips
        """
        result = Detection(table=table)
        changed: list[Breaker] = []

        old_master = table.master
        master = self._with_readings(old_master, update)
        reported = update.is_on(0)
        master_on = old_master.is_on if reported is None else reported

        if master_on != old_master.is_on:
            master = self._transition(
                master, master_on, TripReason.MANUAL, timestamp, result
            )
        changed.append(master)

        for old in table.loads:
            breaker = self._with_readings(old, update)
            reported = update.is_on(old.index)
            reported_on = old.is_on if reported is None else reported

            if not master_on:
                # Nothing downstream of an open master can be on
                self._breach_started.pop(old.index, None)
                if old.is_on:
                    breaker = self._transition(
                        breaker, False, TripReason.SYSTEM_OFF, timestamp, result
                    )
                changed.append(breaker)
                continue

            if old.is_on and not reported_on:
                self._breach_started.pop(old.index, None)
                reason = classify_trip(breaker, breaker.measurement1)
                breaker = self._transition(breaker, False, reason, timestamp, result)

            elif old.is_on and reported_on:
                reason = self._sustained_violation(breaker, now)
                if reason is not None:
                    self._breach_started.pop(old.index, None)
                    breaker = self._transition(breaker, False, reason, timestamp, result)
                    result.overrides.append(breaker)

            elif not old.is_on and reported_on:
                self._breach_started.pop(old.index, None)
                breaker = self._transition(
                    breaker, True, TripReason.MANUAL, timestamp, result
                )

            changed.append(breaker)

        result.table = table.with_breakers(changed)
        return result

    def _sustained_violation(self, breaker: Breaker, now: float) -> TripReason | None:
        """Limit violation that has outlasted the breaker's grace period."""
        violation = threshold_violation(breaker, breaker.measurement1)
        if violation is None:
            if self._breach_started.pop(breaker.index, None) is not None:
                logger.debug(f"Breaker '{breaker.breaker_id}' recovered within grace period")
            return None

        grace_ms = breaker.grace_period_ms or 0
        if grace_ms <= 0:
            return violation

        started = self._breach_started.setdefault(breaker.index, now)
        if (now - started) * 1000.0 >= grace_ms:
            return violation

        logger.debug(
            f"Breaker '{breaker.breaker_id}' {violation.value} breach held for "
            f"{(now - started) * 1000.0:.0f} of {grace_ms} ms"
        )
        return None

    # ----------------------------------------------------------------
    # Operator toggles
    # ----------------------------------------------------------------

    def apply_toggle(
        self,
        table: BreakerTable,
        index: int,
        on: bool,
        timestamp: str,
    ) -> Detection:
        """Apply an operator toggle that the device has accepted.

        Switching the master off cascades SystemOff to every load that is on.
        No limit checks are made. Toggling to the current state is a no-op.
        A load is never switched on while the master is off.
        """
        result = Detection(table=table)
        target = table[index]

        if target.is_on == on:
            return result

        if on and not target.is_overall and not table.master.is_on:
            logger.warning(
                f"Ignoring switch-on of '{target.breaker_id}': master breaker is off"
            )
            return result

        changed = [self._transition(target, on, TripReason.MANUAL, timestamp, result)]
        self._breach_started.pop(index, None)

        if target.is_overall and not on:
            for load in table.loads:
                self._breach_started.pop(load.index, None)
                if load.is_on:
                    changed.append(
                        self._transition(
                            load, False, TripReason.SYSTEM_OFF, timestamp, result
                        )
                    )

        result.table = table.with_breakers(changed)
        return result

    # ----------------------------------------------------------------
    # Helpers
    # ----------------------------------------------------------------

    @staticmethod
    def _with_readings(breaker: Breaker, update: TelemetryUpdate) -> Breaker:
        reading = update.measurements.get(breaker.index)
        if reading is None:
            return breaker
        m1, m2 = reading
        return replace(
            breaker,
            measurement1=(
                breaker.measurement1 if m1 is None else m1 + breaker.calibration_offset
            ),
            measurement2=breaker.measurement2 if m2 is None else m2,
        )

    @staticmethod
    def _transition(
        breaker: Breaker,
        on: bool,
        reason: TripReason,
        timestamp: str,
        result: Detection,
    ) -> Breaker:
        if on:
            updated = replace(breaker, is_on=True, last_trip_reason=None)
            result.history.append(
                HistoryLog(
                    breaker_name=breaker.name,
                    timestamp=timestamp,
                    type=LogType.ACTIVATED,
                    reason=TripReason.MANUAL.value,
                )
            )
        else:
            updated = replace(breaker, is_on=False, last_trip_reason=reason)
            result.history.append(
                HistoryLog(
                    breaker_name=breaker.name,
                    timestamp=timestamp,
                    type=LogType.DEACTIVATED,
                    reason=reason.value,
                )
            )
            if reason.is_fault:
                result.trips.append(updated)
        return updated
