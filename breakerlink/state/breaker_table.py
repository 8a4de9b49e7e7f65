# breakerlink/state/breaker_table.py
"""
Breaker data model.

One Breaker per physical switch position, held in a fixed-slot BreakerTable.
Slot 0 is the master (overall) breaker; slots 1..N are load breakers in
declared order. The identifier -> slot map is built once when the table is
configured and carried unchanged through every snapshot, so command encoding
never recomputes positions from identifiers.
"""

from __future__ import annotations

import math
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Iterator

from breakerlink.core.errors import ConfigurationError

__all__ = ["TripReason", "Breaker", "BreakerTable"]


class TripReason(Enum):
    """Why a breaker went off."""

    MANUAL = "Manual"
    OVERLOAD = "Overload"
    SHORT_CIRCUIT = "ShortCircuit"
    SYSTEM_OFF = "SystemOff"

    @property
    def is_fault(self) -> bool:
        """True for reasons derived from current limits."""
        return self in (TripReason.OVERLOAD, TripReason.SHORT_CIRCUIT)


@dataclass(frozen=True)
class Breaker:
    """State of a single breaker slot.

    Attributes:
        breaker_id: Stable identifier, unique in the table
        name: Display name
        index: Fixed slot in the table (master = 0)
        is_overall: True for the master breaker
        is_on: Current commanded/observed state
        measurement1: First reading (current or voltage, per protocol)
        measurement2: Second reading
        measurement1_label: Label for measurement1 under the active protocol
        measurement2_label: Label for measurement2 under the active protocol
        max_threshold: Overload bound (load breakers only)
        min_threshold: Short-circuit bound (load breakers only, 0 disables)
        grace_period_ms: Sustained-breach time before a trip is honoured
        last_trip_reason: Reason for the last on -> off transition
        calibration_offset: Added to measurement1 as telemetry is interpreted
    """

    breaker_id: str
    name: str
    index: int
    is_overall: bool = False
    is_on: bool = False
    measurement1: float = 0.0
    measurement2: float = 0.0
    measurement1_label: str = ""
    measurement2_label: str = ""
    max_threshold: float | None = None
    min_threshold: float | None = None
    grace_period_ms: int | None = None
    last_trip_reason: TripReason | None = None
    calibration_offset: float = 0.0

    def to_dict(self) -> dict[str, Any]:
        """Plain representation for logging and CLI output."""
        return {
            "id": self.breaker_id,
            "name": self.name,
            "index": self.index,
            "is_overall": self.is_overall,
            "is_on": self.is_on,
            "measurement1": self.measurement1,
            "measurement2": self.measurement2,
            "measurement1_label": self.measurement1_label,
            "measurement2_label": self.measurement2_label,
            "max_threshold": self.max_threshold,
            "min_threshold": self.min_threshold,
            "grace_period_ms": self.grace_period_ms,
            "last_trip_reason": (
                self.last_trip_reason.value if self.last_trip_reason else None
            ),
        }


@dataclass(frozen=True)
class BreakerTable:
    """Immutable, indexed snapshot of every breaker.

    Build one with BreakerTable.from_config(); derive new snapshots with
    with_breaker() / with_breakers(). The identifier map is shared by every
    snapshot derived from the same configuration.

    Example:
        >>> table = BreakerTable.from_config([
        ...     {"id": "overall", "name": "Overall Breaker", "overall": True},
        ...     {"id": "load1", "name": "Load 1", "max_threshold": 5.0},
        ... ])
        >>> table.index_of("load1")
        1
    """

    breakers: tuple[Breaker, ...]
    _index_by_id: dict[str, int] = field(repr=False, compare=False)

    # ----------------------------------------------------------------
    # Construction
    # ----------------------------------------------------------------

    @classmethod
    def from_config(
        cls,
        breaker_configs: list[dict[str, Any]],
        labels: dict[str, tuple[str, str]] | None = None,
    ) -> BreakerTable:
        """Build the power-on table from configuration.

        Args:
            breaker_configs: Ordered breaker definitions; the first entry
                must be the master breaker
            labels: Optional {"master": (l1, l2), "load": (l1, l2)} labels
                supplied by the protocol profile

        Returns:
            New BreakerTable with every breaker off

        Raises:
            ConfigurationError: If ids are missing or duplicated, if there is
                not exactly one master, or if the master is not first
        """
        if not breaker_configs:
            raise ConfigurationError("At least one breaker must be configured")

        labels = labels or {}
        master_labels = labels.get("master", ("", ""))
        load_labels = labels.get("load", ("", ""))

        breakers: list[Breaker] = []
        index_by_id: dict[str, int] = {}

        for index, cfg in enumerate(breaker_configs):
            breaker_id = str(cfg.get("id", "")).strip()
            if not breaker_id:
                raise ConfigurationError(f"Breaker at position {index} has no id")
            if breaker_id in index_by_id:
                raise ConfigurationError(f"Duplicate breaker id '{breaker_id}'")

            is_overall = bool(cfg.get("overall", False))
            if is_overall and index != 0:
                raise ConfigurationError(
                    f"Master breaker '{breaker_id}' must be the first entry"
                )
            if index == 0 and not is_overall:
                raise ConfigurationError(
                    f"First breaker '{breaker_id}' must be the master breaker"
                )

            max_threshold = _optional_float(cfg, "max_threshold", breaker_id)
            min_threshold = _optional_float(cfg, "min_threshold", breaker_id)
            grace = cfg.get("grace_period_ms")

            if is_overall and (
                max_threshold is not None
                or min_threshold is not None
                or grace is not None
            ):
                raise ConfigurationError(
                    f"Master breaker '{breaker_id}' cannot carry thresholds"
                )

            if grace is not None:
                try:
                    grace = int(grace)
                except (TypeError, ValueError) as e:
                    raise ConfigurationError(
                        f"Breaker '{breaker_id}': grace_period_ms must be an integer"
                    ) from e
                if grace < 0:
                    raise ConfigurationError(
                        f"Breaker '{breaker_id}': grace_period_ms must be >= 0"
                    )

            label1, label2 = master_labels if is_overall else load_labels
            breakers.append(
                Breaker(
                    breaker_id=breaker_id,
                    name=str(cfg.get("name") or breaker_id),
                    index=index,
                    is_overall=is_overall,
                    measurement1_label=label1,
                    measurement2_label=label2,
                    max_threshold=max_threshold,
                    min_threshold=min_threshold,
                    grace_period_ms=grace,
                    calibration_offset=float(cfg.get("calibration_offset", 0.0)),
                )
            )
            index_by_id[breaker_id] = index

        return cls(breakers=tuple(breakers), _index_by_id=index_by_id)

    # ----------------------------------------------------------------
    # Queries
    # ----------------------------------------------------------------

    def __len__(self) -> int:
        return len(self.breakers)

    def __iter__(self) -> Iterator[Breaker]:
        return iter(self.breakers)

    def __getitem__(self, index: int) -> Breaker:
        return self.breakers[index]

    @property
    def master(self) -> Breaker:
        return self.breakers[0]

    @property
    def loads(self) -> tuple[Breaker, ...]:
        return self.breakers[1:]

    def index_of(self, breaker_id: str) -> int | None:
        """Return the fixed slot of a breaker id, or None if unknown."""
        return self._index_by_id.get(breaker_id)

    def get(self, breaker_id: str) -> Breaker | None:
        index = self.index_of(breaker_id)
        return None if index is None else self.breakers[index]

    # ----------------------------------------------------------------
    # Derivation
    # ----------------------------------------------------------------

    def with_breaker(self, breaker: Breaker) -> BreakerTable:
        """Return a new table with one slot replaced."""
        return self.with_breakers([breaker])

    def with_breakers(self, changed: list[Breaker]) -> BreakerTable:
        """Return a new table with several slots replaced."""
        if not changed:
            return self
        slots = list(self.breakers)
        for breaker in changed:
            slots[breaker.index] = breaker
        return BreakerTable(breakers=tuple(slots), _index_by_id=self._index_by_id)

    def to_list(self) -> list[dict[str, Any]]:
        return [b.to_dict() for b in self.breakers]


def _optional_float(cfg: dict[str, Any], key: str, breaker_id: str) -> float | None:
    value = cfg.get(key)
    if value is None:
        return None
    try:
        number = float(value)
    except (TypeError, ValueError) as e:
        raise ConfigurationError(f"Breaker '{breaker_id}': {key} must be a number") from e
    if not math.isfinite(number) or number < 0:
        raise ConfigurationError(f"Breaker '{breaker_id}': {key} must be >= 0")
    return number
