# breakerlink/protocols/command_encoder.py
"""
Operator intent -> wire commands.

Resolves breaker identifiers to their fixed slots through the breaker table
and validates the request before asking the active profile for bytes.
Nothing is encoded for unknown breakers, for the master breaker's limits
(it has none) or for commands the active protocol revision does not carry.
"""

import math
from dataclasses import dataclass
from enum import Enum

from breakerlink.core.errors import ValidationError
from breakerlink.protocols.base_profile import ProtocolProfile
from breakerlink.state.breaker_table import Breaker, BreakerTable

__all__ = ["CommandKind", "OutboundCommand", "CommandEncoder"]


class CommandKind(Enum):
    TOGGLE = "toggle"
    SET_MAX_THRESHOLD = "set_max_threshold"
    SET_MIN_THRESHOLD = "set_min_threshold"
    SET_GRACE_PERIOD = "set_grace_period"


@dataclass(frozen=True)
class OutboundCommand:
    """An encoded command waiting for the transport.

    Attributes:
        kind: What the command does
        breaker_id: Target breaker
        index: Target slot
        value: New state (bool) or new limit (float / int ms)
        payload: Wire bytes
        from_detector: True for overrides issued by the fault detector,
            whose local effect is already applied
    """

    kind: CommandKind
    breaker_id: str
    index: int
    value: bool | float | int
    payload: bytes
    from_detector: bool = False


class CommandEncoder:
    """Validating front end over a ProtocolProfile's command formats.

    Example:
        >>> encoder = CommandEncoder(TextV1Profile())
        >>> encoder.set_max_threshold(table, "load1", 4.5).payload
        b'M,1,4.500\\n'
    """

    def __init__(self, profile: ProtocolProfile):
        self.profile = profile

    def toggle(self, table: BreakerTable, breaker_id: str, on: bool) -> OutboundCommand:
        breaker = self._resolve(table, breaker_id)
        return OutboundCommand(
            kind=CommandKind.TOGGLE,
            breaker_id=breaker.breaker_id,
            index=breaker.index,
            value=bool(on),
            payload=self.profile.encode_toggle(breaker.index, bool(on)),
        )

    def override_off(self, breaker: Breaker) -> OutboundCommand:
        """Switch-off command issued by the fault detector."""
        return OutboundCommand(
            kind=CommandKind.TOGGLE,
            breaker_id=breaker.breaker_id,
            index=breaker.index,
            value=False,
            payload=self.profile.encode_toggle(breaker.index, False),
            from_detector=True,
        )

    def set_max_threshold(
        self, table: BreakerTable, breaker_id: str, value: float
    ) -> OutboundCommand:
        breaker = self._resolve_load(table, breaker_id, "maximum threshold")
        value = _check_limit(value, "maximum threshold")
        return OutboundCommand(
            kind=CommandKind.SET_MAX_THRESHOLD,
            breaker_id=breaker.breaker_id,
            index=breaker.index,
            value=value,
            payload=self.profile.encode_set_max(breaker.index, value),
        )

    def set_min_threshold(
        self, table: BreakerTable, breaker_id: str, value: float
    ) -> OutboundCommand:
        breaker = self._resolve_load(table, breaker_id, "minimum threshold")
        value = _check_limit(value, "minimum threshold")
        return OutboundCommand(
            kind=CommandKind.SET_MIN_THRESHOLD,
            breaker_id=breaker.breaker_id,
            index=breaker.index,
            value=value,
            payload=self.profile.encode_set_min(breaker.index, value),
        )

    def set_grace_period(
        self, table: BreakerTable, breaker_id: str, grace_period_ms: int
    ) -> OutboundCommand:
        breaker = self._resolve_load(table, breaker_id, "grace period")
        if isinstance(grace_period_ms, bool):
            raise ValidationError("Grace period must be a whole number of milliseconds")
        try:
            ms = int(grace_period_ms)
        except (TypeError, ValueError) as e:
            raise ValidationError(
                f"Grace period must be a whole number of milliseconds, got {grace_period_ms!r}"
            ) from e
        if ms != grace_period_ms or ms < 0:
            raise ValidationError(
                f"Grace period must be a non-negative whole number of ms, got {grace_period_ms!r}"
            )
        return OutboundCommand(
            kind=CommandKind.SET_GRACE_PERIOD,
            breaker_id=breaker.breaker_id,
            index=breaker.index,
            value=ms,
            payload=self.profile.encode_set_grace(breaker.index, ms),
        )

    # ----------------------------------------------------------------
    # Validation
    # ----------------------------------------------------------------

    def _resolve(self, table: BreakerTable, breaker_id: str) -> Breaker:
        breaker = table.get(breaker_id)
        if breaker is None:
            raise ValidationError(f"Unknown breaker '{breaker_id}'")
        return breaker

    def _resolve_load(self, table: BreakerTable, breaker_id: str, what: str) -> Breaker:
        breaker = self._resolve(table, breaker_id)
        if breaker.is_overall:
            raise ValidationError(f"Master breaker '{breaker_id}' has no {what}")
        return breaker


def _check_limit(value: float, what: str) -> float:
    if isinstance(value, bool):
        raise ValidationError(f"{what} must be a number")
    try:
        number = float(value)
    except (TypeError, ValueError) as e:
        raise ValidationError(f"{what} must be a number, got {value!r}") from e
    if not math.isfinite(number) or number < 0:
        raise ValidationError(f"{what} must be a finite value >= 0, got {value!r}")
    return number
