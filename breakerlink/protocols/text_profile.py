# breakerlink/protocols/text_profile.py
"""
Text protocol revisions (current based).

Telemetry, one record per line:

    <statusMask>|<systemCurrent1>|<systemCurrent2>|<load1Current>|<load2Current>

The field count is fixed by the number of load slots (3 + slots, at least 5).
Any other count, a non-integer mask or a non-numeric reading rejects the line.

Commands, newline terminated, <index> is the breaker slot (master = 0):

    T,<index>,<0|1>        toggle
    M,<index>,<value>      set maximum threshold, 3 decimals
    m,<index>,<value>      set minimum threshold, 3 decimals
    G,<index>,<ms>         set grace period (TextV2WithGrace only)
"""

import math

from breakerlink.core.errors import ConfigurationError, DecodeError
from breakerlink.protocols.base_profile import (
    ProfileKind,
    ProtocolProfile,
    TelemetryUpdate,
)
from breakerlink.protocols.framing import LineDecoder

__all__ = ["TextV1Profile", "TextV2GraceProfile"]

FIELD_SEPARATOR = "|"
MIN_FIELD_COUNT = 5


class TextV1Profile(ProtocolProfile):
    """Pipe-delimited text records with current readings."""

    kind = ProfileKind.TEXT_V1
    master_labels = ("Total Current", "Peak Current")
    load_labels = ("Current", "")
    supports_min_threshold = True

    def __init__(self, load_slots: int = 2, max_line_length: int = 1024):
        super().__init__(load_slots)
        if self.field_count < MIN_FIELD_COUNT:
            raise ConfigurationError(
                f"Text telemetry needs at least {MIN_FIELD_COUNT} fields, "
                f"{load_slots} load slots give {self.field_count}"
            )
        self.max_line_length = max_line_length

    @property
    def field_count(self) -> int:
        return 3 + self.load_slots

    def create_decoder(self) -> LineDecoder:
        return LineDecoder(max_line_length=self.max_line_length)

    def interpret(self, record: bytes) -> TelemetryUpdate:
        try:
            line = record.decode("ascii").strip()
        except UnicodeDecodeError as e:
            raise DecodeError(f"Telemetry line is not ASCII: {record!r}") from e

        fields = line.split(FIELD_SEPARATOR)
        if len(fields) != self.field_count:
            raise DecodeError(
                f"Expected {self.field_count} fields, got {len(fields)}: {line!r}"
            )

        try:
            status_mask = int(fields[0].strip())
        except ValueError as e:
            raise DecodeError(f"Status mask is not an integer: {fields[0]!r}") from e
        if status_mask < 0:
            raise DecodeError(f"Status mask is negative: {status_mask}")

        readings = [_parse_reading(f) for f in fields[1:]]
        system_1, system_2, *loads = readings

        measurements: dict[int, tuple[float | None, float | None]] = {
            0: (system_1, system_2)
        }
        for slot, reading in enumerate(loads, start=1):
            measurements[slot] = (reading, None)

        return TelemetryUpdate(
            status_mask=status_mask,
            slot_count=self.slot_count,
            measurements=measurements,
        )

    def encode_toggle(self, index: int, on: bool) -> bytes:
        return f"T,{index},{1 if on else 0}\n".encode("ascii")

    def encode_set_max(self, index: int, value: float) -> bytes:
        return f"M,{index},{value:.3f}\n".encode("ascii")

    def encode_set_min(self, index: int, value: float) -> bytes:
        return f"m,{index},{value:.3f}\n".encode("ascii")


class TextV2GraceProfile(TextV1Profile):
    """Text revision that adds per-breaker grace periods."""

    kind = ProfileKind.TEXT_V2_GRACE
    supports_grace_period = True

    def encode_set_grace(self, index: int, grace_period_ms: int) -> bytes:
        return f"G,{index},{int(grace_period_ms)}\n".encode("ascii")


def _parse_reading(text: str) -> float:
    try:
        value = float(text.strip())
    except ValueError as e:
        raise DecodeError(f"Reading is not numeric: {text!r}") from e
    if not math.isfinite(value):
        raise DecodeError(f"Reading is not finite: {text!r}")
    return value
