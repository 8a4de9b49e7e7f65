# breakerlink/protocols/binary_profile.py
"""
Binary protocol revision (voltage based).

Telemetry packet, little-endian, 21 bytes with three load slots:

    Byte 0:      status mask (bit 0 = master, bit i = load i)
    Bytes 1-4:   system voltage (float32)
    Bytes 5-8:   total load voltage (float32)
    Bytes 9-12:  load 1 voltage (float32)
    Bytes 13-16: load 2 voltage (float32)
    Bytes 17-20: load 3 voltage (float32)

Commands:

    Toggle:   01 <index> <0|1>                 (3 bytes)
    Set max:  02 <index> <float32 LE value>    (6 bytes)
"""

import math
import struct

from breakerlink.core.errors import DecodeError, ValidationError
from breakerlink.protocols.base_profile import (
    ProfileKind,
    ProtocolProfile,
    TelemetryUpdate,
)
from breakerlink.protocols.framing import BinaryFrameDecoder

__all__ = ["BinaryV1Profile"]

CMD_TOGGLE = 0x01
CMD_SET_MAX = 0x02


class BinaryV1Profile(ProtocolProfile):
    """Fixed-length binary packets with voltage readings."""

    kind = ProfileKind.BINARY_V1
    master_labels = ("System Voltage", "Total Load")
    load_labels = ("Load Voltage", "Input Voltage")

    def __init__(self, load_slots: int = 3):
        super().__init__(load_slots)
        self._layout = struct.Struct(f"<B{2 + load_slots}f")

    @property
    def record_length(self) -> int:
        return self._layout.size

    def create_decoder(self) -> BinaryFrameDecoder:
        return BinaryFrameDecoder(record_length=self.record_length)

    def interpret(self, record: bytes) -> TelemetryUpdate:
        if len(record) < self.record_length:
            raise DecodeError(
                f"Binary record too short: {len(record)} bytes, "
                f"expected {self.record_length}"
            )

        status_mask, system_1, system_2, *loads = self._layout.unpack_from(record)

        values = (system_1, system_2, *loads)
        if not all(math.isfinite(v) for v in values):
            raise DecodeError(f"Binary record carries a non-finite reading: {values}")

        # Loads are fed from the system bus, so they report it as their input
        measurements: dict[int, tuple[float | None, float | None]] = {
            0: (system_1, system_2)
        }
        for slot, reading in enumerate(loads, start=1):
            measurements[slot] = (reading, system_1)

        return TelemetryUpdate(
            status_mask=status_mask,
            slot_count=min(self.slot_count, 8),
            measurements=measurements,
        )

    def encode_toggle(self, index: int, on: bool) -> bytes:
        _check_byte_index(index)
        return struct.pack("<BBB", CMD_TOGGLE, index, 1 if on else 0)

    def encode_set_max(self, index: int, value: float) -> bytes:
        _check_byte_index(index)
        return struct.pack("<BBf", CMD_SET_MAX, index, value)


def _check_byte_index(index: int) -> None:
    if not 0 <= index <= 0xFF:
        raise ValidationError(f"Breaker index {index} does not fit in one byte")
