# tests/unit/protocols/test_profiles.py
"""Tests for protocol profiles.

Test Coverage:
- Binary telemetry layout and measurement mapping
- Text telemetry parsing and field-count enforcement
- Command wire formats for every revision
- Commands a revision does not carry
- Profile registry lookup
"""

import math
import struct

import pytest

from breakerlink.core.errors import ConfigurationError, DecodeError, ValidationError
from breakerlink.protocols import (
    PROFILE_REGISTRY,
    BinaryV1Profile,
    ProfileKind,
    TextV1Profile,
    TextV2GraceProfile,
    create_profile,
)
from breakerlink.protocols.framing import BinaryFrameDecoder, LineDecoder


def _binary_packet(mask, sys1, sys2, *loads):
    return struct.pack(f"<B{2 + len(loads)}f", mask, sys1, sys2, *loads)


# ================================================================
# BINARY PROFILE TESTS
# ================================================================
class TestBinaryV1Profile:
    """Test the 21-byte voltage packet revision."""

    def test_record_length_is_21_bytes(self):
        """Test the default layout size.

        WHY: Status byte plus five little-endian float32 values.
        """
        profile = BinaryV1Profile()

        assert profile.record_length == 21
        decoder = profile.create_decoder()
        assert isinstance(decoder, BinaryFrameDecoder)
        assert decoder.record_length == 21

    def test_interpret_maps_voltages(self):
        """Test master and load readings land on their slots.

        WHY: Loads report their own voltage and the system voltage.
        """
        profile = BinaryV1Profile()
        packet = _binary_packet(0b0011, 12.0, 6.5, 3.25, 1.5, 0.0)

        update = profile.interpret(packet)

        assert update.status_mask == 0b0011
        assert update.is_on(0) is True
        assert update.is_on(1) is True
        assert update.is_on(2) is False
        assert update.measurements[0] == (12.0, 6.5)
        assert update.measurements[1] == (3.25, 12.0)
        assert update.measurements[2] == (1.5, 12.0)

    def test_short_record_raises_decode_error(self):
        """Test a truncated packet is rejected.

        WHY: Short records must be skipped, not misread.
        """
        with pytest.raises(DecodeError):
            BinaryV1Profile().interpret(b"\x01" * 20)

    def test_non_finite_reading_raises_decode_error(self):
        """Test NaN readings are rejected.

        WHY: NaN would defeat every threshold comparison.
        """
        packet = _binary_packet(1, 12.0, math.nan, 0.0, 0.0, 0.0)

        with pytest.raises(DecodeError):
            BinaryV1Profile().interpret(packet)

    def test_encode_toggle(self):
        """Test the 3-byte toggle command.

        WHY: Opcode, slot index, state.
        """
        profile = BinaryV1Profile()

        assert profile.encode_toggle(2, True) == b"\x01\x02\x01"
        assert profile.encode_toggle(0, False) == b"\x01\x00\x00"

    def test_encode_set_max(self):
        """Test the set-max command carries a float32.

        WHY: The binary device reads a little-endian float.
        """
        payload = BinaryV1Profile().encode_set_max(1, 4.5)

        assert payload == b"\x02\x01" + struct.pack("<f", 4.5)

    def test_unsupported_commands(self):
        """Test min threshold and grace commands are rejected.

        WHY: The binary revision has no such commands.
        """
        profile = BinaryV1Profile()

        with pytest.raises(ValidationError):
            profile.encode_set_min(1, 0.1)
        with pytest.raises(ValidationError):
            profile.encode_set_grace(1, 500)


# ================================================================
# TEXT PROFILE TESTS
# ================================================================
class TestTextProfiles:
    """Test the pipe-delimited current revisions."""

    def test_interpret_example_line(self):
        """Test the reference record.

        WHY: Mask 3 means master and load 1 are on.
        """
        update = TextV1Profile().interpret(b"3|1.25|0.80|0.80|0.00")

        assert update.is_on(0) is True
        assert update.is_on(1) is True
        assert update.is_on(2) is False
        assert update.measurements[0] == (1.25, 0.80)
        assert update.measurements[1] == (0.80, None)
        assert update.measurements[2] == (0.00, None)

    @pytest.mark.parametrize(
        "line",
        [
            b"3|1.25|0.80|0.80",
            b"3|1.25|0.80|0.80|0.00|1.0",
            b"x|1.25|0.80|0.80|0.00",
            b"3|1.25|abc|0.80|0.00",
            b"-1|1.25|0.80|0.80|0.00",
            b"3|inf|0.80|0.80|0.00",
            b"3|1.25|0.80|0.80|\xff",
        ],
    )
    def test_malformed_lines_raise_decode_error(self, line):
        """Test malformed lines are rejected.

        WHY: Wrong field counts and non-numeric fields must be skipped.
        """
        with pytest.raises(DecodeError):
            TextV1Profile().interpret(line)

    def test_extra_load_slots_change_field_count(self):
        """Test the field count follows the configured slots.

        WHY: The record layout is fixed per device build.
        """
        profile = TextV1Profile(load_slots=3)

        update = profile.interpret(b"15|3.0|3.5|1.0|1.0|1.0")

        assert profile.field_count == 6
        assert update.is_on(3) is True
        with pytest.raises(DecodeError):
            profile.interpret(b"3|1.25|0.80|0.80|0.00")

    def test_too_few_slots_rejected(self):
        """Test fewer than five fields cannot be configured.

        WHY: Records carry at least two loads.
        """
        with pytest.raises(ConfigurationError):
            TextV1Profile(load_slots=1)

    def test_decoder_honours_max_line_length(self):
        """Test the decoder is built from the profile settings.

        WHY: The overflow limit is configurable.
        """
        decoder = TextV1Profile(max_line_length=64).create_decoder()

        assert isinstance(decoder, LineDecoder)
        assert decoder.max_line_length == 64

    def test_encode_commands(self):
        """Test the text command formats.

        WHY: Limits are sent with three decimals.
        """
        profile = TextV2GraceProfile()

        assert profile.encode_toggle(1, True) == b"T,1,1\n"
        assert profile.encode_toggle(0, False) == b"T,0,0\n"
        assert profile.encode_set_max(1, 4.5) == b"M,1,4.500\n"
        assert profile.encode_set_min(2, 0.1) == b"m,2,0.100\n"
        assert profile.encode_set_grace(1, 500) == b"G,1,500\n"

    def test_v1_has_no_grace_command(self):
        """Test the first text revision rejects grace periods.

        WHY: Grace periods arrived with the second revision.
        """
        profile = TextV1Profile()

        assert profile.supports_grace_period is False
        with pytest.raises(ValidationError):
            profile.encode_set_grace(1, 500)

    def test_labels(self):
        """Test current labels for text revisions.

        WHY: Labels are chosen by the active profile.
        """
        labels = TextV1Profile().labels()

        assert labels["master"] == ("Total Current", "Peak Current")
        assert labels["load"][0] == "Current"


# ================================================================
# REGISTRY TESTS
# ================================================================
class TestProfileRegistry:
    """Test profile lookup by name."""

    def test_registry_covers_every_kind(self):
        assert set(PROFILE_REGISTRY) == set(ProfileKind)

    def test_create_profile_by_name(self):
        """Test settings pass through and None falls back to defaults.

        WHY: Config files leave optional settings empty.
        """
        profile = create_profile("text_v2_grace", load_slots=None, max_line_length=256)

        assert isinstance(profile, TextV2GraceProfile)
        assert profile.load_slots == 2
        assert profile.max_line_length == 256

    def test_create_binary_ignores_line_length(self):
        """Test text-only settings do not break binary profiles.

        WHY: The same protocol.yml serves every revision.
        """
        profile = create_profile(ProfileKind.BINARY_V1, max_line_length=1024)

        assert isinstance(profile, BinaryV1Profile)

    def test_unknown_profile(self):
        with pytest.raises(ConfigurationError):
            create_profile("modbus")
