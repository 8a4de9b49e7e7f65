# breakerlink/protocols/__init__.py
"""
Device protocol revisions.

Structure:
    breakerlink/protocols/
    ├── framing.py          # BinaryFrameDecoder, LineDecoder
    ├── base_profile.py     # ProtocolProfile, TelemetryUpdate, ProfileKind
    ├── binary_profile.py   # BinaryV1Profile (21-byte packets, voltages)
    ├── text_profile.py     # TextV1Profile, TextV2GraceProfile (pipe lines, currents)
    └── command_encoder.py  # CommandEncoder, OutboundCommand

Usage:
    from breakerlink.protocols import create_profile

    profile = create_profile("text_v2_grace", load_slots=2)
    decoder = profile.create_decoder()
    for record in decoder.feed(chunk):
        update = profile.interpret(record)
"""

from typing import Any

from breakerlink.core.errors import ConfigurationError
from breakerlink.protocols.base_profile import (
    ProfileKind,
    ProtocolProfile,
    TelemetryUpdate,
)
from breakerlink.protocols.binary_profile import BinaryV1Profile
from breakerlink.protocols.command_encoder import (
    CommandEncoder,
    CommandKind,
    OutboundCommand,
)
from breakerlink.protocols.framing import BinaryFrameDecoder, FrameDecoder, LineDecoder
from breakerlink.protocols.text_profile import TextV1Profile, TextV2GraceProfile

__all__ = [
    "ProfileKind",
    "ProtocolProfile",
    "TelemetryUpdate",
    "BinaryV1Profile",
    "TextV1Profile",
    "TextV2GraceProfile",
    "FrameDecoder",
    "BinaryFrameDecoder",
    "LineDecoder",
    "CommandEncoder",
    "CommandKind",
    "OutboundCommand",
    "PROFILE_REGISTRY",
    "create_profile",
]

# ================================================================
# Profile Registry - maps profile name (from config) to class
# ================================================================
PROFILE_REGISTRY: dict[ProfileKind, type[ProtocolProfile]] = {
    ProfileKind.BINARY_V1: BinaryV1Profile,
    ProfileKind.TEXT_V1: TextV1Profile,
    ProfileKind.TEXT_V2_GRACE: TextV2GraceProfile,
}


def create_profile(kind: ProfileKind | str, **settings: Any) -> ProtocolProfile:
    """Instantiate a protocol profile from its name and settings.

    Args:
        kind: ProfileKind or its value ("binary_v1", "text_v1", "text_v2_grace")
        **settings: load_slots, and max_line_length for text profiles;
            None values fall back to the profile defaults

    Raises:
        ConfigurationError: If the profile name is unknown
    """
    try:
        kind = ProfileKind(kind)
    except ValueError as e:
        known = ", ".join(k.value for k in ProfileKind)
        raise ConfigurationError(
            f"Unknown protocol profile '{kind}' (known: {known})"
        ) from e

    settings = {k: v for k, v in settings.items() if v is not None}
    if kind == ProfileKind.BINARY_V1:
        settings.pop("max_line_length", None)

    return PROFILE_REGISTRY[kind](**settings)
