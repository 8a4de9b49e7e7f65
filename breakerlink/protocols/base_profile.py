# breakerlink/protocols/base_profile.py
"""
Protocol profile base class.

A profile bundles everything that differs between device protocol
revisions: record framing, telemetry layout, measurement labels and command
wire formats. The fault detector and engine are shared by every profile.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from enum import Enum

from breakerlink.core.errors import ValidationError
from breakerlink.protocols.framing import FrameDecoder

__all__ = ["ProfileKind", "TelemetryUpdate", "ProtocolProfile"]


class ProfileKind(Enum):
    """Protocol revisions, selected when the connection is set up."""

    BINARY_V1 = "binary_v1"
    TEXT_V1 = "text_v1"
    TEXT_V2_GRACE = "text_v2_grace"


@dataclass(frozen=True)
class TelemetryUpdate:
    """One interpreted telemetry record.

    Attributes:
        status_mask: Bit i = on/off for breaker slot i (bit 0 = master)
        slot_count: Number of breaker slots the record describes
        measurements: Slot -> (measurement1, measurement2); None leaves the
            previous reading untouched
    """

    status_mask: int
    slot_count: int
    measurements: dict[int, tuple[float | None, float | None]] = field(
        default_factory=dict
    )

    def is_on(self, index: int) -> bool | None:
        """Reported state of a slot, or None if the record does not cover it."""
        if index >= self.slot_count:
            return None
        return bool((self.status_mask >> index) & 1)


class ProtocolProfile(ABC):
    """
    Abstract protocol revision.

    Subclasses must implement:
    - create_decoder(): framing for the inbound stream
    - interpret(): decoded record -> TelemetryUpdate (raises DecodeError)
    - encode_toggle() / encode_set_max(): command wire formats

    Commands a revision does not carry keep the default implementation,
    which rejects them with ValidationError.
    """

    kind: ProfileKind
    master_labels: tuple[str, str] = ("", "")
    load_labels: tuple[str, str] = ("", "")
    supports_min_threshold: bool = False
    supports_grace_period: bool = False

    def __init__(self, load_slots: int):
        if load_slots < 1:
            raise ValueError(f"load_slots must be >= 1, got {load_slots}")
        self.load_slots = load_slots

    @property
    def slot_count(self) -> int:
        """Master slot plus load slots."""
        return 1 + self.load_slots

    # ----------------------------------------------------------------
    # Inbound
    # ----------------------------------------------------------------

    @abstractmethod
    def create_decoder(self) -> FrameDecoder:
        """Return a fresh decoder for one connection."""

    @abstractmethod
    def interpret(self, record: bytes) -> TelemetryUpdate:
        """Map one complete record onto breaker slots."""

    # ----------------------------------------------------------------
    # Outbound
    # ----------------------------------------------------------------

    @abstractmethod
    def encode_toggle(self, index: int, on: bool) -> bytes:
        """Command the device to switch a breaker slot on or off."""

    @abstractmethod
    def encode_set_max(self, index: int, value: float) -> bytes:
        """Command the device to use a new overload threshold."""

    def encode_set_min(self, index: int, value: float) -> bytes:
        """Command the device to use a new short-circuit threshold."""
        raise ValidationError(
            f"Protocol {self.kind.value} has no set-minimum-threshold command"
        )

    def encode_set_grace(self, index: int, grace_period_ms: int) -> bytes:
        """Command the device to use a new grace period."""
        raise ValidationError(f"Protocol {self.kind.value} has no grace-period command")

    # ----------------------------------------------------------------
    # Introspection
    # ----------------------------------------------------------------

    def labels(self) -> dict[str, tuple[str, str]]:
        return {"master": self.master_labels, "load": self.load_labels}

    def describe(self) -> dict[str, object]:
        return {
            "profile": self.kind.value,
            "load_slots": self.load_slots,
            "supports_min_threshold": self.supports_min_threshold,
            "supports_grace_period": self.supports_grace_period,
        }

    def __repr__(self) -> str:
        return f"<{self.__class__.__name__} load_slots={self.load_slots}>"
