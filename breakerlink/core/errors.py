# breakerlink/core/errors.py
"""
Exception hierarchy for the breaker engine.

Recovery rules:
- DecodeError: skip the record, keep reading the stream
- TransportError: tear the connection down and reset breakers to defaults
- ValidationError: reject the operator request locally, nothing on the wire
- PersistenceError: warn and carry on with in-memory history only
- ConfigurationError: invalid setup, raised at start-up only
"""

__all__ = [
    "BreakerLinkError",
    "DecodeError",
    "TransportError",
    "FramingOverflowError",
    "ValidationError",
    "PersistenceError",
    "ConfigurationError",
]


class BreakerLinkError(Exception):
    """Base class for all engine errors."""


class DecodeError(BreakerLinkError):
    """A telemetry record was malformed, short or had the wrong field count."""


class TransportError(BreakerLinkError):
    """Reading from or writing to the device link failed."""


class FramingOverflowError(TransportError):
    """A text record outgrew the line buffer.

    records holds the complete records that preceded the runaway line in
    the same chunk; they are still valid and must be applied before the
    connection is failed.
    """

    def __init__(self, message: str, records: list[bytes] | None = None):
        super().__init__(message)
        self.records = records or []


class ValidationError(BreakerLinkError):
    """An operator request named an unknown breaker or an invalid field."""


class PersistenceError(BreakerLinkError):
    """The durable history store rejected a read or write."""


class ConfigurationError(BreakerLinkError):
    """The breaker table or protocol settings are inconsistent."""
