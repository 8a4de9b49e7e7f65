# breakerlink/state/history.py
"""
Breaker activation history.

HistoryLedger is an append-only log of activation/deactivation events backed
by a durable HistoryStore. Appends are all-or-nothing: the whole ledger is
saved with the new entries, and if the store rejects the save the in-memory
view is left untouched and PersistenceError is raised. Clearing replaces the
ledger with an empty one; there is no per-entry delete.

Stores:
- InMemoryHistoryStore: process-local, optional capacity
- JsonFileHistoryStore: one JSON document, replaced atomically on save
"""

import json
import os
import tempfile
from abc import ABC, abstractmethod
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Any

from breakerlink.core.errors import PersistenceError
from breakerlink.core.logging_system import get_logger

__all__ = [
    "LogType",
    "HistoryLog",
    "HistoryStore",
    "InMemoryHistoryStore",
    "JsonFileHistoryStore",
    "HistoryLedger",
]

logger = get_logger(__name__)


class LogType(Enum):
    ACTIVATED = "activated"
    DEACTIVATED = "deactivated"


@dataclass(frozen=True)
class HistoryLog:
    """One breaker state change.

    Attributes:
        breaker_name: Display name of the breaker
        timestamp: ISO-8601 time of the change
        type: activated or deactivated
        reason: Manual, Overload, ShortCircuit or SystemOff
    """

    breaker_name: str
    timestamp: str
    type: LogType
    reason: str = "Manual"

    def __post_init__(self):
        if self.type == LogType.DEACTIVATED and not self.reason:
            raise ValueError("A deactivation entry needs a reason")

    def to_dict(self) -> dict[str, str]:
        return {
            "breakerName": self.breaker_name,
            "timestamp": self.timestamp,
            "type": self.type.value,
            "reason": self.reason,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "HistoryLog":
        """Rebuild an entry from its stored form.

        Raises:
            KeyError, ValueError, TypeError: If the entry is malformed
        """
        return cls(
            breaker_name=str(data["breakerName"]),
            timestamp=str(data["timestamp"]),
            type=LogType(data["type"]),
            reason=str(data.get("reason") or "Manual"),
        )


# ----------------------------------------------------------------
# Durable stores
# ----------------------------------------------------------------


class HistoryStore(ABC):
    """Durable key-value home of the history ledger."""

    @abstractmethod
    def load(self) -> list[HistoryLog]:
        """Return the stored ledger, oldest first.

        Raises:
            PersistenceError: If the store cannot be read or is corrupt
        """

    @abstractmethod
    def save(self, entries: list[HistoryLog]) -> None:
        """Replace the stored ledger; either all of it is written or none.

        Raises:
            PersistenceError: If the store rejects the write
        """

    @abstractmethod
    def clear(self) -> None:
        """Replace the stored ledger with an empty one.

        Raises:
            PersistenceError: If the store rejects the write
        """


class InMemoryHistoryStore(HistoryStore):
    """Store that lives only as long as the process.

    Args:
        capacity: Maximum number of entries accepted (None = unlimited)
    """

    def __init__(self, capacity: int | None = None):
        self.capacity = capacity
        self._entries: list[HistoryLog] = []
        self.save_count = 0

    def load(self) -> list[HistoryLog]:
        return list(self._entries)

    def save(self, entries: list[HistoryLog]) -> None:
        if self.capacity is not None and len(entries) > self.capacity:
            raise PersistenceError(
                f"History store full: {len(entries)} entries exceed capacity {self.capacity}"
            )
        self._entries = list(entries)
        self.save_count += 1

    def clear(self) -> None:
        self._entries = []


class JsonFileHistoryStore(HistoryStore):
    """Ledger kept as a single JSON array in a file.

    Saves go to a temporary file in the same directory which then replaces
    the ledger file, so a failed save leaves the previous ledger intact.

    Args:
        path: Ledger file location
        max_bytes: Largest document accepted (None = unlimited)
    """

    def __init__(self, path: Path | str, max_bytes: int | None = 5 * 1024 * 1024):
        self.path = Path(path)
        self.max_bytes = max_bytes

    def load(self) -> list[HistoryLog]:
        if not self.path.exists():
            return []
        try:
            with open(self.path, encoding="utf-8") as f:
                data = json.load(f)
        except (OSError, ValueError) as e:
            raise PersistenceError(f"Cannot read history file {self.path}: {e}") from e

        if not isinstance(data, list):
            raise PersistenceError(f"History file {self.path} is not a JSON array")

        try:
            return [HistoryLog.from_dict(item) for item in data]
        except (KeyError, ValueError, TypeError) as e:
            raise PersistenceError(f"Corrupt entry in history file {self.path}: {e}") from e

    def save(self, entries: list[HistoryLog]) -> None:
        document = json.dumps([e.to_dict() for e in entries], indent=2).encode("utf-8")
        if self.max_bytes is not None and len(document) > self.max_bytes:
            raise PersistenceError(
                f"History document of {len(document)} bytes exceeds "
                f"max_bytes={self.max_bytes}"
            )
        self._write_atomic(document)

    def clear(self) -> None:
        self._write_atomic(b"[]")

    def _write_atomic(self, document: bytes) -> None:
        tmp_name = None
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            fd, tmp_name = tempfile.mkstemp(
                dir=self.path.parent, prefix=f".{self.path.name}.", suffix=".tmp"
            )
            with os.fdopen(fd, "wb") as f:
                f.write(document)
                f.flush()
                os.fsync(f.fileno())
            os.replace(tmp_name, self.path)
        except OSError as e:
            if tmp_name and os.path.exists(tmp_name):
                os.unlink(tmp_name)
            raise PersistenceError(f"Cannot write history file {self.path}: {e}") from e


# ----------------------------------------------------------------
# Ledger
# ----------------------------------------------------------------


class HistoryLedger:
    """
    Append-only history with a durable backing store.

    Example:
        >>> ledger = HistoryLedger(JsonFileHistoryStore("data/history.json"))
        >>> ledger.load()
        >>> ledger.append(entries)
        >>> newest_first = ledger.entries()
    """

    def __init__(self, store: HistoryStore | None = None):
        self.store: HistoryStore = store if store is not None else InMemoryHistoryStore()
        self._entries: list[HistoryLog] = []
        self.degraded = False

    def load(self) -> None:
        """Rebuild the in-memory view from the store.

        A corrupt or unreadable store yields an empty ledger.
        """
        try:
            self._entries = self.store.load()
        except PersistenceError as e:
            logger.warning(f"History store unreadable, starting empty: {e}")
            self._entries = []
            return
        logger.info(f"Loaded {len(self._entries)} history entries")

    def append(self, entries: list[HistoryLog]) -> None:
        """Durably append entries, all or none.

        An empty list is a no-op and does not touch the store.

        Raises:
            PersistenceError: If the store rejects the write; the in-memory
                ledger is unchanged
        """
        if not entries:
            return
        updated = self._entries + list(entries)
        self.store.save(updated)
        self._entries = updated

    def clear(self) -> None:
        """Replace the ledger with an empty one.

        Raises:
            PersistenceError: If the store rejects the write; the in-memory
                ledger is unchanged
        """
        self.store.clear()
        self._entries = []

    def detach_store(self) -> None:
        """Carry on with in-memory history only."""
        if self.degraded:
            return
        store = InMemoryHistoryStore()
        store.save(self._entries)
        self.store = store
        self.degraded = True
        logger.warning("History now kept in memory only; durable store detached")

    def entries(self) -> list[HistoryLog]:
        """Every entry, newest first."""
        return list(reversed(self._entries))

    def __len__(self) -> int:
        return len(self._entries)
