# breakerlink/core/logging_system.py
"""
Structured logging system for the breaker engine.

Provides:
- Structured logging (JSON file output, plain console output)
- Audit trail for operator commands
- Alarm classification for trips
- Log rotation

Event classification follows the usual control-system conventions:
- Event severity levels (IEC 62443)
- Alarm priorities and states (ISA 18.2)
- Device/breaker context on every entry
"""

import json
import logging
import logging.handlers
import threading
import time
import uuid
from collections import deque
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Any

__all__ = [
    "EventSeverity",
    "EventCategory",
    "AlarmPriority",
    "AlarmState",
    "LogEntry",
    "ConsoleFormatter",
    "JSONFormatter",
    "EngineLogger",
    "configure_logging",
    "get_logger",
]

# ----------------------------------------------------------------
# Event Classification
# ----------------------------------------------------------------


class EventSeverity(Enum):
    """Severity of an engine event, most severe first (IEC 62443 scale)."""

    CRITICAL = 1  # Protection lost (link down with loads energised)
    ALERT = 2  # Breaker tripped on a fault
    ERROR = 3  # Notifier or store failure
    WARNING = 4  # Skipped record, degraded history, link reset
    NOTICE = 5  # Operator command
    INFO = 6  # Breaker switched, link attached
    DEBUG = 7  # Per-record detail


class EventCategory(Enum):
    """Engine event categories."""

    PROCESS = "process"  # Breaker state transitions
    ALARM = "alarm"  # Trips and fault conditions
    AUDIT = "audit"  # Operator commands
    SYSTEM = "system"  # Engine lifecycle
    COMMUNICATION = "communication"  # Link and decode events
    DIAGNOSTIC = "diagnostic"  # Persistence and housekeeping


class AlarmPriority(Enum):
    """ISA 18.2 alarm priority; trips are HIGH, a lost link is MEDIUM."""

    CRITICAL = 1
    HIGH = 2
    MEDIUM = 3
    LOW = 4


class AlarmState(Enum):
    """ISA 18.2 alarm lifecycle state."""

    ACTIVE = "ACTIVE"
    ACKNOWLEDGED = "ACKNOWLEDGED"
    CLEARED = "CLEARED"
    SUPPRESSED = "SUPPRESSED"


# stdlib level -> severity, used for records that bypass log_event
LOGGING_TO_SEVERITY = {
    logging.CRITICAL: EventSeverity.CRITICAL,
    logging.ERROR: EventSeverity.ERROR,
    logging.WARNING: EventSeverity.WARNING,
    logging.INFO: EventSeverity.INFO,
    logging.DEBUG: EventSeverity.DEBUG,
}

SEVERITY_TO_LOGGING = {
    EventSeverity.CRITICAL: logging.CRITICAL,
    EventSeverity.ALERT: logging.CRITICAL,
    EventSeverity.ERROR: logging.ERROR,
    EventSeverity.WARNING: logging.WARNING,
    EventSeverity.NOTICE: logging.INFO,
    EventSeverity.INFO: logging.INFO,
    EventSeverity.DEBUG: logging.DEBUG,
}

PRIORITY_TO_SEVERITY = {
    AlarmPriority.CRITICAL: EventSeverity.CRITICAL,
    AlarmPriority.HIGH: EventSeverity.ALERT,
    AlarmPriority.MEDIUM: EventSeverity.WARNING,
    AlarmPriority.LOW: EventSeverity.NOTICE,
}

# Kept in memory for operators; everything else only goes to the handlers
AUDITED_CATEGORIES = (EventCategory.AUDIT, EventCategory.ALARM)


# ----------------------------------------------------------------
# Structured Log Entry
# ----------------------------------------------------------------


@dataclass
class LogEntry:
    """Structured log entry for engine events."""

    wall_time: float
    severity: EventSeverity
    category: EventCategory
    message: str

    # Context
    device: str = ""  # Device/link name
    component: str = ""  # Component/subsystem
    breaker: str = ""  # Breaker id if applicable
    user: str = ""  # Operator if applicable

    event_id: str = field(default_factory=lambda: uuid.uuid4().hex)

    # Additional data
    data: dict[str, Any] = field(default_factory=dict)

    # Alarm-specific
    alarm_priority: AlarmPriority | None = None
    alarm_state: AlarmState | None = None

    def to_dict(self) -> dict[str, Any]:
        """Flat dict for the JSON log; empty context fields are left out."""
        out: dict[str, Any] = {
            "wall_time": self.wall_time,
            "severity": self.severity.name,
            "category": self.category.value,
            "message": self.message,
            "event_id": self.event_id,
        }
        for key in ("device", "component", "breaker", "user"):
            value = getattr(self, key)
            if value:
                out[key] = value
        if self.data:
            out["data"] = json.dumps(self.data)
        if self.alarm_priority:
            out["alarm_priority"] = self.alarm_priority.name
        if self.alarm_state:
            out["alarm_state"] = self.alarm_state.value
        return out

    def to_json(self) -> str:
        return json.dumps(self.to_dict())

    def to_human_readable(self) -> str:
        """One console line: severity, device and breaker context, message."""
        context = "".join(f"{part}:" for part in (self.device, self.breaker) if part)
        return f"[{self.severity.name:8s}] {context} {self.message}"


# ----------------------------------------------------------------
# Formatters
# ----------------------------------------------------------------


class ConsoleFormatter(logging.Formatter):
    """Plain console format with wall-clock prefix."""

    def __init__(self):
        super().__init__(
            fmt="%(asctime)s [%(levelname)8s] %(name)s: %(message)s"
        )


class JSONFormatter(logging.Formatter):
    """Format log records as JSON lines."""

    def __init__(self, device: str = ""):
        super().__init__()
        self.device = device

    def format(self, record: logging.LogRecord) -> str:
        """Format log record as JSON."""
        severity = LOGGING_TO_SEVERITY.get(record.levelno, EventSeverity.INFO)

        log_entry = LogEntry(
            wall_time=record.created,
            severity=severity,
            category=EventCategory.SYSTEM,
            message=record.getMessage(),
            device=self.device,
            component=record.name,
        )

        if record.exc_info:
            log_entry.data["exception"] = self.formatException(record.exc_info)

        return log_entry.to_json()


# ----------------------------------------------------------------
# Engine Logger - structured logging on top of stdlib logging
# ----------------------------------------------------------------


class EngineLogger:
    """
    Logger for engine components.

    Wraps Python's logging with:
    - Structured JSON file output (rotating)
    - Event classification
    - In-memory audit trail for audit and alarm events
    """

    def __init__(
        self,
        name: str,
        device: str = "",
        log_dir: Path | None = None,
        enable_json: bool = True,
        enable_console: bool = True,
        level: int = logging.INFO,
        max_audit_entries: int = 10000,
    ):
        """
        Initialise engine logger.

        Args:
            name: Logger name (typically module name)
            device: Device/link name for context
            log_dir: Directory for log files (None = no file logging)
            enable_json: Enable JSON formatted logs (requires log_dir)
            enable_console: Enable console output
            level: Minimum level emitted by the handlers
            max_audit_entries: Maximum audit trail entries to retain
        """
        self.name = name
        self.device = device
        self.log_dir = log_dir

        self.logger = logging.getLogger(name)
        self.logger.setLevel(logging.DEBUG)
        self.logger.propagate = False

        # Re-created loggers replace rather than stack handlers
        self.logger.handlers.clear()

        if enable_console:
            self._attach(logging.StreamHandler(), ConsoleFormatter(), level)

        if enable_json and log_dir:
            self.log_dir.mkdir(parents=True, exist_ok=True)
            # One file per device link, 10MB x 5 backups
            self._attach(
                logging.handlers.RotatingFileHandler(
                    self.log_dir / f"{device or 'engine'}.json.log",
                    maxBytes=10 * 1024 * 1024,
                    backupCount=5,
                ),
                JSONFormatter(device=device),
                level,
            )

        self.audit_trail: deque[LogEntry] = deque(maxlen=max_audit_entries)
        self._audit_lock = threading.Lock()

    def _attach(
        self, handler: logging.Handler, formatter: logging.Formatter, level: int
    ) -> None:
        handler.setLevel(level)
        handler.setFormatter(formatter)
        self.logger.addHandler(handler)

    # ----------------------------------------------------------------
    # Standard logging methods
    # ----------------------------------------------------------------

    def debug(self, message: str, **kwargs) -> None:
        self.logger.debug(message, **kwargs)

    def info(self, message: str, **kwargs) -> None:
        self.logger.info(message, **kwargs)

    def warning(self, message: str, **kwargs) -> None:
        self.logger.warning(message, **kwargs)

    def error(self, message: str, **kwargs) -> None:
        self.logger.error(message, **kwargs)

    def critical(self, message: str, **kwargs) -> None:
        self.logger.critical(message, **kwargs)

    def exception(self, message: str, **kwargs) -> None:
        self.logger.exception(message, **kwargs)

    # ----------------------------------------------------------------
    # Structured logging methods
    # ----------------------------------------------------------------

    def log_event(
        self,
        severity: EventSeverity,
        category: EventCategory,
        message: str,
        **kwargs,
    ) -> LogEntry:
        """
        Log a structured event.

        Args:
            severity: Event severity level
            category: Event category
            message: Event message
            **kwargs: Additional context (breaker, user, data, etc.)

        Returns:
            LogEntry that was created
        """
        device = kwargs.pop("device", self.device)

        entry = LogEntry(
            wall_time=time.time(),
            severity=severity,
            category=category,
            message=message,
            device=device,
            **kwargs,
        )

        log_level = SEVERITY_TO_LOGGING.get(severity, logging.INFO)
        self.logger.log(log_level, entry.to_human_readable())

        if category in AUDITED_CATEGORIES:
            with self._audit_lock:
                self.audit_trail.append(entry)

        return entry

    def log_audit(
        self, message: str, user: str = "", action: str = "", result: str = "", **kwargs
    ) -> LogEntry:
        """
        Log an operator command.

        Args:
            message: Audit message
            user: Operator who issued the command
            action: Action performed (toggle, set_max_threshold, ...)
            result: ACCEPTED, DEFERRED, REJECTED
            **kwargs: Additional context

        Returns:
            LogEntry that was created
        """
        data = kwargs.pop("data", {})
        data.update({"action": action, "result": result})

        return self.log_event(
            severity=EventSeverity.NOTICE,
            category=EventCategory.AUDIT,
            message=message,
            user=user,
            data=data,
            **kwargs,
        )

    def log_alarm(
        self,
        message: str,
        priority: AlarmPriority,
        state: AlarmState = AlarmState.ACTIVE,
        **kwargs,
    ) -> LogEntry:
        """
        Log an alarm (breaker trip, lost link).

        Args:
            message: Alarm message
            priority: Alarm priority
            state: Alarm state
            **kwargs: Additional context

        Returns:
            LogEntry that was created
        """
        return self.log_event(
            severity=PRIORITY_TO_SEVERITY[priority],
            category=EventCategory.ALARM,
            message=message,
            alarm_priority=priority,
            alarm_state=state,
            **kwargs,
        )

    # ----------------------------------------------------------------
    # Audit trail access
    # ----------------------------------------------------------------

    def get_audit_trail(
        self,
        limit: int = 100,
        category: EventCategory | None = None,
    ) -> list[LogEntry]:
        """Most recent audit and alarm entries, oldest first.

        Args:
            limit: Maximum number of entries to return
            category: Only AUDIT or only ALARM entries
        """
        with self._audit_lock:
            entries = [
                e for e in self.audit_trail if category is None or e.category == category
            ]
        return entries[-limit:]

    def clear_audit_trail(self) -> int:
        """Clear audit trail, returning the number of entries removed."""
        with self._audit_lock:
            count = len(self.audit_trail)
            self.audit_trail.clear()
            return count


# ----------------------------------------------------------------
# Global logger factory
# ----------------------------------------------------------------

_loggers: dict[str, EngineLogger] = {}
_loggers_lock = threading.Lock()
_default_log_dir: Path | None = None
_default_level: int = logging.INFO


def configure_logging(
    log_dir: Path | str | None = None,
    level: int | str = logging.INFO,
) -> None:
    """
    Configure global logging settings.

    Loggers created before this call keep their handlers.

    Args:
        log_dir: Directory for JSON log files
        level: Handler level (int or name such as "DEBUG")
    """
    global _default_log_dir, _default_level

    if log_dir:
        _default_log_dir = Path(log_dir)
        _default_log_dir.mkdir(parents=True, exist_ok=True)

    if isinstance(level, str):
        level = logging.getLevelName(level.upper())
        if not isinstance(level, int):
            level = logging.INFO
    _default_level = level


def get_logger(name: str, device: str = "", **kwargs) -> EngineLogger:
    """
    Get or create an engine logger.

    Thread-safe logger factory.

    Args:
        name: Logger name (typically __name__)
        device: Device/link name for context
        **kwargs: Additional EngineLogger arguments

    Returns:
        EngineLogger instance
    """
    logger_key = f"{name}:{device}"

    with _loggers_lock:
        if logger_key not in _loggers:
            if "log_dir" not in kwargs and _default_log_dir:
                kwargs["log_dir"] = _default_log_dir
            kwargs.setdefault("level", _default_level)

            _loggers[logger_key] = EngineLogger(name, device, **kwargs)

        return _loggers[logger_key]
