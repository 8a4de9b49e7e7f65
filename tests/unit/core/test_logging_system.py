# tests/unit/core/test_logging_system.py
"""Tests for the engine logging system.

Test Coverage:
- EventSeverity ordering
- LogEntry serialisation
- JSONFormatter output
- EngineLogger audit trail and alarms
- Logger factory (get_logger, configure_logging)
- Thread safety of the audit trail
"""

import json
import logging
import threading

import pytest

from breakerlink.core import logging_system
from breakerlink.core.logging_system import (
    AlarmPriority,
    AlarmState,
    EngineLogger,
    EventCategory,
    EventSeverity,
    JSONFormatter,
    LogEntry,
    configure_logging,
    get_logger,
)


@pytest.fixture(autouse=True)
def restore_logging_defaults():
    """Keep factory state from leaking between tests."""
    logging_system._loggers.clear()
    yield
    logging_system._loggers.clear()
    logging_system._default_log_dir = None
    logging_system._default_level = logging.INFO


# ================================================================
# ENUM AND ENTRY TESTS
# ================================================================
class TestLogEntry:
    """Test structured entries."""

    def test_severity_values_ordered(self):
        """Test lower value means more severe.

        WHY: Severity ordering drives filtering.
        """
        assert EventSeverity.CRITICAL.value < EventSeverity.ALERT.value
        assert EventSeverity.WARNING.value < EventSeverity.INFO.value
        assert EventSeverity.INFO.value < EventSeverity.DEBUG.value

    def test_to_dict_includes_context(self):
        entry = LogEntry(
            wall_time=1.0,
            severity=EventSeverity.ALERT,
            category=EventCategory.ALARM,
            message="Breaker 'load1' tripped: Overload",
            device="panel",
            breaker="load1",
            data={"reason": "Overload"},
            alarm_priority=AlarmPriority.HIGH,
            alarm_state=AlarmState.ACTIVE,
        )

        data = entry.to_dict()

        assert data["severity"] == "ALERT"
        assert data["category"] == "alarm"
        assert data["breaker"] == "load1"
        assert json.loads(data["data"]) == {"reason": "Overload"}
        assert data["alarm_priority"] == "HIGH"
        assert "user" not in data

    def test_human_readable(self):
        entry = LogEntry(
            wall_time=1.0,
            severity=EventSeverity.INFO,
            category=EventCategory.PROCESS,
            message="Load 1 activated",
            device="panel",
        )

        assert entry.to_human_readable() == "[INFO    ] panel: Load 1 activated"

    def test_json_formatter(self):
        record = logging.LogRecord(
            "breakerlink.test", logging.WARNING, __file__, 1, "decode failed", None, None
        )

        line = JSONFormatter(device="panel").format(record)

        data = json.loads(line)
        assert data["severity"] == "WARNING"
        assert data["device"] == "panel"
        assert data["component"] == "breakerlink.test"
        assert data["message"] == "decode failed"


# ================================================================
# ENGINE LOGGER TESTS
# ================================================================
class TestEngineLogger:
    """Test the structured logger."""

    def test_audit_records_operator_command(self):
        """Test operator commands land in the audit trail.

        WHY: Every request outcome must be traceable.
        """
        logger = EngineLogger("test.audit", device="panel", enable_console=False)

        logger.log_audit(
            "set_max_threshold 'load1' -> 4.5",
            user="operator",
            action="set_max_threshold",
            result="ACCEPTED",
            breaker="load1",
        )

        [entry] = logger.get_audit_trail()
        assert entry.category == EventCategory.AUDIT
        assert entry.severity == EventSeverity.NOTICE
        assert entry.user == "operator"
        assert entry.breaker == "load1"
        assert entry.data == {"action": "set_max_threshold", "result": "ACCEPTED"}

    def test_alarm_severity_follows_priority(self):
        logger = EngineLogger("test.alarm", enable_console=False)

        entry = logger.log_alarm("Trip", priority=AlarmPriority.HIGH)

        assert entry.severity == EventSeverity.ALERT
        assert entry.alarm_state == AlarmState.ACTIVE
        assert logger.get_audit_trail(category=EventCategory.ALARM) == [entry]

    def test_process_events_not_in_audit_trail(self):
        logger = EngineLogger("test.process", enable_console=False)

        logger.log_event(EventSeverity.INFO, EventCategory.PROCESS, "Load 1 activated")

        assert logger.get_audit_trail() == []

    def test_audit_trail_is_bounded(self):
        logger = EngineLogger("test.bounded", enable_console=False, max_audit_entries=3)

        for i in range(5):
            logger.log_audit(f"command {i}")

        trail = logger.get_audit_trail()
        assert [e.message for e in trail] == ["command 2", "command 3", "command 4"]

    def test_clear_audit_trail(self):
        logger = EngineLogger("test.clear", enable_console=False)
        logger.log_audit("a")
        logger.log_audit("b")

        assert logger.clear_audit_trail() == 2
        assert logger.get_audit_trail() == []

    def test_json_log_file_written(self, tmp_path):
        logger = EngineLogger(
            "test.json", device="panel", log_dir=tmp_path, enable_console=False
        )

        logger.warning("History store rejected 2 entries")
        for handler in logger.logger.handlers:
            handler.flush()

        lines = (tmp_path / "panel.json.log").read_text().splitlines()
        assert json.loads(lines[-1])["message"] == "History store rejected 2 entries"

    def test_concurrent_audit_writes(self):
        """Test the audit trail under concurrent writers.

        WHY: Notifiers may log from other threads.
        """
        logger = EngineLogger("test.threads", enable_console=False)

        def writer(n):
            for i in range(50):
                logger.log_audit(f"thread {n} command {i}")

        threads = [threading.Thread(target=writer, args=(n,)) for n in range(4)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert len(logger.get_audit_trail(limit=1000)) == 200


# ================================================================
# FACTORY TESTS
# ================================================================
class TestLoggerFactory:
    """Test get_logger and configure_logging."""

    def test_get_logger_caches_by_name_and_device(self):
        first = get_logger("breakerlink.engine", device="panel")

        assert get_logger("breakerlink.engine", device="panel") is first
        assert get_logger("breakerlink.engine", device="other") is not first

    def test_configure_logging_sets_log_dir(self, tmp_path):
        configure_logging(log_dir=tmp_path / "logs", level="DEBUG")

        logger = get_logger("breakerlink.configured", device="panel")

        assert logger.log_dir == tmp_path / "logs"
        assert (tmp_path / "logs").is_dir()

    def test_unknown_level_name_falls_back_to_info(self):
        configure_logging(level="CHATTY")

        assert logging_system._default_level == logging.INFO
