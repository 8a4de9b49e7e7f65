# breakerlink/engine/breaker_engine.py
"""
Breaker engine.

Single owner of the breaker table. Every state change goes through one of
the engine's entry points, each of which runs to completion (including the
durable history append) before returning. The engine never awaits, so an
asyncio connection serialises all calls simply by making them from one task
at a time.

Inbound:  bytes -> decoder -> profile.interpret -> FaultDetector -> snapshot
Outbound: request_* -> CommandEncoder -> outbox -> transport -> confirm_sent
"""

from collections import deque
from dataclasses import dataclass, replace
from enum import Enum
from pathlib import Path
from typing import Any

from breakerlink.core.engine_clock import EngineClock
from breakerlink.core.errors import (
    DecodeError,
    FramingOverflowError,
    PersistenceError,
    ValidationError,
)
from breakerlink.core.logging_system import (
    AlarmPriority,
    AlarmState,
    EventCategory,
    EventSeverity,
    get_logger,
)
from breakerlink.engine.alerts import (
    AlertSound,
    LoggingNotifier,
    Notifier,
    SilentAlertSound,
)
from breakerlink.protocols import (
    CommandEncoder,
    CommandKind,
    OutboundCommand,
    ProtocolProfile,
    TelemetryUpdate,
    create_profile,
)
from breakerlink.state.breaker_table import Breaker, BreakerTable
from breakerlink.state.fault_detector import Detection, FaultDetector
from breakerlink.state.history import (
    HistoryLedger,
    HistoryLog,
    HistoryStore,
    InMemoryHistoryStore,
    JsonFileHistoryStore,
)

__all__ = ["RequestOutcome", "EngineStats", "BreakerEngine"]


class RequestOutcome(Enum):
    """Result of an operator request."""

    ACCEPTED = "ACCEPTED"  # Applied (and written, when a link is attached)
    DEFERRED = "DEFERRED"  # Queued, waiting for the transport write
    REJECTED = "REJECTED"  # Failed validation, nothing sent


@dataclass
class EngineStats:
    """Engine counters."""

    records_decoded: int = 0
    decode_errors: int = 0
    updates_applied: int = 0
    commands_sent: int = 0
    requests_rejected: int = 0
    persistence_failures: int = 0
    resets: int = 0


class BreakerEngine:
    """
    Telemetry decoding and fault-detection engine.

    Example:
        >>> engine = BreakerEngine(breaker_configs, TextV2GraceProfile())
        >>> engine.on_bytes_received(b"3|1.25|0.80|0.80|0.00\\n")
        >>> engine.snapshot().master.is_on
        True
        >>> engine.request_set_max_threshold("load1", 4.5)
        <RequestOutcome.ACCEPTED: 'ACCEPTED'>
    """

    def __init__(
        self,
        breaker_configs: list[dict[str, Any]],
        profile: ProtocolProfile,
        history: HistoryLedger | None = None,
        clock: EngineClock | None = None,
        notifier: Notifier | None = None,
        alert_sound: AlertSound | None = None,
        device_name: str = "breaker_panel",
    ):
        """
        Initialise the engine and load history from its store.

        Args:
            breaker_configs: Ordered breaker definitions, master first
            profile: Protocol revision spoken by the device
            history: History ledger (in-memory if omitted)
            clock: Engine clock (realtime if omitted)
            notifier: Trip notification collaborator
            alert_sound: Trip sound collaborator
            device_name: Name used in log context

        Raises:
            ConfigurationError: If the breaker configuration is invalid
        """
        self.device_name = device_name
        self.profile = profile
        self.encoder = CommandEncoder(profile)
        self.detector = FaultDetector()
        self.clock = clock if clock is not None else EngineClock()
        self.history = history if history is not None else HistoryLedger()
        self.notifier = notifier if notifier is not None else LoggingNotifier(device=device_name)
        self.alert_sound = alert_sound if alert_sound is not None else SilentAlertSound()

        self.logger = get_logger(self.__class__.__name__, device=device_name)

        self._initial_table = BreakerTable.from_config(
            breaker_configs, labels=profile.labels()
        )
        self._table = self._initial_table
        self.decoder = profile.create_decoder()
        self._outbox: deque[OutboundCommand] = deque()
        self.link_attached = False
        self.stats = EngineStats()

        if len(self._table) > profile.slot_count:
            self.logger.warning(
                f"{len(self._table) - profile.slot_count} breakers have no telemetry "
                f"slot under {profile.kind.value} (load_slots={profile.load_slots})"
            )

        self.history.load()

        self.logger.info(
            f"BreakerEngine '{device_name}' created: {len(self._table)} breakers, "
            f"profile={profile.kind.value}"
        )

    @classmethod
    def from_config(
        cls,
        config: dict[str, Any],
        history_store: HistoryStore | None = None,
        **kwargs: Any,
    ) -> "BreakerEngine":
        """Build an engine from ConfigLoader.load_all() output.

        Args:
            config: Merged configuration dictionary
            history_store: Store override (defaults to the configured file)
            **kwargs: Passed through to the constructor
        """
        protocol_cfg = config.get("protocol", {})
        profile = create_profile(
            protocol_cfg.get("profile", "text_v2_grace"),
            load_slots=protocol_cfg.get("load_slots"),
            max_line_length=protocol_cfg.get("max_line_length"),
        )

        if history_store is None:
            history_cfg = config.get("history", {})
            path = history_cfg.get("path")
            if path:
                history_store = JsonFileHistoryStore(
                    Path(path),
                    max_bytes=history_cfg.get("max_bytes", 5 * 1024 * 1024),
                )
            else:
                history_store = InMemoryHistoryStore()

        return cls(
            config.get("breakers", []),
            profile,
            history=HistoryLedger(history_store),
            **kwargs,
        )

    # ----------------------------------------------------------------
    # Link lifecycle
    # ----------------------------------------------------------------

    def attach_link(self) -> None:
        """A transport is connected; commands now wait for it."""
        self.decoder.reset()
        self.link_attached = True
        self.logger.info(f"Link attached ({self.profile.kind.value})")

    def detach_link(self) -> None:
        """The transport is gone; requests apply locally again."""
        self.link_attached = False

    def reset(self) -> None:
        """Return to power-on defaults after a broken link.

        Breaker states, readings and operator-set limits revert to the
        configured table; grace timers, decoder buffers and unsent commands
        are dropped. History is kept.
        """
        dropped = len(self._outbox)
        self._table = self._initial_table
        self.detector.reset()
        self.decoder.reset()
        self._outbox.clear()
        self.stats.resets += 1
        self.logger.warning(
            f"Engine reset to power-on defaults ({dropped} unsent commands dropped)"
        )

    # ----------------------------------------------------------------
    # Inbound telemetry
    # ----------------------------------------------------------------

    def on_bytes_received(self, chunk: bytes) -> list[HistoryLog]:
        """Decode a chunk and apply every complete record in order.

        Malformed records are counted, logged and skipped.

        Returns:
            History entries produced by the chunk, in order

        Raises:
            FramingOverflowError: If a text line outgrows the line limit;
                records completed before it are applied first
        """
        try:
            records = self.decoder.feed(chunk)
        except FramingOverflowError as e:
            self._apply_records(e.records)
            raise
        return self._apply_records(records)

    def _apply_records(self, records: list[bytes]) -> list[HistoryLog]:
        produced: list[HistoryLog] = []
        for record in records:
            try:
                update = self.profile.interpret(record)
            except DecodeError as e:
                self.stats.decode_errors += 1
                self.logger.warning(f"Skipping malformed telemetry record: {e}")
                continue
            self.stats.records_decoded += 1
            produced.extend(self.apply_update(update))
        return produced

    def end_of_stream(self) -> None:
        """The device closed the stream; drop any partial record."""
        self.decoder.finish()

    def apply_update(self, update: TelemetryUpdate) -> list[HistoryLog]:
        """Run the fault detector on one update and commit the result.

        Also the entry point for synthetic telemetry.
        """
        detection = self.detector.evaluate(
            self._table,
            update,
            now=self.clock.monotonic(),
            timestamp=self.clock.timestamp(),
        )
        self._commit(detection)
        self.stats.updates_applied += 1

        for breaker in detection.overrides:
            if self.link_attached:
                self._outbox.append(self.encoder.override_off(breaker))
                self.logger.info(
                    f"Queued off command for '{breaker.breaker_id}' "
                    f"({breaker.last_trip_reason.value}) to match local trip"
                )

        return detection.history

    # ----------------------------------------------------------------
    # Operator requests
    # ----------------------------------------------------------------

    def request_toggle(self, breaker_id: str, on: bool, user: str = "") -> RequestOutcome:
        """Switch a breaker on or off.

        A load breaker cannot be switched on while the master is off.
        """
        try:
            command = self.encoder.toggle(self._table, breaker_id, on)
            target = self._table[command.index]
            if on and not target.is_overall and not self._table.master.is_on:
                raise ValidationError(
                    f"Cannot switch on '{breaker_id}' while the master breaker is off"
                )
        except ValidationError as e:
            return self._reject(CommandKind.TOGGLE, breaker_id, e, user)
        return self._submit(command, user)

    def request_set_max_threshold(
        self, breaker_id: str, value: float, user: str = ""
    ) -> RequestOutcome:
        try:
            command = self.encoder.set_max_threshold(self._table, breaker_id, value)
        except ValidationError as e:
            return self._reject(CommandKind.SET_MAX_THRESHOLD, breaker_id, e, user)
        return self._submit(command, user)

    def request_set_min_threshold(
        self, breaker_id: str, value: float, user: str = ""
    ) -> RequestOutcome:
        try:
            command = self.encoder.set_min_threshold(self._table, breaker_id, value)
        except ValidationError as e:
            return self._reject(CommandKind.SET_MIN_THRESHOLD, breaker_id, e, user)
        return self._submit(command, user)

    def request_set_grace_period(
        self, breaker_id: str, grace_period_ms: int, user: str = ""
    ) -> RequestOutcome:
        try:
            command = self.encoder.set_grace_period(
                self._table, breaker_id, grace_period_ms
            )
        except ValidationError as e:
            return self._reject(CommandKind.SET_GRACE_PERIOD, breaker_id, e, user)
        return self._submit(command, user)

    def _submit(self, command: OutboundCommand, user: str) -> RequestOutcome:
        if self.link_attached:
            self._outbox.append(command)
            outcome = RequestOutcome.DEFERRED
        else:
            self.confirm_sent(command)
            outcome = RequestOutcome.ACCEPTED

        self.logger.log_audit(
            f"{command.kind.value} '{command.breaker_id}' -> {command.value}",
            user=user,
            action=command.kind.value,
            result=outcome.value,
            breaker=command.breaker_id,
            data={"value": command.value},
        )
        return outcome

    def _reject(
        self, kind: CommandKind, breaker_id: str, error: ValidationError, user: str
    ) -> RequestOutcome:
        self.stats.requests_rejected += 1
        self.logger.log_audit(
            f"{kind.value} '{breaker_id}' rejected: {error}",
            user=user,
            action=kind.value,
            result=RequestOutcome.REJECTED.value,
            breaker=breaker_id,
        )
        return RequestOutcome.REJECTED

    # ----------------------------------------------------------------
    # Outbox
    # ----------------------------------------------------------------

    def has_outbound(self) -> bool:
        return bool(self._outbox)

    def take_outbound(self) -> list[OutboundCommand]:
        """Remove and return every queued command, oldest first."""
        commands = list(self._outbox)
        self._outbox.clear()
        return commands

    def confirm_sent(self, command: OutboundCommand) -> list[HistoryLog]:
        """Apply the local effect of a command the transport accepted.

        Detector overrides are already applied and only counted here.

        Returns:
            History entries produced (toggles only)
        """
        self.stats.commands_sent += 1
        if command.from_detector:
            return []

        current = self._table[command.index]

        if command.kind == CommandKind.TOGGLE:
            detection = self.detector.apply_toggle(
                self._table, command.index, bool(command.value), self.clock.timestamp()
            )
            self._commit(detection)
            return detection.history

        if command.kind == CommandKind.SET_MAX_THRESHOLD:
            updated = replace(current, max_threshold=float(command.value))
        elif command.kind == CommandKind.SET_MIN_THRESHOLD:
            updated = replace(current, min_threshold=float(command.value))
        else:
            updated = replace(current, grace_period_ms=int(command.value))

        self._table = self._table.with_breaker(updated)
        return []

    # ----------------------------------------------------------------
    # Commit helpers
    # ----------------------------------------------------------------

    def _commit(self, detection: Detection) -> None:
        self._table = detection.table
        self._record_history(detection.history)
        for entry in detection.history:
            self.logger.log_event(
                EventSeverity.INFO,
                EventCategory.PROCESS,
                f"{entry.breaker_name} {entry.type.value} ({entry.reason})",
            )
        for breaker in detection.trips:
            self._raise_trip_alert(breaker)

    def _record_history(self, entries: list[HistoryLog]) -> None:
        if not entries:
            return
        try:
            self.history.append(entries)
        except PersistenceError as e:
            self.stats.persistence_failures += 1
            self.logger.warning(
                f"History store rejected {len(entries)} entries, "
                f"continuing with in-memory history: {e}"
            )
            self.history.detach_store()
            self.history.append(entries)

    def _raise_trip_alert(self, breaker: Breaker) -> None:
        reason = breaker.last_trip_reason.value if breaker.last_trip_reason else "Trip"
        self.logger.log_alarm(
            message=f"Breaker '{breaker.breaker_id}' tripped: {reason}",
            priority=AlarmPriority.HIGH,
            state=AlarmState.ACTIVE,
            breaker=breaker.breaker_id,
            data={
                "reason": reason,
                "measurement1": breaker.measurement1,
                "max_threshold": breaker.max_threshold,
                "min_threshold": breaker.min_threshold,
            },
        )
        try:
            self.notifier.notify(
                f"{breaker.name} tripped",
                f"{reason} at {breaker.measurement1:.2f} {breaker.measurement1_label}".strip(),
            )
        except Exception as e:
            self.logger.error(f"Trip notification for '{breaker.breaker_id}' failed: {e}")
        try:
            self.alert_sound.play()
        except Exception as e:
            self.logger.error(f"Alert sound for '{breaker.breaker_id}' failed: {e}")

    # ----------------------------------------------------------------
    # Snapshots
    # ----------------------------------------------------------------

    def snapshot(self) -> BreakerTable:
        """Current breaker table (immutable)."""
        return self._table

    def history_snapshot(self) -> list[HistoryLog]:
        """History, newest first."""
        return self.history.entries()

    def clear_history(self) -> None:
        try:
            self.history.clear()
        except PersistenceError as e:
            self.stats.persistence_failures += 1
            self.logger.warning(f"History store rejected clear, clearing in memory: {e}")
            self.history.detach_store()
            self.history.clear()
        self.logger.log_audit("History cleared", action="clear_history", result="ACCEPTED")

    def get_status(self) -> dict[str, Any]:
        return {
            "device_name": self.device_name,
            "protocol": self.profile.describe(),
            "link_attached": self.link_attached,
            "history_entries": len(self.history),
            "history_degraded": self.history.degraded,
            "pending_commands": len(self._outbox),
            "stats": {
                "records_decoded": self.stats.records_decoded,
                "decode_errors": self.stats.decode_errors,
                "updates_applied": self.stats.updates_applied,
                "commands_sent": self.stats.commands_sent,
                "requests_rejected": self.stats.requests_rejected,
                "persistence_failures": self.stats.persistence_failures,
                "resets": self.stats.resets,
            },
            "breakers": self._table.to_list(),
        }

    def __repr__(self) -> str:
        return (
            f"<{self.__class__.__name__} '{self.device_name}' "
            f"(profile: {self.profile.kind.value}, link: {self.link_attached})>"
        )
