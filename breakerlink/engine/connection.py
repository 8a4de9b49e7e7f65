# breakerlink/engine/connection.py
"""
Connection lifecycle between a BreakerEngine and one device transport.

Two tasks per connection:
- reader: feeds every received chunk to the engine, one at a time
- writer: sends the off commands the fault detector queues

Operator requests are written inline so the caller learns whether the device
link accepted them. Every engine call is synchronous, so running them all on
one event loop keeps breaker state single-owner.

Any read failure, write failure, end of stream or framing overflow tears the
connection down and resets the engine to power-on defaults. There is no
reconnect; a new connection is an operator action.
"""

import asyncio
from enum import Enum
from typing import Any, Callable

from breakerlink.core.errors import TransportError
from breakerlink.core.logging_system import AlarmPriority, AlarmState, get_logger
from breakerlink.engine.breaker_engine import BreakerEngine, RequestOutcome
from breakerlink.engine.transport import Transport

__all__ = ["ConnectionState", "MonitorConnection"]


class ConnectionState(Enum):
    IDLE = "idle"
    CONNECTED = "connected"
    CLOSED = "closed"


class MonitorConnection:
    """
    Runs the read loop and command writes for one device link.

    Example:
        >>> transport = await open_tcp_transport("127.0.0.1", 7000)
        >>> connection = MonitorConnection(engine, transport)
        >>> await connection.start()
        >>> await connection.request_toggle("load1", False)
        <RequestOutcome.ACCEPTED: 'ACCEPTED'>
        >>> await connection.stop()
    """

    def __init__(self, engine: BreakerEngine, transport: Transport):
        self.engine = engine
        self.transport = transport
        self.state = ConnectionState.IDLE
        self.closed_reason: str | None = None

        self._stop_event = asyncio.Event()
        self._closed_event = asyncio.Event()
        self._outbound_ready = asyncio.Event()
        self._write_lock = asyncio.Lock()
        self._read_task: asyncio.Task | None = None
        self._write_task: asyncio.Task | None = None

        self.logger = get_logger(self.__class__.__name__, device=engine.device_name)

    @property
    def is_connected(self) -> bool:
        return self.state == ConnectionState.CONNECTED

    # ----------------------------------------------------------------
    # Lifecycle
    # ----------------------------------------------------------------

    async def start(self) -> None:
        """Attach the engine to the link and start the read and write tasks."""
        if self.state != ConnectionState.IDLE:
            self.logger.warning(f"Connection already {self.state.value}")
            return

        self.engine.attach_link()
        self.state = ConnectionState.CONNECTED
        self._read_task = asyncio.create_task(self._read_loop())
        self._write_task = asyncio.create_task(self._write_loop())
        self.logger.info("Monitor connection started")

    async def stop(self) -> None:
        """Close the link. Breakers reset to power-on defaults."""
        await self._teardown("stopped by operator")

    async def wait_closed(self) -> None:
        """Block until teardown has finished.

        On return the transport is closed and the engine is back at its
        power-on defaults.
        """
        await self._closed_event.wait()

    async def _teardown(self, reason: str) -> None:
        if self.state == ConnectionState.CLOSED:
            # Another task is tearing down; return once it has finished
            await self._closed_event.wait()
            return
        if self.state != ConnectionState.CONNECTED:
            return
        self.state = ConnectionState.CLOSED
        self.closed_reason = reason
        self._stop_event.set()

        try:
            current = asyncio.current_task()
            for task in (self._read_task, self._write_task):
                if task is None or task is current or task.done():
                    continue
                task.cancel()
                try:
                    await task
                except asyncio.CancelledError:
                    pass

            await self.transport.close()
        finally:
            self.engine.detach_link()
            self.engine.reset()
            self._closed_event.set()

        self.logger.log_alarm(
            message=f"Device link closed: {reason}",
            priority=AlarmPriority.MEDIUM,
            state=AlarmState.ACTIVE,
        )

    # ----------------------------------------------------------------
    # Read loop
    # ----------------------------------------------------------------

    async def _read_loop(self) -> None:
        reason = "end of stream"
        stop_wait = asyncio.create_task(self._stop_event.wait())
        read: asyncio.Task | None = None
        try:
            while self.is_connected:
                read = asyncio.create_task(self.transport.read())
                done, _ = await asyncio.wait(
                    {read, stop_wait}, return_when=asyncio.FIRST_COMPLETED
                )
                if read not in done:
                    return

                chunk = read.result()
                if not chunk:
                    self.engine.end_of_stream()
                    break

                self.engine.on_bytes_received(chunk)
                if self.engine.has_outbound():
                    self._outbound_ready.set()
        except TransportError as e:
            reason = f"read failed: {e}"
            self.logger.error(f"Device link failed: {e}")
        finally:
            stop_wait.cancel()
            if read is not None and not read.done():
                read.cancel()

        await self._teardown(reason)

    # ----------------------------------------------------------------
    # Writes
    # ----------------------------------------------------------------

    async def _write_loop(self) -> None:
        while self.is_connected:
            await self._outbound_ready.wait()
            self._outbound_ready.clear()
            try:
                await self._flush()
            except TransportError:
                return

    async def _flush(self) -> None:
        """Write every queued command in order, confirming each one.

        Raises:
            TransportError: If a write failed; the connection is torn down
        """
        async with self._write_lock:
            for command in self.engine.take_outbound():
                if not self.is_connected:
                    return
                try:
                    await self.transport.write(command.payload)
                except TransportError as e:
                    self.logger.error(
                        f"Write of {command.kind.value} for '{command.breaker_id}' failed: {e}"
                    )
                    await self._teardown(f"write failed: {e}")
                    raise
                self.engine.confirm_sent(command)

    async def _request(self, method: Callable[..., RequestOutcome], *args: Any) -> RequestOutcome:
        if not self.is_connected:
            raise TransportError("Device link is not connected")

        outcome = method(*args)
        if outcome != RequestOutcome.DEFERRED:
            return outcome

        await self._flush()
        if not self.is_connected:
            raise TransportError(f"Device link closed: {self.closed_reason}")
        return RequestOutcome.ACCEPTED

    async def request_toggle(self, breaker_id: str, on: bool, user: str = "") -> RequestOutcome:
        return await self._request(self.engine.request_toggle, breaker_id, on, user)

    async def request_set_max_threshold(
        self, breaker_id: str, value: float, user: str = ""
    ) -> RequestOutcome:
        return await self._request(
            self.engine.request_set_max_threshold, breaker_id, value, user
        )

    async def request_set_min_threshold(
        self, breaker_id: str, value: float, user: str = ""
    ) -> RequestOutcome:
        return await self._request(
            self.engine.request_set_min_threshold, breaker_id, value, user
        )

    async def request_set_grace_period(
        self, breaker_id: str, grace_period_ms: int, user: str = ""
    ) -> RequestOutcome:
        return await self._request(
            self.engine.request_set_grace_period, breaker_id, grace_period_ms, user
        )
