# tests/integration/test_breaker_link_system.py
"""
Integration tests for the full breaker link.

Tests the engine against a device simulated by a local TCP server:
- Config files -> ConfigLoader -> BreakerEngine.from_config
- Telemetry over a real asyncio stream, arbitrary chunking
- Operator commands written to the device
- Detector overrides written to the device
- History persisted to the JSON file store
- Device disconnect resets the engine
"""

import asyncio

import pytest

from breakerlink.core import logging_system
from breakerlink.core.logging_system import EventCategory
from breakerlink.engine.breaker_engine import BreakerEngine, RequestOutcome
from breakerlink.engine.connection import ConnectionState, MonitorConnection
from breakerlink.engine.transport import open_tcp_transport
from breakerlink.state.history import JsonFileHistoryStore
from config.config_loader import ConfigLoader


@pytest.fixture(autouse=True)
def clear_logger_cache():
    """Clear logger cache before each test so audit trails start empty."""
    logging_system._loggers.clear()
    yield
    logging_system._loggers.clear()


class SimulatedDevice:
    """TCP server standing in for the device bridge."""

    def __init__(self):
        self.received = bytearray()
        self.writer: asyncio.StreamWriter | None = None
        self.connected = asyncio.Event()
        self.server: asyncio.AbstractServer | None = None

    async def start(self) -> int:
        self.server = await asyncio.start_server(self._handle, "127.0.0.1", 0)
        return self.server.sockets[0].getsockname()[1]

    async def _handle(self, reader, writer):
        self.writer = writer
        self.connected.set()
        while True:
            data = await reader.read(1024)
            if not data:
                break
            self.received.extend(data)

    async def send(self, data: bytes) -> None:
        self.writer.write(data)
        await self.writer.drain()

    async def disconnect(self) -> None:
        self.writer.close()
        await self.writer.wait_closed()

    async def stop(self) -> None:
        if self.writer and not self.writer.is_closing():
            self.writer.close()
        self.server.close()
        await self.server.wait_closed()


@pytest.fixture
async def device():
    dev = SimulatedDevice()
    port = await dev.start()
    dev.port = port
    yield dev
    await dev.stop()


@pytest.fixture
def system_config(temp_config_dir, write_config_file, tmp_path):
    write_config_file(
        {
            "breakers": [
                {"id": "overall", "name": "Main Breaker", "overall": True},
                {"id": "load1", "name": "Load 1", "max_threshold": 5.0, "min_threshold": 0.1},
                {"id": "load2", "name": "Load 2", "max_threshold": 5.0, "min_threshold": 0.1},
            ]
        },
        "breakers.yml",
    )
    write_config_file({"protocol": {"profile": "text_v2_grace"}}, "protocol.yml")
    write_config_file(
        {"history": {"path": str(tmp_path / "history.json")}}, "history.yml"
    )
    return ConfigLoader(temp_config_dir).load_all()


@pytest.fixture
async def linked_system(system_config, device, wait_for_condition):
    engine = BreakerEngine.from_config(system_config)
    transport = await open_tcp_transport("127.0.0.1", device.port, timeout=2.0)
    connection = MonitorConnection(engine, transport)
    await connection.start()
    await asyncio.wait_for(device.connected.wait(), timeout=2.0)
    yield engine, connection
    await connection.stop()


# ================================================================
# END-TO-END TESTS
# ================================================================
@pytest.mark.asyncio
async def test_telemetry_to_persisted_history(
    linked_system, device, system_config, wait_for_condition
):
    """Test the reference record through a real socket.

    WHY: Decoding, detection and durable history work together.
    """
    engine, _ = linked_system

    await device.send(b"3|1.25|0.")
    await device.send(b"80|0.80|0.00\n")
    await wait_for_condition(lambda: engine.snapshot().master.is_on, timeout=2.0)

    stored = JsonFileHistoryStore(system_config["history"]["path"]).load()
    assert [(e.breaker_name, e.type.value, e.reason) for e in stored] == [
        ("Main Breaker", "activated", "Manual"),
        ("Load 1", "activated", "Manual"),
    ]


@pytest.mark.asyncio
async def test_operator_commands_reach_device(linked_system, device, wait_for_condition):
    """Test commands are written in order and applied once sent.

    WHY: The device sees exactly what the operator asked for.
    """
    engine, connection = linked_system

    assert await connection.request_toggle("overall", True) == RequestOutcome.ACCEPTED
    assert await connection.request_set_max_threshold("load1", 4.5) == RequestOutcome.ACCEPTED
    assert await connection.request_set_grace_period("load1", 500) == RequestOutcome.ACCEPTED

    expected = b"T,0,1\nM,1,4.500\nG,1,500\n"
    await wait_for_condition(lambda: bytes(device.received) == expected, timeout=2.0)
    assert engine.snapshot()[1].max_threshold == 4.5
    assert engine.snapshot()[1].grace_period_ms == 500
    assert engine.snapshot().master.is_on is True


@pytest.mark.asyncio
async def test_local_overload_sends_off_command(linked_system, device, wait_for_condition):
    engine, _ = linked_system

    await device.send(b"7|2.0|2.0|1.0|1.0\n7|6.0|6.0|1.0|5.5\n")

    await wait_for_condition(lambda: bytes(device.received) == b"T,2,0\n", timeout=2.0)
    assert engine.snapshot()[2].last_trip_reason.value == "Overload"
    alarms = engine.logger.get_audit_trail(category=EventCategory.ALARM)
    assert any("Overload" in a.message for a in alarms)


@pytest.mark.asyncio
async def test_device_disconnect_resets_engine(linked_system, device, wait_for_condition):
    """Test a dropped device link returns the table to defaults.

    WHY: No retries; state is rebuilt from the next connection.
    """
    engine, connection = linked_system
    await device.send(b"7|2.0|2.0|1.0|1.0\n")
    await wait_for_condition(lambda: engine.snapshot().master.is_on, timeout=2.0)

    await device.disconnect()
    await asyncio.wait_for(connection.wait_closed(), timeout=2.0)

    assert connection.state == ConnectionState.CLOSED
    assert all(not b.is_on for b in engine.snapshot())
    assert len(engine.history_snapshot()) == 3
