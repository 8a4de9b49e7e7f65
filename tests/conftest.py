# tests/conftest.py
"""Shared pytest fixtures for breaker engine tests.

This file provides common fixtures used across all test modules,
following the bottom-up testing strategy where foundation components
are tested with real dependencies wherever possible. Only the byte
transport is faked, since it is the I/O seam.
"""

import asyncio
import tempfile
from datetime import datetime, timezone
from pathlib import Path
from typing import Generator

import pytest
import yaml

from breakerlink.core.engine_clock import EngineClock, TimeMode
from breakerlink.core.errors import TransportError
from breakerlink.engine.breaker_engine import BreakerEngine
from breakerlink.engine.transport import Transport
from breakerlink.protocols import BinaryV1Profile, TextV1Profile, TextV2GraceProfile
from breakerlink.state.history import HistoryLedger, InMemoryHistoryStore


# ----------------------------------------------------------------
# Configuration fixtures
# ----------------------------------------------------------------
@pytest.fixture
def temp_config_dir() -> Generator[Path, None, None]:
    """Create a temporary directory for test configuration files.

    Yields:
        Path to temporary configuration directory
    """
    with tempfile.TemporaryDirectory() as tmpdir:
        yield Path(tmpdir)


@pytest.fixture
def write_config_file(temp_config_dir):
    """Factory fixture for writing YAML configuration files.

    Returns:
        Function that writes config dict to YAML file
    """

    def _write_config(config: dict, filename: str = "breakers.yml") -> Path:
        config_file = temp_config_dir / filename
        with open(config_file, "w") as f:
            yaml.dump(config, f)
        return config_file

    return _write_config


@pytest.fixture
def breaker_configs() -> list[dict]:
    """Master + two loads, default limits, no grace period.

    Returns:
        Ordered breaker definitions
    """
    return [
        {"id": "overall", "name": "Main Breaker", "overall": True},
        {"id": "load1", "name": "Load 1", "max_threshold": 5.0, "min_threshold": 0.1},
        {"id": "load2", "name": "Load 2", "max_threshold": 5.0, "min_threshold": 0.1},
    ]


# ----------------------------------------------------------------
# Time fixtures
# ----------------------------------------------------------------
@pytest.fixture
def stepped_clock() -> EngineClock:
    """Engine clock that only moves when stepped.

    Returns:
        STEPPED EngineClock starting at 2024-01-01T00:00:00Z
    """
    return EngineClock(
        mode=TimeMode.STEPPED,
        start=datetime(2024, 1, 1, tzinfo=timezone.utc),
    )


# ----------------------------------------------------------------
# Engine fixtures
# ----------------------------------------------------------------
@pytest.fixture
def history_store() -> InMemoryHistoryStore:
    return InMemoryHistoryStore()


@pytest.fixture
def make_engine(breaker_configs, stepped_clock, history_store):
    """Factory fixture for engines with real components.

    Returns:
        Function building a BreakerEngine for a profile name
    """
    profiles = {
        "text_v1": TextV1Profile,
        "text_v2_grace": TextV2GraceProfile,
        "binary_v1": BinaryV1Profile,
    }

    def _make(profile: str = "text_v2_grace", configs: list[dict] | None = None, **kwargs):
        kwargs.setdefault("history", HistoryLedger(history_store))
        kwargs.setdefault("clock", stepped_clock)
        return BreakerEngine(
            configs if configs is not None else breaker_configs,
            profiles[profile](),
            **kwargs,
        )

    return _make


@pytest.fixture
def engine(make_engine) -> BreakerEngine:
    """Text (grace) engine over the default breaker table."""
    return make_engine()


# ----------------------------------------------------------------
# Transport fixtures
# ----------------------------------------------------------------
class FakeTransport(Transport):
    """In-memory transport: tests push inbound chunks and inspect writes."""

    def __init__(self):
        self.inbound: asyncio.Queue = asyncio.Queue()
        self.written: list[bytes] = []
        self.fail_writes = False
        self.closed = False

    def push(self, chunk: bytes) -> None:
        self.inbound.put_nowait(chunk)

    def push_error(self, error: Exception) -> None:
        self.inbound.put_nowait(error)

    async def read(self) -> bytes:
        item = await self.inbound.get()
        if isinstance(item, Exception):
            raise item
        return item

    async def write(self, payload: bytes) -> None:
        if self.closed:
            raise TransportError("Transport is closed")
        if self.fail_writes:
            raise TransportError("Simulated write failure")
        self.written.append(payload)

    async def close(self) -> None:
        self.closed = True


@pytest.fixture
def fake_transport() -> FakeTransport:
    return FakeTransport()


# ----------------------------------------------------------------
# Async utilities
# ----------------------------------------------------------------
@pytest.fixture
async def wait_for_condition():
    """Provide utility for waiting on async conditions.

    Returns:
        Async function that polls a condition until true or timeout
    """

    async def _wait(
        condition_fn,
        timeout: float = 1.0,
        poll_interval: float = 0.01,
        error_msg: str = "Condition not met within timeout",
    ):
        loop = asyncio.get_running_loop()
        start = loop.time()
        while loop.time() - start < timeout:
            if condition_fn():
                return
            await asyncio.sleep(poll_interval)

        raise AssertionError(error_msg)

    return _wait
