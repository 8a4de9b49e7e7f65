# breakerlink/engine/transport.py
"""
Byte transports to the breaker device.

The engine is transport-neutral: anything that can read chunks and write
payloads will do (serial bridge, BLE bridge, TCP). StreamTransport wraps an
asyncio StreamReader/StreamWriter pair; open_tcp_transport() opens one over
TCP, which is how the serial and BLE bridges expose the device.
"""

import asyncio
from abc import ABC, abstractmethod

from breakerlink.core.errors import TransportError
from breakerlink.core.logging_system import get_logger

__all__ = ["Transport", "StreamTransport", "open_tcp_transport"]

logger = get_logger(__name__)


class Transport(ABC):
    """Bidirectional byte link to one device."""

    @abstractmethod
    async def read(self) -> bytes:
        """Next chunk from the device; b"" at end of stream.

        Raises:
            TransportError: If the link failed
        """

    @abstractmethod
    async def write(self, payload: bytes) -> None:
        """Send one command payload.

        Raises:
            TransportError: If the link rejected the write
        """

    @abstractmethod
    async def close(self) -> None:
        """Release the link. Safe to call more than once."""


class StreamTransport(Transport):
    """Transport over an asyncio stream pair.

    Args:
        reader: Stream the device telemetry arrives on
        writer: Stream commands are written to
        read_size: Largest chunk requested per read
    """

    def __init__(
        self,
        reader: asyncio.StreamReader,
        writer: asyncio.StreamWriter,
        read_size: int = 4096,
    ):
        self.reader = reader
        self.writer = writer
        self.read_size = read_size
        self.closed = False

    async def read(self) -> bytes:
        if self.closed:
            raise TransportError("Transport is closed")
        try:
            return await self.reader.read(self.read_size)
        except (OSError, asyncio.IncompleteReadError) as e:
            raise TransportError(f"Read failed: {e}") from e

    async def write(self, payload: bytes) -> None:
        if self.closed:
            raise TransportError("Transport is closed")
        try:
            self.writer.write(payload)
            await self.writer.drain()
        except (OSError, RuntimeError) as e:
            raise TransportError(f"Write failed: {e}") from e

    async def close(self) -> None:
        if self.closed:
            return
        self.closed = True
        try:
            self.writer.close()
            await self.writer.wait_closed()
        except OSError as e:
            logger.debug(f"Error while closing stream: {e}")


async def open_tcp_transport(
    host: str,
    port: int,
    timeout: float = 5.0,
    read_size: int = 4096,
) -> StreamTransport:
    """Connect to a device bridge over TCP.

    Raises:
        TransportError: If the connection cannot be established in time
    """
    try:
        reader, writer = await asyncio.wait_for(
            asyncio.open_connection(host, port), timeout=timeout
        )
    except (OSError, asyncio.TimeoutError) as e:
        raise TransportError(f"Cannot connect to {host}:{port}: {e}") from e

    logger.info(f"Connected to device bridge at {host}:{port}")
    return StreamTransport(reader, writer, read_size=read_size)
