# breakerlink/protocols/framing.py
"""
Record framing for the device byte stream.

Chunks arrive with arbitrary boundaries: one record may span several chunks
and one chunk may carry several records. A decoder buffers bytes, emits every
complete record and keeps the remainder for the next chunk, so the emitted
sequence does not depend on how the stream was chunked.

Two framings exist across protocol revisions:
- BinaryFrameDecoder: fixed-length packets
- LineDecoder: newline-terminated text records
"""

from abc import ABC, abstractmethod
from collections.abc import AsyncIterable, AsyncIterator, Iterable, Iterator

from breakerlink.core.errors import FramingOverflowError
from breakerlink.core.logging_system import get_logger

__all__ = ["FrameDecoder", "BinaryFrameDecoder", "LineDecoder"]

logger = get_logger(__name__)


class FrameDecoder(ABC):
    """Turns a chunked byte stream into complete records.

    One decoder instance serves one connection; call reset() before reusing
    it on a new connection.
    """

    def __init__(self):
        self._buffer = bytearray()
        self.records_emitted = 0
        self.bytes_discarded = 0

    @abstractmethod
    def feed(self, chunk: bytes) -> list[bytes]:
        """Consume a chunk and return every record it completes."""

    def finish(self) -> None:
        """Signal end of stream.

        A trailing partial record is discarded, never interpreted.
        """
        if self._buffer:
            logger.warning(
                f"{self.__class__.__name__}: discarding {len(self._buffer)} "
                f"trailing bytes of an incomplete record at end of stream"
            )
            self.bytes_discarded += len(self._buffer)
        self._buffer.clear()

    def reset(self) -> None:
        """Drop buffered bytes and counters for a fresh connection."""
        self._buffer.clear()
        self.records_emitted = 0
        self.bytes_discarded = 0

    @property
    def pending(self) -> int:
        """Number of buffered bytes not yet part of a complete record."""
        return len(self._buffer)

    def iter_records(self, chunks: Iterable[bytes]) -> Iterator[bytes]:
        """Lazily decode a finite sequence of chunks.

        The decoder is reset first and finished at the end of the chunks.
        """
        self.reset()
        for chunk in chunks:
            try:
                records = self.feed(chunk)
            except FramingOverflowError as e:
                yield from e.records
                raise
            yield from records
        self.finish()

    async def aiter_records(self, chunks: AsyncIterable[bytes]) -> AsyncIterator[bytes]:
        """Async form of iter_records() for stream readers."""
        self.reset()
        async for chunk in chunks:
            try:
                records = self.feed(chunk)
            except FramingOverflowError as e:
                for record in e.records:
                    yield record
                raise
            for record in records:
                yield record
        self.finish()


class BinaryFrameDecoder(FrameDecoder):
    """Fixed-length packet framing.

    Example:
        >>> decoder = BinaryFrameDecoder(record_length=3)
        >>> decoder.feed(b"\\x01\\x02")
        []
        >>> decoder.feed(b"\\x03\\x04")
        [b'\\x01\\x02\\x03']
    """

    def __init__(self, record_length: int = 21):
        if record_length <= 0:
            raise ValueError(f"record_length must be > 0, got {record_length}")
        super().__init__()
        self.record_length = record_length

    def feed(self, chunk: bytes) -> list[bytes]:
        self._buffer.extend(chunk)
        records: list[bytes] = []
        n = self.record_length

        while len(self._buffer) >= n:
            records.append(bytes(self._buffer[:n]))
            del self._buffer[:n]

        self.records_emitted += len(records)
        return records


class LineDecoder(FrameDecoder):
    """Newline-terminated text framing.

    Lines are split on a single "\\n", stripped of surrounding whitespace
    (so "\\r\\n" endings work too) and dropped when empty. The unterminated
    tail is kept for the next chunk. A line longer than max_line_length means
    the device is stuck mid-record; the decoder raises FramingOverflowError so
    the connection can be failed. The limit is the same whether the line
    arrives whole or split across chunks.
    """

    def __init__(self, max_line_length: int = 1024):
        if max_line_length <= 0:
            raise ValueError(f"max_line_length must be > 0, got {max_line_length}")
        super().__init__()
        self.max_line_length = max_line_length

    def feed(self, chunk: bytes) -> list[bytes]:
        """Consume a chunk and return every line it completes.

        Raises:
            FramingOverflowError: If a line, terminated or not, is longer
                than max_line_length. Lines completed before it are carried
                on the exception.
        """
        self._buffer.extend(chunk)
        records: list[bytes] = []

        while True:
            newline = self._buffer.find(b"\n")
            length = len(self._buffer) if newline < 0 else newline
            if length > self.max_line_length:
                self._overflow(records, terminated=newline >= 0)
            if newline < 0:
                break
            line = bytes(self._buffer[:newline]).strip()
            del self._buffer[: newline + 1]
            if line:
                records.append(line)

        self.records_emitted += len(records)
        return records

    def _overflow(self, records: list[bytes], terminated: bool) -> None:
        size = len(self._buffer)
        self.bytes_discarded += size
        self.records_emitted += len(records)
        self._buffer.clear()
        kind = "Line" if terminated else "Unterminated line"
        raise FramingOverflowError(
            f"{kind} exceeds max_line_length={self.max_line_length} "
            f"({size} bytes discarded)",
            records=records,
        )

    def finish(self) -> None:
        # Whitespace-only tails are not records
        if not bytes(self._buffer).strip():
            self._buffer.clear()
        super().finish()
