"""Frame codec for the RGA ASCII protocol.

Wire framing:
- Commands are terminated by ``LF CR``.
- Response rows are separated by ``CR LF``.
- A complete response (a *frame*) is terminated by ``CR LF CR CR``.

The protocol has no length prefix, so frames are recovered by accumulating
stream bytes until the terminator appears. :class:`FrameReader` does that with
a bounded buffer: running out of capacity before the terminator shows up means
the stream is garbled and is reported as a :class:`ProtocolError`.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING

from mksrga_protocol.errors import ProtocolError, TransportError

if TYPE_CHECKING:
    from mksrga_protocol.transport import RgaTransport

logger = logging.getLogger(__name__)

COMMAND_SUFFIX = "\n\r"
ROW_DELIMITER = b"\r\n"
FRAME_TERMINATOR = b"\r\n\r\r"

DEFAULT_BUFFER_SIZE = 4096
LARGE_BUFFER_SIZE = 16384


def encode_command(line: str) -> bytes:
    """Encode a rendered command line for the wire.

    Args:
        line: Command text, already terminated with :data:`COMMAND_SUFFIX`.

    Returns:
        ASCII bytes.
    """
    return line.encode("ascii")


def split_rows(data: bytes) -> tuple[str, ...]:
    """Split frame bytes into text rows.

    Rows are split on ``CR LF``. Trailing blank rows are dropped; blank rows
    inside the frame are kept so that row positions stay meaningful.

    Args:
        data: Frame bytes without the terminator.

    Returns:
        The decoded rows.
    """
    rows = data.decode("ascii", errors="replace").split(ROW_DELIMITER.decode("ascii"))
    while rows and not rows[-1].strip():
        rows.pop()
    return tuple(rows)


@dataclass(frozen=True)
class Frame:
    """One complete terminator-delimited unit of protocol traffic.

    Attributes:
        rows: Text rows of the frame, the first row being the status or event
            row.
    """

    rows: tuple[str, ...]

    @classmethod
    def from_bytes(cls, data: bytes) -> Frame:
        """Build a frame from raw bytes (terminator already removed)."""
        return cls(split_rows(data))

    @classmethod
    def from_rows(cls, *rows: str) -> Frame:
        """Build a frame from text rows."""
        return cls(tuple(rows))

    def tokens(self, index: int) -> list[str]:
        """Return the whitespace-delimited tokens of row *index*.

        Raises:
            IndexError: If the frame has no such row.
        """
        return self.rows[index].split()

    @property
    def leading_token(self) -> str:
        """First token of the first row, or ``""`` for an empty frame."""
        if not self.rows:
            return ""
        tokens = self.rows[0].split()
        return tokens[0] if tokens else ""

    def __len__(self) -> int:
        return len(self.rows)

    def __str__(self) -> str:
        return "\n".join(self.rows)


class FrameReader:
    """Reassemble frames from a byte stream.

    Bytes that follow a terminator in the same read are kept and become the
    start of the next frame; during a scan the instrument pushes events
    back to back and one read can carry several of them.

    Args:
        transport: The stream to read from.
    """

    def __init__(self, transport: RgaTransport) -> None:
        self._transport = transport
        self._pending = b""

    @property
    def pending(self) -> bytes:
        """Bytes received but not yet returned as part of a frame."""
        return self._pending

    def read_frame(self, capacity: int = DEFAULT_BUFFER_SIZE) -> Frame:
        """Read the next complete frame.

        Args:
            capacity: Maximum number of bytes a frame may occupy before the
                terminator. Use :data:`LARGE_BUFFER_SIZE` for big tables.

        Returns:
            The next frame.

        Raises:
            TransportError: If the stream fails, times out or is closed.
            ProtocolError: If *capacity* bytes arrive without a terminator.
        """
        while True:
            index = self._pending.find(FRAME_TERMINATOR)
            if index >= 0:
                data = self._pending[:index]
                self._pending = self._pending[index + len(FRAME_TERMINATOR) :]
                frame = Frame.from_bytes(data)
                logger.debug("RGA <- %r", str(frame))
                return frame
            if len(self._pending) >= capacity:
                size = len(self._pending)
                self._pending = b""
                raise ProtocolError(
                    f"No frame terminator within {capacity} bytes (received {size})"
                )
            self._pending += self._read_chunk(capacity - len(self._pending))

    def clear(self) -> None:
        """Discard buffered bytes."""
        self._pending = b""

    def _read_chunk(self, size: int) -> bytes:
        try:
            chunk = self._transport.read(size)
        except TransportError:
            raise
        except OSError as exc:
            raise TransportError(f"RGA read failed: {exc}") from exc
        if not chunk:
            raise TransportError("RGA connection closed by peer")
        return chunk
