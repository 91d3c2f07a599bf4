"""RGA protocol error types.

This module defines the exception hierarchy raised by the protocol engine.
All exceptions inherit from :class:`RgaError`, allowing callers to catch any
engine failure with a single except clause.

Exception hierarchy:
    RgaError (base)
    +-- TransportError: Socket read/write failure, closed stream, timeout
    +-- ProtocolError: Framing desynchronization, unexpected status token
    |   +-- MalformedFrameError: Missing rows, row/column count mismatch
    |   +-- UnknownEventError: Unrecognized asynchronous event token
    +-- HandshakeError: Identification token mismatch on first contact
    +-- RgaCommandError: Instrument rejected a command (``ERROR`` status)

Only :class:`RgaCommandError` leaves the connection usable. Every other error
means the byte stream can no longer be trusted and the caller should
reconnect.
"""

from __future__ import annotations

from dataclasses import dataclass


class RgaError(Exception):
    """Base exception for all RGA protocol errors."""


class TransportError(RgaError):
    """Raised when the underlying stream fails.

    This covers read/write failures, a stream closed by the peer, and
    timeouts. The session that raised it should be discarded.
    """


class ProtocolError(RgaError):
    """Raised when a frame violates the wire protocol.

    There is no resynchronization marker in the byte stream, so after a
    protocol error the connection should be treated as unusable.
    """


class MalformedFrameError(ProtocolError):
    """Raised when a frame is missing rows or fields its layout requires."""


class UnknownEventError(ProtocolError):
    """Raised when an unsolicited frame starts with an unknown event name.

    Kept distinct from :class:`MalformedFrameError` so that callers can choose
    to skip unknown events instead of dropping the connection.

    Attributes:
        token: The leading token that did not match any known event.
    """

    def __init__(self, token: str) -> None:
        self.token = token
        super().__init__(f"Unknown RGA event: {token!r}")


class HandshakeError(RgaError):
    """Raised when the instrument does not acknowledge the initial message."""


@dataclass(frozen=True)
class InstrumentError:
    """Structured error reported by the instrument in an ``ERROR`` frame.

    Attributes:
        code: Error code as sent by the instrument.
        description: Free-text description of the failure.
    """

    code: str
    description: str

    def __str__(self) -> str:
        return f"CODE: {self.code} DESCRIPTION: {self.description}"


class RgaCommandError(RgaError):
    """Raised when the instrument answers a command with an ``ERROR`` status.

    This is not a client bug: the instrument refused the command (sensor not
    owned, bad index, ...). The connection remains usable.

    Attributes:
        command: Name of the rejected command as echoed by the instrument.
        error: The decoded instrument error.

    Example:
        >>> try:
        ...     session.select("LM70-00197021")
        ... except RgaCommandError as e:
        ...     print(f"{e.command} failed: {e.error.code}")
    """

    def __init__(self, command: str, error: InstrumentError) -> None:
        """Initialize the command error.

        Args:
            command: Name of the rejected command.
            error: The decoded instrument error.
        """
        self.command = command
        self.error = error
        super().__init__(f"RGA command {command} failed: {error}")
