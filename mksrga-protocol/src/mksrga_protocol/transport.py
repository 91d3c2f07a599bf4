"""RGA byte-stream transports.

This module defines the :class:`RgaTransport` protocol, the interface an
:class:`~mksrga_protocol.session.RgaSession` needs from its stream, and
:class:`TcpTransport`, the socket implementation used with real instruments.

Implementations include:
- :class:`TcpTransport`: plain TCP connection to the instrument's ASCII port
- :class:`mksrga_protocol.emulator.RgaEmulator`: in-process instrument emulator
"""

from __future__ import annotations

import socket
from typing import Protocol

from mksrga_protocol.errors import TransportError

DEFAULT_PORT = 10014


class RgaTransport(Protocol):
    """Protocol for the RGA byte stream.

    This is a structural subtyping protocol: any object with ``write()``,
    ``read()`` and ``close()`` methods of the right shape is a valid
    transport. Callers open the transport before handing it to a session.
    """

    def write(self, data: bytes) -> None:
        """Send raw bytes to the instrument.

        Args:
            data: Encoded command bytes.
        """
        ...

    def read(self, size: int) -> bytes:
        """Read up to *size* bytes from the instrument.

        Returns:
            The bytes received; an empty result means the stream is closed.
        """
        ...

    def close(self) -> None:
        """Close the stream and release resources."""
        ...


def parse_address(address: str, default_port: int = DEFAULT_PORT) -> tuple[str, int]:
    """Split a ``host[:port]`` address.

    Args:
        address: Address string, e.g. ``"192.168.1.50:10014"`` or ``"rga01"``.
        default_port: Port used when the address has none.

    Returns:
        ``(host, port)``.

    Raises:
        ValueError: If the host is empty or the port is not a valid number.
    """
    host, sep, port_text = address.strip().rpartition(":")
    if not sep:
        host, port_text = port_text, ""
    if not host:
        raise ValueError(f"Invalid RGA address: {address!r}")
    if not port_text:
        return host, default_port
    try:
        port = int(port_text)
    except ValueError:
        raise ValueError(f"Invalid port in RGA address: {address!r}") from None
    if not 0 < port < 65536:
        raise ValueError(f"Port out of range in RGA address: {address!r}")
    return host, port


class TcpTransport:
    """RGA transport over a TCP socket.

    The socket is created on :meth:`open`. Socket failures and timeouts are
    reported as :class:`TransportError`.

    Attributes:
        host: Instrument host name or IP address.
        port: Instrument TCP port.
        is_open: Whether the socket is connected.

    Args:
        host: Instrument host name or IP address.
        port: TCP port (default 10014).
        timeout: Connect and read timeout in seconds, or None to block.

    Example:
        >>> transport = TcpTransport.from_address("192.168.1.50:10014")
        >>> transport.open()
        >>> session = RgaSession(transport)
    """

    def __init__(self, host: str, port: int = DEFAULT_PORT, timeout: float | None = 30.0) -> None:
        self._host = host
        self._port = port
        self._timeout = timeout
        self._sock: socket.socket | None = None

    @classmethod
    def from_address(cls, address: str, timeout: float | None = 30.0) -> TcpTransport:
        """Create a transport from a ``host[:port]`` string.

        Raises:
            ValueError: If the address is malformed.
        """
        host, port = parse_address(address)
        return cls(host, port, timeout=timeout)

    # -- Properties ----------------------------------------------------------

    @property
    def host(self) -> str:
        """The instrument host."""
        return self._host

    @property
    def port(self) -> int:
        """The instrument port."""
        return self._port

    @property
    def is_open(self) -> bool:
        """Return True if the socket is connected."""
        return self._sock is not None

    # -- Lifecycle -----------------------------------------------------------

    def open(self) -> None:
        """Connect to the instrument.

        Raises:
            TransportError: If the connection cannot be established.
        """
        if self._sock is not None:
            return
        try:
            self._sock = socket.create_connection((self._host, self._port), timeout=self._timeout)
        except OSError as exc:
            raise TransportError(
                f"Failed to connect to RGA at {self._host}:{self._port}: {exc}"
            ) from exc

    def close(self) -> None:
        """Close the socket.

        Safe to call multiple times.
        """
        if self._sock is not None:
            sock, self._sock = self._sock, None
            try:
                sock.shutdown(socket.SHUT_RDWR)
            except OSError:
                pass
            sock.close()

    # -- Transport interface -------------------------------------------------

    def write(self, data: bytes) -> None:
        """Send bytes to the instrument.

        Raises:
            TransportError: If the socket is closed or the send fails.
        """
        if self._sock is None:
            raise TransportError("RGA transport is not open")
        try:
            self._sock.sendall(data)
        except OSError as exc:
            raise TransportError(f"RGA write failed: {exc}") from exc

    def read(self, size: int) -> bytes:
        """Read up to *size* bytes.

        Raises:
            TransportError: If the socket is closed, times out or fails.
        """
        if self._sock is None:
            raise TransportError("RGA transport is not open")
        try:
            return self._sock.recv(size)
        except socket.timeout as exc:
            raise TransportError(f"RGA read timed out after {self._timeout} s") from exc
        except OSError as exc:
            raise TransportError(f"RGA read failed: {exc}") from exc

    def __enter__(self) -> TcpTransport:
        self.open()
        return self

    def __exit__(self, *args: object) -> None:
        self.close()
