"""TCP server exposing an RGA emulator.

Wraps an :class:`~mksrga_protocol.emulator.RgaEmulator` and serves it over
TCP, so that :class:`~mksrga_protocol.transport.TcpTransport`, telnet or any
other client can talk to an emulated instrument when real hardware is not
available.

Example:
    Start an emulator server on an ephemeral port::

        from mksrga_protocol import EmulatorServer, RgaEmulator

        server = EmulatorServer(RgaEmulator(), port=0)
        server.start()

        host, port = server.address
        transport = TcpTransport(host, port)

        server.stop()
"""

from __future__ import annotations

import logging
import socketserver
import threading
from typing import Any

from mksrga_protocol.emulator import RgaEmulator
from mksrga_protocol.transport import DEFAULT_PORT

logger = logging.getLogger(__name__)


class _RgaRequestHandler(socketserver.BaseRequestHandler):
    """Handle one TCP connection, forwarding bytes to the emulator.

    Every chunk received is written to the emulator and whatever the emulator
    buffered in reply (command replies and scan events) is sent back.
    """

    server: _RgaTcpServer

    def handle(self) -> None:
        """Relay bytes until the client disconnects."""
        logger.info("RGA emulator client connected from %s:%s", *self.client_address[:2])
        emulator = self.server.emulator
        while True:
            data = self.request.recv(4096)
            if not data:
                break
            with self.server.lock:
                emulator.write(data)
                reply = emulator.read_available()
            if reply:
                self.request.sendall(reply)
        logger.info("RGA emulator client disconnected")


class _RgaTcpServer(socketserver.TCPServer):
    """TCPServer subclass that holds a reference to the emulator.

    Attributes:
        allow_reuse_address: Set to True to allow quick server restart.
        emulator: The emulator to serve.
        lock: Serializes emulator access between connections.
    """

    allow_reuse_address = True

    def __init__(
        self,
        server_address: tuple[str, int],
        emulator: RgaEmulator,
        **kwargs: Any,
    ) -> None:
        self.emulator = emulator
        self.lock = threading.Lock()
        super().__init__(server_address, _RgaRequestHandler, **kwargs)


class EmulatorServer:
    """TCP server wrapping an :class:`RgaEmulator` for external access.

    Runs a TCP server in a background daemon thread. The server handles one
    client connection at a time.

    Args:
        emulator: The emulator to serve.
        host: Bind address (default ``"127.0.0.1"``).
        port: Bind port (default ``10014``). Use ``0`` for an OS-assigned
            ephemeral port.
    """

    def __init__(
        self,
        emulator: RgaEmulator,
        host: str = "127.0.0.1",
        port: int = DEFAULT_PORT,
    ) -> None:
        self._server = _RgaTcpServer((host, port), emulator)
        self._thread: threading.Thread | None = None

    def start(self) -> None:
        """Start serving in a daemon thread."""
        self._thread = threading.Thread(target=self._server.serve_forever, daemon=True)
        self._thread.start()

    def serve_forever(self) -> None:
        """Serve in the calling thread until :meth:`stop` is called."""
        self._server.serve_forever()

    def stop(self) -> None:
        """Shut down the server and wait for the thread to exit."""
        self._server.shutdown()
        if self._thread is not None:
            self._thread.join()
        self._server.server_close()

    @property
    def address(self) -> tuple[str, int]:
        """Return the actual bound ``(host, port)`` address.

        Useful when binding to port 0 to get an ephemeral port assigned
        by the operating system.
        """
        addr = self._server.server_address
        return (str(addr[0]), int(addr[1]))
