"""MKS residual gas analyzer ASCII protocol client.

This package implements the client side of the line-oriented ASCII control
protocol spoken by MKS residual gas analyzers. It includes:

- A command catalog rendering typed arguments into command lines
- Frame recovery from the terminator-delimited byte stream
- Status/error extraction and horizontal/vertical response parsing
- Classification of asynchronous events streamed during scans
- A session exposing every command as a method, plus event draining
- A TCP transport, an in-process emulator and a TCP emulator server

Typical usage::

    from mksrga_protocol import FilterMode, RgaSession, TcpTransport

    transport = TcpTransport.from_address("192.168.1.50:10014")
    transport.open()
    with RgaSession(transport) as rga:
        rga.init_msg()
        rga.control("mksrga", "1.0.0")
        print(rga.sensor_state()["State"])
"""

from mksrga_protocol.catalog import (
    COMMANDS,
    AudioMode,
    CalibrationOption,
    CirrusHeaterMode,
    CommandDescriptor,
    FilterMode,
    OnOff,
    Param,
    ParamKind,
    RvcValveMode,
    SensorState,
    ZeroBufferMode,
    encode,
    get_command,
)
from mksrga_protocol.emulator import RgaEmulator, RgaEmulatorConfig, make_microvision_emulator
from mksrga_protocol.errors import (
    HandshakeError,
    InstrumentError,
    MalformedFrameError,
    ProtocolError,
    RgaCommandError,
    RgaError,
    TransportError,
    UnknownEventError,
)
from mksrga_protocol.events import EventKind, RgaEvent, classify_event
from mksrga_protocol.framing import Frame, FrameReader
from mksrga_protocol.parsing import (
    ResponseLayout,
    ResponseStatus,
    RgaResponse,
    check_status,
    extract_error,
    parse_horizontal,
    parse_response,
    parse_vertical,
)
from mksrga_protocol.server import EmulatorServer
from mksrga_protocol.session import RgaSession, SessionState
from mksrga_protocol.transport import RgaTransport, TcpTransport
from mksrga_protocol.values import ScalarKind, ScalarValue

__all__ = [
    # Catalog
    "COMMANDS",
    "AudioMode",
    "CalibrationOption",
    "CirrusHeaterMode",
    "CommandDescriptor",
    "FilterMode",
    "OnOff",
    "Param",
    "ParamKind",
    "RvcValveMode",
    "SensorState",
    "ZeroBufferMode",
    "encode",
    "get_command",
    # Errors
    "HandshakeError",
    "InstrumentError",
    "MalformedFrameError",
    "ProtocolError",
    "RgaCommandError",
    "RgaError",
    "TransportError",
    "UnknownEventError",
    # Events
    "EventKind",
    "RgaEvent",
    "classify_event",
    # Framing
    "Frame",
    "FrameReader",
    # Parsing
    "ResponseLayout",
    "ResponseStatus",
    "RgaResponse",
    "check_status",
    "extract_error",
    "parse_horizontal",
    "parse_response",
    "parse_vertical",
    # Session
    "RgaSession",
    "SessionState",
    # Transport
    "RgaTransport",
    "TcpTransport",
    # Values
    "ScalarKind",
    "ScalarValue",
    # Emulator
    "RgaEmulator",
    "RgaEmulatorConfig",
    "make_microvision_emulator",
    "EmulatorServer",
]
