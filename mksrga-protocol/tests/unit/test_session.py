"""Tests for RgaSession using a mock transport."""

from __future__ import annotations

import threading
from collections import deque

import pytest

from mksrga_protocol.catalog import FilterMode, OnOff
from mksrga_protocol.errors import (
    HandshakeError,
    MalformedFrameError,
    RgaCommandError,
    TransportError,
    UnknownEventError,
)
from mksrga_protocol.events import EventKind
from mksrga_protocol.framing import DEFAULT_BUFFER_SIZE, FRAME_TERMINATOR, LARGE_BUFFER_SIZE
from mksrga_protocol.session import RgaSession, SessionState

# ---------------------------------------------------------------------------
# Mock transport
# ---------------------------------------------------------------------------


class MockTransport:
    """In-memory transport that replays pre-loaded frames, one per read."""

    def __init__(self, frames: list[list[str]] | None = None) -> None:
        self.responses: deque[bytes] = deque(_frame(*rows) for rows in frames or [])
        self.written: list[bytes] = []
        self.read_sizes: list[int] = []
        self.close_count = 0

    def write(self, data: bytes) -> None:
        self.written.append(data)

    def read(self, size: int) -> bytes:
        self.read_sizes.append(size)
        if not self.responses:
            return b""
        return self.responses.popleft()

    def close(self) -> None:
        self.close_count += 1


class BrokenPipeTransport(MockTransport):
    """Transport whose writes fail like a dropped socket."""

    def write(self, data: bytes) -> None:
        raise BrokenPipeError("broken pipe")


def _frame(*rows: str) -> bytes:
    return "\r\n".join(rows).encode("ascii") + FRAME_TERMINATOR


def _session(*frames: list[str]) -> tuple[RgaSession, MockTransport]:
    transport = MockTransport(list(frames))
    return RgaSession(transport), transport


# ---------------------------------------------------------------------------
# Handshake
# ---------------------------------------------------------------------------


class TestInitMsg:
    """Tests for RgaSession.init_msg."""

    def test_sends_empty_line(self) -> None:
        session, transport = _session(["MKSRGA Single", "Protocol_Revision 1.2"])
        session.init_msg()
        assert transport.written == [b"\n\r"]

    def test_identification_fields(self) -> None:
        session, _ = _session(
            ["MKSRGA Single", "Protocol_Revision 1.2", "Min_Compatibility 1.0"]
        )
        response = session.init_msg()
        assert response.command == "MKSRGA"
        assert response["MKSRGA"].as_str() == "Single"
        assert response["Protocol_Revision"].as_float() == 1.2
        assert response["Min_Compatibility"].as_float() == 1.0

    def test_bare_ack_row(self) -> None:
        session, _ = _session(["MKSRGA"])
        assert len(session.init_msg()) == 0

    def test_wrong_ack_raises(self) -> None:
        session, _ = _session(["Sensors OK"])
        with pytest.raises(HandshakeError, match="expected ACK msg"):
            session.init_msg()


# ---------------------------------------------------------------------------
# Commands
# ---------------------------------------------------------------------------


class TestCommand:
    """Tests for command encoding, reply decoding and errors."""

    def test_sensors(self) -> None:
        session, transport = _session(
            ["Sensors OK", "SerialNumber Name State", "LM70-00197021 Sensor1 Ready"]
        )
        response = session.sensors()
        assert transport.written == [b"Sensors\n\r"]
        assert response["SerialNumber"].as_str() == "LM70-00197021"
        assert response["State"].as_str() == "Ready"

    def test_large_reply_commands_use_large_buffer(self) -> None:
        session, transport = _session(
            ["Sensors OK", "SerialNumber Name State", "X Y Ready"], ["Release OK"]
        )
        session.sensors()
        session.release()
        assert transport.read_sizes == [LARGE_BUFFER_SIZE, DEFAULT_BUFFER_SIZE]

    def test_add_barchart_line(self) -> None:
        session, transport = _session(["AddBarchart OK"])
        session.add_barchart("Bar1", 1, 200, FilterMode.PEAK_CENTER, 5, 0, 0, 0)
        assert transport.written == [b"AddBarchart Bar1 1 200 PeakCenter 5 0 0 0\n\r"]

    def test_scan_resume_optional_count(self) -> None:
        session, transport = _session(["ScanResume OK"], ["ScanResume OK"])
        session.scan_resume()
        session.scan_resume(1)
        assert transport.written == [b"ScanResume\n\r", b"ScanResume 1\n\r"]

    def test_egain_index_wire_name(self) -> None:
        session, transport = _session(["MeasurementWGainIndex OK"])
        session.measurement_egain_index(2)
        assert transport.written == [b"MeasurementWGainIndex 2\n\r"]

    def test_filament_control(self) -> None:
        session, transport = _session(["FilamentControl OK", "State Off"])
        response = session.filament_control(OnOff.OFF)
        assert transport.written == [b"FilamentControl Off\n\r"]
        assert response["State"].as_str() == "Off"

    def test_e_gains_one_value_per_line(self) -> None:
        session, _ = _session(["EGains OK", "1", "20000", "100000"])
        response = session.e_gains()
        assert [response[name].as_int() for name in response] == [1, 20000, 100000]

    def test_detector_info_composite(self) -> None:
        session, _ = _session(
            [
                "DetectorInfo OK",
                "SourceIndex 0",
                "Factor DetectorType Voltage",
                "2.0e-04 Faraday 0",
                "1.0e-01 Multiplier 1200",
            ]
        )
        response = session.detector_info(0)
        assert response["DetectorType"].as_str() == "Faraday"
        assert response["Voltage1"].as_int() == 1200

    def test_instrument_error_raises_and_session_survives(self) -> None:
        session, _ = _session(
            ["Select ERROR", "Number 100", "Description Sensor X not found"],
            ["SensorState OK", "State Ready"],
        )
        with pytest.raises(RgaCommandError) as exc_info:
            session.select("X")
        assert exc_info.value.command == "Select"
        assert exc_info.value.error.code == "100"
        assert exc_info.value.error.description == "Sensor X not found"
        assert session.state is SessionState.UNSELECTED
        assert session.sensor_state()["State"].as_str() == "Ready"

    def test_unknown_command_writes_nothing(self) -> None:
        session, transport = _session()
        with pytest.raises(KeyError):
            session.command("Bogus")
        assert transport.written == []

    def test_bad_arguments_write_nothing(self) -> None:
        session, transport = _session()
        with pytest.raises(ValueError):
            session.command("Select")
        assert transport.written == []

    def test_non_ascii_argument_writes_nothing(self) -> None:
        session, transport = _session()
        with pytest.raises(ValueError, match="must be ASCII"):
            session.select("LM70-\u00b5")
        assert transport.written == []

    def test_write_failure_wrapped(self) -> None:
        session = RgaSession(BrokenPipeTransport())
        with pytest.raises(TransportError, match="RGA write failed"):
            session.release()


class TestStateTracking:
    """Tests for the tracked ownership state."""

    def test_select_control_release(self) -> None:
        session, _ = _session(
            ["Select OK", "SerialNumber LM70", "State Ready"],
            ["Control OK", "SerialNumber LM70", "State InUse"],
            ["Release OK", "SerialNumber LM70", "State Ready"],
        )
        assert session.state is SessionState.UNSELECTED
        session.select("LM70")
        assert session.state is SessionState.SELECTED
        session.control("mksrga", "1.0.0")
        assert session.state is SessionState.CONTROLLED
        session.release()
        assert session.state is SessionState.SELECTED

    def test_commands_not_gated_by_state(self) -> None:
        session, transport = _session(["ScanResume OK"])
        session.scan_resume(1)
        assert transport.written == [b"ScanResume 1\n\r"]


# ---------------------------------------------------------------------------
# Events
# ---------------------------------------------------------------------------


class TestEvents:
    """Tests for read_event and iter_events."""

    def test_read_event(self) -> None:
        session, transport = _session(["MassReading 17 1.2E-09"])
        event = session.read_event()
        assert event.kind is EventKind.MASS_READING
        assert event["MassPosition"].as_int() == 17
        assert transport.written == []
        assert transport.read_sizes == [LARGE_BUFFER_SIZE]

    def test_error_frame_raises_command_error(self) -> None:
        session, _ = _session(["ScanResume ERROR", "Number 220", "Description Scan list is empty"])
        with pytest.raises(RgaCommandError) as exc_info:
            session.read_event()
        assert exc_info.value.command == "ScanResume"
        assert exc_info.value.error.code == "220"

    def test_unknown_event(self) -> None:
        session, _ = _session(["Sensors OK"])
        with pytest.raises(UnknownEventError):
            session.read_event()

    def test_empty_frame(self) -> None:
        session, _ = _session([])
        with pytest.raises(MalformedFrameError, match="Empty event frame"):
            session.read_event()

    def test_iter_events_until_stopped(self) -> None:
        session, transport = _session(
            ["StartingScan 1 0 0"], ["MassReading 1 1.0E-10"], ["MassReading 2 4.6E-09"]
        )
        stop = threading.Event()
        seen = []
        for event in session.iter_events(stop):
            seen.append(event.kind)
            if len(seen) == 2:
                stop.set()
        assert seen == [EventKind.STARTING_SCAN, EventKind.MASS_READING]
        assert len(transport.responses) == 1

    def test_iter_events_preset_stop_reads_nothing(self) -> None:
        session, transport = _session(["MassReading 1 1.0E-10"])
        stop = threading.Event()
        stop.set()
        assert list(session.iter_events(stop)) == []
        assert transport.read_sizes == []

    def test_iter_events_propagates_transport_failure(self) -> None:
        session, _ = _session(["MassReading 1 1.0E-10"])
        events = session.iter_events()
        next(events)
        with pytest.raises(TransportError, match="closed by peer"):
            next(events)


# ---------------------------------------------------------------------------
# Lifecycle
# ---------------------------------------------------------------------------


class TestClose:
    """Tests for closing the session."""

    def test_close_idempotent(self) -> None:
        session, transport = _session()
        session.close()
        session.close()
        assert session.closed
        assert transport.close_count == 1

    def test_context_manager_closes(self) -> None:
        transport = MockTransport()
        with RgaSession(transport) as session:
            assert not session.closed
        assert session.closed
        assert transport.close_count == 1
