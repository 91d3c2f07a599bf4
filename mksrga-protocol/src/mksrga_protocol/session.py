"""RGA connection session.

This module provides :class:`RgaSession`, which owns one open transport and
exposes every catalogued command as a typed method returning a decoded
:class:`~mksrga_protocol.parsing.RgaResponse`.

The protocol is half-duplex: one command's reply must be read completely
before the next command goes out, and events may only be drained while no
reply is pending. A session does no locking of its own; callers sharing it
between threads hold :attr:`RgaSession.lock` for one exchange or one drain
cycle.

Typical usage::

    from mksrga_protocol import FilterMode, RgaSession, TcpTransport

    transport = TcpTransport.from_address("192.168.1.50")
    transport.open()
    with RgaSession(transport) as rga:
        rga.init_msg()
        sensors = rga.sensors()
        rga.select(sensors["SerialNumber"].as_str())
        rga.control("mksrga", "1.0.0")
        rga.add_barchart("Bar1", 1, 200, FilterMode.PEAK_CENTER, 5, 0, 0, 0)
        rga.scan_add("Bar1")
        rga.scan_resume(1)
        for event in rga.iter_events():
            if event.is_mass_reading and event["MassPosition"].as_int() == 200:
                break
"""

from __future__ import annotations

import logging
import threading
from datetime import datetime
from enum import Enum
from typing import TYPE_CHECKING, Any, Iterator

from mksrga_protocol.catalog import (
    AudioMode,
    CalibrationOption,
    CirrusHeaterMode,
    FilterMode,
    OnOff,
    RvcValveMode,
    ZeroBufferMode,
    get_command,
)
from mksrga_protocol.errors import (
    HandshakeError,
    MalformedFrameError,
    RgaCommandError,
    TransportError,
)
from mksrga_protocol.events import RgaEvent, classify_event
from mksrga_protocol.framing import (
    COMMAND_SUFFIX,
    DEFAULT_BUFFER_SIZE,
    LARGE_BUFFER_SIZE,
    Frame,
    FrameReader,
    encode_command,
)
from mksrga_protocol.parsing import RgaResponse, extract_error, parse_response, parse_vertical

if TYPE_CHECKING:
    from mksrga_protocol.transport import RgaTransport

logger = logging.getLogger(__name__)

ACK_TOKEN = "MKSRGA"


class SessionState(Enum):
    """Ownership state of the session's sensor, as last acknowledged."""

    UNSELECTED = "unselected"
    SELECTED = "selected"
    CONTROLLED = "controlled"


class RgaSession:
    """Command/response and event session over one RGA connection.

    Every command method encodes its arguments, writes the command, reads one
    reply frame and decodes it with the reply layout registered for that
    command. Instrument rejections raise :class:`RgaCommandError` and leave
    the session usable; transport and protocol errors mean the connection
    should be discarded.

    Attributes:
        lock: Lock for callers that share the session across threads.
        state: Sensor ownership state tracked from acknowledged replies.

    Args:
        transport: An open transport implementing :class:`RgaTransport`.
    """

    def __init__(self, transport: RgaTransport) -> None:
        self._transport = transport
        self._reader = FrameReader(transport)
        self._state = SessionState.UNSELECTED
        self._closed = False
        self.lock = threading.Lock()

    @property
    def state(self) -> SessionState:
        """The sensor ownership state."""
        return self._state

    @property
    def closed(self) -> bool:
        """Return True once :meth:`close` has been called."""
        return self._closed

    # -- Core operations -----------------------------------------------------

    def init_msg(self) -> RgaResponse:
        """Perform the initial handshake.

        Sends an empty command line and checks that the instrument answers
        with its ``MKSRGA`` identification frame.

        Returns:
            The identification rows decoded as name/value fields (for example
            ``MKSRGA``, ``Protocol_Revision``, ``Min_Compatibility``).

        Raises:
            HandshakeError: If the first token is not ``MKSRGA``.
        """
        self._send(COMMAND_SUFFIX)
        frame = self._reader.read_frame(DEFAULT_BUFFER_SIZE)
        if frame.leading_token != ACK_TOKEN:
            first = frame.rows[0] if frame.rows else ""
            raise HandshakeError(f"RGA did not respond with expected ACK msg: {first!r}")
        rows = [f"{ACK_TOKEN} OK"]
        rows.extend(row for row in frame.rows if len(row.split()) > 1)
        return parse_vertical(Frame(tuple(rows)))

    def command(self, name: str, *args: Any) -> RgaResponse:
        """Issue any catalogued command and decode its reply.

        Args:
            name: Wire name of the command (e.g. ``"ScanResume"``).
            *args: Typed positional arguments.

        Returns:
            The decoded reply.

        Raises:
            KeyError: If *name* is not a catalogued command.
            ValueError: If the arguments do not fit the command or render to
                non-ASCII text.
            TypeError: If an argument has the wrong type.
            RgaCommandError: If the instrument rejects the command.
            TransportError: If the stream fails.
            ProtocolError: If the reply is malformed.
        """
        descriptor = get_command(name)
        self._send(descriptor.render(*args))
        frame = self._reader.read_frame(descriptor.buffer_size)
        response = parse_response(frame, descriptor.layout)
        self._track_state(descriptor.name)
        return response

    def read_event(self) -> RgaEvent:
        """Read and decode one unsolicited frame without issuing a command.

        Returns:
            The decoded event.

        Raises:
            RgaCommandError: If the frame carries an ``ERROR`` status.
            UnknownEventError: If the leading token is not a known event.
            MalformedFrameError: If the event fields do not fit its schema.
            TransportError: If the stream fails or times out.
        """
        frame = self._reader.read_frame(LARGE_BUFFER_SIZE)
        if not frame.rows:
            raise MalformedFrameError("Empty event frame")
        tokens = frame.tokens(0)
        if len(tokens) >= 2 and tokens[1] == "ERROR":
            raise RgaCommandError(tokens[0], extract_error(frame))
        return classify_event(frame)

    def iter_events(self, stop: threading.Event | None = None) -> Iterator[RgaEvent]:
        """Lazily yield events until *stop* is set or the stream fails.

        The stop flag is checked between reads; a read in progress is never
        interrupted. Close the transport to abort a blocked read.

        Args:
            stop: Optional cancellation flag.

        Yields:
            Decoded events in arrival order.
        """
        while stop is None or not stop.is_set():
            yield self.read_event()

    # -- Lifecycle -----------------------------------------------------------

    def close(self) -> None:
        """Close the underlying transport. Safe to call multiple times."""
        if self._closed:
            return
        self._closed = True
        self._reader.clear()
        self._transport.close()

    def __enter__(self) -> RgaSession:
        return self

    def __exit__(self, *args: object) -> None:
        self.close()

    # -- Sensor selection and information ------------------------------------

    def sensors(self) -> RgaResponse:
        """List the sensors reachable through the server (``Sensors``)."""
        return self.command("Sensors")

    def select(self, serial_number: str) -> RgaResponse:
        """Select a sensor by serial number (``Select``)."""
        return self.command("Select", serial_number)

    def sensor_state(self) -> RgaResponse:
        """Query the selected sensor's state (``SensorState``).

        The ``State`` field is one of :class:`~mksrga_protocol.catalog.SensorState`.
        """
        return self.command("SensorState")

    def info(self) -> RgaResponse:
        """Query general sensor information (``Info``)."""
        return self.command("Info")

    def e_gains(self) -> RgaResponse:
        """Query the electron multiplier gain table (``EGains``)."""
        return self.command("EGains")

    def inlet_info(self) -> RgaResponse:
        return self.command("InletInfo")

    def rf_info(self) -> RgaResponse:
        return self.command("RFInfo")

    def multiplier_info(self) -> RgaResponse:
        return self.command("MultiplierInfo")

    def source_info(self, source_index: int | None = None) -> RgaResponse:
        """Query ion source settings, optionally for one source (``SourceInfo``)."""
        return self.command("SourceInfo", source_index)

    def detector_info(self, source_index: int) -> RgaResponse:
        """Query detector settings for a source (``DetectorInfo``).

        The reply mixes a ``SourceIndex`` row with a detector table.
        """
        return self.command("DetectorInfo", source_index)

    def filament_info(self) -> RgaResponse:
        return self.command("FilamentInfo")

    def total_pressure_info(self) -> RgaResponse:
        return self.command("TotalPressureInfo")

    def analog_input_info(self) -> RgaResponse:
        return self.command("AnalogInputInfo")

    def analog_output_info(self) -> RgaResponse:
        return self.command("AnalogOutputInfo")

    def digital_info(self) -> RgaResponse:
        return self.command("DigitalInfo")

    def rollover_info(self) -> RgaResponse:
        return self.command("RolloverInfo")

    def rvc_info(self) -> RgaResponse:
        return self.command("RVCInfo")

    def cirrus_info(self) -> RgaResponse:
        return self.command("CirrusInfo")

    def pe_cal_info(self, source_index: int, detector_index: int) -> RgaResponse:
        """Query Process Eye calibration data (``PECal_Info``)."""
        return self.command("PECal_Info", source_index, detector_index)

    # -- Control -------------------------------------------------------------

    def control(self, app_name: str, version: str) -> RgaResponse:
        """Take control of the selected sensor (``Control``)."""
        return self.command("Control", app_name, version)

    def release(self) -> RgaResponse:
        """Release control of the sensor (``Release``)."""
        return self.command("Release")

    def filament_control(self, state: OnOff) -> RgaResponse:
        """Turn the selected filament on or off (``FilamentControl``)."""
        return self.command("FilamentControl", state)

    def filament_select(self, number: int) -> RgaResponse:
        return self.command("FilamentSelect", number)

    def filament_on_time(self, time: int) -> RgaResponse:
        return self.command("FilamentOnTime", time)

    # -- Measurement definition ----------------------------------------------

    def add_analog(
        self,
        name: str,
        start_mass: int,
        end_mass: int,
        points_per_peak: int,
        accuracy: int,
        egain_index: int,
        source_index: int,
        detector_index: int,
    ) -> RgaResponse:
        """Define an analog (profile) measurement (``AddAnalog``)."""
        return self.command(
            "AddAnalog",
            name,
            start_mass,
            end_mass,
            points_per_peak,
            accuracy,
            egain_index,
            source_index,
            detector_index,
        )

    def add_barchart(
        self,
        name: str,
        start_mass: int,
        end_mass: int,
        filter_mode: FilterMode,
        accuracy: int,
        egain_index: int,
        source_index: int,
        detector_index: int,
    ) -> RgaResponse:
        """Define a barchart measurement, one reading per mass (``AddBarchart``).

        Args:
            name: Measurement name, referenced later by ``ScanAdd``.
            start_mass: First mass to scan.
            end_mass: Last mass to scan.
            filter_mode: How points around each mass are reduced.
            accuracy: Accuracy code (0-8).
            egain_index: Electron multiplier gain index.
            source_index: Ion source index.
            detector_index: Detector index.
        """
        return self.command(
            "AddBarchart",
            name,
            start_mass,
            end_mass,
            filter_mode,
            accuracy,
            egain_index,
            source_index,
            detector_index,
        )

    def add_peak_jump(
        self,
        name: str,
        filter_mode: FilterMode,
        accuracy: int,
        egain_index: int,
        source_index: int,
        detector_index: int,
    ) -> RgaResponse:
        """Define a peak jump measurement (``AddPeakJump``)."""
        return self.command(
            "AddPeakJump", name, filter_mode, accuracy, egain_index, source_index, detector_index
        )

    def add_single_peak(
        self,
        name: str,
        mass: float,
        accuracy: int,
        egain_index: int,
        source_index: int,
        detector_index: int,
    ) -> RgaResponse:
        """Define a single peak measurement (``AddSinglePeak``)."""
        return self.command(
            "AddSinglePeak", name, mass, accuracy, egain_index, source_index, detector_index
        )

    # -- Measurement editing -------------------------------------------------

    def measurement_accuracy(self, accuracy: int) -> RgaResponse:
        return self.command("MeasurementAccuracy", accuracy)

    def measurement_add_mass(self, mass: int) -> RgaResponse:
        return self.command("MeasurementAddMass", mass)

    def measurement_change_mass(self, mass_index: int, new_mass: int) -> RgaResponse:
        return self.command("MeasurementChangeMass", mass_index, new_mass)

    def measurement_detector_index(self, detector_index: int) -> RgaResponse:
        return self.command("MeasurementDetectorIndex", detector_index)

    def measurement_egain_index(self, egain_index: int) -> RgaResponse:
        """Set the gain index of the current measurement.

        The wire command is ``MeasurementWGainIndex``.
        """
        return self.command("MeasurementWGainIndex", egain_index)

    def measurement_filter_mode(self, filter_mode: FilterMode) -> RgaResponse:
        return self.command("MeasurementFilterMode", filter_mode)

    def measurement_mass(self, mass: float) -> RgaResponse:
        return self.command("MeasurementMass", mass)

    def measurement_points_per_peak(self, points_per_peak: int) -> RgaResponse:
        return self.command("MeasurementPointsPerPeak", points_per_peak)

    def measurement_remove_mass(self, mass_index: int) -> RgaResponse:
        return self.command("MeasurementRemoveMass", mass_index)

    def measurement_source_index(self, source_index: int) -> RgaResponse:
        return self.command("MeasurementSourceIndex", source_index)

    def measurement_rollover_correction(self, use_correction: bool) -> RgaResponse:
        return self.command("MeasurementRolloverCorrection", use_correction)

    def measurement_zero_beam_off(self, beam_off: bool) -> RgaResponse:
        return self.command("MeasurementZeroBeamOff", beam_off)

    def measurement_zero_buffer_depth(self, depth: int) -> RgaResponse:
        return self.command("MeasurementZeroBufferDepth", depth)

    def measurement_zero_buffer_mode(self, mode: ZeroBufferMode) -> RgaResponse:
        return self.command("MeasurementZeroBufferMode", mode)

    def measurement_zero_re_trigger(self) -> RgaResponse:
        return self.command("MeasurementZeroReTrigger")

    def measurement_zero_mass(self, zero_mass: float) -> RgaResponse:
        return self.command("MeasurementZeroMass", zero_mass)

    def measurement_select(self, name: str) -> RgaResponse:
        """Make a defined measurement the current one for editing."""
        return self.command("MeasurementSelect", name)

    def measurement_start_mass(self, mass: int) -> RgaResponse:
        return self.command("MeasurementStartMass", mass)

    def measurement_end_mass(self, mass: int) -> RgaResponse:
        return self.command("MeasurementEndMass", mass)

    def measurement_remove_all(self) -> RgaResponse:
        return self.command("MeasurementRemoveAll")

    def measurement_remove(self, name: str) -> RgaResponse:
        return self.command("MeasurementRemove", name)

    # -- Detector and diagnostics --------------------------------------------

    def multiplier_protect(self, protect: bool) -> RgaResponse:
        return self.command("MultiplierProtect", protect)

    def run_diagnostics(self) -> RgaResponse:
        """Run the sensor self test (``RunDiagnostics``)."""
        return self.command("RunDiagnostics")

    # -- Calibration ---------------------------------------------------------

    def total_pressure(self, pressure: float) -> RgaResponse:
        """Report the external total pressure reading (``TotalPressure``)."""
        return self.command("TotalPressure", pressure)

    def total_pressure_cal_factor(self, factor: float) -> RgaResponse:
        return self.command("TotalPressureCalFactor", factor)

    def total_pressure_cal_date(self, when: datetime) -> RgaResponse:
        return self.command("TotalPressureCalDate", when)

    def calibration_options(
        self, inlet_option: CalibrationOption, detector_option: CalibrationOption
    ) -> RgaResponse:
        return self.command("CalibrationOptions", inlet_option, detector_option)

    def detector_factor(
        self, source_index: int, detector_index: int, filament: int, factor: float
    ) -> RgaResponse:
        return self.command("DetectorFactor", source_index, detector_index, filament, factor)

    def detector_cal_date(
        self, source_index: int, detector_index: int, filament: int, when: datetime
    ) -> RgaResponse:
        return self.command("DetectorCalDate", source_index, detector_index, filament, when)

    def detector_voltage(
        self, source_index: int, detector_index: int, filament: int, voltage: int
    ) -> RgaResponse:
        return self.command("DetectorVoltage", source_index, detector_index, filament, voltage)

    def inlet_factor(self, inlet_index: int, factor: float) -> RgaResponse:
        return self.command("InletFactor", inlet_index, factor)

    # -- Scan control --------------------------------------------------------

    def scan_add(self, measurement_name: str) -> RgaResponse:
        """Append a defined measurement to the scan list (``ScanAdd``)."""
        return self.command("ScanAdd", measurement_name)

    def scan_start(self, num_scans: int) -> RgaResponse:
        """Start scanning (``ScanStart``)."""
        return self.command("ScanStart", num_scans)

    def scan_stop(self) -> RgaResponse:
        return self.command("ScanStop")

    def scan_resume(self, num_scans: int | None = None) -> RgaResponse:
        """Resume scanning for *num_scans* more scans (``ScanResume``).

        Readings then arrive as events; drain them with :meth:`read_event`.
        """
        return self.command("ScanResume", num_scans)

    def scan_restart(self, num_scans: int | None = None) -> RgaResponse:
        return self.command("ScanRestart", num_scans)

    def format_with_tab(self, use_tab: bool) -> RgaResponse:
        return self.command("FormatWithTab", use_tab)

    # -- Source tuning -------------------------------------------------------

    def source_ion_energy(self, source_index: int, ion_energy: float) -> RgaResponse:
        return self.command("SourceIonEnergy", source_index, ion_energy)

    def source_emission(self, source_index: int, emission: float) -> RgaResponse:
        return self.command("SourceEmission", source_index, emission)

    def source_extract(self, source_index: int, extract: int) -> RgaResponse:
        return self.command("SourceExtract", source_index, extract)

    def source_electron_energy(self, source_index: int, electron_energy: int) -> RgaResponse:
        return self.command("SourceElectronEnergy", source_index, electron_energy)

    def source_low_mass_resolution(self, source_index: int, resolution: int) -> RgaResponse:
        return self.command("SourceLowMassResolution", source_index, resolution)

    def source_low_mass_alignment(self, source_index: int, alignment: int) -> RgaResponse:
        return self.command("SourceLowMassAlignment", source_index, alignment)

    def source_high_mass_alignment(self, source_index: int, alignment: int) -> RgaResponse:
        return self.command("SourceHighMassAlignment", source_index, alignment)

    def source_high_mass_resolution(self, source_index: int, resolution: int) -> RgaResponse:
        return self.command("SourceHighMassResolution", source_index, resolution)

    # -- Analog and digital I/O ----------------------------------------------

    def analog_input_average_count(
        self, index: int | None = None, number_to_average: int | None = None
    ) -> RgaResponse:
        return self.command("AnalogInputAverageCount", index, number_to_average)

    def analog_input_enable(
        self, index: int | None = None, enable: bool | None = None
    ) -> RgaResponse:
        return self.command("AnalogInputEnable", index, enable)

    def analog_input_interval(
        self, index: int | None = None, interval: int | None = None
    ) -> RgaResponse:
        return self.command("AnalogInputInterval", index, interval)

    def analog_output(self, index: int | None = None, value: int | None = None) -> RgaResponse:
        return self.command("AnalogOutput", index, value)

    def digital_max_pb67_on_time(self, time: int) -> RgaResponse:
        return self.command("DigitalMaxPB67OnTime", time)

    def digital_output(self, port: str, value: int) -> RgaResponse:
        return self.command("DigitalOutput", port, value)

    # -- Audio ---------------------------------------------------------------

    def audio_frequency(self, frequency: int) -> RgaResponse:
        return self.command("AudioFrequency", frequency)

    def audio_mode(self, mode: AudioMode) -> RgaResponse:
        return self.command("AudioMode", mode)

    # -- Cirrus --------------------------------------------------------------

    def cirrus_capillary_heater(self, heat_on: bool) -> RgaResponse:
        return self.command("CirrusCapillaryHeater", heat_on)

    def cirrus_heater(self, mode: CirrusHeaterMode) -> RgaResponse:
        return self.command("CirrusHeater", mode)

    def cirrus_pump(self, pump_on: bool) -> RgaResponse:
        return self.command("CirrusPump", pump_on)

    def cirrus_valve_position(self, valve_pos: int) -> RgaResponse:
        return self.command("CirrusValvePosition", valve_pos)

    # -- Process Eye calibration ---------------------------------------------

    def pe_cal_date_msg(self, when: datetime, message: str) -> RgaResponse:
        return self.command("PECal_DateMsg", when, message)

    def pe_cal_flush(self) -> RgaResponse:
        return self.command("PECal_Flush")

    def pe_cal_inlet(self, inlet1: float, inlet2: float, inlet3: float) -> RgaResponse:
        return self.command("PECal_Inlet", inlet1, inlet2, inlet3)

    def pe_cal_mass_method_contribution(
        self, mass: int, method: int, contribution: float
    ) -> RgaResponse:
        return self.command("PECal_MassMethodContribution", mass, method, contribution)

    def pe_cal_pressures(self) -> RgaResponse:
        return self.command("PECal_Pressures")

    def pe_cal_select(self, source_index: int, detector_index: int) -> RgaResponse:
        return self.command("PECal_Select", source_index, detector_index)

    # -- Rollover correction -------------------------------------------------

    def rollover_scale_factor(self, mass: int, factor: float) -> RgaResponse:
        return self.command("RolloverScaleFactor", mass, factor)

    def rollover_variables(
        self, m1: int, m2: int, b1: float, b2: float, bp1: float
    ) -> RgaResponse:
        return self.command("RolloverVariables", m1, m2, b1, b2, bp1)

    # -- RVC -----------------------------------------------------------------

    def rvc_alarm(self, state: bool) -> RgaResponse:
        return self.command("RVCAlarm", state)

    def rvc_close_all_valves(self) -> RgaResponse:
        return self.command("RVCCloseAllValves")

    def rvc_heater(self, heater_on: bool) -> RgaResponse:
        return self.command("RVCHeater", heater_on)

    def rvc_pump(self, pump_on: bool) -> RgaResponse:
        return self.command("RVCPump", pump_on)

    def rvc_valve_control(self, valve: int, open_valve: bool) -> RgaResponse:
        return self.command("RVCValveControl", valve, open_valve)

    def rvc_valve_mode(self, mode: RvcValveMode) -> RgaResponse:
        return self.command("RVCValveMode", mode)

    # -- Persistence and degas -----------------------------------------------

    def save_changes(self) -> RgaResponse:
        """Persist configuration changes on the sensor (``SaveChanges``)."""
        return self.command("SaveChanges")

    def start_degas(
        self,
        start_power: int,
        end_power: int,
        ramp_period: int,
        max_power_period: int,
        resettle_period: int,
    ) -> RgaResponse:
        """Start a degas cycle (``StartDegas``); readings arrive as events."""
        return self.command(
            "StartDegas", start_power, end_power, ramp_period, max_power_period, resettle_period
        )

    def stop_degas(self) -> RgaResponse:
        return self.command("StopDegas")

    # -- Private helpers -----------------------------------------------------

    def _send(self, line: str) -> None:
        logger.debug("RGA -> %r", line)
        try:
            self._transport.write(encode_command(line))
        except TransportError:
            raise
        except OSError as exc:
            raise TransportError(f"RGA write failed: {exc}") from exc

    def _track_state(self, name: str) -> None:
        if name == "Select":
            self._state = SessionState.SELECTED
        elif name == "Control":
            self._state = SessionState.CONTROLLED
        elif name == "Release" and self._state is SessionState.CONTROLLED:
            self._state = SessionState.SELECTED
