"""Command catalog for the RGA ASCII protocol.

Every supported command is described once by an immutable
:class:`CommandDescriptor`: its wire name, its ordered typed parameters, the
layout of its reply and the buffer tier needed to read that reply. The catalog
is pure data plus formatting; it performs no I/O and does not validate ranges
(the instrument's own error reply is the authority on that).

Parameter rendering:
- INT: decimal integer (``5``)
- FIXED: fixed-point float (``1.500000``)
- SCI / SCI_LOWER: scientific float (``1.000000E-04`` / ``1.500000e-06``)
- ENUM: the enumerated token literal (``PeakCenter``)
- BOOL: ``True`` / ``False``
- TIMESTAMP: ``yyyy-mm-dd_HH:MM:SS``
- TEXT: the string, double-quoted when it contains whitespace

Typical usage::

    from mksrga_protocol.catalog import FilterMode, encode

    encode("AddBarchart", "Bar1", 1, 200, FilterMode.PEAK_CENTER, 5, 0, 0, 0)
    # 'AddBarchart Bar1 1 200 PeakCenter 5 0 0 0\\n\\r'
"""

from __future__ import annotations

import operator
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from types import MappingProxyType
from typing import Any, Mapping

from mksrga_protocol.framing import COMMAND_SUFFIX, DEFAULT_BUFFER_SIZE, LARGE_BUFFER_SIZE
from mksrga_protocol.parsing import ResponseLayout

TIMESTAMP_FORMAT = "%Y-%m-%d_%H:%M:%S"

# -- Enumerated tokens --------------------------------------------------------


class FilterMode(Enum):
    """How scanned points are reduced to one reading per mass."""

    PEAK_CENTER = "PeakCenter"
    PEAK_MAX = "PeakMax"
    PEAK_AVERAGE = "PeakAverage"


class OnOff(Enum):
    """Filament state argument."""

    ON = "On"
    OFF = "Off"


class ZeroBufferMode(Enum):
    """Averaging logic for zero readings."""

    SINGLE_SCAN_AVERAGE = "SingleScanAverage"
    MULTI_SCAN_AVERAGE = "MultiScanAverage"
    MULTI_SCAN_AVERAGE_QUICK_START = "MultiScanAverageQuickStart"
    SINGLE_SHOT = "SingleShot"


class CalibrationOption(Enum):
    """How an inlet or detector calibration factor is applied."""

    OFF = "Off"
    DEFAULT = "Default"
    CURRENT = "Current"


class AudioMode(Enum):
    """Sensor audio output mode."""

    OFF = "Off"
    AUTOMATIC = "Automatic"
    MANUAL = "Manual"


class CirrusHeaterMode(Enum):
    """Cirrus heater state."""

    OFF = "Off"
    WARM = "Warm"
    BAKE = "Bake"


class RvcValveMode(Enum):
    """RVC valve control mode."""

    MANUAL = "Manual"
    AUTOMATIC = "Automatic"


class SensorState(Enum):
    """Values of the ``State`` field returned by ``SensorState``."""

    READY = "Ready"
    IN_USE = "InUse"
    CONFIG = "Config"
    NOT_AVAILABLE = "N/A"


# -- Descriptors --------------------------------------------------------------


class ParamKind(Enum):
    """Wire rendering of a command parameter."""

    INT = "int"
    FIXED = "fixed"
    SCI = "sci"
    SCI_LOWER = "sci_lower"
    ENUM = "enum"
    BOOL = "bool"
    TIMESTAMP = "timestamp"
    TEXT = "text"


@dataclass(frozen=True)
class Param:
    """One positional command parameter.

    Attributes:
        name: Parameter name as documented by the protocol manual.
        kind: How the argument is rendered on the wire.
        optional: Whether the argument may be omitted (trailing only).
    """

    name: str
    kind: ParamKind
    optional: bool = False


def format_argument(kind: ParamKind, value: Any) -> str:
    """Render one argument for the wire.

    Args:
        kind: The parameter kind.
        value: The typed argument.

    Returns:
        The argument text.

    Raises:
        TypeError: If *value* has the wrong type for *kind* (e.g. a float
            where an integer is expected).
    """
    if kind is ParamKind.INT:
        return str(operator.index(value))
    if kind is ParamKind.FIXED:
        return f"{float(value):f}"
    if kind is ParamKind.SCI:
        return f"{float(value):E}"
    if kind is ParamKind.SCI_LOWER:
        return f"{float(value):e}"
    if kind is ParamKind.ENUM:
        return str(value.value) if isinstance(value, Enum) else str(value)
    if kind is ParamKind.BOOL:
        if not isinstance(value, bool):
            raise TypeError(f"Expected bool, got {type(value).__name__}")
        return "True" if value else "False"
    if kind is ParamKind.TIMESTAMP:
        if not isinstance(value, datetime):
            raise TypeError(f"Expected datetime, got {type(value).__name__}")
        return value.strftime(TIMESTAMP_FORMAT)
    text = str(value)
    if not text or any(ch.isspace() for ch in text):
        return '"' + text + '"'
    return text


@dataclass(frozen=True)
class CommandDescriptor:
    """Static description of one protocol command.

    Attributes:
        name: Wire name of the command.
        params: Ordered positional parameters.
        layout: Layout of the OK reply.
        buffer_size: Frame capacity needed to read the reply.
    """

    name: str
    params: tuple[Param, ...] = ()
    layout: ResponseLayout = ResponseLayout.VERTICAL
    buffer_size: int = DEFAULT_BUFFER_SIZE

    def render(self, *args: Any) -> str:
        """Render the command line, including the command suffix.

        Trailing optional arguments may be passed as ``None`` (or left out)
        to omit them.

        Raises:
            ValueError: If the number of arguments does not match, or an
                omitted optional argument is followed by a supplied one,
                or the rendered line is not ASCII.
            TypeError: If an argument has the wrong type.
        """
        if len(args) > len(self.params):
            raise ValueError(
                f"{self.name} takes at most {len(self.params)} arguments, got {len(args)}"
            )
        parts = [self.name]
        omitted: str | None = None
        for index, param in enumerate(self.params):
            value = args[index] if index < len(args) else None
            if value is None:
                if not param.optional:
                    raise ValueError(f"{self.name}: missing required argument {param.name}")
                omitted = param.name
                continue
            if omitted is not None:
                raise ValueError(f"{self.name}: {param.name} given but {omitted} omitted")
            parts.append(format_argument(param.kind, value))
        line = " ".join(parts)
        if not line.isascii():
            raise ValueError(f"{self.name}: arguments must be ASCII text")
        return line + COMMAND_SUFFIX


def _int(name: str, optional: bool = False) -> Param:
    return Param(name, ParamKind.INT, optional)


def _fixed(name: str) -> Param:
    return Param(name, ParamKind.FIXED)


def _enum(name: str) -> Param:
    return Param(name, ParamKind.ENUM)


def _bool(name: str, optional: bool = False) -> Param:
    return Param(name, ParamKind.BOOL, optional)


def _text(name: str) -> Param:
    return Param(name, ParamKind.TEXT)


def _timestamp(name: str) -> Param:
    return Param(name, ParamKind.TIMESTAMP)


def _cmd(
    name: str,
    *params: Param,
    layout: ResponseLayout = ResponseLayout.VERTICAL,
    large: bool = False,
) -> CommandDescriptor:
    return CommandDescriptor(
        name=name,
        params=params,
        layout=layout,
        buffer_size=LARGE_BUFFER_SIZE if large else DEFAULT_BUFFER_SIZE,
    )


_HORIZONTAL = ResponseLayout.HORIZONTAL

_DESCRIPTORS: tuple[CommandDescriptor, ...] = (
    # Sensor selection and information
    _cmd("Sensors", layout=_HORIZONTAL, large=True),
    _cmd("Select", _text("SerialNumber")),
    _cmd("SensorState"),
    _cmd("Info", large=True),
    _cmd("EGains", layout=ResponseLayout.ONE_PER_LINE),
    _cmd("InletInfo", layout=_HORIZONTAL),
    _cmd("RFInfo"),
    _cmd("MultiplierInfo"),
    _cmd("SourceInfo", _int("SourceIndex", optional=True)),
    _cmd("DetectorInfo", _int("SourceIndex"), layout=ResponseLayout.COMPOSITE, large=True),
    _cmd("FilamentInfo"),
    _cmd("TotalPressureInfo"),
    _cmd("AnalogInputInfo", layout=_HORIZONTAL, large=True),
    _cmd("AnalogOutputInfo", layout=_HORIZONTAL),
    _cmd("DigitalInfo", large=True),
    _cmd("RolloverInfo"),
    _cmd("RVCInfo"),
    _cmd("CirrusInfo"),
    _cmd("PECal_Info", _int("SourceIndex"), _int("DetectorIndex"), large=True),
    # Control
    _cmd("Control", _text("AppName"), _text("Version")),
    _cmd("Release"),
    _cmd("FilamentControl", _enum("State")),
    _cmd("FilamentSelect", _int("Number")),
    _cmd("FilamentOnTime", _int("Time")),
    # Measurement definition
    _cmd(
        "AddAnalog",
        _text("Name"),
        _int("StartMass"),
        _int("EndMass"),
        _int("PointsPerPeak"),
        _int("Accuracy"),
        _int("EGainIndex"),
        _int("SourceIndex"),
        _int("DetectorIndex"),
    ),
    _cmd(
        "AddBarchart",
        _text("Name"),
        _int("StartMass"),
        _int("EndMass"),
        _enum("FilterMode"),
        _int("Accuracy"),
        _int("EGainIndex"),
        _int("SourceIndex"),
        _int("DetectorIndex"),
    ),
    _cmd(
        "AddPeakJump",
        _text("Name"),
        _enum("FilterMode"),
        _int("Accuracy"),
        _int("EGainIndex"),
        _int("SourceIndex"),
        _int("DetectorIndex"),
    ),
    _cmd(
        "AddSinglePeak",
        _text("Name"),
        _fixed("Mass"),
        _int("Accuracy"),
        _int("EGainIndex"),
        _int("SourceIndex"),
        _int("DetectorIndex"),
    ),
    # Measurement editing
    _cmd("MeasurementAccuracy", _int("Accuracy")),
    _cmd("MeasurementAddMass", _int("Mass")),
    _cmd("MeasurementChangeMass", _int("MassIndex"), _int("NewMass")),
    _cmd("MeasurementDetectorIndex", _int("DetectorIndex")),
    _cmd("MeasurementWGainIndex", _int("EGainIndex")),
    _cmd("MeasurementFilterMode", _enum("FilterMode")),
    _cmd("MeasurementMass", _fixed("Mass")),
    _cmd("MeasurementPointsPerPeak", _int("PointsPerPeak")),
    _cmd("MeasurementRemoveMass", _int("MassIndex")),
    _cmd("MeasurementSourceIndex", _int("SourceIndex")),
    _cmd("MeasurementRolloverCorrection", _bool("UseCorrection")),
    _cmd("MeasurementZeroBeamOff", _bool("BeamOff")),
    _cmd("MeasurementZeroBufferDepth", _int("ZeroBufferDepth")),
    _cmd("MeasurementZeroBufferMode", _enum("ZeroBufferMode")),
    _cmd("MeasurementZeroReTrigger"),
    _cmd("MeasurementZeroMass", _fixed("ZeroMass")),
    _cmd("MeasurementSelect", _text("MeasurementName")),
    _cmd("MeasurementStartMass", _int("Mass")),
    _cmd("MeasurementEndMass", _int("Mass")),
    _cmd("MeasurementRemoveAll"),
    _cmd("MeasurementRemove", _text("MeasurementName")),
    # Detector and diagnostics
    _cmd("MultiplierProtect", _bool("Protect")),
    _cmd("RunDiagnostics", layout=_HORIZONTAL, large=True),
    # Calibration
    _cmd("TotalPressure", Param("Pressure", ParamKind.SCI)),
    _cmd("TotalPressureCalFactor", _fixed("Factor")),
    _cmd("TotalPressureCalDate", _timestamp("DateTime")),
    _cmd("CalibrationOptions", _enum("InletOption"), _enum("DetectorOption")),
    _cmd(
        "DetectorFactor",
        _int("SourceIndex"),
        _int("DetectorIndex"),
        _int("Filament"),
        Param("Factor", ParamKind.SCI_LOWER),
    ),
    _cmd(
        "DetectorCalDate",
        _int("SourceIndex"),
        _int("DetectorIndex"),
        _int("Filament"),
        _timestamp("Date"),
    ),
    _cmd(
        "DetectorVoltage",
        _int("SourceIndex"),
        _int("DetectorIndex"),
        _int("Filament"),
        _int("Voltage"),
    ),
    _cmd("InletFactor", _int("InletIndex"), _fixed("Factor")),
    # Scan control
    _cmd("ScanAdd", _text("MeasurementName")),
    _cmd("ScanStart", _int("NumScans")),
    _cmd("ScanStop"),
    _cmd("ScanResume", _int("NumScans", optional=True)),
    _cmd("ScanRestart", _int("NumScans", optional=True)),
    _cmd("FormatWithTab", _bool("UseTab")),
    # Source tuning
    _cmd("SourceIonEnergy", _int("SourceIndex"), _fixed("IonEnergy")),
    _cmd("SourceEmission", _int("SourceIndex"), _fixed("Emission")),
    _cmd("SourceExtract", _int("SourceIndex"), _int("Extract")),
    _cmd("SourceElectronEnergy", _int("SourceIndex"), _int("ElectronEnergy")),
    _cmd("SourceLowMassResolution", _int("SourceIndex"), _int("LowMassResolution")),
    _cmd("SourceLowMassAlignment", _int("SourceIndex"), _int("LowMassAlignment")),
    _cmd("SourceHighMassAlignment", _int("SourceIndex"), _int("HighMassAlignment")),
    _cmd("SourceHighMassResolution", _int("SourceIndex"), _int("HighMassResolution")),
    # Analog and digital I/O
    _cmd(
        "AnalogInputAverageCount",
        _int("Index", optional=True),
        _int("NumberToAverage", optional=True),
    ),
    _cmd("AnalogInputEnable", _int("Index", optional=True), _bool("Enable", optional=True)),
    _cmd("AnalogInputInterval", _int("Index", optional=True), _int("Interval", optional=True)),
    _cmd("AnalogOutput", _int("Index", optional=True), _int("Value", optional=True)),
    _cmd("DigitalMaxPB67OnTime", _int("Time")),
    _cmd("DigitalOutput", _text("Port"), _int("Value")),
    # Audio
    _cmd("AudioFrequency", _int("Frequency")),
    _cmd("AudioMode", _enum("Mode")),
    # Cirrus
    _cmd("CirrusCapillaryHeater", _bool("HeatOn")),
    _cmd("CirrusHeater", _enum("Mode")),
    _cmd("CirrusPump", _bool("PumpOn")),
    _cmd("CirrusValvePosition", _int("ValvePos")),
    # Process Eye calibration
    _cmd("PECal_DateMsg", _timestamp("Date"), _text("Message")),
    _cmd("PECal_Flush"),
    _cmd("PECal_Inlet", _fixed("Inlet1"), _fixed("Inlet2"), _fixed("Inlet3")),
    _cmd(
        "PECal_MassMethodContribution",
        _int("Mass"),
        _int("Method"),
        _fixed("Contribution"),
    ),
    _cmd("PECal_Pressures"),
    _cmd("PECal_Select", _int("SourceIndex"), _int("DetectorIndex")),
    # Rollover correction
    _cmd("RolloverScaleFactor", _int("Mass"), _fixed("Factor")),
    _cmd(
        "RolloverVariables",
        _int("M1"),
        _int("M2"),
        _fixed("B1"),
        _fixed("B2"),
        _fixed("BP1"),
    ),
    # RVC
    _cmd("RVCAlarm", _bool("State")),
    _cmd("RVCCloseAllValves"),
    _cmd("RVCHeater", _bool("HeaterOn")),
    _cmd("RVCPump", _bool("PumpOn")),
    _cmd("RVCValveControl", _int("Valve"), _bool("Open")),
    _cmd("RVCValveMode", _enum("Mode")),
    # Persistence and degas
    _cmd("SaveChanges"),
    _cmd(
        "StartDegas",
        _int("StartPower"),
        _int("EndPower"),
        _int("RampPeriod"),
        _int("MaxPowerPeriod"),
        _int("ResettlePeriod"),
    ),
    _cmd("StopDegas"),
)

COMMANDS: Mapping[str, CommandDescriptor] = MappingProxyType(
    {descriptor.name: descriptor for descriptor in _DESCRIPTORS}
)
"""Read-only catalog of every supported command, keyed by wire name."""


def get_command(name: str) -> CommandDescriptor:
    """Look up a command descriptor.

    Raises:
        KeyError: If *name* is not a supported command.
    """
    try:
        return COMMANDS[name]
    except KeyError:
        raise KeyError(f"Unknown RGA command: {name!r}") from None


def encode(name: str, *args: Any) -> str:
    """Render a catalogued command with its arguments.

    Args:
        name: Wire name of the command.
        *args: Typed positional arguments.

    Returns:
        The command line terminated by the command suffix.
    """
    return get_command(name).render(*args)
