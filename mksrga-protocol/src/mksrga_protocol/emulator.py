"""MKS RGA emulator.

Provides an in-process instrument emulator implementing the ``RgaTransport``
protocol: bytes written to it are parsed as command lines and the reply
frames are buffered for :meth:`RgaEmulator.read`. Scans queue their event
frames (``StartingScan``, ``StartingMeasurement``, ``MassReading`` ...) right
after the command reply, as a real instrument streams them.

The emulator models a server with a single sensor that is already selected,
which is how a stand-alone sensor behaves.
"""

from __future__ import annotations

import logging
import shlex
import time
from dataclasses import dataclass, field
from typing import Callable

from mksrga_protocol.framing import COMMAND_SUFFIX, FRAME_TERMINATOR, ROW_DELIMITER

logger = logging.getLogger(__name__)

_SUFFIX = COMMAND_SUFFIX.encode("ascii")

# Background partial pressures (Torr) of a clean, baked system.
_SPECTRUM: dict[int, float] = {
    1: 2.1e-10,
    2: 4.6e-09,
    12: 3.3e-11,
    14: 1.9e-10,
    16: 2.7e-10,
    17: 1.2e-09,
    18: 5.4e-09,
    28: 1.6e-09,
    32: 3.9e-11,
    40: 2.2e-11,
    44: 3.1e-10,
}
_BASELINE = 1.0e-13


def spectrum_value(mass: int) -> float:
    """Return the emulated partial pressure reading for *mass*."""
    return _SPECTRUM.get(mass, _BASELINE * (1 + (mass % 7) / 10))


# ---------------------------------------------------------------------------
# Configuration
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class RgaEmulatorConfig:
    """Configuration for an RGA emulator instance.

    Args:
        serial_number: Serial number of the emulated sensor.
        name: Sensor name reported by ``Sensors`` and ``Info``.
        protocol_revision: Revision reported in the handshake.
        max_mass: Highest mass the sensor can scan (>= 1).
    """

    serial_number: str = "LM70-00197021"
    name: str = "Sensor1"
    protocol_revision: str = "1.2"
    max_mass: int = 200

    def __post_init__(self) -> None:
        if not self.serial_number:
            raise ValueError("serial_number must be non-empty")
        if self.max_mass < 1:
            raise ValueError("max_mass must be >= 1")


class _CommandFailed(Exception):
    """Raised by a handler to answer with an ``ERROR`` frame."""

    def __init__(self, code: int, description: str) -> None:
        super().__init__(description)
        self.code = code
        self.description = description


# ---------------------------------------------------------------------------
# Internal state
# ---------------------------------------------------------------------------


@dataclass
class _Measurement:
    name: str
    kind: str
    masses: list[int] = field(default_factory=list)
    filter_mode: str = "PeakCenter"
    accuracy: int = 5


# ---------------------------------------------------------------------------
# Emulator
# ---------------------------------------------------------------------------


class RgaEmulator:
    """In-process MKS RGA emulator implementing ``RgaTransport``.

    Args:
        config: Emulator configuration. Defaults to a single 200 amu sensor.
    """

    def __init__(self, config: RgaEmulatorConfig | None = None) -> None:
        self._config = config or RgaEmulatorConfig()
        self._input = b""
        self._output = bytearray()
        self._started = time.monotonic()
        self._selected: str | None = self._config.serial_number
        self._owner: tuple[str, str] | None = None
        self._filament_on = False
        self._measurements: dict[str, _Measurement] = {}
        self._current: _Measurement | None = None
        self._scan_list: list[str] = []
        self._scan_number = 0

        self._handlers: dict[str, Callable[[list[str]], list[str]]] = {
            "Sensors": self._sensors,
            "Select": self._select,
            "SensorState": self._sensor_state,
            "Info": self._info,
            "EGains": self._egains,
            "FilamentInfo": self._filament_info,
            "DetectorInfo": self._detector_info,
            "Control": self._control,
            "Release": self._release,
            "FilamentControl": self._filament_control,
            "AddAnalog": self._add_analog,
            "AddBarchart": self._add_barchart,
            "AddPeakJump": self._add_peak_jump,
            "AddSinglePeak": self._add_single_peak,
            "MeasurementAddMass": self._measurement_add_mass,
            "MeasurementSelect": self._measurement_select,
            "MeasurementRemove": self._measurement_remove,
            "MeasurementRemoveAll": self._measurement_remove_all,
            "ScanAdd": self._scan_add,
            "ScanStart": self._scan_start,
            "ScanResume": self._scan_resume,
            "ScanRestart": self._scan_restart,
            "ScanStop": self._scan_stop,
        }

    # -- Transport interface ------------------------------------------------

    def write(self, data: bytes) -> None:
        """Process command bytes; complete lines are answered immediately."""
        self._input += data
        while True:
            index = self._input.find(_SUFFIX)
            if index < 0:
                break
            line = self._input[:index].decode("ascii", errors="replace").strip()
            self._input = self._input[index + len(_SUFFIX) :]
            self._process(line)

    def read(self, size: int) -> bytes:
        """Return up to *size* buffered bytes.

        Raises:
            TimeoutError: If nothing is buffered, as a socket read would time
                out.
        """
        if not self._output:
            raise TimeoutError("No data from RGA emulator")
        chunk = bytes(self._output[:size])
        del self._output[:size]
        return chunk

    def close(self) -> None:
        """Close the emulator (discards buffered traffic)."""
        self._input = b""
        self._output.clear()

    # -- Test helpers -------------------------------------------------------

    def read_available(self) -> bytes:
        """Return and clear everything buffered for the client."""
        data = bytes(self._output)
        self._output.clear()
        return data

    def inject(self, *rows: str) -> None:
        """Queue an arbitrary frame, e.g. an unsolicited event."""
        self._push(list(rows))

    @property
    def is_controlled(self) -> bool:
        """True while a client holds control of the sensor."""
        return self._owner is not None

    @property
    def filament_on(self) -> bool:
        """True while the filament is on."""
        return self._filament_on

    # -- Private helpers ----------------------------------------------------

    def _process(self, line: str) -> None:
        if not line:
            self._push(
                [
                    "MKSRGA Single",
                    f"Protocol_Revision {self._config.protocol_revision}",
                    "Min_Compatibility 1.0",
                ]
            )
            return
        try:
            tokens = shlex.split(line)
        except ValueError:
            tokens = line.split()
        name, args = tokens[0], tokens[1:]
        handler = self._handlers.get(name)
        if handler is None:
            self._push_error(name, 1, f"Unknown command {name}")
            return
        try:
            rows = handler(args)
        except _CommandFailed as exc:
            self._push_error(name, exc.code, exc.description)
            return
        except (ValueError, IndexError):
            self._push_error(name, 2, "Invalid parameter")
            return
        self._push([f"{name} OK", *rows])
        if name in ("ScanStart", "ScanResume", "ScanRestart"):
            self._run_scans(int(args[0]) if args else 1)

    def _push(self, rows: list[str]) -> None:
        text = ROW_DELIMITER.decode("ascii").join(rows)
        self._output += text.encode("ascii") + FRAME_TERMINATOR

    def _push_error(self, name: str, code: int, description: str) -> None:
        logger.debug("RGA emulator rejected %s: %s", name, description)
        self._push([f"{name} ERROR", f"Number {code}", f"Description {description}"])

    def _require_control(self) -> None:
        if self._owner is None:
            raise _CommandFailed(200, "Sensor not in control")

    def _require_measurement(self) -> _Measurement:
        if self._current is None:
            raise _CommandFailed(210, "No measurement selected")
        return self._current

    def _check_mass(self, mass: int) -> int:
        if not 1 <= mass <= self._config.max_mass:
            raise _CommandFailed(211, f"Mass {mass} out of range")
        return mass

    def _define(self, measurement: _Measurement) -> list[str]:
        self._require_control()
        if measurement.name in self._measurements:
            raise _CommandFailed(212, f"Measurement {measurement.name} already exists")
        self._measurements[measurement.name] = measurement
        self._current = measurement
        return []

    def _run_scans(self, count: int) -> None:
        for remaining in range(count - 1, -1, -1):
            self._scan_number += 1
            elapsed = int(time.monotonic() - self._started)
            self._push([f"StartingScan {self._scan_number} {elapsed} {remaining}"])
            for name in self._scan_list:
                measurement = self._measurements[name]
                self._push([f"StartingMeasurement {name}"])
                for mass in measurement.masses:
                    self._push([f"MassReading {mass} {spectrum_value(mass):.6e}"])

    # -- Information handlers -----------------------------------------------

    def _sensors(self, args: list[str]) -> list[str]:
        state = "InUse" if self._owner else "Ready"
        return [
            "SerialNumber Name State",
            f"{self._config.serial_number} {self._config.name} {state}",
        ]

    def _select(self, args: list[str]) -> list[str]:
        serial = args[0]
        if serial != self._config.serial_number:
            raise _CommandFailed(100, f"Sensor {serial} not found")
        self._selected = serial
        return [f"SerialNumber {serial}", "State Ready"]

    def _sensor_state(self, args: list[str]) -> list[str]:
        if self._selected is None:
            raise _CommandFailed(101, "No sensor selected")
        if self._owner is None:
            return ["State Ready", "UserApplication N/A", "UserVersion N/A", "UserAddress N/A"]
        app, version = self._owner
        return [
            "State InUse",
            f"UserApplication {app}",
            f"UserVersion {version}",
            "UserAddress 127.0.0.1",
        ]

    def _info(self, args: list[str]) -> list[str]:
        return [
            f"SerialNumber {self._config.serial_number}",
            f"Name {self._config.name}",
            "ProductID 70",
            "DetectorType Multiplier",
            "SEMSupply 3000V",
            "FilamentType Tungsten",
            "SensorType Standard_Open_Source",
            "Version 1.60",
            "NumEGains 3",
            "NumDigitalPorts 2",
            "NumAnalogInputs 4",
            "NumAnalogOutputs 1",
            "NumSourceSettings 6",
            "NumInlets 1",
            f"MaxMass {self._config.max_mass}",
            "ActiveFilament 1",
            "RolloverCorrection True",
        ]

    def _egains(self, args: list[str]) -> list[str]:
        return ["1", "20000", "100000"]

    def _filament_info(self, args: list[str]) -> list[str]:
        summary = "ON" if self._filament_on else "OFF"
        return [
            f"SummaryState {summary}",
            "ActiveFilament 1",
            "ExternalTripEnable False",
            "EmissionTripEnable True",
            "MaxOnTime 0",
            "OnTimeRemaining 0",
            "Trip None",
            "Drive Off",
            "EmissionTripState OK",
            "ExternalTripState OK",
        ]

    def _detector_info(self, args: list[str]) -> list[str]:
        source_index = int(args[0])
        return [
            f"SourceIndex {source_index}",
            "Factor DetectorType Voltage",
            "2.0e-04 Faraday 0",
            "1.0e-01 Multiplier 1200",
        ]

    # -- Control handlers ---------------------------------------------------

    def _control(self, args: list[str]) -> list[str]:
        app, version = args[0], args[1]
        if self._selected is None:
            raise _CommandFailed(101, "No sensor selected")
        if self._owner is not None and self._owner[0] != app:
            raise _CommandFailed(201, f"Sensor in use by {self._owner[0]}")
        self._owner = (app, version)
        return [f"SerialNumber {self._selected}", "State InUse"]

    def _release(self, args: list[str]) -> list[str]:
        self._owner = None
        self._filament_on = False
        self._scan_list.clear()
        return [f"SerialNumber {self._selected}", "State Ready"]

    def _filament_control(self, args: list[str]) -> list[str]:
        self._require_control()
        state = args[0]
        if state not in ("On", "Off"):
            raise _CommandFailed(2, f"Invalid filament state {state}")
        self._filament_on = state == "On"
        return [f"State {state}"]

    # -- Measurement handlers -----------------------------------------------

    def _add_analog(self, args: list[str]) -> list[str]:
        start = self._check_mass(int(args[1]))
        end = self._check_mass(int(args[2]))
        return self._define(
            _Measurement(
                args[0], "Analog", masses=list(range(start, end + 1)), accuracy=int(args[4])
            )
        )

    def _add_barchart(self, args: list[str]) -> list[str]:
        start = self._check_mass(int(args[1]))
        end = self._check_mass(int(args[2]))
        if end < start:
            raise _CommandFailed(213, "End mass before start mass")
        return self._define(
            _Measurement(
                args[0],
                "Barchart",
                masses=list(range(start, end + 1)),
                filter_mode=args[3],
                accuracy=int(args[4]),
            )
        )

    def _add_peak_jump(self, args: list[str]) -> list[str]:
        return self._define(
            _Measurement(args[0], "PeakJump", filter_mode=args[1], accuracy=int(args[2]))
        )

    def _add_single_peak(self, args: list[str]) -> list[str]:
        mass = self._check_mass(round(float(args[1])))
        return self._define(
            _Measurement(args[0], "SinglePeak", masses=[mass], accuracy=int(args[2]))
        )

    def _measurement_add_mass(self, args: list[str]) -> list[str]:
        self._require_control()
        measurement = self._require_measurement()
        measurement.masses.append(self._check_mass(int(args[0])))
        return []

    def _measurement_select(self, args: list[str]) -> list[str]:
        name = args[0]
        if name not in self._measurements:
            raise _CommandFailed(214, f"Measurement {name} not found")
        self._current = self._measurements[name]
        return []

    def _measurement_remove(self, args: list[str]) -> list[str]:
        self._require_control()
        name = args[0]
        if self._measurements.pop(name, None) is None:
            raise _CommandFailed(214, f"Measurement {name} not found")
        if name in self._scan_list:
            self._scan_list.remove(name)
        if self._current is not None and self._current.name == name:
            self._current = None
        return []

    def _measurement_remove_all(self, args: list[str]) -> list[str]:
        self._require_control()
        self._measurements.clear()
        self._scan_list.clear()
        self._current = None
        return []

    # -- Scan handlers ------------------------------------------------------

    def _scan_add(self, args: list[str]) -> list[str]:
        self._require_control()
        name = args[0]
        if name not in self._measurements:
            raise _CommandFailed(214, f"Measurement {name} not found")
        self._scan_list.append(name)
        return []

    def _check_scan(self, args: list[str]) -> list[str]:
        self._require_control()
        if not self._scan_list:
            raise _CommandFailed(220, "Scan list is empty")
        if args and int(args[0]) < 1:
            raise _CommandFailed(2, "Number of scans must be >= 1")
        return []

    def _scan_start(self, args: list[str]) -> list[str]:
        if not args:
            raise _CommandFailed(2, "Missing number of scans")
        return self._check_scan(args)

    def _scan_resume(self, args: list[str]) -> list[str]:
        return self._check_scan(args)

    def _scan_restart(self, args: list[str]) -> list[str]:
        self._scan_number = 0
        return self._check_scan(args)

    def _scan_stop(self, args: list[str]) -> list[str]:
        self._require_control()
        return []


# ---------------------------------------------------------------------------
# Factory functions
# ---------------------------------------------------------------------------


def make_microvision_emulator(serial: str = "LM70-00197021") -> RgaEmulator:
    """Create an emulator for a 200 amu MKS Microvision sensor.

    Args:
        serial: Serial number of the emulated sensor.

    Returns:
        Configured emulator instance.
    """
    return RgaEmulator(RgaEmulatorConfig(serial_number=serial, max_mass=200))
