"""Tests for the command catalog and argument rendering."""

from __future__ import annotations

from datetime import datetime

import pytest

from mksrga_protocol.catalog import (
    COMMANDS,
    CalibrationOption,
    FilterMode,
    OnOff,
    ParamKind,
    encode,
    format_argument,
    get_command,
)
from mksrga_protocol.framing import DEFAULT_BUFFER_SIZE, LARGE_BUFFER_SIZE
from mksrga_protocol.parsing import ResponseLayout


class TestCatalog:
    """Tests for the catalog contents."""

    def test_keys_match_names(self) -> None:
        for name, descriptor in COMMANDS.items():
            assert descriptor.name == name

    def test_immutable(self) -> None:
        with pytest.raises(TypeError):
            COMMANDS["Bogus"] = COMMANDS["Sensors"]  # type: ignore[index]

    def test_unknown_command(self) -> None:
        with pytest.raises(KeyError, match="Unknown RGA command"):
            get_command("Bogus")

    @pytest.mark.parametrize(
        "name", ["Sensors", "InletInfo", "AnalogInputInfo", "AnalogOutputInfo", "RunDiagnostics"]
    )
    def test_horizontal_commands(self, name: str) -> None:
        assert COMMANDS[name].layout is ResponseLayout.HORIZONTAL

    def test_special_layouts(self) -> None:
        assert COMMANDS["EGains"].layout is ResponseLayout.ONE_PER_LINE
        assert COMMANDS["DetectorInfo"].layout is ResponseLayout.COMPOSITE
        assert COMMANDS["SensorState"].layout is ResponseLayout.VERTICAL

    def test_buffer_tiers(self) -> None:
        assert COMMANDS["Sensors"].buffer_size == LARGE_BUFFER_SIZE
        assert COMMANDS["Info"].buffer_size == LARGE_BUFFER_SIZE
        assert COMMANDS["Release"].buffer_size == DEFAULT_BUFFER_SIZE

    def test_optional_params_are_trailing(self) -> None:
        for descriptor in COMMANDS.values():
            seen_optional = False
            for param in descriptor.params:
                if param.optional:
                    seen_optional = True
                else:
                    assert not seen_optional, descriptor.name


class TestFormatArgument:
    """Tests for format_argument."""

    def test_int(self) -> None:
        assert format_argument(ParamKind.INT, 5) == "5"

    def test_int_rejects_float(self) -> None:
        with pytest.raises(TypeError):
            format_argument(ParamKind.INT, 5.0)

    def test_fixed(self) -> None:
        assert format_argument(ParamKind.FIXED, 1.5) == "1.500000"

    def test_scientific(self) -> None:
        assert format_argument(ParamKind.SCI, 1e-4) == "1.000000E-04"
        assert format_argument(ParamKind.SCI_LOWER, 1.5e-6) == "1.500000e-06"

    def test_enum(self) -> None:
        assert format_argument(ParamKind.ENUM, FilterMode.PEAK_CENTER) == "PeakCenter"
        assert format_argument(ParamKind.ENUM, "Off") == "Off"

    def test_bool(self) -> None:
        assert format_argument(ParamKind.BOOL, True) == "True"
        assert format_argument(ParamKind.BOOL, False) == "False"
        with pytest.raises(TypeError):
            format_argument(ParamKind.BOOL, 1)

    def test_timestamp(self) -> None:
        when = datetime(2024, 3, 5, 7, 8, 9)
        assert format_argument(ParamKind.TIMESTAMP, when) == "2024-03-05_07:08:09"

    def test_text_quoted_when_needed(self) -> None:
        assert format_argument(ParamKind.TEXT, "Bar1") == "Bar1"
        assert format_argument(ParamKind.TEXT, "my scan") == '"my scan"'
        assert format_argument(ParamKind.TEXT, "") == '""'


class TestEncode:
    """Tests for rendering whole command lines."""

    def test_no_args(self) -> None:
        assert encode("Sensors") == "Sensors\n\r"

    def test_add_barchart(self) -> None:
        line = encode("AddBarchart", "Bar1", 1, 200, FilterMode.PEAK_CENTER, 5, 0, 0, 0)
        assert line == "AddBarchart Bar1 1 200 PeakCenter 5 0 0 0\n\r"

    def test_per_command_float_formats(self) -> None:
        assert encode("TotalPressure", 1e-4) == "TotalPressure 1.000000E-04\n\r"
        assert encode("DetectorFactor", 0, 1, 1, 2.5e-3) == "DetectorFactor 0 1 1 2.500000e-03\n\r"
        assert encode("AddSinglePeak", "P", 28.0, 5, 0, 0, 0) == (
            "AddSinglePeak P 28.000000 5 0 0 0\n\r"
        )

    def test_wire_name_kept(self) -> None:
        assert encode("MeasurementWGainIndex", 2) == "MeasurementWGainIndex 2\n\r"

    def test_enums_and_bools(self) -> None:
        assert encode("FilamentControl", OnOff.OFF) == "FilamentControl Off\n\r"
        assert (
            encode("CalibrationOptions", CalibrationOption.DEFAULT, CalibrationOption.CURRENT)
            == "CalibrationOptions Default Current\n\r"
        )
        assert encode("MultiplierProtect", True) == "MultiplierProtect True\n\r"

    def test_optional_args_omitted(self) -> None:
        assert encode("ScanResume") == "ScanResume\n\r"
        assert encode("ScanResume", None) == "ScanResume\n\r"
        assert encode("ScanResume", 1) == "ScanResume 1\n\r"
        assert encode("AnalogInputEnable", 2) == "AnalogInputEnable 2\n\r"

    def test_gap_in_optional_args_rejected(self) -> None:
        with pytest.raises(ValueError, match="omitted"):
            encode("AnalogInputEnable", None, True)

    def test_missing_required_arg(self) -> None:
        with pytest.raises(ValueError, match="missing required argument SerialNumber"):
            encode("Select")

    def test_too_many_args(self) -> None:
        with pytest.raises(ValueError, match="at most 0 arguments"):
            encode("Release", 1)

    def test_text_with_space_quoted(self) -> None:
        assert encode("Control", "my app", "1.0.0") == 'Control "my app" 1.0.0\n\r'

    def test_non_ascii_text_rejected(self) -> None:
        with pytest.raises(ValueError, match="must be ASCII"):
            encode("Control", "r\u00e9cepteur", "1.0.0")

    def test_pe_cal_date_msg(self) -> None:
        line = encode("PECal_DateMsg", datetime(2023, 12, 1, 14, 30, 0), "weekly")
        assert line == "PECal_DateMsg 2023-12-01_14:30:00 weekly\n\r"
