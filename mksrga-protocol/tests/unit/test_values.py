"""Tests for scalar value inference."""

from __future__ import annotations

import math

import pytest

from mksrga_protocol.values import (
    ScalarKind,
    ScalarValue,
    parse_bool,
    parse_float,
    parse_int,
)

# ---------------------------------------------------------------------------
# Primitive parsers
# ---------------------------------------------------------------------------


class TestParseInt:
    """Tests for parse_int."""

    def test_plain(self) -> None:
        assert parse_int("42") == 42

    def test_signed(self) -> None:
        assert parse_int("-7") == -7
        assert parse_int("+3") == 3

    def test_int64_bounds(self) -> None:
        assert parse_int("9223372036854775807") == 2**63 - 1
        assert parse_int("-9223372036854775808") == -(2**63)

    def test_overflow_raises(self) -> None:
        with pytest.raises(ValueError, match="out of range"):
            parse_int("9223372036854775808")

    @pytest.mark.parametrize("token", ["1.0", "1e3", "0x10", "1_000", " 1", ""])
    def test_rejects_non_integers(self, token: str) -> None:
        with pytest.raises(ValueError):
            parse_int(token)


class TestParseFloat:
    """Tests for parse_float."""

    def test_decimal(self) -> None:
        assert parse_float("3.2") == 3.2

    def test_scientific(self) -> None:
        assert parse_float("1.5E-09") == 1.5e-09
        assert parse_float("-2.25e+03") == -2250.0

    def test_infinity_lexemes(self) -> None:
        assert parse_float("inf") == math.inf
        assert parse_float("-Infinity") == -math.inf

    def test_nan(self) -> None:
        assert math.isnan(parse_float("NaN"))

    def test_overflow_raises(self) -> None:
        with pytest.raises(ValueError, match="out of range"):
            parse_float("1e999")

    @pytest.mark.parametrize("token", ["abc", "1_0.5", " 1.5", "", "1.5.2"])
    def test_rejects_invalid(self, token: str) -> None:
        with pytest.raises(ValueError):
            parse_float(token)


class TestParseBool:
    """Tests for parse_bool."""

    @pytest.mark.parametrize("token", ["1", "t", "T", "TRUE", "true", "True"])
    def test_true_lexemes(self, token: str) -> None:
        assert parse_bool(token) is True

    @pytest.mark.parametrize("token", ["0", "f", "F", "FALSE", "false", "False"])
    def test_false_lexemes(self, token: str) -> None:
        assert parse_bool(token) is False

    @pytest.mark.parametrize("token", ["yes", "on", "tRUE", "2", ""])
    def test_rejects_others(self, token: str) -> None:
        with pytest.raises(ValueError, match="Invalid RGA boolean"):
            parse_bool(token)


# ---------------------------------------------------------------------------
# ScalarValue
# ---------------------------------------------------------------------------


class TestInfer:
    """Tests for ScalarValue.infer ordering."""

    def test_zero_is_integer(self) -> None:
        value = ScalarValue.infer("0")
        assert value.kind is ScalarKind.INTEGER
        assert value.as_int() == 0

    def test_one_is_integer_not_boolean(self) -> None:
        assert ScalarValue.infer("1").kind is ScalarKind.INTEGER

    def test_decimal_zero_is_float(self) -> None:
        value = ScalarValue.infer("0.0")
        assert value.kind is ScalarKind.FLOAT
        assert value.as_float() == 0.0

    def test_true_is_boolean(self) -> None:
        value = ScalarValue.infer("True")
        assert value.kind is ScalarKind.BOOLEAN
        assert value.as_bool() is True

    def test_text_is_string(self) -> None:
        value = ScalarValue.infer("abc")
        assert value.kind is ScalarKind.STRING
        assert value.as_str() == "abc"

    def test_serial_number_is_string(self) -> None:
        assert ScalarValue.infer("LM70-00197021").kind is ScalarKind.STRING

    def test_huge_integer_falls_back_to_float(self) -> None:
        value = ScalarValue.infer("99999999999999999999")
        assert value.kind is ScalarKind.FLOAT

    def test_scientific_pressure(self) -> None:
        value = ScalarValue.infer("4.600000e-09")
        assert value.kind is ScalarKind.FLOAT
        assert value.as_float() == pytest.approx(4.6e-09)


class TestOfKind:
    """Tests for ScalarValue.of_kind."""

    def test_integer_kind(self) -> None:
        assert ScalarValue.of_kind(ScalarKind.INTEGER, "17").as_int() == 17

    def test_float_kind_accepts_integer_lexeme(self) -> None:
        value = ScalarValue.of_kind(ScalarKind.FLOAT, "5")
        assert value.kind is ScalarKind.FLOAT
        assert value.as_float() == 5.0

    def test_string_kind_keeps_numeric_text(self) -> None:
        value = ScalarValue.of_kind(ScalarKind.STRING, "42")
        assert value.as_str() == "42"

    def test_mismatch_raises(self) -> None:
        with pytest.raises(ValueError):
            ScalarValue.of_kind(ScalarKind.INTEGER, "1.5")


class TestAccessors:
    """Tests for the kind-checked accessors."""

    def test_wrong_kind_raises_type_error(self) -> None:
        value = ScalarValue.infer("abc")
        with pytest.raises(TypeError, match="Expected integer"):
            value.as_int()
        with pytest.raises(TypeError, match="Expected float"):
            value.as_float()
        with pytest.raises(TypeError, match="Expected boolean"):
            value.as_bool()

    def test_as_number_accepts_integer_and_float(self) -> None:
        assert ScalarValue.infer("3").as_number() == 3.0
        assert ScalarValue.infer("3.5").as_number() == 3.5
        with pytest.raises(TypeError):
            ScalarValue.infer("True").as_number()

    def test_str_rendering(self) -> None:
        assert str(ScalarValue.infer("true")) == "True"
        assert str(ScalarValue.infer("42")) == "42"
        assert str(ScalarValue.infer("1.5E-09")) == "1.5e-09"
        assert str(ScalarValue.infer("InUse")) == "InUse"

    def test_frozen(self) -> None:
        value = ScalarValue.infer("1")
        with pytest.raises(AttributeError):
            value.value = 2  # type: ignore[misc]
