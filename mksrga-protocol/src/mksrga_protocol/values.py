"""Scalar value inference for RGA response fields.

The RGA ASCII protocol carries no type information: every field is a bare
whitespace-delimited token. Tokens are typed by ordered attempt:

1. INTEGER - a base-10 integer that fits in 64 bits (``"42"``, ``"-7"``)
2. FLOAT - a decimal or scientific number (``"3.2"``, ``"1.5E-09"``, ``"inf"``)
3. BOOLEAN - an exact boolean lexeme (``"True"``, ``"false"``, ``"T"``, ...)
4. STRING - anything else, never fails

The order matters: ``"1"`` is an INTEGER, not a BOOLEAN, and ``"0.0"`` is a
FLOAT.
"""

from __future__ import annotations

import math
import re
from dataclasses import dataclass
from enum import Enum

_INT_RE = re.compile(r"[+-]?[0-9]+")

_INT64_MIN = -(2**63)
_INT64_MAX = 2**63 - 1

_INFINITY_LEXEMES: frozenset[str] = frozenset(
    {"inf", "+inf", "-inf", "infinity", "+infinity", "-infinity"}
)

_TRUE_LEXEMES: frozenset[str] = frozenset({"1", "t", "T", "TRUE", "true", "True"})
_FALSE_LEXEMES: frozenset[str] = frozenset({"0", "f", "F", "FALSE", "false", "False"})


class ScalarKind(Enum):
    """Kind tag of a :class:`ScalarValue`."""

    INTEGER = "integer"
    FLOAT = "float"
    BOOLEAN = "boolean"
    STRING = "string"


def parse_int(text: str) -> int:
    """Parse a base-10 signed 64-bit integer token.

    Args:
        text: The raw token.

    Returns:
        The parsed integer.

    Raises:
        ValueError: If *text* is not a plain integer or overflows 64 bits.
    """
    if _INT_RE.fullmatch(text) is None:
        raise ValueError(f"Invalid RGA integer: {text!r}")
    value = int(text)
    if not _INT64_MIN <= value <= _INT64_MAX:
        raise ValueError(f"RGA integer out of range: {text!r}")
    return value


def parse_float(text: str) -> float:
    """Parse a decimal or scientific-notation float token.

    ``inf``/``infinity``/``nan`` are accepted in any case. Values that
    overflow to infinity without being spelled as infinity are rejected.

    Args:
        text: The raw token.

    Returns:
        The parsed float.

    Raises:
        ValueError: If *text* cannot be parsed as a float.
    """
    if "_" in text or text != text.strip():
        raise ValueError(f"Invalid RGA float: {text!r}")
    try:
        value = float(text)
    except ValueError:
        raise ValueError(f"Invalid RGA float: {text!r}") from None
    if math.isinf(value) and text.lower() not in _INFINITY_LEXEMES:
        raise ValueError(f"RGA float out of range: {text!r}")
    return value


def parse_bool(text: str) -> bool:
    """Parse a boolean lexeme.

    Accepts ``1``, ``t``, ``T``, ``TRUE``, ``true``, ``True`` and their false
    counterparts. Nothing else (no ``yes``/``on``, no mixed case like ``tRUE``).

    Args:
        text: The raw token.

    Returns:
        The parsed boolean.

    Raises:
        ValueError: If *text* is not a recognized boolean lexeme.
    """
    if text in _TRUE_LEXEMES:
        return True
    if text in _FALSE_LEXEMES:
        return False
    raise ValueError(f"Invalid RGA boolean: {text!r}")


@dataclass(frozen=True)
class ScalarValue:
    """A typed field value decoded from a response token.

    Use the ``as_*`` accessors rather than :attr:`value` directly: they check
    the kind tag and raise instead of silently handing back the wrong type.

    Attributes:
        kind: Which member of the union this value is.
        value: The decoded Python value (``int``, ``float``, ``bool`` or ``str``).
    """

    kind: ScalarKind
    value: int | float | bool | str

    @classmethod
    def infer(cls, token: str) -> ScalarValue:
        """Type a bare token by ordered attempt (int, float, bool, string).

        Args:
            token: The raw field token.

        Returns:
            The first successful interpretation; STRING as the fallback.
        """
        try:
            return cls(ScalarKind.INTEGER, parse_int(token))
        except ValueError:
            pass
        try:
            return cls(ScalarKind.FLOAT, parse_float(token))
        except ValueError:
            pass
        try:
            return cls(ScalarKind.BOOLEAN, parse_bool(token))
        except ValueError:
            pass
        return cls(ScalarKind.STRING, token)

    @classmethod
    def of_kind(cls, kind: ScalarKind, token: str) -> ScalarValue:
        """Decode a token as a fixed kind, without inference.

        Args:
            kind: The kind the token must have.
            token: The raw field token.

        Returns:
            The decoded value.

        Raises:
            ValueError: If the token does not parse as *kind*.
        """
        if kind is ScalarKind.INTEGER:
            return cls(kind, parse_int(token))
        if kind is ScalarKind.FLOAT:
            return cls(kind, parse_float(token))
        if kind is ScalarKind.BOOLEAN:
            return cls(kind, parse_bool(token))
        return cls(kind, token)

    def as_int(self) -> int:
        """Return the value of an INTEGER scalar.

        Raises:
            TypeError: If the scalar is not an INTEGER.
        """
        if self.kind is not ScalarKind.INTEGER:
            raise TypeError(f"Expected integer scalar, got {self.kind.value}")
        return int(self.value)

    def as_float(self) -> float:
        """Return the value of a FLOAT scalar.

        Raises:
            TypeError: If the scalar is not a FLOAT.
        """
        if self.kind is not ScalarKind.FLOAT:
            raise TypeError(f"Expected float scalar, got {self.kind.value}")
        return float(self.value)

    def as_number(self) -> float:
        """Return an INTEGER or FLOAT scalar as a float.

        Raises:
            TypeError: If the scalar is not numeric.
        """
        if self.kind not in (ScalarKind.INTEGER, ScalarKind.FLOAT):
            raise TypeError(f"Expected numeric scalar, got {self.kind.value}")
        return float(self.value)

    def as_bool(self) -> bool:
        """Return the value of a BOOLEAN scalar.

        Raises:
            TypeError: If the scalar is not a BOOLEAN.
        """
        if self.kind is not ScalarKind.BOOLEAN:
            raise TypeError(f"Expected boolean scalar, got {self.kind.value}")
        return bool(self.value)

    def as_str(self) -> str:
        """Return the value of a STRING scalar.

        Raises:
            TypeError: If the scalar is not a STRING.
        """
        if self.kind is not ScalarKind.STRING:
            raise TypeError(f"Expected string scalar, got {self.kind.value}")
        return str(self.value)

    def __str__(self) -> str:
        if self.kind is ScalarKind.BOOLEAN:
            return "True" if self.value else "False"
        if self.kind is ScalarKind.FLOAT:
            return repr(self.value)
        return str(self.value)
