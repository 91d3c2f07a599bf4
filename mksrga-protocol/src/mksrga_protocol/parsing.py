"""Status extraction and tabular response parsing.

Every command reply starts with a status row ``<CommandName> <Status>`` where
status is ``OK`` or ``ERROR``. Error frames carry a code row and a description
row. OK frames carry fields in one of two layouts, and the wire format does
not say which, so the caller picks the layout from the command it issued:

Horizontal (a table)::

    Sensors OK
    SerialNumber Name State
    LM70-00197021 Sensor1 Ready

Vertical (one name/value pair per row)::

    SensorState OK
    State InUse
    UserApplication mksrga
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Iterator

from mksrga_protocol.errors import (
    InstrumentError,
    MalformedFrameError,
    ProtocolError,
    RgaCommandError,
)
from mksrga_protocol.framing import Frame
from mksrga_protocol.values import ScalarValue


class ResponseStatus(Enum):
    """Two-state status token on the first row of every reply."""

    OK = "OK"
    ERROR = "ERROR"


class ResponseLayout(Enum):
    """How the fields of an OK reply are laid out."""

    VERTICAL = "vertical"
    ONE_PER_LINE = "one_per_line"
    HORIZONTAL = "horizontal"
    COMPOSITE = "composite"


@dataclass(frozen=True)
class RgaResponse:
    """Decoded OK reply.

    Field order follows the order fields appear on the wire.

    Attributes:
        command: Command name echoed on the status row.
        fields: Field name to typed value.
        status: Always :attr:`ResponseStatus.OK`; error replies raise instead.
    """

    command: str
    fields: dict[str, ScalarValue] = field(default_factory=dict)
    status: ResponseStatus = ResponseStatus.OK

    def __getitem__(self, name: str) -> ScalarValue:
        return self.fields[name]

    def __contains__(self, name: object) -> bool:
        return name in self.fields

    def __iter__(self) -> Iterator[str]:
        return iter(self.fields)

    def __len__(self) -> int:
        return len(self.fields)

    def get(self, name: str) -> ScalarValue | None:
        """Return the named field, or None if absent."""
        return self.fields.get(name)

    def lines(self) -> list[str]:
        """Render the response as rows: status row then ``<Name> <Value>``."""
        result = [f"{self.command} {self.status.value}"]
        result.extend(f"{name} {value}" for name, value in self.fields.items())
        return result

    def __str__(self) -> str:
        return "".join(line + "\n" for line in self.lines())


# -- Status -------------------------------------------------------------------


def read_status(frame: Frame) -> tuple[str, ResponseStatus]:
    """Decode the status row of a reply frame.

    Args:
        frame: A reply frame.

    Returns:
        ``(command_name, status)``.

    Raises:
        MalformedFrameError: If the frame has no status row.
        ProtocolError: If the status token is neither ``OK`` nor ``ERROR``.
    """
    if not frame.rows:
        raise MalformedFrameError("Empty frame, expected a status row")
    tokens = frame.tokens(0)
    if len(tokens) < 2:
        raise MalformedFrameError(f"Status row too short: {frame.rows[0]!r}")
    try:
        status = ResponseStatus(tokens[1])
    except ValueError:
        raise ProtocolError(f"Unknown RGA status token: {tokens[1]!r}") from None
    return tokens[0], status


def extract_error(frame: Frame) -> InstrumentError:
    """Decode the code and description rows of an ``ERROR`` frame.

    Row 2 is ``<label> <code>``; row 3 is the description. A leading
    ``Description`` label on row 3 is dropped.

    Raises:
        MalformedFrameError: If the code or description row is missing.
    """
    if len(frame) < 3:
        raise MalformedFrameError(f"Error frame needs 3 rows, got {len(frame)}")
    code_tokens = frame.tokens(1)
    if len(code_tokens) < 2:
        raise MalformedFrameError(f"Error code row too short: {frame.rows[1]!r}")
    description = frame.tokens(2)
    if description and description[0] == "Description":
        description = description[1:]
    return InstrumentError(code=code_tokens[1], description=" ".join(description))


def check_status(frame: Frame) -> str:
    """Validate the status row, raising for instrument errors.

    Args:
        frame: A reply frame.

    Returns:
        The command name echoed on the status row.

    Raises:
        RgaCommandError: If the status is ``ERROR``.
        ProtocolError: If the status row is malformed.
    """
    command, status = read_status(frame)
    if status is ResponseStatus.ERROR:
        raise RgaCommandError(command, extract_error(frame))
    return command


# -- Layouts ------------------------------------------------------------------


def parse_horizontal(frame: Frame) -> RgaResponse:
    """Parse a table reply: a header row followed by data rows.

    The first data row uses the bare header names. Each later data row
    suffixes every header with its zero-based data-row offset, so headers
    ``[A, B]`` over three rows give ``A, B, A1, B1, A2, B2``.

    Raises:
        RgaCommandError: If the frame is an error reply.
        MalformedFrameError: If the header row is missing or a data row has
            fewer values than there are headers.
    """
    command = check_status(frame)
    if len(frame) < 2:
        raise MalformedFrameError(f"{command}: missing header row")
    headers = frame.tokens(1)
    fields: dict[str, ScalarValue] = {}
    for offset, row in enumerate(frame.rows[2:]):
        values = row.split()
        if len(values) < len(headers):
            raise MalformedFrameError(
                f"{command}: row {offset} has {len(values)} values for {len(headers)} headers"
            )
        for header, token in zip(headers, values):
            name = header if offset == 0 else f"{header}{offset}"
            if name not in fields:
                fields[name] = ScalarValue.infer(token)
    return RgaResponse(command=command, fields=fields)


def parse_vertical(frame: Frame, one_value_per_line: bool = False) -> RgaResponse:
    """Parse a name/value-per-row reply.

    Each row after the status row is ``<Name> <Value...>``; the value is the
    rest of the row joined by single spaces, so ``X 1 2`` yields the STRING
    ``"1 2"`` rather than the integer 1. With *one_value_per_line* every row
    is a bare value named ``Value<n>`` where ``n`` is the row's position (the
    status row being 0).
    The first occurrence of a name wins.

    Raises:
        RgaCommandError: If the frame is an error reply.
        MalformedFrameError: If a row is blank or a pair has no value.
    """
    command = check_status(frame)
    fields: dict[str, ScalarValue] = {}
    for index, row in enumerate(frame.rows[1:], start=1):
        tokens = row.split()
        if not tokens:
            raise MalformedFrameError(f"{command}: blank row {index}")
        if one_value_per_line:
            name = f"Value{index}"
            value = " ".join(tokens)
        else:
            if len(tokens) < 2:
                raise MalformedFrameError(f"{command}: no value for {tokens[0]!r}")
            name = tokens[0]
            value = " ".join(tokens[1:])
        if name not in fields:
            fields[name] = ScalarValue.infer(value)
    return RgaResponse(command=command, fields=fields)


def parse_composite(frame: Frame) -> RgaResponse:
    """Parse a reply with one vertical row followed by a table.

    The frame is sliced into two sub-frames sharing the status row: row 2 is
    parsed vertically, rows 3..N horizontally. The field maps are merged with
    vertical fields first and taking precedence on name collisions.

    Raises:
        RgaCommandError: If the frame is an error reply.
        MalformedFrameError: If either part is malformed.
    """
    command = check_status(frame)
    if len(frame) < 3:
        raise MalformedFrameError(f"{command}: composite reply needs 3 rows, got {len(frame)}")
    vertical = parse_vertical(Frame(frame.rows[:2]))
    horizontal = parse_horizontal(Frame(frame.rows[:1] + frame.rows[2:]))
    fields = dict(vertical.fields)
    for name, value in horizontal.fields.items():
        fields.setdefault(name, value)
    return RgaResponse(command=command, fields=fields)


def parse_response(frame: Frame, layout: ResponseLayout) -> RgaResponse:
    """Parse a reply frame with the given layout.

    Args:
        frame: The reply frame.
        layout: Layout of the issued command.

    Returns:
        The decoded response.

    Raises:
        RgaCommandError: If the instrument reported an error.
        ProtocolError: If the frame is malformed.
    """
    if layout is ResponseLayout.HORIZONTAL:
        return parse_horizontal(frame)
    if layout is ResponseLayout.COMPOSITE:
        return parse_composite(frame)
    return parse_vertical(frame, one_value_per_line=layout is ResponseLayout.ONE_PER_LINE)
