"""Classification of unsolicited (asynchronous) frames.

While a scan runs the instrument pushes frames that are not replies to any
command: scan progress, one reading per mass, filament and pressure updates.
Nothing on the wire marks a frame as an event, so it is recognized by its
leading token alone.

Most events are a single row with positional fields whose types are fixed by
the protocol, e.g.::

    MassReading 17 1.2345E-07

is always ``MassPosition`` (integer) then ``Value`` (float). A few events are
multi-row name/value blocks; those are parsed with the vertical response
parser after a synthetic ``<Event> OK`` status row is put in front.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from types import MappingProxyType
from typing import Iterator, Mapping

from mksrga_protocol.errors import MalformedFrameError, UnknownEventError
from mksrga_protocol.framing import Frame
from mksrga_protocol.parsing import parse_vertical
from mksrga_protocol.values import ScalarKind, ScalarValue


class EventKind(Enum):
    """Known asynchronous event names, valued by their wire token."""

    STARTING_SCAN = "StartingScan"
    STARTING_MEASUREMENT = "StartingMeasurement"
    ZERO_READING = "ZeroReading"
    MASS_READING = "MassReading"
    FILAMENT_TIME_REMAINING = "FilamentTimeRemaining"
    MULTIPLIER_STATUS = "MultiplierStatus"
    RF_TRIP_STATE = "RFTripState"
    INLET_CHANGE = "InletChange"
    ANALOG_INPUT = "AnalogInput"
    TOTAL_PRESSURE = "TotalPressure"
    DIGITAL_PORT_CHANGE = "DigitalPortChange"
    LINK_DOWN = "LinkDown"
    VSC_EVENT = "VSCEvent"
    DEGAS_READING = "DegasReading"


_I = ScalarKind.INTEGER
_F = ScalarKind.FLOAT
_S = ScalarKind.STRING

EVENT_SCHEMAS: Mapping[EventKind, tuple[tuple[str, ScalarKind], ...]] = MappingProxyType(
    {
        EventKind.STARTING_SCAN: (("ScanNumber", _I), ("Time", _I), ("ScansRemaining", _I)),
        EventKind.STARTING_MEASUREMENT: (("MeasurementName", _S),),
        EventKind.ZERO_READING: (("MassPosition", _I), ("Value", _F)),
        EventKind.MASS_READING: (("MassPosition", _I), ("Value", _F)),
        EventKind.FILAMENT_TIME_REMAINING: (("Time", _I),),
        EventKind.RF_TRIP_STATE: (("State", _S),),
        EventKind.INLET_CHANGE: (("Index", _I),),
        EventKind.ANALOG_INPUT: (("Index", _I), ("Value", _F)),
        EventKind.TOTAL_PRESSURE: (("Value", _F),),
        EventKind.DIGITAL_PORT_CHANGE: (("Port", _S), ("Value", _I)),
        EventKind.LINK_DOWN: (("Reason", _S),),
    }
)
"""Positional field schema of every single-row event."""

VERTICAL_EVENTS: frozenset[EventKind] = frozenset(
    {EventKind.MULTIPLIER_STATUS, EventKind.VSC_EVENT, EventKind.DEGAS_READING}
)
"""Events delivered as multi-row name/value blocks."""

_EVENT_TOKENS: Mapping[str, EventKind] = MappingProxyType({kind.value: kind for kind in EventKind})


def is_event_token(token: str) -> bool:
    """Return True if *token* names a known asynchronous event."""
    return token in _EVENT_TOKENS


@dataclass(frozen=True)
class RgaEvent:
    """A decoded asynchronous event.

    Attributes:
        kind: Which event this is.
        fields: Field name to typed value, in schema order.
    """

    kind: EventKind
    fields: dict[str, ScalarValue] = field(default_factory=dict)

    def __getitem__(self, name: str) -> ScalarValue:
        return self.fields[name]

    def __contains__(self, name: object) -> bool:
        return name in self.fields

    def __iter__(self) -> Iterator[str]:
        return iter(self.fields)

    def get(self, name: str) -> ScalarValue | None:
        """Return the named field, or None if absent."""
        return self.fields.get(name)

    @property
    def is_mass_reading(self) -> bool:
        """True for a ``MassReading`` event."""
        return self.kind is EventKind.MASS_READING

    def __str__(self) -> str:
        values = " ".join(f"{name}={value}" for name, value in self.fields.items())
        return f"{self.kind.value} {values}".rstrip()


def _parse_positional(kind: EventKind, tokens: list[str]) -> RgaEvent:
    schema = EVENT_SCHEMAS[kind]
    values = tokens[1:]
    last_kind = schema[-1][1]
    if last_kind is ScalarKind.STRING and len(values) > len(schema):
        values = values[: len(schema) - 1] + [" ".join(values[len(schema) - 1 :])]
    if len(values) != len(schema):
        raise MalformedFrameError(
            f"{kind.value}: expected {len(schema)} fields, got {len(values)}"
        )
    fields: dict[str, ScalarValue] = {}
    for (name, scalar_kind), token in zip(schema, values):
        try:
            fields[name] = ScalarValue.of_kind(scalar_kind, token)
        except ValueError as exc:
            raise MalformedFrameError(f"{kind.value}: bad {name} field {token!r}") from exc
    return RgaEvent(kind=kind, fields=fields)


def _parse_block(kind: EventKind, frame: Frame) -> RgaEvent:
    rows = [f"{kind.value} OK"]
    # a value on the event row itself becomes a field named after the event
    if len(frame.tokens(0)) > 1:
        rows.append(frame.rows[0])
    rows.extend(frame.rows[1:])
    response = parse_vertical(Frame(tuple(rows)))
    return RgaEvent(kind=kind, fields=dict(response.fields))


def classify_event(frame: Frame) -> RgaEvent:
    """Decode an unsolicited frame into a typed event.

    Args:
        frame: A frame that is not a reply to a pending command.

    Returns:
        The decoded event.

    Raises:
        UnknownEventError: If the leading token is not a known event name.
        MalformedFrameError: If the fields do not match the event's schema.
    """
    token = frame.leading_token
    try:
        kind = _EVENT_TOKENS[token]
    except KeyError:
        raise UnknownEventError(token) from None
    if kind in VERTICAL_EVENTS:
        return _parse_block(kind, frame)
    return _parse_positional(kind, frame.tokens(0))
