"""Command arguments and protocol enumerations.

Every command is an ordered list of :class:`CommandArg` values. Each argument
is built through exactly one constructor per source type and serialized by a
single function, so the wire text of a command never depends on implicit
conversions.
"""

from __future__ import annotations

import math
from dataclasses import dataclass
from enum import Enum, IntEnum
from typing import Iterable, Type, TypeVar, Union

TERMINATOR = ";"

TokenT = TypeVar("TokenT", bound="ProtocolToken")


class ProtocolToken(str, Enum):
    """Enumeration whose values are the literal protocol tokens."""

    @classmethod
    def from_token(cls: Type[TokenT], token: str) -> TokenT:
        for member in cls:
            if member.value == token:
                return member
        raise ValueError(f"{token!r} is not a valid {cls.__name__} token")


class EnabledState(ProtocolToken):
    ON = "on"
    OFF = "off"

    @classmethod
    def of(cls, enabled: bool) -> "EnabledState":
        return cls.ON if enabled else cls.OFF


class Mode(ProtocolToken):
    CHASSIS_LEAD = "chassis_lead"
    GIMBAL_LEAD = "gimbal_lead"
    FREE = "free"


class LEDComp(ProtocolToken):
    ALL = "all"
    TOP_ALL = "top_all"
    TOP_RIGHT = "top_right"
    TOP_LEFT = "top_left"
    BOTTOM_ALL = "bottom_all"
    BOTTOM_FRONT = "bottom_front"
    BOTTOM_BACK = "bottom_back"
    BOTTOM_LEFT = "bottom_left"
    BOTTOM_RIGHT = "bottom_right"


class LEDEffect(ProtocolToken):
    OFF = "off"
    SOLID = "solid"
    BLINK = "blink"
    PULSE = "pulse"
    SCROLLING = "scrolling"


class GripperStatus(ProtocolToken):
    CLOSED = "0"
    PARTIALLY_OPEN = "1"
    OPEN = "2"


class LineColour(ProtocolToken):
    RED = "red"
    BLUE = "blue"
    GREEN = "green"


class MarkerColour(ProtocolToken):
    RED = "red"
    BLUE = "blue"


class VisionProcessing(ProtocolToken):
    PEOPLE = "people"
    POSE = "pose"
    MARKER = "marker"
    ROBOT = "robot"


class LineType(IntEnum):
    NONE = 0
    STRAIGHT = 1
    FORK = 2
    INTERSECTION = 3


class MarkerSymbol(Enum):
    STOP = "stop"
    TURN_LEFT = "turn_left"
    TURN_RIGHT = "turn_right"
    MOVE_FORWARD = "move_forward"
    RED_HEART = "red_heart"


class ArgKind(str, Enum):
    STRING = "string"
    INTEGER = "integer"
    NUMBER = "number"
    BOOLEAN = "boolean"
    TOKEN = "token"


ArgValue = Union[str, int, float, bool, ProtocolToken]


@dataclass(frozen=True, slots=True)
class CommandArg:
    """A single protocol argument tagged with its source type."""

    kind: ArgKind
    value: ArgValue

    @classmethod
    def string(cls, value: str) -> "CommandArg":
        if not value or any(ch.isspace() for ch in value) or TERMINATOR in value:
            raise ValueError(f"Invalid string argument: {value!r}")
        return cls(ArgKind.STRING, value)

    @classmethod
    def integer(cls, value: int) -> "CommandArg":
        return cls(ArgKind.INTEGER, int(value))

    @classmethod
    def number(cls, value: float) -> "CommandArg":
        number = float(value)
        if not math.isfinite(number):
            raise ValueError(f"Number argument must be finite, got {value!r}")
        return cls(ArgKind.NUMBER, number)

    @classmethod
    def boolean(cls, value: bool) -> "CommandArg":
        return cls(ArgKind.BOOLEAN, bool(value))

    @classmethod
    def token(cls, value: ProtocolToken) -> "CommandArg":
        return cls(ArgKind.TOKEN, value)

    @classmethod
    def of(cls, value: Union[ArgValue, "CommandArg"]) -> "CommandArg":
        """Tag a plain Python value with its argument kind."""

        if isinstance(value, CommandArg):
            return value
        if isinstance(value, ProtocolToken):
            return cls.token(value)
        if isinstance(value, bool):
            return cls.boolean(value)
        if isinstance(value, int):
            return cls.integer(value)
        if isinstance(value, float):
            return cls.number(value)
        if isinstance(value, str):
            return cls.string(value)
        raise TypeError(f"Unsupported command argument type: {type(value).__name__}")

    def serialize(self) -> str:
        if self.kind is ArgKind.TOKEN:
            assert isinstance(self.value, ProtocolToken)
            return self.value.value
        if self.kind is ArgKind.BOOLEAN:
            return EnabledState.of(bool(self.value)).value
        if self.kind is ArgKind.INTEGER:
            return str(self.value)
        if self.kind is ArgKind.NUMBER:
            return _format_number(float(self.value))
        return str(self.value)


@dataclass(frozen=True, slots=True)
class Command:
    """An immutable, ordered sequence of protocol arguments."""

    args: tuple[CommandArg, ...]

    def __post_init__(self) -> None:
        if not self.args:
            raise ValueError("A command needs at least one argument")

    @classmethod
    def of(cls, *values: Union[ArgValue, CommandArg]) -> "Command":
        return cls(tuple(CommandArg.of(value) for value in values))

    @classmethod
    def from_iterable(cls, values: Iterable[Union[ArgValue, CommandArg]]) -> "Command":
        return cls.of(*values)

    def to_text(self) -> str:
        return " ".join(arg.serialize() for arg in self.args) + TERMINATOR

    def __str__(self) -> str:
        return self.to_text()


def _format_number(value: float) -> str:
    # Fixed-point keeps exponents off the wire.
    text = f"{value:.6f}".rstrip("0").rstrip(".")
    if text in ("-0", ""):
        return "0"
    return text
