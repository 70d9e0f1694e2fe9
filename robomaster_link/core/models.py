"""Response frames and the typed records decoded from them.

Frames are not self-describing: every decoder reads tokens at fixed positional
offsets and must be paired with the command or push route that produced the
frame. A frame with an unexpected token count raises
:class:`~robomaster_link.core.errors.ProtocolViolation`.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional, Type, TypeVar, Union

from ..arguments import TERMINATOR, LineType, MarkerSymbol, ProtocolToken
from .errors import ProtocolViolation

TokenT = TypeVar("TokenT", bound=ProtocolToken)


@dataclass(frozen=True, slots=True)
class ResponseFrame:
    """Ordered tokens of one received protocol message."""

    tokens: tuple[str, ...]

    @classmethod
    def parse(cls, text: str) -> "ResponseFrame":
        body = text.strip()
        if body.endswith(TERMINATOR):
            body = body[: -len(TERMINATOR)]
        return cls(tuple(body.split()))

    def __len__(self) -> int:
        return len(self.tokens)

    def __getitem__(self, index: int) -> str:
        return self.tokens[index]

    def slice(self, start: int) -> "ResponseFrame":
        return ResponseFrame(self.tokens[start:])

    def _token(self, index: int) -> str:
        try:
            return self.tokens[index]
        except IndexError:
            raise ProtocolViolation(
                f"Frame has {len(self.tokens)} tokens, no token at index {index}",
                self.tokens,
            ) from None

    def string(self, index: int) -> str:
        return self._token(index)

    def integer(self, index: int) -> int:
        token = self._token(index)
        try:
            return int(token)
        except ValueError:
            raise ProtocolViolation(
                f"Token {index} is not an integer: {token!r}", self.tokens
            ) from None

    def number(self, index: int) -> float:
        token = self._token(index)
        try:
            return float(token)
        except ValueError:
            raise ProtocolViolation(
                f"Token {index} is not a number: {token!r}", self.tokens
            ) from None

    def boolean(self, index: int) -> bool:
        return self._token(index) != "0"

    def enum(self, index: int, enum_type: Type[TokenT]) -> TokenT:
        token = self._token(index)
        try:
            return enum_type.from_token(token)
        except ValueError as exc:
            raise ProtocolViolation(str(exc), self.tokens) from None

    def expect_length(self, *allowed: int) -> None:
        if len(self.tokens) not in allowed:
            expected = " or ".join(str(count) for count in allowed)
            raise ProtocolViolation(
                f"Expected {expected} tokens, got {len(self.tokens)}", self.tokens
            )

    def to_text(self) -> str:
        return " ".join(self.tokens) + TERMINATOR


@dataclass(frozen=True, slots=True)
class ChassisPosition:
    z: float
    x: float
    clockwise: Optional[float] = None

    @classmethod
    def from_frame(cls, frame: ResponseFrame) -> "ChassisPosition":
        frame.expect_length(2, 3)
        return cls(
            z=frame.number(0),
            x=frame.number(1),
            clockwise=frame.number(2) if len(frame) == 3 else None,
        )


@dataclass(frozen=True, slots=True)
class ChassisAttitude:
    pitch: float
    roll: float
    yaw: float

    @classmethod
    def from_frame(cls, frame: ResponseFrame) -> "ChassisAttitude":
        frame.expect_length(3)
        return cls(pitch=frame.number(0), roll=frame.number(1), yaw=frame.number(2))


@dataclass(frozen=True, slots=True)
class ChassisStatus:
    static: bool
    uphill: bool
    downhill: bool
    on_slope: bool
    pick_up: bool
    slip: bool
    impact_x: bool
    impact_y: bool
    impact_z: bool
    roll_over: bool
    hill_static: bool

    @classmethod
    def from_frame(cls, frame: ResponseFrame) -> "ChassisStatus":
        frame.expect_length(11)
        return cls(*(frame.boolean(index) for index in range(11)))


@dataclass(frozen=True, slots=True)
class WheelSpeed:
    front_right: float
    front_left: float
    back_right: float
    back_left: float


@dataclass(frozen=True, slots=True)
class ChassisSpeed:
    z: float
    x: float
    clockwise: float
    wheels: WheelSpeed

    @classmethod
    def from_frame(cls, frame: ResponseFrame) -> "ChassisSpeed":
        frame.expect_length(7)
        return cls(
            z=frame.number(0),
            x=frame.number(1),
            clockwise=frame.number(2),
            wheels=WheelSpeed(
                front_right=frame.number(3),
                front_left=frame.number(4),
                back_right=frame.number(5),
                back_left=frame.number(6),
            ),
        )


@dataclass(frozen=True, slots=True)
class Point:
    x: float
    y: float
    tangent: float
    curvature: float


@dataclass(frozen=True, slots=True)
class Line:
    type: LineType
    points: tuple[Point, ...]

    @classmethod
    def from_frame(cls, frame: ResponseFrame) -> "Line":
        if len(frame) < 1 or (len(frame) - 1) % 4 != 0:
            raise ProtocolViolation(
                f"Line frame needs 1 + 4n tokens, got {len(frame)}", frame.tokens
            )

        code = frame.integer(0)
        try:
            line_type = LineType(code)
        except ValueError:
            raise ProtocolViolation(f"Unknown line type {code}", frame.tokens) from None

        points = tuple(
            Point(
                x=frame.number(offset),
                y=frame.number(offset + 1),
                tangent=frame.number(offset + 2),
                curvature=frame.number(offset + 3),
            )
            for offset in range(1, len(frame), 4)
        )
        return cls(type=line_type, points=points)


_SYMBOL_CODES = {
    1: MarkerSymbol.STOP,
    4: MarkerSymbol.TURN_LEFT,
    5: MarkerSymbol.TURN_RIGHT,
    6: MarkerSymbol.MOVE_FORWARD,
    8: MarkerSymbol.RED_HEART,
}


@dataclass(frozen=True, slots=True)
class MarkerData:
    """Payload of a recognised marker: a symbol, a digit or a letter."""

    value: Union[MarkerSymbol, int, str]

    @classmethod
    def from_code(cls, code: int) -> "MarkerData":
        if code in _SYMBOL_CODES:
            return cls(_SYMBOL_CODES[code])
        if 10 <= code <= 19:
            return cls(code - 10)
        if 20 <= code <= 45:
            return cls(chr(ord("A") + code - 20))
        raise ProtocolViolation(f"Invalid marker code {code}")

    @property
    def is_symbolic(self) -> bool:
        return isinstance(self.value, MarkerSymbol)

    @property
    def is_int(self) -> bool:
        return isinstance(self.value, int)

    @property
    def is_char(self) -> bool:
        return isinstance(self.value, str)


@dataclass(frozen=True, slots=True)
class Marker:
    data: MarkerData
    x: int
    y: int
    width: int
    height: int

    @classmethod
    def parse_many(cls, frame: ResponseFrame) -> tuple["Marker", ...]:
        count = frame.integer(0)
        if count < 0:
            raise ProtocolViolation(f"Negative marker count {count}", frame.tokens)
        frame.expect_length(1 + count * 5)

        markers = []
        for index in range(count):
            offset = index * 5 + 1
            code = frame.integer(offset)
            try:
                data = MarkerData.from_code(code)
            except ProtocolViolation as exc:
                raise ProtocolViolation(str(exc), frame.tokens) from None
            markers.append(
                cls(
                    data=data,
                    x=frame.integer(offset + 1),
                    y=frame.integer(offset + 2),
                    width=frame.integer(offset + 3),
                    height=frame.integer(offset + 4),
                )
            )
        return tuple(markers)


@dataclass(frozen=True, slots=True)
class ArmPosition:
    x: float
    y: float

    @classmethod
    def from_frame(cls, frame: ResponseFrame) -> "ArmPosition":
        frame.expect_length(2)
        return cls(x=frame.number(0), y=frame.number(1))
