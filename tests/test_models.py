import pytest

from robomaster_link.arguments import GripperStatus, LineType, MarkerSymbol
from robomaster_link.core.errors import ProtocolViolation
from robomaster_link.core.models import (
    ArmPosition,
    ChassisAttitude,
    ChassisPosition,
    ChassisSpeed,
    ChassisStatus,
    Line,
    Marker,
    MarkerData,
    ResponseFrame,
)


def frame(text: str) -> ResponseFrame:
    return ResponseFrame.parse(text)


def test_chassis_position_with_two_or_three_tokens():
    assert ChassisPosition.from_frame(frame("1.0 2.0;")) == ChassisPosition(1.0, 2.0, None)
    assert ChassisPosition.from_frame(frame("1.0 2.0 3.0;")) == ChassisPosition(1.0, 2.0, 3.0)


def test_chassis_position_rejects_other_lengths():
    with pytest.raises(ProtocolViolation) as excinfo:
        ChassisPosition.from_frame(frame("1 2 3 4;"))

    assert excinfo.value.tokens == ("1", "2", "3", "4")


def test_non_numeric_token_is_a_protocol_violation():
    with pytest.raises(ProtocolViolation):
        ChassisAttitude.from_frame(frame("1 two 3;"))


def test_chassis_attitude():
    assert ChassisAttitude.from_frame(frame("0.5 -1 90;")) == ChassisAttitude(0.5, -1.0, 90.0)


def test_chassis_status_treats_zero_as_false():
    status = ChassisStatus.from_frame(frame("1 0 0 0 0 0 0 0 0 0 2;"))

    assert status.static is True
    assert status.uphill is False
    assert status.hill_static is True


def test_chassis_speed_maps_wheels_in_order():
    speed = ChassisSpeed.from_frame(frame("0.1 0.2 5 10 20 30 40;"))

    assert speed.clockwise == 5.0
    assert speed.wheels.front_right == 10.0
    assert speed.wheels.front_left == 20.0
    assert speed.wheels.back_right == 30.0
    assert speed.wheels.back_left == 40.0


def test_line_with_points():
    line = Line.from_frame(frame("1 0.1 0.2 0.3 0.4 0.5 0.6 0.7 0.8;"))

    assert line.type is LineType.STRAIGHT
    assert len(line.points) == 2
    assert line.points[1].curvature == 0.8


def test_line_without_points():
    line = Line.from_frame(frame("0;"))

    assert line.type is LineType.NONE
    assert line.points == ()


@pytest.mark.parametrize("text", ["1 0.1 0.2;", "7;", ";"])
def test_line_rejects_bad_frames(text):
    with pytest.raises(ProtocolViolation):
        Line.from_frame(frame(text))


def test_marker_codes():
    assert MarkerData.from_code(1).value is MarkerSymbol.STOP
    assert MarkerData.from_code(8).value is MarkerSymbol.RED_HEART
    assert MarkerData.from_code(13).value == 3
    assert MarkerData.from_code(20).value == "A"
    assert MarkerData.from_code(45).value == "Z"

    assert MarkerData.from_code(4).is_symbolic
    assert MarkerData.from_code(10).is_int
    assert MarkerData.from_code(25).is_char

    with pytest.raises(ProtocolViolation):
        MarkerData.from_code(2)


def test_parse_many_markers():
    markers = Marker.parse_many(frame("2 1 10 20 30 40 25 1 2 3 4;"))

    assert len(markers) == 2
    assert markers[0].data.value is MarkerSymbol.STOP
    assert (markers[0].x, markers[0].y, markers[0].width, markers[0].height) == (10, 20, 30, 40)
    assert markers[1].data.value == "F"


def test_parse_many_markers_empty():
    assert Marker.parse_many(frame("0;")) == ()


def test_parse_many_markers_count_mismatch():
    with pytest.raises(ProtocolViolation):
        Marker.parse_many(frame("2 1 10 20 30 40;"))


def test_enum_and_arm_position_decoders():
    assert frame("1;").enum(0, GripperStatus) is GripperStatus.PARTIALLY_OPEN
    assert ArmPosition.from_frame(frame("120 -40;")) == ArmPosition(120.0, -40.0)

    with pytest.raises(ProtocolViolation):
        frame("9;").enum(0, GripperStatus)


def test_missing_token_is_a_protocol_violation():
    with pytest.raises(ProtocolViolation):
        frame("ok;").number(3)
