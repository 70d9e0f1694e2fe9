"""Core primitives for robomaster-link."""

from .errors import (
    CommandCanceled,
    ConnectionLost,
    ProtocolViolation,
    RoboMasterError,
    UnrecognizedPush,
)
from .models import ResponseFrame
from .protocols import ByteChannel, FrameSource

__all__ = [
    "ByteChannel",
    "CommandCanceled",
    "ConnectionLost",
    "FrameSource",
    "ProtocolViolation",
    "ResponseFrame",
    "RoboMasterError",
    "UnrecognizedPush",
]
