"""Error taxonomy for the RoboMaster session engine."""

from __future__ import annotations

from typing import Sequence


class RoboMasterError(RuntimeError):
    """Base class for all session errors."""


class ConnectionLost(RoboMasterError):
    """Raised when a channel fails or is closed.

    Fatal to every pending and future operation on that channel.
    """


class ProtocolViolation(RoboMasterError):
    """Raised when a decoded frame does not have the expected shape."""

    def __init__(self, message: str, tokens: Sequence[str] = ()) -> None:
        super().__init__(message)
        self.tokens = tuple(tokens)


class CommandCanceled(RoboMasterError):
    """Raised for a command whose cancel event was set before it was sent."""

    def __init__(self, command: str) -> None:
        super().__init__(f"Command canceled before dispatch: {command!r}")
        self.command = command


class UnrecognizedPush(RoboMasterError):
    """Describes a push frame with no registered route.

    Only ever logged; subscribers never see it.
    """

    def __init__(self, topic: str, subtopic: str) -> None:
        super().__init__(f"No route for push {topic!r}/{subtopic!r}")
        self.topic = topic
        self.subtopic = subtopic
