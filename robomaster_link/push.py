"""Demultiplexer for unsolicited frames on the push channel."""

from __future__ import annotations

import asyncio
import contextlib
import logging
from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable, Dict, Optional, Tuple

from .codec import FrameReader
from .core.errors import ConnectionLost, ProtocolViolation, UnrecognizedPush
from .core.models import ResponseFrame
from .feed import Feed

LOGGER = logging.getLogger(__name__)

PushDecoder = Callable[[ResponseFrame], Any]

PUSH_TAG = "push"


class PushSchema(str, Enum):
    """Layout of the leading tokens of a push frame.

    Protocol revisions disagree on whether a literal ``push`` token sits
    between topic and subtopic; a deployment pins one layout.
    """

    UNTAGGED = "untagged"
    """``<topic> <subtopic> <payload…>``"""

    TAGGED = "tagged"
    """``<topic> push <subtopic> <payload…>``"""

    @property
    def subtopic_index(self) -> int:
        return 2 if self is PushSchema.TAGGED else 1

    @property
    def payload_index(self) -> int:
        return self.subtopic_index + 1


@dataclass(frozen=True, slots=True)
class PushEnvelope:
    topic: str
    subtopic: str
    payload: ResponseFrame

    @classmethod
    def split(cls, frame: ResponseFrame, schema: PushSchema) -> "PushEnvelope":
        if len(frame) < schema.payload_index:
            raise ProtocolViolation(
                f"Push frame too short for {schema.value} schema", frame.tokens
            )
        if schema is PushSchema.TAGGED and frame[1] != PUSH_TAG:
            raise ProtocolViolation(
                f"Expected {PUSH_TAG!r} tag, got {frame[1]!r}", frame.tokens
            )
        return cls(
            topic=frame[0],
            subtopic=frame[schema.subtopic_index],
            payload=frame.slice(schema.payload_index),
        )


@dataclass(frozen=True, slots=True)
class PushRoute:
    decoder: PushDecoder
    feed: Feed[Any]


class PushDemultiplexer:
    """Routes push frames by (topic, subtopic) to typed feeds.

    Unknown routes and malformed payloads are logged and dropped; only a lost
    channel ends the receive loop.
    """

    def __init__(
        self,
        reader: FrameReader,
        *,
        schema: PushSchema = PushSchema.TAGGED,
    ) -> None:
        self._reader = reader
        self.schema = schema
        self._routes: Dict[Tuple[str, str], PushRoute] = {}
        self._task: Optional[asyncio.Task[None]] = None
        self.frames_received = 0
        self.frames_dropped = 0

    @property
    def is_running(self) -> bool:
        return self._task is not None and not self._task.done()

    def register(
        self, topic: str, subtopic: str, decoder: PushDecoder, feed: Feed[Any]
    ) -> None:
        key = (topic, subtopic)
        if key in self._routes:
            raise ValueError(f"Push route {topic}/{subtopic} already registered")
        self._routes[key] = PushRoute(decoder, feed)

    def dispatch(self, frame: ResponseFrame) -> bool:
        """Route one frame; returns whether a feed was notified."""

        self.frames_received += 1
        try:
            envelope = PushEnvelope.split(frame, self.schema)
        except ProtocolViolation as exc:
            self.frames_dropped += 1
            LOGGER.warning("Dropping malformed push %r: %s", frame.to_text(), exc)
            return False

        route = self._routes.get((envelope.topic, envelope.subtopic))
        if route is None:
            self.frames_dropped += 1
            LOGGER.info(
                "%s; dropping %r",
                UnrecognizedPush(envelope.topic, envelope.subtopic),
                frame.to_text(),
            )
            return False

        try:
            value = route.decoder(envelope.payload)
        except ProtocolViolation as exc:
            self.frames_dropped += 1
            LOGGER.warning(
                "Dropping undecodable %s/%s push: %s",
                envelope.topic,
                envelope.subtopic,
                exc,
            )
            return False

        route.feed.notify(value)
        return True

    def start(self) -> asyncio.Task[None]:
        if self._task is None:
            self._task = asyncio.create_task(
                self._receive_loop(), name=f"{self._reader.name}-receiver"
            )
        return self._task

    async def stop(self) -> None:
        if self._task is not None:
            self._task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await self._task

    async def _receive_loop(self) -> None:
        while True:
            try:
                frame = await self._reader.read_frame()
            except ConnectionLost as exc:
                LOGGER.warning("Push channel lost: %s", exc)
                return
            self.dispatch(frame)
