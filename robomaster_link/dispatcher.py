"""Serialized request/response engine for the command channel.

The robot's text protocol carries no request identifiers: a reply can only be
matched to its command because exactly one command is outstanding at a time.
:class:`CommandDispatcher` therefore owns the channel through a single worker
task that drains an ordered queue, sending one command and reading exactly one
frame before touching the next entry.
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
from dataclasses import dataclass
from typing import Optional, Protocol, Union

from .arguments import ArgValue, Command, CommandArg
from .codec import FrameReader, encode_command
from .core.errors import CommandCanceled, ConnectionLost
from .core.models import ResponseFrame
from .core.protocols import ByteChannel

LOGGER = logging.getLogger(__name__)


class CancelEvent(Protocol):
    """Anything exposing ``is_set()``, e.g. ``asyncio.Event`` or ``threading.Event``."""

    def is_set(self) -> bool:
        ...


@dataclass(slots=True)
class PendingRequest:
    command: Command
    future: asyncio.Future[ResponseFrame]
    cancel_event: Optional[CancelEvent] = None


class CommandDispatcher:
    """Single-worker FIFO dispatcher over one :class:`ByteChannel`."""

    def __init__(
        self,
        channel: ByteChannel,
        *,
        reader: Optional[FrameReader] = None,
        name: str = "control",
    ) -> None:
        self._channel = channel
        self._reader = reader or FrameReader(channel, name=name)
        self._name = name
        self._queue: asyncio.Queue[PendingRequest] = asyncio.Queue()
        self._task: Optional[asyncio.Task[None]] = None
        self._inflight: Optional[PendingRequest] = None
        self._closed_error: Optional[ConnectionLost] = None

    @property
    def is_running(self) -> bool:
        return self._task is not None and not self._task.done()

    @property
    def is_closed(self) -> bool:
        return self._closed_error is not None

    @property
    def pending_count(self) -> int:
        return self._queue.qsize() + (1 if self._inflight is not None else 0)

    def start(self) -> asyncio.Task[None]:
        """Start the dispatch loop and return its task."""

        if self._closed_error is not None:
            raise self._closed_error
        if self._task is None:
            self._task = asyncio.create_task(
                self._dispatch_loop(), name=f"{self._name}-dispatcher"
            )
        return self._task

    async def stop(self) -> None:
        """Stop the loop and fail every unresolved request with ConnectionLost."""

        if self._task is not None:
            self._task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await self._task
        self._shutdown(ConnectionLost(f"{self._name} dispatcher stopped"))

    def submit(
        self, command: Command, *, cancel_event: Optional[CancelEvent] = None
    ) -> asyncio.Future[ResponseFrame]:
        """Queue ``command`` and return a future for its reply.

        The future resolves with the reply frame, with :class:`CommandCanceled`
        when ``cancel_event`` is set before the command is sent, or with
        :class:`ConnectionLost` when the channel fails. Cancelling the future
        before dispatch keeps the command off the wire; cancelling it after
        dispatch only discards the reply.
        """

        future: asyncio.Future[ResponseFrame] = (
            asyncio.get_running_loop().create_future()
        )
        if self._closed_error is not None:
            future.set_exception(ConnectionLost(str(self._closed_error)))
            return future

        self._queue.put_nowait(PendingRequest(command, future, cancel_event))
        return future

    async def request(
        self,
        *values: Union[ArgValue, CommandArg],
        cancel_event: Optional[CancelEvent] = None,
    ) -> ResponseFrame:
        return await self.submit(Command.of(*values), cancel_event=cancel_event)

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------
    async def _dispatch_loop(self) -> None:
        try:
            while True:
                pending = await self._queue.get()

                if pending.future.done():
                    LOGGER.debug("Dropping cancelled command %s", pending.command)
                    continue

                if pending.cancel_event is not None and pending.cancel_event.is_set():
                    LOGGER.debug("Command %s canceled before dispatch", pending.command)
                    pending.future.set_exception(
                        CommandCanceled(pending.command.to_text())
                    )
                    continue

                self._inflight = pending
                try:
                    frame = await self._round_trip(pending.command)
                except ConnectionLost as exc:
                    LOGGER.warning("%s channel lost: %s", self._name, exc)
                    self._shutdown(exc)
                    return
                self._inflight = None

                if pending.future.done():
                    LOGGER.debug(
                        "Discarding reply %s for cancelled command %s",
                        frame.to_text(),
                        pending.command,
                    )
                else:
                    pending.future.set_result(frame)
        except asyncio.CancelledError:
            self._shutdown(ConnectionLost(f"{self._name} dispatcher stopped"))
            raise
        except Exception as exc:
            LOGGER.exception("%s dispatcher failed", self._name)
            self._shutdown(ConnectionLost(f"{self._name} dispatcher failed: {exc}"))

    async def _round_trip(self, command: Command) -> ResponseFrame:
        payload = encode_command(command)
        LOGGER.debug("%s > %s", self._name, command)
        try:
            await self._channel.send(payload)
        except OSError as exc:
            raise ConnectionLost(f"{self._name} write failed: {exc}") from exc

        frame = await self._reader.read_frame()
        LOGGER.debug("%s < %s", self._name, frame.to_text())
        return frame

    def _shutdown(self, error: ConnectionLost) -> None:
        if self._closed_error is None:
            self._closed_error = error

        pending = self._inflight
        self._inflight = None
        if pending is not None and not pending.future.done():
            pending.future.set_exception(ConnectionLost(str(error)))

        while not self._queue.empty():
            queued = self._queue.get_nowait()
            if not queued.future.done():
                queued.future.set_exception(ConnectionLost(str(error)))
