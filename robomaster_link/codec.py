"""Wire codec for the `;`-terminated text protocol."""

from __future__ import annotations

import logging
from typing import Optional, Union

from .arguments import TERMINATOR, Command
from .core.errors import ConnectionLost
from .core.models import ResponseFrame
from .core.protocols import ByteChannel

LOGGER = logging.getLogger(__name__)

ENCODING = "utf-8"
TERMINATOR_BYTE = TERMINATOR.encode(ENCODING)


def encode_command(command: Command) -> bytes:
    """Encode ``command`` as ``<arg> <arg> …;``."""

    return command.to_text().encode(ENCODING)


def parse_frame(data: Union[bytes, str]) -> ResponseFrame:
    """Decode one complete frame into its tokens."""

    if isinstance(data, bytes):
        data = data.decode(ENCODING, errors="replace")
    return ResponseFrame.parse(data)


class FrameReader:
    """Incrementally assembles frames from a :class:`ByteChannel`.

    The protocol carries no length prefix, so bytes are accumulated until a
    terminator arrives. Anything received after the terminator is retained
    for the next call. A closed or failing channel raises
    :class:`ConnectionLost`; partially received frames are discarded.
    """

    def __init__(self, channel: ByteChannel, *, name: str = "channel") -> None:
        self._channel = channel
        self._name = name
        self._buffer = bytearray()

    @property
    def name(self) -> str:
        return self._name

    async def read_frame(self) -> ResponseFrame:
        while True:
            frame = self._take_frame()
            if frame is not None:
                return frame

            try:
                chunk = await self._channel.receive()
            except ConnectionLost:
                self._buffer.clear()
                raise
            except OSError as exc:
                self._buffer.clear()
                raise ConnectionLost(f"{self._name} read failed: {exc}") from exc

            if not chunk:
                if self._buffer:
                    LOGGER.debug(
                        "Discarding %d bytes of partial frame on %s",
                        len(self._buffer),
                        self._name,
                    )
                self._buffer.clear()
                raise ConnectionLost(f"{self._name} closed")

            self._buffer.extend(chunk)

    def _take_frame(self) -> Optional[ResponseFrame]:
        while True:
            index = self._buffer.find(TERMINATOR_BYTE)
            if index < 0:
                return None

            raw = bytes(self._buffer[: index + 1])
            del self._buffer[: index + 1]

            if raw[:-1].strip():
                return parse_frame(raw)
