"""Protocol definitions for channels and media collaborators."""

from __future__ import annotations

from typing import Any, Iterator, Protocol


class ByteChannel(Protocol):
    """Ordered byte stream used by the frame codec."""

    async def send(self, data: bytes) -> None:
        """Write ``data`` to the channel.

        Raises:
            ConnectionLost: If the channel is closed or the write fails.
        """
        ...

    async def receive(self) -> bytes:
        """Return the next chunk of bytes; an empty chunk means closed."""
        ...

    async def close(self) -> None:
        """Close the channel and unblock pending readers."""
        ...


class FrameSource(Protocol):
    """Media decoder producing a lazy, infinite, non-restartable frame sequence."""

    def frames(self) -> Iterator[Any]:
        """Yield decoded image frames until the stream ends or is closed."""
        ...

    def close(self) -> None:
        """Release the decoder."""
        ...
