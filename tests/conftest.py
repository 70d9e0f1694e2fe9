import asyncio
from typing import Callable, Optional, Union

import pytest

from robomaster_link.core.errors import ConnectionLost

Responder = Callable[[str], Optional[str]]


class FakeChannel:
    """In-memory ``ByteChannel`` that records writes and replays queued replies."""

    def __init__(self, responder: Optional[Responder] = None) -> None:
        self.sent: list[bytes] = []
        self.closed = False
        self._incoming: asyncio.Queue[bytes] = asyncio.Queue()
        self._responder = responder

    @property
    def sent_text(self) -> list[str]:
        return [data.decode("utf-8") for data in self.sent]

    def feed(self, data: Union[str, bytes]) -> None:
        if isinstance(data, str):
            data = data.encode("utf-8")
        self._incoming.put_nowait(data)

    async def send(self, data: bytes) -> None:
        if self.closed:
            raise ConnectionLost("fake channel closed")
        self.sent.append(data)
        if self._responder is not None:
            reply = self._responder(data.decode("utf-8"))
            if reply is not None:
                self.feed(reply)

    async def receive(self) -> bytes:
        if self.closed and self._incoming.empty():
            return b""
        return await self._incoming.get()

    async def close(self) -> None:
        self.closed = True
        self._incoming.put_nowait(b"")

    async def wait_sent(self, count: int, timeout: float = 1.0) -> None:
        async def _poll() -> None:
            while len(self.sent) < count:
                await asyncio.sleep(0.001)

        await asyncio.wait_for(_poll(), timeout=timeout)


@pytest.fixture
def channel_factory():
    def factory(responder: Optional[Responder] = None) -> FakeChannel:
        return FakeChannel(responder)

    return factory
