"""asyncio transports implementing the ``ByteChannel`` contract."""

from __future__ import annotations

import asyncio
import contextlib
import logging
from typing import Optional, Tuple

from ..core.errors import ConnectionLost

LOGGER = logging.getLogger(__name__)

READ_CHUNK_SIZE = 4096


class TcpChannel:
    """Byte channel over an asyncio TCP stream."""

    def __init__(
        self,
        reader: asyncio.StreamReader,
        writer: asyncio.StreamWriter,
        *,
        name: str = "control",
    ) -> None:
        self._reader = reader
        self._writer = writer
        self.name = name
        self._closed = False

    @classmethod
    async def open(
        cls,
        host: str,
        port: int,
        *,
        timeout: float = 5.0,
        name: str = "control",
    ) -> "TcpChannel":
        """Connect to ``host:port``.

        Raises:
            ConnectionLost: If the connection is refused or exceeds ``timeout``.
        """

        try:
            async with asyncio.timeout(timeout):
                reader, writer = await asyncio.open_connection(host, port)
        except asyncio.TimeoutError as exc:
            raise ConnectionLost(
                f"Timed out after {timeout:.1f}s connecting {name} channel to {host}:{port}"
            ) from exc
        except OSError as exc:
            raise ConnectionLost(
                f"Failed to connect {name} channel to {host}:{port}: {exc}"
            ) from exc

        LOGGER.info("Connected %s channel to %s:%s", name, host, port)
        return cls(reader, writer, name=name)

    @property
    def closed(self) -> bool:
        return self._closed

    async def send(self, data: bytes) -> None:
        if self._closed:
            raise ConnectionLost(f"{self.name} channel closed")
        try:
            self._writer.write(data)
            await self._writer.drain()
        except OSError as exc:
            raise ConnectionLost(f"{self.name} write failed: {exc}") from exc

    async def receive(self) -> bytes:
        if self._closed:
            return b""
        try:
            return await self._reader.read(READ_CHUNK_SIZE)
        except OSError as exc:
            raise ConnectionLost(f"{self.name} read failed: {exc}") from exc

    async def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        self._writer.close()
        with contextlib.suppress(OSError):
            await self._writer.wait_closed()
        LOGGER.debug("Closed %s channel", self.name)


class _DatagramQueueProtocol(asyncio.DatagramProtocol):
    def __init__(self, queue: asyncio.Queue[bytes], name: str) -> None:
        self._queue = queue
        self._name = name

    def datagram_received(self, data: bytes, addr: Tuple[str, int]) -> None:
        if data:
            self._queue.put_nowait(data)

    def error_received(self, exc: Exception) -> None:
        LOGGER.warning("%s datagram error: %s", self._name, exc)

    def connection_lost(self, exc: Optional[Exception]) -> None:
        self._queue.put_nowait(b"")


class UdpChannel:
    """Byte channel over a bound UDP socket; each datagram is one chunk."""

    def __init__(
        self,
        transport: asyncio.DatagramTransport,
        queue: asyncio.Queue[bytes],
        *,
        name: str = "push",
        remote_addr: Optional[Tuple[str, int]] = None,
    ) -> None:
        self._transport = transport
        self._queue = queue
        self.name = name
        self._remote_addr = remote_addr
        self._closed = False

    @classmethod
    async def open(
        cls,
        port: int,
        *,
        host: str = "0.0.0.0",
        name: str = "push",
        remote_addr: Optional[Tuple[str, int]] = None,
    ) -> "UdpChannel":
        loop = asyncio.get_running_loop()
        queue: asyncio.Queue[bytes] = asyncio.Queue()
        try:
            transport, _ = await loop.create_datagram_endpoint(
                lambda: _DatagramQueueProtocol(queue, name),
                local_addr=(host, port),
            )
        except OSError as exc:
            raise ConnectionLost(
                f"Failed to bind {name} channel on {host}:{port}: {exc}"
            ) from exc

        LOGGER.info("Listening for %s datagrams on %s:%s", name, host, port)
        return cls(transport, queue, name=name, remote_addr=remote_addr)

    @property
    def local_port(self) -> int:
        return self._transport.get_extra_info("sockname")[1]

    async def send(self, data: bytes) -> None:
        if self._closed:
            raise ConnectionLost(f"{self.name} channel closed")
        if self._remote_addr is None:
            raise ConnectionLost(f"{self.name} channel has no remote address")
        self._transport.sendto(data, self._remote_addr)

    async def receive(self) -> bytes:
        if self._closed and self._queue.empty():
            return b""
        return await self._queue.get()

    async def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        self._transport.close()
        self._queue.put_nowait(b"")
        LOGGER.debug("Closed %s channel", self.name)
