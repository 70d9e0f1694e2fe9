import asyncio

import pytest

from robomaster_link.adapters.transport import TcpChannel, UdpChannel
from robomaster_link.codec import FrameReader
from robomaster_link.core.errors import ConnectionLost


@pytest.mark.asyncio
async def test_tcp_channel_round_trip():
    async def handle(reader: asyncio.StreamReader, writer: asyncio.StreamWriter) -> None:
        data = await reader.readuntil(b";")
        writer.write(b"echo " + data)
        await writer.drain()
        writer.close()

    server = await asyncio.start_server(handle, "127.0.0.1", 0)
    port = server.sockets[0].getsockname()[1]

    try:
        channel = await TcpChannel.open("127.0.0.1", port, timeout=1.0)
        await channel.send(b"version;")
        reader = FrameReader(channel, name="control")

        frame = await reader.read_frame()
        assert frame.tokens == ("echo", "version")

        with pytest.raises(ConnectionLost):
            await reader.read_frame()

        await channel.close()
        assert channel.closed
        with pytest.raises(ConnectionLost):
            await channel.send(b"late;")
    finally:
        server.close()
        await server.wait_closed()


@pytest.mark.asyncio
async def test_tcp_channel_refused(unused_tcp_port):
    with pytest.raises(ConnectionLost):
        await TcpChannel.open("127.0.0.1", unused_tcp_port, timeout=1.0)


@pytest.mark.asyncio
async def test_udp_channel_receives_datagrams():
    listener = await UdpChannel.open(0, host="127.0.0.1")
    sender = await UdpChannel.open(
        0, host="127.0.0.1", name="sender", remote_addr=("127.0.0.1", listener.local_port)
    )

    try:
        await sender.send(b"chassis push attitude 1 2 3;")
        data = await asyncio.wait_for(listener.receive(), timeout=1.0)
        assert data == b"chassis push attitude 1 2 3;"
    finally:
        await sender.close()
        await listener.close()

    assert await listener.receive() == b""


@pytest.mark.asyncio
async def test_udp_channel_without_remote_cannot_send():
    channel = await UdpChannel.open(0, host="127.0.0.1")

    try:
        with pytest.raises(ConnectionLost):
            await channel.send(b"x;")
    finally:
        await channel.close()
