import asyncio

import pytest

from robomaster_link.arguments import Command
from robomaster_link.core.errors import CommandCanceled, ConnectionLost
from robomaster_link.dispatcher import CommandDispatcher


def echo_responder(command: str) -> str:
    return command.split()[0].rstrip(";") + ";"


@pytest.mark.asyncio
async def test_version_round_trip(channel_factory):
    channel = channel_factory(lambda command: "v1.0;")
    dispatcher = CommandDispatcher(channel)
    dispatcher.start()

    frame = await dispatcher.request("version")

    assert channel.sent_text == ["version;"]
    assert frame.tokens == ("v1.0",)
    await dispatcher.stop()


@pytest.mark.asyncio
async def test_replies_follow_submission_order(channel_factory):
    channel = channel_factory(echo_responder)
    dispatcher = CommandDispatcher(channel)
    dispatcher.start()

    futures = [dispatcher.submit(Command.of(f"cmd{index}")) for index in range(10)]
    results = [await future for future in reversed(futures)]

    assert [frame[0] for frame in reversed(results)] == [f"cmd{index}" for index in range(10)]
    await dispatcher.stop()


@pytest.mark.asyncio
async def test_only_one_command_in_flight(channel_factory):
    channel = channel_factory()
    dispatcher = CommandDispatcher(channel)
    dispatcher.start()

    first = dispatcher.submit(Command.of("first"))
    second = dispatcher.submit(Command.of("second"))

    await channel.wait_sent(1)
    await asyncio.sleep(0.01)
    assert channel.sent_text == ["first;"]
    assert dispatcher.pending_count == 2

    channel.feed("a;")
    await channel.wait_sent(2)
    channel.feed("b;")

    assert (await first).tokens == ("a",)
    assert (await second).tokens == ("b",)
    await dispatcher.stop()


@pytest.mark.asyncio
async def test_pre_cancelled_command_is_never_sent(channel_factory):
    channel = channel_factory(echo_responder)
    dispatcher = CommandDispatcher(channel)
    cancel = asyncio.Event()
    cancel.set()

    skipped = dispatcher.submit(Command.of("skipped"), cancel_event=cancel)
    after = dispatcher.submit(Command.of("after"))
    dispatcher.start()

    with pytest.raises(CommandCanceled):
        await skipped
    assert (await after).tokens == ("after",)
    assert channel.sent_text == ["after;"]
    await dispatcher.stop()


@pytest.mark.asyncio
async def test_cancel_after_send_still_receives_reply(channel_factory):
    channel = channel_factory()
    dispatcher = CommandDispatcher(channel)
    dispatcher.start()
    cancel = asyncio.Event()

    future = dispatcher.submit(Command.of("slow"), cancel_event=cancel)
    await channel.wait_sent(1)
    cancel.set()
    channel.feed("done;")

    assert (await future).tokens == ("done",)
    await dispatcher.stop()


@pytest.mark.asyncio
async def test_cancelled_future_before_dispatch_is_skipped(channel_factory):
    channel = channel_factory()
    dispatcher = CommandDispatcher(channel)
    dispatcher.start()

    first = dispatcher.submit(Command.of("first"))
    dropped = dispatcher.submit(Command.of("dropped"))
    last = dispatcher.submit(Command.of("last"))
    await channel.wait_sent(1)
    dropped.cancel()

    channel.feed("a;")
    await channel.wait_sent(2)
    channel.feed("c;")

    assert (await first).tokens == ("a",)
    assert (await last).tokens == ("c",)
    assert channel.sent_text == ["first;", "last;"]
    await dispatcher.stop()


@pytest.mark.asyncio
async def test_reply_for_cancelled_inflight_future_is_consumed(channel_factory):
    channel = channel_factory()
    dispatcher = CommandDispatcher(channel)
    dispatcher.start()

    abandoned = dispatcher.submit(Command.of("abandoned"))
    await channel.wait_sent(1)
    abandoned.cancel()
    following = dispatcher.submit(Command.of("following"))

    channel.feed("stale;")
    await channel.wait_sent(2)
    channel.feed("fresh;")

    assert (await following).tokens == ("fresh",)
    await dispatcher.stop()


@pytest.mark.asyncio
async def test_connection_lost_fails_inflight_and_queued(channel_factory):
    channel = channel_factory()
    dispatcher = CommandDispatcher(channel)
    task = dispatcher.start()

    inflight = dispatcher.submit(Command.of("first"))
    queued = dispatcher.submit(Command.of("second"))
    await channel.wait_sent(1)
    await channel.close()

    with pytest.raises(ConnectionLost):
        await inflight
    with pytest.raises(ConnectionLost):
        await queued
    await task
    assert dispatcher.is_closed
    assert not dispatcher.is_running

    with pytest.raises(ConnectionLost):
        await dispatcher.submit(Command.of("late"))
    with pytest.raises(ConnectionLost):
        dispatcher.start()


@pytest.mark.asyncio
async def test_stop_fails_pending_requests(channel_factory):
    channel = channel_factory()
    dispatcher = CommandDispatcher(channel)
    dispatcher.start()

    inflight = dispatcher.submit(Command.of("first"))
    queued = dispatcher.submit(Command.of("second"))
    await channel.wait_sent(1)

    await dispatcher.stop()

    with pytest.raises(ConnectionLost):
        await inflight
    with pytest.raises(ConnectionLost):
        await queued
    assert dispatcher.pending_count == 0


@pytest.mark.asyncio
async def test_unexpected_channel_error_fails_every_request():
    class ExplodingChannel:
        async def send(self, data: bytes) -> None:
            raise RuntimeError("driver bug")

        async def receive(self) -> bytes:
            await asyncio.Event().wait()
            return b""

        async def close(self) -> None:
            return None

    dispatcher = CommandDispatcher(ExplodingChannel())
    first = dispatcher.submit(Command.of("first"))
    second = dispatcher.submit(Command.of("second"))
    task = dispatcher.start()

    with pytest.raises(ConnectionLost, match="driver bug"):
        await first
    with pytest.raises(ConnectionLost):
        await second
    await task

    assert dispatcher.is_closed
    assert not dispatcher.is_running
    with pytest.raises(ConnectionLost):
        await dispatcher.submit(Command.of("late"))
