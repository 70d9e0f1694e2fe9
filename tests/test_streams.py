import asyncio

import pytest

from robomaster_link.arguments import Command, EnabledState
from robomaster_link.dispatcher import CommandDispatcher
from robomaster_link.feed import Feed
from robomaster_link.streams import StreamController

STREAM_ON = Command.of("stream", EnabledState.ON)
STREAM_OFF = Command.of("stream", EnabledState.OFF)


def ok_responder(command: str) -> str:
    return "ok;"


@pytest.mark.asyncio
async def test_two_video_subscribers_toggle_stream_once(channel_factory):
    channel = channel_factory(ok_responder)
    dispatcher = CommandDispatcher(channel)
    dispatcher.start()
    controller = StreamController(dispatcher)
    video: Feed[object] = Feed("video")
    controller.bind(video, enable=STREAM_ON, disable=STREAM_OFF)

    first = video.subscribe(lambda frame: None)
    second = video.subscribe(lambda frame: None)
    await controller.drain()
    assert channel.sent_text == ["stream on;"]

    first.dispose()
    await controller.drain()
    assert channel.sent_text == ["stream on;"]

    second.dispose()
    await controller.drain()
    assert channel.sent_text == ["stream on;", "stream off;"]
    await dispatcher.stop()


@pytest.mark.asyncio
async def test_rapid_transitions_keep_command_order(channel_factory):
    channel = channel_factory(ok_responder)
    dispatcher = CommandDispatcher(channel)
    dispatcher.start()
    controller = StreamController(dispatcher)
    feed: Feed[object] = Feed("line")
    controller.bind(feed, enable=STREAM_ON, disable=STREAM_OFF)

    feed.subscribe(lambda value: None).dispose()
    feed.subscribe(lambda value: None)
    await controller.drain()

    assert channel.sent_text == ["stream on;", "stream off;", "stream on;"]
    await dispatcher.stop()


@pytest.mark.asyncio
async def test_transitions_from_worker_threads_are_marshalled(channel_factory):
    channel = channel_factory(ok_responder)
    dispatcher = CommandDispatcher(channel)
    dispatcher.start()
    controller = StreamController(dispatcher)
    feed: Feed[object] = Feed("video")
    controller.bind(feed, enable=STREAM_ON, disable=STREAM_OFF)

    subscription = await asyncio.to_thread(feed.subscribe, lambda frame: None)
    await controller.drain()
    await asyncio.to_thread(subscription.dispose)
    await controller.drain()

    assert channel.sent_text == ["stream on;", "stream off;"]
    await dispatcher.stop()


@pytest.mark.asyncio
async def test_hooks_run_after_command_resolves(channel_factory):
    channel = channel_factory(ok_responder)
    dispatcher = CommandDispatcher(channel)
    dispatcher.start()
    controller = StreamController(dispatcher)
    feed: Feed[object] = Feed("video")
    events: list[str] = []
    controller.bind(
        feed,
        enable=STREAM_ON,
        disable=STREAM_OFF,
        on_enabled=lambda: events.append(f"enabled after {len(channel.sent)}"),
        on_disabled=lambda: events.append(f"disabled after {len(channel.sent)}"),
    )

    with feed.subscribe(lambda frame: None):
        await controller.drain()
    await controller.drain()

    assert events == ["enabled after 1", "disabled after 2"]
    await dispatcher.stop()


@pytest.mark.asyncio
async def test_failed_enable_skips_hook_but_disable_hook_still_runs(channel_factory):
    channel = channel_factory()
    dispatcher = CommandDispatcher(channel)
    await dispatcher.stop()
    controller = StreamController(dispatcher)
    feed: Feed[object] = Feed("video")
    events: list[str] = []
    controller.bind(
        feed,
        enable=STREAM_ON,
        disable=STREAM_OFF,
        on_enabled=lambda: events.append("enabled"),
        on_disabled=lambda: events.append("disabled"),
    )

    subscription = feed.subscribe(lambda frame: None)
    await controller.drain()
    assert subscription.active
    subscription.dispose()
    await controller.drain()

    assert events == ["disabled"]
    assert channel.sent == []
