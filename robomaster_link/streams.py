"""Keeps server-side push streams in step with local feed subscribers."""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from functools import partial
from typing import Any, Callable, List, Optional, Set

from .arguments import Command
from .core.models import ResponseFrame
from .dispatcher import CommandDispatcher
from .feed import Feed

LOGGER = logging.getLogger(__name__)

StreamHook = Callable[[], None]


@dataclass(slots=True)
class StreamBinding:
    name: str
    enable: Command
    disable: Command
    on_enabled: Optional[StreamHook] = None
    on_disabled: Optional[StreamHook] = None


class StreamController:
    """Issues enable/disable commands on feed subscriber transitions.

    Transitions may happen on any thread. Each one is handed to the event
    loop with ``call_soon_threadsafe`` and submitted there, so commands reach
    the dispatcher in transition order and a subscriber never waits on the
    robot. Commands are best-effort: failures are logged and the
    subscription stays in place.
    """

    def __init__(
        self,
        dispatcher: CommandDispatcher,
        *,
        loop: Optional[asyncio.AbstractEventLoop] = None,
    ) -> None:
        self._dispatcher = dispatcher
        self._loop = loop or asyncio.get_running_loop()
        self._bindings: List[StreamBinding] = []
        self._pending: Set[asyncio.Future[ResponseFrame]] = set()

    @property
    def bindings(self) -> List[StreamBinding]:
        return list(self._bindings)

    def bind(
        self,
        feed: Feed[Any],
        *,
        enable: Command,
        disable: Command,
        on_enabled: Optional[StreamHook] = None,
        on_disabled: Optional[StreamHook] = None,
    ) -> StreamBinding:
        binding = StreamBinding(
            name=feed.name,
            enable=enable,
            disable=disable,
            on_enabled=on_enabled,
            on_disabled=on_disabled,
        )
        self._bindings.append(binding)
        feed.add_transition_callbacks(
            on_has_subscribers=partial(self._schedule, binding, True),
            on_no_subscribers=partial(self._schedule, binding, False),
        )
        return binding

    async def drain(self) -> None:
        """Wait until every scheduled enable/disable command has resolved."""

        await asyncio.sleep(0)
        while self._pending:
            await asyncio.gather(*list(self._pending), return_exceptions=True)
            await asyncio.sleep(0)

    def _schedule(self, binding: StreamBinding, enabled: bool) -> None:
        try:
            self._loop.call_soon_threadsafe(self._issue, binding, enabled)
        except RuntimeError:
            LOGGER.debug("Event loop closed; not toggling stream %s", binding.name)

    def _issue(self, binding: StreamBinding, enabled: bool) -> None:
        command = binding.enable if enabled else binding.disable
        LOGGER.info(
            "%s %s stream (%s)",
            "Enabling" if enabled else "Disabling",
            binding.name,
            command,
        )
        future = self._dispatcher.submit(command)
        self._pending.add(future)
        future.add_done_callback(partial(self._on_complete, binding, enabled))

    def _on_complete(
        self,
        binding: StreamBinding,
        enabled: bool,
        future: asyncio.Future[ResponseFrame],
    ) -> None:
        self._pending.discard(future)

        error: Optional[BaseException] = None
        if future.cancelled():
            error = asyncio.CancelledError()
        else:
            error = future.exception()

        if error is not None:
            LOGGER.warning(
                "Failed to %s %s stream: %s",
                "enable" if enabled else "disable",
                binding.name,
                error,
            )
            if enabled:
                return

        hook = binding.on_enabled if enabled else binding.on_disabled
        if hook is None:
            return
        try:
            hook()
        except Exception:
            LOGGER.exception("Stream hook for %s failed", binding.name)
