"""Long-running monitor session: connects, subscribes to feeds and logs telemetry."""

from __future__ import annotations

import asyncio
import contextlib
import logging
from enum import Enum
from typing import Any, Dict, List, Optional, Sequence

from .client import RoboMasterClient
from .config import LinkConfig, load_config
from .core.errors import ConnectionLost
from .feed import Feed, Subscription
from .health import HealthReporter, HealthServer
from .logging import configure_logging

LOGGER = logging.getLogger(__name__)

HEALTH_REFRESH_SECONDS = 5.0

MONITOR_FEEDS = ("position", "attitude", "status", "line", "markers", "video")


class SessionState(str, Enum):
    CONNECTING = "connecting"
    ACTIVE = "active"
    DEGRADED = "degraded"
    STOPPING = "stopping"


class RoboMasterLinkApp:
    """Coordinates session startup, feed logging and shutdown."""

    def __init__(
        self,
        config: Optional[LinkConfig] = None,
        *,
        feeds: Sequence[str] = ("position",),
        duration: Optional[float] = None,
    ) -> None:
        unknown = [name for name in feeds if name not in MONITOR_FEEDS]
        if unknown:
            raise ValueError(f"Unknown feeds: {', '.join(unknown)}")

        self._config = config or load_config()
        self._feeds = list(dict.fromkeys(feeds))
        self._duration = duration
        self._health = HealthReporter()
        self._health_server: Optional[HealthServer] = None
        self._client: Optional[RoboMasterClient] = None
        self._subscriptions: List[Subscription[Any]] = []
        self._shutdown_event: Optional[asyncio.Event] = None
        self._state = SessionState.CONNECTING
        self.received: Dict[str, int] = {name: 0 for name in self._feeds}

    @property
    def state(self) -> SessionState:
        return self._state

    @classmethod
    def start(
        cls,
        config: Optional[LinkConfig] = None,
        *,
        feeds: Sequence[str] = ("position",),
        duration: Optional[float] = None,
    ) -> int:
        instance = cls(config=config, feeds=feeds, duration=duration)
        configure_logging(
            instance._config.logging.level,
            log_path=instance._config.logging.path,
            log_network=instance._config.logging.log_network,
        )
        try:
            return asyncio.run(instance.run())
        except KeyboardInterrupt:
            LOGGER.info("robomaster-link received shutdown signal")
            return 0

    def request_shutdown(self) -> None:
        if self._shutdown_event is not None:
            self._shutdown_event.set()

    async def run(self) -> int:
        self._shutdown_event = asyncio.Event()
        await self._start_health_server()

        try:
            self._client = await RoboMasterClient.connect(
                self._config,
                health=self._health,
                enable_video="video" in self._feeds,
            )
        except ConnectionLost as exc:
            LOGGER.error("Could not connect to robot at %s: %s", self._config.robot.host, exc)
            await self._transition(SessionState.DEGRADED, detail=str(exc))
            await self._stop_health_server()
            return 1

        await self._transition(SessionState.ACTIVE, detail="session established")
        try:
            self._subscribe_feeds(self._client)
            await self._idle_loop()
        except asyncio.CancelledError:
            LOGGER.info("robomaster-link received shutdown signal")
            raise
        finally:
            await self._stop_services()
        return 0

    async def _transition(self, state: SessionState, *, detail: Optional[str] = None) -> None:
        if state == self._state:
            return
        previous = self._state
        self._state = state
        LOGGER.info(
            "Session state transition %s -> %s (%s)",
            previous.value,
            state.value,
            detail or state.value,
        )
        await self._health.update("session", state == SessionState.ACTIVE, detail or state.value)

    def _subscribe_feeds(self, client: RoboMasterClient) -> None:
        feeds: Dict[str, Feed[Any]] = {
            "position": client.chassis_position,
            "attitude": client.chassis_attitude,
            "status": client.chassis_status,
            "line": client.line,
            "markers": client.markers,
            "video": client.video,
        }
        for name in self._feeds:
            self._subscriptions.append(feeds[name].subscribe(self._make_logger(name)))

    def _make_logger(self, name: str):
        def _log_value(value: Any) -> None:
            self.received[name] += 1
            if name == "video":
                LOGGER.debug("video frame %d", self.received[name])
            else:
                LOGGER.info("%s: %s", name, value)

        return _log_value

    async def _idle_loop(self) -> None:
        assert self._shutdown_event is not None
        assert self._client is not None
        loop = asyncio.get_running_loop()
        deadline = None if self._duration is None else loop.time() + self._duration

        while not self._shutdown_event.is_set():
            timeout = HEALTH_REFRESH_SECONDS
            if deadline is not None:
                remaining = deadline - loop.time()
                if remaining <= 0:
                    break
                timeout = min(timeout, remaining)

            with contextlib.suppress(asyncio.TimeoutError):
                await asyncio.wait_for(self._shutdown_event.wait(), timeout=timeout)

            await self._client.refresh_health()
            if not self._client.dispatcher.is_running:
                await self._transition(SessionState.DEGRADED, detail="control channel lost")
                break

    async def _start_health_server(self) -> None:
        health = self._config.health
        if not health.enabled or health.port <= 0:
            return

        server = HealthServer(self._health, health.host, health.port)
        try:
            await server.start()
        except OSError as exc:
            LOGGER.error("Failed to start health endpoint: %s", exc)
            await self._health.update("health-endpoint", False, str(exc))
        else:
            self._health_server = server
            await self._health.update("health-endpoint", True, None)

    async def _stop_health_server(self) -> None:
        if self._health_server is not None:
            await self._health_server.stop()
            self._health_server = None

    async def _stop_services(self) -> None:
        await self._transition(SessionState.STOPPING, detail="shutdown requested")

        for subscription in self._subscriptions:
            subscription.dispose()
        self._subscriptions.clear()

        if self._client is not None:
            # Give the disable commands triggered above a chance to reach the robot.
            with contextlib.suppress(asyncio.TimeoutError):
                await asyncio.wait_for(self._client.streams.drain(), timeout=2.0)
            await self._client.close()
            self._client = None

        await self._stop_health_server()
