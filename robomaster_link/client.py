"""Robot session client tying channels, dispatcher, push routing and feeds together."""

from __future__ import annotations

import asyncio
import logging
from functools import partial
from typing import Any, List, Optional, Set

from . import constants
from .adapters.transport import TcpChannel, UdpChannel
from .arguments import (
    Command,
    EnabledState,
    GripperStatus,
    LEDComp,
    LEDEffect,
    LineColour,
    MarkerColour,
    Mode,
    VisionProcessing,
)
from .codec import FrameReader
from .config import LinkConfig, load_config
from .core.errors import ConnectionLost
from .core.models import (
    ArmPosition,
    ChassisAttitude,
    ChassisPosition,
    ChassisSpeed,
    ChassisStatus,
    Line,
    Marker,
    ResponseFrame,
)
from .core.protocols import ByteChannel
from .dispatcher import CancelEvent, CommandDispatcher
from .feed import Feed
from .health import HealthReporter
from .push import PushDemultiplexer, PushSchema
from .streams import StreamController
from .video import FrameSourceFactory, OpenCVFrameSource, VideoIngestor

LOGGER = logging.getLogger(__name__)

VIDEO_STOP_TIMEOUT_SECONDS = 2.0


class RoboMasterClient:
    """Control session for one robot.

    Commands go through a :class:`CommandDispatcher` on the control channel;
    telemetry arrives on typed feeds. Subscribing to a feed enables the
    matching push stream on the robot and the last unsubscribe disables it.
    """

    def __init__(
        self,
        control_channel: ByteChannel,
        push_channel: Optional[ByteChannel] = None,
        *,
        push_schema: PushSchema = PushSchema.TAGGED,
        chassis_rate_hz: int = constants.DEFAULT_CHASSIS_PUSH_RATE_HZ,
        video_source_factory: Optional[FrameSourceFactory] = None,
        health: Optional[HealthReporter] = None,
    ) -> None:
        self._control_channel = control_channel
        self._push_channel = push_channel
        self._health = health
        self._background: Set[asyncio.Task[None]] = set()
        self._started = False
        self._closed = False

        self.chassis_position: Feed[ChassisPosition] = Feed("chassis_position")
        self.chassis_attitude: Feed[ChassisAttitude] = Feed("chassis_attitude")
        self.chassis_status: Feed[ChassisStatus] = Feed("chassis_status")
        self.line: Feed[Line] = Feed("line")
        self.markers: Feed[tuple[Marker, ...]] = Feed("markers")
        self.video: Feed[Any] = Feed("video")

        self._dispatcher = CommandDispatcher(control_channel)
        self._streams = StreamController(self._dispatcher)

        self._push: Optional[PushDemultiplexer] = None
        if push_channel is not None:
            self._push = PushDemultiplexer(
                FrameReader(push_channel, name="push"), schema=push_schema
            )
            routes = (
                ("chassis", "position", ChassisPosition.from_frame, self.chassis_position),
                ("chassis", "attitude", ChassisAttitude.from_frame, self.chassis_attitude),
                ("chassis", "status", ChassisStatus.from_frame, self.chassis_status),
                ("AI", "line", Line.from_frame, self.line),
                ("AI", "marker", Marker.parse_many, self.markers),
            )
            for topic, subtopic, decoder, feed in routes:
                self._push.register(topic, subtopic, decoder, feed)
            self._bind_telemetry_streams(chassis_rate_hz)

        self._video: Optional[VideoIngestor] = None
        if video_source_factory is not None:
            self._video = VideoIngestor(self.video, video_source_factory)
            self._streams.bind(
                self.video,
                enable=Command.of("stream", EnabledState.ON),
                disable=Command.of("stream", EnabledState.OFF),
                on_enabled=self._video.start,
                on_disabled=self._video.stop,
            )

    @classmethod
    async def connect(
        cls,
        config: Optional[LinkConfig] = None,
        *,
        health: Optional[HealthReporter] = None,
        enable_video: bool = True,
    ) -> "RoboMasterClient":
        """Open the control and push channels and start a session.

        Raises:
            ConnectionLost: If a channel cannot be established or the SDK
                handshake fails.
        """

        config = config or load_config()
        robot = config.robot

        control = await TcpChannel.open(
            robot.host, robot.control_port, timeout=robot.connect_timeout_seconds
        )
        try:
            push = await UdpChannel.open(robot.push_port, host=config.push.listen_host)
        except ConnectionLost:
            await control.close()
            raise

        video_factory: Optional[FrameSourceFactory] = None
        if enable_video:
            video_factory = partial(
                OpenCVFrameSource, robot.video_url, buffer_size=config.video.buffer_size
            )

        client = cls(
            control,
            push,
            push_schema=config.push.schema,
            chassis_rate_hz=config.push.chassis_rate_hz,
            video_source_factory=video_factory,
            health=health,
        )
        try:
            await client.start()
        except BaseException:
            await client.close()
            raise
        return client

    @property
    def dispatcher(self) -> CommandDispatcher:
        return self._dispatcher

    @property
    def streams(self) -> StreamController:
        return self._streams

    @property
    def closed(self) -> bool:
        return self._closed

    async def start(self) -> None:
        """Start the loops and put the robot into SDK mode."""

        if self._started:
            return
        self._started = True

        handshake = self._dispatcher.submit(Command.of("command"))
        self._watch("control", self._dispatcher.start())
        if self._push is not None:
            self._watch("push", self._push.start())

        await handshake
        LOGGER.info("Robot session established")
        await self._report("control", True, "connected")
        if self._push is not None:
            await self._report("push", True, "listening")

    async def close(self) -> None:
        """Stop every loop, close the channels and fail pending commands."""

        if self._closed:
            return
        self._closed = True

        if self._video is not None:
            await asyncio.to_thread(self._video.stop, VIDEO_STOP_TIMEOUT_SECONDS)

        await self._control_channel.close()
        if self._push_channel is not None:
            await self._push_channel.close()

        await self._dispatcher.stop()
        if self._push is not None:
            await self._push.stop()

        for task in list(self._background):
            task.cancel()
        LOGGER.info("Robot session closed")

    async def __aenter__(self) -> "RoboMasterClient":
        await self.start()
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.close()

    async def refresh_health(self) -> None:
        """Push current loop state and counters to the health reporter."""

        if self._health is None:
            return
        await self._health.update(
            "control",
            self._dispatcher.is_running,
            None if self._dispatcher.is_running else "stopped",
            metrics={"pendingCommands": self._dispatcher.pending_count},
        )
        if self._push is not None:
            await self._health.update(
                "push",
                self._push.is_running,
                None if self._push.is_running else "stopped",
                metrics={
                    "framesReceived": self._push.frames_received,
                    "framesDropped": self._push.frames_dropped,
                },
            )
        if self._video is not None:
            await self._health.update(
                "video",
                True,
                "streaming" if self._video.is_running else "idle",
                metrics={"framesDelivered": self._video.frames_delivered},
            )

    # ------------------------------------------------------------------
    # Raw commands
    # ------------------------------------------------------------------
    async def do(self, *args: Any, cancel_event: Optional[CancelEvent] = None) -> ResponseFrame:
        """Send one command built from ``args`` and return the reply frame."""

        return await self._dispatcher.request(*args, cancel_event=cancel_event)

    async def version(self, *, cancel_event: Optional[CancelEvent] = None) -> str:
        return (await self.do("version", cancel_event=cancel_event)).string(0)

    async def set_mode(self, mode: Mode, *, cancel_event: Optional[CancelEvent] = None) -> None:
        await self.do("robot", "mode", mode, cancel_event=cancel_event)

    async def get_mode(self, *, cancel_event: Optional[CancelEvent] = None) -> Mode:
        frame = await self.do("robot", "mode", "?", cancel_event=cancel_event)
        return frame.enum(0, Mode)

    # ------------------------------------------------------------------
    # Chassis
    # ------------------------------------------------------------------
    async def set_speed(
        self,
        forwards: float,
        right: float,
        clockwise: float,
        *,
        cancel_event: Optional[CancelEvent] = None,
    ) -> None:
        await self.do(
            "chassis", "speed",
            "x", float(forwards),
            "y", float(right),
            "z", float(clockwise),
            cancel_event=cancel_event,
        )

    async def set_wheel_speed(
        self, *speeds: float, cancel_event: Optional[CancelEvent] = None
    ) -> None:
        """Set wheel speeds in rpm.

        Accepts one speed for all wheels, ``(right, left)`` or
        ``(front_right, front_left, back_right, back_left)``.
        """

        if len(speeds) == 1:
            front_right = front_left = back_right = back_left = speeds[0]
        elif len(speeds) == 2:
            front_right, front_left = speeds
            back_right, back_left = speeds
        elif len(speeds) == 4:
            front_right, front_left, back_right, back_left = speeds
        else:
            raise ValueError("set_wheel_speed takes 1, 2 or 4 speeds")

        await self.do(
            "chassis", "wheel",
            "w1", float(front_right),
            "w2", float(front_left),
            "w3", float(back_left),
            "w4", float(back_right),
            cancel_event=cancel_event,
        )

    async def get_speed(self, *, cancel_event: Optional[CancelEvent] = None) -> ChassisSpeed:
        return ChassisSpeed.from_frame(
            await self.do("chassis", "speed", "?", cancel_event=cancel_event)
        )

    async def move(
        self,
        forwards: float,
        right: float,
        clockwise: float,
        *,
        speed: Optional[float] = None,
        rotation_speed: Optional[float] = None,
        cancel_event: Optional[CancelEvent] = None,
    ) -> None:
        """Start a relative move; does not wait for the robot to finish moving."""

        args: List[Any] = [
            "chassis", "move",
            "x", float(forwards),
            "y", float(right),
            "z", float(clockwise),
        ]
        if speed is not None:
            args.extend(("vxy", float(speed)))
        if rotation_speed is not None:
            args.extend(("vz", float(rotation_speed)))

        await self.do(*args, cancel_event=cancel_event)

    async def get_position(self, *, cancel_event: Optional[CancelEvent] = None) -> ChassisPosition:
        return ChassisPosition.from_frame(
            await self.do("chassis", "position", "?", cancel_event=cancel_event)
        )

    async def get_attitude(self, *, cancel_event: Optional[CancelEvent] = None) -> ChassisAttitude:
        return ChassisAttitude.from_frame(
            await self.do("chassis", "attitude", "?", cancel_event=cancel_event)
        )

    async def get_status(self, *, cancel_event: Optional[CancelEvent] = None) -> ChassisStatus:
        return ChassisStatus.from_frame(
            await self.do("chassis", "status", "?", cancel_event=cancel_event)
        )

    async def set_chassis_push_rate(
        self,
        position: Optional[int] = None,
        attitude: Optional[int] = None,
        status: Optional[int] = None,
        *,
        cancel_event: Optional[CancelEvent] = None,
    ) -> None:
        """Set chassis push frequencies in Hz.

        ``0`` turns a stream off and ``None`` leaves it unchanged.
        """

        if position is None and attitude is None and status is None:
            raise ValueError("At least one frequency must be set")

        args: List[Any] = ["chassis", "push"]
        for kind, key, rate in (
            ("position", "pfreq", position),
            ("attitude", "afreq", attitude),
            ("status", "sfreq", status),
        ):
            if rate is None:
                continue
            if rate not in constants.ALLOWED_PUSH_RATES_HZ:
                raise ValueError(f"Unsupported {kind} push rate: {rate}")
            if rate == 0:
                args.extend((kind, EnabledState.OFF))
            else:
                args.extend((kind, EnabledState.ON, key, int(rate)))

        await self.do(*args, cancel_event=cancel_event)

    # ------------------------------------------------------------------
    # LEDs, sensors and video
    # ------------------------------------------------------------------
    async def set_leds(
        self,
        comp: LEDComp,
        r: int,
        g: int,
        b: int,
        effect: LEDEffect = LEDEffect.SOLID,
        *,
        cancel_event: Optional[CancelEvent] = None,
    ) -> None:
        await self.do(
            "led", "control",
            "comp", comp,
            "r", int(r), "g", int(g), "b", int(b),
            "effect", effect,
            cancel_event=cancel_event,
        )

    async def set_video_push_enabled(
        self, enabled: bool = True, *, cancel_event: Optional[CancelEvent] = None
    ) -> None:
        await self.do("stream", EnabledState.of(enabled), cancel_event=cancel_event)
        if self._video is None:
            return
        if enabled:
            self._video.start()
        else:
            self._video.stop()

    async def set_ir_enabled(
        self, enabled: bool = True, *, cancel_event: Optional[CancelEvent] = None
    ) -> None:
        await self.do(
            "ir_distance_sensor", "measure", EnabledState.of(enabled),
            cancel_event=cancel_event,
        )

    async def get_ir_distance(
        self, ir_id: int, *, cancel_event: Optional[CancelEvent] = None
    ) -> float:
        frame = await self.do(
            "ir_distance_sensor", "distance", int(ir_id), "?", cancel_event=cancel_event
        )
        return frame.number(0)

    # ------------------------------------------------------------------
    # Robotic arm and gripper
    # ------------------------------------------------------------------
    async def move_arm(
        self, x: float, y: float, *, cancel_event: Optional[CancelEvent] = None
    ) -> None:
        await self.do("robotic_arm", "move", "x", float(x), "y", float(y), cancel_event=cancel_event)

    async def set_arm_position(
        self, x: float, y: float, *, cancel_event: Optional[CancelEvent] = None
    ) -> None:
        await self.do("robotic_arm", "moveto", "x", float(x), "y", float(y), cancel_event=cancel_event)

    async def recenter_arm(self, *, cancel_event: Optional[CancelEvent] = None) -> None:
        await self.do("robotic_arm", "recenter", cancel_event=cancel_event)

    async def stop_arm(self, *, cancel_event: Optional[CancelEvent] = None) -> None:
        await self.do("robotic_arm", "stop", cancel_event=cancel_event)

    async def get_arm_position(self, *, cancel_event: Optional[CancelEvent] = None) -> ArmPosition:
        return ArmPosition.from_frame(
            await self.do("robotic_arm", "position", "?", cancel_event=cancel_event)
        )

    async def open_gripper(self, force: int = 1, *, cancel_event: Optional[CancelEvent] = None) -> None:
        await self.do("robotic_gripper", "open", int(force), cancel_event=cancel_event)

    async def close_gripper(self, force: int = 1, *, cancel_event: Optional[CancelEvent] = None) -> None:
        await self.do("robotic_gripper", "close", int(force), cancel_event=cancel_event)

    async def get_gripper_status(self, *, cancel_event: Optional[CancelEvent] = None) -> GripperStatus:
        frame = await self.do("robotic_gripper", "status", "?", cancel_event=cancel_event)
        return frame.enum(0, GripperStatus)

    # ------------------------------------------------------------------
    # Vision
    # ------------------------------------------------------------------
    async def set_line_recognition_colour(
        self, colour: LineColour, *, cancel_event: Optional[CancelEvent] = None
    ) -> None:
        await self.do("AI", "attribute", "line_color", colour, cancel_event=cancel_event)

    async def set_line_recognition_enabled(
        self, enabled: bool = True, *, cancel_event: Optional[CancelEvent] = None
    ) -> None:
        await self.do("AI", "push", "line", EnabledState.of(enabled), cancel_event=cancel_event)

    async def set_marker_recognition_colour(
        self, colour: MarkerColour, *, cancel_event: Optional[CancelEvent] = None
    ) -> None:
        await self.do("AI", "attribute", "marker_color", colour, cancel_event=cancel_event)

    async def set_marker_recognition_distance(
        self, distance: float, *, cancel_event: Optional[CancelEvent] = None
    ) -> None:
        await self.do("AI", "attribute", "marker_dist", float(distance), cancel_event=cancel_event)

    async def set_vision_processing(
        self,
        processing: Optional[VisionProcessing],
        *,
        cancel_event: Optional[CancelEvent] = None,
    ) -> None:
        """Enable one vision mode, or turn all of them off with ``None``."""

        if processing is None:
            args: List[Any] = ["AI", "push"]
            for mode in (
                VisionProcessing.MARKER,
                VisionProcessing.PEOPLE,
                VisionProcessing.POSE,
                VisionProcessing.ROBOT,
            ):
                args.extend((mode, EnabledState.OFF))
            await self.do(*args, cancel_event=cancel_event)
        else:
            await self.do("AI", "push", processing, EnabledState.ON, cancel_event=cancel_event)

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------
    def _bind_telemetry_streams(self, chassis_rate_hz: int) -> None:
        for feed, kind, key in (
            (self.chassis_position, "position", "pfreq"),
            (self.chassis_attitude, "attitude", "afreq"),
            (self.chassis_status, "status", "sfreq"),
        ):
            self._streams.bind(
                feed,
                enable=Command.of("chassis", "push", kind, EnabledState.ON, key, chassis_rate_hz),
                disable=Command.of("chassis", "push", kind, EnabledState.OFF),
            )

        self._streams.bind(
            self.line,
            enable=Command.of("AI", "push", "line", EnabledState.ON),
            disable=Command.of("AI", "push", "line", EnabledState.OFF),
        )
        self._streams.bind(
            self.markers,
            enable=Command.of("AI", "push", VisionProcessing.MARKER, EnabledState.ON),
            disable=Command.of("AI", "push", VisionProcessing.MARKER, EnabledState.OFF),
        )

    def _watch(self, name: str, task: asyncio.Task[None]) -> None:
        task.add_done_callback(partial(self._on_loop_done, name))

    def _on_loop_done(self, name: str, task: asyncio.Task[None]) -> None:
        if task.cancelled():
            detail = "stopped"
        elif task.exception() is not None:
            detail = f"failed: {task.exception()}"
            LOGGER.error("%s loop failed", name, exc_info=task.exception())
        else:
            detail = "channel lost"

        if not self._closed:
            LOGGER.warning("%s loop ended (%s)", name, detail)

        if self._health is not None:
            runner = asyncio.create_task(self._report(name, False, detail))
            self._background.add(runner)
            runner.add_done_callback(self._background.discard)

    async def _report(self, name: str, healthy: bool, detail: Optional[str]) -> None:
        if self._health is not None:
            await self._health.update(name, healthy, detail)
