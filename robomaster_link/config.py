"""Configuration loader for robomaster-link."""

from __future__ import annotations

from configparser import ConfigParser
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from . import constants
from .push import PushSchema


class ConfigurationError(ValueError):
    """Raised when a configuration value is outside its allowed range."""


@dataclass(slots=True)
class RobotConfig:
    host: str = constants.DIRECT_CONNECT_IP
    control_port: int = constants.CONTROL_PORT
    push_port: int = constants.PUSH_PORT
    video_port: int = constants.VIDEO_PORT
    connect_timeout_seconds: float = constants.DEFAULT_CONNECT_TIMEOUT_SECONDS

    @property
    def video_url(self) -> str:
        return f"tcp://{self.host}:{self.video_port}"


@dataclass(slots=True)
class PushConfig:
    schema: PushSchema = PushSchema.TAGGED
    listen_host: str = "0.0.0.0"
    chassis_rate_hz: int = constants.DEFAULT_CHASSIS_PUSH_RATE_HZ


@dataclass(slots=True)
class VideoConfig:
    buffer_size: int = constants.DEFAULT_VIDEO_BUFFER_SIZE


@dataclass(slots=True)
class LoggingConfig:
    level: str = "INFO"
    path: Optional[Path] = None
    log_network: bool = False


@dataclass(slots=True)
class HealthConfig:
    enabled: bool = False
    host: str = "127.0.0.1"
    port: int = 0


@dataclass(slots=True)
class LinkConfig:
    robot: RobotConfig
    push: PushConfig
    video: VideoConfig
    logging: LoggingConfig
    health: HealthConfig
    raw: ConfigParser
    path: Path


def load_config(path: Optional[Path] = None) -> LinkConfig:
    """Load configuration from disk, applying defaults where necessary."""

    config_path = path or constants.DEFAULT_CONFIG_PATH
    parser = ConfigParser()
    parser.read_dict(
        {
            "robot": {
                "host": constants.DIRECT_CONNECT_IP,
                "control_port": str(constants.CONTROL_PORT),
                "push_port": str(constants.PUSH_PORT),
                "video_port": str(constants.VIDEO_PORT),
                "connect_timeout_seconds": str(constants.DEFAULT_CONNECT_TIMEOUT_SECONDS),
            },
            "push": {
                "schema": PushSchema.TAGGED.value,
                "listen_host": "0.0.0.0",
                "chassis_rate_hz": str(constants.DEFAULT_CHASSIS_PUSH_RATE_HZ),
            },
            "video": {
                "buffer_size": str(constants.DEFAULT_VIDEO_BUFFER_SIZE),
            },
            "logging": {
                "level": "INFO",
                "path": "",
                "log_network": "false",
            },
            "health": {
                "enabled": "false",
                "host": "127.0.0.1",
                "port": "0",
            },
        }
    )

    if config_path.exists():
        parser.read(config_path)

    robot = RobotConfig(
        host=parser.get("robot", "host"),
        control_port=parser.getint("robot", "control_port", fallback=constants.CONTROL_PORT),
        push_port=parser.getint("robot", "push_port", fallback=constants.PUSH_PORT),
        video_port=parser.getint("robot", "video_port", fallback=constants.VIDEO_PORT),
        connect_timeout_seconds=max(
            0.1,
            parser.getfloat(
                "robot",
                "connect_timeout_seconds",
                fallback=constants.DEFAULT_CONNECT_TIMEOUT_SECONDS,
            ),
        ),
    )

    schema_value = parser.get("push", "schema", fallback=PushSchema.TAGGED.value)
    try:
        schema = PushSchema(schema_value.strip().lower())
    except ValueError as exc:
        raise ConfigurationError(
            f"Unknown push schema {schema_value!r}; expected one of "
            + ", ".join(item.value for item in PushSchema)
        ) from exc

    chassis_rate_hz = parser.getint(
        "push", "chassis_rate_hz", fallback=constants.DEFAULT_CHASSIS_PUSH_RATE_HZ
    )
    if chassis_rate_hz not in constants.ALLOWED_PUSH_RATES_HZ or chassis_rate_hz == 0:
        raise ConfigurationError(
            f"chassis_rate_hz must be one of "
            f"{', '.join(str(rate) for rate in constants.ALLOWED_PUSH_RATES_HZ[1:])}"
        )

    push = PushConfig(
        schema=schema,
        listen_host=parser.get("push", "listen_host", fallback="0.0.0.0"),
        chassis_rate_hz=chassis_rate_hz,
    )

    video = VideoConfig(
        buffer_size=max(
            1,
            parser.getint(
                "video", "buffer_size", fallback=constants.DEFAULT_VIDEO_BUFFER_SIZE
            ),
        ),
    )

    log_path_value = parser.get("logging", "path", fallback="").strip()
    logging_config = LoggingConfig(
        level=parser.get("logging", "level", fallback="INFO"),
        path=Path(log_path_value).expanduser() if log_path_value else None,
        log_network=parser.getboolean("logging", "log_network", fallback=False),
    )

    health = HealthConfig(
        enabled=parser.getboolean("health", "enabled", fallback=False),
        host=parser.get("health", "host", fallback="127.0.0.1"),
        port=parser.getint("health", "port", fallback=0),
    )

    return LinkConfig(
        robot=robot,
        push=push,
        video=video,
        logging=logging_config,
        health=health,
        raw=parser,
        path=config_path,
    )


def save_config(config: LinkConfig) -> None:
    """Persist the current configuration to disk."""

    config_path = config.path
    config_path.parent.mkdir(parents=True, exist_ok=True)
    with config_path.open("w", encoding="utf-8") as stream:
        config.raw.write(stream)
