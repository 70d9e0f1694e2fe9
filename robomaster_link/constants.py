"""Constants used across the robomaster-link package."""

from __future__ import annotations

from pathlib import Path

APP_NAME = "robomaster-link"
DEFAULT_CONFIG_FILENAME = f"{APP_NAME}.cfg"
DEFAULT_CONFIG_PATH = Path.home() / ".config" / APP_NAME / DEFAULT_CONFIG_FILENAME

DIRECT_CONNECT_IP = "192.168.2.1"

VIDEO_PORT = 40921
CONTROL_PORT = 40923
PUSH_PORT = 40924

DEFAULT_CONNECT_TIMEOUT_SECONDS = 5.0

# Chassis push frequencies accepted by the robot; 0 disables a stream.
ALLOWED_PUSH_RATES_HZ = (0, 1, 5, 10, 20, 30, 50)
DEFAULT_CHASSIS_PUSH_RATE_HZ = 10

DEFAULT_VIDEO_BUFFER_SIZE = 4
