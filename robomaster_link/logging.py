"""Logging configuration helpers."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import List, Optional

LOG_FORMAT = "%(asctime)s | %(levelname)s | %(name)s | %(message)s"

# Loggers that emit one record per frame sent or received.
WIRE_LOGGERS = (
    "robomaster_link.dispatcher",
    "robomaster_link.codec",
    "robomaster_link.push",
)


def configure_logging(
    level: str = "INFO", *, log_path: Optional[Path] = None, log_network: bool = False
) -> None:
    """Configure root logging handlers.

    Parameters
    ----------
    level:
        Log level name, e.g. "INFO".
    log_path:
        Optional file to append to in addition to the console.
    log_network:
        Trace every command and push frame at DEBUG regardless of ``level``.
        When false, wire loggers are capped at INFO so a DEBUG session stays
        readable at high push rates.
    """

    logging.captureWarnings(True)

    handlers: List[logging.Handler] = [logging.StreamHandler()]
    if log_path:
        log_path.parent.mkdir(parents=True, exist_ok=True)
        handlers.append(logging.FileHandler(log_path))

    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format=LOG_FORMAT,
        handlers=handlers,
        force=True,
    )

    wire_level = logging.DEBUG if log_network else logging.INFO
    for name in WIRE_LOGGERS:
        logging.getLogger(name).setLevel(wire_level)
    logging.getLogger("aiohttp.access").setLevel(
        logging.INFO if log_network else logging.WARNING
    )
