"""Command-line interface for robomaster-link."""

from __future__ import annotations

import argparse
import asyncio
import logging
import sys
from pathlib import Path
from typing import Optional, Sequence

from . import constants
from .app import MONITOR_FEEDS, RoboMasterLinkApp
from .arguments import CommandArg
from .client import RoboMasterClient
from .config import ConfigurationError, LinkConfig, load_config
from .core.errors import RoboMasterError
from .logging import configure_logging

LOGGER = logging.getLogger(__name__)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog=constants.APP_NAME, description="Text-protocol control session for RoboMaster robots"
    )
    parser.add_argument(
        "-c",
        "--config",
        type=Path,
        default=constants.DEFAULT_CONFIG_PATH,
        help=f"Path to configuration file (default: {constants.DEFAULT_CONFIG_PATH})",
    )
    parser.add_argument("--host", help="Override the robot address from the configuration")

    subparsers = parser.add_subparsers(dest="command", required=True)

    subparsers.add_parser("version", help="Print the robot's SDK version")

    send_parser = subparsers.add_parser("send", help="Send one raw command and print the reply")
    send_parser.add_argument("tokens", nargs="+", help="Command tokens, e.g. chassis position ?")

    monitor_parser = subparsers.add_parser("monitor", help="Subscribe to feeds and log values")
    monitor_parser.add_argument(
        "--feed",
        action="append",
        choices=MONITOR_FEEDS,
        dest="feeds",
        help="Feed to subscribe to (repeatable; default: position)",
    )
    monitor_parser.add_argument(
        "--duration", type=float, default=None, help="Stop after this many seconds"
    )

    subparsers.add_parser("show-config", help="Print the resolved configuration and exit")

    return parser


async def _send(config: LinkConfig, tokens: Sequence[str]) -> str:
    async with await RoboMasterClient.connect(config, enable_video=False) as client:
        frame = await client.do(*(CommandArg.string(token) for token in tokens))
    return " ".join(frame.tokens)


def main(argv: Optional[list[str]] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    try:
        config = load_config(args.config)
    except ConfigurationError as exc:
        print(f"Invalid configuration: {exc}", file=sys.stderr)
        return 2

    if args.host:
        config.robot.host = args.host
        config.raw.set("robot", "host", args.host)

    if args.command == "show-config":
        print(f"Configuration loaded from {config.path!s}\n")
        for section in config.raw.sections():
            print(f"[{section}]")
            for key, value in config.raw[section].items():
                print(f"{key} = {value}")
            print()
        return 0

    if args.command == "monitor":
        return RoboMasterLinkApp.start(
            config, feeds=args.feeds or ["position"], duration=args.duration
        )

    configure_logging(
        config.logging.level,
        log_path=config.logging.path,
        log_network=config.logging.log_network,
    )

    if args.command == "version":
        tokens: Sequence[str] = ["version"]
    elif args.command == "send":
        tokens = args.tokens
    else:
        LOGGER.error("Unknown command: %s", args.command)
        return 1

    try:
        reply = asyncio.run(_send(config, tokens))
    except (RoboMasterError, ValueError) as exc:
        LOGGER.error("%s failed: %s", args.command, exc)
        return 1

    print(reply)
    return 0


if __name__ == "__main__":
    sys.exit(main())
