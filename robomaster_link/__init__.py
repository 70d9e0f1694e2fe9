"""Text-protocol control session client for RoboMaster robots."""

from .arguments import Command, CommandArg
from .client import RoboMasterClient
from .feed import Feed, Subscription

__version__ = "0.1.0"

__all__ = [
    "Command",
    "CommandArg",
    "Feed",
    "RoboMasterClient",
    "Subscription",
    "__version__",
]
