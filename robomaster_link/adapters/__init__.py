"""Adapter modules for the robot's network channels."""

from .transport import TcpChannel, UdpChannel

__all__ = ["TcpChannel", "UdpChannel"]
