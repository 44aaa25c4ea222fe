"""Loopback transport and manual clock for testing and development."""

from .clock import ManualClock
from .transport import LoopbackConnection, LoopbackNetwork, LoopbackTransport, run_until_idle

__all__ = [
    "LoopbackConnection",
    "LoopbackNetwork",
    "LoopbackTransport",
    "ManualClock",
    "run_until_idle",
]
