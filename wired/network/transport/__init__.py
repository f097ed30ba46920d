"""Transport implementations for the Wired connection."""

from .base import BaseTransport, ConnectTimeout, TransportClosed, TransportError
from .memory import MemoryTransport
from .tcp import TcpTransport

__all__ = [
    "BaseTransport",
    "ConnectTimeout",
    "TransportClosed",
    "TransportError",
    "MemoryTransport",
    "TcpTransport",
]
