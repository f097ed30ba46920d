"""Network stack (transport/session/reconnect/keepalive) for the Wired client."""

from wired.network.reconnect import ReconnectPolicy
from wired.network.session import RetriesExhausted, Session, SessionFatalError
from wired.network.session_state import ConnectionStatus, SessionTracker
from wired.network.transport.base import BaseTransport, ConnectTimeout, TransportClosed, TransportError
from wired.network.transport.memory import MemoryTransport
from wired.network.transport.tcp import TcpTransport
from wired.network.watchdog import KeepaliveWatchdog

__all__ = [
    "Session",
    "SessionFatalError",
    "RetriesExhausted",
    "ConnectionStatus",
    "SessionTracker",
    "ReconnectPolicy",
    "KeepaliveWatchdog",
    "BaseTransport",
    "TransportError",
    "TransportClosed",
    "ConnectTimeout",
    "MemoryTransport",
    "TcpTransport",
]
