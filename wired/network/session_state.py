"""Session record for the Wired server connection."""

from __future__ import annotations

import enum
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Optional


class ConnectionStatus(enum.Enum):
    """Client-side lifecycle of the logical connection."""

    DISCONNECTED = "DISCONNECTED"
    RECONNECTING = "RECONNECTING"
    CONNECTED = "CONNECTED"


@dataclass
class SessionTracker:
    """In-memory session metadata, owned and mutated only by the Session."""

    host: str = ""
    port: int = 0
    status: ConnectionStatus = ConnectionStatus.DISCONNECTED
    retry_count: int = 0
    last_keepalive_at: Optional[float] = None
    negotiated_version: Optional[str] = None
    user_id: Optional[str] = None
    generation: int = 0
    last_transition_at: datetime = field(default_factory=lambda: datetime.now(tz=timezone.utc))

    def transition(self, next_status: ConnectionStatus) -> None:
        """Move the session into a new status, validating allowed transitions."""

        if not self._is_valid_transition(self.status, next_status):
            raise ValueError(f"Invalid transition {self.status.value} → {next_status.value}")
        if next_status is ConnectionStatus.CONNECTED and not (self.user_id and self.negotiated_version):
            raise ValueError("Cannot mark the session connected without a user id and protocol version")
        self.status = next_status
        self.last_transition_at = datetime.now(tz=timezone.utc)

    @staticmethod
    def _is_valid_transition(current: ConnectionStatus, nxt: ConnectionStatus) -> bool:
        allowed = {
            ConnectionStatus.DISCONNECTED: {
                ConnectionStatus.DISCONNECTED,
                ConnectionStatus.RECONNECTING,
                ConnectionStatus.CONNECTED,
            },
            ConnectionStatus.RECONNECTING: {
                ConnectionStatus.RECONNECTING,
                ConnectionStatus.CONNECTED,
                ConnectionStatus.DISCONNECTED,
            },
            ConnectionStatus.CONNECTED: {ConnectionStatus.RECONNECTING, ConnectionStatus.DISCONNECTED},
        }
        return nxt in allowed.get(current, set())

    def begin_attempt(self) -> int:
        """Start a new connection attempt; per-connection fields are reset."""

        self.generation += 1
        self.clear_identity()
        self.last_keepalive_at = None
        return self.generation

    def clear_identity(self) -> None:
        self.user_id = None
        self.negotiated_version = None

    def keepalive_age(self, now: float) -> Optional[float]:
        if self.last_keepalive_at is None:
            return None
        return now - self.last_keepalive_at
