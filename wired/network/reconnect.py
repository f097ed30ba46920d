"""Bounded, fixed-delay reconnect policy."""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import Awaitable, Callable

from wired.config import WiredSettings
from wired.network.session_state import ConnectionStatus, SessionTracker

LOGGER = logging.getLogger(__name__)

Sleep = Callable[[float], Awaitable[None]]


@dataclass
class ReconnectPolicy:
    """Counts consecutive failures and paces the next attempt.

    With the default 15 second delay and 15 second connect timeout, twenty
    attempts amount to roughly ten minutes before the session is given up.
    """

    max_attempts: int = 20
    delay: float = 15.0
    sleep: Sleep = asyncio.sleep

    @classmethod
    def from_settings(cls, settings: WiredSettings, *, sleep: Sleep = asyncio.sleep) -> ReconnectPolicy:
        return cls(
            max_attempts=settings.reconnect_max_attempts,
            delay=settings.reconnect_delay_seconds,
            sleep=sleep,
        )

    def record_failure(self, tracker: SessionTracker) -> bool:
        """Register a failed attempt; returns False once the ceiling is exceeded."""

        tracker.transition(ConnectionStatus.RECONNECTING)
        tracker.clear_identity()
        tracker.retry_count += 1
        if tracker.retry_count > self.max_attempts:
            tracker.transition(ConnectionStatus.DISCONNECTED)
            return False
        return True

    async def wait(self, attempt: int) -> None:
        LOGGER.info("Reconnecting in %.0fs. Attempt %s of %s.", self.delay, attempt, self.max_attempts)
        await self.sleep(self.delay)
