"""Keepalive watchdog for the Wired connection."""

from __future__ import annotations

import asyncio
import contextlib
import logging
import time
from typing import Awaitable, Callable, Optional

from wired.network.session_state import ConnectionStatus, SessionTracker
from wired.network.transport.base import TransportError

LOGGER = logging.getLogger(__name__)


class KeepaliveWatchdog:
    """Sends a ping reply when the server has not pinged us for a while.

    One instance exists per session and at most one timer task runs at a time:
    :meth:`start` replaces any running timer and :meth:`stop` cancels it.
    """

    def __init__(
        self,
        tracker: SessionTracker,
        send_ping: Callable[[], Awaitable[None]],
        *,
        interval: float = 90.0,
        stale_after: float = 60.0,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        self._tracker = tracker
        self._send_ping = send_ping
        self._interval = interval
        self._stale_after = stale_after
        self._clock = clock
        self._sleep = sleep
        self._task: Optional[asyncio.Task[None]] = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self) -> None:
        if self._task is not None and not self._task.done():
            self._task.cancel()
        self._task = asyncio.create_task(self._run(), name="wired-keepalive")

    async def stop(self) -> None:
        task, self._task = self._task, None
        if task is None or task is asyncio.current_task():
            return
        task.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await task

    def is_stale(self) -> bool:
        if self._tracker.status is not ConnectionStatus.CONNECTED:
            return False
        age = self._tracker.keepalive_age(self._clock())
        return age is None or age >= self._stale_after

    async def tick(self) -> bool:
        """Run one check; returns True when a proactive reply was sent."""

        if not self.is_stale():
            return False
        LOGGER.info("Sending proactive ping reply...")
        await self._send_ping()
        return True

    async def _run(self) -> None:
        while True:
            await self._sleep(self._interval)
            try:
                await self.tick()
            except asyncio.CancelledError:
                raise
            except TransportError as exc:
                LOGGER.debug("Proactive ping failed: %s", exc)
            except Exception:  # noqa: BLE001
                LOGGER.exception("Keepalive watchdog tick failed")
