"""In-memory transport for offline runs and tests."""

from __future__ import annotations

import asyncio
import logging
from typing import Mapping, Optional

from wired.protocol.codec import Message, decode, encode
from wired.network.transport.base import BaseTransport, TransportClosed

LOGGER = logging.getLogger(__name__)


class MemoryTransport(BaseTransport):
    """Loopback transport: frames fed by the caller, sent frames recorded."""

    def __init__(self) -> None:
        self._inbound: asyncio.Queue[Optional[bytes]] = asyncio.Queue()
        self._open = False
        self.sent: list[bytes] = []
        self.connects = 0

    @property
    def is_open(self) -> bool:
        return self._open

    async def connect(self) -> None:
        LOGGER.debug("Memory transport connect()")
        self.connects += 1
        self._open = True

    async def send(self, data: bytes) -> None:
        if not self._open:
            raise TransportClosed("memory transport closed")
        self.sent.append(data)

    async def receive(self) -> bytes:
        if not self._open:
            raise TransportClosed("memory transport closed")
        frame = await self._inbound.get()
        if frame is None:
            self._open = False
            raise TransportClosed("peer closed the memory transport")
        return frame

    async def close(self) -> None:
        LOGGER.debug("Memory transport close()")
        self._open = False
        self._inbound.put_nowait(None)

    def feed(self, frame: bytes) -> None:
        """Queue a raw inbound frame."""

        self._inbound.put_nowait(frame)

    def feed_message(self, transaction: str, fields: Optional[Mapping[str, str]] = None) -> None:
        self.feed(encode(transaction, fields))

    def drop(self) -> None:
        """Simulate the peer hanging up."""

        self._inbound.put_nowait(None)

    @property
    def sent_messages(self) -> list[Message]:
        return [decode(frame) for frame in self.sent]

    @property
    def sent_names(self) -> list[str]:
        return [message.name for message in self.sent_messages]
