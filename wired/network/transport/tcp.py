"""TCP transport implementation."""

from __future__ import annotations

import asyncio
import contextlib
import logging
from typing import Optional

from wired.network.framing import read_frame
from wired.network.transport.base import BaseTransport, ConnectTimeout, TransportClosed

LOGGER = logging.getLogger(__name__)

DEFAULT_READ_LIMIT = 4 * 1024 * 1024


class TcpTransport(BaseTransport):
    """Plain TCP connection to a Wired server."""

    def __init__(
        self,
        host: str,
        port: int,
        *,
        connect_timeout: float = 15.0,
        read_limit: int = DEFAULT_READ_LIMIT,
    ) -> None:
        self._host = host
        self._port = port
        self._connect_timeout = connect_timeout
        self._read_limit = read_limit
        self._reader: Optional[asyncio.StreamReader] = None
        self._writer: Optional[asyncio.StreamWriter] = None

    @property
    def is_open(self) -> bool:
        return self._writer is not None and not self._writer.is_closing()

    async def connect(self) -> None:
        LOGGER.info("Connecting to Wired server at %s:%s", self._host, self._port)
        try:
            self._reader, self._writer = await asyncio.wait_for(
                asyncio.open_connection(self._host, self._port, limit=self._read_limit),
                timeout=self._connect_timeout,
            )
        except asyncio.TimeoutError as exc:
            raise ConnectTimeout(
                f"connect to {self._host}:{self._port} timed out after {self._connect_timeout:.0f}s"
            ) from exc
        except OSError as exc:
            raise TransportClosed(f"connect to {self._host}:{self._port} failed: {exc}") from exc

    async def send(self, data: bytes) -> None:
        if not self._writer:
            raise TransportClosed("TCP transport not connected")
        try:
            self._writer.write(data)
            await self._writer.drain()
        except (ConnectionError, OSError) as exc:
            raise TransportClosed(str(exc) or exc.__class__.__name__) from exc

    async def receive(self) -> bytes:
        if not self._reader:
            raise TransportClosed("TCP transport not connected")
        frame = await read_frame(self._reader)
        LOGGER.debug("TCP receive: %d byte(s)", len(frame))
        return frame

    async def close(self) -> None:
        writer, self._writer = self._writer, None
        self._reader = None
        if writer is None:
            return
        LOGGER.info("Closing connection to %s:%s", self._host, self._port)
        writer.close()
        with contextlib.suppress(ConnectionError, OSError):
            await writer.wait_closed()
