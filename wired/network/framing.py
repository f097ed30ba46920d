"""Splits the inbound byte stream into carriage-return delimited frames."""

from __future__ import annotations

import asyncio
from typing import AsyncIterator

from wired.network.transport.base import TransportClosed

FRAME_DELIMITER = b"\r"


async def read_frame(reader: asyncio.StreamReader) -> bytes:
    """Return the next frame, delimiter included.

    Raises :class:`TransportClosed` when the stream ends or fails before a
    delimiter arrives; that is the only signal the session reconnects on.
    """

    try:
        return await reader.readuntil(FRAME_DELIMITER)
    except asyncio.IncompleteReadError as exc:
        raise TransportClosed(f"stream ended with {len(exc.partial)} unframed byte(s)") from exc
    except asyncio.LimitOverrunError as exc:
        raise TransportClosed(f"frame exceeds the read limit ({exc.consumed} bytes buffered)") from exc
    except (ConnectionError, OSError) as exc:
        raise TransportClosed(str(exc) or exc.__class__.__name__) from exc


async def iter_frames(reader: asyncio.StreamReader) -> AsyncIterator[bytes]:
    """Yield frames until the stream closes (which raises :class:`TransportClosed`)."""

    while True:
        yield await read_frame(reader)
