"""Client bootstrap: settings -> catalog -> push sink -> session."""

from __future__ import annotations

import asyncio
import contextlib
import logging
import signal
from typing import Optional

from wired.config import WiredSettings, get_settings
from wired.network.session import Session, SessionFatalError, TransportFactory
from wired.network.transport.base import BaseTransport
from wired.network.transport.memory import MemoryTransport
from wired.network.transport.tcp import TcpTransport
from wired.notify.base import LoggingPushSink, PushSink
from wired.notify.gateway import HttpPushSink
from wired.protocol.catalog import SpecificationCatalog

LOGGER = logging.getLogger(__name__)


def build_transport_factory(settings: WiredSettings) -> TransportFactory:
    if settings.transport == "memory":
        LOGGER.debug("Initialising client connection via %s", MemoryTransport.__name__)
        return lambda host, port: MemoryTransport()

    def _tcp(host: str, port: int) -> BaseTransport:
        return TcpTransport(
            host,
            port,
            connect_timeout=settings.connect_timeout_seconds,
            read_limit=settings.read_limit_bytes,
        )

    LOGGER.debug("Initialising client connection via %s", TcpTransport.__name__)
    return _tcp


def build_push_sink(settings: WiredSettings) -> PushSink:
    if not settings.push_enabled:
        return LoggingPushSink()
    if not settings.push_gateway_url:
        LOGGER.warning("Push is enabled but no gateway url is configured; notifications will only be logged")
        return LoggingPushSink()
    if not settings.push_device_token:
        LOGGER.warning("Push is enabled but no device token is configured")
    return HttpPushSink.from_settings(settings)


def build_session(settings: Optional[WiredSettings] = None) -> Session:
    """Construct a ready-to-connect session; a missing specification fails startup."""

    settings = settings or get_settings()
    catalog = SpecificationCatalog.from_directory(
        settings.specification_dir,
        settings.supported_versions,
        strip_documentation=settings.strip_spec_documentation,
    )
    return Session(
        settings=settings,
        catalog=catalog,
        transport_factory=build_transport_factory(settings),
        push_sink=build_push_sink(settings),
    )


async def serve_forever(settings: Optional[WiredSettings] = None) -> int:
    """Run the client until it is stopped or the session fails; returns an exit status."""

    session = build_session(settings)
    current = asyncio.current_task()
    loop = asyncio.get_running_loop()
    if current is not None:
        with contextlib.suppress(NotImplementedError, RuntimeError):
            loop.add_signal_handler(signal.SIGTERM, current.cancel)

    await session.connect()
    try:
        await session.wait_closed()
    except asyncio.CancelledError:
        LOGGER.info("Client shutdown requested")
        await session.disconnect()
        raise
    except SessionFatalError as exc:
        LOGGER.critical("Session ended: %s", exc)
        return 1
    finally:
        with contextlib.suppress(NotImplementedError, RuntimeError):
            loop.remove_signal_handler(signal.SIGTERM)
    return 0
