"""Session state machine for a Wired (P7) server connection.

This layer is responsible for:
- Transport lifecycle (open, read loop, teardown) for one logical connection
- The handshake sequence: handshake -> compatibility check -> client info -> login
- Dispatching inbound transactions and answering server pings
- Escalating transport failures to the reconnect policy
- Ending the session (never the process) on protocol-fatal conditions

All mutations of the :class:`SessionTracker` happen in this class on the event
loop. Connect, reconnect and teardown are serialised by one lock, and every
connection attempt carries a generation number so that reactions spawned for an
older attempt cannot touch the state of a newer one.
"""

from __future__ import annotations

import asyncio
import inspect
import logging
import time
from collections.abc import Awaitable, Callable, Coroutine
from dataclasses import dataclass, field
from datetime import timedelta
from typing import Any, Optional

from wired.config import WiredSettings
from wired.notify.base import LoggingPushSink, PushNotification, PushSink
from wired.notify.gateway import PushDeliveryError
from wired.protocol import transactions as tx
from wired.protocol.catalog import SpecificationCatalog
from wired.protocol.codec import DecodeError, Message, decode, encode
from wired.network.reconnect import ReconnectPolicy
from wired.network.session_state import ConnectionStatus, SessionTracker
from wired.network.transport.base import BaseTransport, TransportClosed, TransportError
from wired.network.watchdog import KeepaliveWatchdog

LOGGER = logging.getLogger(__name__)

TransportFactory = Callable[[str, int], BaseTransport]

FATAL_ERROR_CODES = {
    "wired.error.login_failed": "Username or password is incorrect.",
    "wired.error.banned": "User is banned from this server.",
    "wired.banned": "User is banned from this server.",
}

_TRUE_FLAGS = {"1", "true"}


def _is_true(value: Optional[str]) -> bool:
    return (value or "").strip().lower() in _TRUE_FLAGS


class SessionFatalError(RuntimeError):
    """The session cannot continue; only this session is torn down."""

    def __init__(self, reason: str, *, attempt: int, transaction: Optional[str] = None) -> None:
        self.reason = reason
        self.attempt = attempt
        self.transaction = transaction
        super().__init__(reason)

    def __str__(self) -> str:
        trigger = self.transaction or "n/a"
        return f"{self.reason} (connection attempt {self.attempt}, transaction {trigger})"


class RetriesExhausted(SessionFatalError):
    """The reconnect policy gave up."""


FatalCallback = Callable[[SessionFatalError], Optional[Awaitable[None]]]


@dataclass
class Session:
    """Client session against a single Wired server."""

    settings: WiredSettings
    catalog: SpecificationCatalog
    transport_factory: TransportFactory
    push_sink: Optional[PushSink] = None
    reconnect: Optional[ReconnectPolicy] = None
    clock: Callable[[], float] = time.monotonic
    on_fatal: Optional[FatalCallback] = None
    tracker: SessionTracker = field(default_factory=SessionTracker)

    _transport: Optional[BaseTransport] = field(default=None, init=False, repr=False)
    _read_task: Optional[asyncio.Task[None]] = field(default=None, init=False, repr=False)
    _reconnect_task: Optional[asyncio.Task[None]] = field(default=None, init=False, repr=False)
    _tasks: set[asyncio.Task[Any]] = field(default_factory=set, init=False, repr=False)
    _lock: asyncio.Lock = field(default_factory=asyncio.Lock, init=False, repr=False)
    _send_lock: asyncio.Lock = field(default_factory=asyncio.Lock, init=False, repr=False)
    _closed: asyncio.Event = field(default_factory=asyncio.Event, init=False, repr=False)
    _closing: bool = field(default=False, init=False, repr=False)
    _failed_generation: int = field(default=0, init=False, repr=False)
    _fatal_error: Optional[SessionFatalError] = field(default=None, init=False, repr=False)
    _watchdog: KeepaliveWatchdog = field(init=False, repr=False)
    _handlers: dict[str, Callable[[Message, int], None]] = field(init=False, repr=False)

    def __post_init__(self) -> None:
        if self.reconnect is None:
            self.reconnect = ReconnectPolicy.from_settings(self.settings)
        if self.push_sink is None:
            self.push_sink = LoggingPushSink()
        self._watchdog = KeepaliveWatchdog(
            self.tracker,
            self.send_ping_reply,
            interval=self.settings.keepalive_check_interval_seconds,
            stale_after=self.settings.keepalive_stale_after_seconds,
            clock=self.clock,
        )
        self._handlers = {
            tx.SERVER_HANDSHAKE: self._on_server_handshake,
            tx.COMPATIBILITY_STATUS: self._on_compatibility_status,
            tx.SERVER_INFO: self._on_server_info,
            tx.LOGIN: self._on_login,
            tx.SEND_PING: self._on_ping,
            tx.ERROR: self._on_error,
            tx.CHAT_USER_JOIN: self._on_user_join,
            tx.CHAT_USER_DISCONNECT: self._on_user_disconnect,
        }

    # ------------------------------------------------------------------
    # State accessors
    # ------------------------------------------------------------------
    @property
    def status(self) -> ConnectionStatus:
        return self.tracker.status

    @property
    def user_id(self) -> Optional[str]:
        return self.tracker.user_id

    @property
    def negotiated_version(self) -> Optional[str]:
        return self.tracker.negotiated_version

    @property
    def retry_count(self) -> int:
        return self.tracker.retry_count

    @property
    def watchdog(self) -> KeepaliveWatchdog:
        return self._watchdog

    @property
    def is_closed(self) -> bool:
        return self._closed.is_set()

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------
    async def connect(self, host: Optional[str] = None, port: Optional[int] = None) -> None:
        """Open the transport and send the handshake.

        A failed attempt is handed to the reconnect policy and this call
        returns; it never retries by itself.
        """

        self.tracker.host = host if host is not None else (self.tracker.host or self.settings.host)
        self.tracker.port = port if port is not None else (self.tracker.port or self.settings.port)
        await self._cancel_reconnect()
        self._closing = False
        self._fatal_error = None
        self.tracker.retry_count = 0
        self._closed.clear()
        await self._open()

    async def disconnect(self) -> None:
        """User-requested teardown; never triggers a reconnect."""

        LOGGER.info("Disconnecting from server...")
        self._closing = True
        await self._cancel_reconnect()
        async with self._lock:
            if self._transport is not None and self.tracker.user_id:
                try:
                    await self.send(tx.DisconnectUser(user_id=self.tracker.user_id))
                except TransportError as exc:
                    LOGGER.warning("Could not notify the server of the disconnect: %s", exc)
            await self._shutdown(None)

    async def wait_closed(self) -> None:
        """Block until the session ends; raises the fatal error if it failed."""

        await self._closed.wait()
        if self._fatal_error is not None:
            raise self._fatal_error

    async def drain(self) -> None:
        """Wait for every in-flight reaction task to finish."""

        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    async def _open(self) -> None:
        host, port = self.tracker.host, self.tracker.port
        async with self._lock:
            await self._teardown()
            if self.tracker.status is ConnectionStatus.CONNECTED:
                self.tracker.transition(ConnectionStatus.DISCONNECTED)
            attempt = self.tracker.begin_attempt()
            LOGGER.info("Beginning socket connection to %s:%s (attempt %s)...", host, port, attempt)
            transport = self.transport_factory(host, port)
            try:
                await transport.connect()
            except TransportError as exc:
                LOGGER.warning("Connection failed: %s", exc)
                self.tracker.transition(ConnectionStatus.RECONNECTING)
                self._schedule_reconnect(attempt, exc)
                return

            self._transport = transport
            self.tracker.retry_count = 0

            LOGGER.info("Sending Wired handshake...")
            try:
                await self.send(self._client_handshake(), attempt=attempt)
            except TransportError:
                return
            self._read_task = asyncio.create_task(self._read_loop(transport, attempt), name=f"wired-read-{attempt}")
            self._watchdog.start()

    async def _teardown(self) -> None:
        """Stop the watchdog, read loop and reactions, then close the transport."""

        await self._watchdog.stop()
        current = asyncio.current_task()
        pending = [
            task
            for task in (self._read_task, *self._tasks)
            if task is not None and task is not current and not task.done()
        ]
        for task in pending:
            task.cancel()
        if pending:
            await asyncio.gather(*pending, return_exceptions=True)
        self._read_task = None

        transport, self._transport = self._transport, None
        if transport is not None:
            try:
                await transport.close()
            except Exception:  # noqa: BLE001
                LOGGER.debug("Suppress transport close error", exc_info=True)

    async def _shutdown(self, error: Optional[SessionFatalError]) -> None:
        """End the session for good; the caller holds the lock."""

        self._closing = True
        await self._teardown()
        if self.tracker.status is not ConnectionStatus.DISCONNECTED:
            self.tracker.transition(ConnectionStatus.DISCONNECTED)
        self.tracker.clear_identity()
        if error is not None:
            self._fatal_error = error
        self._closed.set()

    async def _notify_fatal(self, error: SessionFatalError) -> None:
        # Called with the lock released; the callback may reconnect or disconnect.
        if self.on_fatal is None:
            return
        try:
            result = self.on_fatal(error)
            if inspect.isawaitable(result):
                await result
        except Exception:  # noqa: BLE001
            LOGGER.debug("Suppress on_fatal callback error", exc_info=True)

    async def _abort(self, reason: str, *, attempt: int, transaction: Optional[str]) -> None:
        if not self._is_current(attempt):
            return
        error = SessionFatalError(reason, attempt=attempt, transaction=transaction)
        LOGGER.error("*** Session aborted: %s ***", error)
        self._closing = True
        await self._cancel_reconnect()
        async with self._lock:
            await self._shutdown(error)
        await self._notify_fatal(error)

    # ------------------------------------------------------------------
    # Reconnect
    # ------------------------------------------------------------------
    def _schedule_reconnect(self, attempt: int, exc: BaseException) -> None:
        if self._closing or attempt != self.tracker.generation or attempt == self._failed_generation:
            return
        self._failed_generation = attempt
        self._reconnect_task = asyncio.create_task(
            self._reconnect(attempt, exc),
            name=f"wired-reconnect-{attempt}",
        )

    async def _reconnect(self, attempt: int, exc: BaseException) -> None:
        assert self.reconnect is not None
        error: Optional[SessionFatalError] = None
        async with self._lock:
            await self._teardown()
            if not self.reconnect.record_failure(self.tracker):
                error = RetriesExhausted(
                    f"Unable to reconnect after {self.reconnect.max_attempts} tries: {exc}",
                    attempt=attempt,
                )
                LOGGER.error("*** %s ***", error)
                await self._shutdown(error)
        if error is not None:
            await self._notify_fatal(error)
            return
        await self.reconnect.wait(self.tracker.retry_count)
        if self._closing:
            return
        await self._open()

    async def _cancel_reconnect(self) -> None:
        task, self._reconnect_task = self._reconnect_task, None
        if task is None or task is asyncio.current_task() or task.done():
            return
        task.cancel()
        await asyncio.gather(task, return_exceptions=True)

    # ------------------------------------------------------------------
    # Inbound
    # ------------------------------------------------------------------
    async def _read_loop(self, transport: BaseTransport, attempt: int) -> None:
        while True:
            try:
                frame = await transport.receive()
            except asyncio.CancelledError:
                raise
            except TransportError as exc:
                LOGGER.warning("Error reading data from socket: %s", exc)
                LOGGER.warning("*** Server disconnected unexpectedly. ***")
                self._schedule_reconnect(attempt, exc)
                return
            try:
                message = decode(frame)
            except DecodeError as exc:
                LOGGER.warning("Error decoding XML document: %s %r", exc, frame[:256])
                continue
            self.dispatch(message, attempt=attempt)

    def dispatch(self, message: Message, *, attempt: Optional[int] = None) -> None:
        """Apply an inbound transaction; replies run as independent tasks."""

        attempt = self.tracker.generation if attempt is None else attempt
        if not self._is_current(attempt):
            LOGGER.debug("Dropping %s from stale connection attempt %s", message.name, attempt)
            return
        handler = self._handlers.get(message.name)
        if handler is None:
            LOGGER.debug("Ignoring transaction %s", message.name)
            return
        handler(message, attempt)

    def _on_server_handshake(self, message: Message, attempt: int) -> None:
        LOGGER.info("Received handshake.")
        # Fields may arrive in any order; decide only after all were seen.
        send_check = False
        for name, value in message.fields:
            if name == tx.FIELD_PROTOCOL_VERSION:
                self.tracker.negotiated_version = value
            elif name == tx.FIELD_COMPATIBILITY_CHECK:
                send_check = _is_true(value)
        self._spawn(self._acknowledge_handshake(send_check, attempt), name="wired-handshake")

    async def _acknowledge_handshake(self, send_check: bool, attempt: int) -> None:
        LOGGER.info("Sending acknowledgement...")
        await self.send(tx.Acknowledge(), attempt=attempt)
        if send_check:
            await self.send_compatibility_check(attempt=attempt)
        else:
            await self.send_client_info(attempt=attempt)

    def _on_compatibility_status(self, message: Message, attempt: int) -> None:
        LOGGER.info("Received compatibility status.")
        status = message.get(tx.FIELD_COMPATIBILITY_STATUS)
        if status is None:
            LOGGER.warning("Compatibility status without a status field; ignoring")
            return
        if _is_true(status):
            self._spawn(self.send_client_info(attempt=attempt), name="wired-client-info")
            return
        self._spawn(
            self._abort(
                f"Compatibility mismatch for protocol version {self.tracker.negotiated_version}.",
                attempt=attempt,
                transaction=message.name,
            ),
            name="wired-abort",
        )

    def _on_server_info(self, message: Message, attempt: int) -> None:
        LOGGER.info("Received server info.")
        # Server info is re-announced periodically while connected.
        if self.tracker.status is ConnectionStatus.CONNECTED:
            return
        self._spawn(
            self.send_login(self.settings.login_user, self.settings.login_password_digest, attempt=attempt),
            name="wired-login",
        )

    def _on_login(self, message: Message, attempt: int) -> None:
        user_id = message.get(tx.FIELD_USER_ID)
        if not user_id:
            LOGGER.warning("Login result without a user id; ignoring")
            return
        self.tracker.user_id = user_id
        if self.tracker.status is ConnectionStatus.CONNECTED:
            LOGGER.info("Login result while connected; user id is now %s.", user_id)
            return
        LOGGER.info("Login was successful (user id %s).", user_id)
        self._spawn(self._complete_login(attempt), name="wired-post-login")

    async def _complete_login(self, attempt: int) -> None:
        await self.set_nick(self.settings.nick, attempt=attempt)
        await self.set_status(self.settings.status_text, attempt=attempt)
        await self.set_icon(self.settings.icon, attempt=attempt)
        await self.join_channel(self.settings.channel_id, attempt=attempt)
        if not self._is_current(attempt) or self.tracker.status is ConnectionStatus.CONNECTED:
            return
        self.tracker.transition(ConnectionStatus.CONNECTED)
        LOGGER.info(
            "Connected to %s:%s as user %s (protocol %s).",
            self.tracker.host,
            self.tracker.port,
            self.tracker.user_id,
            self.tracker.negotiated_version,
        )
        # TODO: decide from real client activity whether the user is idle.
        if self.settings.mark_idle:
            await self.set_idle(attempt=attempt)

    def _on_ping(self, message: Message, attempt: int) -> None:
        self.tracker.last_keepalive_at = self.clock()
        self._spawn(self.send_ping_reply(attempt=attempt), name="wired-ping")

    def _on_error(self, message: Message, attempt: int) -> None:
        code = message.get(tx.FIELD_ERROR)
        if code in FATAL_ERROR_CODES:
            self._spawn(
                self._abort(f"Login failed: {FATAL_ERROR_CODES[code]}", attempt=attempt, transaction=message.name),
                name="wired-abort",
            )
            return
        LOGGER.warning("*** ERROR: %s ***", code)

    def _on_user_join(self, message: Message, attempt: int) -> None:
        chat_id = message.get(tx.FIELD_CHAT_ID)
        if chat_id is not None and chat_id != self.settings.channel_id:
            return
        nick = message.get(tx.FIELD_USER_NICK)
        if not nick:
            return
        notification = PushNotification(
            alert=f"{nick} has logged into {self.settings.push_server_label}.",
            device_token=self.settings.push_device_token or "",
            sandbox=self.settings.push_sandbox,
            expiry=timedelta(seconds=self.settings.push_expiry_seconds),
        )
        self._spawn(self._deliver_push(notification), name="wired-push")

    def _on_user_disconnect(self, message: Message, attempt: int) -> None:
        if message.get(tx.FIELD_DISCONNECTED_ID) != self.tracker.user_id:
            return
        LOGGER.warning(
            "Server disconnected this user: %s",
            message.get(tx.FIELD_DISCONNECT_MESSAGE) or "no reason given",
        )

    async def _deliver_push(self, notification: PushNotification) -> None:
        assert self.push_sink is not None
        try:
            await self.push_sink.deliver(notification)
        except PushDeliveryError as exc:
            LOGGER.warning("Push notification failed: %s", exc)

    # ------------------------------------------------------------------
    # Outbound
    # ------------------------------------------------------------------
    async def send(self, transaction: tx.Transaction, *, attempt: Optional[int] = None) -> None:
        """Encode and write a transaction; a write failure counts as a lost connection."""

        attempt = self.tracker.generation if attempt is None else attempt
        transport = self._transport
        if transport is None or attempt != self.tracker.generation:
            raise TransportClosed(f"no active connection for {transaction.NAME}")
        data = encode(transaction.NAME, transaction.fields())
        try:
            async with self._send_lock:
                await transport.send(data)
        except TransportError as exc:
            LOGGER.warning("Error writing %s to socket: %s", transaction.NAME, exc)
            self._schedule_reconnect(attempt, exc)
            raise
        LOGGER.debug("Sent %s", transaction.NAME)

    async def send_login(self, user: str, password_digest: str, *, attempt: Optional[int] = None) -> None:
        """Log in; ``password_digest`` must already be a SHA-1 hex digest."""

        LOGGER.info("Sending login information...")
        await self.send(tx.SendLogin(login=user, password=password_digest), attempt=attempt)

    async def set_nick(self, nick: str, *, attempt: Optional[int] = None) -> None:
        LOGGER.info("Attempting to change nick...")
        await self.send(tx.SetNick(nick=nick), attempt=attempt)

    async def set_status(self, status: str, *, attempt: Optional[int] = None) -> None:
        LOGGER.info("Attempting to change status...")
        await self.send(tx.SetStatus(status=status), attempt=attempt)

    async def set_icon(self, icon: str, *, attempt: Optional[int] = None) -> None:
        LOGGER.info("Attempting to change icon...")
        await self.send(tx.SetIcon(icon=icon), attempt=attempt)

    async def set_idle(self, *, attempt: Optional[int] = None) -> None:
        LOGGER.info("Attempting to set user as idle...")
        await self.send(tx.SetIdle(), attempt=attempt)

    async def join_channel(self, channel_id: str, *, attempt: Optional[int] = None) -> None:
        """Join a chat; users normally only ever join channel 1, the public chat."""

        LOGGER.info("Attempting to join channel %s...", channel_id)
        await self.send(tx.JoinChat(chat_id=channel_id), attempt=attempt)

    async def send_ping_reply(self, *, attempt: Optional[int] = None) -> None:
        await self.send(tx.PingReply(), attempt=attempt)

    async def send_compatibility_check(self, *, attempt: Optional[int] = None) -> None:
        LOGGER.info("Sending compatibility check...")
        version = self.tracker.negotiated_version
        document = self.catalog.lookup(version)
        if not document:
            LOGGER.warning("No specification loaded for protocol version %r; sending an empty document", version)
        await self.send(tx.CompatibilityCheck(specification=document), attempt=attempt)

    async def send_client_info(self, *, attempt: Optional[int] = None) -> None:
        LOGGER.info("Sending client information...")
        settings = self.settings
        await self.send(
            tx.ClientInfo(
                application_name=settings.application_name,
                application_version=settings.application_version,
                application_build=settings.application_build,
                os_name=settings.os_name,
                os_version=settings.os_version,
                arch=settings.arch,
                supports_rsrc="true" if settings.supports_rsrc else "false",
            ),
            attempt=attempt,
        )

    def _client_handshake(self) -> tx.ClientHandshake:
        return tx.ClientHandshake(
            version=self.settings.handshake_version,
            protocol_name=self.settings.protocol_name,
            protocol_version=self.settings.protocol_version,
        )

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------
    def _is_current(self, attempt: int) -> bool:
        return not self._closing and attempt == self.tracker.generation and attempt != self._failed_generation

    def _spawn(self, coro: Coroutine[Any, Any, None], *, name: str) -> asyncio.Task[None]:
        task = asyncio.create_task(coro, name=name)
        self._tasks.add(task)
        task.add_done_callback(self._reap)
        return task

    def _reap(self, task: asyncio.Task[Any]) -> None:
        self._tasks.discard(task)
        if task.cancelled():
            return
        exc = task.exception()
        if exc is None:
            return
        if isinstance(exc, TransportError):
            LOGGER.debug("Task %s stopped: %s", task.get_name(), exc)
            return
        LOGGER.error("Task %s failed", task.get_name(), exc_info=exc)


__all__ = ["Session", "SessionFatalError", "RetriesExhausted", "FATAL_ERROR_CODES"]
