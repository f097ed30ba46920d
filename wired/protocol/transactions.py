"""Fixed-schema records for the transactions the client sends.

Each record knows its transaction name and maps its attributes onto the P7
field names through ``wire()`` metadata, so callers never build field
dictionaries by hand.
"""

from __future__ import annotations

import dataclasses
from dataclasses import dataclass
from typing import Any, ClassVar

# Inbound transaction names
SERVER_HANDSHAKE = "p7.handshake.server_handshake"
COMPATIBILITY_STATUS = "p7.compatibility_check.status"
SERVER_INFO = "wired.server_info"
LOGIN = "wired.login"
SEND_PING = "wired.send_ping"
ERROR = "wired.error"
CHAT_USER_JOIN = "wired.chat.user_join"
CHAT_USER_DISCONNECT = "wired.chat.user_disconnect"

# Inbound field names
FIELD_PROTOCOL_VERSION = "p7.handshake.protocol.version"
FIELD_COMPATIBILITY_CHECK = "p7.handshake.compatibility_check"
FIELD_COMPATIBILITY_STATUS = "p7.compatibility_check.status"
FIELD_USER_ID = "wired.user.id"
FIELD_USER_NICK = "wired.user.nick"
FIELD_CHAT_ID = "wired.chat.id"
FIELD_ERROR = "wired.error"
FIELD_DISCONNECTED_ID = "wired.user.disconnected_id"
FIELD_DISCONNECT_MESSAGE = "wired.user.disconnect_message"


def wire(name: str, default: Any = dataclasses.MISSING) -> Any:
    """Declare a transaction attribute carried in the P7 field ``name``."""

    return dataclasses.field(default=default, metadata={"wire": name})


@dataclass(frozen=True)
class Transaction:
    """Base class for outbound transactions."""

    NAME: ClassVar[str] = ""

    def fields(self) -> list[tuple[str, str]]:
        return [(item.metadata["wire"], getattr(self, item.name)) for item in dataclasses.fields(self)]


@dataclass(frozen=True)
class ClientHandshake(Transaction):
    NAME: ClassVar[str] = "p7.handshake.client_handshake"

    version: str = wire("p7.handshake.version")
    protocol_name: str = wire("p7.handshake.protocol.name")
    protocol_version: str = wire("p7.handshake.protocol.version")


@dataclass(frozen=True)
class Acknowledge(Transaction):
    NAME: ClassVar[str] = "p7.handshake.acknowledge"


@dataclass(frozen=True)
class CompatibilityCheck(Transaction):
    """Carries the pre-escaped specification document for the negotiated version."""

    NAME: ClassVar[str] = "p7.compatibility_check.specification"

    specification: str = wire("p7.compatibility_check.specification")


@dataclass(frozen=True)
class ClientInfo(Transaction):
    NAME: ClassVar[str] = "wired.client_info"

    application_name: str = wire("wired.info.application.name")
    application_version: str = wire("wired.info.application.version")
    application_build: str = wire("wired.info.application.build")
    os_name: str = wire("wired.info.os.name")
    os_version: str = wire("wired.info.os.version")
    arch: str = wire("wired.info.arch")
    supports_rsrc: str = wire("wired.info.supports_rsrc", "false")


@dataclass(frozen=True)
class SendLogin(Transaction):
    """Login request; ``password`` is the SHA-1 hex digest, never the clear text."""

    NAME: ClassVar[str] = "wired.send_login"

    login: str = wire("wired.user.login")
    password: str = wire("wired.user.password")


@dataclass(frozen=True)
class SetNick(Transaction):
    NAME: ClassVar[str] = "wired.user.set_nick"

    nick: str = wire(FIELD_USER_NICK)


@dataclass(frozen=True)
class SetStatus(Transaction):
    NAME: ClassVar[str] = "wired.user.set_status"

    status: str = wire("wired.user.status")


@dataclass(frozen=True)
class SetIcon(Transaction):
    NAME: ClassVar[str] = "wired.user.set_icon"

    icon: str = wire("wired.user.icon")


@dataclass(frozen=True)
class JoinChat(Transaction):
    NAME: ClassVar[str] = "wired.chat.join_chat"

    chat_id: str = wire(FIELD_CHAT_ID)


@dataclass(frozen=True)
class SetIdle(Transaction):
    NAME: ClassVar[str] = "wired.user.set_idle"

    idle: str = wire("wired.user.idle", "YES")


@dataclass(frozen=True)
class DisconnectUser(Transaction):
    NAME: ClassVar[str] = "wired.user.disconnect_user"

    user_id: str = wire(FIELD_USER_ID)
    disconnect_message: str = wire(FIELD_DISCONNECT_MESSAGE, "")


@dataclass(frozen=True)
class PingReply(Transaction):
    NAME: ClassVar[str] = "wired.ping"
