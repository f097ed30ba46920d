"""Transport abstractions for the Wired server connection."""

from __future__ import annotations

from abc import ABC, abstractmethod


class TransportError(RuntimeError):
    """Base class for all transport-layer failures."""


class TransportClosed(TransportError):
    """The byte stream ended or a read/write on it failed."""


class ConnectTimeout(TransportError):
    """The transport could not be opened within the connect timeout."""


class BaseTransport(ABC):
    """Byte-level transport carrying delimited P7 frames."""

    @abstractmethod
    async def connect(self) -> None:
        ...

    @abstractmethod
    async def send(self, data: bytes) -> None:
        ...

    @abstractmethod
    async def receive(self) -> bytes:
        """Return the next complete frame, delimiter included."""

    @abstractmethod
    async def close(self) -> None:
        ...

    @property
    def is_open(self) -> bool:
        return False
