"""Push notification contract."""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from datetime import timedelta

from pydantic import BaseModel, ConfigDict, Field

LOGGER = logging.getLogger(__name__)


class PushNotification(BaseModel):
    """A text alert addressed to a single device."""

    model_config = ConfigDict(frozen=True)

    alert: str
    device_token: str
    sandbox: bool = True
    expiry: timedelta = Field(default=timedelta(hours=24))


class PushSink(ABC):
    """Receives notifications triggered by chat events; delivery is fire-and-forget."""

    @abstractmethod
    async def deliver(self, notification: PushNotification) -> None:
        ...


class LoggingPushSink(PushSink):
    """Sink used when push delivery is disabled."""

    async def deliver(self, notification: PushNotification) -> None:
        LOGGER.info("Push notification (not delivered): %s", notification.alert)
