"""HTTP push gateway sink."""

from __future__ import annotations

import asyncio
import logging
from typing import Any

import requests
from requests import Response

from wired.config import WiredSettings
from wired.notify.base import PushNotification, PushSink

LOGGER = logging.getLogger(__name__)


class PushDeliveryError(RuntimeError):
    """Raised when the push gateway rejects or fails a delivery."""


class HttpPushSink(PushSink):
    """Posts notifications as JSON to a push gateway."""

    def __init__(
        self,
        *,
        gateway_url: str,
        auth_token: str | None = None,
        timeout_seconds: float = 10.0,
    ) -> None:
        self._gateway_url = gateway_url
        self._auth_token = auth_token
        self._timeout_seconds = timeout_seconds

    @classmethod
    def from_settings(cls, settings: WiredSettings) -> HttpPushSink:
        if not settings.push_gateway_url:
            raise ValueError("push_gateway_url is required when push delivery is enabled.")
        return cls(
            gateway_url=settings.push_gateway_url,
            auth_token=settings.push_auth_token,
            timeout_seconds=settings.push_timeout_seconds,
        )

    async def deliver(self, notification: PushNotification) -> None:
        await asyncio.to_thread(self._post, self.build_payload(notification))
        LOGGER.info("Delivered push notification to %s", self._gateway_url)

    @staticmethod
    def build_payload(notification: PushNotification) -> dict[str, Any]:
        return {
            "device_token": notification.device_token,
            "alert": notification.alert,
            "sandbox": notification.sandbox,
            "expiry_seconds": int(notification.expiry.total_seconds()),
        }

    def _post(self, payload: dict[str, Any]) -> Response:
        try:
            response = requests.post(
                self._gateway_url,
                json=payload,
                headers=self._build_headers(),
                timeout=self._timeout_seconds,
            )
        except requests.RequestException as exc:
            raise PushDeliveryError(str(exc)) from exc
        if response.status_code >= 400:
            raise PushDeliveryError(f"Push gateway failed with status {response.status_code}.")
        return response

    def _build_headers(self) -> dict[str, str]:
        headers = {"Accept": "application/json"}
        if self._auth_token:
            headers["Authorization"] = f"Bearer {self._auth_token}"
        return headers
