from datetime import timedelta

import pytest
import requests

from wired.config import WiredSettings
from wired.notify import HttpPushSink, LoggingPushSink, PushDeliveryError, PushNotification
from wired.notify import gateway


class _Response:
    def __init__(self, status_code: int) -> None:
        self.status_code = status_code


def _notification() -> PushNotification:
    return PushNotification(alert="Zelda has logged into Cunning Giraffe.", device_token="abc123")


def test_notification_defaults():
    notification = _notification()

    assert notification.sandbox is True
    assert notification.expiry == timedelta(hours=24)


@pytest.mark.asyncio
async def test_http_sink_posts_payload(monkeypatch):
    calls = []

    def _fake_post(url, json=None, headers=None, timeout=None):
        calls.append({"url": url, "json": json, "headers": headers, "timeout": timeout})
        return _Response(202)

    monkeypatch.setattr(gateway.requests, "post", _fake_post)
    sink = HttpPushSink(gateway_url="https://push.example/v1/notify", auth_token="secret", timeout_seconds=3)

    await sink.deliver(_notification())

    assert calls == [
        {
            "url": "https://push.example/v1/notify",
            "json": {
                "device_token": "abc123",
                "alert": "Zelda has logged into Cunning Giraffe.",
                "sandbox": True,
                "expiry_seconds": 86400,
            },
            "headers": {"Accept": "application/json", "Authorization": "Bearer secret"},
            "timeout": 3,
        }
    ]


@pytest.mark.asyncio
async def test_http_sink_raises_on_error_status(monkeypatch):
    monkeypatch.setattr(gateway.requests, "post", lambda *args, **kwargs: _Response(503))
    sink = HttpPushSink(gateway_url="https://push.example/v1/notify")

    with pytest.raises(PushDeliveryError, match="503"):
        await sink.deliver(_notification())


@pytest.mark.asyncio
async def test_http_sink_wraps_request_errors(monkeypatch):
    def _boom(*args, **kwargs):
        raise requests.ConnectionError("unreachable")

    monkeypatch.setattr(gateway.requests, "post", _boom)
    sink = HttpPushSink(gateway_url="https://push.example/v1/notify")

    with pytest.raises(PushDeliveryError, match="unreachable"):
        await sink.deliver(_notification())


def test_http_sink_from_settings_requires_url():
    with pytest.raises(ValueError):
        HttpPushSink.from_settings(WiredSettings(push_enabled=True))


@pytest.mark.asyncio
async def test_logging_sink_logs_alert(caplog):
    with caplog.at_level("INFO", logger="wired.notify.base"):
        await LoggingPushSink().deliver(_notification())

    assert "Zelda has logged into Cunning Giraffe." in caplog.text
