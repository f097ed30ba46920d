"""Push notification sinks fed by chat events."""

from .base import LoggingPushSink, PushNotification, PushSink
from .gateway import HttpPushSink, PushDeliveryError

__all__ = ["LoggingPushSink", "PushNotification", "PushSink", "HttpPushSink", "PushDeliveryError"]
