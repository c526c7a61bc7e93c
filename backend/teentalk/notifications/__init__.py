"""Notification inbox and push delivery."""

from teentalk.notifications.sender import HttpPushSender, NoopPushSender, PushSender, SendResult
from teentalk.notifications.service import DeliveryReport, NotificationService

__all__ = [
    "DeliveryReport",
    "HttpPushSender",
    "NoopPushSender",
    "NotificationService",
    "PushSender",
    "SendResult",
]
