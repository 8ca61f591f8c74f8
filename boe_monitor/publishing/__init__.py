"""
Publishing module for the notification topic.
"""

from .notification_publisher import (
    MessageTransport,
    NotificationMessage,
    NotificationPublisher,
    PubSubTransport,
    build_notification_message,
)

__all__ = [
    "MessageTransport",
    "NotificationMessage",
    "NotificationPublisher",
    "PubSubTransport",
    "build_notification_message",
]
