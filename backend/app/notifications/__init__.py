"""Customer notifications: what to say and how it is delivered."""

from .decisions import (
    NotificationKind,
    NotificationMessage,
    fulfillment_changed,
    order_created,
    payment_failed,
    subscription_status_changed,
)
from .dispatcher import EmailNotifier, Notifier, RecordingNotifier

__all__ = [
    "EmailNotifier",
    "NotificationKind",
    "NotificationMessage",
    "Notifier",
    "RecordingNotifier",
    "fulfillment_changed",
    "order_created",
    "payment_failed",
    "subscription_status_changed",
]
