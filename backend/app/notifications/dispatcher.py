"""Delivery of notification messages through an email provider."""
from __future__ import annotations

import logging
from typing import Callable, List, Optional, Protocol

from ...mail import EmailProvider
from .decisions import NotificationMessage

logger = logging.getLogger("notifications")


class Notifier(Protocol):
    """Fire-and-forget delivery of a message to a user."""

    def deliver(self, message: NotificationMessage) -> None:
        ...


class EmailNotifier:
    """Sends messages by email; failures are logged and never reach the caller."""

    def __init__(
        self,
        *,
        provider: EmailProvider,
        resolve_email: Callable[[str], Optional[str]],
        app_base_url: str,
        support_email: Optional[str] = None,
    ) -> None:
        self.provider = provider
        self.resolve_email = resolve_email
        self.app_base_url = app_base_url.rstrip("/")
        self.support_email = support_email

    def _render(self, message: NotificationMessage) -> str:
        body = f"{message.text}\n\nManage your plan: {self.app_base_url}/account\n"
        if self.support_email:
            body += f"Questions? Write to {self.support_email}\n"
        return body

    def deliver(self, message: NotificationMessage) -> None:
        log_context = {
            "notification_kind": message.kind.value,
            "user_id": message.user_id,
            **self.provider.describe(),
        }
        try:
            recipient = self.resolve_email(message.user_id)
        except Exception:
            logger.exception("Could not resolve notification recipient", extra=log_context)
            return
        if not recipient:
            logger.warning("No email address on file for notification", extra=log_context)
            return
        try:
            self.provider.send_email(recipient, message.subject, self._render(message))
        except Exception:
            logger.exception("Notification email failed", extra=log_context)
            return
        logger.info("Notification email sent", extra=log_context)


class RecordingNotifier:
    """Keeps messages in memory; used when no delivery channel is configured."""

    def __init__(self) -> None:
        self.messages: List[NotificationMessage] = []

    def deliver(self, message: NotificationMessage) -> None:
        self.messages.append(message)


__all__ = ["EmailNotifier", "Notifier", "RecordingNotifier"]
