"""Application wiring for customer notifications."""
from __future__ import annotations

import logging
from functools import lru_cache
from typing import Optional

from ...mail import create_email_provider, load_email_config
from ..db import PostgresRepository
from ..notifications import EmailNotifier, Notifier

logger = logging.getLogger(__name__)


class ProfileDirectory(PostgresRepository):
    """Looks up where to reach a user."""

    def get_email(self, user_id: str) -> Optional[str]:
        with self._cursor() as cursor:
            cursor.execute("SELECT email FROM profiles WHERE id = %s", (user_id,))
            row = cursor.fetchone()
            return row["email"] if row else None


@lru_cache(maxsize=1)
def get_notifier() -> Notifier:
    config = load_email_config()
    provider = create_email_provider(config)
    logger.info("Notification delivery configured", extra=provider.describe())
    return EmailNotifier(
        provider=provider,
        resolve_email=ProfileDirectory().get_email,
        app_base_url=config.app_base_url,
        support_email=config.support_email,
    )


__all__ = ["ProfileDirectory", "get_notifier"]
