"""Persistence layer for subscriptions and webhook deliveries."""
from __future__ import annotations

from datetime import datetime
from typing import Optional, Sequence

import psycopg2.extras

from ..db import PostgresRepository
from .models import BillingWebhookEvent, Subscription, SubscriptionStatus

_SUBSCRIPTION_COLUMNS = """
    subscription_id::text AS subscription_id,
    provider_subscription_id,
    user_id::text AS user_id,
    plan_id::text AS plan_id,
    provider_customer_id,
    provider_price_id,
    status,
    current_period_start,
    current_period_end,
    pause_behavior,
    pause_resumes_at,
    cancel_at_period_end,
    canceled_at,
    provider_event_at,
    metadata,
    created_at,
    updated_at
"""


def _row_to_subscription(row: dict) -> Subscription:
    return Subscription(
        subscription_id=row["subscription_id"],
        provider_subscription_id=row["provider_subscription_id"],
        user_id=row["user_id"],
        plan_id=row.get("plan_id"),
        provider_customer_id=row.get("provider_customer_id"),
        provider_price_id=row.get("provider_price_id"),
        status=SubscriptionStatus(row["status"]),
        current_period_start=row["current_period_start"],
        current_period_end=row["current_period_end"],
        pause_behavior=row.get("pause_behavior"),
        pause_resumes_at=row.get("pause_resumes_at"),
        cancel_at_period_end=bool(row.get("cancel_at_period_end")),
        canceled_at=row.get("canceled_at"),
        provider_event_at=row.get("provider_event_at"),
        metadata=row.get("metadata") or {},
        created_at=row["created_at"],
        updated_at=row["updated_at"],
    )


class PostgresBillingRepository(PostgresRepository):
    """Concrete repository persisting billing state in PostgreSQL."""

    def get_subscription_by_provider_id(self, provider_subscription_id: str) -> Optional[Subscription]:
        with self._cursor() as cursor:
            cursor.execute(
                f"""
                SELECT {_SUBSCRIPTION_COLUMNS}
                FROM subscriptions
                WHERE provider_subscription_id = %s
                LIMIT 1
                """,
                (provider_subscription_id,),
            )
            row = cursor.fetchone()
            return _row_to_subscription(row) if row else None

    def upsert_subscription(self, subscription: Subscription) -> Optional[Subscription]:
        """Single conditional upsert keyed by the provider subscription id.

        An existing row is only replaced for the same user and when its
        ``(current_period_start, provider_event_at)`` is not newer than the
        incoming one. A refused update returns no row.
        """

        with self._cursor() as cursor:
            cursor.execute(
                f"""
                INSERT INTO subscriptions (
                    subscription_id,
                    provider_subscription_id,
                    user_id,
                    plan_id,
                    provider_customer_id,
                    provider_price_id,
                    status,
                    current_period_start,
                    current_period_end,
                    pause_behavior,
                    pause_resumes_at,
                    cancel_at_period_end,
                    canceled_at,
                    provider_event_at,
                    metadata
                )
                VALUES (%(subscription_id)s, %(provider_subscription_id)s, %(user_id)s, %(plan_id)s,
                        %(provider_customer_id)s, %(provider_price_id)s, %(status)s,
                        %(current_period_start)s, %(current_period_end)s, %(pause_behavior)s,
                        %(pause_resumes_at)s, %(cancel_at_period_end)s, %(canceled_at)s,
                        %(provider_event_at)s, %(metadata)s)
                ON CONFLICT (provider_subscription_id) DO UPDATE SET
                    plan_id = COALESCE(EXCLUDED.plan_id, subscriptions.plan_id),
                    provider_customer_id = EXCLUDED.provider_customer_id,
                    provider_price_id = EXCLUDED.provider_price_id,
                    status = EXCLUDED.status,
                    current_period_start = EXCLUDED.current_period_start,
                    current_period_end = EXCLUDED.current_period_end,
                    pause_behavior = EXCLUDED.pause_behavior,
                    pause_resumes_at = EXCLUDED.pause_resumes_at,
                    cancel_at_period_end = EXCLUDED.cancel_at_period_end,
                    canceled_at = EXCLUDED.canceled_at,
                    provider_event_at = EXCLUDED.provider_event_at,
                    metadata = EXCLUDED.metadata,
                    updated_at = NOW()
                WHERE subscriptions.user_id = EXCLUDED.user_id
                  AND (subscriptions.current_period_start,
                       COALESCE(subscriptions.provider_event_at, 'epoch'::timestamptz))
                      <= (EXCLUDED.current_period_start,
                          COALESCE(EXCLUDED.provider_event_at, 'epoch'::timestamptz))
                  AND NOT (subscriptions.status = 'cancelled'
                           AND EXCLUDED.status <> 'cancelled'
                           AND EXCLUDED.current_period_start <= subscriptions.current_period_start)
                RETURNING {_SUBSCRIPTION_COLUMNS}
                """,
                {
                    "subscription_id": subscription.subscription_id,
                    "provider_subscription_id": subscription.provider_subscription_id,
                    "user_id": subscription.user_id,
                    "plan_id": subscription.plan_id,
                    "provider_customer_id": subscription.provider_customer_id,
                    "provider_price_id": subscription.provider_price_id,
                    "status": subscription.status.value,
                    "current_period_start": subscription.current_period_start,
                    "current_period_end": subscription.current_period_end,
                    "pause_behavior": subscription.pause_behavior,
                    "pause_resumes_at": subscription.pause_resumes_at,
                    "cancel_at_period_end": subscription.cancel_at_period_end,
                    "canceled_at": subscription.canceled_at,
                    "provider_event_at": subscription.provider_event_at,
                    "metadata": psycopg2.extras.Json(subscription.metadata),
                },
            )
            row = cursor.fetchone()
            return _row_to_subscription(row) if row else None

    def list_subscriptions_for_user(self, user_id: str) -> Sequence[Subscription]:
        with self._cursor() as cursor:
            cursor.execute(
                f"""
                SELECT {_SUBSCRIPTION_COLUMNS}
                FROM subscriptions
                WHERE user_id = %s
                ORDER BY created_at DESC
                """,
                (user_id,),
            )
            return [_row_to_subscription(row) for row in cursor.fetchall() or []]

    def list_due_subscriptions(self, as_of: datetime) -> Sequence[Subscription]:
        with self._cursor() as cursor:
            cursor.execute(
                f"""
                SELECT {_SUBSCRIPTION_COLUMNS}
                FROM subscriptions
                WHERE status = %s AND current_period_end <= %s
                ORDER BY current_period_end
                """,
                (SubscriptionStatus.ACTIVE.value, as_of),
            )
            return [_row_to_subscription(row) for row in cursor.fetchall() or []]

    def record_webhook_event(self, event: BillingWebhookEvent) -> bool:
        with self._cursor() as cursor:
            cursor.execute(
                """
                INSERT INTO billing_webhook_events (
                    event_id,
                    event_type,
                    payload,
                    provider_created_at,
                    received_at
                )
                VALUES (%s, %s, %s, %s, %s)
                ON CONFLICT (event_id) DO NOTHING
                """,
                (
                    event.event_id,
                    event.event_type,
                    psycopg2.extras.Json(event.payload),
                    event.provider_created_at,
                    event.received_at,
                ),
            )
            return cursor.rowcount > 0

    def release_webhook_event(self, event_id: str) -> None:
        """Forget a delivery whose processing failed so a redelivery is handled."""

        with self._cursor() as cursor:
            cursor.execute("DELETE FROM billing_webhook_events WHERE event_id = %s", (event_id,))


__all__ = ["PostgresBillingRepository"]
