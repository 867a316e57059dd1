"""Persistence layer for fulfillment orders."""
from __future__ import annotations

from datetime import datetime
from typing import Optional, Sequence

import psycopg2.extras

from ..db import PostgresRepository
from .models import DeliveryAddress, FulfillmentStatus, Order, RecipeSnapshot

_ORDER_COLUMNS = """
    order_id::text AS order_id,
    order_number,
    user_id::text AS user_id,
    plan_id::text AS plan_id,
    provider_subscription_id,
    period_start,
    period_end,
    fulfillment_status,
    delivery_address,
    recipes,
    total_cents,
    tracking_url,
    created_at,
    updated_at
"""


def _row_to_order(row: dict) -> Order:
    address = row.get("delivery_address")
    return Order(
        order_id=row["order_id"],
        order_number=row["order_number"],
        user_id=row["user_id"],
        plan_id=row.get("plan_id"),
        provider_subscription_id=row["provider_subscription_id"],
        period_start=row["period_start"],
        period_end=row["period_end"],
        fulfillment_status=FulfillmentStatus(row["fulfillment_status"]),
        delivery_address=DeliveryAddress.model_validate(address) if address else None,
        recipes=tuple(RecipeSnapshot.model_validate(item) for item in row.get("recipes") or []),
        total_cents=int(row.get("total_cents") or 0),
        tracking_url=row.get("tracking_url"),
        created_at=row["created_at"],
        updated_at=row["updated_at"],
    )


class PostgresOrderRepository(PostgresRepository):
    def create_order(self, order: Order) -> Optional[Order]:
        with self._cursor() as cursor:
            cursor.execute(
                f"""
                INSERT INTO orders (
                    order_id, order_number, user_id, plan_id, provider_subscription_id,
                    period_start, period_end, fulfillment_status, delivery_address,
                    recipes, total_cents, created_at, updated_at
                )
                VALUES (%(order_id)s, %(order_number)s, %(user_id)s, %(plan_id)s,
                        %(provider_subscription_id)s, %(period_start)s, %(period_end)s,
                        %(fulfillment_status)s, %(delivery_address)s, %(recipes)s,
                        %(total_cents)s, %(created_at)s, %(updated_at)s)
                ON CONFLICT (provider_subscription_id, period_start) DO NOTHING
                RETURNING {_ORDER_COLUMNS}
                """,
                {
                    "order_id": order.order_id,
                    "order_number": order.order_number,
                    "user_id": order.user_id,
                    "plan_id": order.plan_id,
                    "provider_subscription_id": order.provider_subscription_id,
                    "period_start": order.period_start,
                    "period_end": order.period_end,
                    "fulfillment_status": order.fulfillment_status.value,
                    "delivery_address": psycopg2.extras.Json(
                        order.delivery_address.model_dump() if order.delivery_address else None
                    ),
                    "recipes": psycopg2.extras.Json(
                        [snapshot.model_dump(by_alias=True) for snapshot in order.recipes]
                    ),
                    "total_cents": order.total_cents,
                    "created_at": order.created_at,
                    "updated_at": order.updated_at,
                },
            )
            row = cursor.fetchone()
            return _row_to_order(row) if row else None

    def get_order(self, order_id: str) -> Optional[Order]:
        with self._cursor() as cursor:
            cursor.execute(f"SELECT {_ORDER_COLUMNS} FROM orders WHERE order_id = %s", (order_id,))
            row = cursor.fetchone()
            return _row_to_order(row) if row else None

    def get_order_for_period(self, provider_subscription_id: str, period_start: datetime) -> Optional[Order]:
        with self._cursor() as cursor:
            cursor.execute(
                f"""
                SELECT {_ORDER_COLUMNS}
                FROM orders
                WHERE provider_subscription_id = %s AND period_start = %s
                LIMIT 1
                """,
                (provider_subscription_id, period_start),
            )
            row = cursor.fetchone()
            return _row_to_order(row) if row else None

    def latest_delivery_address(self, provider_subscription_id: str) -> Optional[DeliveryAddress]:
        with self._cursor() as cursor:
            cursor.execute(
                """
                SELECT delivery_address
                FROM orders
                WHERE provider_subscription_id = %s AND delivery_address IS NOT NULL
                ORDER BY period_start DESC
                LIMIT 1
                """,
                (provider_subscription_id,),
            )
            row = cursor.fetchone()
            if not row or not row.get("delivery_address"):
                return None
            return DeliveryAddress.model_validate(row["delivery_address"])

    def list_orders_for_user(self, user_id: str, *, limit: int = 20) -> Sequence[Order]:
        with self._cursor() as cursor:
            cursor.execute(
                f"""
                SELECT {_ORDER_COLUMNS}
                FROM orders
                WHERE user_id = %s
                ORDER BY period_start DESC
                LIMIT %s
                """,
                (user_id, limit),
            )
            return [_row_to_order(row) for row in cursor.fetchall() or []]

    def update_fulfillment_status(
        self,
        order_id: str,
        *,
        expected: FulfillmentStatus,
        status: FulfillmentStatus,
        tracking_url: Optional[str],
    ) -> Optional[Order]:
        with self._cursor() as cursor:
            cursor.execute(
                f"""
                UPDATE orders
                SET fulfillment_status = %s, tracking_url = %s, updated_at = NOW()
                WHERE order_id = %s AND fulfillment_status = %s
                RETURNING {_ORDER_COLUMNS}
                """,
                (status.value, tracking_url, order_id, expected.value),
            )
            row = cursor.fetchone()
            return _row_to_order(row) if row else None


__all__ = ["PostgresOrderRepository"]
