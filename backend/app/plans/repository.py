"""Persistence layer for plans and their items."""
from __future__ import annotations

from datetime import datetime
from typing import Iterable, List, Optional, Sequence

import psycopg2.extras
from psycopg2.extensions import cursor as PgCursor

from ..db import PostgresRepository
from .lifecycle import MaintenancePolicy
from .models import Plan, PlanCleanupCandidate, PlanItem, PlanStatus

_PLAN_COLUMNS = """
    p.plan_id::text AS plan_id,
    p.user_id::text AS user_id,
    p.claim_token_hash,
    p.status,
    p.delivery_zipcode,
    p.checkout_session_id,
    p.provider_subscription_id,
    p.checkout_started_at,
    p.activated_at,
    p.cancelled_at,
    p.created_at,
    p.updated_at,
    COALESCE(
        (
            SELECT json_agg(row_to_json(i) ORDER BY i.position)
            FROM (
                SELECT item_id::text AS item_id, dog_id::text AS dog_id, dog_name, recipe_id,
                       recipe_name, grams_per_day, meals_per_day, quantity,
                       weekly_price_cents, position
                FROM plan_items
                WHERE plan_id = p.plan_id
            ) AS i
        ),
        '[]'::json
    ) AS items
"""


def _row_to_plan(row: dict) -> Plan:
    items = tuple(
        PlanItem(
            item_id=item["item_id"],
            dog_id=item.get("dog_id"),
            dog_name=item.get("dog_name"),
            recipe_id=item["recipe_id"],
            recipe_name=item["recipe_name"],
            grams_per_day=float(item["grams_per_day"]),
            meals_per_day=int(item.get("meals_per_day") or 2),
            quantity=int(item.get("quantity") or 1),
            weekly_price_cents=int(item["weekly_price_cents"]),
        )
        for item in row.get("items") or []
    )
    return Plan(
        plan_id=row["plan_id"],
        user_id=row.get("user_id"),
        claim_token_hash=row.get("claim_token_hash"),
        status=PlanStatus(row["status"]),
        items=items,
        delivery_zipcode=row.get("delivery_zipcode"),
        checkout_session_id=row.get("checkout_session_id"),
        provider_subscription_id=row.get("provider_subscription_id"),
        checkout_started_at=row.get("checkout_started_at"),
        activated_at=row.get("activated_at"),
        cancelled_at=row.get("cancelled_at"),
        created_at=row["created_at"],
        updated_at=row["updated_at"],
    )


class PostgresPlanRepository(PostgresRepository):
    """Concrete repository persisting plans in PostgreSQL."""

    def _fetch_plan(self, cursor: PgCursor, where: str, params: tuple) -> Optional[Plan]:
        cursor.execute(f"SELECT {_PLAN_COLUMNS} FROM plans AS p WHERE {where} LIMIT 1", params)
        row = cursor.fetchone()
        return _row_to_plan(row) if row else None

    def _replace_items(self, cursor: PgCursor, plan_id: str, items: Iterable[PlanItem]) -> None:
        cursor.execute("DELETE FROM plan_items WHERE plan_id = %s", (plan_id,))
        rows = [
            (
                item.item_id,
                plan_id,
                item.dog_id,
                item.dog_name,
                item.recipe_id,
                item.recipe_name,
                item.grams_per_day,
                item.meals_per_day,
                item.quantity,
                item.weekly_price_cents,
                position,
            )
            for position, item in enumerate(items)
        ]
        if rows:
            psycopg2.extras.execute_values(
                cursor,
                """
                INSERT INTO plan_items (
                    item_id, plan_id, dog_id, dog_name, recipe_id, recipe_name,
                    grams_per_day, meals_per_day, quantity, weekly_price_cents, position
                )
                VALUES %s
                """,
                rows,
            )

    def insert_plan(self, plan: Plan) -> Plan:
        with self._cursor() as cursor:
            cursor.execute(
                """
                INSERT INTO plans (
                    plan_id, user_id, claim_token_hash, status, delivery_zipcode,
                    created_at, updated_at
                )
                VALUES (%s, %s, %s, %s, %s, %s, %s)
                """,
                (
                    plan.plan_id,
                    plan.user_id,
                    plan.claim_token_hash,
                    plan.status.value,
                    plan.delivery_zipcode,
                    plan.created_at,
                    plan.updated_at,
                ),
            )
            self._replace_items(cursor, plan.plan_id, plan.items)
            stored = self._fetch_plan(cursor, "p.plan_id = %s", (plan.plan_id,))
            if stored is None:
                raise RuntimeError("Failed to persist plan")
            return stored

    def get_plan(self, plan_id: str) -> Optional[Plan]:
        with self._cursor() as cursor:
            return self._fetch_plan(cursor, "p.plan_id = %s", (plan_id,))

    def get_plan_by_checkout_session(self, session_id: str) -> Optional[Plan]:
        with self._cursor() as cursor:
            return self._fetch_plan(cursor, "p.checkout_session_id = %s", (session_id,))

    def get_plan_by_subscription(self, provider_subscription_id: str) -> Optional[Plan]:
        with self._cursor() as cursor:
            return self._fetch_plan(cursor, "p.provider_subscription_id = %s", (provider_subscription_id,))

    def save_plan(self, plan: Plan) -> Plan:
        with self._cursor() as cursor:
            cursor.execute(
                """
                UPDATE plans
                SET status = %(status)s,
                    delivery_zipcode = %(delivery_zipcode)s,
                    checkout_session_id = %(checkout_session_id)s,
                    provider_subscription_id = %(provider_subscription_id)s,
                    checkout_started_at = %(checkout_started_at)s,
                    activated_at = %(activated_at)s,
                    cancelled_at = %(cancelled_at)s,
                    updated_at = NOW()
                WHERE plan_id = %(plan_id)s
                """,
                {
                    "plan_id": plan.plan_id,
                    "status": plan.status.value,
                    "delivery_zipcode": plan.delivery_zipcode,
                    "checkout_session_id": plan.checkout_session_id,
                    "provider_subscription_id": plan.provider_subscription_id,
                    "checkout_started_at": plan.checkout_started_at,
                    "activated_at": plan.activated_at,
                    "cancelled_at": plan.cancelled_at,
                },
            )
            if cursor.rowcount == 0:
                raise RuntimeError("Failed to update plan")
            self._replace_items(cursor, plan.plan_id, plan.items)
            stored = self._fetch_plan(cursor, "p.plan_id = %s", (plan.plan_id,))
            if stored is None:
                raise RuntimeError("Failed to reload plan")
            return stored

    def claim_plan(self, plan_id: str, *, claim_token_hash: str, user_id: str) -> Optional[Plan]:
        with self._cursor() as cursor:
            cursor.execute(
                """
                UPDATE plans
                SET user_id = %s, claim_token_hash = NULL, updated_at = NOW()
                WHERE plan_id = %s AND claim_token_hash = %s AND user_id IS NULL
                """,
                (user_id, plan_id, claim_token_hash),
            )
            if cursor.rowcount == 0:
                return None
            return self._fetch_plan(cursor, "p.plan_id = %s", (plan_id,))

    def list_cleanup_candidates(self, *, now: datetime, policy: MaintenancePolicy) -> Sequence[PlanCleanupCandidate]:
        with self._cursor() as cursor:
            cursor.execute(
                f"""
                SELECT {_PLAN_COLUMNS},
                       EXISTS (
                           SELECT 1 FROM subscriptions AS s
                           WHERE s.plan_id = p.plan_id AND s.status <> 'cancelled'
                       ) AS has_live_subscription
                FROM plans AS p
                WHERE p.status IN ('draft', 'checkout_in_progress')
                  AND (
                      (p.created_at < %(empty_cutoff)s
                       AND NOT EXISTS (SELECT 1 FROM plan_items AS pi WHERE pi.plan_id = p.plan_id))
                      OR (p.status = 'checkout_in_progress'
                          AND COALESCE(p.checkout_started_at, p.updated_at) < %(checkout_cutoff)s)
                  )
                ORDER BY p.created_at
                """,
                {
                    "empty_cutoff": now - policy.empty_plan_grace,
                    "checkout_cutoff": now - policy.checkout_window,
                },
            )
            rows = cursor.fetchall() or []
            return [
                PlanCleanupCandidate(plan=_row_to_plan(row), has_live_subscription=bool(row["has_live_subscription"]))
                for row in rows
            ]

    def delete_plans(self, plan_ids: Sequence[str]) -> int:
        if not plan_ids:
            return 0
        with self._cursor() as cursor:
            cursor.execute(
                """
                DELETE FROM plans AS p
                WHERE p.plan_id = ANY(%s::uuid[])
                  AND p.status IN ('draft', 'checkout_in_progress')
                  AND NOT EXISTS (
                      SELECT 1 FROM subscriptions AS s
                      WHERE s.plan_id = p.plan_id AND s.status <> 'cancelled'
                  )
                """,
                (list(plan_ids),),
            )
            return cursor.rowcount


__all__ = ["PostgresPlanRepository"]
