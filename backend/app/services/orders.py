"""Application wiring for the order service."""
from __future__ import annotations

from datetime import datetime
from functools import lru_cache

from ..billing.repository import PostgresBillingRepository
from ..orders.repository import PostgresOrderRepository
from ..orders.service import OrderGenerationReport, OrderService
from ..plans.repository import PostgresPlanRepository
from .notifications import get_notifier


@lru_cache(maxsize=1)
def get_order_service() -> OrderService:
    return OrderService(repository=PostgresOrderRepository(), notifier=get_notifier())


def generate_due_orders(as_of: datetime) -> OrderGenerationReport:
    return get_order_service().generate_due_orders(
        as_of,
        subscriptions=PostgresBillingRepository(),
        plans=PostgresPlanRepository(),
    )


__all__ = ["generate_due_orders", "get_order_service"]
