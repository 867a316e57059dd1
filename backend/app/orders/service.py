"""Creation and fulfillment tracking of subscription orders."""
from __future__ import annotations

import logging
import secrets
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import List, Optional, Protocol, Sequence
from uuid import uuid4

from pydantic import BaseModel, ConfigDict

from ..billing.models import Subscription, SubscriptionStatus
from ..delivery import require_serviceable_zip
from ..errors import InvalidInput, NotFound
from ..notifications import Notifier, fulfillment_changed, order_created
from ..plans.models import Plan
from .models import ALLOWED_TRANSITIONS, DeliveryAddress, FulfillmentStatus, Order, RecipeSnapshot

logger = logging.getLogger("orders")


class OrderRepository(Protocol):
    def create_order(self, order: Order) -> Optional[Order]:
        """Insert unless an order exists for the same subscription period; ``None`` if it does."""

    def get_order(self, order_id: str) -> Optional[Order]:
        ...

    def get_order_for_period(self, provider_subscription_id: str, period_start: datetime) -> Optional[Order]:
        ...

    def latest_delivery_address(self, provider_subscription_id: str) -> Optional[DeliveryAddress]:
        ...

    def list_orders_for_user(self, user_id: str, *, limit: int = 20) -> Sequence[Order]:
        ...

    def update_fulfillment_status(
        self,
        order_id: str,
        *,
        expected: FulfillmentStatus,
        status: FulfillmentStatus,
        tracking_url: Optional[str],
    ) -> Optional[Order]:
        """Compare-and-set on the current fulfillment status."""


class DueSubscriptionSource(Protocol):
    def list_due_subscriptions(self, as_of: datetime) -> Sequence[Subscription]:
        ...


class PlanLookup(Protocol):
    def get_plan(self, plan_id: str) -> Optional[Plan]:
        ...


class OrderGenerationReport(BaseModel):
    considered: int = 0
    created: List[str] = []
    skipped: int = 0

    model_config = ConfigDict(populate_by_name=True)


def build_order_number(now: datetime) -> str:
    return f"ORD-{int(now.timestamp() * 1000)}-{secrets.token_hex(3).upper()}"


def ensure_transition(order: Order, status: FulfillmentStatus) -> None:
    if status not in ALLOWED_TRANSITIONS[order.fulfillment_status]:
        raise InvalidInput(
            f"Order cannot move from {order.fulfillment_status.value} to {status.value}",
            code="invalid_transition",
            detail={"orderId": order.order_id},
        )


@dataclass
class OrderService:
    repository: OrderRepository
    notifier: Notifier

    def _now(self) -> datetime:
        return datetime.now(timezone.utc)

    def create_cycle_order(
        self,
        subscription: Subscription,
        plan: Plan,
        *,
        address: Optional[DeliveryAddress] = None,
    ) -> Order:
        """Order for the subscription's current period; returns the existing one on replay."""

        existing = self.repository.get_order_for_period(
            subscription.provider_subscription_id, subscription.current_period_start
        )
        if existing is not None:
            return existing
        if not plan.items:
            raise InvalidInput("Plan has no recipes to ship", detail={"planId": plan.plan_id})

        if address is None:
            address = self.repository.latest_delivery_address(subscription.provider_subscription_id)
        if address is None:
            address = DeliveryAddress(zipcode=plan.delivery_zipcode or "")
        zipcode = require_serviceable_zip(address.zipcode)
        address = address.model_copy(update={"zipcode": zipcode})

        now = self._now()
        order = Order(
            order_id=str(uuid4()),
            order_number=build_order_number(now),
            user_id=subscription.user_id,
            plan_id=plan.plan_id,
            provider_subscription_id=subscription.provider_subscription_id,
            period_start=subscription.current_period_start,
            period_end=subscription.current_period_end,
            delivery_address=address,
            recipes=tuple(
                RecipeSnapshot(
                    recipe_id=item.recipe_id,
                    recipe_name=item.recipe_name,
                    dog_name=item.dog_name,
                    grams_per_day=item.grams_per_day,
                    quantity=item.quantity,
                )
                for item in plan.items
            ),
            total_cents=plan.weekly_total_cents,
            created_at=now,
            updated_at=now,
        )
        stored = self.repository.create_order(order)
        if stored is None:
            # Lost a race with another delivery of the same cycle.
            concurrent = self.repository.get_order_for_period(
                subscription.provider_subscription_id, subscription.current_period_start
            )
            if concurrent is None:
                raise RuntimeError("Order insert was refused but no order exists for the period")
            return concurrent

        logger.info(
            "Cycle order created",
            extra={
                "order_id": stored.order_id,
                "provider_subscription_id": stored.provider_subscription_id,
                "period_start": stored.period_start.isoformat(),
            },
        )
        self.notifier.deliver(order_created(stored))
        return stored

    def get_order(self, order_id: str) -> Order:
        order = self.repository.get_order(order_id)
        if order is None:
            raise NotFound("Order not found", detail={"orderId": order_id})
        return order

    def list_orders(self, user_id: str, *, limit: int = 20) -> Sequence[Order]:
        return self.repository.list_orders_for_user(user_id, limit=limit)

    def advance_fulfillment(
        self,
        order_id: str,
        status: FulfillmentStatus,
        *,
        tracking_url: Optional[str] = None,
    ) -> Order:
        order = self.get_order(order_id)
        if order.fulfillment_status == status:
            return order
        ensure_transition(order, status)
        updated = self.repository.update_fulfillment_status(
            order_id,
            expected=order.fulfillment_status,
            status=status,
            tracking_url=tracking_url or order.tracking_url,
        )
        if updated is None:
            raise InvalidInput(
                "Order status changed concurrently; reload and retry",
                code="invalid_transition",
                detail={"orderId": order_id},
            )
        logger.info(
            "Order fulfillment updated",
            extra={"order_id": order_id, "from": order.fulfillment_status.value, "to": status.value},
        )
        message = fulfillment_changed(order.fulfillment_status, updated)
        if message is not None:
            self.notifier.deliver(message)
        return updated

    def generate_due_orders(
        self,
        as_of: datetime,
        *,
        subscriptions: DueSubscriptionSource,
        plans: PlanLookup,
    ) -> OrderGenerationReport:
        """Create missing cycle orders for active subscriptions delivering by ``as_of``."""

        due = subscriptions.list_due_subscriptions(as_of)
        created: List[str] = []
        skipped = 0
        for subscription in due:
            if subscription.status != SubscriptionStatus.ACTIVE or not subscription.plan_id:
                skipped += 1
                continue
            plan = plans.get_plan(subscription.plan_id)
            if plan is None:
                logger.warning(
                    "Skipping order generation: plan missing",
                    extra={"provider_subscription_id": subscription.provider_subscription_id},
                )
                skipped += 1
                continue
            existing = self.repository.get_order_for_period(
                subscription.provider_subscription_id, subscription.current_period_start
            )
            if existing is not None:
                skipped += 1
                continue
            try:
                order = self.create_cycle_order(subscription, plan)
            except InvalidInput as exc:
                logger.warning(
                    "Skipping order generation: %s",
                    exc.message,
                    extra={"provider_subscription_id": subscription.provider_subscription_id},
                )
                skipped += 1
                continue
            created.append(order.order_id)
        return OrderGenerationReport(considered=len(due), created=created, skipped=skipped)


__all__ = [
    "DueSubscriptionSource",
    "OrderGenerationReport",
    "OrderRepository",
    "OrderService",
    "PlanLookup",
    "build_order_number",
    "ensure_transition",
]
