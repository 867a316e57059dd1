"""In-memory stand-ins for the Postgres repositories and the payment provider."""
from __future__ import annotations

from datetime import datetime, timedelta, timezone
from typing import Any, Dict, List, Optional, Sequence, Tuple
from uuid import uuid4

from backend.app.billing import BillingWebhookEvent, Subscription, SubscriptionStatus
from backend.app.billing.reconciler import SubscriptionReconciler, supersedes
from backend.app.billing.service import BillingRepository, BillingService, PaymentProvider
from backend.app.errors import NotFound
from backend.app.notifications import RecordingNotifier
from backend.app.orders import DeliveryAddress, FulfillmentStatus, Order
from backend.app.orders.service import OrderRepository, OrderService
from backend.app.plans import (
    MaintenancePolicy,
    Plan,
    PlanCleanupCandidate,
    PlanItem,
    PlanRepository,
    PlanService,
    PlanStatus,
)

SERVICEABLE_ZIP = "10601"
PERIOD_START = datetime(2024, 5, 6, tzinfo=timezone.utc)


def ts(value: datetime) -> int:
    return int(value.timestamp())


class InMemoryPlanRepository(PlanRepository):
    def __init__(self) -> None:
        self.plans: Dict[str, Plan] = {}
        self.live_subscriptions: set[str] = set()

    def insert_plan(self, plan: Plan) -> Plan:
        self.plans[plan.plan_id] = plan
        return plan

    def get_plan(self, plan_id: str) -> Optional[Plan]:
        return self.plans.get(plan_id)

    def get_plan_by_checkout_session(self, session_id: str) -> Optional[Plan]:
        for plan in self.plans.values():
            if plan.checkout_session_id == session_id:
                return plan
        return None

    def get_plan_by_subscription(self, provider_subscription_id: str) -> Optional[Plan]:
        for plan in self.plans.values():
            if plan.provider_subscription_id == provider_subscription_id:
                return plan
        return None

    def save_plan(self, plan: Plan) -> Plan:
        self.plans[plan.plan_id] = plan
        return plan

    def claim_plan(self, plan_id: str, *, claim_token_hash: str, user_id: str) -> Optional[Plan]:
        plan = self.plans.get(plan_id)
        if plan is None or plan.user_id is not None or plan.claim_token_hash != claim_token_hash:
            return None
        claimed = plan.model_copy(update={"user_id": user_id, "claim_token_hash": None})
        self.plans[plan_id] = claimed
        return claimed

    def list_cleanup_candidates(
        self, *, now: datetime, policy: MaintenancePolicy
    ) -> Sequence[PlanCleanupCandidate]:
        return [
            PlanCleanupCandidate(plan=plan, has_live_subscription=plan.plan_id in self.live_subscriptions)
            for plan in self.plans.values()
            if plan.status != PlanStatus.ACTIVE
        ]

    def delete_plans(self, plan_ids: Sequence[str]) -> int:
        deleted = 0
        for plan_id in plan_ids:
            if self.plans.pop(plan_id, None) is not None:
                deleted += 1
        return deleted


class InMemoryBillingRepository(BillingRepository):
    def __init__(self) -> None:
        self.subscriptions: Dict[str, Subscription] = {}
        self.webhook_events: set[str] = set()
        self.released: List[str] = []

    def get_subscription_by_provider_id(self, provider_subscription_id: str) -> Optional[Subscription]:
        return self.subscriptions.get(provider_subscription_id)

    def upsert_subscription(self, subscription: Subscription) -> Optional[Subscription]:
        current = self.subscriptions.get(subscription.provider_subscription_id)
        if current is not None and (
            current.user_id != subscription.user_id or not supersedes(subscription, current)
        ):
            return None
        self.subscriptions[subscription.provider_subscription_id] = subscription
        return subscription

    def list_subscriptions_for_user(self, user_id: str) -> Sequence[Subscription]:
        return [sub for sub in self.subscriptions.values() if sub.user_id == user_id]

    def list_due_subscriptions(self, as_of: datetime) -> Sequence[Subscription]:
        return [
            sub
            for sub in self.subscriptions.values()
            if sub.status == SubscriptionStatus.ACTIVE and sub.current_period_end <= as_of
        ]

    def record_webhook_event(self, event: BillingWebhookEvent) -> bool:
        if event.event_id in self.webhook_events:
            return False
        self.webhook_events.add(event.event_id)
        return True

    def release_webhook_event(self, event_id: str) -> None:
        self.webhook_events.discard(event_id)
        self.released.append(event_id)


class InMemoryOrderRepository(OrderRepository):
    def __init__(self) -> None:
        self.orders: Dict[str, Order] = {}

    def create_order(self, order: Order) -> Optional[Order]:
        if self.get_order_for_period(order.provider_subscription_id, order.period_start) is not None:
            return None
        self.orders[order.order_id] = order
        return order

    def get_order(self, order_id: str) -> Optional[Order]:
        return self.orders.get(order_id)

    def get_order_for_period(self, provider_subscription_id: str, period_start: datetime) -> Optional[Order]:
        for order in self.orders.values():
            if order.provider_subscription_id == provider_subscription_id and order.period_start == period_start:
                return order
        return None

    def latest_delivery_address(self, provider_subscription_id: str) -> Optional[DeliveryAddress]:
        orders = sorted(
            (o for o in self.orders.values() if o.provider_subscription_id == provider_subscription_id),
            key=lambda o: o.period_start,
            reverse=True,
        )
        for order in orders:
            if order.delivery_address is not None:
                return order.delivery_address
        return None

    def list_orders_for_user(self, user_id: str, *, limit: int = 20) -> Sequence[Order]:
        orders = sorted(
            (o for o in self.orders.values() if o.user_id == user_id),
            key=lambda o: o.period_start,
            reverse=True,
        )
        return orders[:limit]

    def update_fulfillment_status(
        self,
        order_id: str,
        *,
        expected: FulfillmentStatus,
        status: FulfillmentStatus,
        tracking_url: Optional[str],
    ) -> Optional[Order]:
        order = self.orders.get(order_id)
        if order is None or order.fulfillment_status != expected:
            return None
        updated = order.model_copy(update={"fulfillment_status": status, "tracking_url": tracking_url})
        self.orders[order_id] = updated
        return updated


def subscription_payload(
    subscription_id: str = "sub_123",
    *,
    status: str = "active",
    customer: str = "cus_1",
    period_start: datetime = PERIOD_START,
    metadata: Optional[Dict[str, str]] = None,
    pause_collection: Optional[Dict[str, Any]] = None,
) -> Dict[str, Any]:
    return {
        "id": subscription_id,
        "object": "subscription",
        "status": status,
        "customer": customer,
        "current_period_start": ts(period_start),
        "current_period_end": ts(period_start + timedelta(days=7)),
        "pause_collection": pause_collection,
        "cancel_at_period_end": False,
        "canceled_at": None,
        "metadata": dict(metadata or {}),
        "items": {"data": [{"price": {"id": "price_weekly"}}]},
    }


class FakePaymentProvider(PaymentProvider):
    def __init__(self) -> None:
        self.subscriptions: Dict[str, Dict[str, Any]] = {}
        self.sessions: List[Dict[str, Any]] = []
        self.paused: List[Tuple[str, datetime]] = []

    def create_checkout_session(
        self,
        *,
        plan_id: str,
        line_items,
        metadata: Dict[str, str],
        success_url: str,
        cancel_url: str,
        customer_email: Optional[str] = None,
    ) -> Dict[str, Any]:
        session = {
            "id": f"cs_test_{len(self.sessions) + 1}",
            "url": f"https://checkout.example.com/{plan_id}",
            "expires_at": ts(PERIOD_START + timedelta(days=1)),
            "plan_id": plan_id,
            "line_items": list(line_items),
            "metadata": dict(metadata),
            "success_url": success_url,
            "cancel_url": cancel_url,
            "customer_email": customer_email,
        }
        self.sessions.append(session)
        return session

    def retrieve_subscription(self, provider_subscription_id: str) -> Dict[str, Any]:
        payload = self.subscriptions.get(provider_subscription_id)
        if payload is None:
            raise NotFound("Payment provider object not found")
        return dict(payload)

    def list_customer_subscriptions(self, provider_customer_id: str) -> Sequence[Dict[str, Any]]:
        return [dict(p) for p in self.subscriptions.values() if p.get("customer") == provider_customer_id]

    def pause_subscription(self, provider_subscription_id: str, *, resumes_at: datetime) -> Dict[str, Any]:
        payload = self.subscriptions[provider_subscription_id]
        payload["pause_collection"] = {"behavior": "void", "resumes_at": ts(resumes_at)}
        self.paused.append((provider_subscription_id, resumes_at))
        return dict(payload)


def make_item(**overrides: Any) -> PlanItem:
    values: Dict[str, Any] = {
        "item_id": str(uuid4()),
        "dog_name": "Biscuit",
        "recipe_id": "beef-quinoa-harvest",
        "recipe_name": "Beef & Quinoa Harvest",
        "grams_per_day": 450.0,
        "weekly_price_cents": 7088,
    }
    values.update(overrides)
    return PlanItem(**values)


def make_plan(**overrides: Any) -> Plan:
    values: Dict[str, Any] = {
        "plan_id": str(uuid4()),
        "user_id": "user-1",
        "status": PlanStatus.DRAFT,
        "items": (make_item(),),
        "delivery_zipcode": SERVICEABLE_ZIP,
    }
    values.update(overrides)
    return Plan(**values)


class BillingHarness:
    """A billing service wired to in-memory collaborators."""

    def __init__(self) -> None:
        self.billing_repository = InMemoryBillingRepository()
        self.plan_repository = InMemoryPlanRepository()
        self.order_repository = InMemoryOrderRepository()
        self.provider = FakePaymentProvider()
        self.notifier = RecordingNotifier()
        self.plans = PlanService(repository=self.plan_repository)
        self.orders = OrderService(repository=self.order_repository, notifier=self.notifier)
        self.service = BillingService(
            repository=self.billing_repository,
            provider=self.provider,
            reconciler=SubscriptionReconciler(repository=self.billing_repository),
            plans=self.plans,
            orders=self.orders,
            notifier=self.notifier,
            app_base_url="https://nouripet.test",
        )

    def add_plan(self, **overrides: Any) -> Plan:
        return self.plan_repository.insert_plan(make_plan(**overrides))
