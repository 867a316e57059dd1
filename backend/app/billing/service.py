"""Core service coordinating billing flows with the payment provider."""
from __future__ import annotations

import logging
import sys
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Any, Callable, Dict, List, Mapping, Optional, Protocol, Sequence, Tuple

from ..errors import Forbidden, InvalidInput, NotFound, UpstreamFailure
from ..notifications import Notifier, payment_failed, subscription_status_changed
from ..orders.models import DeliveryAddress
from ..orders.service import OrderService
from ..plans.lifecycle import CONFIRMING_STATUSES, ensure_checkout_ready
from ..plans.models import Plan, PlanStatus, ProviderSubscriptionConfirmation
from ..plans.service import PlanService
from .models import (
    BillingWebhookEvent,
    BillingWebhookEventType,
    CheckoutLineItem,
    CheckoutSession,
    Subscription,
    SubscriptionStatus,
    parse_optional_datetime,
    safe_metadata,
)
from .reconciler import ReconcileOutcome, ReconcileResult, SubscriptionReconciler

logger = logging.getLogger("billing")

SKIP_RESUME_OFFSET = timedelta(days=7)
PAID_SESSION_STATUSES = frozenset({"paid", "no_payment_required"})


class PaymentProvider(Protocol):
    """External payment processor integration."""

    def create_checkout_session(
        self,
        *,
        plan_id: str,
        line_items: Sequence[CheckoutLineItem],
        metadata: Dict[str, str],
        success_url: str,
        cancel_url: str,
        customer_email: Optional[str] = None,
    ) -> Dict[str, Any]:
        """Create a provider checkout session for a weekly subscription."""

    def retrieve_subscription(self, provider_subscription_id: str) -> Dict[str, Any]:
        ...

    def list_customer_subscriptions(self, provider_customer_id: str) -> Sequence[Dict[str, Any]]:
        ...

    def pause_subscription(self, provider_subscription_id: str, *, resumes_at: datetime) -> Dict[str, Any]:
        """Void invoices until ``resumes_at``."""


class BillingRepository(Protocol):
    """Persistence operations required by the billing service."""

    def get_subscription_by_provider_id(self, provider_subscription_id: str) -> Optional[Subscription]:
        ...

    def upsert_subscription(self, subscription: Subscription) -> Optional[Subscription]:
        ...

    def list_subscriptions_for_user(self, user_id: str) -> Sequence[Subscription]:
        ...

    def list_due_subscriptions(self, as_of: datetime) -> Sequence[Subscription]:
        ...

    def record_webhook_event(self, event: BillingWebhookEvent) -> bool:
        """Journal ``event``; ``False`` when its id was already recorded."""

    def release_webhook_event(self, event_id: str) -> None:
        """Forget a journaled event so a redelivery is processed again."""


def checkout_line_items(plan: Plan) -> List[CheckoutLineItem]:
    """One line per recipe and weekly price, with quantities merged."""

    merged: Dict[Tuple[str, int], int] = {}
    names: Dict[Tuple[str, int], str] = {}
    for item in plan.items:
        key = (item.recipe_id, item.weekly_price_cents)
        merged[key] = merged.get(key, 0) + item.quantity
        names[key] = item.recipe_name
    return [
        CheckoutLineItem(name=f"{names[key]} (weekly)", unit_amount_cents=key[1], quantity=quantity)
        for key, quantity in merged.items()
    ]


def delivery_address_from_session(session: Mapping[str, Any]) -> Optional[DeliveryAddress]:
    """Shipping address collected on the checkout page, if any."""

    collected = session.get("collected_information")
    sources = [
        session.get("shipping_details"),
        collected.get("shipping_details") if isinstance(collected, Mapping) else None,
        session.get("customer_details"),
    ]
    for source in sources:
        if not isinstance(source, Mapping):
            continue
        address = source.get("address")
        if not isinstance(address, Mapping) or not address.get("postal_code"):
            continue
        return DeliveryAddress(
            name=source.get("name"),
            line1=address.get("line1"),
            line2=address.get("line2"),
            city=address.get("city"),
            state=address.get("state"),
            zipcode=str(address["postal_code"]),
        )
    return None


def _object_id(value: object) -> Optional[str]:
    if isinstance(value, Mapping):
        value = value.get("id")
    return str(value) if value else None


def _invoice_subscription_id(invoice: Mapping[str, Any]) -> Optional[str]:
    direct = _object_id(invoice.get("subscription"))
    if direct:
        return direct
    parent = invoice.get("parent")
    if isinstance(parent, Mapping):
        details = parent.get("subscription_details")
        if isinstance(details, Mapping):
            return _object_id(details.get("subscription"))
    return None


# ``slots`` support for ``dataclass`` was added in Python 3.10.
_dataclass_kwargs = {"slots": True} if sys.version_info >= (3, 10) else {}


@dataclass(**_dataclass_kwargs)
class BillingService:
    """Coordinates checkout, webhook processing, plan activation and cycle orders."""

    repository: BillingRepository
    provider: PaymentProvider
    reconciler: SubscriptionReconciler
    plans: PlanService
    orders: OrderService
    notifier: Notifier
    app_base_url: str = "http://localhost:3000"

    def _now(self) -> datetime:
        return datetime.now(timezone.utc)

    def _fetched_at(self) -> datetime:
        """Ordering timestamp for objects we retrieve ourselves.

        Provider event times have one-second resolution, so a webhook sent in
        the same second as our fetch ties with it instead of losing.
        """

        return self._now().replace(microsecond=0)

    # ------------------------------------------------------------------
    # Checkout
    # ------------------------------------------------------------------
    def create_checkout(
        self,
        plan_id: str,
        *,
        user_id: str,
        customer_email: Optional[str] = None,
    ) -> CheckoutSession:
        plan = self.plans.get_plan_for_user(plan_id, user_id)
        ensure_checkout_ready(plan)

        base_url = self.app_base_url.rstrip("/")
        session = self.provider.create_checkout_session(
            plan_id=plan.plan_id,
            line_items=checkout_line_items(plan),
            metadata={"plan_id": plan.plan_id, "user_id": user_id},
            success_url=f"{base_url}/checkout/success?session_id={{CHECKOUT_SESSION_ID}}",
            cancel_url=f"{base_url}/plans/{plan.plan_id}?checkout=cancelled",
            customer_email=customer_email,
        )
        session_id = session.get("id")
        checkout_url = session.get("url")
        if not session_id or not checkout_url:
            raise UpstreamFailure("Payment provider returned an incomplete checkout session")

        self.plans.begin_checkout(plan.plan_id, session_id=str(session_id))
        return CheckoutSession(
            plan_id=plan.plan_id,
            session_id=str(session_id),
            checkout_url=str(checkout_url),
            expires_at=parse_optional_datetime(session.get("expires_at")),
        )

    # ------------------------------------------------------------------
    # Webhooks
    # ------------------------------------------------------------------
    def handle_webhook(self, event: BillingWebhookEvent) -> bool:
        """Process ``event`` once; returns ``False`` for a replayed delivery."""

        if not self.repository.record_webhook_event(event):
            logger.info(
                "Skipping replayed webhook",
                extra={"event_id": event.event_id, "event_type": event.event_type},
            )
            return False

        handler = self._handlers().get(event.known_type) if event.known_type else None
        if handler is None:
            logger.info(
                "Ignoring unhandled webhook type",
                extra={"event_id": event.event_id, "event_type": event.event_type},
            )
            return True

        try:
            handler(event)
        except Exception:
            logger.exception(
                "Webhook processing failed",
                extra={"event_id": event.event_id, "event_type": event.event_type},
            )
            self.repository.release_webhook_event(event.event_id)
            raise
        return True

    def _handlers(self) -> Dict[BillingWebhookEventType, Callable[[BillingWebhookEvent], None]]:
        return {
            BillingWebhookEventType.CHECKOUT_SESSION_COMPLETED: self._handle_checkout_completed,
            BillingWebhookEventType.SUBSCRIPTION_CREATED: self._handle_subscription_event,
            BillingWebhookEventType.SUBSCRIPTION_UPDATED: self._handle_subscription_event,
            BillingWebhookEventType.SUBSCRIPTION_DELETED: self._handle_subscription_event,
            BillingWebhookEventType.INVOICE_PAID: self._handle_invoice_paid,
            BillingWebhookEventType.INVOICE_PAYMENT_FAILED: self._handle_payment_failed,
        }

    def _handle_checkout_completed(self, event: BillingWebhookEvent) -> None:
        session = event.payload
        plan = self._resolve_checkout_plan(session)
        if plan is None:
            logger.warning("Checkout completed for an unknown plan", extra={"event_id": event.event_id})
            return
        if session.get("payment_status") not in PAID_SESSION_STATUSES:
            logger.info(
                "Checkout completed without payment; waiting for the subscription",
                extra={"plan_id": plan.plan_id, "payment_status": session.get("payment_status")},
            )
            return
        provider_subscription_id = _object_id(session.get("subscription"))
        if not provider_subscription_id:
            logger.warning("Checkout session has no subscription", extra={"plan_id": plan.plan_id})
            return

        result = self.reconciler.reconcile_object(
            self.provider.retrieve_subscription(provider_subscription_id),
            user_id=plan.user_id,
            plan_id=plan.plan_id,
            event_created_at=self._fetched_at(),
        )
        subscription = result.subscription
        if result.outcome == ReconcileOutcome.REJECTED or subscription is None:
            return
        activated = self._activate_plan(plan, subscription)
        if activated is not None and subscription.status == SubscriptionStatus.ACTIVE:
            self._create_cycle_order(subscription, activated, address=delivery_address_from_session(session))

    def _handle_subscription_event(self, event: BillingWebhookEvent) -> None:
        payload = event.payload
        provider_subscription_id = _object_id(payload.get("id"))
        user_id, plan = self._resolve_owner(provider_subscription_id, safe_metadata(payload.get("metadata")))
        result = self.reconciler.reconcile_object(
            payload,
            user_id=user_id,
            plan_id=plan.plan_id if plan else None,
            event_created_at=event.provider_created_at,
        )
        self._apply_side_effects(
            result,
            plan,
            allow_activation=event.known_type == BillingWebhookEventType.SUBSCRIPTION_CREATED,
        )

    def _handle_invoice_paid(self, event: BillingWebhookEvent) -> None:
        provider_subscription_id = _invoice_subscription_id(event.payload)
        if not provider_subscription_id:
            logger.info("Invoice is not tied to a subscription", extra={"event_id": event.event_id})
            return

        payload = self.provider.retrieve_subscription(provider_subscription_id)
        user_id, plan = self._resolve_owner(provider_subscription_id, safe_metadata(payload.get("metadata")))
        result = self.reconciler.reconcile_object(
            payload,
            user_id=user_id,
            plan_id=plan.plan_id if plan else None,
            event_created_at=self._fetched_at(),
        )
        plan = self._apply_side_effects(result, plan, allow_activation=True)
        subscription = result.subscription
        if result.outcome == ReconcileOutcome.REJECTED or subscription is None:
            return
        if plan is None:
            logger.warning(
                "Paid invoice for a subscription without a plan",
                extra={"provider_subscription_id": provider_subscription_id},
            )
            return
        if subscription.status == SubscriptionStatus.ACTIVE and plan.status == PlanStatus.ACTIVE:
            self._create_cycle_order(subscription, plan)

    def _handle_payment_failed(self, event: BillingWebhookEvent) -> None:
        provider_subscription_id = _invoice_subscription_id(event.payload)
        subscription = (
            self.repository.get_subscription_by_provider_id(provider_subscription_id)
            if provider_subscription_id
            else None
        )
        if subscription is None:
            logger.warning(
                "Payment failed for an unknown subscription",
                extra={"event_id": event.event_id, "provider_subscription_id": provider_subscription_id},
            )
            return
        logger.info(
            "Subscription payment failed",
            extra={"provider_subscription_id": provider_subscription_id, "user_id": subscription.user_id},
        )
        self.notifier.deliver(payment_failed(subscription))

    # ------------------------------------------------------------------
    # Customer actions
    # ------------------------------------------------------------------
    def list_subscriptions(self, user_id: str) -> Sequence[Subscription]:
        return self.repository.list_subscriptions_for_user(user_id)

    def sync_customer_subscriptions(self, user_id: str) -> List[ReconcileResult]:
        """Pull every provider subscription of the user's customers and reconcile it."""

        known = self.repository.list_subscriptions_for_user(user_id)
        customer_ids = sorted({sub.provider_customer_id for sub in known if sub.provider_customer_id})
        results: List[ReconcileResult] = []
        for customer_id in customer_ids:
            for payload in self.provider.list_customer_subscriptions(customer_id):
                plan = self._find_plan(safe_metadata(payload.get("metadata")).get("plan_id"))
                result = self.reconciler.reconcile_object(
                    payload,
                    user_id=user_id,
                    plan_id=plan.plan_id if plan else None,
                    event_created_at=self._fetched_at(),
                )
                self._apply_side_effects(result, plan, allow_activation=True)
                results.append(result)
        logger.info(
            "Customer subscriptions synced",
            extra={"user_id": user_id, "customers": len(customer_ids), "subscriptions": len(results)},
        )
        return results

    def skip_next_delivery(self, provider_subscription_id: str, *, user_id: str) -> Subscription:
        subscription = self.repository.get_subscription_by_provider_id(provider_subscription_id)
        if subscription is None:
            raise NotFound("Subscription not found", detail={"providerSubscriptionId": provider_subscription_id})
        if subscription.user_id != user_id:
            raise Forbidden(
                "Subscription belongs to another account",
                detail={"providerSubscriptionId": provider_subscription_id},
            )
        if subscription.status != SubscriptionStatus.ACTIVE:
            raise InvalidInput(
                "Only active subscriptions can skip a delivery",
                code="invalid_transition",
                detail={"status": subscription.status.value},
            )

        resumes_at = subscription.current_period_end + SKIP_RESUME_OFFSET
        payload = self.provider.pause_subscription(provider_subscription_id, resumes_at=resumes_at)
        result = self.reconciler.reconcile_object(
            payload,
            user_id=user_id,
            plan_id=subscription.plan_id,
            event_created_at=self._fetched_at(),
        )
        if result.subscription is None:
            raise UpstreamFailure(
                "Payment provider returned an unreadable subscription",
                detail={"providerSubscriptionId": provider_subscription_id},
            )
        message = subscription_status_changed(result.previous_status, result.subscription)
        if result.applied and message is not None:
            self.notifier.deliver(message)
        return result.subscription

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------
    def _find_plan(self, plan_id: Optional[str]) -> Optional[Plan]:
        if not plan_id:
            return None
        try:
            return self.plans.get_plan(plan_id)
        except NotFound:
            return None

    def _resolve_checkout_plan(self, session: Mapping[str, Any]) -> Optional[Plan]:
        metadata = safe_metadata(session.get("metadata"))
        plan = self._find_plan(metadata.get("plan_id")) or self._find_plan(session.get("client_reference_id"))
        if plan is None and session.get("id"):
            plan = self.plans.find_plan_for_session(str(session["id"]))
        return plan

    def _resolve_owner(
        self,
        provider_subscription_id: Optional[str],
        metadata: Mapping[str, str],
    ) -> Tuple[Optional[str], Optional[Plan]]:
        """Owner and plan of a provider subscription, preferring what is stored locally."""

        existing = (
            self.repository.get_subscription_by_provider_id(provider_subscription_id)
            if provider_subscription_id
            else None
        )
        plan = None
        if provider_subscription_id:
            plan = self.plans.find_plan_for_subscription(provider_subscription_id)
        if plan is None:
            plan = self._find_plan(metadata.get("plan_id") or (existing.plan_id if existing else None))
        user_id = existing.user_id if existing else (plan.user_id if plan else None)
        return user_id, plan

    def _activate_plan(self, plan: Plan, subscription: Subscription) -> Optional[Plan]:
        if subscription.status not in CONFIRMING_STATUSES:
            return None
        confirmation = ProviderSubscriptionConfirmation(
            provider_subscription_id=subscription.provider_subscription_id,
            status=subscription.status,
            confirmed_at=self._now(),
        )
        try:
            return self.plans.activate(plan.plan_id, confirmation)
        except InvalidInput as exc:
            logger.warning(
                "Confirmed subscription could not activate plan: %s",
                exc.message,
                extra={"plan_id": plan.plan_id, "provider_subscription_id": subscription.provider_subscription_id},
            )
            return None

    def _apply_side_effects(
        self,
        result: ReconcileResult,
        plan: Optional[Plan],
        *,
        allow_activation: bool,
    ) -> Optional[Plan]:
        """Move the plan along with a reconciled subscription and notify the customer."""

        subscription = result.subscription
        if not result.applied or subscription is None:
            return plan

        if plan is not None:
            if allow_activation and plan.status == PlanStatus.CHECKOUT_IN_PROGRESS:
                plan = self._activate_plan(plan, subscription) or plan
            elif subscription.status == SubscriptionStatus.CANCELLED and plan.status == PlanStatus.ACTIVE:
                plan = self.plans.mark_subscription_cancelled(plan.plan_id)

        message = subscription_status_changed(result.previous_status, subscription)
        if message is not None:
            self.notifier.deliver(message)
        return plan

    def _create_cycle_order(
        self,
        subscription: Subscription,
        plan: Plan,
        *,
        address: Optional[DeliveryAddress] = None,
    ) -> None:
        try:
            self.orders.create_cycle_order(subscription, plan, address=address)
        except InvalidInput as exc:
            logger.warning(
                "Cycle order was not created: %s",
                exc.message,
                extra={"plan_id": plan.plan_id, "provider_subscription_id": subscription.provider_subscription_id},
            )


__all__ = [
    "BillingRepository",
    "BillingService",
    "PaymentProvider",
    "checkout_line_items",
    "delivery_address_from_session",
]
