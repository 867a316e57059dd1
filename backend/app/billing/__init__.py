"""Billing domain package: subscription models and provider state reconciliation."""

from .models import (
    BillingWebhookEvent,
    BillingWebhookEventType,
    CheckoutLineItem,
    CheckoutSession,
    PauseState,
    Subscription,
    SubscriptionEvent,
    SubscriptionStatus,
)
from .reconciler import (
    ReconcileOutcome,
    ReconcileResult,
    SubscriptionReconciler,
    SubscriptionStore,
    apply_subscription_event,
)

__all__ = [
    "BillingWebhookEvent",
    "BillingWebhookEventType",
    "CheckoutLineItem",
    "CheckoutSession",
    "PauseState",
    "ReconcileOutcome",
    "ReconcileResult",
    "Subscription",
    "SubscriptionEvent",
    "SubscriptionReconciler",
    "SubscriptionStatus",
    "SubscriptionStore",
    "apply_subscription_event",
]
