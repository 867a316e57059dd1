"""Plan state machine and the broken-plan maintenance rule.

All functions are pure: they take a plan and return the next version of it,
or raise when the transition is not allowed.
"""
from __future__ import annotations

import hashlib
import hmac
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Optional

from ..billing.models import SubscriptionStatus
from ..delivery import require_serviceable_zip
from ..errors import Forbidden, InvalidInput
from .models import BrokenPlanReason, Plan, PlanStatus, ProviderSubscriptionConfirmation

CONFIRMING_STATUSES = frozenset({SubscriptionStatus.ACTIVE, SubscriptionStatus.TRIALING})


def _invalid_transition(plan: Plan, target: PlanStatus) -> InvalidInput:
    return InvalidInput(
        f"Plan cannot move from {plan.status.value} to {target.value}",
        code="invalid_transition",
        detail={"planId": plan.plan_id, "status": plan.status.value, "target": target.value},
    )


def hash_claim_token(token: str) -> str:
    return hashlib.sha256(token.encode("utf-8")).hexdigest()


def ensure_checkout_ready(plan: Plan) -> str:
    """Validate that ``plan`` may start checkout; returns its normalized zipcode."""

    if plan.status not in {PlanStatus.DRAFT, PlanStatus.CHECKOUT_IN_PROGRESS}:
        raise _invalid_transition(plan, PlanStatus.CHECKOUT_IN_PROGRESS)
    if not plan.items:
        raise InvalidInput("Add at least one dog to the plan before checkout", detail={"planId": plan.plan_id})
    return require_serviceable_zip(plan.delivery_zipcode)


def begin_checkout(plan: Plan, *, session_id: str, now: datetime) -> Plan:
    """draft -> checkout_in_progress once a payment session exists.

    Restarting checkout replaces the session and restarts the window.
    """

    zipcode = ensure_checkout_ready(plan)
    if not session_id:
        raise InvalidInput("A checkout session id is required", detail={"planId": plan.plan_id})
    return plan.model_copy(
        update={
            "status": PlanStatus.CHECKOUT_IN_PROGRESS,
            "delivery_zipcode": zipcode,
            "checkout_session_id": session_id,
            "checkout_started_at": now,
            "updated_at": now,
        }
    )


def activate(plan: Plan, confirmation: ProviderSubscriptionConfirmation, *, now: datetime) -> Plan:
    """checkout_in_progress -> active, only on a confirmed provider subscription."""

    if plan.status == PlanStatus.ACTIVE:
        if plan.provider_subscription_id == confirmation.provider_subscription_id:
            return plan
        raise InvalidInput(
            "Plan is already active with a different subscription",
            code="invalid_transition",
            detail={"planId": plan.plan_id},
        )
    if plan.status != PlanStatus.CHECKOUT_IN_PROGRESS:
        raise _invalid_transition(plan, PlanStatus.ACTIVE)
    if confirmation.status not in CONFIRMING_STATUSES:
        raise InvalidInput(
            f"Subscription status {confirmation.status.value} does not confirm payment",
            detail={"planId": plan.plan_id, "providerSubscriptionId": confirmation.provider_subscription_id},
        )
    return plan.model_copy(
        update={
            "status": PlanStatus.ACTIVE,
            "provider_subscription_id": confirmation.provider_subscription_id,
            "activated_at": confirmation.confirmed_at,
            "updated_at": now,
        }
    )


def cancel(plan: Plan, *, now: datetime) -> Plan:
    """Abandon a plan that never reached an active subscription."""

    if plan.status == PlanStatus.CANCELLED:
        return plan
    if plan.status not in {PlanStatus.DRAFT, PlanStatus.CHECKOUT_IN_PROGRESS}:
        raise _invalid_transition(plan, PlanStatus.CANCELLED)
    return plan.model_copy(update={"status": PlanStatus.CANCELLED, "cancelled_at": now, "updated_at": now})


def mark_subscription_cancelled(plan: Plan, *, now: datetime) -> Plan:
    """active -> cancelled after the provider subscription was cancelled."""

    if plan.status == PlanStatus.CANCELLED:
        return plan
    if plan.status != PlanStatus.ACTIVE:
        raise _invalid_transition(plan, PlanStatus.CANCELLED)
    return plan.model_copy(update={"status": PlanStatus.CANCELLED, "cancelled_at": now, "updated_at": now})


def claim(plan: Plan, *, token: str, user_id: str, now: datetime) -> Plan:
    """Transfer a guest plan to ``user_id``.

    Ownership changes once: the token hash is cleared so a replayed token
    no longer matches anything.
    """

    if not user_id:
        raise Forbidden("Sign in to claim this plan")
    if plan.user_id is not None or not plan.claim_token_hash:
        raise Forbidden("This plan has already been claimed", detail={"planId": plan.plan_id})
    if not hmac.compare_digest(plan.claim_token_hash, hash_claim_token(token or "")):
        raise Forbidden("Claim token does not match this plan", detail={"planId": plan.plan_id})
    if plan.status == PlanStatus.CANCELLED:
        raise InvalidInput("Cancelled plans cannot be claimed", detail={"planId": plan.plan_id})
    return plan.model_copy(update={"user_id": user_id, "claim_token_hash": None, "updated_at": now})


@dataclass(frozen=True)
class MaintenancePolicy:
    empty_plan_grace: timedelta = timedelta(hours=72)
    checkout_window: timedelta = timedelta(hours=24)


def classify_broken_plan(
    plan: Plan,
    *,
    now: datetime,
    policy: MaintenancePolicy,
    has_live_subscription: bool = False,
) -> Optional[BrokenPlanReason]:
    """Return why ``plan`` is eligible for cleanup, or ``None`` when it is healthy."""

    if plan.status == PlanStatus.ACTIVE or has_live_subscription:
        return None
    if plan.status == PlanStatus.CANCELLED:
        return None
    if not plan.items and now - plan.created_at > policy.empty_plan_grace:
        return BrokenPlanReason.EMPTY
    if plan.status == PlanStatus.CHECKOUT_IN_PROGRESS:
        started = plan.checkout_started_at or plan.updated_at
        if now - started > policy.checkout_window:
            return BrokenPlanReason.STALE_CHECKOUT
    return None


__all__ = [
    "CONFIRMING_STATUSES",
    "MaintenancePolicy",
    "activate",
    "begin_checkout",
    "cancel",
    "claim",
    "classify_broken_plan",
    "ensure_checkout_ready",
    "hash_claim_token",
    "mark_subscription_cancelled",
]
