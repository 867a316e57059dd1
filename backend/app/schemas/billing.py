"""API schemas for billing endpoints."""
from __future__ import annotations

from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field

from ..billing import CheckoutSession, ReconcileResult, Subscription, SubscriptionStatus


class CheckoutSessionRequest(BaseModel):
    plan_id: str = Field(alias="planId")

    model_config = ConfigDict(populate_by_name=True)


class CheckoutSessionResponse(BaseModel):
    plan_id: str = Field(alias="planId")
    session_id: str = Field(alias="sessionId")
    checkout_url: str = Field(alias="checkoutUrl")
    expires_at: Optional[datetime] = Field(alias="expiresAt", default=None)

    model_config = ConfigDict(populate_by_name=True)

    @classmethod
    def from_checkout(cls, session: CheckoutSession) -> "CheckoutSessionResponse":
        return cls(
            plan_id=session.plan_id,
            session_id=session.session_id,
            checkout_url=session.checkout_url,
            expires_at=session.expires_at,
        )


class SubscriptionOut(BaseModel):
    id: str
    plan_id: Optional[str] = Field(default=None, alias="planId")
    status: SubscriptionStatus
    current_period_start: datetime = Field(alias="currentPeriodStart")
    current_period_end: datetime = Field(alias="currentPeriodEnd")
    paused_until: Optional[datetime] = Field(default=None, alias="pausedUntil")
    cancel_at_period_end: bool = Field(default=False, alias="cancelAtPeriodEnd")

    model_config = ConfigDict(populate_by_name=True)

    @classmethod
    def from_subscription(cls, subscription: Subscription) -> "SubscriptionOut":
        return cls(
            id=subscription.provider_subscription_id,
            plan_id=subscription.plan_id,
            status=subscription.status,
            current_period_start=subscription.current_period_start,
            current_period_end=subscription.current_period_end,
            paused_until=subscription.pause_resumes_at,
            cancel_at_period_end=subscription.cancel_at_period_end,
        )


class SubscriptionListResponse(BaseModel):
    subscriptions: List[SubscriptionOut]

    model_config = ConfigDict(populate_by_name=True)


class SyncResultOut(BaseModel):
    subscription_id: Optional[str] = Field(default=None, alias="subscriptionId")
    outcome: str
    reason: Optional[str] = None

    model_config = ConfigDict(populate_by_name=True)

    @classmethod
    def from_result(cls, result: ReconcileResult) -> "SyncResultOut":
        return cls(
            subscription_id=result.provider_subscription_id,
            outcome=result.outcome.value,
            reason=result.reason,
        )


class SyncResponse(BaseModel):
    results: List[SyncResultOut]
    subscriptions: List[SubscriptionOut]

    model_config = ConfigDict(populate_by_name=True)


class WebhookAck(BaseModel):
    received: bool = True
    duplicate: bool = False
