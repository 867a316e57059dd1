"""Domain models for customer meal plans."""
from __future__ import annotations

from datetime import datetime, timezone
from enum import Enum
from typing import Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field

from ..billing.models import SubscriptionStatus


class PlanStatus(str, Enum):
    DRAFT = "draft"
    CHECKOUT_IN_PROGRESS = "checkout_in_progress"
    ACTIVE = "active"
    CANCELLED = "cancelled"


class PlanItem(BaseModel):
    """One dog's recipe in a plan, priced when it was added."""

    item_id: str
    dog_id: Optional[str] = None
    dog_name: Optional[str] = None
    recipe_id: str
    recipe_name: str
    grams_per_day: float = Field(gt=0)
    meals_per_day: int = Field(default=2, ge=1)
    quantity: int = Field(default=1, ge=1)
    weekly_price_cents: int = Field(ge=0)

    model_config = ConfigDict(populate_by_name=True, frozen=True)


class Plan(BaseModel):
    plan_id: str
    user_id: Optional[str] = None
    claim_token_hash: Optional[str] = None
    status: PlanStatus = PlanStatus.DRAFT
    items: Tuple[PlanItem, ...] = ()
    delivery_zipcode: Optional[str] = None
    checkout_session_id: Optional[str] = None
    provider_subscription_id: Optional[str] = None
    checkout_started_at: Optional[datetime] = None
    activated_at: Optional[datetime] = None
    cancelled_at: Optional[datetime] = None
    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    updated_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))

    model_config = ConfigDict(populate_by_name=True, frozen=True)

    @property
    def is_guest(self) -> bool:
        return self.user_id is None

    @property
    def weekly_total_cents(self) -> int:
        return sum(item.weekly_price_cents * item.quantity for item in self.items)


class ProviderSubscriptionConfirmation(BaseModel):
    """Proof from the payment provider that a subscription exists for a plan.

    Only a reconciled provider subscription can produce one; a customer
    reaching the checkout success page is not a confirmation.
    """

    provider_subscription_id: str
    status: SubscriptionStatus
    confirmed_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))

    model_config = ConfigDict(populate_by_name=True, frozen=True)


class BrokenPlanReason(str, Enum):
    EMPTY = "empty"
    STALE_CHECKOUT = "stale_checkout"


class PlanCleanupCandidate(BaseModel):
    plan: Plan
    has_live_subscription: bool = False

    model_config = ConfigDict(populate_by_name=True, frozen=True)


class PlanCleanupReport(BaseModel):
    checked: int = 0
    flagged: Tuple[str, ...] = ()
    deleted: int = 0
    dry_run: bool = False

    model_config = ConfigDict(populate_by_name=True, frozen=True)


__all__ = [
    "BrokenPlanReason",
    "Plan",
    "PlanCleanupCandidate",
    "PlanCleanupReport",
    "PlanItem",
    "PlanStatus",
    "ProviderSubscriptionConfirmation",
]
