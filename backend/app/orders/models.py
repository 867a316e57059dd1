"""Fulfillment orders derived from subscription billing cycles."""
from __future__ import annotations

from datetime import datetime, timezone
from enum import Enum
from typing import Dict, FrozenSet, Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field


class FulfillmentStatus(str, Enum):
    PENDING = "pending"
    PROCESSING = "processing"
    SHIPPED = "shipped"
    DELIVERED = "delivered"
    CANCELLED = "cancelled"
    FAILED = "failed"


ALLOWED_TRANSITIONS: Dict[FulfillmentStatus, FrozenSet[FulfillmentStatus]] = {
    FulfillmentStatus.PENDING: frozenset({FulfillmentStatus.PROCESSING, FulfillmentStatus.CANCELLED}),
    FulfillmentStatus.PROCESSING: frozenset(
        {FulfillmentStatus.SHIPPED, FulfillmentStatus.CANCELLED, FulfillmentStatus.FAILED}
    ),
    FulfillmentStatus.SHIPPED: frozenset({FulfillmentStatus.DELIVERED, FulfillmentStatus.FAILED}),
    FulfillmentStatus.DELIVERED: frozenset(),
    FulfillmentStatus.CANCELLED: frozenset(),
    FulfillmentStatus.FAILED: frozenset(),
}


class DeliveryAddress(BaseModel):
    name: Optional[str] = None
    line1: Optional[str] = None
    line2: Optional[str] = None
    city: Optional[str] = None
    state: Optional[str] = None
    zipcode: str

    model_config = ConfigDict(populate_by_name=True, frozen=True)


class RecipeSnapshot(BaseModel):
    """Recipe line frozen at order time so later plan edits don't rewrite history."""

    recipe_id: str = Field(alias="recipeId")
    recipe_name: str = Field(alias="recipeName")
    dog_name: Optional[str] = Field(default=None, alias="dogName")
    grams_per_day: float = Field(alias="gramsPerDay")
    quantity: int = 1

    model_config = ConfigDict(populate_by_name=True, frozen=True)


class Order(BaseModel):
    order_id: str
    order_number: str
    user_id: str
    plan_id: Optional[str] = None
    provider_subscription_id: str
    period_start: datetime
    period_end: datetime
    fulfillment_status: FulfillmentStatus = FulfillmentStatus.PENDING
    delivery_address: Optional[DeliveryAddress] = None
    recipes: Tuple[RecipeSnapshot, ...] = ()
    total_cents: int = Field(default=0, ge=0)
    tracking_url: Optional[str] = None
    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    updated_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))

    model_config = ConfigDict(populate_by_name=True, frozen=True)


__all__ = [
    "ALLOWED_TRANSITIONS",
    "DeliveryAddress",
    "FulfillmentStatus",
    "Order",
    "RecipeSnapshot",
]
