"""API schemas for meal plans."""
from __future__ import annotations

from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field

from ..plans import Plan, PlanDogRequest, PlanItem, PlanStatus


class PlanCreateRequest(BaseModel):
    dogs: List[PlanDogRequest] = Field(default_factory=list)
    delivery_zipcode: Optional[str] = Field(default=None, alias="deliveryZipcode")

    model_config = ConfigDict(populate_by_name=True)


class PlanItemsUpdateRequest(BaseModel):
    dogs: List[PlanDogRequest]

    model_config = ConfigDict(populate_by_name=True)


class PlanClaimRequest(BaseModel):
    claim_token: str = Field(alias="claimToken", min_length=1)

    model_config = ConfigDict(populate_by_name=True)


class PlanItemOut(BaseModel):
    item_id: str = Field(alias="itemId")
    dog_id: Optional[str] = Field(default=None, alias="dogId")
    dog_name: Optional[str] = Field(default=None, alias="dogName")
    recipe_id: str = Field(alias="recipeId")
    recipe_name: str = Field(alias="recipeName")
    grams_per_day: float = Field(alias="gramsPerDay")
    meals_per_day: int = Field(alias="mealsPerDay")
    quantity: int
    weekly_price_cents: int = Field(alias="weeklyPriceCents")

    model_config = ConfigDict(populate_by_name=True)

    @classmethod
    def from_item(cls, item: PlanItem) -> "PlanItemOut":
        return cls(**item.model_dump())


class PlanOut(BaseModel):
    id: str
    status: PlanStatus
    guest: bool
    items: List[PlanItemOut]
    delivery_zipcode: Optional[str] = Field(default=None, alias="deliveryZipcode")
    weekly_total_cents: int = Field(alias="weeklyTotalCents")
    provider_subscription_id: Optional[str] = Field(default=None, alias="subscriptionId")
    checkout_started_at: Optional[datetime] = Field(default=None, alias="checkoutStartedAt")
    activated_at: Optional[datetime] = Field(default=None, alias="activatedAt")
    created_at: datetime = Field(alias="createdAt")
    updated_at: datetime = Field(alias="updatedAt")

    model_config = ConfigDict(populate_by_name=True)

    @classmethod
    def from_plan(cls, plan: Plan) -> "PlanOut":
        return cls(
            id=plan.plan_id,
            status=plan.status,
            guest=plan.is_guest,
            items=[PlanItemOut.from_item(item) for item in plan.items],
            delivery_zipcode=plan.delivery_zipcode,
            weekly_total_cents=plan.weekly_total_cents,
            provider_subscription_id=plan.provider_subscription_id,
            checkout_started_at=plan.checkout_started_at,
            activated_at=plan.activated_at,
            created_at=plan.created_at,
            updated_at=plan.updated_at,
        )


class PlanCreateResponse(BaseModel):
    plan: PlanOut
    claim_token: Optional[str] = Field(default=None, alias="claimToken")

    model_config = ConfigDict(populate_by_name=True)
