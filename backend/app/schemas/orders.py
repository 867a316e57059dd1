"""API schemas for fulfillment orders."""
from __future__ import annotations

from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field

from ..orders import DeliveryAddress, FulfillmentStatus, Order, RecipeSnapshot


class OrderOut(BaseModel):
    id: str
    order_number: str = Field(alias="orderNumber")
    plan_id: Optional[str] = Field(default=None, alias="planId")
    subscription_id: str = Field(alias="subscriptionId")
    period_start: datetime = Field(alias="periodStart")
    period_end: datetime = Field(alias="periodEnd")
    fulfillment_status: FulfillmentStatus = Field(alias="fulfillmentStatus")
    delivery_address: Optional[DeliveryAddress] = Field(default=None, alias="deliveryAddress")
    recipes: List[RecipeSnapshot] = Field(default_factory=list)
    total_cents: int = Field(alias="totalCents")
    tracking_url: Optional[str] = Field(default=None, alias="trackingUrl")
    created_at: datetime = Field(alias="createdAt")

    model_config = ConfigDict(populate_by_name=True)

    @classmethod
    def from_order(cls, order: Order) -> "OrderOut":
        return cls(
            id=order.order_id,
            order_number=order.order_number,
            plan_id=order.plan_id,
            subscription_id=order.provider_subscription_id,
            period_start=order.period_start,
            period_end=order.period_end,
            fulfillment_status=order.fulfillment_status,
            delivery_address=order.delivery_address,
            recipes=list(order.recipes),
            total_cents=order.total_cents,
            tracking_url=order.tracking_url,
            created_at=order.created_at,
        )


class OrderListResponse(BaseModel):
    orders: List[OrderOut]

    model_config = ConfigDict(populate_by_name=True)


class FulfillmentUpdateRequest(BaseModel):
    status: FulfillmentStatus
    tracking_url: Optional[str] = Field(default=None, alias="trackingUrl")

    model_config = ConfigDict(populate_by_name=True)


class GenerateOrdersRequest(BaseModel):
    as_of: Optional[datetime] = Field(default=None, alias="asOf")

    model_config = ConfigDict(populate_by_name=True)
