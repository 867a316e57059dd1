"""Decide whether a customer should hear about a billing or fulfillment change, and what."""
from __future__ import annotations

from enum import Enum
from typing import Dict, Optional

from pydantic import BaseModel, ConfigDict, Field

from ..billing.models import Subscription, SubscriptionStatus
from ..orders.models import FulfillmentStatus, Order


class NotificationKind(str, Enum):
    PAYMENT_ISSUE = "payment_issue"
    SUBSCRIPTION_CANCELLED = "subscription_cancelled"
    DELIVERY_SKIPPED = "delivery_skipped"
    ORDER_CONFIRMED = "order_confirmed"
    ORDER_SHIPPED = "order_shipped"
    ORDER_DELIVERED = "order_delivered"


class NotificationMessage(BaseModel):
    kind: NotificationKind
    user_id: str
    subject: str
    text: str
    metadata: Dict[str, str] = Field(default_factory=dict)

    model_config = ConfigDict(populate_by_name=True, frozen=True)


def _date(value) -> str:
    return value.strftime("%B %d, %Y").replace(" 0", " ")


def payment_failed(subscription: Subscription) -> NotificationMessage:
    return NotificationMessage(
        kind=NotificationKind.PAYMENT_ISSUE,
        user_id=subscription.user_id,
        subject="There was a problem with your NouriPet payment",
        text=(
            "We couldn't process the latest payment for your meal plan. "
            "Please update your payment method so your next delivery isn't delayed."
        ),
        metadata={"provider_subscription_id": subscription.provider_subscription_id},
    )


def subscription_status_changed(
    previous: Optional[SubscriptionStatus],
    subscription: Subscription,
) -> Optional[NotificationMessage]:
    """Message for a reconciled status change, or ``None`` when nothing is worth saying."""

    current = subscription.status
    if previous == current:
        return None
    metadata = {"provider_subscription_id": subscription.provider_subscription_id}

    if current == SubscriptionStatus.PAST_DUE:
        return payment_failed(subscription)
    if current == SubscriptionStatus.CANCELLED and previous is not None:
        return NotificationMessage(
            kind=NotificationKind.SUBSCRIPTION_CANCELLED,
            user_id=subscription.user_id,
            subject="Your NouriPet subscription has been cancelled",
            text="Your subscription is cancelled and no further deliveries are scheduled.",
            metadata=metadata,
        )
    if current == SubscriptionStatus.PAUSED and previous == SubscriptionStatus.ACTIVE:
        resumes = subscription.pause_resumes_at
        text = "Your next delivery has been skipped."
        if resumes is not None:
            text += f" Deliveries resume on {_date(resumes)}."
        return NotificationMessage(
            kind=NotificationKind.DELIVERY_SKIPPED,
            user_id=subscription.user_id,
            subject="Your next NouriPet delivery is skipped",
            text=text,
            metadata=metadata,
        )
    return None


def order_created(order: Order) -> NotificationMessage:
    dogs = sorted({snapshot.dog_name for snapshot in order.recipes if snapshot.dog_name})
    for_whom = f" for {', '.join(dogs)}" if dogs else ""
    return NotificationMessage(
        kind=NotificationKind.ORDER_CONFIRMED,
        user_id=order.user_id,
        subject=f"Order {order.order_number} confirmed",
        text=f"We're preparing your fresh meals{for_whom}. Delivery is planned for {_date(order.period_end)}.",
        metadata={"order_id": order.order_id},
    )


def fulfillment_changed(previous: FulfillmentStatus, order: Order) -> Optional[NotificationMessage]:
    if previous == order.fulfillment_status:
        return None
    if order.fulfillment_status == FulfillmentStatus.SHIPPED:
        text = "Your meals are on the way."
        if order.tracking_url:
            text += f" Track your delivery: {order.tracking_url}"
        return NotificationMessage(
            kind=NotificationKind.ORDER_SHIPPED,
            user_id=order.user_id,
            subject=f"Order {order.order_number} is out for delivery",
            text=text,
            metadata={"order_id": order.order_id},
        )
    if order.fulfillment_status == FulfillmentStatus.DELIVERED:
        return NotificationMessage(
            kind=NotificationKind.ORDER_DELIVERED,
            user_id=order.user_id,
            subject=f"Order {order.order_number} was delivered",
            text="Your meals have arrived. Please refrigerate them right away.",
            metadata={"order_id": order.order_id},
        )
    return None


__all__ = [
    "NotificationKind",
    "NotificationMessage",
    "fulfillment_changed",
    "order_created",
    "payment_failed",
    "subscription_status_changed",
]
