"""Domain models for subscription billing."""
from __future__ import annotations

from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, Mapping, Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field

from ..errors import InvalidInput

_EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)


class SubscriptionStatus(str, Enum):
    """Local subscription status, a reduced view of the provider's statuses."""

    TRIALING = "trialing"
    ACTIVE = "active"
    PAST_DUE = "past_due"
    PAUSED = "paused"
    CANCELLED = "cancelled"

    @property
    def is_live(self) -> bool:
        return self != SubscriptionStatus.CANCELLED


PROVIDER_STATUS_MAP: Dict[str, SubscriptionStatus] = {
    "trialing": SubscriptionStatus.TRIALING,
    "active": SubscriptionStatus.ACTIVE,
    "past_due": SubscriptionStatus.PAST_DUE,
    "unpaid": SubscriptionStatus.PAST_DUE,
    "incomplete": SubscriptionStatus.PAST_DUE,
    "paused": SubscriptionStatus.PAUSED,
    "canceled": SubscriptionStatus.CANCELLED,
    "cancelled": SubscriptionStatus.CANCELLED,
    "incomplete_expired": SubscriptionStatus.CANCELLED,
}


class BillingWebhookEventType(str, Enum):
    """Provider webhook event types that the application reacts to."""

    CHECKOUT_SESSION_COMPLETED = "checkout.session.completed"
    SUBSCRIPTION_CREATED = "customer.subscription.created"
    SUBSCRIPTION_UPDATED = "customer.subscription.updated"
    SUBSCRIPTION_DELETED = "customer.subscription.deleted"
    INVOICE_PAID = "invoice.paid"
    INVOICE_PAYMENT_FAILED = "invoice.payment_failed"


class PauseState(BaseModel):
    behavior: str
    resumes_at: Optional[datetime] = Field(default=None, alias="resumesAt")

    model_config = ConfigDict(populate_by_name=True, frozen=True)


class SubscriptionEvent(BaseModel):
    """Canonical subscription state as reported by the payment provider."""

    provider_subscription_id: str
    status: SubscriptionStatus
    current_period_start: datetime
    current_period_end: datetime
    pause_state: Optional[PauseState] = None
    event_created_at: Optional[datetime] = None
    provider_customer_id: Optional[str] = None
    provider_price_id: Optional[str] = None
    cancel_at_period_end: bool = False
    canceled_at: Optional[datetime] = None
    metadata: Dict[str, str] = Field(default_factory=dict)

    model_config = ConfigDict(populate_by_name=True, frozen=True)

    @classmethod
    def from_provider_object(
        cls,
        payload: Mapping[str, Any],
        *,
        event_created_at: Optional[datetime] = None,
    ) -> "SubscriptionEvent":
        """Normalize a provider subscription object.

        Period bounds are read from the subscription itself or, for newer API
        versions, from its first item. A paused collection maps to ``paused``
        whatever the raw status says.
        """

        provider_id = payload.get("id")
        if not provider_id or not isinstance(provider_id, str):
            raise InvalidInput("Subscription object is missing its id")

        raw_status = str(payload.get("status") or "").lower()
        status = PROVIDER_STATUS_MAP.get(raw_status)
        if status is None:
            raise InvalidInput(
                f"Unknown subscription status {raw_status!r}",
                detail={"providerSubscriptionId": provider_id},
            )

        first_item = _first_item(payload)
        period_start = _coerce_datetime(
            payload.get("current_period_start") or first_item.get("current_period_start"), provider_id
        )
        period_end = _coerce_datetime(
            payload.get("current_period_end") or first_item.get("current_period_end"), provider_id
        )
        if period_start is None or period_end is None:
            raise InvalidInput(
                "Subscription object is missing its billing period",
                detail={"providerSubscriptionId": provider_id},
            )
        if period_end < period_start:
            raise InvalidInput(
                "Subscription period ends before it starts",
                detail={"providerSubscriptionId": provider_id},
            )

        pause_state = None
        pause_payload = payload.get("pause_collection")
        if isinstance(pause_payload, Mapping) and pause_payload.get("behavior"):
            pause_state = PauseState(
                behavior=str(pause_payload["behavior"]),
                resumes_at=_coerce_datetime(pause_payload.get("resumes_at"), provider_id),
            )
            if status == SubscriptionStatus.ACTIVE:
                status = SubscriptionStatus.PAUSED

        price = first_item.get("price")
        price_id = price.get("id") if isinstance(price, Mapping) else None
        customer = payload.get("customer")
        if isinstance(customer, Mapping):
            customer = customer.get("id")

        return cls(
            provider_subscription_id=provider_id,
            status=status,
            current_period_start=period_start,
            current_period_end=period_end,
            pause_state=pause_state,
            event_created_at=event_created_at,
            provider_customer_id=str(customer) if customer else None,
            provider_price_id=str(price_id) if price_id else None,
            cancel_at_period_end=bool(payload.get("cancel_at_period_end", False)),
            canceled_at=_coerce_datetime(payload.get("canceled_at"), provider_id),
            metadata=safe_metadata(payload.get("metadata")),
        )


class Subscription(BaseModel):
    """Local mirror of a provider subscription, written only by the reconciler."""

    subscription_id: str
    provider_subscription_id: str
    user_id: str
    plan_id: Optional[str] = None
    provider_customer_id: Optional[str] = None
    provider_price_id: Optional[str] = None
    status: SubscriptionStatus
    current_period_start: datetime
    current_period_end: datetime
    pause_behavior: Optional[str] = None
    pause_resumes_at: Optional[datetime] = None
    cancel_at_period_end: bool = False
    canceled_at: Optional[datetime] = None
    provider_event_at: Optional[datetime] = None
    metadata: Dict[str, str] = Field(default_factory=dict)
    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    updated_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))

    model_config = ConfigDict(populate_by_name=True, frozen=True)

    @property
    def ordering_key(self) -> Tuple[datetime, datetime]:
        """Provider-side position of this state; later keys win."""

        return (self.current_period_start, self.provider_event_at or _EPOCH)

    @property
    def pause_state(self) -> Optional[PauseState]:
        if not self.pause_behavior:
            return None
        return PauseState(behavior=self.pause_behavior, resumes_at=self.pause_resumes_at)


class BillingWebhookEvent(BaseModel):
    """Webhook delivery stored for idempotency tracking."""

    event_id: str
    event_type: str
    payload: Dict[str, Any]
    provider_created_at: Optional[datetime] = None
    received_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))

    model_config = ConfigDict(populate_by_name=True, frozen=True)

    @property
    def known_type(self) -> Optional[BillingWebhookEventType]:
        try:
            return BillingWebhookEventType(self.event_type)
        except ValueError:
            return None


class CheckoutLineItem(BaseModel):
    name: str
    unit_amount_cents: int = Field(ge=0)
    quantity: int = Field(default=1, ge=1)

    model_config = ConfigDict(populate_by_name=True, frozen=True)


class CheckoutSession(BaseModel):
    """Return value of a checkout session creation request."""

    plan_id: str
    session_id: str
    checkout_url: str
    expires_at: Optional[datetime] = None

    model_config = ConfigDict(populate_by_name=True, frozen=True)


def _first_item(payload: Mapping[str, Any]) -> Mapping[str, Any]:
    items = payload.get("items")
    if isinstance(items, Mapping):
        data = items.get("data")
        if isinstance(data, list) and data and isinstance(data[0], Mapping):
            return data[0]
    return {}


def _coerce_datetime(value: object, provider_id: str) -> Optional[datetime]:
    try:
        return parse_optional_datetime(value)
    except (TypeError, ValueError) as exc:
        raise InvalidInput(
            f"Unreadable timestamp {value!r}",
            detail={"providerSubscriptionId": provider_id},
        ) from exc


def parse_optional_datetime(value: object) -> Optional[datetime]:
    """Accept provider unix timestamps, ISO strings and datetimes."""

    if value is None or value == "":
        return None
    if isinstance(value, bool):
        raise TypeError("Unsupported datetime value")
    if isinstance(value, datetime):
        return value if value.tzinfo else value.replace(tzinfo=timezone.utc)
    if isinstance(value, (int, float)):
        return datetime.fromtimestamp(value, tz=timezone.utc)
    if isinstance(value, str):
        parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
        return parsed if parsed.tzinfo else parsed.replace(tzinfo=timezone.utc)
    raise TypeError("Unsupported datetime value")


def safe_metadata(value: object) -> Dict[str, str]:
    if isinstance(value, Mapping):
        return {str(k): str(v) for k, v in value.items() if v is not None}
    return {}


__all__ = [
    "BillingWebhookEvent",
    "BillingWebhookEventType",
    "CheckoutLineItem",
    "CheckoutSession",
    "PROVIDER_STATUS_MAP",
    "PauseState",
    "Subscription",
    "SubscriptionEvent",
    "SubscriptionStatus",
    "parse_optional_datetime",
    "safe_metadata",
]
