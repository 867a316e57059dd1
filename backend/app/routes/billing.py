"""API routes exposing billing functionality."""
from __future__ import annotations

import logging
from typing import Optional

from fastapi import APIRouter, Depends, Header, Request
from starlette.concurrency import run_in_threadpool

from ..billing.webhooks import parse_webhook_event, verify_signature
from ..errors import ServiceError
from ..schemas.billing import (
    SubscriptionListResponse,
    SubscriptionOut,
    SyncResponse,
    SyncResultOut,
    WebhookAck,
)
from ..services.billing import get_billing_config, get_billing_service
from .dependencies import get_current_user

logger = logging.getLogger("billing")

router = APIRouter(prefix="/api/billing", tags=["billing"])


@router.post("/webhook", response_model=WebhookAck)
async def receive_webhook(
    request: Request,
    stripe_signature: Optional[str] = Header(default=None, alias="Stripe-Signature"),
) -> WebhookAck:
    """Verify, journal and process one provider event.

    A failure while processing returns an error status so the provider
    redelivers the event.
    """

    payload = await request.body()
    config = get_billing_config()
    try:
        if config.payment_provider == "stripe" or stripe_signature:
            verify_signature(
                payload,
                stripe_signature,
                secret=config.stripe_webhook_secret or "",
                tolerance_seconds=config.webhook_tolerance_seconds,
            )
        event = parse_webhook_event(payload)
        processed = await run_in_threadpool(get_billing_service().handle_webhook, event)
    except ServiceError as exc:
        logger.warning("Webhook rejected: %s", exc.message, extra={"code": exc.code})
        raise exc.to_http_exception() from exc
    return WebhookAck(received=True, duplicate=not processed)


@router.get("/subscriptions", response_model=SubscriptionListResponse)
def list_subscriptions(*, current_user=Depends(get_current_user)) -> SubscriptionListResponse:
    service = get_billing_service()
    try:
        subscriptions = service.list_subscriptions(str(current_user.id))
    except ServiceError as exc:
        raise exc.to_http_exception() from exc
    return SubscriptionListResponse(
        subscriptions=[SubscriptionOut.from_subscription(sub) for sub in subscriptions]
    )


@router.post("/sync", response_model=SyncResponse)
def sync_subscriptions(*, current_user=Depends(get_current_user)) -> SyncResponse:
    """Pull the caller's subscriptions from the payment provider and reconcile them."""

    service = get_billing_service()
    user_id = str(current_user.id)
    try:
        results = service.sync_customer_subscriptions(user_id)
        subscriptions = service.list_subscriptions(user_id)
    except ServiceError as exc:
        raise exc.to_http_exception() from exc
    return SyncResponse(
        results=[SyncResultOut.from_result(result) for result in results],
        subscriptions=[SubscriptionOut.from_subscription(sub) for sub in subscriptions],
    )


@router.post("/subscriptions/{subscription_id}/skip-next-delivery", response_model=SubscriptionOut)
def skip_next_delivery(
    subscription_id: str,
    *,
    current_user=Depends(get_current_user),
) -> SubscriptionOut:
    service = get_billing_service()
    try:
        subscription = service.skip_next_delivery(subscription_id, user_id=str(current_user.id))
    except ServiceError as exc:
        raise exc.to_http_exception() from exc
    return SubscriptionOut.from_subscription(subscription)
