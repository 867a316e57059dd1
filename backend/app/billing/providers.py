"""Payment provider integrations: the Stripe REST API and a local sandbox."""
from __future__ import annotations

import logging
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, List, Mapping, Optional, Sequence, Tuple
from uuid import uuid4

import httpx

from ..errors import NotFound, UpstreamFailure
from .models import CheckoutLineItem

logger = logging.getLogger("billing.provider")

BILLING_INTERVAL = "week"


def encode_form(params: Mapping[str, Any], prefix: str = "") -> List[Tuple[str, str]]:
    """Flatten nested params into Stripe's ``a[b][0][c]=v`` form encoding."""

    pairs: List[Tuple[str, str]] = []
    for key, value in params.items():
        name = f"{prefix}[{key}]" if prefix else str(key)
        if value is None:
            continue
        if isinstance(value, Mapping):
            pairs.extend(encode_form(value, name))
        elif isinstance(value, (list, tuple)):
            for index, item in enumerate(value):
                item_name = f"{name}[{index}]"
                if isinstance(item, Mapping):
                    pairs.extend(encode_form(item, item_name))
                else:
                    pairs.append((item_name, _scalar(item)))
        else:
            pairs.append((name, _scalar(value)))
    return pairs


def _scalar(value: Any) -> str:
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, datetime):
        return str(int(value.timestamp()))
    return str(value)


class StripePaymentProvider:
    """Thin synchronous client for the Stripe endpoints the billing flows use.

    Every call is attempted once; transport and API errors surface as
    :class:`UpstreamFailure` so the caller decides whether to retry.
    """

    def __init__(
        self,
        *,
        secret_key: str,
        api_base: str = "https://api.stripe.com/v1",
        currency: str = "usd",
        client: Optional[httpx.Client] = None,
    ) -> None:
        if not secret_key:
            raise ValueError("STRIPE_SECRET_KEY is not configured")
        self.currency = currency
        self.client = client or httpx.Client(
            base_url=api_base,
            auth=(secret_key, ""),
            timeout=30.0,
        )

    def _request(self, method: str, path: str, params: Optional[Mapping[str, Any]] = None) -> Dict[str, Any]:
        encoded = encode_form(params or {})
        try:
            if method == "GET":
                response = self.client.request(method, path, params=encoded)
            else:
                response = self.client.request(method, path, data=dict(encoded))
            response.raise_for_status()
        except httpx.HTTPStatusError as exc:
            status_code = exc.response.status_code
            try:
                error = exc.response.json().get("error") or {}
            except ValueError:
                error = {}
            logger.warning(
                "Stripe request rejected",
                extra={"path": path, "status_code": status_code, "stripe_error": error.get("code")},
            )
            if status_code == 404:
                raise NotFound(error.get("message") or "Payment provider object not found") from exc
            raise UpstreamFailure(
                error.get("message") or "Payment provider request failed",
                detail={"providerStatus": status_code},
            ) from exc
        except httpx.HTTPError as exc:
            logger.exception("Stripe request failed", extra={"path": path})
            raise UpstreamFailure("Payment provider is unreachable") from exc
        return response.json()

    def create_checkout_session(
        self,
        *,
        plan_id: str,
        line_items: Sequence[CheckoutLineItem],
        metadata: Dict[str, str],
        success_url: str,
        cancel_url: str,
        customer_email: Optional[str] = None,
    ) -> Dict[str, Any]:
        params = {
            "mode": "subscription",
            "client_reference_id": plan_id,
            "success_url": success_url,
            "cancel_url": cancel_url,
            "customer_email": customer_email,
            "metadata": metadata,
            "subscription_data": {"metadata": metadata},
            "shipping_address_collection": {"allowed_countries": ["US"]},
            "line_items": [
                {
                    "quantity": item.quantity,
                    "price_data": {
                        "currency": self.currency,
                        "unit_amount": item.unit_amount_cents,
                        "recurring": {"interval": BILLING_INTERVAL},
                        "product_data": {"name": item.name},
                    },
                }
                for item in line_items
            ],
        }
        return self._request("POST", "/checkout/sessions", params)

    def retrieve_subscription(self, provider_subscription_id: str) -> Dict[str, Any]:
        return self._request("GET", f"/subscriptions/{provider_subscription_id}")

    def list_customer_subscriptions(self, provider_customer_id: str) -> Sequence[Dict[str, Any]]:
        payload = self._request(
            "GET",
            "/subscriptions",
            {"customer": provider_customer_id, "status": "all", "limit": 100},
        )
        data = payload.get("data")
        return list(data) if isinstance(data, list) else []

    def pause_subscription(self, provider_subscription_id: str, *, resumes_at: datetime) -> Dict[str, Any]:
        return self._request(
            "POST",
            f"/subscriptions/{provider_subscription_id}",
            {"pause_collection": {"behavior": "void", "resumes_at": resumes_at}},
        )

    def close(self) -> None:
        self.client.close()


class LocalSandboxPaymentProvider:
    """In-process provider for local development and tests."""

    def __init__(self) -> None:
        self.subscriptions: Dict[str, Dict[str, Any]] = {}
        self.sessions: Dict[str, Dict[str, Any]] = {}

    def create_checkout_session(
        self,
        *,
        plan_id: str,
        line_items: Sequence[CheckoutLineItem],
        metadata: Dict[str, str],
        success_url: str,
        cancel_url: str,
        customer_email: Optional[str] = None,
    ) -> Dict[str, Any]:
        session_id = f"cs_{uuid4().hex}"
        session = {
            "id": session_id,
            "url": f"https://billing.local/checkout/{session_id}",
            "expires_at": int((datetime.now(timezone.utc) + timedelta(hours=24)).timestamp()),
            "client_reference_id": plan_id,
            "metadata": dict(metadata),
            "amount_total": sum(item.unit_amount_cents * item.quantity for item in line_items),
            "success_url": success_url,
            "cancel_url": cancel_url,
            "customer_email": customer_email,
        }
        self.sessions[session_id] = session
        return session

    def create_subscription(self, *, customer_id: str, metadata: Dict[str, str]) -> Dict[str, Any]:
        now = datetime.now(timezone.utc)
        subscription_id = f"sub_{uuid4().hex}"
        subscription = {
            "id": subscription_id,
            "status": "active",
            "customer": customer_id,
            "current_period_start": int(now.timestamp()),
            "current_period_end": int((now + timedelta(days=7)).timestamp()),
            "pause_collection": None,
            "cancel_at_period_end": False,
            "canceled_at": None,
            "metadata": dict(metadata),
        }
        self.subscriptions[subscription_id] = subscription
        return subscription

    def retrieve_subscription(self, provider_subscription_id: str) -> Dict[str, Any]:
        subscription = self.subscriptions.get(provider_subscription_id)
        if subscription is None:
            raise NotFound("Payment provider object not found")
        return dict(subscription)

    def list_customer_subscriptions(self, provider_customer_id: str) -> Sequence[Dict[str, Any]]:
        return [dict(sub) for sub in self.subscriptions.values() if sub.get("customer") == provider_customer_id]

    def pause_subscription(self, provider_subscription_id: str, *, resumes_at: datetime) -> Dict[str, Any]:
        subscription = self.subscriptions.get(provider_subscription_id)
        if subscription is None:
            raise NotFound("Payment provider object not found")
        subscription["pause_collection"] = {"behavior": "void", "resumes_at": int(resumes_at.timestamp())}
        return dict(subscription)


__all__ = ["LocalSandboxPaymentProvider", "StripePaymentProvider", "encode_form"]
