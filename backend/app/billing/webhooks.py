"""Verification and parsing of payment provider webhook deliveries."""
from __future__ import annotations

import hashlib
import hmac
import json
import time
from typing import Dict, List, Optional

from ..errors import InvalidInput, Unauthorized
from .models import BillingWebhookEvent, parse_optional_datetime

SIGNATURE_SCHEME = "v1"
DEFAULT_TOLERANCE_SECONDS = 300


def compute_signature(payload: bytes, *, secret: str, timestamp: int) -> str:
    signed = f"{timestamp}.".encode("utf-8") + payload
    return hmac.new(secret.encode("utf-8"), signed, hashlib.sha256).hexdigest()


def _parse_signature_header(header: str) -> Dict[str, List[str]]:
    parts: Dict[str, List[str]] = {}
    for item in header.split(","):
        key, sep, value = item.strip().partition("=")
        if sep and value:
            parts.setdefault(key, []).append(value)
    return parts


def verify_signature(
    payload: bytes,
    header: Optional[str],
    *,
    secret: str,
    tolerance_seconds: int = DEFAULT_TOLERANCE_SECONDS,
    now: Optional[float] = None,
) -> None:
    """Check a ``Stripe-Signature`` header (``t=<unix>,v1=<hex>``) against ``payload``.

    Any of the ``v1`` signatures may match; the timestamp must be within
    ``tolerance_seconds`` of ``now``.
    """

    if not secret:
        raise Unauthorized("Webhook signing secret is not configured")
    if not header:
        raise Unauthorized("Missing webhook signature")

    parts = _parse_signature_header(header)
    try:
        timestamp = int(parts["t"][0])
    except (KeyError, ValueError) as exc:
        raise Unauthorized("Malformed webhook signature") from exc

    candidates = parts.get(SIGNATURE_SCHEME) or []
    if not candidates:
        raise Unauthorized("Malformed webhook signature")

    current = time.time() if now is None else now
    if abs(current - timestamp) > tolerance_seconds:
        raise Unauthorized("Webhook signature timestamp is outside the tolerance window")

    expected = compute_signature(payload, secret=secret, timestamp=timestamp)
    if not any(hmac.compare_digest(expected, candidate) for candidate in candidates):
        raise Unauthorized("Webhook signature does not match")


def parse_webhook_event(payload: bytes) -> BillingWebhookEvent:
    """Turn a raw provider event body into a :class:`BillingWebhookEvent`.

    ``payload`` on the result is the event's ``data.object``.
    """

    try:
        body = json.loads(payload.decode("utf-8"))
    except (UnicodeDecodeError, ValueError) as exc:
        raise InvalidInput("Webhook body is not valid JSON") from exc
    if not isinstance(body, dict):
        raise InvalidInput("Webhook body must be a JSON object")

    event_id = body.get("id")
    event_type = body.get("type")
    data = body.get("data")
    obj = data.get("object") if isinstance(data, dict) else None
    if not event_id or not event_type or not isinstance(obj, dict):
        raise InvalidInput("Webhook body is missing id, type or data.object")

    try:
        created = parse_optional_datetime(body.get("created"))
    except (TypeError, ValueError) as exc:
        raise InvalidInput("Webhook event has an unreadable created timestamp") from exc

    return BillingWebhookEvent(
        event_id=str(event_id),
        event_type=str(event_type),
        payload=obj,
        provider_created_at=created,
    )


__all__ = ["compute_signature", "parse_webhook_event", "verify_signature"]
