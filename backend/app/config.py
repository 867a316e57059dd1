"""Application settings for billing, plan maintenance and webhooks."""
from __future__ import annotations

import os
from dataclasses import dataclass
from datetime import timedelta
from typing import Mapping, Optional

from ..mail.config import _to_bool, _to_int


@dataclass(frozen=True)
class AppConfig:
    """Typed view over the environment used by the service wiring."""

    payment_provider: str
    stripe_secret_key: Optional[str]
    stripe_webhook_secret: Optional[str]
    stripe_api_base: str
    app_base_url: str
    currency: str
    checkout_window_hours: int
    empty_plan_grace_hours: int
    cleanup_enabled: bool
    cleanup_interval_seconds: int
    webhook_tolerance_seconds: int

    @property
    def checkout_window(self) -> timedelta:
        return timedelta(hours=self.checkout_window_hours)

    @property
    def empty_plan_grace(self) -> timedelta:
        return timedelta(hours=self.empty_plan_grace_hours)


def load_app_config(env: Optional[Mapping[str, str]] = None) -> AppConfig:
    """Load :class:`AppConfig` from environment variables."""

    env_mapping = os.environ if env is None else env

    stripe_secret_key = env_mapping.get("STRIPE_SECRET_KEY") or None
    default_provider = "stripe" if stripe_secret_key else "sandbox"
    payment_provider = (env_mapping.get("PAYMENT_PROVIDER") or default_provider).strip().lower()
    if payment_provider not in {"stripe", "sandbox"}:
        raise ValueError(f"Unsupported PAYMENT_PROVIDER {payment_provider!r}")

    checkout_window_hours = _to_int(env_mapping.get("PLAN_CHECKOUT_WINDOW_HOURS"), default=24)
    empty_plan_grace_hours = _to_int(env_mapping.get("PLAN_EMPTY_GRACE_HOURS"), default=72)
    if checkout_window_hours < 1 or empty_plan_grace_hours < 1:
        raise ValueError("Plan cleanup windows must be at least one hour")

    return AppConfig(
        payment_provider=payment_provider,
        stripe_secret_key=stripe_secret_key,
        stripe_webhook_secret=env_mapping.get("STRIPE_WEBHOOK_SECRET") or None,
        stripe_api_base=env_mapping.get("STRIPE_API_BASE", "https://api.stripe.com/v1").rstrip("/"),
        app_base_url=env_mapping.get("APP_BASE_URL", "http://localhost:3000").rstrip("/"),
        currency=(env_mapping.get("BILLING_CURRENCY") or "usd").lower(),
        checkout_window_hours=checkout_window_hours,
        empty_plan_grace_hours=empty_plan_grace_hours,
        cleanup_enabled=_to_bool(env_mapping.get("PLAN_CLEANUP_ENABLED"), default=True),
        cleanup_interval_seconds=max(60, _to_int(env_mapping.get("PLAN_CLEANUP_INTERVAL_SECONDS"), default=3600)),
        webhook_tolerance_seconds=max(0, _to_int(env_mapping.get("WEBHOOK_TOLERANCE_SECONDS"), default=300)),
    )


__all__ = ["AppConfig", "load_app_config"]
