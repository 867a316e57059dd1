"""Application wiring for the billing service."""
from __future__ import annotations

import logging
from functools import lru_cache

from ..billing.providers import LocalSandboxPaymentProvider, StripePaymentProvider
from ..billing.reconciler import SubscriptionReconciler
from ..billing.repository import PostgresBillingRepository
from ..billing.service import BillingService, PaymentProvider
from ..config import AppConfig, load_app_config
from .notifications import get_notifier
from .orders import get_order_service
from .plans import get_plan_service

logger = logging.getLogger("billing")


def create_payment_provider(config: AppConfig) -> PaymentProvider:
    if config.payment_provider == "stripe":
        return StripePaymentProvider(
            secret_key=config.stripe_secret_key or "",
            api_base=config.stripe_api_base,
            currency=config.currency,
        )
    logger.warning("Using the local sandbox payment provider; no real charges will be made")
    return LocalSandboxPaymentProvider()


@lru_cache(maxsize=1)
def get_billing_config() -> AppConfig:
    return load_app_config()


@lru_cache(maxsize=1)
def get_billing_service() -> BillingService:
    config = get_billing_config()
    repository = PostgresBillingRepository()
    return BillingService(
        repository=repository,
        provider=create_payment_provider(config),
        reconciler=SubscriptionReconciler(repository=repository),
        plans=get_plan_service(),
        orders=get_order_service(),
        notifier=get_notifier(),
        app_base_url=config.app_base_url,
    )


__all__ = ["create_payment_provider", "get_billing_config", "get_billing_service"]
