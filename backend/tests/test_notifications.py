from __future__ import annotations

from datetime import datetime, timedelta, timezone
from typing import List, Optional, Tuple

from backend.app.billing import Subscription, SubscriptionStatus
from backend.app.notifications import (
    EmailNotifier,
    NotificationKind,
    fulfillment_changed,
    order_created,
    subscription_status_changed,
)
from backend.app.orders import FulfillmentStatus, Order, RecipeSnapshot
from backend.mail import EmailProvider

PERIOD_START = datetime(2024, 5, 6, tzinfo=timezone.utc)


def _subscription(status: SubscriptionStatus, **overrides) -> Subscription:
    values = {
        "subscription_id": "local-1",
        "provider_subscription_id": "sub_123",
        "user_id": "user-1",
        "status": status,
        "current_period_start": PERIOD_START,
        "current_period_end": PERIOD_START + timedelta(days=7),
    }
    values.update(overrides)
    return Subscription(**values)


def _order(status: FulfillmentStatus = FulfillmentStatus.PENDING, **overrides) -> Order:
    values = {
        "order_id": "order-1",
        "order_number": "ORD-1-ABC123",
        "user_id": "user-1",
        "provider_subscription_id": "sub_123",
        "period_start": PERIOD_START,
        "period_end": PERIOD_START + timedelta(days=7),
        "fulfillment_status": status,
        "recipes": (RecipeSnapshot(recipe_id="r", recipe_name="R", dog_name="Biscuit", grams_per_day=400),),
    }
    values.update(overrides)
    return Order(**values)


def test_unchanged_status_is_silent():
    assert subscription_status_changed(SubscriptionStatus.ACTIVE, _subscription(SubscriptionStatus.ACTIVE)) is None


def test_past_due_warns_about_payment():
    message = subscription_status_changed(SubscriptionStatus.ACTIVE, _subscription(SubscriptionStatus.PAST_DUE))

    assert message.kind == NotificationKind.PAYMENT_ISSUE
    assert message.user_id == "user-1"


def test_cancellation_is_announced_only_for_known_subscriptions():
    cancelled = _subscription(SubscriptionStatus.CANCELLED)

    assert subscription_status_changed(SubscriptionStatus.ACTIVE, cancelled).kind == NotificationKind.SUBSCRIPTION_CANCELLED
    assert subscription_status_changed(None, cancelled) is None


def test_skip_mentions_resume_date():
    paused = _subscription(SubscriptionStatus.PAUSED, pause_resumes_at=datetime(2024, 5, 20, tzinfo=timezone.utc))

    message = subscription_status_changed(SubscriptionStatus.ACTIVE, paused)

    assert message.kind == NotificationKind.DELIVERY_SKIPPED
    assert "May 20, 2024" in message.text


def test_order_confirmation_names_dogs_and_date():
    message = order_created(_order())

    assert message.kind == NotificationKind.ORDER_CONFIRMED
    assert "for Biscuit" in message.text
    assert "May 13, 2024" in message.text


def test_fulfillment_messages():
    shipped = _order(FulfillmentStatus.SHIPPED, tracking_url="https://track.example.com/1")

    assert fulfillment_changed(FulfillmentStatus.PENDING, _order(FulfillmentStatus.PROCESSING)) is None
    assert fulfillment_changed(FulfillmentStatus.PROCESSING, shipped).kind == NotificationKind.ORDER_SHIPPED
    assert fulfillment_changed(FulfillmentStatus.SHIPPED, _order(FulfillmentStatus.DELIVERED)).kind == (
        NotificationKind.ORDER_DELIVERED
    )


class _RecordingProvider(EmailProvider):
    name = "recording"

    def __init__(self) -> None:
        super().__init__(from_email="hello@nouripet.test")
        self.sent: List[Tuple[str, str, str]] = []

    def send_email(self, to: str, subject: str, text_body: str, html_body: Optional[str] = None) -> None:
        self.sent.append((to, subject, text_body))


class _FailingProvider(EmailProvider):
    name = "failing"

    def __init__(self) -> None:
        super().__init__(from_email="hello@nouripet.test")

    def send_email(self, to: str, subject: str, text_body: str, html_body: Optional[str] = None) -> None:
        raise RuntimeError("smtp down")


def test_email_notifier_sends_to_resolved_address():
    provider = _RecordingProvider()
    notifier = EmailNotifier(
        provider=provider,
        resolve_email=lambda user_id: "dana@example.com",
        app_base_url="https://nouripet.test/",
    )

    notifier.deliver(order_created(_order()))

    to, subject, body = provider.sent[0]
    assert to == "dana@example.com"
    assert subject == "Order ORD-1-ABC123 confirmed"
    assert body.endswith("Manage your plan: https://nouripet.test/account\n")


def test_email_notifier_skips_users_without_email():
    provider = _RecordingProvider()
    notifier = EmailNotifier(provider=provider, resolve_email=lambda user_id: None, app_base_url="https://x.test")

    notifier.deliver(order_created(_order()))

    assert provider.sent == []


def test_email_notifier_swallows_delivery_failures(caplog):
    notifier = EmailNotifier(
        provider=_FailingProvider(),
        resolve_email=lambda user_id: "dana@example.com",
        app_base_url="https://x.test",
    )

    notifier.deliver(order_created(_order()))

    assert "Notification email failed" in caplog.text


def test_email_notifier_adds_support_contact():
    provider = _RecordingProvider()
    notifier = EmailNotifier(
        provider=provider,
        resolve_email=lambda user_id: "dana@example.com",
        app_base_url="https://nouripet.test",
        support_email="help@nouripet.test",
    )

    notifier.deliver(order_created(_order()))

    _, _, body = provider.sent[0]
    assert body.endswith("Questions? Write to help@nouripet.test\n")
