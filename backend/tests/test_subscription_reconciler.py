from __future__ import annotations

from datetime import datetime, timedelta, timezone
from typing import Optional

import pytest

from backend.app.billing import (
    ReconcileOutcome,
    Subscription,
    SubscriptionEvent,
    SubscriptionReconciler,
    SubscriptionStatus,
    apply_subscription_event,
)
from backend.app.errors import Forbidden, InvalidInput
from backend.tests.support import PERIOD_START, InMemoryBillingRepository, subscription_payload, ts

CLOCK = datetime(2024, 5, 6, 12, tzinfo=timezone.utc)


def _event(
    *,
    status: SubscriptionStatus = SubscriptionStatus.ACTIVE,
    period_start: datetime = PERIOD_START,
    created: Optional[datetime] = None,
    **extra,
) -> SubscriptionEvent:
    return SubscriptionEvent(
        provider_subscription_id="sub_123",
        status=status,
        current_period_start=period_start,
        current_period_end=period_start + timedelta(days=7),
        event_created_at=created,
        **extra,
    )


def _reconciler(repository: Optional[InMemoryBillingRepository] = None) -> SubscriptionReconciler:
    return SubscriptionReconciler(repository=repository or InMemoryBillingRepository(), clock=lambda: CLOCK)


def test_first_event_creates_subscription():
    result = apply_subscription_event(None, _event(metadata={"plan_id": "plan-1"}), user_id="user-1", now=CLOCK)

    assert result.user_id == "user-1"
    assert result.plan_id == "plan-1"
    assert result.status == SubscriptionStatus.ACTIVE
    assert result.created_at == CLOCK


def test_older_period_leaves_state_unchanged():
    current = apply_subscription_event(None, _event(period_start=PERIOD_START + timedelta(days=7)), user_id="user-1")

    result = apply_subscription_event(current, _event(status=SubscriptionStatus.PAST_DUE), user_id="user-1")

    assert result is current


def test_same_period_orders_by_event_time():
    early = PERIOD_START + timedelta(hours=1)
    late = PERIOD_START + timedelta(hours=2)
    current = apply_subscription_event(None, _event(created=late), user_id="user-1")

    stale = apply_subscription_event(current, _event(status=SubscriptionStatus.PAST_DUE, created=early), user_id="user-1")
    newer = apply_subscription_event(
        current,
        _event(status=SubscriptionStatus.PAST_DUE, created=late + timedelta(seconds=1)),
        user_id="user-1",
    )

    assert stale is current
    assert newer.status == SubscriptionStatus.PAST_DUE
    assert newer.subscription_id == current.subscription_id


def test_equal_ordering_key_reapplies_event():
    current = apply_subscription_event(None, _event(created=PERIOD_START), user_id="user-1")

    result = apply_subscription_event(current, _event(created=PERIOD_START), user_id="user-1")

    assert result is not current
    assert result == current.model_copy(update={"updated_at": result.updated_at})


def test_cancellation_is_final_within_its_period():
    current = apply_subscription_event(
        None, _event(status=SubscriptionStatus.CANCELLED, created=PERIOD_START), user_id="user-1"
    )

    same_period = apply_subscription_event(
        current, _event(created=PERIOD_START + timedelta(hours=1)), user_id="user-1"
    )
    next_period = apply_subscription_event(
        current,
        _event(period_start=PERIOD_START + timedelta(days=7), created=PERIOD_START + timedelta(days=7)),
        user_id="user-1",
    )

    assert same_period is current
    assert next_period.status == SubscriptionStatus.ACTIVE


def test_reapplied_event_keeps_known_plan():
    current = apply_subscription_event(None, _event(), user_id="user-1", plan_id="plan-1")

    result = apply_subscription_event(current, _event(created=PERIOD_START), user_id="user-1")

    assert result.plan_id == "plan-1"


def test_other_owner_is_forbidden():
    current = apply_subscription_event(None, _event(), user_id="user-1")

    with pytest.raises(Forbidden):
        apply_subscription_event(current, _event(), user_id="user-2")


def test_reconcile_rejects_other_owner():
    repository = InMemoryBillingRepository()
    reconciler = _reconciler(repository)
    reconciler.reconcile(_event(), user_id="user-1")

    result = reconciler.reconcile(_event(status=SubscriptionStatus.CANCELLED), user_id="user-2")

    assert result.outcome == ReconcileOutcome.REJECTED
    assert repository.subscriptions["sub_123"].user_id == "user-1"
    assert repository.subscriptions["sub_123"].status == SubscriptionStatus.ACTIVE


def test_reconcile_rejects_metadata_naming_another_user():
    repository = InMemoryBillingRepository()

    result = _reconciler(repository).reconcile(_event(metadata={"user_id": "user-9"}), user_id="user-1")

    assert result.outcome == ReconcileOutcome.REJECTED
    assert result.reason == "subscription metadata names a different user"
    assert repository.subscriptions == {}


def test_reconcile_without_owner_is_rejected():
    result = _reconciler().reconcile(_event(), user_id=None)

    assert result.outcome == ReconcileOutcome.REJECTED


def test_reconcile_reports_status_change():
    reconciler = _reconciler()
    first = reconciler.reconcile(_event(created=PERIOD_START), user_id="user-1")
    second = reconciler.reconcile(
        _event(status=SubscriptionStatus.PAST_DUE, created=PERIOD_START + timedelta(hours=1)),
        user_id="user-1",
    )

    assert first.applied and first.previous_status is None
    assert second.applied
    assert second.previous_status == SubscriptionStatus.ACTIVE
    assert second.status_changed


def test_reconcile_reports_stale_event():
    reconciler = _reconciler()
    reconciler.reconcile(_event(period_start=PERIOD_START + timedelta(days=7)), user_id="user-1")

    result = reconciler.reconcile(_event(status=SubscriptionStatus.CANCELLED), user_id="user-1")

    assert result.outcome == ReconcileOutcome.STALE
    assert result.subscription.status == SubscriptionStatus.ACTIVE
    assert not result.status_changed


class _RacingRepository(InMemoryBillingRepository):
    """Refuses every write, as if a newer state landed between read and write."""

    def upsert_subscription(self, subscription: Subscription) -> Optional[Subscription]:
        return None


def test_refused_conditional_write_is_stale():
    result = _reconciler(_RacingRepository()).reconcile(_event(), user_id="user-1")

    assert result.outcome == ReconcileOutcome.STALE
    assert result.reason == "superseded concurrently"


def test_reconcile_object_normalizes_provider_payload():
    repository = InMemoryBillingRepository()
    resumes_at = PERIOD_START + timedelta(days=14)
    payload = subscription_payload(
        pause_collection={"behavior": "void", "resumes_at": ts(resumes_at)},
        metadata={"plan_id": "plan-1"},
    )

    result = _reconciler(repository).reconcile_object(payload, user_id="user-1", event_created_at=CLOCK)

    stored = repository.subscriptions["sub_123"]
    assert result.applied
    assert stored.status == SubscriptionStatus.PAUSED
    assert stored.pause_resumes_at == resumes_at
    assert stored.provider_customer_id == "cus_1"
    assert stored.provider_price_id == "price_weekly"
    assert stored.plan_id == "plan-1"
    assert stored.provider_event_at == CLOCK


def test_reconcile_object_rejects_unreadable_payload():
    payload = subscription_payload(status="mystery")

    result = _reconciler().reconcile_object(payload, user_id="user-1")

    assert result.outcome == ReconcileOutcome.REJECTED
    assert result.provider_subscription_id == "sub_123"


def test_period_bounds_fall_back_to_first_item():
    payload = {
        "id": "sub_9",
        "status": "trialing",
        "items": {
            "data": [
                {
                    "current_period_start": ts(PERIOD_START),
                    "current_period_end": ts(PERIOD_START + timedelta(days=7)),
                    "price": {"id": "price_1"},
                }
            ]
        },
    }

    event = SubscriptionEvent.from_provider_object(payload)

    assert event.status == SubscriptionStatus.TRIALING
    assert event.current_period_start == PERIOD_START


def test_period_ending_before_start_is_invalid():
    payload = subscription_payload()
    payload["current_period_end"] = payload["current_period_start"] - 60

    with pytest.raises(InvalidInput):
        SubscriptionEvent.from_provider_object(payload)
