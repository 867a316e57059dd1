"""Reconciliation of provider subscription state into local subscription rows."""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Callable, Mapping, Optional, Protocol
from uuid import uuid4

from pydantic import BaseModel, ConfigDict

from ..errors import Forbidden, InvalidInput, NotFound
from .models import Subscription, SubscriptionEvent, SubscriptionStatus

logger = logging.getLogger("billing.reconciler")


class ReconcileOutcome(str, Enum):
    APPLIED = "applied"
    STALE = "stale"
    REJECTED = "rejected"


class ReconcileResult(BaseModel):
    outcome: ReconcileOutcome
    provider_subscription_id: Optional[str] = None
    subscription: Optional[Subscription] = None
    previous_status: Optional[SubscriptionStatus] = None
    reason: Optional[str] = None

    model_config = ConfigDict(populate_by_name=True, frozen=True)

    @property
    def applied(self) -> bool:
        return self.outcome == ReconcileOutcome.APPLIED

    @property
    def status_changed(self) -> bool:
        return (
            self.applied
            and self.subscription is not None
            and self.subscription.status != self.previous_status
        )


class SubscriptionStore(Protocol):
    """Persistence operations required by the reconciler."""

    def get_subscription_by_provider_id(self, provider_subscription_id: str) -> Optional[Subscription]:
        ...

    def upsert_subscription(self, subscription: Subscription) -> Optional[Subscription]:
        """Insert or replace the row for ``provider_subscription_id``.

        The replacement only happens when the stored row has the same owner
        and an ordering key no newer than the candidate's. Returns ``None``
        when the write was refused.
        """


def subscription_from_event(
    event: SubscriptionEvent,
    *,
    user_id: str,
    plan_id: Optional[str] = None,
    now: Optional[datetime] = None,
) -> Subscription:
    """Build the candidate row from the provider's canonical fields only."""

    timestamp = now or datetime.now(timezone.utc)
    pause = event.pause_state
    return Subscription(
        subscription_id=str(uuid4()),
        provider_subscription_id=event.provider_subscription_id,
        user_id=user_id,
        plan_id=plan_id or event.metadata.get("plan_id"),
        provider_customer_id=event.provider_customer_id,
        provider_price_id=event.provider_price_id,
        status=event.status,
        current_period_start=event.current_period_start,
        current_period_end=event.current_period_end,
        pause_behavior=pause.behavior if pause else None,
        pause_resumes_at=pause.resumes_at if pause else None,
        cancel_at_period_end=event.cancel_at_period_end,
        canceled_at=event.canceled_at,
        provider_event_at=event.event_created_at,
        metadata=dict(event.metadata),
        created_at=timestamp,
        updated_at=timestamp,
    )


def supersedes(candidate: Subscription, current: Subscription) -> bool:
    """Last writer wins by provider period then provider event time; ties re-apply.

    A cancellation is final for its billing period: only a state from a later
    period can replace it.
    """

    if (
        current.status == SubscriptionStatus.CANCELLED
        and candidate.status != SubscriptionStatus.CANCELLED
        and candidate.current_period_start <= current.current_period_start
    ):
        return False
    return candidate.ordering_key >= current.ordering_key


def apply_subscription_event(
    current: Optional[Subscription],
    event: SubscriptionEvent,
    *,
    user_id: str,
    plan_id: Optional[str] = None,
    now: Optional[datetime] = None,
) -> Subscription:
    """Pure transition ``(current, event) -> new``.

    Returns ``current`` unchanged when the event is older than the stored
    state. Raises :class:`Forbidden` when the row belongs to another user.
    """

    if current is not None and current.user_id != user_id:
        raise Forbidden(
            "Subscription belongs to another user",
            detail={"providerSubscriptionId": event.provider_subscription_id},
        )

    candidate = subscription_from_event(event, user_id=user_id, plan_id=plan_id, now=now)
    if current is None:
        return candidate
    if not supersedes(candidate, current):
        return current
    return candidate.model_copy(
        update={
            "subscription_id": current.subscription_id,
            "plan_id": candidate.plan_id or current.plan_id,
            "created_at": current.created_at,
        }
    )


@dataclass
class SubscriptionReconciler:
    """Applies provider subscription events to the local store.

    Validation and ownership problems are logged and reported as
    ``rejected``; the caller's trigger (webhook redelivery or a later sync)
    is responsible for retrying. Datastore failures propagate as
    :class:`~backend.app.errors.UpstreamFailure`.
    """

    repository: SubscriptionStore
    clock: Callable[[], datetime] = field(default=lambda: datetime.now(timezone.utc))

    def reconcile(
        self,
        event: SubscriptionEvent,
        *,
        user_id: Optional[str],
        plan_id: Optional[str] = None,
    ) -> ReconcileResult:
        provider_id = event.provider_subscription_id
        if not user_id:
            return self._reject(provider_id, "no owning user could be resolved")

        metadata_user = event.metadata.get("user_id")
        if metadata_user and metadata_user != user_id:
            return self._reject(provider_id, "subscription metadata names a different user")

        current = self.repository.get_subscription_by_provider_id(provider_id)
        try:
            updated = apply_subscription_event(
                current, event, user_id=user_id, plan_id=plan_id, now=self.clock()
            )
        except (Forbidden, InvalidInput, NotFound) as exc:
            return self._reject(provider_id, exc.message)

        previous_status = current.status if current else None
        if current is not None and updated is current:
            logger.info(
                "Ignoring stale subscription state",
                extra={
                    "provider_subscription_id": provider_id,
                    "stored_period_start": current.current_period_start.isoformat(),
                    "event_period_start": event.current_period_start.isoformat(),
                },
            )
            return ReconcileResult(
                outcome=ReconcileOutcome.STALE,
                provider_subscription_id=provider_id,
                subscription=current,
                previous_status=previous_status,
                reason="older than stored state",
            )

        stored = self.repository.upsert_subscription(updated)
        if stored is None:
            # A newer state or a different owner won between our read and write.
            logger.info(
                "Conditional subscription write refused",
                extra={"provider_subscription_id": provider_id, "user_id": user_id},
            )
            return ReconcileResult(
                outcome=ReconcileOutcome.STALE,
                provider_subscription_id=provider_id,
                subscription=current,
                previous_status=previous_status,
                reason="superseded concurrently",
            )

        logger.info(
            "Subscription reconciled",
            extra={
                "provider_subscription_id": provider_id,
                "user_id": user_id,
                "status": stored.status.value,
                "previous_status": previous_status.value if previous_status else None,
            },
        )
        return ReconcileResult(
            outcome=ReconcileOutcome.APPLIED,
            provider_subscription_id=provider_id,
            subscription=stored,
            previous_status=previous_status,
        )

    def reconcile_object(
        self,
        payload: Mapping[str, Any],
        *,
        user_id: Optional[str],
        plan_id: Optional[str] = None,
        event_created_at: Optional[datetime] = None,
    ) -> ReconcileResult:
        """Normalize a raw provider subscription object, then :meth:`reconcile` it."""

        try:
            event = SubscriptionEvent.from_provider_object(payload, event_created_at=event_created_at)
        except InvalidInput as exc:
            raw_id = payload.get("id")
            return self._reject(str(raw_id) if raw_id else None, exc.message)
        return self.reconcile(event, user_id=user_id, plan_id=plan_id)

    def _reject(self, provider_id: Optional[str], reason: str) -> ReconcileResult:
        logger.warning(
            "Dropping subscription event: %s",
            reason,
            extra={"provider_subscription_id": provider_id},
        )
        return ReconcileResult(
            outcome=ReconcileOutcome.REJECTED,
            provider_subscription_id=provider_id,
            reason=reason,
        )


__all__ = [
    "ReconcileOutcome",
    "ReconcileResult",
    "SubscriptionReconciler",
    "SubscriptionStore",
    "apply_subscription_event",
    "subscription_from_event",
    "supersedes",
]
