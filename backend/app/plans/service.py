"""Plan lifecycle service coordinating pricing, persistence and transitions."""
from __future__ import annotations

import hmac
import logging
import secrets
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Optional, Protocol, Sequence, Tuple
from uuid import uuid4

from pydantic import BaseModel, ConfigDict, Field

from ..delivery import normalize_zip
from ..errors import Forbidden, InvalidInput, NotFound
from ..nutrition import DogProfile, get_recipe
from ..pricing import quote_for_profile
from . import lifecycle
from .lifecycle import MaintenancePolicy
from .models import Plan, PlanCleanupCandidate, PlanItem, PlanStatus, ProviderSubscriptionConfirmation

logger = logging.getLogger("plans")

CLAIM_TOKEN_BYTES = 32


class PlanDogRequest(BaseModel):
    profile: DogProfile
    recipe_id: str = Field(alias="recipeId")
    meals_per_day: int = Field(default=2, ge=1, alias="mealsPerDay")
    dog_id: Optional[str] = Field(default=None, alias="dogId")

    model_config = ConfigDict(populate_by_name=True, frozen=True)


class PlanCreated(BaseModel):
    """A new plan plus the one-time claim token handed to guests."""

    plan: Plan
    claim_token: Optional[str] = None

    model_config = ConfigDict(populate_by_name=True, frozen=True)


class PlanRepository(Protocol):
    """Persistence operations required by the plan services."""

    def insert_plan(self, plan: Plan) -> Plan:
        ...

    def get_plan(self, plan_id: str) -> Optional[Plan]:
        ...

    def get_plan_by_checkout_session(self, session_id: str) -> Optional[Plan]:
        ...

    def get_plan_by_subscription(self, provider_subscription_id: str) -> Optional[Plan]:
        ...

    def save_plan(self, plan: Plan) -> Plan:
        ...

    def claim_plan(self, plan_id: str, *, claim_token_hash: str, user_id: str) -> Optional[Plan]:
        """Atomically set the owner where the token still matches and no owner exists."""

    def list_cleanup_candidates(self, *, now: datetime, policy: MaintenancePolicy) -> Sequence[PlanCleanupCandidate]:
        ...

    def delete_plans(self, plan_ids: Sequence[str]) -> int:
        ...


def build_plan_items(dogs: Sequence[PlanDogRequest]) -> Tuple[PlanItem, ...]:
    items = []
    for dog in dogs:
        recipe = get_recipe(dog.recipe_id)
        pricing = quote_for_profile(dog.profile, recipe, meals_per_day=dog.meals_per_day)
        items.append(
            PlanItem(
                item_id=str(uuid4()),
                dog_id=dog.dog_id,
                dog_name=dog.profile.name,
                recipe_id=recipe.recipe_id,
                recipe_name=recipe.name,
                grams_per_day=pricing.daily_grams,
                meals_per_day=dog.meals_per_day,
                weekly_price_cents=pricing.weekly_cents,
            )
        )
    return tuple(items)


@dataclass
class PlanService:
    repository: PlanRepository

    def _now(self) -> datetime:
        return datetime.now(timezone.utc)

    def create_plan(
        self,
        *,
        user_id: Optional[str],
        dogs: Sequence[PlanDogRequest],
        delivery_zipcode: Optional[str] = None,
    ) -> PlanCreated:
        items = build_plan_items(dogs)
        claim_token = None if user_id else secrets.token_urlsafe(CLAIM_TOKEN_BYTES)
        now = self._now()
        plan = Plan(
            plan_id=str(uuid4()),
            user_id=user_id,
            claim_token_hash=lifecycle.hash_claim_token(claim_token) if claim_token else None,
            status=PlanStatus.DRAFT,
            items=items,
            delivery_zipcode=normalize_zip(delivery_zipcode) or None,
            created_at=now,
            updated_at=now,
        )
        stored = self.repository.insert_plan(plan)
        logger.info(
            "Plan created",
            extra={"plan_id": stored.plan_id, "guest": stored.is_guest, "items": len(stored.items)},
        )
        return PlanCreated(plan=stored, claim_token=claim_token)

    def get_plan(self, plan_id: str) -> Plan:
        plan = self.repository.get_plan(plan_id)
        if plan is None:
            raise NotFound("Plan not found", detail={"planId": plan_id})
        return plan

    def get_plan_for_user(self, plan_id: str, user_id: str) -> Plan:
        plan = self.get_plan(plan_id)
        if plan.user_id != user_id:
            raise Forbidden("Plan belongs to another account", detail={"planId": plan_id})
        return plan

    def get_plan_for_viewer(
        self,
        plan_id: str,
        *,
        user_id: Optional[str],
        claim_token: Optional[str] = None,
    ) -> Plan:
        """Owners see their plans; a guest plan is visible with its claim token."""

        plan = self.get_plan(plan_id)
        if plan.user_id is not None:
            if plan.user_id != user_id:
                raise Forbidden("Plan belongs to another account", detail={"planId": plan_id})
            return plan
        if not claim_token or not plan.claim_token_hash or not hmac.compare_digest(
            plan.claim_token_hash, lifecycle.hash_claim_token(claim_token)
        ):
            raise Forbidden("A valid claim token is required to view this plan", detail={"planId": plan_id})
        return plan

    def find_plan_for_session(self, session_id: str) -> Optional[Plan]:
        return self.repository.get_plan_by_checkout_session(session_id)

    def find_plan_for_subscription(self, provider_subscription_id: str) -> Optional[Plan]:
        return self.repository.get_plan_by_subscription(provider_subscription_id)

    def update_items(self, plan_id: str, *, user_id: str, dogs: Sequence[PlanDogRequest]) -> Plan:
        plan = self.get_plan_for_user(plan_id, user_id)
        if plan.status != PlanStatus.DRAFT:
            raise InvalidInput(
                "Only draft plans can be edited",
                code="invalid_transition",
                detail={"planId": plan_id, "status": plan.status.value},
            )
        updated = plan.model_copy(update={"items": build_plan_items(dogs), "updated_at": self._now()})
        return self.repository.save_plan(updated)

    def begin_checkout(self, plan_id: str, *, session_id: str) -> Plan:
        plan = self.get_plan(plan_id)
        updated = lifecycle.begin_checkout(plan, session_id=session_id, now=self._now())
        stored = self.repository.save_plan(updated)
        logger.info("Plan checkout started", extra={"plan_id": plan_id, "session_id": session_id})
        return stored

    def activate(self, plan_id: str, confirmation: ProviderSubscriptionConfirmation) -> Plan:
        plan = self.get_plan(plan_id)
        updated = lifecycle.activate(plan, confirmation, now=self._now())
        if updated is plan:
            return plan
        stored = self.repository.save_plan(updated)
        logger.info(
            "Plan activated",
            extra={"plan_id": plan_id, "provider_subscription_id": confirmation.provider_subscription_id},
        )
        return stored

    def cancel(self, plan_id: str, *, user_id: str) -> Plan:
        plan = self.get_plan_for_user(plan_id, user_id)
        updated = lifecycle.cancel(plan, now=self._now())
        if updated is plan:
            return plan
        return self.repository.save_plan(updated)

    def mark_subscription_cancelled(self, plan_id: str) -> Plan:
        plan = self.get_plan(plan_id)
        updated = lifecycle.mark_subscription_cancelled(plan, now=self._now())
        if updated is plan:
            return plan
        logger.info("Plan cancelled with its subscription", extra={"plan_id": plan_id})
        return self.repository.save_plan(updated)

    def claim(self, plan_id: str, *, token: str, user_id: str) -> Plan:
        plan = self.get_plan(plan_id)
        claimed = lifecycle.claim(plan, token=token, user_id=user_id, now=self._now())
        stored = self.repository.claim_plan(
            plan_id,
            claim_token_hash=lifecycle.hash_claim_token(token),
            user_id=claimed.user_id or user_id,
        )
        if stored is None:
            raise Forbidden("This plan has already been claimed", detail={"planId": plan_id})
        logger.info("Guest plan claimed", extra={"plan_id": plan_id, "user_id": user_id})
        return stored


__all__ = [
    "PlanCreated",
    "PlanDogRequest",
    "PlanRepository",
    "PlanService",
    "build_plan_items",
]
