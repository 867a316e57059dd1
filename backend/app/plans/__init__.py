"""Plan lifecycle: drafting, checkout, activation, claim and cleanup."""

from .lifecycle import MaintenancePolicy, classify_broken_plan, hash_claim_token
from .maintenance import PlanMaintenanceService
from .models import (
    BrokenPlanReason,
    Plan,
    PlanCleanupCandidate,
    PlanCleanupReport,
    PlanItem,
    PlanStatus,
    ProviderSubscriptionConfirmation,
)
from .service import PlanCreated, PlanDogRequest, PlanRepository, PlanService

__all__ = [
    "BrokenPlanReason",
    "MaintenancePolicy",
    "Plan",
    "PlanCleanupCandidate",
    "PlanCleanupReport",
    "PlanCreated",
    "PlanDogRequest",
    "PlanItem",
    "PlanMaintenanceService",
    "PlanRepository",
    "PlanService",
    "PlanStatus",
    "ProviderSubscriptionConfirmation",
    "classify_broken_plan",
    "hash_claim_token",
]
