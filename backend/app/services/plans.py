"""Application wiring for plan services."""
from __future__ import annotations

from functools import lru_cache

from ..config import load_app_config
from ..plans.lifecycle import MaintenancePolicy
from ..plans.maintenance import PlanMaintenanceService
from ..plans.repository import PostgresPlanRepository
from ..plans.service import PlanService


@lru_cache(maxsize=1)
def get_plan_service() -> PlanService:
    return PlanService(repository=PostgresPlanRepository())


@lru_cache(maxsize=1)
def get_plan_maintenance_service() -> PlanMaintenanceService:
    config = load_app_config()
    policy = MaintenancePolicy(
        empty_plan_grace=config.empty_plan_grace,
        checkout_window=config.checkout_window,
    )
    return PlanMaintenanceService(repository=PostgresPlanRepository(), policy=policy)


__all__ = ["get_plan_maintenance_service", "get_plan_service"]
