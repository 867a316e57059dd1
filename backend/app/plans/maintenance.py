"""Cleanup of plans that were abandoned before becoming subscriptions."""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import List, Optional

from .lifecycle import MaintenancePolicy, classify_broken_plan
from .models import PlanCleanupReport
from .service import PlanRepository

logger = logging.getLogger("plans.maintenance")


@dataclass
class PlanMaintenanceService:
    repository: PlanRepository
    policy: MaintenancePolicy = field(default_factory=MaintenancePolicy)

    def _now(self) -> datetime:
        return datetime.now(timezone.utc)

    def cleanup(self, *, dry_run: bool = False, now: Optional[datetime] = None) -> PlanCleanupReport:
        """Delete plans the broken-plan rule flags; ``dry_run`` only reports them."""

        current_time = now or self._now()
        candidates = self.repository.list_cleanup_candidates(now=current_time, policy=self.policy)
        flagged: List[str] = []
        for candidate in candidates:
            reason = classify_broken_plan(
                candidate.plan,
                now=current_time,
                policy=self.policy,
                has_live_subscription=candidate.has_live_subscription,
            )
            if reason is None:
                continue
            flagged.append(candidate.plan.plan_id)
            logger.info(
                "Broken plan flagged",
                extra={"plan_id": candidate.plan.plan_id, "reason": reason.value, "dry_run": dry_run},
            )

        deleted = 0
        if flagged and not dry_run:
            deleted = self.repository.delete_plans(flagged)

        return PlanCleanupReport(
            checked=len(candidates),
            flagged=tuple(flagged),
            deleted=deleted,
            dry_run=dry_run,
        )


__all__ = ["PlanMaintenanceService"]
