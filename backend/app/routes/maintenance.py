"""Administrative routes for plan maintenance."""
from __future__ import annotations

from fastapi import APIRouter, Depends, Query

from ..errors import ServiceError
from ..plans.models import PlanCleanupReport
from .dependencies import require_admin

router = APIRouter(prefix="/api/admin/maintenance", tags=["maintenance"])


@router.post("/plan-cleanup", response_model=PlanCleanupReport)
def run_plan_cleanup(
    dry_run: bool = Query(default=True, alias="dryRun"),
    *,
    admin_user=Depends(require_admin),
) -> PlanCleanupReport:
    """Find broken plans; deletes them only when ``dryRun=false``."""
    from backend import maintenance

    try:
        return maintenance.run_plan_cleanup_job(dry_run=dry_run)
    except ServiceError as exc:
        raise exc.to_http_exception() from exc
