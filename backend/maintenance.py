"""Background scheduler for plan cleanup and cycle order generation."""
from __future__ import annotations

import logging
from datetime import datetime, timezone
from enum import Enum
from threading import Event, Lock, Thread
from typing import Any, Callable, Dict, Optional

from backend.app.config import load_app_config
from backend.app.orders.service import OrderGenerationReport
from backend.app.plans.models import PlanCleanupReport
from backend.app.services.orders import generate_due_orders
from backend.app.services.plans import get_plan_maintenance_service

logger = logging.getLogger(__name__)

ORDER_GENERATION_INTERVAL_SECONDS = 6 * 60 * 60


class MaintenanceJob(str, Enum):
    PLAN_CLEANUP = "plan_cleanup"
    ORDER_GENERATION = "order_generation"


def _empty_metrics() -> Dict[str, object]:
    return {
        "runs": 0,
        "processed": 0,
        "failures": 0,
        "last_run_at": None,
        "last_success_at": None,
        "last_error": None,
    }


_scheduler_lock = Lock()
_workers: Dict[str, "_MaintenanceWorker"] = {}

_MAINTENANCE_METRICS: Dict[str, Dict[str, object]] = {job.value: _empty_metrics() for job in MaintenanceJob}
_metrics_lock = Lock()


def _record_run_start(job: MaintenanceJob, started_at: datetime) -> None:
    with _metrics_lock:
        metrics = _MAINTENANCE_METRICS[job.value]
        metrics["runs"] = int(metrics.get("runs", 0)) + 1
        metrics["last_run_at"] = started_at


def _record_run_success(job: MaintenanceJob, completed_at: datetime, processed: int) -> None:
    with _metrics_lock:
        metrics = _MAINTENANCE_METRICS[job.value]
        metrics["processed"] = int(metrics.get("processed", 0)) + processed
        metrics["last_success_at"] = completed_at
        metrics["last_error"] = None


def _record_run_failure(job: MaintenanceJob, error: Exception) -> None:
    with _metrics_lock:
        metrics = _MAINTENANCE_METRICS[job.value]
        metrics["failures"] = int(metrics.get("failures", 0)) + 1
        metrics["last_error"] = f"{type(error).__name__}: {error}"


def _normalize(now: Optional[datetime]) -> datetime:
    current_time = now or datetime.now(timezone.utc)
    if current_time.tzinfo is None:
        current_time = current_time.replace(tzinfo=timezone.utc)
    return current_time


def run_plan_cleanup_job(*, now: Optional[datetime] = None, dry_run: bool = False) -> PlanCleanupReport:
    current_time = _normalize(now)
    _record_run_start(MaintenanceJob.PLAN_CLEANUP, current_time)
    try:
        report = get_plan_maintenance_service().cleanup(dry_run=dry_run, now=current_time)
    except Exception as exc:
        _record_run_failure(MaintenanceJob.PLAN_CLEANUP, exc)
        logger.exception("Plan cleanup job failed", extra={"dry_run": dry_run})
        raise
    _record_run_success(MaintenanceJob.PLAN_CLEANUP, current_time, report.deleted)
    logger.info(
        "Plan cleanup job completed",
        extra={
            "checked": report.checked,
            "flagged": len(report.flagged),
            "deleted": report.deleted,
            "dry_run": dry_run,
        },
    )
    return report


def run_order_generation_job(*, now: Optional[datetime] = None) -> OrderGenerationReport:
    current_time = _normalize(now)
    _record_run_start(MaintenanceJob.ORDER_GENERATION, current_time)
    try:
        report = generate_due_orders(current_time)
    except Exception as exc:
        _record_run_failure(MaintenanceJob.ORDER_GENERATION, exc)
        logger.exception("Order generation job failed")
        raise
    _record_run_success(MaintenanceJob.ORDER_GENERATION, current_time, len(report.created))
    logger.info(
        "Order generation job completed",
        extra={"considered": report.considered, "created": len(report.created), "skipped": report.skipped},
    )
    return report


class _MaintenanceWorker(Thread):
    def __init__(self, job: Callable[[], Any], *, name: str, initial_delay: float, interval: float):
        super().__init__(daemon=True, name=f"maintenance-{name}")
        self._job = job
        self._initial_delay = max(0.0, initial_delay)
        self._interval = max(1.0, interval)
        self._stop = Event()

    def stop(self) -> None:
        self._stop.set()

    def run(self) -> None:  # pragma: no cover - thread execution
        if self._stop.wait(self._initial_delay):
            return
        while not self._stop.is_set():
            try:
                self._job()
            except Exception:
                # Errors are logged and counted inside the job; keep the schedule.
                pass
            if self._stop.wait(self._interval):
                break


def start_maintenance_scheduler() -> bool:
    """Start the workers unless disabled by ``PLAN_CLEANUP_ENABLED``; returns whether they run."""

    config = load_app_config()
    if not config.cleanup_enabled:
        logger.info("Maintenance scheduler disabled")
        return False

    with _scheduler_lock:
        if _workers:
            return True
        _workers[MaintenanceJob.PLAN_CLEANUP.value] = _MaintenanceWorker(
            run_plan_cleanup_job,
            name=MaintenanceJob.PLAN_CLEANUP.value,
            initial_delay=60.0,
            interval=config.cleanup_interval_seconds,
        )
        _workers[MaintenanceJob.ORDER_GENERATION.value] = _MaintenanceWorker(
            run_order_generation_job,
            name=MaintenanceJob.ORDER_GENERATION.value,
            initial_delay=120.0,
            interval=ORDER_GENERATION_INTERVAL_SECONDS,
        )
        for worker in _workers.values():
            worker.start()
        logger.info(
            "Maintenance scheduler started",
            extra={"cleanup_interval_seconds": config.cleanup_interval_seconds},
        )
        return True


def shutdown_maintenance_scheduler() -> None:
    with _scheduler_lock:
        workers = list(_workers.values())
        for worker in workers:
            worker.stop()
        for worker in workers:
            worker.join(timeout=1.0)
        _workers.clear()
        logger.info("Maintenance scheduler stopped")


def get_maintenance_metrics() -> Dict[str, Dict[str, object]]:
    with _metrics_lock:
        snapshot: Dict[str, Dict[str, object]] = {}
        for key, value in _MAINTENANCE_METRICS.items():
            snapshot[key] = {
                **value,
                "last_run_at": value["last_run_at"].isoformat() if value.get("last_run_at") else None,
                "last_success_at": value["last_success_at"].isoformat() if value.get("last_success_at") else None,
            }
        return snapshot


def _reset_metrics_for_testing() -> None:  # pragma: no cover - used in tests only
    with _metrics_lock:
        for metrics in _MAINTENANCE_METRICS.values():
            metrics.update(_empty_metrics())


__all__ = [
    "MaintenanceJob",
    "get_maintenance_metrics",
    "run_order_generation_job",
    "run_plan_cleanup_job",
    "shutdown_maintenance_scheduler",
    "start_maintenance_scheduler",
]
