from datetime import datetime, timezone
from types import SimpleNamespace

import pytest

from backend import maintenance
from backend.app.orders.service import OrderGenerationReport
from backend.app.plans import PlanCleanupReport


def test_run_plan_cleanup_job_updates_metrics(monkeypatch):
    maintenance._reset_metrics_for_testing()

    report = PlanCleanupReport(checked=4, flagged=("plan-1", "plan-2"), deleted=2)
    calls = []

    def fake_cleanup(*, dry_run, now):
        calls.append((dry_run, now))
        return report

    monkeypatch.setattr(
        maintenance,
        "get_plan_maintenance_service",
        lambda: SimpleNamespace(cleanup=fake_cleanup),
    )

    run_time = datetime(2024, 8, 1, 9, tzinfo=timezone.utc)
    result = maintenance.run_plan_cleanup_job(now=run_time)

    assert result == report
    assert calls == [(False, run_time)]

    metrics = maintenance.get_maintenance_metrics()[maintenance.MaintenanceJob.PLAN_CLEANUP.value]
    assert metrics["runs"] == 1
    assert metrics["processed"] == 2
    assert metrics["failures"] == 0
    assert metrics["last_run_at"] == run_time.isoformat()
    assert metrics["last_success_at"] == run_time.isoformat()
    assert metrics["last_error"] is None


def test_run_order_generation_job_counts_created_orders(monkeypatch):
    maintenance._reset_metrics_for_testing()

    seen = []

    def fake_generate(as_of):
        seen.append(as_of)
        return OrderGenerationReport(considered=3, created=["order-1"], skipped=2)

    monkeypatch.setattr(maintenance, "generate_due_orders", fake_generate)

    naive = datetime(2024, 8, 1, 9)
    report = maintenance.run_order_generation_job(now=naive)

    assert report.created == ["order-1"]
    assert seen[0].tzinfo == timezone.utc
    metrics = maintenance.get_maintenance_metrics()[maintenance.MaintenanceJob.ORDER_GENERATION.value]
    assert metrics["processed"] == 1
    assert metrics["runs"] == 1


def test_failed_job_records_error_and_reraises(monkeypatch):
    maintenance._reset_metrics_for_testing()

    def broken(as_of):
        raise RuntimeError("database unavailable")

    monkeypatch.setattr(maintenance, "generate_due_orders", broken)

    with pytest.raises(RuntimeError):
        maintenance.run_order_generation_job(now=datetime(2024, 8, 1, tzinfo=timezone.utc))

    metrics = maintenance.get_maintenance_metrics()[maintenance.MaintenanceJob.ORDER_GENERATION.value]
    assert metrics["failures"] == 1
    assert metrics["last_error"] == "RuntimeError: database unavailable"
    assert metrics["last_success_at"] is None


def test_scheduler_respects_disable_flag(monkeypatch):
    monkeypatch.setenv("PLAN_CLEANUP_ENABLED", "false")
    monkeypatch.delenv("PAYMENT_PROVIDER", raising=False)

    assert maintenance.start_maintenance_scheduler() is False
