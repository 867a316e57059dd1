"""Route handlers exercised directly with in-memory services."""
from __future__ import annotations

import asyncio
import json
import time
from datetime import datetime, timezone
from types import SimpleNamespace

import pytest
from fastapi import HTTPException

from backend import maintenance
from backend.app.billing.webhooks import compute_signature
from backend.app.config import load_app_config
from backend.app.orders import FulfillmentStatus
from backend.app.orders.service import OrderGenerationReport
from backend.app.plans import PlanCleanupReport, PlanStatus
from backend.app.routes import billing as billing_routes
from backend.app.routes import delivery as delivery_routes
from backend.app.routes import maintenance as maintenance_routes
from backend.app.routes import orders as orders_routes
from backend.app.routes import plans as plans_routes
from backend.app.routes import pricing as pricing_routes
from backend.app.routes.dependencies import require_admin
from backend.app.schemas.orders import FulfillmentUpdateRequest, GenerateOrdersRequest
from backend.app.schemas.plans import PlanClaimRequest, PlanCreateRequest
from backend.app.schemas.pricing import QuoteRequest
from backend.tests.support import BillingHarness, subscription_payload

CUSTOMER = SimpleNamespace(id="user-1", email="dana@example.com", role="customer")
OTHER = SimpleNamespace(id="user-2", email="sam@example.com", role="customer")
ADMIN = SimpleNamespace(id="admin-1", email="ops@nouripet.test", role="admin")
WEBHOOK_SECRET = "whsec_routes"


@pytest.fixture
def harness(monkeypatch):
    harness = BillingHarness()
    monkeypatch.setattr(plans_routes, "get_plan_service", lambda: harness.plans)
    monkeypatch.setattr(plans_routes, "get_billing_service", lambda: harness.service)
    monkeypatch.setattr(billing_routes, "get_billing_service", lambda: harness.service)
    monkeypatch.setattr(orders_routes, "get_order_service", lambda: harness.orders)
    monkeypatch.setattr(
        billing_routes,
        "get_billing_config",
        lambda: load_app_config(
            env={
                "PAYMENT_PROVIDER": "stripe",
                "STRIPE_SECRET_KEY": "sk_test",
                "STRIPE_WEBHOOK_SECRET": WEBHOOK_SECRET,
            }
        ),
    )
    return harness


def _plan_request(**overrides) -> PlanCreateRequest:
    body = {
        "dogs": [{"profile": {"name": "Biscuit", "weight": 30}, "recipeId": "beef-quinoa-harvest"}],
        "deliveryZipcode": "10601",
    }
    body.update(overrides)
    return PlanCreateRequest.model_validate(body)


class _FakeRequest:
    def __init__(self, body: bytes) -> None:
        self._body = body

    async def body(self) -> bytes:
        return self._body


def _post_webhook(body: bytes, signature=None):
    return asyncio.run(billing_routes.receive_webhook(_FakeRequest(body), stripe_signature=signature))


def _signed(body: bytes) -> str:
    timestamp = int(time.time())
    return f"t={timestamp},v1={compute_signature(body, secret=WEBHOOK_SECRET, timestamp=timestamp)}"


def test_quote_returns_rounded_pricing():
    response = pricing_routes.create_quote(
        QuoteRequest.model_validate({"dog": {"weight": 30}, "recipeId": "beef-quinoa-harvest", "mealsPerDay": 3})
    )

    assert response.tier.value == "medium"
    assert response.meals_per_day == 3
    assert response.daily_grams == round(response.daily_grams)
    assert response.nutrition.der > response.nutrition.rer


def test_quote_rejects_allergen_conflict():
    payload = QuoteRequest.model_validate(
        {"dog": {"weight": 30, "allergens": ["beef"]}, "recipeId": "beef-quinoa-harvest"}
    )

    with pytest.raises(HTTPException) as excinfo:
        pricing_routes.create_quote(payload)
    assert excinfo.value.status_code == 422


def test_quote_rejects_unknown_recipe():
    with pytest.raises(HTTPException) as excinfo:
        pricing_routes.create_quote(QuoteRequest.model_validate({"dog": {"weight": 30}, "recipeId": "nope"}))
    assert excinfo.value.status_code == 404


def test_recipe_listing_marks_suitability():
    plain = pricing_routes.list_recipes(allergens=None, conditions=None)
    filtered = pricing_routes.list_recipes(allergens="beef", conditions="kidney-disease")

    assert plain.suitable is None
    assert len(plain.recipes) == 7
    assert filtered.suitable["beef-quinoa-harvest"] is False
    assert filtered.suitable["renal-support"] is True
    assert filtered.suitable["hepatic-support"] is False


def test_zipcode_check_messages():
    assert delivery_routes.check_zipcode("10601").message == "Great news! We deliver to Westchester County, NY."
    outside = delivery_routes.check_zipcode("90210")
    assert outside.valid is False
    assert outside.message == "We don't deliver to this zip code yet"


def test_guest_plan_create_view_and_claim(harness):
    created = plans_routes.create_plan(_plan_request(), current_user=None)
    plan_id = created.plan.id

    assert created.claim_token
    assert created.plan.guest is True
    assert plans_routes.read_plan(plan_id, claim_token=created.claim_token, current_user=None).id == plan_id
    with pytest.raises(HTTPException) as excinfo:
        plans_routes.read_plan(plan_id, claim_token=None, current_user=None)
    assert excinfo.value.status_code == 403

    with pytest.raises(HTTPException) as excinfo:
        plans_routes.claim_plan(plan_id, PlanClaimRequest(claim_token=created.claim_token), current_user=None)
    assert excinfo.value.status_code == 401

    claimed = plans_routes.claim_plan(plan_id, PlanClaimRequest(claim_token=created.claim_token), current_user=CUSTOMER)
    assert claimed.guest is False

    with pytest.raises(HTTPException) as excinfo:
        plans_routes.claim_plan(plan_id, PlanClaimRequest(claim_token=created.claim_token), current_user=OTHER)
    assert excinfo.value.status_code == 403


def test_checkout_route_starts_session(harness):
    created = plans_routes.create_plan(_plan_request(), current_user=CUSTOMER)

    response = plans_routes.start_checkout(created.plan.id, current_user=CUSTOMER)

    assert response.session_id == "cs_test_1"
    assert harness.provider.sessions[0]["customer_email"] == "dana@example.com"
    assert harness.plan_repository.get_plan(created.plan.id).status == PlanStatus.CHECKOUT_IN_PROGRESS


def test_checkout_route_rejects_unserviceable_plan(harness):
    created = plans_routes.create_plan(_plan_request(deliveryZipcode="90210"), current_user=CUSTOMER)

    with pytest.raises(HTTPException) as excinfo:
        plans_routes.start_checkout(created.plan.id, current_user=CUSTOMER)
    assert excinfo.value.status_code == 422
    assert excinfo.value.detail["error"] == "invalid_input"


def test_cancel_route_checks_owner(harness):
    created = plans_routes.create_plan(_plan_request(), current_user=CUSTOMER)

    with pytest.raises(HTTPException) as excinfo:
        plans_routes.cancel_plan(created.plan.id, current_user=OTHER)
    assert excinfo.value.status_code == 403
    assert plans_routes.cancel_plan(created.plan.id, current_user=CUSTOMER).status == PlanStatus.CANCELLED


def _activate_via_webhook(harness) -> str:
    created = plans_routes.create_plan(_plan_request(), current_user=CUSTOMER)
    plans_routes.start_checkout(created.plan.id, current_user=CUSTOMER)
    harness.provider.subscriptions["sub_123"] = subscription_payload(
        metadata={"plan_id": created.plan.id, "user_id": "user-1"}
    )
    body = json.dumps(
        {
            "id": "evt_checkout",
            "type": "checkout.session.completed",
            "created": int(time.time()),
            "data": {
                "object": {
                    "id": "cs_test_1",
                    "subscription": "sub_123",
                    "payment_status": "paid",
                    "metadata": {"plan_id": created.plan.id, "user_id": "user-1"},
                }
            },
        }
    ).encode("utf-8")
    ack = _post_webhook(body, _signed(body))
    assert ack.received is True and ack.duplicate is False
    duplicate = _post_webhook(body, _signed(body))
    assert duplicate.duplicate is True
    return created.plan.id


def test_webhook_activates_plan_once(harness):
    plan_id = _activate_via_webhook(harness)

    assert harness.plan_repository.get_plan(plan_id).status == PlanStatus.ACTIVE
    assert len(harness.order_repository.orders) == 1


def test_webhook_without_signature_is_rejected(harness):
    body = json.dumps({"id": "evt_1", "type": "invoice.paid", "data": {"object": {}}}).encode("utf-8")

    with pytest.raises(HTTPException) as excinfo:
        _post_webhook(body)
    assert excinfo.value.status_code == 401
    assert harness.billing_repository.webhook_events == set()


def test_webhook_with_bad_body_is_rejected(harness):
    body = b"{not json"

    with pytest.raises(HTTPException) as excinfo:
        _post_webhook(body, _signed(body))
    assert excinfo.value.status_code == 422


def test_sandbox_accepts_unsigned_webhooks(harness, monkeypatch):
    monkeypatch.setattr(billing_routes, "get_billing_config", lambda: load_app_config(env={}))
    body = json.dumps({"id": "evt_local", "type": "customer.created", "data": {"object": {"id": "cus_1"}}})

    ack = _post_webhook(body.encode("utf-8"))

    assert ack.duplicate is False
    assert "evt_local" in harness.billing_repository.webhook_events


def test_subscription_routes(harness):
    _activate_via_webhook(harness)

    listed = billing_routes.list_subscriptions(current_user=CUSTOMER)
    assert [sub.id for sub in listed.subscriptions] == ["sub_123"]
    assert billing_routes.list_subscriptions(current_user=OTHER).subscriptions == []

    skipped = billing_routes.skip_next_delivery("sub_123", current_user=CUSTOMER)
    assert skipped.status.value == "paused"
    assert skipped.paused_until is not None

    with pytest.raises(HTTPException) as excinfo:
        billing_routes.skip_next_delivery("sub_123", current_user=OTHER)
    assert excinfo.value.status_code == 403

    synced = billing_routes.sync_subscriptions(current_user=CUSTOMER)
    assert [result.outcome for result in synced.results] == ["applied"]


def test_order_routes(harness):
    _activate_via_webhook(harness)
    order = next(iter(harness.order_repository.orders.values()))

    listed = orders_routes.list_orders(limit=20, current_user=CUSTOMER)
    assert [item.id for item in listed.orders] == [order.order_id]
    assert orders_routes.read_order(order.order_id, current_user=ADMIN).id == order.order_id
    with pytest.raises(HTTPException) as excinfo:
        orders_routes.read_order(order.order_id, current_user=OTHER)
    assert excinfo.value.status_code == 404

    updated = orders_routes.update_fulfillment(
        order.order_id,
        FulfillmentUpdateRequest(status=FulfillmentStatus.PROCESSING),
        admin_user=ADMIN,
    )
    assert updated.fulfillment_status == FulfillmentStatus.PROCESSING

    with pytest.raises(HTTPException) as excinfo:
        orders_routes.update_fulfillment(
            order.order_id,
            FulfillmentUpdateRequest(status=FulfillmentStatus.PENDING),
            admin_user=ADMIN,
        )
    assert excinfo.value.status_code == 422


def test_generate_orders_route_uses_payload_date(monkeypatch):
    seen = {}

    def fake_generate(as_of):
        seen["as_of"] = as_of
        return OrderGenerationReport(considered=0)

    monkeypatch.setattr(orders_routes, "generate_due_orders", fake_generate)
    as_of = datetime(2024, 5, 20, tzinfo=timezone.utc)

    report = orders_routes.generate_orders(
        GenerateOrdersRequest(as_of=as_of),
        admin_user=ADMIN,
    )

    assert report.considered == 0
    assert seen["as_of"] == as_of


def test_require_admin():
    assert require_admin(ADMIN) is ADMIN
    with pytest.raises(HTTPException) as excinfo:
        require_admin(CUSTOMER)
    assert excinfo.value.status_code == 403


def test_plan_cleanup_route_defaults_to_dry_run(monkeypatch):
    calls = []

    def fake_cleanup(*, dry_run):
        calls.append(dry_run)
        return PlanCleanupReport(checked=3, flagged=("plan-1",), deleted=0, dry_run=dry_run)

    monkeypatch.setattr(maintenance, "run_plan_cleanup_job", fake_cleanup)

    report = maintenance_routes.run_plan_cleanup(dry_run=True, admin_user=ADMIN)

    assert calls == [True]
    assert report.flagged == ("plan-1",)
