"""API routes for meal plans."""
from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query, status

from ..errors import ServiceError
from ..schemas.billing import CheckoutSessionResponse
from ..schemas.plans import (
    PlanClaimRequest,
    PlanCreateRequest,
    PlanCreateResponse,
    PlanItemsUpdateRequest,
    PlanOut,
)
from ..services.billing import get_billing_service
from ..services.plans import get_plan_service
from .dependencies import get_current_user, get_optional_current_user

router = APIRouter(prefix="/api/plans", tags=["plans"])


def _user_id(user) -> Optional[str]:
    return str(user.id) if user is not None else None


@router.post("", response_model=PlanCreateResponse, status_code=status.HTTP_201_CREATED)
def create_plan(
    payload: PlanCreateRequest,
    *,
    current_user=Depends(get_optional_current_user),
) -> PlanCreateResponse:
    """Create a draft plan; anonymous callers get a one-time claim token."""

    service = get_plan_service()
    try:
        created = service.create_plan(
            user_id=_user_id(current_user),
            dogs=payload.dogs,
            delivery_zipcode=payload.delivery_zipcode,
        )
    except ServiceError as exc:
        raise exc.to_http_exception() from exc
    return PlanCreateResponse(plan=PlanOut.from_plan(created.plan), claim_token=created.claim_token)


@router.get("/{plan_id}", response_model=PlanOut)
def read_plan(
    plan_id: str,
    claim_token: Optional[str] = Query(default=None, alias="claimToken"),
    *,
    current_user=Depends(get_optional_current_user),
) -> PlanOut:
    service = get_plan_service()
    try:
        plan = service.get_plan_for_viewer(plan_id, user_id=_user_id(current_user), claim_token=claim_token)
    except ServiceError as exc:
        raise exc.to_http_exception() from exc
    return PlanOut.from_plan(plan)


@router.put("/{plan_id}/items", response_model=PlanOut)
def update_plan_items(
    plan_id: str,
    payload: PlanItemsUpdateRequest,
    *,
    current_user=Depends(get_current_user),
) -> PlanOut:
    service = get_plan_service()
    try:
        plan = service.update_items(plan_id, user_id=str(current_user.id), dogs=payload.dogs)
    except ServiceError as exc:
        raise exc.to_http_exception() from exc
    return PlanOut.from_plan(plan)


@router.post("/{plan_id}/checkout", response_model=CheckoutSessionResponse)
def start_checkout(
    plan_id: str,
    *,
    current_user=Depends(get_current_user),
) -> CheckoutSessionResponse:
    service = get_billing_service()
    try:
        session = service.create_checkout(
            plan_id,
            user_id=str(current_user.id),
            customer_email=getattr(current_user, "email", None),
        )
    except ServiceError as exc:
        raise exc.to_http_exception() from exc
    return CheckoutSessionResponse.from_checkout(session)


@router.post("/{plan_id}/claim", response_model=PlanOut)
def claim_plan(
    plan_id: str,
    payload: PlanClaimRequest,
    *,
    current_user=Depends(get_optional_current_user),
) -> PlanOut:
    if current_user is None:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Sign in to claim this plan")

    service = get_plan_service()
    try:
        plan = service.claim(plan_id, token=payload.claim_token, user_id=str(current_user.id))
    except ServiceError as exc:
        raise exc.to_http_exception() from exc
    return PlanOut.from_plan(plan)


@router.post("/{plan_id}/cancel", response_model=PlanOut)
def cancel_plan(
    plan_id: str,
    *,
    current_user=Depends(get_current_user),
) -> PlanOut:
    service = get_plan_service()
    try:
        plan = service.cancel(plan_id, user_id=str(current_user.id))
    except ServiceError as exc:
        raise exc.to_http_exception() from exc
    return PlanOut.from_plan(plan)
