"""API routes for fulfillment orders."""
from __future__ import annotations

from datetime import datetime, timezone
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query, status

from ..errors import ServiceError
from ..orders.service import OrderGenerationReport
from ..schemas.orders import (
    FulfillmentUpdateRequest,
    GenerateOrdersRequest,
    OrderListResponse,
    OrderOut,
)
from ..services.orders import generate_due_orders, get_order_service
from .dependencies import get_current_user, require_admin

router = APIRouter(tags=["orders"])


@router.get("/api/orders", response_model=OrderListResponse)
def list_orders(
    limit: int = Query(default=20, ge=1, le=100),
    *,
    current_user=Depends(get_current_user),
) -> OrderListResponse:
    service = get_order_service()
    try:
        orders = service.list_orders(str(current_user.id), limit=limit)
    except ServiceError as exc:
        raise exc.to_http_exception() from exc
    return OrderListResponse(orders=[OrderOut.from_order(order) for order in orders])


@router.get("/api/orders/{order_id}", response_model=OrderOut)
def read_order(order_id: str, *, current_user=Depends(get_current_user)) -> OrderOut:
    service = get_order_service()
    try:
        order = service.get_order(order_id)
    except ServiceError as exc:
        raise exc.to_http_exception() from exc
    if order.user_id != str(current_user.id) and getattr(current_user, "role", None) != "admin":
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Order not found")
    return OrderOut.from_order(order)


@router.post("/api/admin/orders/{order_id}/fulfillment", response_model=OrderOut)
def update_fulfillment(
    order_id: str,
    payload: FulfillmentUpdateRequest,
    *,
    admin_user=Depends(require_admin),
) -> OrderOut:
    service = get_order_service()
    try:
        order = service.advance_fulfillment(order_id, payload.status, tracking_url=payload.tracking_url)
    except ServiceError as exc:
        raise exc.to_http_exception() from exc
    return OrderOut.from_order(order)


@router.post("/api/admin/orders/generate", response_model=OrderGenerationReport)
def generate_orders(
    payload: Optional[GenerateOrdersRequest] = None,
    *,
    admin_user=Depends(require_admin),
) -> OrderGenerationReport:
    as_of = (payload.as_of if payload else None) or datetime.now(timezone.utc)
    try:
        return generate_due_orders(as_of)
    except ServiceError as exc:
        raise exc.to_http_exception() from exc
