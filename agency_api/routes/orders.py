"""
Order endpoints.

Literal paths are registered before ``/{order_id}`` so they are never captured
by the id route.
"""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Any, Dict, Optional

from fastapi import APIRouter, Body, Depends, Query

from agency_api.auth import AuthContext, require_admin, require_caller, require_user
from agency_api.db import OrderFilter
from agency_api.dependencies import get_order_service
from agency_api.orders import OrderService
from agency_api.routes.common import as_utc, camel, page, present, present_all, respond
from agency_api.schemas import (
    ApiResponse,
    CancelOrderRequest,
    CreateOrderRequest,
    UpdateOrderStatusRequest,
    UpdatePaymentRequest,
)

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/orders", tags=["orders"])

_RESPONSE = dict(response_model=ApiResponse, response_model_exclude_none=True)


@router.post("", status_code=201, **_RESPONSE)
def create_order(
    payload: CreateOrderRequest,
    caller: AuthContext = Depends(require_user),
    service: OrderService = Depends(get_order_service),
):
    order = service.create(payload, actor_uid=caller.uid, is_admin=caller.is_admin)
    return respond(present(order), message="Order created successfully")


@router.get("/track/{email}", **_RESPONSE)
def track_orders(email: str, service: OrderService = Depends(get_order_service)):
    """Public lookup of every order placed with an email address."""
    tracking = [camel(summary) for summary in service.track_by_email(email)]
    return respond(tracking, count=len(tracking))


@router.get("/my-orders", **_RESPONSE)
def my_orders(
    order_status: Optional[str] = Query(None, alias="orderStatus"),
    payment_status: Optional[str] = Query(None, alias="paymentStatus"),
    skip: int = Query(0),
    limit: int = Query(50),
    caller: AuthContext = Depends(require_user),
    service: OrderService = Depends(get_order_service),
):
    result = service.my_orders(
        caller.uid,
        order_status=order_status,
        payment_status=payment_status,
        skip=skip,
        limit=limit,
    )
    return respond(
        present_all(result.orders),
        count=len(result.orders),
        total_count=result.total_count,
        pagination=page(skip, limit, len(result.orders), result.total_count),
    )


@router.get("/stats", **_RESPONSE)
def order_stats(
    _: AuthContext = Depends(require_admin),
    service: OrderService = Depends(get_order_service),
):
    stats = service.order_stats()
    data = camel(stats)
    data["recentOrders"] = present_all(stats.recent_orders)
    return respond(data)


@router.get("/number/{order_number}", **_RESPONSE)
def get_order_by_number(
    order_number: str,
    caller: AuthContext = Depends(require_admin),
    service: OrderService = Depends(get_order_service),
):
    order = service.get_by_number(
        order_number, actor_uid=caller.uid, is_admin=caller.is_admin
    )
    return respond(present(order))


@router.get("", **_RESPONSE)
def list_orders(
    order_status: Optional[str] = Query(None, alias="orderStatus"),
    payment_status: Optional[str] = Query(None, alias="paymentStatus"),
    is_cancelled: Optional[bool] = Query(None, alias="isCancelled"),
    customer_id: Optional[str] = Query(None, alias="customerId"),
    start_date: Optional[datetime] = Query(None, alias="startDate"),
    end_date: Optional[datetime] = Query(None, alias="endDate"),
    skip: int = Query(0),
    limit: int = Query(50),
    sort_by: str = Query("createdAt", alias="sortBy"),
    sort_order: str = Query("desc", alias="sortOrder"),
    _: AuthContext = Depends(require_admin),
    service: OrderService = Depends(get_order_service),
):
    order_filter = OrderFilter(
        order_status=order_status,
        payment_status=payment_status,
        is_cancelled=is_cancelled,
        customer_id=customer_id,
        created_from=as_utc(start_date),
        created_to=as_utc(end_date),
    )
    result = service.list(
        order_filter, skip=skip, limit=limit, sort_by=sort_by, sort_order=sort_order
    )
    return respond(
        present_all(result.orders),
        count=len(result.orders),
        total_count=result.total_count,
        pagination=page(skip, limit, len(result.orders), result.total_count),
    )


@router.get("/{order_id}/status", **_RESPONSE)
@router.get("/{order_id}", **_RESPONSE)
def get_order(
    order_id: str,
    caller: AuthContext = Depends(require_caller),
    service: OrderService = Depends(get_order_service),
):
    order = service.get(order_id, actor_uid=caller.uid, is_admin=caller.is_admin)
    return respond(present(order))


@router.patch("/{order_id}/cancel", **_RESPONSE)
def cancel_order(
    order_id: str,
    payload: Optional[CancelOrderRequest] = Body(None),
    caller: AuthContext = Depends(require_caller),
    service: OrderService = Depends(get_order_service),
):
    order = service.cancel(
        order_id,
        actor_uid=caller.uid,
        is_admin=caller.is_admin,
        reason=payload.reason if payload else None,
    )
    return respond(present(order), message="Order cancelled successfully")


@router.patch("/{order_id}/status", **_RESPONSE)
def update_order_status(
    order_id: str,
    payload: UpdateOrderStatusRequest,
    _: AuthContext = Depends(require_admin),
    service: OrderService = Depends(get_order_service),
):
    order = service.transition_status(order_id, payload.order_status)
    return respond(present(order), message="Order status updated successfully")


@router.patch("/{order_id}/payment", **_RESPONSE)
def update_payment_status(
    order_id: str,
    payload: UpdatePaymentRequest,
    _: AuthContext = Depends(require_admin),
    service: OrderService = Depends(get_order_service),
):
    order = service.transition_payment(
        order_id,
        payload.payment_status,
        transaction_id=payload.transaction_id,
        method=payload.payment_method,
    )
    return respond(present(order), message="Payment status updated successfully")


@router.put("/{order_id}", **_RESPONSE)
def update_order(
    order_id: str,
    fields: Optional[Dict[str, Any]] = Body(None),
    _: AuthContext = Depends(require_admin),
    service: OrderService = Depends(get_order_service),
):
    order = service.update(order_id, fields)
    return respond(present(order), message="Order updated successfully")


@router.delete("/{order_id}", **_RESPONSE)
def delete_order(
    order_id: str,
    _: AuthContext = Depends(require_admin),
    service: OrderService = Depends(get_order_service),
):
    order = service.delete(order_id)
    return respond(
        {"_id": order.id, "orderNumber": order.order_number},
        message="Order deleted successfully",
    )
