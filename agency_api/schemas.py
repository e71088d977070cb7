"""
Pydantic schemas for the agency API.

Request bodies are deliberately lenient (mostly optional fields): the services
validate them in a fixed order and report the first problem as a 400, which is
what the frontend expects, rather than FastAPI's field-by-field 422.
"""

from __future__ import annotations

from typing import Any, Dict, List, Optional, Union

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class CamelModel(BaseModel):
    model_config = ConfigDict(
        alias_generator=to_camel, populate_by_name=True, extra="ignore"
    )


class CustomerPayload(CamelModel):
    name: Optional[str] = None
    email: Optional[str] = None
    phone: Optional[str] = None
    address: Optional[str] = None
    customer_id: Optional[str] = None


class OrderItemPayload(CamelModel):
    name: Optional[str] = None
    description: Optional[str] = None
    quantity: Optional[float] = None
    unit_price: Optional[float] = None
    total_price: Optional[float] = None
    product_id: Optional[str] = None
    service_id: Optional[str] = None


class PricingPayload(CamelModel):
    subtotal: Optional[float] = None
    grand_total: Optional[float] = None
    currency: Optional[str] = None
    tax: Optional[float] = None
    discount: Optional[float] = None
    shipping_cost: Optional[float] = None


class PlanPayload(CamelModel):
    name: Optional[str] = None
    price: Union[float, str, None] = None
    description: Optional[str] = None


class PaymentPayload(CamelModel):
    status: Optional[str] = None
    method: Optional[str] = None
    transaction_id: Optional[str] = None
    receiver_number: Optional[str] = None


class CreateOrderRequest(CamelModel):
    customer: Optional[CustomerPayload] = None
    items: Optional[List[OrderItemPayload]] = None
    pricing: Optional[PricingPayload] = None
    plan: Optional[PlanPayload] = None
    plan_name: Optional[str] = None
    plan_price: Union[float, str, None] = None
    payment: Optional[PaymentPayload] = None
    payment_method: Optional[str] = None
    transaction_id: Optional[str] = None
    receiver_number: Optional[str] = None
    notes: Optional[str] = None


class UpdateOrderStatusRequest(CamelModel):
    order_status: Optional[str] = None


class UpdatePaymentRequest(CamelModel):
    payment_status: Optional[str] = None
    transaction_id: Optional[str] = None
    payment_method: Optional[str] = None


class CancelOrderRequest(CamelModel):
    reason: Optional[str] = None


class LoginRequest(CamelModel):
    id_token: Optional[str] = None


class UpdateUserRequest(CamelModel):
    email: Optional[str] = None
    display_name: Optional[str] = None
    phone_number: Optional[str] = None
    photo_url: Optional[str] = Field(default=None, alias="photoURL")
    password: Optional[str] = None


class CreateUserRequest(CamelModel):
    uid: Optional[str] = None
    email: Optional[str] = None
    password: Optional[str] = None
    display_name: Optional[str] = None
    phone_number: Optional[str] = None
    photo_url: Optional[str] = Field(default=None, alias="photoURL")
    disabled: Optional[bool] = None
    custom_claims: Optional[Dict[str, Any]] = None


class SetRoleRequest(CamelModel):
    uid: Optional[str] = None
    role: Optional[str] = None


class PricingPlanRequest(CamelModel):
    name: Optional[str] = None
    price: Union[float, str, None] = None
    features: Optional[List[str]] = None
    description: Optional[str] = None
    is_popular: Optional[bool] = None


class ContactRequest(CamelModel):
    name: Optional[str] = None
    email: Optional[str] = None
    phone: Optional[str] = None
    subject: Optional[str] = None
    message: Optional[str] = None


class ContactStatusRequest(CamelModel):
    status: Optional[str] = None


class DeleteContactsRequest(CamelModel):
    ids: Optional[List[str]] = None


class Pagination(CamelModel):
    skip: int
    limit: int
    has_more: bool


class ApiResponse(CamelModel):
    """Response envelope shared by every endpoint."""

    success: bool = True
    message: Optional[str] = None
    data: Any = None
    count: Optional[int] = None
    total_count: Optional[int] = None
    pagination: Optional[Pagination] = None
    status_counts: Optional[Dict[str, int]] = None
    deleted_count: Optional[int] = None
    error: Optional[str] = None
