"""
Order lifecycle: creation, status and payment transitions, cancellation,
general updates, queries and per-order statistics.

The service holds no state between calls. Every operation reads the current
order from the repository, validates, and writes back; validation always runs
before any mutation.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, Iterator, List, Optional, Union

from dacite import DaciteError

from agency_api.db import OrderFilter, OrderRepository, is_valid_id
from agency_api.errors import (
    AlreadyCancelledError,
    DuplicateTransactionError,
    ForbiddenError,
    InvalidTransitionError,
    NotFoundError,
    TerminalStateError,
    ValidationError,
)
from agency_api.models import (
    CancelledBy,
    Order,
    OrderCancellation,
    OrderCustomer,
    OrderItem,
    OrderPayment,
    OrderPricing,
    OrderStatus,
    OrderTracking,
    PaymentStatus,
    from_document,
    to_document,
    utcnow,
)
from agency_api.schemas import CreateOrderRequest, OrderItemPayload

logger = logging.getLogger(__name__)

EMAIL_PATTERN = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")
DEFAULT_CANCEL_REASON = "No reason provided"
DEFAULT_PLAN_ITEM_NAME = "Service Plan"
RECENT_ORDERS_LIMIT = 10

SORTABLE_FIELDS = (
    "createdAt",
    "updatedAt",
    "orderNumber",
    "orderStatus",
    "pricing.grandTotal",
)
UPDATABLE_FIELDS = ("customer", "items", "pricing", "payment", "notes")
PROTECTED_FIELDS = (
    "_id",
    "id",
    "orderNumber",
    "createdAt",
    "updatedAt",
    "orderStatus",
    "cancellation",
)
# Partial sub-documents are merged into the stored ones, not substituted.
MERGED_SUBDOCUMENTS = ("customer", "pricing", "payment")
# Payment state only moves through transition_payment.
PAYMENT_LIFECYCLE_FIELDS = ("status", "paidAt")

# Used only when strict transitions are enabled. Cancellation is always
# reachable from a non-terminal state; terminal states are handled separately.
ALLOWED_TRANSITIONS = {
    OrderStatus.PENDING: {
        OrderStatus.CONFIRMED,
        OrderStatus.PROCESSING,
        OrderStatus.CANCELLED,
    },
    OrderStatus.CONFIRMED: {
        OrderStatus.PENDING,
        OrderStatus.PROCESSING,
        OrderStatus.CANCELLED,
    },
    OrderStatus.PROCESSING: {
        OrderStatus.CONFIRMED,
        OrderStatus.COMPLETED,
        OrderStatus.CANCELLED,
    },
}

USER_CANCELLABLE = (OrderStatus.PENDING, OrderStatus.CONFIRMED)


@dataclass
class ExplicitPricing:
    subtotal: Optional[float]
    grand_total: Optional[float]
    currency: Optional[str] = None
    tax: Optional[float] = None
    discount: Optional[float] = None
    shipping_cost: Optional[float] = None


@dataclass
class PlanRef:
    name: Optional[str]
    price: Union[float, str, None]
    description: Optional[str] = None


@dataclass
class PlanFlat:
    name: Optional[str]
    price: Union[float, str, None]


PricingSpec = Union[ExplicitPricing, PlanRef, PlanFlat]


@dataclass
class OrderPage:
    orders: List[Order]
    total_count: int
    skip: int
    limit: int

    @property
    def has_more(self) -> bool:
        return self.skip + len(self.orders) < self.total_count


@dataclass
class OrderStats:
    total_orders: int
    by_status: Dict[str, int]
    revenue: Dict[str, float]
    pending_payments: int
    cancelled_orders: int
    cancellation_rate: str
    recent_orders: List[Order] = field(default_factory=list)


def parse_price(value: Union[float, str, None]) -> float:
    """Read a plan price such as ``49``, ``"49.99"`` or ``"$1,200/mo"``."""
    if value is None or isinstance(value, bool):
        return 0.0
    if isinstance(value, (int, float)):
        return float(value)
    cleaned = re.sub(r"[^0-9.]", "", str(value))
    match = re.match(r"\d*\.?\d+", cleaned)
    return float(match.group(0)) if match else 0.0


def pricing_spec_from_request(request: CreateOrderRequest) -> Optional[PricingSpec]:
    if request.pricing is not None:
        p = request.pricing
        return ExplicitPricing(
            subtotal=p.subtotal,
            grand_total=p.grand_total,
            currency=p.currency,
            tax=p.tax,
            discount=p.discount,
            shipping_cost=p.shipping_cost,
        )
    if request.plan is not None:
        return PlanRef(
            name=request.plan.name,
            price=request.plan.price,
            description=request.plan.description,
        )
    if request.plan_price is not None and request.plan_price != "":
        return PlanFlat(name=request.plan_name, price=request.plan_price)
    return None


def resolve_pricing(spec: PricingSpec) -> OrderPricing:
    if isinstance(spec, ExplicitPricing):
        grand_total = spec.grand_total or 0.0
        return OrderPricing(
            subtotal=spec.subtotal if spec.subtotal is not None else grand_total,
            grand_total=grand_total,
            currency=spec.currency or "USD",
            tax=spec.tax,
            discount=spec.discount,
            shipping_cost=spec.shipping_cost,
        )
    price = parse_price(spec.price)
    return OrderPricing(subtotal=price, grand_total=price, currency="USD")


def plan_line_item(spec: PricingSpec, pricing: OrderPricing) -> Optional[OrderItem]:
    """The single line item implied by a plan, if the pricing came from one."""
    if isinstance(spec, ExplicitPricing):
        return None
    description = spec.description if isinstance(spec, PlanRef) else None
    return OrderItem(
        name=spec.name or DEFAULT_PLAN_ITEM_NAME,
        description=description,
        quantity=1,
        unit_price=pricing.grand_total,
        total_price=pricing.grand_total,
    )


def _number(value: Optional[float]) -> Union[int, float, None]:
    if isinstance(value, float) and value.is_integer():
        return int(value)
    return value


def _positive(value: Any) -> bool:
    return (
        isinstance(value, (int, float))
        and not isinstance(value, bool)
        and value > 0
    )


def _check_item_fields(name: Any, quantity: Any, unit_price: Any, total_price: Any) -> None:
    if not name or not all(_positive(v) for v in (quantity, unit_price, total_price)):
        raise ValidationError(
            "Each item must have name, quantity, unitPrice, and totalPrice"
        )


def _item_from_payload(payload: OrderItemPayload) -> OrderItem:
    _check_item_fields(
        payload.name, payload.quantity, payload.unit_price, payload.total_price
    )
    return OrderItem(
        name=payload.name,
        quantity=_number(payload.quantity),
        unit_price=payload.unit_price,
        total_price=payload.total_price,
        description=payload.description,
        product_id=payload.product_id,
        service_id=payload.service_id,
    )


def _check_email(email: Optional[str]) -> None:
    if not email or not EMAIL_PATTERN.match(email):
        raise ValidationError("Invalid email format")


def _check_items(items: List[OrderItem]) -> None:
    if not items:
        raise ValidationError("Order must contain at least one item")
    for item in items:
        _check_item_fields(item.name, item.quantity, item.unit_price, item.total_price)


def _parse_status(value: Optional[str]) -> OrderStatus:
    try:
        return OrderStatus(value)
    except ValueError:
        allowed = ", ".join(s.value for s in OrderStatus)
        raise ValidationError(f"Invalid order status. Must be one of: {allowed}") from None


def _parse_payment_status(value: Optional[str]) -> PaymentStatus:
    try:
        return PaymentStatus(value)
    except ValueError:
        allowed = ", ".join(s.value for s in PaymentStatus)
        raise ValidationError(f"Invalid payment status. Must be one of: {allowed}") from None


def to_tracking(order: Order) -> OrderTracking:
    return OrderTracking(
        order_id=order.id,
        order_number=order.order_number,
        name=order.customer.name,
        email=order.customer.email,
        phone=order.customer.phone,
        payment_status=order.payment.status,
        payment_method=order.payment.method,
        amount=order.pricing.grand_total,
        currency=order.pricing.currency,
        order_date=order.created_at,
        paid_at=order.payment.paid_at,
    )


class OrderService:
    """Validates and applies every change to an order."""

    def __init__(
        self,
        orders: OrderRepository,
        *,
        strict_transitions: bool = False,
        clock: Callable = utcnow,
    ):
        self._orders = orders
        self._strict = strict_transitions
        self._clock = clock

    # -- creation -------------------------------------------------------

    def create(
        self,
        request: CreateOrderRequest,
        *,
        actor_uid: Optional[str],
        is_admin: bool = False,
    ) -> Order:
        customer = request.customer
        if customer is None or not customer.name or not customer.email or not customer.phone:
            raise ValidationError(
                "Customer information (name, email, phone) is required"
            )

        spec = pricing_spec_from_request(request)
        if spec is None:
            raise ValidationError("Pricing information (pricing or plan) is required")
        pricing = resolve_pricing(spec)
        if pricing.grand_total <= 0:
            raise ValidationError("Grand total must be greater than 0")

        if request.items:
            items = [_item_from_payload(item) for item in request.items]
        else:
            synthesized = plan_line_item(spec, pricing)
            items = [synthesized] if synthesized else []
        if not items:
            raise ValidationError("Order must contain at least one item")

        _check_email(customer.email)

        payment = self._payment_from_request(request)
        if payment.transaction_id and self._orders.find_by_transaction_id(
            payment.transaction_id
        ):
            raise DuplicateTransactionError()

        customer_id = actor_uid
        if is_admin and customer.customer_id:
            customer_id = customer.customer_id

        now = self._clock()
        order = Order(
            order_number=self._next_order_number(now.year),
            customer=OrderCustomer(
                name=customer.name,
                email=customer.email,
                phone=customer.phone,
                address=customer.address,
                customer_id=customer_id,
            ),
            items=items,
            pricing=pricing,
            payment=payment,
            notes=request.notes or "",
            created_at=now,
            updated_at=now,
        )
        if payment.status == PaymentStatus.PAID:
            payment.paid_at = now
        order = self._orders.insert(order)
        logger.info("Created order %s (%s)", order.order_number, order.id)
        return order

    def _payment_from_request(self, request: CreateOrderRequest) -> OrderPayment:
        supplied = request.payment
        status = PaymentStatus.PENDING
        if supplied is not None and supplied.status:
            status = _parse_payment_status(supplied.status)
        return OrderPayment(
            status=status,
            method=(supplied.method if supplied else None) or request.payment_method,
            transaction_id=(supplied.transaction_id if supplied else None)
            or request.transaction_id,
            receiver_number=(supplied.receiver_number if supplied else None)
            or request.receiver_number,
        )

    def _next_order_number(self, year: int) -> str:
        sequence = self._orders.next_sequence(year)
        return f"ORD-{year}-{sequence:04d}"

    # -- reads ----------------------------------------------------------

    def _load(self, order_id: str) -> Order:
        if not is_valid_id(order_id):
            raise ValidationError("Invalid order ID")
        order = self._orders.get(order_id)
        if order is None:
            raise NotFoundError("Order not found")
        return order

    def get(self, order_id: str, *, actor_uid: Optional[str], is_admin: bool) -> Order:
        order = self._load(order_id)
        if not is_admin and not order.is_owned_by(actor_uid):
            raise ForbiddenError("You are not authorized to view this order")
        return order

    def get_by_number(
        self, order_number: str, *, actor_uid: Optional[str], is_admin: bool
    ) -> Order:
        order = self._orders.get_by_number(order_number)
        if order is None:
            raise NotFoundError("Order not found")
        if not is_admin and not order.is_owned_by(actor_uid):
            raise ForbiddenError("You are not authorized to view this order")
        return order

    def list(
        self,
        order_filter: OrderFilter,
        *,
        skip: int = 0,
        limit: int = 50,
        sort_by: str = "createdAt",
        sort_order: str = "desc",
    ) -> OrderPage:
        if sort_by not in SORTABLE_FIELDS:
            raise ValidationError(
                f"Invalid sort field. Must be one of: {', '.join(SORTABLE_FIELDS)}"
            )
        if sort_order not in ("asc", "desc"):
            raise ValidationError("Invalid sort order. Must be 'asc' or 'desc'")
        if skip < 0 or limit < 1:
            raise ValidationError("skip must be >= 0 and limit must be >= 1")
        if order_filter.order_status:
            _parse_status(order_filter.order_status)
        if order_filter.payment_status:
            _parse_payment_status(order_filter.payment_status)

        orders = self._orders.find(
            order_filter,
            skip=skip,
            limit=limit,
            sort_by=sort_by,
            descending=sort_order == "desc",
        )
        total = self._orders.count(order_filter)
        return OrderPage(orders=orders, total_count=total, skip=skip, limit=limit)

    def my_orders(
        self,
        uid: str,
        *,
        order_status: Optional[str] = None,
        payment_status: Optional[str] = None,
        skip: int = 0,
        limit: int = 50,
    ) -> OrderPage:
        order_filter = OrderFilter(
            customer_id=uid, order_status=order_status, payment_status=payment_status
        )
        return self.list(order_filter, skip=skip, limit=limit)

    def track_by_email(self, email: str) -> Iterator[OrderTracking]:
        """
        Tracking summaries for every order placed with ``email``, newest first.

        The email is validated eagerly; the returned iterator is lazy and can
        only be consumed once.
        """
        _check_email(email)
        return (to_tracking(order) for order in self._orders.iter_by_email(email))

    def order_stats(self) -> OrderStats:
        by_status = {status.value: 0 for status in OrderStatus}
        by_status.update(self._orders.count_by_status())
        total = self._orders.count()
        revenue = self._orders.revenue_by_currency(
            OrderFilter(
                order_status=OrderStatus.COMPLETED.value,
                payment_status=PaymentStatus.PAID.value,
            )
        )
        pending_payments = self._orders.count(
            OrderFilter(payment_status=PaymentStatus.PENDING.value)
        )
        cancelled = self._orders.count(OrderFilter(is_cancelled=True))
        rate = cancelled / total * 100 if total else 0.0
        recent = self._orders.find(OrderFilter(), limit=RECENT_ORDERS_LIMIT)
        return OrderStats(
            total_orders=total,
            by_status=by_status,
            revenue=revenue,
            pending_payments=pending_payments,
            cancelled_orders=cancelled,
            cancellation_rate=f"{rate:.2f}%",
            recent_orders=recent,
        )

    # -- transitions ----------------------------------------------------

    def transition_status(self, order_id: str, new_status: Optional[str]) -> Order:
        target = _parse_status(new_status)
        order = self._load(order_id)

        if order.is_cancelled:
            if target == OrderStatus.CANCELLED:
                return order
            raise InvalidTransitionError("Cannot change status of a cancelled order")
        if order.order_status == OrderStatus.COMPLETED:
            if target == OrderStatus.COMPLETED:
                return order
            raise TerminalStateError("Cannot change status of a completed order")
        if target == OrderStatus.CANCELLED:
            return self._apply_cancellation(order, CancelledBy.ADMIN, None)
        if (
            self._strict
            and target != order.order_status
            and target not in ALLOWED_TRANSITIONS.get(order.order_status, ())
        ):
            raise InvalidTransitionError(
                f"Cannot move order from {order.order_status.value} to {target.value}"
            )

        updated = self._orders.update(
            order.id, {"orderStatus": target.value, "updatedAt": self._clock()}
        )
        logger.info(
            "Order %s status %s -> %s",
            order.order_number,
            order.order_status.value,
            target.value,
        )
        return updated

    def transition_payment(
        self,
        order_id: str,
        payment_status: Optional[str],
        *,
        transaction_id: Optional[str] = None,
        method: Optional[str] = None,
    ) -> Order:
        target = _parse_payment_status(payment_status)
        order = self._load(order_id)
        if transaction_id:
            other = self._orders.find_by_transaction_id(transaction_id)
            if other is not None and other.id != order.id:
                raise DuplicateTransactionError()

        now = self._clock()
        changes: Dict[str, Any] = {"payment.status": target.value, "updatedAt": now}
        if target == PaymentStatus.PAID:
            changes["payment.paidAt"] = now
        if transaction_id:
            changes["payment.transactionId"] = transaction_id
        if method:
            changes["payment.method"] = method
        updated = self._orders.update(order.id, changes)
        logger.info(
            "Order %s payment %s -> %s",
            order.order_number,
            order.payment.status.value,
            target.value,
        )
        return updated

    def cancel(
        self,
        order_id: str,
        *,
        actor_uid: Optional[str],
        is_admin: bool,
        reason: Optional[str] = None,
    ) -> Order:
        """
        Cancel an order. A call with neither a uid nor admin privilege is an
        internal (system) cancellation and skips the ownership checks.
        """
        order = self._load(order_id)
        if order.is_cancelled:
            raise AlreadyCancelledError()
        if order.order_status == OrderStatus.COMPLETED:
            raise TerminalStateError("Cannot cancel a completed order")

        owner = order.is_owned_by(actor_uid)
        if not is_admin and actor_uid is not None:
            if not owner:
                raise ForbiddenError("You are not authorized to cancel this order")
            if order.order_status not in USER_CANCELLABLE:
                raise ForbiddenError("You can only cancel pending or confirmed orders")

        if is_admin:
            cancelled_by = CancelledBy.ADMIN
        elif owner:
            cancelled_by = CancelledBy.USER
        else:
            cancelled_by = CancelledBy.SYSTEM
        return self._apply_cancellation(order, cancelled_by, reason)

    def _apply_cancellation(
        self, order: Order, cancelled_by: CancelledBy, reason: Optional[str]
    ) -> Order:
        now = self._clock()
        cancellation = OrderCancellation(
            is_cancelled=True,
            cancelled_by=cancelled_by,
            reason=reason or DEFAULT_CANCEL_REASON,
            cancelled_at=now,
        )
        updated = self._orders.update(
            order.id,
            {
                "orderStatus": OrderStatus.CANCELLED.value,
                "cancellation": to_document(cancellation),
                "updatedAt": now,
            },
        )
        logger.info(
            "Order %s cancelled by %s", order.order_number, cancelled_by.value
        )
        return updated

    # -- general update / delete ----------------------------------------

    def update(self, order_id: str, fields: Optional[Dict[str, Any]]) -> Order:
        if not fields:
            raise ValidationError(
                "Request body is required and must contain update data"
            )
        order = self._load(order_id)
        if order.is_cancelled or order.order_status == OrderStatus.COMPLETED:
            raise TerminalStateError("Cannot update completed or cancelled orders")

        requested = {k: v for k, v in fields.items() if k not in PROTECTED_FIELDS}
        ignored = set(requested) - set(UPDATABLE_FIELDS)
        if ignored:
            logger.debug("Ignoring unsupported order fields: %s", sorted(ignored))
        changes = {k: v for k, v in requested.items() if k in UPDATABLE_FIELDS}
        if not changes:
            raise ValidationError("No updatable fields supplied")

        merged_doc = to_document(order)
        for key in MERGED_SUBDOCUMENTS:
            supplied = changes.get(key)
            if isinstance(supplied, dict) and isinstance(merged_doc.get(key), dict):
                if key == "payment":
                    supplied = {
                        k: v
                        for k, v in supplied.items()
                        if k not in PAYMENT_LIFECYCLE_FIELDS
                    }
                changes[key] = {**merged_doc[key], **supplied}
        merged_doc.update(changes)
        try:
            merged = from_document(Order, merged_doc)
        except (DaciteError, ValueError, TypeError) as exc:
            raise ValidationError("Invalid order data", detail=str(exc)) from exc

        customer = merged.customer
        if not customer.name or not customer.email or not customer.phone:
            raise ValidationError(
                "Customer information (name, email, phone) is required"
            )
        _check_email(customer.email)
        _check_items(merged.items)
        if not _positive(merged.pricing.grand_total):
            raise ValidationError("Grand total must be greater than 0")
        transaction_id = merged.payment.transaction_id
        if transaction_id and transaction_id != order.payment.transaction_id:
            other = self._orders.find_by_transaction_id(transaction_id)
            if other is not None and other.id != order.id:
                raise DuplicateTransactionError()

        normalized = to_document(merged)
        update = {key: normalized.get(key) for key in changes}
        update["updatedAt"] = self._clock()
        updated = self._orders.update(order.id, update)
        logger.info("Updated order %s fields %s", order.order_number, sorted(changes))
        return updated

    def delete(self, order_id: str) -> Order:
        order = self._load(order_id)
        self._orders.delete(order.id)
        logger.info("Deleted order %s", order.order_number)
        return order
