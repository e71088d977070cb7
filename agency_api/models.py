"""
Domain records persisted by the data layer.

Records are snake_case dataclasses; stored documents use camelCase keys and an
``_id`` primary key. ``to_document`` / ``from_document`` convert between the two.
"""

from __future__ import annotations

from dataclasses import asdict, dataclass, field, fields
from datetime import datetime, timezone
from enum import Enum, StrEnum
from typing import Any, List, Optional, Type, TypeVar, Union

from dacite import Config, from_dict

from agency_api.json_utils import convert_keys

T = TypeVar("T")


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class OrderStatus(StrEnum):
    PENDING = "pending"
    CONFIRMED = "confirmed"
    PROCESSING = "processing"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


class PaymentStatus(StrEnum):
    PENDING = "pending"
    PAID = "paid"
    FAILED = "failed"
    REFUNDED = "refunded"


class CancelledBy(StrEnum):
    USER = "user"
    ADMIN = "admin"
    SYSTEM = "system"


class ContactStatus(StrEnum):
    NEW = "new"
    READ = "read"
    REPLIED = "replied"
    ARCHIVED = "archived"


class UserRole(StrEnum):
    ADMIN = "admin"
    USER = "user"


@dataclass
class OrderCustomer:
    name: str
    email: str
    phone: str
    address: Optional[str] = None
    customer_id: Optional[str] = None


@dataclass
class OrderItem:
    name: str
    quantity: int
    unit_price: float
    total_price: float
    description: Optional[str] = None
    product_id: Optional[str] = None
    service_id: Optional[str] = None


@dataclass
class OrderPricing:
    subtotal: float
    grand_total: float
    currency: str = "USD"
    tax: Optional[float] = None
    discount: Optional[float] = None
    shipping_cost: Optional[float] = None


@dataclass
class OrderPayment:
    status: PaymentStatus = PaymentStatus.PENDING
    method: Optional[str] = None
    transaction_id: Optional[str] = None
    receiver_number: Optional[str] = None
    paid_at: Optional[datetime] = None


@dataclass
class OrderCancellation:
    is_cancelled: bool = False
    cancelled_by: Optional[CancelledBy] = None
    reason: Optional[str] = None
    cancelled_at: Optional[datetime] = None


@dataclass
class Order:
    order_number: str
    customer: OrderCustomer
    items: List[OrderItem]
    pricing: OrderPricing
    order_status: OrderStatus = OrderStatus.PENDING
    payment: OrderPayment = field(default_factory=OrderPayment)
    cancellation: OrderCancellation = field(default_factory=OrderCancellation)
    notes: str = ""
    created_at: datetime = field(default_factory=utcnow)
    updated_at: Optional[datetime] = None
    id: Optional[str] = None

    @property
    def is_cancelled(self) -> bool:
        return (
            self.cancellation.is_cancelled
            or self.order_status == OrderStatus.CANCELLED
        )

    def is_owned_by(self, uid: Optional[str]) -> bool:
        return bool(uid) and self.customer.customer_id == uid


@dataclass
class OrderTracking:
    """Lightweight public projection of an order."""

    order_id: str
    order_number: str
    name: str
    email: str
    phone: str
    payment_status: PaymentStatus
    payment_method: Optional[str]
    amount: float
    currency: str
    order_date: datetime
    paid_at: Optional[datetime] = None


@dataclass
class PricingPlan:
    # Older plans were stored with ``title`` instead of ``name``.
    name: Optional[str] = None
    price: Union[float, str, None] = None
    title: Optional[str] = None
    features: List[str] = field(default_factory=list)
    description: Optional[str] = None
    is_popular: bool = False
    created_at: datetime = field(default_factory=utcnow)
    updated_at: Optional[datetime] = None
    id: Optional[str] = None


@dataclass
class Contact:
    name: str
    email: str
    phone: str
    subject: str
    message: str
    status: ContactStatus = ContactStatus.NEW
    created_at: datetime = field(default_factory=utcnow)
    read_at: Optional[datetime] = None
    replied_at: Optional[datetime] = None
    id: Optional[str] = None


@dataclass
class UserProfile:
    firebase_uid: str
    email: Optional[str] = None
    display_name: str = ""
    phone_number: str = ""
    photo_url: str = ""
    role: UserRole = UserRole.USER
    status: str = "active"
    terms_accepted: bool = True
    created_at: datetime = field(default_factory=utcnow)
    updated_at: Optional[datetime] = None
    id: Optional[str] = None


_DACITE_CONFIG = Config(cast=[Enum], check_types=False)


def _clean(value: Any) -> Any:
    if isinstance(value, dict):
        return {k: _clean(v) for k, v in value.items() if v is not None}
    if isinstance(value, list):
        return [_clean(v) for v in value]
    if isinstance(value, Enum):
        return value.value
    return value


def to_document(record: Any) -> dict:
    """Serialize a record into its stored (camelCase) shape."""
    data = asdict(record)
    record_id = data.pop("id", None)
    doc = convert_keys(_clean(data), "snake_to_camel")
    if record_id is not None:
        doc["_id"] = record_id
    return doc


def from_document(data_class: Type[T], doc: dict) -> T:
    """Hydrate a record from a stored document (or a request payload)."""
    data = convert_keys(dict(doc), "camel_to_snake")
    if "_id" in data:
        data["id"] = str(data.pop("_id"))
    known = {f.name for f in fields(data_class)}
    data = {k: v for k, v in data.items() if k in known}
    return from_dict(data_class=data_class, data=data, config=_DACITE_CONFIG)
