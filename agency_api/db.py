"""
Database abstraction: per-entity repository interfaces and an in-memory
implementation used for development and tests.

The MongoDB implementation lives in ``agency_api.mongo``. Both store the same
camelCase documents, so records round-trip identically through either one.
"""

from __future__ import annotations

import copy
import re
import threading
from collections import defaultdict
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Dict, Iterable, Iterator, List, Optional, Protocol

from bson import ObjectId

from agency_api.errors import ConflictError, DuplicateTransactionError
from agency_api.models import (
    Contact,
    Order,
    PricingPlan,
    UserProfile,
    from_document,
    to_document,
    utcnow,
)

ORDER_NUMBER_PATTERN = re.compile(r"^ORD-(\d{4})-(\d+)$")
INACTIVE_CATALOG_STATUSES = ("inactive", "draft")


def new_id() -> str:
    return str(ObjectId())


def is_valid_id(value: Optional[str]) -> bool:
    return bool(value) and ObjectId.is_valid(value)


@dataclass
class OrderFilter:
    """Order query; ``created_to`` is inclusive, ``created_before`` exclusive."""

    order_status: Optional[str] = None
    payment_status: Optional[str] = None
    is_cancelled: Optional[bool] = None
    customer_id: Optional[str] = None
    customer_email: Optional[str] = None
    created_from: Optional[datetime] = None
    created_to: Optional[datetime] = None
    created_before: Optional[datetime] = None


@dataclass
class ContactFilter:
    status: Optional[str] = None
    created_from: Optional[datetime] = None
    created_to: Optional[datetime] = None


class OrderRepository(Protocol):
    def insert(self, order: Order) -> Order:
        ...

    def get(self, order_id: str) -> Optional[Order]:
        ...

    def get_by_number(self, order_number: str) -> Optional[Order]:
        ...

    def find_by_transaction_id(self, transaction_id: str) -> Optional[Order]:
        ...

    def update(self, order_id: str, changes: Dict[str, Any]) -> Optional[Order]:
        """Apply ``changes`` (dotted camelCase paths) and return the new state."""
        ...

    def delete(self, order_id: str) -> bool:
        ...

    def find(
        self,
        order_filter: OrderFilter,
        *,
        skip: int = 0,
        limit: Optional[int] = None,
        sort_by: str = "createdAt",
        descending: bool = True,
    ) -> List[Order]:
        ...

    def count(self, order_filter: Optional[OrderFilter] = None) -> int:
        ...

    def iter_by_email(self, email: str) -> Iterator[Order]:
        """Orders for ``email``, newest first, evaluated lazily."""
        ...

    def next_sequence(self, year: int) -> int:
        """Atomically allocate the next order sequence number for ``year``."""
        ...

    def sum_grand_total(self, order_filter: OrderFilter) -> float:
        ...

    def sum_item_quantities(self, order_filter: OrderFilter) -> Dict[str, int]:
        """Line-item quantity totals grouped by item name."""
        ...

    def count_by_status(self) -> Dict[str, int]:
        ...

    def revenue_by_currency(self, order_filter: OrderFilter) -> Dict[str, float]:
        ...


class UserRepository(Protocol):
    def get(self, uid: str) -> Optional[UserProfile]:
        ...

    def upsert(
        self,
        uid: str,
        changes: Dict[str, Any],
        on_insert: Optional[Dict[str, Any]] = None,
    ) -> UserProfile:
        ...

    def set_role(self, uid: str, role: str) -> bool:
        ...

    def delete(self, uid: str) -> bool:
        ...

    def list(self, limit: int = 100) -> List[UserProfile]:
        ...

    def count(self) -> int:
        ...


class PricingPlanRepository(Protocol):
    def list(self) -> List[PricingPlan]:
        ...

    def get(self, plan_id: str) -> Optional[PricingPlan]:
        ...

    def insert(self, plan: PricingPlan) -> PricingPlan:
        ...

    def update(self, plan_id: str, changes: Dict[str, Any]) -> Optional[PricingPlan]:
        ...

    def delete(self, plan_id: str) -> bool:
        ...


class ContactRepository(Protocol):
    def insert(self, contact: Contact) -> Contact:
        ...

    def get(self, contact_id: str) -> Optional[Contact]:
        ...

    def find(
        self,
        contact_filter: ContactFilter,
        *,
        skip: int = 0,
        limit: Optional[int] = None,
        sort_by: str = "createdAt",
        descending: bool = True,
    ) -> List[Contact]:
        ...

    def count(self, contact_filter: Optional[ContactFilter] = None) -> int:
        ...

    def update(self, contact_id: str, changes: Dict[str, Any]) -> Optional[Contact]:
        ...

    def delete(self, contact_id: str) -> bool:
        ...

    def delete_many(self, contact_ids: Iterable[str]) -> int:
        ...

    def count_by_status(self) -> Dict[str, int]:
        ...


class CatalogRepository(Protocol):
    def count_active(self) -> int:
        """Products and services that are neither inactive nor drafts."""
        ...


class Database(Protocol):
    """One storage handle per process, opened and closed by the app lifespan."""

    orders: OrderRepository
    users: UserRepository
    pricing_plans: PricingPlanRepository
    contacts: ContactRepository
    catalog: CatalogRepository

    def close(self) -> None:
        ...


def get_path(doc: dict, path: str) -> Any:
    value: Any = doc
    for part in path.split("."):
        if not isinstance(value, dict):
            return None
        value = value.get(part)
    return value


def set_path(doc: dict, path: str, value: Any) -> None:
    parts = path.split(".")
    target = doc
    for part in parts[:-1]:
        target = target.setdefault(part, {})
    if value is None:
        target.pop(parts[-1], None)
    else:
        target[parts[-1]] = value


def parse_order_sequence(order_number: str, year: int) -> Optional[int]:
    match = ORDER_NUMBER_PATTERN.match(order_number or "")
    if not match or int(match.group(1)) != year:
        return None
    return int(match.group(2))


def _in_range(
    value: Optional[datetime],
    start: Optional[datetime],
    end: Optional[datetime],
    before: Optional[datetime] = None,
) -> bool:
    if start is None and end is None and before is None:
        return True
    if value is None:
        return False
    if start is not None and value < start:
        return False
    if end is not None and value > end:
        return False
    if before is not None and value >= before:
        return False
    return True


def order_matches(doc: dict, order_filter: Optional[OrderFilter]) -> bool:
    if order_filter is None:
        return True
    f = order_filter
    if f.order_status and doc.get("orderStatus") != f.order_status:
        return False
    if f.payment_status and get_path(doc, "payment.status") != f.payment_status:
        return False
    if f.is_cancelled is not None and bool(
        get_path(doc, "cancellation.isCancelled")
    ) != f.is_cancelled:
        return False
    if f.customer_id and get_path(doc, "customer.customerId") != f.customer_id:
        return False
    if f.customer_email and get_path(doc, "customer.email") != f.customer_email:
        return False
    return _in_range(doc.get("createdAt"), f.created_from, f.created_to, f.created_before)


def contact_matches(doc: dict, contact_filter: Optional[ContactFilter]) -> bool:
    if contact_filter is None:
        return True
    if contact_filter.status and doc.get("status") != contact_filter.status:
        return False
    return _in_range(
        doc.get("createdAt"), contact_filter.created_from, contact_filter.created_to
    )


def _sorted(docs: List[dict], sort_by: str, descending: bool) -> List[dict]:
    present = [d for d in docs if get_path(d, sort_by) is not None]
    missing = [d for d in docs if get_path(d, sort_by) is None]
    present.sort(key=lambda d: get_path(d, sort_by), reverse=descending)
    # Missing values sort lowest, as in MongoDB.
    return present + missing if descending else missing + present


def _page(docs: List[dict], skip: int, limit: Optional[int]) -> List[dict]:
    docs = docs[skip:] if skip else docs
    return docs[:limit] if limit else docs


class _InMemoryCollection:
    """Shared storage for the in-memory repositories."""

    def __init__(self, lock: threading.RLock):
        self._lock = lock
        self.docs: Dict[str, dict] = {}

    def insert(self, doc: dict) -> dict:
        with self._lock:
            doc = copy.deepcopy(doc)
            doc.setdefault("_id", new_id())
            self.docs[doc["_id"]] = doc
            return copy.deepcopy(doc)

    def get(self, doc_id: str) -> Optional[dict]:
        with self._lock:
            doc = self.docs.get(doc_id)
            return copy.deepcopy(doc) if doc else None

    def find_one(self, predicate) -> Optional[dict]:
        with self._lock:
            for doc in self.docs.values():
                if predicate(doc):
                    return copy.deepcopy(doc)
        return None

    def select(self, predicate) -> List[dict]:
        with self._lock:
            return [copy.deepcopy(d) for d in self.docs.values() if predicate(d)]

    def update(self, doc_id: str, changes: Dict[str, Any]) -> Optional[dict]:
        with self._lock:
            doc = self.docs.get(doc_id)
            if doc is None:
                return None
            for path, value in changes.items():
                set_path(doc, path, copy.deepcopy(value))
            return copy.deepcopy(doc)

    def delete(self, doc_id: str) -> bool:
        with self._lock:
            return self.docs.pop(doc_id, None) is not None

    def clear(self) -> None:
        with self._lock:
            self.docs.clear()


class InMemoryOrderRepository:
    def __init__(self, lock: threading.RLock):
        self._lock = lock
        self._orders = _InMemoryCollection(lock)
        self._counters: Dict[int, int] = {}

    def _check_unique(self, doc: dict, exclude_id: Optional[str] = None) -> None:
        transaction_id = get_path(doc, "payment.transactionId")
        for other in self._orders.docs.values():
            if other["_id"] == exclude_id:
                continue
            if other.get("orderNumber") == doc.get("orderNumber"):
                raise ConflictError(
                    f"Order number {doc.get('orderNumber')} already exists"
                )
            if transaction_id and get_path(other, "payment.transactionId") == transaction_id:
                raise DuplicateTransactionError()

    def insert(self, order: Order) -> Order:
        with self._lock:
            doc = to_document(order)
            self._check_unique(doc)
            return from_document(Order, self._orders.insert(doc))

    def get(self, order_id: str) -> Optional[Order]:
        doc = self._orders.get(order_id)
        return from_document(Order, doc) if doc else None

    def get_by_number(self, order_number: str) -> Optional[Order]:
        doc = self._orders.find_one(lambda d: d.get("orderNumber") == order_number)
        return from_document(Order, doc) if doc else None

    def find_by_transaction_id(self, transaction_id: str) -> Optional[Order]:
        doc = self._orders.find_one(
            lambda d: get_path(d, "payment.transactionId") == transaction_id
        )
        return from_document(Order, doc) if doc else None

    def update(self, order_id: str, changes: Dict[str, Any]) -> Optional[Order]:
        with self._lock:
            current = self._orders.docs.get(order_id)
            if current is None:
                return None
            candidate = copy.deepcopy(current)
            for path, value in changes.items():
                set_path(candidate, path, value)
            self._check_unique(candidate, exclude_id=order_id)
            doc = self._orders.update(order_id, changes)
            return from_document(Order, doc)

    def delete(self, order_id: str) -> bool:
        return self._orders.delete(order_id)

    def find(
        self,
        order_filter: OrderFilter,
        *,
        skip: int = 0,
        limit: Optional[int] = None,
        sort_by: str = "createdAt",
        descending: bool = True,
    ) -> List[Order]:
        docs = self._orders.select(lambda d: order_matches(d, order_filter))
        docs = _page(_sorted(docs, sort_by, descending), skip, limit)
        return [from_document(Order, d) for d in docs]

    def count(self, order_filter: Optional[OrderFilter] = None) -> int:
        return len(self._orders.select(lambda d: order_matches(d, order_filter)))

    def iter_by_email(self, email: str) -> Iterator[Order]:
        docs = self._orders.select(lambda d: get_path(d, "customer.email") == email)
        for doc in _sorted(docs, "createdAt", True):
            yield from_document(Order, doc)

    def next_sequence(self, year: int) -> int:
        with self._lock:
            if year not in self._counters:
                existing = [
                    parse_order_sequence(d.get("orderNumber", ""), year)
                    for d in self._orders.docs.values()
                ]
                self._counters[year] = max([s for s in existing if s] or [0])
            self._counters[year] += 1
            return self._counters[year]

    def sum_grand_total(self, order_filter: OrderFilter) -> float:
        docs = self._orders.select(lambda d: order_matches(d, order_filter))
        return float(sum(get_path(d, "pricing.grandTotal") or 0 for d in docs))

    def sum_item_quantities(self, order_filter: OrderFilter) -> Dict[str, int]:
        totals: Dict[str, int] = defaultdict(int)
        for doc in self._orders.select(lambda d: order_matches(d, order_filter)):
            for item in doc.get("items") or []:
                totals[str(item.get("name"))] += item.get("quantity") or 0
        return dict(totals)

    def count_by_status(self) -> Dict[str, int]:
        counts: Dict[str, int] = defaultdict(int)
        for doc in self._orders.select(lambda d: True):
            counts[doc.get("orderStatus")] += 1
        return dict(counts)

    def revenue_by_currency(self, order_filter: OrderFilter) -> Dict[str, float]:
        totals: Dict[str, float] = defaultdict(float)
        for doc in self._orders.select(lambda d: order_matches(d, order_filter)):
            currency = get_path(doc, "pricing.currency")
            totals[currency] += get_path(doc, "pricing.grandTotal") or 0
        return dict(totals)

    def reset(self) -> None:
        with self._lock:
            self._orders.clear()
            self._counters.clear()


class InMemoryUserRepository:
    def __init__(self, lock: threading.RLock):
        self._lock = lock
        self._users = _InMemoryCollection(lock)

    def _find_id(self, uid: str) -> Optional[str]:
        for doc_id, doc in self._users.docs.items():
            if doc.get("firebaseUid") == uid:
                return doc_id
        return None

    def get(self, uid: str) -> Optional[UserProfile]:
        doc = self._users.find_one(lambda d: d.get("firebaseUid") == uid)
        return from_document(UserProfile, doc) if doc else None

    def upsert(
        self,
        uid: str,
        changes: Dict[str, Any],
        on_insert: Optional[Dict[str, Any]] = None,
    ) -> UserProfile:
        with self._lock:
            doc_id = self._find_id(uid)
            if doc_id is None:
                base = {"firebaseUid": uid}
                base.update(on_insert or {})
                doc_id = self._users.insert(base)["_id"]
            doc = self._users.update(doc_id, changes)
            return from_document(UserProfile, doc)

    def set_role(self, uid: str, role: str) -> bool:
        with self._lock:
            doc_id = self._find_id(uid)
            if doc_id is None:
                return False
            self._users.update(doc_id, {"role": role, "updatedAt": utcnow()})
            return True

    def delete(self, uid: str) -> bool:
        with self._lock:
            doc_id = self._find_id(uid)
            return self._users.delete(doc_id) if doc_id else False

    def list(self, limit: int = 100) -> List[UserProfile]:
        docs = _sorted(self._users.select(lambda d: True), "createdAt", True)
        return [from_document(UserProfile, d) for d in docs[:limit]]

    def count(self) -> int:
        return len(self._users.docs)

    def reset(self) -> None:
        self._users.clear()


class InMemoryPricingPlanRepository:
    def __init__(self, lock: threading.RLock):
        self._plans = _InMemoryCollection(lock)

    def list(self) -> List[PricingPlan]:
        docs = _sorted(self._plans.select(lambda d: True), "createdAt", False)
        return [from_document(PricingPlan, d) for d in docs]

    def get(self, plan_id: str) -> Optional[PricingPlan]:
        doc = self._plans.get(plan_id)
        return from_document(PricingPlan, doc) if doc else None

    def insert(self, plan: PricingPlan) -> PricingPlan:
        return from_document(PricingPlan, self._plans.insert(to_document(plan)))

    def update(self, plan_id: str, changes: Dict[str, Any]) -> Optional[PricingPlan]:
        doc = self._plans.update(plan_id, changes)
        return from_document(PricingPlan, doc) if doc else None

    def delete(self, plan_id: str) -> bool:
        return self._plans.delete(plan_id)

    def reset(self) -> None:
        self._plans.clear()


class InMemoryContactRepository:
    def __init__(self, lock: threading.RLock):
        self._contacts = _InMemoryCollection(lock)

    def insert(self, contact: Contact) -> Contact:
        return from_document(Contact, self._contacts.insert(to_document(contact)))

    def get(self, contact_id: str) -> Optional[Contact]:
        doc = self._contacts.get(contact_id)
        return from_document(Contact, doc) if doc else None

    def find(
        self,
        contact_filter: ContactFilter,
        *,
        skip: int = 0,
        limit: Optional[int] = None,
        sort_by: str = "createdAt",
        descending: bool = True,
    ) -> List[Contact]:
        docs = self._contacts.select(lambda d: contact_matches(d, contact_filter))
        docs = _page(_sorted(docs, sort_by, descending), skip, limit)
        return [from_document(Contact, d) for d in docs]

    def count(self, contact_filter: Optional[ContactFilter] = None) -> int:
        return len(self._contacts.select(lambda d: contact_matches(d, contact_filter)))

    def update(self, contact_id: str, changes: Dict[str, Any]) -> Optional[Contact]:
        doc = self._contacts.update(contact_id, changes)
        return from_document(Contact, doc) if doc else None

    def delete(self, contact_id: str) -> bool:
        return self._contacts.delete(contact_id)

    def delete_many(self, contact_ids: Iterable[str]) -> int:
        return sum(1 for contact_id in contact_ids if self._contacts.delete(contact_id))

    def count_by_status(self) -> Dict[str, int]:
        counts: Dict[str, int] = defaultdict(int)
        for doc in self._contacts.select(lambda d: True):
            counts[doc.get("status")] += 1
        return dict(counts)

    def reset(self) -> None:
        self._contacts.clear()


class InMemoryCatalogRepository:
    def __init__(self, lock: threading.RLock):
        self.products = _InMemoryCollection(lock)
        self.services = _InMemoryCollection(lock)

    def count_active(self) -> int:
        def active(doc: dict) -> bool:
            return doc.get("status") not in INACTIVE_CATALOG_STATUSES

        return len(self.products.select(active)) + len(self.services.select(active))

    def reset(self) -> None:
        self.products.clear()
        self.services.clear()


class InMemoryDatabase:
    """Simple in-memory database for development and tests."""

    def __init__(self):
        lock = threading.RLock()
        self.orders = InMemoryOrderRepository(lock)
        self.users = InMemoryUserRepository(lock)
        self.pricing_plans = InMemoryPricingPlanRepository(lock)
        self.contacts = InMemoryContactRepository(lock)
        self.catalog = InMemoryCatalogRepository(lock)

    def reset(self) -> None:
        """Clear all stored data (useful in tests)."""
        self.orders.reset()
        self.users.reset()
        self.pricing_plans.reset()
        self.contacts.reset()
        self.catalog.reset()

    def close(self) -> None:
        return None
