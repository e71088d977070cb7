"""
MongoDB-backed repositories (pymongo).
"""

from __future__ import annotations

import contextlib
import logging
from typing import Any, Dict, Iterable, Iterator, List, Optional

from bson import ObjectId
from pymongo import ASCENDING, DESCENDING, MongoClient, ReturnDocument
from pymongo.collection import Collection
from pymongo.errors import DuplicateKeyError, PyMongoError

from agency_api.config import Settings
from agency_api.db import (
    INACTIVE_CATALOG_STATUSES,
    ContactFilter,
    OrderFilter,
    is_valid_id,
)
from agency_api.errors import (
    ConflictError,
    DuplicateTransactionError,
    StorageError,
)
from agency_api.models import (
    Contact,
    Order,
    PricingPlan,
    UserProfile,
    from_document,
    to_document,
    utcnow,
)

logger = logging.getLogger(__name__)

DEFAULT_DB_NAME = "agency"


@contextlib.contextmanager
def _storage_errors(operation: str):
    try:
        yield
    except DuplicateKeyError as exc:
        details = str(exc.details or exc)
        if "transactionId" in details:
            raise DuplicateTransactionError() from exc
        raise ConflictError(f"Duplicate value rejected during {operation}") from exc
    except PyMongoError as exc:
        logger.error("MongoDB %s failed: %s", operation, exc)
        raise StorageError(f"Failed to {operation}", detail=str(exc)) from exc


def _object_id(value: str) -> Optional[ObjectId]:
    return ObjectId(value) if is_valid_id(value) else None


def _update_spec(changes: Dict[str, Any]) -> dict:
    to_set = {k: v for k, v in changes.items() if v is not None}
    to_unset = {k: "" for k, v in changes.items() if v is None}
    spec: dict = {}
    if to_set:
        spec["$set"] = to_set
    if to_unset:
        spec["$unset"] = to_unset
    return spec


def _date_range(query: dict, start, end, before=None) -> None:
    created: dict = {}
    if start is not None:
        created["$gte"] = start
    if end is not None:
        created["$lte"] = end
    if before is not None:
        created["$lt"] = before
    if created:
        query["createdAt"] = created


def order_query(order_filter: Optional[OrderFilter]) -> dict:
    query: dict = {}
    if order_filter is None:
        return query
    if order_filter.order_status:
        query["orderStatus"] = order_filter.order_status
    if order_filter.payment_status:
        query["payment.status"] = order_filter.payment_status
    if order_filter.is_cancelled is not None:
        query["cancellation.isCancelled"] = order_filter.is_cancelled
    if order_filter.customer_id:
        query["customer.customerId"] = order_filter.customer_id
    if order_filter.customer_email:
        query["customer.email"] = order_filter.customer_email
    _date_range(
        query,
        order_filter.created_from,
        order_filter.created_to,
        order_filter.created_before,
    )
    return query


def contact_query(contact_filter: Optional[ContactFilter]) -> dict:
    query: dict = {}
    if contact_filter is None:
        return query
    if contact_filter.status:
        query["status"] = contact_filter.status
    _date_range(query, contact_filter.created_from, contact_filter.created_to)
    return query


def _direction(descending: bool) -> int:
    return DESCENDING if descending else ASCENDING


class MongoOrderRepository:
    def __init__(self, orders: Collection, counters: Collection):
        self._orders = orders
        self._counters = counters
        self._seeded_years: set[int] = set()

    def ensure_indexes(self) -> None:
        with _storage_errors("create order indexes"):
            self._orders.create_index("orderNumber", unique=True)
            self._orders.create_index(
                "payment.transactionId",
                unique=True,
                partialFilterExpression={"payment.transactionId": {"$type": "string"}},
            )
            self._orders.create_index("customer.email")
            self._orders.create_index("customer.customerId")
            self._orders.create_index([("createdAt", DESCENDING)])

    def _one(self, query: dict) -> Optional[Order]:
        with _storage_errors("load order"):
            doc = self._orders.find_one(query)
        return from_document(Order, doc) if doc else None

    def insert(self, order: Order) -> Order:
        doc = to_document(order)
        with _storage_errors("create order"):
            result = self._orders.insert_one(doc)
        doc["_id"] = result.inserted_id
        return from_document(Order, doc)

    def get(self, order_id: str) -> Optional[Order]:
        oid = _object_id(order_id)
        return self._one({"_id": oid}) if oid else None

    def get_by_number(self, order_number: str) -> Optional[Order]:
        return self._one({"orderNumber": order_number})

    def find_by_transaction_id(self, transaction_id: str) -> Optional[Order]:
        return self._one({"payment.transactionId": transaction_id})

    def update(self, order_id: str, changes: Dict[str, Any]) -> Optional[Order]:
        oid = _object_id(order_id)
        if oid is None:
            return None
        with _storage_errors("update order"):
            doc = self._orders.find_one_and_update(
                {"_id": oid},
                _update_spec(changes),
                return_document=ReturnDocument.AFTER,
            )
        return from_document(Order, doc) if doc else None

    def delete(self, order_id: str) -> bool:
        oid = _object_id(order_id)
        if oid is None:
            return False
        with _storage_errors("delete order"):
            return self._orders.delete_one({"_id": oid}).deleted_count > 0

    def find(
        self,
        order_filter: OrderFilter,
        *,
        skip: int = 0,
        limit: Optional[int] = None,
        sort_by: str = "createdAt",
        descending: bool = True,
    ) -> List[Order]:
        with _storage_errors("list orders"):
            cursor = self._orders.find(order_query(order_filter)).sort(
                sort_by, _direction(descending)
            )
            if skip:
                cursor = cursor.skip(skip)
            if limit:
                cursor = cursor.limit(limit)
            return [from_document(Order, doc) for doc in cursor]

    def count(self, order_filter: Optional[OrderFilter] = None) -> int:
        with _storage_errors("count orders"):
            return self._orders.count_documents(order_query(order_filter))

    def iter_by_email(self, email: str) -> Iterator[Order]:
        with _storage_errors("track orders"):
            cursor = self._orders.find({"customer.email": email}).sort(
                "createdAt", DESCENDING
            )
            for doc in cursor:
                yield from_document(Order, doc)

    def _highest_existing_sequence(self, year: int) -> int:
        # Numeric max: a string sort would put ORD-<year>-9999 above ORD-<year>-10000.
        rows = list(
            self._orders.aggregate(
                [
                    {"$match": {"orderNumber": {"$regex": f"^ORD-{year}-\\d+$"}}},
                    {
                        "$group": {
                            "_id": None,
                            "seq": {
                                "$max": {
                                    "$toInt": {
                                        "$arrayElemAt": [
                                            {"$split": ["$orderNumber", "-"]},
                                            2,
                                        ]
                                    }
                                }
                            },
                        }
                    },
                ]
            )
        )
        return int(rows[0]["seq"] or 0) if rows else 0

    def next_sequence(self, year: int) -> int:
        key = f"orders-{year}"
        with _storage_errors("allocate order number"):
            if year not in self._seeded_years:
                # $max is idempotent, so concurrent seeding cannot move the counter back.
                self._counters.update_one(
                    {"_id": key},
                    {"$max": {"seq": self._highest_existing_sequence(year)}},
                    upsert=True,
                )
                self._seeded_years.add(year)
            doc = self._counters.find_one_and_update(
                {"_id": key},
                {"$inc": {"seq": 1}},
                upsert=True,
                return_document=ReturnDocument.AFTER,
            )
        return int(doc["seq"])

    def _aggregate(self, operation: str, pipeline: list) -> list:
        with _storage_errors(operation):
            return list(self._orders.aggregate(pipeline))

    def sum_grand_total(self, order_filter: OrderFilter) -> float:
        rows = self._aggregate(
            "sum order totals",
            [
                {"$match": order_query(order_filter)},
                {"$group": {"_id": None, "total": {"$sum": "$pricing.grandTotal"}}},
            ],
        )
        return float(rows[0]["total"]) if rows else 0.0

    def sum_item_quantities(self, order_filter: OrderFilter) -> Dict[str, int]:
        rows = self._aggregate(
            "sum item quantities",
            [
                {"$match": order_query(order_filter)},
                {"$unwind": "$items"},
                {
                    "$group": {
                        "_id": "$items.name",
                        "count": {"$sum": "$items.quantity"},
                    }
                },
            ],
        )
        return {str(row["_id"]): row["count"] for row in rows}

    def count_by_status(self) -> Dict[str, int]:
        rows = self._aggregate(
            "count orders by status",
            [{"$group": {"_id": "$orderStatus", "count": {"$sum": 1}}}],
        )
        return {row["_id"]: row["count"] for row in rows}

    def revenue_by_currency(self, order_filter: OrderFilter) -> Dict[str, float]:
        rows = self._aggregate(
            "sum revenue by currency",
            [
                {"$match": order_query(order_filter)},
                {
                    "$group": {
                        "_id": "$pricing.currency",
                        "total": {"$sum": "$pricing.grandTotal"},
                    }
                },
            ],
        )
        return {row["_id"]: row["total"] for row in rows}


class MongoUserRepository:
    def __init__(self, users: Collection):
        self._users = users

    def ensure_indexes(self) -> None:
        with _storage_errors("create user indexes"):
            self._users.create_index("firebaseUid", unique=True)

    def get(self, uid: str) -> Optional[UserProfile]:
        with _storage_errors("load user"):
            doc = self._users.find_one({"firebaseUid": uid})
        return from_document(UserProfile, doc) if doc else None

    def upsert(
        self,
        uid: str,
        changes: Dict[str, Any],
        on_insert: Optional[Dict[str, Any]] = None,
    ) -> UserProfile:
        spec: dict = {"$set": {k: v for k, v in changes.items() if v is not None}}
        if on_insert:
            spec["$setOnInsert"] = {
                k: v for k, v in on_insert.items() if k not in spec["$set"]
            }
        with _storage_errors("save user"):
            doc = self._users.find_one_and_update(
                {"firebaseUid": uid},
                spec,
                upsert=True,
                return_document=ReturnDocument.AFTER,
            )
        return from_document(UserProfile, doc)

    def set_role(self, uid: str, role: str) -> bool:
        with _storage_errors("set user role"):
            result = self._users.update_one(
                {"firebaseUid": uid},
                {"$set": {"role": role, "updatedAt": utcnow()}},
            )
        return result.matched_count > 0

    def delete(self, uid: str) -> bool:
        with _storage_errors("delete user"):
            return self._users.delete_one({"firebaseUid": uid}).deleted_count > 0

    def list(self, limit: int = 100) -> List[UserProfile]:
        with _storage_errors("list users"):
            cursor = self._users.find().sort("createdAt", DESCENDING).limit(limit)
            return [from_document(UserProfile, doc) for doc in cursor]

    def count(self) -> int:
        with _storage_errors("count users"):
            return self._users.count_documents({})


class MongoPricingPlanRepository:
    def __init__(self, plans: Collection):
        self._plans = plans

    def list(self) -> List[PricingPlan]:
        with _storage_errors("list pricing plans"):
            return [
                from_document(PricingPlan, doc)
                for doc in self._plans.find().sort("createdAt", ASCENDING)
            ]

    def get(self, plan_id: str) -> Optional[PricingPlan]:
        oid = _object_id(plan_id)
        if oid is None:
            return None
        with _storage_errors("load pricing plan"):
            doc = self._plans.find_one({"_id": oid})
        return from_document(PricingPlan, doc) if doc else None

    def insert(self, plan: PricingPlan) -> PricingPlan:
        doc = to_document(plan)
        with _storage_errors("create pricing plan"):
            doc["_id"] = self._plans.insert_one(doc).inserted_id
        return from_document(PricingPlan, doc)

    def update(self, plan_id: str, changes: Dict[str, Any]) -> Optional[PricingPlan]:
        oid = _object_id(plan_id)
        if oid is None:
            return None
        with _storage_errors("update pricing plan"):
            doc = self._plans.find_one_and_update(
                {"_id": oid}, _update_spec(changes), return_document=ReturnDocument.AFTER
            )
        return from_document(PricingPlan, doc) if doc else None

    def delete(self, plan_id: str) -> bool:
        oid = _object_id(plan_id)
        if oid is None:
            return False
        with _storage_errors("delete pricing plan"):
            return self._plans.delete_one({"_id": oid}).deleted_count > 0


class MongoContactRepository:
    def __init__(self, contacts: Collection):
        self._contacts = contacts

    def insert(self, contact: Contact) -> Contact:
        doc = to_document(contact)
        with _storage_errors("create contact"):
            doc["_id"] = self._contacts.insert_one(doc).inserted_id
        return from_document(Contact, doc)

    def get(self, contact_id: str) -> Optional[Contact]:
        oid = _object_id(contact_id)
        if oid is None:
            return None
        with _storage_errors("load contact"):
            doc = self._contacts.find_one({"_id": oid})
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
        with _storage_errors("list contacts"):
            cursor = self._contacts.find(contact_query(contact_filter)).sort(
                sort_by, _direction(descending)
            )
            if skip:
                cursor = cursor.skip(skip)
            if limit:
                cursor = cursor.limit(limit)
            return [from_document(Contact, doc) for doc in cursor]

    def count(self, contact_filter: Optional[ContactFilter] = None) -> int:
        with _storage_errors("count contacts"):
            return self._contacts.count_documents(contact_query(contact_filter))

    def update(self, contact_id: str, changes: Dict[str, Any]) -> Optional[Contact]:
        oid = _object_id(contact_id)
        if oid is None:
            return None
        with _storage_errors("update contact"):
            doc = self._contacts.find_one_and_update(
                {"_id": oid}, _update_spec(changes), return_document=ReturnDocument.AFTER
            )
        return from_document(Contact, doc) if doc else None

    def delete(self, contact_id: str) -> bool:
        oid = _object_id(contact_id)
        if oid is None:
            return False
        with _storage_errors("delete contact"):
            return self._contacts.delete_one({"_id": oid}).deleted_count > 0

    def delete_many(self, contact_ids: Iterable[str]) -> int:
        oids = [ObjectId(contact_id) for contact_id in contact_ids]
        with _storage_errors("delete contacts"):
            return self._contacts.delete_many({"_id": {"$in": oids}}).deleted_count

    def count_by_status(self) -> Dict[str, int]:
        with _storage_errors("count contacts by status"):
            rows = list(
                self._contacts.aggregate(
                    [{"$group": {"_id": "$status", "count": {"$sum": 1}}}]
                )
            )
        return {row["_id"]: row["count"] for row in rows}


class MongoCatalogRepository:
    def __init__(self, products: Collection, services: Collection):
        self._products = products
        self._services = services

    def count_active(self) -> int:
        query = {"status": {"$nin": list(INACTIVE_CATALOG_STATUSES)}}
        with _storage_errors("count catalog entries"):
            return self._products.count_documents(query) + self._services.count_documents(
                query
            )


def connect(settings: Settings) -> MongoClient:
    """
    Connect with the primary URI, falling back to MONGODB_URI_FALLBACK when the
    primary (typically an SRV record) cannot be reached.
    """
    uris = [settings.mongodb_uri]
    if settings.mongodb_uri_fallback and settings.mongodb_uri_fallback != settings.mongodb_uri:
        uris.append(settings.mongodb_uri_fallback)

    last_error: Optional[PyMongoError] = None
    for uri in uris:
        client = MongoClient(
            uri,
            serverSelectionTimeoutMS=settings.mongodb_server_selection_timeout_ms,
            connectTimeoutMS=settings.mongodb_server_selection_timeout_ms,
            tz_aware=True,
        )
        try:
            client.admin.command("ping")
        except PyMongoError as exc:
            logger.error("MongoDB connection failed: %s", exc)
            client.close()
            last_error = exc
            continue
        logger.info("MongoDB connected")
        return client

    raise StorageError(
        "MongoDB connection failed. Check the Atlas network access list and the "
        "connection string in .env",
        detail=str(last_error),
    )


class MongoDatabase:
    """All repositories over one MongoClient."""

    def __init__(self, client: MongoClient, db_name: Optional[str] = None):
        self.client = client
        db = (
            client[db_name]
            if db_name
            else client.get_default_database(default=DEFAULT_DB_NAME)
        )
        self.orders = MongoOrderRepository(db["orders"], db["counters"])
        self.users = MongoUserRepository(db["users"])
        self.pricing_plans = MongoPricingPlanRepository(db["pricing"])
        self.contacts = MongoContactRepository(db["contacts"])
        self.catalog = MongoCatalogRepository(db["products"], db["services"])

    @classmethod
    def from_settings(cls, settings: Settings) -> "MongoDatabase":
        database = cls(connect(settings), settings.mongodb_db_name)
        database.orders.ensure_indexes()
        database.users.ensure_indexes()
        return database

    def close(self) -> None:
        self.client.close()
        logger.info("MongoDB connection closed")
