"""
Shared fixtures for the API tests: an app wired to in-memory backends.
"""

import unittest
from datetime import datetime, timezone
from typing import Optional

from fastapi.testclient import TestClient

from agency_api.app import create_app
from agency_api.config import Settings
from agency_api.db import InMemoryDatabase
from agency_api.identity import InMemoryIdentityProvider
from agency_api.models import (
    Order,
    OrderCustomer,
    OrderItem,
    OrderPayment,
    OrderPricing,
    PaymentStatus,
)

ADMIN_SECRET = "test-admin-secret"


def build_settings(**overrides) -> Settings:
    values = dict(
        use_in_memory_backends=True,
        admin_secret=ADMIN_SECRET,
        jwt_secret="test-jwt-secret",
    )
    values.update(overrides)
    return Settings(_env_file=None, **values)


def order_payload(**overrides) -> dict:
    payload = {
        "customer": {"name": "A", "email": "a@x.com", "phone": "12345678901"},
        "plan": {"name": "Basic", "price": "$49"},
    }
    payload.update(overrides)
    return payload


def make_order(
    number: str,
    grand_total: float = 100.0,
    *,
    created_at: Optional[datetime] = None,
    paid: bool = True,
    items=None,
    customer_id: Optional[str] = None,
) -> Order:
    return Order(
        order_number=number,
        customer=OrderCustomer(
            name="A", email="a@x.com", phone="12345678901", customer_id=customer_id
        ),
        items=items or [OrderItem("Website", 1, grand_total, grand_total)],
        pricing=OrderPricing(subtotal=grand_total, grand_total=grand_total),
        payment=OrderPayment(
            status=PaymentStatus.PAID if paid else PaymentStatus.PENDING
        ),
        created_at=created_at or datetime.now(timezone.utc),
    )


class ApiTestCase(unittest.TestCase):
    settings_overrides: dict = {}

    def setUp(self):
        self.settings = build_settings(**self.settings_overrides)
        self.database = InMemoryDatabase()
        self.identity = InMemoryIdentityProvider()
        self.client = TestClient(
            create_app(self.settings, database=self.database, identity=self.identity)
        )

    def auth(self, uid: str, email: Optional[str] = None, **claims) -> dict:
        token = self.identity.issue_token(uid, email or f"{uid}@example.com", **claims)
        return {"Authorization": f"Bearer {token}"}

    def admin(self) -> dict:
        return {"x-admin-secret": ADMIN_SECRET}

    def create_order(self, uid: str = "user-1", **overrides) -> dict:
        response = self.client.post(
            "/api/orders", json=order_payload(**overrides), headers=self.auth(uid)
        )
        self.assertEqual(response.status_code, 201, response.text)
        return response.json()["data"]
