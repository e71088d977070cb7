import unittest
from datetime import datetime, timezone
from unittest.mock import patch

from agency_api.dashboard import (
    DashboardService,
    distribution,
    growth_rate,
    month_start,
    round_half_up,
)
from agency_api.db import InMemoryDatabase
from agency_api.errors import AggregationError
from agency_api.models import OrderItem, PricingPlan
from agency_api.tests.support import ApiTestCase, make_order

NOW = datetime(2024, 3, 15, 12, 0, tzinfo=timezone.utc)


def at(year, month, day=10):
    return datetime(year, month, day, tzinfo=timezone.utc)


class DashboardHelperTests(unittest.TestCase):
    def test_growth_rate_zero_baseline(self):
        self.assertEqual(growth_rate(500, 0), "+0.0%")
        self.assertEqual(growth_rate(0, 0), "+0.0%")

    def test_growth_rate_sign_and_precision(self):
        self.assertEqual(growth_rate(150, 100), "+50.0%")
        self.assertEqual(growth_rate(75, 100), "-25.0%")
        self.assertEqual(growth_rate(100, 300), "-66.7%")

    def test_round_half_up(self):
        self.assertEqual(round_half_up(0.5), 1)
        self.assertEqual(round_half_up(2.5), 3)
        self.assertEqual(round_half_up(2.49), 2)

    def test_month_start_crosses_years(self):
        self.assertEqual(month_start(NOW, -3), at(2023, 12, 1))
        self.assertEqual(month_start(NOW), at(2024, 3, 1))
        self.assertEqual(month_start(at(2024, 12, 31), 1), at(2025, 1, 1))

    def test_distribution_fallback(self):
        shares = {s.category: s.percentage for s in distribution({})}
        self.assertEqual(shares, {"UI/UX": 35, "Web Dev": 40, "App Dev": 25})

    def test_distribution_keyword_buckets(self):
        shares = distribution(
            {"UI Design": 1, "Mobile App": 1, "Website": 1, "UX audit": 1}
        )
        by_category = {s.category: s.percentage for s in shares}
        self.assertEqual(by_category, {"UI/UX": 50, "Web Dev": 25, "App Dev": 25})
        self.assertEqual([s.category for s in shares], ["UI/UX", "Web Dev", "App Dev"])

    def test_distribution_sums_to_about_100(self):
        shares = distribution({"UI Design": 1, "Mobile App": 1, "Website": 1})
        total = sum(s.percentage for s in shares)
        self.assertLessEqual(abs(total - 100), 1)


class DashboardServiceTests(unittest.TestCase):
    def setUp(self):
        self.database = InMemoryDatabase()
        self.service = DashboardService(self.database)
        orders = self.database.orders
        orders.insert(make_order("ORD-2024-0001", 100, created_at=at(2024, 1)))
        orders.insert(make_order("ORD-2024-0002", 150, created_at=at(2024, 2)))
        orders.insert(make_order("ORD-2024-0003", 0.5, created_at=at(2024, 3)))
        orders.insert(
            make_order("ORD-2024-0004", 999, created_at=at(2024, 3), paid=False)
        )
        orders.insert(
            make_order(
                "ORD-2023-0001",
                40,
                created_at=at(2023, 10),
                items=[
                    OrderItem("UI Design", 2, 10, 20),
                    OrderItem("Mobile App", 1, 20, 20),
                ],
            )
        )
        # Last instant of February still belongs to February.
        orders.insert(
            make_order(
                "ORD-2024-0005",
                10,
                created_at=datetime(2024, 2, 29, 23, 59, 59, tzinfo=timezone.utc),
            )
        )
        self.database.users.upsert("u1", {"email": "u1@example.com"})
        self.database.catalog.products.insert({"name": "Site", "status": "active"})
        self.database.catalog.products.insert({"name": "Old", "status": "inactive"})
        self.database.catalog.services.insert({"name": "Design"})
        self.database.catalog.services.insert({"name": "Soon", "status": "draft"})
        self.database.pricing_plans.insert(
            PricingPlan(name="Basic", price="$49", features=["a", "b"])
        )
        self.database.pricing_plans.insert(PricingPlan(title="Legacy", price=99))

    def test_headline_stats(self):
        snapshot = self.service.compute_stats(now=NOW)
        stats = snapshot.stats
        self.assertEqual(stats.total_revenue, round_half_up(100 + 150 + 0.5 + 40 + 10))
        self.assertEqual(stats.total_orders, 6)
        self.assertEqual(stats.total_users, 1)
        self.assertEqual(stats.active_products, 2)
        self.assertEqual(snapshot.paid_orders.count, 5)
        self.assertEqual(snapshot.paid_orders.status, "paid")

    def test_growth_uses_previous_two_months(self):
        stats = self.service.compute_stats(now=NOW).stats
        # February 160 against January 100.
        self.assertEqual(stats.growth, "+60.0%")

    def test_trends_cover_six_months(self):
        snapshot = self.service.compute_stats(now=NOW)
        expected_months = ["Oct", "Nov", "Dec", "Jan", "Feb", "Mar"]
        self.assertEqual(snapshot.revenue_overview.months, expected_months)
        self.assertEqual(snapshot.revenue_overview.values, [40, 0, 0, 100, 160, 0.5])
        self.assertEqual(snapshot.orders_overview.months, expected_months)
        self.assertEqual(snapshot.orders_overview.orders, [1, 0, 0, 1, 2, 2])

    def test_distribution_counts_paid_items(self):
        snapshot = self.service.compute_stats(now=NOW)
        shares = {s.category: s.percentage for s in snapshot.product_distribution}
        # 2 UI/UX, 1 App Dev, 4 Web Dev ("Website" items from the other paid orders).
        self.assertEqual(shares, {"UI/UX": 29, "Web Dev": 57, "App Dev": 14})

    def test_pricing_plan_summary(self):
        plans = self.service.compute_stats(now=NOW).pricing_plans
        summary = {(p.name, p.price, p.feature_count) for p in plans}
        self.assertEqual(summary, {("Basic", "$49", 2), ("Legacy", 99, 0)})

    def test_empty_database(self):
        snapshot = DashboardService(InMemoryDatabase()).compute_stats(now=NOW)
        self.assertEqual(snapshot.stats.total_revenue, 0)
        self.assertEqual(snapshot.stats.growth, "+0.0%")
        self.assertEqual(
            [s.percentage for s in snapshot.product_distribution], [35, 40, 25]
        )

    def test_storage_failure_aborts_everything(self):
        with patch.object(
            self.database.users, "count", side_effect=RuntimeError("connection reset")
        ):
            with self.assertRaises(AggregationError) as ctx:
                self.service.compute_stats(now=NOW)
        self.assertEqual(ctx.exception.message, "Failed to get dashboard statistics")
        self.assertEqual(ctx.exception.detail, "connection reset")


class DashboardRouteTests(ApiTestCase):
    def test_requires_admin(self):
        self.assertEqual(self.client.get("/api/dashboard").status_code, 401)
        response = self.client.get("/api/dashboard/stats", headers=self.auth("user-1"))
        self.assertEqual(response.status_code, 403)

    def test_snapshot_shape(self):
        self.create_order()
        for path in ("/api/dashboard", "/api/dashboard/stats"):
            response = self.client.get(path, headers=self.admin())
            self.assertEqual(response.status_code, 200)
            data = response.json()["data"]
            self.assertEqual(
                set(data),
                {
                    "stats",
                    "revenueOverview",
                    "productDistribution",
                    "ordersOverview",
                    "paidOrders",
                    "pricingPlans",
                },
            )
            self.assertEqual(data["stats"]["totalOrders"], 1)
            self.assertEqual(len(data["revenueOverview"]["months"]), 6)

    def test_failure_is_generic_500(self):
        with patch.object(
            self.database.orders, "count", side_effect=RuntimeError("boom")
        ):
            response = self.client.get("/api/dashboard", headers=self.admin())
        self.assertEqual(response.status_code, 500)
        self.assertEqual(
            response.json()["message"], "Failed to get dashboard statistics"
        )
        self.assertFalse(response.json()["success"])


if __name__ == "__main__":
    unittest.main()
