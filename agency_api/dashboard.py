"""
Admin dashboard statistics.

Everything is recomputed from storage on every call. Month windows are UTC
calendar months, half-open ``[start, next_start)``.
"""

from __future__ import annotations

import calendar
import logging
import math
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Callable, Dict, List, Optional, Union

from agency_api.db import Database, OrderFilter
from agency_api.errors import AggregationError
from agency_api.models import PaymentStatus, utcnow

logger = logging.getLogger(__name__)

TREND_MONTHS = 6
UI_UX = "UI/UX"
WEB_DEV = "Web Dev"
APP_DEV = "App Dev"
CATEGORY_ORDER = (UI_UX, WEB_DEV, APP_DEV)
FALLBACK_DISTRIBUTION = {UI_UX: 35, WEB_DEV: 40, APP_DEV: 25}


@dataclass
class HeadlineStats:
    total_revenue: int
    total_orders: int
    total_users: int
    active_products: int
    growth: str


@dataclass
class RevenueOverview:
    months: List[str] = field(default_factory=list)
    values: List[float] = field(default_factory=list)


@dataclass
class OrdersOverview:
    months: List[str] = field(default_factory=list)
    orders: List[int] = field(default_factory=list)


@dataclass
class CategoryShare:
    category: str
    percentage: int


@dataclass
class PaidOrders:
    count: int
    status: str = PaymentStatus.PAID.value


@dataclass
class PlanSummary:
    name: Optional[str]
    price: Union[float, str, None]
    feature_count: int


@dataclass
class DashboardSnapshot:
    stats: HeadlineStats
    revenue_overview: RevenueOverview
    product_distribution: List[CategoryShare]
    orders_overview: OrdersOverview
    paid_orders: PaidOrders
    pricing_plans: List[PlanSummary]


def round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


def month_start(moment: datetime, offset: int = 0) -> datetime:
    """First instant of the month ``offset`` months away from ``moment``."""
    index = moment.year * 12 + (moment.month - 1) + offset
    return datetime(index // 12, index % 12 + 1, 1, tzinfo=timezone.utc)


def growth_rate(last: float, previous: float) -> str:
    rate = (last - previous) / previous * 100 if previous > 0 else 0.0
    return f"{rate:+.1f}%"


def categorize(item_name: str) -> str:
    name = str(item_name).lower()
    if "ui" in name or "ux" in name or "design" in name:
        return UI_UX
    if "app" in name or "mobile" in name:
        return APP_DEV
    return WEB_DEV


def distribution(quantities: Dict[str, int]) -> List[CategoryShare]:
    totals = {category: 0 for category in CATEGORY_ORDER}
    for name, quantity in quantities.items():
        totals[categorize(name)] += quantity or 0
    total = sum(totals.values())
    if not total:
        return [CategoryShare(c, FALLBACK_DISTRIBUTION[c]) for c in CATEGORY_ORDER]
    return [
        CategoryShare(c, round_half_up(totals[c] / total * 100)) for c in CATEGORY_ORDER
    ]


def _paid(**window) -> OrderFilter:
    return OrderFilter(payment_status=PaymentStatus.PAID.value, **window)


class DashboardService:
    def __init__(self, database: Database, *, clock: Callable = utcnow, max_workers: int = 5):
        self._db = database
        self._clock = clock
        self._max_workers = max_workers

    def compute_stats(self, now: Optional[datetime] = None) -> DashboardSnapshot:
        try:
            return self._compute(now or self._clock())
        except Exception as exc:
            logger.exception("Dashboard stats error")
            raise AggregationError(detail=str(exc)) from exc

    def _compute(self, now: datetime) -> DashboardSnapshot:
        orders = self._db.orders
        with ThreadPoolExecutor(max_workers=self._max_workers) as pool:
            revenue_f = pool.submit(orders.sum_grand_total, _paid())
            orders_f = pool.submit(orders.count)
            users_f = pool.submit(self._db.users.count)
            catalog_f = pool.submit(self._db.catalog.count_active)
            paid_count_f = pool.submit(orders.count, _paid())
            total_revenue = revenue_f.result()
            total_orders = orders_f.result()
            total_users = users_f.result()
            active_products = catalog_f.result()
            paid_count = paid_count_f.result()

        current = month_start(now)
        last_month = orders.sum_grand_total(
            _paid(created_from=month_start(now, -1), created_before=current)
        )
        prev_month = orders.sum_grand_total(
            _paid(created_from=month_start(now, -2), created_before=month_start(now, -1))
        )

        revenue = RevenueOverview()
        volume = OrdersOverview()
        for offset in range(-(TREND_MONTHS - 1), 1):
            start, end = month_start(now, offset), month_start(now, offset + 1)
            label = calendar.month_abbr[start.month]
            revenue.months.append(label)
            revenue.values.append(
                orders.sum_grand_total(_paid(created_from=start, created_before=end))
            )
            volume.months.append(label)
            volume.orders.append(
                orders.count(OrderFilter(created_from=start, created_before=end))
            )

        plans = [
            PlanSummary(
                name=plan.name or plan.title,
                price=plan.price,
                feature_count=len(plan.features or []),
            )
            for plan in self._db.pricing_plans.list()
        ]

        return DashboardSnapshot(
            stats=HeadlineStats(
                total_revenue=round_half_up(total_revenue),
                total_orders=total_orders,
                total_users=total_users,
                active_products=active_products,
                growth=growth_rate(last_month, prev_month),
            ),
            revenue_overview=revenue,
            product_distribution=distribution(orders.sum_item_quantities(_paid())),
            orders_overview=volume,
            paid_orders=PaidOrders(count=paid_count),
            pricing_plans=plans,
        )
