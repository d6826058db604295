"""Retailer dashboard figures computed from orders and products."""

from collections import Counter, defaultdict
from datetime import datetime, timedelta, timezone
from typing import Any, Iterable

from .errors import ValidationError
from .models import Order, Product, _created_sort_key

PERIODS = ("daily", "weekly", "monthly", "all")
MAX_SERIES_POINTS = 15
LOW_STOCK_THRESHOLD = 10


def period_start(period: str, now: datetime) -> datetime | None:
    """Start of the reporting window, or None for all time."""
    if period == "daily":
        return now.replace(hour=0, minute=0, second=0, microsecond=0)
    if period == "weekly":
        return now - timedelta(days=7)
    if period == "monthly":
        return now - timedelta(days=30)
    if period == "all":
        return None
    raise ValidationError("period", f"must be one of {', '.join(PERIODS)}")


def _bucket(created: datetime, period: str) -> str:
    if period == "daily":
        return f"{created.hour:02d}:00"
    return created.date().isoformat()


def dashboard_summary(
    orders: Iterable[Order],
    products: Iterable[Product],
    period: str = "weekly",
    now: datetime | None = None,
) -> dict[str, Any]:
    """
    Summarize sales for a reporting period.

    Cancelled orders are left out entirely; revenue figures only count
    orders whose payment status is paid.
    """
    now = now or datetime.now(timezone.utc)
    start = period_start(period, now)

    in_period = []
    for order in orders:
        if order.status == "cancelled":
            continue
        if start is not None and _created_sort_key(order.created_at) < start:
            continue
        in_period.append(order)

    paid = [o for o in in_period if o.payment_status == "paid"]
    total_revenue = round(sum(o.total_amount for o in paid), 2)

    revenue_by_bucket: dict[str, float] = defaultdict(float)
    for order in sorted(paid, key=lambda o: _created_sort_key(o.created_at)):
        revenue_by_bucket[_bucket(_created_sort_key(order.created_at), period)] += order.total_amount
    revenue_over_time = [
        {"date": key, "revenue": round(value, 2)} for key, value in revenue_by_bucket.items()
    ][-MAX_SERIES_POINTS:]

    categories: dict[str, dict[str, float]] = defaultdict(
        lambda: {"sales": 0, "revenue": 0.0, "orders": 0}
    )
    for order in paid:
        for item in order.items:
            stats = categories[item.category or "Uncategorized"]
            stats["sales"] += item.quantity
            stats["revenue"] += item.line_total
            stats["orders"] += 1
    sales_by_category = [
        {"category": name, **{k: round(v, 2) for k, v in stats.items()}}
        for name, stats in sorted(categories.items(), key=lambda kv: -kv[1]["revenue"])
    ]

    products = list(products)
    return {
        "period": period,
        "totalRevenue": total_revenue,
        "totalOrders": len(in_period),
        "paidOrders": len(paid),
        "averageOrderValue": round(total_revenue / len(paid), 2) if paid else 0,
        "uniqueCustomers": len({o.customer_id for o in in_period}),
        "ordersByStatus": dict(Counter(o.status for o in in_period)),
        "revenueOverTime": revenue_over_time,
        "salesByCategory": sales_by_category,
        "inventory": {
            "totalProducts": len(products),
            "inStock": sum(1 for p in products if p.stock > LOW_STOCK_THRESHOLD),
            "lowStock": sum(1 for p in products if 0 < p.stock <= LOW_STOCK_THRESHOLD),
            "outOfStock": sum(1 for p in products if p.stock <= 0),
        },
    }
