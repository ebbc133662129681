"""Sales analytics over an order snapshot.

Turns the orders supplied by the upstream API into a fixed-length daily
revenue series, a top-product ranking and a growth rate against the
previous period of equal length. Only delivered orders count as revenue.

The functions are pure: fetching the orders and keeping the last good
report on failure is handled by ``services.OrderConsoleService``.
"""

from dataclasses import dataclass
from datetime import date, datetime, timedelta, tzinfo
from decimal import Decimal
from typing import Dict, Iterable, List, Optional

from .domain import Order, OrderStatus, ValidationError

PERIODS = {"7days": 7, "30days": 30, "3months": 90}
DEFAULT_TOP_N = 10


@dataclass(frozen=True)
class SalesBucket:
    date: date
    revenue: Decimal
    order_count: int


@dataclass(frozen=True)
class ProductRanking:
    product_id: str
    name: str
    category: str
    units_sold: int
    revenue: Decimal


@dataclass(frozen=True)
class AnalyticsReport:
    """Aggregated sales figures for one reporting period.

    Attributes:
        period_days: Length of the window in calendar days.
        start_date: First day of the window.
        end_date: Last day of the window (inclusive).
        buckets: One ``SalesBucket`` per day, ascending.
        top_products: Best sellers by units, at most ``top_n`` entries.
        total_revenue: Sum of bucket revenue.
        total_orders: Sum of bucket order counts.
        average_order_value: ``total_revenue / total_orders``, 0 when empty.
        previous_revenue: Delivered revenue of the preceding window.
        growth_rate: Percentage change against ``previous_revenue``, 0 when
            the previous window had no revenue.
    """

    period_days: int
    start_date: date
    end_date: date
    buckets: List[SalesBucket]
    top_products: List[ProductRanking]
    total_revenue: Decimal
    total_orders: int
    average_order_value: Decimal
    previous_revenue: Decimal
    growth_rate: float


def resolve_period(period) -> int:
    """Map a console period (``"7days"``, ``"30days"``, ``"3months"`` or a
    positive day count) to a number of days.

    Raises:
        ValidationError: For anything else.
    """
    if isinstance(period, str) and period in PERIODS:
        return PERIODS[period]
    try:
        days = int(period)
    except (TypeError, ValueError):
        raise ValidationError("INVALID_PERIOD", f"Unsupported period: {period!r}") from None
    if days < 1:
        raise ValidationError("INVALID_PERIOD", f"Period must be at least one day, got {days}")
    return days


def date_window(period_days: int, today: date) -> List[date]:
    """Return ``period_days`` consecutive days ending ``today``, ascending."""
    return [today - timedelta(days=offset) for offset in range(period_days - 1, -1, -1)]


def previous_window(period_days: int, today: date) -> List[date]:
    """Return the window of equal length ending the day before ``date_window`` starts."""
    return date_window(period_days, today - timedelta(days=period_days))


def local_date(moment: datetime, tz: Optional[tzinfo] = None) -> date:
    """Calendar date of ``moment`` in ``tz``; naive datetimes are taken as local."""
    if moment.tzinfo is not None:
        moment = moment.astimezone(tz)
    return moment.date()


def _today(tz: Optional[tzinfo]) -> date:
    return datetime.now(tz).date() if tz is not None else date.today()


def _delivered(orders: Iterable[Order]) -> List[Order]:
    return [o for o in orders if o.status is OrderStatus.DELIVERED]


def bucket_orders(
    orders: Iterable[Order], window: List[date], tz: Optional[tzinfo] = None
) -> tuple[List[SalesBucket], List[Order]]:
    """Bucket delivered orders by placed date over ``window``.

    Returns:
        The buckets (one per day of ``window``) and the delivered orders that
        fell inside the window.
    """
    revenue: Dict[date, Decimal] = {d: Decimal("0") for d in window}
    counts: Dict[date, int] = {d: 0 for d in window}
    counted: List[Order] = []
    for order in _delivered(orders):
        day = local_date(order.placed_at, tz)
        if day not in revenue:
            continue
        revenue[day] += order.total_amount
        counts[day] += 1
        counted.append(order)
    buckets = [SalesBucket(date=d, revenue=revenue[d], order_count=counts[d]) for d in window]
    return buckets, counted


def rank_products(orders: Iterable[Order], top_n: int = DEFAULT_TOP_N) -> List[ProductRanking]:
    """Rank products by units sold, descending.

    Ties keep the order in which the products were first seen.
    """
    entries: Dict[str, dict] = {}
    for order in orders:
        for line in order.lines:
            entry = entries.get(line.product_id)
            if entry is None:
                entry = entries[line.product_id] = {
                    "name": line.name,
                    "category": line.category,
                    "units": 0,
                    "revenue": Decimal("0"),
                }
            entry["units"] += line.quantity
            entry["revenue"] += line.unit_price * line.quantity

    ranked = sorted(entries.items(), key=lambda kv: kv[1]["units"], reverse=True)
    return [
        ProductRanking(
            product_id=pid,
            name=e["name"],
            category=e["category"],
            units_sold=e["units"],
            revenue=e["revenue"],
        )
        for pid, e in ranked[: max(top_n, 0)]
    ]


def growth_rate(current: Decimal, previous: Decimal) -> float:
    if previous <= 0:
        return 0.0
    return float((current - previous) / previous * 100)


def aggregate(
    orders: Iterable[Order],
    period_days: int,
    *,
    today: Optional[date] = None,
    tz: Optional[tzinfo] = None,
    top_n: int = DEFAULT_TOP_N,
) -> AnalyticsReport:
    """Build the sales report for the ``period_days`` days ending ``today``.

    ``orders`` may cover both the current and the previous window; the
    previous window feeds ``previous_revenue`` and ``growth_rate`` only.

    Raises:
        ValidationError: If ``period_days`` is smaller than 1.
    """
    if period_days < 1:
        raise ValidationError("INVALID_PERIOD", f"Period must be at least one day, got {period_days}")
    orders = list(orders)
    today = today or _today(tz)
    window = date_window(period_days, today)

    buckets, counted = bucket_orders(orders, window, tz)
    total_revenue = sum((b.revenue for b in buckets), Decimal("0"))
    total_orders = sum(b.order_count for b in buckets)
    average = total_revenue / total_orders if total_orders else Decimal("0")

    prev_buckets, _ = bucket_orders(orders, previous_window(period_days, today), tz)
    previous_revenue = sum((b.revenue for b in prev_buckets), Decimal("0"))

    return AnalyticsReport(
        period_days=period_days,
        start_date=window[0],
        end_date=window[-1],
        buckets=buckets,
        top_products=rank_products(counted, top_n),
        total_revenue=total_revenue,
        total_orders=total_orders,
        average_order_value=average,
        previous_revenue=previous_revenue,
        growth_rate=growth_rate(total_revenue, previous_revenue),
    )
