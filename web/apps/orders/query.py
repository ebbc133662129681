"""Filtering, sorting and paging of an order snapshot.

Every function here is a pure recomputation over the orders it is given;
there is no caching between calls.
"""

from dataclasses import dataclass
from typing import Any, Iterable, Iterator, List, Sequence

from .domain import Order, OrderStatus, PaymentStatus, ValidationError

ALL = "all"

SORT_FIELDS = ("id", "customer_name", "placed_at", "total_amount", "status")
SORT_DIRECTIONS = ("asc", "desc")

# camelCase names used by the admin console front-end
SORT_FIELD_ALIASES = {
    "customerName": "customer_name",
    "orderDate": "placed_at",
    "totalAmount": "total_amount",
}


@dataclass(frozen=True)
class QuerySpec:
    """Combined filter and sort configuration for the order console.

    Filters hold either a concrete value or ``ALL`` (no constraint).
    """

    search_text: str = ""
    status: str = ALL
    payment_status: str = ALL
    payment_method: str = ALL
    sort_field: str = "placed_at"
    sort_direction: str = "desc"


def _choice(name: str, value: str | None, allowed: Iterable[str]) -> str:
    v = (value or ALL).strip().lower() or ALL
    if v != ALL and v not in allowed:
        raise ValidationError(f"INVALID_{name.upper()}", f"Unsupported {name}: {value!r}")
    return v


def build_query_spec(
    search: str | None = None,
    status: str | None = None,
    payment_status: str | None = None,
    payment_method: str | None = None,
    sort: str | None = None,
    direction: str | None = None,
) -> QuerySpec:
    """Validate raw console input and build a ``QuerySpec``.

    Raises:
        ValidationError: For an unknown status, payment status, sort field or
            sort direction.
    """
    sort_field = sort or "placed_at"
    sort_field = SORT_FIELD_ALIASES.get(sort_field, sort_field)
    if sort_field not in SORT_FIELDS:
        raise ValidationError("INVALID_SORT_FIELD", f"Unsupported sort field: {sort!r}")

    sort_direction = (direction or "desc").lower()
    if sort_direction not in SORT_DIRECTIONS:
        raise ValidationError("INVALID_SORT_DIRECTION", f"Unsupported direction: {direction!r}")

    method = (payment_method or ALL).strip().lower() or ALL

    return QuerySpec(
        search_text=(search or "").strip(),
        status=_choice("status", status, [s.value for s in OrderStatus]),
        payment_status=_choice("payment_status", payment_status, [s.value for s in PaymentStatus]),
        payment_method=method,
        sort_field=sort_field,
        sort_direction=sort_direction,
    )


def _matches_search(order: Order, needle: str) -> bool:
    if not needle:
        return True
    n = needle.lower()
    c = order.customer
    return (
        n in c.name.lower()
        or n in c.email.lower()
        or needle in c.phone
        or n in str(order.id).lower()
        or n in (order.tracking_code or "").lower()
    )


def matches(order: Order, spec: QuerySpec) -> bool:
    """Return True when ``order`` satisfies every active predicate."""
    return (
        _matches_search(order, spec.search_text)
        and (spec.status == ALL or order.status.value == spec.status)
        and (spec.payment_status == ALL or order.payment_status.value == spec.payment_status)
        and (spec.payment_method == ALL or order.payment_method == spec.payment_method)
    )


def _id_key(order: Order):
    # numeric ids before opaque ones, each group in natural order
    oid = str(order.id)
    return (0, int(oid), "") if oid.isdigit() else (1, 0, oid)


_SORT_KEYS = {
    "id": _id_key,
    "customer_name": lambda o: o.customer.name.lower(),
    "placed_at": lambda o: o.placed_at,
    "total_amount": lambda o: o.total_amount,
    # lexical on the token, not the workflow order
    "status": lambda o: o.status.value,
}


def apply_query(orders: Iterable[Order], spec: QuerySpec) -> List[Order]:
    """Filter and sort ``orders`` according to ``spec``.

    Ties keep their relative order from ``orders`` in both directions.
    """
    key = _SORT_KEYS.get(spec.sort_field)
    if key is None:
        raise ValidationError("INVALID_SORT_FIELD", f"Unsupported sort field: {spec.sort_field!r}")
    filtered = [o for o in orders if matches(o, spec)]
    return sorted(filtered, key=key, reverse=spec.sort_direction == "desc")


@dataclass(frozen=True)
class Page:
    """One page of a view.

    ``start_index`` is inclusive and ``end_index`` exclusive, both clamped
    to the bounds of the view.
    """

    items: List[Order]
    start_index: int
    end_index: int
    page: int
    page_size: int
    total_items: int
    total_pages: int

    @property
    def has_next(self) -> bool:
        return self.page < self.total_pages

    @property
    def has_prev(self) -> bool:
        return self.page > 1


def paginate(view: Sequence[Order], page: int, page_size: int) -> Page:
    """Slice ``view`` into a 1-indexed page.

    Pages outside ``1..total_pages`` yield no items instead of raising.
    Callers changing ``page_size`` are expected to go back to page 1.

    Raises:
        ValidationError: If ``page_size`` is smaller than 1.
    """
    if page_size < 1:
        raise ValidationError("INVALID_PAGE_SIZE", f"page_size must be >= 1, got {page_size}")

    total = len(view)
    total_pages = -(-total // page_size)
    if page < 1:
        start = end = 0
    else:
        start = min((page - 1) * page_size, total)
        end = min(start + page_size, total)
    return Page(
        items=list(view[start:end]),
        start_index=start,
        end_index=end,
        page=page,
        page_size=page_size,
        total_items=total,
        total_pages=total_pages,
    )


EXPORT_COLUMNS = (
    "id",
    "tracking_code",
    "placed_at",
    "customer_name",
    "customer_email",
    "customer_phone",
    "customer_address",
    "items",
    "subtotal",
    "shipping_fee",
    "discount",
    "total_amount",
    "status",
    "payment_status",
    "payment_method",
    "notes",
)


def export_rows(view: Iterable[Order]) -> Iterator[dict[str, Any]]:
    """Yield one flat row per order, in view order, keyed by ``EXPORT_COLUMNS``."""
    for o in view:
        yield {
            "id": o.id,
            "tracking_code": o.tracking_code or "",
            "placed_at": o.placed_at.isoformat(),
            "customer_name": o.customer.name,
            "customer_email": o.customer.email,
            "customer_phone": o.customer.phone,
            "customer_address": o.customer.address,
            "items": "; ".join(f"{line.name} x{line.quantity}" for line in o.lines),
            "subtotal": o.subtotal,
            "shipping_fee": o.shipping_fee,
            "discount": o.discount,
            "total_amount": o.total_amount,
            "status": o.status.value,
            "payment_status": o.payment_status.value,
            "payment_method": o.payment_method,
            "notes": o.notes,
        }
