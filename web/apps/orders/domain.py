"""Domain models, error taxonomy and ports for the order back-office.

This module contains the immutable dataclasses the engines operate on, the
error types they raise, and the protocol definition (port) of the upstream
order API. Nothing in here performs I/O.
"""

from dataclasses import dataclass, field
from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from typing import List, Optional, Protocol


# ---- Enums ----
class OrderStatus(str, Enum):
    """Fulfilment status of an order.

    ``delivered`` and ``cancelled`` are terminal.
    """

    PENDING = "pending"
    CONFIRMED = "confirmed"
    SHIPPING = "shipping"
    DELIVERED = "delivered"
    CANCELLED = "cancelled"

    @property
    def is_terminal(self) -> bool:
        return self in (OrderStatus.DELIVERED, OrderStatus.CANCELLED)


class PaymentStatus(str, Enum):
    """Payment axis of an order, independent from ``OrderStatus``."""

    PENDING = "pending"
    PAID = "paid"
    FAILED = "failed"


# ---- Errors ----
class OrdersError(Exception):
    """Base class for errors raised by the orders app.

    Attributes:
        code: Short upper-case error code (e.g. ``INVALID_TRANSITION``) that
            views return verbatim as ``detail``.
    """

    def __init__(self, code: str, message: str | None = None):
        super().__init__(message or code)
        self.code = code


class TransitionError(OrdersError):
    """A status change was requested that the lifecycle does not allow."""

    def __init__(self, code: str, current: str, target: str):
        super().__init__(code, f"{code}: {current} -> {target}")
        self.current = current
        self.target = target


class FetchError(OrdersError):
    """The upstream order API failed or refused a call."""

    def __init__(self, code: str, status_code: int | None = None, message: str | None = None):
        super().__init__(code, message)
        self.status_code = status_code


class ValidationError(OrdersError):
    """Malformed query, period or paging input, rejected before any work."""

    def __init__(self, code: str, detail: str | None = None):
        super().__init__(code, detail)
        self.detail = detail or code


# ---- Entities ----
@dataclass(frozen=True)
class OrderLine:
    """A single line of an order.

    Attributes:
        product_id: Reference to the catalogue product.
        name: Display name captured when the order was placed.
        unit_price: Price of one unit.
        quantity: Units ordered, at least 1.
        image: Optional image URL.
        category: Product category, ``"Unknown"`` when upstream omits it.
    """

    product_id: str
    name: str
    unit_price: Decimal
    quantity: int
    image: Optional[str] = None
    category: str = "Unknown"

    @property
    def line_total(self) -> Decimal:
        return self.unit_price * self.quantity


@dataclass(frozen=True)
class CustomerInfo:
    name: str
    phone: str = ""
    email: str = ""
    address: str = ""


@dataclass(frozen=True)
class Order:
    """Snapshot of an order as supplied by the upstream API.

    Orders are never mutated in place: the status machine returns a copy and
    the upstream API persists it. ``total_amount`` must always equal
    ``subtotal + shipping_fee - discount``; construction fails otherwise.
    """

    id: str
    customer: CustomerInfo
    lines: tuple[OrderLine, ...]
    subtotal: Decimal
    total_amount: Decimal
    placed_at: datetime
    shipping_fee: Decimal = Decimal("0")
    discount: Decimal = Decimal("0")
    status: OrderStatus = OrderStatus.PENDING
    payment_status: PaymentStatus = PaymentStatus.PENDING
    payment_method: str = "cod"
    notes: str = ""
    tracking_code: Optional[str] = None
    last_updated: Optional[datetime] = None

    def __post_init__(self):
        expected = self.subtotal + self.shipping_fee - self.discount
        if self.total_amount != expected:
            raise ValueError("TOTAL_MISMATCH")

    @property
    def placed_date(self) -> date:
        return self.placed_at.date()


@dataclass(frozen=True)
class UpstreamPagination:
    """Paging metadata returned by ``OrdersPort.list_orders``."""

    page: int
    limit: int
    total: int
    pages: int


@dataclass(frozen=True)
class OrderBatch:
    orders: List[Order]
    pagination: UpstreamPagination = field(
        default_factory=lambda: UpstreamPagination(page=1, limit=0, total=0, pages=0)
    )


# ---- Ports (DIP) ----
class OrdersPort(Protocol):
    """Port describing the upstream order API used by the back-office.

    Implementers own storage and durability; the back-office only reads
    snapshots and asks for status writes.
    """

    def list_orders(
        self,
        *,
        date_from: date | None = None,
        date_to: date | None = None,
        status: OrderStatus | None = None,
        page: int = 1,
        limit: int = 100,
    ) -> OrderBatch:
        """Return one page of orders, optionally restricted to a date range.

        Args:
            date_from: First placed date to include (inclusive).
            date_to: Last placed date to include (inclusive).
            status: Optional exact status filter.
            page: 1-indexed page number.
            limit: Page size.

        Raises:
            FetchError: When the upstream call fails.
        """
        raise NotImplementedError()

    def set_status(
        self, order_id: str, status: OrderStatus, tracking_code: str | None = None
    ) -> None:
        """Persist a validated status change for one order.

        Raises:
            FetchError: When the upstream call fails or is refused.
        """
        raise NotImplementedError()
