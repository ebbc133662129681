"""In-process stub for the upstream order API.

``InMemoryOrdersStub`` implements ``OrdersPort`` without any network calls.
It is used by unit tests and local development where deterministic
behavior is useful and the upstream API is not available.
"""

import threading
from dataclasses import replace
from datetime import date, datetime, timezone
from typing import Dict, Iterable, List, Optional

from .domain import FetchError, Order, OrderBatch, OrderStatus, OrdersPort, UpstreamPagination


class InMemoryOrdersStub(OrdersPort):
    """Dictionary-backed ``OrdersPort``.

    Orders are returned newest first, like the upstream API. Failures can be
    injected with ``fail_next_fetch`` and ``fail_status_for`` to exercise the
    error paths of the callers.
    """

    def __init__(self, orders: Iterable[Order] = ()):
        self._lock = threading.Lock()
        self._orders: Dict[str, Order] = {}
        self.fail_fetches = 0
        self.fail_status_for: set[str] = set()
        self.status_calls: List[tuple[str, OrderStatus, Optional[str]]] = []
        self.seed(orders)

    def seed(self, orders: Iterable[Order]) -> None:
        with self._lock:
            for o in orders:
                self._orders[o.id] = o

    def clear(self) -> None:
        with self._lock:
            self._orders.clear()
            self.fail_fetches = 0
            self.fail_status_for.clear()
            self.status_calls.clear()

    def fail_next_fetch(self, times: int = 1) -> None:
        self.fail_fetches += times

    def get(self, order_id: str) -> Optional[Order]:
        return self._orders.get(order_id)

    def list_orders(
        self,
        *,
        date_from: date | None = None,
        date_to: date | None = None,
        status: OrderStatus | None = None,
        page: int = 1,
        limit: int = 100,
    ) -> OrderBatch:
        with self._lock:
            if self.fail_fetches:
                self.fail_fetches -= 1
                raise FetchError("UPSTREAM_UNAVAILABLE", status_code=503)
            rows = [
                o
                for o in self._orders.values()
                if (date_from is None or o.placed_date >= date_from)
                and (date_to is None or o.placed_date <= date_to)
                and (status is None or o.status == status)
            ]
        rows.sort(key=lambda o: o.placed_at, reverse=True)
        start = (page - 1) * limit
        return OrderBatch(
            orders=rows[start:start + limit],
            pagination=UpstreamPagination(
                page=page, limit=limit, total=len(rows), pages=-(-len(rows) // limit)
            ),
        )

    def set_status(
        self, order_id: str, status: OrderStatus, tracking_code: str | None = None
    ) -> None:
        with self._lock:
            self.status_calls.append((order_id, OrderStatus(status), tracking_code))
            if order_id in self.fail_status_for:
                raise FetchError("UPSTREAM_UNAVAILABLE", status_code=503)
            current = self._orders.get(order_id)
            if current is None:
                raise FetchError("ORDER_NOT_FOUND", status_code=404)
            self._orders[order_id] = replace(
                current,
                status=OrderStatus(status),
                tracking_code=current.tracking_code or tracking_code,
                last_updated=datetime.now(timezone.utc),
            )
