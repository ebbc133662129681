"""Service that wires the pure engines to the upstream order API.

``OrderConsoleService`` fetches order snapshots through an ``OrdersPort``,
derives console views and sales reports from them, and turns validated
status transitions into ``set_status`` calls. Results of upstream-backed
reads are published to a ``ResultBoard`` so that a failed refresh serves the
last good result with an error indicator instead of an empty one.
"""

import logging
from dataclasses import dataclass
from datetime import date, datetime, timedelta, timezone, tzinfo
from typing import Callable, List, Optional, Sequence

from .analytics import DEFAULT_TOP_N, AnalyticsReport, aggregate, resolve_period
from .board import ResultBoard
from .domain import FetchError, Order, OrderStatus, OrdersPort
from .query import QuerySpec, apply_query
from .status_machine import (
    BulkResult,
    TrackingCodeFactory,
    TransitionOutcome,
    apply_bulk_transition,
    apply_transition,
)

logger = logging.getLogger("orders")

SNAPSHOT_KEY = "orders:snapshot"
FETCH_MARGIN = timedelta(days=1)


def _unique(orders: Sequence[Order]) -> List[Order]:
    """Drop repeated order ids, keeping the first occurrence."""
    seen: dict[str, Order] = {}
    for o in orders:
        seen.setdefault(o.id, o)
    return list(seen.values())


@dataclass(frozen=True)
class ViewResult:
    """Ordered console view.

    ``stale`` is True when the upstream fetch failed and ``orders`` was
    derived from the last good snapshot; ``error`` then holds the failure
    code.
    """

    orders: List[Order]
    error: Optional[str] = None
    stale: bool = False


@dataclass(frozen=True)
class ReportResult:
    report: Optional[AnalyticsReport]
    error: Optional[str] = None
    stale: bool = False


class OrderConsoleService:
    """Back-office operations over upstream order snapshots.

    Every call fetches a fresh snapshot, so views and reports always reflect
    status changes persisted by earlier calls.
    """

    def __init__(
        self,
        orders: OrdersPort,
        board: ResultBoard,
        *,
        tracking_codes: Optional[TrackingCodeFactory] = None,
        clock: Optional[Callable[[], datetime]] = None,
        tz: Optional[tzinfo] = None,
        fetch_page_size: int = 100,
        top_n: int = DEFAULT_TOP_N,
    ):
        """Initialize the service.

        Args:
            orders: Upstream order API.
            board: Holder of last good snapshots and reports.
            tracking_codes: Factory for tracking codes assigned on
                confirmation; the status machine default when None.
            clock: Returns the current aware datetime.
            tz: Time zone whose calendar days bucket the sales report.
            fetch_page_size: Page size used when walking upstream pages.
            top_n: Length of the top-product ranking.
        """
        self.orders = orders
        self.board = board
        self.tracking_codes = tracking_codes
        self.clock = clock or (lambda: datetime.now(timezone.utc))
        self.tz = tz
        self.fetch_page_size = fetch_page_size
        self.top_n = top_n

    def today(self) -> date:
        now = self.clock()
        return now.astimezone(self.tz).date() if self.tz is not None else now.date()

    # ---- Reads ----
    def snapshot(self, date_from: date | None = None, date_to: date | None = None) -> List[Order]:
        """Fetch every upstream page of orders placed between the two dates.

        Raises:
            FetchError: When any page fails; no partial snapshot is returned.
        """
        orders: List[Order] = []
        page = 1
        while True:
            batch = self.orders.list_orders(
                date_from=date_from, date_to=date_to, page=page, limit=self.fetch_page_size
            )
            orders.extend(batch.orders)
            if not batch.orders or page >= batch.pagination.pages:
                return orders
            page += 1

    def order_view(self, spec: QuerySpec) -> ViewResult:
        """Filter and sort a fresh snapshot.

        Raises:
            FetchError: When the fetch fails and no earlier snapshot exists.
        """
        token = self.board.issue(SNAPSHOT_KEY)
        try:
            snapshot = self.snapshot()
        except FetchError as e:
            self.board.fail(SNAPSHOT_KEY, token, e.code)
            last = self.board.read(SNAPSHOT_KEY)
            if last.value is None:
                raise
            logger.warning("serving last good order snapshot", extra={"error": e.code})
            return ViewResult(orders=apply_query(last.value, spec), error=e.code, stale=True)

        self.board.publish(SNAPSHOT_KEY, token, snapshot)
        return ViewResult(orders=apply_query(snapshot, spec))

    def sales_report(self, period) -> ReportResult:
        """Aggregate delivered sales for ``period`` and its preceding window.

        Two upstream fetches are made, one per window, each widened by a day
        because upstream bounds are UTC days while buckets use local days.
        Orders returned by both fetches are counted once. On failure no partial
        report is produced: the previous report for the same period, if any,
        is returned with the error code.

        Raises:
            ValidationError: For an unsupported period.
        """
        days = resolve_period(period)
        key = f"analytics:{days}"
        token = self.board.issue(key)
        today = self.today()
        start = today - timedelta(days=days - 1)
        prev_start = start - timedelta(days=days)
        prev_end = start - timedelta(days=1)

        try:
            current = self.snapshot(date_from=start - FETCH_MARGIN, date_to=today + FETCH_MARGIN)
            previous = self.snapshot(date_from=prev_start - FETCH_MARGIN, date_to=prev_end + FETCH_MARGIN)
        except FetchError as e:
            self.board.fail(key, token, e.code)
            last = self.board.read(key)
            logger.warning(
                "sales report refresh failed",
                extra={"period_days": days, "error": e.code, "has_previous": last.value is not None},
            )
            return ReportResult(report=last.value, error=e.code, stale=True)

        report = aggregate(_unique(current + previous), days, today=today, tz=self.tz, top_n=self.top_n)
        self.board.publish(key, token, report)
        return ReportResult(report=report)

    # ---- Writes ----
    def _find(self, snapshot: Sequence[Order], order_id: str) -> Optional[Order]:
        return next((o for o in snapshot if o.id == order_id), None)

    def _persist(self, before: Order, after: Order) -> None:
        new_code = after.tracking_code if after.tracking_code != before.tracking_code else None
        self.orders.set_status(after.id, after.status, new_code)

    def change_status(self, order_id: str, target: OrderStatus | str) -> Order:
        """Validate and persist one status change.

        Raises:
            FetchError: ``ORDER_NOT_FOUND`` when the order is not in the
                snapshot, or any upstream failure.
            TransitionError: When the transition is not allowed.
        """
        order = self._find(self.snapshot(), order_id)
        if order is None:
            raise FetchError("ORDER_NOT_FOUND", status_code=404)
        updated = apply_transition(order, target, now=self.clock(), tracking_codes=self.tracking_codes)
        self._persist(order, updated)
        logger.info(
            "order status changed",
            extra={"order_id": order_id, "from": order.status.value, "to": updated.status.value},
        )
        return updated

    def bulk_change_status(self, order_ids: Sequence[str], target: OrderStatus | str) -> BulkResult:
        """Transition many orders, one upstream call per accepted order.

        Unknown ids, rejected transitions and failed writes each become a
        failed outcome; the others still go through. Repeated ids are
        handled once; the result has one outcome per distinct id, in the
        order first given.

        Raises:
            FetchError: Only when the initial snapshot cannot be fetched.
        """
        order_ids = list(dict.fromkeys(order_ids))
        snapshot = {o.id: o for o in self.snapshot()}
        found = [snapshot[i] for i in order_ids if i in snapshot]
        validated = {
            o.order_id: o
            for o in apply_bulk_transition(
                found, target, now=self.clock(), tracking_codes=self.tracking_codes
            ).outcomes
        }

        outcomes: List[TransitionOutcome] = []
        for order_id in order_ids:
            outcome = validated.get(order_id)
            if outcome is None:
                outcomes.append(TransitionOutcome(order_id=order_id, ok=False, error="ORDER_NOT_FOUND"))
                continue
            if outcome.ok:
                try:
                    self._persist(snapshot[order_id], outcome.order)
                except FetchError as e:
                    outcome = TransitionOutcome(order_id=order_id, ok=False, error=e.code)
            outcomes.append(outcome)

        result = BulkResult(outcomes=outcomes)
        logger.info(
            "bulk status change",
            extra={
                "target": getattr(target, "value", target),
                "succeeded": len(result.succeeded),
                "failed": len(result.failed),
            },
        )
        return result
