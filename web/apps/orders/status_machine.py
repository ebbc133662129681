"""Order lifecycle state machine.

Validates single and bulk status changes and returns the updated order
snapshots. Nothing here talks to the upstream API: callers persist the
returned orders through ``OrdersPort.set_status``.
"""

import logging
import uuid
from dataclasses import dataclass, replace
from datetime import datetime, timezone
from typing import Callable, Iterable, List, Optional

from .domain import Order, OrderStatus, TransitionError

logger = logging.getLogger("orders")

# One step forward along pending -> confirmed -> shipping -> delivered, or
# straight to cancelled from any non-terminal status.
ALLOWED_TRANSITIONS: dict[OrderStatus, frozenset[OrderStatus]] = {
    OrderStatus.PENDING: frozenset({OrderStatus.CONFIRMED, OrderStatus.CANCELLED}),
    OrderStatus.CONFIRMED: frozenset({OrderStatus.SHIPPING, OrderStatus.CANCELLED}),
    OrderStatus.SHIPPING: frozenset({OrderStatus.DELIVERED, OrderStatus.CANCELLED}),
    OrderStatus.DELIVERED: frozenset(),
    OrderStatus.CANCELLED: frozenset(),
}

TrackingCodeFactory = Callable[[Order], str]


def default_tracking_code(order: Order) -> str:
    """Return a fresh human-facing tracking code such as ``TRK3F9A0C12BE``."""
    return "TRK" + uuid.uuid4().hex[:10].upper()


def _coerce_status(order: Order, target) -> OrderStatus:
    try:
        return OrderStatus(target)
    except ValueError:
        raise TransitionError("UNKNOWN_STATUS", order.status.value, str(target)) from None


def can_transition(current: OrderStatus, target: OrderStatus) -> bool:
    """Return True if ``current -> target`` is a single allowed step."""
    return target in ALLOWED_TRANSITIONS[current]


def apply_transition(
    order: Order,
    target: OrderStatus | str,
    *,
    now: Optional[datetime] = None,
    tracking_codes: Optional[TrackingCodeFactory] = None,
) -> Order:
    """Validate and apply one status change.

    Entering ``confirmed`` assigns a tracking code when the order has none
    yet; an existing code is kept as is.

    Args:
        order: Current order snapshot.
        target: Requested status (enum member or its token).
        now: Timestamp recorded as ``last_updated``; defaults to UTC now.
        tracking_codes: Factory for new tracking codes.

    Returns:
        A new ``Order`` with the requested status.

    Raises:
        TransitionError: ``UNKNOWN_STATUS`` for an unknown token,
            ``TERMINAL_STATUS`` when the order is delivered or cancelled,
            ``INVALID_TRANSITION`` when the target is not one step away.
    """
    status = _coerce_status(order, target)
    if order.status.is_terminal:
        raise TransitionError("TERMINAL_STATUS", order.status.value, status.value)
    if not can_transition(order.status, status):
        raise TransitionError("INVALID_TRANSITION", order.status.value, status.value)

    changes = {
        "status": status,
        "last_updated": now or datetime.now(timezone.utc),
    }
    if status is OrderStatus.CONFIRMED and not order.tracking_code:
        changes["tracking_code"] = (tracking_codes or default_tracking_code)(order)
    return replace(order, **changes)


@dataclass(frozen=True)
class TransitionOutcome:
    """Result of one item of a bulk transition.

    Attributes:
        order_id: Identifier of the order the outcome refers to.
        ok: True when the transition was accepted.
        order: Updated snapshot when ``ok``; otherwise None.
        error: Error code when not ``ok`` (e.g. ``TERMINAL_STATUS``).
    """

    order_id: str
    ok: bool
    order: Optional[Order] = None
    error: Optional[str] = None


@dataclass(frozen=True)
class BulkResult:
    outcomes: List[TransitionOutcome]

    @property
    def succeeded(self) -> List[TransitionOutcome]:
        return [o for o in self.outcomes if o.ok]

    @property
    def failed(self) -> List[TransitionOutcome]:
        return [o for o in self.outcomes if not o.ok]


def apply_bulk_transition(
    orders: Iterable[Order],
    target: OrderStatus | str,
    *,
    now: Optional[datetime] = None,
    tracking_codes: Optional[TrackingCodeFactory] = None,
) -> BulkResult:
    """Apply ``apply_transition`` to every order independently.

    A rejected order never stops the batch; the result holds exactly one
    outcome per input order, in input order.
    """
    now = now or datetime.now(timezone.utc)
    outcomes: List[TransitionOutcome] = []
    for order in orders:
        try:
            updated = apply_transition(order, target, now=now, tracking_codes=tracking_codes)
        except TransitionError as e:
            logger.info(
                "transition rejected",
                extra={"order_id": order.id, "code": e.code, "current": e.current, "target": e.target},
            )
            outcomes.append(TransitionOutcome(order_id=order.id, ok=False, error=e.code))
            continue
        outcomes.append(TransitionOutcome(order_id=order.id, ok=True, order=updated))
    return BulkResult(outcomes=outcomes)
