"""HTTP client for the upstream order API with retries and a circuit breaker.

This module implements ``OrdersPort`` using ``httpx``. It adds:

- Request correlation: propagates ``X-Request-ID`` from the ContextVar set
    by the gateway middleware.
- A circuit breaker guarding the upstream API, with HALF_OPEN probing after
    a timeout.
- A retry policy with capped exponential backoff for transport errors and
    5xx responses.
- Boundary validation: raw order records are checked with
    ``schemas.OrderRecordIn``; invalid records are logged and skipped.

Every failure surfaces as ``domain.FetchError``.
"""

import logging
import threading
import time
from datetime import date
from typing import Any, List, Optional

import httpx
import pydantic
from django.conf import settings

from gateway.middleware import REQUEST_ID_CTX

from .domain import FetchError, Order, OrderBatch, OrderStatus, OrdersPort, UpstreamPagination
from .schemas import OrderRecordIn, UpstreamPaginationIn

logger = logging.getLogger("orders")


# ---------------- Circuit Breaker ---------------- #

class CircuitBreaker:
    """Minimal circuit breaker with CLOSED/OPEN/HALF_OPEN states.

    Transitions:
    - CLOSED → OPEN when failures reach ``fail_threshold``.
    - OPEN → HALF_OPEN after ``reset_timeout`` seconds.
    - HALF_OPEN → CLOSED on a successful probe; only one probe may be in
      flight; a failed probe reopens the circuit.

    Thread-safe via an internal lock.
    """

    def __init__(self, name: str, fail_threshold: int, reset_timeout: float):
        self.name = name
        self.fail_threshold = fail_threshold
        self.reset_timeout = reset_timeout
        self._lock = threading.RLock()
        self._failures = 0
        self._state = "CLOSED"
        self._opened_at = 0.0
        self._probe_in_flight = False

    @property
    def state(self) -> str:
        with self._lock:
            if self._state == "OPEN" and (time.monotonic() - self._opened_at) >= self.reset_timeout:
                self._state = "HALF_OPEN"
                self._probe_in_flight = False
            return self._state

    def before_call(self) -> str:
        """Return the state at call time.

        Raises:
            FetchError: ``CIRCUIT_OPEN`` while open or while a HALF_OPEN
                probe is already running.
        """
        with self._lock:
            st = self.state
            if st == "OPEN":
                raise FetchError("CIRCUIT_OPEN")
            if st == "HALF_OPEN":
                if self._probe_in_flight:
                    raise FetchError("CIRCUIT_OPEN")
                self._probe_in_flight = True
            return st

    def on_success(self):
        with self._lock:
            if self._state != "CLOSED":
                logger.info("circuit closed", extra={"circuit": self.name})
            self._failures = 0
            self._state = "CLOSED"
            self._probe_in_flight = False

    def on_failure(self):
        with self._lock:
            self._failures += 1
            if self._state == "HALF_OPEN" or (
                self._failures >= self.fail_threshold and self._state != "OPEN"
            ):
                logger.warning("circuit opened", extra={"circuit": self.name, "failures": self._failures})
                self._state = "OPEN"
                self._opened_at = time.monotonic()
                self._probe_in_flight = False

    def on_finish(self):
        with self._lock:
            if self._state == "HALF_OPEN":
                self._probe_in_flight = False

    def reset(self):
        with self._lock:
            self._failures = 0
            self._state = "CLOSED"
            self._probe_in_flight = False


_orders_cb = CircuitBreaker(
    "orders",
    getattr(settings, "HTTP_CIRCUIT_FAIL_THRESHOLD", 5),
    getattr(settings, "HTTP_CIRCUIT_RESET_TIMEOUT", 30.0),
)


# ---------------- Helpers ---------------- #

def _request_headers(extra: Optional[dict] = None) -> dict:
    """Base headers: ``X-Request-ID`` when a request id is known, plus extras."""
    headers: dict[str, str] = {}
    rid = REQUEST_ID_CTX.get()
    if rid and rid != "-":
        headers["X-Request-ID"] = rid
    if extra:
        headers.update(extra)
    return headers


def _retry_policy() -> tuple[int, float, float]:
    """Return ``(max_retries, backoff_base_seconds, max_sleep_seconds)``."""
    return (
        getattr(settings, "HTTP_RETRY_MAX", 3),
        getattr(settings, "HTTP_RETRY_BACKOFF_BASE", 0.15),
        getattr(settings, "HTTP_RETRY_MAX_SLEEP", 0.5),
    )


def _should_retry(resp: Optional[httpx.Response], exc: Optional[Exception]) -> bool:
    # Retry only on transport errors or 5xx
    if exc is not None:
        return True
    return resp is not None and 500 <= resp.status_code < 600


def parse_orders(records: List[Any]) -> List[Order]:
    """Validate raw upstream records, skipping (and logging) invalid ones."""
    orders: List[Order] = []
    for raw in records:
        try:
            orders.append(OrderRecordIn.model_validate(raw).to_domain())
        except (pydantic.ValidationError, ValueError) as e:
            rid = raw.get("_id") if isinstance(raw, dict) else None
            logger.warning("skipping invalid order record", extra={"order_id": rid, "error": str(e)})
    return orders


# ---------------- Orders Adapter ---------------- #

class HttpOrdersClient(OrdersPort):
    """HTTP client for the upstream order API."""

    def __init__(self, base_url: str | None = None, timeout: float | None = None):
        self.base_url = (base_url or settings.ORDERS_API_BASE_URL).rstrip("/")
        self.timeout = timeout or settings.HTTP_TIMEOUT_SECS

    def _send(self, method: str, path: str, **kwargs) -> httpx.Response:
        """Send one request under the circuit breaker and retry policy.

        Returns the first response with a status below 500. 4xx responses are
        returned to the caller, which decides whether they are business
        outcomes; they do not count as circuit failures.

        Raises:
            FetchError: ``CIRCUIT_OPEN`` when the breaker rejects the call,
                ``UPSTREAM_UNAVAILABLE`` once retries are exhausted.
        """
        max_retries, backoff, cap = _retry_policy()
        state = _orders_cb.before_call()
        headers = _request_headers({"X-Circuit-State": state, "X-Retry-Count": "0"})
        tries = 0

        try:
            with httpx.Client(timeout=self.timeout) as client:
                while True:
                    resp = None
                    exc = None
                    try:
                        resp = client.request(method, f"{self.base_url}{path}", headers=headers, **kwargs)
                        if resp.status_code < 500:
                            _orders_cb.on_success()
                            return resp
                    except httpx.RequestError as e:
                        exc = e

                    tries += 1
                    headers["X-Retry-Count"] = str(tries)

                    if tries > max_retries or not _should_retry(resp, exc):
                        _orders_cb.on_failure()
                        status_code = resp.status_code if resp is not None else None
                        logger.error(
                            "upstream call failed",
                            extra={"method": method, "path": path, "status": status_code, "tries": tries},
                        )
                        raise FetchError("UPSTREAM_UNAVAILABLE", status_code=status_code) from exc

                    logger.info(
                        "retrying upstream call",
                        extra={"method": method, "path": path, "retry": tries},
                    )
                    time.sleep(min(backoff * (2 ** (tries - 1)), cap))
        finally:
            _orders_cb.on_finish()

    def list_orders(
        self,
        *,
        date_from: date | None = None,
        date_to: date | None = None,
        status: OrderStatus | None = None,
        page: int = 1,
        limit: int = 100,
    ) -> OrderBatch:
        """Fetch one page of orders from ``GET /orders/all``.

        ``date_from``/``date_to`` are sent as whole-day bounds
        (``T00:00:00.000Z`` .. ``T23:59:59.999Z``).

        Raises:
            FetchError: ``UPSTREAM_REJECTED`` for a 4xx response, or any
                error raised by ``_send``.
        """
        params: dict[str, Any] = {"page": page, "limit": limit}
        if status is not None:
            params["status"] = OrderStatus(status).value
        if date_from is not None:
            params["startDate"] = f"{date_from.isoformat()}T00:00:00.000Z"
        if date_to is not None:
            params["endDate"] = f"{date_to.isoformat()}T23:59:59.999Z"

        resp = self._send("GET", "/orders/all", params=params)
        if resp.status_code != 200:
            raise FetchError("UPSTREAM_REJECTED", status_code=resp.status_code)

        try:
            body = resp.json()
        except ValueError:
            raise FetchError("UPSTREAM_UNAVAILABLE", status_code=resp.status_code) from None
        data = body.get("data") or body
        orders = parse_orders(data.get("orders") or [])
        p = UpstreamPaginationIn.model_validate(data.get("pagination") or {})
        return OrderBatch(
            orders=orders,
            pagination=UpstreamPagination(page=p.page, limit=p.limit, total=p.total, pages=p.pages),
        )

    def set_status(
        self, order_id: str, status: OrderStatus, tracking_code: str | None = None
    ) -> None:
        """Persist a status change with ``PATCH /orders/{id}/status``.

        Raises:
            FetchError: ``ORDER_NOT_FOUND`` on 404, ``UPSTREAM_REJECTED`` on
                other 4xx responses, or any error raised by ``_send``.
        """
        payload: dict[str, Any] = {"status": OrderStatus(status).value}
        if tracking_code:
            payload["trackingCode"] = tracking_code

        resp = self._send("PATCH", f"/orders/{order_id}/status", json=payload)
        if resp.status_code == 404:
            raise FetchError("ORDER_NOT_FOUND", status_code=404)
        if not 200 <= resp.status_code < 300:
            raise FetchError("UPSTREAM_REJECTED", status_code=resp.status_code)
