"""Unit tests for the HTTP order client.

These tests verify request shaping (paths, query parameters, headers,
payloads) and the mapping of upstream responses onto ``OrderBatch`` and
``FetchError`` by monkeypatching ``httpx.Client.request``.
"""

from datetime import date

import httpx
import pytest

from apps.orders.domain import FetchError, OrderStatus
from apps.orders.http_adapters import HttpOrdersClient
from gateway.middleware import REQUEST_ID_CTX


class DummyResp:
    """Minimal httpx-like response stub for adapter tests.

    Args:
        status_code (int): HTTP status code to simulate.
        json_data (dict | None): JSON body to return from ``json()``.
    """

    def __init__(self, status_code=200, json_data=None):
        self.status_code = status_code
        self._json = json_data or {}

    def json(self):
        return self._json


RECORD = {
    "_id": "o-1",
    "customerName": "Lan Pham",
    "customerPhone": "0903000000",
    "items": [{"productId": "p1", "productName": "Coffee", "price": 45000, "quantity": 2}],
    "totalAmount": 90000,
    "status": "delivered",
    "paymentStatus": "paid",
    "createdAt": "2026-10-12T03:15:00Z",
}


@pytest.fixture
def upstream(monkeypatch, settings):
    """Queue of canned responses; every request is recorded in ``sent``."""
    settings.HTTP_RETRY_MAX = 0

    class Upstream:
        def __init__(self):
            self.sent = []
            self.replies = []

    up = Upstream()

    def fake_request(self, method, url, headers=None, **kw):
        up.sent.append({"method": method, "url": url, "headers": dict(headers or {}), **kw})
        reply = up.replies.pop(0)
        if isinstance(reply, Exception):
            raise reply
        return reply

    monkeypatch.setattr(httpx.Client, "request", fake_request, raising=True)
    return up


def test_list_orders_ok(upstream):
    pagination = {"page": 1, "limit": 50, "total": 1, "pages": 1}
    upstream.replies.append(DummyResp(200, {"success": True, "data": {"orders": [RECORD], "pagination": pagination}}))
    client = HttpOrdersClient(base_url="http://orders-api/api/")
    batch = client.list_orders(date_from=date(2026, 10, 1), date_to=date(2026, 10, 19), page=1, limit=50)

    assert [o.id for o in batch.orders] == ["o-1"]
    assert batch.orders[0].status == OrderStatus.DELIVERED
    assert batch.pagination.pages == 1

    sent = upstream.sent[0]
    assert sent["method"] == "GET"
    assert sent["url"] == "http://orders-api/api/orders/all"
    assert sent["params"] == {
        "page": 1,
        "limit": 50,
        "startDate": "2026-10-01T00:00:00.000Z",
        "endDate": "2026-10-19T23:59:59.999Z",
    }


def test_list_orders_accepts_unwrapped_body_and_status_filter(upstream):
    upstream.replies.append(DummyResp(200, {"orders": [RECORD, {"_id": "broken"}]}))
    batch = HttpOrdersClient(base_url="http://x").list_orders(status=OrderStatus.SHIPPING)
    assert [o.id for o in batch.orders] == ["o-1"]
    assert upstream.sent[0]["params"]["status"] == "shipping"


def test_list_orders_propagates_request_id(upstream):
    upstream.replies.append(DummyResp(200, {"orders": []}))
    token = REQUEST_ID_CTX.set("req-abc")
    try:
        HttpOrdersClient(base_url="http://x").list_orders()
    finally:
        REQUEST_ID_CTX.reset(token)
    assert upstream.sent[0]["headers"]["X-Request-ID"] == "req-abc"
    assert upstream.sent[0]["headers"]["X-Circuit-State"] == "CLOSED"


def test_list_orders_rejected(upstream):
    upstream.replies.append(DummyResp(401, {"message": "unauthorized"}))
    with pytest.raises(FetchError) as e:
        HttpOrdersClient(base_url="http://x").list_orders()
    assert e.value.code == "UPSTREAM_REJECTED"
    assert e.value.status_code == 401


def test_set_status_sends_tracking_code(upstream):
    upstream.replies.append(DummyResp(200, {"success": True}))
    HttpOrdersClient(base_url="http://x").set_status("o-1", OrderStatus.CONFIRMED, "TRK123")
    sent = upstream.sent[0]
    assert sent["method"] == "PATCH"
    assert sent["url"] == "http://x/orders/o-1/status"
    assert sent["json"] == {"status": "confirmed", "trackingCode": "TRK123"}


def test_set_status_without_tracking_code(upstream):
    upstream.replies.append(DummyResp(204))
    HttpOrdersClient(base_url="http://x").set_status("o-1", "shipping")
    assert upstream.sent[0]["json"] == {"status": "shipping"}


def test_set_status_unknown_order(upstream):
    upstream.replies.append(DummyResp(404))
    with pytest.raises(FetchError) as e:
        HttpOrdersClient(base_url="http://x").set_status("missing", OrderStatus.CANCELLED)
    assert e.value.code == "ORDER_NOT_FOUND"


def test_network_error_becomes_fetch_error(upstream):
    upstream.replies.append(httpx.ConnectError("boom"))
    with pytest.raises(FetchError) as e:
        HttpOrdersClient(base_url="http://x").list_orders()
    assert e.value.code == "UPSTREAM_UNAVAILABLE"
    assert e.value.status_code is None
