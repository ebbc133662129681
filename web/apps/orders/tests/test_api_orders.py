"""API tests for the order list, export and status endpoints.

The upstream order API is replaced by the in-memory stub (see
``conftest.use_stubs_for_tests``); orders are seeded through the
``orders_stub`` fixture.
"""

from datetime import datetime, timedelta, timezone

from apps.orders.domain import OrderStatus

LIST_URL = "/api/orders/"
EXPORT_URL = "/api/orders/export/"
STATUS_URL = "/api/orders/{oid}/status/"
BULK_URL = "/api/orders/bulk-status/"

BASE = datetime(2026, 9, 1, 8, 0, tzinfo=timezone.utc)


def seed_many(orders_stub, make_order, n):
    orders_stub.seed(make_order(id=str(i + 1), placed_at=BASE + timedelta(hours=i)) for i in range(n))


def test_ping(client):
    r = client.get("/api/orders/ping/")
    assert r.status_code == 200
    assert r.json() == {"ok": True}


def test_list_orders_default_view(client, orders_stub, make_order):
    seed_many(orders_stub, make_order, 3)
    r = client.get(LIST_URL)
    assert r.status_code == 200
    body = r.json()
    assert body["count"] == 3
    assert [o["id"] for o in body["results"]] == ["3", "2", "1"]
    assert body["pages"] == [1]
    assert body["page_size"] == 10
    assert body["stale"] is False and body["error"] is None
    first = body["results"][0]
    assert first["customer_name"] == "Alice Nguyen"
    assert first["status"] == "pending"
    assert first["items"][0]["name"] == "Rice 5kg"


def test_list_orders_filters_and_sorts(client, orders_stub, make_order):
    orders_stub.seed([
        make_order(id="1", total=300, status=OrderStatus.DELIVERED),
        make_order(id="2", total=100, status=OrderStatus.DELIVERED),
        make_order(id="3", total=200, status=OrderStatus.PENDING),
    ])
    r = client.get(LIST_URL, {"status": "delivered", "sort": "totalAmount", "direction": "asc"})
    assert r.status_code == 200
    assert [o["id"] for o in r.json()["results"]] == ["2", "1"]


def test_list_orders_rejects_unknown_sort_field(client):
    r = client.get(LIST_URL, {"sort": "priority"})
    assert r.status_code == 400
    assert r.json()["detail"] == "INVALID_SORT_FIELD"


def test_list_orders_rejects_unsupported_page_size(client):
    r = client.get(LIST_URL, {"page_size": 7})
    assert r.status_code == 400
    assert r.json()["detail"] == "INVALID_PAGE_SIZE"


def test_list_orders_page_beyond_the_end_is_empty(client, orders_stub, make_order):
    seed_many(orders_stub, make_order, 12)
    body = client.get(LIST_URL, {"page": 5}).json()
    assert body["results"] == []
    assert body["start_index"] == body["end_index"] == 12
    assert body["total_pages"] == 2
    assert body["has_next"] is False


def test_changing_page_size_goes_back_to_first_page(client, orders_stub, make_order):
    seed_many(orders_stub, make_order, 25)
    body = client.get(LIST_URL, {"page": 3, "page_size": 20, "prev_page_size": 10}).json()
    assert body["page"] == 1
    assert len(body["results"]) == 20
    assert body["start_index"] == 0

    body = client.get(LIST_URL, {"page": 2, "page_size": 20, "prev_page_size": 20}).json()
    assert body["page"] == 2
    assert len(body["results"]) == 5


def test_list_orders_page_markers(client, orders_stub, make_order):
    seed_many(orders_stub, make_order, 200)
    body = client.get(LIST_URL, {"page": 5}).json()
    assert body["total_pages"] == 20
    assert body["pages"] == [1, "…", 3, 4, 5, 6, 7, "…", 20]
    assert len(body["results"]) == 10


def test_list_orders_upstream_down_without_snapshot(client, orders_stub):
    orders_stub.fail_next_fetch()
    r = client.get(LIST_URL)
    assert r.status_code == 503
    assert r.json()["detail"] == "UPSTREAM_UNAVAILABLE"


def test_list_orders_upstream_down_serves_last_snapshot(client, orders_stub, make_order):
    seed_many(orders_stub, make_order, 2)
    assert client.get(LIST_URL).status_code == 200
    orders_stub.fail_next_fetch()
    r = client.get(LIST_URL)
    assert r.status_code == 200
    body = r.json()
    assert body["stale"] is True
    assert body["error"] == "UPSTREAM_UNAVAILABLE"
    assert body["count"] == 2


def test_request_id_is_echoed(client):
    r = client.get("/api/orders/ping/", HTTP_X_REQUEST_ID="req-42")
    assert r["X-Request-ID"] == "req-42"
    generated = client.get("/api/orders/ping/", HTTP_X_REQUEST_ID="bad id with spaces")
    assert generated["X-Request-ID"] != "bad id with spaces"


def test_export_follows_the_view(client, orders_stub, make_order):
    orders_stub.seed([
        make_order(id="1", name="Binh", status=OrderStatus.PENDING),
        make_order(id="2", name="An", status=OrderStatus.PENDING),
        make_order(id="3", name="Chi", status=OrderStatus.CANCELLED),
    ])
    r = client.get(EXPORT_URL, {"status": "pending", "sort": "customer_name", "direction": "asc"})
    assert r.status_code == 200
    body = r.json()
    assert body["count"] == 2
    assert [row["customer_name"] for row in body["rows"]] == ["An", "Binh"]
    assert body["columns"][0] == "id"
    assert set(body["rows"][0]) == set(body["columns"])


def test_status_change_confirms_with_tracking_code(client, orders_stub, make_order):
    orders_stub.seed([make_order(id="1")])
    r = client.patch(STATUS_URL.format(oid="1"), {"status": "confirmed"}, content_type="application/json")
    assert r.status_code == 200
    body = r.json()
    assert body["status"] == "confirmed"
    assert body["tracking_code"].startswith("TRK")
    assert orders_stub.get("1").tracking_code == body["tracking_code"]


def test_status_change_skipping_a_step_is_conflict(client, orders_stub, make_order):
    orders_stub.seed([make_order(id="1")])
    r = client.patch(STATUS_URL.format(oid="1"), {"status": "shipping"}, content_type="application/json")
    assert r.status_code == 409
    assert r.json() == {"detail": "INVALID_TRANSITION", "current": "pending", "target": "shipping"}
    assert orders_stub.get("1").status == OrderStatus.PENDING


def test_status_change_on_terminal_order_is_conflict(client, orders_stub, make_order):
    orders_stub.seed([make_order(id="1", status=OrderStatus.DELIVERED)])
    r = client.patch(STATUS_URL.format(oid="1"), {"status": "cancelled"}, content_type="application/json")
    assert r.status_code == 409
    assert r.json()["detail"] == "TERMINAL_STATUS"


def test_status_change_unknown_order(client):
    r = client.patch(STATUS_URL.format(oid="ghost"), {"status": "cancelled"}, content_type="application/json")
    assert r.status_code == 404
    assert r.json()["detail"] == "ORDER_NOT_FOUND"


def test_status_change_invalid_body(client, orders_stub, make_order):
    orders_stub.seed([make_order(id="1")])
    r = client.patch(STATUS_URL.format(oid="1"), {"status": "preparing"}, content_type="application/json")
    assert r.status_code == 400
    assert r.json()["detail"] == "INVALID_BODY"


def test_bulk_status_reports_every_order(client, orders_stub, make_order):
    orders_stub.seed([
        make_order(id="1", status=OrderStatus.PENDING),
        make_order(id="2", status=OrderStatus.CANCELLED),
        make_order(id="3", status=OrderStatus.SHIPPING),
    ])
    payload = {"orderIds": ["1", "2", "3", "9"], "status": "cancelled"}
    r = client.post(BULK_URL, payload, content_type="application/json")
    assert r.status_code == 200
    body = r.json()
    assert body["requested"] == 4
    assert body["succeeded"] == 2
    assert body["failed"] == 2
    assert [(x["order_id"], x["ok"], x["error"]) for x in body["results"]] == [
        ("1", True, None),
        ("2", False, "TERMINAL_STATUS"),
        ("3", True, None),
        ("9", False, "ORDER_NOT_FOUND"),
    ]
    assert orders_stub.get("3").status == OrderStatus.CANCELLED


def test_bulk_status_requires_ids(client):
    r = client.post(BULK_URL, {"order_ids": [], "status": "cancelled"}, content_type="application/json")
    assert r.status_code == 400
    assert r.json()["detail"] == "INVALID_BODY"
