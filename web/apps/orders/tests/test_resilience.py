"""Retry and circuit breaker behavior of the HTTP order client."""

import httpx
import pytest

from apps.orders.domain import FetchError
from apps.orders.http_adapters import HttpOrdersClient, _orders_cb


class R:
    def __init__(self, status_code, body=None):
        self.status_code = status_code
        self._body = body or {}

    def json(self):
        return self._body


@pytest.fixture(autouse=True)
def fast_retries(monkeypatch, settings):
    settings.HTTP_RETRY_BACKOFF_BASE = 0.0
    monkeypatch.setattr("time.sleep", lambda *a, **k: None, raising=True)


def serve(monkeypatch, statuses):
    """Answer successive requests with ``statuses``; return the call counter."""
    calls = {"n": 0}

    def fake_request(self, method, url, headers=None, **kwargs):
        calls["n"] += 1
        code = statuses[min(calls["n"], len(statuses)) - 1]
        if code is None:
            raise httpx.ReadTimeout("slow")
        return R(code, {"orders": []})

    monkeypatch.setattr(httpx.Client, "request", fake_request, raising=True)
    return calls


def test_retries_on_5xx_then_succeeds(monkeypatch, settings):
    settings.HTTP_RETRY_MAX = 1
    calls = serve(monkeypatch, [500, 200])
    batch = HttpOrdersClient(base_url="http://x").list_orders()
    assert batch.orders == []
    assert calls["n"] == 2


def test_retries_on_transport_error(monkeypatch, settings):
    settings.HTTP_RETRY_MAX = 2
    calls = serve(monkeypatch, [None, None, 200])
    HttpOrdersClient(base_url="http://x").list_orders()
    assert calls["n"] == 3


def test_gives_up_after_max_retries(monkeypatch, settings):
    settings.HTTP_RETRY_MAX = 2
    calls = serve(monkeypatch, [503])
    with pytest.raises(FetchError) as e:
        HttpOrdersClient(base_url="http://x").list_orders()
    assert e.value.code == "UPSTREAM_UNAVAILABLE"
    assert e.value.status_code == 503
    assert calls["n"] == 3


def test_no_retry_on_404(monkeypatch, settings):
    settings.HTTP_RETRY_MAX = 3
    calls = serve(monkeypatch, [404])
    with pytest.raises(FetchError) as e:
        HttpOrdersClient(base_url="http://x").set_status("o-9", "confirmed")
    assert e.value.code == "ORDER_NOT_FOUND"
    assert calls["n"] == 1
    assert _orders_cb.state == "CLOSED"


def test_circuit_opens_after_consecutive_failures(monkeypatch, settings):
    settings.HTTP_RETRY_MAX = 0
    monkeypatch.setattr(_orders_cb, "fail_threshold", 2)
    calls = serve(monkeypatch, [500])
    client = HttpOrdersClient(base_url="http://x")

    for _ in range(2):
        with pytest.raises(FetchError):
            client.list_orders()
    assert _orders_cb.state == "OPEN"

    with pytest.raises(FetchError) as e:
        client.list_orders()
    assert e.value.code == "CIRCUIT_OPEN"
    assert calls["n"] == 2


def test_half_open_probe_closes_circuit(monkeypatch, settings):
    settings.HTTP_RETRY_MAX = 0
    monkeypatch.setattr(_orders_cb, "fail_threshold", 1)
    monkeypatch.setattr(_orders_cb, "reset_timeout", 0.0)
    serve(monkeypatch, [500, 200])
    client = HttpOrdersClient(base_url="http://x")

    with pytest.raises(FetchError):
        client.list_orders()
    assert _orders_cb.state == "HALF_OPEN"

    client.list_orders()
    assert _orders_cb.state == "CLOSED"
