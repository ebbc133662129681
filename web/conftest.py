from datetime import datetime, timezone
from decimal import Decimal

import pytest

from apps.orders.domain import CustomerInfo, Order, OrderLine, OrderStatus, PaymentStatus


@pytest.fixture(autouse=True)
def use_stubs_for_tests(settings):
    from apps.orders import providers

    settings.USE_HTTP_ADAPTERS = False
    providers.reset()
    yield
    providers.reset()


@pytest.fixture
def orders_stub():
    from apps.orders import providers

    return providers.get_stub()


@pytest.fixture
def make_order():
    """Factory for valid orders; ``total`` sets the subtotal of a one-line order."""
    counter = {"n": 0}

    def _make(
        total=100,
        status=OrderStatus.PENDING,
        placed_at=None,
        id=None,
        name="Alice Nguyen",
        email="alice@example.com",
        phone="0901234567",
        payment_status=PaymentStatus.PENDING,
        payment_method="cod",
        tracking_code=None,
        lines=None,
    ):
        counter["n"] += 1
        total = Decimal(str(total))
        if lines is None:
            lines = (OrderLine(product_id=f"P{counter['n']}", name="Rice 5kg", unit_price=total, quantity=1),)
        subtotal = sum((line.unit_price * line.quantity for line in lines), Decimal("0"))
        return Order(
            id=id or str(counter["n"]),
            customer=CustomerInfo(name=name, email=email, phone=phone, address="1 Le Loi, District 1"),
            lines=tuple(lines),
            subtotal=subtotal,
            total_amount=subtotal,
            placed_at=placed_at or datetime(2026, 10, 1, 9, 30, tzinfo=timezone.utc),
            status=status,
            payment_status=payment_status,
            payment_method=payment_method,
            tracking_code=tracking_code,
        )

    return _make
