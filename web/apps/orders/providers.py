"""Provider helpers wiring ``OrderConsoleService`` with its collaborators.

``get_order_service`` returns a service backed by the HTTP order client when
``settings.USE_HTTP_ADAPTERS`` is truthy, and by the process-wide in-memory
stub otherwise (tests and local development). The ``ResultBoard`` holding
last good snapshots and reports is shared by every service built here.
"""

from django.conf import settings
from django.utils import timezone

from .adapters import InMemoryOrdersStub
from .board import ResultBoard
from .domain import OrdersPort
from .http_adapters import HttpOrdersClient, _orders_cb
from .services import OrderConsoleService

_board = ResultBoard()
_stub = InMemoryOrdersStub()


def get_board() -> ResultBoard:
    return _board


def get_stub() -> InMemoryOrdersStub:
    return _stub


def get_orders_client() -> OrdersPort:
    """Return the configured ``OrdersPort`` implementation."""
    if getattr(settings, "USE_HTTP_ADAPTERS", True):
        return HttpOrdersClient()
    return _stub


def get_order_service() -> OrderConsoleService:
    """Return an ``OrderConsoleService`` configured from settings.

    Returns:
        OrderConsoleService: Service bound to the configured order client,
        the shared result board and the current Django time zone.
    """
    return OrderConsoleService(
        orders=get_orders_client(),
        board=_board,
        clock=timezone.now,
        tz=timezone.get_current_timezone(),
        fetch_page_size=getattr(settings, "ORDERS_FETCH_PAGE_SIZE", 100),
        top_n=getattr(settings, "ANALYTICS_TOP_N", 10),
    )


def reset() -> None:
    """Forget every published result and stub order, and close the circuit."""
    _board.clear()
    _stub.clear()
    _orders_cb.reset()
