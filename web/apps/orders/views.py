"""HTTP views for the orders back-office.

Views are kept intentionally small: they validate requests (query
parameters via ``query.build_query_spec``, bodies via Pydantic), delegate to
``OrderConsoleService`` and shape the response.

The service is obtained from ``providers.get_order_service()``, which binds
it to the HTTP order client or to the in-process stub depending on
``settings.USE_HTTP_ADAPTERS``.

Error mapping: ``ValidationError`` and invalid bodies → 400,
``TransitionError`` → 409, ``FetchError`` → 503 (404 for
``ORDER_NOT_FOUND``). Reads that fail upstream but have a last good result
answer 200 with ``stale: true`` and the error code in ``error``.
"""

from dataclasses import asdict

import pydantic
from django.conf import settings
from rest_framework import status
from rest_framework.response import Response
from rest_framework.throttling import ScopedRateThrottle
from rest_framework.views import APIView

from . import providers
from .domain import FetchError, TransitionError, ValidationError
from .pagination import page_sequence
from .query import EXPORT_COLUMNS, build_query_spec, export_rows, paginate
from .schemas import BulkStatusChangeIn, OrderReadDTO, StatusChangeIn


def _validation_response(e: ValidationError) -> Response:
    return Response({"detail": e.code, "message": e.detail}, status=status.HTTP_400_BAD_REQUEST)


def _fetch_error_response(e: FetchError) -> Response:
    if e.code == "ORDER_NOT_FOUND":
        return Response({"detail": e.code}, status=status.HTTP_404_NOT_FOUND)
    return Response({"detail": e.code}, status=status.HTTP_503_SERVICE_UNAVAILABLE)


def _int_param(request, name: str, default: int) -> int:
    raw = request.query_params.get(name)
    if raw in (None, ""):
        return default
    try:
        return int(raw)
    except ValueError:
        raise ValidationError(f"INVALID_{name.upper()}", f"{name} must be an integer") from None


def _query_spec(request):
    q = request.query_params
    return build_query_spec(
        search=q.get("search"),
        status=q.get("status"),
        payment_status=q.get("payment_status"),
        payment_method=q.get("payment_method"),
        sort=q.get("sort"),
        direction=q.get("direction"),
    )


class OrdersPingView(APIView):
    """Liveness endpoint for the orders module."""

    def get(self, request):
        return Response({"ok": True})


class OrdersCollectionView(APIView):
    """Filtered, sorted and paginated order list for the admin console.

    Query parameters: ``search``, ``status``, ``payment_status``,
    ``payment_method``, ``sort``, ``direction``, ``page``, ``page_size``.
    A request whose ``page_size`` differs from ``prev_page_size`` always
    starts again at page 1.
    """

    throttle_classes = [ScopedRateThrottle]
    throttle_scope = "orders_list"

    def get(self, request):
        """Return one page of the order view.

        Returns:
            Response: 200 with ``results``, paging fields and the ``pages``
            marker sequence; 400 for invalid parameters; 503 when the
            upstream API is unavailable and no earlier snapshot exists.
        """
        try:
            spec = _query_spec(request)
            page_size = _int_param(request, "page_size", settings.ORDERS_PAGE_SIZE_DEFAULT)
            if page_size not in settings.ORDERS_PAGE_SIZE_CHOICES:
                raise ValidationError(
                    "INVALID_PAGE_SIZE", f"page_size must be one of {settings.ORDERS_PAGE_SIZE_CHOICES}"
                )
            page = _int_param(request, "page", 1)
            prev_page_size = _int_param(request, "prev_page_size", page_size)
        except ValidationError as e:
            return _validation_response(e)
        if prev_page_size != page_size:
            page = 1

        try:
            view = providers.get_order_service().order_view(spec)
        except FetchError as e:
            return _fetch_error_response(e)

        p = paginate(view.orders, page, page_size)
        return Response(
            {
                "count": p.total_items,
                "page": p.page,
                "page_size": p.page_size,
                "total_pages": p.total_pages,
                "start_index": p.start_index,
                "end_index": p.end_index,
                "has_next": p.has_next,
                "has_prev": p.has_prev,
                "pages": page_sequence(p.page, p.total_pages, settings.PAGINATION_MAX_VISIBLE),
                "results": [OrderReadDTO.from_domain(o).model_dump() for o in p.items],
                "error": view.error,
                "stale": view.stale,
            },
            status=200,
        )


class OrdersExportView(APIView):
    """Every order of the filtered and sorted view as flat rows."""

    throttle_classes = [ScopedRateThrottle]
    throttle_scope = "orders_list"

    def get(self, request):
        try:
            spec = _query_spec(request)
        except ValidationError as e:
            return _validation_response(e)
        try:
            view = providers.get_order_service().order_view(spec)
        except FetchError as e:
            return _fetch_error_response(e)

        rows = list(export_rows(view.orders))
        return Response(
            {
                "columns": list(EXPORT_COLUMNS),
                "count": len(rows),
                "rows": rows,
                "error": view.error,
                "stale": view.stale,
            },
            status=200,
        )


class OrderStatusView(APIView):
    """Change the status of one order."""

    throttle_classes = [ScopedRateThrottle]
    throttle_scope = "orders_update"

    def patch(self, request, order_id: str):
        """Apply a single transition.

        Returns:
            Response: One of the following responses.
            - 200 with the updated order.
            - 400 when the body is invalid.
            - 404 with {detail: "ORDER_NOT_FOUND"}.
            - 409 with {detail, current, target} when the transition is not
              allowed (``TERMINAL_STATUS`` or ``INVALID_TRANSITION``).
            - 503 when the upstream API is unavailable.
        """
        try:
            dto = StatusChangeIn.model_validate(request.data)
        except pydantic.ValidationError as e:
            return Response({"detail": "INVALID_BODY", "message": str(e)}, status=status.HTTP_400_BAD_REQUEST)

        try:
            order = providers.get_order_service().change_status(order_id, dto.status)
        except TransitionError as e:
            return Response(
                {"detail": e.code, "current": e.current, "target": e.target},
                status=status.HTTP_409_CONFLICT,
            )
        except FetchError as e:
            return _fetch_error_response(e)

        return Response(OrderReadDTO.from_domain(order).model_dump(), status=200)


class BulkStatusView(APIView):
    """Change the status of many orders, reporting each one separately."""

    throttle_classes = [ScopedRateThrottle]
    throttle_scope = "orders_update"

    def post(self, request):
        try:
            dto = BulkStatusChangeIn.model_validate(request.data)
        except pydantic.ValidationError as e:
            return Response({"detail": "INVALID_BODY", "message": str(e)}, status=status.HTTP_400_BAD_REQUEST)

        try:
            result = providers.get_order_service().bulk_change_status(dto.order_ids, dto.status)
        except FetchError as e:
            return _fetch_error_response(e)

        return Response(
            {
                "status": dto.status.value,
                "requested": len(result.outcomes),
                "succeeded": len(result.succeeded),
                "failed": len(result.failed),
                "results": [
                    {
                        "order_id": o.order_id,
                        "ok": o.ok,
                        "error": o.error,
                        "tracking_code": o.order.tracking_code if o.order else None,
                    }
                    for o in result.outcomes
                ],
            },
            status=200,
        )


class SalesAnalyticsView(APIView):
    """Sales report for ``period`` (``7days``, ``30days``, ``3months`` or days)."""

    throttle_classes = [ScopedRateThrottle]
    throttle_scope = "orders_analytics"

    def get(self, request):
        try:
            result = providers.get_order_service().sales_report(request.query_params.get("period", "7days"))
        except ValidationError as e:
            return _validation_response(e)

        if result.report is None:
            return Response({"detail": result.error}, status=status.HTTP_503_SERVICE_UNAVAILABLE)

        body = asdict(result.report)
        body.update({"error": result.error, "stale": result.stale})
        return Response(body, status=200)
