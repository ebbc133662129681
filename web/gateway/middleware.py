"""Middleware that assigns and propagates a request identifier.

Every request handled by the back-office gets an id: the incoming
``X-Request-Id`` header when the caller supplies a usable one, a fresh
UUIDv4 otherwise. The id is stored on ``request.request_id`` and in
``REQUEST_ID_CTX`` so that log records (see ``logging_filters``) and the
upstream order client can pick it up without it being passed around. The
response echoes it in ``X-Request-ID``.
"""

import contextvars
import re
import uuid

from django.utils.deprecation import MiddlewareMixin

REQUEST_ID_CTX = contextvars.ContextVar("request_id", default="-")

# ids are forwarded upstream and written to logs
_VALID_ID = re.compile(r"^[A-Za-z0-9._:-]{1,128}$")


class RequestIdMiddleware(MiddlewareMixin):
    """Set ``request.request_id`` and the ``X-Request-ID`` response header."""

    HEADER = "HTTP_X_REQUEST_ID"
    RESPONSE_HEADER = "X-Request-ID"

    def process_request(self, request):
        rid = request.META.get(self.HEADER, "")
        if not _VALID_ID.match(rid):
            rid = str(uuid.uuid4())
        request.request_id = rid
        REQUEST_ID_CTX.set(rid)

    def process_response(self, request, response):
        response[self.RESPONSE_HEADER] = getattr(request, "request_id", REQUEST_ID_CTX.get())
        return response
