"""``X-Request-ID`` propagation.

A caller-supplied id is kept (truncated to 128 characters), otherwise a
UUID4 is generated. The id is echoed on the response, bound into the log
context for the request, and becomes the ``OperationContext.request_id``
that operations use as their lock owner.
"""

from __future__ import annotations

import uuid

from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import Request
from starlette.responses import Response

from provisioner.core.logging import LogContext

REQUEST_ID_HEADER = "X-Request-ID"
_MAX_LENGTH = 128


class RequestIDMiddleware(BaseHTTPMiddleware):
    async def dispatch(self, request: Request, call_next: RequestResponseEndpoint) -> Response:
        request_id = request.headers.get(REQUEST_ID_HEADER, "").strip()[:_MAX_LENGTH] or uuid.uuid4().hex
        request.state.request_id = request_id
        with LogContext(request_id=request_id):
            response = await call_next(request)
        response.headers[REQUEST_ID_HEADER] = request_id
        return response
