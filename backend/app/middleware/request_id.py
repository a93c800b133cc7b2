"""
Mailroom Backend — Request ID Middleware
==========================================

What:  Gives every request a correlation id and echoes it in the response.
Why:   Error envelopes carry `request_id`, so a client report can be matched
       to the server log lines of the same request.
How:   Accepts a client-sent X-Request-ID or generates a short one, stores it
       in a ContextVar (per-coroutine) and on `request.state`.
"""

import uuid
from contextvars import ContextVar

from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import Request
from starlette.responses import Response

# Coroutine-local: concurrent requests on one thread each see their own id
request_id_var: ContextVar[str] = ContextVar("request_id", default="")

REQUEST_ID_HEADER = "X-Request-ID"

# Client-supplied ids longer than this are replaced
_MAX_CLIENT_ID_LENGTH = 64


class RequestIDMiddleware(BaseHTTPMiddleware):
    """
    Behavior:
        1. Use the client's X-Request-ID if present and sane
        2. Otherwise generate 8 hex characters from a UUID4
        3. Expose it via `request_id_var` and `request.state.request_id`
        4. Add it to the response headers
    """

    async def dispatch(
        self, request: Request, call_next: RequestResponseEndpoint
    ) -> Response:
        rid = request.headers.get(REQUEST_ID_HEADER, "")
        if not rid or len(rid) > _MAX_CLIENT_ID_LENGTH:
            rid = uuid.uuid4().hex[:8]

        token = request_id_var.set(rid)
        request.state.request_id = rid
        try:
            response = await call_next(request)
        finally:
            request_id_var.reset(token)

        response.headers[REQUEST_ID_HEADER] = rid
        return response
