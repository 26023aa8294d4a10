"""Request logging middleware.

Every request gets a request id: the caller's X-Request-ID when the chat
front-end sends one, a fresh "req_<12 hex>" otherwise. The id goes into
request.state (ApiResponse.request_id) and back out as X-Request-ID, so a
vote in the chat can be traced to the log line that recorded it.

Log format:
    INFO [POST] /api/v1/proposals/prp_123/votes → 200 (12ms) req_a1b2c3d4e5f6
Server errors (5xx) are logged at WARNING.
"""

import logging
import time
import uuid

from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import Request
from starlette.responses import Response

logger = logging.getLogger("sc.request")

_HEADER = "X-Request-ID"
_MAX_INBOUND_ID = 64


def _request_id(request: Request) -> str:
    inbound = request.headers.get(_HEADER, "").strip()
    if inbound and len(inbound) <= _MAX_INBOUND_ID and inbound.isprintable():
        return inbound
    return f"req_{uuid.uuid4().hex[:12]}"


class RequestLogMiddleware(BaseHTTPMiddleware):
    async def dispatch(self, request: Request, call_next: RequestResponseEndpoint) -> Response:
        request_id = _request_id(request)
        request.state.request_id = request_id

        start = time.perf_counter()
        response: Response = await call_next(request)
        elapsed_ms = (time.perf_counter() - start) * 1000

        response.headers[_HEADER] = request_id
        logger.log(
            logging.WARNING if response.status_code >= 500 else logging.INFO,
            "[%s] %s → %d (%.0fms) %s",
            request.method,
            request.url.path,
            response.status_code,
            elapsed_ms,
            request_id,
        )
        return response
