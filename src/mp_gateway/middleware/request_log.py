"""Request logging middleware.

Every request gets a correlation id: the caller's X-Request-ID when the
upstream auth gateway supplied a usable one, a fresh `req_<hex>` otherwise.
The id is stored on request.state (echoed in the ApiResponse envelope) and
returned in the X-Request-ID response header.

Log format:
    INFO [POST] /api/v1/orders/123/complete -> 200 (23ms) req_a1b2c3d4e5f6
"""

import logging
import re
import time
import uuid

from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import Request
from starlette.responses import Response

logger = logging.getLogger("mp.request")

REQUEST_ID_HEADER = "X-Request-ID"
_INBOUND_ID_RE = re.compile(r"^[A-Za-z0-9_\-]{8,64}$")


def new_request_id() -> str:
    return f"req_{uuid.uuid4().hex[:12]}"


def resolve_request_id(inbound: str | None) -> str:
    """Accept an upstream correlation id only if it is short and header-safe."""
    if inbound and _INBOUND_ID_RE.match(inbound):
        return inbound
    return new_request_id()


def get_request_id(request: Request) -> str:
    return getattr(request.state, "request_id", "req_unknown")


class RequestLogMiddleware(BaseHTTPMiddleware):
    async def dispatch(self, request: Request, call_next: RequestResponseEndpoint) -> Response:
        request_id = resolve_request_id(request.headers.get(REQUEST_ID_HEADER))
        request.state.request_id = request_id

        start = time.perf_counter()
        response: Response = await call_next(request)
        elapsed_ms = (time.perf_counter() - start) * 1000

        level = logging.WARNING if response.status_code >= 500 else logging.INFO
        logger.log(
            level,
            "[%s] %s -> %d (%.0fms) %s",
            request.method,
            request.url.path,
            response.status_code,
            elapsed_ms,
            request_id,
        )
        response.headers[REQUEST_ID_HEADER] = request_id
        return response
