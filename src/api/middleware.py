"""Request correlation and access logging."""

import time
from uuid import uuid4

import structlog
from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import Request
from starlette.responses import Response

logger = structlog.get_logger(__name__)

CORRELATION_HEADER = "X-Correlation-Id"
MAX_CORRELATION_ID_LENGTH = 128


def route_path(request: Request) -> str:
    """Path to log for a request.

    Matched requests log the route template ("/auth/verify-email/{token}"),
    so path parameters such as single-use tokens never reach the logs.
    Unmatched requests log the raw path.
    """
    route = request.scope.get("route")
    path = getattr(route, "path", None)
    return path if path else request.url.path


class CorrelationIdMiddleware(BaseHTTPMiddleware):
    """Tag every request with a correlation id and log its outcome.

    A client-supplied X-Correlation-Id is reused when present and of sane
    length; otherwise a UUID4 is generated. The id is stored on
    request.state, bound into structlog's context for the request, and
    echoed back on the response.
    """

    async def dispatch(
        self, request: Request, call_next: RequestResponseEndpoint
    ) -> Response:
        supplied = request.headers.get(CORRELATION_HEADER, "")
        if supplied and len(supplied) <= MAX_CORRELATION_ID_LENGTH:
            correlation_id = supplied
        else:
            correlation_id = str(uuid4())

        request.state.correlation_id = correlation_id

        structlog.contextvars.clear_contextvars()
        structlog.contextvars.bind_contextvars(
            correlation_id=correlation_id,
            client_ip=request.client.host if request.client else None,
        )

        started = time.perf_counter()
        response = await call_next(request)

        # Routing fills in scope["route"] on the shared scope during call_next
        logger.info(
            "request_completed",
            method=request.method,
            path=route_path(request),
            status_code=response.status_code,
            duration_ms=round((time.perf_counter() - started) * 1000, 2),
        )

        response.headers[CORRELATION_HEADER] = correlation_id
        return response
