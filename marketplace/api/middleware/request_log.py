"""Request logging middleware for FastAPI.

Tags every API request with a request id and logs:
- Method and path
- Response status
- Duration
- Client IP address
"""

import logging
import time
import uuid
from typing import Callable

from fastapi import Request, Response
from starlette.middleware.base import BaseHTTPMiddleware

logger = logging.getLogger(__name__)

REQUEST_ID_HEADER = "X-Request-ID"

# Paths that should not be logged (health probes, docs)
EXCLUDED_PATHS = {
    "/health",
    "/health/live",
    "/health/ready",
    "/docs",
    "/redoc",
    "/openapi.json",
    "/favicon.ico",
}


def get_client_ip(request: Request) -> str:
    """Extract client IP from request, handling proxies."""
    # Check X-Forwarded-For header (set by reverse proxies)
    forwarded = request.headers.get("x-forwarded-for")
    if forwarded:
        # Take the first IP (original client)
        return forwarded.split(",")[0].strip()

    real_ip = request.headers.get("x-real-ip")
    if real_ip:
        return real_ip

    if request.client:
        return request.client.host

    return "unknown"


def log_level_for(status_code: int) -> int:
    """Pick a log level from the response status."""
    if status_code >= 500:
        return logging.ERROR
    if status_code in (401, 403):
        return logging.WARNING  # Auth failures are security-relevant
    if status_code >= 400:
        return logging.INFO
    return logging.DEBUG if status_code < 300 else logging.INFO


class RequestLogMiddleware(BaseHTTPMiddleware):
    """
    Middleware that logs every API request.

    The request id is taken from an incoming ``X-Request-ID`` header when
    present, exposed to endpoints as ``request.state.request_id`` and echoed
    back on the response.
    """

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        request_id = request.headers.get(REQUEST_ID_HEADER) or str(uuid.uuid4())[:8]
        request.state.request_id = request_id

        if request.url.path in EXCLUDED_PATHS:
            response = await call_next(request)
            response.headers[REQUEST_ID_HEADER] = request_id
            return response

        start_time = time.time()
        response = await call_next(request)
        duration_ms = int((time.time() - start_time) * 1000)

        logger.log(
            log_level_for(response.status_code),
            f"[{request_id}] {request.method} {request.url.path} -> {response.status_code} "
            f"({duration_ms}ms, {get_client_ip(request)})",
        )

        response.headers[REQUEST_ID_HEADER] = request_id
        return response
