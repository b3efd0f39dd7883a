"""Middleware for request/response processing in deepseek-gateway."""
import logging
import time
import uuid

from fastapi import Request
from starlette.middleware.base import BaseHTTPMiddleware

from responses import preflight_response

logger = logging.getLogger("deepseek-gateway.middleware")


class CORSPreflightMiddleware(BaseHTTPMiddleware):
    """Answer every OPTIONS request with 204 and the CORS headers, before routing."""

    async def dispatch(self, request: Request, call_next):
        if request.method == "OPTIONS":
            return preflight_response()
        return await call_next(request)


class RequestLoggingMiddleware(BaseHTTPMiddleware):
    """Tag each request with an id and log its outcome and latency."""

    async def dispatch(self, request: Request, call_next):
        start_time = time.time()
        request_id = request.headers.get("X-Request-ID") or f"req-{uuid.uuid4().hex[:12]}"
        request.state.request_id = request_id

        status_code = 500
        try:
            response = await call_next(request)
            status_code = response.status_code
            response.headers["X-Request-ID"] = request_id
            return response
        except Exception as e:
            logger.error(f"Request {request_id} error: {e}")
            raise
        finally:
            duration_ms = (time.time() - start_time) * 1000
            logger.info(
                f"{request.method} {request.url.path} -> {status_code} "
                f"({duration_ms:.1f}ms) [{request_id}]"
            )
