"""Uniform JSON responses with CORS headers attached."""
from datetime import datetime, timezone
from typing import Any, AsyncIterator, Dict, Optional

from fastapi.responses import JSONResponse, Response, StreamingResponse
from starlette.background import BackgroundTask

CORS_HEADERS = {
    "Access-Control-Allow-Origin": "*",
    "Access-Control-Allow-Methods": "GET, POST, OPTIONS",
    "Access-Control-Allow-Headers": "Content-Type, Authorization",
    "Access-Control-Max-Age": "86400",
}

STREAM_HEADERS = {
    "Content-Type": "text/event-stream",
    "Cache-Control": "no-cache",
    "Connection": "keep-alive",
}


def utc_timestamp() -> str:
    """Current UTC time as ISO-8601 with millisecond precision and a Z suffix."""
    return datetime.now(timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z")


def success_response(data: Any, status_code: int = 200, background: Optional[BackgroundTask] = None) -> JSONResponse:
    return JSONResponse(content=data, status_code=status_code, headers=dict(CORS_HEADERS), background=background)


def error_response(message: str, status_code: int = 500) -> JSONResponse:
    return JSONResponse(
        content={"error": message, "timestamp": utc_timestamp()},
        status_code=status_code,
        headers=dict(CORS_HEADERS),
    )


def graphql_response(data: Any) -> JSONResponse:
    return success_response({"data": data})


def graphql_error_response(message: str, status_code: int = 400) -> JSONResponse:
    return JSONResponse(
        content={"data": None, "errors": [{"message": message}]},
        status_code=status_code,
        headers=dict(CORS_HEADERS),
    )


def stream_response(body: AsyncIterator[bytes]) -> StreamingResponse:
    """Pass an upstream byte stream through untouched."""
    headers: Dict[str, str] = {**STREAM_HEADERS, **CORS_HEADERS}
    return StreamingResponse(body, status_code=200, headers=headers)


def preflight_response() -> Response:
    return Response(status_code=204, headers=dict(CORS_HEADERS))
