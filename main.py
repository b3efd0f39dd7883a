"""deepseek-gateway: DeepSeek chat proxy with CORS, streaming passthrough and usage history."""
import json
import logging
from typing import Any, Optional

import httpx
from fastapi import APIRouter, Depends, FastAPI, Request
from starlette.background import BackgroundTask
from starlette.exceptions import HTTPException as StarletteHTTPException

from config import Settings, get_environment_info, settings
from errors import StorageError, ValidationError
from graphql_shim import SCHEMA_SDL, GraphQLShim
from middleware import CORSPreflightMiddleware, RequestLoggingMiddleware
from responses import (
    error_response,
    graphql_error_response,
    graphql_response,
    stream_response,
    success_response,
)
from service import ChatService
from storage import KeyValueStore, build_store
from upstream import UpstreamClient

# Configure logging
logging.basicConfig(
    level=logging.DEBUG if settings.DEBUG else logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s"
)
logger = logging.getLogger("deepseek-gateway")

HTTP_ERROR_MESSAGES = {404: "Not found", 405: "Method not allowed"}

router = APIRouter()


def get_service(request: Request) -> ChatService:
    return request.app.state.chat_service


def get_graphql(request: Request) -> GraphQLShim:
    return request.app.state.graphql


async def read_json_body(request: Request) -> Any:
    raw = await request.body()
    try:
        return json.loads(raw)
    except ValueError as e:
        raise ValidationError(f"Invalid JSON body: {e}") from e


@router.post("/api/chat", tags=["Chat"])
async def chat(request: Request, service: ChatService = Depends(get_service)):
    """Forward a chat completion upstream, streaming or buffered."""
    try:
        body = await read_json_body(request)
        chat_request, options = service.prepare(body)

        if options.stream:
            upstream_response = await service.open_stream(chat_request, options)
            return stream_response(UpstreamClient.relay(upstream_response))

        data, entry = await service.complete(chat_request, options)
        return success_response(data, background=BackgroundTask(service.record, entry))

    except Exception as e:
        logger.error(f"Chat request error: {e}")
        return error_response(str(e), 400)


@router.post("/api/graphql", tags=["GraphQL"])
@router.post("/graphql", tags=["GraphQL"])
async def graphql(request: Request, shim: GraphQLShim = Depends(get_graphql)):
    """Dispatch a GraphQL-shaped request to the chat, health or history operations."""
    try:
        body = await read_json_body(request)
        if not isinstance(body, dict):
            raise ValidationError("GraphQL query is required")
        data = await shim.execute(body.get("query"), body.get("variables"))
        return graphql_response(data)
    except Exception as e:
        logger.error(f"GraphQL request error: {e}")
        return graphql_error_response(str(e))


@router.get("/api/health", tags=["System"])
async def health(service: ChatService = Depends(get_service)):
    return success_response(service.health())


@router.get("/api/stats", tags=["System"])
async def stats(service: ChatService = Depends(get_service)):
    """Chat history counts from the key-value store."""
    try:
        return success_response(await service.stats())
    except StorageError as e:
        logger.error(f"Error getting stats: {e}")
        return error_response(e.message, e.status_code)


@router.get("/", tags=["Root"])
async def root(request: Request):
    """Root endpoint with service information."""
    app_settings: Settings = request.app.state.settings
    return success_response({
        "message": app_settings.SERVICE_NAME,
        "version": app_settings.VERSION,
        "endpoints": {
            "chat": "POST /api/chat",
            "graphql": "POST /api/graphql",
            "health": "GET /api/health",
            "stats": "GET /api/stats",
        },
        "graphql": {
            "endpoints": ["/api/graphql", "/graphql"],
            "operations": ["mutation sendMessage", "query health", "query chatHistory"],
            "schema": SCHEMA_SDL,
        },
        "documentation": app_settings.DOCUMENTATION_URL,
    })


def create_app(
    app_settings: Optional[Settings] = None,
    store: Optional[KeyValueStore] = None,
    transport: Optional[httpx.AsyncBaseTransport] = None,
) -> FastAPI:
    """Build the gateway application.

    ``store`` overrides the backend chosen by CHAT_HISTORY_BACKEND and
    ``transport`` replaces the network transport of the upstream client.
    """
    app_settings = app_settings or settings
    app_settings.validate_settings()

    if store is None:
        store = build_store(app_settings)
    upstream = UpstreamClient(app_settings.upstream_config(), transport=transport)
    chat_service = ChatService(app_settings, upstream, store)

    app = FastAPI(
        title="deepseek-gateway",
        description="DeepSeek chat proxy with streaming passthrough and usage history",
        version=app_settings.VERSION,
        docs_url="/docs" if app_settings.DEBUG else None,
        redoc_url="/redoc" if app_settings.DEBUG else None,
        openapi_url="/openapi.json" if app_settings.DEBUG else None,
    )
    app.state.settings = app_settings
    app.state.chat_service = chat_service
    app.state.graphql = GraphQLShim(chat_service)

    @app.exception_handler(StarletteHTTPException)
    async def http_exception_handler(request: Request, exc: StarletteHTTPException):
        """Routing errors share the {error, timestamp} envelope."""
        message = HTTP_ERROR_MESSAGES.get(exc.status_code, str(exc.detail))
        return error_response(message, exc.status_code)

    @app.exception_handler(Exception)
    async def global_exception_handler(request: Request, exc: Exception):
        logger.error(f"Unhandled exception in {request.url.path}: {exc}", exc_info=True)
        return error_response("Internal server error", 500)

    @app.on_event("startup")
    async def startup_event():
        logger.info("Starting deepseek-gateway...")
        if not app_settings.DEEPSEEK_API_KEY:
            logger.warning("DEEPSEEK_API_KEY is not set; chat requests will be rejected")
        if store is not None:
            await store.initialize()
        logger.info(f"deepseek-gateway ready: {get_environment_info(app_settings)}")

    @app.on_event("shutdown")
    async def shutdown_event():
        logger.info("Shutting down deepseek-gateway...")
        await upstream.close()
        if store is not None:
            await store.close()

    app.include_router(router)
    app.add_middleware(RequestLoggingMiddleware)
    # Added last so it runs first: preflight never reaches routing.
    app.add_middleware(CORSPreflightMiddleware)
    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn

    logger.info("=" * 60)
    logger.info("Starting deepseek-gateway")
    logger.info(f"Host: {settings.HOST}")
    logger.info(f"Port: {settings.PORT}")
    logger.info(f"Debug mode: {settings.DEBUG}")
    logger.info(f"History backend: {settings.CHAT_HISTORY_BACKEND or 'disabled'}")
    logger.info("=" * 60)

    uvicorn.run(
        "main:app",
        host=settings.HOST,
        port=settings.PORT,
        reload=settings.DEBUG,
        log_level="debug" if settings.DEBUG else "info",
    )
