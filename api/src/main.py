"""Agora API - Main Application."""

from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager
from pathlib import Path
from typing import Any

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import ORJSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from src.config import get_settings
from src.core.context import get_request_id
from src.core.logging import configure_structlog, get_logger
from src.core.middleware import RequestContextMiddleware
from src.core.redis import forum_events_channel, init_redis, shutdown_redis
from src.core.repository import (
    AggregateRepository,
    CassandraDocumentRepository,
    DocumentRepository,
    InMemoryDocumentRepository,
)
from src.disputes.models import Dispute
from src.disputes.router import router as disputes_router
from src.disputes.service import DisputeService
from src.forum.exceptions import ForumError
from src.forum.models import Post
from src.forum.router import router as forum_router
from src.forum.service import ForumService
from src.forum.store import ThreadStore
from src.health.router import router as health_router
from src.realtime.hub import ForumEventHub
from src.realtime.websocket_router import router as forum_ws_router


# Configure logging early (before creating logger)
settings = get_settings()
configure_structlog(settings, log_dir=Path(settings.log_dir))

logger = get_logger(__name__)


class AppState:
    """Application state container."""

    cassandra_session: Any = None
    redis_client: Any = None


app_state = AppState()


def _document_repository(table: str) -> DocumentRepository:
    if app_state.cassandra_session is None:
        return InMemoryDocumentRepository()
    return CassandraDocumentRepository(
        app_state.cassandra_session, get_settings().cassandra_keyspace, table
    )


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Application lifespan manager."""
    settings = get_settings()
    logger.info(
        "starting_application",
        app_name=settings.app_name,
        version=settings.app_version,
        environment=settings.environment,
    )

    # Initialize Redis (non-critical - app works without it)
    app_state.redis_client = None
    if settings.redis_enabled:
        try:
            app_state.redis_client = await init_redis()
            logger.info("redis_initialized")
        except Exception as e:
            logger.warning(
                "redis_init_skipped",
                error=str(e),
                message="Running without Redis - single-process fan-out, no rate limit",
            )

    # Initialize Cassandra (optional - documents stay in memory otherwise)
    app_state.cassandra_session = None
    if settings.cassandra_enabled:
        try:
            from src.core.database import init_async_cassandra

            app_state.cassandra_session = await init_async_cassandra()
            logger.info("cassandra_initialized")
        except Exception as e:
            logger.warning(
                "database_init_skipped",
                error=str(e),
                message="Running with in-memory storage",
            )

    hub = ForumEventHub(
        redis=app_state.redis_client,
        channel=forum_events_channel(),
        queue_size=settings.fanout_queue_size,
        session_queue_size=settings.fanout_session_queue_size,
    )
    await hub.start()
    app.state.forum_hub = hub

    posts = AggregateRepository(
        _document_repository("forum_posts"),
        Post.to_document,
        Post.from_document,
        lambda post: post.id,
    )
    store = ThreadStore(
        posts,
        publisher=hub,
        max_reply_depth=settings.forum_max_reply_depth,
        content_max_length=settings.forum_content_max_length,
        title_max_length=settings.forum_title_max_length,
    )
    app.state.thread_store = store
    app.state.forum_service = ForumService(
        store,
        redis=app_state.redis_client,
        comments_per_minute=settings.forum_comments_per_minute,
        page_size=settings.forum_page_size,
        page_size_max=settings.forum_page_size_max,
        suggestions_limit=settings.forum_suggestions_limit,
        trending_limit=settings.forum_trending_limit,
    )
    logger.info("forum_services_initialized", storage=posts.documents.__class__.__name__)

    disputes = AggregateRepository(
        _document_repository("disputes"),
        Dispute.to_document,
        Dispute.from_document,
        lambda dispute: dispute.id,
    )
    app.state.dispute_service = DisputeService(disputes)
    logger.info("dispute_service_initialized")

    yield

    # Shutdown
    logger.info("shutting_down_application")
    await hub.stop()
    await shutdown_redis()
    if app_state.cassandra_session is not None:
        from src.core.database import shutdown_async_cassandra

        await shutdown_async_cassandra()
        app_state.cassandra_session = None


def create_app() -> FastAPI:
    """Create and configure the FastAPI application."""
    settings = get_settings()

    # Never expose stack traces; the handlers below log full details instead
    app = FastAPI(
        title=settings.app_name,
        version=settings.app_version,
        description="Neighbourhood forum and rental disputes - API",
        debug=False,
        lifespan=lifespan,
        default_response_class=ORJSONResponse,
        docs_url="/docs" if settings.is_development else None,
        redoc_url="/redoc" if settings.is_development else None,
        openapi_url="/openapi.json" if settings.is_development else None,
    )

    # Request context middleware (must be added first - outermost)
    app.add_middleware(
        RequestContextMiddleware,
        log_requests=settings.log_requests,
        exclude_paths=settings.log_exclude_paths,
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=settings.cors_allow_credentials,
        allow_methods=settings.cors_allow_methods,
        allow_headers=settings.cors_allow_headers,
        max_age=settings.cors_max_age,
    )

    def _get_request_id_safe(request: Request) -> str | None:
        if hasattr(request.state, "request_id"):
            return request.state.request_id
        return get_request_id()

    def _error_body(
        request: Request, status_code: int, message: str, code: str | None
    ) -> dict[str, Any]:
        return {
            "error": True,
            "code": code,
            "message": message,
            "status_code": status_code,
            "request_id": _get_request_id_safe(request),
        }

    @app.exception_handler(StarletteHTTPException)
    async def http_exception_handler(
        request: Request, exc: StarletteHTTPException
    ) -> ORJSONResponse:
        """Handle HTTP exceptions with safe error messages."""
        logger.warning(
            "http_exception",
            status_code=exc.status_code,
            detail=str(exc.detail),
            path=request.url.path,
            method=request.method,
        )
        message = (
            str(exc.detail)
            if exc.status_code < status.HTTP_500_INTERNAL_SERVER_ERROR
            else "Internal server error"
        )
        return ORJSONResponse(
            status_code=exc.status_code,
            content=_error_body(
                request, exc.status_code, message, getattr(exc, "code", None)
            ),
            headers=getattr(exc, "headers", None),
        )

    @app.exception_handler(ForumError)
    async def forum_error_handler(request: Request, exc: ForumError) -> ORJSONResponse:
        """Domain errors that escaped a router keep their status and code."""
        logger.warning(
            "forum_error",
            code=exc.code,
            detail=exc.message,
            path=request.url.path,
            method=request.method,
        )
        return ORJSONResponse(
            status_code=exc.status_code,
            content=_error_body(request, exc.status_code, exc.message, exc.code),
        )

    @app.exception_handler(RequestValidationError)
    async def validation_exception_handler(
        request: Request, exc: RequestValidationError
    ) -> ORJSONResponse:
        """Handle validation errors with safe error messages."""
        logger.warning(
            "validation_error",
            errors=exc.errors(),
            path=request.url.path,
            method=request.method,
        )
        body = _error_body(
            request,
            status.HTTP_422_UNPROCESSABLE_ENTITY,
            "Validation error",
            "validation_error",
        )
        body["details"] = [
            {
                "field": ".".join(str(loc) for loc in err.get("loc", [])),
                "message": err.get("msg", "Invalid value"),
            }
            for err in exc.errors()
        ]
        return ORJSONResponse(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, content=body
        )

    @app.exception_handler(Exception)
    async def global_exception_handler(
        request: Request, exc: Exception
    ) -> ORJSONResponse:
        """Catch-all handler for unhandled exceptions.

        SECURITY: Never expose stack traces or internal error details to users.
        """
        logger.exception(
            "unhandled_exception",
            error_type=type(exc).__name__,
            error_message=str(exc),
            path=request.url.path,
            method=request.method,
        )
        return ORJSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content=_error_body(
                request,
                status.HTTP_500_INTERNAL_SERVER_ERROR,
                "An unexpected error occurred. Please try again later.",
                None,
            ),
        )

    # Include routers
    app.include_router(health_router)
    app.include_router(forum_router)
    app.include_router(disputes_router)
    app.include_router(forum_ws_router)  # WebSocket for real-time forum events

    @app.get("/", include_in_schema=False)
    async def root(request: Request) -> dict[str, str]:
        """Root endpoint."""
        return {
            "message": "Agora API",
            "version": settings.app_version,
            "docs": f"{request.url}docs",
        }

    return app


app = create_app()


def run() -> None:
    """Serve the API with uvicorn using the configured host and workers."""
    import uvicorn

    uvicorn.run(
        "src.main:app",
        host=settings.api_host,
        port=settings.api_port,
        workers=settings.api_workers,
        reload=settings.api_reload and settings.is_development,
        log_config=None,
    )


if __name__ == "__main__":
    run()
