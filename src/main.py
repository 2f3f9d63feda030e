"""Stillpoint API - Main Application."""

from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager
from pathlib import Path
from typing import Any

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import ORJSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from src.access.repository import CassandraSubscriptionRepository
from src.access.router import router as access_router
from src.access.service import AccessEvaluator
from src.config import Settings, get_settings
from src.content.repository import CassandraContentRepository
from src.core.context import get_request_id
from src.core.database import init_async_cassandra, shutdown_async_cassandra
from src.core.errors import DomainError, status_for_error
from src.core.logging import configure_structlog, get_logger
from src.core.middleware import RequestContextMiddleware
from src.core.redis import init_redis, shutdown_redis
from src.courses.repository import CassandraCourseRepository
from src.courses.router import router as courses_router
from src.courses.service import CatalogService
from src.health import router as health_router
from src.payments.bridge import PaymentBridge
from src.payments.gateway import RazorpayGateway
from src.payments.repository import CassandraPaymentRepository
from src.payments.router import admin_router as payments_admin_router
from src.payments.router import router as payments_router
from src.payments.service import PaymentService
from src.progress.repository import CassandraEnrollmentRepository
from src.progress.router import router as enrollments_router
from src.progress.service import EnrollmentService


# Configure logging early (before creating logger)
settings = get_settings()
configure_structlog(settings, log_dir=Path(settings.log_dir))

logger = get_logger(__name__)


def configure_services(
    app: FastAPI,
    session: Any,
    redis_client: Any,
    settings: Settings,
) -> None:
    """Wire repositories and services onto ``app.state``."""
    keyspace = settings.cassandra_keyspace
    courses = CassandraCourseRepository(session, keyspace)
    enrollments = CassandraEnrollmentRepository(session, keyspace)
    payments = CassandraPaymentRepository(session, keyspace)
    subscriptions = CassandraSubscriptionRepository(session, keyspace)

    access = AccessEvaluator(
        enrollments,
        payments,
        subscriptions,
        redis=redis_client,
        cache_ttl_seconds=settings.access_cache_ttl_seconds,
    )
    bridge = PaymentBridge(
        payments,
        enrollments,
        courses,
        subscriptions,
        access,
        max_retries=settings.progress_max_update_retries,
    )

    app.state.access_evaluator = access
    app.state.payment_bridge = bridge
    app.state.catalog_service = CatalogService(courses, enrollments, access)
    app.state.enrollment_service = EnrollmentService(
        enrollments,
        courses,
        payments,
        access,
        bridge,
        default_passing_score=settings.quiz_default_passing_score,
        attempt_history_limit=settings.quiz_attempt_history_limit,
        max_retries=settings.progress_max_update_retries,
    )
    app.state.payment_service = PaymentService(
        payments,
        courses,
        RazorpayGateway(settings),
        bridge,
        access,
        settings,
        CassandraContentRepository(session, keyspace),
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

    # Initialize Redis (non-critical - access decisions are just not cached)
    redis_client = None
    try:
        redis_client = await init_redis()
        logger.info("redis_initialized")
    except Exception as e:
        logger.warning(
            "redis_init_skipped",
            error=str(e),
            message="Running without Redis - access decisions not cached",
        )

    # Initialize Cassandra (async)
    try:
        session = await init_async_cassandra()
        app.state.cassandra_session = session
        logger.info("cassandra_initialized")

        configure_services(app, session, redis_client, settings)
        logger.info(
            "services_initialized",
            redis_enabled=redis_client is not None,
            gateway_configured=settings.razorpay_configured,
        )
    except Exception as e:
        logger.warning(
            "database_init_skipped",
            error=str(e),
            message="Running without database connection",
        )

    yield

    # Shutdown
    logger.info("shutting_down_application")
    await shutdown_redis()
    await shutdown_async_cassandra()


def create_app(*, use_lifespan: bool = True) -> FastAPI:
    """Create and configure the FastAPI application.

    Args:
        use_lifespan: Set False to skip database/Redis startup (tests wire
            services onto ``app.state`` themselves)
    """
    settings = get_settings()

    # SECURITY: Always set debug=False to prevent Starlette's ServerErrorMiddleware
    # from exposing stack traces in responses. Our custom exception handlers will
    # log full details internally while returning safe error messages to users.
    app = FastAPI(
        title=settings.app_name,
        version=settings.app_version,
        description="Course enrollment and progress tracking API",
        debug=False,  # Never expose stack traces in responses
        lifespan=lifespan if use_lifespan else None,
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

    # CORS middleware
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=settings.cors_allow_credentials,
        allow_methods=settings.cors_allow_methods,
        allow_headers=settings.cors_allow_headers,
        max_age=settings.cors_max_age,
    )

    # Helper to get request_id from request state or context
    def _get_request_id_safe(request: Request) -> str | None:
        """Get request_id from request state or context."""
        if hasattr(request.state, "request_id"):
            return request.state.request_id
        return get_request_id()

    @app.exception_handler(DomainError)
    async def domain_error_handler(request: Request, exc: DomainError) -> ORJSONResponse:
        """Map domain errors to their status code and stable error kind."""
        status_code = status_for_error(exc)
        logger.info(
            "domain_error",
            kind=exc.code,
            status_code=status_code,
            detail=exc.message,
            path=request.url.path,
            method=request.method,
        )
        return ORJSONResponse(
            status_code=status_code,
            content={
                "error": True,
                "kind": exc.code,
                "message": exc.message,
                "status_code": status_code,
                "request_id": _get_request_id_safe(request),
            },
        )

    # Global exception handlers (security: never expose stack traces)
    @app.exception_handler(StarletteHTTPException)
    async def http_exception_handler(
        request: Request, exc: StarletteHTTPException
    ) -> ORJSONResponse:
        """Handle HTTP exceptions with safe error messages."""
        request_id = _get_request_id_safe(request)

        logger.warning(
            "http_exception",
            status_code=exc.status_code,
            detail=str(exc.detail),
            path=request.url.path,
            method=request.method,
        )

        return ORJSONResponse(
            status_code=exc.status_code,
            content={
                "error": True,
                "message": str(exc.detail)
                if exc.status_code < status.HTTP_500_INTERNAL_SERVER_ERROR
                else "Internal server error",
                "status_code": exc.status_code,
                "request_id": request_id,
            },
            headers=getattr(exc, "headers", None),
        )

    @app.exception_handler(RequestValidationError)
    async def validation_exception_handler(
        request: Request, exc: RequestValidationError
    ) -> ORJSONResponse:
        """Handle request validation errors (safe to expose field details)."""
        request_id = _get_request_id_safe(request)

        logger.warning(
            "validation_error",
            errors=exc.errors(),
            path=request.url.path,
            method=request.method,
        )

        return ORJSONResponse(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            content={
                "error": True,
                "kind": "validation_error",
                "message": "Validation error",
                "status_code": 422,
                "request_id": request_id,
                "details": [
                    {
                        "field": ".".join(str(loc) for loc in err.get("loc", [])),
                        "message": err.get("msg", "Invalid value"),
                    }
                    for err in exc.errors()
                ],
            },
        )

    @app.exception_handler(Exception)
    async def global_exception_handler(
        request: Request, exc: Exception
    ) -> ORJSONResponse:
        """Catch-all handler for unhandled exceptions.

        SECURITY: Never expose stack traces or internal error details to users.
        """
        request_id = _get_request_id_safe(request)

        logger.exception(
            "unhandled_exception",
            error_type=type(exc).__name__,
            error_message=str(exc),
            path=request.url.path,
            method=request.method,
        )

        return ORJSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content={
                "error": True,
                "message": "An unexpected error occurred. Please try again later.",
                "status_code": 500,
                "request_id": request_id,
            },
        )

    # Include routers
    app.include_router(health_router)
    app.include_router(courses_router)
    app.include_router(access_router)
    app.include_router(enrollments_router)
    app.include_router(payments_router)
    app.include_router(payments_admin_router)

    @app.get("/", include_in_schema=False)
    async def root(request: Request) -> dict[str, str]:
        """Root endpoint."""
        return {
            "message": "Stillpoint API",
            "version": settings.app_version,
            "docs": f"{request.url}docs",
        }

    return app


app = create_app()
