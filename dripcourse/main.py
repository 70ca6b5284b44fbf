"""dripcourse API - Main Application."""

from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager
from datetime import timedelta
from pathlib import Path

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import ORJSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from dripcourse.config import Settings, get_settings
from dripcourse.core.context import get_request_id
from dripcourse.core.logging import configure_structlog, get_logger
from dripcourse.core.middleware import RequestContextMiddleware
from dripcourse.core.redis import init_redis, shutdown_redis, unlock_lock_key
from dripcourse.email import EmailService
from dripcourse.enrollments import (
    AccessGate,
    CassandraEnrollmentStore,
    ConflictError,
    DependencyError,
    EnrollmentError,
    EnrollmentStore,
    InMemoryEnrollmentStore,
    InvalidStateError,
    NotFoundError,
    UnauthorizedError,
    UnlockScheduler,
    UnlockWorker,
)
from dripcourse.enrollments.router import admin_router as enrollments_admin_router
from dripcourse.enrollments.router import router as access_router
from dripcourse.health import router as health_router
from dripcourse.notifications import EmailNotificationDispatcher
from dripcourse.payments import PaymentEventHandler, StripeGateway, WebhookError
from dripcourse.payments.router import router as payments_router


# Configure logging early (before creating logger)
settings = get_settings()
configure_structlog(settings, log_dir=Path(settings.log_dir))

logger = get_logger(__name__)


ERROR_STATUS_CODES: dict[type[EnrollmentError], int] = {
    NotFoundError: status.HTTP_404_NOT_FOUND,
    UnauthorizedError: status.HTTP_401_UNAUTHORIZED,
    InvalidStateError: status.HTTP_409_CONFLICT,
    WebhookError: status.HTTP_400_BAD_REQUEST,
    ConflictError: status.HTTP_503_SERVICE_UNAVAILABLE,
    DependencyError: status.HTTP_503_SERVICE_UNAVAILABLE,
}


def status_code_for(exc: EnrollmentError) -> int:
    """HTTP status for an enrollment error (500 for unmapped subclasses)."""
    for error_type in type(exc).__mro__:
        if error_type in ERROR_STATUS_CODES:
            return ERROR_STATUS_CODES[error_type]
    return status.HTTP_500_INTERNAL_SERVER_ERROR


async def _open_store(app: FastAPI, settings: Settings) -> EnrollmentStore:
    """Create the configured enrollment store."""
    if settings.enrollment_store_backend == "memory":
        logger.info("enrollment_store_initialized", backend="memory")
        return InMemoryEnrollmentStore()

    # The Cassandra driver is only loaded when it is actually used
    from dripcourse.core.database import AsyncCassandraConnection, init_async_cassandra

    connection = AsyncCassandraConnection(settings)
    app.state.cassandra_connection = connection
    session = await init_async_cassandra(connection)
    logger.info("enrollment_store_initialized", backend="cassandra")
    return CassandraEnrollmentStore(session=session, keyspace=settings.cassandra_keyspace)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Application lifespan manager: wire services once, tear down on exit."""
    settings: Settings = app.state.settings
    logger.info(
        "starting_application",
        app_name=settings.app_name,
        version=settings.app_version,
        environment=settings.environment,
    )

    # Redis (non-critical - only used for the unlock lock)
    redis_client = None
    if settings.redis_enabled:
        try:
            redis_client = await init_redis(settings)
        except Exception as e:
            logger.warning(
                "redis_init_skipped",
                error=str(e),
                message="Running without Redis - unlock passes are not coordinated",
            )

    # Email (independent of the store)
    email_service = None
    if settings.email_configured:
        try:
            email_service = EmailService(
                credentials_path=settings.email_credentials_path,
                sender_address=settings.email_sender_address,
                sender_name=settings.email_sender_name,
                support_address=settings.email_support_address,
            )
            logger.info("email_service_initialized", sender=settings.email_sender_address)
        except Exception as e:
            logger.warning(
                "email_service_init_skipped",
                error=str(e),
                message="Running without email service",
            )
    app.state.email_service = email_service

    dispatcher = EmailNotificationDispatcher(
        email_service=email_service,
        portal_url=settings.portal_url,
        timeout_seconds=settings.notification_timeout_seconds,
        max_attempts=settings.notification_max_attempts,
        total_weeks=settings.course_total_weeks,
        unlock_interval_days=settings.course_unlock_interval_days,
    )

    # Enrollment store and services
    try:
        store = await _open_store(app, settings)

        scheduler = UnlockScheduler(
            store,
            dispatcher,
            total_weeks=settings.course_total_weeks,
            unlock_interval=timedelta(days=settings.course_unlock_interval_days),
            store_timeout_seconds=settings.enrollment_store_timeout_seconds,
            max_conflict_retries=settings.enrollment_max_conflict_retries,
        )
        app.state.scheduler = scheduler
        app.state.access_gate = AccessGate(
            store,
            total_weeks=settings.course_total_weeks,
            sessions_per_week=settings.course_sessions_per_week,
            store_timeout_seconds=settings.enrollment_store_timeout_seconds,
        )
        app.state.payment_handler = PaymentEventHandler(scheduler)
        app.state.unlock_worker = UnlockWorker(
            scheduler,
            interval_seconds=settings.unlock_tick_interval_seconds,
            redis_client=redis_client,
            lock_key=unlock_lock_key(settings.app_name),
            lock_ttl_seconds=settings.unlock_lock_ttl_seconds,
        )
        logger.info("enrollment_services_initialized")
    except Exception as e:
        logger.warning(
            "database_init_skipped",
            error=str(e),
            message="Running without enrollment store",
        )

    if settings.stripe_configured:
        app.state.payment_gateway = StripeGateway(
            secret_key=settings.stripe_secret_key,
            webhook_secret=settings.stripe_webhook_secret,
            price_ids={
                "individual": settings.stripe_price_individual,
                "coaching": settings.stripe_price_coaching,
            },
            frontend_url=settings.frontend_url,
        )
        logger.info("payment_gateway_initialized", provider="stripe")
    else:
        logger.warning("payment_gateway_not_configured")

    worker = getattr(app.state, "unlock_worker", None)
    if worker is not None and settings.unlock_worker_enabled:
        await worker.start()

    yield

    # Shutdown
    logger.info("shutting_down_application")
    if worker is not None:
        await worker.stop()
    await shutdown_redis(redis_client)
    connection = getattr(app.state, "cassandra_connection", None)
    if connection is not None:
        connection.disconnect()


def create_app(settings: Settings | None = None) -> FastAPI:
    """Create and configure the FastAPI application."""
    settings = settings or get_settings()

    # Starlette debug mode would expose stack traces in responses
    app = FastAPI(
        title=settings.app_name,
        version=settings.app_version,
        description="Paid six-week course: checkout, payment webhooks and weekly unlocks",
        debug=False,
        lifespan=lifespan,
        default_response_class=ORJSONResponse,
        docs_url="/docs" if settings.is_development else None,
        redoc_url="/redoc" if settings.is_development else None,
        openapi_url="/openapi.json" if settings.is_development else None,
    )
    app.state.settings = settings

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

    @app.exception_handler(EnrollmentError)
    async def enrollment_exception_handler(
        request: Request, exc: EnrollmentError
    ) -> ORJSONResponse:
        """Map enrollment errors to HTTP responses."""
        request_id = _get_request_id_safe(request)
        status_code = status_code_for(exc)

        retryable = isinstance(exc, ConflictError) or getattr(exc, "retryable", False)
        if status_code >= status.HTTP_500_INTERNAL_SERVER_ERROR:
            logger.error(
                "enrollment_dependency_error",
                code=exc.code,
                error_message=exc.message,
                retryable=retryable,
                path=request.url.path,
            )
            message = "Service temporarily unavailable. Please try again later."
        else:
            logger.info(
                "enrollment_request_rejected",
                code=exc.code,
                status_code=status_code,
                path=request.url.path,
            )
            message = exc.message

        headers = {"Retry-After": "5"} if retryable else None
        return ORJSONResponse(
            status_code=status_code,
            headers=headers,
            content={
                "error": True,
                "code": exc.code,
                "message": message,
                "status_code": status_code,
                "request_id": request_id,
            },
        )

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
        )

    @app.exception_handler(RequestValidationError)
    async def validation_exception_handler(
        request: Request, exc: RequestValidationError
    ) -> ORJSONResponse:
        """Handle validation errors with safe error messages."""
        request_id = _get_request_id_safe(request)

        logger.warning(
            "validation_error",
            error_count=len(exc.errors()),
            path=request.url.path,
            method=request.method,
        )

        return ORJSONResponse(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            content={
                "error": True,
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
        """Catch-all handler: details go to the log, never to the client."""
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

    app.include_router(health_router)
    app.include_router(payments_router)
    app.include_router(access_router)
    app.include_router(enrollments_admin_router)

    @app.get("/", include_in_schema=False)
    async def root() -> dict[str, str]:
        return {"message": f"{settings.app_name} API", "version": settings.app_version}

    return app


app = create_app()
