"""FastAPI application initialization."""

import asyncio
from contextlib import asynccontextmanager
from uuid import uuid4

from dotenv import load_dotenv

# Load environment variables before anything else
load_dotenv()

import structlog
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from src.api.auth import router as auth_router
from src.api.health import router as health_router
from src.api.middleware import CorrelationIdMiddleware, route_path
from src.api.users import router as users_router
from src.config import get_settings
from src.services.auth_errors import AuthError
from src.services.email_queue import EmailQueue
from src.services.email_service import EmailService
from src.services.logging_service import configure_logging, get_logger


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan handler for startup/shutdown events."""
    # Startup
    settings = get_settings()
    configure_logging(settings.log_level)
    logger = get_logger("main")

    # Initialize database connection pool and run migrations
    database_ready = False
    try:
        from src.database import init_database, run_migrations

        await init_database()
        await run_migrations()
        database_ready = True
        logger.info("database_initialized")
    except Exception as e:
        logger.warning(
            "database_initialization_failed",
            error=str(e),
            note="Continuing without database - auth endpoints will fail until it is reachable",
        )

    # Initialize Redis connection
    try:
        from src.services.redis_service import get_redis

        await get_redis()
        logger.info("redis_initialized")
    except Exception as e:
        logger.warning(
            "redis_initialization_failed",
            error=str(e),
            note="Continuing without Redis - rate limiting will be unavailable",
        )

    # Background email delivery
    email_queue = EmailQueue(EmailService(settings), max_size=settings.email_queue_max_size)
    email_queue.start()
    app.state.email_queue = email_queue

    # Periodic purge of expired tokens
    token_cleanup_task = None
    if database_ready:
        from src.services.maintenance import token_cleanup_loop
        from src.services.refresh_token_store import RefreshTokenStore
        from src.services.verification_token_store import VerificationTokenStore

        token_cleanup_task = asyncio.create_task(
            token_cleanup_loop(
                settings.token_cleanup_interval_seconds,
                RefreshTokenStore(),
                VerificationTokenStore(),
            )
        )
        logger.info("token_cleanup_started", interval=settings.token_cleanup_interval_seconds)

    logger.info(
        "application_started",
        app_name=settings.app_name,
        log_level=settings.log_level,
        email_enabled=settings.email_enabled,
    )

    yield

    # Shutdown
    if token_cleanup_task is not None:
        token_cleanup_task.cancel()
        try:
            await token_cleanup_task
        except asyncio.CancelledError:
            pass
        logger.info("token_cleanup_stopped")

    # Deliver queued emails before closing connections
    await email_queue.stop(timeout=5.0)

    try:
        from src.database import close_database

        await close_database()
    except Exception as e:
        logger.warning("database_close_failed", error=str(e))

    try:
        from src.services.redis_service import close_redis

        await close_redis()
    except Exception as e:
        logger.warning("redis_close_failed", error=str(e))

    logger.info("application_shutdown")


app = FastAPI(
    title="Auth Service API",
    description="Registration, login, token rotation, email verification and user management",
    version="0.1.0",
    lifespan=lifespan,
)


def _error_response(request: Request, status_code: int, error: str, detail: str) -> JSONResponse:
    """Build the error envelope shared by every failure response."""
    correlation_id = getattr(request.state, "correlation_id", None) or str(uuid4())
    return JSONResponse(
        status_code=status_code,
        content={"error": error, "detail": detail, "correlation_id": correlation_id},
        headers={"X-Correlation-Id": correlation_id},
    )


@app.exception_handler(AuthError)
async def auth_error_handler(request: Request, exc: AuthError) -> JSONResponse:
    """Render domain errors with their status code and stable error code."""
    structlog.get_logger().info(
        "auth_error",
        error=exc.code,
        status_code=exc.status_code,
        path=route_path(request),
    )
    return _error_response(request, exc.status_code, exc.code, exc.message)


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(
    request: Request, exc: RequestValidationError
) -> JSONResponse:
    """Report the first offending field as a 400.

    Only field locations are logged; raw error entries echo the submitted
    input, which may hold a password.
    """
    errors = exc.errors()
    fields = [".".join(str(loc) for loc in e.get("loc", [])) for e in errors]
    if errors:
        detail = f"Field '{fields[0] or 'unknown'}': {errors[0].get('msg', 'Validation failed')}"
    else:
        detail = "Request validation failed"

    structlog.get_logger().warning("validation_error", detail=detail, fields=fields)
    return _error_response(request, 400, "Validation error", detail)


# CORS middleware for browser clients
app.add_middleware(
    CORSMiddleware,
    allow_origins=[get_settings().frontend_url],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Correlation ID middleware for request tracking and observability
app.add_middleware(CorrelationIdMiddleware)

app.include_router(health_router)
app.include_router(auth_router)
app.include_router(users_router)
