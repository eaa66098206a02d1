"""
FastAPI application entry point with health endpoints and service routing.

This module provides the main FastAPI application instance with CORS
configuration, rate limiting, request correlation, global exception handling
and the v1 routers. Redis is connected on startup when reachable; without it
the dashboard computes every request.
"""

from contextlib import asynccontextmanager
from typing import AsyncIterator, Union

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import ValidationError as PydanticValidationError
from redis.exceptions import RedisError
from slowapi import _rate_limit_exceeded_handler
from slowapi.errors import RateLimitExceeded
from slowapi.middleware import SlowAPIMiddleware

from brokerage.api.rate_limit import limiter
from brokerage.api.v1 import routers
from brokerage.cache.redis_client import close_redis_client, get_redis_client
from brokerage.core.config import get_settings
from brokerage.core.errors import DomainError, ErrorKind
from brokerage.core.logging import (
    clear_context,
    configure_logging,
    get_logger,
    get_request_id,
    log_performance,
    set_request_id,
)
from brokerage.database.connection import check_database_health, close_database_connections

# Configure logging before application initialization
configure_logging()
logger = get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """
    Application lifespan context manager for startup and shutdown events.

    Args:
        app: FastAPI application instance

    Yields:
        None during application runtime
    """
    settings = get_settings()

    logger.info(
        "Application starting",
        environment=settings.environment,
        debug=settings.debug,
        version=settings.app_version,
    )

    with log_performance(logger, "application_startup"):
        app.state.redis = None
        try:
            app.state.redis = await get_redis_client()
        except (RedisError, OSError) as e:
            logger.warning(
                "Redis unavailable, dashboard caching disabled",
                error=str(e),
                error_type=type(e).__name__,
            )
        logger.info("Resources initialized successfully", cache_enabled=app.state.redis is not None)

    yield

    logger.info("Application shutting down")
    with log_performance(logger, "application_shutdown"):
        await close_redis_client()
        app.state.redis = None
        await close_database_connections()
        logger.info("Resources cleaned up successfully")


settings = get_settings()
app = FastAPI(
    title=settings.app_name,
    version=settings.app_version,
    description="Freight brokerage backend API",
    docs_url="/docs",
    redoc_url="/redoc",
    openapi_url="/openapi.json",
    lifespan=lifespan,
    debug=settings.debug,
)

# Configure rate limiting
app.state.limiter = limiter
app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)
app.add_middleware(SlowAPIMiddleware)

# Configure CORS
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
    expose_headers=["X-Request-ID"],
)


@app.middleware("http")
async def request_logging_middleware(request: Request, call_next):
    """
    Middleware for request logging and correlation ID management.

    Sets request ID for correlation, logs request details, and measures
    response time. Clears context after request processing.
    """
    request_id = set_request_id(request.headers.get("X-Request-ID"))

    logger.info(
        "Request received",
        method=request.method,
        path=request.url.path,
        client_host=request.client.host if request.client else None,
    )

    try:
        with log_performance(
            logger,
            "request_processing",
            method=request.method,
            path=request.url.path,
        ):
            response = await call_next(request)

        response.headers["X-Request-ID"] = request_id

        logger.info(
            "Request completed",
            method=request.method,
            path=request.url.path,
            status_code=response.status_code,
        )

        return response
    except Exception as e:
        logger.error(
            "Request failed",
            method=request.method,
            path=request.url.path,
            error=str(e),
            error_type=type(e).__name__,
        )
        raise
    finally:
        clear_context()


def _error_response(
    status_code: int, error: str, details: Union[dict, list, None] = None
) -> JSONResponse:
    content = {"error": error, "request_id": get_request_id()}
    if details:
        content["details"] = details
    return JSONResponse(status_code=status_code, content=content)


def _jsonable_errors(errors: list) -> list[dict]:
    return [
        {
            "loc": [str(part) for part in error.get("loc", ())],
            "msg": str(error.get("msg", "")),
            "type": str(error.get("type", "")),
        }
        for error in errors
    ]


@app.exception_handler(DomainError)
async def domain_exception_handler(request: Request, exc: DomainError) -> JSONResponse:
    """
    Map a domain error to its HTTP status.

    The status comes from ``exc.kind`` only.
    """
    log = logger.error if exc.kind is ErrorKind.INTERNAL else logger.warning
    log(
        "Request rejected",
        method=request.method,
        path=request.url.path,
        kind=exc.kind.value,
        error=exc.message,
        error_type=type(exc).__name__,
        context={key: str(value) for key, value in exc.context.items()},
    )
    return _error_response(exc.kind.status_code, exc.message, exc.details)


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(
    request: Request, exc: RequestValidationError
) -> JSONResponse:
    """Request validation errors are reported as 400 with the validator output."""
    errors = exc.errors()
    logger.warning(
        "Request validation failed",
        method=request.method,
        path=request.url.path,
        errors=errors,
    )
    return _error_response(
        status.HTTP_400_BAD_REQUEST,
        "Validation Error",
        {"errors": _jsonable_errors(errors)},
    )


@app.exception_handler(PydanticValidationError)
async def model_validation_exception_handler(
    request: Request, exc: PydanticValidationError
) -> JSONResponse:
    """Field patches validated inside services fail the same way as request bodies."""
    errors = exc.errors(include_url=False)
    logger.warning(
        "Field patch validation failed",
        method=request.method,
        path=request.url.path,
        errors=errors,
    )
    return _error_response(
        status.HTTP_400_BAD_REQUEST,
        "Validation Error",
        {"errors": _jsonable_errors(errors)},
    )


@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """
    Handle unexpected exceptions with structured error response.

    Logs error with full context and returns generic error message
    to avoid exposing internal details.
    """
    logger.error(
        "Unhandled exception",
        method=request.method,
        path=request.url.path,
        error=str(exc),
        error_type=type(exc).__name__,
        exc_info=True,
    )
    return _error_response(status.HTTP_500_INTERNAL_SERVER_ERROR, "Internal Server Error")


@app.get(
    "/health",
    status_code=status.HTTP_200_OK,
    tags=["Health"],
    summary="Health check endpoint",
)
@limiter.exempt
async def health_check(request: Request) -> dict[str, str]:
    """Always returns 200 OK while the process is serving requests."""
    return {
        "status": "healthy",
        "service": settings.app_name,
        "version": settings.app_version,
        "environment": settings.environment,
    }


@app.get(
    "/ready",
    status_code=status.HTTP_200_OK,
    tags=["Health"],
    summary="Readiness check endpoint",
)
@limiter.exempt
async def readiness_check(request: Request):
    """
    Readiness check endpoint for orchestration.

    Verifies database connectivity and reports whether Redis caching is
    available. Redis is optional and never makes the service unready.
    """
    database_ready = await check_database_health(max_retries=1)
    redis = getattr(request.app.state, "redis", None)
    cache_status = "healthy" if redis is not None and await redis.health_check() else "unavailable"

    if not database_ready:
        logger.warning("Readiness check failed", database="unhealthy")
        return JSONResponse(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            content={
                "status": "not_ready",
                "service": settings.app_name,
                "database": "unhealthy",
                "cache": cache_status,
            },
        )

    return {
        "status": "ready",
        "service": settings.app_name,
        "version": settings.app_version,
        "database": "healthy",
        "cache": cache_status,
    }


@app.get(
    "/live",
    status_code=status.HTTP_200_OK,
    tags=["Health"],
    summary="Liveness check endpoint",
)
@limiter.exempt
async def liveness_check(request: Request) -> dict[str, str]:
    """Indicates whether the application is alive and should not be restarted."""
    return {
        "status": "alive",
        "service": settings.app_name,
        "version": settings.app_version,
    }


for router in routers:
    app.include_router(router, prefix=settings.api_v1_prefix)
