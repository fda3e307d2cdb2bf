"""FastAPI application entry point."""
from contextlib import asynccontextmanager
from typing import AsyncGenerator

import structlog
from fastapi import FastAPI, Request, status
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from prometheus_client import make_asgi_app
from sqlalchemy.exc import SQLAlchemyError

from hookrelay.api.deps import get_dispatcher
from hookrelay.api.v1 import health, webhook_logs
from hookrelay.api.webhooks import mollie
from hookrelay.config import settings
from hookrelay.middleware.logging import REQUEST_ID_HEADER, LoggingMiddleware, setup_logging
from hookrelay.middleware.metrics import MetricsMiddleware
from hookrelay.schemas.error import (
    REMEDIATION_HINTS,
    VALIDATION_ERROR_CODES,
    ErrorCode,
    ErrorDetail,
    ErrorResponse,
    InternalServerErrorResponse,
    ValidationErrorResponse,
)

# Setup structured logging
setup_logging()
logger = structlog.get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Application lifespan manager for startup and shutdown events."""
    logger.info("application_starting", env=settings.app_env)
    yield
    # Let in-flight forwards record their outcome before the loop stops
    dispatcher = get_dispatcher()
    logger.info("application_shutting_down", pending_forwards=dispatcher.pending)
    await dispatcher.drain()


app = FastAPI(
    title="Mollie Webhook Relay",
    description="Receives, verifies, logs, forwards and replays Mollie webhooks",
    version="0.1.0",
    docs_url="/docs",
    redoc_url="/redoc",
    openapi_url="/openapi.json",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)
app.add_middleware(MetricsMiddleware)
app.add_middleware(LoggingMiddleware)

# Mount Prometheus metrics endpoint
app.mount("/metrics", make_asgi_app())


def _request_id(request: Request) -> str | None:
    return getattr(request.state, "request_id", None) or request.headers.get(REQUEST_ID_HEADER)


def _error_response(status_code: int, error: ErrorResponse, headers: dict[str, str] | None = None) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content=jsonable_encoder(error.model_dump(exclude_none=True)),
        headers=headers,
    )


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    """
    Handle request validation errors with a structured response.

    Returns 422 with field-level details.
    """
    details = [
        ErrorDetail(
            code=VALIDATION_ERROR_CODES.get(error["type"], ErrorCode.INVALID_VALUE),
            message=error["msg"],
            field=".".join(str(loc) for loc in error["loc"]),
            value=error.get("input"),
        )
        for error in exc.errors()
    ]

    logger.warning(
        "validation_error",
        path=request.url.path,
        method=request.method,
        error_count=len(details),
    )

    codes = [detail.code for detail in details]
    remediation = next((REMEDIATION_HINTS[code] for code in codes if code in REMEDIATION_HINTS), None)

    return _error_response(
        status.HTTP_422_UNPROCESSABLE_ENTITY,
        ValidationErrorResponse(
            message="Request validation failed",
            details=details,
            remediation=remediation or "Check the API documentation for the correct request format at /docs",
            request_id=_request_id(request),
        ),
    )


@app.exception_handler(SQLAlchemyError)
async def database_exception_handler(request: Request, exc: SQLAlchemyError) -> JSONResponse:
    """
    Handle database errors.

    Returns 503 Service Unavailable with a Retry-After hint.
    """
    logger.error(
        "database_error",
        path=request.url.path,
        method=request.method,
        error_type=type(exc).__name__,
        error_message=str(exc),
    )

    # Database internals are only exposed outside production
    detail = "Database temporarily unavailable" if settings.app_env == "production" else str(exc)

    return _error_response(
        status.HTTP_503_SERVICE_UNAVAILABLE,
        ErrorResponse(
            error="DatabaseError",
            message="A database error occurred",
            details=[ErrorDetail(code=ErrorCode.DATABASE_ERROR, message=detail)],
            remediation=REMEDIATION_HINTS[ErrorCode.DATABASE_ERROR],
            request_id=_request_id(request),
        ),
        headers={"Retry-After": "30"},
    )


@app.exception_handler(Exception)
async def generic_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """
    Handle all other uncaught exceptions.

    Logs the stack trace and returns a generic 500 without internal details.
    """
    logger.exception(
        "unhandled_exception",
        path=request.url.path,
        method=request.method,
        exception_type=type(exc).__name__,
    )

    return _error_response(
        status.HTTP_500_INTERNAL_SERVER_ERROR,
        InternalServerErrorResponse(
            message="An unexpected error occurred",
            details=[ErrorDetail(code=ErrorCode.INTERNAL_ERROR, message="Internal server error")],
            remediation="Please contact support with the request ID",
            request_id=_request_id(request),
        ),
    )


@app.get("/", tags=["Root"])
async def root() -> dict[str, str]:
    """Root endpoint with API information."""
    return {
        "service": "Mollie Webhook Relay",
        "version": "0.1.0",
        "status": "operational",
        "docs": "/docs",
    }


app.include_router(health.router, tags=["Health"])
app.include_router(mollie.router)
app.include_router(webhook_logs.router, prefix="/v1")
