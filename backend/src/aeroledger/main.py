"""FastAPI application entry point."""
import traceback
import uuid
from contextlib import asynccontextmanager
from datetime import datetime
from typing import AsyncGenerator

import structlog
from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from prometheus_client import make_asgi_app
from sqlalchemy.exc import SQLAlchemyError

from aeroledger.config import settings
from aeroledger.exceptions import BillingError, ValidationError
from aeroledger.middleware.logging import LoggingMiddleware, setup_logging
from aeroledger.middleware.metrics import MetricsMiddleware
from aeroledger.schemas.error import REMEDIATION_HINTS, ErrorCode, ErrorDetail, ErrorResponse

# Setup structured logging
setup_logging()
logger = structlog.get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Application lifespan manager for startup and shutdown events."""
    logger.info("application_starting", env=settings.app_env)
    yield
    logger.info("application_shutting_down")


app = FastAPI(
    title="AeroLedger",
    description="Flight school billing: flight charges, invoices, payments, credit notes and statements",
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
metrics_app = make_asgi_app()
app.mount("/metrics", metrics_app)


def _request_id(request: Request) -> str:
    return structlog.contextvars.get_contextvars().get("request_id") or request.headers.get(
        "x-request-id", str(uuid.uuid4())
    )


def _error_body(request: Request, error: str, message: str, details: list[dict], remediation: str | None) -> dict:
    return ErrorResponse(
        error=error,
        message=message,
        details=[ErrorDetail(**detail) for detail in details],
        remediation=remediation,
        request_id=_request_id(request),
        timestamp=datetime.utcnow(),
    ).model_dump(mode="json")


@app.exception_handler(BillingError)
async def billing_exception_handler(request: Request, exc: BillingError) -> JSONResponse:
    """
    Render billing errors with their own status code and error code.

    Validation errors carry the offending field; immutability errors carry
    the credit-note remediation hint.
    """
    log = logger.error if exc.status_code >= 500 else logger.warning
    log(
        "billing_error",
        path=request.url.path,
        method=request.method,
        error_type=type(exc).__name__,
        code=exc.code,
        error_message=exc.message,
    )

    detail = {"code": exc.code, "message": exc.message}
    if isinstance(exc, ValidationError):
        detail["field"] = exc.field

    return JSONResponse(
        status_code=exc.status_code,
        content=_error_body(
            request,
            error=type(exc).__name__,
            message=exc.message,
            details=[detail],
            remediation=exc.remediation or REMEDIATION_HINTS.get(exc.code),
        ),
    )


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    """Return 422 with field-level request validation errors."""
    code_mapping = {
        "missing": ErrorCode.MISSING_REQUIRED_FIELD,
        "uuid_parsing": ErrorCode.INVALID_UUID,
        "uuid_type": ErrorCode.INVALID_UUID,
        "enum": ErrorCode.INVALID_ENUM_VALUE,
        "decimal_parsing": ErrorCode.INVALID_DECIMAL,
        "decimal_type": ErrorCode.INVALID_DECIMAL,
    }

    details = []
    for error in exc.errors():
        value = error.get("input")
        details.append(
            {
                "code": code_mapping.get(error["type"], ErrorCode.REQUEST_VALIDATION),
                "message": error["msg"],
                "field": ".".join(str(loc) for loc in error["loc"]),
                "value": value if isinstance(value, (str, int, float, bool)) else None,
            }
        )

    logger.warning(
        "validation_error",
        path=request.url.path,
        method=request.method,
        error_count=len(details),
    )
    return JSONResponse(
        status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
        content=_error_body(
            request,
            error="RequestValidationError",
            message="Request validation failed",
            details=details,
            remediation="Check the API documentation for correct request format at /docs",
        ),
    )


@app.exception_handler(SQLAlchemyError)
async def database_exception_handler(request: Request, exc: SQLAlchemyError) -> JSONResponse:
    """Return 503 for database errors."""
    logger.error(
        "database_error",
        path=request.url.path,
        method=request.method,
        error_type=type(exc).__name__,
        error_message=str(exc),
    )

    # Don't expose internal database details in production
    error_message = "Database temporarily unavailable" if settings.app_env == "production" else str(exc)
    return JSONResponse(
        status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
        content=_error_body(
            request,
            error="DatabaseError",
            message="A database error occurred",
            details=[{"code": ErrorCode.DATABASE_ERROR, "message": error_message}],
            remediation=REMEDIATION_HINTS[ErrorCode.DATABASE_ERROR],
        ),
        headers={"Retry-After": "30"},
    )


@app.exception_handler(Exception)
async def generic_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Return 500 for anything unexpected; the stack trace goes to the log only."""
    logger.exception(
        "unhandled_exception",
        path=request.url.path,
        method=request.method,
        exception_type=type(exc).__name__,
        exception_message=str(exc),
        stack_trace=traceback.format_exc(),
    )
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content=_error_body(
            request,
            error="InternalServerError",
            message="An unexpected error occurred",
            details=[
                {
                    "code": ErrorCode.INTERNAL_ERROR,
                    "message": str(exc) if settings.debug else "Internal server error",
                }
            ],
            remediation=REMEDIATION_HINTS[ErrorCode.INTERNAL_ERROR],
        ),
    )


@app.get("/", tags=["Root"])
async def root() -> dict[str, str]:
    """Root endpoint with API information."""
    return {
        "service": "AeroLedger",
        "version": "0.1.0",
        "status": "operational",
        "docs": "/docs",
    }


# Include routers
from aeroledger.api.v1 import (  # noqa: E402
    bookings,
    credit_notes,
    health,
    invoice_items,
    invoices,
    memberships,
    payments,
    statements,
)

app.include_router(health.router, tags=["Health"])
app.include_router(bookings.router, prefix="/v1")
app.include_router(invoices.router, prefix="/v1")
app.include_router(invoice_items.router, prefix="/v1")
app.include_router(payments.router, prefix="/v1")
app.include_router(credit_notes.router, prefix="/v1")
app.include_router(statements.router, prefix="/v1")
app.include_router(memberships.router, prefix="/v1")
