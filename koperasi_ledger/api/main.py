"""FastAPI application factory"""

import logging

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from prometheus_client import CONTENT_TYPE_LATEST, generate_latest
from sqlalchemy.exc import SQLAlchemyError
from starlette.responses import Response

from koperasi_ledger.api.middleware import MetricsMiddleware, RequestIDMiddleware
from koperasi_ledger.api.v1 import loans, reports, savings, transactions
from koperasi_ledger.config import settings
from koperasi_ledger.domain.exceptions import (
    ConflictError,
    DomainException,
    InvalidAmountError,
    InvalidTransactionError,
    NotFoundError,
    PreconditionError,
    StorageError,
)
from koperasi_ledger.infrastructure.observability.logging import setup_logging

# Setup structured logging
setup_logging(settings.log_level)

logger = logging.getLogger(__name__)


def _error(status_code: int, exc: Exception) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content={"detail": str(exc), "error": exc.__class__.__name__},
    )


def status_for(exc: DomainException) -> int:
    """HTTP status for a domain exception"""
    if isinstance(exc, NotFoundError):
        return 404
    if isinstance(exc, (InvalidTransactionError, InvalidAmountError)):
        return 422
    if isinstance(exc, PreconditionError):
        return 400
    if isinstance(exc, ConflictError):
        return 409
    if isinstance(exc, StorageError):
        return 503
    return 500


def register_exception_handlers(app: FastAPI) -> None:
    @app.exception_handler(DomainException)
    async def domain_exception_handler(request: Request, exc: DomainException):
        status_code = status_for(exc)
        extra = {"request_id": getattr(request.state, "request_id", None), "error": exc.__class__.__name__}
        if status_code >= 500:
            logger.error(f"Request failed: {exc}", extra=extra)
        else:
            logger.info(f"Request refused: {exc}", extra=extra)
        return _error(status_code, exc)

    @app.exception_handler(SQLAlchemyError)
    async def storage_exception_handler(request: Request, exc: SQLAlchemyError):
        logger.error(
            f"Storage error: {exc.__class__.__name__}",
            extra={"request_id": getattr(request.state, "request_id", None)},
        )
        return _error(503, StorageError("storage unavailable"))

    @app.exception_handler(Exception)
    async def unhandled_exception_handler(request: Request, exc: Exception):
        logger.exception(
            "Unexpected error",
            extra={"request_id": getattr(request.state, "request_id", None)},
        )
        return JSONResponse(status_code=500, content={"detail": "Internal server error"})


def create_app() -> FastAPI:
    """Create and configure FastAPI application"""
    app = FastAPI(
        title="Koperasi Ledger",
        description="Transaction processing and financial reporting for a cooperative back office",
        version="0.1.0",
        docs_url="/docs",
        redoc_url="/redoc",
    )

    # Add middleware (order matters: last added = first executed)
    app.add_middleware(MetricsMiddleware)
    app.add_middleware(RequestIDMiddleware)

    register_exception_handlers(app)

    # Health check endpoint
    @app.get("/health")
    def health_check():
        return {"status": "ok", "service": settings.service_name}

    # Prometheus metrics endpoint
    @app.get("/metrics")
    def metrics():
        return Response(content=generate_latest(), media_type=CONTENT_TYPE_LATEST)

    # Register API routers
    app.include_router(savings.router, prefix="/v1", tags=["savings"])
    app.include_router(loans.router, prefix="/v1", tags=["loans"])
    app.include_router(transactions.router, prefix="/v1", tags=["transactions"])
    app.include_router(reports.router, prefix="/v1", tags=["reports"])

    return app


app = create_app()
