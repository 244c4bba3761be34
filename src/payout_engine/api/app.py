"""FastAPI application factory."""

import logging
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from payout_engine.api.routes import completions_router, health_router, payouts_router
from payout_engine.config import get_settings
from payout_engine.container import PayoutServices, build_services
from payout_engine.database import dispose_db, init_db
from payout_engine.errors import (
    DuplicateEarningError,
    InvalidTransitionError,
    LedgerError,
    NotFoundError,
    PayoutEngineError,
    PermissionDeniedError,
)
from payout_engine.scheduler import PayoutScheduler

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Build services and start the periodic jobs unless services were injected."""
    scheduler: PayoutScheduler | None = None
    owns_services = app.state.services is None
    if owns_services:
        settings = get_settings()
        _, session_factory = init_db()
        services = build_services(settings, session_factory)
        app.state.services = services
        if settings.scheduler_enabled:
            scheduler = PayoutScheduler(settings, services.settlement, services.auto_approval)
            scheduler.start()
    yield
    if scheduler is not None:
        scheduler.shutdown()
    if owns_services:
        app.state.services = None
        await dispose_db()


def _error(status_code: int, exc: Exception, code: str) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content={"success": False, "detail": str(exc), "code": code},
    )


def create_app(services: PayoutServices | None = None) -> FastAPI:
    """Create and configure the FastAPI application."""
    app = FastAPI(
        title="Payout Engine API",
        description="Job completion approval and bi-weekly employee payouts",
        version="0.1.0",
        lifespan=lifespan,
    )
    app.state.services = services

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.exception_handler(NotFoundError)
    async def not_found_handler(request: Request, exc: NotFoundError) -> JSONResponse:
        return _error(status.HTTP_404_NOT_FOUND, exc, "NOT_FOUND")

    @app.exception_handler(PermissionDeniedError)
    async def permission_handler(request: Request, exc: PermissionDeniedError) -> JSONResponse:
        return _error(status.HTTP_403_FORBIDDEN, exc, "FORBIDDEN")

    @app.exception_handler(InvalidTransitionError)
    async def transition_handler(request: Request, exc: InvalidTransitionError) -> JSONResponse:
        return _error(status.HTTP_409_CONFLICT, exc, "INVALID_TRANSITION")

    @app.exception_handler(DuplicateEarningError)
    async def duplicate_handler(request: Request, exc: DuplicateEarningError) -> JSONResponse:
        return _error(status.HTTP_409_CONFLICT, exc, "DUPLICATE_EARNING")

    @app.exception_handler(LedgerError)
    async def ledger_handler(request: Request, exc: LedgerError) -> JSONResponse:
        return _error(status.HTTP_400_BAD_REQUEST, exc, "LEDGER_ERROR")

    @app.exception_handler(PayoutEngineError)
    async def engine_handler(request: Request, exc: PayoutEngineError) -> JSONResponse:
        return _error(status.HTTP_400_BAD_REQUEST, exc, "PAYOUT_ERROR")

    @app.exception_handler(ValueError)
    async def value_handler(request: Request, exc: ValueError) -> JSONResponse:
        return _error(status.HTTP_400_BAD_REQUEST, exc, "VALIDATION_ERROR")

    @app.exception_handler(Exception)
    async def general_exception_handler(request: Request, exc: Exception) -> JSONResponse:
        """Handle unexpected exceptions."""
        logger.exception("Unhandled error on %s %s", request.method, request.url.path)
        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content={
                "success": False,
                "detail": "An unexpected error occurred",
                "code": "INTERNAL_ERROR",
            },
        )

    app.include_router(health_router)
    app.include_router(payouts_router, prefix="/api/v1")
    app.include_router(completions_router, prefix="/api/v1")

    return app


# Default app instance for uvicorn
app = create_app()
