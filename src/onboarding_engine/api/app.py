"""FastAPI application factory."""

from __future__ import annotations

import logging
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from onboarding_engine import __version__
from onboarding_engine.api.routes import employees_router, health_router, onboarding_router
from onboarding_engine.config import Settings, get_settings
from onboarding_engine.database import dispose_db, init_db
from onboarding_engine.errors import OnboardingError
from onboarding_engine.events import AsyncEventEmitter
from onboarding_engine.services.email import EmailService
from onboarding_engine.services.notifications import (
    LogNotifier,
    NotificationDispatcher,
    Notifier,
    RecipientDirectory,
    WebhookNotifier,
)

logger = logging.getLogger(__name__)


def build_emitter(
    settings: Settings,
    session_factory: async_sessionmaker[AsyncSession],
    notifier: Notifier | None = None,
) -> AsyncEventEmitter:
    """Event emitter with the notification dispatcher subscribed."""
    if notifier is None:
        if settings.notification_webhook_url:
            notifier = WebhookNotifier(settings.notification_webhook_url)
        else:
            notifier = LogNotifier()

    emitter = AsyncEventEmitter()
    NotificationDispatcher(notifier, RecipientDirectory(session_factory)).register(emitter)
    return emitter


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Application lifespan handler."""
    logger.info("Onboarding engine starting")
    yield
    if app.state.owns_database:
        await dispose_db()
    logger.info("Onboarding engine stopped")


def create_app(
    settings: Settings | None = None,
    session_factory: async_sessionmaker[AsyncSession] | None = None,
    notifier: Notifier | None = None,
) -> FastAPI:
    """Create and configure the FastAPI application.

    When no session factory is passed the process-wide engine from
    ``init_db`` is used and disposed on shutdown.
    """
    settings = settings or get_settings()
    owns_database = session_factory is None
    if session_factory is None:
        _, session_factory = init_db()

    app = FastAPI(
        title="Onboarding Engine API",
        description="Employee onboarding sessions, review and approval",
        version=__version__,
        lifespan=lifespan,
    )
    app.state.settings = settings
    app.state.session_factory = session_factory
    app.state.owns_database = owns_database
    app.state.emitter = build_emitter(settings, session_factory, notifier)
    app.state.email = EmailService(settings)

    # CORS middleware
    app.add_middleware(
        CORSMiddleware,
        allow_origins=[settings.frontend_url],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # Exception handlers
    @app.exception_handler(OnboardingError)
    async def onboarding_error_handler(request: Request, exc: OnboardingError) -> JSONResponse:
        """Map domain errors to their status and code."""
        return JSONResponse(status_code=exc.status_code, content=exc.to_dict())

    @app.exception_handler(RequestValidationError)
    async def request_validation_handler(
        request: Request, exc: RequestValidationError
    ) -> JSONResponse:
        return JSONResponse(
            status_code=status.HTTP_400_BAD_REQUEST,
            content={
                "detail": "Request validation failed",
                "code": "VALIDATION_ERROR",
                "errors": [
                    {"loc": list(err.get("loc", ())), "msg": err.get("msg", "")}
                    for err in exc.errors()
                ],
            },
        )

    @app.exception_handler(Exception)
    async def general_exception_handler(request: Request, exc: Exception) -> JSONResponse:
        """Handle unexpected exceptions."""
        logger.exception("Unhandled error on %s %s", request.method, request.url.path)
        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content={
                "detail": "An unexpected error occurred",
                "code": "INTERNAL_ERROR",
            },
        )

    # Include routers
    app.include_router(health_router)
    app.include_router(onboarding_router, prefix="/api/v1")
    app.include_router(employees_router, prefix="/api/v1")

    return app
