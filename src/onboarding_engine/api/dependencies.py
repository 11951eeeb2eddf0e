"""FastAPI dependencies for dependency injection."""

from collections.abc import AsyncGenerator
from typing import Annotated

from fastapi import Depends, Header, Request
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from onboarding_engine.api.auth import decode_access_token
from onboarding_engine.config import Settings
from onboarding_engine.errors import AuthenticationError
from onboarding_engine.events import AsyncEventEmitter
from onboarding_engine.models import User
from onboarding_engine.services import (
    DocumentService,
    EmployeeService,
    OnboardingService,
    OnboardingSessionStore,
    Principal,
    ReviewService,
    Role,
    TokenService,
)
from onboarding_engine.services.email import EmailService

bearer_scheme = HTTPBearer(auto_error=False)


async def get_db_session(request: Request) -> AsyncGenerator[AsyncSession, None]:
    """Get database session dependency."""
    factory = request.app.state.session_factory
    async with factory() as session:
        try:
            yield session
        finally:
            await session.close()


def get_app_settings(request: Request) -> Settings:
    return request.app.state.settings


def get_emitter(request: Request) -> AsyncEventEmitter:
    return request.app.state.emitter


def get_email_service(request: Request) -> EmailService | None:
    return getattr(request.app.state, "email", None)


DbSession = Annotated[AsyncSession, Depends(get_db_session)]
AppSettings = Annotated[Settings, Depends(get_app_settings)]
Emitter = Annotated[AsyncEventEmitter, Depends(get_emitter)]


# ============================================================================
# Identity
# ============================================================================


async def _principal_from_bearer(db: AsyncSession, token: str, settings: Settings) -> Principal:
    user_id = decode_access_token(token, settings)
    if user_id is None:
        raise AuthenticationError("Invalid or expired token")

    result = await db.execute(
        select(User).where(User.id == user_id).options(selectinload(User.employee))
    )
    user = result.scalar_one_or_none()
    if user is None or not user.is_active:
        raise AuthenticationError("User not found or inactive")

    return Principal(
        role=Role(user.role),
        user_id=user.id,
        organization_id=user.organization_id,
        employee_id=user.employee.id if user.employee else None,
    )


async def _principal_from_onboarding_token(
    db: AsyncSession, token: str, settings: Settings
) -> Principal:
    validation = await TokenService(
        OnboardingSessionStore(db),
        token_length=settings.onboarding_token_length,
    ).validate(token)
    if validation.is_expired:
        raise AuthenticationError("Onboarding token has expired", code="TOKEN_EXPIRED")
    if not validation.is_valid or validation.session is None:
        raise AuthenticationError("Invalid onboarding token")
    return Principal.for_token(validation.session)


async def get_optional_principal(
    db: DbSession,
    settings: AppSettings,
    credentials: Annotated[HTTPAuthorizationCredentials | None, Depends(bearer_scheme)],
    x_onboarding_token: Annotated[str | None, Header()] = None,
) -> Principal | None:
    """Identity from a bearer JWT or an X-Onboarding-Token header, if any.

    A presented but invalid credential is an error, never anonymous access.
    """
    if credentials is not None:
        return await _principal_from_bearer(db, credentials.credentials, settings)
    if x_onboarding_token:
        return await _principal_from_onboarding_token(db, x_onboarding_token, settings)
    return None


async def get_current_principal(
    principal: Annotated[Principal | None, Depends(get_optional_principal)],
) -> Principal:
    if principal is None:
        raise AuthenticationError("Authentication required")
    return principal


OptionalPrincipal = Annotated[Principal | None, Depends(get_optional_principal)]
CurrentPrincipal = Annotated[Principal, Depends(get_current_principal)]


# ============================================================================
# Services
# ============================================================================


def get_onboarding_service(
    db: DbSession, settings: AppSettings, emitter: Emitter, request: Request
) -> OnboardingService:
    return OnboardingService(
        db, settings=settings, emitter=emitter, email=get_email_service(request)
    )


def get_review_service(db: DbSession, settings: AppSettings, emitter: Emitter) -> ReviewService:
    return ReviewService(db, settings=settings, emitter=emitter)


def get_employee_service(db: DbSession, emitter: Emitter) -> EmployeeService:
    return EmployeeService(db, emitter=emitter)


def get_document_service(db: DbSession, emitter: Emitter) -> DocumentService:
    return DocumentService(db, emitter=emitter)


Onboarding = Annotated[OnboardingService, Depends(get_onboarding_service)]
Reviews = Annotated[ReviewService, Depends(get_review_service)]
Employees = Annotated[EmployeeService, Depends(get_employee_service)]
Documents = Annotated[DocumentService, Depends(get_document_service)]
