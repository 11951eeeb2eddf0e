"""Onboarding session API endpoints."""

from datetime import datetime
from typing import Annotated
from uuid import UUID

from fastapi import APIRouter, Path, Query, Request, status

from onboarding_engine.api.dependencies import CurrentPrincipal, Onboarding, Reviews
from onboarding_engine.api.schemas import (
    ApproveRequest,
    CancelRequest,
    CreateSessionRequest,
    CreateSessionResponse,
    EmployeeSummary,
    ErrorResponse,
    ExpireSessionsResponse,
    ExtendRequest,
    OnboardingSessionListResponse,
    OnboardingSessionResponse,
    OnboardingStatsResponse,
    RejectRequest,
    ReviewRequest,
    StartOnboardingRequest,
    SubmitFormsRequest,
    SubmitRequest,
    SubmitSignatureRequest,
    UpdateProgressRequest,
    ValidateTokenRequest,
    ValidateTokenResponse,
)
from onboarding_engine.models import OnboardingSession
from onboarding_engine.services import OnboardingStateMachine, Page, ReviewAction, SessionFilters
from onboarding_engine.services.state_machine import OnboardingStatus

router = APIRouter(prefix="/onboarding", tags=["onboarding"])

SessionId = Annotated[UUID, Path(description="Onboarding session ID")]

ERROR_RESPONSES = {
    400: {"model": ErrorResponse},
    401: {"model": ErrorResponse},
    403: {"model": ErrorResponse},
    404: {"model": ErrorResponse},
    409: {"model": ErrorResponse},
}


def session_response(onboarding: OnboardingSession) -> OnboardingSessionResponse:
    """Serialize a session with its employee summary."""
    employee = onboarding.employee
    user = employee.user
    return OnboardingSessionResponse(
        id=onboarding.id,
        employee_id=onboarding.employee_id,
        status=onboarding.status,
        current_step=onboarding.current_step,
        language_preference=onboarding.language_preference,
        form_data=onboarding.form_data or {},
        expires_at=onboarding.expires_at,
        completed_at=onboarding.completed_at,
        created_at=onboarding.created_at,
        updated_at=onboarding.updated_at,
        version=onboarding.version,
        employee=EmployeeSummary(
            id=employee.id,
            employee_number=employee.employee_number,
            first_name=user.first_name,
            last_name=user.last_name,
            email=user.email,
            position=employee.position,
            department=employee.department,
            employment_status=employee.employment_status,
            organization_id=user.organization_id,
            organization_name=user.organization.name,
        ),
        next_statuses=OnboardingStateMachine.get_next_statuses(onboarding.status),
    )


def page_response(page: Page[OnboardingSession]) -> OnboardingSessionListResponse:
    return OnboardingSessionListResponse(
        items=[session_response(s) for s in page.items],
        total=page.total,
        page=page.page,
        limit=page.limit,
        total_pages=page.total_pages,
        has_next=page.has_next,
        has_prev=page.has_prev,
    )


# ============================================================================
# Token holder endpoints
# ============================================================================


@router.post("/validate-token", response_model=ValidateTokenResponse)
async def validate_token(
    service: Onboarding,
    payload: ValidateTokenRequest,
) -> ValidateTokenResponse:
    """Check an onboarding token. Always 200; the body carries the verdict."""
    validation = await service.validate_token(payload.token)
    return ValidateTokenResponse(
        is_valid=validation.is_valid,
        is_expired=validation.is_expired,
        session=session_response(validation.session) if validation.session else None,
    )


@router.post("/start", response_model=OnboardingSessionResponse, responses=ERROR_RESPONSES)
async def start_onboarding(
    service: Onboarding,
    payload: StartOnboardingRequest,
) -> OnboardingSessionResponse:
    """Open the wizard for the employee the token was issued to."""
    onboarding = await service.start(
        payload.token, payload.employee_id, payload.language_preference
    )
    return session_response(onboarding)


@router.get("/session/{session_id}", response_model=OnboardingSessionResponse, responses=ERROR_RESPONSES)
async def get_session(
    service: Onboarding,
    principal: CurrentPrincipal,
    session_id: SessionId,
) -> OnboardingSessionResponse:
    """Get onboarding session progress."""
    return session_response(await service.get_session(session_id, principal))


@router.put("/session/{session_id}", response_model=OnboardingSessionResponse, responses=ERROR_RESPONSES)
async def update_progress(
    service: Onboarding,
    principal: CurrentPrincipal,
    session_id: SessionId,
    payload: UpdateProgressRequest,
) -> OnboardingSessionResponse:
    """Save wizard progress. Form data sections are merged, not replaced."""
    onboarding = await service.update_progress(
        session_id,
        principal,
        current_step=payload.current_step,
        language_preference=payload.language_preference,
        form_data=payload.form_data,
        expected_version=payload.expected_version,
    )
    return session_response(onboarding)


@router.post("/session/{session_id}/forms", response_model=OnboardingSessionResponse, responses=ERROR_RESPONSES)
async def submit_forms(
    service: Onboarding,
    principal: CurrentPrincipal,
    session_id: SessionId,
    payload: SubmitFormsRequest,
) -> OnboardingSessionResponse:
    """Store the I-9 and W-4 data."""
    forms = payload.model_dump(mode="json", exclude={"expected_version"}, exclude_none=True)
    onboarding = await service.submit_forms(
        session_id, principal, forms, expected_version=payload.expected_version
    )
    return session_response(onboarding)


@router.post("/session/{session_id}/signature", response_model=OnboardingSessionResponse, responses=ERROR_RESPONSES)
async def submit_signature(
    request: Request,
    service: Onboarding,
    principal: CurrentPrincipal,
    session_id: SessionId,
    payload: SubmitSignatureRequest,
) -> OnboardingSessionResponse:
    """Sign and submit the onboarding for review."""
    signature = payload.model_dump(mode="json", exclude={"expected_version"}, exclude_none=True)
    onboarding = await service.submit_signature(
        session_id,
        principal,
        signature,
        ip_address=request.client.host if request.client else None,
        user_agent=request.headers.get("user-agent"),
        expected_version=payload.expected_version,
    )
    return session_response(onboarding)


@router.post("/submit", response_model=OnboardingSessionResponse, responses=ERROR_RESPONSES)
async def submit_onboarding(
    service: Onboarding,
    principal: CurrentPrincipal,
    payload: SubmitRequest,
) -> OnboardingSessionResponse:
    """Submit a signed session, optionally with a last progress patch."""
    onboarding = await service.submit(
        payload.session_id,
        principal,
        form_data=payload.form_data,
        expected_version=payload.expected_version,
    )
    return session_response(onboarding)


# ============================================================================
# Review endpoints
# ============================================================================


@router.post("/session/{session_id}/approve", response_model=OnboardingSessionResponse, responses=ERROR_RESPONSES)
async def approve_session(
    reviews: Reviews,
    principal: CurrentPrincipal,
    session_id: SessionId,
    payload: ApproveRequest,
) -> OnboardingSessionResponse:
    """Manager approval of a completed session, or HR final approval."""
    onboarding = await reviews.approve(
        session_id, principal, payload.comments, expected_version=payload.expected_version
    )
    return session_response(onboarding)


@router.post("/session/{session_id}/reject", response_model=OnboardingSessionResponse, responses=ERROR_RESPONSES)
async def reject_session(
    reviews: Reviews,
    principal: CurrentPrincipal,
    session_id: SessionId,
    payload: RejectRequest,
) -> OnboardingSessionResponse:
    onboarding = await reviews.reject(
        session_id, principal, payload.comments, expected_version=payload.expected_version
    )
    return session_response(onboarding)


@router.post("/session/{session_id}/review", response_model=OnboardingSessionResponse, responses=ERROR_RESPONSES)
async def review_session(
    reviews: Reviews,
    principal: CurrentPrincipal,
    session_id: SessionId,
    payload: ReviewRequest,
) -> OnboardingSessionResponse:
    """Approve, reject or request changes in one endpoint."""
    onboarding = await reviews.review(
        session_id,
        principal,
        ReviewAction(payload.action),
        notes=payload.notes,
        sections=payload.sections,
        expected_version=payload.expected_version,
    )
    return session_response(onboarding)


@router.post("/session/{session_id}/extend", response_model=OnboardingSessionResponse, responses=ERROR_RESPONSES)
async def extend_session(
    service: Onboarding,
    principal: CurrentPrincipal,
    session_id: SessionId,
    payload: ExtendRequest,
) -> OnboardingSessionResponse:
    onboarding = await service.extend(
        session_id, principal, payload.additional_hours, expected_version=payload.expected_version
    )
    return session_response(onboarding)


@router.post("/session/{session_id}/cancel", response_model=OnboardingSessionResponse, responses=ERROR_RESPONSES)
async def cancel_session(
    service: Onboarding,
    principal: CurrentPrincipal,
    session_id: SessionId,
    payload: CancelRequest | None = None,
) -> OnboardingSessionResponse:
    payload = payload or CancelRequest()
    onboarding = await service.cancel(
        session_id, principal, reason=payload.reason, expected_version=payload.expected_version
    )
    return session_response(onboarding)


# ============================================================================
# Session management
# ============================================================================


@router.post(
    "/create-session",
    response_model=CreateSessionResponse,
    status_code=status.HTTP_201_CREATED,
    responses=ERROR_RESPONSES,
)
async def create_session(
    service: Onboarding,
    principal: CurrentPrincipal,
    payload: CreateSessionRequest,
) -> CreateSessionResponse:
    """Issue an onboarding session and token for an employee."""
    created = await service.create_session(
        principal,
        payload.employee_id,
        language_preference=payload.language_preference,
        expiration_hours=payload.expiration_hours,
        replace_active=payload.replace_active,
        send_email=payload.send_email,
    )
    return CreateSessionResponse(
        session=session_response(created.session),
        token=created.session.token,
        onboarding_url=created.onboarding_url,
        expires_at=created.session.expires_at,
        email_sent=created.email_sent,
        replaced_session_id=created.replaced_session_id,
    )


@router.get("/sessions", response_model=OnboardingSessionListResponse, responses=ERROR_RESPONSES)
async def list_sessions(
    service: Onboarding,
    principal: CurrentPrincipal,
    employee_id: UUID | None = None,
    status_filter: Annotated[OnboardingStatus | None, Query(alias="status")] = None,
    organization_id: UUID | None = None,
    expired: bool | None = None,
    created_after: datetime | None = None,
    created_before: datetime | None = None,
    page: Annotated[int, Query(ge=1)] = 1,
    limit: Annotated[int, Query(ge=1, le=100)] = 10,
) -> OnboardingSessionListResponse:
    """List sessions. Non-HR callers only see their own organization."""
    filters = SessionFilters(
        employee_id=employee_id,
        status=status_filter.value if status_filter else None,
        organization_id=organization_id,
        expired=expired,
        created_after=created_after,
        created_before=created_before,
    )
    return page_response(await service.list_sessions(principal, filters, page, limit))


@router.get("/pending-reviews", response_model=OnboardingSessionListResponse, responses=ERROR_RESPONSES)
async def pending_reviews(
    service: Onboarding,
    principal: CurrentPrincipal,
    page: Annotated[int, Query(ge=1)] = 1,
    limit: Annotated[int, Query(ge=1, le=100)] = 10,
) -> OnboardingSessionListResponse:
    return page_response(await service.pending_reviews(principal, page, limit))


@router.get(
    "/employee/{employee_id}/sessions",
    response_model=list[OnboardingSessionResponse],
    responses=ERROR_RESPONSES,
)
async def employee_sessions(
    service: Onboarding,
    principal: CurrentPrincipal,
    employee_id: UUID,
) -> list[OnboardingSessionResponse]:
    sessions = await service.sessions_for_employee(principal, employee_id)
    return [session_response(s) for s in sessions]


@router.get("/stats", response_model=OnboardingStatsResponse, responses=ERROR_RESPONSES)
async def onboarding_stats(
    service: Onboarding,
    principal: CurrentPrincipal,
    organization_id: UUID | None = None,
) -> OnboardingStatsResponse:
    organization_id = organization_id or principal.organization_id
    stats = await service.stats(principal, organization_id)
    return OnboardingStatsResponse(
        organization_id=organization_id,
        total=stats.total,
        in_progress=stats.in_progress,
        completed=stats.completed,
        expired=stats.expired,
        cancelled=stats.cancelled,
        completion_rate=stats.completion_rate,
    )


@router.get("/expiring", response_model=list[OnboardingSessionResponse], responses=ERROR_RESPONSES)
async def expiring_sessions(
    service: Onboarding,
    principal: CurrentPrincipal,
    hours: Annotated[int, Query(ge=1, le=24 * 30)] = 24,
) -> list[OnboardingSessionResponse]:
    return [session_response(s) for s in await service.expiring_soon(principal, hours)]


@router.post("/expire-sessions", response_model=ExpireSessionsResponse, responses=ERROR_RESPONSES)
async def expire_sessions(
    service: Onboarding,
    principal: CurrentPrincipal,
) -> ExpireSessionsResponse:
    """Run the expiry sweep now."""
    return ExpireSessionsResponse(expired=await service.sweep_expired(principal))
