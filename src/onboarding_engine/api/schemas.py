"""Pydantic schemas for API request/response models."""

from datetime import date, datetime
from typing import Any, Literal
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field


# ============================================================================
# Shared
# ============================================================================


class ErrorResponse(BaseModel):
    """Schema for error response."""

    detail: str
    code: str | None = None
    errors: list[dict[str, Any]] | None = None


class EmployeeSummary(BaseModel):
    """Employee fields shown alongside a session."""

    id: UUID
    employee_number: str
    first_name: str
    last_name: str
    email: str
    position: str | None = None
    department: str | None = None
    employment_status: str
    organization_id: UUID
    organization_name: str


# ============================================================================
# Onboarding session schemas
# ============================================================================


class OnboardingSessionResponse(BaseModel):
    """Schema for an onboarding session as seen by reviewers and its owner."""

    id: UUID
    employee_id: UUID
    status: str
    current_step: str | None = None
    language_preference: str
    form_data: dict[str, Any]
    expires_at: datetime
    completed_at: datetime | None = None
    created_at: datetime
    updated_at: datetime
    version: int
    employee: EmployeeSummary | None = None
    next_statuses: list[str] = Field(default_factory=list)


class OnboardingSessionListResponse(BaseModel):
    """Schema for a page of sessions."""

    items: list[OnboardingSessionResponse]
    total: int
    page: int
    limit: int
    total_pages: int
    has_next: bool
    has_prev: bool


class CreateSessionRequest(BaseModel):
    employee_id: UUID
    language_preference: Literal["en", "es"] | None = None
    expiration_hours: int | None = Field(default=None, gt=0, le=24 * 90)
    replace_active: bool = False
    send_email: bool = True


class CreateSessionResponse(BaseModel):
    session: OnboardingSessionResponse
    token: str
    onboarding_url: str
    expires_at: datetime
    email_sent: bool
    replaced_session_id: UUID | None = None


class ValidateTokenRequest(BaseModel):
    token: str


class ValidateTokenResponse(BaseModel):
    """Expired or invalid tokens carry no session data."""

    is_valid: bool
    is_expired: bool
    session: OnboardingSessionResponse | None = None


class StartOnboardingRequest(BaseModel):
    token: str
    employee_id: UUID
    language_preference: Literal["en", "es"] | None = None


class VersionedRequest(BaseModel):
    """Requests may carry the session version they were based on."""

    expected_version: int | None = Field(default=None, ge=1)


class UpdateProgressRequest(VersionedRequest):
    current_step: str | None = None
    language_preference: Literal["en", "es"] | None = None
    form_data: dict[str, dict[str, Any]] | None = None


class SubmitFormsRequest(VersionedRequest):
    i9_data: dict[str, Any] | None = None
    w4_data: dict[str, Any] | None = None
    language: Literal["en", "es"] = "en"
    submitted_at: datetime | None = None


class SubmitSignatureRequest(VersionedRequest):
    signatures: dict[str, str] = Field(min_length=1)
    signature_base64: str | None = None
    document_ids: list[str] = Field(default_factory=list)
    signed_at: datetime | None = None


class SubmitRequest(VersionedRequest):
    session_id: UUID
    form_data: dict[str, dict[str, Any]] | None = None


class ApproveRequest(VersionedRequest):
    comments: str | None = None


class RejectRequest(VersionedRequest):
    comments: str = Field(min_length=1)


class ReviewRequest(VersionedRequest):
    action: Literal["approve", "reject", "request_changes"]
    notes: str | None = None
    sections: list[str] = Field(default_factory=list)


class ExtendRequest(VersionedRequest):
    additional_hours: int = Field(gt=0, le=24 * 90)


class CancelRequest(VersionedRequest):
    reason: str | None = None


class OnboardingStatsResponse(BaseModel):
    organization_id: UUID
    total: int
    in_progress: int
    completed: int
    expired: int
    cancelled: int
    completion_rate: int


class ExpireSessionsResponse(BaseModel):
    expired: int


# ============================================================================
# Employee and document schemas
# ============================================================================


class TerminateEmployeeRequest(BaseModel):
    termination_date: date
    rehire_eligible: bool = True
    manager_rating: int | None = Field(default=None, ge=1, le=5)


class EmployeeResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    user_id: UUID
    employee_number: str
    hire_date: date
    position: str | None = None
    department: str | None = None
    employment_status: str
    termination_date: date | None = None
    rehire_eligible: bool
    manager_rating: int | None = None


class RegisterDocumentRequest(BaseModel):
    document_type: str
    document_name: str | None = None
    file_path: str | None = None
    file_size: int | None = Field(default=None, ge=0)
    mime_type: str | None = None


class SignDocumentRequest(BaseModel):
    signature_data: dict[str, Any] = Field(min_length=1)


class DocumentResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    employee_id: UUID
    document_type: str
    document_name: str | None = None
    file_path: str | None = None
    file_size: int | None = None
    mime_type: str | None = None
    is_signed: bool
    signed_at: datetime | None = None
    signature_data: dict[str, Any] | None = None
    version: int
    created_at: datetime
    updated_at: datetime
