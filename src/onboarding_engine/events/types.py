"""Domain event types for onboarding operations.

Events are immutable records of something that already happened and was
committed. They drive reviewer and employee notifications; a failure to
deliver one never affects the state change it describes.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, datetime
from uuid import UUID, uuid4

from onboarding_engine.models.base import utcnow


@dataclass(frozen=True)
class EventMetadata:
    """Metadata attached to every domain event."""

    event_id: UUID
    timestamp: datetime
    organization_id: UUID | None
    actor_id: UUID | None  # User that triggered, None for token holders and system
    actor_type: str  # 'user', 'token', 'system', 'scheduler'
    source_service: str

    @classmethod
    def create(
        cls,
        organization_id: UUID | None = None,
        actor_id: UUID | None = None,
        actor_type: str = "system",
        source_service: str = "onboarding",
    ) -> EventMetadata:
        """Create metadata with auto-generated fields."""
        return cls(
            event_id=uuid4(),
            timestamp=utcnow(),
            organization_id=organization_id,
            actor_id=actor_id,
            actor_type=actor_type,
            source_service=source_service,
        )


@dataclass(frozen=True)
class DomainEvent:
    """Base class for all domain events."""

    metadata: EventMetadata

    @property
    def event_type(self) -> str:
        """Event type name for routing."""
        return self.__class__.__name__


# =============================================================================
# Session Events
# =============================================================================


@dataclass(frozen=True)
class SessionEvent(DomainEvent):
    """An event about a single onboarding session."""

    session_id: UUID
    employee_id: UUID
    employee_user_id: UUID
    employee_name: str


@dataclass(frozen=True)
class OnboardingSessionCreated(SessionEvent):
    """A session and its access token were issued."""

    expires_at: datetime
    replaced_session_id: UUID | None = None


@dataclass(frozen=True)
class OnboardingSubmitted(SessionEvent):
    """The employee finished the wizard and submitted for review."""

    completed_at: datetime
    resubmission: bool = False


@dataclass(frozen=True)
class OnboardingSessionExtended(SessionEvent):
    """The expiry time of a session was pushed back."""

    expires_at: datetime


@dataclass(frozen=True)
class OnboardingCancelled(SessionEvent):
    """A reviewer cancelled a non-terminal session."""

    cancelled_by: UUID | None
    reason: str | None = None


@dataclass(frozen=True)
class OnboardingSessionsExpired(DomainEvent):
    """The expiry sweep flipped one or more sessions to expired."""

    count: int
    employee_id: UUID | None = None


# =============================================================================
# Review Events
# =============================================================================


@dataclass(frozen=True)
class ReviewEvent(SessionEvent):
    """An event produced by a reviewer decision."""

    reviewer_id: UUID


@dataclass(frozen=True)
class OnboardingManagerApproved(ReviewEvent):
    """First-stage approval; HR sign-off is next."""

    comments: str | None = None


@dataclass(frozen=True)
class OnboardingApproved(ReviewEvent):
    """Final HR approval. The employee is now active."""

    comments: str | None = None


@dataclass(frozen=True)
class OnboardingRejected(ReviewEvent):
    """The session was rejected; a new session is required."""

    comments: str = ""


@dataclass(frozen=True)
class OnboardingChangesRequested(ReviewEvent):
    """The employee must revise and resubmit."""

    notes: str = ""
    sections: tuple[str, ...] = field(default_factory=tuple)


# =============================================================================
# Employee and Document Events
# =============================================================================


@dataclass(frozen=True)
class EmployeeTerminated(DomainEvent):
    """An employee was terminated and their user deactivated."""

    employee_id: UUID
    user_id: UUID
    termination_date: date
    rehire_eligible: bool
    cancelled_sessions: int = 0


@dataclass(frozen=True)
class DocumentSigned(DomainEvent):
    """A document was signed. Signed documents never change again."""

    document_id: UUID
    employee_id: UUID
    document_type: str
    signed_at: datetime
