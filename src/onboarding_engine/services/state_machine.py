"""Onboarding session state machine with transition validation."""

from __future__ import annotations

from enum import Enum
from typing import TYPE_CHECKING

from onboarding_engine.errors import OnboardingError

if TYPE_CHECKING:
    from onboarding_engine.models import OnboardingSession


class OnboardingStatus(str, Enum):
    """Onboarding session status values."""

    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    MANAGER_APPROVED = "manager_approved"
    REQUIRES_CHANGES = "requires_changes"
    APPROVED = "approved"
    REJECTED = "rejected"
    EXPIRED = "expired"
    CANCELLED = "cancelled"


class InvalidTransitionError(OnboardingError):
    """Raised when an invalid state transition is attempted."""

    code = "INVALID_TRANSITION"
    status_code = 400

    def __init__(self, from_status: str, to_status: str, reason: str | None = None):
        self.from_status = str(getattr(from_status, "value", from_status))
        self.to_status = str(getattr(to_status, "value", to_status))
        self.reason = reason
        msg = f"Invalid transition from '{self.from_status}' to '{self.to_status}'"
        if reason:
            msg += f": {reason}"
        super().__init__(msg)


class OnboardingStateMachine:
    """State machine for onboarding session status transitions.

    Allowed transitions:
    - in_progress → completed (employee submits)
    - in_progress → expired (sweep)
    - completed → manager_approved | rejected | requires_changes
    - requires_changes → completed (employee resubmits the same session)
    - manager_approved → approved | rejected
    - any non-terminal → cancelled
    """

    VALID_TRANSITIONS: dict[str, list[str]] = {
        OnboardingStatus.IN_PROGRESS: [
            OnboardingStatus.COMPLETED,
            OnboardingStatus.EXPIRED,
            OnboardingStatus.CANCELLED,
        ],
        OnboardingStatus.COMPLETED: [
            OnboardingStatus.MANAGER_APPROVED,
            OnboardingStatus.REJECTED,
            OnboardingStatus.REQUIRES_CHANGES,
            OnboardingStatus.CANCELLED,
        ],
        OnboardingStatus.REQUIRES_CHANGES: [
            OnboardingStatus.COMPLETED,
            OnboardingStatus.CANCELLED,
        ],
        OnboardingStatus.MANAGER_APPROVED: [
            OnboardingStatus.APPROVED,
            OnboardingStatus.REJECTED,
            OnboardingStatus.CANCELLED,
        ],
        OnboardingStatus.APPROVED: [],  # Terminal state
        OnboardingStatus.REJECTED: [],  # Terminal state
        OnboardingStatus.EXPIRED: [],  # Terminal state
        OnboardingStatus.CANCELLED: [],  # Terminal state
    }

    # Statuses in which the employee may edit wizard data
    EMPLOYEE_EDITABLE = {
        OnboardingStatus.IN_PROGRESS,
        OnboardingStatus.REQUIRES_CHANGES,
    }

    # Statuses awaiting a reviewer
    AWAITING_REVIEW = {
        OnboardingStatus.COMPLETED,
        OnboardingStatus.MANAGER_APPROVED,
    }

    TERMINAL = {
        OnboardingStatus.APPROVED,
        OnboardingStatus.REJECTED,
        OnboardingStatus.EXPIRED,
        OnboardingStatus.CANCELLED,
    }

    @classmethod
    def can_transition(cls, from_status: str, to_status: str) -> bool:
        """Check if a transition is valid."""
        allowed = cls.VALID_TRANSITIONS.get(from_status, [])
        return to_status in allowed

    @classmethod
    def validate_transition(cls, from_status: str, to_status: str) -> None:
        """Validate a transition, raising InvalidTransitionError if invalid."""
        if not cls.can_transition(from_status, to_status):
            reason = "session is in a terminal state" if cls.is_terminal(from_status) else None
            raise InvalidTransitionError(from_status, to_status, reason)

    @classmethod
    def is_terminal(cls, status: str) -> bool:
        """Check if no further transitions are possible."""
        return status in cls.TERMINAL

    @classmethod
    def is_employee_editable(cls, status: str) -> bool:
        """Check if the employee-facing wizard accepts input in this status."""
        return status in cls.EMPLOYEE_EDITABLE

    @classmethod
    def is_awaiting_review(cls, status: str) -> bool:
        """Check if a reviewer action is pending."""
        return status in cls.AWAITING_REVIEW

    @classmethod
    def get_next_statuses(cls, current_status: str) -> list[str]:
        """Get list of valid next statuses from current status."""
        return [str(s.value) for s in cls.VALID_TRANSITIONS.get(current_status, [])]

    @classmethod
    def transition(cls, session: OnboardingSession, to_status: str) -> str:
        """Move a session to a new status, returning the previous one.

        The session is left untouched when the transition is not allowed.
        """
        from_status = session.status
        cls.validate_transition(from_status, to_status)
        session.status = str(getattr(to_status, "value", to_status))
        return from_status
