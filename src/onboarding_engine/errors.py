"""Domain error taxonomy.

Every error carries a stable ``code`` and the HTTP status the API layer maps it
to, so clients can tell field errors, state conflicts and auth failures apart.
"""

from __future__ import annotations

from typing import Any


class OnboardingError(Exception):
    """Base class for all domain errors."""

    code = "ONBOARDING_ERROR"
    status_code = 400

    def __init__(self, message: str, *, code: str | None = None):
        self.message = message
        if code is not None:
            self.code = code
        super().__init__(message)

    def to_dict(self) -> dict[str, Any]:
        """Serialize for an error response body."""
        return {"detail": self.message, "code": self.code}


class ValidationError(OnboardingError):
    """Malformed or missing input."""

    code = "VALIDATION_ERROR"
    status_code = 400

    def __init__(self, message: str, errors: list[dict[str, Any]] | None = None):
        super().__init__(message)
        self.errors = errors or []

    def to_dict(self) -> dict[str, Any]:
        data = super().to_dict()
        if self.errors:
            data["errors"] = self.errors
        return data


class AuthenticationError(OnboardingError):
    """No usable identity was presented."""

    code = "AUTHENTICATION_REQUIRED"
    status_code = 401


class AuthorizationError(OnboardingError):
    """Identity is known but lacks the required scope."""

    code = "FORBIDDEN"
    status_code = 403


class NotFoundError(OnboardingError):
    """Unknown id or token."""

    code = "NOT_FOUND"
    status_code = 404


class SessionNotActiveError(OnboardingError):
    """The session is not accepting employee input."""

    code = "SESSION_NOT_ACTIVE"
    status_code = 400


class SessionExpiredError(OnboardingError):
    """The session's expiry time has passed."""

    code = "SESSION_EXPIRED"
    status_code = 400


class TokenMismatchError(OnboardingError):
    """Token does not belong to the claimed employee or session."""

    code = "TOKEN_EMPLOYEE_MISMATCH"
    status_code = 400


class ConflictError(OnboardingError):
    """The write conflicts with current state."""

    code = "CONFLICT"
    status_code = 409


class ActiveSessionExistsError(ConflictError):
    """Employee already has an active onboarding session."""

    code = "ACTIVE_SESSION_EXISTS"


class StaleWriteError(ConflictError):
    """The record changed since the caller read it."""

    code = "STALE_WRITE"

    def __init__(self, message: str, expected: int | None = None, actual: int | None = None):
        super().__init__(message)
        self.expected = expected
        self.actual = actual

    def to_dict(self) -> dict[str, Any]:
        data = super().to_dict()
        if self.actual is not None:
            data["current_version"] = self.actual
        return data


class DocumentAlreadySignedError(ConflictError):
    """Signed documents are immutable."""

    code = "DOCUMENT_ALREADY_SIGNED"


class InvalidTokenError(OnboardingError):
    """Presented onboarding token is unknown or no longer usable."""

    code = "INVALID_TOKEN"
    status_code = 400

    def __init__(self, message: str, *, is_expired: bool = False):
        super().__init__(message, code="TOKEN_EXPIRED" if is_expired else None)
        self.is_expired = is_expired

    def to_dict(self) -> dict[str, Any]:
        data = super().to_dict()
        data["is_expired"] = self.is_expired
        return data
