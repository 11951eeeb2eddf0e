"""ORM models."""

from onboarding_engine.models.base import Base, utcnow
from onboarding_engine.models.document import Document, DocumentType
from onboarding_engine.models.employee import Employee, EmploymentStatus
from onboarding_engine.models.onboarding import OnboardingSession
from onboarding_engine.models.organization import (
    LanguageCode,
    Organization,
    OrganizationType,
    User,
    UserRole,
)

__all__ = [
    "Base",
    "Document",
    "DocumentType",
    "Employee",
    "EmploymentStatus",
    "LanguageCode",
    "OnboardingSession",
    "Organization",
    "OrganizationType",
    "User",
    "UserRole",
    "utcnow",
]
