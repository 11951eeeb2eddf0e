"""Onboarding engine services."""

from onboarding_engine.services.access_control import AccessPolicy, Action, Principal, Role, Scope
from onboarding_engine.services.document_service import DocumentService
from onboarding_engine.services.employee_service import EmployeeService
from onboarding_engine.services.onboarding_service import CreatedSession, OnboardingService
from onboarding_engine.services.review_service import ReviewAction, ReviewService
from onboarding_engine.services.session_store import OnboardingSessionStore, Page, SessionFilters
from onboarding_engine.services.state_machine import (
    InvalidTransitionError,
    OnboardingStateMachine,
    OnboardingStatus,
)
from onboarding_engine.services.tokens import TokenService, TokenValidation

__all__ = [
    "AccessPolicy",
    "Action",
    "CreatedSession",
    "DocumentService",
    "EmployeeService",
    "InvalidTransitionError",
    "OnboardingService",
    "OnboardingSessionStore",
    "OnboardingStateMachine",
    "OnboardingStatus",
    "Page",
    "Principal",
    "ReviewAction",
    "ReviewService",
    "Role",
    "Scope",
    "SessionFilters",
    "TokenService",
    "TokenValidation",
]
