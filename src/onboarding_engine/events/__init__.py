"""Onboarding domain events and the emitter that publishes them."""

from onboarding_engine.events.emitter import AsyncEventEmitter
from onboarding_engine.events.types import (
    DocumentSigned,
    DomainEvent,
    EmployeeTerminated,
    EventMetadata,
    OnboardingApproved,
    OnboardingCancelled,
    OnboardingChangesRequested,
    OnboardingManagerApproved,
    OnboardingRejected,
    OnboardingSessionCreated,
    OnboardingSessionExtended,
    OnboardingSessionsExpired,
    OnboardingSubmitted,
    ReviewEvent,
    SessionEvent,
)

__all__ = [
    "AsyncEventEmitter",
    "DocumentSigned",
    "DomainEvent",
    "EmployeeTerminated",
    "EventMetadata",
    "OnboardingApproved",
    "OnboardingCancelled",
    "OnboardingChangesRequested",
    "OnboardingManagerApproved",
    "OnboardingRejected",
    "OnboardingSessionCreated",
    "OnboardingSessionExtended",
    "OnboardingSessionsExpired",
    "OnboardingSubmitted",
    "ReviewEvent",
    "SessionEvent",
]
