"""Onboarding access token issuance and validation."""

from __future__ import annotations

import logging
import secrets
import string
from dataclasses import dataclass
from datetime import datetime, timedelta
from uuid import UUID

from onboarding_engine.models import OnboardingSession, utcnow
from onboarding_engine.services.session_store import OnboardingSessionStore
from onboarding_engine.services.state_machine import OnboardingStateMachine, OnboardingStatus

TOKEN_ALPHABET = string.ascii_letters + string.digits
MAX_TOKEN_ATTEMPTS = 10
MIN_TOKEN_LENGTH = 6

logger = logging.getLogger(__name__)


class TokenGenerationError(RuntimeError):
    """Could not find an unused token."""


@dataclass(frozen=True)
class IssuedToken:
    """A freshly issued token and when it stops working."""

    token: str
    expires_at: datetime


@dataclass(frozen=True)
class TokenValidation:
    """Outcome of validating an onboarding token.

    ``session`` is only populated for valid tokens.
    """

    is_valid: bool
    is_expired: bool
    session: OnboardingSession | None = None
    reason: str | None = None


def generate_token(length: int = 12) -> str:
    """Generate a random alphanumeric token from a CSPRNG."""
    if length < MIN_TOKEN_LENGTH:
        raise ValueError(f"Token length must be at least {MIN_TOKEN_LENGTH}")
    return "".join(secrets.choice(TOKEN_ALPHABET) for _ in range(length))


class TokenService:
    """Issues unique onboarding tokens and validates presented ones."""

    def __init__(
        self,
        store: OnboardingSessionStore,
        token_length: int = 12,
        default_ttl_hours: int = 168,
    ):
        self.store = store
        self.token_length = token_length
        self.default_ttl_hours = default_ttl_hours

    async def issue(
        self,
        employee_id: UUID,
        ttl_hours: int | None = None,
        now: datetime | None = None,
    ) -> IssuedToken:
        """Produce an unused token for an employee's new session."""
        hours = ttl_hours or self.default_ttl_hours
        if hours <= 0:
            raise ValueError("Token lifetime must be positive")

        for _ in range(MAX_TOKEN_ATTEMPTS):
            token = generate_token(self.token_length)
            if not await self.store.token_exists(token):
                return IssuedToken(
                    token=token,
                    expires_at=(now or utcnow()) + timedelta(hours=hours),
                )
        logger.error(
            "Token generation exhausted %d attempts for employee %s",
            MAX_TOKEN_ATTEMPTS,
            employee_id,
        )
        raise TokenGenerationError("Unable to generate unique token")

    async def validate(self, token: str | None, now: datetime | None = None) -> TokenValidation:
        """Check a presented token. Never raises; fails closed."""
        if not token or len(token) < MIN_TOKEN_LENGTH:
            return TokenValidation(is_valid=False, is_expired=False, reason="invalid_token")

        onboarding = await self.store.get_by_token(token)
        if onboarding is None or not secrets.compare_digest(onboarding.token, token):
            return TokenValidation(is_valid=False, is_expired=False, reason="invalid_token")

        now = now or utcnow()
        if onboarding.is_expired_at(now) or onboarding.status == OnboardingStatus.EXPIRED:
            return TokenValidation(is_valid=False, is_expired=True, reason="token_expired")

        if not OnboardingStateMachine.is_employee_editable(onboarding.status):
            return TokenValidation(is_valid=False, is_expired=False, reason="session_not_active")

        return TokenValidation(is_valid=True, is_expired=False, session=onboarding)
