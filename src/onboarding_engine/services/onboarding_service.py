"""Onboarding session lifecycle: issue, employee self-service, and housekeeping.

Every mutating operation authorizes first, validates input before touching
the session, commits, and only then publishes its events.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Any
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from onboarding_engine.config import Settings, get_settings
from onboarding_engine.errors import (
    ActiveSessionExistsError,
    InvalidTokenError,
    NotFoundError,
    SessionExpiredError,
    SessionNotActiveError,
    TokenMismatchError,
    ValidationError,
)
from onboarding_engine.events import (
    AsyncEventEmitter,
    DomainEvent,
    EventMetadata,
    OnboardingCancelled,
    OnboardingSessionCreated,
    OnboardingSessionExtended,
    OnboardingSessionsExpired,
    OnboardingSubmitted,
)
from onboarding_engine.models import (
    Employee,
    EmploymentStatus,
    OnboardingSession,
    User,
    utcnow,
)
from onboarding_engine.services.access_control import AccessPolicy, Action, Principal, Target
from onboarding_engine.services.email import EmailService
from onboarding_engine.services.form_data import (
    EMPLOYEE_WRITABLE,
    Section,
    get_section,
    merge_section,
    parse_section,
)
from onboarding_engine.services.session_store import (
    OnboardingSessionStore,
    OrganizationStats,
    Page,
    SessionFilters,
)
from onboarding_engine.services.state_machine import OnboardingStateMachine, OnboardingStatus
from onboarding_engine.services.tokens import TokenService, TokenValidation

logger = logging.getLogger(__name__)

FINAL_STEP = "completed"


@dataclass(frozen=True)
class CreatedSession:
    """Result of issuing a session."""

    session: OnboardingSession
    onboarding_url: str
    email_sent: bool
    replaced_session_id: UUID | None = None


def event_metadata(principal: Principal | None, organization_id: UUID | None) -> EventMetadata:
    """Metadata describing who caused an event."""
    if principal is None:
        return EventMetadata.create(organization_id=organization_id, actor_type="system")
    return EventMetadata.create(
        organization_id=organization_id,
        actor_id=principal.user_id,
        actor_type="token" if principal.via_token else "user",
    )


def session_event_fields(onboarding: OnboardingSession) -> dict[str, Any]:
    """Fields shared by every event about one session."""
    user = onboarding.employee.user
    return {
        "session_id": onboarding.id,
        "employee_id": onboarding.employee_id,
        "employee_user_id": user.id,
        "employee_name": user.full_name,
    }


class OnboardingService:
    """Issues sessions and runs the employee-facing wizard steps."""

    def __init__(
        self,
        session: AsyncSession,
        settings: Settings | None = None,
        emitter: AsyncEventEmitter | None = None,
        email: EmailService | None = None,
        policy: AccessPolicy | None = None,
    ):
        self.session = session
        self.settings = settings or get_settings()
        self.emitter = emitter or AsyncEventEmitter()
        self.email = email
        self.policy = policy or AccessPolicy()
        self.store = OnboardingSessionStore(session)
        self.tokens = TokenService(
            self.store,
            token_length=self.settings.onboarding_token_length,
            default_ttl_hours=self.settings.onboarding_ttl_hours,
        )

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    async def _commit_and_emit(self, events: list[DomainEvent]) -> None:
        await self.session.commit()
        if events:
            await self.emitter.emit_all(events)

    async def _get_employee(self, employee_id: UUID) -> Employee:
        result = await self.session.execute(
            select(Employee)
            .where(Employee.id == employee_id)
            .options(selectinload(Employee.user).selectinload(User.organization))
        )
        employee = result.scalar_one_or_none()
        if employee is None:
            raise NotFoundError("Employee not found")
        return employee

    async def _load_authorized(
        self, session_id: UUID, principal: Principal | None, action: Action
    ) -> OnboardingSession:
        onboarding = await self.store.get(session_id)
        self.policy.authorize(principal, action, Target.of_session(onboarding))
        return onboarding

    @staticmethod
    def _ensure_editable(onboarding: OnboardingSession, now: datetime) -> None:
        """Employee input is accepted only on open, unexpired sessions."""
        if onboarding.status == OnboardingStatus.EXPIRED or onboarding.is_expired_at(now):
            raise SessionExpiredError("Onboarding session has expired")
        if not OnboardingStateMachine.is_employee_editable(onboarding.status):
            raise SessionNotActiveError(
                f"Onboarding session is {onboarding.status} and no longer accepts changes"
            )

    @staticmethod
    def _merge_wizard_sections(
        form_data: dict[str, Any],
        sections: dict[str, dict[str, Any]],
        actor: str,
        now: datetime,
    ) -> dict[str, Any]:
        merged = form_data
        for name, payload in sections.items():
            section = parse_section(name)
            if section not in EMPLOYEE_WRITABLE:
                raise ValidationError(
                    f"Section '{name}' cannot be written through progress updates",
                    errors=[{"loc": ["form_data", name], "msg": "section not writable"}],
                )
            if not isinstance(payload, dict):
                raise ValidationError(
                    f"Section '{name}' must be an object",
                    errors=[{"loc": ["form_data", name], "msg": "must be an object"}],
                )
            merged = merge_section(merged, section, payload, actor=actor, at=now)
        return merged

    async def _complete(
        self,
        onboarding: OnboardingSession,
        principal: Principal | None,
        form_data: dict[str, Any],
        now: datetime,
        expected_version: int | None,
    ) -> OnboardingSession:
        """Submit the session for review and publish the event."""
        if get_section(form_data, Section.SIGNATURE) is None:
            raise ValidationError(
                "A signature is required before submitting",
                errors=[{"loc": ["form_data", "signature"], "msg": "field required"}],
            )
        previous = onboarding.status
        await self.store.transition(
            onboarding,
            OnboardingStatus.COMPLETED,
            expected_version=expected_version,
            form_data=form_data,
            completed_at=now,
            current_step=FINAL_STEP,
        )
        event = OnboardingSubmitted(
            metadata=event_metadata(principal, onboarding.employee.organization_id),
            completed_at=now,
            resubmission=previous == OnboardingStatus.REQUIRES_CHANGES,
            **session_event_fields(onboarding),
        )
        await self._commit_and_emit([event])
        logger.info("Onboarding session %s submitted for review", onboarding.id)
        return onboarding

    # ------------------------------------------------------------------
    # Issue
    # ------------------------------------------------------------------

    async def create_session(
        self,
        principal: Principal | None,
        employee_id: UUID,
        language_preference: str | None = None,
        expiration_hours: int | None = None,
        replace_active: bool = False,
        send_email: bool = True,
    ) -> CreatedSession:
        """Issue a new session and token for an employee.

        An employee may hold one active session. An existing one is only
        superseded (cancelled) when ``replace_active`` is set.
        """
        employee = await self._get_employee(employee_id)
        self.policy.authorize(principal, Action.CREATE_SESSION, Target.of_employee(employee))

        if employee.employment_status == EmploymentStatus.TERMINATED:
            raise ValidationError("Cannot start onboarding for a terminated employee")
        if expiration_hours is not None and expiration_hours <= 0:
            raise ValidationError(
                "expiration_hours must be positive",
                errors=[{"loc": ["body", "expiration_hours"], "msg": "must be positive"}],
            )

        now = utcnow()
        organization_id = employee.organization_id
        events: list[DomainEvent] = []

        swept = await self.store.mark_expired_sessions(now=now, employee_id=employee.id)
        if swept:
            events.append(
                OnboardingSessionsExpired(
                    metadata=event_metadata(principal, organization_id),
                    count=swept,
                    employee_id=employee.id,
                )
            )

        replaced_id: UUID | None = None
        active = await self.store.find_active_for_employee(employee.id, now=now)
        if active is not None:
            if not replace_active:
                raise ActiveSessionExistsError(
                    "Employee already has an active onboarding session"
                )
            await self.store.transition(active, OnboardingStatus.CANCELLED)
            replaced_id = active.id
            events.append(
                OnboardingCancelled(
                    metadata=event_metadata(principal, organization_id),
                    cancelled_by=principal.user_id if principal else None,
                    reason="superseded by a new session",
                    **session_event_fields(active),
                )
            )

        issued = await self.tokens.issue(employee.id, ttl_hours=expiration_hours, now=now)
        try:
            onboarding = await self.store.create(
                employee_id=employee.id,
                token=issued.token,
                expires_at=issued.expires_at,
                language_preference=language_preference or employee.user.language_preference,
            )
        except IntegrityError as e:
            await self.session.rollback()
            raise ActiveSessionExistsError(
                "Employee already has an active onboarding session"
            ) from e

        events.insert(
            0,
            OnboardingSessionCreated(
                metadata=event_metadata(principal, organization_id),
                expires_at=onboarding.expires_at,
                replaced_session_id=replaced_id,
                **session_event_fields(onboarding),
            ),
        )
        await self._commit_and_emit(events)
        logger.info(
            "Issued onboarding session %s for employee %s (expires %s)",
            onboarding.id,
            employee.id,
            onboarding.expires_at.isoformat(),
        )

        url = self.settings.onboarding_url(onboarding.token)
        email_sent = False
        if send_email and self.email is not None:
            email_sent = await self._send_invitation(self.email, employee, onboarding, url)

        return CreatedSession(
            session=onboarding,
            onboarding_url=url,
            email_sent=email_sent,
            replaced_session_id=replaced_id,
        )

    async def _send_invitation(
        self, email: EmailService, employee: Employee, onboarding: OnboardingSession, url: str
    ) -> bool:
        user = employee.user
        try:
            return await email.send_onboarding_invitation(
                to_email=user.email,
                employee_name=user.full_name,
                position=employee.position,
                organization_name=user.organization.name,
                onboarding_url=url,
                token=onboarding.token,
                locale=onboarding.language_preference,
            )
        except Exception:
            logger.exception("Onboarding invitation for session %s failed", onboarding.id)
            return False

    # ------------------------------------------------------------------
    # Token holder entry points
    # ------------------------------------------------------------------

    async def validate_token(self, token: str | None) -> TokenValidation:
        return await self.tokens.validate(token)

    async def start(
        self, token: str, employee_id: UUID, language_preference: str | None = None
    ) -> OnboardingSession:
        """Open the wizard for a token holder, optionally switching language."""
        validation = await self.tokens.validate(token)
        if not validation.is_valid or validation.session is None:
            if validation.is_expired:
                raise InvalidTokenError("Onboarding token has expired", is_expired=True)
            raise InvalidTokenError("Invalid onboarding token")

        onboarding = validation.session
        if onboarding.employee_id != employee_id:
            raise TokenMismatchError("Token does not belong to this employee")

        if language_preference and language_preference != onboarding.language_preference:
            await self.store.update(onboarding, language_preference=language_preference)
            await self.session.commit()
        return onboarding

    # ------------------------------------------------------------------
    # Employee wizard
    # ------------------------------------------------------------------

    async def get_session(self, session_id: UUID, principal: Principal | None) -> OnboardingSession:
        return await self._load_authorized(session_id, principal, Action.VIEW_SESSION)

    async def update_progress(
        self,
        session_id: UUID,
        principal: Principal | None,
        current_step: str | None = None,
        language_preference: str | None = None,
        form_data: dict[str, dict[str, Any]] | None = None,
        expected_version: int | None = None,
    ) -> OnboardingSession:
        """Record wizard progress.

        ``form_data`` maps section names to partial payloads; each is merged
        into its namespace, never replacing the stored document.
        """
        onboarding = await self._load_authorized(session_id, principal, Action.UPDATE_PROGRESS)
        now = utcnow()
        self._ensure_editable(onboarding, now)

        fields: dict[str, Any] = {}
        if form_data:
            actor = principal.actor if principal else "system"
            fields["form_data"] = self._merge_wizard_sections(
                onboarding.form_data, form_data, actor, now
            )
        if current_step is not None:
            fields["current_step"] = current_step
        if language_preference is not None:
            fields["language_preference"] = language_preference

        await self.store.update(onboarding, expected_version=expected_version, **fields)
        await self.session.commit()
        return onboarding

    async def submit_forms(
        self,
        session_id: UUID,
        principal: Principal | None,
        forms: dict[str, Any],
        expected_version: int | None = None,
    ) -> OnboardingSession:
        """Store the I-9/W-4 data and move on to the signature step."""
        onboarding = await self._load_authorized(session_id, principal, Action.SUBMIT_FORMS)
        now = utcnow()
        self._ensure_editable(onboarding, now)

        payload = {**forms}
        payload.setdefault("submitted_at", now.isoformat())
        await self.store.apply_section(
            onboarding,
            Section.FORMS,
            payload,
            expected_version=expected_version,
            actor=principal.actor if principal else None,
            current_step="signature",
        )
        await self.session.commit()
        return onboarding

    async def submit_signature(
        self,
        session_id: UUID,
        principal: Principal | None,
        signature: dict[str, Any],
        ip_address: str | None = None,
        user_agent: str | None = None,
        expected_version: int | None = None,
    ) -> OnboardingSession:
        """Record the signature. As the final wizard step this submits the session."""
        onboarding = await self._load_authorized(session_id, principal, Action.SUBMIT_SIGNATURE)
        now = utcnow()
        self._ensure_editable(onboarding, now)

        if not signature.get("signatures"):
            raise ValidationError(
                "At least one signature is required",
                errors=[{"loc": ["body", "signatures"], "msg": "must not be empty"}],
            )
        payload = {
            **signature,
            "signed_at": signature.get("signed_at") or now.isoformat(),
            "ip_address": ip_address,
            "user_agent": user_agent,
        }
        form_data = merge_section(
            onboarding.form_data,
            Section.SIGNATURE,
            payload,
            actor=principal.actor if principal else None,
            at=now,
        )
        return await self._complete(onboarding, principal, form_data, now, expected_version)

    async def submit(
        self,
        session_id: UUID,
        principal: Principal | None,
        form_data: dict[str, dict[str, Any]] | None = None,
        expected_version: int | None = None,
    ) -> OnboardingSession:
        """Apply a last progress patch and submit for review."""
        onboarding = await self._load_authorized(session_id, principal, Action.SUBMIT)
        now = utcnow()
        self._ensure_editable(onboarding, now)

        merged = onboarding.form_data or {}
        if form_data:
            actor = principal.actor if principal else "system"
            merged = self._merge_wizard_sections(merged, form_data, actor, now)
        return await self._complete(onboarding, principal, merged, now, expected_version)

    # ------------------------------------------------------------------
    # Reviewer housekeeping
    # ------------------------------------------------------------------

    async def extend(
        self,
        session_id: UUID,
        principal: Principal | None,
        additional_hours: int,
        expected_version: int | None = None,
    ) -> OnboardingSession:
        """Push the expiry time back. Never shortens it."""
        onboarding = await self._load_authorized(session_id, principal, Action.EXTEND)
        if additional_hours <= 0:
            raise ValidationError(
                "additional_hours must be positive",
                errors=[{"loc": ["body", "additional_hours"], "msg": "must be positive"}],
            )
        if OnboardingStateMachine.is_terminal(onboarding.status):
            raise SessionNotActiveError(
                f"Cannot extend a session that is {onboarding.status}"
            )

        now = utcnow()
        expires_at = max(onboarding.expires_at, now) + timedelta(hours=additional_hours)
        await self.store.update(
            onboarding, expected_version=expected_version, expires_at=expires_at
        )
        event = OnboardingSessionExtended(
            metadata=event_metadata(principal, onboarding.employee.organization_id),
            expires_at=expires_at,
            **session_event_fields(onboarding),
        )
        await self._commit_and_emit([event])
        return onboarding

    async def cancel(
        self,
        session_id: UUID,
        principal: Principal | None,
        reason: str | None = None,
        expected_version: int | None = None,
    ) -> OnboardingSession:
        """Cancel a non-terminal session. Irreversible."""
        onboarding = await self._load_authorized(session_id, principal, Action.CANCEL)
        await self.store.transition(
            onboarding, OnboardingStatus.CANCELLED, expected_version=expected_version
        )
        event = OnboardingCancelled(
            metadata=event_metadata(principal, onboarding.employee.organization_id),
            cancelled_by=principal.user_id if principal else None,
            reason=reason,
            **session_event_fields(onboarding),
        )
        await self._commit_and_emit([event])
        logger.info("Onboarding session %s cancelled", onboarding.id)
        return onboarding

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    async def list_sessions(
        self,
        principal: Principal | None,
        filters: SessionFilters | None = None,
        page: int | None = None,
        limit: int | None = None,
    ) -> Page[OnboardingSession]:
        """List sessions visible to the caller."""
        principal = self.policy.require(principal, Action.LIST_SESSIONS)
        filters = filters or SessionFilters()
        organization_id = self.policy.organization_filter(principal)
        if organization_id is not None:
            filters.organization_id = organization_id
        return await self.store.list(filters, page=page, limit=limit)

    async def pending_reviews(
        self,
        principal: Principal | None,
        page: int | None = None,
        limit: int | None = None,
    ) -> Page[OnboardingSession]:
        """Sessions waiting on the caller's review stage."""
        principal = self.policy.require(principal, Action.LIST_SESSIONS)
        if principal.is_hr_admin:
            statuses = (OnboardingStatus.COMPLETED.value, OnboardingStatus.MANAGER_APPROVED.value)
        else:
            statuses = (OnboardingStatus.COMPLETED.value,)
        filters = SessionFilters(
            statuses=statuses,
            organization_id=self.policy.organization_filter(principal),
        )
        return await self.store.list(filters, page=page, limit=limit)

    async def sessions_for_employee(
        self, principal: Principal | None, employee_id: UUID
    ) -> list[OnboardingSession]:
        employee = await self._get_employee(employee_id)
        self.policy.authorize(principal, Action.VIEW_SESSION, Target.of_employee(employee))
        return await self.store.list_for_employee(employee.id)

    async def stats(
        self, principal: Principal | None, organization_id: UUID | None = None
    ) -> OrganizationStats:
        """Onboarding counts for one organization."""
        if principal is not None and organization_id is None:
            organization_id = principal.organization_id
        if organization_id is None:
            raise ValidationError("organization_id is required")
        self.policy.authorize(
            principal, Action.VIEW_STATS, Target(organization_id=organization_id)
        )
        return await self.store.organization_stats(organization_id)

    async def expiring_soon(
        self, principal: Principal | None, hours: int = 24
    ) -> list[OnboardingSession]:
        principal = self.policy.require(principal, Action.LIST_SESSIONS)
        if hours <= 0:
            raise ValidationError("hours must be positive")
        return await self.store.find_expiring_soon(
            hours=hours, organization_id=self.policy.organization_filter(principal)
        )

    async def sweep_expired(
        self, principal: Principal | None = None, now: datetime | None = None
    ) -> int:
        """Flip overdue in-progress sessions to expired.

        Callers without a principal are trusted operators (CLI, scheduler).
        """
        if principal is not None:
            self.policy.authorize(principal, Action.EXPIRE_SESSIONS)
        count = await self.store.mark_expired_sessions(now=now)
        events: list[DomainEvent] = []
        if count:
            events.append(
                OnboardingSessionsExpired(
                    metadata=event_metadata(principal, None),
                    count=count,
                )
            )
        await self._commit_and_emit(events)
        logger.info("Expiry sweep flipped %d onboarding session(s)", count)
        return count
