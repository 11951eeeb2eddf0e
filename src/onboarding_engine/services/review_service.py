"""Reviewer decisions on submitted onboarding sessions.

Approval is two-staged. A manager (or HR admin) approves a ``completed``
session, moving it to ``manager_approved``; an HR admin then gives the final
approval, which also activates the employee's account in the same
transaction. Rejection is terminal; a change request hands the session back
to the employee.
"""

from __future__ import annotations

import logging
from datetime import timedelta
from enum import Enum
from typing import Any
from uuid import UUID

from sqlalchemy.ext.asyncio import AsyncSession

from onboarding_engine.config import Settings, get_settings
from onboarding_engine.database import transaction
from onboarding_engine.errors import AuthorizationError, ConflictError, ValidationError
from onboarding_engine.events import (
    AsyncEventEmitter,
    DomainEvent,
    OnboardingApproved,
    OnboardingChangesRequested,
    OnboardingManagerApproved,
    OnboardingRejected,
)
from onboarding_engine.models import EmploymentStatus, OnboardingSession, utcnow
from onboarding_engine.services.access_control import AccessPolicy, Action, Principal, Target
from onboarding_engine.services.form_data import (
    EMPLOYEE_WRITABLE,
    Section,
    merge_section,
    parse_section,
)
from onboarding_engine.services.onboarding_service import event_metadata, session_event_fields
from onboarding_engine.services.session_store import OnboardingSessionStore
from onboarding_engine.services.state_machine import (
    InvalidTransitionError,
    OnboardingStatus,
)

logger = logging.getLogger(__name__)

# Sections a reviewer may ask the employee to revisit
REVISABLE_SECTIONS = EMPLOYEE_WRITABLE | {Section.FORMS, Section.SIGNATURE}


class ReviewAction(str, Enum):
    APPROVE = "approve"
    REJECT = "reject"
    REQUEST_CHANGES = "request_changes"


class ReviewService:
    """Approve, reject or send back submitted sessions."""

    def __init__(
        self,
        session: AsyncSession,
        settings: Settings | None = None,
        emitter: AsyncEventEmitter | None = None,
        policy: AccessPolicy | None = None,
    ):
        self.session = session
        self.settings = settings or get_settings()
        self.emitter = emitter or AsyncEventEmitter()
        self.policy = policy or AccessPolicy()
        self.store = OnboardingSessionStore(session)

    async def _load_authorized(
        self, session_id: UUID, principal: Principal | None, action: Action
    ) -> tuple[OnboardingSession, Principal]:
        onboarding = await self.store.get(session_id)
        reviewer = self.policy.require(principal, action, Target.of_session(onboarding))
        return onboarding, reviewer

    async def _publish(self, event: DomainEvent) -> None:
        await self.emitter.emit(event)

    # ------------------------------------------------------------------
    # Approval
    # ------------------------------------------------------------------

    async def approve(
        self,
        session_id: UUID,
        principal: Principal | None,
        comments: str | None = None,
        expected_version: int | None = None,
    ) -> OnboardingSession:
        """Advance the session one approval stage."""
        onboarding, principal = await self._load_authorized(session_id, principal, Action.APPROVE)

        if onboarding.status == OnboardingStatus.COMPLETED:
            return await self._manager_approve(onboarding, principal, comments, expected_version)
        if onboarding.status == OnboardingStatus.MANAGER_APPROVED:
            return await self._final_approve(onboarding, principal, comments, expected_version)
        raise InvalidTransitionError(
            onboarding.status,
            OnboardingStatus.MANAGER_APPROVED,
            "session is not awaiting approval",
        )

    async def _manager_approve(
        self,
        onboarding: OnboardingSession,
        principal: Principal,
        comments: str | None,
        expected_version: int | None,
    ) -> OnboardingSession:
        now = utcnow()
        form_data = merge_section(
            onboarding.form_data,
            Section.MANAGER_APPROVAL,
            {
                "approved_by": str(principal.user_id),
                "approved_at": now.isoformat(),
                "approver_role": principal.role.value,
                "comments": comments,
            },
            actor=principal.actor,
            at=now,
        )
        await self.store.transition(
            onboarding,
            OnboardingStatus.MANAGER_APPROVED,
            expected_version=expected_version,
            form_data=form_data,
        )
        await self.session.commit()
        logger.info("Onboarding session %s approved by manager %s", onboarding.id, principal.user_id)

        await self._publish(
            OnboardingManagerApproved(
                metadata=event_metadata(principal, onboarding.employee.organization_id),
                reviewer_id=principal.user_id,
                comments=comments,
                **session_event_fields(onboarding),
            )
        )
        return onboarding

    async def _final_approve(
        self,
        onboarding: OnboardingSession,
        principal: Principal,
        comments: str | None,
        expected_version: int | None,
    ) -> OnboardingSession:
        if not principal.is_hr_admin:
            raise AuthorizationError("Final approval requires an HR administrator")

        employee = onboarding.employee
        if employee.employment_status == EmploymentStatus.TERMINATED:
            raise ConflictError("Cannot approve onboarding for a terminated employee")

        now = utcnow()
        form_data = merge_section(
            onboarding.form_data,
            Section.HR_APPROVAL,
            {
                "approved_by": str(principal.user_id),
                "approved_at": now.isoformat(),
                "approver_role": principal.role.value,
                "comments": comments,
            },
            actor=principal.actor,
            at=now,
        )

        async with transaction(self.session):
            await self.store.transition(
                onboarding,
                OnboardingStatus.APPROVED,
                expected_version=expected_version,
                form_data=form_data,
            )
            if employee.employment_status == EmploymentStatus.ONBOARDING:
                employee.employment_status = EmploymentStatus.ACTIVE.value
            employee.user.is_active = True
            await self.session.flush()

        logger.info(
            "Onboarding session %s approved by HR %s; employee %s activated",
            onboarding.id,
            principal.user_id,
            employee.id,
        )
        await self._publish(
            OnboardingApproved(
                metadata=event_metadata(principal, employee.organization_id),
                reviewer_id=principal.user_id,
                comments=comments,
                **session_event_fields(onboarding),
            )
        )
        return onboarding

    # ------------------------------------------------------------------
    # Rejection and change requests
    # ------------------------------------------------------------------

    async def reject(
        self,
        session_id: UUID,
        principal: Principal | None,
        comments: str,
        expected_version: int | None = None,
    ) -> OnboardingSession:
        """Reject a submitted session. Terminal."""
        if not comments or not comments.strip():
            raise ValidationError(
                "Rejection comments are required",
                errors=[{"loc": ["body", "comments"], "msg": "must not be empty"}],
            )
        onboarding, principal = await self._load_authorized(session_id, principal, Action.REJECT)

        now = utcnow()
        form_data = merge_section(
            onboarding.form_data,
            Section.REJECTION,
            {
                "rejected_by": str(principal.user_id),
                "rejected_at": now.isoformat(),
                "rejector_role": principal.role.value,
                "comments": comments.strip(),
            },
            actor=principal.actor,
            at=now,
        )
        await self.store.transition(
            onboarding,
            OnboardingStatus.REJECTED,
            expected_version=expected_version,
            form_data=form_data,
        )
        await self.session.commit()
        logger.info("Onboarding session %s rejected by %s", onboarding.id, principal.user_id)

        await self._publish(
            OnboardingRejected(
                metadata=event_metadata(principal, onboarding.employee.organization_id),
                reviewer_id=principal.user_id,
                comments=comments.strip(),
                **session_event_fields(onboarding),
            )
        )
        return onboarding

    async def request_changes(
        self,
        session_id: UUID,
        principal: Principal | None,
        notes: str = "",
        sections: list[str] | None = None,
        expected_version: int | None = None,
    ) -> OnboardingSession:
        """Send a completed session back to the employee.

        The expiry time is pushed out so the employee has a full token
        lifetime to respond.
        """
        requested: list[str] = []
        for name in sections or []:
            section = parse_section(name)
            if section not in REVISABLE_SECTIONS:
                raise ValidationError(
                    f"Section '{name}' cannot be sent back to the employee",
                    errors=[{"loc": ["body", "sections"], "msg": f"'{name}' not revisable"}],
                )
            requested.append(section.value)

        onboarding, principal = await self._load_authorized(
            session_id, principal, Action.REQUEST_CHANGES
        )

        now = utcnow()
        form_data = merge_section(
            onboarding.form_data,
            Section.CHANGE_REQUEST,
            {
                "requested_by": str(principal.user_id),
                "requested_at": now.isoformat(),
                "notes": notes,
                "sections": requested,
            },
            actor=principal.actor,
            at=now,
        )
        fields: dict[str, Any] = {"form_data": form_data}
        reopen_until = now + timedelta(hours=self.settings.onboarding_ttl_hours)
        if onboarding.expires_at < reopen_until:
            fields["expires_at"] = reopen_until

        await self.store.transition(
            onboarding,
            OnboardingStatus.REQUIRES_CHANGES,
            expected_version=expected_version,
            **fields,
        )
        await self.session.commit()
        logger.info("Changes requested on onboarding session %s", onboarding.id)

        await self._publish(
            OnboardingChangesRequested(
                metadata=event_metadata(principal, onboarding.employee.organization_id),
                reviewer_id=principal.user_id,
                notes=notes,
                sections=tuple(requested),
                **session_event_fields(onboarding),
            )
        )
        return onboarding

    async def review(
        self,
        session_id: UUID,
        principal: Principal | None,
        action: ReviewAction,
        notes: str | None = None,
        sections: list[str] | None = None,
        expected_version: int | None = None,
    ) -> OnboardingSession:
        """Single entry point dispatching to approve, reject or request_changes."""
        if action == ReviewAction.APPROVE:
            return await self.approve(session_id, principal, notes, expected_version)
        if action == ReviewAction.REJECT:
            return await self.reject(session_id, principal, notes or "", expected_version)
        return await self.request_changes(
            session_id, principal, notes or "", sections, expected_version
        )
