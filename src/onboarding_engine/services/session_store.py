"""Persistence for onboarding sessions."""

from __future__ import annotations

import math
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Any, Generic, TypeVar
from uuid import UUID

from sqlalchemy import Select, func, or_, select, update
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload
from sqlalchemy.orm.exc import StaleDataError

from onboarding_engine.errors import NotFoundError, StaleWriteError
from onboarding_engine.models import Employee, OnboardingSession, User, utcnow
from onboarding_engine.services.form_data import Section, merge_section
from onboarding_engine.services.state_machine import OnboardingStateMachine, OnboardingStatus

T = TypeVar("T")

DEFAULT_PAGE_SIZE = 10
MAX_PAGE_SIZE = 100

# Columns a caller may set through update()
UPDATABLE_FIELDS = frozenset(
    {
        "current_step",
        "form_data",
        "status",
        "language_preference",
        "expires_at",
        "completed_at",
    }
)


@dataclass
class SessionFilters:
    """Filter dimensions for listing sessions."""

    employee_id: UUID | None = None
    status: str | None = None
    statuses: tuple[str, ...] | None = None
    organization_id: UUID | None = None
    expired: bool | None = None
    created_after: datetime | None = None
    created_before: datetime | None = None


@dataclass
class Page(Generic[T]):
    """One page of an offset-paginated listing."""

    items: list[T]
    total: int
    page: int
    limit: int
    total_pages: int = field(init=False)
    has_next: bool = field(init=False)
    has_prev: bool = field(init=False)

    def __post_init__(self) -> None:
        self.total_pages = math.ceil(self.total / self.limit) if self.limit else 0
        self.has_next = self.page < self.total_pages
        self.has_prev = self.page > 1


@dataclass(frozen=True)
class OrganizationStats:
    """Onboarding counts for one organization."""

    total: int
    in_progress: int
    completed: int
    expired: int
    cancelled: int

    @property
    def completion_rate(self) -> int:
        """Completed sessions as a rounded percentage of all sessions."""
        if self.total == 0:
            return 0
        return round(self.completed / self.total * 100)


def pagination_params(page: int | None, limit: int | None) -> tuple[int, int]:
    """Normalize page/limit to page >= 1 and 1 <= limit <= 100."""
    page_num = max(1, page or 1)
    limit_num = min(MAX_PAGE_SIZE, max(1, limit or DEFAULT_PAGE_SIZE))
    return page_num, limit_num


def _with_employee(query: Select[Any]) -> Select[Any]:
    # populate_existing: bulk updates (the expiry sweep) bypass the identity map
    return query.options(
        selectinload(OnboardingSession.employee)
        .selectinload(Employee.user)
        .selectinload(User.organization)
    ).execution_options(populate_existing=True)


class OnboardingSessionStore:
    """CRUD and query operations on onboarding sessions.

    Every write goes through SQLAlchemy's version counter, so two writers
    that read the same version cannot both succeed.
    """

    def __init__(self, session: AsyncSession):
        self.session = session

    # ------------------------------------------------------------------
    # Create / read
    # ------------------------------------------------------------------

    async def create(
        self,
        employee_id: UUID,
        token: str,
        expires_at: datetime,
        language_preference: str = "en",
        current_step: str | None = "language_selection",
        form_data: dict[str, Any] | None = None,
    ) -> OnboardingSession:
        """Insert a new in-progress session and flush it."""
        onboarding = OnboardingSession(
            employee_id=employee_id,
            token=token,
            expires_at=expires_at,
            language_preference=language_preference,
            current_step=current_step,
            form_data=form_data or {},
            status=OnboardingStatus.IN_PROGRESS.value,
        )
        self.session.add(onboarding)
        await self.session.flush()
        result = await self.session.execute(
            _with_employee(select(OnboardingSession).where(OnboardingSession.id == onboarding.id))
        )
        return result.scalar_one()

    async def find(self, session_id: UUID) -> OnboardingSession | None:
        """Find a session by id, with employee, user and organization loaded."""
        result = await self.session.execute(
            _with_employee(select(OnboardingSession).where(OnboardingSession.id == session_id))
        )
        return result.scalar_one_or_none()

    async def get(self, session_id: UUID) -> OnboardingSession:
        """Get a session by id or raise NotFoundError."""
        onboarding = await self.find(session_id)
        if onboarding is None:
            raise NotFoundError("Onboarding session not found")
        return onboarding

    async def get_by_token(self, token: str) -> OnboardingSession | None:
        """Find a session by its access token."""
        result = await self.session.execute(
            _with_employee(select(OnboardingSession).where(OnboardingSession.token == token))
        )
        return result.scalar_one_or_none()

    async def list_for_employee(self, employee_id: UUID) -> list[OnboardingSession]:
        """All sessions of one employee, newest first."""
        result = await self.session.execute(
            _with_employee(
                select(OnboardingSession)
                .where(OnboardingSession.employee_id == employee_id)
                .order_by(OnboardingSession.created_at.desc())
            )
        )
        return list(result.scalars().all())

    async def find_active_for_employee(
        self, employee_id: UUID, now: datetime | None = None
    ) -> OnboardingSession | None:
        """The employee's unexpired in-progress session, if any."""
        now = now or utcnow()
        result = await self.session.execute(
            _with_employee(
                select(OnboardingSession)
                .where(
                    OnboardingSession.employee_id == employee_id,
                    OnboardingSession.status == OnboardingStatus.IN_PROGRESS.value,
                    OnboardingSession.expires_at >= now,
                )
                .order_by(OnboardingSession.created_at.desc())
                .limit(1)
            )
        )
        return result.scalar_one_or_none()

    async def token_exists(self, token: str, exclude_id: UUID | None = None) -> bool:
        """Check whether any session already uses ``token``."""
        query = select(func.count()).select_from(OnboardingSession).where(
            OnboardingSession.token == token
        )
        if exclude_id is not None:
            query = query.where(OnboardingSession.id != exclude_id)
        return (await self.session.scalar(query) or 0) > 0

    # ------------------------------------------------------------------
    # Update / delete
    # ------------------------------------------------------------------

    async def update(
        self,
        onboarding: OnboardingSession,
        expected_version: int | None = None,
        **fields: Any,
    ) -> OnboardingSession:
        """Overwrite the given fields and flush.

        ``form_data``, when given, replaces the stored document; use
        ``apply_section`` to merge a namespaced patch instead.
        """
        unknown = set(fields) - UPDATABLE_FIELDS
        if unknown:
            raise ValueError(f"Cannot update fields: {sorted(unknown)}")

        self._check_version(onboarding, expected_version)
        for key, value in fields.items():
            setattr(onboarding, key, value)

        try:
            await self.session.flush()
        except StaleDataError as e:
            raise StaleWriteError(
                "Onboarding session was modified concurrently",
                expected=expected_version,
            ) from e
        return onboarding

    async def apply_section(
        self,
        onboarding: OnboardingSession,
        section: Section,
        payload: dict[str, Any],
        expected_version: int | None = None,
        actor: str | None = None,
        **fields: Any,
    ) -> OnboardingSession:
        """Merge a validated section patch into form_data, plus other fields."""
        form_data = merge_section(onboarding.form_data, section, payload, actor=actor)
        return await self.update(
            onboarding, expected_version=expected_version, form_data=form_data, **fields
        )

    async def transition(
        self,
        onboarding: OnboardingSession,
        to_status: OnboardingStatus,
        expected_version: int | None = None,
        **fields: Any,
    ) -> OnboardingSession:
        """Move to ``to_status`` and write ``fields`` in the same flush.

        Raises InvalidTransitionError, leaving the session untouched, when the
        move is not in the transition table.
        """
        OnboardingStateMachine.validate_transition(onboarding.status, to_status)
        return await self.update(
            onboarding, expected_version=expected_version, status=to_status.value, **fields
        )

    async def delete(self, onboarding: OnboardingSession) -> None:
        """Delete a session."""
        await self.session.delete(onboarding)
        await self.session.flush()

    @staticmethod
    def _check_version(onboarding: OnboardingSession, expected_version: int | None) -> None:
        if expected_version is not None and expected_version != onboarding.version:
            raise StaleWriteError(
                "Onboarding session has changed since it was read",
                expected=expected_version,
                actual=onboarding.version,
            )

    # ------------------------------------------------------------------
    # Listing and reporting
    # ------------------------------------------------------------------

    async def list(
        self,
        filters: SessionFilters | None = None,
        page: int | None = None,
        limit: int | None = None,
        now: datetime | None = None,
    ) -> Page[OnboardingSession]:
        """List sessions matching filters, newest first."""
        filters = filters or SessionFilters()
        page_num, limit_num = pagination_params(page, limit)
        now = now or utcnow()

        query = select(OnboardingSession)
        if filters.employee_id:
            query = query.where(OnboardingSession.employee_id == filters.employee_id)
        if filters.status:
            query = query.where(OnboardingSession.status == filters.status)
        if filters.statuses:
            query = query.where(OnboardingSession.status.in_(filters.statuses))
        if filters.organization_id:
            query = (
                query.join(Employee, OnboardingSession.employee_id == Employee.id)
                .join(User, Employee.user_id == User.id)
                .where(User.organization_id == filters.organization_id)
            )
        if filters.expired is True:
            query = query.where(OnboardingSession.expires_at < now)
        elif filters.expired is False:
            query = query.where(OnboardingSession.expires_at >= now)
        if filters.created_after:
            query = query.where(OnboardingSession.created_at >= filters.created_after)
        if filters.created_before:
            query = query.where(OnboardingSession.created_at <= filters.created_before)

        count_query = select(func.count()).select_from(query.subquery())
        total = await self.session.scalar(count_query) or 0

        query = (
            _with_employee(query)
            .order_by(OnboardingSession.created_at.desc())
            .offset((page_num - 1) * limit_num)
            .limit(limit_num)
        )
        result = await self.session.execute(query)
        return Page(
            items=list(result.scalars().all()),
            total=total,
            page=page_num,
            limit=limit_num,
        )

    async def mark_expired_sessions(
        self, now: datetime | None = None, employee_id: UUID | None = None
    ) -> int:
        """Flip in-progress sessions past their expiry to expired.

        Idempotent: already-expired or terminal sessions never match.
        Returns the number of sessions flipped.
        """
        now = now or utcnow()
        stmt = (
            update(OnboardingSession)
            .where(
                OnboardingSession.status == OnboardingStatus.IN_PROGRESS.value,
                OnboardingSession.expires_at < now,
            )
            .values(
                status=OnboardingStatus.EXPIRED.value,
                version=OnboardingSession.version + 1,
                updated_at=now,
            )
            .execution_options(synchronize_session=False)
        )
        if employee_id is not None:
            stmt = stmt.where(OnboardingSession.employee_id == employee_id)
        result = await self.session.execute(stmt)
        return result.rowcount or 0

    async def cancel_open_sessions(self, employee_id: UUID, now: datetime | None = None) -> int:
        """Cancel every non-terminal session of an employee.

        Returns the number of sessions cancelled.
        """
        now = now or utcnow()
        terminal = [s.value for s in OnboardingStateMachine.TERMINAL]
        result = await self.session.execute(
            update(OnboardingSession)
            .where(
                OnboardingSession.employee_id == employee_id,
                OnboardingSession.status.not_in(terminal),
            )
            .values(
                status=OnboardingStatus.CANCELLED.value,
                version=OnboardingSession.version + 1,
                updated_at=now,
            )
            .execution_options(synchronize_session=False)
        )
        return result.rowcount or 0

    async def organization_stats(
        self, organization_id: UUID, now: datetime | None = None
    ) -> OrganizationStats:
        """Count sessions per lifecycle bucket for an organization."""
        now = now or utcnow()

        def count(*conditions: Any) -> Select[Any]:
            return (
                select(func.count())
                .select_from(OnboardingSession)
                .join(Employee, OnboardingSession.employee_id == Employee.id)
                .join(User, Employee.user_id == User.id)
                .where(User.organization_id == organization_id, *conditions)
            )

        total = await self.session.scalar(count()) or 0
        in_progress = await self.session.scalar(
            count(
                OnboardingSession.status == OnboardingStatus.IN_PROGRESS.value,
                OnboardingSession.expires_at >= now,
            )
        ) or 0
        completed = await self.session.scalar(
            count(OnboardingSession.status == OnboardingStatus.COMPLETED.value)
        ) or 0
        expired = await self.session.scalar(
            count(
                or_(
                    OnboardingSession.status == OnboardingStatus.EXPIRED.value,
                    (OnboardingSession.status == OnboardingStatus.IN_PROGRESS.value)
                    & (OnboardingSession.expires_at < now),
                )
            )
        ) or 0
        cancelled = await self.session.scalar(
            count(OnboardingSession.status == OnboardingStatus.CANCELLED.value)
        ) or 0

        return OrganizationStats(
            total=total,
            in_progress=in_progress,
            completed=completed,
            expired=expired,
            cancelled=cancelled,
        )

    async def find_expiring_soon(
        self,
        hours: int = 24,
        organization_id: UUID | None = None,
        now: datetime | None = None,
    ) -> list[OnboardingSession]:
        """In-progress sessions expiring within ``hours``, soonest first."""
        now = now or utcnow()
        query = select(OnboardingSession).where(
            OnboardingSession.status == OnboardingStatus.IN_PROGRESS.value,
            OnboardingSession.expires_at >= now,
            OnboardingSession.expires_at <= now + timedelta(hours=hours),
        )
        if organization_id is not None:
            query = (
                query.join(Employee, OnboardingSession.employee_id == Employee.id)
                .join(User, Employee.user_id == User.id)
                .where(User.organization_id == organization_id)
            )
        result = await self.session.execute(
            _with_employee(query).order_by(OnboardingSession.expires_at.asc())
        )
        return list(result.scalars().all())
