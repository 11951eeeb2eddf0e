"""Pytest fixtures for onboarding engine tests."""

from __future__ import annotations

from collections.abc import AsyncGenerator, Awaitable, Callable
from datetime import date
from itertools import count
from typing import Any

import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from onboarding_engine.config import Settings
from onboarding_engine.database import make_session_factory
from onboarding_engine.events import AsyncEventEmitter, DomainEvent
from onboarding_engine.models import (
    Base,
    Employee,
    EmploymentStatus,
    Organization,
    OrganizationType,
    User,
    UserRole,
)
from onboarding_engine.services import Principal, Role

# In-memory SQLite shared by every connection of one engine
TEST_DATABASE_URL = "sqlite+aiosqlite:///:memory:"

_sequence = count(1)


@pytest.fixture
def settings() -> Settings:
    """Settings for tests; no mailer or webhook configured."""
    return Settings(
        database_url=TEST_DATABASE_URL,
        host="127.0.0.1",
        port=8000,
        debug=False,
        log_level="DEBUG",
        jwt_secret_key="test-secret",
        jwt_algorithm="HS256",
        onboarding_ttl_hours=168,
        onboarding_token_length=12,
        frontend_url="https://hr.example.com",
        mailer_api_key=None,
        mailer_from_email="onboarding@example.com",
        mailer_from_name="HR Onboarding",
        mailer_base_url="https://mailer.example.com/v1",
        notification_webhook_url=None,
    )


@pytest_asyncio.fixture
async def engine():
    """Create a fresh test database per test."""
    engine = create_async_engine(
        TEST_DATABASE_URL,
        echo=False,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    await engine.dispose()


@pytest.fixture
def session_factory(engine) -> async_sessionmaker[AsyncSession]:
    return make_session_factory(engine)


@pytest_asyncio.fixture
async def session(session_factory) -> AsyncGenerator[AsyncSession, None]:
    """Create a database session for each test."""
    async with session_factory() as session:
        yield session
        await session.rollback()


class RecordingEmitter(AsyncEventEmitter):
    """Emitter that keeps every event it dispatches."""

    def __init__(self) -> None:
        super().__init__()
        self.events: list[DomainEvent] = []

        async def record(event: DomainEvent) -> None:
            self.events.append(event)

        self.on_all(record)

    def of_type(self, event_type: type) -> list[Any]:
        return [e for e in self.events if isinstance(e, event_type)]


@pytest.fixture
def emitter() -> RecordingEmitter:
    return RecordingEmitter()


# ============================================================================
# Data factories
# ============================================================================


async def _add(session: AsyncSession, obj: Any) -> Any:
    session.add(obj)
    await session.commit()
    return obj


@pytest.fixture
def make_organization(session: AsyncSession) -> Callable[..., Awaitable[Organization]]:
    async def factory(name: str | None = None, **kwargs: Any) -> Organization:
        return await _add(
            session,
            Organization(
                name=name or f"Property {next(_sequence)}",
                type=kwargs.pop("type", OrganizationType.MOTEL.value),
                **kwargs,
            ),
        )

    return factory


@pytest.fixture
def make_user(session: AsyncSession) -> Callable[..., Awaitable[User]]:
    async def factory(organization: Organization, role: UserRole, **kwargs: Any) -> User:
        n = next(_sequence)
        fields: dict[str, Any] = {
            "email": f"user{n}@example.com",
            "first_name": "Test",
            "last_name": f"User{n}",
            "language_preference": "en",
            "is_active": True,
        }
        fields.update(kwargs)
        user = await _add(
            session,
            User(role=role.value, organization_id=organization.id, **fields),
        )
        session.expunge_all()
        return user

    return factory


@pytest.fixture
def make_employee(
    session: AsyncSession, make_user
) -> Callable[..., Awaitable[Employee]]:
    async def factory(organization: Organization, **kwargs: Any) -> Employee:
        user_fields = {
            key: kwargs.pop(key)
            for key in ("first_name", "last_name", "email", "language_preference", "is_active")
            if key in kwargs
        }
        user_fields.setdefault("is_active", False)
        user = await make_user(organization, UserRole.EMPLOYEE, **user_fields)
        employee = await _add(
            session,
            Employee(
                user_id=user.id,
                employee_number=kwargs.pop("employee_number", f"E{next(_sequence):05d}"),
                hire_date=kwargs.pop("hire_date", date(2026, 1, 5)),
                position=kwargs.pop("position", "Front Desk Agent"),
                department=kwargs.pop("department", "Front Office"),
                employment_status=kwargs.pop(
                    "employment_status", EmploymentStatus.ONBOARDING.value
                ),
                **kwargs,
            ),
        )
        await session.refresh(employee, ["user"])
        # Services load their own copies
        session.expunge_all()
        return employee

    return factory


# ============================================================================
# Standard cast
# ============================================================================


@pytest_asyncio.fixture
async def organization(make_organization) -> Organization:
    return await make_organization("Seaside Motel")


@pytest_asyncio.fixture
async def other_organization(make_organization) -> Organization:
    return await make_organization("Hilltop Inn")


@pytest_asyncio.fixture
async def hr_user(make_organization, make_user) -> User:
    corporate = await make_organization("Corporate", type=OrganizationType.CORPORATE.value)
    return await make_user(corporate, UserRole.HR_ADMIN, first_name="Hana", last_name="Reyes")


@pytest_asyncio.fixture
async def manager_user(organization, make_user) -> User:
    return await make_user(organization, UserRole.MANAGER, first_name="Mara", last_name="Lopez")


@pytest_asyncio.fixture
async def other_manager_user(other_organization, make_user) -> User:
    return await make_user(other_organization, UserRole.MANAGER)


@pytest_asyncio.fixture
async def employee(organization, make_employee) -> Employee:
    return await make_employee(organization, first_name="Eli", last_name="Park")


def principal_for(user: User, employee: Employee | None = None) -> Principal:
    """Principal as the bearer-token dependency would build it."""
    return Principal(
        role=Role(user.role),
        user_id=user.id,
        organization_id=user.organization_id,
        employee_id=employee.id if employee else None,
    )


@pytest.fixture
def hr(hr_user) -> Principal:
    return principal_for(hr_user)


@pytest.fixture
def manager(manager_user) -> Principal:
    return principal_for(manager_user)


@pytest.fixture
def other_manager(other_manager_user) -> Principal:
    return principal_for(other_manager_user)


@pytest.fixture
def employee_principal(employee) -> Principal:
    return principal_for(employee.user, employee)
