"""Employee model."""

from __future__ import annotations

from datetime import date
from enum import Enum
from typing import TYPE_CHECKING
from uuid import UUID

from sqlalchemy import Boolean, Date, ForeignKey, Integer, String
from sqlalchemy.orm import Mapped, mapped_column, relationship

from onboarding_engine.models.base import Base, IdMixin, TimestampMixin

if TYPE_CHECKING:
    from onboarding_engine.models.document import Document
    from onboarding_engine.models.onboarding import OnboardingSession
    from onboarding_engine.models.organization import User


class EmploymentStatus(str, Enum):
    """Employment status values."""

    ONBOARDING = "onboarding"
    ACTIVE = "active"
    ON_LEAVE = "on_leave"
    TERMINATED = "terminated"


class Employee(Base, IdMixin, TimestampMixin):
    """HR extension of a user (1:1)."""

    __tablename__ = "employee"

    user_id: Mapped[UUID] = mapped_column(
        ForeignKey("app_user.id", ondelete="CASCADE"),
        nullable=False,
        unique=True,
    )
    employee_number: Mapped[str] = mapped_column(String, nullable=False, unique=True)
    hire_date: Mapped[date] = mapped_column(Date, nullable=False)
    position: Mapped[str | None] = mapped_column(String, nullable=True)
    department: Mapped[str | None] = mapped_column(String, nullable=True)
    employment_status: Mapped[str] = mapped_column(
        String, nullable=False, default=EmploymentStatus.ONBOARDING.value
    )
    termination_date: Mapped[date | None] = mapped_column(Date, nullable=True)
    rehire_eligible: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    manager_rating: Mapped[int | None] = mapped_column(Integer, nullable=True)

    user: Mapped[User] = relationship(back_populates="employee")
    onboarding_sessions: Mapped[list[OnboardingSession]] = relationship(
        back_populates="employee"
    )
    documents: Mapped[list[Document]] = relationship(back_populates="employee")

    @property
    def organization_id(self) -> UUID:
        """Organization the employee belongs to (through the user)."""
        return self.user.organization_id
