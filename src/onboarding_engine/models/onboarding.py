"""Onboarding session model."""

from __future__ import annotations

from datetime import datetime
from typing import TYPE_CHECKING, Any
from uuid import UUID

from sqlalchemy import ForeignKey, Index, Integer, String, text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from onboarding_engine.models.base import Base, IdMixin, JSONDocument, TimestampMixin

if TYPE_CHECKING:
    from onboarding_engine.models.employee import Employee


class OnboardingSession(Base, IdMixin, TimestampMixin):
    """Per-hire record tracking the onboarding wizard and its review."""

    __tablename__ = "onboarding_session"
    __table_args__ = (
        # At most one in-progress session per employee.
        Index(
            "uq_onboarding_session_active_employee",
            "employee_id",
            unique=True,
            postgresql_where=text("status = 'in_progress'"),
            sqlite_where=text("status = 'in_progress'"),
        ),
    )

    employee_id: Mapped[UUID] = mapped_column(
        ForeignKey("employee.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    token: Mapped[str] = mapped_column(String, nullable=False, unique=True)
    language_preference: Mapped[str] = mapped_column(String, nullable=False, default="en")
    current_step: Mapped[str | None] = mapped_column(String, nullable=True)
    form_data: Mapped[dict[str, Any]] = mapped_column(
        JSONDocument, nullable=False, default=dict
    )
    status: Mapped[str] = mapped_column(
        String, nullable=False, default="in_progress", index=True
    )
    expires_at: Mapped[datetime] = mapped_column(nullable=False)
    completed_at: Mapped[datetime | None] = mapped_column(nullable=True)
    version: Mapped[int] = mapped_column(Integer, nullable=False, default=1)

    employee: Mapped[Employee] = relationship(back_populates="onboarding_sessions")

    __mapper_args__ = {"version_id_col": version}

    def is_expired_at(self, now: datetime) -> bool:
        """Whether the session's expiry time has passed."""
        return self.expires_at < now
