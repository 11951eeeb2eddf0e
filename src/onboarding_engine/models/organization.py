"""Organization and user models."""

from __future__ import annotations

from enum import Enum
from typing import TYPE_CHECKING
from uuid import UUID

from sqlalchemy import Boolean, ForeignKey, String
from sqlalchemy.orm import Mapped, mapped_column, relationship

from onboarding_engine.models.base import Base, IdMixin, TimestampMixin

if TYPE_CHECKING:
    from onboarding_engine.models.employee import Employee


class OrganizationType(str, Enum):
    """Organization kinds."""

    CORPORATE = "corporate"
    MOTEL = "motel"


class UserRole(str, Enum):
    """User roles."""

    HR_ADMIN = "hr_admin"
    MANAGER = "manager"
    EMPLOYEE = "employee"


class LanguageCode(str, Enum):
    """Supported wizard languages."""

    EN = "en"
    ES = "es"


class Organization(Base, IdMixin, TimestampMixin):
    """Tenant boundary: a corporate office or a property."""

    __tablename__ = "organization"

    name: Mapped[str] = mapped_column(String, nullable=False)
    type: Mapped[str] = mapped_column(
        String, nullable=False, default=OrganizationType.MOTEL.value
    )
    parent_id: Mapped[UUID | None] = mapped_column(
        ForeignKey("organization.id", ondelete="SET NULL"),
        nullable=True,
    )

    users: Mapped[list[User]] = relationship(back_populates="organization")


class User(Base, IdMixin, TimestampMixin):
    """Authentication identity and role."""

    __tablename__ = "app_user"

    email: Mapped[str] = mapped_column(String, nullable=False, unique=True)
    role: Mapped[str] = mapped_column(String, nullable=False)
    organization_id: Mapped[UUID] = mapped_column(
        ForeignKey("organization.id", ondelete="RESTRICT"),
        nullable=False,
        index=True,
    )
    first_name: Mapped[str] = mapped_column(String, nullable=False)
    last_name: Mapped[str] = mapped_column(String, nullable=False)
    language_preference: Mapped[str] = mapped_column(
        String, nullable=False, default=LanguageCode.EN.value
    )
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)

    organization: Mapped[Organization] = relationship(back_populates="users")
    employee: Mapped[Employee | None] = relationship(back_populates="user")

    @property
    def full_name(self) -> str:
        """Get full name."""
        return f"{self.first_name} {self.last_name}"
