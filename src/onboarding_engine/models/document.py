"""Employee document model."""

from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import TYPE_CHECKING, Any
from uuid import UUID

from sqlalchemy import Boolean, ForeignKey, Integer, String
from sqlalchemy.orm import Mapped, mapped_column, relationship

from onboarding_engine.models.base import Base, IdMixin, JSONDocument, TimestampMixin

if TYPE_CHECKING:
    from onboarding_engine.models.employee import Employee


class DocumentType(str, Enum):
    """Closed set of document kinds."""

    SSN = "ssn"
    DRIVERS_LICENSE = "drivers_license"
    STATE_ID = "state_id"
    PASSPORT = "passport"
    WORK_AUTHORIZATION = "work_authorization"
    I9 = "i9"
    W4 = "w4"
    HANDBOOK = "handbook"
    POLICY = "policy"
    EXPERIENCE_LETTER = "experience_letter"
    OTHER = "other"


class Document(Base, IdMixin, TimestampMixin):
    """Stored employee document. Immutable once signed."""

    __tablename__ = "document"

    employee_id: Mapped[UUID] = mapped_column(
        ForeignKey("employee.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    document_type: Mapped[str] = mapped_column(String, nullable=False)
    document_name: Mapped[str | None] = mapped_column(String, nullable=True)
    file_path: Mapped[str | None] = mapped_column(String, nullable=True)
    file_size: Mapped[int | None] = mapped_column(Integer, nullable=True)
    mime_type: Mapped[str | None] = mapped_column(String, nullable=True)
    is_signed: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    signed_at: Mapped[datetime | None] = mapped_column(nullable=True)
    signature_data: Mapped[dict[str, Any] | None] = mapped_column(JSONDocument, nullable=True)
    version: Mapped[int] = mapped_column(Integer, nullable=False, default=1)

    employee: Mapped[Employee] = relationship(back_populates="documents")
