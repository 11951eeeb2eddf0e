"""Employee document repository.

Documents are versioned per ``(employee, document_type)``: re-uploading the
same logical document creates a new row with the next version number. A
signed document is never modified again.
"""

from __future__ import annotations

import logging
from typing import Any
from uuid import UUID

from sqlalchemy import func, select, update
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from onboarding_engine.database import transaction
from onboarding_engine.errors import DocumentAlreadySignedError, NotFoundError, ValidationError
from onboarding_engine.events import AsyncEventEmitter, DocumentSigned
from onboarding_engine.models import Document, DocumentType, Employee, utcnow
from onboarding_engine.services.access_control import AccessPolicy, Action, Principal, Target
from onboarding_engine.services.employee_service import EmployeeService
from onboarding_engine.services.onboarding_service import event_metadata

logger = logging.getLogger(__name__)


def parse_document_type(value: str) -> DocumentType:
    try:
        return DocumentType(value)
    except ValueError:
        raise ValidationError(
            f"Unknown document type '{value}'",
            errors=[{"loc": ["body", "document_type"], "msg": "unknown document type"}],
        ) from None


class DocumentService:
    def __init__(
        self,
        session: AsyncSession,
        emitter: AsyncEventEmitter | None = None,
        policy: AccessPolicy | None = None,
    ):
        self.session = session
        self.emitter = emitter or AsyncEventEmitter()
        self.policy = policy or AccessPolicy()
        self.employees = EmployeeService(session, self.emitter, self.policy)

    async def get(self, document_id: UUID) -> Document:
        result = await self.session.execute(
            select(Document)
            .where(Document.id == document_id)
            .options(selectinload(Document.employee).selectinload(Employee.user))
            .execution_options(populate_existing=True)
        )
        document = result.scalar_one_or_none()
        if document is None:
            raise NotFoundError("Document not found")
        return document

    async def get_for(self, document_id: UUID, principal: Principal | None) -> Document:
        document = await self.get(document_id)
        self.policy.authorize(principal, Action.VIEW_DOCUMENTS, Target.of_document(document))
        return document

    async def list_for_employee(
        self,
        employee_id: UUID,
        principal: Principal | None,
        document_type: str | None = None,
    ) -> list[Document]:
        """Documents of an employee, newest version first within each type."""
        employee = await self.employees.get_employee(employee_id)
        self.policy.authorize(principal, Action.VIEW_DOCUMENTS, Target.of_employee(employee))

        query = select(Document).where(Document.employee_id == employee.id)
        if document_type is not None:
            query = query.where(Document.document_type == parse_document_type(document_type).value)
        result = await self.session.execute(
            query.order_by(Document.document_type, Document.version.desc())
        )
        return list(result.scalars().all())

    async def latest_by_type(
        self, employee_id: UUID, document_type: DocumentType
    ) -> Document | None:
        result = await self.session.execute(
            select(Document)
            .where(
                Document.employee_id == employee_id,
                Document.document_type == document_type.value,
            )
            .order_by(Document.version.desc())
            .limit(1)
        )
        return result.scalar_one_or_none()

    async def register(
        self,
        employee_id: UUID,
        principal: Principal | None,
        document_type: str,
        document_name: str | None = None,
        file_path: str | None = None,
        file_size: int | None = None,
        mime_type: str | None = None,
    ) -> Document:
        """Record a stored file as the next version of its document type."""
        doc_type = parse_document_type(document_type)
        employee = await self.employees.get_employee(employee_id)
        self.policy.authorize(principal, Action.MANAGE_DOCUMENTS, Target.of_employee(employee))
        if file_size is not None and file_size < 0:
            raise ValidationError("file_size cannot be negative")

        async with transaction(self.session):
            current = await self.session.scalar(
                select(func.max(Document.version)).where(
                    Document.employee_id == employee.id,
                    Document.document_type == doc_type.value,
                )
            )
            document = Document(
                employee_id=employee.id,
                document_type=doc_type.value,
                document_name=document_name,
                file_path=file_path,
                file_size=file_size,
                mime_type=mime_type,
                version=(current or 0) + 1,
            )
            self.session.add(document)
            await self.session.flush()

        logger.info(
            "Registered %s v%d for employee %s", doc_type.value, document.version, employee.id
        )
        return await self.get(document.id)

    async def sign(
        self,
        document_id: UUID,
        principal: Principal | None,
        signature_data: dict[str, Any],
    ) -> Document:
        """Attach a signature. A document can be signed once."""
        document = await self.get(document_id)
        self.policy.authorize(principal, Action.SIGN_DOCUMENT, Target.of_document(document))
        if document.is_signed:
            raise DocumentAlreadySignedError("Document is already signed")
        if not signature_data:
            raise ValidationError("signature_data is required")

        now = utcnow()
        # Conditional update: only one signer can flip is_signed
        result = await self.session.execute(
            update(Document)
            .where(Document.id == document.id, Document.is_signed.is_(False))
            .values(
                is_signed=True,
                signed_at=now,
                signature_data={**signature_data, "signed_at": now.isoformat()},
            )
            .execution_options(synchronize_session=False)
        )
        if not result.rowcount:
            await self.session.rollback()
            raise DocumentAlreadySignedError("Document is already signed")
        await self.session.commit()
        document = await self.get(document.id)

        await self.emitter.emit(
            DocumentSigned(
                metadata=event_metadata(principal, document.employee.organization_id),
                document_id=document.id,
                employee_id=document.employee_id,
                document_type=document.document_type,
                signed_at=now,
            )
        )
        return document
