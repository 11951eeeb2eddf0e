"""Tests for the employee document repository."""

from uuid import uuid4

import pytest

from onboarding_engine.errors import (
    AuthorizationError,
    DocumentAlreadySignedError,
    NotFoundError,
    ValidationError,
)
from onboarding_engine.events import DocumentSigned
from onboarding_engine.models import DocumentType
from onboarding_engine.services import DocumentService, Principal, Role


@pytest.fixture
def documents(session, emitter) -> DocumentService:
    return DocumentService(session, emitter=emitter)


class TestRegister:
    async def test_versions_per_type(self, documents, manager, employee):
        """Re-uploading a document type creates the next version."""
        first = await documents.register(employee.id, manager, "w4", document_name="W-4 2026")
        second = await documents.register(employee.id, manager, "w4", document_name="W-4 corrected")
        other = await documents.register(employee.id, manager, "i9")

        assert (first.version, second.version, other.version) == (1, 2, 1)
        latest = await documents.latest_by_type(employee.id, DocumentType.W4)
        assert latest.id == second.id

    async def test_unknown_type(self, documents, manager, employee):
        with pytest.raises(ValidationError):
            await documents.register(employee.id, manager, "tax_return")

    async def test_employee_cannot_register(self, documents, employee_principal, employee):
        with pytest.raises(AuthorizationError):
            await documents.register(employee.id, employee_principal, "w4")

    async def test_list_for_employee(self, documents, manager, employee_principal, employee):
        await documents.register(employee.id, manager, "w4")
        await documents.register(employee.id, manager, "w4")
        await documents.register(employee.id, manager, "handbook")

        listed = await documents.list_for_employee(employee.id, employee_principal)
        assert [(d.document_type, d.version) for d in listed] == [
            ("handbook", 1),
            ("w4", 2),
            ("w4", 1),
        ]
        only_w4 = await documents.list_for_employee(employee.id, employee_principal, "w4")
        assert len(only_w4) == 2

    async def test_other_property_cannot_view(self, documents, manager, other_manager, employee):
        document = await documents.register(employee.id, manager, "policy")
        with pytest.raises(AuthorizationError):
            await documents.get_for(document.id, other_manager)


class TestSign:
    async def test_sign_once(self, documents, manager, employee_principal, employee, emitter):
        document = await documents.register(employee.id, manager, "handbook")

        signed = await documents.sign(document.id, employee_principal, {"name": "Eli Park"})

        assert signed.is_signed is True
        assert signed.signed_at is not None
        assert signed.signature_data["name"] == "Eli Park"
        [event] = emitter.of_type(DocumentSigned)
        assert event.document_id == document.id
        assert event.document_type == "handbook"

        with pytest.raises(DocumentAlreadySignedError):
            await documents.sign(document.id, employee_principal, {"name": "Eli Park"})

    async def test_signature_data_required(self, documents, manager, employee_principal, employee):
        document = await documents.register(employee.id, manager, "handbook")
        with pytest.raises(ValidationError):
            await documents.sign(document.id, employee_principal, {})

    async def test_cannot_sign_for_someone_else(
        self, documents, manager, employee, make_employee, organization
    ):
        document = await documents.register(employee.id, manager, "handbook")
        coworker = await make_employee(organization)
        principal = Principal(
            role=Role.EMPLOYEE,
            user_id=coworker.user_id,
            organization_id=organization.id,
            employee_id=coworker.id,
        )
        with pytest.raises(AuthorizationError):
            await documents.sign(document.id, principal, {"name": "x"})

    async def test_missing_document(self, documents, hr):
        with pytest.raises(NotFoundError):
            await documents.sign(uuid4(), hr, {"name": "x"})
