"""Employee and document API endpoints."""

from typing import Annotated
from uuid import UUID

from fastapi import APIRouter, Path, Query, status

from onboarding_engine.api.dependencies import CurrentPrincipal, Documents, Employees
from onboarding_engine.api.schemas import (
    DocumentResponse,
    EmployeeResponse,
    ErrorResponse,
    RegisterDocumentRequest,
    SignDocumentRequest,
    TerminateEmployeeRequest,
)

router = APIRouter(tags=["employees"])

EmployeeId = Annotated[UUID, Path(description="Employee ID")]

ERROR_RESPONSES = {
    400: {"model": ErrorResponse},
    401: {"model": ErrorResponse},
    403: {"model": ErrorResponse},
    404: {"model": ErrorResponse},
    409: {"model": ErrorResponse},
}


# ============================================================================
# Employees
# ============================================================================


@router.post(
    "/employees/{employee_id}/terminate",
    response_model=EmployeeResponse,
    responses=ERROR_RESPONSES,
)
async def terminate_employee(
    employees: Employees,
    principal: CurrentPrincipal,
    employee_id: EmployeeId,
    payload: TerminateEmployeeRequest,
) -> EmployeeResponse:
    """Terminate an employee and deactivate their account."""
    employee = await employees.terminate(
        employee_id,
        principal,
        termination_date=payload.termination_date,
        rehire_eligible=payload.rehire_eligible,
        manager_rating=payload.manager_rating,
    )
    return EmployeeResponse.model_validate(employee)


# ============================================================================
# Documents
# ============================================================================


@router.get(
    "/employees/{employee_id}/documents",
    response_model=list[DocumentResponse],
    responses=ERROR_RESPONSES,
)
async def list_employee_documents(
    documents: Documents,
    principal: CurrentPrincipal,
    employee_id: EmployeeId,
    document_type: Annotated[str | None, Query()] = None,
) -> list[DocumentResponse]:
    items = await documents.list_for_employee(employee_id, principal, document_type)
    return [DocumentResponse.model_validate(d) for d in items]


@router.post(
    "/employees/{employee_id}/documents",
    response_model=DocumentResponse,
    status_code=status.HTTP_201_CREATED,
    responses=ERROR_RESPONSES,
)
async def register_document(
    documents: Documents,
    principal: CurrentPrincipal,
    employee_id: EmployeeId,
    payload: RegisterDocumentRequest,
) -> DocumentResponse:
    """Record a stored file as the next version of its document type."""
    document = await documents.register(
        employee_id,
        principal,
        document_type=payload.document_type,
        document_name=payload.document_name,
        file_path=payload.file_path,
        file_size=payload.file_size,
        mime_type=payload.mime_type,
    )
    return DocumentResponse.model_validate(document)


@router.get("/documents/{document_id}", response_model=DocumentResponse, responses=ERROR_RESPONSES)
async def get_document(
    documents: Documents,
    principal: CurrentPrincipal,
    document_id: UUID,
) -> DocumentResponse:
    return DocumentResponse.model_validate(await documents.get_for(document_id, principal))


@router.post(
    "/documents/{document_id}/sign",
    response_model=DocumentResponse,
    responses=ERROR_RESPONSES,
)
async def sign_document(
    documents: Documents,
    principal: CurrentPrincipal,
    document_id: UUID,
    payload: SignDocumentRequest,
) -> DocumentResponse:
    """Sign a document. Signed documents cannot be signed again."""
    document = await documents.sign(document_id, principal, payload.signature_data)
    return DocumentResponse.model_validate(document)
