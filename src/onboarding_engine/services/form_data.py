"""Namespaced onboarding form data.

``OnboardingSession.form_data`` is a JSON document whose top-level keys are
section namespaces. Each section has a schema; writes are validated against it
and written into the namespace, and every write is recorded with its payload
in the ``history`` list so review annotations are never lost.
"""

from __future__ import annotations

import copy
from datetime import date, datetime
from enum import Enum
from typing import Any, Literal
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field, ValidationError as PydanticValidationError

from onboarding_engine.errors import ValidationError
from onboarding_engine.models.base import utcnow

HISTORY_KEY = "history"


class Section(str, Enum):
    """Top-level form data namespaces."""

    PERSONAL_INFO = "personal_info"
    EMERGENCY_CONTACT = "emergency_contact"
    DIRECT_DEPOSIT = "direct_deposit"
    HEALTH_INSURANCE = "health_insurance"
    DOCUMENTS = "documents"
    POLICY_ACKNOWLEDGMENTS = "policy_acknowledgments"
    FORMS = "forms"
    SIGNATURE = "signature"
    MANAGER_APPROVAL = "manager_approval"
    HR_APPROVAL = "hr_approval"
    REJECTION = "rejection"
    CHANGE_REQUEST = "change_request"


# ============================================================================
# Employee wizard sections
# ============================================================================


class WizardSection(BaseModel):
    """Base for employee-entered sections. Unknown wizard fields are kept."""

    model_config = ConfigDict(extra="allow")


class PersonalInfo(WizardSection):
    first_name: str | None = None
    middle_name: str | None = None
    last_name: str | None = None
    date_of_birth: date | None = None
    email: str | None = None
    phone: str | None = None
    address: dict[str, Any] | None = None


class EmergencyContact(WizardSection):
    name: str | None = None
    relationship: str | None = None
    phone: str | None = None


class DirectDeposit(WizardSection):
    bank_name: str | None = None
    routing_number: str | None = Field(default=None, pattern=r"^\d{9}$")
    account_number: str | None = Field(default=None, pattern=r"^\d{4,17}$")
    account_type: Literal["checking", "savings"] | None = None


class HealthInsurance(WizardSection):
    plan: str | None = None
    coverage_tier: str | None = None
    dependents: list[dict[str, Any]] = Field(default_factory=list)
    waived: bool = False


class DocumentsSection(WizardSection):
    uploaded: list[dict[str, Any]] = Field(default_factory=list)


class PolicyAcknowledgments(WizardSection):
    handbook: bool | None = None
    policies: list[str] = Field(default_factory=list)
    acknowledged_at: datetime | None = None


class FormsSubmission(WizardSection):
    i9_data: dict[str, Any] | None = None
    w4_data: dict[str, Any] | None = None
    language: Literal["en", "es"] = "en"
    submitted_at: datetime


class SignatureBlock(BaseModel):
    """Signature capture. Write-once audit data."""

    model_config = ConfigDict(extra="forbid")

    signatures: dict[str, str]
    signature_base64: str | None = None
    document_ids: list[str] = Field(default_factory=list)
    signed_at: datetime
    ip_address: str | None = None
    user_agent: str | None = None


# ============================================================================
# Review sections
# ============================================================================


class ReviewSection(BaseModel):
    """Base for reviewer-written sections."""

    model_config = ConfigDict(extra="forbid")


class ManagerApproval(ReviewSection):
    approved_by: UUID
    approved_at: datetime
    approver_role: str
    comments: str | None = None


class HRApproval(ReviewSection):
    approved_by: UUID
    approved_at: datetime
    approver_role: str
    comments: str | None = None


class Rejection(ReviewSection):
    rejected_by: UUID
    rejected_at: datetime
    rejector_role: str
    comments: str = Field(min_length=1)


class ChangeRequest(ReviewSection):
    requested_by: UUID
    requested_at: datetime
    notes: str = ""
    sections: list[str] = Field(default_factory=list)


SECTION_MODELS: dict[Section, type[BaseModel]] = {
    Section.PERSONAL_INFO: PersonalInfo,
    Section.EMERGENCY_CONTACT: EmergencyContact,
    Section.DIRECT_DEPOSIT: DirectDeposit,
    Section.HEALTH_INSURANCE: HealthInsurance,
    Section.DOCUMENTS: DocumentsSection,
    Section.POLICY_ACKNOWLEDGMENTS: PolicyAcknowledgments,
    Section.FORMS: FormsSubmission,
    Section.SIGNATURE: SignatureBlock,
    Section.MANAGER_APPROVAL: ManagerApproval,
    Section.HR_APPROVAL: HRApproval,
    Section.REJECTION: Rejection,
    Section.CHANGE_REQUEST: ChangeRequest,
}

# Sections written as a whole record; a new write replaces the previous one
RECORD_SECTIONS = frozenset(
    {
        Section.SIGNATURE,
        Section.MANAGER_APPROVAL,
        Section.HR_APPROVAL,
        Section.REJECTION,
        Section.CHANGE_REQUEST,
    }
)

# Sections the generic progress endpoint may write
EMPLOYEE_WRITABLE = frozenset(
    {
        Section.PERSONAL_INFO,
        Section.EMERGENCY_CONTACT,
        Section.DIRECT_DEPOSIT,
        Section.HEALTH_INSURANCE,
        Section.DOCUMENTS,
        Section.POLICY_ACKNOWLEDGMENTS,
    }
)


def parse_section(name: str) -> Section:
    """Resolve a namespace name, rejecting unknown ones."""
    try:
        return Section(name)
    except ValueError:
        raise ValidationError(
            f"Unknown form data section '{name}'",
            errors=[{"loc": ["form_data", name], "msg": "unknown section"}],
        ) from None


def validate_section(section: Section, payload: dict[str, Any]) -> dict[str, Any]:
    """Validate a section payload and return its JSON-safe form."""
    model = SECTION_MODELS[section]
    try:
        parsed = model.model_validate(payload)
    except PydanticValidationError as e:
        raise ValidationError(
            f"Invalid '{section.value}' data",
            errors=[
                {"loc": ["form_data", section.value, *err["loc"]], "msg": err["msg"]}
                for err in e.errors()
            ],
        ) from e
    return parsed.model_dump(mode="json", exclude_unset=True)


def merge_section(
    form_data: dict[str, Any] | None,
    section: Section,
    payload: dict[str, Any],
    actor: str | None = None,
    at: datetime | None = None,
) -> dict[str, Any]:
    """Return a new form data document with ``payload`` written to ``section``.

    Wizard sections are merged field by field; record sections are replaced.
    Each write is appended to ``history`` with its validated payload, so
    earlier signatures and review decisions stay readable. The input document
    is not modified.
    """
    clean = validate_section(section, payload)
    merged = copy.deepcopy(form_data) if form_data else {}

    existing = merged.get(section.value)
    if isinstance(existing, dict) and section not in RECORD_SECTIONS:
        merged[section.value] = {**existing, **clean}
    else:
        merged[section.value] = clean

    history = list(merged.get(HISTORY_KEY) or [])
    history.append(
        {
            "section": section.value,
            "recorded_at": (at or utcnow()).isoformat(),
            "actor": actor,
            "data": dict(clean),
        }
    )
    merged[HISTORY_KEY] = history
    return merged


def get_section(form_data: dict[str, Any] | None, section: Section) -> dict[str, Any] | None:
    """Read a section, or None when absent."""
    if not form_data:
        return None
    value = form_data.get(section.value)
    return value if isinstance(value, dict) else None
