"""Role-scoped authorization for onboarding operations.

Every guarded operation is evaluated against one table mapping
``(role, action)`` to the scope in which the role may perform it:

- ``global``: any record in any organization
- ``organization``: records whose employee belongs to the caller's organization
- ``own``: only the caller's own employee record (or the session their token opens)

Pairs missing from the table are denied.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import Enum
from uuid import UUID

from onboarding_engine.errors import AuthenticationError, AuthorizationError
from onboarding_engine.models import Document, Employee, OnboardingSession, UserRole

logger = logging.getLogger(__name__)


Role = UserRole


class Scope(str, Enum):
    GLOBAL = "global"
    ORGANIZATION = "organization"
    OWN = "own"


class Action(str, Enum):
    """Guarded operations."""

    # Employee wizard
    VIEW_SESSION = "view_session"
    UPDATE_PROGRESS = "update_progress"
    SUBMIT_FORMS = "submit_forms"
    SUBMIT_SIGNATURE = "submit_signature"
    SUBMIT = "submit"

    # Session management
    CREATE_SESSION = "create_session"
    LIST_SESSIONS = "list_sessions"
    EXTEND = "extend"
    CANCEL = "cancel"
    VIEW_STATS = "view_stats"
    EXPIRE_SESSIONS = "expire_sessions"

    # Review
    APPROVE = "approve"
    REJECT = "reject"
    REQUEST_CHANGES = "request_changes"

    # Employees and documents
    TERMINATE_EMPLOYEE = "terminate_employee"
    VIEW_DOCUMENTS = "view_documents"
    MANAGE_DOCUMENTS = "manage_documents"
    SIGN_DOCUMENT = "sign_document"


_MANAGER_ACTIONS = (
    Action.VIEW_SESSION,
    Action.CREATE_SESSION,
    Action.LIST_SESSIONS,
    Action.EXTEND,
    Action.CANCEL,
    Action.VIEW_STATS,
    Action.APPROVE,
    Action.REJECT,
    Action.REQUEST_CHANGES,
    Action.VIEW_DOCUMENTS,
    Action.MANAGE_DOCUMENTS,
)

_EMPLOYEE_ACTIONS = (
    Action.VIEW_SESSION,
    Action.UPDATE_PROGRESS,
    Action.SUBMIT_FORMS,
    Action.SUBMIT_SIGNATURE,
    Action.SUBMIT,
    Action.VIEW_DOCUMENTS,
    Action.SIGN_DOCUMENT,
)

POLICY: dict[tuple[Role, Action], Scope] = {
    **{(Role.HR_ADMIN, action): Scope.GLOBAL for action in Action},
    **{(Role.MANAGER, action): Scope.ORGANIZATION for action in _MANAGER_ACTIONS},
    **{(Role.EMPLOYEE, action): Scope.OWN for action in _EMPLOYEE_ACTIONS},
}


@dataclass(frozen=True)
class Principal:
    """The identity behind a request.

    Token holders have no user id; they carry the employee and session the
    token belongs to.
    """

    role: Role
    user_id: UUID | None = None
    organization_id: UUID | None = None
    employee_id: UUID | None = None
    session_id: UUID | None = None
    via_token: bool = False

    @classmethod
    def for_token(cls, onboarding: OnboardingSession) -> Principal:
        """Principal for an onboarding token holder."""
        return cls(
            role=Role.EMPLOYEE,
            user_id=None,
            organization_id=onboarding.employee.organization_id,
            employee_id=onboarding.employee_id,
            session_id=onboarding.id,
            via_token=True,
        )

    @property
    def is_hr_admin(self) -> bool:
        return self.role == Role.HR_ADMIN

    @property
    def actor(self) -> str:
        """Label recorded in form data history."""
        if self.via_token:
            return f"token:{self.employee_id}"
        return f"{self.role.value}:{self.user_id}"


@dataclass(frozen=True)
class Target:
    """What an action touches. ``None`` fields are unknown or not applicable."""

    organization_id: UUID | None = None
    employee_id: UUID | None = None
    session_id: UUID | None = None

    @classmethod
    def of_session(cls, onboarding: OnboardingSession) -> Target:
        return cls(
            organization_id=onboarding.employee.organization_id,
            employee_id=onboarding.employee_id,
            session_id=onboarding.id,
        )

    @classmethod
    def of_employee(cls, employee: Employee) -> Target:
        return cls(organization_id=employee.organization_id, employee_id=employee.id)

    @classmethod
    def of_document(cls, document: Document) -> Target:
        return cls.of_employee(document.employee)


class AccessPolicy:
    """Evaluates the policy table for a principal, action and target."""

    def __init__(self, policy: dict[tuple[Role, Action], Scope] | None = None):
        self.policy = policy if policy is not None else POLICY

    def scope_for(self, principal: Principal, action: Action) -> Scope | None:
        return self.policy.get((principal.role, action))

    def allows(
        self, principal: Principal | None, action: Action, target: Target | None = None
    ) -> bool:
        """Check an action without raising."""
        if principal is None:
            return False
        scope = self.scope_for(principal, action)
        if scope is None:
            return False
        return self._in_scope(principal, scope, target)

    def authorize(
        self, principal: Principal | None, action: Action, target: Target | None = None
    ) -> Scope:
        """Return the granted scope, or raise.

        Raises AuthenticationError without a principal and AuthorizationError
        when the principal's role or scope does not cover the target.
        """
        if principal is None:
            raise AuthenticationError("Authentication required")

        scope = self.scope_for(principal, action)
        if scope is None or not self._in_scope(principal, scope, target):
            logger.info(
                "Denied %s for role=%s user=%s target=%s",
                action.value,
                principal.role.value,
                principal.user_id,
                target,
            )
            raise AuthorizationError(f"Not allowed to {action.value.replace('_', ' ')}")
        return scope

    def require(
        self, principal: Principal | None, action: Action, target: Target | None = None
    ) -> Principal:
        """Authorize and return the principal the caller acts as."""
        self.authorize(principal, action, target)
        if principal is None:
            raise AuthenticationError("Authentication required")
        return principal

    @staticmethod
    def _in_scope(principal: Principal, scope: Scope, target: Target | None) -> bool:
        if scope == Scope.GLOBAL:
            return True

        if scope == Scope.ORGANIZATION:
            if principal.organization_id is None:
                return False
            if target is None or target.organization_id is None:
                # Collection-level actions; callers restrict results to the organization
                return True
            return target.organization_id == principal.organization_id

        # Scope.OWN
        if target is None or principal.employee_id is None:
            return False
        if target.employee_id != principal.employee_id:
            return False
        if principal.via_token and target.session_id is not None:
            return target.session_id == principal.session_id
        return True

    def organization_filter(self, principal: Principal) -> UUID | None:
        """Organization a listing must be restricted to, or None for all."""
        if principal.is_hr_admin:
            return None
        return principal.organization_id
