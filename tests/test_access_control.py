"""Tests for the role/action/scope policy."""

from uuid import uuid4

import pytest

from onboarding_engine.errors import AuthenticationError, AuthorizationError
from onboarding_engine.services.access_control import (
    POLICY,
    AccessPolicy,
    Action,
    Principal,
    Role,
    Scope,
    Target,
)

ORG = uuid4()
OTHER_ORG = uuid4()
EMPLOYEE = uuid4()
SESSION = uuid4()


@pytest.fixture
def policy() -> AccessPolicy:
    return AccessPolicy()


def hr_admin() -> Principal:
    return Principal(role=Role.HR_ADMIN, user_id=uuid4(), organization_id=uuid4())


def manager(org=ORG) -> Principal:
    return Principal(role=Role.MANAGER, user_id=uuid4(), organization_id=org)


def employee(employee_id=EMPLOYEE) -> Principal:
    return Principal(
        role=Role.EMPLOYEE, user_id=uuid4(), organization_id=ORG, employee_id=employee_id
    )


def token_holder(session_id=SESSION) -> Principal:
    return Principal(
        role=Role.EMPLOYEE,
        organization_id=ORG,
        employee_id=EMPLOYEE,
        session_id=session_id,
        via_token=True,
    )


TARGET = Target(organization_id=ORG, employee_id=EMPLOYEE, session_id=SESSION)


class TestPolicyTable:
    """Test the shape of the policy table."""

    def test_hr_admin_has_every_action_globally(self):
        for action in Action:
            assert POLICY[(Role.HR_ADMIN, action)] == Scope.GLOBAL

    def test_manager_cannot_terminate_or_sweep(self):
        assert (Role.MANAGER, Action.TERMINATE_EMPLOYEE) not in POLICY
        assert (Role.MANAGER, Action.EXPIRE_SESSIONS) not in POLICY

    def test_employee_cannot_review(self):
        for action in (Action.APPROVE, Action.REJECT, Action.REQUEST_CHANGES, Action.CREATE_SESSION):
            assert (Role.EMPLOYEE, action) not in POLICY


class TestAuthorize:
    """Test AccessPolicy.authorize."""

    def test_missing_principal_is_unauthenticated(self, policy):
        with pytest.raises(AuthenticationError):
            policy.authorize(None, Action.VIEW_SESSION, TARGET)

    def test_hr_admin_any_organization(self, policy):
        target = Target(organization_id=OTHER_ORG, employee_id=uuid4())
        assert policy.authorize(hr_admin(), Action.APPROVE, target) == Scope.GLOBAL

    def test_manager_own_organization(self, policy):
        assert policy.authorize(manager(), Action.APPROVE, TARGET) == Scope.ORGANIZATION

    def test_manager_other_organization_denied(self, policy):
        with pytest.raises(AuthorizationError):
            policy.authorize(manager(OTHER_ORG), Action.APPROVE, TARGET)

    def test_manager_without_organization_denied(self, policy):
        with pytest.raises(AuthorizationError):
            policy.authorize(manager(None), Action.LIST_SESSIONS)

    def test_manager_collection_action_allowed(self, policy):
        """Listing has no single target; results are filtered instead."""
        assert policy.authorize(manager(), Action.LIST_SESSIONS) == Scope.ORGANIZATION

    def test_action_missing_from_table_denied(self, policy):
        with pytest.raises(AuthorizationError) as exc_info:
            policy.authorize(manager(), Action.TERMINATE_EMPLOYEE, TARGET)
        assert exc_info.value.status_code == 403

    def test_employee_own_record(self, policy):
        assert policy.authorize(employee(), Action.UPDATE_PROGRESS, TARGET) == Scope.OWN

    def test_employee_other_record_denied(self, policy):
        with pytest.raises(AuthorizationError):
            policy.authorize(employee(uuid4()), Action.VIEW_SESSION, TARGET)

    def test_employee_own_scope_needs_target(self, policy):
        with pytest.raises(AuthorizationError):
            policy.authorize(employee(), Action.VIEW_SESSION)

    def test_token_bound_to_its_session(self, policy):
        """A token opens only the session it was issued for."""
        assert policy.authorize(token_holder(), Action.SUBMIT, TARGET) == Scope.OWN
        with pytest.raises(AuthorizationError):
            policy.authorize(token_holder(uuid4()), Action.SUBMIT, TARGET)

    def test_allows_does_not_raise(self, policy):
        assert policy.allows(None, Action.VIEW_SESSION) is False
        assert policy.allows(manager(OTHER_ORG), Action.VIEW_SESSION, TARGET) is False
        assert policy.allows(manager(), Action.VIEW_SESSION, TARGET) is True

    def test_require_returns_principal(self, policy):
        principal = manager()
        assert policy.require(principal, Action.LIST_SESSIONS) is principal

    def test_require_raises_like_authorize(self, policy):
        with pytest.raises(AuthenticationError):
            policy.require(None, Action.LIST_SESSIONS)
        with pytest.raises(AuthorizationError):
            policy.require(manager(OTHER_ORG), Action.APPROVE, TARGET)


class TestPrincipal:
    def test_actor_labels(self):
        user_id = uuid4()
        assert Principal(role=Role.MANAGER, user_id=user_id).actor == f"manager:{user_id}"
        assert token_holder().actor == f"token:{EMPLOYEE}"

    def test_organization_filter(self, policy):
        assert policy.organization_filter(hr_admin()) is None
        assert policy.organization_filter(manager()) == ORG
