"""Tests for onboarding session state machine."""

from types import SimpleNamespace

import pytest

from onboarding_engine.services.state_machine import (
    InvalidTransitionError,
    OnboardingStateMachine,
    OnboardingStatus,
)


class TestOnboardingStateMachine:
    """Test state machine transitions."""

    def test_valid_transitions(self):
        """The review lifecycle moves forward one stage at a time."""
        assert OnboardingStateMachine.can_transition("in_progress", "completed") is True
        assert OnboardingStateMachine.can_transition("in_progress", "expired") is True
        assert OnboardingStateMachine.can_transition("completed", "manager_approved") is True
        assert OnboardingStateMachine.can_transition("completed", "rejected") is True
        assert OnboardingStateMachine.can_transition("completed", "requires_changes") is True
        assert OnboardingStateMachine.can_transition("requires_changes", "completed") is True
        assert OnboardingStateMachine.can_transition("manager_approved", "approved") is True
        assert OnboardingStateMachine.can_transition("manager_approved", "rejected") is True

    def test_invalid_transitions(self):
        """Stages cannot be skipped or reversed."""
        # HR approval needs a manager approval first
        assert OnboardingStateMachine.can_transition("completed", "approved") is False
        assert OnboardingStateMachine.can_transition("in_progress", "manager_approved") is False
        assert OnboardingStateMachine.can_transition("completed", "in_progress") is False
        # Changes can only be requested before manager approval
        assert OnboardingStateMachine.can_transition("manager_approved", "requires_changes") is False
        # requires_changes sessions are not swept
        assert OnboardingStateMachine.can_transition("requires_changes", "expired") is False

    @pytest.mark.parametrize("status", ["approved", "rejected", "expired", "cancelled"])
    def test_terminal_statuses(self, status):
        """Terminal statuses allow no further transitions."""
        assert OnboardingStateMachine.is_terminal(status) is True
        assert OnboardingStateMachine.get_next_statuses(status) == []
        for target in OnboardingStatus:
            assert OnboardingStateMachine.can_transition(status, target) is False

    @pytest.mark.parametrize(
        "status", ["in_progress", "completed", "requires_changes", "manager_approved"]
    )
    def test_any_open_status_can_be_cancelled(self, status):
        assert OnboardingStateMachine.can_transition(status, "cancelled") is True

    def test_validate_transition_raises(self):
        """validate_transition reports both ends of a bad move."""
        with pytest.raises(InvalidTransitionError) as exc_info:
            OnboardingStateMachine.validate_transition("in_progress", "approved")

        assert exc_info.value.from_status == "in_progress"
        assert exc_info.value.to_status == "approved"
        assert exc_info.value.code == "INVALID_TRANSITION"

    def test_validate_transition_from_terminal_has_reason(self):
        with pytest.raises(InvalidTransitionError) as exc_info:
            OnboardingStateMachine.validate_transition("approved", "cancelled")

        assert exc_info.value.reason == "session is in a terminal state"
        assert "terminal" in str(exc_info.value)

    def test_enum_members_are_accepted(self):
        """Status enums and their string values are interchangeable."""
        assert OnboardingStateMachine.can_transition(
            OnboardingStatus.COMPLETED, OnboardingStatus.MANAGER_APPROVED
        )
        with pytest.raises(InvalidTransitionError) as exc_info:
            OnboardingStateMachine.validate_transition(
                OnboardingStatus.EXPIRED, OnboardingStatus.IN_PROGRESS
            )
        assert exc_info.value.from_status == "expired"

    def test_employee_editable(self):
        assert OnboardingStateMachine.is_employee_editable("in_progress") is True
        assert OnboardingStateMachine.is_employee_editable("requires_changes") is True
        assert OnboardingStateMachine.is_employee_editable("completed") is False
        assert OnboardingStateMachine.is_employee_editable("expired") is False

    def test_awaiting_review(self):
        assert OnboardingStateMachine.is_awaiting_review("completed") is True
        assert OnboardingStateMachine.is_awaiting_review("manager_approved") is True
        assert OnboardingStateMachine.is_awaiting_review("requires_changes") is False

    def test_get_next_statuses(self):
        assert OnboardingStateMachine.get_next_statuses("completed") == [
            "manager_approved",
            "rejected",
            "requires_changes",
            "cancelled",
        ]

    def test_transition_updates_status(self):
        """transition() sets the new status and returns the old one."""
        session = SimpleNamespace(status="completed")
        previous = OnboardingStateMachine.transition(session, OnboardingStatus.REJECTED)

        assert previous == "completed"
        assert session.status == "rejected"

    def test_failed_transition_leaves_status(self):
        session = SimpleNamespace(status="rejected")
        with pytest.raises(InvalidTransitionError):
            OnboardingStateMachine.transition(session, "completed")
        assert session.status == "rejected"
