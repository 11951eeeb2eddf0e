"""Tests for reviewer decisions."""

from __future__ import annotations

from datetime import date, timedelta

import pytest
from sqlalchemy import update

from onboarding_engine.errors import AuthorizationError, ConflictError, ValidationError
from onboarding_engine.events import (
    OnboardingApproved,
    OnboardingChangesRequested,
    OnboardingManagerApproved,
    OnboardingRejected,
    OnboardingSubmitted,
)
from onboarding_engine.models import Employee, EmploymentStatus, utcnow
from onboarding_engine.services import (
    EmployeeService,
    InvalidTransitionError,
    OnboardingService,
    Principal,
    ReviewAction,
    ReviewService,
)

SIGNATURE = {"signatures": {"handbook": "Eli Park"}}


@pytest.fixture
def onboarding_service(session, settings, emitter) -> OnboardingService:
    return OnboardingService(session, settings=settings, emitter=emitter)


@pytest.fixture
def reviews(session, settings, emitter) -> ReviewService:
    return ReviewService(session, settings=settings, emitter=emitter)


@pytest.fixture
async def submitted(onboarding_service, hr, employee):
    """A session the employee has signed and submitted."""
    created = await onboarding_service.create_session(hr, employee.id, send_email=False)
    onboarding = created.session
    return await onboarding_service.submit_signature(
        onboarding.id, Principal.for_token(onboarding), SIGNATURE
    )


class TestApproval:
    """Test the two approval stages."""

    async def test_manager_approval(self, reviews, manager, submitted, emitter):
        approved = await reviews.approve(submitted.id, manager, "Looks good")

        assert approved.status == "manager_approved"
        section = approved.form_data["manager_approval"]
        assert section["approved_by"] == str(manager.user_id)
        assert section["approver_role"] == "manager"
        assert section["comments"] == "Looks good"
        [event] = emitter.of_type(OnboardingManagerApproved)
        assert event.reviewer_id == manager.user_id

    async def test_final_approval_activates_employee(
        self, reviews, session, manager, hr, submitted, employee, emitter
    ):
        """HR approval and account activation land together."""
        await reviews.approve(submitted.id, manager)
        approved = await reviews.approve(submitted.id, hr, "Welcome aboard")

        assert approved.status == "approved"
        assert approved.form_data["hr_approval"]["approver_role"] == "hr_admin"
        assert "manager_approval" in approved.form_data

        reloaded = await EmployeeService(session).get_employee(employee.id)
        assert reloaded.employment_status == "active"
        assert reloaded.user.is_active is True
        assert emitter.of_type(OnboardingApproved)

    async def test_hr_can_do_both_stages(self, reviews, hr, submitted):
        await reviews.approve(submitted.id, hr)
        approved = await reviews.approve(submitted.id, hr)
        assert approved.status == "approved"

    async def test_manager_cannot_give_final_approval(self, reviews, manager, submitted):
        await reviews.approve(submitted.id, manager)
        with pytest.raises(AuthorizationError):
            await reviews.approve(submitted.id, manager)

    async def test_other_property_manager_denied(self, reviews, other_manager, submitted):
        with pytest.raises(AuthorizationError):
            await reviews.approve(submitted.id, other_manager)

    async def test_employee_cannot_approve(self, reviews, employee_principal, submitted):
        with pytest.raises(AuthorizationError):
            await reviews.approve(submitted.id, employee_principal)

    async def test_in_progress_not_approvable(self, reviews, onboarding_service, hr, employee):
        created = await onboarding_service.create_session(hr, employee.id, send_email=False)
        with pytest.raises(InvalidTransitionError) as exc_info:
            await reviews.approve(created.session.id, hr)
        assert exc_info.value.reason == "session is not awaiting approval"

    async def test_approved_is_final(self, reviews, hr, submitted):
        await reviews.approve(submitted.id, hr)
        await reviews.approve(submitted.id, hr)
        with pytest.raises(InvalidTransitionError):
            await reviews.approve(submitted.id, hr)


class TestRejection:
    async def test_reject_requires_comments(self, reviews, manager, submitted):
        with pytest.raises(ValidationError):
            await reviews.reject(submitted.id, manager, "   ")

    async def test_reject(self, reviews, manager, submitted, emitter):
        rejected = await reviews.reject(submitted.id, manager, " Missing I-9 documents ")

        assert rejected.status == "rejected"
        assert rejected.form_data["rejection"]["comments"] == "Missing I-9 documents"
        [event] = emitter.of_type(OnboardingRejected)
        assert event.comments == "Missing I-9 documents"

    async def test_reject_after_manager_approval(self, reviews, manager, hr, submitted):
        await reviews.approve(submitted.id, manager)
        rejected = await reviews.reject(submitted.id, hr, "Background check failed")
        assert rejected.status == "rejected"


class TestChangeRequests:
    async def test_request_changes_reopens_session(
        self, reviews, onboarding_service, manager, submitted, emitter
    ):
        updated = await reviews.request_changes(
            submitted.id, manager, "Fix the routing number", ["direct_deposit"]
        )

        assert updated.status == "requires_changes"
        assert updated.form_data["change_request"]["sections"] == ["direct_deposit"]
        [event] = emitter.of_type(OnboardingChangesRequested)
        assert event.sections == ("direct_deposit",)

        validation = await onboarding_service.validate_token(updated.token)
        assert validation.is_valid is True

    async def test_request_changes_extends_short_expiry(
        self, reviews, onboarding_service, manager, submitted, settings
    ):
        onboarding = await onboarding_service.store.get(submitted.id)
        await onboarding_service.store.update(onboarding, expires_at=utcnow() + timedelta(hours=1))
        await onboarding_service.session.commit()

        updated = await reviews.request_changes(submitted.id, manager, "Please re-sign")
        assert updated.expires_at >= utcnow() + timedelta(hours=settings.onboarding_ttl_hours - 1)

    async def test_unknown_or_review_sections_rejected(self, reviews, manager, submitted):
        with pytest.raises(ValidationError):
            await reviews.request_changes(submitted.id, manager, "x", ["payroll"])
        with pytest.raises(ValidationError):
            await reviews.request_changes(submitted.id, manager, "x", ["hr_approval"])

    async def test_resubmission_flagged(
        self, reviews, onboarding_service, manager, submitted, emitter
    ):
        """The employee fixes the data and resubmits the same session."""
        await reviews.request_changes(submitted.id, manager, "Fix phone", ["personal_info"])
        holder = Principal.for_token(await onboarding_service.store.get(submitted.id))

        await onboarding_service.update_progress(
            submitted.id, holder, form_data={"personal_info": {"phone": "555-0199"}}
        )
        resubmitted = await onboarding_service.submit(submitted.id, holder)

        assert resubmitted.status == "completed"
        first, second = emitter.of_type(OnboardingSubmitted)
        assert first.resubmission is False
        assert second.resubmission is True

    async def test_second_review_cycle_keeps_first_request(
        self, reviews, onboarding_service, manager, submitted
    ):
        """Earlier change requests and signatures stay in the session history."""
        await reviews.request_changes(
            submitted.id, manager, "Fix your address", ["personal_info", "signature"]
        )
        holder = Principal.for_token(await onboarding_service.store.get(submitted.id))
        await onboarding_service.update_progress(
            submitted.id, holder, form_data={"personal_info": {"address": {"city": "Tulsa"}}}
        )
        await onboarding_service.submit_signature(
            submitted.id, holder, {"signatures": {"handbook": "Eli M. Park"}}
        )

        updated = await reviews.request_changes(submitted.id, manager, "Add middle name")

        assert updated.form_data["change_request"]["notes"] == "Add middle name"
        assert updated.form_data["change_request"]["sections"] == []
        history = updated.form_data["history"]
        requests = [h["data"] for h in history if h["section"] == "change_request"]
        assert [r["notes"] for r in requests] == ["Fix your address", "Add middle name"]
        assert requests[0]["sections"] == ["personal_info", "signature"]
        signatures = [h["data"]["signatures"] for h in history if h["section"] == "signature"]
        assert signatures == [{"handbook": "Eli Park"}, {"handbook": "Eli M. Park"}]

    async def test_no_change_request_after_manager_approval(self, reviews, manager, hr, submitted):
        await reviews.approve(submitted.id, manager)
        with pytest.raises(InvalidTransitionError):
            await reviews.request_changes(submitted.id, hr, "too late")


class TestReviewDispatch:
    async def test_dispatches_each_action(self, reviews, manager, submitted):
        updated = await reviews.review(
            submitted.id, manager, ReviewAction.REQUEST_CHANGES, notes="Fix", sections=["signature"]
        )
        assert updated.status == "requires_changes"

    async def test_reject_via_review_needs_notes(self, reviews, manager, submitted):
        with pytest.raises(ValidationError):
            await reviews.review(submitted.id, manager, ReviewAction.REJECT)

    async def test_approve_via_review(self, reviews, manager, submitted):
        updated = await reviews.review(submitted.id, manager, ReviewAction.APPROVE, notes="ok")
        assert updated.form_data["manager_approval"]["comments"] == "ok"


class TestTerminatedEmployees:
    """Final approval never reactivates a terminated employee."""

    async def test_termination_cancels_pending_approval(
        self, reviews, session, manager, hr, submitted, employee
    ):
        """Terminating mid-review cancels the session; HR cannot approve it."""
        await reviews.approve(submitted.id, manager)
        await EmployeeService(session).terminate(employee.id, hr, date(2026, 6, 1))

        with pytest.raises(InvalidTransitionError):
            await reviews.approve(submitted.id, hr)

        onboarding = await reviews.store.get(submitted.id)
        assert onboarding.status == "cancelled"
        reloaded = await EmployeeService(session).get_employee(employee.id)
        assert reloaded.employment_status == "terminated"
        assert reloaded.user.is_active is False

    async def test_final_approval_refused_for_terminated_employee(
        self, reviews, session, manager, hr, submitted, employee, emitter
    ):
        """A status written outside the service is still honored."""
        await reviews.approve(submitted.id, manager)
        await session.execute(
            update(Employee)
            .where(Employee.id == employee.id)
            .values(employment_status=EmploymentStatus.TERMINATED.value)
        )
        await session.commit()

        with pytest.raises(ConflictError):
            await reviews.approve(submitted.id, hr)

        onboarding = await reviews.store.get(submitted.id)
        assert onboarding.status == "manager_approved"
        reloaded = await EmployeeService(session).get_employee(employee.id)
        assert reloaded.user.is_active is False
        assert not emitter.of_type(OnboardingApproved)
