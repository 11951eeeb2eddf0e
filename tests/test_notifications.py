"""Tests for event-driven notifications."""

from datetime import datetime, timezone
from uuid import UUID, uuid4

import pytest

from onboarding_engine.events import (
    AsyncEventEmitter,
    EventMetadata,
    OnboardingApproved,
    OnboardingChangesRequested,
    OnboardingManagerApproved,
    OnboardingSubmitted,
)
from onboarding_engine.models import UserRole
from onboarding_engine.services.email import EmailService
from onboarding_engine.services.notifications import (
    Notification,
    NotificationDispatcher,
    RecipientDirectory,
)

NOW = datetime(2026, 3, 2, 9, 30, tzinfo=timezone.utc)


class RecordingNotifier:
    def __init__(self, fail_for: set[UUID] | None = None):
        self.fail_for = fail_for or set()
        self.sent: list[tuple[UUID, Notification]] = []

    async def notify_user(self, user_id: UUID, notification: Notification) -> bool:
        if user_id in self.fail_for:
            raise ConnectionError("delivery failed")
        self.sent.append((user_id, notification))
        return True


def session_fields(organization_id=None, employee_user_id=None):
    return dict(
        metadata=EventMetadata.create(organization_id=organization_id, actor_type="user"),
        session_id=uuid4(),
        employee_id=uuid4(),
        employee_user_id=employee_user_id or uuid4(),
        employee_name="Eli Park",
    )


class TestRecipientDirectory:
    async def test_active_users_by_role_and_organization(
        self, session_factory, organization, other_organization, make_user
    ):
        mine = await make_user(organization, UserRole.MANAGER)
        await make_user(other_organization, UserRole.MANAGER)
        await make_user(organization, UserRole.MANAGER, is_active=False)
        await make_user(organization, UserRole.EMPLOYEE)

        directory = RecipientDirectory(session_factory)

        assert await directory.user_ids_with_role(UserRole.MANAGER, organization.id) == [mine.id]
        assert len(await directory.user_ids_with_role(UserRole.MANAGER)) == 2


class TestNotificationDispatcher:
    """Test who hears about which review step."""

    @pytest.fixture
    def notifier(self) -> RecordingNotifier:
        return RecordingNotifier()

    @pytest.fixture
    def emitter(self, notifier, session_factory) -> AsyncEventEmitter:
        emitter = AsyncEventEmitter()
        NotificationDispatcher(notifier, RecipientDirectory(session_factory)).register(emitter)
        return emitter

    async def test_submission_notifies_property_managers(
        self, emitter, notifier, organization, manager_user, other_manager_user
    ):
        await emitter.emit(
            OnboardingSubmitted(completed_at=NOW, **session_fields(organization.id))
        )

        assert [user_id for user_id, _ in notifier.sent] == [manager_user.id]
        notification = notifier.sent[0][1]
        assert notification.title == "Onboarding completed: Eli Park"
        assert notification.priority == "high"
        assert notification.data["action"] == "review_onboarding"

    async def test_manager_approval_notifies_hr(self, emitter, notifier, hr_user, manager_user):
        await emitter.emit(
            OnboardingManagerApproved(reviewer_id=manager_user.id, **session_fields())
        )
        assert [user_id for user_id, _ in notifier.sent] == [hr_user.id]

    async def test_final_approval_notifies_employee(self, emitter, notifier):
        employee_user_id = uuid4()
        await emitter.emit(
            OnboardingApproved(reviewer_id=uuid4(), **session_fields(employee_user_id=employee_user_id))
        )
        [(user_id, notification)] = notifier.sent
        assert user_id == employee_user_id
        assert notification.data["action"] == "onboarding_approved"

    async def test_change_request_lists_sections(self, emitter, notifier):
        await emitter.emit(
            OnboardingChangesRequested(
                reviewer_id=uuid4(),
                notes="Fix deposit",
                sections=("direct_deposit",),
                **session_fields(),
            )
        )
        [(_, notification)] = notifier.sent
        assert notification.content == "Fix deposit"
        assert notification.data["sections"] == ["direct_deposit"]

    async def test_delivery_failures_are_swallowed(self):
        failing = uuid4()
        notifier = RecordingNotifier(fail_for={failing})
        dispatcher = NotificationDispatcher(notifier)
        ok = uuid4()

        delivered = await dispatcher.notify_users(
            [failing, ok], Notification(type="system", title="t", content="c")
        )

        assert delivered == 1
        assert [user_id for user_id, _ in notifier.sent] == [ok]

    async def test_no_directory_means_no_role_recipients(self, notifier):
        dispatcher = NotificationDispatcher(notifier)
        await dispatcher.on_submitted(OnboardingSubmitted(completed_at=NOW, **session_fields()))
        assert notifier.sent == []


class TestEmailService:
    async def test_unconfigured_mailer_skips(self, settings):
        service = EmailService(settings)
        assert service.is_configured() is False
        sent = await service.send_onboarding_invitation(
            to_email="eli@example.com",
            employee_name="Eli Park",
            position="Front Desk Agent",
            organization_name="Seaside Motel",
            onboarding_url="https://hr.example.com/onboarding?token=abc123def456",
            token="abc123def456",
        )
        assert sent is False
