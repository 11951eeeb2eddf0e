"""Reviewer and employee notifications driven by domain events.

Delivery is best effort and at most once: the dispatcher runs after the
state change has committed, and any delivery failure is logged and dropped.
"""

from __future__ import annotations

import logging
from dataclasses import asdict, dataclass, field
from typing import Any, Protocol
from uuid import UUID

import httpx
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from onboarding_engine.events import (
    AsyncEventEmitter,
    DomainEvent,
    OnboardingApproved,
    OnboardingChangesRequested,
    OnboardingManagerApproved,
    OnboardingRejected,
    OnboardingSubmitted,
    SessionEvent,
)
from onboarding_engine.models import User, UserRole

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Notification:
    """A message for one user."""

    type: str
    title: str
    content: str
    priority: str = "normal"  # 'normal', 'high', 'urgent'
    data: dict[str, Any] = field(default_factory=dict)


class Notifier(Protocol):
    async def notify_user(self, user_id: UUID, notification: Notification) -> bool: ...


class LogNotifier:
    """Writes notifications to the log. Used when no delivery endpoint is set."""

    async def notify_user(self, user_id: UUID, notification: Notification) -> bool:
        logger.info(
            "Notification for user %s: [%s] %s",
            user_id,
            notification.priority,
            notification.title,
        )
        return True


class WebhookNotifier:
    """Posts notifications as JSON to an HTTP endpoint."""

    def __init__(self, url: str, timeout: float = 10.0):
        self.url = url
        self.timeout = timeout

    async def notify_user(self, user_id: UUID, notification: Notification) -> bool:
        payload = {"user_id": str(user_id), **asdict(notification)}
        try:
            async with httpx.AsyncClient(timeout=self.timeout) as client:
                response = await client.post(self.url, json=payload)
        except httpx.HTTPError:
            logger.exception("Notification webhook failed for user %s", user_id)
            return False

        if response.is_success:
            return True
        logger.warning(
            "Notification webhook returned %s for user %s", response.status_code, user_id
        )
        return False


class RecipientDirectory:
    """Looks up who should hear about a review step."""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]):
        self.session_factory = session_factory

    async def user_ids_with_role(
        self, role: UserRole, organization_id: UUID | None = None
    ) -> list[UUID]:
        """Active users holding ``role``, optionally within one organization."""
        query = select(User.id).where(User.role == role.value, User.is_active.is_(True))
        if organization_id is not None:
            query = query.where(User.organization_id == organization_id)
        async with self.session_factory() as session:
            result = await session.execute(query)
            return list(result.scalars().all())


class NotificationDispatcher:
    """Turns onboarding events into notifications for their recipients.

    - submitted: managers of the employee's organization
    - manager approved: HR admins
    - approved, rejected, changes requested: the employee
    """

    def __init__(self, notifier: Notifier, directory: RecipientDirectory | None = None):
        self.notifier = notifier
        self.directory = directory

    def register(self, emitter: AsyncEventEmitter) -> None:
        """Subscribe to the events that produce notifications."""
        emitter.on(OnboardingSubmitted, self.on_submitted)
        emitter.on(OnboardingManagerApproved, self.on_manager_approved)
        emitter.on(OnboardingApproved, self.on_approved)
        emitter.on(OnboardingRejected, self.on_rejected)
        emitter.on(OnboardingChangesRequested, self.on_changes_requested)

    async def notify_users(self, user_ids: list[UUID], notification: Notification) -> int:
        """Deliver to each user, returning how many deliveries succeeded."""
        delivered = 0
        for user_id in user_ids:
            try:
                if await self.notifier.notify_user(user_id, notification):
                    delivered += 1
            except Exception:
                logger.exception(
                    "Notification %r to user %s failed", notification.title, user_id
                )
        return delivered

    async def _role_recipients(self, role: UserRole, organization_id: UUID | None) -> list[UUID]:
        if self.directory is None:
            return []
        try:
            return await self.directory.user_ids_with_role(role, organization_id)
        except Exception:
            logger.exception("Recipient lookup failed for role %s", role.value)
            return []

    # ------------------------------------------------------------------
    # Event handlers
    # ------------------------------------------------------------------

    async def on_submitted(self, event: DomainEvent) -> None:
        if not isinstance(event, OnboardingSubmitted):
            return
        managers = await self._role_recipients(UserRole.MANAGER, event.metadata.organization_id)
        await self.notify_users(
            managers,
            Notification(
                type="system",
                title=f"Onboarding completed: {event.employee_name}",
                content=f"{event.employee_name} has submitted onboarding and is ready for review.",
                priority="high",
                data=_data(event, "review_onboarding"),
            ),
        )

    async def on_manager_approved(self, event: DomainEvent) -> None:
        if not isinstance(event, OnboardingManagerApproved):
            return
        hr_admins = await self._role_recipients(UserRole.HR_ADMIN, None)
        await self.notify_users(
            hr_admins,
            Notification(
                type="system",
                title=f"Onboarding approved by manager: {event.employee_name}",
                content=f"{event.employee_name} is awaiting final HR approval.",
                priority="high",
                data=_data(event, "hr_final_approval"),
            ),
        )

    async def on_approved(self, event: DomainEvent) -> None:
        if not isinstance(event, OnboardingApproved):
            return
        await self.notify_users(
            [event.employee_user_id],
            Notification(
                type="system",
                title="Onboarding approved",
                content="Your onboarding has been approved. Welcome aboard!",
                data=_data(event, "onboarding_approved"),
            ),
        )

    async def on_rejected(self, event: DomainEvent) -> None:
        if not isinstance(event, OnboardingRejected):
            return
        await self.notify_users(
            [event.employee_user_id],
            Notification(
                type="system",
                title="Onboarding not approved",
                content=event.comments,
                priority="high",
                data={**_data(event, "onboarding_rejected"), "comments": event.comments},
            ),
        )

    async def on_changes_requested(self, event: DomainEvent) -> None:
        if not isinstance(event, OnboardingChangesRequested):
            return
        await self.notify_users(
            [event.employee_user_id],
            Notification(
                type="system",
                title="Changes requested for your onboarding",
                content=event.notes or "Please review and update your onboarding information.",
                priority="high",
                data={
                    **_data(event, "onboarding_changes_requested"),
                    "sections": list(event.sections),
                },
            ),
        )


def _data(event: SessionEvent, action: str) -> dict[str, Any]:
    return {
        "session_id": str(event.session_id),
        "employee_id": str(event.employee_id),
        "action": action,
    }
