"""Employee account lifecycle outside the onboarding wizard."""

from __future__ import annotations

import logging
from datetime import date
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from onboarding_engine.database import transaction
from onboarding_engine.errors import ConflictError, NotFoundError, ValidationError
from onboarding_engine.events import AsyncEventEmitter, EmployeeTerminated
from onboarding_engine.models import Employee, EmploymentStatus, User
from onboarding_engine.services.access_control import AccessPolicy, Action, Principal, Target
from onboarding_engine.services.onboarding_service import event_metadata
from onboarding_engine.services.session_store import OnboardingSessionStore

logger = logging.getLogger(__name__)


class EmployeeService:
    def __init__(
        self,
        session: AsyncSession,
        emitter: AsyncEventEmitter | None = None,
        policy: AccessPolicy | None = None,
    ):
        self.session = session
        self.emitter = emitter or AsyncEventEmitter()
        self.policy = policy or AccessPolicy()

    async def get_employee(self, employee_id: UUID) -> Employee:
        result = await self.session.execute(
            select(Employee)
            .where(Employee.id == employee_id)
            .options(selectinload(Employee.user).selectinload(User.organization))
            .execution_options(populate_existing=True)
        )
        employee = result.scalar_one_or_none()
        if employee is None:
            raise NotFoundError("Employee not found")
        return employee

    async def terminate(
        self,
        employee_id: UUID,
        principal: Principal | None,
        termination_date: date,
        rehire_eligible: bool = True,
        manager_rating: int | None = None,
    ) -> Employee:
        """Terminate an employee and deactivate their user in one transaction.

        Open onboarding sessions are cancelled in the same transaction, so a
        pending approval can no longer reactivate the account.
        """
        employee = await self.get_employee(employee_id)
        self.policy.authorize(principal, Action.TERMINATE_EMPLOYEE, Target.of_employee(employee))

        if employee.employment_status == EmploymentStatus.TERMINATED:
            raise ConflictError("Employee is already terminated")
        if termination_date < employee.hire_date:
            raise ValidationError(
                "Termination date cannot be before the hire date",
                errors=[{"loc": ["body", "termination_date"], "msg": "before hire date"}],
            )
        if manager_rating is not None and not 1 <= manager_rating <= 5:
            raise ValidationError(
                "Manager rating must be between 1 and 5",
                errors=[{"loc": ["body", "manager_rating"], "msg": "out of range"}],
            )

        async with transaction(self.session):
            employee.employment_status = EmploymentStatus.TERMINATED.value
            employee.termination_date = termination_date
            employee.rehire_eligible = rehire_eligible
            employee.manager_rating = manager_rating
            employee.user.is_active = False
            await self.session.flush()
            cancelled = await OnboardingSessionStore(self.session).cancel_open_sessions(
                employee.id
            )

        logger.info(
            "Employee %s terminated effective %s; %d onboarding sessions cancelled",
            employee.id,
            termination_date,
            cancelled,
        )
        await self.emitter.emit(
            EmployeeTerminated(
                metadata=event_metadata(principal, employee.organization_id),
                employee_id=employee.id,
                user_id=employee.user_id,
                termination_date=termination_date,
                rehire_eligible=rehire_eligible,
                cancelled_sessions=cancelled,
            )
        )
        return employee
