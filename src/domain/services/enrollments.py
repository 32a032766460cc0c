from __future__ import annotations

import structlog
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession
from src.infrastructure.db.models import Enrollment, EnrollmentStatus, PaymentStatus
from src.infrastructure.repositories import UnitOfWork

logger = structlog.get_logger()


class EnrollmentNotFoundError(Exception):
    """Raised when the enrollment, learner or program does not exist."""


class EnrollmentConflictError(Exception):
    """Raised when the requested change would break the enrollment lifecycle."""


class PaidProgramError(Exception):
    """Raised when a paid program is requested without going through checkout."""


class EnrollmentService:
    """Enrollment requests and administrative decisions."""

    def __init__(self, session: AsyncSession) -> None:
        self.uow = UnitOfWork(session)

    async def request(self, learner_id: str, program_id: str) -> Enrollment:
        """Ask for admission to a free program; an admin approves later."""
        program = await self.uow.programs.get(program_id)
        if program is None or not program.is_published:
            raise EnrollmentNotFoundError("Program not found")
        if (program.price or 0) > 0:
            raise PaidProgramError("Paid programs require checkout")
        if await self.uow.users.get(learner_id) is None:
            raise EnrollmentNotFoundError("Learner profile not found")
        return await self._create(learner_id, program_id, EnrollmentStatus.PENDING)

    async def grant(self, learner_id: str, program_id: str, admin_id: str) -> Enrollment:
        """Admit a learner directly, as done for corporate training rosters."""
        if await self.uow.programs.get(program_id) is None:
            raise EnrollmentNotFoundError("Program not found")
        if await self.uow.users.get(learner_id) is None:
            raise EnrollmentNotFoundError("Learner not found")
        enrollment = await self._create(learner_id, program_id, EnrollmentStatus.APPROVED)
        await logger.ainfo(
            "enrollment_granted",
            enrollment_id=enrollment.id,
            learner_id=learner_id,
            program_id=program_id,
            admin_id=admin_id,
        )
        return enrollment

    async def set_status(
        self, enrollment_id: str, status: EnrollmentStatus, admin_id: str
    ) -> Enrollment:
        enrollment = await self.uow.enrollments.get(enrollment_id)
        if enrollment is None:
            raise EnrollmentNotFoundError("Enrollment not found")
        if status == EnrollmentStatus.PENDING:
            raise EnrollmentConflictError("Enrollments cannot be moved back to PENDING")

        payment = enrollment.payment
        if payment is not None and payment.status != PaymentStatus.COMPLETED:
            raise EnrollmentConflictError("Enrollment has an unsettled payment")

        previous = enrollment.status
        enrollment.status = status
        await self.uow.commit()
        await logger.ainfo(
            "enrollment_status_changed",
            enrollment_id=enrollment_id,
            previous=previous.value,
            status=status.value,
            admin_id=admin_id,
        )
        return enrollment

    async def _create(
        self, learner_id: str, program_id: str, status: EnrollmentStatus
    ) -> Enrollment:
        existing = await self.uow.enrollments.find(learner_id=learner_id, program_id=program_id)
        if existing is not None:
            raise EnrollmentConflictError("Enrollment already exists")

        enrollment = self.uow.enrollments.add(
            learner_id=learner_id, program_id=program_id, status=status
        )
        try:
            await self.uow.commit()
        except IntegrityError as exc:
            await self.uow.rollback()
            raise EnrollmentConflictError("Enrollment already exists") from exc
        return enrollment
