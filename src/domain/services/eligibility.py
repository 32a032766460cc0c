from __future__ import annotations

from dataclasses import dataclass

from sqlalchemy.ext.asyncio import AsyncSession
from src.infrastructure.db.models import EnrollmentStatus
from src.infrastructure.repositories import UnitOfWork

REASON_ALREADY_ISSUED = "certificate already issued"
REASON_NOT_ENROLLED = "not enrolled or not approved"
REASON_EXAM_NOT_PASSED = "final exam not passed"


@dataclass(slots=True)
class EligibilityResult:
    can_issue: bool
    reason: str | None = None
    already_exists: bool = False


class CertificateEligibilityChecker:
    """Decides whether a learner may receive a program certificate."""

    def __init__(self, session: AsyncSession) -> None:
        self.uow = UnitOfWork(session)

    async def check(self, learner_id: str, program_id: str) -> EligibilityResult:
        if await self.uow.certificates.find(learner_id=learner_id, program_id=program_id):
            return EligibilityResult(
                can_issue=False, reason=REASON_ALREADY_ISSUED, already_exists=True
            )
        return await self.check_requirements(learner_id, program_id)

    async def check_requirements(self, learner_id: str, program_id: str) -> EligibilityResult:
        """Enrollment and final exam checks, without looking at issued certificates."""
        enrollment = await self.uow.enrollments.find(learner_id=learner_id, program_id=program_id)
        if enrollment is None or enrollment.status != EnrollmentStatus.APPROVED:
            return EligibilityResult(can_issue=False, reason=REASON_NOT_ENROLLED)

        final_exam = await self.uow.assessments.final_exam_for(program_id)
        if final_exam is None:
            return EligibilityResult(can_issue=False, reason=REASON_EXAM_NOT_PASSED)

        passing = await self.uow.attempts.latest_passing(
            learner_id=learner_id, assessment_id=final_exam.id
        )
        if passing is None:
            return EligibilityResult(can_issue=False, reason=REASON_EXAM_NOT_PASSED)

        return EligibilityResult(can_issue=True)
