"""
Assessment submission: grading, the attempt log and automatic certificates.

Every submission is graded and appended to the attempt log; nothing is ever
overwritten. Passing a program's final exam triggers certificate issuance in
the same request.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any

import structlog
from sqlalchemy.ext.asyncio import AsyncSession
from src.domain.models import User
from src.domain.services.certificates import CertificateService
from src.domain.services.scoring import ScoreResult, ScoringQuestion, score_submission
from src.infrastructure.db.models import Assessment, AssessmentKind, Attempt, EnrollmentStatus
from src.infrastructure.repositories import UnitOfWork

logger = structlog.get_logger()


class AssessmentNotFoundError(Exception):
    """Raised when the assessment does not exist."""


class AssessmentAccessDeniedError(Exception):
    """Raised when the learner has no approved enrollment in the program."""


@dataclass(slots=True)
class SubmissionResult:
    attempt_id: str
    assessment_id: str
    score: float
    passed: bool
    correct_count: int
    total_count: int
    passing_score: float
    certificate_generated: bool = False
    certificate_hash: str | None = None


def scoring_questions(assessment: Assessment) -> list[ScoringQuestion]:
    questions = []
    for question in assessment.questions:
        correct = next((option.id for option in question.options if option.is_correct), None)
        questions.append(ScoringQuestion(question_id=question.id, correct_answer_id=correct))
    return questions


class AttemptRecorder:
    """Append-only writer and reader for the attempt log."""

    def __init__(self, session: AsyncSession) -> None:
        self.uow = UnitOfWork(session)

    async def record(
        self,
        learner_id: str,
        assessment_id: str,
        answers: Any,
        result: ScoreResult,
    ) -> str:
        attempt = await self.uow.attempts.add(
            learner_id=learner_id,
            assessment_id=assessment_id,
            answers=dict(answers) if isinstance(answers, dict) else {},
            score=result.score,
            passed=result.passed,
            correct_count=result.correct_count,
            total_count=result.total_count,
        )
        await self.uow.commit()
        return attempt.id

    async def has_passed(self, learner_id: str, assessment_id: str) -> bool:
        return await self.latest_passing(learner_id, assessment_id) is not None

    async def latest_passing(self, learner_id: str, assessment_id: str) -> Attempt | None:
        return await self.uow.attempts.latest_passing(
            learner_id=learner_id, assessment_id=assessment_id
        )

    async def history(self, learner_id: str, assessment_id: str) -> list[Attempt]:
        return await self.uow.attempts.list_for(
            learner_id=learner_id, assessment_id=assessment_id
        )


class AssessmentGate:
    """Loads assessments on behalf of a user, enforcing enrollment."""

    def __init__(self, session: AsyncSession) -> None:
        self.uow = UnitOfWork(session)

    async def load_for(self, user: User, assessment_id: str) -> Assessment:
        """Return the assessment if ``user`` may take it."""
        assessment = await self.uow.assessments.get_with_questions(assessment_id)
        if assessment is None:
            raise AssessmentNotFoundError("Assessment not found")

        if not user.is_admin:
            enrollment = await self.uow.enrollments.find(
                learner_id=user.user_id, program_id=assessment.program_id
            )
            if enrollment is None or enrollment.status != EnrollmentStatus.APPROVED:
                raise AssessmentAccessDeniedError("Approved enrollment required")
        return assessment


class SubmissionService:
    """Grades a submission, records it and issues the certificate when earned."""

    def __init__(self, session: AsyncSession, *, certificates: CertificateService) -> None:
        self.uow = UnitOfWork(session)
        self.gate = AssessmentGate(session)
        self.recorder = AttemptRecorder(session)
        self.certificates = certificates

    async def submit(self, user: User, assessment_id: str, answers: Any) -> SubmissionResult:
        assessment = await self.gate.load_for(user, assessment_id)
        program_id = assessment.program_id
        is_final_exam = assessment.kind == AssessmentKind.FINAL_EXAM
        passing_score = assessment.passing_score

        result = score_submission(scoring_questions(assessment), answers, passing_score)
        attempt_id = await self.recorder.record(user.user_id, assessment_id, answers, result)

        await logger.ainfo(
            "assessment_attempt_recorded",
            assessment_id=assessment_id,
            learner_id=user.user_id,
            attempt_id=attempt_id,
            score=result.score,
            passed=result.passed,
        )

        submission = SubmissionResult(
            attempt_id=attempt_id,
            assessment_id=assessment_id,
            score=result.score,
            passed=result.passed,
            correct_count=result.correct_count,
            total_count=result.total_count,
            passing_score=passing_score,
        )

        if is_final_exam and result.passed:
            try:
                certificate = await self.certificates.generate(user.user_id, program_id)
            except Exception as exc:
                await self.uow.rollback()
                await logger.aerror(
                    "certificate_auto_issue_failed",
                    learner_id=user.user_id,
                    program_id=program_id,
                    error=str(exc),
                )
            else:
                submission.certificate_generated = True
                submission.certificate_hash = certificate.certificate_hash

        return submission
