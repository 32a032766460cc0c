from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.ext.asyncio import AsyncSession
from src.api.deps import get_blob_storage, get_certificate_renderer, get_db_session, require_roles
from src.api.schemas.assessments import (
    AnswerOptionItem,
    AssessmentDetailResponse,
    AssessmentSubmitRequest,
    AssessmentSubmitResponse,
    AttemptItem,
    AttemptListResponse,
    QuestionItem,
)
from src.core.auth import Role
from src.domain import User
from src.domain.services.attempts import (
    AssessmentAccessDeniedError,
    AssessmentGate,
    AssessmentNotFoundError,
    AttemptRecorder,
    SubmissionService,
)
from src.domain.services.certificates import CertificateService
from src.libs.certificate_pdf import CertificateRenderer
from src.libs.storage import BlobStorage

router = APIRouter(prefix="/assessments", tags=["Assessments"])

ANY_ROLE = [Role.STUDENT.value, Role.EMPLOYEE.value, Role.ADMIN.value]


@router.get("/{assessment_id}", response_model=AssessmentDetailResponse)
async def get_assessment(
    assessment_id: str,
    session: AsyncSession = Depends(get_db_session),
    user: User = Depends(require_roles(ANY_ROLE)),
) -> AssessmentDetailResponse:
    """Return the assessment for answering; correct options are never exposed."""
    try:
        assessment = await AssessmentGate(session).load_for(user, assessment_id)
    except AssessmentNotFoundError as exc:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc)) from exc
    except AssessmentAccessDeniedError as exc:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail=str(exc)) from exc

    return AssessmentDetailResponse(
        id=assessment.id,
        program_id=assessment.program_id,
        kind=assessment.kind.value,
        title=assessment.title,
        passing_score=assessment.passing_score,
        questions=[
            QuestionItem(
                id=question.id,
                sequence=question.sequence,
                prompt=question.prompt,
                options=[
                    AnswerOptionItem(id=option.id, sequence=option.sequence, text=option.text)
                    for option in question.options
                ],
            )
            for question in assessment.questions
        ],
    )


@router.post("/{assessment_id}/submit", response_model=AssessmentSubmitResponse)
async def submit_assessment(
    assessment_id: str,
    payload: AssessmentSubmitRequest,
    session: AsyncSession = Depends(get_db_session),
    user: User = Depends(require_roles(ANY_ROLE)),
    storage: BlobStorage = Depends(get_blob_storage),
    renderer: CertificateRenderer = Depends(get_certificate_renderer),
) -> AssessmentSubmitResponse:
    """
    Grade a submission and append it to the attempt log.

    Passing a final exam issues the program certificate in the same request;
    a certificate failure is reported through ``certificate_generated`` and
    never hides the score.
    """
    certificates = CertificateService(session, storage=storage, renderer=renderer)
    service = SubmissionService(session, certificates=certificates)
    try:
        result = await service.submit(user, assessment_id, payload.answers)
    except AssessmentNotFoundError as exc:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc)) from exc
    except AssessmentAccessDeniedError as exc:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail=str(exc)) from exc

    return AssessmentSubmitResponse(
        attempt_id=result.attempt_id,
        assessment_id=result.assessment_id,
        score=result.score,
        passed=result.passed,
        correct_count=result.correct_count,
        total_count=result.total_count,
        passing_score=result.passing_score,
        certificate_generated=result.certificate_generated,
        certificate_hash=result.certificate_hash,
    )


@router.get("/{assessment_id}/attempts", response_model=AttemptListResponse)
async def list_attempts(
    assessment_id: str,
    session: AsyncSession = Depends(get_db_session),
    user: User = Depends(require_roles(ANY_ROLE)),
) -> AttemptListResponse:
    try:
        await AssessmentGate(session).load_for(user, assessment_id)
    except AssessmentNotFoundError as exc:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc)) from exc
    except AssessmentAccessDeniedError as exc:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail=str(exc)) from exc

    attempts = await AttemptRecorder(session).history(user.user_id, assessment_id)
    return AttemptListResponse(
        assessment_id=assessment_id,
        attempts=[
            AttemptItem(
                id=attempt.id,
                score=attempt.score,
                passed=attempt.passed,
                correct_count=attempt.correct_count,
                total_count=attempt.total_count,
                created_at=attempt.created_at,
            )
            for attempt in attempts
        ],
    )
