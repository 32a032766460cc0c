from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.ext.asyncio import AsyncSession
from src.api.deps import get_db_session, require_roles
from src.api.schemas.enrollments import (
    EnrollmentGrantBody,
    EnrollmentRequestBody,
    EnrollmentResponse,
    EnrollmentStatusBody,
)
from src.core.auth import LEARNER_ROLES, Role
from src.domain import User
from src.domain.services.enrollments import (
    EnrollmentConflictError,
    EnrollmentNotFoundError,
    EnrollmentService,
    PaidProgramError,
)
from src.infrastructure.db.models import Enrollment, EnrollmentStatus

router = APIRouter(prefix="/enrollments", tags=["Enrollments"])


def _response(enrollment: Enrollment, payment_status: str | None = None) -> EnrollmentResponse:
    return EnrollmentResponse(
        id=enrollment.id,
        learner_id=enrollment.learner_id,
        program_id=enrollment.program_id,
        status=enrollment.status.value,
        payment_status=payment_status,
        created_at=enrollment.created_at,
    )


@router.post("", response_model=EnrollmentResponse, status_code=status.HTTP_201_CREATED)
async def request_enrollment(
    payload: EnrollmentRequestBody,
    session: AsyncSession = Depends(get_db_session),
    user: User = Depends(require_roles(list(LEARNER_ROLES))),
) -> EnrollmentResponse:
    try:
        enrollment = await EnrollmentService(session).request(user.user_id, payload.program_id)
    except EnrollmentNotFoundError as exc:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc)) from exc
    except PaidProgramError as exc:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc)) from exc
    except EnrollmentConflictError as exc:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(exc)) from exc
    return _response(enrollment)


@router.post("/grant", response_model=EnrollmentResponse, status_code=status.HTTP_201_CREATED)
async def grant_enrollment(
    payload: EnrollmentGrantBody,
    session: AsyncSession = Depends(get_db_session),
    user: User = Depends(require_roles([Role.ADMIN.value])),
) -> EnrollmentResponse:
    service = EnrollmentService(session)
    try:
        enrollment = await service.grant(payload.learner_id, payload.program_id, user.user_id)
    except EnrollmentNotFoundError as exc:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc)) from exc
    except EnrollmentConflictError as exc:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(exc)) from exc
    return _response(enrollment)


@router.patch("/{enrollment_id}", response_model=EnrollmentResponse)
async def set_enrollment_status(
    enrollment_id: str,
    payload: EnrollmentStatusBody,
    session: AsyncSession = Depends(get_db_session),
    user: User = Depends(require_roles([Role.ADMIN.value])),
) -> EnrollmentResponse:
    """Approve or reject an enrollment request."""
    service = EnrollmentService(session)
    try:
        enrollment = await service.set_status(
            enrollment_id, EnrollmentStatus(payload.status), user.user_id
        )
    except EnrollmentNotFoundError as exc:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc)) from exc
    except EnrollmentConflictError as exc:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(exc)) from exc

    payment_status = enrollment.payment.status.value if enrollment.payment else None
    return _response(enrollment, payment_status)
