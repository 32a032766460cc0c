from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy.ext.asyncio import AsyncSession
from src.api.deps import get_blob_storage, get_certificate_renderer, get_db_session, require_roles
from src.api.schemas.certificates import (
    CertificateGenerateRequest,
    CertificateItem,
    CertificateListResponse,
    CertificateVerifyResponse,
    EligibilityResponse,
)
from src.core.auth import Role
from src.domain import User
from src.domain.services.certificates import (
    CertificateNotEligibleError,
    CertificateNotFoundError,
    CertificateService,
)
from src.domain.services.eligibility import CertificateEligibilityChecker
from src.infrastructure.db.models import Certificate
from src.libs.certificate_pdf import CertificateRenderer
from src.libs.storage import BlobStorage, BlobStorageError

router = APIRouter(prefix="/certificates", tags=["Certificates"])

ANY_ROLE = [Role.STUDENT.value, Role.EMPLOYEE.value, Role.ADMIN.value]


def _item(certificate: Certificate) -> CertificateItem:
    return CertificateItem(
        id=certificate.id,
        learner_id=certificate.learner_id,
        program_id=certificate.program_id,
        program_title=certificate.program.title if certificate.program else None,
        certificate_hash=certificate.certificate_hash,
        final_score=certificate.final_score,
        document_url=certificate.document_url,
        issued_by=certificate.issued_by,
        issued_at=certificate.issued_at,
    )


def _target_learner(user: User, learner_id: str | None) -> str:
    target = learner_id or user.user_id
    if not user.can_act_for(target):
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Only admins can act on behalf of another learner",
        )
    return target


@router.get("/eligibility/{program_id}", response_model=EligibilityResponse)
async def check_eligibility(
    program_id: str,
    learner_id: str | None = Query(None),
    session: AsyncSession = Depends(get_db_session),
    user: User = Depends(require_roles(ANY_ROLE)),
) -> EligibilityResponse:
    target = _target_learner(user, learner_id)
    result = await CertificateEligibilityChecker(session).check(target, program_id)
    return EligibilityResponse(
        program_id=program_id,
        can_issue=result.can_issue,
        reason=result.reason,
        already_exists=result.already_exists,
    )


@router.post("/generate", response_model=CertificateItem, status_code=status.HTTP_201_CREATED)
async def generate_certificate(
    payload: CertificateGenerateRequest,
    session: AsyncSession = Depends(get_db_session),
    user: User = Depends(require_roles(ANY_ROLE)),
    storage: BlobStorage = Depends(get_blob_storage),
    renderer: CertificateRenderer = Depends(get_certificate_renderer),
) -> CertificateItem:
    """Issue (or return the already issued) certificate for a program."""
    target = _target_learner(user, payload.learner_id)
    service = CertificateService(session, storage=storage, renderer=renderer)
    try:
        certificate = await service.generate(target, payload.program_id, issuer_id=user.user_id)
    except CertificateNotFoundError as exc:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc)) from exc
    except CertificateNotEligibleError as exc:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=exc.reason) from exc
    except BlobStorageError as exc:
        raise HTTPException(status_code=status.HTTP_502_BAD_GATEWAY, detail=str(exc)) from exc
    return _item(certificate)


@router.get("/me", response_model=CertificateListResponse)
async def my_certificates(
    session: AsyncSession = Depends(get_db_session),
    user: User = Depends(require_roles(ANY_ROLE)),
    storage: BlobStorage = Depends(get_blob_storage),
) -> CertificateListResponse:
    service = CertificateService(session, storage=storage)
    certificates = await service.list_for_learner(user.user_id)
    return CertificateListResponse(certificates=[_item(c) for c in certificates])


@router.get("/verify/{certificate_hash}", response_model=CertificateVerifyResponse)
async def verify_certificate(
    certificate_hash: str,
    session: AsyncSession = Depends(get_db_session),
    storage: BlobStorage = Depends(get_blob_storage),
) -> CertificateVerifyResponse:
    """Public lookup used by the verification link printed on each certificate."""
    service = CertificateService(session, storage=storage)
    try:
        verification = await service.verify(certificate_hash)
    except CertificateNotFoundError as exc:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc)) from exc

    certificate = verification.certificate
    return CertificateVerifyResponse(
        valid=verification.signature_valid,
        certificate_hash=certificate.certificate_hash,
        learner_name=certificate.learner.full_name,
        program_title=certificate.program.title,
        final_score=certificate.final_score,
        issued_at=certificate.issued_at,
        document_url=certificate.document_url,
    )
