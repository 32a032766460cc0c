"""
Certificate issuance and verification.

A learner gets at most one certificate per program. Issuance renders a PDF
(custom layout when one is configured, built-in design otherwise), uploads it
to blob storage and stores a row carrying a short public hash and an HMAC
signature over the certified facts.
"""

from __future__ import annotations

import hashlib
import hmac
from dataclasses import dataclass
from datetime import UTC, datetime

import structlog
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession
from src.core.config import Settings, get_settings
from src.domain.services.eligibility import CertificateEligibilityChecker
from src.infrastructure.db.models import Certificate, CertificateTemplate, Program, UserModel
from src.infrastructure.repositories import UnitOfWork
from src.libs.certificate_pdf import CertificateData, CertificateRenderer
from src.libs.storage import BlobStorage, BlobStorageError

logger = structlog.get_logger()

SYSTEM_ISSUER = "system"
CERTIFICATE_FOLDER = "certificates"
HASH_LENGTH = 16


class CertificateNotFoundError(Exception):
    """Raised when the learner, program or certificate does not exist."""


class CertificateNotEligibleError(Exception):
    """Raised when the learner does not meet the issuance requirements."""

    def __init__(self, reason: str) -> None:
        super().__init__(reason)
        self.reason = reason


@dataclass(slots=True)
class CertificateVerification:
    certificate: Certificate
    signature_valid: bool


def build_certificate_hash(learner_id: str, program_id: str, issued_at: datetime) -> str:
    millis = int(issued_at.timestamp() * 1000)
    digest = hashlib.sha256(f"{learner_id}-{program_id}-{millis}".encode()).hexdigest()
    return digest[:HASH_LENGTH].upper()


def sign_certificate(
    secret: str, certificate_hash: str, learner_id: str, program_id: str, final_score: float
) -> str:
    message = f"{certificate_hash}-{learner_id}-{program_id}-{final_score}"
    return hmac.new(secret.encode(), message.encode(), hashlib.sha256).hexdigest()


def signature_matches(secret: str, certificate: Certificate) -> bool:
    expected = sign_certificate(
        secret,
        certificate.certificate_hash,
        certificate.learner_id,
        certificate.program_id,
        certificate.final_score,
    )
    return hmac.compare_digest(expected, certificate.digital_signature)


class CertificateService:
    """Issues, lists and verifies certificates."""

    def __init__(
        self,
        session: AsyncSession,
        *,
        storage: BlobStorage,
        renderer: CertificateRenderer | None = None,
        settings: Settings | None = None,
    ) -> None:
        self.uow = UnitOfWork(session)
        self.storage = storage
        self.renderer = renderer or CertificateRenderer()
        self.settings = settings or get_settings()
        self.eligibility = CertificateEligibilityChecker(session)

    async def generate(
        self, learner_id: str, program_id: str, issuer_id: str = SYSTEM_ISSUER
    ) -> Certificate:
        """Issue the certificate for (learner, program), or return the existing one."""
        existing = await self.uow.certificates.find(learner_id=learner_id, program_id=program_id)
        if existing is not None:
            return existing

        learner = await self.uow.users.get(learner_id)
        if learner is None:
            raise CertificateNotFoundError("Learner not found")
        program = await self.uow.programs.get(program_id)
        if program is None:
            raise CertificateNotFoundError("Program not found")

        eligibility = await self.eligibility.check_requirements(learner_id, program_id)
        if not eligibility.can_issue:
            raise CertificateNotEligibleError(eligibility.reason or "not eligible")

        final_exam = await self.uow.assessments.final_exam_for(program_id)
        attempt = await self.uow.attempts.latest_passing(
            learner_id=learner_id, assessment_id=final_exam.id
        )
        final_score = attempt.score

        issued_at = datetime.now(UTC)
        certificate_hash = build_certificate_hash(learner_id, program_id, issued_at)
        signature = sign_certificate(
            self.settings.certificate_secret,
            certificate_hash,
            learner_id,
            program_id,
            final_score,
        )

        template = await self.uow.templates.resolve(
            program_id=program_id, company_id=learner.company_id
        )
        data = self._certificate_data(learner, program, final_score, certificate_hash, issued_at)
        rendered = await self.renderer.render(data, template.template_url if template else None)

        document_url = await self.storage.upload(
            rendered.content,
            f"certificate-{certificate_hash}.pdf",
            "application/pdf",
            CERTIFICATE_FOLDER,
        )

        certificate = Certificate(
            learner_id=learner_id,
            program_id=program_id,
            certificate_hash=certificate_hash,
            digital_signature=signature,
            final_score=final_score,
            document_url=document_url,
            template_id=self._template_id(template, rendered.used_template),
            issued_by=issuer_id,
            issued_at=issued_at,
        )
        try:
            await self.uow.certificates.add(certificate)
            await self.uow.commit()
        except IntegrityError:
            await self.uow.rollback()
            await self._discard_document(document_url)
            stored = await self.uow.certificates.find(
                learner_id=learner_id, program_id=program_id
            )
            if stored is None:
                raise
            await logger.ainfo(
                "certificate_issue_race_resolved",
                learner_id=learner_id,
                program_id=program_id,
                certificate_hash=stored.certificate_hash,
            )
            return stored

        await logger.ainfo(
            "certificate_issued",
            learner_id=learner_id,
            program_id=program_id,
            certificate_hash=certificate_hash,
            final_score=final_score,
            used_template=rendered.used_template,
            issued_by=issuer_id,
        )
        return await self.uow.certificates.find(learner_id=learner_id, program_id=program_id)

    async def verify(self, certificate_hash: str) -> CertificateVerification:
        certificate = await self.uow.certificates.get_by_hash(certificate_hash)
        if certificate is None:
            raise CertificateNotFoundError("Certificate not found")
        return CertificateVerification(
            certificate=certificate,
            signature_valid=signature_matches(self.settings.certificate_secret, certificate),
        )

    async def list_for_learner(self, learner_id: str) -> list[Certificate]:
        return await self.uow.certificates.list_for_learner(learner_id)

    def _certificate_data(
        self,
        learner: UserModel,
        program: Program,
        final_score: float,
        certificate_hash: str,
        issued_at: datetime,
    ) -> CertificateData:
        app_url = self.settings.app_url.rstrip("/")
        return CertificateData(
            learner_name=learner.full_name,
            tax_id=learner.tax_id or "",
            program_title=program.title,
            duration=program.duration or "",
            completion_date=issued_at.strftime("%d/%m/%Y"),
            final_score=f"{final_score:.1f}%",
            certificate_hash=certificate_hash,
            verification_url=f"{app_url}/certificates/verify/{certificate_hash}",
            company_name=learner.company.name if learner.company else "",
        )

    @staticmethod
    def _template_id(template: CertificateTemplate | None, used_template: bool) -> str | None:
        if template is None or not used_template:
            return None
        return template.id

    async def _discard_document(self, document_url: str) -> None:
        try:
            await self.storage.delete(document_url)
        except BlobStorageError as exc:
            await logger.awarning(
                "certificate_orphan_cleanup_failed", document_url=document_url, error=str(exc)
            )
