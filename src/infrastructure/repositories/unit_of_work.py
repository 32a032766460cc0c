from __future__ import annotations

import structlog
from sqlalchemy.ext.asyncio import AsyncSession
from src.infrastructure.repositories.billing import (
    CouponRepository,
    EnrollmentRepository,
    PaymentRepository,
)
from src.infrastructure.repositories.certificates import (
    CertificateRepository,
    CertificateTemplateRepository,
)
from src.infrastructure.repositories.learning import (
    AssessmentRepository,
    AttemptRepository,
    ProgramRepository,
    UserRepository,
)

logger = structlog.get_logger()


class UnitOfWork:
    """Groups the repositories that share one session and one transaction."""

    def __init__(self, session: AsyncSession) -> None:
        self.session = session
        self.users = UserRepository(session)
        self.programs = ProgramRepository(session)
        self.assessments = AssessmentRepository(session)
        self.attempts = AttemptRepository(session)
        self.enrollments = EnrollmentRepository(session)
        self.payments = PaymentRepository(session)
        self.coupons = CouponRepository(session)
        self.certificates = CertificateRepository(session)
        self.templates = CertificateTemplateRepository(session)

    async def commit(self) -> None:
        await self.session.commit()

    async def rollback(self) -> None:
        await self.session.rollback()
        logger.debug("uow_rollback")
