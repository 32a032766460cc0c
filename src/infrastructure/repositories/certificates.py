"""Repositories for issued certificates and their templates."""

from __future__ import annotations

from dataclasses import dataclass

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload
from src.infrastructure.db.models import Certificate, CertificateTemplate


@dataclass
class CertificateRepository:
    session: AsyncSession

    async def find(self, *, learner_id: str, program_id: str) -> Certificate | None:
        stmt = (
            select(Certificate)
            .where(Certificate.learner_id == learner_id, Certificate.program_id == program_id)
            .options(selectinload(Certificate.learner), selectinload(Certificate.program))
        )
        return await self.session.scalar(stmt)

    async def get_by_hash(self, certificate_hash: str) -> Certificate | None:
        stmt = (
            select(Certificate)
            .where(Certificate.certificate_hash == certificate_hash.strip().upper())
            .options(selectinload(Certificate.learner), selectinload(Certificate.program))
        )
        return await self.session.scalar(stmt)

    async def list_for_learner(self, learner_id: str) -> list[Certificate]:
        stmt = (
            select(Certificate)
            .where(Certificate.learner_id == learner_id)
            .options(selectinload(Certificate.program))
            .order_by(Certificate.issued_at.desc())
        )
        return list((await self.session.execute(stmt)).scalars().all())

    async def add(self, certificate: Certificate) -> Certificate:
        """Insert and flush so the unique (learner, program) index is checked now."""
        self.session.add(certificate)
        await self.session.flush()
        return certificate


@dataclass
class CertificateTemplateRepository:
    session: AsyncSession

    async def resolve(self, *, program_id: str, company_id: str | None) -> CertificateTemplate | None:
        """Pick the most specific template: program+company, program, then default."""
        if company_id:
            stmt = select(CertificateTemplate).where(
                CertificateTemplate.program_id == program_id,
                CertificateTemplate.company_id == company_id,
            )
            template = await self.session.scalar(stmt)
            if template is not None:
                return template

        stmt = select(CertificateTemplate).where(
            CertificateTemplate.program_id == program_id,
            CertificateTemplate.company_id.is_(None),
        )
        template = await self.session.scalar(stmt)
        if template is not None:
            return template

        stmt = (
            select(CertificateTemplate)
            .where(CertificateTemplate.is_default.is_(True))
            .order_by(CertificateTemplate.created_at.desc())
            .limit(1)
        )
        return await self.session.scalar(stmt)
