"""Repositories for enrollments, payments and coupons."""

from __future__ import annotations

from dataclasses import dataclass

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload
from src.infrastructure.db.models import (
    Coupon,
    CouponProgram,
    CouponUsage,
    Enrollment,
    EnrollmentStatus,
    Payment,
)


@dataclass
class EnrollmentRepository:
    session: AsyncSession

    async def get(self, enrollment_id: str) -> Enrollment | None:
        stmt = (
            select(Enrollment)
            .where(Enrollment.id == enrollment_id)
            .options(selectinload(Enrollment.payment))
        )
        return await self.session.scalar(stmt)

    async def find(self, *, learner_id: str, program_id: str) -> Enrollment | None:
        stmt = (
            select(Enrollment)
            .where(Enrollment.learner_id == learner_id, Enrollment.program_id == program_id)
            .options(selectinload(Enrollment.payment))
        )
        return await self.session.scalar(stmt)

    def add(self, *, learner_id: str, program_id: str, status: EnrollmentStatus) -> Enrollment:
        enrollment = Enrollment(learner_id=learner_id, program_id=program_id, status=status)
        self.session.add(enrollment)
        return enrollment


@dataclass
class PaymentRepository:
    session: AsyncSession

    def add(self, payment: Payment) -> Payment:
        self.session.add(payment)
        return payment

    async def get_by_reference(self, provider_reference: str) -> Payment | None:
        stmt = (
            select(Payment)
            .where(Payment.provider_reference == provider_reference)
            .options(selectinload(Payment.enrollment))
        )
        return await self.session.scalar(stmt)


@dataclass
class CouponRepository:
    session: AsyncSession

    async def get_by_code(self, code: str) -> Coupon | None:
        stmt = (
            select(Coupon)
            .where(Coupon.code == code.strip().upper())
            .options(selectinload(Coupon.programs))
        )
        return await self.session.scalar(stmt)

    async def get(self, coupon_id: str) -> Coupon | None:
        return await self.session.get(Coupon, coupon_id)

    async def applies_to_program(self, coupon: Coupon, program_id: str) -> bool:
        if coupon.applies_to_all:
            return True
        stmt = select(CouponProgram.program_id).where(
            CouponProgram.coupon_id == coupon.id,
            CouponProgram.program_id == program_id,
        )
        return (await self.session.scalar(stmt)) is not None

    async def has_usage(self, *, coupon_id: str, user_id: str) -> bool:
        stmt = select(CouponUsage.id).where(
            CouponUsage.coupon_id == coupon_id,
            CouponUsage.user_id == user_id,
        )
        return (await self.session.scalar(stmt)) is not None

    async def record_usage(
        self, *, coupon_id: str, user_id: str, enrollment_id: str | None
    ) -> CouponUsage:
        """Add a usage row and bump the counter with a single UPDATE.

        The increment is expressed in SQL so concurrent redemptions cannot
        lose updates.
        """
        await self.session.execute(
            update(Coupon)
            .where(Coupon.id == coupon_id)
            .values(used_count=Coupon.used_count + 1)
            .execution_options(synchronize_session=False)
        )
        usage = CouponUsage(coupon_id=coupon_id, user_id=user_id, enrollment_id=enrollment_id)
        self.session.add(usage)
        await self.session.flush()
        return usage
