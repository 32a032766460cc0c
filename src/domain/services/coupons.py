from __future__ import annotations

from dataclasses import dataclass
from datetime import UTC, datetime

import structlog
from sqlalchemy.ext.asyncio import AsyncSession
from src.infrastructure.db.models import Coupon, DiscountType
from src.infrastructure.repositories import UnitOfWork

logger = structlog.get_logger()


@dataclass(slots=True)
class CouponValidation:
    valid: bool
    reason: str | None = None
    coupon: Coupon | None = None
    discount: float = 0.0
    final_price: float | None = None


def apply_discount(price: float, discount_type: DiscountType, value: float) -> float:
    """Return the discounted price rounded to cents, never below zero."""
    if discount_type == DiscountType.PERCENTAGE:
        discounted = price * (1 - value / 100)
    else:
        discounted = price - value
    return round(max(0.0, discounted), 2)


def _as_utc(moment: datetime) -> datetime:
    # SQLite hands back naive datetimes
    return moment if moment.tzinfo else moment.replace(tzinfo=UTC)


class CouponValidator:
    """Checks a coupon code against a program, a learner and a price."""

    def __init__(self, session: AsyncSession) -> None:
        self.uow = UnitOfWork(session)

    async def validate(
        self,
        code: str,
        program_id: str,
        learner_id: str,
        price: float,
        *,
        now: datetime | None = None,
    ) -> CouponValidation:
        now = now or datetime.now(UTC)
        coupon = await self.uow.coupons.get_by_code(code)
        if coupon is None:
            return CouponValidation(valid=False, reason="Coupon not found")

        reason = await self._rejection_reason(coupon, program_id, learner_id, price, now)
        if reason is not None:
            await logger.ainfo(
                "coupon_rejected", code=coupon.code, program_id=program_id, reason=reason
            )
            return CouponValidation(valid=False, reason=reason, coupon=coupon)

        final_price = apply_discount(price, coupon.discount_type, coupon.discount_value)
        return CouponValidation(
            valid=True,
            coupon=coupon,
            discount=round(price - final_price, 2),
            final_price=final_price,
        )

    async def _rejection_reason(
        self,
        coupon: Coupon,
        program_id: str,
        learner_id: str,
        price: float,
        now: datetime,
    ) -> str | None:
        if not coupon.is_active:
            return "Coupon is inactive"
        if _as_utc(coupon.valid_from) > now:
            return "Coupon is not valid yet"
        if coupon.valid_until is not None and _as_utc(coupon.valid_until) < now:
            return "Coupon has expired"
        if coupon.max_uses is not None and coupon.used_count >= coupon.max_uses:
            return "Coupon usage limit reached"
        if not await self.uow.coupons.applies_to_program(coupon, program_id):
            return "Coupon is not valid for this program"
        if coupon.min_purchase is not None and price < coupon.min_purchase:
            return f"Minimum purchase of {coupon.min_purchase:.2f} required"
        if await self.uow.coupons.has_usage(coupon_id=coupon.id, user_id=learner_id):
            return "Coupon already used"
        return None
