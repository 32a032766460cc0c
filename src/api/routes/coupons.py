from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.ext.asyncio import AsyncSession
from src.api.deps import get_db_session, require_roles
from src.api.schemas.coupons import CouponValidateRequest, CouponValidateResponse
from src.core.auth import LEARNER_ROLES
from src.domain import User
from src.domain.services.coupons import CouponValidator
from src.infrastructure.repositories import UnitOfWork

router = APIRouter(prefix="/coupons", tags=["Coupons"])


@router.post("/validate", response_model=CouponValidateResponse)
async def validate_coupon(
    payload: CouponValidateRequest,
    session: AsyncSession = Depends(get_db_session),
    user: User = Depends(require_roles(list(LEARNER_ROLES))),
) -> CouponValidateResponse:
    """Preview a coupon against a program price; nothing is redeemed here."""
    program = await UnitOfWork(session).programs.get(payload.program_id)
    if program is None or not program.is_published:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Program not found")

    price = program.price or 0.0
    result = await CouponValidator(session).validate(
        payload.code, program.id, user.user_id, price
    )
    coupon = result.coupon
    return CouponValidateResponse(
        valid=result.valid,
        reason=result.reason,
        code=payload.code.strip().upper(),
        coupon_id=coupon.id if coupon and result.valid else None,
        discount_type=coupon.discount_type.value if coupon else None,
        discount_value=coupon.discount_value if coupon else None,
        original_price=price,
        discount=result.discount,
        final_price=result.final_price if result.valid else price,
    )
