from __future__ import annotations

from pydantic import BaseModel, Field


class CouponValidateRequest(BaseModel):
    code: str = Field(..., min_length=1)
    program_id: str


class CouponValidateResponse(BaseModel):
    valid: bool
    reason: str | None = None
    code: str
    coupon_id: str | None = None
    discount_type: str | None = None
    discount_value: float | None = None
    original_price: float
    discount: float = 0.0
    final_price: float
