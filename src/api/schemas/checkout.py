from __future__ import annotations

from typing import Literal

from pydantic import BaseModel, Field


class CheckoutRequestBody(BaseModel):
    program_id: str
    coupon_code: str | None = None


class AbacatePayCheckoutRequestBody(CheckoutRequestBody):
    payment_method: Literal["PIX", "CARD"] = Field("PIX", description="Hosted billing method")


class CheckoutResponse(BaseModel):
    payment_url: str
    provider_reference: str
    amount: float
    enrollment_id: str
    coupon_id: str | None = None


class WebhookAckResponse(BaseModel):
    received: bool = True
    outcome: str
