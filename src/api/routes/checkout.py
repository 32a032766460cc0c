from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.ext.asyncio import AsyncSession
from src.api.deps import get_db_session, get_payment_gateways, require_roles
from src.api.schemas.checkout import (
    AbacatePayCheckoutRequestBody,
    CheckoutRequestBody,
    CheckoutResponse,
)
from src.core.auth import LEARNER_ROLES
from src.domain import User
from src.domain.services.checkout import (
    AlreadyEnrolledError,
    CheckoutResult,
    CheckoutService,
    FreeProgramError,
    InvalidCouponError,
    LearnerProfileNotFoundError,
    MissingCustomerDataError,
    ProgramUnavailableError,
)
from src.infrastructure.db.models import PaymentProvider
from src.libs.payments import PaymentGateway, PaymentProviderError

router = APIRouter(prefix="/checkout", tags=["Checkout"])


async def _initiate(
    service: CheckoutService,
    user: User,
    provider: PaymentProvider,
    payload: CheckoutRequestBody,
    payment_method: str | None = None,
) -> CheckoutResponse:
    try:
        result: CheckoutResult = await service.initiate(
            user,
            payload.program_id,
            provider,
            coupon_code=payload.coupon_code,
            payment_method=payment_method,
        )
    except (ProgramUnavailableError, LearnerProfileNotFoundError) as exc:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc)) from exc
    except (FreeProgramError, InvalidCouponError, MissingCustomerDataError) as exc:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc)) from exc
    except AlreadyEnrolledError as exc:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(exc)) from exc
    except PaymentProviderError as exc:
        raise HTTPException(status_code=status.HTTP_502_BAD_GATEWAY, detail=str(exc)) from exc

    return CheckoutResponse(
        payment_url=result.payment_url,
        provider_reference=result.provider_reference,
        amount=result.amount,
        enrollment_id=result.enrollment_id,
        coupon_id=result.coupon_id,
    )


@router.post("/stripe", response_model=CheckoutResponse)
async def stripe_checkout(
    payload: CheckoutRequestBody,
    session: AsyncSession = Depends(get_db_session),
    user: User = Depends(require_roles(list(LEARNER_ROLES))),
    gateways: dict[PaymentProvider, PaymentGateway] = Depends(get_payment_gateways),
) -> CheckoutResponse:
    """Start a card payment on a Stripe hosted checkout page."""
    service = CheckoutService(session, gateways=gateways)
    return await _initiate(service, user, PaymentProvider.STRIPE, payload)


@router.post("/abacatepay", response_model=CheckoutResponse)
async def abacatepay_checkout(
    payload: AbacatePayCheckoutRequestBody,
    session: AsyncSession = Depends(get_db_session),
    user: User = Depends(require_roles(list(LEARNER_ROLES))),
    gateways: dict[PaymentProvider, PaymentGateway] = Depends(get_payment_gateways),
) -> CheckoutResponse:
    """Start a PIX or card billing on AbacatePay."""
    service = CheckoutService(session, gateways=gateways)
    return await _initiate(
        service, user, PaymentProvider.ABACATEPAY, payload, payment_method=payload.payment_method
    )
