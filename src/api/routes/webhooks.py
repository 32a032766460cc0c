from __future__ import annotations

import structlog
from fastapi import APIRouter, Depends, Header, HTTPException, Query, Request, status
from sqlalchemy.ext.asyncio import AsyncSession
from src.api.deps import get_db_session, get_payment_gateways
from src.api.schemas.checkout import WebhookAckResponse
from src.domain.services.webhooks import (
    PaymentEvent,
    WebhookReconciler,
    abacatepay_event,
    stripe_event,
)
from src.infrastructure.db.models import PaymentProvider
from src.libs.payments import PaymentGateway, WebhookAuthenticationError, WebhookPayloadError

router = APIRouter(prefix="/webhooks", tags=["Webhooks"])
logger = structlog.get_logger()


def _verify(gateway: PaymentGateway, body: bytes, credential: str | None) -> dict:
    try:
        return gateway.verify_webhook(body, credential)
    except WebhookAuthenticationError as exc:
        logger.warning("webhook_rejected", reason=str(exc))
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail=str(exc)) from exc
    except WebhookPayloadError as exc:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc)) from exc


async def _reconcile(session: AsyncSession, event: PaymentEvent) -> WebhookAckResponse:
    # Database errors propagate as 500 so the provider redelivers.
    outcome = await WebhookReconciler(session).apply(event)
    return WebhookAckResponse(received=True, outcome=outcome.value)


@router.post("/stripe", response_model=WebhookAckResponse)
async def stripe_webhook(
    request: Request,
    stripe_signature: str | None = Header(None, alias="Stripe-Signature"),
    session: AsyncSession = Depends(get_db_session),
    gateways: dict[PaymentProvider, PaymentGateway] = Depends(get_payment_gateways),
) -> WebhookAckResponse:
    body = await request.body()
    payload = _verify(gateways[PaymentProvider.STRIPE], body, stripe_signature)
    return await _reconcile(session, stripe_event(payload))


@router.post("/abacatepay", response_model=WebhookAckResponse)
async def abacatepay_webhook(
    request: Request,
    webhook_secret: str | None = Query(None, alias="webhookSecret"),
    session: AsyncSession = Depends(get_db_session),
    gateways: dict[PaymentProvider, PaymentGateway] = Depends(get_payment_gateways),
) -> WebhookAckResponse:
    body = await request.body()
    payload = _verify(gateways[PaymentProvider.ABACATEPAY], body, webhook_secret)
    return await _reconcile(session, abacatepay_event(payload))
