"""
Stripe hosted checkout.

The stripe SDK is synchronous; session creation runs in a worker thread so it
does not block the event loop. The SDK applies its own HTTP timeout.
"""

from __future__ import annotations

import asyncio
import json
from typing import Any

import stripe
import structlog
from src.core.config import get_settings
from src.libs.payments import (
    CheckoutRequest,
    PaymentProviderError,
    ProviderSession,
    WebhookAuthenticationError,
    WebhookPayloadError,
)

logger = structlog.get_logger(__name__)


class StripeGateway:
    """Creates Checkout Sessions and verifies signed webhook deliveries."""

    def __init__(
        self,
        api_key: str | None = None,
        webhook_secret: str | None = None,
        tolerance_seconds: int | None = None,
    ) -> None:
        settings = get_settings()
        self.api_key = api_key or settings.stripe_secret_key
        self.webhook_secret = webhook_secret or settings.stripe_webhook_secret
        self.tolerance = (
            tolerance_seconds
            if tolerance_seconds is not None
            else settings.stripe_webhook_tolerance_seconds
        )

        if not self.api_key:
            logger.warning("stripe_api_key_missing", msg="STRIPE_SECRET_KEY not configured")

    async def create_session(self, request: CheckoutRequest) -> ProviderSession:
        if not self.api_key:
            raise PaymentProviderError("STRIPE_SECRET_KEY not configured")

        params: dict[str, Any] = {
            "mode": "payment",
            "payment_method_types": ["card"],
            "line_items": [
                {
                    "price_data": {
                        "currency": request.currency.lower(),
                        "product_data": {
                            "name": request.title,
                            "description": request.description or request.title,
                        },
                        "unit_amount": request.amount_cents,
                    },
                    "quantity": 1,
                }
            ],
            "customer_email": request.customer.email,
            "success_url": request.success_url,
            "cancel_url": request.cancel_url,
            "metadata": request.metadata,
        }

        try:
            session = await asyncio.to_thread(
                stripe.checkout.Session.create, api_key=self.api_key, **params
            )
        except stripe.StripeError as exc:
            message = exc.user_message or str(exc)
            raise PaymentProviderError(message, status_code=exc.http_status) from exc

        return ProviderSession(url=session.url, reference=session.id)

    def verify_webhook(self, payload: bytes, credential: str | None) -> dict[str, Any]:
        """Check the ``Stripe-Signature`` header and decode the event."""
        if not self.webhook_secret or not credential:
            raise WebhookAuthenticationError("Missing Stripe signature")

        try:
            body = payload.decode("utf-8")
            stripe.WebhookSignature.verify_header(
                body, credential, self.webhook_secret, self.tolerance
            )
        except (UnicodeDecodeError, stripe.SignatureVerificationError) as exc:
            raise WebhookAuthenticationError("Invalid Stripe signature") from exc

        try:
            event = json.loads(body)
        except ValueError as exc:
            raise WebhookPayloadError("Stripe payload is not valid JSON") from exc
        if not isinstance(event, dict):
            raise WebhookPayloadError("Stripe payload must be a JSON object")
        return event
