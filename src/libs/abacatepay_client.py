"""
AbacatePay API client for PIX and card billings.
"""

from __future__ import annotations

import hmac
import json
import re
from typing import Any

import httpx
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

_NON_DIGITS = re.compile(r"\D+")


def digits_only(value: str | None) -> str:
    return _NON_DIGITS.sub("", value or "")


class AbacatePayClient:
    """Async AbacatePay API client."""

    def __init__(
        self,
        api_key: str | None = None,
        base_url: str | None = None,
        webhook_secret: str | None = None,
        timeout_seconds: int | None = None,
    ) -> None:
        settings = get_settings()
        self.api_key = api_key or settings.abacatepay_api_key
        self.base_url = (base_url or settings.abacatepay_base_url).rstrip("/")
        self.webhook_secret = webhook_secret or settings.abacatepay_webhook_secret
        self.timeout = (
            timeout_seconds if timeout_seconds is not None else settings.abacatepay_timeout_seconds
        )

        if not self.api_key:
            logger.warning("abacatepay_api_key_missing", msg="ABACATEPAY_API_KEY not configured")

    def build_billing_payload(self, request: CheckoutRequest) -> dict[str, Any]:
        method = "CARD" if (request.payment_method or "").upper() == "CARD" else "PIX"
        return {
            "frequency": "ONE_TIME",
            "methods": [method],
            "products": [
                {
                    "externalId": request.program_id,
                    "name": request.title,
                    "description": request.description or request.title,
                    "quantity": 1,
                    "price": request.amount_cents,
                }
            ],
            "returnUrl": request.cancel_url,
            "completionUrl": request.success_url,
            "customer": {
                "name": request.customer.name,
                "email": request.customer.email,
                "cellphone": digits_only(request.customer.phone),
                "taxId": digits_only(request.customer.tax_id),
            },
            "metadata": request.metadata,
        }

    async def create_session(self, request: CheckoutRequest) -> ProviderSession:
        """Create a one-time billing and return its hosted payment page."""
        if not self.api_key:
            raise PaymentProviderError("ABACATEPAY_API_KEY not configured")

        headers = {
            "Authorization": f"Bearer {self.api_key}",
            "Content-Type": "application/json",
        }
        try:
            async with httpx.AsyncClient(timeout=self.timeout) as client:
                response = await client.post(
                    f"{self.base_url}/billing/create",
                    headers=headers,
                    json=self.build_billing_payload(request),
                )
        except httpx.HTTPError as exc:
            raise PaymentProviderError(f"AbacatePay request failed: {exc}") from exc

        try:
            body = response.json()
        except ValueError as exc:
            raise PaymentProviderError(
                "AbacatePay response was not valid JSON",
                status_code=response.status_code,
            ) from exc

        error = body.get("error") if isinstance(body, dict) else None
        data = body.get("data") if isinstance(body, dict) else None
        if response.status_code >= 400 or error or not data:
            raise PaymentProviderError(
                str(error or f"AbacatePay error {response.status_code}"),
                status_code=response.status_code,
            )

        billing_id = data.get("id")
        url = data.get("url")
        if not billing_id or not url:
            raise PaymentProviderError(
                "AbacatePay response missing billing id or url",
                status_code=response.status_code,
            )
        return ProviderSession(url=url, reference=billing_id)

    def verify_webhook(self, payload: bytes, credential: str | None) -> dict[str, Any]:
        """Compare the ``webhookSecret`` query value and decode the event."""
        if not self.webhook_secret or not credential:
            raise WebhookAuthenticationError("Missing webhook secret")
        if not hmac.compare_digest(credential.encode(), self.webhook_secret.encode()):
            raise WebhookAuthenticationError("Invalid webhook secret")

        try:
            event = json.loads(payload)
        except ValueError as exc:
            raise WebhookPayloadError("AbacatePay payload is not valid JSON") from exc
        if not isinstance(event, dict):
            raise WebhookPayloadError("AbacatePay payload must be a JSON object")
        return event
