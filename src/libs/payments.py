"""Types shared by the payment provider clients."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Protocol


class PaymentProviderError(Exception):
    """Raised when a payment provider rejects or fails a request."""

    def __init__(self, message: str, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class WebhookAuthenticationError(Exception):
    """Raised when a provider callback fails its authenticity check."""


class WebhookPayloadError(Exception):
    """Raised when an authenticated callback body cannot be decoded."""


@dataclass(slots=True)
class CheckoutCustomer:
    name: str
    email: str
    tax_id: str | None = None
    phone: str | None = None


@dataclass(slots=True)
class CheckoutRequest:
    program_id: str
    title: str
    description: str
    amount: float
    currency: str
    customer: CheckoutCustomer
    success_url: str
    cancel_url: str
    metadata: dict[str, str] = field(default_factory=dict)
    payment_method: str | None = None

    @property
    def amount_cents(self) -> int:
        return int(round(self.amount * 100))


@dataclass(slots=True)
class ProviderSession:
    url: str
    reference: str


class PaymentGateway(Protocol):
    """Protocol for hosted checkout providers (allows faking in tests)."""

    async def create_session(self, request: CheckoutRequest) -> ProviderSession:
        ...

    def verify_webhook(self, payload: bytes, credential: str | None) -> dict[str, Any]:
        """Authenticate a raw callback and return its decoded body."""
        ...
