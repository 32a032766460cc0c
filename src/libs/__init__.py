"""Clients for services outside the process: payments, storage, PDF rendering."""

from src.libs.abacatepay_client import AbacatePayClient
from src.libs.certificate_pdf import CertificateData, CertificateRenderer, HttpTemplateFetcher
from src.libs.payments import (
    CheckoutRequest,
    PaymentGateway,
    PaymentProviderError,
    ProviderSession,
    WebhookAuthenticationError,
    WebhookPayloadError,
)
from src.libs.storage import BlobStorage, BlobStorageError, S3BlobStorage
from src.libs.stripe_gateway import StripeGateway

__all__ = [
    "AbacatePayClient",
    "BlobStorage",
    "BlobStorageError",
    "CertificateData",
    "CertificateRenderer",
    "CheckoutRequest",
    "HttpTemplateFetcher",
    "PaymentGateway",
    "PaymentProviderError",
    "ProviderSession",
    "S3BlobStorage",
    "StripeGateway",
    "WebhookAuthenticationError",
    "WebhookPayloadError",
]
