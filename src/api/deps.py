from __future__ import annotations

from collections.abc import AsyncIterator, Callable, Sequence
from functools import lru_cache

from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.ext.asyncio import AsyncSession
from src.core.auth import TokenError, read_claims
from src.core.config import get_settings
from src.domain import User
from src.infrastructure.db.models import PaymentProvider
from src.infrastructure.db.session import get_session
from src.libs.abacatepay_client import AbacatePayClient
from src.libs.certificate_pdf import CertificateRenderer
from src.libs.payments import PaymentGateway
from src.libs.storage import BlobStorage, S3BlobStorage
from src.libs.stripe_gateway import StripeGateway

bearer_scheme = HTTPBearer(auto_error=False)


async def get_current_user(
    credentials: HTTPAuthorizationCredentials | None = Depends(bearer_scheme),  # noqa: B008
) -> User:
    """Resolve the authenticated user from a bearer token."""
    if credentials is None:
        raise _unauthorized("Missing bearer token")

    try:
        claims = read_claims(credentials.credentials)
    except TokenError as exc:
        raise _unauthorized(str(exc)) from exc

    if not claims.roles:
        raise _forbidden("Token missing required roles")

    return User(user_id=claims.subject, email=claims.email, roles=list(claims.roles))


def require_roles(required_roles: Sequence[str]) -> Callable[[User], User]:
    """Dependency factory enforcing that the authenticated user has one of the required roles."""
    settings = get_settings()
    allowed = set(settings.allowed_roles)

    invalid_roles = [role for role in required_roles if role not in allowed]
    if invalid_roles:
        joined_roles = ", ".join(invalid_roles)
        raise ValueError(f"Unsupported role(s) requested: {joined_roles}")

    required = set(required_roles)

    def dependency(user: User = Depends(get_current_user)) -> User:  # noqa: B008
        if not required.intersection(user.roles):
            raise _forbidden("Insufficient role privileges")
        return user

    return dependency


async def get_db_session() -> AsyncIterator[AsyncSession]:
    """Provide an async SQLAlchemy session for API handlers."""
    async for session in get_session():
        yield session


def _unauthorized(detail: str) -> HTTPException:
    return HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail=detail)


def _forbidden(detail: str) -> HTTPException:
    return HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail=detail)


@lru_cache
def _default_storage() -> S3BlobStorage:
    return S3BlobStorage()


def get_blob_storage() -> BlobStorage:
    """Blob storage used for generated documents."""
    return _default_storage()


def get_certificate_renderer() -> CertificateRenderer:
    return CertificateRenderer()


@lru_cache
def _default_gateways() -> dict[PaymentProvider, PaymentGateway]:
    return {
        PaymentProvider.STRIPE: StripeGateway(),
        PaymentProvider.ABACATEPAY: AbacatePayClient(),
    }


def get_payment_gateways() -> dict[PaymentProvider, PaymentGateway]:
    """Hosted checkout providers keyed by provider."""
    return _default_gateways()
