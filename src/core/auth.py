"""
Bearer token handling.

Tokens are minted by the platform's identity provider and signed with the
shared ``JWT_SECRET``. The API only validates them and reads three claims:
``sub`` (the learner or admin id), ``roles`` and an optional ``email``.
"""

from __future__ import annotations

from collections.abc import Iterable, Sequence
from dataclasses import dataclass
from datetime import UTC, datetime, timedelta
from enum import Enum

import jwt
from src.core.config import get_settings


class TokenError(Exception):
    """Raised when a token cannot be decoded or validated."""


class Role(str, Enum):
    STUDENT = "student"
    EMPLOYEE = "employee"
    ADMIN = "admin"

    @classmethod
    def contains(cls, value: str) -> bool:
        return value in {role.value for role in cls}


# Roles that can enroll, pay and take assessments for themselves
LEARNER_ROLES: tuple[str, ...] = (Role.STUDENT.value, Role.EMPLOYEE.value)


@dataclass(slots=True, frozen=True)
class TokenClaims:
    subject: str
    roles: tuple[str, ...]
    email: str = ""


def create_access_token(
    subject: str,
    *,
    roles: Sequence[str],
    email: str | None = None,
    expires_delta: timedelta | None = None,
) -> str:
    """Sign a token with the same claims the identity provider issues.

    Used for local smoke testing and by the test suite.
    """
    settings = get_settings()

    invalid_roles = [role for role in roles if role not in settings.allowed_roles]
    if invalid_roles:
        raise TokenError(f"Unsupported role(s): {', '.join(invalid_roles)}")

    now = datetime.now(UTC)
    ttl = expires_delta or timedelta(seconds=settings.access_token_ttl_seconds)
    payload = {
        "sub": subject,
        "roles": list(roles),
        "iat": int(now.timestamp()),
        "exp": int((now + ttl).timestamp()),
        "iss": settings.app_name,
    }
    if email:
        payload["email"] = email

    return jwt.encode(payload, settings.jwt_secret, algorithm=settings.jwt_algorithm)


def decode_access_token(token: str) -> dict:
    """Verify signature and expiry and return the raw claims."""
    settings = get_settings()

    try:
        payload = jwt.decode(
            token,
            settings.jwt_secret,
            algorithms=[settings.jwt_algorithm],
            options={"require": ["sub", "roles", "exp"]},
        )
    except jwt.PyJWTError as exc:
        raise TokenError("Invalid token") from exc

    _ensure_roles(payload.get("roles", []))
    return payload


def read_claims(token: str) -> TokenClaims:
    payload = decode_access_token(token)
    subject = str(payload.get("sub") or "").strip()
    if not subject:
        raise TokenError("Token missing subject")
    return TokenClaims(
        subject=subject,
        roles=tuple(payload.get("roles") or ()),
        email=payload.get("email") or "",
    )


def _ensure_roles(roles: Iterable[str]) -> None:
    if isinstance(roles, str):
        raise TokenError("Roles claim must be a list")
    for role in roles:
        if not Role.contains(role):
            raise TokenError(f"Unsupported role: {role}")
