import pytest
from httpx import AsyncClient
from src.core.auth import TokenError, create_access_token, decode_access_token, read_claims

from tests.utils import auth_headers


def test_create_and_decode_token_roundtrip() -> None:
    token = create_access_token("user-123", roles=["employee"], email="user@example.com")

    payload = decode_access_token(token)

    assert payload["sub"] == "user-123"
    assert payload["roles"] == ["employee"]
    assert payload["email"] == "user@example.com"


def test_unknown_role_is_rejected() -> None:
    with pytest.raises(TokenError):
        create_access_token("user-123", roles=["instructor"])


def test_tampered_token_is_rejected() -> None:
    token = create_access_token("user-123", roles=["student"])

    with pytest.raises(TokenError):
        decode_access_token(token + "x")


async def test_protected_route_requires_bearer_token(client: AsyncClient) -> None:
    response = await client.get("/certificates/me")

    assert response.status_code == 401


async def test_admin_route_rejects_students(client: AsyncClient) -> None:
    response = await client.post(
        "/enrollments/grant",
        json={"learner_id": "student-1", "program_id": "p-1"},
        headers=auth_headers("student-1"),
    )

    assert response.status_code == 403


def test_claims_expose_subject_roles_and_email() -> None:
    token = create_access_token("admin-9", roles=["admin"], email="ops@example.com")

    claims = read_claims(token)

    assert claims.subject == "admin-9"
    assert claims.roles == ("admin",)
    assert claims.email == "ops@example.com"
