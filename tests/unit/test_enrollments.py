from __future__ import annotations

from httpx import AsyncClient
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession
from src.core.auth import Role
from src.infrastructure.db.models import Enrollment, EnrollmentStatus, PaymentStatus

from tests.utils import auth_headers, seed_enrollment, seed_learner, seed_program

ADMIN = auth_headers("admin-1", role=Role.ADMIN)


async def test_request_free_program_is_pending(client: AsyncClient, db: AsyncSession) -> None:
    learner = await seed_learner(db)
    program = await seed_program(db, price=None)
    await db.commit()

    response = await client.post(
        "/enrollments", json={"program_id": program.id}, headers=auth_headers(learner.id)
    )

    assert response.status_code == 201
    assert response.json()["status"] == "PENDING"
    assert response.json()["learner_id"] == learner.id


async def test_request_paid_program_points_to_checkout(
    client: AsyncClient, db: AsyncSession
) -> None:
    learner = await seed_learner(db)
    program = await seed_program(db, price=99.0)
    await db.commit()

    response = await client.post(
        "/enrollments", json={"program_id": program.id}, headers=auth_headers(learner.id)
    )

    assert response.status_code == 400


async def test_duplicate_request_conflicts(client: AsyncClient, db: AsyncSession) -> None:
    learner = await seed_learner(db)
    program = await seed_program(db, price=0.0)
    await db.commit()
    headers = auth_headers(learner.id)

    await client.post("/enrollments", json={"program_id": program.id}, headers=headers)
    response = await client.post("/enrollments", json={"program_id": program.id}, headers=headers)

    assert response.status_code == 409


async def test_admin_grants_enrollment(client: AsyncClient, db: AsyncSession) -> None:
    learner = await seed_learner(db)
    program = await seed_program(db)
    await db.commit()

    response = await client.post(
        "/enrollments/grant",
        json={"learner_id": learner.id, "program_id": program.id},
        headers=ADMIN,
    )

    assert response.status_code == 201
    assert response.json()["status"] == "APPROVED"


async def test_grant_requires_admin(client: AsyncClient, db: AsyncSession) -> None:
    learner = await seed_learner(db)
    program = await seed_program(db)
    await db.commit()

    response = await client.post(
        "/enrollments/grant",
        json={"learner_id": learner.id, "program_id": program.id},
        headers=auth_headers(learner.id),
    )

    assert response.status_code == 403


async def test_admin_approves_request(client: AsyncClient, db: AsyncSession) -> None:
    learner = await seed_learner(db)
    program = await seed_program(db, price=None)
    enrollment = await seed_enrollment(db, learner, program, status=EnrollmentStatus.PENDING)
    await db.commit()

    response = await client.patch(
        f"/enrollments/{enrollment.id}", json={"status": "APPROVED"}, headers=ADMIN
    )

    assert response.status_code == 200
    assert response.json()["status"] == "APPROVED"
    stored = await db.scalar(
        select(Enrollment.status).where(Enrollment.id == enrollment.id)
    )
    assert stored == EnrollmentStatus.APPROVED


async def test_admin_cannot_override_unsettled_payment(
    client: AsyncClient, db: AsyncSession
) -> None:
    learner = await seed_learner(db)
    program = await seed_program(db)
    enrollment = await seed_enrollment(
        db,
        learner,
        program,
        status=EnrollmentStatus.PENDING,
        payment_status=PaymentStatus.PENDING,
    )
    await db.commit()

    response = await client.patch(
        f"/enrollments/{enrollment.id}", json={"status": "APPROVED"}, headers=ADMIN
    )

    assert response.status_code == 409


async def test_admin_can_reject_paid_enrollment(client: AsyncClient, db: AsyncSession) -> None:
    learner = await seed_learner(db)
    program = await seed_program(db)
    enrollment = await seed_enrollment(db, learner, program, payment_status=PaymentStatus.COMPLETED)
    await db.commit()

    response = await client.patch(
        f"/enrollments/{enrollment.id}", json={"status": "REJECTED"}, headers=ADMIN
    )

    assert response.status_code == 200
    assert response.json()["status"] == "REJECTED"
    assert response.json()["payment_status"] == "COMPLETED"


async def test_status_must_be_a_decision(client: AsyncClient, db: AsyncSession) -> None:
    learner = await seed_learner(db)
    program = await seed_program(db)
    enrollment = await seed_enrollment(db, learner, program)
    await db.commit()

    response = await client.patch(
        f"/enrollments/{enrollment.id}", json={"status": "PENDING"}, headers=ADMIN
    )

    assert response.status_code == 422


async def test_unknown_enrollment(client: AsyncClient) -> None:
    response = await client.patch(
        "/enrollments/missing", json={"status": "APPROVED"}, headers=ADMIN
    )

    assert response.status_code == 404
