from __future__ import annotations

from httpx import AsyncClient
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload
from src.core.auth import Role
from src.infrastructure.db.models import (
    Coupon,
    DiscountType,
    Enrollment,
    EnrollmentStatus,
    PaymentProvider,
    PaymentStatus,
)

from tests.utils import (
    FakeAbacatePayClient,
    FakeStripeGateway,
    auth_headers,
    seed_coupon,
    seed_enrollment,
    seed_learner,
    seed_program,
)


async def load_enrollment(db: AsyncSession, learner_id: str, program_id: str) -> Enrollment | None:
    stmt = (
        select(Enrollment)
        .where(Enrollment.learner_id == learner_id, Enrollment.program_id == program_id)
        .options(selectinload(Enrollment.payment))
        .execution_options(populate_existing=True)
    )
    return await db.scalar(stmt)


async def test_stripe_checkout_reserves_pending_pair(
    client: AsyncClient, db: AsyncSession, stripe_gateway: FakeStripeGateway
) -> None:
    learner = await seed_learner(db)
    program = await seed_program(db, price=149.9)
    await db.commit()

    response = await client.post(
        "/checkout/stripe", json={"program_id": program.id}, headers=auth_headers(learner.id)
    )

    assert response.status_code == 200
    payload = response.json()
    assert payload["payment_url"] == "https://checkout.stripe.test/pay/cs_test_1"
    assert payload["provider_reference"] == "cs_test_1"
    assert payload["amount"] == 149.9
    assert payload["coupon_id"] is None

    request = stripe_gateway.requests[0]
    assert request.amount_cents == 14990
    assert request.currency == "BRL"
    assert request.customer.email == learner.email
    assert request.success_url.endswith(f"/courses/{program.id}?payment=success")
    assert request.cancel_url.endswith(f"/checkout/{program.id}?payment=cancelled")
    assert request.metadata == {
        "enrollmentId": payload["enrollment_id"],
        "userId": learner.id,
        "courseId": program.id,
        "couponId": "",
    }

    enrollment = await load_enrollment(db, learner.id, program.id)
    assert enrollment is not None
    assert enrollment.id == payload["enrollment_id"]
    assert enrollment.status == EnrollmentStatus.PENDING
    assert enrollment.payment.status == PaymentStatus.PENDING
    assert enrollment.payment.provider == PaymentProvider.STRIPE
    assert enrollment.payment.provider_reference == "cs_test_1"
    assert enrollment.payment.amount == 149.9


async def test_checkout_applies_coupon_without_consuming_it(
    client: AsyncClient, db: AsyncSession, stripe_gateway: FakeStripeGateway
) -> None:
    learner = await seed_learner(db)
    program = await seed_program(db)
    coupon = await seed_coupon(db, applies_to_all=True)
    await db.commit()

    response = await client.post(
        "/checkout/stripe",
        json={"program_id": program.id, "coupon_code": "save10"},
        headers=auth_headers(learner.id),
    )

    assert response.status_code == 200
    assert response.json()["amount"] == 90.0
    assert response.json()["coupon_id"] == coupon.id
    assert stripe_gateway.requests[0].metadata["couponId"] == coupon.id

    used = await db.scalar(
        select(Coupon.used_count)
        .where(Coupon.id == coupon.id)
        .execution_options(populate_existing=True)
    )
    assert used == 0


async def test_checkout_charges_minimum_amount(client: AsyncClient, db: AsyncSession) -> None:
    learner = await seed_learner(db)
    program = await seed_program(db, price=50.0)
    await seed_coupon(
        db, "FREEBIE", discount_type=DiscountType.FIXED, discount_value=80.0, applies_to_all=True
    )
    await db.commit()

    response = await client.post(
        "/checkout/stripe",
        json={"program_id": program.id, "coupon_code": "FREEBIE"},
        headers=auth_headers(learner.id),
    )

    assert response.status_code == 200
    assert response.json()["amount"] == 1.0


async def test_checkout_rejects_invalid_coupon(
    client: AsyncClient, db: AsyncSession, stripe_gateway: FakeStripeGateway
) -> None:
    learner = await seed_learner(db)
    program = await seed_program(db)
    await db.commit()

    response = await client.post(
        "/checkout/stripe",
        json={"program_id": program.id, "coupon_code": "NOPE"},
        headers=auth_headers(learner.id),
    )

    assert response.status_code == 400
    assert response.json()["detail"] == "Coupon not found"
    assert stripe_gateway.requests == []
    assert await db.scalar(select(func.count()).select_from(Enrollment)) == 0


async def test_free_program_uses_direct_enrollment(client: AsyncClient, db: AsyncSession) -> None:
    learner = await seed_learner(db)
    program = await seed_program(db, price=0.0)
    await db.commit()

    response = await client.post(
        "/checkout/stripe", json={"program_id": program.id}, headers=auth_headers(learner.id)
    )

    assert response.status_code == 400
    assert response.json()["detail"] == "course is free, use direct enrollment"


async def test_unpublished_program_is_not_found(client: AsyncClient, db: AsyncSession) -> None:
    learner = await seed_learner(db)
    program = await seed_program(db, published=False)
    await db.commit()

    response = await client.post(
        "/checkout/stripe", json={"program_id": program.id}, headers=auth_headers(learner.id)
    )

    assert response.status_code == 404


async def test_checkout_requires_learner_profile(client: AsyncClient, db: AsyncSession) -> None:
    program = await seed_program(db)
    await db.commit()

    response = await client.post(
        "/checkout/stripe", json={"program_id": program.id}, headers=auth_headers("no-profile")
    )

    assert response.status_code == 404


async def test_checkout_is_for_learners_only(client: AsyncClient, db: AsyncSession) -> None:
    program = await seed_program(db)
    await db.commit()

    response = await client.post(
        "/checkout/stripe",
        json={"program_id": program.id},
        headers=auth_headers("admin-1", role=Role.ADMIN),
    )

    assert response.status_code == 403


async def test_retry_reuses_pending_pair(
    client: AsyncClient, db: AsyncSession, stripe_gateway: FakeStripeGateway
) -> None:
    learner = await seed_learner(db)
    program = await seed_program(db)
    await db.commit()
    headers = auth_headers(learner.id)

    first = await client.post("/checkout/stripe", json={"program_id": program.id}, headers=headers)
    second = await client.post(
        "/checkout/abacatepay", json={"program_id": program.id}, headers=headers
    )

    assert second.status_code == 200
    assert second.json()["enrollment_id"] == first.json()["enrollment_id"]
    assert second.json()["provider_reference"] == "bill_1"
    assert await db.scalar(select(func.count()).select_from(Enrollment)) == 1

    enrollment = await load_enrollment(db, learner.id, program.id)
    assert enrollment.payment.provider == PaymentProvider.ABACATEPAY
    assert enrollment.payment.provider_reference == "bill_1"
    assert enrollment.payment.status == PaymentStatus.PENDING
    assert len(stripe_gateway.requests) == 1


async def test_retry_after_failed_payment(client: AsyncClient, db: AsyncSession) -> None:
    learner = await seed_learner(db)
    program = await seed_program(db)
    await seed_enrollment(
        db,
        learner,
        program,
        status=EnrollmentStatus.PENDING,
        payment_status=PaymentStatus.FAILED,
        provider_reference="cs_expired",
    )
    await db.commit()

    response = await client.post(
        "/checkout/stripe", json={"program_id": program.id}, headers=auth_headers(learner.id)
    )

    assert response.status_code == 200
    enrollment = await load_enrollment(db, learner.id, program.id)
    assert enrollment.payment.status == PaymentStatus.PENDING
    assert enrollment.payment.provider_reference == "cs_test_1"


async def test_provider_failure_keeps_pending_pair(
    client: AsyncClient, db: AsyncSession, stripe_gateway: FakeStripeGateway
) -> None:
    learner = await seed_learner(db)
    program = await seed_program(db)
    await db.commit()
    stripe_gateway.fail = True

    response = await client.post(
        "/checkout/stripe", json={"program_id": program.id}, headers=auth_headers(learner.id)
    )

    assert response.status_code == 502
    assert response.json()["detail"] == "Your card was declined."
    enrollment = await load_enrollment(db, learner.id, program.id)
    assert enrollment is not None
    assert enrollment.status == EnrollmentStatus.PENDING
    assert enrollment.payment.status == PaymentStatus.PENDING
    assert enrollment.payment.provider_reference is None


async def test_approved_learner_cannot_pay_again(client: AsyncClient, db: AsyncSession) -> None:
    learner = await seed_learner(db)
    program = await seed_program(db)
    await seed_enrollment(db, learner, program, payment_status=PaymentStatus.COMPLETED)
    await db.commit()

    response = await client.post(
        "/checkout/stripe", json={"program_id": program.id}, headers=auth_headers(learner.id)
    )

    assert response.status_code == 409
    assert response.json()["detail"] == "already enrolled"


async def test_pending_request_without_payment_conflicts(
    client: AsyncClient, db: AsyncSession
) -> None:
    learner = await seed_learner(db)
    program = await seed_program(db)
    await seed_enrollment(db, learner, program, status=EnrollmentStatus.PENDING)
    await db.commit()

    response = await client.post(
        "/checkout/stripe", json={"program_id": program.id}, headers=auth_headers(learner.id)
    )

    assert response.status_code == 409


async def test_abacatepay_requires_tax_id(
    client: AsyncClient, db: AsyncSession, abacatepay_client: FakeAbacatePayClient
) -> None:
    learner = await seed_learner(db, tax_id=None)
    program = await seed_program(db)
    await db.commit()

    response = await client.post(
        "/checkout/abacatepay", json={"program_id": program.id}, headers=auth_headers(learner.id)
    )

    assert response.status_code == 400
    assert "Tax ID" in response.json()["detail"]
    assert abacatepay_client.requests == []
    assert await db.scalar(select(func.count()).select_from(Enrollment)) == 0


async def test_abacatepay_card_checkout(
    client: AsyncClient, db: AsyncSession, abacatepay_client: FakeAbacatePayClient
) -> None:
    learner = await seed_learner(db)
    program = await seed_program(db)
    await db.commit()

    response = await client.post(
        "/checkout/abacatepay",
        json={"program_id": program.id, "payment_method": "CARD"},
        headers=auth_headers(learner.id),
    )

    assert response.status_code == 200
    assert response.json()["payment_url"] == "https://abacatepay.test/pay/bill_1"
    request = abacatepay_client.requests[0]
    assert request.payment_method == "CARD"
    assert request.customer.tax_id == "123.456.789-09"


async def test_abacatepay_rejects_unknown_method(client: AsyncClient, db: AsyncSession) -> None:
    learner = await seed_learner(db)
    program = await seed_program(db)
    await db.commit()

    response = await client.post(
        "/checkout/abacatepay",
        json={"program_id": program.id, "payment_method": "BOLETO"},
        headers=auth_headers(learner.id),
    )

    assert response.status_code == 422
