from __future__ import annotations

from datetime import UTC, datetime, timedelta

import pytest
from httpx import AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession
from src.domain.services.coupons import CouponValidator, apply_discount
from src.infrastructure.db.models import CouponUsage, DiscountType

from tests.utils import auth_headers, seed_coupon, seed_learner, seed_program


def test_apply_discount_percentage_and_fixed() -> None:
    assert apply_discount(100.0, DiscountType.PERCENTAGE, 10) == 90.0
    assert apply_discount(99.9, DiscountType.PERCENTAGE, 33) == 66.93
    assert apply_discount(100.0, DiscountType.FIXED, 25) == 75.0
    assert apply_discount(20.0, DiscountType.FIXED, 50) == 0.0


async def test_valid_percentage_coupon(db: AsyncSession) -> None:
    learner = await seed_learner(db)
    program = await seed_program(db, price=100.0)
    await seed_coupon(db, "SAVE10", programs=[program])
    await db.commit()

    result = await CouponValidator(db).validate("save10", program.id, learner.id, 100.0)

    assert result.valid is True
    assert result.final_price == 90.0
    assert result.discount == 10.0


async def test_unknown_code(db: AsyncSession) -> None:
    result = await CouponValidator(db).validate("NOPE", "p-1", "student-1", 100.0)

    assert result.valid is False
    assert result.reason == "Coupon not found"


@pytest.mark.parametrize(
    ("overrides", "reason"),
    [
        ({"is_active": False}, "Coupon is inactive"),
        ({"valid_from": datetime.now(UTC) + timedelta(days=2)}, "Coupon is not valid yet"),
        ({"valid_until": datetime.now(UTC) - timedelta(hours=1)}, "Coupon has expired"),
        ({"max_uses": 5, "used_count": 5}, "Coupon usage limit reached"),
        ({"min_purchase": 150.0}, "Minimum purchase of 150.00 required"),
    ],
)
async def test_rejection_reasons(db: AsyncSession, overrides: dict, reason: str) -> None:
    learner = await seed_learner(db)
    program = await seed_program(db, price=100.0)
    await seed_coupon(db, "PROMO", applies_to_all=True, **overrides)
    await db.commit()

    result = await CouponValidator(db).validate("PROMO", program.id, learner.id, 100.0)

    assert result.valid is False
    assert result.reason == reason


async def test_coupon_restricted_to_other_program(db: AsyncSession) -> None:
    learner = await seed_learner(db)
    program = await seed_program(db, title="Python")
    other = await seed_program(db, title="Excel")
    await seed_coupon(db, "EXCEL20", programs=[other])
    await db.commit()

    result = await CouponValidator(db).validate("EXCEL20", program.id, learner.id, 100.0)

    assert result.valid is False
    assert result.reason == "Coupon is not valid for this program"


async def test_coupon_single_use_per_learner(db: AsyncSession) -> None:
    learner = await seed_learner(db)
    second = await seed_learner(db, "student-2")
    program = await seed_program(db)
    coupon = await seed_coupon(db, "ONCE", applies_to_all=True)
    db.add(CouponUsage(coupon_id=coupon.id, user_id=learner.id))
    await db.commit()

    validator = CouponValidator(db)
    reused = await validator.validate("ONCE", program.id, learner.id, 100.0)
    fresh = await validator.validate("ONCE", program.id, second.id, 100.0)

    assert reused.valid is False
    assert reused.reason == "Coupon already used"
    assert fresh.valid is True


async def test_first_failing_check_wins(db: AsyncSession) -> None:
    learner = await seed_learner(db)
    program = await seed_program(db)
    await seed_coupon(
        db,
        "OLD",
        is_active=False,
        valid_until=datetime.now(UTC) - timedelta(days=1),
        applies_to_all=True,
    )
    await db.commit()

    result = await CouponValidator(db).validate("OLD", program.id, learner.id, 100.0)

    assert result.reason == "Coupon is inactive"


async def test_validate_endpoint(client: AsyncClient, db: AsyncSession) -> None:
    learner = await seed_learner(db)
    program = await seed_program(db, price=100.0)
    await seed_coupon(db, "SAVE10", programs=[program])
    await db.commit()

    response = await client.post(
        "/coupons/validate",
        json={"code": "save10", "program_id": program.id},
        headers=auth_headers(learner.id),
    )

    assert response.status_code == 200
    payload = response.json()
    assert payload["valid"] is True
    assert payload["code"] == "SAVE10"
    assert payload["original_price"] == 100.0
    assert payload["final_price"] == 90.0


async def test_validate_endpoint_reports_reason(client: AsyncClient, db: AsyncSession) -> None:
    learner = await seed_learner(db)
    program = await seed_program(db, price=100.0)
    await db.commit()

    response = await client.post(
        "/coupons/validate",
        json={"code": "MISSING", "program_id": program.id},
        headers=auth_headers(learner.id),
    )

    payload = response.json()
    assert payload["valid"] is False
    assert payload["reason"] == "Coupon not found"
    assert payload["final_price"] == 100.0
