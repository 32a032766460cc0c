from __future__ import annotations

import hashlib
import hmac
import itertools
import json
import time
from datetime import UTC, datetime, timedelta
from typing import Any

from sqlalchemy.ext.asyncio import AsyncSession
from src.core.auth import Role, create_access_token
from src.infrastructure.db.models import (
    AnswerOption,
    Assessment,
    AssessmentKind,
    Attempt,
    CertificateTemplate,
    Company,
    Coupon,
    CouponProgram,
    DiscountType,
    Enrollment,
    EnrollmentStatus,
    Payment,
    PaymentProvider,
    PaymentStatus,
    Program,
    Question,
    UserModel,
)
from src.libs.abacatepay_client import AbacatePayClient
from src.libs.certificate_pdf import TemplateRenderError
from src.libs.payments import CheckoutRequest, PaymentProviderError, ProviderSession
from src.libs.storage import BlobStorageError
from src.libs.stripe_gateway import StripeGateway

STRIPE_WEBHOOK_SECRET = "whsec_test_secret"
ABACATEPAY_WEBHOOK_SECRET = "abacate-webhook-secret"

_counter = itertools.count(1)


def auth_headers(user_id: str = "student-1", role: Role = Role.STUDENT) -> dict[str, str]:
    token = create_access_token(user_id, roles=[role.value], email=f"{user_id}@example.com")
    return {"Authorization": f"Bearer {token}"}


def stripe_signature(payload: bytes, secret: str = STRIPE_WEBHOOK_SECRET) -> str:
    """Build a ``Stripe-Signature`` header the way Stripe signs deliveries."""
    timestamp = int(time.time())
    signed = f"{timestamp}.{payload.decode()}".encode()
    digest = hmac.new(secret.encode(), signed, hashlib.sha256).hexdigest()
    return f"t={timestamp},v1={digest}"


def stripe_event_body(event_type: str, session: dict[str, Any]) -> bytes:
    return json.dumps({"id": "evt_test", "type": event_type, "data": {"object": session}}).encode()


def abacatepay_paid_body(
    *,
    billing_id: str,
    amount_cents: int,
    metadata: dict[str, Any] | None = None,
    customer_email: str | None = None,
    product_id: str | None = None,
    method: str = "PIX",
) -> bytes:
    billing: dict[str, Any] = {
        "id": billing_id,
        "status": "PAID",
        "amount": amount_cents,
        "metadata": metadata or {},
        "products": [],
    }
    if product_id:
        billing["products"] = [{"id": "prod_1", "externalId": product_id, "quantity": 1}]
    if customer_email:
        billing["customer"] = {"id": "cust_1", "metadata": {"email": customer_email}}
    payment = {"id": "pay_1", "amount": amount_cents, "method": method}
    body = {"event": "billing.paid", "data": {"billing": billing, "payment": payment}}
    return json.dumps(body).encode()


# Fakes for collaborators outside the process


class FakeBlobStorage:
    def __init__(self, *, fail: bool = False) -> None:
        self.fail = fail
        self.uploads: dict[str, bytes] = {}
        self.deleted: list[str] = []

    async def upload(self, data: bytes, filename: str, mime_type: str, folder: str) -> str:
        if self.fail:
            raise BlobStorageError(f"Failed to upload {filename}")
        url = f"https://blobs.test/{folder}/{next(_counter)}-{filename}"
        self.uploads[url] = data
        return url

    async def delete(self, url: str) -> None:
        self.uploads.pop(url, None)
        self.deleted.append(url)


class FakeTemplateFetcher:
    def __init__(self, layouts: dict[str, str] | None = None) -> None:
        self.layouts = layouts or {}
        self.requested: list[str] = []

    async def fetch(self, url: str) -> str:
        self.requested.append(url)
        if url not in self.layouts:
            raise TemplateRenderError(f"Could not download template: {url}")
        return self.layouts[url]


class FakeStripeGateway(StripeGateway):
    """Real signature verification, canned checkout sessions."""

    def __init__(self, *, fail: bool = False) -> None:
        super().__init__(api_key="sk_test_fake", webhook_secret=STRIPE_WEBHOOK_SECRET)
        self.fail = fail
        self.requests: list[CheckoutRequest] = []

    async def create_session(self, request: CheckoutRequest) -> ProviderSession:
        self.requests.append(request)
        if self.fail:
            raise PaymentProviderError("Your card was declined.", status_code=402)
        number = len(self.requests)
        return ProviderSession(
            url=f"https://checkout.stripe.test/pay/cs_test_{number}",
            reference=f"cs_test_{number}",
        )


class FakeAbacatePayClient(AbacatePayClient):
    def __init__(self, *, fail: bool = False) -> None:
        super().__init__(api_key="abc_test_key", webhook_secret=ABACATEPAY_WEBHOOK_SECRET)
        self.fail = fail
        self.requests: list[CheckoutRequest] = []

    async def create_session(self, request: CheckoutRequest) -> ProviderSession:
        self.requests.append(request)
        if self.fail:
            raise PaymentProviderError("Invalid taxId", status_code=400)
        number = len(self.requests)
        return ProviderSession(
            url=f"https://abacatepay.test/pay/bill_{number}", reference=f"bill_{number}"
        )


# Seed helpers


async def seed_learner(
    db: AsyncSession,
    user_id: str = "student-1",
    *,
    full_name: str = "Ana Souza",
    tax_id: str | None = "123.456.789-09",
    phone: str | None = "(11) 98765-4321",
    company: Company | None = None,
) -> UserModel:
    learner = UserModel(
        id=user_id,
        email=f"{user_id}@example.com",
        full_name=full_name,
        tax_id=tax_id,
        phone=phone,
        company_id=company.id if company else None,
    )
    db.add(learner)
    await db.flush()
    return learner


async def seed_program(
    db: AsyncSession,
    *,
    title: str = "Data Analysis Fundamentals",
    price: float | None = 100.0,
    published: bool = True,
) -> Program:
    program = Program(
        title=title,
        description=f"{title} course",
        duration="40h",
        price=price,
        is_published=published,
    )
    db.add(program)
    await db.flush()
    return program


async def seed_assessment(
    db: AsyncSession,
    program: Program,
    *,
    kind: AssessmentKind = AssessmentKind.FINAL_EXAM,
    question_count: int = 3,
    passing_score: float = 70.0,
) -> tuple[Assessment, dict[str, str], dict[str, str]]:
    """Create an assessment; returns it with correct and wrong answer maps."""
    assessment = Assessment(
        program_id=program.id, kind=kind, title=f"{program.title} exam", passing_score=passing_score
    )
    db.add(assessment)
    await db.flush()

    correct: dict[str, str] = {}
    wrong: dict[str, str] = {}
    for sequence in range(1, question_count + 1):
        question = Question(
            assessment_id=assessment.id, sequence=sequence, prompt=f"Question {sequence}?"
        )
        db.add(question)
        await db.flush()
        right = AnswerOption(question_id=question.id, sequence=1, text="Right", is_correct=True)
        bad = AnswerOption(question_id=question.id, sequence=2, text="Wrong", is_correct=False)
        db.add_all([right, bad])
        await db.flush()
        correct[question.id] = right.id
        wrong[question.id] = bad.id
    return assessment, correct, wrong


async def seed_enrollment(
    db: AsyncSession,
    learner: UserModel,
    program: Program,
    *,
    status: EnrollmentStatus = EnrollmentStatus.APPROVED,
    payment_status: PaymentStatus | None = None,
    provider: PaymentProvider = PaymentProvider.STRIPE,
    provider_reference: str | None = None,
) -> Enrollment:
    enrollment = Enrollment(learner_id=learner.id, program_id=program.id, status=status)
    db.add(enrollment)
    await db.flush()
    if payment_status is not None:
        db.add(
            Payment(
                enrollment_id=enrollment.id,
                provider=provider,
                amount=program.price or 0.0,
                currency="BRL",
                status=payment_status,
                provider_reference=provider_reference,
            )
        )
        await db.flush()
    return enrollment


async def seed_attempt(
    db: AsyncSession,
    learner: UserModel,
    assessment: Assessment,
    *,
    score: float,
    passed: bool,
    created_at: datetime | None = None,
) -> Attempt:
    attempt = Attempt(
        learner_id=learner.id,
        assessment_id=assessment.id,
        answers={},
        score=score,
        passed=passed,
        correct_count=0,
        total_count=0,
        created_at=created_at or datetime.now(UTC),
    )
    db.add(attempt)
    await db.flush()
    return attempt


async def seed_coupon(
    db: AsyncSession,
    code: str = "SAVE10",
    *,
    discount_type: DiscountType = DiscountType.PERCENTAGE,
    discount_value: float = 10.0,
    programs: list[Program] | None = None,
    applies_to_all: bool = False,
    is_active: bool = True,
    valid_from: datetime | None = None,
    valid_until: datetime | None = None,
    max_uses: int | None = None,
    used_count: int = 0,
    min_purchase: float | None = None,
) -> Coupon:
    coupon = Coupon(
        code=code,
        discount_type=discount_type,
        discount_value=discount_value,
        applies_to_all=applies_to_all,
        is_active=is_active,
        valid_from=valid_from or datetime.now(UTC) - timedelta(days=1),
        valid_until=valid_until,
        max_uses=max_uses,
        used_count=used_count,
        min_purchase=min_purchase,
    )
    db.add(coupon)
    await db.flush()
    for program in programs or []:
        db.add(CouponProgram(coupon_id=coupon.id, program_id=program.id))
    await db.flush()
    return coupon


async def seed_template(
    db: AsyncSession,
    *,
    url: str,
    program: Program | None = None,
    company: Company | None = None,
    is_default: bool = False,
) -> CertificateTemplate:
    template = CertificateTemplate(
        name=f"template-{next(_counter)}",
        template_url=url,
        program_id=program.id if program else None,
        company_id=company.id if company else None,
        is_default=is_default,
    )
    db.add(template)
    await db.flush()
    return template
