"""
Paid enrollment checkout.

A checkout reserves a PENDING enrollment with a PENDING payment and only then
asks the provider for a hosted payment page. The pair survives provider
failures so the learner can retry, and it is settled later by the webhook
reconciler.
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass

import structlog
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession
from src.core.config import Settings, get_settings
from src.domain.models import User
from src.domain.services.coupons import CouponValidator
from src.infrastructure.db.models import (
    Enrollment,
    EnrollmentStatus,
    Payment,
    PaymentProvider,
    PaymentStatus,
    Program,
    UserModel,
)
from src.infrastructure.repositories import UnitOfWork
from src.libs.abacatepay_client import digits_only
from src.libs.payments import (
    CheckoutCustomer,
    CheckoutRequest,
    PaymentGateway,
    PaymentProviderError,
)

logger = structlog.get_logger()


class ProgramUnavailableError(Exception):
    """Raised when the program does not exist or is not published."""


class LearnerProfileNotFoundError(Exception):
    """Raised when the caller has no stored profile to bill."""


class FreeProgramError(Exception):
    """Raised when checkout is requested for a program without a price."""


class AlreadyEnrolledError(Exception):
    """Raised when the learner already holds an enrollment that cannot be paid."""


class InvalidCouponError(Exception):
    """Raised when the supplied coupon does not validate."""


class MissingCustomerDataError(Exception):
    """Raised when the provider needs billing data the learner has not filled in."""


@dataclass(slots=True)
class CheckoutResult:
    payment_url: str
    provider_reference: str
    amount: float
    enrollment_id: str
    coupon_id: str | None = None


class CheckoutService:
    def __init__(
        self,
        session: AsyncSession,
        *,
        gateways: Mapping[PaymentProvider, PaymentGateway],
        settings: Settings | None = None,
    ) -> None:
        self.uow = UnitOfWork(session)
        self.coupons = CouponValidator(session)
        self.gateways = gateways
        self.settings = settings or get_settings()

    async def initiate(
        self,
        user: User,
        program_id: str,
        provider: PaymentProvider,
        coupon_code: str | None = None,
        payment_method: str | None = None,
    ) -> CheckoutResult:
        program = await self.uow.programs.get(program_id)
        if program is None or not program.is_published:
            raise ProgramUnavailableError("Program not found")

        price = program.price or 0.0
        if price <= 0:
            raise FreeProgramError("course is free, use direct enrollment")

        learner = await self.uow.users.get(user.user_id)
        if learner is None:
            raise LearnerProfileNotFoundError("Learner profile not found")

        if provider == PaymentProvider.ABACATEPAY:
            self._require_billing_data(learner)

        enrollment = await self.uow.enrollments.find(
            learner_id=learner.id, program_id=program_id
        )
        self._ensure_payable(enrollment)

        coupon_id = None
        final_price = price
        if coupon_code:
            validation = await self.coupons.validate(coupon_code, program_id, learner.id, price)
            if not validation.valid:
                raise InvalidCouponError(validation.reason or "Invalid coupon")
            coupon_id = validation.coupon.id
            final_price = validation.final_price

        amount = round(max(final_price, self.settings.minimum_charge), 2)
        enrollment, payment = await self._reserve(enrollment, learner, program, provider, amount)

        request = CheckoutRequest(
            program_id=program.id,
            title=program.title,
            description=program.description or program.title,
            amount=amount,
            currency=self.settings.currency,
            customer=CheckoutCustomer(
                name=learner.full_name,
                email=learner.email,
                tax_id=learner.tax_id,
                phone=learner.phone,
            ),
            success_url=f"{self._app_url}/courses/{program.id}?payment=success",
            cancel_url=f"{self._app_url}/checkout/{program.id}?payment=cancelled",
            metadata={
                "enrollmentId": enrollment.id,
                "userId": learner.id,
                "courseId": program.id,
                "couponId": coupon_id or "",
            },
            payment_method=payment_method,
        )

        gateway = self.gateways[provider]
        try:
            session = await gateway.create_session(request)
        except PaymentProviderError as exc:
            await logger.awarning(
                "checkout_provider_failed",
                provider=provider.value,
                enrollment_id=enrollment.id,
                error=str(exc),
            )
            raise

        payment.provider_reference = session.reference
        await self.uow.commit()

        await logger.ainfo(
            "checkout_session_created",
            provider=provider.value,
            enrollment_id=enrollment.id,
            program_id=program.id,
            learner_id=learner.id,
            amount=amount,
            coupon_id=coupon_id,
        )
        return CheckoutResult(
            payment_url=session.url,
            provider_reference=session.reference,
            amount=amount,
            enrollment_id=enrollment.id,
            coupon_id=coupon_id,
        )

    @property
    def _app_url(self) -> str:
        return self.settings.app_url.rstrip("/")

    @staticmethod
    def _require_billing_data(learner: UserModel) -> None:
        if not digits_only(learner.tax_id):
            raise MissingCustomerDataError("Tax ID is required for this payment method")
        if not digits_only(learner.phone):
            raise MissingCustomerDataError("Phone number is required for this payment method")

    @staticmethod
    def _ensure_payable(enrollment: Enrollment | None) -> None:
        if enrollment is None:
            return
        if enrollment.status != EnrollmentStatus.PENDING:
            raise AlreadyEnrolledError("already enrolled")
        if enrollment.payment is None:
            raise AlreadyEnrolledError("Enrollment request is awaiting approval")
        if enrollment.payment.status == PaymentStatus.COMPLETED:
            raise AlreadyEnrolledError("already enrolled")

    async def _reserve(
        self,
        enrollment: Enrollment | None,
        learner: UserModel,
        program: Program,
        provider: PaymentProvider,
        amount: float,
    ) -> tuple[Enrollment, Payment]:
        """Persist the PENDING enrollment/payment pair before contacting the provider."""
        if enrollment is not None:
            payment = enrollment.payment
            payment.provider = provider
            payment.amount = amount
            payment.currency = self.settings.currency
            payment.status = PaymentStatus.PENDING
            payment.provider_reference = None
            await self.uow.commit()
            return enrollment, payment

        enrollment = self.uow.enrollments.add(
            learner_id=learner.id, program_id=program.id, status=EnrollmentStatus.PENDING
        )
        payment = self.uow.payments.add(
            Payment(
                enrollment=enrollment,
                provider=provider,
                amount=amount,
                currency=self.settings.currency,
                status=PaymentStatus.PENDING,
            )
        )
        try:
            await self.uow.commit()
        except IntegrityError as exc:
            await self.uow.rollback()
            raise AlreadyEnrolledError("Enrollment already exists") from exc
        return enrollment, payment
