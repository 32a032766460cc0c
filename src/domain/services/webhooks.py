"""
Payment webhook reconciliation.

Provider callbacks are translated into a provider-neutral ``PaymentEvent``
and applied to the enrollment/payment pair. Providers redeliver, so applying
the same event twice must leave the store unchanged.
"""

from __future__ import annotations

import enum
from dataclasses import dataclass
from datetime import UTC, datetime
from typing import Any

import structlog
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession
from src.core.config import Settings, get_settings
from src.infrastructure.db.models import (
    Enrollment,
    EnrollmentStatus,
    Payment,
    PaymentProvider,
    PaymentStatus,
)
from src.infrastructure.repositories import UnitOfWork

logger = structlog.get_logger()


class EventKind(str, enum.Enum):
    CONFIRMED = "confirmed"
    EXPIRED = "expired"
    IGNORED = "ignored"


class ReconcileOutcome(str, enum.Enum):
    APPROVED = "approved"
    CREATED = "created"
    MARKED_FAILED = "marked_failed"
    DUPLICATE = "duplicate"
    UNRESOLVED = "unresolved"
    IGNORED = "ignored"


@dataclass(slots=True)
class PaymentEvent:
    provider: PaymentProvider
    kind: EventKind
    event_type: str
    provider_reference: str | None = None
    provider_payment_id: str | None = None
    enrollment_id: str | None = None
    learner_id: str | None = None
    program_id: str | None = None
    coupon_id: str | None = None
    customer_email: str | None = None
    amount: float | None = None
    payment_method: str | None = None


def _clean(value: Any) -> str | None:
    if value is None:
        return None
    text = str(value).strip()
    return text or None


def _mapping(value: Any) -> dict[str, Any]:
    # Signed bodies can still carry unexpected shapes
    return value if isinstance(value, dict) else {}


def stripe_event(payload: dict[str, Any]) -> PaymentEvent:
    """Translate a verified Stripe event body."""
    event_type = str(payload.get("type") or "")
    obj = _mapping(_mapping(payload.get("data")).get("object"))
    metadata = _mapping(obj.get("metadata"))

    if event_type == "checkout.session.completed":
        kind = EventKind.CONFIRMED
    elif event_type == "checkout.session.expired":
        kind = EventKind.EXPIRED
    else:
        kind = EventKind.IGNORED

    amount_total = obj.get("amount_total")
    customer = _mapping(obj.get("customer_details"))
    return PaymentEvent(
        provider=PaymentProvider.STRIPE,
        kind=kind,
        event_type=event_type,
        provider_reference=_clean(obj.get("id")),
        provider_payment_id=_clean(obj.get("payment_intent")),
        enrollment_id=_clean(metadata.get("enrollmentId")),
        learner_id=_clean(metadata.get("userId")),
        program_id=_clean(metadata.get("courseId")),
        coupon_id=_clean(metadata.get("couponId")),
        customer_email=_clean(customer.get("email") or obj.get("customer_email")),
        amount=amount_total / 100 if isinstance(amount_total, int | float) else None,
        payment_method="CREDIT_CARD",
    )


def abacatepay_event(payload: dict[str, Any]) -> PaymentEvent:
    """Translate a verified AbacatePay event body; amounts arrive in cents."""
    event_type = str(payload.get("event") or "")
    if event_type != "billing.paid":
        return PaymentEvent(
            provider=PaymentProvider.ABACATEPAY, kind=EventKind.IGNORED, event_type=event_type
        )

    data = _mapping(payload.get("data"))
    billing = _mapping(data.get("billing"))
    payment = _mapping(data.get("payment"))
    metadata = _mapping(billing.get("metadata"))
    products = billing.get("products")
    customer = _mapping(_mapping(billing.get("customer")).get("metadata"))

    program_id = _clean(metadata.get("courseId"))
    if program_id is None and isinstance(products, list) and products:
        program_id = _clean(_mapping(products[0]).get("externalId"))

    cents = billing.get("amount")
    method = str(payment.get("method") or "").upper()
    return PaymentEvent(
        provider=PaymentProvider.ABACATEPAY,
        kind=EventKind.CONFIRMED,
        event_type=event_type,
        provider_reference=_clean(billing.get("id")),
        provider_payment_id=_clean(payment.get("id")),
        enrollment_id=_clean(metadata.get("enrollmentId")),
        learner_id=_clean(metadata.get("userId")),
        program_id=program_id,
        coupon_id=_clean(metadata.get("couponId")),
        customer_email=_clean(customer.get("email")),
        amount=cents / 100 if isinstance(cents, int | float) else None,
        payment_method="PIX" if method == "PIX" else "CREDIT_CARD",
    )


class WebhookReconciler:
    """Applies payment events to enrollments and payments idempotently."""

    def __init__(self, session: AsyncSession, settings: Settings | None = None) -> None:
        self.uow = UnitOfWork(session)
        self.settings = settings or get_settings()

    async def apply(self, event: PaymentEvent) -> ReconcileOutcome:
        log = logger.bind(
            provider=event.provider.value,
            event_type=event.event_type,
            provider_reference=event.provider_reference,
        )
        if event.kind == EventKind.IGNORED:
            await log.ainfo("webhook_ignored")
            return ReconcileOutcome.IGNORED

        learner_id, program_id = await self._resolve_parties(event)
        enrollment = await self._resolve_enrollment(event, learner_id, program_id)

        if event.kind == EventKind.EXPIRED:
            outcome = await self._expire(enrollment, event)
        elif enrollment is not None:
            outcome = await self._confirm(enrollment, event)
        elif learner_id and program_id:
            outcome = await self._create(learner_id, program_id, event)
        else:
            outcome = ReconcileOutcome.UNRESOLVED

        if outcome == ReconcileOutcome.UNRESOLVED:
            await log.awarning(
                "webhook_unresolved",
                enrollment_id=event.enrollment_id,
                learner_id=learner_id,
                program_id=program_id,
                customer_email=event.customer_email,
            )
        else:
            await log.ainfo(
                "webhook_reconciled",
                outcome=outcome.value,
                learner_id=learner_id,
                program_id=program_id,
            )
        return outcome

    async def _resolve_parties(self, event: PaymentEvent) -> tuple[str | None, str | None]:
        learner_id = event.learner_id
        if learner_id is None and event.customer_email:
            learner = await self.uow.users.get_by_email(event.customer_email)
            learner_id = learner.id if learner else None
        return learner_id, event.program_id

    async def _resolve_enrollment(
        self, event: PaymentEvent, learner_id: str | None, program_id: str | None
    ) -> Enrollment | None:
        if event.enrollment_id:
            enrollment = await self.uow.enrollments.get(event.enrollment_id)
            if enrollment is not None:
                return enrollment
        if learner_id and program_id:
            return await self.uow.enrollments.find(learner_id=learner_id, program_id=program_id)
        return None

    async def _expire(
        self, enrollment: Enrollment | None, event: PaymentEvent
    ) -> ReconcileOutcome:
        payment = None
        if event.provider_reference:
            payment = await self.uow.payments.get_by_reference(event.provider_reference)
        if payment is None:
            if enrollment is None:
                return ReconcileOutcome.UNRESOLVED
            payment = enrollment.payment
        if payment is None or payment.status != PaymentStatus.PENDING:
            return ReconcileOutcome.DUPLICATE
        if await self._superseded(payment, event):
            return ReconcileOutcome.DUPLICATE

        payment.status = PaymentStatus.FAILED
        await self.uow.commit()
        return ReconcileOutcome.MARKED_FAILED

    async def _confirm(self, enrollment: Enrollment, event: PaymentEvent) -> ReconcileOutcome:
        if enrollment.status == EnrollmentStatus.APPROVED:
            return ReconcileOutcome.DUPLICATE

        payment = enrollment.payment
        if (
            payment is not None
            and payment.status == PaymentStatus.COMPLETED
            and await self._superseded(payment, event)
        ):
            return ReconcileOutcome.DUPLICATE

        enrollment.status = EnrollmentStatus.APPROVED
        if payment is None:
            payment = self.uow.payments.add(
                Payment(
                    enrollment=enrollment,
                    provider=event.provider,
                    amount=event.amount or 0.0,
                    currency=self.settings.currency,
                )
            )
        self._settle(payment, event)
        try:
            await self._record_coupon(event, enrollment.learner_id, enrollment.id)
            await self.uow.commit()
        except IntegrityError:
            return await self._lost_race(event)
        return ReconcileOutcome.APPROVED

    async def _create(
        self, learner_id: str, program_id: str, event: PaymentEvent
    ) -> ReconcileOutcome:
        if await self.uow.users.get(learner_id) is None:
            return ReconcileOutcome.UNRESOLVED
        if await self.uow.programs.get(program_id) is None:
            return ReconcileOutcome.UNRESOLVED

        enrollment = self.uow.enrollments.add(
            learner_id=learner_id, program_id=program_id, status=EnrollmentStatus.APPROVED
        )
        payment = self.uow.payments.add(
            Payment(
                enrollment=enrollment,
                provider=event.provider,
                amount=event.amount or 0.0,
                currency=self.settings.currency,
            )
        )
        self._settle(payment, event)
        try:
            await self.uow.session.flush()
            await self._record_coupon(event, learner_id, enrollment.id)
            await self.uow.commit()
        except IntegrityError:
            return await self._lost_race(event)
        return ReconcileOutcome.CREATED

    async def _superseded(self, payment: Payment, event: PaymentEvent) -> bool:
        """True when the event belongs to a checkout the payment no longer tracks."""
        current = payment.provider_reference
        if not (event.provider_reference and current) or current == event.provider_reference:
            return False
        await logger.ainfo(
            "webhook_superseded_checkout",
            provider_reference=event.provider_reference,
            current_reference=current,
        )
        return True

    async def _lost_race(self, event: PaymentEvent) -> ReconcileOutcome:
        # A concurrent delivery of the same event committed first
        await self.uow.rollback()
        await logger.ainfo(
            "webhook_concurrent_delivery",
            provider=event.provider.value,
            provider_reference=event.provider_reference,
        )
        return ReconcileOutcome.DUPLICATE

    @staticmethod
    def _settle(payment: Payment, event: PaymentEvent) -> None:
        payment.status = PaymentStatus.COMPLETED
        payment.provider = event.provider
        if event.amount is not None:
            payment.amount = event.amount
        if event.provider_reference:
            payment.provider_reference = event.provider_reference
        if event.provider_payment_id:
            payment.provider_payment_id = event.provider_payment_id
        payment.payment_method = event.payment_method
        payment.paid_at = datetime.now(UTC)

    async def _record_coupon(
        self, event: PaymentEvent, learner_id: str, enrollment_id: str
    ) -> None:
        if not event.coupon_id:
            return
        if await self.uow.coupons.get(event.coupon_id) is None:
            await logger.awarning("webhook_coupon_missing", coupon_id=event.coupon_id)
            return
        if await self.uow.coupons.has_usage(coupon_id=event.coupon_id, user_id=learner_id):
            return
        await self.uow.coupons.record_usage(
            coupon_id=event.coupon_id, user_id=learner_id, enrollment_id=enrollment_id
        )
