"""Domain services."""

from src.domain.services.attempts import AttemptRecorder, SubmissionResult, SubmissionService
from src.domain.services.certificates import CertificateService
from src.domain.services.checkout import CheckoutResult, CheckoutService
from src.domain.services.coupons import CouponValidation, CouponValidator, apply_discount
from src.domain.services.eligibility import CertificateEligibilityChecker, EligibilityResult
from src.domain.services.enrollments import EnrollmentService
from src.domain.services.scoring import ScoreResult, ScoringQuestion, score_submission
from src.domain.services.webhooks import PaymentEvent, ReconcileOutcome, WebhookReconciler

__all__ = [
    "AttemptRecorder",
    "CertificateEligibilityChecker",
    "CertificateService",
    "CheckoutResult",
    "CheckoutService",
    "CouponValidation",
    "CouponValidator",
    "EligibilityResult",
    "EnrollmentService",
    "PaymentEvent",
    "ReconcileOutcome",
    "ScoreResult",
    "ScoringQuestion",
    "SubmissionResult",
    "SubmissionService",
    "WebhookReconciler",
    "apply_discount",
    "score_submission",
]
