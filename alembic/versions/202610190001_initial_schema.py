"""Initial schema for programs, assessments, enrollments, billing and certificates

Revision ID: 202610190001
Revises:
Create Date: 2026-10-19 00:01:00
"""

from __future__ import annotations

import sqlalchemy as sa
from alembic import op

revision = "202610190001"
down_revision = None
branch_labels = None
depends_on = None

user_role_enum = sa.Enum("student", "employee", "admin", name="user_role")
program_kind_enum = sa.Enum("course", "training", name="program_kind")
assessment_kind_enum = sa.Enum("quiz", "final_exam", name="assessment_kind")
enrollment_status_enum = sa.Enum("PENDING", "APPROVED", "REJECTED", name="enrollment_status")
payment_status_enum = sa.Enum("PENDING", "COMPLETED", "FAILED", name="payment_status")
payment_provider_enum = sa.Enum("stripe", "abacatepay", name="payment_provider")
discount_type_enum = sa.Enum("PERCENTAGE", "FIXED", name="discount_type")


def _created_at() -> sa.Column:
    return sa.Column(
        "created_at",
        sa.DateTime(timezone=True),
        server_default=sa.func.now(),
        nullable=False,
    )


def _updated_at() -> sa.Column:
    return sa.Column(
        "updated_at",
        sa.DateTime(timezone=True),
        server_default=sa.func.now(),
        nullable=False,
    )


def upgrade() -> None:
    op.create_table(
        "companies",
        sa.Column("id", sa.String(length=36), primary_key=True),
        sa.Column("name", sa.String(length=255), nullable=False),
        sa.Column("tax_id", sa.String(length=32), nullable=True),
        _created_at(),
    )

    op.create_table(
        "users",
        sa.Column("id", sa.String(length=36), primary_key=True),
        sa.Column("email", sa.String(length=255), nullable=False),
        sa.Column("full_name", sa.String(length=128), nullable=False),
        sa.Column("tax_id", sa.String(length=32), nullable=True),
        sa.Column("phone", sa.String(length=32), nullable=True),
        sa.Column("role", user_role_enum, nullable=False, server_default="student"),
        sa.Column(
            "company_id",
            sa.String(length=36),
            sa.ForeignKey("companies.id", ondelete="SET NULL"),
            nullable=True,
        ),
        _created_at(),
    )
    op.create_index("ix_users_email", "users", ["email"], unique=True)
    op.create_index("ix_users_company_id", "users", ["company_id"])

    op.create_table(
        "programs",
        sa.Column("id", sa.String(length=36), primary_key=True),
        sa.Column("kind", program_kind_enum, nullable=False, server_default="course"),
        sa.Column("title", sa.String(length=255), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("duration", sa.String(length=64), nullable=True),
        sa.Column("price", sa.Float(), nullable=True),
        sa.Column("is_published", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column(
            "company_id",
            sa.String(length=36),
            sa.ForeignKey("companies.id", ondelete="SET NULL"),
            nullable=True,
        ),
        _created_at(),
    )
    op.create_index("ix_programs_company_id", "programs", ["company_id"])

    op.create_table(
        "certificate_templates",
        sa.Column("id", sa.String(length=36), primary_key=True),
        sa.Column("name", sa.String(length=255), nullable=False),
        sa.Column("template_url", sa.String(length=1024), nullable=False),
        sa.Column("is_default", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column(
            "program_id",
            sa.String(length=36),
            sa.ForeignKey("programs.id", ondelete="CASCADE"),
            nullable=True,
        ),
        sa.Column(
            "company_id",
            sa.String(length=36),
            sa.ForeignKey("companies.id", ondelete="CASCADE"),
            nullable=True,
        ),
        _created_at(),
        sa.UniqueConstraint("program_id", "company_id", name="uq_certificate_template_binding"),
    )
    op.create_index(
        "ix_certificate_templates_program_id", "certificate_templates", ["program_id"]
    )
    op.create_index(
        "ix_certificate_templates_company_id", "certificate_templates", ["company_id"]
    )

    op.create_table(
        "assessments",
        sa.Column("id", sa.String(length=36), primary_key=True),
        sa.Column(
            "program_id",
            sa.String(length=36),
            sa.ForeignKey("programs.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("kind", assessment_kind_enum, nullable=False, server_default="quiz"),
        sa.Column("title", sa.String(length=255), nullable=False),
        sa.Column("passing_score", sa.Float(), nullable=False, server_default="70"),
        _created_at(),
    )
    op.create_index("ix_assessments_program_id", "assessments", ["program_id"])

    op.create_table(
        "questions",
        sa.Column("id", sa.String(length=36), primary_key=True),
        sa.Column(
            "assessment_id",
            sa.String(length=36),
            sa.ForeignKey("assessments.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("sequence", sa.Integer(), nullable=False),
        sa.Column("prompt", sa.Text(), nullable=False),
        sa.UniqueConstraint("assessment_id", "sequence", name="uq_question_sequence"),
    )
    op.create_index("ix_questions_assessment_id", "questions", ["assessment_id"])

    op.create_table(
        "answer_options",
        sa.Column("id", sa.String(length=36), primary_key=True),
        sa.Column(
            "question_id",
            sa.String(length=36),
            sa.ForeignKey("questions.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("sequence", sa.Integer(), nullable=False),
        sa.Column("text", sa.Text(), nullable=False),
        sa.Column("is_correct", sa.Boolean(), nullable=False, server_default=sa.false()),
    )
    op.create_index("ix_answer_options_question_id", "answer_options", ["question_id"])

    op.create_table(
        "attempts",
        sa.Column("id", sa.String(length=36), primary_key=True),
        sa.Column(
            "learner_id",
            sa.String(length=36),
            sa.ForeignKey("users.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column(
            "assessment_id",
            sa.String(length=36),
            sa.ForeignKey("assessments.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("answers", sa.JSON(), nullable=False),
        sa.Column("score", sa.Float(), nullable=False),
        sa.Column("passed", sa.Boolean(), nullable=False),
        sa.Column("correct_count", sa.Integer(), nullable=False),
        sa.Column("total_count", sa.Integer(), nullable=False),
        _created_at(),
    )
    op.create_index("ix_attempts_learner_id", "attempts", ["learner_id"])
    op.create_index("ix_attempts_assessment_id", "attempts", ["assessment_id"])

    op.create_table(
        "enrollments",
        sa.Column("id", sa.String(length=36), primary_key=True),
        sa.Column(
            "learner_id",
            sa.String(length=36),
            sa.ForeignKey("users.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column(
            "program_id",
            sa.String(length=36),
            sa.ForeignKey("programs.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("status", enrollment_status_enum, nullable=False, server_default="PENDING"),
        _created_at(),
        _updated_at(),
        sa.UniqueConstraint("learner_id", "program_id", name="uq_enrollment_learner_program"),
    )
    op.create_index("ix_enrollments_learner_id", "enrollments", ["learner_id"])
    op.create_index("ix_enrollments_program_id", "enrollments", ["program_id"])
    op.create_index("ix_enrollments_status", "enrollments", ["status"])

    op.create_table(
        "payments",
        sa.Column("id", sa.String(length=36), primary_key=True),
        sa.Column(
            "enrollment_id",
            sa.String(length=36),
            sa.ForeignKey("enrollments.id", ondelete="CASCADE"),
            nullable=False,
            unique=True,
        ),
        sa.Column("provider", payment_provider_enum, nullable=False),
        sa.Column("amount", sa.Float(), nullable=False),
        sa.Column("currency", sa.String(length=8), nullable=False, server_default="BRL"),
        sa.Column("status", payment_status_enum, nullable=False, server_default="PENDING"),
        sa.Column("provider_reference", sa.String(length=255), nullable=True),
        sa.Column("provider_payment_id", sa.String(length=255), nullable=True),
        sa.Column("payment_method", sa.String(length=32), nullable=True),
        sa.Column("paid_at", sa.DateTime(timezone=True), nullable=True),
        _created_at(),
        _updated_at(),
    )
    op.create_index("ix_payments_status", "payments", ["status"])
    op.create_index("ix_payments_provider_reference", "payments", ["provider_reference"])

    op.create_table(
        "coupons",
        sa.Column("id", sa.String(length=36), primary_key=True),
        sa.Column("code", sa.String(length=64), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("discount_type", discount_type_enum, nullable=False),
        sa.Column("discount_value", sa.Float(), nullable=False),
        sa.Column(
            "valid_from",
            sa.DateTime(timezone=True),
            server_default=sa.func.now(),
            nullable=False,
        ),
        sa.Column("valid_until", sa.DateTime(timezone=True), nullable=True),
        sa.Column("max_uses", sa.Integer(), nullable=True),
        sa.Column("used_count", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("applies_to_all", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("min_purchase", sa.Float(), nullable=True),
        _created_at(),
    )
    op.create_index("ix_coupons_code", "coupons", ["code"], unique=True)

    op.create_table(
        "coupon_programs",
        sa.Column(
            "coupon_id",
            sa.String(length=36),
            sa.ForeignKey("coupons.id", ondelete="CASCADE"),
            primary_key=True,
        ),
        sa.Column(
            "program_id",
            sa.String(length=36),
            sa.ForeignKey("programs.id", ondelete="CASCADE"),
            primary_key=True,
        ),
    )

    op.create_table(
        "coupon_usages",
        sa.Column("id", sa.String(length=36), primary_key=True),
        sa.Column(
            "coupon_id",
            sa.String(length=36),
            sa.ForeignKey("coupons.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column(
            "user_id",
            sa.String(length=36),
            sa.ForeignKey("users.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column(
            "enrollment_id",
            sa.String(length=36),
            sa.ForeignKey("enrollments.id", ondelete="SET NULL"),
            nullable=True,
        ),
        sa.Column(
            "used_at",
            sa.DateTime(timezone=True),
            server_default=sa.func.now(),
            nullable=False,
        ),
        sa.UniqueConstraint("coupon_id", "user_id", name="uq_coupon_usage_user"),
    )
    op.create_index("ix_coupon_usages_coupon_id", "coupon_usages", ["coupon_id"])
    op.create_index("ix_coupon_usages_user_id", "coupon_usages", ["user_id"])

    op.create_table(
        "certificates",
        sa.Column("id", sa.String(length=36), primary_key=True),
        sa.Column(
            "learner_id",
            sa.String(length=36),
            sa.ForeignKey("users.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column(
            "program_id",
            sa.String(length=36),
            sa.ForeignKey("programs.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("certificate_hash", sa.String(length=32), nullable=False),
        sa.Column("digital_signature", sa.String(length=128), nullable=False),
        sa.Column("final_score", sa.Float(), nullable=False),
        sa.Column("document_url", sa.String(length=1024), nullable=False),
        sa.Column(
            "template_id",
            sa.String(length=36),
            sa.ForeignKey("certificate_templates.id", ondelete="SET NULL"),
            nullable=True,
        ),
        sa.Column("issued_by", sa.String(length=64), nullable=False),
        sa.Column("issued_at", sa.DateTime(timezone=True), nullable=False),
        sa.UniqueConstraint("learner_id", "program_id", name="uq_certificate_learner_program"),
    )
    op.create_index(
        "ix_certificates_certificate_hash", "certificates", ["certificate_hash"], unique=True
    )
    op.create_index("ix_certificates_learner_id", "certificates", ["learner_id"])
    op.create_index("ix_certificates_program_id", "certificates", ["program_id"])


def downgrade() -> None:
    for table in (
        "certificates",
        "coupon_usages",
        "coupon_programs",
        "coupons",
        "payments",
        "enrollments",
        "attempts",
        "answer_options",
        "questions",
        "assessments",
        "certificate_templates",
        "programs",
        "users",
        "companies",
    ):
        op.drop_table(table)

    bind = op.get_bind()
    for enum in (
        discount_type_enum,
        payment_provider_enum,
        payment_status_enum,
        enrollment_status_enum,
        assessment_kind_enum,
        program_kind_enum,
        user_role_enum,
    ):
        enum.drop(bind, checkfirst=True)
