from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel, Field


class CertificateGenerateRequest(BaseModel):
    program_id: str
    learner_id: str | None = Field(
        None, description="Learner to certify; admins only, defaults to the caller"
    )


class CertificateItem(BaseModel):
    id: str
    learner_id: str
    program_id: str
    program_title: str | None = None
    certificate_hash: str
    final_score: float
    document_url: str
    issued_by: str
    issued_at: datetime


class CertificateListResponse(BaseModel):
    certificates: list[CertificateItem]


class CertificateVerifyResponse(BaseModel):
    valid: bool
    certificate_hash: str
    learner_name: str
    program_title: str
    final_score: float
    issued_at: datetime
    document_url: str


class EligibilityResponse(BaseModel):
    program_id: str
    can_issue: bool
    reason: str | None = None
    already_exists: bool = False
