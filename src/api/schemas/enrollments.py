from __future__ import annotations

from datetime import datetime
from typing import Literal

from pydantic import BaseModel


class EnrollmentRequestBody(BaseModel):
    program_id: str


class EnrollmentGrantBody(BaseModel):
    learner_id: str
    program_id: str


class EnrollmentStatusBody(BaseModel):
    status: Literal["APPROVED", "REJECTED"]


class EnrollmentResponse(BaseModel):
    id: str
    learner_id: str
    program_id: str
    status: str
    payment_status: str | None = None
    created_at: datetime | None = None
