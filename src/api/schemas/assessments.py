from __future__ import annotations

from datetime import datetime
from typing import Any

from pydantic import BaseModel, Field


class AnswerOptionItem(BaseModel):
    id: str
    sequence: int
    text: str


class QuestionItem(BaseModel):
    id: str
    sequence: int
    prompt: str
    options: list[AnswerOptionItem]


class AssessmentDetailResponse(BaseModel):
    id: str
    program_id: str
    kind: str
    title: str
    passing_score: float
    questions: list[QuestionItem]


class AssessmentSubmitRequest(BaseModel):
    answers: Any = Field(
        default_factory=dict,
        description="Map of question id to the chosen answer option id",
    )


class AssessmentSubmitResponse(BaseModel):
    attempt_id: str
    assessment_id: str
    score: float
    passed: bool
    correct_count: int
    total_count: int
    passing_score: float
    certificate_generated: bool = False
    certificate_hash: str | None = None


class AttemptItem(BaseModel):
    id: str
    score: float
    passed: bool
    correct_count: int
    total_count: int
    created_at: datetime


class AttemptListResponse(BaseModel):
    assessment_id: str
    attempts: list[AttemptItem]
