"""Repositories for learners, programs, assessments and the attempt log."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload
from src.infrastructure.db.models import (
    Assessment,
    AssessmentKind,
    Attempt,
    Program,
    Question,
    UserModel,
)


@dataclass
class UserRepository:
    session: AsyncSession

    async def get(self, user_id: str) -> UserModel | None:
        stmt = select(UserModel).where(UserModel.id == user_id).options(
            selectinload(UserModel.company)
        )
        return await self.session.scalar(stmt)

    async def get_by_email(self, email: str) -> UserModel | None:
        return await self.session.scalar(select(UserModel).where(UserModel.email == email))


@dataclass
class ProgramRepository:
    session: AsyncSession

    async def get(self, program_id: str) -> Program | None:
        stmt = select(Program).where(Program.id == program_id).options(
            selectinload(Program.company)
        )
        return await self.session.scalar(stmt)


@dataclass
class AssessmentRepository:
    session: AsyncSession

    async def get_with_questions(self, assessment_id: str) -> Assessment | None:
        stmt = (
            select(Assessment)
            .where(Assessment.id == assessment_id)
            .options(selectinload(Assessment.questions).selectinload(Question.options))
        )
        return await self.session.scalar(stmt)

    async def final_exam_for(self, program_id: str) -> Assessment | None:
        stmt = (
            select(Assessment)
            .where(
                Assessment.program_id == program_id,
                Assessment.kind == AssessmentKind.FINAL_EXAM,
            )
            .order_by(Assessment.created_at)
            .limit(1)
        )
        return await self.session.scalar(stmt)


@dataclass
class AttemptRepository:
    """Append-only access to the attempt log."""

    session: AsyncSession

    async def add(
        self,
        *,
        learner_id: str,
        assessment_id: str,
        answers: dict[str, Any],
        score: float,
        passed: bool,
        correct_count: int,
        total_count: int,
    ) -> Attempt:
        attempt = Attempt(
            learner_id=learner_id,
            assessment_id=assessment_id,
            answers=answers,
            score=score,
            passed=passed,
            correct_count=correct_count,
            total_count=total_count,
        )
        self.session.add(attempt)
        await self.session.flush()
        return attempt

    async def list_for(self, *, learner_id: str, assessment_id: str) -> list[Attempt]:
        stmt = (
            select(Attempt)
            .where(Attempt.learner_id == learner_id, Attempt.assessment_id == assessment_id)
            .order_by(Attempt.created_at.desc(), Attempt.id.desc())
        )
        return list((await self.session.execute(stmt)).scalars().all())

    async def latest_passing(self, *, learner_id: str, assessment_id: str) -> Attempt | None:
        stmt = (
            select(Attempt)
            .where(
                Attempt.learner_id == learner_id,
                Attempt.assessment_id == assessment_id,
                Attempt.passed.is_(True),
            )
            .order_by(Attempt.created_at.desc(), Attempt.id.desc())
            .limit(1)
        )
        return await self.session.scalar(stmt)
