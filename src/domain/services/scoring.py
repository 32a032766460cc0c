"""
Rule-based scoring for multiple-choice quizzes and final exams.

Each question has at most one correct option. A submission maps question ids to
the chosen option id; the score is the percentage of questions answered with
exactly the correct option id.
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping
from dataclasses import dataclass
from typing import Any

MAX_SCORE = 100.0


@dataclass(slots=True, frozen=True)
class ScoringQuestion:
    question_id: str
    correct_answer_id: str | None


@dataclass(slots=True)
class ScoreResult:
    score: float
    passed: bool
    correct_count: int
    total_count: int


def score_submission(
    questions: Iterable[ScoringQuestion],
    answers: Any,
    passing_score: float,
) -> ScoreResult:
    """Grade ``answers`` against ``questions``.

    Missing or unknown answers count as incorrect and extra keys are ignored.
    An assessment without questions scores 0 and never passes.
    """
    question_list = list(questions)
    submitted: Mapping[Any, Any] = answers if isinstance(answers, Mapping) else {}

    total = len(question_list)
    if total == 0:
        return ScoreResult(score=0.0, passed=False, correct_count=0, total_count=0)

    correct = 0
    for question in question_list:
        if question.correct_answer_id is None:
            continue
        chosen = submitted.get(question.question_id)
        if isinstance(chosen, str) and chosen == question.correct_answer_id:
            correct += 1

    score = MAX_SCORE * correct / total
    return ScoreResult(
        score=score,
        passed=score >= passing_score,
        correct_count=correct,
        total_count=total,
    )
