"""Read-only listing of generated adaptive quizzes."""
from __future__ import annotations

from collections import Counter
from dataclasses import dataclass
from datetime import datetime
from typing import Dict, List, Optional
from uuid import UUID

from sqlalchemy import and_, select
from sqlalchemy.ext.asyncio import AsyncSession

from src.core.errors import NotFoundError, coerce_uuid
from src.db.models import Quiz


@dataclass
class QuizSummary:
    """A quiz with its difficulty mix, without question content."""
    quiz_id: UUID
    title: str
    description: str
    quiz_level: int
    unique_hash: str
    total_questions: int
    difficulty_distribution: Dict[str, int]
    target_correct_answers: int
    difficulty_progression: str
    starting_difficulty: int
    generation_criteria: str
    created_at: Optional[datetime]


def summarize_quiz(quiz: Quiz) -> QuizSummary:
    snapshots = quiz.snapshots
    config = quiz.config
    distribution = Counter(str(s.difficulty) for s in snapshots)
    return QuizSummary(
        quiz_id=quiz.id,
        title=quiz.title,
        description=quiz.description or "",
        quiz_level=quiz.quiz_level,
        unique_hash=quiz.unique_hash,
        total_questions=len(snapshots),
        difficulty_distribution=dict(sorted(distribution.items())),
        target_correct_answers=config.target_correct_answers,
        difficulty_progression=config.difficulty_progression.value,
        starting_difficulty=config.starting_difficulty,
        generation_criteria=quiz.generation_criteria,
        created_at=quiz.created_at,
    )


class QuizCatalog:
    def __init__(self, session: AsyncSession):
        self.session = session

    async def list_quizzes(self, quiz_level: int | None = None, limit: int = 100) -> List[QuizSummary]:
        """Active adaptive quizzes, newest first."""
        conditions = [Quiz.quiz_type == "adaptive", Quiz.is_active.is_(True)]
        if quiz_level is not None:
            conditions.append(Quiz.quiz_level == quiz_level)

        result = await self.session.execute(
            select(Quiz).where(and_(*conditions)).order_by(Quiz.created_at.desc()).limit(limit)
        )
        return [summarize_quiz(q) for q in result.scalars().all()]

    async def get_quiz(self, quiz_id: UUID | str) -> Quiz:
        quiz = await self.session.get(Quiz, coerce_uuid(quiz_id, "quiz_id"))
        if quiz is None:
            raise NotFoundError("Quiz not found", quiz_id=str(quiz_id))
        return quiz
