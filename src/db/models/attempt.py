"""
Quiz attempt model.

One row per student run through one quiz. The answer log is an ordered
JSON list of AnswerRecord dicts; the engine replaces the list on every
append so change tracking sees the write.

States:
- in progress: is_completed = False
- completed:   is_completed = True (terminal, never reverts)
"""
from __future__ import annotations

import math
from datetime import datetime
from enum import Enum
from typing import TYPE_CHECKING
from uuid import UUID, uuid4

from sqlalchemy import Boolean, DateTime, ForeignKey, Index, Integer, String, Uuid
from sqlalchemy.orm import Mapped, mapped_column

from .base import Base, JSONDocument, utcnow

if TYPE_CHECKING:
    from src.quiz.snapshots import AnswerRecord


class AttemptState(str, Enum):
    """Lifecycle state of an attempt."""

    CREATED = "created"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"


class CompletionReason(str, Enum):
    """Why an attempt reached the completed state."""

    TARGET_REACHED = "target_reached"
    POOL_EXHAUSTED = "pool_exhausted"


class QuizAttempt(Base):
    """A student's adaptive run through a quiz."""

    __tablename__ = "quiz_attempts"
    __table_args__ = (
        Index("ix_quiz_attempts_user_quiz_completed", "user_id", "quiz_id", "is_completed"),
        Index("ix_quiz_attempts_user_started", "user_id", "started_at"),
    )

    id: Mapped[UUID] = mapped_column(Uuid, primary_key=True, default=uuid4)
    user_id: Mapped[str] = mapped_column(String(64), nullable=False)
    quiz_id: Mapped[UUID] = mapped_column(ForeignKey("quizzes.id", ondelete="CASCADE"), nullable=False)

    # Live adaptive state
    current_difficulty: Mapped[int] = mapped_column(Integer, nullable=False, default=1)  # 1-5
    correct_count: Mapped[int] = mapped_column(Integer, default=0)
    total_answered: Mapped[int] = mapped_column(Integer, default=0)
    answers: Mapped[list] = mapped_column(JSONDocument, default=list)

    # Completion
    is_completed: Mapped[bool] = mapped_column(Boolean, default=False)
    completion_reason: Mapped[str | None] = mapped_column(String(32), nullable=True)
    score: Mapped[int] = mapped_column(Integer, default=0)

    started_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow)
    completed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    def __repr__(self) -> str:
        return (
            f"<QuizAttempt(user={self.user_id}, difficulty={self.current_difficulty}, "
            f"{self.correct_count}/{self.total_answered}, completed={self.is_completed})>"
        )

    @property
    def state(self) -> AttemptState:
        """Current lifecycle state."""
        if self.is_completed:
            return AttemptState.COMPLETED
        if self.id is None:
            return AttemptState.CREATED
        return AttemptState.IN_PROGRESS

    @property
    def answer_records(self) -> list["AnswerRecord"]:
        """Answer log as value objects, in answer order."""
        from src.quiz.snapshots import AnswerRecord

        return [AnswerRecord.from_dict(a) for a in self.answers or []]

    @property
    def answered_question_ids(self) -> set[str]:
        return {str(a["question_id"]) for a in self.answers or []}

    @property
    def accuracy(self) -> int:
        """Percentage of correct answers, rounded half up."""
        if not self.total_answered:
            return 0
        return math.floor(self.correct_count / self.total_answered * 100 + 0.5)
