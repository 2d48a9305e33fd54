"""
Quiz artifact model.

A Quiz is produced once by the Quiz Assembler and never edited by the
engine afterwards. Its questions are embedded snapshots (JSON documents)
copied from the Question Repository at generation time, so later edits or
deactivation of a source question cannot change how an attempt is graded.

questions JSON structure (one entry per slot, ordered by position):
    {
        "question_id": "uuid",
        "text": "What is 7 x 8?",
        "choices": ["54", "56", "58", "64"],
        "answer": "56",
        "difficulty": 3,
        "position": 1,
        "starting_difficulty": 2,
        "topic": "Multiplication",
        "subject": "Math"
    }

adaptive_config JSON structure:
    {
        "target_correct_answers": 10,
        "difficulty_progression": "gradual",   # immediate | gradual | ml-based
        "starting_difficulty": 1
    }
"""
from __future__ import annotations

from datetime import datetime
from typing import TYPE_CHECKING
from uuid import UUID, uuid4

from sqlalchemy import Boolean, DateTime, Index, Integer, String, Text, Uuid
from sqlalchemy.orm import Mapped, mapped_column

from .base import Base, JSONDocument, utcnow

if TYPE_CHECKING:
    from src.quiz.snapshots import AdaptiveConfig, QuestionSnapshot


class Quiz(Base):
    """Generated adaptive quiz with embedded question snapshots."""

    __tablename__ = "quizzes"
    __table_args__ = (
        Index("ix_quizzes_level_created", "quiz_level", "created_at"),
    )

    id: Mapped[UUID] = mapped_column(Uuid, primary_key=True, default=uuid4)
    title: Mapped[str] = mapped_column(Text, nullable=False)
    description: Mapped[str] = mapped_column(Text, default="")
    quiz_type: Mapped[str] = mapped_column(String(32), default="adaptive")
    quiz_level: Mapped[int] = mapped_column(Integer, nullable=False)
    grade: Mapped[str | None] = mapped_column(Text, nullable=True)
    subject: Mapped[str | None] = mapped_column(Text, nullable=True)

    questions: Mapped[list] = mapped_column(JSONDocument, default=list)
    adaptive_config: Mapped[dict] = mapped_column(JSONDocument, default=dict)

    # Generation metadata
    unique_hash: Mapped[str] = mapped_column(String(16), unique=True, nullable=False)
    generation_criteria: Mapped[str] = mapped_column(String(64), default="manual")
    is_auto_generated: Mapped[bool] = mapped_column(Boolean, default=True)
    student_id: Mapped[str | None] = mapped_column(String(64), nullable=True)

    is_active: Mapped[bool] = mapped_column(Boolean, default=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow)

    def __repr__(self) -> str:
        return f"<Quiz(level={self.quiz_level}, hash={self.unique_hash}, questions={len(self.questions or [])})>"

    @property
    def snapshots(self) -> tuple["QuestionSnapshot", ...]:
        """Embedded questions as immutable value objects, in position order."""
        from src.quiz.snapshots import QuestionSnapshot

        items = [QuestionSnapshot.from_dict(q) for q in self.questions or []]
        return tuple(sorted(items, key=lambda s: s.position))

    @property
    def config(self) -> "AdaptiveConfig":
        """Parsed adaptive configuration."""
        from src.quiz.snapshots import AdaptiveConfig

        return AdaptiveConfig.from_dict(self.adaptive_config or {})

    def find_snapshot(self, question_id: str) -> "QuestionSnapshot | None":
        """Embedded question by id, or None if it is not part of this quiz."""
        for snapshot in self.snapshots:
            if snapshot.question_id == str(question_id):
                return snapshot
        return None
