"""
Question Repository model.

Questions are authored by an external admin flow. The quiz engine only
reads them, and the Quiz Assembler writes exactly two fields at selection
time: ``usage_count += 1`` and ``last_used_timestamp = now``.
"""
from __future__ import annotations

from datetime import datetime
from uuid import UUID, uuid4

from sqlalchemy import Boolean, DateTime, Index, Integer, Text, Uuid
from sqlalchemy.orm import Mapped, mapped_column

from .base import Base, JSONDocument, utcnow


class Question(Base):
    """A multiple-choice question with difficulty and usage statistics."""

    __tablename__ = "questions"
    __table_args__ = (
        Index("ix_questions_level_active", "quiz_level", "is_active"),
        Index("ix_questions_active_difficulty", "is_active", "difficulty"),
        Index("ix_questions_subject_topic", "subject", "topic"),
        Index("ix_questions_usage", "usage_count", "last_used_timestamp"),
    )

    id: Mapped[UUID] = mapped_column(Uuid, primary_key=True, default=uuid4)

    # Content
    text: Mapped[str] = mapped_column(Text, nullable=False)
    choices: Mapped[list] = mapped_column(JSONDocument, default=list)
    answer: Mapped[str] = mapped_column(Text, nullable=False)

    # Classification
    difficulty: Mapped[int] = mapped_column(Integer, nullable=False, default=3)  # 1-5
    quiz_level: Mapped[int] = mapped_column(Integer, nullable=False, default=1)  # 1-10
    subject: Mapped[str] = mapped_column(Text, default="General")
    topic: Mapped[str] = mapped_column(Text, default="")
    grade: Mapped[str] = mapped_column(Text, default="Primary 1")
    is_active: Mapped[bool] = mapped_column(Boolean, default=True)

    # Usage statistics (written by the Quiz Assembler)
    usage_count: Mapped[int] = mapped_column(Integer, default=0)
    last_used_timestamp: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow)

    def __repr__(self) -> str:
        return f"<Question(level={self.quiz_level}, difficulty={self.difficulty}, used={self.usage_count})>"
