"""Quiz generation audit log."""
from __future__ import annotations

from datetime import datetime
from uuid import UUID, uuid4

from sqlalchemy import Boolean, DateTime, Float, Index, Integer, String, Text, Uuid
from sqlalchemy.orm import Mapped, mapped_column

from .base import Base, JSONDocument, utcnow


class QuizGenerationLog(Base):
    """
    One row per generate_quiz call, successful or not.

    freshness_score is the mean selection weight of the chosen questions;
    difficulty_distribution maps difficulty -> count among them.
    """

    __tablename__ = "quiz_generation_logs"
    __table_args__ = (
        Index("ix_generation_logs_level_created", "quiz_level", "created_at"),
        Index("ix_generation_logs_trigger", "trigger_type"),
    )

    id: Mapped[UUID] = mapped_column(Uuid, primary_key=True, default=uuid4)
    quiz_id: Mapped[UUID | None] = mapped_column(Uuid, nullable=True)
    quiz_level: Mapped[int] = mapped_column(Integer, nullable=False)
    student_id: Mapped[str | None] = mapped_column(String(64), nullable=True)
    trigger_type: Mapped[str] = mapped_column(String(64), nullable=False)
    trigger_details: Mapped[str] = mapped_column(Text, default="")
    questions_selected: Mapped[int] = mapped_column(Integer, default=0)
    freshness_score: Mapped[float] = mapped_column(Float, default=0.0)
    difficulty_distribution: Mapped[dict] = mapped_column(JSONDocument, default=dict)
    success: Mapped[bool] = mapped_column(Boolean, default=True)
    error_message: Mapped[str] = mapped_column(Text, default="")
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow)
