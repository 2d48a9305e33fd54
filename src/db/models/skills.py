"""
Skill aggregation models.

- StudentSkill: cumulative points and discrete level per (student, topic)
- SkillPointsConfig: admin-editable difficulty -> points table (single row)

difficulty_points JSON structure (keys are difficulty levels as strings):
    {
        "1": {"correct": 1, "wrong": -2.5},
        "2": {"correct": 2, "wrong": -2.0},
        "3": {"correct": 3, "wrong": -1.5},
        "4": {"correct": 4, "wrong": -1.0},
        "5": {"correct": 5, "wrong": -0.5}
    }
"""
from __future__ import annotations

from datetime import datetime
from uuid import UUID, uuid4

from sqlalchemy import DateTime, Float, Integer, String, Text, UniqueConstraint, Uuid
from sqlalchemy.orm import Mapped, mapped_column

from .base import Base, JSONDocument, utcnow


class StudentSkill(Base):
    """Per-topic mastery points for a student."""

    __tablename__ = "student_skills"
    __table_args__ = (
        UniqueConstraint("student_id", "skill_name", name="uq_student_skills_student_skill"),
    )

    id: Mapped[UUID] = mapped_column(Uuid, primary_key=True, default=uuid4)
    student_id: Mapped[str] = mapped_column(String(64), nullable=False)
    skill_name: Mapped[str] = mapped_column(Text, nullable=False)
    points: Mapped[float] = mapped_column(Float, default=0.0)  # floored at 0
    current_level: Mapped[int] = mapped_column(Integer, default=0)  # 0-5
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow)

    def __repr__(self) -> str:
        return f"<StudentSkill(student={self.student_id}, skill={self.skill_name}, points={self.points}, level={self.current_level})>"


class SkillPointsConfig(Base):
    """Points awarded/deducted per difficulty level."""

    __tablename__ = "skill_points_config"

    config_id: Mapped[str] = mapped_column(String(32), primary_key=True, default="default")
    difficulty_points: Mapped[dict] = mapped_column(JSONDocument, default=dict)
    updated_by: Mapped[str | None] = mapped_column(String(64), nullable=True)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow)
