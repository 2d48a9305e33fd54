"""
Skill Aggregator: per-topic mastery points from completed attempts.

Formula:
- Each answer contributes points[difficulty]["correct"] or ["wrong"]
- Deltas are summed per topic across the attempt
- cumulative = max(0, previous + delta)
- level = highest index i with cumulative >= LEVEL_THRESHOLDS[i]

The points table is admin-editable (skill_points_config row "default");
missing rows or difficulties fall back to DEFAULT_DIFFICULTY_POINTS.
"""
from __future__ import annotations

from collections.abc import Iterable, Mapping, Sequence
from dataclasses import dataclass
from typing import Any, Protocol

from loguru import logger
from sqlalchemy import and_, select
from sqlalchemy.ext.asyncio import AsyncSession

from src.core.errors import ValidationError
from src.db.models import SkillPointsConfig, StudentSkill, utcnow
from src.quiz.snapshots import AnswerRecord

DEFAULT_CONFIG_ID = "default"

DEFAULT_DIFFICULTY_POINTS: dict[str, dict[str, float]] = {
    "1": {"correct": 1.0, "wrong": -2.5},
    "2": {"correct": 2.0, "wrong": -2.0},
    "3": {"correct": 3.0, "wrong": -1.5},
    "4": {"correct": 4.0, "wrong": -1.0},
    "5": {"correct": 5.0, "wrong": -0.5},
}

LEVEL_THRESHOLDS: tuple[float, ...] = (0, 25, 50, 100, 200, 400)


@dataclass
class SkillChange:
    """Result of one topic update."""

    skill_name: str
    old_points: float
    new_points: float
    old_level: int
    new_level: int

    @property
    def leveled_up(self) -> bool:
        return self.new_level > self.old_level


class SkillAggregator(Protocol):
    """Downstream consumer of a completed attempt's answers."""

    async def update_skills(self, user_id: str, answers: Sequence[AnswerRecord]) -> Any: ...


# ========================================
# Pure scoring
# ========================================

def points_for_answer(
    difficulty: int,
    is_correct: bool,
    table: Mapping[str, Mapping[str, float]] | None = None,
) -> float:
    """Points awarded (or deducted) for one answer at a difficulty."""
    table = table or DEFAULT_DIFFICULTY_POINTS
    key = str(difficulty)
    entry = table.get(key) or DEFAULT_DIFFICULTY_POINTS.get(key) or DEFAULT_DIFFICULTY_POINTS["3"]
    return float(entry["correct"] if is_correct else entry["wrong"])


def compute_topic_deltas(
    answers: Iterable[AnswerRecord],
    table: Mapping[str, Mapping[str, float]] | None = None,
) -> dict[str, float]:
    """Summed points delta per topic, in first-seen topic order."""
    deltas: dict[str, float] = {}
    for answer in answers:
        points = points_for_answer(answer.difficulty, answer.is_correct, table)
        deltas[answer.skill_name] = deltas.get(answer.skill_name, 0.0) + points
    return deltas


def level_for_points(points: float) -> int:
    """Discrete level 0-5 for cumulative points."""
    level = 0
    for index, threshold in enumerate(LEVEL_THRESHOLDS):
        if points >= threshold:
            level = index
    return level


def apply_delta(previous: float, delta: float) -> float:
    return max(0.0, previous + delta)


def _validate_points_entry(difficulty: Any, entry: Any) -> dict[str, float]:
    key = str(difficulty)
    if key not in DEFAULT_DIFFICULTY_POINTS:
        raise ValidationError(
            f"Invalid difficulty in points table: {difficulty!r}",
            allowed=sorted(DEFAULT_DIFFICULTY_POINTS),
        )
    if not isinstance(entry, Mapping):
        raise ValidationError(f"Points for difficulty {key} must be a mapping", difficulty=key)

    points: dict[str, float] = {}
    for outcome in ("correct", "wrong"):
        if outcome not in entry:
            raise ValidationError(f"Points for difficulty {key} missing '{outcome}'", difficulty=key)
        try:
            points[outcome] = float(entry[outcome])
        except (TypeError, ValueError) as exc:
            raise ValidationError(
                f"Points for difficulty {key} '{outcome}' must be a number",
                difficulty=key,
                value=entry[outcome],
            ) from exc
    return points


# ========================================
# Persistence-backed aggregator
# ========================================

class PointsSkillAggregator:
    """
    Updates StudentSkill rows from a completed attempt.

    Runs inside the caller's session; the attempt engine isolates the call
    in a savepoint so a failure here cannot undo the completion.
    """

    def __init__(self, session: AsyncSession):
        self.session = session

    async def get_points_table(self) -> dict[str, dict[str, float]]:
        """Current difficulty -> points table, creating the default row if missing."""
        config = await self.session.get(SkillPointsConfig, DEFAULT_CONFIG_ID)
        if config is None:
            config = SkillPointsConfig(
                config_id=DEFAULT_CONFIG_ID,
                difficulty_points={k: dict(v) for k, v in DEFAULT_DIFFICULTY_POINTS.items()},
            )
            self.session.add(config)
            await self.session.flush()
        return {**DEFAULT_DIFFICULTY_POINTS, **(config.difficulty_points or {})}

    async def set_points_table(
        self,
        difficulty_points: Mapping[str, Mapping[str, float]],
        updated_by: str | None = None,
    ) -> dict[str, dict[str, float]]:
        """
        Replace entries of the points table; unspecified difficulties keep their values.

        Raises:
            ValidationError: Unknown difficulty, or an entry without numeric
                "correct" and "wrong" values
        """
        updates = {str(k): _validate_points_entry(k, v) for k, v in difficulty_points.items()}
        current = await self.get_points_table()
        config = await self.session.get(SkillPointsConfig, DEFAULT_CONFIG_ID)
        merged = {**current, **updates}
        config.difficulty_points = merged
        config.updated_by = updated_by
        config.updated_at = utcnow()
        await self.session.flush()
        logger.info(f"Skill points table updated by {updated_by or 'unknown'}: {sorted(updates)}")
        return merged

    async def update_skills(self, user_id: str, answers: Sequence[AnswerRecord]) -> list[SkillChange]:
        """
        Apply a completed attempt's answers to the student's skills.

        Args:
            user_id: Student identifier
            answers: Answer log of the completed attempt

        Returns:
            One SkillChange per topic touched
        """
        if not answers:
            return []

        table = await self.get_points_table()
        deltas = compute_topic_deltas(answers, table)

        result = await self.session.execute(
            select(StudentSkill).where(
                and_(
                    StudentSkill.student_id == user_id,
                    StudentSkill.skill_name.in_(list(deltas)),
                )
            )
        )
        existing = {skill.skill_name: skill for skill in result.scalars().all()}

        changes: list[SkillChange] = []
        for skill_name, delta in deltas.items():
            skill = existing.get(skill_name)
            if skill is None:
                skill = StudentSkill(student_id=user_id, skill_name=skill_name, points=0.0, current_level=0)
                self.session.add(skill)

            old_points = float(skill.points or 0.0)
            old_level = int(skill.current_level or 0)
            skill.points = apply_delta(old_points, delta)
            skill.current_level = level_for_points(skill.points)
            skill.updated_at = utcnow()

            changes.append(
                SkillChange(
                    skill_name=skill_name,
                    old_points=old_points,
                    new_points=skill.points,
                    old_level=old_level,
                    new_level=skill.current_level,
                )
            )

        await self.session.flush()

        leveled = [c.skill_name for c in changes if c.leveled_up]
        logger.info(
            f"Updated {len(changes)} skill(s) for {user_id}"
            + (f"; level up: {', '.join(leveled)}" if leveled else "")
        )
        return changes
