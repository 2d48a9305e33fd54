"""
Learning: skill aggregation from completed attempts.

- SkillAggregator: contract the attempt engine calls on completion
- PointsSkillAggregator: difficulty-points implementation backed by student_skills
"""

from src.learning.skill_aggregator import (
    DEFAULT_DIFFICULTY_POINTS,
    LEVEL_THRESHOLDS,
    PointsSkillAggregator,
    SkillAggregator,
    SkillChange,
    compute_topic_deltas,
    level_for_points,
    points_for_answer,
)

__all__ = [
    "SkillAggregator",
    "PointsSkillAggregator",
    "SkillChange",
    "DEFAULT_DIFFICULTY_POINTS",
    "LEVEL_THRESHOLDS",
    "compute_topic_deltas",
    "level_for_points",
    "points_for_answer",
]
