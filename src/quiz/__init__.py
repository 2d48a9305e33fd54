"""
Quiz module for weighting, assembly and cataloguing of adaptive quizzes.

This module provides:
- question_weight / weighted_select: freshness- and usage-weighted sampling
- QuizAssembler: builds immutable Quiz artifacts from the Question Repository
- QuizCatalog: read-only listing of generated quizzes
- QuestionSnapshot, AdaptiveConfig, AnswerRecord: JSON-backed value objects

Difficulty runs from 1 (easiest) to 5 (hardest).
"""

from .quiz_assembler import (
    GenerationAvailability,
    QuizAssembler,
    TriggerReason,
    next_curation_difficulty,
    simulate_curation_sequence,
)
from .quiz_catalog import QuizCatalog, QuizSummary
from .snapshots import AdaptiveConfig, AnswerRecord, ProgressionMode, QuestionSnapshot
from .weighting import question_weight, weighted_select

__all__ = [
    "QuizAssembler",
    "QuizCatalog",
    "QuizSummary",
    "GenerationAvailability",
    "TriggerReason",
    "next_curation_difficulty",
    "simulate_curation_sequence",
    "question_weight",
    "weighted_select",
    "AdaptiveConfig",
    "AnswerRecord",
    "ProgressionMode",
    "QuestionSnapshot",
]
