# SQLAlchemy models
from .attempt import AttemptState, CompletionReason, QuizAttempt
from .base import Base, utcnow
from .generation import QuizGenerationLog
from .question import Question
from .quiz import Quiz
from .skills import SkillPointsConfig, StudentSkill

__all__ = [
    # Base
    "Base",
    "utcnow",
    # Question Repository
    "Question",
    # Quiz artifacts
    "Quiz",
    "QuizGenerationLog",
    # Attempts
    "QuizAttempt",
    "AttemptState",
    "CompletionReason",
    # Skills
    "StudentSkill",
    "SkillPointsConfig",
]
