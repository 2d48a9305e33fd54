"""
Adaptive attempt runtime.

Components:
- AdaptiveAttemptEngine: per-student attempt state machine
- Progression strategies: immediate, gradual, ml-based
- QuizAvailability: authorization collaborator contract
"""
from src.adaptive.attempt_engine import (
    AdaptiveAttemptEngine,
    AnswerOutcome,
    AttemptProgress,
    AttemptReport,
    AttemptSummary,
    CompletionSummary,
    DifficultyStep,
    NextQuestionResult,
    ServedQuestion,
    StartedAttempt,
)
from src.adaptive.availability import ActiveQuizAvailability, QuizAvailability
from src.adaptive.progression import (
    AccuracyTargetProgression,
    GradualProgression,
    ImmediateProgression,
    ProgressionStrategy,
    get_progression_strategy,
)

__all__ = [
    # Main engine
    "AdaptiveAttemptEngine",
    # Results
    "StartedAttempt",
    "ServedQuestion",
    "AttemptProgress",
    "CompletionSummary",
    "NextQuestionResult",
    "AnswerOutcome",
    "DifficultyStep",
    "AttemptReport",
    "AttemptSummary",
    # Strategies
    "ProgressionStrategy",
    "ImmediateProgression",
    "GradualProgression",
    "AccuracyTargetProgression",
    "get_progression_strategy",
    # Collaborators
    "QuizAvailability",
    "ActiveQuizAvailability",
]
