"""
Core Module.

Shared infrastructure for the adaptive quiz engine:
- errors: QuizEngineError taxonomy surfaced by every service
- logging_config: loguru sink setup for the API and CLI
"""

from src.core.errors import (
    AttemptAlreadyActiveError,
    AuthorizationError,
    InsufficientDataError,
    InsufficientQuestionsError,
    NotFoundError,
    PoolExhaustedError,
    QuizEngineError,
    StateConflictError,
    ValidationError,
    coerce_uuid,
)
from src.core.logging_config import configure_logging

__all__ = [
    "QuizEngineError",
    "ValidationError",
    "NotFoundError",
    "StateConflictError",
    "AttemptAlreadyActiveError",
    "InsufficientDataError",
    "InsufficientQuestionsError",
    "PoolExhaustedError",
    "AuthorizationError",
    "coerce_uuid",
    "configure_logging",
]
