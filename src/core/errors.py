"""
Error taxonomy for the adaptive quiz engine.

Every error raised by the engine services derives from QuizEngineError and
carries a human-readable message plus a ``details`` dict with actionable
context (ids, counts). The API layer maps ``status_code`` onto the HTTP
response; the CLI prints the message.

Categories:
- ValidationError: malformed or missing input
- NotFoundError: missing quiz, attempt, or question
- StateConflictError: duplicate active attempt, completed attempt, duplicate answer
- InsufficientDataError: not enough eligible questions to assemble a quiz
- AuthorizationError: quiz not available to the caller
"""
from __future__ import annotations

from typing import Any
from uuid import UUID


class QuizEngineError(Exception):
    """Base class for engine errors surfaced to callers."""

    status_code: int = 500

    def __init__(self, message: str, **details: Any):
        super().__init__(message)
        self.message = message
        self.details = details

    def to_dict(self) -> dict[str, Any]:
        return {"success": False, "error": self.message, "details": self.details}


class ValidationError(QuizEngineError):
    status_code = 400


class NotFoundError(QuizEngineError):
    status_code = 404


class StateConflictError(QuizEngineError):
    status_code = 409


class AttemptAlreadyActiveError(StateConflictError):
    """An in-progress attempt already exists for this (user, quiz)."""


class InsufficientDataError(QuizEngineError):
    status_code = 422


class InsufficientQuestionsError(InsufficientDataError):
    """The eligible question pool is smaller than the generation minimum."""

    def __init__(self, quiz_level: int, found: int, required: int):
        super().__init__(
            f"Insufficient questions for quiz level {quiz_level}: {found}/{required} available",
            quiz_level=quiz_level,
            found=found,
            required=required,
        )


class PoolExhaustedError(InsufficientDataError):
    """No candidate question remained for a quiz slot."""


class AuthorizationError(QuizEngineError):
    status_code = 403


def coerce_uuid(value: UUID | str, label: str) -> UUID:
    """Parse an id supplied by a caller, raising ValidationError if malformed."""
    if isinstance(value, UUID):
        return value
    try:
        return UUID(str(value))
    except (TypeError, ValueError) as exc:
        raise ValidationError(f"Invalid {label}: {value!r}", field=label) from exc
