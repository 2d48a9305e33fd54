"""
Quiz availability collaborator.

Launch windows and class targeting live outside the engine. The engine
only consumes a yes/no answer to "may this user start this quiz now?".
"""
from __future__ import annotations

from typing import Protocol

from src.db.models import Quiz


class QuizAvailability(Protocol):
    async def is_available(self, user_id: str, quiz: Quiz) -> bool: ...


class ActiveQuizAvailability:
    """Default policy: any active quiz is available to everyone."""

    async def is_available(self, user_id: str, quiz: Quiz) -> bool:
        return bool(quiz.is_active)
