"""
Immutable value objects shared by the assembler and the attempt engine.

- QuestionSnapshot: a question copied into a Quiz at generation time
- AdaptiveConfig: the per-quiz adaptive settings
- AnswerRecord: one entry of an attempt's answer log

Each converts to and from plain dicts for JSON storage.
"""
from __future__ import annotations

from dataclasses import asdict, dataclass
from enum import Enum
from typing import Any

from src.core.errors import ValidationError

MIN_DIFFICULTY = 1
MAX_DIFFICULTY = 5


def clamp_difficulty(value: int) -> int:
    """Clamp a difficulty into [MIN_DIFFICULTY, MAX_DIFFICULTY]."""
    return max(MIN_DIFFICULTY, min(MAX_DIFFICULTY, int(value)))


class ProgressionMode(str, Enum):
    """How the live difficulty reacts to answers."""

    IMMEDIATE = "immediate"
    GRADUAL = "gradual"
    ML_BASED = "ml-based"


@dataclass(frozen=True)
class QuestionSnapshot:
    """Question content frozen into a quiz; graded against, never the live record."""

    question_id: str
    text: str
    choices: tuple[str, ...]
    answer: str
    difficulty: int
    position: int
    starting_difficulty: int
    topic: str = ""
    subject: str = ""

    @classmethod
    def from_question(cls, question: Any, position: int, starting_difficulty: int) -> QuestionSnapshot:
        """Copy a Question Repository record into a snapshot."""
        return cls(
            question_id=str(question.id),
            text=question.text,
            choices=tuple(str(c) for c in (question.choices or [])),
            answer=str(question.answer),
            difficulty=int(question.difficulty),
            position=position,
            starting_difficulty=starting_difficulty,
            topic=question.topic or "",
            subject=question.subject or "",
        )

    def with_position(self, position: int) -> QuestionSnapshot:
        return QuestionSnapshot(**{**asdict(self), "position": position})

    def is_correct(self, answer: Any) -> bool:
        """Case-insensitive, whitespace-trimmed comparison with the stored answer."""
        return str(answer).strip().lower() == self.answer.strip().lower()

    def to_dict(self) -> dict[str, Any]:
        data = asdict(self)
        data["choices"] = list(self.choices)
        return data

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> QuestionSnapshot:
        return cls(
            question_id=str(data["question_id"]),
            text=data.get("text", ""),
            choices=tuple(data.get("choices") or ()),
            answer=str(data.get("answer", "")),
            difficulty=int(data.get("difficulty") or 3),
            position=int(data.get("position") or 0),
            starting_difficulty=int(data.get("starting_difficulty") or MIN_DIFFICULTY),
            topic=data.get("topic") or "",
            subject=data.get("subject") or "",
        )


@dataclass(frozen=True)
class AdaptiveConfig:
    """Adaptive settings stamped onto a quiz."""

    target_correct_answers: int = 10
    difficulty_progression: ProgressionMode = ProgressionMode.GRADUAL
    starting_difficulty: int = MIN_DIFFICULTY

    def __post_init__(self):
        if self.target_correct_answers < 1:
            raise ValidationError(
                "target_correct_answers must be at least 1",
                target_correct_answers=self.target_correct_answers,
            )
        if not MIN_DIFFICULTY <= self.starting_difficulty <= MAX_DIFFICULTY:
            raise ValidationError(
                f"starting_difficulty must be between {MIN_DIFFICULTY} and {MAX_DIFFICULTY}",
                starting_difficulty=self.starting_difficulty,
            )
        try:
            mode = ProgressionMode(self.difficulty_progression)
        except ValueError as exc:
            raise ValidationError(
                f"Unknown difficulty progression: {self.difficulty_progression!r}",
                allowed=[m.value for m in ProgressionMode],
            ) from exc
        object.__setattr__(self, "difficulty_progression", mode)

    def to_dict(self) -> dict[str, Any]:
        return {
            "target_correct_answers": self.target_correct_answers,
            "difficulty_progression": self.difficulty_progression.value,
            "starting_difficulty": self.starting_difficulty,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> AdaptiveConfig:
        return cls(
            target_correct_answers=int(data.get("target_correct_answers") or 10),
            difficulty_progression=data.get("difficulty_progression") or ProgressionMode.GRADUAL,
            starting_difficulty=int(data.get("starting_difficulty") or MIN_DIFFICULTY),
        )


@dataclass(frozen=True)
class AnswerRecord:
    """
    One accepted answer.

    difficulty is the answered question's own difficulty; difficulty_at_time
    is the attempt's live difficulty when the answer was submitted.
    """

    question_id: str
    answer: str
    correct_answer: str
    is_correct: bool
    difficulty: int
    difficulty_at_time: int
    topic: str = ""
    subject: str = ""
    question_text: str = ""
    answered_at: str | None = None

    @property
    def skill_name(self) -> str:
        """Topic used for skill aggregation."""
        return self.topic or self.subject or "General"

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> AnswerRecord:
        return cls(
            question_id=str(data["question_id"]),
            answer=str(data.get("answer", "")),
            correct_answer=str(data.get("correct_answer", "")),
            is_correct=bool(data.get("is_correct")),
            difficulty=int(data.get("difficulty") or 3),
            difficulty_at_time=int(data.get("difficulty_at_time") or data.get("difficulty") or 3),
            topic=data.get("topic") or "",
            subject=data.get("subject") or "",
            question_text=data.get("question_text") or "",
            answered_at=data.get("answered_at"),
        )
