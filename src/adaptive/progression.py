"""
Live difficulty progression strategies.

Each strategy answers one question: given the attempt's current difficulty,
whether the latest answer was correct, and the answer history (including
the latest answer), what is the next difficulty?

- immediate: +1 on correct, -1 on incorrect
- gradual:   window of the last 3 answers; >=2 correct steps up,
             <=1 correct with a full window steps down
- ml-based:  step one level toward clamp(ceil(accuracy * 5), 1, 5)

All results are clamped to [1, 5].
"""
from __future__ import annotations

import math
from collections.abc import Sequence
from typing import Protocol

from src.quiz.snapshots import (
    MAX_DIFFICULTY,
    MIN_DIFFICULTY,
    AnswerRecord,
    ProgressionMode,
    clamp_difficulty,
)

GRADUAL_WINDOW = 3
GRADUAL_STEP_UP_CORRECT = 2


class ProgressionStrategy(Protocol):
    mode: ProgressionMode

    def next_difficulty(
        self,
        current: int,
        is_correct: bool,
        history: Sequence[AnswerRecord],
    ) -> int: ...


class ImmediateProgression:
    mode = ProgressionMode.IMMEDIATE

    def next_difficulty(self, current: int, is_correct: bool, history: Sequence[AnswerRecord]) -> int:
        return clamp_difficulty(current + 1 if is_correct else current - 1)


class GradualProgression:
    """Windowed majority over the most recent answers."""

    mode = ProgressionMode.GRADUAL

    def __init__(self, window: int = GRADUAL_WINDOW, step_up_correct: int = GRADUAL_STEP_UP_CORRECT):
        self.window = window
        self.step_up_correct = step_up_correct

    def next_difficulty(self, current: int, is_correct: bool, history: Sequence[AnswerRecord]) -> int:
        recent = list(history)[-self.window:]
        correct = sum(1 for a in recent if a.is_correct)

        if correct >= self.step_up_correct:
            return clamp_difficulty(current + 1)
        if len(recent) >= self.window:
            return clamp_difficulty(current - 1)
        return clamp_difficulty(current)


class AccuracyTargetProgression:
    """
    Moves toward the difficulty implied by overall accuracy.

    target = clamp(ceil(accuracy * MAX_DIFFICULTY), 1, 5); the current
    difficulty moves one step toward it and never jumps.
    """

    mode = ProgressionMode.ML_BASED

    def target_for(self, history: Sequence[AnswerRecord]) -> int:
        if not history:
            return MIN_DIFFICULTY
        accuracy = sum(1 for a in history if a.is_correct) / len(history)
        return clamp_difficulty(math.ceil(accuracy * MAX_DIFFICULTY))

    def next_difficulty(self, current: int, is_correct: bool, history: Sequence[AnswerRecord]) -> int:
        target = self.target_for(history)
        if target > current:
            return clamp_difficulty(current + 1)
        if target < current:
            return clamp_difficulty(current - 1)
        return clamp_difficulty(current)


_STRATEGIES: dict[ProgressionMode, type] = {
    ProgressionMode.IMMEDIATE: ImmediateProgression,
    ProgressionMode.GRADUAL: GradualProgression,
    ProgressionMode.ML_BASED: AccuracyTargetProgression,
}


def get_progression_strategy(mode: ProgressionMode | str) -> ProgressionStrategy:
    """Strategy instance for a quiz's configured progression mode."""
    return _STRATEGIES[ProgressionMode(mode)]()
