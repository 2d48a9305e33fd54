"""
Unit tests for the assembler's curation sequence.

The curation sequence only diversifies content at generation time; it is
independent of live attempt progression.
"""

import random

import pytest

from src.quiz.quiz_assembler import (
    next_curation_difficulty,
    simulate_curation_sequence,
)


class Draw:
    def __init__(self, value: float):
        self.value = value

    def random(self) -> float:
        return self.value


class TestNextCurationDifficulty:
    @pytest.mark.parametrize(
        "current,draw,expected",
        [
            (3, 0.10, 4),  # step up
            (3, 0.49, 4),
            (3, 0.50, 3),  # hold
            (3, 0.79, 3),
            (3, 0.80, 2),  # step down
            (3, 0.99, 2),
            (5, 0.10, 5),  # capped: falls through to hold
            (1, 0.95, 1),  # floored
        ],
    )
    def test_step(self, current, draw, expected):
        assert next_curation_difficulty(current, Draw(draw)) == expected


class TestSimulateCurationSequence:
    def test_starts_at_one_and_has_requested_length(self):
        sequence = simulate_curation_sequence(20, random.Random(7))
        assert len(sequence) == 20
        assert sequence[0] == 1

    def test_steps_are_at_most_one_and_in_range(self):
        for seed in range(25):
            sequence = simulate_curation_sequence(20, random.Random(seed))
            assert all(1 <= d <= 5 for d in sequence)
            assert all(abs(b - a) <= 1 for a, b in zip(sequence, sequence[1:]))

    def test_always_stepping_up_saturates_at_five(self):
        assert simulate_curation_sequence(7, Draw(0.0)) == [1, 2, 3, 4, 5, 5, 5]

    def test_seeded_sequences_repeat(self):
        assert simulate_curation_sequence(20, random.Random(42)) == simulate_curation_sequence(
            20, random.Random(42)
        )

