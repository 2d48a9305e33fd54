"""
Freshness/usage weighting and weighted random selection.

weight = BASE_WEIGHT + freshness_bonus - usage_penalty, floored at MIN_WEIGHT

- freshness_bonus: (now - last_used) / max_time_gap * MAX_FRESHNESS_BONUS,
  capped at MAX_FRESHNESS_BONUS; never-used questions get the full bonus
- usage_penalty: usage_count * USAGE_PENALTY
"""
from __future__ import annotations

import random
from collections.abc import Sequence
from dataclasses import dataclass
from datetime import UTC, datetime, timedelta
from typing import Any, Generic, Protocol, TypeVar

BASE_WEIGHT = 100.0
MAX_FRESHNESS_BONUS = 50.0
USAGE_PENALTY = 5.0
MIN_WEIGHT = 1.0

T = TypeVar("T")


class RandomSource(Protocol):
    """Anything with a uniform ``random() -> [0, 1)`` method."""

    def random(self) -> float: ...


class UsageTracked(Protocol):
    usage_count: int | None
    last_used_timestamp: datetime | None


@dataclass
class WeightedCandidate(Generic[T]):
    """A candidate paired with its selection weight."""

    item: T
    weight: float


def _as_utc(value: datetime) -> datetime:
    # SQLite hands back naive datetimes; they are stored as UTC
    if value.tzinfo is None:
        return value.replace(tzinfo=UTC)
    return value


def question_weight(
    question: UsageTracked | Any,
    max_time_gap: timedelta,
    now: datetime | None = None,
) -> float:
    """
    Selection weight for a question from freshness and usage.

    Args:
        question: Object exposing usage_count and last_used_timestamp
        max_time_gap: Time since last use that earns the full freshness bonus
        now: Reference time (defaults to the current UTC time)

    Returns:
        Weight >= MIN_WEIGHT
    """
    now = _as_utc(now or datetime.now(UTC))

    if question.last_used_timestamp is None:
        freshness_bonus = MAX_FRESHNESS_BONUS
    else:
        elapsed = now - _as_utc(question.last_used_timestamp)
        ratio = elapsed / max_time_gap if max_time_gap.total_seconds() > 0 else 1.0
        freshness_bonus = max(0.0, min(MAX_FRESHNESS_BONUS, ratio * MAX_FRESHNESS_BONUS))

    usage_penalty = (question.usage_count or 0) * USAGE_PENALTY

    return max(MIN_WEIGHT, BASE_WEIGHT + freshness_bonus - usage_penalty)


def weighted_select(
    candidates: Sequence[WeightedCandidate[T]],
    rng: RandomSource | None = None,
) -> WeightedCandidate[T]:
    """
    Roulette-wheel selection proportional to weight.

    Draws r in [0, total), subtracts each weight in order and returns the
    candidate that brings r to <= 0. Floating-point residue falls back to
    the last candidate.

    Raises:
        ValueError: If candidates is empty
    """
    if not candidates:
        raise ValueError("Cannot select from an empty candidate pool")

    rng = rng or random
    total_weight = sum(c.weight for c in candidates)
    remaining = rng.random() * total_weight

    for candidate in candidates:
        remaining -= candidate.weight
        if remaining <= 0:
            return candidate

    return candidates[-1]
