"""
Quiz Assembler for building adaptive quiz artifacts.

Builds an immutable Quiz from the Question Repository:

1. Load the eligible active pool for (level, grade, subject)
2. Weight each question by freshness and usage
3. Simulate a curation difficulty sequence (content variety only)
4. Per slot: filter to the target difficulty, widen to +/-1, then to the
   whole remaining pool; weighted-select one question and bump its usage
5. Shuffle the chosen snapshots and renumber positions
6. Stamp a short traceability hash and persist the quiz

Every call writes a QuizGenerationLog row, including failed ones.
"""
from __future__ import annotations

import hashlib
import random
from collections import Counter
from dataclasses import dataclass, field
from datetime import UTC, datetime, timedelta
from enum import Enum
from typing import Any, Dict, List, Optional

from loguru import logger
from sqlalchemy import and_, func, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from config import Settings, get_settings
from src.core.errors import (
    InsufficientQuestionsError,
    PoolExhaustedError,
    QuizEngineError,
    ValidationError,
)
from src.db.models import Question, Quiz, QuizGenerationLog
from src.quiz.snapshots import (
    MAX_DIFFICULTY,
    MIN_DIFFICULTY,
    AdaptiveConfig,
    QuestionSnapshot,
    clamp_difficulty,
)
from src.quiz.weighting import RandomSource, WeightedCandidate, question_weight, weighted_select

# Curation step probabilities: below STEP_UP_THRESHOLD step up,
# below HOLD_THRESHOLD stay, otherwise step down
STEP_UP_THRESHOLD = 0.5
HOLD_THRESHOLD = 0.8


class TriggerReason(str, Enum):
    """Why a quiz was generated."""

    MANUAL = "manual"
    NEW_ENROLLMENT = "new_enrollment"
    COMPLETION = "completion"
    TIME_BASED = "time_based"
    QUESTION_POOL_REFRESH = "question_pool_refresh"
    ADMIN_TRIGGER = "admin_trigger"


@dataclass
class GenerationAvailability:
    """Whether a quiz level has enough eligible questions."""
    quiz_level: int
    available: bool
    question_count: int
    required: int
    message: str
    difficulty_distribution: Dict[int, int] = field(default_factory=dict)


@dataclass
class SelectedSlot:
    """A question picked for one curation slot."""
    question: Question
    weight: float
    curation_difficulty: int
    position: int


@dataclass
class GenerationFilters:
    grade: str | None = None
    subject: str | None = None

    def describe(self) -> str:
        parts = [f"{k}={v}" for k, v in (("grade", self.grade), ("subject", self.subject)) if v]
        return ", ".join(parts)


# ========================================
# Curation sequence (generation time only)
# ========================================

def next_curation_difficulty(current: int, rng: RandomSource) -> int:
    """
    One stochastic step of the curation sequence.

    50% step up (while below MAX_DIFFICULTY), 30% hold, 20% step down
    (while above MIN_DIFFICULTY). Unrelated to live attempt progression.
    """
    r = rng.random()
    if r < STEP_UP_THRESHOLD and current < MAX_DIFFICULTY:
        return current + 1
    if r < HOLD_THRESHOLD:
        return current
    if current > MIN_DIFFICULTY:
        return current - 1
    return current


def simulate_curation_sequence(length: int, rng: RandomSource, start: int = MIN_DIFFICULTY) -> List[int]:
    """Target difficulty per slot, starting at ``start``."""
    sequence: List[int] = []
    current = clamp_difficulty(start)
    for i in range(length):
        sequence.append(current)
        if i < length - 1:
            current = next_curation_difficulty(current, rng)
    return sequence


class QuizAssembler:
    """
    Generates adaptive quizzes from the Question Repository.

    Handles:
    - Pool eligibility checks
    - Freshness-weighted selection with difficulty fallback
    - Usage counter updates per selected question
    - Generation logging
    """

    def __init__(
        self,
        session: AsyncSession,
        seed: str | int | None = None,
        rng: random.Random | None = None,
        settings: Settings | None = None,
    ):
        self.session = session
        self.settings = settings or get_settings()
        if rng is not None:
            self.rng = rng
        else:
            if seed is None:
                seed = self.settings.random_seed
            self.rng = random.Random(self._create_seed(seed)) if seed is not None else random.Random()

    def _create_seed(self, seed: str | int) -> int:
        """Create a reproducible integer seed from string or int."""
        if isinstance(seed, int):
            return seed

        hash_bytes = hashlib.sha256(str(seed).encode()).digest()
        return int.from_bytes(hash_bytes[:8], byteorder="big")

    # ========================================
    # Pool queries
    # ========================================

    def _pool_conditions(self, quiz_level: int, grade: str | None, subject: str | None) -> list:
        conditions = [Question.quiz_level == quiz_level, Question.is_active.is_(True)]
        if grade:
            conditions.append(Question.grade == grade)
        if subject:
            conditions.append(Question.subject == subject)
        return conditions

    async def load_pool(
        self,
        quiz_level: int,
        grade: str | None = None,
        subject: str | None = None,
    ) -> List[Question]:
        """Eligible active questions for a level, optionally narrowed."""
        result = await self.session.execute(
            select(Question)
            .where(and_(*self._pool_conditions(quiz_level, grade, subject)))
            .order_by(Question.created_at, Question.id)
        )
        return list(result.scalars().all())

    async def difficulty_distribution(
        self,
        quiz_level: int,
        grade: str | None = None,
        subject: str | None = None,
    ) -> Dict[int, int]:
        """Eligible question count per difficulty, zero-filled for 1..5."""
        result = await self.session.execute(
            select(Question.difficulty, func.count(Question.id))
            .where(and_(*self._pool_conditions(quiz_level, grade, subject)))
            .group_by(Question.difficulty)
        )
        distribution = {d: 0 for d in range(MIN_DIFFICULTY, MAX_DIFFICULTY + 1)}
        for difficulty, count in result.all():
            distribution[int(difficulty)] = int(count)
        return distribution

    async def pool_levels(self, grade: str | None = None, subject: str | None = None) -> List[int]:
        """Distinct levels that have at least one active question."""
        conditions = [Question.is_active.is_(True)]
        if grade:
            conditions.append(Question.grade == grade)
        if subject:
            conditions.append(Question.subject == subject)
        result = await self.session.execute(
            select(Question.quiz_level).where(and_(*conditions)).distinct().order_by(Question.quiz_level)
        )
        return [int(level) for level in result.scalars().all()]

    async def pool_statistics(
        self,
        levels: List[int],
        grade: str | None = None,
        subject: str | None = None,
    ) -> List[GenerationAvailability]:
        """Availability with per-difficulty counts for each requested level."""
        return [await self.check_generation_availability(level, grade, subject) for level in levels]

    async def check_generation_availability(
        self,
        quiz_level: int,
        grade: str | None = None,
        subject: str | None = None,
    ) -> GenerationAvailability:
        """
        Report whether a level has enough eligible questions to generate.

        Args:
            quiz_level: Quiz level to check
            grade: Optional grade filter
            subject: Optional subject filter

        Returns:
            GenerationAvailability with count, requirement and message
        """
        quiz_level = self._validate_level(quiz_level)
        required = self.settings.quiz_min_pool_size
        distribution = await self.difficulty_distribution(quiz_level, grade, subject)
        count = sum(distribution.values())
        available = count >= required
        if available:
            message = f"{count} questions available for level {quiz_level}"
        else:
            message = f"Only {count}/{required} questions available for level {quiz_level}"

        return GenerationAvailability(
            quiz_level=quiz_level,
            available=available,
            question_count=count,
            required=required,
            message=message,
            difficulty_distribution=distribution,
        )

    async def generated_recently(
        self,
        quiz_level: int,
        grade: str | None = None,
        subject: str | None = None,
        within_hours: int | None = None,
    ) -> bool:
        """
        True if an auto-generated quiz exists for this level within the window.

        Advisory only: two concurrent generations can both see False.
        """
        hours = self.settings.regeneration_cooldown_hours if within_hours is None else within_hours
        cutoff = datetime.now(UTC) - timedelta(hours=hours)

        conditions = [
            Quiz.quiz_level == quiz_level,
            Quiz.is_auto_generated.is_(True),
            Quiz.created_at >= cutoff,
        ]
        if grade:
            conditions.append(Quiz.grade == grade)
        if subject:
            conditions.append(Quiz.subject == subject)

        result = await self.session.execute(select(func.count(Quiz.id)).where(and_(*conditions)))
        return int(result.scalar_one()) > 0

    # ========================================
    # Generation
    # ========================================

    async def generate_quiz(
        self,
        quiz_level: int,
        student_id: str | None = None,
        trigger_reason: str | TriggerReason = TriggerReason.MANUAL,
        grade: str | None = None,
        subject: str | None = None,
        adaptive_config: AdaptiveConfig | Dict[str, Any] | None = None,
    ) -> Quiz:
        """
        Generate and persist a new adaptive quiz.

        Args:
            quiz_level: Question Repository level to draw from
            student_id: Optional student the quiz is generated for
            trigger_reason: One of TriggerReason
            grade: Optional grade filter
            subject: Optional subject filter
            adaptive_config: Overrides for the default adaptive settings

        Returns:
            The flushed Quiz

        Raises:
            ValidationError: Bad level, trigger reason or adaptive config
            InsufficientQuestionsError: Pool smaller than quiz_min_pool_size
            PoolExhaustedError: A slot found no remaining candidate
        """
        quiz_level = self._validate_level(quiz_level)
        trigger = self._validate_trigger(trigger_reason)
        config = self._resolve_config(adaptive_config)
        filters = GenerationFilters(grade=grade, subject=subject)

        try:
            pool = await self.load_pool(quiz_level, grade, subject)
            required = self.settings.quiz_min_pool_size
            if len(pool) < required:
                raise InsufficientQuestionsError(quiz_level, len(pool), required)

            slots = await self._select_slots(pool)
        except QuizEngineError as exc:
            logger.warning(f"Quiz generation failed for level {quiz_level}: {exc.message}")
            await self._log_generation(
                quiz_level=quiz_level,
                student_id=student_id,
                trigger=trigger,
                filters=filters,
                slots=[],
                quiz=None,
                error=exc.message,
            )
            raise

        snapshots = [
            QuestionSnapshot.from_question(
                slot.question,
                position=slot.position,
                starting_difficulty=slot.curation_difficulty,
            )
            for slot in slots
        ]
        self.rng.shuffle(snapshots)
        snapshots = [s.with_position(i + 1) for i, s in enumerate(snapshots)]

        timestamp = datetime.now(UTC)
        quiz = Quiz(
            title=f"Quiz Level {quiz_level} - {timestamp.date().isoformat()}",
            description=f"Auto-generated quiz for level {quiz_level}. Trigger: {trigger.value}",
            quiz_type="adaptive",
            quiz_level=quiz_level,
            grade=grade,
            subject=subject,
            questions=[s.to_dict() for s in snapshots],
            adaptive_config=config.to_dict(),
            unique_hash=self._generate_unique_hash(student_id, quiz_level, timestamp),
            generation_criteria=trigger.value,
            is_auto_generated=True,
            student_id=student_id,
            is_active=True,
            created_at=timestamp,
        )
        self.session.add(quiz)
        await self.session.flush()

        await self._log_generation(
            quiz_level=quiz_level,
            student_id=student_id,
            trigger=trigger,
            filters=filters,
            slots=slots,
            quiz=quiz,
        )

        logger.info(
            f"Generated quiz {quiz.unique_hash} for level {quiz_level} "
            f"({len(snapshots)} questions, trigger={trigger.value})"
        )
        return quiz

    async def _select_slots(self, pool: List[Question]) -> List[SelectedSlot]:
        """Weighted selection of one distinct question per curation slot."""
        horizon = timedelta(days=self.settings.freshness_horizon_days)
        now = datetime.now(UTC)
        remaining = [WeightedCandidate(item=q, weight=question_weight(q, horizon, now)) for q in pool]

        sequence = simulate_curation_sequence(self.settings.quiz_question_count, self.rng)
        slots: List[SelectedSlot] = []

        for position, target in enumerate(sequence, start=1):
            candidates = self._candidates_for(remaining, target)
            if not candidates:
                raise PoolExhaustedError(
                    f"Ran out of questions at slot {position} of {len(sequence)}",
                    slot=position,
                    selected=len(slots),
                )

            chosen = weighted_select(candidates, self.rng)
            remaining.remove(chosen)
            slots.append(
                SelectedSlot(
                    question=chosen.item,
                    weight=chosen.weight,
                    curation_difficulty=target,
                    position=position,
                )
            )

            await self.session.execute(
                update(Question)
                .where(Question.id == chosen.item.id)
                .values(usage_count=Question.usage_count + 1, last_used_timestamp=datetime.now(UTC))
            )
            logger.debug(
                f"Slot {position}: target difficulty {target}, picked difficulty "
                f"{chosen.item.difficulty} (weight {chosen.weight:.1f})"
            )

        return slots

    @staticmethod
    def _candidates_for(
        remaining: List[WeightedCandidate[Question]],
        target: int,
    ) -> List[WeightedCandidate[Question]]:
        exact = [c for c in remaining if c.item.difficulty == target]
        if exact:
            return exact

        adjacent = {d for d in (target - 1, target + 1) if MIN_DIFFICULTY <= d <= MAX_DIFFICULTY}
        nearby = [c for c in remaining if c.item.difficulty in adjacent]
        if nearby:
            return nearby

        return list(remaining)

    def _generate_unique_hash(self, student_id: str | None, quiz_level: int, timestamp: datetime) -> str:
        millis = int(timestamp.timestamp() * 1000)
        source = f"{student_id or 'system'}-{quiz_level}-{millis}-{self.rng.random()}"
        return hashlib.sha256(source.encode()).hexdigest()[:16]

    async def _log_generation(
        self,
        quiz_level: int,
        student_id: str | None,
        trigger: TriggerReason,
        filters: GenerationFilters,
        slots: List[SelectedSlot],
        quiz: Optional[Quiz],
        error: str = "",
    ) -> QuizGenerationLog:
        distribution = Counter(str(s.question.difficulty) for s in slots)
        freshness = sum(s.weight for s in slots) / len(slots) if slots else 0.0
        details = f"Generated via {trigger.value}"
        if filters.describe():
            details = f"{details} ({filters.describe()})"

        entry = QuizGenerationLog(
            quiz_id=quiz.id if quiz else None,
            quiz_level=quiz_level,
            student_id=student_id,
            trigger_type=trigger.value,
            trigger_details=details,
            questions_selected=len(slots),
            freshness_score=round(freshness, 2),
            difficulty_distribution=dict(sorted(distribution.items())),
            success=quiz is not None,
            error_message=error,
        )
        self.session.add(entry)
        await self.session.flush()
        return entry

    # ========================================
    # Validation
    # ========================================

    @staticmethod
    def _validate_level(quiz_level: Any) -> int:
        try:
            level = int(quiz_level)
        except (TypeError, ValueError) as exc:
            raise ValidationError(f"Invalid quiz level: {quiz_level!r}", field="quiz_level") from exc
        if level < 1:
            raise ValidationError("Quiz level must be at least 1", quiz_level=level)
        return level

    @staticmethod
    def _validate_trigger(trigger_reason: str | TriggerReason) -> TriggerReason:
        try:
            return TriggerReason(trigger_reason)
        except ValueError as exc:
            raise ValidationError(
                f"Invalid trigger reason: {trigger_reason!r}",
                allowed=[t.value for t in TriggerReason],
            ) from exc

    def _resolve_config(self, overrides: AdaptiveConfig | Dict[str, Any] | None) -> AdaptiveConfig:
        if isinstance(overrides, AdaptiveConfig):
            return overrides
        merged = {**self.settings.get_default_adaptive_config(), **(overrides or {})}
        try:
            return AdaptiveConfig(
                target_correct_answers=int(merged["target_correct_answers"]),
                difficulty_progression=merged["difficulty_progression"],
                starting_difficulty=int(merged["starting_difficulty"]),
            )
        except (TypeError, ValueError) as exc:
            raise ValidationError(f"Invalid adaptive config: {exc}", adaptive_config=overrides) from exc
