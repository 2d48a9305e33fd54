"""
Adaptive Attempt Engine.

Runs one student's attempt through a generated quiz, serving one embedded
question at a time and adapting difficulty after every answer.

States: created -> in_progress -> completed (terminal)

- start_attempt: one in-progress attempt per (user, quiz)
- next_question: completes on target reached or when no unanswered
  question remains at the current difficulty or +/-1
- submit_answer: grades against the embedded snapshot, appends to the
  answer log and applies the quiz's progression strategy
- get_results / list_attempts: read-only projections

Completion invokes the Skill Aggregator exactly once, inside a savepoint;
aggregator failures are logged and never reach the caller.
"""
from __future__ import annotations

import random
from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import Any, List, Optional
from uuid import UUID

from loguru import logger
from sqlalchemy import and_, select
from sqlalchemy.ext.asyncio import AsyncSession

from config import Settings, get_settings
from src.adaptive.availability import ActiveQuizAvailability, QuizAvailability
from src.adaptive.progression import get_progression_strategy
from src.core.errors import (
    AttemptAlreadyActiveError,
    AuthorizationError,
    NotFoundError,
    StateConflictError,
    ValidationError,
    coerce_uuid,
)
from src.db.models import CompletionReason, Quiz, QuizAttempt
from src.learning.skill_aggregator import SkillAggregator
from src.quiz.snapshots import (
    MAX_DIFFICULTY,
    MIN_DIFFICULTY,
    AnswerRecord,
    QuestionSnapshot,
    clamp_difficulty,
)

COMPLETION_MESSAGES = {
    CompletionReason.TARGET_REACHED: "Quiz completed!",
    CompletionReason.POOL_EXHAUSTED: "No more questions available. Quiz completed!",
}


# ========================================
# Result types
# ========================================


@dataclass
class StartedAttempt:
    attempt_id: UUID
    quiz_id: UUID
    quiz_title: str
    target_correct_answers: int
    starting_difficulty: int
    current_difficulty: int
    correct_count: int = 0


@dataclass
class ServedQuestion:
    """An embedded question as shown to the student (no answer)."""
    id: str
    text: str
    choices: List[str]
    difficulty: int


@dataclass
class AttemptProgress:
    correct_count: int
    total_answered: int
    target_correct_answers: int
    current_difficulty: int


@dataclass
class CompletionSummary:
    correct_count: int
    total_answered: int
    target_correct_answers: int
    accuracy: int
    completion_reason: str
    message: str


@dataclass
class NextQuestionResult:
    completed: bool
    question: Optional[ServedQuestion] = None
    progress: Optional[AttemptProgress] = None
    summary: Optional[CompletionSummary] = None


@dataclass
class AnswerOutcome:
    is_correct: bool
    correct_answer: str
    new_difficulty: int
    correct_count: int
    total_answered: int


@dataclass
class DifficultyStep:
    question_number: int
    difficulty: int
    difficulty_at_time: int
    is_correct: bool


@dataclass
class AttemptReport:
    """Read-only view of an attempt."""
    attempt_id: UUID
    quiz_id: UUID
    quiz_title: str
    correct_count: int
    total_answered: int
    target_correct_answers: int
    accuracy: int
    is_completed: bool
    completion_reason: Optional[str]
    started_at: datetime
    completed_at: Optional[datetime]
    difficulty_progression: List[DifficultyStep] = field(default_factory=list)
    answers: List[AnswerRecord] = field(default_factory=list)


@dataclass
class AttemptSummary:
    """One row of a user's attempt history."""
    attempt_id: UUID
    quiz_id: UUID
    quiz_title: str
    correct_count: int
    total_answered: int
    target_correct_answers: int
    accuracy: int
    is_completed: bool
    completion_reason: Optional[str]
    started_at: datetime
    completed_at: Optional[datetime]


class AdaptiveAttemptEngine:
    """
    State machine for adaptive quiz attempts.

    Works inside the caller's AsyncSession and only flushes; the caller
    owns the transaction.
    """

    def __init__(
        self,
        session: AsyncSession,
        skill_aggregator: SkillAggregator | None = None,
        availability: QuizAvailability | None = None,
        rng: random.Random | None = None,
        seed: int | None = None,
        settings: Settings | None = None,
    ):
        self.session = session
        self.settings = settings or get_settings()
        self.skill_aggregator = skill_aggregator
        self.availability = availability or ActiveQuizAvailability()
        if rng is not None:
            self.rng = rng
        else:
            seed = self.settings.random_seed if seed is None else seed
            self.rng = random.Random(seed)

    # ========================================
    # Lookups
    # ========================================

    async def _get_quiz(self, quiz_id: UUID | str) -> Quiz:
        quiz = await self.session.get(Quiz, coerce_uuid(quiz_id, "quiz_id"))
        if quiz is None:
            raise NotFoundError("Quiz not found", quiz_id=str(quiz_id))
        return quiz

    async def _get_attempt(self, attempt_id: UUID | str, user_id: str | None = None) -> QuizAttempt:
        attempt = await self.session.get(QuizAttempt, coerce_uuid(attempt_id, "attempt_id"))
        # Other users' attempts are reported as missing
        if attempt is None or (user_id is not None and attempt.user_id != user_id):
            raise NotFoundError("Quiz attempt not found", attempt_id=str(attempt_id))
        return attempt

    async def get_active_attempt(self, user_id: str, quiz_id: UUID | str) -> QuizAttempt | None:
        """The user's in-progress attempt on a quiz, if any."""
        result = await self.session.execute(
            select(QuizAttempt).where(
                and_(
                    QuizAttempt.user_id == user_id,
                    QuizAttempt.quiz_id == coerce_uuid(quiz_id, "quiz_id"),
                    QuizAttempt.is_completed.is_(False),
                )
            )
        )
        return result.scalars().first()

    # ========================================
    # Transitions
    # ========================================

    async def start_attempt(
        self,
        user_id: str,
        quiz_id: UUID | str,
        is_available: bool | None = None,
    ) -> StartedAttempt:
        """
        Start a new attempt.

        Args:
            user_id: Caller identity
            quiz_id: Quiz to attempt
            is_available: Authorization decision; when None the availability
                collaborator is asked

        Raises:
            ValidationError: Missing user or non-adaptive quiz
            NotFoundError: Unknown quiz
            AuthorizationError: Quiz not available to the caller
            AttemptAlreadyActiveError: An in-progress attempt already exists
        """
        if not user_id:
            raise ValidationError("user_id is required")

        quiz = await self._get_quiz(quiz_id)
        if quiz.quiz_type != "adaptive":
            raise ValidationError("This is not an adaptive quiz", quiz_id=str(quiz.id))

        if is_available is None:
            is_available = await self.availability.is_available(user_id, quiz)
        if not is_available:
            raise AuthorizationError("Quiz is not available", quiz_id=str(quiz.id))

        existing = await self.get_active_attempt(user_id, quiz.id)
        if existing is not None:
            raise AttemptAlreadyActiveError(
                "You have an incomplete attempt for this quiz",
                attempt_id=str(existing.id),
                quiz_id=str(quiz.id),
            )

        config = quiz.config
        attempt = QuizAttempt(
            user_id=user_id,
            quiz_id=quiz.id,
            current_difficulty=config.starting_difficulty,
            correct_count=0,
            total_answered=0,
            answers=[],
            is_completed=False,
            started_at=datetime.now(UTC),
        )
        self.session.add(attempt)
        await self.session.flush()

        logger.info(f"Started attempt {attempt.id} for {user_id} on quiz {quiz.id}")
        return StartedAttempt(
            attempt_id=attempt.id,
            quiz_id=quiz.id,
            quiz_title=quiz.title,
            target_correct_answers=config.target_correct_answers,
            starting_difficulty=config.starting_difficulty,
            current_difficulty=attempt.current_difficulty,
            correct_count=attempt.correct_count,
        )

    async def next_question(self, attempt_id: UUID | str, user_id: str | None = None) -> NextQuestionResult:
        """
        Serve the next question or complete the attempt.

        Raises:
            NotFoundError: Unknown attempt (or not owned by user_id)
            StateConflictError: Attempt already completed
        """
        attempt = await self._get_attempt(attempt_id, user_id)
        if attempt.is_completed:
            raise StateConflictError("Quiz attempt already completed", attempt_id=str(attempt.id))

        quiz = await self._get_quiz(attempt.quiz_id)
        config = quiz.config

        if attempt.correct_count >= config.target_correct_answers:
            summary = await self._complete(attempt, quiz, CompletionReason.TARGET_REACHED)
            return NextQuestionResult(completed=True, summary=summary)

        snapshot = self._pick_question(quiz.snapshots, attempt)
        if snapshot is None:
            summary = await self._complete(attempt, quiz, CompletionReason.POOL_EXHAUSTED)
            return NextQuestionResult(completed=True, summary=summary)

        return NextQuestionResult(
            completed=False,
            question=ServedQuestion(
                id=snapshot.question_id,
                text=snapshot.text,
                choices=list(snapshot.choices),
                difficulty=snapshot.difficulty,
            ),
            progress=AttemptProgress(
                correct_count=attempt.correct_count,
                total_answered=attempt.total_answered,
                target_correct_answers=config.target_correct_answers,
                current_difficulty=attempt.current_difficulty,
            ),
        )

    def _pick_question(
        self,
        snapshots: tuple[QuestionSnapshot, ...],
        attempt: QuizAttempt,
    ) -> QuestionSnapshot | None:
        """Uniform pick at the current difficulty, then +1, then -1."""
        answered = attempt.answered_question_ids
        unanswered = [s for s in snapshots if s.question_id not in answered]

        current = attempt.current_difficulty
        for difficulty in (current, current + 1, current - 1):
            if not MIN_DIFFICULTY <= difficulty <= MAX_DIFFICULTY:
                continue
            candidates = [s for s in unanswered if s.difficulty == difficulty]
            if candidates:
                return self.rng.choice(candidates)
        return None

    async def submit_answer(
        self,
        attempt_id: UUID | str,
        question_id: str,
        answer: Any,
        user_id: str | None = None,
    ) -> AnswerOutcome:
        """
        Grade an answer against the quiz's embedded snapshot.

        Rejected calls leave the attempt untouched.

        Raises:
            ValidationError: Missing question_id or answer
            NotFoundError: Unknown attempt (or not owned by user_id)
            StateConflictError: Attempt completed, question not in quiz,
                or question already answered
        """
        if not question_id or answer is None:
            raise ValidationError("questionId and answer are required")

        attempt = await self._get_attempt(attempt_id, user_id)
        if attempt.is_completed:
            raise StateConflictError("Quiz attempt already completed", attempt_id=str(attempt.id))

        quiz = await self._get_quiz(attempt.quiz_id)
        snapshot = quiz.find_snapshot(str(question_id))
        if snapshot is None:
            raise StateConflictError(
                "Question not found in quiz",
                question_id=str(question_id),
                quiz_id=str(quiz.id),
            )
        if snapshot.question_id in attempt.answered_question_ids:
            raise StateConflictError("Question already answered", question_id=snapshot.question_id)

        is_correct = snapshot.is_correct(answer)
        record = AnswerRecord(
            question_id=snapshot.question_id,
            answer=str(answer),
            correct_answer=snapshot.answer,
            is_correct=is_correct,
            difficulty=snapshot.difficulty,
            difficulty_at_time=attempt.current_difficulty,
            topic=snapshot.topic,
            subject=snapshot.subject,
            question_text=snapshot.text,
            answered_at=datetime.now(UTC).isoformat(),
        )

        history = attempt.answer_records + [record]
        strategy = get_progression_strategy(quiz.config.difficulty_progression)
        new_difficulty = clamp_difficulty(
            strategy.next_difficulty(attempt.current_difficulty, is_correct, history)
        )

        # Reassign the JSON list so the change is tracked
        attempt.answers = [*(attempt.answers or []), record.to_dict()]
        attempt.total_answered = (attempt.total_answered or 0) + 1
        if is_correct:
            attempt.correct_count = (attempt.correct_count or 0) + 1
        attempt.current_difficulty = new_difficulty
        await self.session.flush()

        logger.debug(
            f"Attempt {attempt.id}: {'correct' if is_correct else 'incorrect'} on "
            f"{snapshot.question_id}, difficulty -> {new_difficulty}"
        )
        return AnswerOutcome(
            is_correct=is_correct,
            correct_answer=snapshot.answer,
            new_difficulty=new_difficulty,
            correct_count=attempt.correct_count,
            total_answered=attempt.total_answered,
        )

    async def _complete(self, attempt: QuizAttempt, quiz: Quiz, reason: CompletionReason) -> CompletionSummary:
        attempt.is_completed = True
        attempt.completed_at = datetime.now(UTC)
        attempt.completion_reason = reason.value
        attempt.score = attempt.correct_count
        await self.session.flush()

        logger.info(
            f"Attempt {attempt.id} completed ({reason.value}): "
            f"{attempt.correct_count}/{attempt.total_answered} correct"
        )
        summary = CompletionSummary(
            correct_count=attempt.correct_count,
            total_answered=attempt.total_answered,
            target_correct_answers=quiz.config.target_correct_answers,
            accuracy=attempt.accuracy,
            completion_reason=reason.value,
            message=COMPLETION_MESSAGES[reason],
        )
        await self._notify_skill_aggregator(attempt.user_id, attempt.id, attempt.answer_records)
        return summary

    async def _notify_skill_aggregator(
        self,
        user_id: str,
        attempt_id: UUID,
        answers: List[AnswerRecord],
    ) -> None:
        if self.skill_aggregator is None:
            return
        try:
            async with self.session.begin_nested():
                await self.skill_aggregator.update_skills(user_id, answers)
        except Exception:  # Intentionally broad - aggregator failures must not fail completion
            logger.exception(f"Skill update failed for attempt {attempt_id}")

    # ========================================
    # Read-only projections
    # ========================================

    async def get_results(self, attempt_id: UUID | str, user_id: str | None = None) -> AttemptReport:
        """Full report for an attempt; does not change state."""
        attempt = await self._get_attempt(attempt_id, user_id)
        quiz = await self._get_quiz(attempt.quiz_id)
        records = attempt.answer_records

        return AttemptReport(
            attempt_id=attempt.id,
            quiz_id=quiz.id,
            quiz_title=quiz.title,
            correct_count=attempt.correct_count,
            total_answered=attempt.total_answered,
            target_correct_answers=quiz.config.target_correct_answers,
            accuracy=attempt.accuracy,
            is_completed=attempt.is_completed,
            completion_reason=attempt.completion_reason,
            started_at=attempt.started_at,
            completed_at=attempt.completed_at,
            difficulty_progression=[
                DifficultyStep(
                    question_number=i,
                    difficulty=r.difficulty,
                    difficulty_at_time=r.difficulty_at_time,
                    is_correct=r.is_correct,
                )
                for i, r in enumerate(records, start=1)
            ],
            answers=records,
        )

    async def list_attempts(self, user_id: str, limit: int | None = None) -> List[AttemptSummary]:
        """Most recent attempts for a user, newest first."""
        limit = limit or self.settings.attempt_history_limit
        result = await self.session.execute(
            select(QuizAttempt, Quiz)
            .join(Quiz, Quiz.id == QuizAttempt.quiz_id)
            .where(QuizAttempt.user_id == user_id)
            .order_by(QuizAttempt.started_at.desc())
            .limit(limit)
        )

        return [
            AttemptSummary(
                attempt_id=attempt.id,
                quiz_id=quiz.id,
                quiz_title=quiz.title,
                correct_count=attempt.correct_count,
                total_answered=attempt.total_answered,
                target_correct_answers=quiz.config.target_correct_answers,
                accuracy=attempt.accuracy,
                is_completed=attempt.is_completed,
                completion_reason=attempt.completion_reason,
                started_at=attempt.started_at,
                completed_at=attempt.completed_at,
            )
            for attempt, quiz in result.all()
        ]
