"""
Adaptive Attempts API Router.

Endpoints for the adaptive attempt runtime:
- Start an attempt on a quiz
- Serve the next question / complete the attempt
- Submit an answer
- Results and attempt history

Caller identity arrives in the X-User-Id header; authentication happens
upstream. Quiz availability is a pluggable dependency.
"""

from __future__ import annotations

from datetime import datetime
from typing import List, Optional
from uuid import UUID

from fastapi import APIRouter, Depends, Header, Query
from pydantic import AliasChoices, BaseModel, ConfigDict, Field
from sqlalchemy.ext.asyncio import AsyncSession

from src.adaptive import ActiveQuizAvailability, AdaptiveAttemptEngine, QuizAvailability
from src.core.errors import ValidationError
from src.db.database import get_async_session
from src.learning import PointsSkillAggregator

router = APIRouter()


# ========================================
# Dependencies
# ========================================


async def get_current_user_id(x_user_id: Optional[str] = Header(None)) -> str:
    """Caller identity supplied by the upstream auth layer."""
    if not x_user_id:
        raise ValidationError("X-User-Id header is required")
    return x_user_id


def get_quiz_availability() -> QuizAvailability:
    """Authorization collaborator; override in deployments with launch rules."""
    return ActiveQuizAvailability()


async def get_attempt_engine(
    db: AsyncSession = Depends(get_async_session),
    availability: QuizAvailability = Depends(get_quiz_availability),
) -> AdaptiveAttemptEngine:
    return AdaptiveAttemptEngine(
        db,
        skill_aggregator=PointsSkillAggregator(db),
        availability=availability,
    )


# ========================================
# Request/Response Models
# ========================================


class SubmitAnswerRequest(BaseModel):
    """Request model for submitting an answer."""

    question_id: str = Field(..., validation_alias=AliasChoices("question_id", "questionId"))
    answer: str = Field(..., description="Student's answer")


class StartAttemptResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    attempt_id: UUID
    quiz_id: UUID
    quiz_title: str
    target_correct_answers: int
    starting_difficulty: int
    current_difficulty: int
    correct_count: int


class QuestionResponse(BaseModel):
    """An embedded question without its answer."""

    model_config = ConfigDict(from_attributes=True)

    id: str
    text: str
    choices: List[str]
    difficulty: int


class ProgressResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    correct_count: int
    total_answered: int
    target_correct_answers: int
    current_difficulty: int


class CompletionSummaryResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    correct_count: int
    total_answered: int
    target_correct_answers: int
    accuracy: int
    completion_reason: str
    message: str


class NextQuestionResponse(BaseModel):
    """Either the next question with progress, or a completion summary."""

    model_config = ConfigDict(from_attributes=True)

    completed: bool
    question: Optional[QuestionResponse] = None
    progress: Optional[ProgressResponse] = None
    summary: Optional[CompletionSummaryResponse] = None


class AnswerOutcomeResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    is_correct: bool
    correct_answer: str
    new_difficulty: int
    correct_count: int
    total_answered: int


class DifficultyStepResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    question_number: int
    difficulty: int
    difficulty_at_time: int
    is_correct: bool


class AnswerRecordResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    question_id: str
    question_text: str
    answer: str
    correct_answer: str
    is_correct: bool
    difficulty: int
    difficulty_at_time: int
    topic: str
    answered_at: Optional[str]


class AttemptReportResponse(BaseModel):
    """Full read-only report for an attempt."""

    model_config = ConfigDict(from_attributes=True)

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
    difficulty_progression: List[DifficultyStepResponse]
    answers: List[AnswerRecordResponse]


class AttemptSummaryResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

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


# ========================================
# Attempt Endpoints
# ========================================


@router.post(
    "/quizzes/{quiz_id}/start",
    response_model=StartAttemptResponse,
    status_code=201,
    summary="Start attempt",
)
async def start_attempt(
    quiz_id: str,
    user_id: str = Depends(get_current_user_id),
    engine: AdaptiveAttemptEngine = Depends(get_attempt_engine),
) -> StartAttemptResponse:
    """
    Start an adaptive attempt.

    Fails with 409 if the caller already has an in-progress attempt on
    this quiz, and 403 if the quiz is not available to them.
    """
    started = await engine.start_attempt(user_id, quiz_id)
    await engine.session.commit()
    return StartAttemptResponse.model_validate(started)


@router.get(
    "/attempts/{attempt_id}/next-question",
    response_model=NextQuestionResponse,
    summary="Get next question",
)
async def next_question(
    attempt_id: str,
    user_id: str = Depends(get_current_user_id),
    engine: AdaptiveAttemptEngine = Depends(get_attempt_engine),
) -> NextQuestionResponse:
    """Serve the next question, or complete the attempt when the target is reached or no question remains."""
    result = await engine.next_question(attempt_id, user_id=user_id)
    await engine.session.commit()
    return NextQuestionResponse.model_validate(result)


@router.post(
    "/attempts/{attempt_id}/submit-answer",
    response_model=AnswerOutcomeResponse,
    summary="Submit answer",
)
async def submit_answer(
    attempt_id: str,
    request: SubmitAnswerRequest,
    user_id: str = Depends(get_current_user_id),
    engine: AdaptiveAttemptEngine = Depends(get_attempt_engine),
) -> AnswerOutcomeResponse:
    """Grade an answer and adjust the attempt's difficulty."""
    outcome = await engine.submit_answer(attempt_id, request.question_id, request.answer, user_id=user_id)
    await engine.session.commit()
    return AnswerOutcomeResponse.model_validate(outcome)


@router.get(
    "/attempts/{attempt_id}/results",
    response_model=AttemptReportResponse,
    summary="Get attempt results",
)
async def get_results(
    attempt_id: str,
    user_id: str = Depends(get_current_user_id),
    engine: AdaptiveAttemptEngine = Depends(get_attempt_engine),
) -> AttemptReportResponse:
    """Read-only report: accuracy, answer timeline and difficulty trace."""
    report = await engine.get_results(attempt_id, user_id=user_id)
    return AttemptReportResponse.model_validate(report)


@router.get(
    "/my-attempts",
    response_model=List[AttemptSummaryResponse],
    summary="List my attempts",
)
async def my_attempts(
    limit: Optional[int] = Query(None, ge=1, le=100),
    user_id: str = Depends(get_current_user_id),
    engine: AdaptiveAttemptEngine = Depends(get_attempt_engine),
) -> List[AttemptSummaryResponse]:
    """The caller's most recent attempts, newest first."""
    attempts = await engine.list_attempts(user_id, limit=limit)
    return [AttemptSummaryResponse.model_validate(a) for a in attempts]
