"""
Quiz API Router.

Endpoints for generated adaptive quizzes:
- Generation availability per level
- Quiz generation (Quiz Assembler)
- Quiz catalog
"""

from __future__ import annotations

from datetime import datetime
from typing import Dict, List, Literal, Optional
from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, Query
from loguru import logger
from pydantic import BaseModel, ConfigDict, Field
from sqlalchemy.ext.asyncio import AsyncSession

from src.core.errors import QuizEngineError
from src.db.database import get_async_session
from src.quiz import QuizAssembler, QuizCatalog, TriggerReason
from src.quiz.quiz_catalog import summarize_quiz

router = APIRouter()


# ========================================
# Request/Response Models
# ========================================


class AdaptiveConfigRequest(BaseModel):
    """Overrides for the adaptive settings stamped onto a generated quiz."""

    target_correct_answers: Optional[int] = Field(None, ge=1)
    difficulty_progression: Optional[Literal["immediate", "gradual", "ml-based"]] = None
    starting_difficulty: Optional[int] = Field(None, ge=1, le=5)


class GenerateQuizRequest(BaseModel):
    """Request model for generating a quiz."""

    quiz_level: int = Field(..., ge=1, description="Question Repository level to draw from")
    student_id: Optional[str] = Field(None, description="Student the quiz is generated for")
    trigger_reason: str = Field(TriggerReason.MANUAL.value, description="Why the quiz is generated")
    grade: Optional[str] = None
    subject: Optional[str] = None
    adaptive_config: Optional[AdaptiveConfigRequest] = None


class AvailabilityResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    quiz_level: int
    available: bool
    question_count: int
    required: int
    message: str
    difficulty_distribution: Dict[int, int] = Field(default_factory=dict)


class QuizSummaryResponse(BaseModel):
    """Response model for a quiz without question content."""

    model_config = ConfigDict(from_attributes=True)

    quiz_id: UUID
    title: str
    description: str
    quiz_level: int
    unique_hash: str
    total_questions: int
    difficulty_distribution: Dict[str, int]
    target_correct_answers: int
    difficulty_progression: str
    starting_difficulty: int
    generation_criteria: str
    created_at: Optional[datetime]


# ========================================
# Generation Endpoints
# ========================================


@router.get(
    "/quizzes/availability",
    response_model=AvailabilityResponse,
    summary="Check generation availability",
)
async def check_availability(
    quiz_level: int = Query(..., ge=1, alias="level"),
    grade: Optional[str] = Query(None),
    subject: Optional[str] = Query(None),
    db: AsyncSession = Depends(get_async_session),
) -> AvailabilityResponse:
    """Report whether a level has enough active questions to generate a quiz."""
    assembler = QuizAssembler(db)
    availability = await assembler.check_generation_availability(quiz_level, grade=grade, subject=subject)
    return AvailabilityResponse.model_validate(availability)


@router.post(
    "/quizzes/generate",
    response_model=QuizSummaryResponse,
    status_code=201,
    summary="Generate quiz",
)
async def generate_quiz(
    request: GenerateQuizRequest,
    db: AsyncSession = Depends(get_async_session),
) -> QuizSummaryResponse:
    """
    Generate a new adaptive quiz.

    Selects 20 distinct questions with freshness weighting, bumps their
    usage counters and stores them as embedded snapshots.
    """
    overrides = request.adaptive_config.model_dump(exclude_none=True) if request.adaptive_config else None

    try:
        assembler = QuizAssembler(db)
        quiz = await assembler.generate_quiz(
            quiz_level=request.quiz_level,
            student_id=request.student_id,
            trigger_reason=request.trigger_reason,
            grade=request.grade,
            subject=request.subject,
            adaptive_config=overrides,
        )
        await db.commit()
        return QuizSummaryResponse.model_validate(summarize_quiz(quiz))

    except QuizEngineError:
        # Keep the failed generation's log row
        await db.commit()
        raise
    except Exception as exc:
        logger.exception(f"Failed to generate quiz for level {request.quiz_level}")
        raise HTTPException(status_code=500, detail=str(exc))


# ========================================
# Catalog Endpoints
# ========================================


@router.get(
    "/quizzes",
    response_model=List[QuizSummaryResponse],
    summary="List quizzes",
)
async def list_quizzes(
    quiz_level: Optional[int] = Query(None, ge=1, alias="level"),
    limit: int = Query(100, ge=1, le=500),
    db: AsyncSession = Depends(get_async_session),
) -> List[QuizSummaryResponse]:
    """List active adaptive quizzes, newest first."""
    catalog = QuizCatalog(db)
    summaries = await catalog.list_quizzes(quiz_level=quiz_level, limit=limit)
    return [QuizSummaryResponse.model_validate(s) for s in summaries]


@router.get(
    "/quizzes/{quiz_id}",
    response_model=QuizSummaryResponse,
    summary="Get quiz",
)
async def get_quiz(
    quiz_id: str,
    db: AsyncSession = Depends(get_async_session),
) -> QuizSummaryResponse:
    """Get one quiz's summary."""
    catalog = QuizCatalog(db)
    quiz = await catalog.get_quiz(quiz_id)
    return QuizSummaryResponse.model_validate(summarize_quiz(quiz))
