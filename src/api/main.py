"""
FastAPI application for the adaptive quiz engine.

Provides REST API for:
- Quiz generation and availability checks
- Quiz catalog
- Adaptive attempts (start, next question, submit answer, results, history)
"""

from __future__ import annotations

from contextlib import asynccontextmanager
from datetime import UTC, datetime
from typing import Any

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from loguru import logger

from config import get_settings
from src.core.errors import QuizEngineError
from src.core.logging_config import configure_logging
from src.db.database import check_database_health, init_db

SERVICE_NAME = "adaptive-quiz-engine"
SERVICE_VERSION = "0.1.0"


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan handler for startup/shutdown events."""
    settings = get_settings()
    configure_logging(settings.log_level, settings.log_file)

    # Startup
    logger.info(f"Starting {SERVICE_NAME} service...")
    init_db()
    logger.info(f"Service started on {settings.api_host}:{settings.api_port}")

    yield

    # Shutdown
    logger.info(f"Shutting down {SERVICE_NAME} service...")


app = FastAPI(
    title="Adaptive Quiz Engine",
    description="""
    Quiz assembly and adaptive attempt runtime.

    ## Features

    - **Quiz Assembler**: Freshness-weighted selection of 20 questions per quiz
    - **Adaptive Attempts**: Live difficulty adjustment (immediate, gradual, ml-based)
    - **Skill Aggregation**: Per-topic points and levels on completion

    ## Data Flow

    ```
    Question Repository
        ↓ generate
    Quiz (embedded snapshots)
        ↓ start / next-question / submit-answer
    Quiz Attempt
        ↓ completion
    Student Skills
    ```
    """,
    version=SERVICE_VERSION,
    lifespan=lifespan,
)

# CORS middleware for local development
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],  # Restrict in production
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(QuizEngineError)
async def quiz_engine_error_handler(request: Request, exc: QuizEngineError) -> JSONResponse:
    """Map engine errors onto their HTTP status with actionable details."""
    if exc.status_code >= 500:
        logger.error(f"{request.method} {request.url.path} failed: {exc.message}")
    else:
        logger.info(f"{request.method} {request.url.path} rejected ({exc.status_code}): {exc.message}")
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())


# ========================================
# Health & Status Endpoints
# ========================================


@app.get("/", tags=["Health"])
def root() -> dict[str, str]:
    """Root endpoint returning service info."""
    return {
        "service": SERVICE_NAME,
        "version": SERVICE_VERSION,
        "status": "ok",
    }


@app.get("/health", tags=["Health"])
def health_check() -> dict[str, Any]:
    """Health check with an actual database round trip."""
    settings = get_settings()
    db_status, db_error = check_database_health()

    result: dict[str, Any] = {
        "status": "healthy" if db_status == "ok" else "unhealthy",
        "timestamp": datetime.now(UTC).isoformat(),
        "components": {"database": db_status},
        "config": {
            "quiz_question_count": settings.quiz_question_count,
            "quiz_min_pool_size": settings.quiz_min_pool_size,
            "default_adaptive_config": settings.get_default_adaptive_config(),
        },
    }
    if db_error:
        result["errors"] = {"database": db_error}

    return result


# ========================================
# Import and mount routers
# ========================================

from src.api.routers import adaptive_router, quiz_router  # noqa: E402

app.include_router(quiz_router.router, prefix="/api/adaptive", tags=["Quizzes"])
app.include_router(adaptive_router.router, prefix="/api/adaptive", tags=["Adaptive Attempts"])
