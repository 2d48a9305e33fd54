"""API routers for the adaptive quiz engine."""

from src.api.routers import adaptive_router, quiz_router

__all__ = [
    "quiz_router",
    "adaptive_router",
]
