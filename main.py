"""
Entry point for the adaptive quiz engine service.

Run with:
    uvicorn main:app --reload --port 8100
    python main.py
"""
import uvicorn

from config import get_settings
from src.api.main import app  # noqa: F401

settings = get_settings()

if __name__ == "__main__":
    uvicorn.run(
        "src.api.main:app",
        host=settings.api_host,
        port=settings.api_port,
        reload=True,
        log_level=settings.log_level.lower(),
    )
