"""
Pytest Configuration and Fixtures.

This file configures pytest and provides shared fixtures for all tests.
Every test gets its own SQLite database file; settings and engines are
reset around each test so DATABASE_URL changes take effect.
"""
import sys
from pathlib import Path
from uuid import uuid4

import pytest
import pytest_asyncio

# Add project root to path
PROJECT_ROOT = Path(__file__).parent.parent
sys.path.insert(0, str(PROJECT_ROOT))


def pytest_configure(config):
    """Configure pytest markers."""
    config.addinivalue_line("markers", "unit: Unit tests")
    config.addinivalue_line("markers", "integration: Integration tests (require database)")
    config.addinivalue_line("markers", "smoke: Smoke tests for CLI commands")
    config.addinivalue_line("markers", "slow: Slow tests")


def pytest_collection_modifyitems(config, items):
    """Automatically mark tests based on their location."""
    for item in items:
        # Mark based on test file location
        if "unit" in str(item.fspath):
            item.add_marker(pytest.mark.unit)
        elif "integration" in str(item.fspath):
            item.add_marker(pytest.mark.integration)
        elif "smoke" in str(item.fspath):
            item.add_marker(pytest.mark.smoke)


@pytest.fixture(scope="session")
def project_root():
    """Return the project root directory."""
    return PROJECT_ROOT


@pytest.fixture(autouse=True)
def isolated_database(tmp_path, monkeypatch):
    """Point DATABASE_URL at a per-test SQLite file."""
    from config import get_settings
    from src.db import database

    db_path = tmp_path / "quiz_engine.db"
    monkeypatch.setenv("DATABASE_URL", f"sqlite:///{db_path}")
    monkeypatch.delenv("RANDOM_SEED", raising=False)
    get_settings.cache_clear()
    database.reset_engines()

    yield db_path

    database.reset_engines()
    get_settings.cache_clear()


@pytest.fixture
def settings():
    from config import get_settings

    return get_settings()


@pytest_asyncio.fixture
async def session():
    """Async session on a freshly created schema."""
    from src.db.database import get_async_session_factory, init_db_async

    await init_db_async()
    factory = get_async_session_factory()
    async with factory() as db:
        yield db


@pytest.fixture
def make_question():
    """Build (unsaved) Question rows."""
    from src.db.models import Question

    counter = {"n": 0}

    def _make(difficulty: int = 3, quiz_level: int = 1, **overrides):
        counter["n"] += 1
        n = counter["n"]
        fields = {
            "text": f"Question {n}?",
            "choices": [f"A{n}", f"B{n}", f"C{n}", f"D{n}"],
            "answer": f"A{n}",
            "difficulty": difficulty,
            "quiz_level": quiz_level,
            "subject": "Math",
            "topic": f"Topic {difficulty}",
            "grade": "Primary 1",
            "is_active": True,
            "usage_count": 0,
        }
        fields.update(overrides)
        return Question(**fields)

    return _make


@pytest.fixture
def seed_pool(make_question):
    """Persist a question pool: {difficulty: count} for one level."""

    async def _seed(db, per_difficulty: dict[int, int], quiz_level: int = 1, **overrides):
        questions = [
            make_question(difficulty=d, quiz_level=quiz_level, **overrides)
            for d, count in sorted(per_difficulty.items())
            for _ in range(count)
        ]
        db.add_all(questions)
        await db.commit()
        return questions

    return _seed


@pytest.fixture
def make_quiz(make_question):
    """
    Persist a quiz whose snapshots are built directly from new questions.

    Bypasses the assembler so attempt tests control the exact difficulty mix.
    """
    from src.db.models import Quiz
    from src.quiz.snapshots import AdaptiveConfig, QuestionSnapshot

    async def _make(
        db,
        difficulties: list[int],
        progression: str = "immediate",
        target: int = 10,
        start: int = 3,
        topic: str | None = None,
    ):
        extra = {"topic": topic} if topic else {}
        questions = [make_question(difficulty=d, **extra) for d in difficulties]
        db.add_all(questions)
        await db.flush()

        snapshots = [
            QuestionSnapshot.from_question(q, position=i, starting_difficulty=q.difficulty)
            for i, q in enumerate(questions, start=1)
        ]
        quiz = Quiz(
            title="Test Quiz",
            description="Built for tests",
            quiz_level=1,
            questions=[s.to_dict() for s in snapshots],
            adaptive_config=AdaptiveConfig(target, progression, start).to_dict(),
            unique_hash=uuid4().hex[:16],
            generation_criteria="manual",
        )
        db.add(quiz)
        await db.commit()
        return quiz

    return _make


class RecordingAggregator:
    """Skill aggregator stub that records every call."""

    def __init__(self):
        self.calls = []

    async def update_skills(self, user_id, answers):
        self.calls.append((user_id, list(answers)))
        return []


class FailingAggregator:
    """Skill aggregator stub that always raises."""

    def __init__(self):
        self.calls = 0

    async def update_skills(self, user_id, answers):
        self.calls += 1
        raise RuntimeError("skill store unavailable")


@pytest.fixture
def recording_aggregator():
    return RecordingAggregator()


@pytest.fixture
def failing_aggregator():
    return FailingAggregator()
