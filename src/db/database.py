from __future__ import annotations

from collections.abc import AsyncGenerator, Generator
from contextlib import asynccontextmanager, contextmanager

from loguru import logger
from sqlalchemy import Engine, create_engine, event, text
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import NullPool

from config import get_settings
from src.db.models.base import Base

# Engines are created lazily so settings can be swapped (tests reset them per case)
_engine: Engine | None = None
_SessionLocal: sessionmaker | None = None
_async_engine: AsyncEngine | None = None
_AsyncSessionLocal: async_sessionmaker | None = None


def _get_async_url(url: str) -> str:
    """Convert a sync database URL to its async driver equivalent."""
    if url.startswith(("postgresql+asyncpg://", "sqlite+aiosqlite://")):
        return url
    if url.startswith("postgresql://"):
        return url.replace("postgresql://", "postgresql+asyncpg://", 1)
    if url.startswith("postgresql+psycopg2://"):
        return url.replace("postgresql+psycopg2://", "postgresql+asyncpg://", 1)
    if url.startswith("sqlite://"):
        return url.replace("sqlite://", "sqlite+aiosqlite://", 1)
    return url


def _get_sync_url(url: str) -> str:
    """Convert an async database URL back to a sync driver."""
    if url.startswith("postgresql+asyncpg://"):
        return url.replace("postgresql+asyncpg://", "postgresql://", 1)
    if url.startswith("sqlite+aiosqlite://"):
        return url.replace("sqlite+aiosqlite://", "sqlite://", 1)
    return url


def _enable_sqlite_savepoints(sync_engine: Engine) -> None:
    """
    Let SQLAlchemy own SQLite transactions so SAVEPOINT works.

    The sqlite3/aiosqlite drivers begin transactions implicitly and break
    nested transactions; disabling that and emitting BEGIN ourselves is the
    documented workaround.
    """

    @event.listens_for(sync_engine, "connect")
    def _do_connect(dbapi_connection, connection_record):
        dbapi_connection.isolation_level = None

    @event.listens_for(sync_engine, "begin")
    def _do_begin(conn):
        conn.exec_driver_sql("BEGIN")


def get_engine() -> Engine:
    """Get the sync database engine."""
    global _engine, _SessionLocal
    if _engine is None:
        settings = get_settings()
        url = _get_sync_url(settings.database_url)
        _engine = create_engine(url, echo=settings.log_level == "DEBUG", pool_pre_ping=True)
        if url.startswith("sqlite"):
            _enable_sqlite_savepoints(_engine)
        _SessionLocal = sessionmaker(bind=_engine, autocommit=False, autoflush=False)
    return _engine


def init_db() -> None:
    """Initialize database tables."""
    # Import models so every table is registered on the metadata
    import src.db.models  # noqa: F401

    Base.metadata.create_all(bind=get_engine())
    logger.info("Database tables initialized")


@contextmanager
def session_scope() -> Generator[Session, None, None]:
    """Provide a transactional scope around a series of operations."""
    get_engine()
    session = _SessionLocal()
    try:
        yield session
        session.commit()
    except Exception:  # Intentionally broad - rollback on any error before re-raising
        session.rollback()
        raise
    finally:
        session.close()


# ========================================
# Async Support
# ========================================


def get_async_engine() -> AsyncEngine:
    """Get or create async engine (lazy initialization)."""
    global _async_engine
    if _async_engine is None:
        settings = get_settings()
        async_url = _get_async_url(settings.database_url)
        if async_url.startswith("sqlite"):
            # Connections must not outlive the event loop that opened them
            _async_engine = create_async_engine(
                async_url,
                echo=settings.log_level == "DEBUG",
                poolclass=NullPool,
            )
            _enable_sqlite_savepoints(_async_engine.sync_engine)
        else:
            _async_engine = create_async_engine(
                async_url,
                echo=settings.log_level == "DEBUG",
                pool_pre_ping=True,
            )
    return _async_engine


def get_async_session_factory() -> async_sessionmaker:
    """Get or create async session factory."""
    global _AsyncSessionLocal
    if _AsyncSessionLocal is None:
        _AsyncSessionLocal = async_sessionmaker(
            bind=get_async_engine(),
            class_=AsyncSession,
            autoflush=False,
            autocommit=False,
            expire_on_commit=False,
        )
    return _AsyncSessionLocal


async def init_db_async() -> None:
    """Initialize database tables through the async engine."""
    import src.db.models  # noqa: F401

    async with get_async_engine().begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    logger.info("Database tables initialized")


async def get_async_session() -> AsyncGenerator[AsyncSession, None]:
    """FastAPI dependency for async database sessions."""
    factory = get_async_session_factory()
    async with factory() as session:
        try:
            yield session
            await session.commit()
        except Exception:  # Intentionally broad - rollback on any error before re-raising
            await session.rollback()
            raise


@asynccontextmanager
async def async_session_scope() -> AsyncGenerator[AsyncSession, None]:
    """Provide an async transactional scope around a series of operations."""
    factory = get_async_session_factory()
    async with factory() as session:
        try:
            yield session
            await session.commit()
        except Exception:  # Intentionally broad - rollback on any error before re-raising
            await session.rollback()
            raise


def check_database_health() -> tuple[str, str | None]:
    """
    Check database connectivity.

    Returns:
        Tuple of (status, error_message). Status is "ok" or "error".
    """
    from sqlalchemy.exc import SQLAlchemyError

    try:
        with get_engine().connect() as conn:
            conn.execute(text("SELECT 1"))
        return "ok", None
    except SQLAlchemyError as e:
        return "error", str(e)


def reset_engines() -> None:
    """Drop cached engines so the next access re-reads settings."""
    global _engine, _SessionLocal, _async_engine, _AsyncSessionLocal
    if _engine is not None:
        _engine.dispose()
    if _async_engine is not None:
        _async_engine.sync_engine.dispose()
    _engine = None
    _SessionLocal = None
    _async_engine = None
    _AsyncSessionLocal = None
