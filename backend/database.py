"""Database setup and session management."""

import logging
from functools import lru_cache
from pathlib import Path

from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.orm import DeclarativeBase

from config import settings

logger = logging.getLogger(__name__)


class Base(DeclarativeBase):
    """Base class for all SQLAlchemy models."""

    pass


def _db_file_path(database_url: str) -> Path | None:
    """Extract the filesystem path from a ``sqlite`` URL.

    Returns ``None`` for in-memory databases (``:memory:`` or empty path).
    """
    if not database_url.startswith("sqlite"):
        return None
    # sqlite+aiosqlite:///./data/portfolio.db  ->  ./data/portfolio.db
    # sqlite+aiosqlite:///:memory:             ->  :memory:
    if "///" not in database_url:
        return None
    path_part = database_url.split("///", 1)[-1]
    if not path_part or path_part == ":memory:":
        return None
    return Path(path_part)


@lru_cache
def get_engine() -> AsyncEngine:
    """Get or create the async database engine (cached).

    The parent directory of a file-backed SQLite database is created on
    first use so a fresh checkout can start without manual setup.
    """
    database_url = settings.DATABASE_URL

    db_path = _db_file_path(database_url)
    if db_path is not None and not db_path.parent.exists():
        db_path.parent.mkdir(parents=True, exist_ok=True)
        logger.info("Created database directory %s", db_path.parent)

    return create_async_engine(database_url, echo=False)


def get_session_local() -> async_sessionmaker[AsyncSession]:
    """Get an async sessionmaker bound to the engine."""
    return async_sessionmaker(
        bind=get_engine(), expire_on_commit=False, class_=AsyncSession
    )


async def init_db(engine: AsyncEngine | None = None) -> None:
    """Create all tables that do not exist yet."""
    # Import models so every table is registered on Base.metadata
    import models  # noqa: F401

    engine = engine or get_engine()
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    logger.info("Database ready: %s", settings.DATABASE_URL)


async def get_db():
    """Dependency that provides a database session.

    Transaction conventions:
    - Default: services ``flush()``, API layer ``commit()``
    - Exceptions that commit internally:
      - ``QuoteStore`` / ``FxService`` / ``ApiUsageService``: cache writes are
        committed immediately so concurrent requests see them
    """
    SessionLocal = get_session_local()
    async with SessionLocal() as db:
        try:
            yield db
        except Exception:
            await db.rollback()
            raise
