"""Database engine and session utilities.

Attributes:
    engine (AsyncEngine): Primary SQLModel async engine connected to SQLite.
    SessionLocal (async_sessionmaker): Factory for yielding AsyncSession objects.

Functions:
    create_engine_for(url): Build an async engine with the SQLite connect args applied.
    init_db(): Create database tables and apply SQLite pragmas.
    get_session(): Dependency that yields an AsyncSession for request handlers.
"""

import logging
from collections.abc import AsyncGenerator
from pathlib import Path

from sqlalchemy.exc import OperationalError
from sqlalchemy.ext.asyncio import AsyncEngine, async_sessionmaker, create_async_engine
from sqlmodel import SQLModel
from sqlmodel.ext.asyncio.session import AsyncSession

from seriate import models  # noqa: F401  registers tables on SQLModel.metadata
from seriate.core.config import get_settings

_LOGGER = logging.getLogger(__name__)
_settings = get_settings()


def create_engine_for(database_url: str) -> AsyncEngine:
    if database_url.startswith("sqlite"):
        db_path = Path(database_url.split("///", 1)[-1]).resolve()
        if ":memory:" not in database_url and db_path.parent.name:
            db_path.parent.mkdir(parents=True, exist_ok=True)

    return create_async_engine(
        database_url,
        echo=False,
        future=True,
        connect_args=(
            {"check_same_thread": False}
            if database_url.startswith("sqlite")
            else {}
        ),
    )


engine: AsyncEngine = create_engine_for(_settings.database_url)

SessionLocal = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


async def init_db(target: AsyncEngine | None = None) -> None:
    bind = target or engine
    async with bind.begin() as conn:
        await conn.run_sync(SQLModel.metadata.create_all)

        if str(bind.url).startswith("sqlite"):
            await _apply_sqlite_pragmas(conn)


async def get_session() -> AsyncGenerator[AsyncSession, None]:
    async with SessionLocal() as session:
        yield session


async def _apply_sqlite_pragmas(conn) -> None:
    # WAL keeps cache readers unblocked while a batch is being written.
    try:
        await conn.exec_driver_sql("PRAGMA journal_mode=WAL")
        await conn.exec_driver_sql("PRAGMA synchronous=NORMAL")
    except OperationalError as exc:
        _LOGGER.warning("Could not apply SQLite pragmas: %s", exc)
