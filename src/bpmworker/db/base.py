"""Database connection and session management."""

import time
from contextlib import asynccontextmanager
from typing import AsyncGenerator, Optional

from sqlalchemy import event, text
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.orm import DeclarativeBase

from bpmworker.config import settings
from bpmworker.observability.metrics import metrics


class Base(DeclarativeBase):
    """SQLAlchemy declarative base."""

    pass


engine: Optional[AsyncEngine] = None
async_session_factory: Optional[async_sessionmaker[AsyncSession]] = None


def _attach_query_metrics(target_engine: AsyncEngine) -> None:
    """Attach SQLAlchemy event listeners for query metrics."""
    sync_engine = target_engine.sync_engine
    if getattr(sync_engine, "_bpmworker_metrics_attached", False):
        return

    @event.listens_for(sync_engine, "before_cursor_execute")
    def before_cursor_execute(conn, cursor, statement, parameters, context, executemany):
        conn.info["query_start_time"] = time.perf_counter()

    @event.listens_for(sync_engine, "after_cursor_execute")
    def after_cursor_execute(conn, cursor, statement, parameters, context, executemany):
        start_time = conn.info.pop("query_start_time", None)
        if start_time is None:
            return
        metrics.inc_counter("db.query.count")
        metrics.observe("db.query.duration_ms", (time.perf_counter() - start_time) * 1000.0)

    sync_engine._bpmworker_metrics_attached = True


def create_engine(database_url: str, echo: bool = False) -> AsyncEngine:
    """Create an async engine; pool sizing applies to server databases only."""
    kwargs = {"echo": echo, "pool_pre_ping": True}
    if not database_url.startswith("sqlite"):
        kwargs.update(pool_size=20, max_overflow=10)
    new_engine = create_async_engine(database_url, **kwargs)
    _attach_query_metrics(new_engine)
    return new_engine


def configure(new_engine: AsyncEngine) -> None:
    """Use `new_engine` for every session handed out by this module."""
    global engine, async_session_factory
    engine = new_engine
    async_session_factory = async_sessionmaker(
        new_engine,
        class_=AsyncSession,
        expire_on_commit=False,
    )


def get_engine() -> AsyncEngine:
    """Return the configured engine, creating it from settings on first use."""
    if engine is None:
        configure(create_engine(settings.database_url, echo=settings.debug))
    return engine


async def check_db() -> None:
    """
    Verify the database is reachable.

    The schema is owned by the platform; the worker never creates tables.
    """
    async with get_engine().connect() as conn:
        await conn.execute(text("SELECT 1"))


async def close_db() -> None:
    """Close database connections."""
    global engine, async_session_factory
    if engine is not None:
        await engine.dispose()
    engine = None
    async_session_factory = None


@asynccontextmanager
async def get_session() -> AsyncGenerator[AsyncSession, None]:
    """Get a database session."""
    get_engine()
    async with async_session_factory() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise
