"""
Database engine, session management, and base model class.

This module sets up SQLAlchemy 2.0 with async support. Key components:

  - build_engine(): Creates the async engine from the Settings object
  - build_session_factory(): Factory for creating async database sessions
  - Base: Declarative base class that all ORM models inherit from
  - get_db(): FastAPI dependency that provides a session per request

The engine and session factory are created by the application factory and
live on app.state, so nothing here reads configuration at import time.

Session lifecycle:
  Each API request gets its own session via get_db(). The session commits on
  success, commits on domain errors (so audit data such as the failed-login
  counter survives a rejected request), and rolls back on anything else.
"""

from fastapi import Request
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.orm import DeclarativeBase

from ghostcard.config import Settings
from ghostcard.exceptions import GhostCardError


class Base(DeclarativeBase):
    """Base class for all SQLAlchemy ORM models."""
    pass


def build_engine(settings: Settings) -> AsyncEngine:
    """
    Create the async engine.

    echo=True in debug mode logs all SQL statements — invaluable for development.
    """
    return create_async_engine(settings.DATABASE_URL, echo=settings.DEBUG)


def build_session_factory(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    # expire_on_commit=False prevents lazy-load errors after commit —
    # the charge saga commits between steps and keeps using its objects.
    return async_sessionmaker(
        engine,
        class_=AsyncSession,
        expire_on_commit=False,
    )


async def get_db(request: Request):
    """
    FastAPI dependency that provides a database session.

    Usage in a route:
        @router.get("/items")
        async def list_items(db: AsyncSession = Depends(get_db)):
            ...
    """
    session_factory = request.app.state.session_factory
    async with session_factory() as session:
        try:
            yield session
            await session.commit()
        except GhostCardError:
            # Domain errors (e.g. InvalidCredentialsError) — commit so
            # side effects like the failed-login counter are persisted.
            await session.commit()
            raise
        except Exception:
            await session.rollback()
            raise
