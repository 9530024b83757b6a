"""
Waypoint Database Session Management

Async SQLAlchemy engine and session factory for the API process, plus a
disposable engine builder for worker tasks that run in their own event loop.
"""

from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.orm import DeclarativeBase

from core.config import get_settings

settings = get_settings()

engine = create_async_engine(
    settings.database_url,
    echo=settings.database_echo,
    pool_size=20,
    max_overflow=10,
    pool_pre_ping=True,
)

AsyncSessionLocal = async_sessionmaker(
    engine,
    class_=AsyncSession,
    expire_on_commit=False,
)


class Base(DeclarativeBase):
    """Declarative base for all SQLAlchemy models."""
    pass


def build_worker_session(database_url: str) -> tuple[AsyncEngine, async_sessionmaker[AsyncSession]]:
    """Engine + session factory for one worker run. Caller disposes the engine."""
    worker_engine = create_async_engine(database_url)
    return worker_engine, async_sessionmaker(worker_engine, class_=AsyncSession, expire_on_commit=False)
