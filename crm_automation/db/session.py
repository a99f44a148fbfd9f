"""Database session management."""

from __future__ import annotations

from typing import AsyncGenerator

from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine
from sqlmodel import SQLModel

from ..core.config import settings

SessionFactory = async_sessionmaker[AsyncSession]


def create_engine(database_url: str, echo: bool = False) -> AsyncEngine:
    connect_args = {"check_same_thread": False} if database_url.startswith("sqlite") else {}
    return create_async_engine(database_url, echo=echo, future=True, connect_args=connect_args)


def create_session_factory(db_engine: AsyncEngine) -> SessionFactory:
    return async_sessionmaker(db_engine, class_=AsyncSession, expire_on_commit=False)


engine = create_engine(settings.database_url, echo=settings.debug)

async_session_factory = create_session_factory(engine)


async def init_db(db_engine: AsyncEngine | None = None) -> None:
    """Initialize database tables."""
    from . import models  # noqa: F401  (registers tables on the metadata)

    async with (db_engine or engine).begin() as conn:
        await conn.run_sync(SQLModel.metadata.create_all)


async def get_session() -> AsyncGenerator[AsyncSession, None]:
    """Get async database session."""
    async with async_session_factory() as session:
        yield session
