"""Database module with async SQLAlchemy engine and session management."""

from typing import AsyncGenerator, Optional

from fastapi import Request
from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.orm import declarative_base
from sqlalchemy.pool import NullPool

from .settings import Settings

# SQLAlchemy base for models
Base = declarative_base()


class Database:
    """Owns the async engine and session factory for one application process."""

    def __init__(self, url: str, echo: bool = False, engine: Optional[AsyncEngine] = None):
        if engine is None:
            engine_kwargs = {"echo": echo, "pool_pre_ping": True}
            if url.startswith("sqlite"):
                # file databases; a fresh connection per session keeps sessions loop-independent
                engine_kwargs["poolclass"] = NullPool
            else:
                engine_kwargs.update(pool_size=10, max_overflow=20)
            engine = create_async_engine(url, **engine_kwargs)

        self.engine = engine
        self.session_factory = async_sessionmaker(
            engine,
            class_=AsyncSession,
            expire_on_commit=False,
        )

    @classmethod
    def from_settings(cls, settings: Settings) -> "Database":
        return cls(settings.database_url, echo=settings.database_echo)

    def session(self) -> AsyncSession:
        return self.session_factory()

    async def ping(self) -> None:
        """Run a trivial query; raises when the database is unreachable."""
        async with self.engine.connect() as conn:
            await conn.execute(text("SELECT 1"))

    async def create_all(self) -> None:
        """Create all tables in the database."""
        async with self.engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)

    async def drop_all(self) -> None:
        """Drop all tables in the database."""
        async with self.engine.begin() as conn:
            await conn.run_sync(Base.metadata.drop_all)

    async def dispose(self) -> None:
        await self.engine.dispose()


def get_database(request: Request) -> Database:
    return request.app.state.db


async def get_db(request: Request) -> AsyncGenerator[AsyncSession, None]:
    """Dependency to get database session."""
    async with get_database(request).session() as session:
        try:
            yield session
        finally:
            await session.close()
