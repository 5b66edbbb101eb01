from __future__ import annotations

from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.orm import declarative_base

from thornton_events.utils.config import DATABASE_URL

Base = declarative_base()


def normalize_url(url: str) -> str:
    # Switch driver to asyncpg if a plain postgres URL is provided
    if url.startswith("postgresql://"):
        return url.replace("postgresql://", "postgresql+asyncpg://", 1)
    if url.startswith("postgres://"):
        return url.replace("postgres://", "postgresql+asyncpg://", 1)
    return url


def make_engine(url: str) -> AsyncEngine:
    return create_async_engine(
        normalize_url(url),
        pool_pre_ping=True,
        echo=False,
    )


def make_session_factory(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(
        bind=engine,
        class_=AsyncSession,
        expire_on_commit=False,
    )


# The API process shares one engine; ingestion runs build their own from Settings.
engine = make_engine(DATABASE_URL or "sqlite+aiosqlite:///./thornton_events.db")
SessionLocal = make_session_factory(engine)


async def get_db():
    async with SessionLocal() as session:
        yield session


async def create_all(bind: AsyncEngine) -> None:
    # Import registers all models on Base.metadata
    from thornton_events.models import article, deal, event  # noqa: F401

    async with bind.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
