"""Async database engine and session factory construction."""

from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)

from windowguard.config import settings


def create_engine(url: str | None = None, echo: bool | None = None) -> AsyncEngine:
    """Create an async engine.

    Args:
        url: Database URL (default: from settings)
        echo: Log SQL statements (default: from settings)

    Returns:
        Async engine with connection pre-ping enabled
    """
    return create_async_engine(
        url or settings.database_url,
        echo=settings.database_echo if echo is None else echo,
        pool_pre_ping=True,  # Verify connections before use
    )


def create_session_factory(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    """Create a session factory bound to an engine."""
    return async_sessionmaker(
        bind=engine,
        class_=AsyncSession,
        expire_on_commit=False,
        autoflush=False,
    )
