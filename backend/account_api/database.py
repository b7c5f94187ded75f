"""Database engine and request-scoped sessions."""
from collections.abc import AsyncGenerator
from typing import Any

from sqlalchemy.ext.asyncio import (
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.pool import NullPool

from .config import get_settings


def _engine_options(database_url: str) -> dict[str, Any]:
    """SQLite connections are opened per checkout so they never outlive an event loop."""

    if database_url.startswith("sqlite+"):
        return {"connect_args": {"check_same_thread": False}, "poolclass": NullPool}
    return {"pool_pre_ping": True}


settings = get_settings()
engine = create_async_engine(settings.database_url, echo=False, **_engine_options(settings.database_url))
AsyncSessionLocal = async_sessionmaker(engine, expire_on_commit=False)


async def get_session() -> AsyncGenerator[AsyncSession, None]:
    """Provide an async SQLAlchemy session per request."""

    async with AsyncSessionLocal() as session:
        yield session
