from typing import Any

from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)

from config.settings import settings


def _engine_kwargs(url: str) -> dict[str, Any]:
    # SQLite (local runs, tests) has no connection pool to size
    if url.startswith("sqlite"):
        return {}
    return {
        "pool_size": 5,
        "max_overflow": 5,
        "pool_pre_ping": True,
        "pool_recycle": 3600,
    }


def make_engine(url: str) -> AsyncEngine:
    return create_async_engine(url, echo=False, **_engine_kwargs(url))


engine = make_engine(settings.database_url)

async_session_factory = async_sessionmaker(
    engine,
    class_=AsyncSession,
    expire_on_commit=False,
)
