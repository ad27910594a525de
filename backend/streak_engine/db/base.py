"""
Streak engine database wiring.

One async engine per process, sized from the `database:` section of
config/default.yaml. Repositories receive an AsyncSession and own their
commits; get_db only guarantees the session is cleaned up.

Usage:
    from streak_engine.db.base import async_session_maker

    async with async_session_maker() as session:
        service = StreakService(SqlStreakRepository(session))
"""

from collections.abc import AsyncGenerator
from typing import Any

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.orm import DeclarativeBase

from streak_engine.config import settings, yaml_config

POOL_DEFAULTS: dict[str, Any] = {
    "pool_size": 5,
    "max_overflow": 10,
    "pool_timeout": 30,
    "pool_recycle": 1800,
    "pool_pre_ping": True,
}


def engine_options(database_config: dict[str, Any]) -> dict[str, Any]:
    """Pool keyword arguments for create_async_engine; unknown keys are ignored."""
    options = dict(POOL_DEFAULTS)
    options.update(
        {key: value for key, value in database_config.items() if key in POOL_DEFAULTS}
    )
    return options


engine = create_async_engine(
    settings.POSTGRES_URL,
    echo=settings.DEBUG,
    **engine_options(yaml_config.get("database") or {}),
)

async_session_maker = async_sessionmaker(
    engine,
    class_=AsyncSession,
    expire_on_commit=False,
)


class Base(DeclarativeBase):
    pass


# Table classes register on Base.metadata when imported
from streak_engine.db import models  # noqa: F401, E402


async def get_db() -> AsyncGenerator[AsyncSession, None]:
    """Request-scoped session; whatever the service left uncommitted is rolled back."""
    async with async_session_maker() as session:
        try:
            yield session
        except Exception:
            await session.rollback()
            raise


async def init_db() -> None:
    """Create the streak tables that don't exist yet (settings.DB_AUTO_CREATE)."""
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
