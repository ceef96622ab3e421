"""Connections for the durable stores.

PostgreSQL (SQLAlchemy 2.0 async, asyncpg) holds scheme versions, review
cases and decisions, and the audit log. Redis holds encrypted conversation
state. Both clients are created at import and connect lazily.
"""

from __future__ import annotations

import contextlib
import logging
from collections.abc import AsyncGenerator

import redis.asyncio as aioredis
from redis.exceptions import RedisError
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)

from schemebot.config import settings
from schemebot.errors import InfrastructureError

logger = logging.getLogger(__name__)

engine: AsyncEngine = create_async_engine(
    settings.db.database_url,
    pool_size=settings.db.pool_size,
    max_overflow=settings.db.max_overflow,
    pool_pre_ping=True,
    pool_recycle=3600,
)

async_session_factory = async_sessionmaker(
    engine,
    class_=AsyncSession,
    expire_on_commit=False,
)

redis_client: aioredis.Redis = aioredis.from_url(
    settings.db.redis_url,
    decode_responses=True,
)


async def init_db() -> None:
    """Check both stores are reachable; create tables outside production.

    Production schemas come from the Alembic migrations.

    Raises:
        InfrastructureError: PostgreSQL or Redis cannot be reached.
    """
    # Registers every model on Base.metadata
    from schemebot.models import Base

    try:
        async with engine.begin() as conn:
            if not settings.is_production:
                await conn.run_sync(Base.metadata.create_all)
    except (SQLAlchemyError, OSError) as exc:
        msg = f"PostgreSQL unavailable: {exc}"
        raise InfrastructureError(msg) from exc

    try:
        await redis_client.ping()
    except RedisError as exc:
        msg = f"Redis unavailable: {exc}"
        raise InfrastructureError(msg) from exc
    logger.info("PostgreSQL and Redis reachable (env=%s)", settings.environment)


async def close_db() -> None:
    await engine.dispose()
    await redis_client.aclose()


@contextlib.asynccontextmanager
async def db_lifespan() -> AsyncGenerator[None, None]:
    """Open the stores for the lifetime of the app, closing them on exit."""
    await init_db()
    try:
        yield
    finally:
        await close_db()
