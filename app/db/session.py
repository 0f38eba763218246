"""
Async SQLAlchemy engine & session factory (asyncpg driver).

Connecting is bounded by ``DB_CONNECT_TIMEOUT_SECONDS`` so a down database
fails fast; statements are bounded separately by ``DB_COMMAND_TIMEOUT_SECONDS``.
"""

from __future__ import annotations

import asyncio
import logging

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from app.core.config import settings

logger = logging.getLogger(__name__)

engine_args = {
    "echo": False,
    "pool_pre_ping": True,
}

if "postgresql" in settings.DATABASE_URL:
    engine_args.update(
        {
            "pool_size": 20,
            "max_overflow": 10,
            "pool_recycle": 300,
            "pool_timeout": settings.DB_CONNECT_TIMEOUT_SECONDS,
            "connect_args": {
                "timeout": settings.DB_CONNECT_TIMEOUT_SECONDS,
                "command_timeout": settings.DB_COMMAND_TIMEOUT_SECONDS,
            },
        }
    )

engine = create_async_engine(
    settings.DATABASE_URL,
    **engine_args,
)

async_session_factory = async_sessionmaker(
    engine,
    class_=AsyncSession,
    expire_on_commit=False,
)


async def is_storage_ready(db: AsyncSession) -> bool:
    """Round-trip a trivial query, bounded by the connect timeout."""
    try:
        await asyncio.wait_for(
            db.execute(select(1)), timeout=settings.DB_CONNECT_TIMEOUT_SECONDS
        )
    except (SQLAlchemyError, OSError, asyncio.TimeoutError) as e:
        logger.error("Storage readiness check failed: %s", e)
        return False
    return True
