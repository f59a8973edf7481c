# backend/merchant_rules/core/database.py
"""数据库引擎和会话管理

PostgreSQL 走 asyncpg，SQLite 走 aiosqlite（开发/测试用）。
"""

from typing import Any

from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.orm import DeclarativeBase
from sqlalchemy.pool import NullPool
from merchant_rules.core.config import settings
import logging

logger = logging.getLogger(__name__)


def normalize_database_url(db_url: str) -> str:
    """Rewrite a bare postgresql:// or sqlite:// URL to its async driver.

    Raises:
        ValueError: If the scheme is neither PostgreSQL nor SQLite
    """
    if db_url.startswith("postgresql+asyncpg://") or db_url.startswith("sqlite+aiosqlite://"):
        return db_url
    if db_url.startswith("postgresql://"):
        return db_url.replace("postgresql://", "postgresql+asyncpg://", 1)
    if db_url.startswith("sqlite://"):
        return db_url.replace("sqlite://", "sqlite+aiosqlite://", 1)
    raise ValueError(f"Unsupported database URL scheme: {db_url}")


def build_engine(db_url: str | None = None, **engine_options: Any) -> AsyncEngine:
    """Create an async engine for the rule store.

    Args:
        db_url: Database URL (defaults to settings.effective_database_url)
        **engine_options: Passed to create_async_engine, overriding defaults

    Returns:
        AsyncEngine for PostgreSQL or SQLite
    """
    db_url = normalize_database_url(db_url or settings.effective_database_url)

    if db_url.startswith("postgresql+asyncpg://"):
        options: dict[str, Any] = {
            "pool_size": settings.DB_POOL_SIZE,
            "max_overflow": settings.DB_MAX_OVERFLOW,
            "echo": False,
        }
        logger.info(f"Using PostgreSQL database: {db_url.split('@')[-1]}")
    else:
        # SQLite 不需要连接池
        options = {"connect_args": {"check_same_thread": False}, "poolclass": NullPool}
        logger.info(f"Using SQLite database: {db_url}")

    options.update(engine_options)
    return create_async_engine(db_url, **options)


def session_factory(bind: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    # Services read attributes after commit, so nothing is expired
    return async_sessionmaker(bind, class_=AsyncSession, expire_on_commit=False)


engine = build_engine()
async_session = session_factory(engine)


class Base(DeclarativeBase):
    pass

