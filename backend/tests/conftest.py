"""Shared fixtures for merchant rule tests."""

import os

# Point the module-level engine at SQLite before merchant_rules is imported
os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///:memory:")

import pytest
from sqlalchemy.pool import StaticPool

from merchant_rules.core.database import Base, build_engine, session_factory
from merchant_rules.models import MerchantRule, MerchantRuleAssignment, RuleExecutionLog  # noqa: F401


# Test database URL
TEST_DATABASE_URL = "sqlite+aiosqlite:///:memory:"


@pytest.fixture
async def test_engine():
    """Create a test database engine."""
    engine = build_engine(TEST_DATABASE_URL, poolclass=StaticPool)
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
async def test_session(test_engine):
    """Create a test database session."""
    async_session = session_factory(test_engine)
    async with async_session() as session:
        yield session
