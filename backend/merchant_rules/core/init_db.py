# backend/merchant_rules/core/init_db.py
import asyncio
import logging
from merchant_rules.core.database import engine, Base
from merchant_rules.core.log_config import configure_logging
# Import all models to register them with Base
from merchant_rules.models import MerchantRule, MerchantRuleAssignment, RuleExecutionLog  # noqa: F401

logger = logging.getLogger(__name__)


async def init_db():
    """Create the rule catalog, assignment and execution log tables."""
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    logger.info(f"Created tables: {', '.join(sorted(Base.metadata.tables))}")


if __name__ == "__main__":
    configure_logging()
    asyncio.run(init_db())
