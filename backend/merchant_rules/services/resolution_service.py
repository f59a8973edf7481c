"""Rule resolution service.

Loads the assignment snapshot for a merchant sales channel, runs it through
the rule engine and, when enabled, records per-rule execution logs.
"""

import logging
from decimal import ROUND_HALF_UP, Decimal, localcontext
from typing import Any

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from merchant_rules.core.config import settings
from merchant_rules.models.rule import RuleExecutionLog
from merchant_rules.repositories.rule_repository import (
    MerchantRuleAssignmentRepository,
    RuleExecutionLogRepository,
)
from merchant_rules.rule_engine.models import ResolutionResult, RuleCandidate, RuleType, SkipStage
from merchant_rules.rule_engine.rule_engine import RuleEngine, parse_rule_type

logger = logging.getLogger(__name__)

PRICE_QUANTUM = Decimal("0.01")


def round_price(value: Decimal) -> Decimal:
    """Round a price half-up to cents, whatever its magnitude."""
    with localcontext() as ctx:
        # quantize needs room for every integer digit plus the two cents
        ctx.prec = max(ctx.prec, value.adjusted() + 3)
        return value.quantize(PRICE_QUANTUM, rounding=ROUND_HALF_UP)


def _jsonable(value: Any) -> Any:
    """Make a context value storable in a JSON column."""
    if isinstance(value, Decimal):
        return str(value)
    if isinstance(value, dict):
        return {str(k): _jsonable(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [_jsonable(v) for v in value]
    return value


class RuleResolutionService:
    """Resolves a channel's rule chain for pricing and stock allocation."""

    def __init__(
        self,
        session: AsyncSession,
        engine: RuleEngine | None = None,
        log_executions: bool | None = None,
    ):
        """Initialize the resolution service.

        Args:
            session: SQLAlchemy async session
            engine: Rule engine (a default one is created if omitted)
            log_executions: Persist execution logs (defaults to settings)
        """
        if log_executions is None:
            log_executions = settings.RULE_EXECUTION_LOG_ENABLED
        self.session = session
        self.engine = engine or RuleEngine()
        self.assignments = MerchantRuleAssignmentRepository(session)
        self.logs = RuleExecutionLogRepository(session)
        self.log_executions = log_executions

    async def load_candidates(
        self, merchant_sales_channel_id: str, rule_type: RuleType
    ) -> list[RuleCandidate]:
        """Snapshot the channel's assignments of one type as engine candidates."""
        assignments = await self.assignments.list_by_channel_and_type(
            merchant_sales_channel_id, rule_type.value
        )
        return [RuleCandidate.from_assignment(a) for a in assignments]

    async def resolve(
        self,
        merchant_sales_channel_id: str,
        rule_type: RuleType | str,
        context: dict[str, Any],
        base_value: Any = None,
        context_id: str | None = None,
    ) -> ResolutionResult:
        """Resolve the active rule chain for a channel.

        Args:
            merchant_sales_channel_id: Merchant sales channel enrollment
            rule_type: pricing or stock_allocation
            context: Runtime variables for expressions
            base_value: Input value; falls back to the context
            context_id: Caller reference stored on execution logs

        Returns:
            ResolutionResult with the final value and per-rule trace

        Raises:
            ValidationError: If the rule type is unknown or no input value is available
        """
        rule_type = parse_rule_type(rule_type)
        candidates = await self.load_candidates(merchant_sales_channel_id, rule_type)
        result = self.engine.resolve(candidates, rule_type, context, base_value)

        if self.log_executions and result.trace:
            await self._record(result, context, context_id)
        return result

    async def calculate_price(
        self,
        merchant_sales_channel_id: str,
        context: dict[str, Any],
        base_cost: Any,
        context_id: str | None = None,
    ) -> Decimal:
        """Compute a channel price from a base cost.

        The result is never negative and is rounded half-up to cents.
        """
        context = {**context, "cost": base_cost}
        result = await self.resolve(
            merchant_sales_channel_id, RuleType.PRICING, context, base_cost, context_id
        )
        if not result.trace:
            return round_price(result.input_value)
        return round_price(max(Decimal(0), result.value))

    async def calculate_stock_allocation(
        self,
        merchant_sales_channel_id: str,
        context: dict[str, Any],
        available_stock: int,
        context_id: str | None = None,
    ) -> int:
        """Compute how much stock to expose to a channel.

        The result is truncated to a whole quantity within [0, available_stock].
        """
        context = {**context, "availableStock": available_stock}
        result = await self.resolve(
            merchant_sales_channel_id,
            RuleType.STOCK_ALLOCATION,
            context,
            available_stock,
            context_id,
        )
        if not result.trace:
            return available_stock
        return max(0, min(int(result.value), available_stock))

    async def _record(
        self,
        result: ResolutionResult,
        context: dict[str, Any],
        context_id: str | None,
    ) -> None:
        input_data = _jsonable({k: v for k, v in context.items() if k != "config"})
        logs = [
            RuleExecutionLog(
                rule_id=entry.rule_id,
                rule_code=entry.rule_code,
                context_type=result.rule_type.value,
                context_id=context_id,
                input_data=input_data,
                output_value=str(entry.value_after) if entry.applied else None,
                execution_time_ms=int(entry.execution_time_ms),
                success=entry.skip is None or entry.skip.stage == SkipStage.CONDITION,
                error_message=entry.skip_reason,
            )
            for entry in result.trace
        ]
        try:
            await self.logs.add_many(logs)
        except SQLAlchemyError as e:
            await self.session.rollback()
            logger.error(f"Failed to save rule execution logs: {e}")
