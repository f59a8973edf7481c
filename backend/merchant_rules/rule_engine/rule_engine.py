"""Rule engine: ordering and chained evaluation of merchant rules."""

import logging
import math
import time
from decimal import Decimal
from typing import Any, Iterable

from merchant_rules.rule_engine.context import EvaluationContext
from merchant_rules.rule_engine.errors import (
    ExpressionEvaluationError,
    ExpressionSyntaxError,
    ValidationError,
)
from merchant_rules.rule_engine.evaluator import ExpressionEvaluator
from merchant_rules.rule_engine.functions import FUNCTION_REFERENCE, is_number, to_decimal
from merchant_rules.rule_engine.models import (
    EvaluationSkip,
    ExpressionValidation,
    ResolutionResult,
    RuleCandidate,
    RuleCategory,
    RuleTestResult,
    RuleType,
    SkipStage,
    TraceEntry,
)
from merchant_rules.rule_engine.parser import ExpressionParser, get_parser

logger = logging.getLogger(__name__)

# Context variable holding the input value when no explicit base is given
BASE_VARIABLES = {
    RuleType.PRICING: "cost",
    RuleType.STOCK_ALLOCATION: "availableStock",
}

VARIABLES: dict[RuleType, dict[str, dict[str, str]]] = {
    RuleType.PRICING: {
        "value": {"type": "float", "description": "Current price (chain)"},
        "cost": {"type": "float", "description": "Cost price"},
        "referencePrice": {"type": "float", "description": "SKU reference price"},
        "originalPrice": {"type": "float", "description": "SKU original price"},
        "channelCode": {"type": "string", "description": "Channel code"},
        "config": {"type": "array", "description": "Rule config"},
    },
    RuleType.STOCK_ALLOCATION: {
        "value": {"type": "int", "description": "Current stock (chain)"},
        "availableStock": {"type": "int", "description": "Available stock"},
        "totalStock": {"type": "int", "description": "Total stock on hand"},
        "reservedStock": {"type": "int", "description": "Reserved stock"},
        "channelCode": {"type": "string", "description": "Channel code"},
        "config": {"type": "array", "description": "Rule config"},
    },
}

TEST_CONTEXTS: dict[RuleType, dict[str, Any]] = {
    RuleType.PRICING: {"cost": 100, "referencePrice": 150, "channelCode": "test"},
    RuleType.STOCK_ALLOCATION: {"availableStock": 100, "totalStock": 120, "channelCode": "test"},
}


def parse_rule_type(rule_type: RuleType | str) -> RuleType:
    try:
        return RuleType(rule_type)
    except ValueError:
        raise ValidationError(f"Invalid rule type: {rule_type}") from None


def _is_finite(value: int | float | Decimal) -> bool:
    if isinstance(value, Decimal):
        return value.is_finite()
    return isinstance(value, int) or math.isfinite(value)


def order_candidates(candidates: Iterable[RuleCandidate], rule_type: RuleType) -> list[RuleCandidate]:
    """Filter to effective candidates of one type, highest priority first.

    Ties on effective priority are broken by rule code, ascending.
    """
    effective = [
        c for c in candidates if c.rule_type == rule_type and c.is_effective
    ]
    return sorted(effective, key=lambda c: (-c.effective_priority, c.code))


def apply_category(category: RuleCategory, base: Decimal, result: Any) -> Decimal:
    """Combine a rule's expression result with the current chain value.

    Raises:
        ExpressionEvaluationError: If the result cannot be applied for the category
    """
    try:
        return _combine(category, base, result)
    except ArithmeticError as e:
        # Decimal overflow or an invalid operation on the chain value
        raise ExpressionEvaluationError(f"Arithmetic error: {type(e).__name__}") from e


def _combine(category: RuleCategory, base: Decimal, result: Any) -> Decimal:
    if category == RuleCategory.LIMIT:
        return _apply_limit(base, result)

    if not is_number(result):
        raise ExpressionEvaluationError(
            f"Expression result must be a number, got {type(result).__name__}"
        )
    amount = to_decimal(result)

    if category == RuleCategory.MARKUP:
        return base + amount
    if category == RuleCategory.DISCOUNT:
        return base - amount
    if category == RuleCategory.RATIO:
        return base * amount
    raise ExpressionEvaluationError(f"Unknown rule category: {category}")


def _apply_limit(base: Decimal, result: Any) -> Decimal:
    """Clamp to a [min, max] range, or cap at a single maximum."""
    if is_number(result):
        return min(base, to_decimal(result))

    if isinstance(result, dict):
        lower, upper = result.get("min"), result.get("max")
    elif isinstance(result, list) and len(result) == 2:
        lower, upper = result
    else:
        raise ExpressionEvaluationError(
            "Limit expression must yield a number, [min, max] or {min, max}"
        )

    lower = to_decimal(lower) if lower is not None else None
    upper = to_decimal(upper) if upper is not None else None
    if lower is not None and upper is not None and lower > upper:
        raise ExpressionEvaluationError(f"Limit range is empty: min {lower} > max {upper}")

    value = base
    if lower is not None:
        value = max(value, lower)
    if upper is not None:
        value = min(value, upper)
    return value


class RuleEngine:
    """Resolves an ordered chain of rules into a single value.

    The engine is pure: it reads a snapshot of candidate assignments and a
    runtime context and never writes anywhere. Each condition and expression
    evaluation runs under its own deadline.
    """

    def __init__(
        self,
        parser: ExpressionParser | None = None,
        timeout: float | None = None,
    ):
        """Initialize the rule engine.

        Args:
            parser: Expression parser (defaults to the shared instance)
            timeout: Per-evaluation deadline in seconds (defaults to settings)
        """
        if timeout is None:
            from merchant_rules.core.config import settings

            timeout = settings.evaluation_timeout_seconds
        self.parser = parser or get_parser()
        self.timeout = timeout

    def validate_expression(self, expression: str) -> ExpressionValidation:
        """Check that an expression parses. Does not evaluate it."""
        return self.parser.validate(expression)

    def evaluate(
        self,
        expression: str,
        context: dict[str, Any],
        config: dict[str, Any] | None = None,
        value: Any = None,
    ) -> Any:
        """Parse and evaluate one expression.

        Raises:
            ExpressionSyntaxError: If the expression does not parse
            ExpressionEvaluationError: If evaluation fails or times out
        """
        ast = self.parser.parse(expression)
        ctx = EvaluationContext.build(context, config, value=value, timeout=self.timeout)
        return ExpressionEvaluator(ctx).evaluate(ast)

    def resolve_base_value(
        self,
        rule_type: RuleType,
        context: dict[str, Any],
        base_value: Any = None,
    ) -> Decimal:
        """Pick the chain's input value.

        Order: explicit base_value, context["baseValue"], then the type's
        default input variable.

        Raises:
            ValidationError: If no finite numeric input value is available
        """
        if base_value is None:
            base_value = context.get("baseValue")
        if base_value is None:
            base_value = context.get(BASE_VARIABLES[rule_type])
        if base_value is None:
            raise ValidationError(
                f"No input value: pass base_value or set '{BASE_VARIABLES[rule_type]}' in the context"
            )
        if not is_number(base_value):
            raise ValidationError(f"Input value must be a number, got {base_value!r}")
        if not _is_finite(base_value):
            raise ValidationError(f"Input value must be a finite number, got {base_value!r}")
        return to_decimal(base_value)

    def resolve(
        self,
        candidates: Iterable[RuleCandidate],
        rule_type: RuleType | str,
        context: dict[str, Any],
        base_value: Any = None,
    ) -> ResolutionResult:
        """Run the priority-ordered rule chain.

        Args:
            candidates: Assignment snapshots for one merchant sales channel
            rule_type: Only candidates of this type are considered
            context: Runtime variables available to expressions
            base_value: Input value (see resolve_base_value)

        Returns:
            Final value and the per-rule trace. With no candidates the input
            value is returned unchanged with an empty trace.
        """
        rule_type = parse_rule_type(rule_type)
        initial = self.resolve_base_value(rule_type, context, base_value)
        ordered = order_candidates(candidates, rule_type)

        value = initial
        trace: list[TraceEntry] = []
        for candidate in ordered:
            entry = self._apply_candidate(candidate, context, value)
            trace.append(entry)
            value = entry.value_after

        if ordered:
            logger.debug(
                f"Resolved {rule_type.value} chain: {initial} -> {value} "
                f"(applied {sum(1 for e in trace if e.applied)}/{len(trace)})"
            )
        return ResolutionResult(rule_type=rule_type, input_value=initial, value=value, trace=trace)

    def _apply_candidate(
        self, candidate: RuleCandidate, context: dict[str, Any], value: Decimal
    ) -> TraceEntry:
        """Evaluate one candidate against the current chain value."""
        entry = TraceEntry(
            rule_code=candidate.code,
            applied=False,
            value_before=value,
            value_after=value,
            priority=candidate.effective_priority,
            rule_id=candidate.rule_id,
            assignment_id=candidate.assignment_id,
        )
        config = candidate.effective_config
        started = time.perf_counter()

        try:
            if candidate.condition_expression:
                stage = SkipStage.CONDITION
                if not self.evaluate(candidate.condition_expression, context, config, value):
                    entry.skip = EvaluationSkip(stage, "condition not met")
                    logger.debug(f"Rule {candidate.code} skipped: condition not met")
                    return entry

            stage = SkipStage.EXPRESSION
            result = self.evaluate(candidate.expression, context, config, value)
            entry.expression_value = result

            stage = SkipStage.RESULT
            entry.value_after = apply_category(candidate.category, value, result)
            entry.applied = True
        except (ExpressionSyntaxError, ExpressionEvaluationError) as e:
            entry.skip = EvaluationSkip(stage, str(e))
            entry.value_after = value
            logger.warning(
                f"Rule {candidate.code} skipped at {stage.value}: {e}"
            )
        finally:
            entry.execution_time_ms = (time.perf_counter() - started) * 1000

        return entry

    def test_rule(
        self,
        expression: str,
        condition_expression: str | None,
        rule_type: RuleType | str,
        category: RuleCategory | str | None = None,
        test_context: dict[str, Any] | None = None,
        base_value: Any = None,
        config: dict[str, Any] | None = None,
    ) -> RuleTestResult:
        """Evaluate an ad-hoc rule against a test context.

        The test context is merged over the type's defaults. With a category
        the result is the chained value; without one it is the raw
        expression result.
        """
        rule_type = parse_rule_type(rule_type)
        context = {**TEST_CONTEXTS[rule_type], **(test_context or {})}
        try:
            initial = self.resolve_base_value(rule_type, context, base_value)
        except ValidationError as e:
            return RuleTestResult(success=False, error=str(e), condition_met=False)

        started = time.perf_counter()

        def elapsed() -> float:
            return (time.perf_counter() - started) * 1000

        if condition_expression:
            try:
                met = self.evaluate(condition_expression, context, config, initial)
            except (ExpressionSyntaxError, ExpressionEvaluationError) as e:
                return RuleTestResult(
                    success=False,
                    error=f"Condition expression error: {e}",
                    condition_met=False,
                    execution_time_ms=elapsed(),
                )
            if not met:
                return RuleTestResult(
                    success=True, result=initial, condition_met=False, execution_time_ms=elapsed()
                )

        try:
            result = self.evaluate(expression, context, config, initial)
            if category is not None:
                result = apply_category(RuleCategory(category), initial, result)
        except (ExpressionSyntaxError, ExpressionEvaluationError) as e:
            return RuleTestResult(success=False, error=str(e), execution_time_ms=elapsed())
        except ValueError:
            return RuleTestResult(success=False, error=f"Invalid rule category: {category}")

        return RuleTestResult(success=True, result=result, execution_time_ms=elapsed())

    def available_variables(self, rule_type: RuleType | str) -> dict[str, dict[str, str]]:
        return dict(VARIABLES[parse_rule_type(rule_type)])

    def available_functions(self) -> dict[str, dict[str, str]]:
        return dict(FUNCTION_REFERENCE)
