"""Shared data models for rule engine."""

from dataclasses import dataclass, field
from decimal import Decimal
from enum import Enum
from typing import Any


class RuleType(str, Enum):
    PRICING = "pricing"
    STOCK_ALLOCATION = "stock_allocation"


class RuleCategory(str, Enum):
    MARKUP = "markup"
    DISCOUNT = "discount"
    RATIO = "ratio"
    LIMIT = "limit"


class SkipStage(str, Enum):
    CONDITION = "condition"
    EXPRESSION = "expression"
    RESULT = "result"


@dataclass(frozen=True)
class ExpressionValidation:
    valid: bool
    error: str | None = None


@dataclass(frozen=True)
class RuleCandidate:
    """Snapshot of one rule assignment taken for a single resolution pass."""

    rule_id: int
    code: str
    rule_type: RuleType
    category: RuleCategory
    expression: str
    condition_expression: str | None = None
    priority: int = 0
    config: dict[str, Any] | None = None
    is_active: bool = True
    assignment_id: int | None = None
    priority_override: int | None = None
    config_override: dict[str, Any] | None = None
    assignment_active: bool = True

    @property
    def effective_priority(self) -> int:
        if self.priority_override is not None:
            return self.priority_override
        return self.priority

    @property
    def effective_config(self) -> dict[str, Any]:
        return {**(self.config or {}), **(self.config_override or {})}

    @property
    def is_effective(self) -> bool:
        return self.is_active and self.assignment_active

    @classmethod
    def from_assignment(cls, assignment: Any) -> "RuleCandidate":
        """Build a candidate from a MerchantRuleAssignment row (rule loaded)."""
        rule = assignment.merchant_rule
        return cls(
            rule_id=rule.id,
            code=rule.code,
            rule_type=RuleType(rule.type),
            category=RuleCategory(rule.category),
            expression=rule.expression,
            condition_expression=rule.condition_expression,
            priority=rule.priority,
            config=rule.config,
            is_active=rule.is_active,
            assignment_id=assignment.id,
            priority_override=assignment.priority_override,
            config_override=assignment.config_override,
            assignment_active=assignment.is_active,
        )


@dataclass(frozen=True)
class EvaluationSkip:
    """Why a candidate rule did not apply."""

    stage: SkipStage
    reason: str

    def __str__(self) -> str:
        return f"{self.stage.value}: {self.reason}"


@dataclass
class TraceEntry:
    rule_code: str
    applied: bool
    value_before: Decimal
    value_after: Decimal
    priority: int = 0
    rule_id: int | None = None
    assignment_id: int | None = None
    expression_value: Any = None
    skip: EvaluationSkip | None = None
    execution_time_ms: float = 0.0

    @property
    def skip_reason(self) -> str | None:
        return str(self.skip) if self.skip else None

    def to_dict(self) -> dict[str, Any]:
        data = {
            "ruleCode": self.rule_code,
            "applied": self.applied,
            "valueBefore": str(self.value_before),
            "valueAfter": str(self.value_after),
        }
        if self.skip is not None:
            data["skipReason"] = self.skip_reason
        return data


@dataclass
class ResolutionResult:
    rule_type: RuleType
    input_value: Decimal
    value: Decimal
    trace: list[TraceEntry] = field(default_factory=list)

    @property
    def applied_rules(self) -> list[str]:
        return [entry.rule_code for entry in self.trace if entry.applied]

    @property
    def skipped_rules(self) -> list[str]:
        return [entry.rule_code for entry in self.trace if not entry.applied]


@dataclass
class RuleTestResult:
    success: bool
    result: Any = None
    error: str | None = None
    condition_met: bool = True
    execution_time_ms: float = 0.0
