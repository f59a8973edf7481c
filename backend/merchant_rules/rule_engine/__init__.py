"""Rule engine package for merchant pricing and stock-allocation rules.

This package provides a small, safe formula language and the engine that
chains merchant rules into a single value. It supports:

- Expression parsing with a Lark grammar (no eval)
- Exact decimal evaluation with built-in functions and a per-call deadline
- Priority ordering with per-assignment overrides
- Category-aware chaining (markup, discount, ratio, limit) with a trace
"""

# Parser
from merchant_rules.rule_engine.parser import ExpressionParser, get_parser

# Rule engine
from merchant_rules.rule_engine.rule_engine import RuleEngine, apply_category, order_candidates

# Evaluation context and expression evaluator
from merchant_rules.rule_engine.context import EvaluationContext
from merchant_rules.rule_engine.evaluator import ExpressionEvaluator, evaluate_expression

# Built-in functions
from merchant_rules.rule_engine.functions import BuiltinFunctions, evaluate_function

# Errors
from merchant_rules.rule_engine.errors import (
    ConflictError,
    EvaluationTimeout,
    ExpressionEvaluationError,
    ExpressionSyntaxError,
    NotFoundError,
    RuleEngineError,
    ValidationError,
)

# Data models
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

__all__ = [
    # Parser
    "ExpressionParser",
    "get_parser",
    # Engine
    "RuleEngine",
    "apply_category",
    "order_candidates",
    # Evaluation
    "EvaluationContext",
    "ExpressionEvaluator",
    "evaluate_expression",
    "BuiltinFunctions",
    "evaluate_function",
    # Errors
    "ConflictError",
    "EvaluationTimeout",
    "ExpressionEvaluationError",
    "ExpressionSyntaxError",
    "NotFoundError",
    "RuleEngineError",
    "ValidationError",
    # Models
    "EvaluationSkip",
    "ExpressionValidation",
    "ResolutionResult",
    "RuleCandidate",
    "RuleCategory",
    "RuleTestResult",
    "RuleType",
    "SkipStage",
    "TraceEntry",
]
