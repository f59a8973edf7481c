"""Built-in functions for expression evaluation."""

import math
from decimal import Decimal, ROUND_FLOOR, ROUND_CEILING, ROUND_HALF_UP
from typing import Any

from merchant_rules.rule_engine.errors import ExpressionEvaluationError


def to_decimal(value: Any) -> Decimal:
    """Coerce a numeric value to Decimal.

    Raises:
        ExpressionEvaluationError: If the value is not a number
    """
    if isinstance(value, bool) or value is None:
        raise ExpressionEvaluationError(f"Expected a number, got {value!r}")
    if isinstance(value, Decimal):
        return value
    if isinstance(value, int):
        return Decimal(value)
    if isinstance(value, float):
        if not math.isfinite(value):
            raise ExpressionEvaluationError(f"Expected a finite number, got {value!r}")
        return Decimal(str(value))
    raise ExpressionEvaluationError(f"Expected a number, got {type(value).__name__}")


def is_number(value: Any) -> bool:
    return isinstance(value, (int, float, Decimal)) and not isinstance(value, bool)


def _to_str(value: Any) -> str:
    return "" if value is None else str(value)


class BuiltinFunctions:
    """Built-in functions available in rule expressions."""

    @staticmethod
    def markup(price: Any, rate: Any) -> Decimal:
        """Apply a percentage markup: markup(100, 0.15) = 115."""
        return to_decimal(price) * (1 + to_decimal(rate))

    @staticmethod
    def discount(price: Any, rate: Any) -> Decimal:
        """Apply a percentage discount: discount(100, 0.1) = 90."""
        return to_decimal(price) * (1 - to_decimal(rate))

    @staticmethod
    def add_fee(price: Any, rate: Any, fixed: Any = 0) -> Decimal:
        """Add a percentage fee plus a fixed amount: addFee(100, 0.05, 2) = 107."""
        return to_decimal(price) * (1 + to_decimal(rate)) + to_decimal(fixed)

    @staticmethod
    def ratio(value: Any, rate: Any) -> Decimal:
        """Scale and floor: ratio(100, 0.8) = 80."""
        return (to_decimal(value) * to_decimal(rate)).to_integral_value(rounding=ROUND_FLOOR)

    @staticmethod
    def limit(value: Any, maximum: Any) -> Decimal:
        """Cap at a maximum: limit(150, 100) = 100."""
        return min(to_decimal(value), to_decimal(maximum))

    @staticmethod
    def tiered_rate(value: Any, tiers: Any) -> Decimal:
        """Pick the rate of the highest threshold not above value.

        tiers is a list of [threshold, rate] pairs in any order:
        tieredRate(8000, [[10000, 0.03], [5000, 0.04], [0, 0.05]]) = 0.04.
        Falls back to the lowest threshold's rate when value is below all.
        """
        if not isinstance(tiers, list) or not tiers:
            raise ExpressionEvaluationError("tieredRate expects a non-empty list of [threshold, rate] pairs")
        pairs = []
        for tier in tiers:
            if not isinstance(tier, list) or len(tier) != 2:
                raise ExpressionEvaluationError("tieredRate tiers must be [threshold, rate] pairs")
            pairs.append((to_decimal(tier[0]), to_decimal(tier[1])))

        pairs.sort(key=lambda p: p[0], reverse=True)
        amount = to_decimal(value)
        for threshold, rate in pairs:
            if amount >= threshold:
                return rate
        return pairs[-1][1]

    @staticmethod
    def round(value: Any, precision: Any = 2) -> Decimal:
        """Round half up to precision decimal places."""
        places = int(to_decimal(precision))
        return to_decimal(value).quantize(Decimal(1).scaleb(-places), rounding=ROUND_HALF_UP)

    @staticmethod
    def floor(value: Any) -> Decimal:
        return to_decimal(value).to_integral_value(rounding=ROUND_FLOOR)

    @staticmethod
    def ceil(value: Any) -> Decimal:
        return to_decimal(value).to_integral_value(rounding=ROUND_CEILING)

    @staticmethod
    def min(*args: Any) -> Decimal:
        if not args:
            raise ExpressionEvaluationError("min expects at least one argument")
        return min(to_decimal(a) for a in args)

    @staticmethod
    def max(*args: Any) -> Decimal:
        if not args:
            raise ExpressionEvaluationError("max expects at least one argument")
        return max(to_decimal(a) for a in args)

    @staticmethod
    def abs(value: Any) -> Decimal:
        return abs(to_decimal(value))

    @staticmethod
    def in_list(value: Any, items: Any) -> bool:
        """inList('nike', ['nike', 'adidas']) = true."""
        if not isinstance(items, list):
            raise ExpressionEvaluationError("inList expects a list")
        return value in items

    @staticmethod
    def starts_with(text: Any, prefix: Any) -> bool:
        return _to_str(text).startswith(_to_str(prefix))

    @staticmethod
    def ends_with(text: Any, suffix: Any) -> bool:
        return _to_str(text).endswith(_to_str(suffix))

    @staticmethod
    def contains(text: Any, needle: Any) -> bool:
        return _to_str(needle) in _to_str(text)


# Expression name -> BuiltinFunctions attribute
FUNCTION_NAMES = {
    "markup": "markup",
    "discount": "discount",
    "addFee": "add_fee",
    "ratio": "ratio",
    "limit": "limit",
    "tieredRate": "tiered_rate",
    "round": "round",
    "floor": "floor",
    "ceil": "ceil",
    "min": "min",
    "max": "max",
    "abs": "abs",
    "inList": "in_list",
    "startsWith": "starts_with",
    "endsWith": "ends_with",
    "contains": "contains",
}

# `config` is resolved by the evaluator since it reads the evaluation context.
CONTEXT_FUNCTIONS = {"config"}

FUNCTION_REFERENCE: dict[str, dict[str, str]] = {
    "markup": {"signature": "markup(price, rate)", "description": "Apply markup to price", "example": "markup(100, 0.15) = 115"},
    "discount": {"signature": "discount(price, rate)", "description": "Apply discount to price", "example": "discount(100, 0.1) = 90"},
    "addFee": {"signature": "addFee(price, rate, fixed = 0)", "description": "Add fee (percentage + fixed)", "example": "addFee(100, 0.05, 2) = 107"},
    "ratio": {"signature": "ratio(value, rate)", "description": "Apply ratio (floor)", "example": "ratio(100, 0.8) = 80"},
    "limit": {"signature": "limit(value, max)", "description": "Limit to maximum value", "example": "limit(150, 100) = 100"},
    "tieredRate": {"signature": "tieredRate(value, tiers)", "description": "Get tiered rate", "example": "tieredRate(8000, [[10000, 0.03], [5000, 0.04], [0, 0.05]]) = 0.04"},
    "round": {"signature": "round(value, precision = 2)", "description": "Round to precision", "example": "round(3.1415, 2) = 3.14"},
    "floor": {"signature": "floor(value)", "description": "Round down", "example": "floor(3.9) = 3"},
    "ceil": {"signature": "ceil(value)", "description": "Round up", "example": "ceil(3.1) = 4"},
    "min": {"signature": "min(a, b)", "description": "Get minimum value", "example": "min(5, 3) = 3"},
    "max": {"signature": "max(a, b)", "description": "Get maximum value", "example": "max(5, 3) = 5"},
    "abs": {"signature": "abs(value)", "description": "Get absolute value", "example": "abs(-5) = 5"},
    "inList": {"signature": "inList(value, list)", "description": "Check if value in list", "example": 'inList("nike", ["nike", "adidas"]) = true'},
    "startsWith": {"signature": "startsWith(str, prefix)", "description": "Check string prefix", "example": 'startsWith("nike-air", "nike") = true'},
    "endsWith": {"signature": "endsWith(str, suffix)", "description": "Check string suffix", "example": 'endsWith("nike-air", "air") = true'},
    "contains": {"signature": "contains(str, needle)", "description": "Check string contains", "example": 'contains("nike-air-max", "air") = true'},
    "config": {"signature": "config(key, default = null)", "description": "Get config value", "example": 'config("rate", 0.1)'},
}


def evaluate_function(name: str, args: list[Any]) -> Any:
    """Evaluate a built-in function call.

    Args:
        name: Function name as written in the expression
        args: Evaluated arguments

    Returns:
        Function result

    Raises:
        ExpressionEvaluationError: If the function is unknown or rejects its arguments
    """
    attr = FUNCTION_NAMES.get(name)
    if attr is None:
        raise ExpressionEvaluationError(f"Unknown function: {name}")
    func = getattr(BuiltinFunctions, attr)
    try:
        return func(*args)
    except TypeError as e:
        raise ExpressionEvaluationError(f"Invalid arguments for {name}(): {e}") from e
