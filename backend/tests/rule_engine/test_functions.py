"""Tests for built-in expression functions."""

from decimal import Decimal

import pytest
from merchant_rules.rule_engine.errors import ExpressionEvaluationError
from merchant_rules.rule_engine.functions import (
    FUNCTION_NAMES,
    FUNCTION_REFERENCE,
    BuiltinFunctions,
    evaluate_function,
    to_decimal,
)

TIERS = [[10000, Decimal("0.03")], [5000, Decimal("0.04")], [0, Decimal("0.05")]]


def test_price_functions():
    """Test markup, discount and addFee."""
    assert BuiltinFunctions.markup(100, Decimal("0.15")) == Decimal("115")
    assert BuiltinFunctions.discount(100, Decimal("0.1")) == Decimal("90")
    assert BuiltinFunctions.add_fee(100, Decimal("0.05"), 2) == Decimal("107")
    assert BuiltinFunctions.add_fee(100, Decimal("0.05")) == Decimal("105")


def test_ratio_floors():
    """Test ratio floors to a whole quantity."""
    assert BuiltinFunctions.ratio(100, Decimal("0.8")) == Decimal("80")
    assert BuiltinFunctions.ratio(7, Decimal("0.5")) == Decimal("3")


def test_limit():
    """Test limit caps a value."""
    assert BuiltinFunctions.limit(150, 100) == Decimal("100")
    assert BuiltinFunctions.limit(50, 100) == Decimal("50")


def test_tiered_rate():
    """Test the highest threshold not above the value wins."""
    assert BuiltinFunctions.tiered_rate(8000, TIERS) == Decimal("0.04")
    assert BuiltinFunctions.tiered_rate(20000, TIERS) == Decimal("0.03")
    assert BuiltinFunctions.tiered_rate(5000, TIERS) == Decimal("0.04")
    assert BuiltinFunctions.tiered_rate(-5, TIERS) == Decimal("0.05")


def test_tiered_rate_invalid():
    """Test malformed tiers raise an evaluation error."""
    with pytest.raises(ExpressionEvaluationError):
        BuiltinFunctions.tiered_rate(1, [])
    with pytest.raises(ExpressionEvaluationError):
        BuiltinFunctions.tiered_rate(1, [[1, 2, 3]])


def test_rounding():
    """Test round is half-up and floor/ceil go toward -inf/+inf."""
    assert BuiltinFunctions.round(Decimal("3.145"), 2) == Decimal("3.15")
    assert BuiltinFunctions.round(Decimal("3.14159")) == Decimal("3.14")
    assert BuiltinFunctions.round(Decimal("2.5"), 0) == Decimal("3")
    assert BuiltinFunctions.floor(Decimal("3.9")) == Decimal("3")
    assert BuiltinFunctions.floor(Decimal("-1.5")) == Decimal("-2")
    assert BuiltinFunctions.ceil(Decimal("3.1")) == Decimal("4")


def test_min_max_abs():
    """Test min, max and abs."""
    assert BuiltinFunctions.min(5, 3, 9) == Decimal("3")
    assert BuiltinFunctions.max(5, 3) == Decimal("5")
    assert BuiltinFunctions.abs(-5) == Decimal("5")
    with pytest.raises(ExpressionEvaluationError):
        BuiltinFunctions.min()


def test_string_functions():
    """Test inList, startsWith, endsWith and contains."""
    assert BuiltinFunctions.in_list("nike", ["nike", "adidas"]) is True
    assert BuiltinFunctions.in_list("puma", ["nike", "adidas"]) is False
    assert BuiltinFunctions.starts_with("nike-air", "nike") is True
    assert BuiltinFunctions.ends_with("nike-air", "air") is True
    assert BuiltinFunctions.contains("nike-air-max", "air") is True
    assert BuiltinFunctions.contains(None, "air") is False


def test_in_list_requires_list():
    """Test inList needs a list."""
    with pytest.raises(ExpressionEvaluationError):
        BuiltinFunctions.in_list("nike", "nike")


def test_evaluate_function_by_expression_name():
    """Test dispatch by camelCase expression name."""
    assert evaluate_function("addFee", [100, Decimal("0.05"), 2]) == Decimal("107")
    assert evaluate_function("inList", ["jd", ["jd"]]) is True


def test_evaluate_function_errors():
    """Test unknown names and bad arguments."""
    with pytest.raises(ExpressionEvaluationError, match="Unknown function"):
        evaluate_function("eval", ["1"])
    with pytest.raises(ExpressionEvaluationError, match="Invalid arguments for markup"):
        evaluate_function("markup", [1])


def test_reference_covers_every_function():
    """Test every function has reference data."""
    assert set(FUNCTION_NAMES) | {"config"} == set(FUNCTION_REFERENCE)


def test_to_decimal():
    """Test numeric coercion and its rejections."""
    assert to_decimal(1.1) == Decimal("1.1")
    assert to_decimal(3) == Decimal("3")
    for bad in (True, None, "1", float("nan"), float("inf")):
        with pytest.raises(ExpressionEvaluationError):
            to_decimal(bad)
