"""Tests for expression evaluator."""

from decimal import Decimal

import pytest
from merchant_rules.rule_engine.context import EvaluationContext
from merchant_rules.rule_engine.errors import EvaluationTimeout, ExpressionEvaluationError
from merchant_rules.rule_engine.evaluator import ExpressionEvaluator
from merchant_rules.rule_engine.parser import ExpressionParser

_parser = ExpressionParser()


def evaluate(expression, context=None, config=None, value=None):
    ctx = EvaluationContext.build(context or {}, config, value=value)
    return ExpressionEvaluator(ctx).evaluate(_parser.parse(expression))


class TestArithmetic:
    """Test arithmetic operators."""

    def test_basic_operators(self):
        """Test the five arithmetic operators and unary minus."""
        assert evaluate("cost * 1.1", {"cost": 100}) == Decimal("110")
        assert evaluate("10 / 4") == Decimal("2.5")
        assert evaluate("10 % 3") == Decimal("1")
        assert evaluate("2 ** 3") == Decimal("8")
        assert evaluate("-cost + 1", {"cost": 5}) == Decimal("-4")

    def test_exact_decimal(self):
        """Test that decimal arithmetic has no float drift."""
        assert evaluate("0.1 + 0.2 == 0.3") is True
        assert evaluate("value * 1.1", value=Decimal("105")) == Decimal("115.5")

    def test_float_context_values(self):
        """Test float context values convert through str."""
        assert evaluate("price * 2", {"price": 19.99}) == Decimal("39.98")

    def test_division_by_zero(self):
        """Test division by zero is an evaluation error."""
        with pytest.raises(ExpressionEvaluationError, match="Arithmetic error"):
            evaluate("1 / 0")

    def test_arithmetic_on_string(self):
        """Test arithmetic on a string fails."""
        with pytest.raises(ExpressionEvaluationError):
            evaluate("'a' + 1")

    def test_arithmetic_on_bool(self):
        """Test arithmetic on a boolean fails."""
        with pytest.raises(ExpressionEvaluationError):
            evaluate("true * 2")

    def test_concat(self):
        """Test ~ concatenates and treats null as empty."""
        assert evaluate("'sku-' ~ id", {"id": 42}) == "sku-42"
        assert evaluate("'a' ~ null") == "a"


class TestComparisonAndLogic:
    """Test comparison and boolean operators."""

    def test_comparisons(self):
        """Test comparison operators."""
        ctx = {"cost": 100, "channelCode": "tmall"}
        assert evaluate("cost > 50", ctx) is True
        assert evaluate("cost >= 100", ctx) is True
        assert evaluate("cost < 100", ctx) is False
        assert evaluate("cost == 100.0", ctx) is True
        assert evaluate("channelCode == 'tmall'", ctx) is True
        assert evaluate("channelCode != 'jd'", ctx) is True
        assert evaluate("'a' < 'b'") is True

    def test_mixed_ordering_fails(self):
        """Test ordering a string against a number fails."""
        with pytest.raises(ExpressionEvaluationError, match="Cannot compare"):
            evaluate("'a' < 1")

    def test_membership(self):
        """Test in and not in on lists and strings."""
        ctx = {"channelCode": "jd", "name": "nike-air"}
        assert evaluate("channelCode in ['tmall', 'jd']", ctx) is True
        assert evaluate("'air' in name", ctx) is True
        assert evaluate("3 not in [1, 2]") is True

    def test_membership_needs_container(self):
        """Test in needs a container on the right."""
        with pytest.raises(ExpressionEvaluationError):
            evaluate("1 in 2")

    def test_logic(self):
        """Test word and symbol logic operators."""
        ctx = {"cost": 100, "isVip": False}
        assert evaluate("cost > 50 and not isVip", ctx) is True
        assert evaluate("isVip || cost > 50", ctx) is True
        assert evaluate("isVip && cost > 50", ctx) is False
        assert evaluate("!isVip", ctx) is True

    def test_short_circuit(self):
        """Test the right side is not evaluated when the left decides."""
        assert evaluate("false and missing > 1") is False
        assert evaluate("true or missing > 1") is True

    def test_ternary(self):
        """Test the conditional operator."""
        assert evaluate("cost > 100 ? 1 : 2", {"cost": 50}) == Decimal("2")
        assert evaluate("cost > 100 ? 1 : 2", {"cost": 150}) == Decimal("1")


class TestVariables:
    """Test variable, member and config lookups."""

    def test_undefined_variable(self):
        """Test an unknown name is an evaluation error."""
        with pytest.raises(ExpressionEvaluationError, match="'missing' is not defined"):
            evaluate("missing + 1")

    def test_member_and_index(self):
        """Test member and index access."""
        ctx = {"sku": {"brand": "nike"}, "tiers": [10, 20]}
        assert evaluate("sku.brand == 'nike'", ctx) is True
        assert evaluate("sku['brand']", ctx) == "nike"
        assert evaluate("tiers[1]", ctx) == Decimal("20")

    def test_member_errors(self):
        """Test missing keys and bad indexes fail."""
        ctx = {"sku": {"brand": "nike"}, "tiers": [10, 20]}
        with pytest.raises(ExpressionEvaluationError):
            evaluate("sku.size", ctx)
        with pytest.raises(ExpressionEvaluationError):
            evaluate("tiers[5]", ctx)
        with pytest.raises(ExpressionEvaluationError):
            evaluate("tiers[0.5]", ctx)
        with pytest.raises(ExpressionEvaluationError, match="Cannot index"):
            evaluate("5[0]")

    def test_config_access(self):
        """Test config keys via name, member access and config()."""
        config = {"rate": 0.2}
        assert evaluate("rate", config=config) == Decimal("0.2")
        assert evaluate("config.rate", config=config) == Decimal("0.2")
        assert evaluate("config('rate')", config=config) == Decimal("0.2")
        assert evaluate("config('missing', 5)", config=config) == Decimal("5")
        assert evaluate("config('missing')", config=config) is None

    def test_context_wins_over_config(self):
        """Test a context key shadows a config key."""
        assert evaluate("rate", {"rate": 0.5}, {"rate": 0.2}) == Decimal("0.5")

    def test_value_is_reserved(self):
        """Test the chain value cannot be overridden by the context."""
        assert evaluate("value", {"value": 1}, value=Decimal("7")) == Decimal("7")

    def test_unknown_function(self):
        """Test an unknown function name fails."""
        with pytest.raises(ExpressionEvaluationError, match="Unknown function: foo"):
            evaluate("foo(1)")


class TestDeadline:
    """Test the evaluation deadline."""

    def test_expired_deadline(self):
        """Test an expired deadline raises EvaluationTimeout."""
        ctx = EvaluationContext.build({"cost": 1}, timeout=-1.0)
        with pytest.raises(EvaluationTimeout, match="timed out"):
            ExpressionEvaluator(ctx).evaluate(_parser.parse("cost + 1"))

    def test_no_deadline(self):
        """Test evaluation without a deadline."""
        ctx = EvaluationContext.build({"cost": 1})
        assert ctx.deadline is None
        assert ExpressionEvaluator(ctx).evaluate(_parser.parse("cost + 1")) == Decimal("2")

    def test_timeout_is_evaluation_error(self):
        """Test EvaluationTimeout is an ExpressionEvaluationError."""
        assert issubclass(EvaluationTimeout, ExpressionEvaluationError)
