"""Expression evaluator for rule expressions and conditions."""

import operator
from decimal import Decimal
from typing import Any

from merchant_rules.rule_engine.context import EvaluationContext
from merchant_rules.rule_engine.errors import ExpressionEvaluationError
from merchant_rules.rule_engine.functions import (
    CONTEXT_FUNCTIONS,
    evaluate_function,
    is_number,
    to_decimal,
)

_ARITHMETIC = {
    "+": operator.add,
    "-": operator.sub,
    "*": operator.mul,
    "/": operator.truediv,
    "%": operator.mod,
    "**": operator.pow,
}

_ORDERING = {
    "<": operator.lt,
    ">": operator.gt,
    "<=": operator.le,
    ">=": operator.ge,
}


def _normalize(value: Any) -> Any:
    """Bring context numbers onto Decimal so 1 == 1.0 and arithmetic is exact."""
    if is_number(value) and not isinstance(value, Decimal):
        return to_decimal(value)
    if isinstance(value, (list, tuple)):
        return [_normalize(item) for item in value]
    return value


class ExpressionEvaluator:
    """Evaluator for expression AST nodes.

    The evaluator processes AST nodes produced by ExpressionParser and
    evaluates them against the variables in the evaluation context.
    """

    def __init__(self, context: EvaluationContext):
        """Initialize the evaluator.

        Args:
            context: Evaluation context containing variables, config and deadline
        """
        self.ctx = context

    def evaluate(self, ast: Any) -> Any:
        """Evaluate an AST, wrapping runtime failures.

        Raises:
            ExpressionEvaluationError: On any evaluation failure, including timeout
        """
        try:
            return self._evaluate(ast)
        except ExpressionEvaluationError:
            raise
        except ArithmeticError as e:
            raise ExpressionEvaluationError(f"Arithmetic error: {type(e).__name__}") from e
        except (TypeError, ValueError, KeyError, IndexError) as e:
            raise ExpressionEvaluationError(str(e) or type(e).__name__) from e
        except RecursionError as e:
            raise ExpressionEvaluationError("Expression is nested too deeply") from e

    def _evaluate(self, ast: Any) -> Any:
        self.ctx.check_deadline()

        if ast is None or isinstance(ast, (str, bool, Decimal)):
            return ast

        if isinstance(ast, tuple):
            return self._evaluate_tuple(ast)

        return _normalize(ast)

    def _evaluate_tuple(self, ast: tuple) -> Any:
        op = ast[0]

        if op == "op":
            return self._evaluate_binary(ast[1], ast[2], ast[3])

        if op == "and":
            return bool(self._evaluate(ast[1])) and bool(self._evaluate(ast[2]))

        if op == "or":
            return bool(self._evaluate(ast[1])) or bool(self._evaluate(ast[2]))

        if op == "not":
            return not self._evaluate(ast[1])

        if op == "neg":
            return -to_decimal(self._evaluate(ast[1]))

        if op == "cond":
            branch = ast[2] if self._evaluate(ast[1]) else ast[3]
            return self._evaluate(branch)

        if op == "id":
            return _normalize(self.ctx.get_variable(ast[1]))

        if op == "attr":
            return self._evaluate_member(self._evaluate(ast[1]), ast[2])

        if op == "index":
            return self._evaluate_index(self._evaluate(ast[1]), self._evaluate(ast[2]))

        if op == "call":
            return self._evaluate_function_call(ast[1], ast[2])

        if op == "list":
            return [self._evaluate(item) for item in ast[1]]

        raise ExpressionEvaluationError(f"Unknown AST node type: {op}")

    def _evaluate_binary(self, operator_: str, left: Any, right: Any) -> Any:
        left_val = self._evaluate(left)
        right_val = self._evaluate(right)

        if operator_ in _ARITHMETIC:
            return _ARITHMETIC[operator_](to_decimal(left_val), to_decimal(right_val))

        if operator_ == "~":
            return f"{'' if left_val is None else left_val}{'' if right_val is None else right_val}"

        if operator_ == "==":
            return left_val == right_val
        if operator_ == "!=":
            return left_val != right_val

        if operator_ in _ORDERING:
            if is_number(left_val) and is_number(right_val):
                return _ORDERING[operator_](to_decimal(left_val), to_decimal(right_val))
            if isinstance(left_val, str) and isinstance(right_val, str):
                return _ORDERING[operator_](left_val, right_val)
            raise ExpressionEvaluationError(
                f"Cannot compare {type(left_val).__name__} and {type(right_val).__name__}"
            )

        if operator_ in ("in", "not in"):
            if isinstance(right_val, str):
                found = str(left_val) in right_val
            elif isinstance(right_val, (list, dict)):
                found = left_val in right_val
            else:
                raise ExpressionEvaluationError(f"'{operator_}' expects a list, object or string")
            return found if operator_ == "in" else not found

        raise ExpressionEvaluationError(f"Unknown operator: {operator_}")

    def _evaluate_member(self, target: Any, name: str) -> Any:
        if isinstance(target, dict):
            if name not in target:
                raise ExpressionEvaluationError(f"Key '{name}' is not defined")
            return _normalize(target[name])
        raise ExpressionEvaluationError(f"Cannot read '{name}' of {type(target).__name__}")

    def _evaluate_index(self, target: Any, key: Any) -> Any:
        if isinstance(target, dict):
            if key not in target:
                raise ExpressionEvaluationError(f"Key '{key}' is not defined")
            return _normalize(target[key])
        if isinstance(target, (list, str)):
            position = to_decimal(key)
            if position != position.to_integral_value():
                raise ExpressionEvaluationError("List index must be an integer")
            return _normalize(target[int(position)])
        raise ExpressionEvaluationError(f"Cannot index {type(target).__name__}")

    def _evaluate_function_call(self, name: str, args: list) -> Any:
        evaluated_args = [self._evaluate(arg) for arg in args]
        if name in CONTEXT_FUNCTIONS:
            return self._evaluate_config(evaluated_args)
        return evaluate_function(name, evaluated_args)

    def _evaluate_config(self, args: list) -> Any:
        """config(key, default = null) reads the effective rule config."""
        if not args or len(args) > 2:
            raise ExpressionEvaluationError("config() expects a key and an optional default")
        default = args[1] if len(args) > 1 else None
        return _normalize(self.ctx.get_config(str(args[0]), default))


def evaluate_expression(ast: Any, context: EvaluationContext) -> Any:
    """Convenience wrapper: evaluate a parsed AST in a context."""
    return ExpressionEvaluator(context).evaluate(ast)
