"""Expression parser using Lark."""

import re
from decimal import Decimal
from functools import lru_cache
from pathlib import Path
from typing import Any

from lark import Lark, Transformer, Token
from lark.exceptions import LarkError, UnexpectedInput

from merchant_rules.rule_engine.errors import ExpressionSyntaxError
from merchant_rules.rule_engine.models import ExpressionValidation

_ESCAPES = {"n": "\n", "t": "\t", "r": "\r", "\\": "\\", '"': '"', "'": "'"}
_ESCAPE_RE = re.compile(r"\\(.)")


class ASTTransformer(Transformer):
    """Transform the Lark parse tree into tuple AST nodes.

    Node shapes consumed by ExpressionEvaluator:
        ("op", operator, left, right)   binary arithmetic / comparison
        ("and", left, right), ("or", left, right), ("not", operand)
        ("neg", operand)
        ("cond", test, if_true, if_false)
        ("id", name)
        ("attr", target, name), ("index", target, key)
        ("call", name, args)
        ("list", items)
    Literals are plain Python values (Decimal, str, bool, None).
    """

    # Literals
    def number(self, items):
        return Decimal(str(items[0]))

    def string(self, items):
        raw = str(items[0])[1:-1]
        return _ESCAPE_RE.sub(lambda m: _ESCAPES.get(m.group(1), m.group(1)), raw)

    def true_lit(self, items):
        return True

    def false_lit(self, items):
        return False

    def null_lit(self, items):
        return None

    def list_lit(self, items):
        args = items[0] if items else None
        return ("list", args or [])

    # Names
    def var(self, items):
        return ("id", str(items[0]))

    def attr(self, items):
        return ("attr", items[0], str(items[1]))

    def index(self, items):
        return ("index", items[0], items[1])

    def call(self, items):
        name = str(items[0])
        args = items[1] if len(items) > 1 and items[1] is not None else []
        return ("call", name, args)

    def arguments(self, items):
        return list(items)

    # Logic
    def ternary(self, items):
        return ("cond", items[0], items[1], items[2])

    def or_op(self, items):
        return ("or", items[0], items[1])

    def and_op(self, items):
        return ("and", items[0], items[1])

    def not_op(self, items):
        return ("not", items[0])

    # Comparison
    def eq(self, items):
        return ("op", "==", items[0], items[1])

    def ne(self, items):
        return ("op", "!=", items[0], items[1])

    def lt(self, items):
        return ("op", "<", items[0], items[1])

    def gt(self, items):
        return ("op", ">", items[0], items[1])

    def le(self, items):
        return ("op", "<=", items[0], items[1])

    def ge(self, items):
        return ("op", ">=", items[0], items[1])

    def in_op(self, items):
        return ("op", "in", items[0], items[1])

    def not_in_op(self, items):
        return ("op", "not in", items[0], items[1])

    # Arithmetic
    def add(self, items):
        return ("op", "+", items[0], items[1])

    def sub(self, items):
        return ("op", "-", items[0], items[1])

    def concat(self, items):
        return ("op", "~", items[0], items[1])

    def mul(self, items):
        return ("op", "*", items[0], items[1])

    def div(self, items):
        return ("op", "/", items[0], items[1])

    def mod(self, items):
        return ("op", "%", items[0], items[1])

    def pow(self, items):
        return ("op", "**", items[0], items[1])

    def neg(self, items):
        return ("neg", items[0])

    def pos(self, items):
        return items[0]


def _describe_error(error: LarkError) -> str:
    """Turn a Lark exception into a one-line message."""
    if isinstance(error, UnexpectedInput):
        token = getattr(error, "token", None)
        if isinstance(token, Token):
            if token.type == "$END":
                return "Unexpected end of expression"
            return f"Unexpected token '{token}' at column {error.column}"
        char = getattr(error, "char", None)
        if char is not None:
            return f"Unexpected character '{char}' at column {error.column}"
    return str(error).strip().splitlines()[0]


class ExpressionParser:
    """Parser for rule and condition expressions."""

    def __init__(self, max_length: int | None = None):
        grammar_path = Path(__file__).parent / "grammar.lark"
        with open(grammar_path) as f:
            grammar = f.read()

        self.max_length = max_length
        self.lark = Lark(
            grammar, parser="lalr", transformer=ASTTransformer(), start="start"
        )
        self._parse_cached = lru_cache(maxsize=1024)(self._parse)

    def _parse(self, expression: str) -> Any:
        try:
            return self.lark.parse(expression)
        except LarkError as e:
            raise ExpressionSyntaxError(_describe_error(e), expression) from e

    def parse(self, expression: str) -> Any:
        """Parse expression text into a tuple AST.

        Raises:
            ExpressionSyntaxError: If the text is empty, too long or malformed
        """
        if expression is None or not str(expression).strip():
            raise ExpressionSyntaxError("Expression is empty", expression)
        if self.max_length is not None and len(expression) > self.max_length:
            raise ExpressionSyntaxError(
                f"Expression exceeds {self.max_length} characters", expression
            )
        return self._parse_cached(expression)

    def validate(self, expression: str) -> ExpressionValidation:
        """Check that an expression parses, without evaluating it."""
        try:
            self.parse(expression)
        except ExpressionSyntaxError as e:
            return ExpressionValidation(valid=False, error=str(e))
        return ExpressionValidation(valid=True)


@lru_cache(maxsize=1)
def get_parser() -> ExpressionParser:
    """Shared parser instance, sized from settings."""
    from merchant_rules.core.config import settings

    return ExpressionParser(max_length=settings.RULE_MAX_EXPRESSION_LENGTH)
