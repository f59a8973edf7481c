"""Exception types raised by the rule engine and its stores."""


class RuleEngineError(Exception):
    """Base class for all rule engine errors."""


class ValidationError(RuleEngineError, ValueError):
    """Malformed rule, assignment or expression input."""


class ExpressionSyntaxError(ValidationError):
    """An expression could not be parsed."""

    def __init__(self, message: str, expression: str | None = None):
        super().__init__(message)
        self.expression = expression


class ConflictError(ValidationError):
    """A uniqueness constraint would be violated (duplicate code or assignment)."""


class NotFoundError(RuleEngineError, LookupError):
    """Unknown rule or assignment id."""


class ExpressionEvaluationError(RuleEngineError):
    """An expression failed at evaluation time.

    Never escapes a resolution pass: the engine records it as a skip.
    """


class EvaluationTimeout(ExpressionEvaluationError):
    """Evaluation exceeded its deadline."""
