"""Evaluation context for expressions."""

import time
from dataclasses import dataclass, field
from typing import Any

from merchant_rules.rule_engine.errors import EvaluationTimeout, ExpressionEvaluationError


@dataclass
class EvaluationContext:
    """Variables, rule config and deadline for one expression evaluation."""

    variables: dict[str, Any] = field(default_factory=dict)
    config: dict[str, Any] = field(default_factory=dict)
    deadline: float | None = None  # time.monotonic() value

    @classmethod
    def build(
        cls,
        context: dict[str, Any],
        config: dict[str, Any] | None = None,
        value: Any = None,
        timeout: float | None = None,
    ) -> "EvaluationContext":
        """Merge runtime context with rule config.

        Config keys are visible as top-level variables unless the runtime
        context defines the same name. ``value`` and ``config`` are reserved.
        """
        config = dict(config or {})
        variables = {**config, **context}
        variables["value"] = value
        variables["config"] = config
        deadline = time.monotonic() + timeout if timeout is not None else None
        return cls(variables=variables, config=config, deadline=deadline)

    def check_deadline(self) -> None:
        if self.deadline is not None and time.monotonic() > self.deadline:
            raise EvaluationTimeout("Expression evaluation timed out")

    def get_variable(self, name: str) -> Any:
        """Get a variable by name.

        Raises:
            ExpressionEvaluationError: If the variable is not defined
        """
        if name not in self.variables:
            raise ExpressionEvaluationError(f"Variable '{name}' is not defined")
        return self.variables[name]

    def get_config(self, key: str, default: Any = None) -> Any:
        return self.config.get(key, default)
