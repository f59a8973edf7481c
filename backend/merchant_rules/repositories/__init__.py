"""Repository layer for database operations.

This module provides repository classes for managing the merchant rule
catalog, rule assignments and execution logs.
"""

from merchant_rules.repositories.rule_repository import (
    MerchantRuleAssignmentRepository,
    MerchantRuleRepository,
    RuleExecutionLogRepository,
)

__all__ = [
    "MerchantRuleAssignmentRepository",
    "MerchantRuleRepository",
    "RuleExecutionLogRepository",
]
