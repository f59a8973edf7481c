# Database models
from merchant_rules.models.rule import MerchantRule, MerchantRuleAssignment, RuleExecutionLog

__all__ = [
    "MerchantRule",
    "MerchantRuleAssignment",
    "RuleExecutionLog",
]
