# backend/merchant_rules/models/rule.py
from datetime import datetime
from typing import Any
from sqlalchemy import Boolean, ForeignKey, Index, Integer, JSON, String, Text, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship
from merchant_rules.core.database import Base


class MerchantRule(Base):
    """A pricing or stock-allocation rule in the merchant rule catalog."""
    __tablename__ = "merchant_rules"
    __table_args__ = (
        Index("idx_mr_merchant", "merchant_id"),
        Index("idx_mr_type", "type"),
        Index("idx_mr_active", "is_active"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    merchant_id: Mapped[str] = mapped_column(String(64), nullable=False)  # owning merchant
    code: Mapped[str] = mapped_column(String(100), unique=True, nullable=False)  # e.g., "weekend_markup"
    name: Mapped[str] = mapped_column(String(200), nullable=False)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    type: Mapped[str] = mapped_column(String(50), nullable=False)  # pricing/stock_allocation
    category: Mapped[str] = mapped_column(String(50), nullable=False)  # markup/discount/ratio/limit
    expression: Mapped[str] = mapped_column(Text, nullable=False)
    condition_expression: Mapped[str | None] = mapped_column(Text, nullable=True)
    priority: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    config: Mapped[dict[str, Any] | None] = mapped_column(JSON, nullable=True)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    created_at: Mapped[datetime] = mapped_column(default=datetime.utcnow)
    updated_at: Mapped[datetime] = mapped_column(default=datetime.utcnow, onupdate=datetime.utcnow)

    def __init__(self, **kwargs):
        if 'is_active' not in kwargs:
            kwargs['is_active'] = True
        if 'priority' not in kwargs:
            kwargs['priority'] = 0
        super().__init__(**kwargs)


class MerchantRuleAssignment(Base):
    """Links a rule to a merchant sales channel, with per-channel overrides."""
    __tablename__ = "merchant_rule_assignments"
    __table_args__ = (
        UniqueConstraint("merchant_rule_id", "merchant_sales_channel_id", name="uniq_mra_rule_channel"),
        Index("idx_mra_channel", "merchant_sales_channel_id"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    merchant_rule_id: Mapped[int] = mapped_column(ForeignKey("merchant_rules.id"), nullable=False)
    merchant_sales_channel_id: Mapped[str] = mapped_column(String(64), nullable=False)
    priority_override: Mapped[int | None] = mapped_column(Integer, nullable=True)
    config_override: Mapped[dict[str, Any] | None] = mapped_column(JSON, nullable=True)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    created_at: Mapped[datetime] = mapped_column(default=datetime.utcnow)
    updated_at: Mapped[datetime] = mapped_column(default=datetime.utcnow, onupdate=datetime.utcnow)

    merchant_rule: Mapped[MerchantRule] = relationship(lazy="joined")

    def __init__(self, **kwargs):
        if 'is_active' not in kwargs:
            kwargs['is_active'] = True
        super().__init__(**kwargs)

    @property
    def effective_priority(self) -> int:
        if self.priority_override is not None:
            return self.priority_override
        return self.merchant_rule.priority

    @property
    def merged_config(self) -> dict[str, Any]:
        return {**(self.merchant_rule.config or {}), **(self.config_override or {})}


class RuleExecutionLog(Base):
    """Audit record of one rule evaluation during resolution."""
    __tablename__ = "rule_execution_logs"
    __table_args__ = (
        Index("idx_rel_rule", "rule_id"),
        Index("idx_rel_context", "context_type", "context_id"),
        Index("idx_rel_created", "created_at"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    rule_id: Mapped[int | None] = mapped_column(Integer, nullable=True)
    rule_code: Mapped[str] = mapped_column(String(100), nullable=False)
    context_type: Mapped[str] = mapped_column(String(50), nullable=False)  # pricing/stock_allocation
    context_id: Mapped[str | None] = mapped_column(String(64), nullable=True)
    input_data: Mapped[dict[str, Any]] = mapped_column(JSON, nullable=False)
    output_value: Mapped[str | None] = mapped_column(String(255), nullable=True)
    execution_time_ms: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    success: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    error_message: Mapped[str | None] = mapped_column(Text, nullable=True)
    created_at: Mapped[datetime] = mapped_column(default=datetime.utcnow)
