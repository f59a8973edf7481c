"""Repository classes for merchant rule database operations."""

from typing import Any, List, Optional
from sqlalchemy import func, or_, select
from sqlalchemy.ext.asyncio import AsyncSession
from merchant_rules.models.rule import MerchantRule, MerchantRuleAssignment, RuleExecutionLog
from merchant_rules.schemas.rule import Page, Pagination, RuleListFilter


class MerchantRuleRepository:
    """Repository for MerchantRule database operations.

    Rules are never hard-deleted; deactivation keeps the row so a code
    is never reused.
    """

    def __init__(self, session: AsyncSession):
        """Initialize the repository with a database session.

        Args:
            session: SQLAlchemy async session
        """
        self.session = session

    async def create(self, **fields: Any) -> MerchantRule:
        """Create a new rule.

        Args:
            **fields: MerchantRule column values

        Returns:
            Created MerchantRule instance
        """
        rule = MerchantRule(**fields)
        self.session.add(rule)
        await self.session.commit()
        await self.session.refresh(rule)
        return rule

    async def get_by_id(self, rule_id: int) -> Optional[MerchantRule]:
        result = await self.session.execute(
            select(MerchantRule).where(MerchantRule.id == rule_id)
        )
        return result.scalar_one_or_none()

    async def get_by_code(self, code: str) -> Optional[MerchantRule]:
        result = await self.session.execute(
            select(MerchantRule).where(MerchantRule.code == code)
        )
        return result.scalar_one_or_none()

    async def exists(self, code: str) -> bool:
        """Check if a rule code is taken (active or not)."""
        return await self.get_by_code(code) is not None

    async def list_paginated(
        self,
        filters: RuleListFilter | None = None,
        pagination: Pagination | None = None,
    ) -> Page:
        """List rules matching a filter, one page at a time.

        Ordered by type, then priority (highest first), then code.

        Args:
            filters: Optional merchant/type/category/active/search filter
            pagination: Page number and size

        Returns:
            Page of MerchantRule instances with the total match count
        """
        filters = filters or RuleListFilter()
        pagination = pagination or Pagination()

        conditions = []
        if filters.merchant_id is not None:
            conditions.append(MerchantRule.merchant_id == filters.merchant_id)
        if filters.type is not None:
            conditions.append(MerchantRule.type == filters.type.value)
        if filters.category is not None:
            conditions.append(MerchantRule.category == filters.category.value)
        if filters.is_active is not None:
            conditions.append(MerchantRule.is_active == filters.is_active)
        if filters.search:
            pattern = f"%{filters.search}%"
            conditions.append(
                or_(MerchantRule.code.ilike(pattern), MerchantRule.name.ilike(pattern))
            )

        total = await self.session.scalar(
            select(func.count(MerchantRule.id)).where(*conditions)
        )
        result = await self.session.execute(
            select(MerchantRule)
            .where(*conditions)
            .order_by(
                MerchantRule.type.asc(),
                MerchantRule.priority.desc(),
                MerchantRule.code.asc(),
            )
            .offset(pagination.offset)
            .limit(pagination.limit)
        )
        return Page(
            items=list(result.scalars().all()),
            total=total or 0,
            page=pagination.page,
            limit=pagination.limit,
        )

    async def update(self, rule: MerchantRule, **changes: Any) -> MerchantRule:
        """Apply column changes to a rule and commit.

        Args:
            rule: Rule to update
            **changes: Column values to set

        Returns:
            Updated MerchantRule
        """
        for key, value in changes.items():
            setattr(rule, key, value)

        await self.session.commit()
        await self.session.refresh(rule)
        return rule


class MerchantRuleAssignmentRepository:
    """Repository for MerchantRuleAssignment database operations."""

    def __init__(self, session: AsyncSession):
        self.session = session

    async def create(
        self,
        rule: MerchantRule,
        merchant_sales_channel_id: str,
        priority_override: Optional[int] = None,
        config_override: Optional[dict[str, Any]] = None,
        is_active: bool = True,
    ) -> MerchantRuleAssignment:
        """Assign a rule to a merchant sales channel.

        Args:
            rule: Rule to assign
            merchant_sales_channel_id: Target merchant sales channel
            priority_override: Replaces the rule priority for this channel
            config_override: Merged over the rule config for this channel
            is_active: Whether the assignment is active

        Returns:
            Created MerchantRuleAssignment instance
        """
        assignment = MerchantRuleAssignment(
            merchant_rule=rule,
            merchant_sales_channel_id=merchant_sales_channel_id,
            priority_override=priority_override,
            config_override=config_override,
            is_active=is_active,
        )
        self.session.add(assignment)
        await self.session.commit()
        # Column attributes only; merchant_rule is already set
        await self.session.refresh(assignment, ["created_at", "updated_at"])
        return assignment

    async def get_by_id(self, assignment_id: int) -> Optional[MerchantRuleAssignment]:
        result = await self.session.execute(
            select(MerchantRuleAssignment).where(MerchantRuleAssignment.id == assignment_id)
        )
        return result.scalar_one_or_none()

    async def exists_for_rule_and_channel(
        self, rule_id: int, merchant_sales_channel_id: str
    ) -> bool:
        result = await self.session.scalar(
            select(func.count(MerchantRuleAssignment.id)).where(
                MerchantRuleAssignment.merchant_rule_id == rule_id,
                MerchantRuleAssignment.merchant_sales_channel_id == merchant_sales_channel_id,
            )
        )
        return bool(result)

    async def list_by_rule(self, rule_id: int) -> List[MerchantRuleAssignment]:
        """List a rule's assignments, newest first."""
        result = await self.session.execute(
            select(MerchantRuleAssignment)
            .where(MerchantRuleAssignment.merchant_rule_id == rule_id)
            .order_by(MerchantRuleAssignment.created_at.desc(), MerchantRuleAssignment.id.desc())
        )
        return list(result.scalars().all())

    async def list_by_channel_and_type(
        self,
        merchant_sales_channel_id: str,
        rule_type: str,
        active_only: bool = False,
    ) -> List[MerchantRuleAssignment]:
        """List a channel's assignments whose rule has the given type.

        Args:
            merchant_sales_channel_id: Merchant sales channel
            rule_type: Rule type value (pricing/stock_allocation)
            active_only: Keep only rows where both rule and assignment are active

        Returns:
            List of MerchantRuleAssignment instances with their rules loaded
        """
        stmt = (
            select(MerchantRuleAssignment)
            .join(MerchantRuleAssignment.merchant_rule)
            .where(
                MerchantRuleAssignment.merchant_sales_channel_id == merchant_sales_channel_id,
                MerchantRule.type == rule_type,
            )
            .order_by(MerchantRule.code.asc())
        )
        if active_only:
            stmt = stmt.where(
                MerchantRuleAssignment.is_active == True,
                MerchantRule.is_active == True,
            )
        result = await self.session.execute(stmt)
        return list(result.scalars().unique().all())

    async def set_active(
        self, assignment: MerchantRuleAssignment, is_active: bool
    ) -> MerchantRuleAssignment:
        assignment.is_active = is_active
        await self.session.commit()
        await self.session.refresh(assignment, ["is_active", "updated_at"])
        return assignment

    async def delete(self, assignment: MerchantRuleAssignment) -> None:
        await self.session.delete(assignment)
        await self.session.commit()


class RuleExecutionLogRepository:
    """Repository for rule execution audit records."""

    def __init__(self, session: AsyncSession):
        self.session = session

    async def add_many(self, logs: List[RuleExecutionLog]) -> None:
        """Persist a batch of execution logs in one commit."""
        if not logs:
            return
        self.session.add_all(logs)
        await self.session.commit()

    async def list_by_rule(self, rule_id: int, limit: int = 50) -> List[RuleExecutionLog]:
        result = await self.session.execute(
            select(RuleExecutionLog)
            .where(RuleExecutionLog.rule_id == rule_id)
            .order_by(RuleExecutionLog.created_at.desc(), RuleExecutionLog.id.desc())
            .limit(limit)
        )
        return list(result.scalars().all())
