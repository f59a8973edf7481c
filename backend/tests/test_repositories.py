"""Tests for repository layer.

Tests the MerchantRuleRepository, MerchantRuleAssignmentRepository and
RuleExecutionLogRepository classes.
"""

import pytest
from sqlalchemy.exc import IntegrityError

from merchant_rules.models.rule import RuleExecutionLog
from merchant_rules.repositories.rule_repository import (
    MerchantRuleAssignmentRepository,
    MerchantRuleRepository,
    RuleExecutionLogRepository,
)
from merchant_rules.rule_engine.models import RuleType
from merchant_rules.schemas.rule import Pagination, RuleListFilter


async def make_rule(session, code, type="pricing", priority=0, **fields):
    fields.setdefault("merchant_id", "m-1")
    fields.setdefault("name", code.replace("_", " ").title())
    fields.setdefault("category", "markup")
    fields.setdefault("expression", "5")
    return await MerchantRuleRepository(session).create(
        code=code, type=type, priority=priority, **fields
    )


class TestMerchantRuleRepository:
    """Test MerchantRuleRepository."""

    @pytest.mark.asyncio
    async def test_create_rule(self, test_session):
        """Test creating a rule with defaults."""
        rule = await make_rule(test_session, "weekend_markup")

        assert rule.id is not None
        assert rule.code == "weekend_markup"
        assert rule.is_active is True
        assert rule.priority == 0
        assert rule.created_at is not None

    @pytest.mark.asyncio
    async def test_get_by_code_and_id(self, test_session):
        """Test lookups by code and id."""
        rule = await make_rule(test_session, "weekend_markup")
        repo = MerchantRuleRepository(test_session)

        assert (await repo.get_by_code("weekend_markup")).id == rule.id
        assert (await repo.get_by_id(rule.id)).code == "weekend_markup"
        assert await repo.get_by_code("missing") is None
        assert await repo.get_by_id(999) is None

    @pytest.mark.asyncio
    async def test_exists(self, test_session):
        """Test exists counts inactive rules too."""
        await make_rule(test_session, "weekend_markup", is_active=False)
        repo = MerchantRuleRepository(test_session)

        assert await repo.exists("weekend_markup") is True
        assert await repo.exists("other") is False

    @pytest.mark.asyncio
    async def test_duplicate_code_rejected(self, test_session):
        """Test the unique constraint on rule code."""
        await make_rule(test_session, "weekend_markup")
        with pytest.raises(IntegrityError):
            await make_rule(test_session, "weekend_markup")

    @pytest.mark.asyncio
    async def test_update(self, test_session):
        """Test updating rule columns."""
        rule = await make_rule(test_session, "weekend_markup")
        repo = MerchantRuleRepository(test_session)

        updated = await repo.update(rule, expression="10", priority=3)
        assert updated.expression == "10"
        assert updated.priority == 3

    @pytest.mark.asyncio
    async def test_list_ordering(self, test_session):
        """Test ordering by type, then priority descending, then code."""
        await make_rule(test_session, "stock_cap", type="stock_allocation", priority=99, category="limit")
        await make_rule(test_session, "b_markup", priority=5)
        await make_rule(test_session, "a_markup", priority=5)
        await make_rule(test_session, "top_markup", priority=10)

        page = await MerchantRuleRepository(test_session).list_paginated()
        assert [r.code for r in page.items] == ["top_markup", "a_markup", "b_markup", "stock_cap"]
        assert page.total == 4

    @pytest.mark.asyncio
    async def test_list_filters(self, test_session):
        """Test type, category, active and search filters."""
        await make_rule(test_session, "weekend_markup", name="Weekend markup")
        await make_rule(test_session, "vip_discount", category="discount", name="VIP discount")
        await make_rule(test_session, "old_markup", is_active=False)
        await make_rule(test_session, "stock_cap", type="stock_allocation", category="limit")
        repo = MerchantRuleRepository(test_session)

        page = await repo.list_paginated(RuleListFilter(type=RuleType.STOCK_ALLOCATION))
        assert [r.code for r in page.items] == ["stock_cap"]

        page = await repo.list_paginated(RuleListFilter(category="discount"))
        assert [r.code for r in page.items] == ["vip_discount"]

        page = await repo.list_paginated(RuleListFilter(is_active=False))
        assert [r.code for r in page.items] == ["old_markup"]

        page = await repo.list_paginated(RuleListFilter(search="WEEKEND"))
        assert [r.code for r in page.items] == ["weekend_markup"]

        page = await repo.list_paginated(RuleListFilter(search="vip"))
        assert [r.code for r in page.items] == ["vip_discount"]

    @pytest.mark.asyncio
    async def test_list_filters_by_merchant(self, test_session):
        """Test listing only one merchant's rules."""
        await make_rule(test_session, "weekend_markup")
        await make_rule(test_session, "vip_discount", category="discount")
        await make_rule(test_session, "other_markup", merchant_id="m-2")
        repo = MerchantRuleRepository(test_session)

        page = await repo.list_paginated(RuleListFilter(merchant_id="m-1"))
        assert sorted(r.code for r in page.items) == ["vip_discount", "weekend_markup"]
        assert page.total == 2

        page = await repo.list_paginated(RuleListFilter(merchant_id="m-2", type=RuleType.PRICING))
        assert [r.code for r in page.items] == ["other_markup"]

        page = await repo.list_paginated(RuleListFilter(merchant_id="m-3"))
        assert page.items == []
        assert page.total == 0

    @pytest.mark.asyncio
    async def test_pagination(self, test_session):
        """Test page offsets and totals."""
        for i in range(5):
            await make_rule(test_session, f"rule_{i}")
        repo = MerchantRuleRepository(test_session)

        page = await repo.list_paginated(pagination=Pagination(page=2, limit=2))
        assert [r.code for r in page.items] == ["rule_2", "rule_3"]
        assert page.total == 5
        assert page.pages == 3

        page = await repo.list_paginated(pagination=Pagination(page=4, limit=2))
        assert page.items == []
        assert page.total == 5


class TestMerchantRuleAssignmentRepository:
    """Test MerchantRuleAssignmentRepository."""

    @pytest.mark.asyncio
    async def test_create_assignment(self, test_session):
        """Test creating an assignment with overrides."""
        rule = await make_rule(test_session, "weekend_markup", config={"rate": 0.1})
        repo = MerchantRuleAssignmentRepository(test_session)

        assignment = await repo.create(
            rule, "msc-1", priority_override=7, config_override={"rate": 0.2}
        )
        assert assignment.id is not None
        assert assignment.merchant_rule_id == rule.id
        assert assignment.merchant_rule.code == "weekend_markup"
        assert assignment.is_active is True
        assert assignment.effective_priority == 7
        assert assignment.merged_config == {"rate": 0.2}

    @pytest.mark.asyncio
    async def test_duplicate_assignment_rejected(self, test_session):
        """Test a rule is assigned to a channel at most once."""
        rule = await make_rule(test_session, "weekend_markup")
        repo = MerchantRuleAssignmentRepository(test_session)

        await repo.create(rule, "msc-1")
        assert await repo.exists_for_rule_and_channel(rule.id, "msc-1") is True
        assert await repo.exists_for_rule_and_channel(rule.id, "msc-2") is False
        with pytest.raises(IntegrityError):
            await repo.create(rule, "msc-1")

    @pytest.mark.asyncio
    async def test_list_by_channel_and_type(self, test_session):
        """Test channel listing filters by rule type and optionally by active flags."""
        pricing = await make_rule(test_session, "weekend_markup")
        inactive = await make_rule(test_session, "old_markup", is_active=False)
        stock = await make_rule(test_session, "stock_cap", type="stock_allocation", category="limit")
        repo = MerchantRuleAssignmentRepository(test_session)

        await repo.create(pricing, "msc-1")
        await repo.create(inactive, "msc-1")
        await repo.create(stock, "msc-1")
        await repo.create(pricing, "msc-2", is_active=False)

        listed = await repo.list_by_channel_and_type("msc-1", "pricing")
        assert [a.merchant_rule.code for a in listed] == ["old_markup", "weekend_markup"]

        listed = await repo.list_by_channel_and_type("msc-1", "pricing", active_only=True)
        assert [a.merchant_rule.code for a in listed] == ["weekend_markup"]

        assert await repo.list_by_channel_and_type("msc-2", "pricing", active_only=True) == []

    @pytest.mark.asyncio
    async def test_list_by_rule(self, test_session):
        """Test listing every channel of a rule."""
        rule = await make_rule(test_session, "weekend_markup")
        repo = MerchantRuleAssignmentRepository(test_session)
        first = await repo.create(rule, "msc-1")
        second = await repo.create(rule, "msc-2")

        assert {a.id for a in await repo.list_by_rule(rule.id)} == {first.id, second.id}

    @pytest.mark.asyncio
    async def test_set_active_and_delete(self, test_session):
        """Test toggling and deleting an assignment."""
        rule = await make_rule(test_session, "weekend_markup")
        repo = MerchantRuleAssignmentRepository(test_session)
        assignment = await repo.create(rule, "msc-1")

        assignment = await repo.set_active(assignment, False)
        assert assignment.is_active is False

        await repo.delete(assignment)
        assert await repo.get_by_id(assignment.id) is None


class TestRuleExecutionLogRepository:
    """Test RuleExecutionLogRepository."""

    @pytest.mark.asyncio
    async def test_add_and_list(self, test_session):
        """Test saving logs and listing them by rule."""
        repo = RuleExecutionLogRepository(test_session)
        await repo.add_many([
            RuleExecutionLog(
                rule_id=1,
                rule_code="weekend_markup",
                context_type="pricing",
                context_id="inv-1",
                input_data={"cost": 100},
                output_value="105",
                execution_time_ms=0,
                success=True,
            ),
            RuleExecutionLog(
                rule_id=2,
                rule_code="other",
                context_type="pricing",
                input_data={},
                success=False,
                error_message="expression: boom",
            ),
        ])

        logs = await repo.list_by_rule(1)
        assert len(logs) == 1
        assert logs[0].output_value == "105"
        assert logs[0].input_data == {"cost": 100}

    @pytest.mark.asyncio
    async def test_add_nothing(self, test_session):
        """Test an empty batch is a no-op."""
        await RuleExecutionLogRepository(test_session).add_many([])
        assert await RuleExecutionLogRepository(test_session).list_by_rule(1) == []
