"""Assignment store: which rules apply to which merchant sales channel."""

import logging

from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from merchant_rules.models.rule import MerchantRuleAssignment
from merchant_rules.repositories.rule_repository import (
    MerchantRuleAssignmentRepository,
    MerchantRuleRepository,
)
from merchant_rules.rule_engine.errors import ConflictError, NotFoundError
from merchant_rules.rule_engine.models import RuleType
from merchant_rules.rule_engine.rule_engine import parse_rule_type
from merchant_rules.schemas.rule import AssignRuleRequest

logger = logging.getLogger(__name__)


class AssignmentService:
    """Service for assigning catalog rules to merchant sales channels."""

    def __init__(self, session: AsyncSession):
        self.session = session
        self.rules = MerchantRuleRepository(session)
        self.assignments = MerchantRuleAssignmentRepository(session)

    async def assign(
        self,
        rule_id: int,
        merchant_sales_channel_id: str,
        overrides: AssignRuleRequest | None = None,
        merchant_id: str | None = None,
    ) -> MerchantRuleAssignment:
        """Assign a rule to a merchant sales channel.

        Args:
            rule_id: Catalog rule to assign
            merchant_sales_channel_id: Target channel enrollment
            overrides: Optional priority/config overrides and active flag
            merchant_id: Merchant that owns the channel; must own the rule

        Returns:
            The created assignment

        Raises:
            NotFoundError: If the rule does not exist or belongs to another merchant
            ConflictError: If the rule is already assigned to the channel
        """
        overrides = overrides or AssignRuleRequest()
        rule = await self.rules.get_by_id(rule_id)
        if rule is None:
            raise NotFoundError(f"Rule not found: {rule_id}")
        if merchant_id is not None and rule.merchant_id != merchant_id:
            raise NotFoundError(
                f"Rule {rule_id} not found for merchant {merchant_id} "
                f"(channel {merchant_sales_channel_id})"
            )

        # Read before create: a rollback expires the rule
        rule_code = rule.code
        if await self.assignments.exists_for_rule_and_channel(rule_id, merchant_sales_channel_id):
            raise ConflictError(
                f"Rule {rule_code} is already assigned to channel {merchant_sales_channel_id}"
            )

        try:
            assignment = await self.assignments.create(
                rule,
                merchant_sales_channel_id,
                priority_override=overrides.priority_override,
                config_override=overrides.config_override,
                is_active=overrides.is_active,
            )
        except IntegrityError:
            await self.session.rollback()
            raise ConflictError(
                f"Rule {rule_code} is already assigned to channel {merchant_sales_channel_id}"
            ) from None

        logger.info(
            f"Assigned rule {rule_code} to channel {merchant_sales_channel_id} "
            f"(assignment={assignment.id})"
        )
        return assignment

    async def get_assignment(self, assignment_id: int) -> MerchantRuleAssignment:
        assignment = await self.assignments.get_by_id(assignment_id)
        if assignment is None:
            raise NotFoundError(f"Assignment not found: {assignment_id}")
        return assignment

    async def unassign(self, assignment_id: int) -> None:
        """Remove a rule assignment.

        Raises:
            NotFoundError: If the assignment does not exist
        """
        assignment = await self.get_assignment(assignment_id)
        channel_id = assignment.merchant_sales_channel_id
        await self.assignments.delete(assignment)
        logger.info(f"Removed assignment {assignment_id} from channel {channel_id}")

    async def toggle_assignment(self, assignment_id: int) -> MerchantRuleAssignment:
        """Flip an assignment's active flag.

        Raises:
            NotFoundError: If the assignment does not exist
        """
        assignment = await self.get_assignment(assignment_id)
        assignment = await self.assignments.set_active(assignment, not assignment.is_active)
        state = "enabled" if assignment.is_active else "disabled"
        logger.info(f"Assignment {assignment_id} {state}")
        return assignment

    async def list_assignments_for_channel(
        self,
        merchant_sales_channel_id: str,
        rule_type: RuleType | str,
        active_only: bool = False,
    ) -> list[MerchantRuleAssignment]:
        """List a channel's assignments for one rule type.

        Raises:
            ValidationError: If the rule type is unknown
        """
        rule_type = parse_rule_type(rule_type)
        return await self.assignments.list_by_channel_and_type(
            merchant_sales_channel_id, rule_type.value, active_only=active_only
        )

    async def list_assignments_for_rule(self, rule_id: int) -> list[MerchantRuleAssignment]:
        """List every channel a rule is assigned to.

        Raises:
            NotFoundError: If the rule does not exist
        """
        if await self.rules.get_by_id(rule_id) is None:
            raise NotFoundError(f"Rule not found: {rule_id}")
        return await self.assignments.list_by_rule(rule_id)
