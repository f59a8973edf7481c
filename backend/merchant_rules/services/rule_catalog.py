"""Rule catalog service.

Creates, updates, deactivates and lists merchant rules. Every expression is
validated before it is persisted, so the resolution engine only ever sees
rules whose formulas parse.
"""

import logging
from typing import Any

from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from merchant_rules.models.rule import MerchantRule
from merchant_rules.repositories.rule_repository import MerchantRuleRepository
from merchant_rules.rule_engine.errors import ConflictError, NotFoundError, ValidationError
from merchant_rules.rule_engine.models import ExpressionValidation
from merchant_rules.rule_engine.rule_engine import RuleEngine
from merchant_rules.schemas.rule import (
    CreateRuleRequest,
    Page,
    Pagination,
    RuleListFilter,
    UpdateRuleRequest,
)

logger = logging.getLogger(__name__)


class RuleCatalogService:
    """Service for managing the merchant rule catalog."""

    def __init__(self, session: AsyncSession, engine: RuleEngine | None = None):
        """Initialize the catalog service.

        Args:
            session: SQLAlchemy async session
            engine: Rule engine used for expression validation
        """
        self.session = session
        self.rules = MerchantRuleRepository(session)
        self.engine = engine or RuleEngine()

    def validate_expression(self, expression: str) -> ExpressionValidation:
        return self.engine.validate_expression(expression)

    def _check_expression(self, expression: str, label: str) -> None:
        validation = self.engine.validate_expression(expression)
        if not validation.valid:
            raise ValidationError(f"Invalid {label}: {validation.error}")

    async def create_rule(self, request: CreateRuleRequest) -> MerchantRule:
        """Create a rule.

        Args:
            request: Validated rule fields

        Returns:
            The persisted MerchantRule

        Raises:
            ValidationError: If the expression or condition does not parse
            ConflictError: If the rule code is already taken
        """
        self._check_expression(request.expression, "expression")
        condition = request.condition_expression or None
        if condition is not None:
            self._check_expression(condition, "condition expression")

        if await self.rules.exists(request.code):
            raise ConflictError(f"Rule code already exists: {request.code}")

        try:
            rule = await self.rules.create(
                merchant_id=request.merchant_id,
                code=request.code,
                name=request.name,
                description=request.description,
                type=request.type.value,
                category=request.category.value,
                expression=request.expression,
                condition_expression=condition,
                priority=request.priority,
                config=request.config,
                is_active=request.is_active,
            )
        except IntegrityError:
            # Concurrent create with the same code
            await self.session.rollback()
            raise ConflictError(f"Rule code already exists: {request.code}") from None

        logger.info(
            f"Created rule {rule.code} (id={rule.id}, type={rule.type}, merchant={rule.merchant_id})"
        )
        return rule

    async def get_rule(self, rule_id: int) -> MerchantRule:
        """Get a rule by ID.

        Raises:
            NotFoundError: If no rule has this ID
        """
        rule = await self.rules.get_by_id(rule_id)
        if rule is None:
            raise NotFoundError(f"Rule not found: {rule_id}")
        return rule

    async def update_rule(self, rule_id: int, patch: UpdateRuleRequest) -> MerchantRule:
        """Apply a partial update to a rule.

        Only fields set on the patch change. An empty condition expression
        clears the guard. The code and type are never changed.

        Args:
            rule_id: Rule to update
            patch: Fields to change

        Returns:
            The updated MerchantRule

        Raises:
            NotFoundError: If no rule has this ID
            ValidationError: If a changed expression does not parse
        """
        rule = await self.get_rule(rule_id)
        changes: dict[str, Any] = patch.model_dump(exclude_unset=True)

        for key in ("name", "expression", "category", "priority", "is_active"):
            if key in changes and changes[key] is None:
                raise ValidationError(f"{key} cannot be null")

        if "expression" in changes:
            self._check_expression(changes["expression"], "expression")
        if "condition_expression" in changes:
            condition = changes["condition_expression"]
            if condition is not None and not condition.strip():
                condition = None
            if condition is not None:
                self._check_expression(condition, "condition expression")
            changes["condition_expression"] = condition
        if "category" in changes:
            changes["category"] = changes["category"].value

        if not changes:
            return rule

        rule = await self.rules.update(rule, **changes)
        logger.info(f"Updated rule {rule.code}: {', '.join(sorted(changes))}")
        return rule

    async def deactivate_rule(self, rule_id: int) -> MerchantRule:
        """Deactivate a rule. Its assignments stop resolving but are kept.

        Raises:
            NotFoundError: If no rule has this ID
        """
        rule = await self.get_rule(rule_id)
        if not rule.is_active:
            return rule
        rule = await self.rules.update(rule, is_active=False)
        logger.info(f"Deactivated rule {rule.code}")
        return rule

    async def list_rules(
        self,
        filters: RuleListFilter | None = None,
        pagination: Pagination | None = None,
    ) -> Page:
        return await self.rules.list_paginated(filters, pagination)
