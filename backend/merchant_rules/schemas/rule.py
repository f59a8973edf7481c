# backend/merchant_rules/schemas/rule.py
from typing import Any, Generic, TypeVar
from pydantic import BaseModel, ConfigDict, Field, field_validator

from merchant_rules.rule_engine.models import RuleCategory, RuleType

T = TypeVar("T")

RULE_CODE_PATTERN = r"^[a-z][a-z0-9_]*$"


class CreateRuleRequest(BaseModel):
    """Request model for creating a rule."""

    merchant_id: str = Field(..., min_length=1, max_length=64, description="Owning merchant")
    code: str = Field(..., max_length=100, pattern=RULE_CODE_PATTERN, description="Unique rule code")
    name: str = Field(..., min_length=1, max_length=200)
    description: str | None = Field(default=None, max_length=1000)
    type: RuleType
    category: RuleCategory
    expression: str = Field(..., min_length=1)
    condition_expression: str | None = None
    priority: int = Field(default=0, ge=0)
    config: dict[str, Any] | None = None
    is_active: bool = True

    @field_validator("name", "expression")
    @classmethod
    def not_blank(cls, v: str) -> str:
        if not v.strip():
            raise ValueError("must not be blank")
        return v


class UpdateRuleRequest(BaseModel):
    """Partial update; None means unchanged. An empty condition clears it."""

    name: str | None = Field(default=None, min_length=1, max_length=200)
    description: str | None = Field(default=None, max_length=1000)
    category: RuleCategory | None = None
    expression: str | None = Field(default=None, min_length=1)
    condition_expression: str | None = None
    priority: int | None = Field(default=None, ge=0)
    config: dict[str, Any] | None = None
    is_active: bool | None = None


class AssignRuleRequest(BaseModel):
    """Per-assignment overrides when granting a rule to a sales channel."""

    priority_override: int | None = Field(default=None, ge=0)
    config_override: dict[str, Any] | None = None
    is_active: bool = True


class RuleListFilter(BaseModel):
    merchant_id: str | None = Field(default=None, max_length=64)
    type: RuleType | None = None
    category: RuleCategory | None = None
    is_active: bool | None = None
    search: str | None = Field(default=None, max_length=100)


class Pagination(BaseModel):
    page: int = Field(default=1, ge=1)
    limit: int = Field(default=20, ge=1, le=100)

    @property
    def offset(self) -> int:
        return (self.page - 1) * self.limit


class Page(BaseModel, Generic[T]):
    model_config = ConfigDict(arbitrary_types_allowed=True)

    items: list[T]
    total: int
    page: int
    limit: int

    @property
    def pages(self) -> int:
        return (self.total + self.limit - 1) // self.limit if self.total else 0
