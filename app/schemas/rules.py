"""Reward rule request schemas."""

from datetime import datetime

from pydantic import Field, field_validator

from app.schemas.common import CamelModel
from cardpoints.services.schemas.rules import parse_period_type
from db.enums import (
    AmountRounding,
    CalculationMethod,
    CapType,
    ConditionOperation,
    ConditionType,
    PointsRounding,
)


class ConditionIn(CamelModel):
    type: ConditionType
    operation: ConditionOperation
    values: list[str | int | float] = Field(default_factory=list)
    sub_conditions: list["ConditionIn"] = Field(default_factory=list)
    display_name: str | None = None


class BonusTierIn(CamelModel):
    multiplier: float
    min_amount: float | None = None
    max_amount: float | None = None
    min_spend: float | None = None
    max_spend: float | None = None
    priority: int | None = None
    name: str | None = None
    description: str | None = None
    condition: ConditionIn | None = None


class RewardConfigIn(CamelModel):
    calculation_method: CalculationMethod = CalculationMethod.STANDARD
    base_multiplier: float = 1.0
    bonus_multiplier: float = 0.0
    compound_bonus_multipliers: list[float] | None = None
    points_rounding_strategy: PointsRounding = PointsRounding.NEAREST
    amount_rounding_strategy: AmountRounding = AmountRounding.NONE
    block_size: float = Field(1.0, ge=0)
    bonus_tiers: list[BonusTierIn] = Field(default_factory=list)
    monthly_cap: float | None = Field(None, ge=0)
    monthly_cap_type: CapType | None = None
    monthly_min_spend: float | None = Field(None, ge=0)
    monthly_spend_period_type: str | None = Field(
        None, description="calendar | statement | statement_month | promotional"
    )
    cap_group_id: str | None = None
    promo_start_date: datetime | None = None
    points_currency: str | None = None

    @field_validator("monthly_spend_period_type")
    @classmethod
    def _known_period_type(cls, value: str | None) -> str | None:
        if value and value.strip() and parse_period_type(value) is None:
            raise ValueError(f"unknown spend period type: {value!r}")
        return value


class RuleCreate(CamelModel):
    card_type_id: str
    name: str
    description: str = ""
    enabled: bool = True
    priority: int = 0
    conditions: list[ConditionIn] = Field(default_factory=list)
    reward: RewardConfigIn = Field(default_factory=RewardConfigIn)
    valid_from: datetime | None = None
    valid_until: datetime | None = None


class RuleUpdate(RuleCreate):
    """Full replacement of an existing rule's definition."""
