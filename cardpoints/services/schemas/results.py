"""Result dataclasses returned by engine operations."""

from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal

from cardpoints.services.schemas.rules import BonusTier, RewardRule
from db.enums import CapType, SpendPeriodType


@dataclass(frozen=True, slots=True)
class Period:
    start: datetime
    end: datetime

    def contains(self, instant: datetime) -> bool:
        return self.start <= instant <= self.end


@dataclass(frozen=True, slots=True)
class PointsBreakdown:
    base: Decimal
    bonus: Decimal
    total: Decimal


@dataclass
class CalculationResult:
    total_points: Decimal
    base_points: Decimal
    bonus_points: Decimal
    points_currency: str
    min_spend_met: bool = True
    applied_rule: RewardRule | None = None
    applied_tier: BonusTier | None = None
    remaining_monthly_bonus_points: Decimal | None = None
    messages: list[str] = field(default_factory=list)

    @property
    def applied_rule_id(self) -> str | None:
        return self.applied_rule.id if self.applied_rule else None

    @classmethod
    def zero(
        cls,
        points_currency: str,
        message: str,
        min_spend_met: bool = True,
    ) -> "CalculationResult":
        return cls(
            total_points=Decimal("0"),
            base_points=Decimal("0"),
            bonus_points=Decimal("0"),
            points_currency=points_currency,
            min_spend_met=min_spend_met,
            messages=[message],
        )


@dataclass
class CapUsageResult:
    identifier: str
    rule_name: str
    used: Decimal
    cap: Decimal
    cap_type: CapType
    period_type: SpendPeriodType
    period_start: datetime
    period_end: datetime
    percentage: float
    valid_until: datetime | None = None
    member_rule_ids: list[str] = field(default_factory=list)
