"""Typed dicts for service-layer return values.

Keeps route-facing methods explicit about their shape instead of returning bare dicts.
"""

from typing_extensions import TypedDict

from cardpoints.services._helpers import JsonDict

# -- Rules -------------------------------------------------------------------


class RewardConfigDict(TypedDict):
    calculationMethod: str
    baseMultiplier: float
    bonusMultiplier: float
    compoundBonusMultipliers: list[float] | None
    pointsRoundingStrategy: str
    amountRoundingStrategy: str
    blockSize: float
    bonusTiers: list[JsonDict]
    monthlyCap: float | None
    monthlyCapType: str | None
    monthlyMinSpend: float | None
    monthlySpendPeriodType: str | None
    capGroupId: str | None
    promoStartDate: str | None
    pointsCurrency: str


class RuleDict(TypedDict):
    id: str
    cardTypeId: str
    name: str
    description: str
    enabled: bool
    priority: int
    conditions: list[JsonDict]
    reward: RewardConfigDict
    validFrom: str | None
    validUntil: str | None
    createdAt: str | None
    updatedAt: str | None


class RuleValidationDict(TypedDict):
    valid: bool
    problems: list[str]


# -- Rewards -----------------------------------------------------------------


class CalculationDict(TypedDict):
    totalPoints: float
    basePoints: float
    bonusPoints: float
    pointsCurrency: str
    appliedRuleId: str | None
    appliedRuleName: str | None
    appliedTier: JsonDict | None
    minSpendMet: bool
    remainingMonthlyBonusPoints: float | None
    messages: list[str]


class CapUsageDict(TypedDict):
    identifier: str
    ruleName: str
    used: float
    cap: float
    capType: str
    periodType: str
    periodStart: str
    periodEnd: str
    percentage: float
    validUntil: str | None
    memberRuleIds: list[str]


# -- Worker ------------------------------------------------------------------


class RecalculationSummary(TypedDict):
    payment_method_id: str
    month: str
    transactions: int
    changed: int
    dry_run: bool


# -- Health ------------------------------------------------------------------


class DbInfoDict(TypedDict, total=False):
    backend_type: str
    database_url_or_path: str | None
    tables_present: list[str]
    tables_missing: list[str]
    schema_initialized: bool
    pid: int
    error: str
