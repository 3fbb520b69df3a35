"""Reward rule value types.

Rules, conditions and tiers are parsed once at the persistence boundary into
these frozen dataclasses; the evaluation code never sees raw JSON.
"""

from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal

from cardpoints.services._helpers import JsonDict, to_decimal
from db.enums import (
    LEGACY_PERIOD_ALIASES,
    AmountRounding,
    CalculationMethod,
    CapType,
    ConditionOperation,
    ConditionType,
    PointsRounding,
    SpendPeriodType,
)

ConditionValue = str | int | float


def _enum_or_none(enum_cls, raw: object):
    if not isinstance(raw, str):
        return None
    try:
        return enum_cls(raw.strip().lower())
    except ValueError:
        return None


def parse_period_type(raw: object) -> SpendPeriodType | None:
    if not isinstance(raw, str) or not raw.strip():
        return None
    key: str = raw.strip().lower()
    if key in LEGACY_PERIOD_ALIASES:
        return LEGACY_PERIOD_ALIASES[key]
    return _enum_or_none(SpendPeriodType, key)


def _values(raw: object) -> tuple[ConditionValue, ...]:
    if not isinstance(raw, list):
        return ()
    return tuple(v for v in raw if isinstance(v, (str, int, float)) and not isinstance(v, bool))


def _normalize_legacy_online(data: dict[str, object]) -> dict[str, object]:
    """Rewrite the retired ``online`` condition type as a transaction_type condition."""
    if data.get("type") != "online":
        return data
    normalized: dict[str, object] = {**data, "type": ConditionType.TRANSACTION_TYPE.value}
    raw_values: object = data.get("values")
    first: str = str(raw_values[0]).lower() if isinstance(raw_values, list) and raw_values else ""
    if data.get("operation") == ConditionOperation.EQUALS.value and first in ("true", "false"):
        normalized["operation"] = (
            ConditionOperation.INCLUDE.value if first == "true" else ConditionOperation.EXCLUDE.value
        )
        normalized["values"] = ["online"]
    return normalized


@dataclass(frozen=True, slots=True)
class RuleCondition:
    type: ConditionType
    operation: ConditionOperation
    values: tuple[ConditionValue, ...] = ()
    sub_conditions: tuple["RuleCondition", ...] = ()
    display_name: str | None = None

    @classmethod
    def from_dict(cls, data: dict[str, object]) -> "RuleCondition | None":
        data = _normalize_legacy_online(data)
        ctype: ConditionType | None = _enum_or_none(ConditionType, data.get("type"))
        operation: ConditionOperation | None = _enum_or_none(
            ConditionOperation, data.get("operation")
        )
        if ctype is None or operation is None:
            return None
        raw_subs: object = data.get("subConditions", data.get("sub_conditions"))
        subs: list[RuleCondition] = []
        if isinstance(raw_subs, list):
            for item in raw_subs:
                if isinstance(item, dict):
                    parsed: RuleCondition | None = cls.from_dict(item)
                    if parsed is not None:
                        subs.append(parsed)
        display: object = data.get("displayName", data.get("display_name"))
        return cls(
            type=ctype,
            operation=operation,
            values=_values(data.get("values")),
            sub_conditions=tuple(subs),
            display_name=display if isinstance(display, str) else None,
        )

    def to_dict(self) -> JsonDict:
        out: JsonDict = {
            "type": self.type.value,
            "operation": self.operation.value,
            "values": list(self.values),
        }
        if self.sub_conditions:
            out["subConditions"] = [c.to_dict() for c in self.sub_conditions]
        if self.display_name:
            out["displayName"] = self.display_name
        return out


@dataclass(frozen=True, slots=True)
class BonusTier:
    multiplier: Decimal
    min_amount: Decimal | None = None
    max_amount: Decimal | None = None
    min_spend: Decimal | None = None
    max_spend: Decimal | None = None
    priority: int | None = None
    name: str | None = None
    description: str | None = None
    condition: RuleCondition | None = None

    @classmethod
    def from_dict(cls, data: dict[str, object]) -> "BonusTier | None":
        multiplier: Decimal | None = to_decimal(data.get("multiplier"))
        if multiplier is None:
            return None
        raw_condition: object = data.get("condition")
        condition: RuleCondition | None = (
            RuleCondition.from_dict(raw_condition) if isinstance(raw_condition, dict) else None
        )
        raw_priority: object = data.get("priority")
        name: object = data.get("name")
        description: object = data.get("description")
        return cls(
            multiplier=multiplier,
            min_amount=to_decimal(data.get("minAmount", data.get("min_amount"))),
            max_amount=to_decimal(data.get("maxAmount", data.get("max_amount"))),
            min_spend=to_decimal(data.get("minSpend", data.get("min_spend"))),
            max_spend=to_decimal(data.get("maxSpend", data.get("max_spend"))),
            priority=int(raw_priority) if isinstance(raw_priority, (int, float)) else None,
            name=name if isinstance(name, str) else None,
            description=description if isinstance(description, str) else None,
            condition=condition,
        )

    def to_dict(self) -> JsonDict:
        out: JsonDict = {"multiplier": float(self.multiplier)}
        for key, value in (
            ("minAmount", self.min_amount),
            ("maxAmount", self.max_amount),
            ("minSpend", self.min_spend),
            ("maxSpend", self.max_spend),
        ):
            if value is not None:
                out[key] = float(value)
        if self.priority is not None:
            out["priority"] = self.priority
        if self.name:
            out["name"] = self.name
        if self.description:
            out["description"] = self.description
        if self.condition is not None:
            out["condition"] = self.condition.to_dict()
        return out


@dataclass(frozen=True, slots=True)
class RewardConfig:
    calculation_method: CalculationMethod = CalculationMethod.STANDARD
    base_multiplier: Decimal = Decimal("1")
    bonus_multiplier: Decimal = Decimal("0")
    compound_bonus_multipliers: tuple[Decimal, ...] | None = None
    points_rounding_strategy: PointsRounding = PointsRounding.NEAREST
    amount_rounding_strategy: AmountRounding = AmountRounding.NONE
    block_size: Decimal = Decimal("1")
    bonus_tiers: tuple[BonusTier, ...] = ()
    monthly_cap: Decimal | None = None
    monthly_cap_type: CapType | None = None
    monthly_min_spend: Decimal | None = None
    monthly_spend_period_type: SpendPeriodType | None = None
    cap_group_id: str | None = None
    promo_start_date: datetime | None = None
    points_currency: str = "points"

    @property
    def effective_cap_type(self) -> CapType:
        return self.monthly_cap_type or CapType.BONUS_POINTS


@dataclass(frozen=True, slots=True)
class RewardRule:
    id: str
    card_type_id: str
    name: str
    reward: RewardConfig = field(default_factory=RewardConfig)
    description: str = ""
    enabled: bool = True
    priority: int = 0
    conditions: tuple[RuleCondition, ...] = ()
    valid_from: datetime | None = None
    valid_until: datetime | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None

    def is_active(self, at: datetime) -> bool:
        if self.valid_from is not None and at < self.valid_from:
            return False
        if self.valid_until is not None and at > self.valid_until:
            return False
        return True

    @property
    def cap_identifier(self) -> str:
        return self.reward.cap_group_id or self.id

