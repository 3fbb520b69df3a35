"""Maps persisted reward rule rows to domain rules and back.

The JSON TEXT columns (``conditions``, ``bonus_tiers``,
``compound_bonus_multipliers``) are parsed here once. A corrupted column
degrades to an empty sequence with a warning so one bad row never takes down
evaluation of the others.
"""

import json
from collections.abc import Mapping
from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import TypeVar

import structlog

from cardpoints.services._helpers import (
    JsonDict,
    JsonList,
    as_utc,
    dump_json,
    load_json_list,
    parse_instant,
    to_decimal,
)
from cardpoints.services._types import (
    CalculationDict,
    CapUsageDict,
    RewardConfigDict,
    RuleDict,
)
from cardpoints.services.errors import InvalidRuleError
from cardpoints.services.schemas import (
    BonusTier,
    CalculationResult,
    CapUsageResult,
    RewardConfig,
    RewardRule,
    RuleCondition,
)
from cardpoints.services.schemas.rules import parse_period_type
from db.enums import AmountRounding, CalculationMethod, CapType, PointsRounding
from db.models import RewardRules

logger = structlog.get_logger(__name__)

E = TypeVar("E", bound=Enum)


def _iso(value: datetime | None) -> str | None:
    return value.isoformat() if value is not None else None


def _float(value: Decimal | None) -> float | None:
    return float(value) if value is not None else None


def _dec(raw: object, default: str) -> Decimal:
    parsed: Decimal | None = to_decimal(raw)
    return parsed if parsed is not None else Decimal(default)


def _parse_column(raw: str | None, column: str, rule_id: str) -> JsonList:
    try:
        return load_json_list(raw)
    except (json.JSONDecodeError, ValueError) as exc:
        logger.warning("rule_column_unparseable", rule_id=rule_id, column=column, error=str(exc))
        return []


def _enum(enum_cls: type[E], raw: object, default: E, column: str, rule_id: str) -> E:
    if raw is None or raw == "":
        return default
    try:
        return enum_cls(str(raw).strip().lower())
    except ValueError:
        logger.warning("rule_enum_unknown", rule_id=rule_id, column=column, value=raw)
        return default


def _conditions(items: JsonList) -> tuple[RuleCondition, ...]:
    parsed: list[RuleCondition | None] = [
        RuleCondition.from_dict(c) for c in items if isinstance(c, dict)
    ]
    return tuple(c for c in parsed if c is not None)


def _tiers(items: JsonList) -> tuple[BonusTier, ...]:
    parsed: list[BonusTier | None] = [BonusTier.from_dict(t) for t in items if isinstance(t, dict)]
    return tuple(t for t in parsed if t is not None)


def _multipliers(items: JsonList) -> tuple[Decimal, ...] | None:
    parsed: list[Decimal | None] = [to_decimal(m) for m in items]
    values: tuple[Decimal, ...] = tuple(m for m in parsed if m is not None)
    return values or None


def rule_from_row(row: RewardRules, default_points_currency: str = "points") -> RewardRule:
    rule_id: str = row.id
    reward: RewardConfig = RewardConfig(
        calculation_method=_enum(
            CalculationMethod,
            row.calculation_method,
            CalculationMethod.STANDARD,
            "calculation_method",
            rule_id,
        ),
        base_multiplier=_dec(row.base_multiplier, "1"),
        bonus_multiplier=_dec(row.bonus_multiplier, "0"),
        compound_bonus_multipliers=_multipliers(
            _parse_column(row.compound_bonus_multipliers, "compound_bonus_multipliers", rule_id)
        ),
        points_rounding_strategy=_enum(
            PointsRounding,
            row.points_rounding_strategy,
            PointsRounding.NEAREST,
            "points_rounding_strategy",
            rule_id,
        ),
        amount_rounding_strategy=_enum(
            AmountRounding,
            row.amount_rounding_strategy,
            AmountRounding.NONE,
            "amount_rounding_strategy",
            rule_id,
        ),
        block_size=_dec(row.block_size, "1"),
        bonus_tiers=_tiers(_parse_column(row.bonus_tiers, "bonus_tiers", rule_id)),
        monthly_cap=to_decimal(row.monthly_cap),
        monthly_cap_type=(
            _enum(CapType, row.monthly_cap_type, CapType.BONUS_POINTS, "monthly_cap_type", rule_id)
            if row.monthly_cap_type
            else None
        ),
        monthly_min_spend=to_decimal(row.monthly_min_spend),
        monthly_spend_period_type=parse_period_type(row.monthly_spend_period_type),
        cap_group_id=row.cap_group_id or None,
        promo_start_date=as_utc(row.promo_start_date),
        points_currency=row.points_currency or default_points_currency,
    )
    return RewardRule(
        id=rule_id,
        card_type_id=row.card_type_id,
        name=row.name,
        reward=reward,
        description=row.description or "",
        enabled=bool(row.enabled),
        priority=row.priority or 0,
        conditions=_conditions(_parse_column(row.conditions, "conditions", rule_id)),
        valid_from=as_utc(row.valid_from),
        valid_until=as_utc(row.valid_until),
        created_at=as_utc(row.created_at),
        updated_at=as_utc(row.updated_at),
    )


def apply_to_row(rule: RewardRule, row: RewardRules) -> RewardRules:
    """Copy every editable field of ``rule`` onto ``row``."""
    reward: RewardConfig = rule.reward
    row.card_type_id = rule.card_type_id
    row.name = rule.name
    row.description = rule.description or None
    row.enabled = rule.enabled
    row.priority = rule.priority
    row.conditions = dump_json([c.to_dict() for c in rule.conditions])
    row.bonus_tiers = dump_json([t.to_dict() for t in reward.bonus_tiers])
    row.calculation_method = reward.calculation_method.value
    row.base_multiplier = float(reward.base_multiplier)
    row.bonus_multiplier = float(reward.bonus_multiplier)
    row.compound_bonus_multipliers = (
        dump_json([float(m) for m in reward.compound_bonus_multipliers])
        if reward.compound_bonus_multipliers
        else None
    )
    row.points_rounding_strategy = reward.points_rounding_strategy.value
    row.amount_rounding_strategy = reward.amount_rounding_strategy.value
    row.block_size = float(reward.block_size)
    row.monthly_cap = _float(reward.monthly_cap)
    row.monthly_cap_type = reward.monthly_cap_type.value if reward.monthly_cap_type else None
    row.monthly_min_spend = _float(reward.monthly_min_spend)
    row.monthly_spend_period_type = (
        reward.monthly_spend_period_type.value if reward.monthly_spend_period_type else None
    )
    row.cap_group_id = reward.cap_group_id
    row.promo_start_date = reward.promo_start_date
    row.points_currency = reward.points_currency
    row.valid_from = rule.valid_from
    row.valid_until = rule.valid_until
    return row


def _get(data: Mapping[str, object], snake: str, camel: str) -> object:
    """Read a payload value, accepting both snake_case and camelCase keys."""
    return data[snake] if snake in data else data.get(camel)


_PAYLOAD_ENUMS: tuple[tuple[type[Enum], str, str], ...] = (
    (CalculationMethod, "calculation_method", "calculationMethod"),
    (PointsRounding, "points_rounding_strategy", "pointsRoundingStrategy"),
    (AmountRounding, "amount_rounding_strategy", "amountRoundingStrategy"),
    (CapType, "monthly_cap_type", "monthlyCapType"),
)
_PAYLOAD_NUMBERS: tuple[tuple[str, str], ...] = (
    ("base_multiplier", "baseMultiplier"),
    ("bonus_multiplier", "bonusMultiplier"),
    ("block_size", "blockSize"),
    ("monthly_cap", "monthlyCap"),
    ("monthly_min_spend", "monthlyMinSpend"),
)


def _is_blank(raw: object) -> bool:
    return raw is None or (isinstance(raw, str) and not raw.strip())


def _condition_payload_problems(item: object, where: str) -> list[str]:
    if not isinstance(item, dict):
        return [f"{where} is not an object"]
    if RuleCondition.from_dict(item) is None:
        return [f"{where} has an unknown type or operation"]
    raw_subs: object = item.get("subConditions", item.get("sub_conditions"))
    if raw_subs is None:
        return []
    if not isinstance(raw_subs, list):
        return [f"{where} sub-conditions must be a list"]
    problems: list[str] = []
    for i, sub in enumerate(raw_subs):
        problems.extend(_condition_payload_problems(sub, f"{where} sub-condition {i}"))
    return problems


def reward_payload_problems(data: Mapping[str, object]) -> list[str]:
    """Values in a reward payload that would otherwise be dropped or defaulted."""
    problems: list[str] = []
    for enum_cls, snake, camel in _PAYLOAD_ENUMS:
        raw: object = _get(data, snake, camel)
        if _is_blank(raw):
            continue
        try:
            enum_cls(str(raw).strip().lower())
        except ValueError:
            problems.append(f"unknown {snake} {raw!r}")
    period: object = _get(data, "monthly_spend_period_type", "monthlySpendPeriodType")
    if not _is_blank(period) and parse_period_type(period) is None:
        problems.append(f"unknown monthly_spend_period_type {period!r}")
    for snake, camel in _PAYLOAD_NUMBERS:
        raw = _get(data, snake, camel)
        if not _is_blank(raw) and to_decimal(raw) is None:
            problems.append(f"{snake} is not a number")

    raw_compound: object = _get(data, "compound_bonus_multipliers", "compoundBonusMultipliers")
    if raw_compound is not None and (
        not isinstance(raw_compound, list) or any(to_decimal(m) is None for m in raw_compound)
    ):
        problems.append("compound_bonus_multipliers must be a list of numbers")

    raw_tiers: object = _get(data, "bonus_tiers", "bonusTiers")
    if raw_tiers is not None and not isinstance(raw_tiers, list):
        problems.append("bonus_tiers must be a list")
    elif isinstance(raw_tiers, list):
        for i, tier in enumerate(raw_tiers):
            if not isinstance(tier, dict):
                problems.append(f"bonus tier {i} is not an object")
            elif BonusTier.from_dict(tier) is None:
                problems.append(f"bonus tier {i} needs a numeric multiplier")
            elif tier.get("condition") is not None:
                problems.extend(
                    _condition_payload_problems(tier["condition"], f"tier {i} condition")
                )

    promo: object = _get(data, "promo_start_date", "promoStartDate")
    if not _is_blank(promo) and parse_instant(promo) is None:
        problems.append("promo_start_date is not a valid date")
    return problems


def payload_problems(data: Mapping[str, object]) -> list[str]:
    """Everything in a rule payload that cannot be represented faithfully."""
    problems: list[str] = []
    raw_reward: object = data.get("reward")
    if raw_reward is not None and not isinstance(raw_reward, Mapping):
        problems.append("reward must be an object")
    problems.extend(
        reward_payload_problems(raw_reward if isinstance(raw_reward, Mapping) else data)
    )
    priority: object = data.get("priority")
    if priority is not None and (
        isinstance(priority, bool) or not isinstance(priority, (int, float))
    ):
        problems.append("priority must be a number")
    raw_conditions: object = data.get("conditions")
    if raw_conditions is not None and not isinstance(raw_conditions, list):
        problems.append("conditions must be a list")
    elif isinstance(raw_conditions, list):
        for i, condition in enumerate(raw_conditions):
            problems.extend(_condition_payload_problems(condition, f"condition {i}"))
    for snake, camel in (("valid_from", "validFrom"), ("valid_until", "validUntil")):
        raw: object = _get(data, snake, camel)
        if not _is_blank(raw) and parse_instant(raw) is None:
            problems.append(f"{snake} is not a valid date")
    return problems


def reward_from_payload(data: Mapping[str, object], default_points_currency: str) -> RewardConfig:
    raw_tiers: object = _get(data, "bonus_tiers", "bonusTiers")
    raw_compound: object = _get(data, "compound_bonus_multipliers", "compoundBonusMultipliers")
    cap_type: object = _get(data, "monthly_cap_type", "monthlyCapType")
    promo: object = _get(data, "promo_start_date", "promoStartDate")
    currency: object = _get(data, "points_currency", "pointsCurrency")
    return RewardConfig(
        calculation_method=_enum(
            CalculationMethod,
            _get(data, "calculation_method", "calculationMethod"),
            CalculationMethod.STANDARD,
            "calculation_method",
            "payload",
        ),
        base_multiplier=_dec(_get(data, "base_multiplier", "baseMultiplier"), "1"),
        bonus_multiplier=_dec(_get(data, "bonus_multiplier", "bonusMultiplier"), "0"),
        compound_bonus_multipliers=(
            _multipliers(raw_compound) if isinstance(raw_compound, list) else None
        ),
        points_rounding_strategy=_enum(
            PointsRounding,
            _get(data, "points_rounding_strategy", "pointsRoundingStrategy"),
            PointsRounding.NEAREST,
            "points_rounding_strategy",
            "payload",
        ),
        amount_rounding_strategy=_enum(
            AmountRounding,
            _get(data, "amount_rounding_strategy", "amountRoundingStrategy"),
            AmountRounding.NONE,
            "amount_rounding_strategy",
            "payload",
        ),
        block_size=_dec(_get(data, "block_size", "blockSize"), "1"),
        bonus_tiers=_tiers(raw_tiers) if isinstance(raw_tiers, list) else (),
        monthly_cap=to_decimal(_get(data, "monthly_cap", "monthlyCap")),
        monthly_cap_type=(
            _enum(CapType, cap_type, CapType.BONUS_POINTS, "monthly_cap_type", "payload")
            if cap_type
            else None
        ),
        monthly_min_spend=to_decimal(_get(data, "monthly_min_spend", "monthlyMinSpend")),
        monthly_spend_period_type=parse_period_type(
            _get(data, "monthly_spend_period_type", "monthlySpendPeriodType")
        ),
        cap_group_id=str(_get(data, "cap_group_id", "capGroupId") or "") or None,
        promo_start_date=parse_instant(promo),
        points_currency=str(currency) if currency else default_points_currency,
    )


def rule_from_payload(
    data: Mapping[str, object],
    rule_id: str = "",
    default_points_currency: str = "points",
) -> RewardRule:
    """Build a rule from an API/seed payload (snake_case or camelCase keys).

    Unlike stored rows, payloads are rejected rather than repaired: an unknown
    enum value or condition, or a non-numeric amount, raises ``InvalidRuleError``
    listing every problem found.
    """
    problems: list[str] = payload_problems(data)
    if problems:
        payload_id: str = rule_id or str(data.get("id") or data.get("name") or "payload")
        logger.warning("rule_payload_rejected", rule_id=payload_id, problems=problems)
        raise InvalidRuleError(payload_id, problems)
    raw_reward: object = data.get("reward")
    reward_data: Mapping[str, object] = raw_reward if isinstance(raw_reward, Mapping) else data
    raw_conditions: object = data.get("conditions")
    priority: object = data.get("priority")
    description: object = data.get("description")
    enabled: object = data.get("enabled")
    return RewardRule(
        id=rule_id or str(data.get("id") or ""),
        card_type_id=str(_get(data, "card_type_id", "cardTypeId") or ""),
        name=str(data.get("name") or ""),
        reward=reward_from_payload(reward_data, default_points_currency),
        description=description if isinstance(description, str) else "",
        enabled=enabled if isinstance(enabled, bool) else True,
        priority=int(priority) if isinstance(priority, (int, float)) else 0,
        conditions=_conditions(raw_conditions) if isinstance(raw_conditions, list) else (),
        valid_from=parse_instant(_get(data, "valid_from", "validFrom")),
        valid_until=parse_instant(_get(data, "valid_until", "validUntil")),
    )


def rule_to_dict(rule: RewardRule) -> RuleDict:
    reward: RewardConfig = rule.reward
    reward_dict: RewardConfigDict = RewardConfigDict(
        calculationMethod=reward.calculation_method.value,
        baseMultiplier=float(reward.base_multiplier),
        bonusMultiplier=float(reward.bonus_multiplier),
        compoundBonusMultipliers=(
            [float(m) for m in reward.compound_bonus_multipliers]
            if reward.compound_bonus_multipliers
            else None
        ),
        pointsRoundingStrategy=reward.points_rounding_strategy.value,
        amountRoundingStrategy=reward.amount_rounding_strategy.value,
        blockSize=float(reward.block_size),
        bonusTiers=[t.to_dict() for t in reward.bonus_tiers],
        monthlyCap=_float(reward.monthly_cap),
        monthlyCapType=reward.monthly_cap_type.value if reward.monthly_cap_type else None,
        monthlyMinSpend=_float(reward.monthly_min_spend),
        monthlySpendPeriodType=(
            reward.monthly_spend_period_type.value if reward.monthly_spend_period_type else None
        ),
        capGroupId=reward.cap_group_id,
        promoStartDate=_iso(reward.promo_start_date),
        pointsCurrency=reward.points_currency,
    )
    return RuleDict(
        id=rule.id,
        cardTypeId=rule.card_type_id,
        name=rule.name,
        description=rule.description,
        enabled=rule.enabled,
        priority=rule.priority,
        conditions=[c.to_dict() for c in rule.conditions],
        reward=reward_dict,
        validFrom=_iso(rule.valid_from),
        validUntil=_iso(rule.valid_until),
        createdAt=_iso(rule.created_at),
        updatedAt=_iso(rule.updated_at),
    )


def result_to_dict(result: CalculationResult) -> CalculationDict:
    tier: JsonDict | None = result.applied_tier.to_dict() if result.applied_tier else None
    return CalculationDict(
        totalPoints=float(result.total_points),
        basePoints=float(result.base_points),
        bonusPoints=float(result.bonus_points),
        pointsCurrency=result.points_currency,
        appliedRuleId=result.applied_rule_id,
        appliedRuleName=result.applied_rule.name if result.applied_rule else None,
        appliedTier=tier,
        minSpendMet=result.min_spend_met,
        remainingMonthlyBonusPoints=_float(result.remaining_monthly_bonus_points),
        messages=list(result.messages),
    )


def cap_usage_to_dict(usage: CapUsageResult) -> CapUsageDict:
    return CapUsageDict(
        identifier=usage.identifier,
        ruleName=usage.rule_name,
        used=float(usage.used),
        cap=float(usage.cap),
        capType=usage.cap_type.value,
        periodType=usage.period_type.value,
        periodStart=usage.period_start.isoformat(),
        periodEnd=usage.period_end.isoformat(),
        percentage=usage.percentage,
        validUntil=_iso(usage.valid_until),
        memberRuleIds=list(usage.member_rule_ids),
    )
