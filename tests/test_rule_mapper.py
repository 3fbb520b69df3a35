"""Tests for cardpoints.services.rule_mapper."""

from datetime import UTC, datetime
from decimal import Decimal

import pytest
from sqlalchemy.orm import Session

from cardpoints.services._types import RuleDict
from cardpoints.services.errors import InvalidRuleError
from cardpoints.services.rule_mapper import (
    apply_to_row,
    result_to_dict,
    rule_from_payload,
    rule_from_row,
    rule_to_dict,
)
from cardpoints.services.schemas import CalculationResult, RewardRule
from db.enums import (
    AmountRounding,
    CalculationMethod,
    CapType,
    ConditionType,
    PointsRounding,
    SpendPeriodType,
)
from db.models import RewardRules


def _row(**kwargs: object) -> RewardRules:
    fields: dict[str, object] = {
        "id": "r1",
        "card_type_id": "amex-cobalt",
        "name": "Eats & Drinks",
        "enabled": True,
        "priority": 5,
        "conditions": '[{"type": "mcc", "operation": "include", "values": ["5812", "5814"]}]',
        "bonus_tiers": "[]",
        "calculation_method": "standard",
        "base_multiplier": 1,
        "bonus_multiplier": 4,
        "points_rounding_strategy": "nearest",
        "amount_rounding_strategy": "none",
        "block_size": 1,
    }
    fields.update(kwargs)
    return RewardRules(**fields)


class TestRuleFromRow:
    def test_parses_columns(self) -> None:
        rule: RewardRule = rule_from_row(
            _row(
                monthly_cap=2500,
                monthly_cap_type="bonus_points",
                monthly_spend_period_type="statement_month",
                cap_group_id="cobalt-5x",
                compound_bonus_multipliers="[1.5, 2.5]",
            ),
            "MR",
        )
        assert rule.priority == 5
        assert rule.conditions[0].type == ConditionType.MCC
        assert rule.conditions[0].values == ("5812", "5814")
        assert rule.reward.bonus_multiplier == Decimal("4")
        assert rule.reward.compound_bonus_multipliers == (Decimal("1.5"), Decimal("2.5"))
        assert rule.reward.monthly_cap == Decimal("2500")
        assert rule.reward.monthly_cap_type == CapType.BONUS_POINTS
        assert rule.reward.monthly_spend_period_type == SpendPeriodType.STATEMENT_MONTH
        assert rule.cap_identifier == "cobalt-5x"
        assert rule.reward.points_currency == "MR"

    def test_corrupt_json_degrades_to_empty(self) -> None:
        rule: RewardRule = rule_from_row(
            _row(conditions="[{not json", bonus_tiers='{"oops": 1}')
        )
        assert rule.conditions == ()
        assert rule.reward.bonus_tiers == ()

    def test_unknown_enum_falls_back_to_default(self) -> None:
        rule: RewardRule = rule_from_row(
            _row(calculation_method="mystery", points_rounding_strategy="banker")
        )
        assert rule.reward.calculation_method == CalculationMethod.STANDARD
        assert rule.reward.points_rounding_strategy == PointsRounding.NEAREST

    def test_zero_multiplier_is_kept(self) -> None:
        rule: RewardRule = rule_from_row(_row(base_multiplier=0))
        assert rule.reward.base_multiplier == Decimal("0")

    def test_legacy_period_alias(self) -> None:
        rule: RewardRule = rule_from_row(_row(monthly_spend_period_type="calendar_month"))
        assert rule.reward.monthly_spend_period_type == SpendPeriodType.CALENDAR

    def test_naive_datetimes_become_utc(self) -> None:
        rule: RewardRule = rule_from_row(_row(valid_from=datetime(2026, 1, 1)))
        assert rule.valid_from == datetime(2026, 1, 1, tzinfo=UTC)


class TestRuleFromPayload:
    def test_camel_case_with_nested_reward(self) -> None:
        rule: RewardRule = rule_from_payload(
            {
                "cardTypeId": "aeroplan-visa",
                "name": "Travel",
                "priority": 3,
                "validUntil": "2026-12-31T23:59:59Z",
                "conditions": [{"type": "category", "operation": "include", "values": ["travel"]}],
                "reward": {
                    "calculationMethod": "total_first",
                    "bonusMultiplier": 2,
                    "amountRoundingStrategy": "floor5",
                    "pointsCurrency": "Aeroplan",
                },
            },
            rule_id="r9",
        )
        assert rule.id == "r9"
        assert rule.card_type_id == "aeroplan-visa"
        assert rule.priority == 3
        assert rule.valid_until == datetime(2026, 12, 31, 23, 59, 59, tzinfo=UTC)
        assert rule.reward.calculation_method == CalculationMethod.TOTAL_FIRST
        assert rule.reward.amount_rounding_strategy == AmountRounding.FLOOR5
        assert rule.reward.points_currency == "Aeroplan"
        assert len(rule.conditions) == 1

    def test_flat_snake_case(self) -> None:
        rule: RewardRule = rule_from_payload(
            {
                "card_type_id": "amex-cobalt",
                "name": "Flat",
                "calculation_method": "flat_rate",
                "base_multiplier": 0,
                "enabled": False,
            },
            default_points_currency="MR",
        )
        assert rule.enabled is False
        assert rule.reward.base_multiplier == Decimal("0")
        assert rule.reward.points_currency == "MR"

    def test_unknown_calculation_method_is_rejected(self) -> None:
        with pytest.raises(InvalidRuleError) as exc_info:
            rule_from_payload(
                {"cardTypeId": "amex-cobalt", "name": "Bad", "calculationMethod": "percentage"}
            )
        assert exc_info.value.rule_id == "Bad"
        assert exc_info.value.problems == ["unknown calculation_method 'percentage'"]

    def test_unknown_condition_is_rejected(self) -> None:
        with pytest.raises(InvalidRuleError) as exc_info:
            rule_from_payload(
                {
                    "cardTypeId": "amex-cobalt",
                    "name": "Bad conditions",
                    "conditions": [
                        {"type": "mcc", "operation": "include", "values": ["5411"]},
                        {"type": "weekday", "operation": "include", "values": ["sat"]},
                        {
                            "type": "compound",
                            "operation": "any",
                            "subConditions": [{"type": "mcc", "operation": "contains"}],
                        },
                    ],
                },
                rule_id="r1",
            )
        assert exc_info.value.problems == [
            "condition 1 has an unknown type or operation",
            "condition 2 sub-condition 0 has an unknown type or operation",
        ]

    def test_every_problem_is_reported(self) -> None:
        with pytest.raises(InvalidRuleError) as exc_info:
            rule_from_payload(
                {
                    "cardTypeId": "amex-cobalt",
                    "name": "Messy",
                    "reward": {
                        "bonusMultiplier": "lots",
                        "monthlyCap": 100,
                        "monthlySpendPeriodType": "calender",
                        "bonusTiers": [{"minAmount": 10}],
                    },
                }
            )
        assert exc_info.value.problems == [
            "unknown monthly_spend_period_type 'calender'",
            "bonus_multiplier is not a number",
            "bonus tier 0 needs a numeric multiplier",
        ]

    def test_legacy_values_are_still_accepted(self) -> None:
        rule: RewardRule = rule_from_payload(
            {
                "cardTypeId": "amex-cobalt",
                "name": "Legacy",
                "conditions": [{"type": "online", "operation": "equals", "values": [True]}],
                "reward": {"monthlyCap": 100, "monthlySpendPeriodType": "Calendar"},
            }
        )
        assert rule.conditions[0].type == ConditionType.TRANSACTION_TYPE
        assert rule.reward.monthly_spend_period_type == SpendPeriodType.CALENDAR


class TestSerialisation:
    def test_row_round_trip_keeps_editable_fields(self, session: Session) -> None:
        original: RewardRule = rule_from_row(
            _row(monthly_cap=1000, monthly_cap_type="spend_amount", cap_group_id="g")
        )
        row: RewardRules = apply_to_row(original, RewardRules(id="r1", created_by="tester"))
        session.add(row)
        session.flush()
        reloaded: RewardRule = rule_from_row(row)
        assert reloaded.conditions == original.conditions
        assert reloaded.reward == original.reward

    def test_rule_to_dict_is_camel_case(self) -> None:
        data: RuleDict = rule_to_dict(rule_from_row(_row()))
        assert data["cardTypeId"] == "amex-cobalt"
        assert data["reward"]["bonusMultiplier"] == 4.0
        assert data["reward"]["compoundBonusMultipliers"] is None
        assert data["conditions"][0]["values"] == ["5812", "5814"]

    def test_result_to_dict(self) -> None:
        result: CalculationResult = CalculationResult.zero("MR", "No reward rules configured")
        data = result_to_dict(result)
        assert data["totalPoints"] == 0.0
        assert data["appliedRuleId"] is None
        assert data["messages"] == ["No reward rules configured"]
