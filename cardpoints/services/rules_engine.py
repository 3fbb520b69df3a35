"""Rules engine: resolves which reward rule governs a transaction."""

from collections.abc import Iterable, Sequence
from datetime import UTC, datetime

import structlog

from cardpoints.services.conditions import matches_all
from cardpoints.services.errors import InvalidRuleError
from cardpoints.services.schemas import RewardRule, RuleCondition, TransactionData
from db.enums import CalculationMethod, ConditionOperation, ConditionType

logger = structlog.get_logger(__name__)

_EPOCH: datetime = datetime(1970, 1, 1, tzinfo=UTC)
_SET_ONLY_TYPES: frozenset[ConditionType] = frozenset(
    {ConditionType.MCC, ConditionType.MERCHANT, ConditionType.TRANSACTION_TYPE}
)
_SET_OPERATIONS: frozenset[ConditionOperation] = frozenset(
    {ConditionOperation.INCLUDE, ConditionOperation.EXCLUDE, ConditionOperation.EQUALS}
)


def _precedence(rule: RewardRule) -> tuple[int, bool, datetime, str]:
    # Higher priority first, then earliest created, then lowest id.
    return (-rule.priority, rule.created_at is None, rule.created_at or _EPOCH, rule.id)


def _condition_problems(condition: RuleCondition, path: str) -> list[str]:
    problems: list[str] = []
    if condition.type == ConditionType.COMPOUND:
        if condition.operation not in (ConditionOperation.ALL, ConditionOperation.ANY):
            problems.append(f"{path}: compound condition needs operation 'all' or 'any'")
        if not condition.sub_conditions:
            problems.append(f"{path}: compound condition has no sub-conditions")
        for i, sub in enumerate(condition.sub_conditions):
            problems.extend(_condition_problems(sub, f"{path}.{i}"))
        return problems
    if condition.sub_conditions:
        problems.append(f"{path}: only compound conditions may have sub-conditions")
    if condition.operation in (ConditionOperation.ALL, ConditionOperation.ANY):
        problems.append(
            f"{path}: operation '{condition.operation.value}' requires a compound condition"
        )
    if condition.operation == ConditionOperation.RANGE and len(condition.values) < 2:
        problems.append(f"{path}: range needs two values")
    if not condition.values and condition.operation != ConditionOperation.RANGE:
        problems.append(f"{path}: {condition.type.value} condition has no values")
    if condition.type in _SET_ONLY_TYPES and condition.operation not in _SET_OPERATIONS:
        problems.append(
            f"{path}: operation '{condition.operation.value}' "
            f"is not supported for {condition.type.value}"
        )
    return problems


class RuleResolver:
    """Picks the single rule that applies to a transaction on a given card type."""

    def candidates(
        self,
        rules: Iterable[RewardRule],
        txn: TransactionData,
        card_type_id: str | None,
        reference: datetime,
    ) -> list[RewardRule]:
        """All enabled, in-window, matching rules in precedence order."""
        matched: list[RewardRule] = [
            r
            for r in rules
            if r.enabled
            and r.card_type_id == card_type_id
            and r.is_active(reference)
            and matches_all(txn, r.conditions)
        ]
        return sorted(matched, key=_precedence)

    def resolve(
        self,
        rules: Iterable[RewardRule],
        txn: TransactionData,
        card_type_id: str | None,
        reference: datetime,
    ) -> RewardRule | None:
        ordered: list[RewardRule] = self.candidates(rules, txn, card_type_id, reference)
        if not ordered:
            logger.debug("no_rule_matched", card_type_id=card_type_id, transaction_id=txn.id)
            return None
        winner: RewardRule = ordered[0]
        logger.debug(
            "rule_resolved",
            rule_id=winner.id,
            card_type_id=card_type_id,
            transaction_id=txn.id,
            candidates=len(ordered),
        )
        return winner

    def validate_rule(self, rule: RewardRule) -> list[str]:
        """Authoring-time checks. Evaluation never raises for these."""
        problems: list[str] = []
        for i, condition in enumerate(rule.conditions):
            problems.extend(_condition_problems(condition, f"condition {i}"))
        reward = rule.reward
        if reward.block_size < 0:
            problems.append("block size must not be negative")
        if reward.calculation_method == CalculationMethod.TIERED and not reward.bonus_tiers:
            problems.append("tiered rule has no bonus tiers")
        for i, tier in enumerate(reward.bonus_tiers):
            if tier.condition is not None:
                problems.extend(_condition_problems(tier.condition, f"tier {i} condition"))
        if reward.monthly_cap is not None and reward.monthly_cap < 0:
            problems.append("monthly cap must not be negative")
        if reward.monthly_cap is not None and reward.monthly_spend_period_type is None:
            problems.append("monthly cap needs a spend period type")
        if rule.valid_from and rule.valid_until and rule.valid_from > rule.valid_until:
            problems.append("valid_from is after valid_until")
        return problems

    def ensure_valid(self, rule: RewardRule) -> None:
        problems: list[str] = self.validate_rule(rule)
        if problems:
            raise InvalidRuleError(rule.id, problems)


def resolve(
    rules: Sequence[RewardRule],
    txn: TransactionData,
    card_type_id: str | None,
    reference: datetime,
) -> RewardRule | None:
    """Module-level shortcut for :meth:`RuleResolver.resolve`."""
    return RuleResolver().resolve(rules, txn, card_type_id, reference)
