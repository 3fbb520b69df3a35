"""Reward service: resolve, tier, calculate and enforce caps for one transaction."""

from collections.abc import Sequence
from datetime import datetime
from decimal import Decimal

import structlog

from cardpoints.services.calculator import calculate
from cardpoints.services.cap_usage import CapUsageService
from cardpoints.services.periods import spend_in_period
from cardpoints.services.rules_engine import RuleResolver
from cardpoints.services.schemas import (
    BonusTier,
    CalculationResult,
    CapUsageResult,
    PaymentMethodData,
    Period,
    PointsBreakdown,
    RewardRule,
    TransactionData,
)
from cardpoints.services.tiers import select_tier
from db.enums import CalculationMethod, CapType

logger = structlog.get_logger(__name__)

_ZERO: Decimal = Decimal("0")


def _fmt(value: Decimal) -> str:
    return format(value.normalize(), "f")


class RewardService:
    """Computes the points a single transaction earns on a payment method."""

    def __init__(
        self,
        resolver: RuleResolver | None = None,
        cap_service: CapUsageService | None = None,
        default_points_currency: str = "points",
    ) -> None:
        self.resolver: RuleResolver = resolver or RuleResolver()
        self.cap_service: CapUsageService = cap_service or CapUsageService()
        self.default_points_currency: str = default_points_currency

    def calculate_rewards(
        self,
        transaction: TransactionData,
        payment_method: PaymentMethodData,
        rules: Sequence[RewardRule],
        history: Sequence[TransactionData] = (),
        reference: datetime | None = None,
    ) -> CalculationResult:
        at: datetime = reference or transaction.date
        currency: str = payment_method.points_currency or self.default_points_currency
        if not rules:
            return CalculationResult.zero(currency, "No reward rules configured for this card")

        candidates: list[RewardRule] = self.resolver.candidates(
            rules, transaction, payment_method.card_type_id, at
        )
        if not candidates:
            return CalculationResult.zero(currency, "No reward rule matches this transaction")

        # A transaction being recalculated must not count towards its own spend or cap.
        prior: list[TransactionData] = [
            t for t in history if transaction.id is None or t.id != transaction.id
        ]
        messages: list[str] = []
        for rule in candidates:
            period: Period | None = self.cap_service.period(rule, payment_method, at)
            spend: Decimal = spend_in_period(prior, period) if period else _ZERO
            minimum: Decimal | None = rule.reward.monthly_min_spend
            if minimum is not None and spend < minimum:
                messages.append(
                    f"Monthly minimum spend of {_fmt(minimum)} not met for {rule.name}"
                )
                continue
            result: CalculationResult = self._apply(
                rule, transaction, payment_method, rules, prior, spend, at
            )
            result.messages[:0] = messages
            logger.info(
                "reward_calculated",
                transaction_id=transaction.id,
                rule_id=rule.id,
                total=str(result.total_points),
                bonus=str(result.bonus_points),
            )
            return result

        fallback: str = payment_method.points_currency or candidates[0].reward.points_currency
        result = CalculationResult.zero(
            fallback, "Monthly minimum spend not met", min_spend_met=False
        )
        result.messages[:0] = messages
        return result

    def _apply(
        self,
        rule: RewardRule,
        transaction: TransactionData,
        payment_method: PaymentMethodData,
        rules: Sequence[RewardRule],
        prior: Sequence[TransactionData],
        spend: Decimal,
        at: datetime,
    ) -> CalculationResult:
        config = rule.reward
        amount: Decimal = transaction.effective_amount
        tier: BonusTier | None = None
        if config.calculation_method == CalculationMethod.TIERED:
            tier = select_tier(config.bonus_tiers, amount, spend, transaction)

        breakdown: PointsBreakdown = calculate(rule, tier, amount)
        base: Decimal = breakdown.base
        bonus: Decimal = breakdown.bonus
        messages: list[str] = []
        remaining_bonus: Decimal | None = None

        usage: CapUsageResult | None = self.cap_service.usage_for_rule(
            rule, rules, prior, payment_method, at
        )
        if usage is not None and usage.cap_type == CapType.SPEND_AMOUNT:
            remaining_spend: Decimal = max(_ZERO, usage.cap - usage.used)
            if remaining_spend < amount:
                capped: PointsBreakdown = calculate(rule, tier, remaining_spend)
                bonus = max(_ZERO, capped.total - capped.base)
                messages.append(
                    "Monthly spend cap reached"
                    if remaining_spend == 0
                    else f"Bonus earned on {_fmt(remaining_spend)} of spend due to monthly limit"
                )
        elif usage is not None:
            remaining_bonus = max(_ZERO, usage.cap - usage.used)
            if remaining_bonus == 0 and bonus > 0:
                bonus = _ZERO
                messages.append("Monthly bonus points cap reached")
            elif bonus > remaining_bonus:
                bonus = remaining_bonus
                messages.append(f"Bonus points capped at {_fmt(bonus)} due to monthly limit")
            remaining_bonus = max(_ZERO, remaining_bonus - bonus)

        return CalculationResult(
            total_points=base + bonus,
            base_points=base,
            bonus_points=bonus,
            points_currency=payment_method.points_currency or config.points_currency,
            min_spend_met=True,
            applied_rule=rule,
            applied_tier=tier,
            remaining_monthly_bonus_points=remaining_bonus,
            messages=messages,
        )
