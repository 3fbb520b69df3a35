"""Cap usage derived on demand from transaction history.

Nothing here is persisted: every call recomputes usage for each cap, or shared
cap group, from the transactions supplied.
"""

from collections.abc import Iterable, Sequence
from datetime import datetime
from decimal import Decimal

import structlog

from cardpoints.services.periods import in_period, period_for
from cardpoints.services.schemas import (
    CapUsageResult,
    PaymentMethodData,
    Period,
    RewardRule,
    TransactionData,
)
from db.enums import CapType, SpendPeriodType

logger = structlog.get_logger(__name__)

_HUNDRED: Decimal = Decimal("100")
_ZERO: Decimal = Decimal("0")


def _is_capped(rule: RewardRule) -> bool:
    return rule.reward.monthly_cap is not None and rule.reward.monthly_spend_period_type is not None


def _group(rules: Iterable[RewardRule]) -> dict[str, list[RewardRule]]:
    groups: dict[str, list[RewardRule]] = {}
    for rule in rules:
        if _is_capped(rule):
            groups.setdefault(rule.cap_identifier, []).append(rule)
    return groups


def _percentage(used: Decimal, cap: Decimal) -> float:
    if cap <= 0:
        return 100.0 if used > 0 else 0.0
    raw: Decimal = used / cap * _HUNDRED
    return float(min(_HUNDRED, max(_ZERO, raw)))


def _label(members: Sequence[RewardRule], period_type: SpendPeriodType) -> str:
    if len(members) == 1:
        return members[0].name
    if period_type == SpendPeriodType.PROMOTIONAL:
        return "Promotional Bonus Cap"
    return f"{len(members)} Rules Shared Cap"


class CapUsageService:
    """Computes how much of each monthly or promotional cap has been used."""

    def __init__(self, default_statement_day: int = 1, attribute_by_rule: bool = False) -> None:
        self.default_statement_day: int = default_statement_day
        self.attribute_by_rule: bool = attribute_by_rule

    def cap_usage(
        self,
        transactions: Sequence[TransactionData],
        rules: Sequence[RewardRule],
        payment_method: PaymentMethodData,
        reference: datetime,
    ) -> list[CapUsageResult]:
        results: list[CapUsageResult] = []
        for identifier, members in _group(rules).items():
            usage: CapUsageResult | None = self._group_usage(
                identifier, members, transactions, payment_method, reference
            )
            if usage is not None:
                results.append(usage)
        logger.debug(
            "cap_usage_computed",
            payment_method_id=payment_method.id,
            caps=len(results),
            transactions=len(transactions),
        )
        return results

    def usage_for_rule(
        self,
        rule: RewardRule,
        rules: Sequence[RewardRule],
        transactions: Sequence[TransactionData],
        payment_method: PaymentMethodData,
        reference: datetime,
    ) -> CapUsageResult | None:
        """Usage of the cap ``rule`` belongs to, including shared group members."""
        if rule.reward.monthly_cap is None:
            return None
        identifier: str = rule.cap_identifier
        members: list[RewardRule] = _group(rules).get(identifier) or [rule]
        return self._group_usage(identifier, members, transactions, payment_method, reference)

    def period(
        self,
        rule: RewardRule,
        payment_method: PaymentMethodData,
        reference: datetime,
    ) -> Period | None:
        period_type: SpendPeriodType = (
            rule.reward.monthly_spend_period_type or SpendPeriodType.CALENDAR
        )
        return period_for(period_type, rule, reference, self._statement_day(payment_method))

    def _statement_day(self, payment_method: PaymentMethodData) -> int:
        return payment_method.statement_start_day or self.default_statement_day

    def _group_usage(
        self,
        identifier: str,
        members: Sequence[RewardRule],
        transactions: Sequence[TransactionData],
        payment_method: PaymentMethodData,
        reference: datetime,
    ) -> CapUsageResult | None:
        first: RewardRule = members[0]
        period_type: SpendPeriodType = (
            first.reward.monthly_spend_period_type or SpendPeriodType.CALENDAR
        )
        cap: Decimal | None = first.reward.monthly_cap
        if cap is None:
            return None
        if (
            period_type == SpendPeriodType.PROMOTIONAL
            and first.valid_until is not None
            and reference > first.valid_until
        ):
            logger.debug("cap_skipped_expired", identifier=identifier)
            return None
        period: Period | None = self.period(first, payment_method, reference)
        if period is None:
            logger.warning(
                "cap_skipped_no_period", identifier=identifier, period_type=period_type.value
            )
            return None

        own: list[TransactionData] = [
            t
            for t in transactions
            if t.payment_method_id is None or t.payment_method_id == payment_method.id
        ]
        if self.attribute_by_rule:
            member_ids: set[str] = {m.id for m in members}
            own = [t for t in own if t.applied_rule_id in member_ids]
        counted: list[TransactionData] = in_period(own, period)

        cap_type: CapType = first.reward.effective_cap_type
        used: Decimal
        if cap_type == CapType.SPEND_AMOUNT:
            used = sum((t.effective_amount for t in counted), _ZERO)
        else:
            used = sum((t.bonus_points for t in counted), _ZERO)

        return CapUsageResult(
            identifier=identifier,
            rule_name=_label(members, period_type),
            used=used,
            cap=cap,
            cap_type=cap_type,
            period_type=period_type,
            period_start=period.start,
            period_end=period.end,
            percentage=_percentage(used, cap),
            valid_until=first.valid_until,
            member_rule_ids=[m.id for m in members],
        )
