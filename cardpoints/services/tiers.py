"""Bonus tier selection for tiered reward rules."""

from collections.abc import Sequence
from decimal import Decimal

from cardpoints.services.conditions import matches
from cardpoints.services.schemas import BonusTier, TransactionData


def _within(value: Decimal, low: Decimal | None, high: Decimal | None) -> bool:
    if low is not None and value < low:
        return False
    if high is not None and value > high:
        return False
    return True


def is_eligible(
    tier: BonusTier,
    amount: Decimal,
    monthly_spend: Decimal | None,
    txn: TransactionData,
) -> bool:
    if not _within(amount, tier.min_amount, tier.max_amount):
        return False
    spend: Decimal = monthly_spend if monthly_spend is not None else Decimal("0")
    if not _within(spend, tier.min_spend, tier.max_spend):
        return False
    return tier.condition is None or matches(txn, tier.condition)


def select_tier(
    tiers: Sequence[BonusTier],
    amount: Decimal,
    monthly_spend: Decimal | None,
    txn: TransactionData,
) -> BonusTier | None:
    """Return the highest-priority eligible tier, or None.

    Tiers without a priority sort as 0; equal priorities keep declaration order
    since ``sorted`` is stable.
    """
    ordered: list[BonusTier] = sorted(tiers, key=lambda t: -(t.priority or 0))
    for tier in ordered:
        if is_eligible(tier, amount, monthly_spend, txn):
            return tier
    return None
