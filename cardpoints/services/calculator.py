"""Points arithmetic for a resolved rule.

All arithmetic is done in ``Decimal`` so results reproduce issuer statements
exactly. ``nearest`` is half-up (``floor(x + 0.5)``), never banker's rounding.
"""

from collections.abc import Sequence
from decimal import ROUND_CEILING, ROUND_FLOOR, ROUND_HALF_UP, Decimal

from cardpoints.services.schemas import BonusTier, PointsBreakdown, RewardConfig, RewardRule
from db.enums import AmountRounding, CalculationMethod, PointsRounding

_ONE: Decimal = Decimal("1")
_HALF: Decimal = Decimal("0.5")
_FIVE: Decimal = Decimal("5")
_CENT: Decimal = Decimal("0.01")
_ZERO: Decimal = Decimal("0")


def _floor(x: Decimal) -> Decimal:
    return x.to_integral_value(rounding=ROUND_FLOOR)


def _ceiling(x: Decimal) -> Decimal:
    return x.to_integral_value(rounding=ROUND_CEILING)


def _nearest(x: Decimal) -> Decimal:
    return _floor(x + _HALF)


def round_points(x: Decimal, strategy: PointsRounding) -> Decimal:
    match strategy:
        case PointsRounding.FLOOR:
            return _floor(x)
        case PointsRounding.CEILING:
            return _ceiling(x)
        case PointsRounding.NEAREST:
            return _nearest(x)


def round_amount(amount: Decimal, strategy: AmountRounding, block_size: Decimal = _ONE) -> Decimal:
    """Apply amount rounding, then truncate to whole ``block_size`` blocks."""
    match strategy:
        case AmountRounding.FLOOR:
            rounded: Decimal = _floor(amount)
        case AmountRounding.CEILING:
            rounded = _ceiling(amount)
        case AmountRounding.NEAREST:
            rounded = _nearest(amount)
        case AmountRounding.FLOOR5:
            rounded = _floor(amount / _FIVE) * _FIVE
        case AmountRounding.NONE:
            rounded = amount
    if block_size > _ONE:
        rounded = _floor(rounded / block_size) * block_size
    return rounded


def _bonus_rates(
    config: RewardConfig,
    tier: BonusTier | None,
    compound: Sequence[Decimal] | None,
) -> list[Decimal]:
    if config.calculation_method == CalculationMethod.TIERED:
        return [tier.multiplier] if tier is not None else []
    if compound:
        return list(compound)
    return [config.bonus_multiplier]


def compute_points(
    config: RewardConfig,
    amount: Decimal,
    tier: BonusTier | None = None,
    compound_multipliers: Sequence[Decimal] | None = None,
) -> PointsBreakdown:
    """Compute base, bonus and total points for ``amount``.

    ``compound_multipliers`` defaults to the config's own
    ``compound_bonus_multipliers``; each rate is rounded separately before
    summing.
    """
    compound: Sequence[Decimal] | None = (
        compound_multipliers
        if compound_multipliers is not None
        else config.compound_bonus_multipliers
    )
    strategy: PointsRounding = config.points_rounding_strategy
    a: Decimal = round_amount(amount, config.amount_rounding_strategy, config.block_size)

    match config.calculation_method:
        case CalculationMethod.FLAT_RATE:
            base: Decimal = round_points(config.base_multiplier, strategy)
            return PointsBreakdown(base=base, bonus=_ZERO, total=base)
        case CalculationMethod.DIRECT:
            total: Decimal = a.quantize(_CENT, rounding=ROUND_HALF_UP)
            return PointsBreakdown(base=total, bonus=_ZERO, total=total)
        case CalculationMethod.TOTAL_FIRST:
            rate: Decimal = config.base_multiplier + sum(
                _bonus_rates(config, tier, compound), _ZERO
            )
            total = round_points(a * rate, strategy)
            base = round_points(a * config.base_multiplier, strategy)
            return PointsBreakdown(base=base, bonus=total - base, total=total)
        case CalculationMethod.STANDARD | CalculationMethod.TIERED:
            base = round_points(a * config.base_multiplier, strategy)
            bonus: Decimal = sum(
                (round_points(a * m, strategy) for m in _bonus_rates(config, tier, compound)),
                _ZERO,
            )
            return PointsBreakdown(base=base, bonus=bonus, total=base + bonus)


def calculate(
    rule: RewardRule,
    tier: BonusTier | None,
    amount: Decimal,
    compound_multipliers: Sequence[Decimal] | None = None,
) -> PointsBreakdown:
    return compute_points(rule.reward, amount, tier, compound_multipliers)
