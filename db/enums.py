"""Enumeration types for the card points reward engine."""

from enum import Enum


class ConditionType(str, Enum):
    """Transaction attribute a rule condition inspects."""

    MCC = "mcc"
    TRANSACTION_TYPE = "transaction_type"
    CURRENCY = "currency"
    MERCHANT = "merchant"
    AMOUNT = "amount"
    CATEGORY = "category"
    COMPOUND = "compound"


class ConditionOperation(str, Enum):
    """How a condition compares its values against the transaction."""

    INCLUDE = "include"
    EXCLUDE = "exclude"
    EQUALS = "equals"
    GREATER_THAN = "greater_than"
    LESS_THAN = "less_than"
    RANGE = "range"
    ANY = "any"
    ALL = "all"


class CalculationMethod(str, Enum):
    """How base and bonus points are derived from the amount."""

    STANDARD = "standard"
    TOTAL_FIRST = "total_first"
    TIERED = "tiered"
    FLAT_RATE = "flat_rate"
    DIRECT = "direct"


class PointsRounding(str, Enum):
    """Rounding applied to computed points."""

    FLOOR = "floor"
    CEILING = "ceiling"
    NEAREST = "nearest"


class AmountRounding(str, Enum):
    """Rounding applied to the spend amount before multiplication."""

    FLOOR = "floor"
    CEILING = "ceiling"
    NEAREST = "nearest"
    FLOOR5 = "floor5"
    NONE = "none"


class CapType(str, Enum):
    """What a monthly cap limits."""

    BONUS_POINTS = "bonus_points"
    SPEND_AMOUNT = "spend_amount"


class SpendPeriodType(str, Enum):
    """Period over which caps and minimum spend are measured."""

    CALENDAR = "calendar"
    STATEMENT = "statement"
    STATEMENT_MONTH = "statement_month"
    PROMOTIONAL = "promotional"


# Older rule records use these names for the same periods.
LEGACY_PERIOD_ALIASES: dict[str, SpendPeriodType] = {
    "calendar_month": SpendPeriodType.CALENDAR,
    "promotional_period": SpendPeriodType.PROMOTIONAL,
}


class TransactionKind(str, Enum):
    """Values understood by transaction_type conditions."""

    PURCHASE = "purchase"
    REFUND = "refund"
    ADJUSTMENT = "adjustment"
    ONLINE = "online"
    CONTACTLESS = "contactless"
    IN_STORE = "in_store"
