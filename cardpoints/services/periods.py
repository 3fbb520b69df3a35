"""Spend period boundaries: calendar month, statement month and promotional window."""

import calendar
from collections.abc import Iterable
from datetime import datetime, time, timedelta
from decimal import Decimal

from cardpoints.services.schemas import Period, RewardRule, TransactionData
from db.enums import SpendPeriodType


def _days_in_month(year: int, month: int) -> int:
    return calendar.monthrange(year, month)[1]


def _shift_month(year: int, month: int, delta: int) -> tuple[int, int]:
    index: int = year * 12 + (month - 1) + delta
    return index // 12, index % 12 + 1


def _start_of_day(reference: datetime, year: int, month: int, day: int) -> datetime:
    return datetime.combine(
        reference.date().replace(year=year, month=month, day=day),
        time.min,
        tzinfo=reference.tzinfo,
    )


def month_bounds(reference: datetime) -> Period:
    """First through last instant of ``reference``'s calendar month."""
    last_day: int = _days_in_month(reference.year, reference.month)
    start: datetime = _start_of_day(reference, reference.year, reference.month, 1)
    end: datetime = datetime.combine(
        reference.date().replace(day=last_day), time.max, tzinfo=reference.tzinfo
    )
    return Period(start=start, end=end)


def statement_bounds(reference: datetime, start_day: int) -> Period:
    """Statement cycle containing ``reference``.

    The start day is clamped to the month length, so a day-31 cycle starts on
    the 30th in April and on the 28th/29th in February.
    """
    day: int = max(1, start_day)
    this_start: int = min(day, _days_in_month(reference.year, reference.month))
    if reference.day >= this_start:
        year, month = reference.year, reference.month
    else:
        year, month = _shift_month(reference.year, reference.month, -1)
    start: datetime = _start_of_day(
        reference, year, month, min(day, _days_in_month(year, month))
    )
    next_year, next_month = _shift_month(year, month, 1)
    next_start: datetime = _start_of_day(
        reference, next_year, next_month, min(day, _days_in_month(next_year, next_month))
    )
    return Period(start=start, end=next_start - timedelta(microseconds=1))


def promotional_bounds(rule: RewardRule) -> Period | None:
    start: datetime | None = rule.valid_from or rule.reward.promo_start_date
    end: datetime | None = rule.valid_until
    if start is None or end is None:
        return None
    return Period(start=start, end=end)


def period_for(
    period_type: SpendPeriodType,
    rule: RewardRule,
    reference: datetime,
    statement_start_day: int,
) -> Period | None:
    """Boundaries for ``period_type``; None when a promotional window is incomplete."""
    match period_type:
        case SpendPeriodType.CALENDAR:
            return month_bounds(reference)
        case SpendPeriodType.STATEMENT | SpendPeriodType.STATEMENT_MONTH:
            return statement_bounds(reference, statement_start_day)
        case SpendPeriodType.PROMOTIONAL:
            return promotional_bounds(rule)


def in_period(transactions: Iterable[TransactionData], period: Period) -> list[TransactionData]:
    return [t for t in transactions if period.contains(t.date)]


def spend_in_period(transactions: Iterable[TransactionData], period: Period) -> Decimal:
    """Sum payment-currency spend (falling back to amount) over ``period``."""
    return sum((t.effective_amount for t in in_period(transactions, period)), Decimal("0"))
