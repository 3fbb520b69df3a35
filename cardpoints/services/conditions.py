"""Condition evaluation against a single transaction."""

from collections.abc import Iterable
from decimal import Decimal

from cardpoints.services._helpers import to_decimal
from cardpoints.services.schemas import RuleCondition, TransactionData
from db.enums import ConditionOperation, ConditionType, TransactionKind

Op = ConditionOperation


def _lowered(values: Iterable[object]) -> list[str]:
    return [str(v).strip().lower() for v in values]


def _numbers(values: Iterable[object]) -> list[Decimal]:
    parsed: list[Decimal | None] = [to_decimal(v) for v in values]
    return [d for d in parsed if d is not None]


def _compare_text(operation: ConditionOperation, actual: str | None, values: list[str]) -> bool:
    if actual is None:
        return operation == Op.EXCLUDE
    key: str = actual.strip().lower()
    match operation:
        case Op.INCLUDE | Op.EQUALS:
            return key in values
        case Op.EXCLUDE:
            return key not in values
        case Op.GREATER_THAN:
            return bool(values) and key > values[0]
        case Op.LESS_THAN:
            return bool(values) and key < values[0]
        case Op.RANGE:
            return len(values) >= 2 and values[0] <= key <= values[1]
        case _:
            return True


def _compare_number(
    operation: ConditionOperation,
    actual: Decimal,
    raw_values: tuple[object, ...],
) -> bool:
    numbers: list[Decimal] = _numbers(raw_values)
    match operation:
        case Op.INCLUDE | Op.EQUALS:
            return actual in numbers
        case Op.EXCLUDE:
            return actual not in numbers
        case Op.GREATER_THAN:
            return bool(numbers) and actual > numbers[0]
        case Op.LESS_THAN:
            return bool(numbers) and actual < numbers[0]
        case Op.RANGE:
            return len(numbers) >= 2 and numbers[0] <= actual <= numbers[1]
        case _:
            return True


def _matches_mcc(condition: RuleCondition, txn: TransactionData) -> bool:
    codes: set[str] = {str(v).strip() for v in condition.values}
    mcc: str | None = txn.mcc.strip() if txn.mcc else None
    match condition.operation:
        case Op.INCLUDE | Op.EQUALS:
            return mcc is not None and mcc in codes
        case Op.EXCLUDE:
            return mcc is None or mcc not in codes
        case _:
            return True


def _type_matches(kind: str, txn: TransactionData) -> bool:
    match kind:
        case TransactionKind.ONLINE.value:
            return txn.is_online
        case TransactionKind.IN_STORE.value:
            return not txn.is_online
        case TransactionKind.CONTACTLESS.value:
            return txn.is_contactless
        case _:
            return True


def _matches_transaction_type(condition: RuleCondition, txn: TransactionData) -> bool:
    kinds: list[str] = _lowered(condition.values)
    if not kinds:
        return True
    hit: bool = any(_type_matches(k, txn) for k in kinds)
    match condition.operation:
        case Op.INCLUDE | Op.EQUALS:
            return hit
        case Op.EXCLUDE:
            return not hit
        case _:
            return True


def _matches_merchant(condition: RuleCondition, txn: TransactionData) -> bool:
    needles: list[str] = [v for v in _lowered(condition.values) if v]
    name: str = (txn.merchant_name or "").strip().lower()
    match condition.operation:
        case Op.INCLUDE:
            return bool(name) and any(n in name or name in n for n in needles)
        case Op.EXCLUDE:
            return not name or not any(n in name or name in n for n in needles)
        case Op.EQUALS:
            return bool(name) and name in needles
        case _:
            return True


def _matches_compound(condition: RuleCondition, txn: TransactionData) -> bool:
    subs: tuple[RuleCondition, ...] = condition.sub_conditions
    match condition.operation:
        case Op.ANY:
            return not subs or any(matches(txn, sub) for sub in subs)
        case Op.ALL:
            return all(matches(txn, sub) for sub in subs)
        case _:
            return True


def matches(txn: TransactionData, condition: RuleCondition) -> bool:
    """Evaluate one condition. Malformed values fail the match rather than raise."""
    match condition.type:
        case ConditionType.MCC:
            return _matches_mcc(condition, txn)
        case ConditionType.TRANSACTION_TYPE:
            return _matches_transaction_type(condition, txn)
        case ConditionType.CURRENCY:
            return _compare_text(condition.operation, txn.currency, _lowered(condition.values))
        case ConditionType.CATEGORY:
            return _compare_text(condition.operation, txn.category, _lowered(condition.values))
        case ConditionType.MERCHANT:
            return _matches_merchant(condition, txn)
        case ConditionType.AMOUNT:
            return _compare_number(condition.operation, txn.amount, condition.values)
        case ConditionType.COMPOUND:
            return _matches_compound(condition, txn)


def matches_all(txn: TransactionData, conditions: Iterable[RuleCondition]) -> bool:
    """Implicit AND over a rule's condition list; empty is vacuously true."""
    return all(matches(txn, c) for c in conditions)
