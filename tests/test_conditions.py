"""Tests for cardpoints.services.conditions."""

from datetime import UTC, datetime
from decimal import Decimal

from cardpoints.services.conditions import matches, matches_all
from cardpoints.services.schemas import RuleCondition, TransactionData
from db.enums import ConditionOperation, ConditionType


def _txn(**kwargs: object) -> TransactionData:
    defaults: dict[str, object] = {
        "date": datetime(2026, 1, 15, 12, 0, tzinfo=UTC),
        "amount": Decimal("50.00"),
        "currency": "CAD",
        "mcc": "5411",
        "merchant_name": "Loblaws #1234",
        "category": "Groceries",
    }
    defaults.update(kwargs)
    return TransactionData(**defaults)  # type: ignore[arg-type]


def _cond(ctype: str, operation: str, *values: object) -> RuleCondition:
    parsed: RuleCondition | None = RuleCondition.from_dict(
        {"type": ctype, "operation": operation, "values": list(values)}
    )
    assert parsed is not None
    return parsed


class TestMcc:
    def test_include_matches_listed_code(self) -> None:
        assert matches(_txn(), _cond("mcc", "include", "5411", "5412"))

    def test_numeric_values_match_string_code(self) -> None:
        assert matches(_txn(), _cond("mcc", "equals", 5411))

    def test_exclude_rejects_listed_code(self) -> None:
        condition: RuleCondition = _cond("mcc", "exclude", "5812")
        assert not matches(_txn(mcc="5812"), condition)
        assert matches(_txn(mcc="5411"), condition)

    def test_missing_mcc_only_matches_exclude(self) -> None:
        assert not matches(_txn(mcc=None), _cond("mcc", "include", "5411"))
        assert matches(_txn(mcc=None), _cond("mcc", "exclude", "5411"))


class TestTransactionType:
    def test_online_and_in_store(self) -> None:
        online: TransactionData = _txn(is_online=True)
        in_store: TransactionData = _txn(is_online=False)
        assert matches(online, _cond("transaction_type", "include", "online"))
        assert not matches(in_store, _cond("transaction_type", "include", "online"))
        assert matches(in_store, _cond("transaction_type", "include", "in_store"))

    def test_exclude_inverts(self) -> None:
        assert not matches(_txn(is_online=True), _cond("transaction_type", "exclude", "online"))
        assert matches(_txn(is_online=False), _cond("transaction_type", "exclude", "online"))

    def test_contactless(self) -> None:
        condition: RuleCondition = _cond("transaction_type", "include", "contactless")
        assert matches(_txn(is_contactless=True), condition)
        assert not matches(_txn(is_contactless=False), condition)

    def test_unknown_kind_always_matches(self) -> None:
        assert matches(_txn(), _cond("transaction_type", "include", "recurring"))

    def test_legacy_online_condition_is_normalised(self) -> None:
        offline_only: RuleCondition | None = RuleCondition.from_dict(
            {"type": "online", "operation": "equals", "values": [False]}
        )
        assert offline_only is not None
        assert offline_only.type == ConditionType.TRANSACTION_TYPE
        assert offline_only.operation == ConditionOperation.EXCLUDE
        assert not matches(_txn(is_online=True), offline_only)

        online_only: RuleCondition | None = RuleCondition.from_dict(
            {"type": "online", "operation": "equals", "values": ["true"]}
        )
        assert online_only is not None
        assert online_only.operation == ConditionOperation.INCLUDE
        assert matches(_txn(is_online=True), online_only)


class TestCurrencyAndCategory:
    def test_currency_is_case_insensitive(self) -> None:
        assert matches(_txn(currency="cad"), _cond("currency", "equals", "CAD"))
        assert not matches(_txn(currency="USD"), _cond("currency", "include", "CAD", "EUR"))

    def test_currency_exclude(self) -> None:
        assert matches(_txn(currency="CAD"), _cond("currency", "exclude", "USD"))

    def test_category_membership(self) -> None:
        assert matches(_txn(), _cond("category", "include", "groceries", "dining"))
        assert not matches(_txn(category=None), _cond("category", "include", "groceries"))


class TestAmount:
    def test_greater_and_less_than(self) -> None:
        assert matches(_txn(amount=Decimal("100")), _cond("amount", "greater_than", 50))
        assert not matches(_txn(amount=Decimal("50")), _cond("amount", "greater_than", 50))
        assert matches(_txn(amount=Decimal("49.99")), _cond("amount", "less_than", "50"))

    def test_range_is_inclusive(self) -> None:
        condition: RuleCondition = _cond("amount", "range", 10, 50)
        assert matches(_txn(amount=Decimal("10")), condition)
        assert matches(_txn(amount=Decimal("50")), condition)
        assert not matches(_txn(amount=Decimal("50.01")), condition)

    def test_range_with_one_value_never_matches(self) -> None:
        assert not matches(_txn(), _cond("amount", "range", 10))

    def test_non_numeric_values_fail_instead_of_raising(self) -> None:
        assert not matches(_txn(), _cond("amount", "greater_than", "lots"))

    def test_compares_transaction_amount_not_payment_amount(self) -> None:
        txn: TransactionData = _txn(amount=Decimal("100"), payment_amount=Decimal("135"))
        assert matches(txn, _cond("amount", "less_than", 120))


class TestMerchant:
    def test_substring_either_direction(self) -> None:
        loblaws: RuleCondition = _cond("merchant", "include", "loblaws")
        assert matches(_txn(merchant_name="LOBLAWS #1234"), loblaws)
        uber_eats: RuleCondition = _cond("merchant", "include", "Uber Eats")
        assert matches(_txn(merchant_name="Uber"), uber_eats)

    def test_exclude_inverts(self) -> None:
        assert not matches(_txn(), _cond("merchant", "exclude", "loblaws"))
        assert matches(_txn(merchant_name="Metro"), _cond("merchant", "exclude", "loblaws"))

    def test_equals_requires_exact_name(self) -> None:
        costco: RuleCondition = _cond("merchant", "equals", "costco")
        assert matches(_txn(merchant_name="Costco"), costco)
        assert not matches(_txn(merchant_name="Costco Gas"), costco)


class TestCompound:
    def _compound(self, operation: str) -> RuleCondition:
        parsed: RuleCondition | None = RuleCondition.from_dict(
            {
                "type": "compound",
                "operation": operation,
                "values": [],
                "subConditions": [
                    {"type": "mcc", "operation": "include", "values": ["5411"]},
                    {"type": "transaction_type", "operation": "include", "values": ["online"]},
                ],
            }
        )
        assert parsed is not None
        return parsed

    def test_all_is_and(self) -> None:
        condition: RuleCondition = self._compound("all")
        assert matches(_txn(is_online=True), condition)
        assert not matches(_txn(is_online=False), condition)

    def test_any_is_or(self) -> None:
        condition: RuleCondition = self._compound("any")
        assert matches(_txn(mcc="5999", is_online=True), condition)
        assert not matches(_txn(mcc="5999", is_online=False), condition)

    def test_nested_compound(self) -> None:
        nested: RuleCondition | None = RuleCondition.from_dict(
            {
                "type": "compound",
                "operation": "all",
                "subConditions": [
                    {"type": "currency", "operation": "equals", "values": ["CAD"]},
                    {
                        "type": "compound",
                        "operation": "any",
                        "subConditions": [
                            {"type": "mcc", "operation": "include", "values": ["5812"]},
                            {"type": "merchant", "operation": "include", "values": ["loblaws"]},
                        ],
                    },
                ],
            }
        )
        assert nested is not None
        assert matches(_txn(), nested)
        assert not matches(_txn(currency="USD"), nested)


class TestMatchesAll:
    def test_empty_list_is_vacuously_true(self) -> None:
        assert matches_all(_txn(), ())

    def test_implicit_and(self) -> None:
        conditions: list[RuleCondition] = [
            _cond("mcc", "include", "5411"),
            _cond("currency", "equals", "CAD"),
        ]
        assert matches_all(_txn(), conditions)
        assert not matches_all(_txn(currency="USD"), conditions)

    def test_excluded_mcc_fails_rule(self) -> None:
        assert not matches_all(_txn(mcc="5812"), [_cond("mcc", "exclude", "5812")])
