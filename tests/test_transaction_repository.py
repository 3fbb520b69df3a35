"""Tests for cardpoints.services.transaction_repository."""

from datetime import UTC, datetime
from decimal import Decimal

import pytest
from sqlalchemy.orm import Session

from cardpoints.services.errors import RecordNotFoundError
from cardpoints.services.schemas import (
    CalculationResult,
    PaymentMethodData,
    RewardRule,
    TransactionData,
)
from cardpoints.services.transaction_repository import TransactionRepository
from db.models import PaymentMethods, Transactions


def _seed(session: Session) -> None:
    session.add(
        PaymentMethods(
            id="pm-1",
            user_id="user-1",
            name="Cobalt",
            card_type_id="amex-cobalt",
            currency="CAD",
            points_currency="MR",
            statement_start_day=15,
        )
    )
    for txn_id, day, amount, deleted in (
        ("t2", 12, 20.0, False),
        ("t1", 3, 10.0, False),
        ("t3", 20, 30.0, True),
        ("t4", 28, 40.0, False),
    ):
        session.add(
            Transactions(
                id=txn_id,
                user_id="user-1",
                payment_method_id="pm-1",
                date=datetime(2026, 3, day, 12, 0, tzinfo=UTC),
                amount=amount,
                currency="CAD",
                mcc="5411",
                is_deleted=deleted,
            )
        )
    session.flush()


class TestReads:
    def test_get_payment_method(self, session: Session) -> None:
        _seed(session)
        pm: PaymentMethodData = TransactionRepository(session).get_payment_method("pm-1")
        assert pm.card_type_id == "amex-cobalt"
        assert pm.statement_start_day == 15
        assert pm.points_currency == "MR"

    def test_missing_payment_method(self, session: Session) -> None:
        with pytest.raises(RecordNotFoundError):
            TransactionRepository(session).get_payment_method("nope")

    def test_get_transaction_is_utc(self, session: Session) -> None:
        _seed(session)
        txn: TransactionData = TransactionRepository(session).get_transaction("t1")
        assert txn.date.tzinfo is not None
        assert txn.amount == Decimal("10")

    def test_deleted_transaction_is_not_found(self, session: Session) -> None:
        _seed(session)
        with pytest.raises(RecordNotFoundError):
            TransactionRepository(session).get_transaction("t3")

    def test_list_is_ordered_and_skips_deleted(self, session: Session) -> None:
        _seed(session)
        txns: list[TransactionData] = TransactionRepository(session).list_for_payment_method(
            "pm-1"
        )
        assert [t.id for t in txns] == ["t1", "t2", "t4"]

    def test_list_with_bounds(self, session: Session) -> None:
        _seed(session)
        txns: list[TransactionData] = TransactionRepository(session).list_for_payment_method(
            "pm-1",
            start=datetime(2026, 3, 10, tzinfo=UTC),
            end=datetime(2026, 3, 27, tzinfo=UTC),
        )
        assert [t.id for t in txns] == ["t2"]


class TestRecordPoints:
    def test_writes_breakdown_and_rule(self, session: Session) -> None:
        _seed(session)
        result: CalculationResult = CalculationResult(
            total_points=Decimal("50"),
            base_points=Decimal("10"),
            bonus_points=Decimal("40"),
            points_currency="MR",
            applied_rule=RewardRule(id="rule-1", card_type_id="amex-cobalt", name="Groceries"),
        )
        updated: TransactionData = TransactionRepository(session).record_points("t1", result)
        assert updated.reward_points == Decimal("50")
        assert updated.bonus_points == Decimal("40")
        assert updated.applied_rule_id == "rule-1"

    def test_missing_transaction(self, session: Session) -> None:
        _seed(session)
        result: CalculationResult = CalculationResult.zero("MR", "none")
        with pytest.raises(RecordNotFoundError) as exc_info:
            TransactionRepository(session).record_points("t3", result)
        assert exc_info.value.operation == "record_points"
