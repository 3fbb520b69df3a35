"""Transaction store: reads history for the engine and records computed points."""

from collections.abc import Sequence
from datetime import UTC, datetime
from decimal import Decimal

import structlog
from sqlalchemy import Select, Update, select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from cardpoints.services._helpers import as_utc, to_decimal, utc_now
from cardpoints.services.errors import PersistenceError, RecordNotFoundError
from cardpoints.services.schemas import CalculationResult, PaymentMethodData, TransactionData
from db.models import PaymentMethods, Transactions

logger = structlog.get_logger(__name__)

_ZERO: Decimal = Decimal("0")


def payment_method_from_row(row: PaymentMethods) -> PaymentMethodData:
    return PaymentMethodData(
        id=row.id,
        card_type_id=row.card_type_id,
        name=row.name,
        issuer=row.issuer,
        currency=row.currency,
        points_currency=row.points_currency,
        statement_start_day=row.statement_start_day,
        is_monthly_statement=bool(row.is_monthly_statement),
    )


def transaction_from_row(row: Transactions) -> TransactionData:
    return TransactionData(
        id=row.id,
        date=as_utc(row.date) or utc_now(),
        amount=to_decimal(row.amount, _ZERO) or _ZERO,
        currency=row.currency,
        payment_method_id=row.payment_method_id,
        payment_amount=to_decimal(row.payment_amount),
        payment_currency=row.payment_currency,
        mcc=row.mcc,
        merchant_name=row.merchant_name,
        category=row.category,
        is_online=bool(row.is_online),
        is_contactless=bool(row.is_contactless),
        base_points=to_decimal(row.base_points, _ZERO) or _ZERO,
        bonus_points=to_decimal(row.bonus_points, _ZERO) or _ZERO,
        reward_points=to_decimal(row.reward_points, _ZERO) or _ZERO,
        applied_rule_id=row.applied_rule_id,
    )


def _utc(value: datetime) -> datetime:
    # SQLite stores the wall-clock value only, so compare everything in UTC.
    return value.astimezone(UTC) if value.tzinfo else value.replace(tzinfo=UTC)


class TransactionRepository:
    """Read and write access to payment methods and their transactions."""

    def __init__(self, session: Session) -> None:
        self.session: Session = session

    def get_payment_method(self, payment_method_id: str) -> PaymentMethodData:
        operation: str = "get_payment_method"
        try:
            row: PaymentMethods | None = self.session.get(PaymentMethods, payment_method_id)
        except SQLAlchemyError as exc:
            raise PersistenceError("Failed to read payment method", operation, exc) from exc
        if row is None:
            raise RecordNotFoundError(f"Payment method {payment_method_id} not found", operation)
        return payment_method_from_row(row)

    def get_transaction(self, transaction_id: str) -> TransactionData:
        operation: str = "get_transaction"
        try:
            row: Transactions | None = self.session.get(Transactions, transaction_id)
        except SQLAlchemyError as exc:
            raise PersistenceError("Failed to read transaction", operation, exc) from exc
        if row is None or row.is_deleted:
            raise RecordNotFoundError(f"Transaction {transaction_id} not found", operation)
        return transaction_from_row(row)

    def list_for_payment_method(
        self,
        payment_method_id: str,
        start: datetime | None = None,
        end: datetime | None = None,
    ) -> list[TransactionData]:
        """Non-deleted transactions for a payment method, oldest first, bounds inclusive."""
        operation: str = "list_for_payment_method"
        stmt: Select[tuple[Transactions]] = select(Transactions).where(
            Transactions.payment_method_id == payment_method_id,
            Transactions.is_deleted.is_(False),
        )
        if start is not None:
            stmt = stmt.where(Transactions.date >= _utc(start))
        if end is not None:
            stmt = stmt.where(Transactions.date <= _utc(end))
        stmt = stmt.order_by(Transactions.date, Transactions.id)
        try:
            rows: Sequence[Transactions] = self.session.scalars(stmt).all()
        except SQLAlchemyError as exc:
            raise PersistenceError("Failed to list transactions", operation, exc) from exc
        return [transaction_from_row(r) for r in rows]

    def record_points(self, transaction_id: str, result: CalculationResult) -> TransactionData:
        """Store a calculation on its transaction. The engine itself never writes."""
        operation: str = "record_points"
        stmt: Update = (
            update(Transactions)
            .where(Transactions.id == transaction_id, Transactions.is_deleted.is_(False))
            .values(
                reward_points=float(result.total_points),
                base_points=float(result.base_points),
                bonus_points=float(result.bonus_points),
                applied_rule_id=result.applied_rule_id,
                updated_at=utc_now(),
            )
            .execution_options(synchronize_session="fetch")
        )
        try:
            affected: int = self.session.execute(stmt).rowcount
        except SQLAlchemyError as exc:
            self.session.rollback()
            raise PersistenceError("Failed to record points", operation, exc) from exc
        if affected == 0:
            raise RecordNotFoundError("Update affected no rows", operation)
        logger.debug(
            "points_recorded",
            transaction_id=transaction_id,
            total=str(result.total_points),
            rule_id=result.applied_rule_id,
        )
        return self.get_transaction(transaction_id)
