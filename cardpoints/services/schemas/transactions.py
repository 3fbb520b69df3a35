"""Transaction and payment method data transfer objects."""

from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal


@dataclass(frozen=True, slots=True)
class PaymentMethodData:
    id: str
    card_type_id: str | None = None
    name: str = ""
    issuer: str | None = None
    currency: str = "USD"
    points_currency: str | None = None
    statement_start_day: int | None = None
    is_monthly_statement: bool = False


@dataclass(frozen=True, slots=True)
class TransactionData:
    date: datetime
    amount: Decimal
    currency: str
    id: str | None = None
    payment_method_id: str | None = None
    payment_amount: Decimal | None = None
    payment_currency: str | None = None
    mcc: str | None = None
    merchant_name: str | None = None
    category: str | None = None
    is_online: bool = False
    is_contactless: bool = False
    transaction_type: str = "purchase"
    base_points: Decimal = Decimal("0")
    bonus_points: Decimal = Decimal("0")
    reward_points: Decimal = Decimal("0")
    applied_rule_id: str | None = None

    @property
    def effective_amount(self) -> Decimal:
        """Amount in the payment method's currency; points are always earned on this."""
        return self.payment_amount if self.payment_amount is not None else self.amount
