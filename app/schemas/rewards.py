"""Reward calculation request schemas."""

from datetime import datetime

from pydantic import Field

from app.schemas.common import CamelModel


class TransactionIn(CamelModel):
    id: str | None = None
    date: datetime
    amount: float
    currency: str = Field(..., min_length=3, max_length=3)
    payment_amount: float | None = None
    payment_currency: str | None = None
    mcc: str | None = None
    merchant_name: str | None = None
    category: str | None = None
    is_online: bool = False
    is_contactless: bool = False


class CalculateRequest(CamelModel):
    payment_method_id: str
    transaction: TransactionIn
    reference_date: datetime | None = None
