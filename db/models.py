"""SQLAlchemy ORM models for rules, payment methods and transactions."""

from datetime import UTC, datetime
from uuid import uuid4

from sqlalchemy import DateTime, ForeignKey, MetaData
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship

convention = {
    "ix": "ix_%(column_0_label)s",
    "uq": "uq_%(table_name)s_%(column_0_name)s",
    "ck": "ck_%(table_name)s_%(constraint_name)s",
    "fk": "fk_%(table_name)s_%(column_0_name)s_%(referred_table_name)s",
    "pk": "pk_%(table_name)s",
}


class Base(DeclarativeBase):
    metadata = MetaData(naming_convention=convention)


def generate_uuid() -> str:
    return str(uuid4())


def utc_now() -> datetime:
    return datetime.now(UTC)


class RewardRules(Base):
    __tablename__ = "reward_rules"

    id: Mapped[str] = mapped_column(primary_key=True, default=generate_uuid)
    card_type_id: Mapped[str] = mapped_column(nullable=False, index=True)
    name: Mapped[str] = mapped_column(nullable=False)
    description: Mapped[str | None] = mapped_column()
    enabled: Mapped[bool] = mapped_column(nullable=False, default=True)
    priority: Mapped[int] = mapped_column(nullable=False, default=0)
    conditions: Mapped[str] = mapped_column(nullable=False, default="[]")
    bonus_tiers: Mapped[str] = mapped_column(nullable=False, default="[]")
    calculation_method: Mapped[str] = mapped_column(nullable=False, default="standard")
    base_multiplier: Mapped[float] = mapped_column(nullable=False, default=1)
    bonus_multiplier: Mapped[float] = mapped_column(nullable=False, default=0)
    compound_bonus_multipliers: Mapped[str | None] = mapped_column()
    points_rounding_strategy: Mapped[str] = mapped_column(nullable=False, default="nearest")
    amount_rounding_strategy: Mapped[str] = mapped_column(nullable=False, default="none")
    block_size: Mapped[float] = mapped_column(nullable=False, default=1)
    monthly_cap: Mapped[float | None] = mapped_column()
    monthly_cap_type: Mapped[str | None] = mapped_column()
    monthly_min_spend: Mapped[float | None] = mapped_column()
    monthly_spend_period_type: Mapped[str | None] = mapped_column()
    cap_group_id: Mapped[str | None] = mapped_column(index=True)
    promo_start_date: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    points_currency: Mapped[str | None] = mapped_column()
    valid_from: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    valid_until: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    created_by: Mapped[str] = mapped_column(nullable=False, default="system")
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utc_now
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utc_now
    )


class PaymentMethods(Base):
    __tablename__ = "payment_methods"

    id: Mapped[str] = mapped_column(primary_key=True, default=generate_uuid)
    user_id: Mapped[str] = mapped_column(nullable=False, index=True)
    name: Mapped[str] = mapped_column(nullable=False)
    issuer: Mapped[str | None] = mapped_column()
    card_type_id: Mapped[str | None] = mapped_column()
    currency: Mapped[str] = mapped_column(nullable=False, default="USD")
    points_currency: Mapped[str | None] = mapped_column()
    statement_start_day: Mapped[int | None] = mapped_column()
    is_monthly_statement: Mapped[bool] = mapped_column(nullable=False, default=False)
    active: Mapped[bool] = mapped_column(nullable=False, default=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utc_now
    )
    transactions = relationship(
        "Transactions",
        back_populates="payment_method",
        cascade="all, delete-orphan",
        order_by="Transactions.date",
    )


class Transactions(Base):
    __tablename__ = "transactions"

    id: Mapped[str] = mapped_column(primary_key=True, default=generate_uuid)
    user_id: Mapped[str] = mapped_column(nullable=False, index=True)
    payment_method_id: Mapped[str] = mapped_column(
        ForeignKey("payment_methods.id"),
        nullable=False,
        index=True,
    )
    date: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    merchant_name: Mapped[str | None] = mapped_column()
    mcc: Mapped[str | None] = mapped_column()
    category: Mapped[str | None] = mapped_column()
    amount: Mapped[float] = mapped_column(nullable=False)
    currency: Mapped[str] = mapped_column(nullable=False)
    payment_amount: Mapped[float | None] = mapped_column()
    payment_currency: Mapped[str | None] = mapped_column()
    is_online: Mapped[bool] = mapped_column(nullable=False, default=False)
    is_contactless: Mapped[bool] = mapped_column(nullable=False, default=False)
    reward_points: Mapped[float] = mapped_column(nullable=False, default=0)
    base_points: Mapped[float] = mapped_column(nullable=False, default=0)
    bonus_points: Mapped[float] = mapped_column(nullable=False, default=0)
    applied_rule_id: Mapped[str | None] = mapped_column()
    is_deleted: Mapped[bool] = mapped_column(nullable=False, default=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utc_now
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utc_now
    )
    payment_method = relationship("PaymentMethods", back_populates="transactions")
