"""Reward calculation and cap usage endpoints."""

from datetime import datetime
from decimal import Decimal

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from app.dependencies import (
    get_api_key,
    get_cap_usage_service,
    get_db,
    get_reward_service,
    get_rule_repository,
)
from app.schemas.common import ErrorResponse
from app.schemas.rewards import CalculateRequest, TransactionIn
from cardpoints.services._helpers import as_utc, to_decimal, utc_now
from cardpoints.services.cap_usage import CapUsageService
from cardpoints.services.reward_service import RewardService
from cardpoints.services.rule_mapper import cap_usage_to_dict, result_to_dict
from cardpoints.services.rule_repository import RuleRepository
from cardpoints.services.schemas import (
    CalculationResult,
    PaymentMethodData,
    RewardRule,
    TransactionData,
)
from cardpoints.services.transaction_repository import TransactionRepository

router = APIRouter(
    prefix="/api",
    tags=["rewards"],
    responses={401: {"model": ErrorResponse}, 404: {"model": ErrorResponse}},
)


def _transaction(body: TransactionIn, payment_method_id: str) -> TransactionData:
    return TransactionData(
        id=body.id,
        date=as_utc(body.date) or utc_now(),
        amount=to_decimal(body.amount, Decimal("0")) or Decimal("0"),
        currency=body.currency.upper(),
        payment_method_id=payment_method_id,
        payment_amount=to_decimal(body.payment_amount),
        payment_currency=body.payment_currency,
        mcc=body.mcc,
        merchant_name=body.merchant_name,
        category=body.category,
        is_online=body.is_online,
        is_contactless=body.is_contactless,
    )


def _rules_for(repo: RuleRepository, payment_method: PaymentMethodData) -> tuple[RewardRule, ...]:
    # Unlinked cards have no rules, but the load still enforces authentication.
    return repo.load_rules(payment_method.card_type_id or "")


@router.post("/rewards/calculate")
def calculate_rewards(
    body: CalculateRequest,
    db: Session = Depends(get_db),
    repo: RuleRepository = Depends(get_rule_repository),
    svc: RewardService = Depends(get_reward_service),
):
    txns: TransactionRepository = TransactionRepository(db)
    payment_method: PaymentMethodData = txns.get_payment_method(body.payment_method_id)
    rules: tuple[RewardRule, ...] = _rules_for(repo, payment_method)
    history: list[TransactionData] = txns.list_for_payment_method(payment_method.id)
    result: CalculationResult = svc.calculate_rewards(
        _transaction(body.transaction, payment_method.id),
        payment_method,
        rules,
        history,
        as_utc(body.reference_date),
    )
    return result_to_dict(result)


@router.post("/transactions/{transaction_id}/points")
def record_transaction_points(
    transaction_id: str,
    db: Session = Depends(get_db),
    repo: RuleRepository = Depends(get_rule_repository),
    svc: RewardService = Depends(get_reward_service),
    _key: str = Depends(get_api_key),
):
    txns: TransactionRepository = TransactionRepository(db)
    transaction: TransactionData = txns.get_transaction(transaction_id)
    payment_method: PaymentMethodData = txns.get_payment_method(
        transaction.payment_method_id or ""
    )
    rules: tuple[RewardRule, ...] = _rules_for(repo, payment_method)
    history: list[TransactionData] = txns.list_for_payment_method(payment_method.id)
    result: CalculationResult = svc.calculate_rewards(transaction, payment_method, rules, history)
    txns.record_points(transaction_id, result)
    return result_to_dict(result)


@router.get("/payment-methods/{payment_method_id}/cap-usage")
def get_cap_usage(
    payment_method_id: str,
    reference_date: datetime | None = None,
    db: Session = Depends(get_db),
    repo: RuleRepository = Depends(get_rule_repository),
    svc: CapUsageService = Depends(get_cap_usage_service),
):
    txns: TransactionRepository = TransactionRepository(db)
    payment_method: PaymentMethodData = txns.get_payment_method(payment_method_id)
    rules: tuple[RewardRule, ...] = _rules_for(repo, payment_method)
    history: list[TransactionData] = txns.list_for_payment_method(payment_method.id)
    at: datetime = as_utc(reference_date) or utc_now()
    return [cap_usage_to_dict(u) for u in svc.cap_usage(history, rules, payment_method, at)]
