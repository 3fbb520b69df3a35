"""Batch recalculation of stored points for one payment method and month."""

from dataclasses import replace
from datetime import UTC, datetime

import structlog
from sqlalchemy.orm import Session

from cardpoints.services._types import RecalculationSummary
from cardpoints.services.periods import month_bounds
from cardpoints.services.reward_service import RewardService
from cardpoints.services.rule_repository import RuleRepository
from cardpoints.services.schemas import (
    CalculationResult,
    PaymentMethodData,
    Period,
    RewardRule,
    TransactionData,
)
from cardpoints.services.transaction_repository import TransactionRepository

logger = structlog.get_logger(__name__)


class RecalculationService:
    """Replays a month of transactions in date order so caps fill up as they did originally."""

    def __init__(
        self,
        session: Session,
        rules: RuleRepository,
        reward_service: RewardService | None = None,
    ) -> None:
        self.session: Session = session
        self.rules: RuleRepository = rules
        self.transactions: TransactionRepository = TransactionRepository(session)
        self.reward_service: RewardService = reward_service or RewardService()

    def recalculate_month(
        self,
        payment_method_id: str,
        year: int,
        month: int,
        dry_run: bool = False,
    ) -> RecalculationSummary:
        payment_method: PaymentMethodData = self.transactions.get_payment_method(payment_method_id)
        rules: tuple[RewardRule, ...] = self.rules.load_rules(payment_method.card_type_id or "")
        period: Period = month_bounds(datetime(year, month, 1, tzinfo=UTC))
        history: list[TransactionData] = self.transactions.list_for_payment_method(
            payment_method_id
        )
        changed: int = 0
        targets: list[int] = [i for i, t in enumerate(history) if period.contains(t.date)]
        for index in targets:
            txn: TransactionData = history[index]
            result: CalculationResult = self.reward_service.calculate_rewards(
                txn, payment_method, rules, history[:index]
            )
            updated: TransactionData = replace(
                txn,
                base_points=result.base_points,
                bonus_points=result.bonus_points,
                reward_points=result.total_points,
                applied_rule_id=result.applied_rule_id,
            )
            if updated != txn:
                changed += 1
                if not dry_run and txn.id is not None:
                    self.transactions.record_points(txn.id, result)
            # Later transactions must see this one's recalculated bonus for cap accounting.
            history[index] = updated

        logger.info(
            "recalculation_complete",
            payment_method_id=payment_method_id,
            month=f"{year:04d}-{month:02d}",
            transactions=len(targets),
            changed=changed,
            dry_run=dry_run,
        )
        return RecalculationSummary(
            payment_method_id=payment_method_id,
            month=f"{year:04d}-{month:02d}",
            transactions=len(targets),
            changed=changed,
            dry_run=dry_run,
        )
