"""Shared dataclasses for card points services."""

from cardpoints.services.schemas.results import (
    CalculationResult,
    CapUsageResult,
    Period,
    PointsBreakdown,
)
from cardpoints.services.schemas.rules import (
    BonusTier,
    RewardConfig,
    RewardRule,
    RuleCondition,
)
from cardpoints.services.schemas.transactions import PaymentMethodData, TransactionData

__all__ = [
    # Rule schemas
    "BonusTier",
    "RewardConfig",
    "RewardRule",
    "RuleCondition",
    # Transaction schemas
    "PaymentMethodData",
    "TransactionData",
    # Result schemas
    "CalculationResult",
    "CapUsageResult",
    "Period",
    "PointsBreakdown",
]
