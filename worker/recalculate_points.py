"""Worker: recompute stored points for a payment method's month of transactions.

Usage:
    python -m worker.recalculate_points --payment-method pm-123 --month 2026-01
    python -m worker.recalculate_points --payment-method pm-123 --month 2026-01 --dry-run
"""

import argparse

import structlog

from cardpoints.services.cap_usage import CapUsageService
from cardpoints.services.recalculation import RecalculationService
from cardpoints.services.reward_service import RewardService
from cardpoints.services.rule_repository import RuleRepository
from config import Settings, get_settings
from db.connection import get_session

logger = structlog.get_logger(__name__)


def parse_month(raw: str) -> tuple[int, int]:
    try:
        parts = raw.split("-")
        year, month = int(parts[0]), int(parts[1])
    except (ValueError, IndexError):
        raise argparse.ArgumentTypeError(
            f"Invalid month '{raw}'. Expected YYYY-MM (e.g. 2026-01)"
        )
    if not 1 <= month <= 12:
        raise argparse.ArgumentTypeError(f"Invalid month '{raw}'. Month must be 01-12")
    return year, month


def main(argv: list[str] | None = None) -> None:
    parser = argparse.ArgumentParser(description="Recalculate stored transaction points")
    parser.add_argument(
        "--payment-method", "-p", required=True, help="Payment method id"
    )
    parser.add_argument(
        "--month", "-m", required=True, type=parse_month,
        help="Month to recalculate (YYYY-MM)",
    )
    parser.add_argument(
        "--user", "-u", default="system",
        help="User recorded as performing the recalculation",
    )
    parser.add_argument(
        "--dry-run", action="store_true", default=False,
        help="Report changes without writing them",
    )
    args = parser.parse_args(argv)

    settings: Settings = get_settings()
    year, month = args.month
    logger.info(
        "Starting recalculation",
        payment_method_id=args.payment_method,
        year=year,
        month=month,
        dry_run=args.dry_run,
    )

    with get_session() as session:
        service = RecalculationService(
            session,
            RuleRepository(
                session,
                args.user,
                default_points_currency=settings.rewards.default_points_currency,
            ),
            RewardService(
                cap_service=CapUsageService(
                    default_statement_day=settings.rewards.default_statement_day,
                    attribute_by_rule=settings.rewards.attribute_caps_by_rule,
                ),
                default_points_currency=settings.rewards.default_points_currency,
            ),
        )
        summary = service.recalculate_month(
            args.payment_method, year, month, dry_run=args.dry_run
        )

    logger.info(
        "Recalculation complete",
        transactions=summary["transactions"],
        changed=summary["changed"],
        dry_run=summary["dry_run"],
    )


if __name__ == "__main__":
    main()
