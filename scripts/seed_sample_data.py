"""Seed sample cards, reward rules and transactions for local testing.

Idempotent: skips seeding if payment methods already exist.
Run: python scripts/seed_sample_data.py
"""

import sys
from datetime import UTC, datetime, timedelta
from pathlib import Path
from uuid import uuid4

# Ensure project root is on sys.path so 'config', 'db' and 'cardpoints' resolve
project_root = Path(__file__).resolve().parent.parent
sys.path.insert(0, str(project_root))

from sqlalchemy.orm import Session  # noqa: E402

from cardpoints.services.rule_mapper import rule_from_payload  # noqa: E402
from cardpoints.services.rule_repository import RuleRepository  # noqa: E402
from cardpoints.services.rules_engine import RuleResolver  # noqa: E402
from cardpoints.services.schemas import RewardRule  # noqa: E402
from db.connection import get_session, init_db  # noqa: E402
from db.models import PaymentMethods, Transactions  # noqa: E402

USER = "demo-user"
AEROPLAN_CARD = "td-aeroplan-visa-infinite"
COBALT_CARD = "amex-cobalt"

RULES: list[dict[str, object]] = [
    {
        "card_type_id": AEROPLAN_CARD,
        "name": "Aeroplan base earn",
        "priority": 0,
        "reward": {"calculation_method": "standard", "base_multiplier": 1},
    },
    {
        "card_type_id": AEROPLAN_CARD,
        "name": "Gas and groceries",
        "priority": 10,
        "conditions": [
            {"type": "mcc", "operation": "include", "values": ["5411", "5541", "5542"]},
        ],
        "reward": {
            "calculation_method": "total_first",
            "base_multiplier": 1,
            "bonus_multiplier": 0.5,
            "points_rounding_strategy": "nearest",
        },
    },
    {
        "card_type_id": COBALT_CARD,
        "name": "Cobalt base earn",
        "priority": 0,
        "reward": {"calculation_method": "standard", "base_multiplier": 1},
    },
    {
        "card_type_id": COBALT_CARD,
        "name": "Eats and drinks",
        "priority": 20,
        "conditions": [
            {"type": "mcc", "operation": "include", "values": ["5811", "5812", "5814"]},
        ],
        "reward": {
            "base_multiplier": 1,
            "bonus_multiplier": 4,
            "monthly_cap": 12500,
            "monthly_cap_type": "bonus_points",
            "monthly_spend_period_type": "statement_month",
            "cap_group_id": "cobalt-5x",
        },
    },
    {
        "card_type_id": COBALT_CARD,
        "name": "Groceries",
        "priority": 15,
        "conditions": [
            {"type": "mcc", "operation": "include", "values": ["5411"]},
            {"type": "transaction_type", "operation": "exclude", "values": ["online"]},
        ],
        "reward": {
            "base_multiplier": 1,
            "bonus_multiplier": 4,
            "monthly_cap": 12500,
            "monthly_cap_type": "bonus_points",
            "monthly_spend_period_type": "statement_month",
            "cap_group_id": "cobalt-5x",
        },
    },
]


def _uid() -> str:
    return str(uuid4())


def _days_ago(days: int) -> datetime:
    return datetime.now(UTC) - timedelta(days=days)


def seed_rules(session: Session) -> list[RewardRule]:
    repo: RuleRepository = RuleRepository(session, USER)
    resolver: RuleResolver = RuleResolver()
    created: list[RewardRule] = []
    for payload in RULES:
        rule: RewardRule = rule_from_payload(payload)
        resolver.ensure_valid(rule)
        created.append(repo.create_rule(rule))
    return created


def seed(session: Session) -> None:
    # Check idempotency; skip if data exists
    existing = session.query(PaymentMethods).first()
    if existing:
        print("Sample data already seeded, skipping.")
        return

    print("Seeding sample data...")
    rules: list[RewardRule] = seed_rules(session)

    aeroplan = PaymentMethods(
        id=_uid(),
        user_id=USER,
        name="TD Aeroplan Visa Infinite",
        issuer="TD",
        card_type_id=AEROPLAN_CARD,
        currency="CAD",
        points_currency="Aeroplan",
    )
    cobalt = PaymentMethods(
        id=_uid(),
        user_id=USER,
        name="Amex Cobalt",
        issuer="American Express",
        card_type_id=COBALT_CARD,
        currency="CAD",
        points_currency="MR",
        statement_start_day=15,
        is_monthly_statement=True,
    )
    session.add_all([aeroplan, cobalt])
    session.flush()

    samples: list[tuple[PaymentMethods, str, str, float, int]] = [
        (aeroplan, "Loblaws", "5411", 84.12, 9),
        (aeroplan, "Petro-Canada", "5541", 61.40, 7),
        (aeroplan, "Indigo Books", "5942", 35.00, 3),
        (cobalt, "Pizzeria Libretto", "5812", 72.50, 6),
        (cobalt, "Metro", "5411", 143.27, 4),
        (cobalt, "Air Canada", "4511", 612.00, 2),
    ]
    for card, merchant, mcc, amount, days in samples:
        session.add(
            Transactions(
                id=_uid(),
                user_id=USER,
                payment_method_id=card.id,
                date=_days_ago(days),
                merchant_name=merchant,
                mcc=mcc,
                amount=amount,
                currency="CAD",
            )
        )

    session.flush()
    print(f"  {len(rules)} reward rules")
    print("  2 payment methods")
    print(f"  {len(samples)} transactions (run worker.recalculate_points to award points)")
    print("Done.")


if __name__ == "__main__":
    init_db()
    with get_session() as session:
        seed(session)
