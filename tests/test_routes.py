"""Tests for all API routes via FastAPI TestClient."""

from collections.abc import Generator
from datetime import UTC, datetime

import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient
from pydantic import ValidationError as PydanticValidationError
from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from app.dependencies import get_rule_cache
from app.main import register_error_handlers
from app.routes import rewards, rules
from app.routes.health import get_db_info
from app.schemas.rules import RuleCreate
from cardpoints.services._types import DbInfoDict
from cardpoints.services.errors import InvalidRuleError
from cardpoints.services.rule_cache import RuleCache
from db.connection import get_db
from db.models import Base, PaymentMethods, Transactions

_USER: dict[str, str] = {"X-User-Id": "user-1"}


def _create_test_app() -> FastAPI:
    """Minimal app without lifespan (no init_db against the real database)."""
    test_app: FastAPI = FastAPI()

    @test_app.get("/health")
    def health() -> dict[str, str]:
        return {"status": "ok"}

    register_error_handlers(test_app)
    test_app.include_router(rules.router)
    test_app.include_router(rewards.router)
    return test_app


_test_app: FastAPI = _create_test_app()


@pytest.fixture()
def _route_engine() -> Generator[Engine, None, None]:
    """In-memory SQLite engine with check_same_thread=False for TestClient."""
    eng: Engine = create_engine(
        "sqlite:///:memory:",
        echo=False,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(eng)
    yield eng
    eng.dispose()


@pytest.fixture()
def _route_session(_route_engine: Engine) -> Generator[Session, None, None]:
    factory: sessionmaker[Session] = sessionmaker(
        bind=_route_engine,
        autocommit=False,
        autoflush=False,
        expire_on_commit=False,
    )
    sess: Session = factory()
    yield sess
    sess.rollback()
    sess.close()


@pytest.fixture()
def client(_route_session: Session) -> Generator[TestClient, None, None]:
    """TestClient with DB and rule cache dependencies overridden per test."""
    cache: RuleCache = RuleCache()

    def _override_db() -> Generator[Session, None, None]:
        yield _route_session

    _test_app.dependency_overrides[get_db] = _override_db
    _test_app.dependency_overrides[get_rule_cache] = lambda: cache
    with TestClient(_test_app, raise_server_exceptions=False) as c:
        yield c
    _test_app.dependency_overrides.clear()


@pytest.fixture()
def session(_route_session: Session) -> Session:
    """Alias so seed helpers can use the same session as the client."""
    return _route_session


# ---------- seed helpers ----------


def _rule_body(**overrides: object) -> dict[str, object]:
    body: dict[str, object] = {
        "cardTypeId": "amex-cobalt",
        "name": "Groceries 5x",
        "priority": 10,
        "conditions": [{"type": "mcc", "operation": "include", "values": ["5411"]}],
        "reward": {
            "bonusMultiplier": 4,
            "monthlyCap": 1000,
            "monthlyCapType": "bonus_points",
            "monthlySpendPeriodType": "calendar",
        },
    }
    body.update(overrides)
    return body


def _create_rule(client: TestClient, **overrides: object) -> dict[str, object]:
    resp = client.post("/api/rules", json=_rule_body(**overrides), headers=_USER)
    assert resp.status_code == 201, resp.text
    return resp.json()


def _seed_payment_method(session: Session) -> PaymentMethods:
    pm: PaymentMethods = PaymentMethods(
        id="pm-1",
        user_id="user-1",
        name="Cobalt",
        card_type_id="amex-cobalt",
        currency="CAD",
        points_currency="MR",
    )
    session.add(pm)
    session.flush()
    return pm


def _seed_transaction(session: Session, txn_id: str, day: int, **overrides: object) -> None:
    fields: dict[str, object] = {
        "id": txn_id,
        "user_id": "user-1",
        "payment_method_id": "pm-1",
        "date": datetime(2026, 3, day, 12, 0, tzinfo=UTC),
        "amount": 50.0,
        "currency": "CAD",
        "mcc": "5411",
    }
    fields.update(overrides)
    session.add(Transactions(**fields))
    session.flush()


# ---------- health ----------


class TestHealth:
    def test_health(self, client: TestClient) -> None:
        resp = client.get("/health")
        assert resp.status_code == 200
        assert resp.json() == {"status": "ok"}

    def test_db_info_reports_schema(self, _route_engine: Engine) -> None:
        info: DbInfoDict = get_db_info(_route_engine)
        assert info["tables_missing"] == []
        assert info["schema_initialized"] is True
        assert "reward_rules" in info["tables_present"]


# ---------- rules ----------


class TestRules:
    def test_requires_user(self, client: TestClient) -> None:
        resp = client.get("/api/rules")
        assert resp.status_code == 401
        assert resp.json()["operation"] == "list_rules"

    def test_create_and_get(self, client: TestClient) -> None:
        created: dict[str, object] = _create_rule(client)
        assert created["cardTypeId"] == "amex-cobalt"
        assert created["reward"]["bonusMultiplier"] == 4.0  # type: ignore[index]

        resp = client.get(f"/api/rules/{created['id']}", headers=_USER)
        assert resp.status_code == 200
        assert resp.json()["name"] == "Groceries 5x"

    def test_list_filters_by_card_type(self, client: TestClient) -> None:
        _create_rule(client)
        _create_rule(client, cardTypeId="visa-infinite", name="Travel")
        all_rules = client.get("/api/rules", headers=_USER).json()
        cobalt = client.get(
            "/api/rules", params={"card_type_id": "amex-cobalt"}, headers=_USER
        ).json()
        assert len(all_rules) == 2
        assert [r["name"] for r in cobalt] == ["Groceries 5x"]

    def test_missing_rule_is_404(self, client: TestClient) -> None:
        resp = client.get("/api/rules/missing", headers=_USER)
        assert resp.status_code == 404
        assert resp.json()["type"] == "RecordNotFoundError"

    def test_blank_name_is_422_with_field(self, client: TestClient) -> None:
        resp = client.post("/api/rules", json=_rule_body(name="  "), headers=_USER)
        assert resp.status_code == 422
        assert resp.json()["field"] == "name"

    def test_unknown_calculation_method_is_rejected(self, client: TestClient) -> None:
        body: dict[str, object] = _rule_body(reward={"calculationMethod": "percentage"})
        resp = client.post("/api/rules", json=body, headers=_USER)
        assert resp.status_code == 422

    def test_unknown_period_type_is_422(self, client: TestClient) -> None:
        reward: dict[str, object] = {"monthlyCap": 1000, "monthlySpendPeriodType": "calender"}
        resp = client.post("/api/rules", json=_rule_body(reward=reward), headers=_USER)
        assert resp.status_code == 422
        assert client.get("/api/rules", headers=_USER).json() == []

    def test_cap_without_period_type_is_422(self, client: TestClient) -> None:
        reward: dict[str, object] = {"monthlyCap": 1000}
        resp = client.post("/api/rules", json=_rule_body(reward=reward), headers=_USER)
        assert resp.status_code == 422
        assert resp.json()["detail"] == "monthly cap needs a spend period type"

    def test_update(self, client: TestClient) -> None:
        created: dict[str, object] = _create_rule(client)
        resp = client.put(
            f"/api/rules/{created['id']}",
            json=_rule_body(name="Groceries 3x", priority=7),
            headers=_USER,
        )
        assert resp.status_code == 200
        assert resp.json()["name"] == "Groceries 3x"
        assert resp.json()["priority"] == 7

    def test_delete(self, client: TestClient) -> None:
        created: dict[str, object] = _create_rule(client)
        resp = client.delete(f"/api/rules/{created['id']}", headers=_USER)
        assert resp.status_code == 200
        assert resp.json() == {"deleted": True}
        assert client.delete(f"/api/rules/{created['id']}", headers=_USER).status_code == 404

    def test_validate_reports_problems(self, client: TestClient) -> None:
        body: dict[str, object] = _rule_body(reward={"calculationMethod": "tiered"})
        resp = client.post("/api/rules/validate", json=body)
        assert resp.status_code == 200
        assert resp.json() == {"valid": False, "problems": ["tiered rule has no bonus tiers"]}

    def test_validate_accepts_good_rule(self, client: TestClient) -> None:
        resp = client.post("/api/rules/validate", json=_rule_body())
        assert resp.json() == {"valid": True, "problems": []}


# ---------- rewards ----------


class TestRewards:
    def _calculate(self, client: TestClient, **txn: object) -> dict[str, object]:
        transaction: dict[str, object] = {
            "date": "2026-03-20T12:00:00Z",
            "amount": 50,
            "currency": "CAD",
            "mcc": "5411",
        }
        transaction.update(txn)
        resp = client.post(
            "/api/rewards/calculate",
            json={"paymentMethodId": "pm-1", "transaction": transaction},
            headers=_USER,
        )
        assert resp.status_code == 200, resp.text
        return resp.json()

    def test_calculate(self, client: TestClient, session: Session) -> None:
        _seed_payment_method(session)
        rule: dict[str, object] = _create_rule(client)
        result: dict[str, object] = self._calculate(client)
        assert result["basePoints"] == 50.0
        assert result["bonusPoints"] == 200.0
        assert result["totalPoints"] == 250.0
        assert result["pointsCurrency"] == "MR"
        assert result["appliedRuleId"] == rule["id"]
        assert result["remainingMonthlyBonusPoints"] == 800.0

    def test_calculate_respects_cap_from_history(
        self, client: TestClient, session: Session
    ) -> None:
        _seed_payment_method(session)
        _create_rule(client)
        _seed_transaction(session, "old", 2, bonus_points=900.0)
        result: dict[str, object] = self._calculate(client)
        assert result["bonusPoints"] == 100.0
        assert result["messages"] == ["Bonus points capped at 100 due to monthly limit"]

    def test_calculate_without_matching_rule(self, client: TestClient, session: Session) -> None:
        _seed_payment_method(session)
        _create_rule(client)
        result: dict[str, object] = self._calculate(client, mcc="5812")
        assert result["totalPoints"] == 0.0
        assert result["messages"] == ["No reward rule matches this transaction"]

    def test_unknown_payment_method_is_404(self, client: TestClient) -> None:
        resp = client.post(
            "/api/rewards/calculate",
            json={
                "paymentMethodId": "nope",
                "transaction": {"date": "2026-03-20", "amount": 5, "currency": "CAD"},
            },
            headers=_USER,
        )
        assert resp.status_code == 404

    def test_record_transaction_points(self, client: TestClient, session: Session) -> None:
        _seed_payment_method(session)
        rule: dict[str, object] = _create_rule(client)
        _seed_transaction(session, "t1", 5)
        resp = client.post("/api/transactions/t1/points", headers=_USER)
        assert resp.status_code == 200
        assert resp.json()["totalPoints"] == 250.0

        stored: Transactions | None = session.get(Transactions, "t1")
        assert stored is not None
        assert stored.reward_points == 250.0
        assert stored.applied_rule_id == rule["id"]

    def test_cap_usage(self, client: TestClient, session: Session) -> None:
        _seed_payment_method(session)
        rule: dict[str, object] = _create_rule(client)
        _seed_transaction(session, "t1", 5, bonus_points=250.0)
        _seed_transaction(session, "t2", 6, bonus_points=250.0)
        resp = client.get(
            "/api/payment-methods/pm-1/cap-usage",
            params={"reference_date": "2026-03-20T12:00:00+00:00"},
            headers=_USER,
        )
        assert resp.status_code == 200
        usage = resp.json()
        assert len(usage) == 1
        assert usage[0]["identifier"] == rule["id"]
        assert usage[0]["used"] == 500.0
        assert usage[0]["percentage"] == 50.0
        assert usage[0]["periodType"] == "calendar"


class TestRuleSchemas:
    def test_period_type_aliases_are_accepted(self) -> None:
        body: RuleCreate = RuleCreate.model_validate(
            _rule_body(reward={"monthlyCap": 10, "monthlySpendPeriodType": "Statement_Month"})
        )
        assert body.reward.monthly_spend_period_type == "Statement_Month"

    def test_misspelled_period_type_is_rejected(self) -> None:
        with pytest.raises(PydanticValidationError) as exc_info:
            RuleCreate.model_validate(
                _rule_body(reward={"monthlyCap": 10, "monthlySpendPeriodType": "calender"})
            )
        assert "unknown spend period type" in str(exc_info.value)


class TestInvalidRuleHandler:
    def test_invalid_rule_is_422_with_problems(self) -> None:
        app: FastAPI = FastAPI()
        register_error_handlers(app)

        @app.post("/rules")
        def create() -> dict[str, str]:
            raise InvalidRuleError("r1", ["unknown calculation_method 'percentage'"])

        with TestClient(app) as c:
            resp = c.post("/rules")
        assert resp.status_code == 422
        assert resp.json()["type"] == "InvalidRuleError"
        assert resp.json()["problems"] == ["unknown calculation_method 'percentage'"]
