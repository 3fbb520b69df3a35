"""Rule store: persistence boundary for reward rules.

Every operation requires an authenticated user. Storage failures are wrapped
in ``PersistenceError`` carrying the operation name and original cause; the
shared cache is invalidated when a mutation is flushed and again when the
session commits or rolls back, so a reader in another session can never
re-cache rows that were read before the commit.
"""

from collections.abc import Sequence

import structlog
from sqlalchemy import Delete, Select, delete, event, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, SessionTransaction

from cardpoints.services._helpers import new_id, utc_now
from cardpoints.services.errors import (
    AuthenticationError,
    PersistenceError,
    RecordNotFoundError,
    ValidationError,
)
from cardpoints.services.rule_cache import RuleCache
from cardpoints.services.rule_mapper import apply_to_row, rule_from_row
from cardpoints.services.rules_engine import RuleResolver
from cardpoints.services.schemas import RewardRule
from db.models import RewardRules

logger = structlog.get_logger(__name__)


def rule_problems(rule: RewardRule) -> list[tuple[str, str]]:
    """All (field, message) problems with ``rule``; empty when it may be saved."""
    problems: list[tuple[str, str]] = []
    if not rule.name.strip():
        problems.append(("name", "Rule name is required"))
    if not rule.card_type_id.strip():
        problems.append(("card_type_id", "Card type is required"))
    if rule.priority < 0:
        problems.append(("priority", "Priority must not be negative"))
    problems.extend(("reward", p) for p in RuleResolver().validate_rule(rule))
    return problems


class RuleRepository:
    """CRUD for reward rules with a shared, card-type keyed cache."""

    def __init__(
        self,
        session: Session,
        user_id: str | None,
        cache: RuleCache | None = None,
        default_points_currency: str = "points",
    ) -> None:
        self.session: Session = session
        self.user_id: str | None = user_id
        self.cache: RuleCache = cache if cache is not None else RuleCache(enabled=False)
        self.default_points_currency: str = default_points_currency
        self._dirty: set[str] = set()
        self._listening: bool = False

    # ── Reads ──────────────────────────────────────────────────────────────

    def load_rules(self, card_type_id: str) -> tuple[RewardRule, ...]:
        operation: str = "load_rules"
        self._require_user(operation)
        # Uncommitted changes to this card type must not reach the shared cache.
        bypass: bool = card_type_id in self._dirty
        cached: tuple[RewardRule, ...] | None = None if bypass else self.cache.get(card_type_id)
        if cached is not None:
            return cached
        generation: int = self.cache.generation
        stmt: Select[tuple[RewardRules]] = (
            select(RewardRules)
            .where(RewardRules.card_type_id == card_type_id)
            .order_by(RewardRules.priority.desc(), RewardRules.created_at, RewardRules.id)
        )
        try:
            rows: Sequence[RewardRules] = self.session.scalars(stmt).all()
        except SQLAlchemyError as exc:
            raise PersistenceError("Failed to load rules", operation, exc) from exc
        rules: list[RewardRule] = [rule_from_row(r, self.default_points_currency) for r in rows]
        logger.debug("rules_loaded", card_type_id=card_type_id, count=len(rules))
        if bypass:
            return tuple(rules)
        return self.cache.put(card_type_id, rules, generation)

    def list_rules(self) -> list[RewardRule]:
        operation: str = "list_rules"
        self._require_user(operation)
        stmt: Select[tuple[RewardRules]] = select(RewardRules).order_by(
            RewardRules.card_type_id, RewardRules.priority.desc(), RewardRules.id
        )
        try:
            rows: Sequence[RewardRules] = self.session.scalars(stmt).all()
        except SQLAlchemyError as exc:
            raise PersistenceError("Failed to list rules", operation, exc) from exc
        return [rule_from_row(r, self.default_points_currency) for r in rows]

    def get_rule(self, rule_id: str) -> RewardRule:
        operation: str = "get_rule"
        self._require_user(operation)
        row: RewardRules = self._get_row(rule_id, operation)
        return rule_from_row(row, self.default_points_currency)

    # ── Mutations ──────────────────────────────────────────────────────────

    def validate_rule(self, rule: RewardRule, operation: str = "validate_rule") -> None:
        """Raise ``ValidationError`` for the first problem found."""
        problems: list[tuple[str, str]] = rule_problems(rule)
        if problems:
            field, message = problems[0]
            raise ValidationError(message, field, operation)

    def create_rule(self, rule: RewardRule) -> RewardRule:
        operation: str = "create_rule"
        user_id: str = self._require_user(operation)
        self.validate_rule(rule, operation)
        row: RewardRules = apply_to_row(rule, RewardRules(id=rule.id or new_id()))
        row.created_by = user_id
        try:
            self.session.add(row)
            self.session.flush()
        except SQLAlchemyError as exc:
            self.session.rollback()
            raise PersistenceError("Failed to create rule", operation, exc) from exc
        self._mark_dirty(row.card_type_id)
        logger.info("rule_created", rule_id=row.id, card_type_id=row.card_type_id, user_id=user_id)
        return rule_from_row(row, self.default_points_currency)

    def update_rule(self, rule: RewardRule) -> RewardRule:
        operation: str = "update_rule"
        user_id: str = self._require_user(operation)
        self.validate_rule(rule, operation)
        row: RewardRules = self._get_row(rule.id, operation)
        previous_card_type: str = row.card_type_id
        apply_to_row(rule, row)
        row.updated_at = utc_now()
        try:
            self.session.flush()
        except SQLAlchemyError as exc:
            self.session.rollback()
            raise PersistenceError("Failed to update rule", operation, exc) from exc
        self._mark_dirty(previous_card_type, row.card_type_id)
        logger.info("rule_updated", rule_id=row.id, user_id=user_id)
        return rule_from_row(row, self.default_points_currency)

    def delete_rule(self, rule_id: str) -> bool:
        operation: str = "delete_rule"
        user_id: str = self._require_user(operation)
        row: RewardRules = self._get_row(rule_id, operation)
        card_type_id: str = row.card_type_id
        stmt: Delete = delete(RewardRules).where(RewardRules.id == rule_id)
        try:
            affected: int = self.session.execute(stmt).rowcount
        except SQLAlchemyError as exc:
            self.session.rollback()
            raise PersistenceError("Failed to delete rule", operation, exc) from exc
        if affected == 0:
            raise RecordNotFoundError("Delete affected no rows", operation)
        self._mark_dirty(card_type_id)
        logger.info("rule_deleted", rule_id=rule_id, user_id=user_id)
        return True

    # ── Internals ──────────────────────────────────────────────────────────

    def _require_user(self, operation: str) -> str:
        if not self.user_id:
            raise AuthenticationError(operation)
        return self.user_id

    def _get_row(self, rule_id: str, operation: str) -> RewardRules:
        try:
            row: RewardRules | None = self.session.get(RewardRules, rule_id)
        except SQLAlchemyError as exc:
            raise PersistenceError("Failed to read rule", operation, exc) from exc
        if row is None:
            raise RecordNotFoundError(f"Rule {rule_id} not found", operation)
        return row

    def _mark_dirty(self, *card_type_ids: str) -> None:
        """Invalidate now, and again once the session's transaction ends."""
        self._dirty.update(card_type_ids)
        self.cache.invalidate(*card_type_ids)
        if not self._listening:
            event.listen(self.session, "after_commit", self._on_commit)
            event.listen(self.session, "after_soft_rollback", self._on_rollback)
            self._listening = True

    def _on_commit(self, session: Session) -> None:
        self._release_dirty("commit")

    def _on_rollback(self, session: Session, previous_transaction: SessionTransaction) -> None:
        self._release_dirty("rollback")

    def _release_dirty(self, outcome: str) -> None:
        if not self._dirty:
            return
        card_type_ids: list[str] = sorted(self._dirty)
        self._dirty.clear()
        self.cache.invalidate(*card_type_ids)
        logger.debug("rule_cache_released", outcome=outcome, card_type_ids=card_type_ids)
