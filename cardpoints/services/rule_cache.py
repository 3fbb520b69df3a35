"""In-process cache of parsed reward rules, keyed by card type."""

import threading
from collections.abc import Iterable

import structlog

from cardpoints.services.schemas import RewardRule

logger = structlog.get_logger(__name__)


class RuleCache:
    """Thread-safe snapshot cache.

    Each entry is an immutable tuple, so a reader always sees a whole rule set
    from before or after a mutation, never a partial one. Every invalidation
    bumps ``generation``; a ``put`` stamped with an older generation is
    discarded, since its rows were read before the invalidation.
    """

    def __init__(self, enabled: bool = True) -> None:
        self.enabled: bool = enabled
        self._lock: threading.Lock = threading.Lock()
        self._rules: dict[str, tuple[RewardRule, ...]] = {}
        self._generation: int = 0

    @property
    def generation(self) -> int:
        with self._lock:
            return self._generation

    def get(self, card_type_id: str) -> tuple[RewardRule, ...] | None:
        if not self.enabled:
            return None
        with self._lock:
            return self._rules.get(card_type_id)

    def put(
        self,
        card_type_id: str,
        rules: Iterable[RewardRule],
        generation: int | None = None,
    ) -> tuple[RewardRule, ...]:
        """Store ``rules`` unless an invalidation happened after ``generation`` was read."""
        snapshot: tuple[RewardRule, ...] = tuple(rules)
        if not self.enabled:
            return snapshot
        with self._lock:
            if generation is not None and generation != self._generation:
                logger.debug(
                    "rule_cache_put_discarded",
                    card_type_id=card_type_id,
                    read_generation=generation,
                    generation=self._generation,
                )
                return snapshot
            self._rules[card_type_id] = snapshot
        return snapshot

    def invalidate(self, *card_type_ids: str) -> None:
        """Drop the given card types, or everything when called with no arguments."""
        with self._lock:
            self._generation += 1
            if not card_type_ids:
                self._rules.clear()
            for card_type_id in card_type_ids:
                self._rules.pop(card_type_id, None)
        logger.debug("rule_cache_invalidated", card_type_ids=list(card_type_ids) or "all")

    def __len__(self) -> int:
        with self._lock:
            return len(self._rules)
