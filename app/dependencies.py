"""FastAPI dependencies: DB sessions, auth and shared services."""

from functools import lru_cache

from fastapi import Depends, Header, HTTPException
from sqlalchemy.orm import Session

from cardpoints.services.cap_usage import CapUsageService
from cardpoints.services.reward_service import RewardService
from cardpoints.services.rule_cache import RuleCache
from cardpoints.services.rule_repository import RuleRepository
from config import Settings, get_settings
from db.connection import get_db as get_db


def get_api_key(x_api_key: str = Header(default="")) -> str:
    """Validate API key on mutation endpoints."""
    expected: str | None = get_settings().api_key
    if not expected:
        return ""  # auth disabled when no key configured
    if x_api_key != expected:
        raise HTTPException(status_code=401, detail="Invalid or missing API key")
    return x_api_key


def get_current_user(x_user_id: str = Header(default="")) -> str | None:
    """User on whose behalf the request runs. Empty header means unauthenticated."""
    return x_user_id.strip() or None


@lru_cache
def get_rule_cache() -> RuleCache:
    """Process-wide rule cache shared by every request."""
    return RuleCache(enabled=get_settings().rewards.rule_cache_enabled)


def get_rule_repository(
    db: Session = Depends(get_db),
    user_id: str | None = Depends(get_current_user),
    cache: RuleCache = Depends(get_rule_cache),
) -> RuleRepository:
    settings: Settings = get_settings()
    return RuleRepository(
        db,
        user_id,
        cache,
        default_points_currency=settings.rewards.default_points_currency,
    )


def get_cap_usage_service() -> CapUsageService:
    settings: Settings = get_settings()
    return CapUsageService(
        default_statement_day=settings.rewards.default_statement_day,
        attribute_by_rule=settings.rewards.attribute_caps_by_rule,
    )


def get_reward_service(
    cap_service: CapUsageService = Depends(get_cap_usage_service),
) -> RewardService:
    return RewardService(
        cap_service=cap_service,
        default_points_currency=get_settings().rewards.default_points_currency,
    )
