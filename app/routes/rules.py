"""Reward rule management endpoints."""

from fastapi import APIRouter, Depends

from app.dependencies import get_api_key, get_rule_repository
from app.schemas.common import ErrorResponse
from app.schemas.rules import RuleCreate, RuleUpdate
from cardpoints.services._types import RuleValidationDict
from cardpoints.services.rule_mapper import rule_from_payload, rule_to_dict
from cardpoints.services.rule_repository import RuleRepository, rule_problems
from cardpoints.services.schemas import RewardRule
from config import get_settings

router = APIRouter(
    prefix="/api",
    tags=["rules"],
    responses={
        401: {"model": ErrorResponse},
        404: {"model": ErrorResponse},
        422: {"model": ErrorResponse},
    },
)


def _to_rule(body: RuleCreate, rule_id: str = "") -> RewardRule:
    return rule_from_payload(
        body.model_dump(mode="json", exclude_none=True),
        rule_id=rule_id,
        default_points_currency=get_settings().rewards.default_points_currency,
    )


@router.get("/rules")
def list_rules(
    card_type_id: str | None = None,
    repo: RuleRepository = Depends(get_rule_repository),
):
    if card_type_id:
        return [rule_to_dict(r) for r in repo.load_rules(card_type_id)]
    return [rule_to_dict(r) for r in repo.list_rules()]


@router.post("/rules/validate")
def validate_rule(body: RuleCreate) -> RuleValidationDict:
    problems: list[str] = [message for _field, message in rule_problems(_to_rule(body))]
    return RuleValidationDict(valid=not problems, problems=problems)


@router.get("/rules/{rule_id}")
def get_rule(rule_id: str, repo: RuleRepository = Depends(get_rule_repository)):
    return rule_to_dict(repo.get_rule(rule_id))


@router.post("/rules", status_code=201)
def create_rule(
    body: RuleCreate,
    repo: RuleRepository = Depends(get_rule_repository),
    _key: str = Depends(get_api_key),
):
    return rule_to_dict(repo.create_rule(_to_rule(body)))


@router.put("/rules/{rule_id}")
def update_rule(
    rule_id: str,
    body: RuleUpdate,
    repo: RuleRepository = Depends(get_rule_repository),
    _key: str = Depends(get_api_key),
):
    return rule_to_dict(repo.update_rule(_to_rule(body, rule_id)))


@router.delete("/rules/{rule_id}")
def delete_rule(
    rule_id: str,
    repo: RuleRepository = Depends(get_rule_repository),
    _key: str = Depends(get_api_key),
) -> dict[str, bool]:
    return {"deleted": repo.delete_rule(rule_id)}
