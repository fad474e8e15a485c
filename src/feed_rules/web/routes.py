# ABOUTME: FastAPI route handlers for rule evaluation, action execution, and statistics.
# ABOUTME: Thin JSON wrappers over the services built in the application lifespan.

import structlog
from fastapi import APIRouter, Depends, Query, Request

from feed_rules.db.models import Rule
from feed_rules.errors import NotFoundError
from feed_rules.models import (
    BatchEvaluateRequest,
    RuleHealth,
    RuleTestRequest,
    RuleTestResult,
    RuleView,
)
from feed_rules.services import RuleServices

log = structlog.get_logger()
router = APIRouter()


def get_services(request: Request) -> RuleServices:
    return request.app.state.services


async def _views(services: RuleServices, rules: list[Rule]) -> list[RuleView]:
    return [await services.manager.rule_view(rule) for rule in rules]


@router.post("/articles/evaluate")
async def evaluate_batch(
    body: BatchEvaluateRequest, services: RuleServices = Depends(get_services)
) -> dict[int, list[RuleView]]:
    """Evaluate several articles; only articles with matches appear in the result."""
    results = await services.engine.evaluate_batch(body.article_ids)
    return {article_id: await _views(services, rules) for article_id, rules in results.items()}


@router.post("/articles/{article_id}/evaluate")
async def evaluate_article(
    article_id: int, services: RuleServices = Depends(get_services)
) -> list[RuleView]:
    """Evaluate one article against all enabled rules."""
    return await _views(services, await services.engine.evaluate(article_id))


@router.post("/rules/{rule_id}/articles/{article_id}/actions")
async def execute_actions(
    rule_id: int, article_id: int, services: RuleServices = Depends(get_services)
) -> dict:
    executed = await services.actions.execute_actions(rule_id, article_id)
    log.info("actions_requested", rule_id=rule_id, article_id=article_id, executed=executed)
    return {"rule_id": rule_id, "article_id": article_id, "executed": executed}


@router.post("/rules/{rule_id}/test")
async def run_rule_test(
    rule_id: int, body: RuleTestRequest, services: RuleServices = Depends(get_services)
) -> RuleTestResult:
    """Dry-run a rule against sample articles."""
    return await services.engine.test_rule(rule_id, body.article_ids)


@router.get("/rules/top")
async def top_rules(
    limit: int = Query(10, ge=1, le=100), services: RuleServices = Depends(get_services)
) -> list[RuleHealth]:
    return await services.stats.top_rules(limit)


@router.get("/rules/{rule_id}/statistics")
async def rule_statistics(
    rule_id: int, services: RuleServices = Depends(get_services)
) -> RuleHealth:
    health = await services.stats.rule_statistics(rule_id)
    if health is None:
        raise NotFoundError("Rule", rule_id)
    return health
