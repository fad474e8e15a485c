# ABOUTME: Match orchestration: scope gating, rule evaluation in priority order, and stop-on-match.
# ABOUTME: Also provides batch evaluation and a dry-run rule test with no side effects.

import time
from collections.abc import Iterable

import structlog
from sqlalchemy.exc import SQLAlchemyError

from feed_rules.db.models import Article, Feed, Rule
from feed_rules.db.stores import ArticleStore, ConditionStore, FeedStore, RuleStore
from feed_rules.errors import InfrastructureError, NotFoundError
from feed_rules.models import RuleTestResult, ScopeKind
from feed_rules.services.conditions import ConditionEvaluator, ConditionGroup, ConditionSpec
from feed_rules.services.regex_matcher import RegexMatcher
from feed_rules.services.statistics import StatisticsTracker

log = structlog.get_logger()


def scope_applies(rule: Rule, article: Article, feed: Feed | None) -> bool:
    """Check whether a rule is eligible for an article. An unresolved feed never applies."""
    if feed is None:
        return False
    match rule.scope_kind:
        case ScopeKind.ALL_FEEDS:
            return True
        case ScopeKind.SPECIFIC_FEEDS:
            return article.feed_id in (rule.feed_ids or [])
        case ScopeKind.SPECIFIC_CATEGORIES:
            return feed.category_id is not None and feed.category_id in (rule.category_ids or [])
    return False


class RuleEngine:
    """Evaluates articles against stored rules.

    Rules run one at a time in ascending priority (rule id breaks ties), and
    conditions run in stored order, so stop-on-match and statistics stay
    deterministic. The engine owns a single RegexMatcher whose compiled
    pattern cache lives as long as the engine does.
    """

    def __init__(
        self,
        rules: RuleStore,
        conditions: ConditionStore,
        articles: ArticleStore,
        feeds: FeedStore,
        stats: StatisticsTracker,
        matcher: RegexMatcher | None = None,
    ):
        self.rules = rules
        self.conditions = conditions
        self.articles = articles
        self.feeds = feeds
        self.stats = stats
        self.matcher = matcher or RegexMatcher()
        self.evaluator = ConditionEvaluator(self.matcher)

    async def rule_groups(self, rule: Rule) -> list[ConditionGroup]:
        """Normalize a rule to OR-of-AND groups.

        A simple rule is one group with its embedded condition. An advanced
        rule without stored conditions yields no groups and so never matches.
        """
        if not rule.uses_advanced_conditions:
            return [[ConditionSpec.from_rule(rule)]]

        grouped = await self.conditions.grouped_by_rule(rule.id)
        if not grouped:
            log.warning("rule_without_conditions", rule_id=rule.id, rule_name=rule.name)
            return []
        return [
            [ConditionSpec.from_condition(condition) for condition in members]
            for members in grouped.values()
        ]

    async def rule_matches(self, rule: Rule, article: Article) -> bool:
        return await self.rule_matches_in_feed(rule, article, await self.feeds.get(article.feed_id))

    async def rule_matches_in_feed(self, rule: Rule, article: Article, feed: Feed | None) -> bool:
        """Scope gate first, then the rule's condition groups."""
        if not scope_applies(rule, article, feed):
            return False

        try:
            groups = await self.rule_groups(rule)
        except ValueError as e:
            # A stored field/operator this version doesn't know
            log.error("rule_definition_invalid", rule_id=rule.id, error=str(e))
            return False
        return self.evaluator.evaluate_groups(groups, article)

    async def evaluate(self, article_id: int) -> list[Rule]:
        """Return the enabled rules matching an article, recording a match for each."""
        if article_id <= 0:
            log.warning("evaluate_invalid_article_id", article_id=article_id)
            return []

        try:
            return await self._evaluate(article_id)
        except SQLAlchemyError as e:
            log.error("evaluate_failed", article_id=article_id, error=str(e))
            raise InfrastructureError(f"Failed to evaluate article {article_id}") from e

    async def _evaluate(self, article_id: int) -> list[Rule]:
        article = await self.articles.get(article_id)
        if article is None:
            log.warning("evaluate_article_not_found", article_id=article_id)
            return []

        feed = await self.feeds.get(article.feed_id)
        matched: list[Rule] = []
        for rule in await self.rules.list_enabled_by_priority():
            if not await self.rule_matches_in_feed(rule, article, feed):
                continue

            matched.append(rule)
            rule.last_match_date = await self.stats.record_match(rule.id)
            rule.match_count = (rule.match_count or 0) + 1
            log.debug("rule_matched", rule_id=rule.id, article_id=article_id)

            if rule.stop_on_match:
                log.debug("rule_stop_on_match", rule_id=rule.id, article_id=article_id)
                break

        log.info("article_evaluated", article_id=article_id, matched=len(matched))
        return matched

    async def evaluate_batch(self, article_ids: Iterable[int]) -> dict[int, list[Rule]]:
        """Evaluate several articles; articles with no matching rule are left out."""
        results: dict[int, list[Rule]] = {}
        total = 0
        for article_id in article_ids:
            total += 1
            if article_id <= 0:
                continue
            matched = await self.evaluate(article_id)
            if matched:
                results[article_id] = matched

        log.info("batch_evaluated", total=total, matched_articles=len(results))
        return results

    async def test_rule(self, rule_id: int, sample_ids: list[int]) -> RuleTestResult:
        """Dry-run a rule against sample articles without recording matches or acting."""
        try:
            rule = await self.rules.get(rule_id)
            if rule is None:
                raise NotFoundError("Rule", rule_id)

            result = RuleTestResult(
                rule_id=rule.id, rule_name=rule.name, total_tested=len(sample_ids)
            )
            started = time.perf_counter()
            for article_id in sample_ids:
                if article_id <= 0:
                    continue
                article = await self.articles.get(article_id)
                if article is not None and await self.rule_matches(rule, article):
                    result.matched_count += 1
                    result.matched_ids.append(article_id)
            elapsed_ms = (time.perf_counter() - started) * 1000
        except SQLAlchemyError as e:
            log.error("test_rule_failed", rule_id=rule_id, error=str(e))
            raise InfrastructureError(f"Failed to test rule {rule_id}") from e

        if sample_ids:
            result.avg_eval_time_ms = elapsed_ms / len(sample_ids)

        log.info(
            "rule_tested",
            rule_id=rule_id,
            matched=result.matched_count,
            total=result.total_tested,
            avg_ms=round(result.avg_eval_time_ms, 2),
        )
        return result
