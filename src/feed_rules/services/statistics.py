# ABOUTME: Match statistics bookkeeping and derived health queries for rules.
# ABOUTME: Counts only move forward via record_match; reset is the single way back to zero.

from collections.abc import Callable
from datetime import UTC, datetime

import structlog

from feed_rules.db.models import Rule
from feed_rules.db.stores import RuleStore
from feed_rules.errors import RuleValidationError
from feed_rules.models import RuleHealth, RuleHealthStatus
from feed_rules.services.rendering import as_utc, format_time_ago

log = structlog.get_logger()

SECONDS_PER_DAY = 86400


def _utcnow() -> datetime:
    return datetime.now(UTC)


def health_status(rule: Rule, now: datetime) -> RuleHealthStatus:
    if not rule.enabled:
        return RuleHealthStatus.DISABLED
    if rule.last_match_date is None:
        return RuleHealthStatus.NEVER_MATCHED

    days = (now - as_utc(rule.last_match_date)).total_seconds() / SECONDS_PER_DAY
    if days <= 1:
        return RuleHealthStatus.ACTIVE
    if days <= 7:
        return RuleHealthStatus.NORMAL
    if days <= 30:
        return RuleHealthStatus.INFREQUENT
    return RuleHealthStatus.STALE


def average_matches_per_day(rule: Rule, now: datetime) -> float | None:
    """Matches divided by fractional days since creation; None for a zero-age rule."""
    days = (now - as_utc(rule.created_at)).total_seconds() / SECONDS_PER_DAY
    if days <= 0:
        return None
    return (rule.match_count or 0) / days


class StatisticsTracker:
    """Owns match_count / last_match_date updates and statistics queries."""

    def __init__(self, rules: RuleStore, clock: Callable[[], datetime] = _utcnow):
        self.rules = rules
        self._clock = clock

    async def record_match(self, rule_id: int) -> datetime:
        """Record one confirmed match and return the timestamp stamped on the rule."""
        at = self._clock()
        if await self.rules.increment_match(rule_id, at):
            log.debug("match_stats_updated", rule_id=rule_id, at=at.isoformat())
        else:
            log.warning("match_stats_rule_missing", rule_id=rule_id)
        return at

    async def reset(self, rule_id: int) -> bool:
        reset = await self.rules.reset_statistics(rule_id)
        if reset:
            log.info("match_stats_reset", rule_id=rule_id)
        return reset

    def health(self, rule: Rule) -> RuleHealth:
        now = self._clock()
        return RuleHealth(
            rule_id=rule.id,
            name=rule.name,
            enabled=rule.enabled,
            match_count=rule.match_count or 0,
            last_match_date=rule.last_match_date,
            time_since_last_match=(
                format_time_ago(rule.last_match_date, now) if rule.last_match_date else None
            ),
            average_matches_per_day=average_matches_per_day(rule, now),
            health_status=health_status(rule, now),
        )

    async def top_rules(self, limit: int = 10) -> list[RuleHealth]:
        if limit < 1:
            raise RuleValidationError(["Limit must be at least 1"])
        rules = await self.rules.top_by_match_count(limit)
        log.debug("top_rules_loaded", limit=limit, count=len(rules))
        return [self.health(rule) for rule in rules]

    async def rule_statistics(self, rule_id: int) -> RuleHealth | None:
        rule = await self.rules.get(rule_id)
        if rule is None:
            log.debug("rule_statistics_not_found", rule_id=rule_id)
            return None
        return self.health(rule)
