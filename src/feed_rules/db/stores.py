# ABOUTME: Async stores for rules, conditions, articles, and feeds.
# ABOUTME: Each store opens a short-lived session per call; match statistics are incremented in SQL.

from datetime import datetime

import structlog
from sqlalchemy import delete, func, inspect, select, update
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from feed_rules.db.models import Article, Feed, Rule, RuleCondition

log = structlog.get_logger()

STATISTICS_COLUMNS = frozenset({"match_count", "last_match_date"})


class _Store:
    model: type

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]):
        self._session_factory = session_factory

    async def get(self, entity_id: int):
        async with self._session_factory() as session:
            return await session.get(self.model, entity_id)

    async def update(self, entity):
        """Persist changes made to a detached entity and return the merged copy."""
        async with self._session_factory() as session:
            merged = await session.merge(entity)
            await session.commit()
            return merged


class RuleStore(_Store):
    model = Rule

    async def list_all(self) -> list[Rule]:
        async with self._session_factory() as session:
            result = await session.execute(select(Rule).order_by(Rule.priority, Rule.id))
            return list(result.scalars().all())

    async def list_enabled_by_priority(self) -> list[Rule]:
        """Enabled rules, lowest priority value first; rule id breaks ties."""
        async with self._session_factory() as session:
            result = await session.execute(
                select(Rule).where(Rule.enabled.is_(True)).order_by(Rule.priority, Rule.id)
            )
            return list(result.scalars().all())

    async def save_changes(self, rule: Rule) -> Rule | None:
        """Write the columns assigned on a detached rule since it was loaded.

        Match statistics are left out; increment_match and reset_statistics own them.
        Returns the rule as stored afterwards.
        """
        state = inspect(rule)
        values = {
            prop.key: state.attrs[prop.key].value
            for prop in state.mapper.column_attrs
            if prop.key not in STATISTICS_COLUMNS and state.attrs[prop.key].history.has_changes()
        }
        async with self._session_factory() as session:
            if values:
                await session.execute(update(Rule).where(Rule.id == rule.id).values(**values))
                await session.commit()
            return await session.get(Rule, rule.id)

    async def exists_by_name(self, name: str, exclude_id: int | None = None) -> bool:
        async with self._session_factory() as session:
            query = select(Rule.id).where(func.lower(Rule.name) == name.strip().lower())
            if exclude_id is not None:
                query = query.where(Rule.id != exclude_id)
            result = await session.execute(query.limit(1))
            return result.scalar_one_or_none() is not None

    async def insert(self, rule: Rule) -> Rule:
        async with self._session_factory() as session:
            session.add(rule)
            await session.commit()
            return rule

    async def delete(self, rule_id: int) -> bool:
        """Delete a rule and its conditions in one transaction."""
        async with self._session_factory() as session:
            await session.execute(delete(RuleCondition).where(RuleCondition.rule_id == rule_id))
            result = await session.execute(delete(Rule).where(Rule.id == rule_id))
            await session.commit()
            return result.rowcount > 0

    async def top_by_match_count(self, limit: int = 10) -> list[Rule]:
        async with self._session_factory() as session:
            result = await session.execute(
                select(Rule).order_by(Rule.match_count.desc(), Rule.id).limit(limit)
            )
            return list(result.scalars().all())

    async def increment_match(self, rule_id: int, at: datetime) -> bool:
        """Atomically bump match_count by one and stamp last_match_date."""
        async with self._session_factory() as session:
            result = await session.execute(
                update(Rule)
                .where(Rule.id == rule_id)
                .values(match_count=Rule.match_count + 1, last_match_date=at)
            )
            await session.commit()
            return result.rowcount > 0

    async def reset_statistics(self, rule_id: int) -> bool:
        async with self._session_factory() as session:
            result = await session.execute(
                update(Rule).where(Rule.id == rule_id).values(match_count=0, last_match_date=None)
            )
            await session.commit()
            return result.rowcount > 0


class ConditionStore(_Store):
    model = RuleCondition

    async def list_by_rule(self, rule_id: int) -> list[RuleCondition]:
        async with self._session_factory() as session:
            result = await session.execute(
                select(RuleCondition)
                .where(RuleCondition.rule_id == rule_id)
                .order_by(RuleCondition.group_id, RuleCondition.order, RuleCondition.id)
            )
            return list(result.scalars().all())

    async def grouped_by_rule(self, rule_id: int) -> dict[int, list[RuleCondition]]:
        """Conditions keyed by group id, groups ascending, members in evaluation order."""
        groups: dict[int, list[RuleCondition]] = {}
        for condition in await self.list_by_rule(rule_id):
            groups.setdefault(condition.group_id, []).append(condition)
        return groups

    async def max_order_in_group(self, rule_id: int, group_id: int) -> int:
        async with self._session_factory() as session:
            result = await session.execute(
                select(func.max(RuleCondition.order)).where(
                    RuleCondition.rule_id == rule_id,
                    RuleCondition.group_id == group_id,
                )
            )
            return result.scalar_one_or_none() or 0

    async def insert(self, condition: RuleCondition) -> RuleCondition:
        async with self._session_factory() as session:
            session.add(condition)
            await session.commit()
            return condition

    async def delete(self, condition_id: int) -> bool:
        async with self._session_factory() as session:
            result = await session.execute(
                delete(RuleCondition).where(RuleCondition.id == condition_id)
            )
            await session.commit()
            return result.rowcount > 0

    async def reorder(self, rule_id: int, group_id: int, order_map: dict[int, int]) -> int:
        """Apply {condition_id: order} within one group; returns the number of rows changed."""
        changed = 0
        async with self._session_factory() as session:
            for condition_id, order in order_map.items():
                result = await session.execute(
                    update(RuleCondition)
                    .where(
                        RuleCondition.id == condition_id,
                        RuleCondition.rule_id == rule_id,
                        RuleCondition.group_id == group_id,
                    )
                    .values({RuleCondition.order: order})
                )
                changed += result.rowcount
            await session.commit()
        log.debug("conditions_reordered", rule_id=rule_id, group_id=group_id, changed=changed)
        return changed


class ArticleStore(_Store):
    model = Article


class FeedStore(_Store):
    model = Feed
