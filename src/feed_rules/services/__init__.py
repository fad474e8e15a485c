# ABOUTME: Wires stores and services together around one session factory.
# ABOUTME: The CLI, the web app, and tests all build their services through build_services.

from dataclasses import dataclass

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from feed_rules.config import Settings, get_settings
from feed_rules.db.session import get_session_factory
from feed_rules.db.stores import ArticleStore, ConditionStore, FeedStore, RuleStore
from feed_rules.services.actions import ActionExecutor
from feed_rules.services.engine import RuleEngine
from feed_rules.services.notifier import DatabaseNotifier, Notifier
from feed_rules.services.regex_matcher import RegexMatcher
from feed_rules.services.rules import RuleManager
from feed_rules.services.statistics import StatisticsTracker


@dataclass
class RuleServices:
    engine: RuleEngine
    actions: ActionExecutor
    stats: StatisticsTracker
    manager: RuleManager


def build_services(
    session_factory: async_sessionmaker[AsyncSession] | None = None,
    settings: Settings | None = None,
    notifier: Notifier | None = None,
) -> RuleServices:
    """Build the rule engine and its collaborators sharing one regex cache."""
    settings = settings or get_settings()
    session_factory = session_factory or get_session_factory()

    rules = RuleStore(session_factory)
    conditions = ConditionStore(session_factory)
    articles = ArticleStore(session_factory)
    feeds = FeedStore(session_factory)

    matcher = RegexMatcher(settings.regex_timeout)
    stats = StatisticsTracker(rules)
    engine = RuleEngine(rules, conditions, articles, feeds, stats, matcher)
    actions = ActionExecutor(
        engine,
        articles,
        feeds,
        notifier or DatabaseNotifier(session_factory, settings),
        stats,
    )
    manager = RuleManager(rules, conditions, matcher, settings)
    return RuleServices(engine=engine, actions=actions, stats=stats, manager=manager)
