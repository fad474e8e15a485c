# ABOUTME: Shared test fixtures for feed-rules.
# ABOUTME: Provides a temporary SQLite database, wired services, and sample data factories.

from collections.abc import AsyncGenerator
from datetime import UTC, datetime, timedelta
from itertools import count

import pytest
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from feed_rules.config import Settings
from feed_rules.db.models import Article, Category, Feed, Rule, RuleCondition
from feed_rules.db.session import build_engine, create_tables
from feed_rules.models import MarkAsStarred
from feed_rules.services import RuleServices, build_services


class FakeClock:
    """Deterministic clock that advances one minute per call."""

    def __init__(self, start: datetime | None = None):
        self.now = start or datetime(2024, 6, 1, 12, 0, tzinfo=UTC)
        self.calls: list[datetime] = []

    def __call__(self) -> datetime:
        self.now += timedelta(minutes=1)
        self.calls.append(self.now)
        return self.now


@pytest.fixture
async def session_factory(tmp_path) -> AsyncGenerator[async_sessionmaker[AsyncSession]]:
    """File-backed SQLite so separate sessions see the same data."""
    engine = build_engine(f"sqlite+aiosqlite:///{tmp_path / 'test.db'}")
    await create_tables(engine)
    yield async_sessionmaker(engine, expire_on_commit=False)
    await engine.dispose()


@pytest.fixture
async def db_session(session_factory) -> AsyncGenerator[AsyncSession]:
    async with session_factory() as session:
        yield session


@pytest.fixture
def settings(tmp_path) -> Settings:
    return Settings(db_path=tmp_path / "test.db", regex_timeout_ms=100)


@pytest.fixture
def services(session_factory, settings) -> RuleServices:
    return build_services(session_factory, settings)


@pytest.fixture
def add(session_factory):
    """Insert entities in one transaction and return them."""

    async def _add(*entities):
        async with session_factory() as session:
            session.add_all(entities)
            await session.commit()
        return entities[0] if len(entities) == 1 else entities

    return _add


@pytest.fixture
async def category(add) -> Category:
    return await add(Category(name="News"))


@pytest.fixture
async def feed(add, category) -> Feed:
    return await add(
        Feed(title="Test Feed", url="https://example.com/feed.xml", category_id=category.id)
    )


@pytest.fixture
def make_article(add, feed):
    async def _make(**overrides) -> Article:
        fields = {
            "feed_id": feed.id,
            "url": "https://example.com/article",
            "title": "Test Article",
            "summary": "A short summary",
            "content": "Full article content",
            "author": "Test Author",
        }
        fields.update(overrides)
        return await add(Article(**fields))

    return _make


@pytest.fixture
def make_rule(add):
    names = count(1)

    async def _make(**overrides) -> Rule:
        fields = {
            "name": f"Rule {next(names)}",
            "priority": 100,
            "action": MarkAsStarred(),
            "field": "title",
            "operator": "contains",
            "value": "test",
        }
        fields.update(overrides)
        return await add(Rule(**fields))

    return _make


@pytest.fixture
def make_condition(add):
    async def _make(rule: Rule, **overrides) -> RuleCondition:
        fields = {
            "rule_id": rule.id,
            "group_id": 0,
            "order": 1,
            "field": "title",
            "operator": "contains",
            "value": "test",
        }
        fields.update(overrides)
        return await add(RuleCondition(**fields))

    return _make


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()
