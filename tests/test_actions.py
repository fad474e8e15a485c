# ABOUTME: Tests for action execution after a re-validated match.
# ABOUTME: Covers each mutating action, notifications, declines, and statistics bookkeeping.

from unittest.mock import AsyncMock

import pytest
from sqlalchemy import select

from feed_rules.db.models import Article, Category, NotificationLog, Rule
from feed_rules.errors import InfrastructureError, NotFoundError
from feed_rules.models import (
    ApplyTags,
    ArticleStatus,
    HighlightArticle,
    MarkAsFavorite,
    MarkAsRead,
    MoveToCategory,
    NotificationPriority,
    NotificationType,
    PlaySound,
    SendNotification,
)
from feed_rules.services.actions import ActionExecutor, render_notification
from feed_rules.services.rendering import as_utc
from feed_rules.services.statistics import StatisticsTracker


def _executor(services, notifier=None, clock=None) -> ActionExecutor:
    engine = services.engine
    stats = StatisticsTracker(engine.rules, clock) if clock else services.stats
    return ActionExecutor(
        engine, engine.articles, engine.feeds, notifier or services.actions.notifier, stats
    )


async def test_mark_as_starred_persists(services, make_article, make_rule):
    """End-to-end: a matching MarkAsStarred rule stars and saves the article."""
    article = await make_article(title="Breaking: market update")
    rule = await make_rule(value="breaking")

    assert await services.actions.execute_actions(rule.id, article.id) is True

    stored = await services.engine.articles.get(article.id)
    assert stored.is_starred is True
    assert (await services.engine.rules.get(rule.id)).match_count == 1


async def test_mark_as_read_and_favorite(services, make_article, make_rule):
    article = await make_article()
    read_rule = await make_rule(action=MarkAsRead())
    favorite_rule = await make_rule(action=MarkAsFavorite())

    await services.actions.execute_actions(read_rule.id, article.id)
    await services.actions.execute_actions(favorite_rule.id, article.id)

    stored = await services.engine.articles.get(article.id)
    assert stored.status == ArticleStatus.READ
    assert stored.is_favorite is True
    assert stored.is_starred is False


async def test_declines_when_rule_no_longer_matches(services, make_article, make_rule):
    article = await make_article(title="Weather report")
    rule = await make_rule(value="breaking")

    assert await services.actions.execute_actions(rule.id, article.id) is False

    stored = await services.engine.articles.get(article.id)
    assert stored.is_starred is False
    assert (await services.engine.rules.get(rule.id)).match_count == 0


async def test_unknown_rule_or_article(services, make_article, make_rule):
    article = await make_article()
    rule = await make_rule()

    with pytest.raises(NotFoundError):
        await services.actions.execute_actions(9999, article.id)
    with pytest.raises(NotFoundError):
        await services.actions.execute_actions(rule.id, 9999)


async def test_send_notification_uses_collaborator(services, make_article, make_rule):
    notifier = AsyncMock()
    article = await make_article(title="Test launch", author="Ada")
    rule = await make_rule(
        action=SendNotification(
            template="{RuleName}: {Title} by {Author}",
            priority=NotificationPriority.HIGH,
        )
    )

    assert await _executor(services, notifier=notifier).execute_actions(rule.id, article.id)

    notifier.send.assert_awaited_once()
    kwargs = notifier.send.await_args.kwargs
    assert kwargs["title"] == f"Rule matched: {rule.name}"
    assert kwargs["message"] == f"{rule.name}: Test launch by Ada"
    assert kwargs["priority"] == NotificationPriority.HIGH
    assert kwargs["notification_type"] == NotificationType.TOAST


async def test_default_notifier_records_log(services, session_factory, make_article, make_rule):
    article = await make_article(title="Test launch")
    rule = await make_rule(action=SendNotification())

    await services.actions.execute_actions(rule.id, article.id)

    async with session_factory() as session:
        entry = (await session.execute(select(NotificationLog))).scalar_one()
    assert entry.rule_id == rule.id
    assert entry.article_id == article.id
    assert entry.message == f"Article 'Test launch' matched rule '{rule.name}'"
    assert entry.channel == "RuleEngine"
    assert entry.duration_seconds == 7


async def test_notifier_failure_is_infrastructure_error(services, make_article, make_rule):
    notifier = AsyncMock()
    notifier.send.side_effect = ConnectionError("notification service down")
    article = await make_article()
    rule = await make_rule(action=SendNotification())

    with pytest.raises(InfrastructureError):
        await _executor(services, notifier=notifier).execute_actions(rule.id, article.id)

    assert (await services.engine.rules.get(rule.id)).match_count == 0


async def test_move_to_category_updates_feed(services, add, make_article, make_rule, feed):
    target = await add(Category(name="Archive"))
    article = await make_article()
    rule = await make_rule(action=MoveToCategory(category_id=target.id))

    assert await services.actions.execute_actions(rule.id, article.id)

    assert (await services.engine.feeds.get(feed.id)).category_id == target.id


@pytest.mark.parametrize(
    "action",
    [
        ApplyTags(tag_ids=[1, 2]),
        HighlightArticle(color="#ffcc00"),
        PlaySound(sound_path="ding.wav"),
    ],
)
async def test_advisory_actions_leave_article_untouched(services, make_article, make_rule, action):
    article = await make_article()
    rule = await make_rule(action=action)

    assert await services.actions.execute_actions(rule.id, article.id)

    stored = await services.engine.articles.get(article.id)
    assert stored.status == ArticleStatus.UNREAD
    assert not stored.is_starred
    assert (await services.engine.rules.get(rule.id)).match_count == 1


async def test_repeated_executions_count_each_match(services, make_article, make_rule, clock):
    """N executions raise match_count by exactly N and stamp the last timestamp."""
    article = await make_article()
    rule = await make_rule()
    executor = _executor(services, clock=clock)

    for _ in range(5):
        assert await executor.execute_actions(rule.id, article.id)

    stored = await services.engine.rules.get(rule.id)
    assert stored.match_count == 5
    assert as_utc(stored.last_match_date) == clock.calls[-1]


def test_render_notification_template():
    rule = Rule(name="Security")
    article = Article(title="CVE published", summary="Patch now", author=None)
    assert render_notification("{Title} - {Summary} ({Author})", rule, article) == (
        "CVE published - Patch now ()"
    )
    assert render_notification(None, rule, article) == (
        "Article 'CVE published' matched rule 'Security'"
    )
