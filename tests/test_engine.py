# ABOUTME: Tests for match orchestration: priority order, stop-on-match, scope gating, batches.
# ABOUTME: Runs against a temporary SQLite database through the real stores.

import pytest

from feed_rules.db.models import Feed, Rule
from feed_rules.errors import NotFoundError
from feed_rules.models import AllFeeds, SpecificCategories, SpecificFeeds


async def _rule(services, rule_id: int) -> Rule:
    return await services.engine.rules.get(rule_id)


async def test_end_to_end_title_contains(services, make_article, make_rule):
    """A case-insensitive title rule matches and records one match."""
    article = await make_article(title="Breaking: market update")
    rule = await make_rule(field="title", operator="contains", value="breaking")

    matched = await services.engine.evaluate(article.id)

    assert [r.id for r in matched] == [rule.id]
    stored = await _rule(services, rule.id)
    assert stored.match_count == 1
    assert stored.last_match_date is not None


async def test_rules_evaluated_in_priority_order(services, make_article, make_rule):
    """Lower priority value runs first."""
    article = await make_article(title="Test story")
    r1 = await make_rule(priority=10)
    r2 = await make_rule(priority=5)

    matched = await services.engine.evaluate(article.id)

    assert [r.id for r in matched] == [r2.id, r1.id]


async def test_equal_priority_falls_back_to_rule_id(services, make_article, make_rule):
    article = await make_article(title="Test story")
    first = await make_rule(priority=20)
    second = await make_rule(priority=20)

    matched = await services.engine.evaluate(article.id)

    assert [r.id for r in matched] == [first.id, second.id]


async def test_stop_on_match_halts_evaluation(services, make_article, make_rule):
    article = await make_article(title="Test story")
    r1 = await make_rule(priority=1, stop_on_match=True)
    r2 = await make_rule(priority=2)

    matched = await services.engine.evaluate(article.id)

    assert [r.id for r in matched] == [r1.id]
    assert (await _rule(services, r2.id)).match_count == 0


async def test_feed_is_loaded_once_per_article(services, make_article, make_rule, monkeypatch):
    article = await make_article(title="Test story")
    for priority in (1, 2, 3):
        await make_rule(priority=priority)
    feed_ids = []
    get_feed = services.engine.feeds.get

    async def counting_get(feed_id):
        feed_ids.append(feed_id)
        return await get_feed(feed_id)

    monkeypatch.setattr(services.engine.feeds, "get", counting_get)
    matched = await services.engine.evaluate(article.id)

    assert len(matched) == 3
    assert feed_ids == [article.feed_id]


async def test_disabled_rules_are_skipped(services, make_article, make_rule):
    article = await make_article(title="Test story")
    await make_rule(enabled=False)

    assert await services.engine.evaluate(article.id) == []


async def test_scope_specific_feeds(services, add, make_article, make_rule, feed):
    """A rule scoped to another feed never matches, whatever its conditions say."""
    other = await add(Feed(title="Other", url="https://other.example.com/feed.xml"))
    article = await make_article(feed_id=other.id, title="Test story")
    await make_rule(scope=SpecificFeeds(feed_ids=[feed.id]))
    in_scope = await make_rule(scope=SpecificFeeds(feed_ids=[other.id]))

    matched = await services.engine.evaluate(article.id)

    assert [r.id for r in matched] == [in_scope.id]


async def test_scope_specific_categories(services, make_article, make_rule, category):
    article = await make_article(title="Test story")
    await make_rule(scope=SpecificCategories(category_ids=[category.id + 1]))
    in_scope = await make_rule(scope=SpecificCategories(category_ids=[category.id]))

    matched = await services.engine.evaluate(article.id)

    assert [r.id for r in matched] == [in_scope.id]


async def test_category_scope_requires_feed_category(services, add, make_article, make_rule):
    uncategorized = await add(Feed(title="Loose", url="https://loose.example.com/rss"))
    article = await make_article(feed_id=uncategorized.id, title="Test story")
    await make_rule(scope=SpecificCategories(category_ids=[1, 2, 3]))
    everywhere = await make_rule(scope=AllFeeds())

    matched = await services.engine.evaluate(article.id)

    assert [r.id for r in matched] == [everywhere.id]


async def test_advanced_rule_without_conditions_never_matches(services, make_article, make_rule):
    article = await make_article(title="Test story")
    await make_rule(uses_advanced_conditions=True)

    assert await services.engine.evaluate(article.id) == []


async def test_advanced_rule_or_of_and_groups(services, make_article, make_rule, make_condition):
    article = await make_article(title="Rust release notes", author="Core Team")
    rule = await make_rule(uses_advanced_conditions=True)
    # group 0 fails on its second member
    await make_condition(rule, group_id=0, order=1, value="rust")
    await make_condition(rule, group_id=0, order=2, value="python")
    # group 1 holds
    await make_condition(rule, group_id=1, order=1, value="release")
    await make_condition(
        rule, group_id=1, order=2, field="author", operator="equals", value="core team"
    )

    matched = await services.engine.evaluate(article.id)

    assert [r.id for r in matched] == [rule.id]


async def test_negated_condition_in_group(services, make_article, make_rule, make_condition):
    article = await make_article(title="Weekly digest")
    rule = await make_rule(uses_advanced_conditions=True)
    await make_condition(rule, value="digest")
    await make_condition(rule, order=2, value="sponsored", negate=True)

    assert [r.id for r in await services.engine.evaluate(article.id)] == [rule.id]


async def test_invalid_regex_rule_never_matches(services, make_article, make_rule):
    article = await make_article(title="Test story")
    await make_rule(operator="regex", regex_pattern="([", value="")

    assert await services.engine.evaluate(article.id) == []


async def test_missing_or_invalid_article(services, make_rule):
    await make_rule()
    assert await services.engine.evaluate(9999) == []
    assert await services.engine.evaluate(0) == []


async def test_batch_omits_unmatched_and_skips_invalid_ids(services, make_article, make_rule):
    hit = await make_article(title="Test story")
    miss = await make_article(title="Unrelated")
    rule = await make_rule()

    results = await services.engine.evaluate_batch([hit.id, miss.id, 0, -3])

    assert list(results) == [hit.id]
    assert [r.id for r in results[hit.id]] == [rule.id]


async def test_rule_test_is_a_dry_run(services, make_article, make_rule):
    """test_rule reports matches without touching statistics."""
    hit = await make_article(title="Test story")
    miss = await make_article(title="Unrelated")
    rule = await make_rule()

    result = await services.engine.test_rule(rule.id, [hit.id, miss.id, 0, 424242])

    assert result.rule_name == rule.name
    assert result.total_tested == 4
    assert result.matched_count == 1
    assert result.matched_ids == [hit.id]
    assert result.avg_eval_time_ms >= 0
    stored = await _rule(services, rule.id)
    assert stored.match_count == 0
    assert stored.last_match_date is None


async def test_rule_test_unknown_rule(services):
    with pytest.raises(NotFoundError):
        await services.engine.test_rule(12345, [1])
