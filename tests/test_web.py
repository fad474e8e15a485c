# ABOUTME: Tests for the JSON API routes using httpx against the ASGI app.
# ABOUTME: Services are injected directly; the database lifespan is not exercised.

from collections.abc import AsyncGenerator

import pytest
from httpx import ASGITransport, AsyncClient

from feed_rules.models import MarkAsStarred
from feed_rules.web.app import create_app


@pytest.fixture
async def client(services) -> AsyncGenerator[AsyncClient]:
    app = create_app(services)
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
        yield ac


async def test_evaluate_article(client, make_article, make_rule):
    article = await make_article(title="Test story")
    rule = await make_rule(action=MarkAsStarred())

    response = await client.post(f"/articles/{article.id}/evaluate")

    assert response.status_code == 200
    body = response.json()
    assert [r["id"] for r in body] == [rule.id]
    assert body[0]["action"] == {"type": "mark_as_starred"}
    assert body[0]["human_readable_condition"] == "Title contains 'test'"


async def test_evaluate_batch(client, make_article, make_rule):
    hit = await make_article(title="Test story")
    miss = await make_article(title="Nothing here")
    await make_rule()

    response = await client.post("/articles/evaluate", json={"article_ids": [hit.id, miss.id]})

    assert response.status_code == 200
    assert list(response.json()) == [str(hit.id)]


async def test_execute_actions(client, services, make_article, make_rule):
    article = await make_article()
    rule = await make_rule()

    response = await client.post(f"/rules/{rule.id}/articles/{article.id}/actions")

    assert response.status_code == 200
    assert response.json()["executed"] is True
    assert (await services.engine.articles.get(article.id)).is_starred is True


async def test_execute_actions_unknown_rule_is_404(client, make_article):
    article = await make_article()

    response = await client.post(f"/rules/999/articles/{article.id}/actions")

    assert response.status_code == 404
    assert "Rule with ID 999 not found" in response.json()["detail"]


async def test_rule_test_endpoint(client, make_article, make_rule):
    article = await make_article()
    rule = await make_rule()

    response = await client.post(f"/rules/{rule.id}/test", json={"article_ids": [article.id]})

    assert response.status_code == 200
    body = response.json()
    assert body["matched_ids"] == [article.id]
    assert body["total_tested"] == 1


async def test_top_rules_and_statistics(client, services, make_rule):
    rule = await make_rule()
    await services.stats.record_match(rule.id)

    top = await client.get("/rules/top", params={"limit": 5})
    stats = await client.get(f"/rules/{rule.id}/statistics")
    missing = await client.get("/rules/4242/statistics")

    assert top.status_code == 200
    assert top.json()[0]["match_count"] == 1
    assert stats.json()["health_status"] == "active"
    assert missing.status_code == 404


async def test_top_rules_rejects_bad_limit(client):
    response = await client.get("/rules/top", params={"limit": 0})
    assert response.status_code == 422
