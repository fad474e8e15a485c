# ABOUTME: Executes a rule's configured action against an article after re-checking the match.
# ABOUTME: Mutations persist through the article and feed stores; each execution records one match.

from typing import assert_never

import structlog
from sqlalchemy.exc import SQLAlchemyError

from feed_rules.db.models import Article, Rule
from feed_rules.db.stores import ArticleStore, FeedStore
from feed_rules.errors import InfrastructureError, NotFoundError
from feed_rules.models import (
    ApplyTags,
    ArticleStatus,
    HighlightArticle,
    MarkAsFavorite,
    MarkAsRead,
    MarkAsStarred,
    MoveToCategory,
    PlaySound,
    SendNotification,
)
from feed_rules.services.engine import RuleEngine
from feed_rules.services.notifier import Notifier
from feed_rules.services.statistics import StatisticsTracker

log = structlog.get_logger()


def render_notification(template: str | None, rule: Rule, article: Article) -> str:
    """Fill {Title}, {Summary}, {Author} and {RuleName} placeholders in a message template."""
    if not template:
        return f"Article '{article.title}' matched rule '{rule.name}'"
    return (
        template.replace("{Title}", article.title or "")
        .replace("{Summary}", article.summary or "")
        .replace("{Author}", article.author or "")
        .replace("{RuleName}", rule.name)
    )


class ActionExecutor:
    def __init__(
        self,
        engine: RuleEngine,
        articles: ArticleStore,
        feeds: FeedStore,
        notifier: Notifier,
        stats: StatisticsTracker,
    ):
        self.engine = engine
        self.articles = articles
        self.feeds = feeds
        self.notifier = notifier
        self.stats = stats

    async def execute_actions(self, rule_id: int, article_id: int) -> bool:
        """Run the rule's action on the article.

        Returns False without side effects when the rule no longer matches.
        Raises NotFoundError for an unknown rule or article, and
        InfrastructureError when storage or the notifier fails.
        """
        try:
            rule = await self.engine.rules.get(rule_id)
            if rule is None:
                raise NotFoundError("Rule", rule_id)
            article = await self.articles.get(article_id)
            if article is None:
                raise NotFoundError("Article", article_id)

            if not await self.engine.rule_matches(rule, article):
                log.debug("action_declined_no_match", rule_id=rule_id, article_id=article_id)
                return False

            log.info(
                "executing_rule_action",
                rule_id=rule.id,
                article_id=article.id,
                action=rule.action_type,
            )
            if await self._dispatch(rule, article):
                await self.articles.update(article)
                log.debug("article_updated_by_rule", rule_id=rule.id, article_id=article.id)

            await self.stats.record_match(rule.id)
        except SQLAlchemyError as e:
            log.error(
                "execute_actions_failed", rule_id=rule_id, article_id=article_id, error=str(e)
            )
            raise InfrastructureError(f"Failed to execute actions for rule {rule_id}") from e
        return True

    async def _dispatch(self, rule: Rule, article: Article) -> bool:
        """Apply the action. Returns True if the article itself was modified."""
        action = rule.action
        match action:
            case MarkAsRead():
                article.status = ArticleStatus.READ.value
                return True
            case MarkAsStarred():
                article.is_starred = True
                return True
            case MarkAsFavorite():
                article.is_favorite = True
                return True
            case SendNotification():
                await self._notify(rule, article, action)
                return False
            case ApplyTags():
                # Tag storage lives outside the rule engine
                log.debug("apply_tags_not_supported", rule_id=rule.id, tag_ids=action.tag_ids)
                return False
            case MoveToCategory():
                feed = await self.feeds.get(article.feed_id)
                if feed is not None:
                    feed.category_id = action.category_id
                    await self.feeds.update(feed)
                    log.info("feed_moved", feed_id=feed.id, category_id=action.category_id)
                return False
            case HighlightArticle():
                log.debug("highlight_article", rule_id=rule.id, color=action.color)
                return False
            case PlaySound():
                log.debug("play_sound", rule_id=rule.id, sound_path=action.sound_path)
                return False
            case _:
                assert_never(action)

    async def _notify(self, rule: Rule, article: Article, action: SendNotification) -> None:
        title = f"Rule matched: {rule.name}"
        message = render_notification(action.template, rule, article)
        try:
            await self.notifier.send(
                article,
                rule,
                title=title,
                message=message,
                notification_type=action.notification_type,
                priority=action.priority,
            )
        except SQLAlchemyError:
            raise
        except Exception as e:
            log.error("notification_failed", rule_id=rule.id, article_id=article.id, error=str(e))
            raise InfrastructureError(f"Failed to send notification for rule {rule.id}") from e
