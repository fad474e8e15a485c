# ABOUTME: Notification collaborator used by the SendNotification action.
# ABOUTME: The default implementation records each notification in the notification_logs table.

from typing import Protocol

import structlog
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from feed_rules.config import Settings, get_settings
from feed_rules.db.models import Article, NotificationLog, Rule
from feed_rules.models import NotificationPriority, NotificationType

log = structlog.get_logger()


class Notifier(Protocol):
    async def send(
        self,
        article: Article,
        rule: Rule,
        title: str,
        message: str,
        notification_type: NotificationType,
        priority: NotificationPriority,
    ) -> NotificationLog | None: ...


class DatabaseNotifier:
    """Persists notifications so a reader UI can pick them up."""

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        settings: Settings | None = None,
    ):
        self._session_factory = session_factory
        self.settings = settings or get_settings()

    async def send(
        self,
        article: Article,
        rule: Rule,
        title: str,
        message: str,
        notification_type: NotificationType = NotificationType.TOAST,
        priority: NotificationPriority = NotificationPriority.NORMAL,
    ) -> NotificationLog:
        entry = NotificationLog(
            article_id=article.id,
            rule_id=rule.id,
            title=title,
            message=message,
            notification_type=notification_type.value,
            priority=priority.value,
            channel=self.settings.notification_channel,
            duration_seconds=self.settings.notification_duration_seconds,
        )
        async with self._session_factory() as session:
            session.add(entry)
            await session.commit()

        log.info(
            "notification_sent",
            notification_id=entry.id,
            rule_id=rule.id,
            article_id=article.id,
        )
        return entry
