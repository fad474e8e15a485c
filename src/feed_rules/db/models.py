# ABOUTME: SQLAlchemy ORM models for categories, feeds, articles, rules, and conditions.
# ABOUTME: Rule exposes its stored scope and action columns as tagged-union values.

from datetime import UTC, datetime

from sqlalchemy import JSON, Boolean, DateTime, ForeignKey, Index, Integer, String, Text
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship

from feed_rules.models import (
    ActionType,
    AllFeeds,
    ApplyTags,
    ArticleStatus,
    HighlightArticle,
    MarkAsFavorite,
    MarkAsRead,
    MarkAsStarred,
    MoveToCategory,
    NotificationPriority,
    NotificationType,
    PlaySound,
    RuleFieldTarget,
    RuleOperator,
    ScopeKind,
    SendNotification,
    SpecificCategories,
    SpecificFeeds,
)


def _utcnow() -> datetime:
    return datetime.now(UTC)


class Base(DeclarativeBase):
    pass


class Category(Base):
    __tablename__ = "categories"

    id: Mapped[int] = mapped_column(primary_key=True)
    name: Mapped[str] = mapped_column(String(255))
    created_at: Mapped[datetime] = mapped_column(DateTime, default=_utcnow)

    feeds: Mapped[list["Feed"]] = relationship(back_populates="category")


class Feed(Base):
    __tablename__ = "feeds"

    id: Mapped[int] = mapped_column(primary_key=True)
    title: Mapped[str] = mapped_column(String(255))
    url: Mapped[str] = mapped_column(String(2048), unique=True)
    category_id: Mapped[int | None] = mapped_column(ForeignKey("categories.id"))
    active: Mapped[bool] = mapped_column(Boolean, default=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=_utcnow)

    category: Mapped[Category | None] = relationship(back_populates="feeds")
    articles: Mapped[list["Article"]] = relationship(back_populates="feed")


class Article(Base):
    __tablename__ = "articles"
    __table_args__ = (
        Index("ix_articles_feed_id", "feed_id"),
        Index("ix_articles_status", "status"),
    )

    id: Mapped[int] = mapped_column(primary_key=True)
    feed_id: Mapped[int] = mapped_column(ForeignKey("feeds.id"))
    url: Mapped[str] = mapped_column(String(2048))
    title: Mapped[str] = mapped_column(String(500), default="")
    summary: Mapped[str | None] = mapped_column(Text)
    content: Mapped[str | None] = mapped_column(Text)
    author: Mapped[str | None] = mapped_column(String(255))
    categories: Mapped[str | None] = mapped_column(Text)
    published_date: Mapped[datetime | None] = mapped_column(DateTime)

    # Reader state mutated by rule actions
    status: Mapped[str] = mapped_column(String(20), default=ArticleStatus.UNREAD.value)
    is_starred: Mapped[bool] = mapped_column(Boolean, default=False)
    is_favorite: Mapped[bool] = mapped_column(Boolean, default=False)
    processed_by_rules: Mapped[bool] = mapped_column(Boolean, default=False)

    fetched_at: Mapped[datetime] = mapped_column(DateTime, default=_utcnow)

    feed: Mapped[Feed] = relationship(back_populates="articles")


class Rule(Base):
    __tablename__ = "rules"
    __table_args__ = (
        Index("ix_rules_enabled_priority", "enabled", "priority"),
        Index("ix_rules_last_match_date", "last_match_date"),
    )

    id: Mapped[int] = mapped_column(primary_key=True)
    name: Mapped[str] = mapped_column(String(200), unique=True)
    description: Mapped[str | None] = mapped_column(String(500))
    enabled: Mapped[bool] = mapped_column(Boolean, default=True)
    priority: Mapped[int] = mapped_column(Integer, default=100)
    stop_on_match: Mapped[bool] = mapped_column(Boolean, default=False)

    # Scope
    scope_kind: Mapped[str] = mapped_column(String(30), default=ScopeKind.ALL_FEEDS.value)
    feed_ids: Mapped[list[int]] = mapped_column(JSON, default=list)
    category_ids: Mapped[list[int]] = mapped_column(JSON, default=list)

    # Action and its parameters
    action_type: Mapped[str] = mapped_column(String(30))
    target_category_id: Mapped[int | None] = mapped_column(Integer)
    tag_ids: Mapped[list[int]] = mapped_column(JSON, default=list)
    highlight_color: Mapped[str | None] = mapped_column(String(20))
    sound_path: Mapped[str | None] = mapped_column(String(500))
    notification_template: Mapped[str | None] = mapped_column(String(1000))
    notification_priority: Mapped[str] = mapped_column(
        String(20), default=NotificationPriority.NORMAL.value
    )
    notification_type: Mapped[str] = mapped_column(String(20), default=NotificationType.TOAST.value)

    # Simple single-condition form, used while uses_advanced_conditions is False
    field: Mapped[str] = mapped_column(String(20), default=RuleFieldTarget.TITLE.value)
    operator: Mapped[str] = mapped_column(String(20), default=RuleOperator.CONTAINS.value)
    value: Mapped[str] = mapped_column(String(500), default="")
    regex_pattern: Mapped[str] = mapped_column(String(500), default="")
    case_sensitive: Mapped[bool] = mapped_column(Boolean, default=False)
    uses_advanced_conditions: Mapped[bool] = mapped_column(Boolean, default=False)

    # Statistics
    match_count: Mapped[int] = mapped_column(Integer, default=0)
    last_match_date: Mapped[datetime | None] = mapped_column(DateTime)

    created_at: Mapped[datetime] = mapped_column(DateTime, default=_utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime, default=_utcnow)

    conditions: Mapped[list["RuleCondition"]] = relationship(
        back_populates="rule",
        cascade="all, delete-orphan",
        passive_deletes=True,
    )

    @property
    def scope(self) -> AllFeeds | SpecificFeeds | SpecificCategories:
        if self.scope_kind == ScopeKind.SPECIFIC_FEEDS:
            return SpecificFeeds(feed_ids=list(self.feed_ids or []))
        if self.scope_kind == ScopeKind.SPECIFIC_CATEGORIES:
            return SpecificCategories(category_ids=list(self.category_ids or []))
        return AllFeeds()

    @scope.setter
    def scope(self, scope: AllFeeds | SpecificFeeds | SpecificCategories) -> None:
        self.scope_kind = scope.kind
        self.feed_ids = list(scope.feed_ids) if isinstance(scope, SpecificFeeds) else []
        self.category_ids = (
            list(scope.category_ids) if isinstance(scope, SpecificCategories) else []
        )

    @property
    def action(self):
        """The configured action as a tagged-union value."""
        match self.action_type:
            case ActionType.MARK_AS_READ:
                return MarkAsRead()
            case ActionType.MARK_AS_STARRED:
                return MarkAsStarred()
            case ActionType.MARK_AS_FAVORITE:
                return MarkAsFavorite()
            case ActionType.SEND_NOTIFICATION:
                return SendNotification(
                    template=self.notification_template,
                    priority=self.notification_priority or NotificationPriority.NORMAL,
                    notification_type=self.notification_type or NotificationType.TOAST,
                )
            case ActionType.APPLY_TAGS:
                return ApplyTags(tag_ids=list(self.tag_ids or []))
            case ActionType.MOVE_TO_CATEGORY:
                return MoveToCategory(category_id=self.target_category_id)
            case ActionType.HIGHLIGHT_ARTICLE:
                return HighlightArticle(color=self.highlight_color or "")
            case ActionType.PLAY_SOUND:
                return PlaySound(sound_path=self.sound_path or "")
        raise ValueError(f"Unknown action type: {self.action_type}")

    @action.setter
    def action(self, action) -> None:
        self.action_type = action.type
        self.target_category_id = getattr(action, "category_id", None)
        self.tag_ids = list(getattr(action, "tag_ids", []))
        self.highlight_color = getattr(action, "color", None)
        self.sound_path = getattr(action, "sound_path", None)
        self.notification_template = getattr(action, "template", None)
        if isinstance(action, SendNotification):
            self.notification_priority = action.priority.value
            self.notification_type = action.notification_type.value


class RuleCondition(Base):
    __tablename__ = "rule_conditions"
    __table_args__ = (Index("ix_rule_conditions_rule_group", "rule_id", "group_id"),)

    id: Mapped[int] = mapped_column(primary_key=True)
    rule_id: Mapped[int] = mapped_column(ForeignKey("rules.id", ondelete="CASCADE"))
    group_id: Mapped[int] = mapped_column(Integer, default=0)
    order: Mapped[int] = mapped_column("sort_order", Integer, default=0)
    field: Mapped[str] = mapped_column(String(20), default=RuleFieldTarget.TITLE.value)
    operator: Mapped[str] = mapped_column(String(20), default=RuleOperator.CONTAINS.value)
    value: Mapped[str] = mapped_column(String(500), default="")
    regex_pattern: Mapped[str] = mapped_column(String(500), default="")
    case_sensitive: Mapped[bool] = mapped_column(Boolean, default=False)
    negate: Mapped[bool] = mapped_column(Boolean, default=False)

    rule: Mapped[Rule] = relationship(back_populates="conditions")


class NotificationLog(Base):
    __tablename__ = "notification_logs"

    id: Mapped[int] = mapped_column(primary_key=True)
    article_id: Mapped[int | None] = mapped_column(ForeignKey("articles.id", ondelete="SET NULL"))
    rule_id: Mapped[int | None] = mapped_column(ForeignKey("rules.id", ondelete="SET NULL"))
    title: Mapped[str] = mapped_column(String(500))
    message: Mapped[str] = mapped_column(Text)
    notification_type: Mapped[str] = mapped_column(String(20))
    priority: Mapped[str] = mapped_column(String(20))
    channel: Mapped[str] = mapped_column(String(50))
    duration_seconds: Mapped[int] = mapped_column(Integer, default=7)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=_utcnow)
