# ABOUTME: Pydantic schemas and enums for rules, conditions, scopes, and actions.
# ABOUTME: Scope and action are tagged unions discriminated by their kind/type field.

from datetime import datetime
from enum import StrEnum
from typing import Annotated, Literal

from pydantic import BaseModel, Field


class RuleFieldTarget(StrEnum):
    TITLE = "title"
    CONTENT = "content"
    AUTHOR = "author"
    CATEGORIES = "categories"
    ALL_FIELDS = "all_fields"
    ANY_FIELD = "any_field"


class RuleOperator(StrEnum):
    CONTAINS = "contains"
    NOT_CONTAINS = "not_contains"
    EQUALS = "equals"
    NOT_EQUALS = "not_equals"
    STARTS_WITH = "starts_with"
    ENDS_WITH = "ends_with"
    REGEX = "regex"
    GREATER_THAN = "greater_than"
    LESS_THAN = "less_than"
    IS_EMPTY = "is_empty"
    IS_NOT_EMPTY = "is_not_empty"


# Operators that never read the condition value (regex reads regex_pattern instead)
VALUELESS_OPERATORS = frozenset(
    {RuleOperator.IS_EMPTY, RuleOperator.IS_NOT_EMPTY, RuleOperator.REGEX}
)


class ScopeKind(StrEnum):
    ALL_FEEDS = "all_feeds"
    SPECIFIC_FEEDS = "specific_feeds"
    SPECIFIC_CATEGORIES = "specific_categories"


class ActionType(StrEnum):
    MARK_AS_READ = "mark_as_read"
    MARK_AS_STARRED = "mark_as_starred"
    MARK_AS_FAVORITE = "mark_as_favorite"
    SEND_NOTIFICATION = "send_notification"
    APPLY_TAGS = "apply_tags"
    MOVE_TO_CATEGORY = "move_to_category"
    HIGHLIGHT_ARTICLE = "highlight_article"
    PLAY_SOUND = "play_sound"


class NotificationType(StrEnum):
    TOAST = "toast"
    SOUND = "sound"
    BOTH = "both"
    SILENT = "silent"
    BANNER = "banner"


class NotificationPriority(StrEnum):
    LOW = "low"
    NORMAL = "normal"
    HIGH = "high"
    CRITICAL = "critical"


class ArticleStatus(StrEnum):
    UNREAD = "unread"
    READ = "read"


class RuleHealthStatus(StrEnum):
    DISABLED = "disabled"
    NEVER_MATCHED = "never_matched"
    ACTIVE = "active"
    NORMAL = "normal"
    INFREQUENT = "infrequent"
    STALE = "stale"


# Scopes


class AllFeeds(BaseModel):
    kind: Literal["all_feeds"] = "all_feeds"


class SpecificFeeds(BaseModel):
    kind: Literal["specific_feeds"] = "specific_feeds"
    feed_ids: list[int]


class SpecificCategories(BaseModel):
    kind: Literal["specific_categories"] = "specific_categories"
    category_ids: list[int]


RuleScope = Annotated[AllFeeds | SpecificFeeds | SpecificCategories, Field(discriminator="kind")]


# Actions


class MarkAsRead(BaseModel):
    type: Literal["mark_as_read"] = "mark_as_read"


class MarkAsStarred(BaseModel):
    type: Literal["mark_as_starred"] = "mark_as_starred"


class MarkAsFavorite(BaseModel):
    type: Literal["mark_as_favorite"] = "mark_as_favorite"


class SendNotification(BaseModel):
    type: Literal["send_notification"] = "send_notification"
    template: str | None = None
    priority: NotificationPriority = NotificationPriority.NORMAL
    notification_type: NotificationType = NotificationType.TOAST


class ApplyTags(BaseModel):
    type: Literal["apply_tags"] = "apply_tags"
    tag_ids: list[int]


class MoveToCategory(BaseModel):
    type: Literal["move_to_category"] = "move_to_category"
    category_id: int


class HighlightArticle(BaseModel):
    type: Literal["highlight_article"] = "highlight_article"
    color: str


class PlaySound(BaseModel):
    type: Literal["play_sound"] = "play_sound"
    sound_path: str


RuleAction = Annotated[
    MarkAsRead
    | MarkAsStarred
    | MarkAsFavorite
    | SendNotification
    | ApplyTags
    | MoveToCategory
    | HighlightArticle
    | PlaySound,
    Field(discriminator="type"),
]


# Write models


class RuleCreate(BaseModel):
    """Schema for creating a new rule.

    The field/operator/value block is the simple single-condition form and
    only applies while ``uses_advanced_conditions`` is False.
    """

    name: str
    description: str | None = None
    enabled: bool = True
    priority: int = 0
    scope: RuleScope = Field(default_factory=AllFeeds)
    action: RuleAction
    field: RuleFieldTarget = RuleFieldTarget.TITLE
    operator: RuleOperator = RuleOperator.CONTAINS
    value: str = ""
    regex_pattern: str = ""
    case_sensitive: bool = False
    stop_on_match: bool = False
    uses_advanced_conditions: bool = False


class RuleUpdate(BaseModel):
    """Partial rule update. Unset fields are left untouched."""

    name: str | None = None
    description: str | None = None
    enabled: bool | None = None
    priority: int | None = None
    scope: RuleScope | None = None
    action: RuleAction | None = None
    field: RuleFieldTarget | None = None
    operator: RuleOperator | None = None
    value: str | None = None
    regex_pattern: str | None = None
    case_sensitive: bool | None = None
    stop_on_match: bool | None = None
    uses_advanced_conditions: bool | None = None
    reset_match_count: bool = False


class ConditionCreate(BaseModel):
    rule_id: int
    group_id: int = 0
    order: int = 0
    field: RuleFieldTarget = RuleFieldTarget.TITLE
    operator: RuleOperator = RuleOperator.CONTAINS
    value: str = ""
    regex_pattern: str = ""
    case_sensitive: bool = False
    negate: bool = False


class ConditionUpdate(BaseModel):
    group_id: int | None = None
    order: int | None = None
    field: RuleFieldTarget | None = None
    operator: RuleOperator | None = None
    value: str | None = None
    regex_pattern: str | None = None
    case_sensitive: bool | None = None
    negate: bool | None = None


# Read models


class RuleView(BaseModel):
    """Rule data for API responses."""

    id: int
    name: str
    description: str | None
    enabled: bool
    priority: int
    scope: RuleScope
    action: RuleAction
    stop_on_match: bool
    uses_advanced_conditions: bool
    match_count: int
    last_match_date: datetime | None
    created_at: datetime
    updated_at: datetime
    human_readable_condition: str = ""
    last_match_ago: str = ""


class ConditionView(BaseModel):
    id: int
    rule_id: int
    group_id: int
    order: int
    field: RuleFieldTarget
    operator: RuleOperator
    value: str
    regex_pattern: str
    case_sensitive: bool
    negate: bool
    field_display_name: str
    operator_display_name: str
    human_readable: str


class ConditionGroupView(BaseModel):
    group_id: int
    conditions: list[ConditionView]
    human_readable: str


class RuleTestResult(BaseModel):
    """Outcome of a dry-run rule test against sample articles."""

    rule_id: int
    rule_name: str
    total_tested: int
    matched_count: int = 0
    matched_ids: list[int] = Field(default_factory=list)
    avg_eval_time_ms: float = 0.0


class RuleHealth(BaseModel):
    """Match statistics for a single rule."""

    rule_id: int
    name: str
    enabled: bool
    match_count: int
    last_match_date: datetime | None
    time_since_last_match: str | None = None
    average_matches_per_day: float | None = None
    health_status: RuleHealthStatus


class ValidationReport(BaseModel):
    is_valid: bool = True
    errors: list[str] = Field(default_factory=list)


class BatchEvaluateRequest(BaseModel):
    article_ids: list[int]


class RuleTestRequest(BaseModel):
    article_ids: list[int]
