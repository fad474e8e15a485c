# ABOUTME: Human-readable rendering of conditions, rules, and elapsed time for display.
# ABOUTME: Output is presentation-only and carries no evaluation semantics.

from collections.abc import Sequence
from datetime import UTC, datetime, timedelta

from feed_rules.models import RuleFieldTarget, RuleOperator
from feed_rules.services.conditions import ConditionSpec

FIELD_LABELS = {
    RuleFieldTarget.TITLE: "Title",
    RuleFieldTarget.CONTENT: "Content",
    RuleFieldTarget.AUTHOR: "Author",
    RuleFieldTarget.CATEGORIES: "Categories",
    RuleFieldTarget.ALL_FIELDS: "All fields",
    RuleFieldTarget.ANY_FIELD: "Any field",
}

OPERATOR_LABELS = {
    RuleOperator.CONTAINS: "contains",
    RuleOperator.NOT_CONTAINS: "does not contain",
    RuleOperator.EQUALS: "equals",
    RuleOperator.NOT_EQUALS: "does not equal",
    RuleOperator.STARTS_WITH: "starts with",
    RuleOperator.ENDS_WITH: "ends with",
    RuleOperator.REGEX: "matches regex",
    RuleOperator.GREATER_THAN: "is greater than",
    RuleOperator.LESS_THAN: "is less than",
    RuleOperator.IS_EMPTY: "is empty",
    RuleOperator.IS_NOT_EMPTY: "is not empty",
}


def field_label(field: RuleFieldTarget) -> str:
    return FIELD_LABELS.get(field, str(field))


def operator_label(operator: RuleOperator) -> str:
    return OPERATOR_LABELS.get(operator, str(operator))


def describe_condition(spec: ConditionSpec) -> str:
    """E.g. "Title contains 'breaking'" or "NOT (Author equals 'bot')"."""
    label = f"{field_label(spec.field)} {operator_label(spec.operator)}"
    if spec.operator == RuleOperator.REGEX:
        label += f" '{spec.regex_pattern}'"
    elif spec.operator not in (RuleOperator.IS_EMPTY, RuleOperator.IS_NOT_EMPTY):
        label += f" '{spec.value}'"
    return f"NOT ({label})" if spec.negate else label


def describe_group(group: Sequence[ConditionSpec]) -> str:
    return " AND ".join(describe_condition(spec) for spec in group)


def describe_groups(groups: Sequence[Sequence[ConditionSpec]]) -> str:
    """Render OR-of-AND groups; a lone group is shown without parentheses."""
    if not groups:
        return "No conditions defined"
    if len(groups) == 1:
        return describe_group(groups[0])
    return " OR ".join(f"({describe_group(group)})" for group in groups)


def _plural(count: int, unit: str) -> str:
    return f"{count} {unit}" if count == 1 else f"{count} {unit}s"


def format_elapsed(delta: timedelta) -> str:
    """Bucket an elapsed time into minutes, hours, days, months, or years."""
    minutes = delta.total_seconds() / 60
    if minutes < 1:
        return "less than a minute ago"
    if minutes < 60:
        return f"{_plural(int(minutes), 'minute')} ago"
    hours = minutes / 60
    if hours < 24:
        return f"{_plural(int(hours), 'hour')} ago"
    days = delta.days
    if days < 30:
        return f"{_plural(days, 'day')} ago"
    if days < 365:
        return f"{_plural(days // 30, 'month')} ago"
    return f"{_plural(days // 365, 'year')} ago"


def as_utc(moment: datetime) -> datetime:
    """SQLite hands back naive datetimes; they are stored as UTC."""
    return moment.replace(tzinfo=UTC) if moment.tzinfo is None else moment


def format_time_ago(moment: datetime | None, now: datetime | None = None) -> str:
    if moment is None:
        return "Never"
    now = now or datetime.now(UTC)
    return format_elapsed(now - as_utc(moment))
