# ABOUTME: Pure evaluation of atomic conditions, AND-groups, and OR-of-groups against an article.
# ABOUTME: Simple rules and stored conditions both normalize to ConditionSpec before evaluation.

from collections.abc import Iterable, Sequence
from dataclasses import dataclass
from datetime import UTC, datetime
from email.utils import parsedate_to_datetime

import structlog

from feed_rules.db.models import Article, Rule, RuleCondition
from feed_rules.models import RuleFieldTarget, RuleOperator
from feed_rules.services.regex_matcher import RegexMatcher

log = structlog.get_logger()


@dataclass(frozen=True)
class ConditionSpec:
    """One atomic text test, independent of how it was stored."""

    field: RuleFieldTarget
    operator: RuleOperator
    value: str = ""
    regex_pattern: str = ""
    case_sensitive: bool = False
    negate: bool = False
    condition_id: int | None = None

    @classmethod
    def from_condition(cls, condition: RuleCondition) -> "ConditionSpec":
        return cls(
            field=RuleFieldTarget(condition.field),
            operator=RuleOperator(condition.operator),
            value=condition.value or "",
            regex_pattern=condition.regex_pattern or "",
            case_sensitive=bool(condition.case_sensitive),
            negate=bool(condition.negate),
            condition_id=condition.id,
        )

    @classmethod
    def from_rule(cls, rule: Rule) -> "ConditionSpec":
        """The embedded single condition of a simple rule."""
        return cls(
            field=RuleFieldTarget(rule.field),
            operator=RuleOperator(rule.operator),
            value=rule.value or "",
            regex_pattern=rule.regex_pattern or "",
            case_sensitive=bool(rule.case_sensitive),
        )


ConditionGroup = Sequence[ConditionSpec]


def extract_field(article: Article, field: RuleFieldTarget) -> str:
    """Return the article text a condition targets. Missing values read as empty."""
    match field:
        case RuleFieldTarget.TITLE:
            return article.title or ""
        case RuleFieldTarget.CONTENT:
            return article.content or article.summary or ""
        case RuleFieldTarget.AUTHOR:
            return article.author or ""
        case RuleFieldTarget.CATEGORIES:
            return article.categories or ""
        case RuleFieldTarget.ALL_FIELDS | RuleFieldTarget.ANY_FIELD:
            return f"{article.title or ''} {article.content or ''} {article.summary or ''}".strip()
    return ""


def _parse_number(text: str) -> float | None:
    try:
        return float(text.strip())
    except ValueError:
        return None


def _parse_date(text: str) -> datetime | None:
    text = text.strip()
    if not text:
        return None
    try:
        parsed = datetime.fromisoformat(text)
    except ValueError:
        try:
            # RFC 822 dates as found in RSS pubDate
            parsed = parsedate_to_datetime(text)
        except (TypeError, ValueError):
            return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=UTC)
    return parsed


def fold_case(text: str) -> str:
    """Upper-case each character on its own, leaving multi-character mappings alone.

    Ordinal ignore-case semantics: "ß" stays "ß", and "_" still sorts after "A".
    """
    return "".join(upper if len(upper := ch.upper()) == 1 else ch for ch in text)


def _sign(left, right) -> int:
    return (left > right) - (left < right)


def compare_values(text: str, value: str) -> int:
    """Three-tier comparison: numeric, then date, then case-insensitive lexical.

    Both operands must parse at a tier for that tier to apply.
    """
    left_num, right_num = _parse_number(text), _parse_number(value)
    if left_num is not None and right_num is not None:
        return _sign(left_num, right_num)

    left_date, right_date = _parse_date(text), _parse_date(value)
    if left_date is not None and right_date is not None:
        return _sign(left_date, right_date)

    return _sign(fold_case(text), fold_case(value))


class ConditionEvaluator:
    """Evaluates conditions and condition groups. Never suspends, never raises."""

    def __init__(self, matcher: RegexMatcher):
        self.matcher = matcher

    def evaluate(self, spec: ConditionSpec, article: Article) -> bool:
        """Evaluate one condition against one article, applying negate."""
        try:
            text = extract_field(article, spec.field)
            result = self._apply_operator(spec, text)
        except Exception as e:
            log.error(
                "condition_evaluation_error",
                condition_id=spec.condition_id,
                operator=spec.operator,
                error=str(e),
            )
            return False
        return not result if spec.negate else result

    def evaluate_text(self, spec: ConditionSpec, text: str) -> bool:
        """Evaluate a condition against raw text instead of an article field."""
        try:
            result = self._apply_operator(spec, text or "")
        except Exception as e:
            log.error("condition_evaluation_error", operator=spec.operator, error=str(e))
            return False
        return not result if spec.negate else result

    def evaluate_group(self, group: ConditionGroup, article: Article) -> bool:
        """AND across a group; stops at the first failing condition. Empty groups fail."""
        if not group:
            return False
        return all(self.evaluate(spec, article) for spec in group)

    def evaluate_groups(self, groups: Iterable[ConditionGroup], article: Article) -> bool:
        """OR across groups; stops at the first group that holds."""
        return any(self.evaluate_group(group, article) for group in groups)

    def _apply_operator(self, spec: ConditionSpec, text: str) -> bool:
        op = spec.operator

        if op == RuleOperator.IS_EMPTY:
            return not text.strip()
        if op == RuleOperator.IS_NOT_EMPTY:
            return bool(text.strip())
        if op == RuleOperator.REGEX:
            return self.matcher.is_match(text, spec.regex_pattern, spec.case_sensitive)
        if op == RuleOperator.GREATER_THAN:
            return compare_values(text, spec.value) > 0
        if op == RuleOperator.LESS_THAN:
            return compare_values(text, spec.value) < 0

        value = spec.value
        if not spec.case_sensitive:
            text, value = fold_case(text), fold_case(value)

        match op:
            case RuleOperator.CONTAINS:
                return value in text
            case RuleOperator.NOT_CONTAINS:
                return value not in text
            case RuleOperator.EQUALS:
                return text == value
            case RuleOperator.NOT_EQUALS:
                return text != value
            case RuleOperator.STARTS_WITH:
                return text.startswith(value)
            case RuleOperator.ENDS_WITH:
                return text.endswith(value)
        return False
