# ABOUTME: Rule and condition management with write-path validation and display views.
# ABOUTME: Invalid rules are rejected here so evaluation never has to raise on bad input.

from datetime import UTC, datetime

import structlog

from feed_rules.config import Settings, get_settings
from feed_rules.db.models import Rule, RuleCondition
from feed_rules.db.stores import ConditionStore, RuleStore
from feed_rules.errors import DuplicateNameError, NotFoundError, RuleValidationError
from feed_rules.models import (
    VALUELESS_OPERATORS,
    ActionType,
    ConditionCreate,
    ConditionGroupView,
    ConditionUpdate,
    ConditionView,
    RuleCreate,
    RuleOperator,
    RuleUpdate,
    RuleView,
    ScopeKind,
    ValidationReport,
)
from feed_rules.services.conditions import ConditionEvaluator, ConditionSpec
from feed_rules.services.regex_matcher import RegexMatcher
from feed_rules.services.rendering import (
    describe_condition,
    describe_group,
    describe_groups,
    field_label,
    format_time_ago,
    operator_label,
)

log = structlog.get_logger()


def condition_errors(
    operator: RuleOperator,
    value: str,
    regex_pattern: str,
    group_id: int = 0,
    order: int = 0,
) -> list[str]:
    """Problems with a single condition's configuration, empty if it is usable."""
    errors = []
    if operator == RuleOperator.REGEX:
        if not regex_pattern or not regex_pattern.strip():
            errors.append("Regex pattern is required for the regex operator")
        elif (problem := RegexMatcher.validate(regex_pattern)) is not None:
            errors.append(f"Invalid regex pattern '{regex_pattern}': {problem}")
    if operator not in VALUELESS_OPERATORS and not (value or "").strip():
        errors.append(f"A value is required for the {operator.value} operator")
    if group_id < 0:
        errors.append("Group ID cannot be negative")
    if order < 0:
        errors.append("Order cannot be negative")
    return errors


def rule_errors(rule: Rule, max_name_length: int = 200) -> list[str]:
    """Problems with a rule's name, scope, action, and simple condition."""
    errors = []
    name = (rule.name or "").strip()
    if not name:
        errors.append("Rule name is required")
    elif len(name) > max_name_length:
        errors.append(f"Rule name cannot exceed {max_name_length} characters")

    if rule.scope_kind == ScopeKind.SPECIFIC_FEEDS and not rule.feed_ids:
        errors.append("Feed IDs are required when scope is specific_feeds")
    if rule.scope_kind == ScopeKind.SPECIFIC_CATEGORIES and not rule.category_ids:
        errors.append("Category IDs are required when scope is specific_categories")

    match rule.action_type:
        case ActionType.APPLY_TAGS if not rule.tag_ids:
            errors.append("Tag IDs are required when action is apply_tags")
        case ActionType.MOVE_TO_CATEGORY if rule.target_category_id is None:
            errors.append("Category ID is required when action is move_to_category")
        case ActionType.HIGHLIGHT_ARTICLE if not (rule.highlight_color or "").strip():
            errors.append("Highlight color is required when action is highlight_article")
        case ActionType.PLAY_SOUND if not (rule.sound_path or "").strip():
            errors.append("Sound path is required when action is play_sound")

    if not rule.uses_advanced_conditions:
        errors.extend(
            condition_errors(RuleOperator(rule.operator), rule.value, rule.regex_pattern)
        )
    return errors


def condition_view(condition: RuleCondition) -> ConditionView:
    spec = ConditionSpec.from_condition(condition)
    return ConditionView(
        id=condition.id,
        rule_id=condition.rule_id,
        group_id=condition.group_id,
        order=condition.order,
        field=spec.field,
        operator=spec.operator,
        value=spec.value,
        regex_pattern=spec.regex_pattern,
        case_sensitive=spec.case_sensitive,
        negate=spec.negate,
        field_display_name=field_label(spec.field),
        operator_display_name=operator_label(spec.operator),
        human_readable=describe_condition(spec),
    )


class RuleManager:
    """Create, update, and inspect rules and their condition groups."""

    def __init__(
        self,
        rules: RuleStore,
        conditions: ConditionStore,
        matcher: RegexMatcher | None = None,
        settings: Settings | None = None,
    ):
        self.rules = rules
        self.conditions = conditions
        self.settings = settings or get_settings()
        self.evaluator = ConditionEvaluator(matcher or RegexMatcher())

    async def describe_rule(self, rule: Rule) -> str:
        if not rule.uses_advanced_conditions:
            return describe_condition(ConditionSpec.from_rule(rule))
        grouped = await self.conditions.grouped_by_rule(rule.id)
        return describe_groups(
            [[ConditionSpec.from_condition(c) for c in members] for members in grouped.values()]
        )

    async def rule_view(self, rule: Rule) -> RuleView:
        return RuleView(
            id=rule.id,
            name=rule.name,
            description=rule.description,
            enabled=rule.enabled,
            priority=rule.priority,
            scope=rule.scope,
            action=rule.action,
            stop_on_match=rule.stop_on_match,
            uses_advanced_conditions=rule.uses_advanced_conditions,
            match_count=rule.match_count,
            last_match_date=rule.last_match_date,
            created_at=rule.created_at,
            updated_at=rule.updated_at,
            human_readable_condition=await self.describe_rule(rule),
            last_match_ago=format_time_ago(rule.last_match_date),
        )

    def _check(self, rule: Rule) -> None:
        errors = rule_errors(rule, self.settings.max_rule_name_length)
        if errors:
            log.warning("rule_validation_failed", rule_name=rule.name, errors=errors)
            raise RuleValidationError(errors)

    def _normalize_priority(self, priority: int) -> int:
        return priority if priority > 0 else self.settings.default_rule_priority

    # Rules

    async def create_rule(self, data: RuleCreate) -> RuleView:
        name = data.name.strip()
        if name and await self.rules.exists_by_name(name):
            raise DuplicateNameError(name)

        rule = Rule(
            name=name,
            description=data.description,
            enabled=data.enabled,
            priority=self._normalize_priority(data.priority),
            scope=data.scope,
            action=data.action,
            field=data.field.value,
            operator=data.operator.value,
            value=data.value,
            regex_pattern=data.regex_pattern,
            case_sensitive=data.case_sensitive,
            stop_on_match=data.stop_on_match,
            uses_advanced_conditions=data.uses_advanced_conditions,
            match_count=0,
            last_match_date=None,
        )
        self._check(rule)

        rule = await self.rules.insert(rule)
        log.info("rule_created", rule_id=rule.id, rule_name=rule.name)
        return await self.rule_view(rule)

    async def update_rule(self, rule_id: int, data: RuleUpdate) -> RuleView:
        rule = await self.rules.get(rule_id)
        if rule is None:
            raise NotFoundError("Rule", rule_id)

        changes = data.model_dump(
            exclude_unset=True, exclude={"scope", "action", "reset_match_count"}
        )
        for key, value in changes.items():
            if value is not None:
                setattr(rule, key, value)
        if data.scope is not None:
            rule.scope = data.scope
        if data.action is not None:
            rule.action = data.action

        if data.name is not None:
            rule.name = data.name.strip()
            if rule.name and await self.rules.exists_by_name(rule.name, exclude_id=rule_id):
                raise DuplicateNameError(rule.name)
        if data.priority is not None:
            rule.priority = self._normalize_priority(data.priority)
        rule.updated_at = datetime.now(UTC)

        self._check(rule)
        if data.reset_match_count:
            await self.rules.reset_statistics(rule_id)
        rule = await self.rules.save_changes(rule)
        if rule is None:
            raise NotFoundError("Rule", rule_id)
        log.info("rule_updated", rule_id=rule_id, reset_stats=data.reset_match_count)
        return await self.rule_view(rule)

    async def delete_rule(self, rule_id: int) -> bool:
        """Delete a rule with its conditions. Returns False if it didn't exist."""
        deleted = await self.rules.delete(rule_id)
        if deleted:
            log.info("rule_deleted", rule_id=rule_id)
        else:
            log.warning("rule_delete_not_found", rule_id=rule_id)
        return deleted

    async def get_rule(self, rule_id: int) -> RuleView | None:
        rule = await self.rules.get(rule_id)
        return await self.rule_view(rule) if rule else None

    async def list_rules(self) -> list[RuleView]:
        return [await self.rule_view(rule) for rule in await self.rules.list_all()]

    async def list_active_rules(self) -> list[RuleView]:
        return [await self.rule_view(rule) for rule in await self.rules.list_enabled_by_priority()]

    async def rule_exists_by_name(self, name: str) -> bool:
        if not name or not name.strip():
            return False
        return await self.rules.exists_by_name(name)

    # Conditions

    async def get_rule_conditions(self, rule_id: int) -> list[ConditionGroupView]:
        grouped = await self.conditions.grouped_by_rule(rule_id)
        return [
            ConditionGroupView(
                group_id=group_id,
                conditions=[condition_view(c) for c in members],
                human_readable=describe_group([ConditionSpec.from_condition(c) for c in members]),
            )
            for group_id, members in grouped.items()
        ]

    async def add_condition(self, data: ConditionCreate) -> ConditionView:
        """Attach a condition to a rule and switch the rule to advanced conditions.

        An order of 0 or less appends the condition at the end of its group.
        """
        rule = await self.rules.get(data.rule_id)
        if rule is None:
            raise NotFoundError("Rule", data.rule_id)

        errors = condition_errors(
            data.operator, data.value, data.regex_pattern, data.group_id, max(data.order, 0)
        )
        if errors:
            raise RuleValidationError(errors)

        order = data.order
        if order <= 0:
            order = await self.conditions.max_order_in_group(data.rule_id, data.group_id) + 1

        condition = await self.conditions.insert(
            RuleCondition(
                rule_id=data.rule_id,
                group_id=data.group_id,
                order=order,
                field=data.field.value,
                operator=data.operator.value,
                value=data.value,
                regex_pattern=data.regex_pattern,
                case_sensitive=data.case_sensitive,
                negate=data.negate,
            )
        )

        if not rule.uses_advanced_conditions:
            rule.uses_advanced_conditions = True
            rule.updated_at = datetime.now(UTC)
            await self.rules.save_changes(rule)

        log.info("condition_added", rule_id=data.rule_id, condition_id=condition.id, order=order)
        return condition_view(condition)

    async def update_condition(self, condition_id: int, data: ConditionUpdate) -> ConditionView:
        condition = await self.conditions.get(condition_id)
        if condition is None:
            raise NotFoundError("Condition", condition_id)

        for key, value in data.model_dump(exclude_unset=True).items():
            if value is not None:
                setattr(condition, key, value)

        errors = condition_errors(
            RuleOperator(condition.operator),
            condition.value,
            condition.regex_pattern,
            condition.group_id,
            condition.order,
        )
        if errors:
            raise RuleValidationError(errors)

        condition = await self.conditions.update(condition)
        log.info("condition_updated", condition_id=condition_id)
        return condition_view(condition)

    async def delete_condition(self, condition_id: int) -> bool:
        deleted = await self.conditions.delete(condition_id)
        if deleted:
            log.info("condition_deleted", condition_id=condition_id)
        return deleted

    async def reorder_conditions(
        self, rule_id: int, group_id: int, order_map: dict[int, int]
    ) -> int:
        """Set {condition_id: order} within a group; returns how many conditions moved."""
        if group_id < 0 or any(order < 0 for order in order_map.values()):
            raise RuleValidationError(["Group ID and orders must not be negative"])
        if await self.rules.get(rule_id) is None:
            raise NotFoundError("Rule", rule_id)
        return await self.conditions.reorder(rule_id, group_id, order_map)

    async def validate_rule_conditions(self, rule_id: int) -> ValidationReport:
        report = ValidationReport()
        for condition in await self.conditions.list_by_rule(rule_id):
            problems = condition_errors(
                RuleOperator(condition.operator),
                condition.value,
                condition.regex_pattern,
                condition.group_id,
                condition.order,
            )
            if problems:
                report.is_valid = False
                report.errors.append(
                    f"Invalid condition {condition.id} ({condition.field} {condition.operator}): "
                    + "; ".join(problems)
                )
        log.debug("rule_conditions_validated", rule_id=rule_id, valid=report.is_valid)
        return report

    async def test_condition_with_text(self, condition_id: int, text: str) -> bool:
        """Dry-run a stored condition against raw text. Unknown conditions never match."""
        condition = await self.conditions.get(condition_id)
        if condition is None:
            log.warning("test_condition_not_found", condition_id=condition_id)
            return False
        return self.evaluator.evaluate_text(ConditionSpec.from_condition(condition), text)
