# ABOUTME: Exception hierarchy for rule management, evaluation, and action execution.
# ABOUTME: Condition-level failures never surface here; they downgrade to non-match.


class RuleEngineError(Exception):
    """Base class for rule engine exceptions."""

    def __init__(self, message: str = "Rule engine error"):
        self.message = message
        super().__init__(message)


class RuleValidationError(RuleEngineError):
    """Raised when a rule or condition fails write-path validation.

    Nothing is persisted when this is raised.
    """

    def __init__(self, errors: list[str]):
        self.errors = errors
        super().__init__("; ".join(errors) or "Rule validation failed")


class NotFoundError(RuleEngineError):
    """Raised when a mutation references a rule, condition, article, or feed that doesn't exist."""

    def __init__(self, entity: str, entity_id: int):
        self.entity = entity
        self.entity_id = entity_id
        super().__init__(f"{entity} with ID {entity_id} not found")


class DuplicateNameError(RuleEngineError):
    """Raised when a rule name collides with an existing rule on create or rename."""

    def __init__(self, name: str):
        self.name = name
        super().__init__(f"A rule with name '{name}' already exists")


class InfrastructureError(RuleEngineError):
    """Raised when storage or notification collaborators fail during evaluation or actions."""
