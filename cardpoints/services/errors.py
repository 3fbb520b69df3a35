"""Shared exception hierarchy for card points services."""

# ── Repository ────────────────────────────────────────────────────────────────


class RepositoryError(Exception):
    """Base exception for persistence boundary errors."""

    def __init__(
        self,
        message: str,
        operation: str,
        cause: BaseException | None = None,
    ) -> None:
        super().__init__(message)
        self.message: str = message
        self.operation: str = operation
        self.cause: BaseException | None = cause

    def __str__(self) -> str:
        return f"{self.message} (operation={self.operation})"


class AuthenticationError(RepositoryError):
    """No active user/session is available for the operation."""

    def __init__(self, operation: str, cause: BaseException | None = None) -> None:
        super().__init__("User is not authenticated", operation, cause)


class ValidationError(RepositoryError):
    """A required field is missing or invalid."""

    def __init__(self, message: str, field: str, operation: str) -> None:
        super().__init__(message, operation)
        self.field: str = field


class PersistenceError(RepositoryError):
    """Underlying storage failed, returned nothing, or changed no rows."""


class RecordNotFoundError(PersistenceError):
    """An expected row was missing or a write affected zero rows."""


# ── Rules ─────────────────────────────────────────────────────────────────────


class RulesEngineError(Exception):
    """Base exception for rules engine errors."""


class InvalidRuleError(RulesEngineError):
    """A reward rule's configuration is invalid."""

    def __init__(self, rule_id: str, problems: list[str]) -> None:
        super().__init__(f"Rule {rule_id} is invalid: {'; '.join(problems)}")
        self.rule_id: str = rule_id
        self.problems: list[str] = problems
