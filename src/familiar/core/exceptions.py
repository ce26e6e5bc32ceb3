"""Custom exception hierarchy for the Familiar journaling data layer.

All exceptions inherit from FamiliarError, enabling unified error handling
at the application boundary while preserving domain-specific context.

Two families exist:

* Expected outcomes (ValidationError, NotFoundError, ConflictError,
  IncompatibleSchemaError) are returned to the immediate caller inside a
  ``Result`` by the use-case layer.
* Fatal conditions (StorageUnavailableError, MigrationFailedError) propagate
  up to the application boundary.

Example:
    >>> from familiar.core.exceptions import NotFoundError
    >>> raise NotFoundError("Campaign not found", entity="campaign", entity_id="abc")
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any


class FamiliarError(Exception):
    """Base exception for all Familiar errors.

    Attributes:
        message: Human-readable error description.
        details: Optional dictionary containing additional error context.
    """

    def __init__(self, message: str, *, details: dict[str, Any] | None = None) -> None:
        """Initialize the base exception.

        Args:
            message: Human-readable error description.
            details: Optional dictionary containing additional error context.
        """
        self.message = message
        self.details = details or {}
        super().__init__(self._format_message())

    def _format_message(self) -> str:
        """Format the exception message with optional details.

        Returns:
            Formatted error message including any provided details.
        """
        if self.details:
            detail_str = ", ".join(f"{k}={v!r}" for k, v in self.details.items())
            return f"{self.message} [{detail_str}]"
        return self.message

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}(message={self.message!r}, details={self.details!r})"


# =============================================================================
# Validation & Lookup Outcomes
# =============================================================================


@dataclass(frozen=True)
class Violation:
    """A single violated rule.

    Attributes:
        field: Dotted/indexed path of the offending field (e.g. ``name`` or
            ``characters[2].campaignId``).
        rule: Machine-readable rule code (``required``, ``max_length``, ...).
        message: Human-readable description.
    """

    field: str
    rule: str
    message: str

    def at(self, prefix: str) -> Violation:
        """Return a copy of this violation nested under ``prefix``."""
        field = f"{prefix}.{self.field}" if self.field else prefix
        return Violation(field=field, rule=self.rule, message=self.message)


class ValidationError(FamiliarError):
    """Raised when candidate data violates one or more rules.

    Carries every violation found, not just the first, so callers can
    present all problems at once.
    """

    def __init__(
        self,
        violations: list[Violation] | tuple[Violation, ...],
        *,
        message: str | None = None,
        details: dict[str, Any] | None = None,
    ) -> None:
        """Initialize validation error with the full list of violations.

        Args:
            violations: Every rule that failed.
            message: Optional summary; derived from the violations if omitted.
            details: Optional dictionary containing additional error context.
        """
        self.violations = tuple(violations)
        if message is None:
            count = len(self.violations)
            message = f"{count} validation rule{'s' if count != 1 else ''} violated"
        combined_details = details or {}
        combined_details["violations"] = [f"{v.field}: {v.rule}" for v in self.violations]
        super().__init__(message, details=combined_details)

    @property
    def rules(self) -> set[str]:
        """Return the set of violated rule codes."""
        return {v.rule for v in self.violations}

    def for_field(self, field: str) -> list[Violation]:
        """Return the violations reported against ``field``."""
        return [v for v in self.violations if v.field == field]


class NotFoundError(FamiliarError):
    """Raised when a referenced identifier does not exist."""

    def __init__(
        self,
        message: str,
        *,
        entity: str | None = None,
        entity_id: str | None = None,
        details: dict[str, Any] | None = None,
    ) -> None:
        """Initialize not-found error with entity context.

        Args:
            message: Human-readable error description.
            entity: Entity type name (``campaign``, ``character``, ``entry``).
            entity_id: The identifier that could not be resolved.
            details: Optional dictionary containing additional error context.
        """
        self.entity = entity
        self.entity_id = entity_id
        combined_details = details or {}
        if entity:
            combined_details["entity"] = entity
        if entity_id:
            combined_details["entity_id"] = entity_id
        super().__init__(message, details=combined_details)


class ConflictError(FamiliarError):
    """Raised when a write collides with existing data.

    This includes duplicate identifiers and deletes blocked by dependents.
    """

    def __init__(
        self,
        message: str,
        *,
        entity: str | None = None,
        entity_id: str | None = None,
        details: dict[str, Any] | None = None,
    ) -> None:
        self.entity = entity
        self.entity_id = entity_id
        combined_details = details or {}
        if entity:
            combined_details["entity"] = entity
        if entity_id:
            combined_details["entity_id"] = entity_id
        super().__init__(message, details=combined_details)


class DeleteFailedError(ConflictError):
    """Raised when a cascading delete could not complete and was rolled back."""

    def __init__(
        self,
        reason: str,
        *,
        entity: str | None = None,
        entity_id: str | None = None,
        details: dict[str, Any] | None = None,
    ) -> None:
        """Initialize delete failure with the reason the cascade stopped.

        Args:
            reason: Why the cascade failed.
            entity: Entity type whose delete was requested.
            entity_id: Identifier whose delete was requested.
            details: Optional dictionary containing additional error context.
        """
        self.reason = reason
        super().__init__(
            f"Delete failed: {reason}",
            entity=entity,
            entity_id=entity_id,
            details=details,
        )


class IncompatibleSchemaError(FamiliarError):
    """Raised when a backup document is newer than this build supports."""

    def __init__(
        self,
        message: str,
        *,
        document_version: int | None = None,
        supported_version: int | None = None,
        details: dict[str, Any] | None = None,
    ) -> None:
        self.document_version = document_version
        self.supported_version = supported_version
        combined_details = details or {}
        if document_version is not None:
            combined_details["document_version"] = document_version
        if supported_version is not None:
            combined_details["supported_version"] = supported_version
        super().__init__(message, details=combined_details)


# =============================================================================
# Fatal Storage Exceptions
# =============================================================================


class StorageUnavailableError(FamiliarError):
    """Raised when the database file or engine cannot be used.

    Fatal for the current operation; retryable by the caller after the
    underlying problem (permissions, disk, corruption) is fixed.
    """

    def __init__(
        self,
        message: str,
        *,
        path: str | None = None,
        details: dict[str, Any] | None = None,
    ) -> None:
        """Initialize storage error with database path context.

        Args:
            message: Human-readable error description.
            path: Path to the database file involved.
            details: Optional dictionary containing additional error context.
        """
        self.path = path
        combined_details = details or {}
        if path:
            combined_details["path"] = path
        super().__init__(message, details=combined_details)


class MigrationFailedError(FamiliarError):
    """Raised when a schema migration step fails.

    The failing step is rolled back, so the database remains at
    ``from_version``. The application must not proceed.
    """

    def __init__(
        self,
        from_version: int,
        to_version: int,
        cause: str,
        *,
        details: dict[str, Any] | None = None,
    ) -> None:
        """Initialize migration failure with version context.

        Args:
            from_version: Schema version before the failing step.
            to_version: Schema version the step was moving to.
            cause: Description of the underlying failure.
            details: Optional dictionary containing additional error context.
        """
        self.from_version = from_version
        self.to_version = to_version
        self.cause = cause
        combined_details = details or {}
        combined_details["from_version"] = from_version
        combined_details["to_version"] = to_version
        combined_details["cause"] = cause
        super().__init__("Schema migration failed", details=combined_details)


# =============================================================================
# Configuration Exceptions
# =============================================================================


class ConfigurationError(FamiliarError):
    """Raised when application configuration is invalid."""

    def __init__(
        self,
        message: str,
        *,
        config_key: str | None = None,
        details: dict[str, Any] | None = None,
    ) -> None:
        combined_details = details or {}
        if config_key:
            combined_details["config_key"] = config_key
        super().__init__(message, details=combined_details)


__all__ = [
    "FamiliarError",
    # Expected outcomes
    "Violation",
    "ValidationError",
    "NotFoundError",
    "ConflictError",
    "DeleteFailedError",
    "IncompatibleSchemaError",
    # Fatal
    "StorageUnavailableError",
    "MigrationFailedError",
    # Configuration
    "ConfigurationError",
]
