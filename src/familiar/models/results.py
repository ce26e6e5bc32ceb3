"""Result types returned by the use-case layer.

Every use-case operation returns a :class:`Result`: either a value or one of
the expected error kinds (validation, not-found, conflict, incompatible
schema). Fatal storage errors are raised instead.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Generic, TypeVar

from familiar.core.exceptions import FamiliarError


T = TypeVar("T")


@dataclass(frozen=True)
class Result(Generic[T]):
    """Outcome of a use-case operation.

    Attributes:
        value: The produced value on success.
        error: The expected failure, if any.
    """

    value: T | None = None
    error: FamiliarError | None = None

    @classmethod
    def success(cls, value: T) -> Result[T]:
        return cls(value=value)

    @classmethod
    def failure(cls, error: FamiliarError) -> Result[T]:
        return cls(error=error)

    @property
    def ok(self) -> bool:
        return self.error is None

    def unwrap(self) -> T:
        """Return the value, raising the carried error on failure."""
        if self.error is not None:
            raise self.error
        return self.value  # type: ignore[return-value]


@dataclass
class ImportReport:
    """Counts of what an import inserted and skipped, per entity type."""

    mode: str
    inserted: dict[str, int] = field(
        default_factory=lambda: {"campaigns": 0, "characters": 0, "entries": 0}
    )
    skipped: dict[str, int] = field(
        default_factory=lambda: {"campaigns": 0, "characters": 0, "entries": 0}
    )
    removed: dict[str, int] = field(
        default_factory=lambda: {"campaigns": 0, "characters": 0, "entries": 0}
    )

    @property
    def total_inserted(self) -> int:
        return sum(self.inserted.values())


__all__ = ["Result", "ImportReport"]
