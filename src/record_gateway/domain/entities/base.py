"""Base class for business entities.

Entities own their invariants: they validate on construction and again after
every mutating method. They know nothing about records, queries or quotas;
repositories do the translation.
"""

from __future__ import annotations

from dataclasses import dataclass


class EntityValidationError(ValueError):
    """Raised when an entity invariant is violated."""

    def __init__(self, entity: str, message: str) -> None:
        self.entity = entity
        super().__init__(f"{entity}: {message}")


def require_text(entity: str, name: str, value: str | None) -> None:
    """Fail unless ``value`` is a non-blank string."""
    if value is None or not value.strip():
        raise EntityValidationError(entity, f"{name} must not be blank")


@dataclass(kw_only=True)
class DomainEntity:
    """Business object with an identity that is None until persisted."""

    id: str | None = None

    def __post_init__(self) -> None:
        self.validate()

    def validate(self) -> None:
        """Check entity invariants. Subclasses extend this."""

    @property
    def is_new(self) -> bool:
        return self.id is None
