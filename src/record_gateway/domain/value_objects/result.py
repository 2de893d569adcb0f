"""Explicit success/failure carrier.

Quota denials, cardinality violations and write conflicts are expected,
frequent outcomes of talking to a bounded store, so gateway operations
return them as values instead of raising. ``unwrap()`` turns a failure back
into an exception for callers that prefer to propagate.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Callable, Generic, TypeVar

from record_gateway.domain.errors import DataAccessError

T = TypeVar("T")
U = TypeVar("U")


@dataclass(frozen=True, slots=True)
class Result(Generic[T]):
    """Outcome of a gateway operation: a value or a DataAccessError."""

    value: T | None = None
    error: DataAccessError | None = None

    @classmethod
    def success(cls, value: T | None = None) -> Result[T]:
        return cls(value=value)

    @classmethod
    def failure(cls, error: DataAccessError) -> Result[T]:
        return cls(error=error)

    @property
    def ok(self) -> bool:
        return self.error is None

    def unwrap(self) -> T:
        """Return the value or raise the carried error."""
        if self.error is not None:
            raise self.error
        return self.value  # type: ignore[return-value]

    def unwrap_or(self, default: T) -> T:
        """Return the value, or ``default`` when this is a failure."""
        if self.error is not None:
            return default
        return self.value  # type: ignore[return-value]

    def map(self, func: Callable[[T], U]) -> Result[U]:
        """Apply ``func`` to a successful value; failures pass through."""
        if self.error is not None:
            return Result(error=self.error)
        return Result(value=func(self.value))  # type: ignore[arg-type]

    def __repr__(self) -> str:
        if self.error is not None:
            return f"Result.failure({type(self.error).__name__}: {self.error})"
        return f"Result.success({self.value!r})"
