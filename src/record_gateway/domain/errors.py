"""Error taxonomy for the record gateway.

Every failure the gateway reports derives from DataAccessError so callers can
catch the whole family, while the concrete types keep the operator-facing
distinction between "the code did not batch" (QuotaExceeded) and "the store
failed" (ExecutionError).

Hierarchy:
    DataAccessError
    ├── MalformedQueryError       caller built an invalid query
    ├── QuotaExceeded             transaction ceiling reached
    ├── NotFound                  single-result query matched nothing
    ├── MultipleResultsError      single-result query matched several rows
    ├── ConflictingOperationError record already pending under another kind
    ├── InvalidOperationError     write request inconsistent with record identity
    ├── FieldTypeMismatchError    record field could not be narrowed
    ├── RecordMappingError        stored record breaks an entity invariant
    └── ExecutionError            opaque store failure (wraps the cause)
"""

from __future__ import annotations

from enum import Enum
from typing import Any


class QuotaKind(Enum):
    """Which governor ceiling a reservation targets."""

    QUERY = "query"
    WRITE_BATCH = "write_batch"


class DataAccessError(Exception):
    """Base class for every error surfaced by the gateway."""

    pass


class MalformedQueryError(DataAccessError):
    """The query expression violates a structural rule."""

    pass


class QuotaExceeded(DataAccessError):
    """A per-transaction ceiling was reached.

    Retrying without restructuring the caller to batch will hit the same
    ceiling, so this is never retried by the gateway.
    """

    def __init__(self, kind: QuotaKind, ceiling: int, issued: int) -> None:
        self.kind = kind
        self.ceiling = ceiling
        self.issued = issued
        super().__init__(
            f"{kind.value} quota exceeded: {issued} of {ceiling} already issued "
            f"in this transaction"
        )


class NotFound(DataAccessError):
    """A single-result query matched zero rows."""

    def __init__(self, target: str, detail: str = "") -> None:
        self.target = target
        message = f"No {target} record matched"
        if detail:
            message = f"{message}: {detail}"
        super().__init__(message)


class MultipleResultsError(DataAccessError):
    """A single-result query matched more than one row."""

    def __init__(self, target: str, count: int) -> None:
        self.target = target
        self.count = count
        super().__init__(
            f"Expected one {target} record, got {count}; add limit(1) to take the first"
        )


class ConflictingOperationError(DataAccessError):
    """The record is already pending under a different operation kind."""

    def __init__(self, record_key: Any, pending: str, requested: str) -> None:
        self.record_key = record_key
        self.pending = pending
        self.requested = requested
        super().__init__(
            f"Record {record_key} is already pending {pending}; cannot also {requested}"
        )


class InvalidOperationError(DataAccessError):
    """The write request does not fit the record (e.g. update without id)."""

    pass


class FieldTypeMismatchError(DataAccessError):
    """A record field holds a different variant than the mapping expects."""

    def __init__(self, field: str, expected: str, actual: str) -> None:
        self.field = field
        self.expected = expected
        self.actual = actual
        super().__init__(f"Field '{field}' expected {expected}, got {actual}")


class ExecutionError(DataAccessError):
    """The record store failed; the original exception is kept as cause."""

    def __init__(self, cause: BaseException, operation: str = "store call") -> None:
        self.cause = cause
        self.operation = operation
        super().__init__(f"{operation} failed: {cause}")
        self.__cause__ = cause


class RecordMappingError(DataAccessError):
    """A stored record could not be turned into a valid entity."""

    def __init__(self, collection: str, record_id: str | None, cause: Exception) -> None:
        self.collection = collection
        self.record_id = record_id
        self.cause = cause
        super().__init__(f"{collection} {record_id} cannot be mapped: {cause}")
        self.__cause__ = cause
