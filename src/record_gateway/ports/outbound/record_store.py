"""Record Store port.

This outbound port defines the contract for the external record store the
gateway orchestrates. The gateway never implements storage; it only issues
structured reads and bulk writes through this interface. Transport (RPC,
HTTP, embedded call), timeouts and retries belong to the implementation.
"""

from __future__ import annotations

from abc import abstractmethod
from dataclasses import dataclass, field
from typing import Any, Protocol, Sequence

from record_gateway.domain.entities import Record
from record_gateway.domain.query import QueryExpression
from record_gateway.domain.value_objects import OperationKind, RecordId


@dataclass(frozen=True)
class PerRecordResult:
    """Outcome of one record within a bulk write.

    Results are returned in the same order as the input records.
    """

    success: bool
    assigned_id: RecordId | None = None
    error: str | None = None

    @classmethod
    def ok(cls, assigned_id: RecordId | None = None) -> PerRecordResult:
        return cls(success=True, assigned_id=assigned_id)

    @classmethod
    def failed(cls, error: str) -> PerRecordResult:
        return cls(success=False, error=error)


@dataclass(frozen=True)
class AggregateRow:
    """One group of an aggregate query.

    ``groups`` holds the grouped field values, ``values`` the aggregate
    results keyed by alias.
    """

    groups: dict[str, Any] = field(default_factory=dict)
    values: dict[str, Any] = field(default_factory=dict)

    def __getitem__(self, key: str) -> Any:
        if key in self.values:
            return self.values[key]
        if key in self.groups:
            return self.groups[key]
        raise KeyError(f"Column '{key}' not found")

    def get(self, key: str, default: Any = None) -> Any:
        try:
            return self[key]
        except KeyError:
            return default


class RecordStore(Protocol):
    """Protocol for the external record store.

    Thread Safety:
        Implementations must tolerate concurrent calls; the gateway adds no
        locking around store calls.
    """

    @abstractmethod
    def query(self, expression: QueryExpression) -> list[Record]:
        """Execute a read.

        Relationship sub-queries are resolved in the same call and attached
        to each returned record's ``related`` mapping.

        Args:
            expression: The query to run.

        Returns:
            Matching records, in query order.

        Raises:
            Exception: Any transport or store failure.
        """
        ...

    @abstractmethod
    def bulk_write(
        self,
        kind: OperationKind,
        records: Sequence[Record],
        all_or_none: bool = False,
    ) -> list[PerRecordResult]:
        """Execute one batch write.

        Args:
            kind: The write operation applied to every record.
            records: Records to write (may span collections).
            all_or_none: When True, a single record failure rolls back the
                whole batch and every result is reported as failed.

        Returns:
            One PerRecordResult per input record, same order as input.

        Raises:
            Exception: Any transport or store failure of the call as a whole.
        """
        ...

    @abstractmethod
    def aggregate_query(self, expression: QueryExpression) -> list[AggregateRow]:
        """Execute an aggregate read, one row per group."""
        ...
