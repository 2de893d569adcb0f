"""In-memory record store adapter.

A dictionary-backed implementation of the RecordStore port for testing and
development. It evaluates filter trees, resolves relationship sub-queries in
the same call, groups and aggregates, orders and pages, and applies bulk
writes with per-record results. Data is not persisted across restarts.

Usage:
    store = InMemoryRecordStore()
    store.define_relationship("Account", "Contacts", "Contact", "AccountId")
    acme = store.add("Account", {"Name": "Acme"})
    store.add("Contact", {"LastName": "Doe", "AccountId": acme.id})
"""

from __future__ import annotations

import threading
from collections import Counter
from dataclasses import dataclass
from decimal import Decimal
from typing import Any, Callable, Iterable, Mapping, Sequence

from record_gateway.domain.entities import Record
from record_gateway.domain.query import (
    AggregateFunction,
    OrderBy,
    QueryExpression,
)
from record_gateway.domain.value_objects import (
    ID_FIELD,
    FieldValue,
    OperationKind,
    RecordId,
)
from record_gateway.ports.outbound import AggregateRow, PerRecordResult


class StoreError(Exception):
    """Raised when the store rejects a call as a whole."""

    pass


@dataclass(frozen=True)
class RelationshipDef:
    """Parent-to-child relationship resolved by sub-queries."""

    parent: str
    name: str
    child: str
    foreign_key: str


@dataclass(frozen=True)
class ValidationRule:
    """Per-record rejection rule applied to inserts, updates and upserts."""

    collection: str
    check: Callable[[Mapping[str, Any]], bool]
    message: str


def _values_of(record: Record) -> dict[str, Any]:
    values: dict[str, Any] = {name: fv.value for name, fv in record.fields.items()}
    values[ID_FIELD] = record.id
    return values


def _sort(
    items: list[Any],
    ordering: Sequence[OrderBy],
    value_of: Callable[[Any, str], Any],
) -> list[Any]:
    """Stable multi-key sort honouring direction and null placement."""
    result = list(items)
    for key in reversed(ordering):
        null_rank = 1 if key.nulls_last else 0
        if key.descending:
            null_rank = 1 - null_rank

        def sort_key(item: Any, key: OrderBy = key, null_rank: int = null_rank) -> tuple:
            value = value_of(item, key.field)
            if value is None:
                return (null_rank, None)
            return (1 - null_rank, value)

        result.sort(key=sort_key, reverse=key.descending)
    return result


def _page(items: list[Any], offset: int, limit: int | None) -> list[Any]:
    if offset:
        items = items[offset:]
    if limit is not None:
        items = items[:limit]
    return items


def _aggregate(function: AggregateFunction, field: str | None, rows: list[Record]) -> Any:
    if function == AggregateFunction.COUNT:
        return len(rows)
    values = [r.value(field) for r in rows]  # type: ignore[arg-type]
    present = [v for v in values if v is not None]
    if function == AggregateFunction.COUNT_FIELD:
        return len(present)
    if not present:
        return None
    if function == AggregateFunction.SUM:
        return sum(present[1:], present[0])
    if function == AggregateFunction.AVG:
        total = sum((Decimal(v) for v in present), Decimal(0))
        return total / len(present)
    if function == AggregateFunction.MIN:
        return min(present)
    return max(present)


class InMemoryRecordStore:
    """In-memory implementation of RecordStore.

    Collections are insertion-ordered dictionaries of records keyed by id.
    Returned records are copies; callers cannot mutate stored state.

    Testing hooks:
        - ``calls``: number of store calls per operation name
        - ``fail_next(exc)``: make the next call raise ``exc``
        - ``add_validation_rule()``: reject individual records in bulk writes
    """

    def __init__(self) -> None:
        """Initialize empty storage."""
        self._lock = threading.Lock()
        self._collections: dict[str, dict[RecordId, Record]] = {}
        self._relationships: dict[tuple[str, str], RelationshipDef] = {}
        self._rules: list[ValidationRule] = []
        self._prefixes: dict[str, str] = {}
        self._sequence = 0
        self._pending_failures: list[BaseException] = []
        self.calls: Counter[str] = Counter()

    # ------------------------------------------------------------------
    # Setup helpers
    # ------------------------------------------------------------------

    def define_relationship(
        self, parent: str, name: str, child: str, foreign_key: str
    ) -> None:
        """Declare that ``child.foreign_key`` references ``parent.Id``."""
        self._relationships[(parent, name)] = RelationshipDef(parent, name, child, foreign_key)

    def add_validation_rule(
        self,
        collection: str,
        check: Callable[[Mapping[str, Any]], bool],
        message: str,
    ) -> None:
        """Reject writes to ``collection`` whose values fail ``check``."""
        self._rules.append(ValidationRule(collection, check, message))

    def add(self, collection: str, values: Mapping[str, Any]) -> Record:
        """Insert a record directly, bypassing call accounting.

        Returns:
            A copy of the stored record, with its assigned id.
        """
        with self._lock:
            record = Record.from_values(collection, values)
            record.id = self._next_id(collection)
            self._table(collection)[record.id] = record
            return self._copy(record)

    def add_many(self, collection: str, rows: Iterable[Mapping[str, Any]]) -> list[Record]:
        return [self.add(collection, values) for values in rows]

    def fail_next(self, error: BaseException) -> None:
        """Make the next store call raise ``error``."""
        self._pending_failures.append(error)

    def get(self, collection: str, record_id: str) -> Record | None:
        """Direct lookup, bypassing call accounting."""
        with self._lock:
            record = self._collections.get(collection, {}).get(RecordId(record_id))
            return self._copy(record) if record is not None else None

    def count(self, collection: str) -> int:
        with self._lock:
            return len(self._collections.get(collection, {}))

    # ------------------------------------------------------------------
    # RecordStore port
    # ------------------------------------------------------------------

    def query(self, expression: QueryExpression) -> list[Record]:
        self._enter("query")
        with self._lock:
            rows = list(self._table(expression.target).values())
            return self._select(expression, rows)

    def aggregate_query(self, expression: QueryExpression) -> list[AggregateRow]:
        self._enter("aggregate_query")
        if not expression.aggregates:
            raise StoreError("aggregate_query() needs an aggregate expression")
        with self._lock:
            rows = self._filter(expression, list(self._table(expression.target).values()))
            groups: dict[tuple, list[Record]] = {}
            for record in rows:
                key = tuple(record.value(f) for f in expression.group_fields)
                groups.setdefault(key, []).append(record)
            if not expression.group_fields and not groups:
                groups[()] = []

            result = []
            for key, members in groups.items():
                result.append(
                    AggregateRow(
                        groups=dict(zip(expression.group_fields, key)),
                        values={
                            agg.alias or f"expr{i}": _aggregate(agg.function, agg.field, members)
                            for i, agg in enumerate(expression.aggregates)
                        },
                    )
                )
        result = _sort(result, expression.ordering, lambda row, name: row.get(name))
        return _page(result, expression.row_offset, expression.row_limit)

    def bulk_write(
        self,
        kind: OperationKind,
        records: Sequence[Record],
        all_or_none: bool = False,
    ) -> list[PerRecordResult]:
        self._enter("bulk_write")
        with self._lock:
            plans: list[tuple[PerRecordResult, Callable[[], None] | None]] = [
                self._plan(kind, record) for record in records
            ]
            if all_or_none and any(not outcome.success for outcome, _ in plans):
                return [
                    outcome if not outcome.success
                    else PerRecordResult.failed("rolled back: another record in the batch failed")
                    for outcome, _ in plans
                ]
            for outcome, apply in plans:
                if outcome.success and apply is not None:
                    apply()
            return [outcome for outcome, _ in plans]

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _enter(self, operation: str) -> None:
        self.calls[operation] += 1
        if self._pending_failures:
            raise self._pending_failures.pop(0)

    def _table(self, collection: str) -> dict[RecordId, Record]:
        return self._collections.setdefault(collection, {})

    def _next_id(self, collection: str) -> RecordId:
        prefix = self._prefixes.setdefault(collection, f"{len(self._prefixes) + 1:03d}")
        self._sequence += 1
        return RecordId(f"{prefix}{self._sequence:015d}")

    @staticmethod
    def _copy(record: Record) -> Record:
        return Record(
            collection=record.collection,
            id=record.id,
            fields=dict(record.fields),
            related={name: list(rows) for name, rows in record.related.items()},
        )

    def _filter(self, expression: QueryExpression, rows: list[Record]) -> list[Record]:
        if expression.filter is None:
            return rows
        return [r for r in rows if expression.filter.matches(_values_of(r))]

    def _select(self, expression: QueryExpression, rows: list[Record]) -> list[Record]:
        rows = self._filter(expression, rows)
        if expression.group_fields:
            distinct: dict[tuple, Record] = {}
            for record in rows:
                key = tuple(record.value(f) for f in expression.group_fields)
                distinct.setdefault(key, record)
            rows = list(distinct.values())
        rows = _sort(rows, expression.ordering, lambda r, name: r.value(name))
        rows = _page(rows, expression.row_offset, expression.row_limit)

        selected = [r.project(list(expression.fields)) for r in rows]
        for relation in expression.relations:
            definition = self._relationships.get((expression.target, relation.name))
            if definition is None:
                raise StoreError(
                    f"Unknown relationship {relation.name} on {expression.target}"
                )
            if relation.query.target != definition.child:
                raise StoreError(
                    f"Relationship {relation.name} targets {definition.child}, "
                    f"not {relation.query.target}"
                )
            children = list(self._table(definition.child).values())
            for record in selected:
                linked = [
                    c for c in children
                    if c.value(definition.foreign_key) == record.id
                ]
                record.related[relation.name] = self._select(relation.query, linked)
        return selected

    def _reject_reason(self, record: Record, merged: Mapping[str, Any]) -> str | None:
        for rule in self._rules:
            if rule.collection == record.collection and not rule.check(merged):
                return rule.message
        return None

    def _plan(
        self, kind: OperationKind, record: Record
    ) -> tuple[PerRecordResult, Callable[[], None] | None]:
        table = self._table(record.collection)
        if kind == OperationKind.UPSERT:
            kind = OperationKind.UPDATE if record.id is not None else OperationKind.INSERT

        if kind == OperationKind.INSERT:
            if record.id is not None:
                return PerRecordResult.failed("cannot insert a record that already has an id"), None
            reason = self._reject_reason(record, _values_of(record))
            if reason:
                return PerRecordResult.failed(reason), None
            new_id = self._next_id(record.collection)
            stored = Record(collection=record.collection, id=new_id, fields=dict(record.fields))

            def insert() -> None:
                table[new_id] = stored

            return PerRecordResult.ok(new_id), insert

        existing = table.get(record.id) if record.id is not None else None
        if existing is None:
            return PerRecordResult.failed(f"entity {record.id} does not exist"), None

        if kind == OperationKind.DELETE:
            def delete() -> None:
                table.pop(existing.id, None)  # type: ignore[arg-type]

            return PerRecordResult.ok(existing.id), delete

        merged_fields: dict[str, FieldValue] = {**existing.fields, **record.fields}
        merged = Record(collection=record.collection, id=existing.id, fields=merged_fields)
        reason = self._reject_reason(record, _values_of(merged))
        if reason:
            return PerRecordResult.failed(reason), None

        def update() -> None:
            table[merged.id] = merged  # type: ignore[index]

        return PerRecordResult.ok(existing.id), update
