"""Repository: the mapping seam between domain entities and store records.

A repository owns the translation table between one entity type and one
store collection. Reads go through the shared QueryExecutor, writes are
queued on the shared BatchWriter; neither ever talks to the store directly,
so all of them draw on the same transaction quota.

Write lifecycle per entity:

    UNSAVED ──save()──> PENDING ──flush ok──> PERSISTED
                           │
                           └──flush failed or discarded──> FAILED   (caller may save() again)

    PERSISTED ──delete()──> PENDING ──flush ok──> DELETED

save() never flushes. Flushing is an explicit caller action at the
boundary of a unit of work, so many saves across many entities still cost
one write-batch reservation per operation kind.

Write state is held only while the caller still references the entity.
"""

from __future__ import annotations

import weakref
from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable, ClassVar, Generic, Iterable, TypeVar

from record_gateway.application.batch_writer import BatchWriter, RecordResult
from record_gateway.application.executor import QueryExecutor
from record_gateway.domain.entities import DomainEntity, EntityValidationError, Record
from record_gateway.domain.errors import (
    DataAccessError,
    FieldTypeMismatchError,
    RecordMappingError,
)
from record_gateway.domain.query import (
    DEFAULT_LIMITS,
    Aggregate,
    Predicate,
    QueryExpression,
    QueryLimits,
    eq,
    in_,
    select,
    select_aggregates,
)
from record_gateway.domain.value_objects import (
    ID_FIELD,
    FieldType,
    FieldValue,
    OperationKind,
    RecordId,
    Result,
)
from record_gateway.infrastructure.logging import get_logger

logger = get_logger(__name__)

E = TypeVar("E", bound=DomainEntity)


class WriteState(Enum):
    """Persistence state of an entity within a unit of work."""

    UNSAVED = "unsaved"
    PENDING = "pending"
    PERSISTED = "persisted"
    FAILED = "failed"
    DELETED = "deleted"


@dataclass(frozen=True)
class FieldMapping:
    """One row of a repository's mapping table."""

    attribute: str
    field: str
    type: FieldType
    writable: bool = True


@dataclass
class _Tracked:
    entity: weakref.ref[DomainEntity]
    state: WriteState
    record: Record | None = None
    error: str | None = None


class Repository(Generic[E]):
    """Base repository.

    Subclasses set ``collection``, ``entity_type`` and ``mappings``; they
    override ``_construct``/``_extract`` when an attribute does not map to a
    single field (e.g. a value object spread over several fields).
    """

    collection: ClassVar[str]
    entity_type: ClassVar[type[DomainEntity]]
    mappings: ClassVar[tuple[FieldMapping, ...]]

    def __init__(
        self,
        executor: QueryExecutor,
        writer: BatchWriter,
        limits: QueryLimits = DEFAULT_LIMITS,
    ) -> None:
        if executor.governor is not writer.governor:
            raise ValueError("Executor and writer must share one ResourceGovernor")
        self._executor = executor
        self._writer = writer
        self._limits = limits
        self._tracked: dict[int, _Tracked] = {}

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def base_query(self) -> QueryExpression:
        """Query selecting every mapped field of the collection."""
        return select(
            self.collection,
            ID_FIELD,
            *(m.field for m in self.mappings),
            limits=self._limits,
        )

    def get_by_id(self, entity_id: str) -> Result[E]:
        """Load one entity; NotFound when no record has ``entity_id``."""
        fetched = self._executor.fetch_one(self.base_query().where(eq(ID_FIELD, entity_id)))
        if not fetched.ok:
            return Result.failure(fetched.error)  # type: ignore[arg-type]
        return self._map_one(fetched.value)  # type: ignore[arg-type]

    def get_by_ids(self, entity_ids: Iterable[str]) -> Result[list[E]]:
        """Load many entities with a single query.

        Duplicate ids are collapsed and results follow the order of
        ``entity_ids``; ids with no record are skipped. An empty id set
        returns an empty list without reserving a query.
        """
        ids = list(dict.fromkeys(entity_ids))
        if not ids:
            return Result.success([])
        fetched = self._executor.fetch_many(self.base_query().where(in_(ID_FIELD, ids)))
        if not fetched.ok:
            return Result.failure(fetched.error)  # type: ignore[arg-type]

        mapped = self._map_many(fetched.value or [])
        if not mapped.ok:
            return mapped
        position = {entity_id: i for i, entity_id in enumerate(ids)}
        entities = sorted(mapped.value or [], key=lambda e: position.get(e.id, len(ids)))
        return Result.success(entities)

    def find(
        self,
        predicate: Predicate | None = None,
        order_by: Iterable[str] = (),
        limit: int | None = None,
    ) -> Result[list[E]]:
        """Load every entity matching ``predicate``."""
        query = self.base_query()
        if predicate is not None:
            query = query.where(predicate)
        for name in order_by:
            descending = name.startswith("-")
            query = query.order_by(name.lstrip("-"), descending=descending)
        if limit is not None:
            query = query.limit(limit)
        fetched = self._executor.fetch_many(query)
        if not fetched.ok:
            return Result.failure(fetched.error)  # type: ignore[arg-type]
        return self._map_many(fetched.value or [])

    def find_first(
        self, predicate: Predicate | None = None, order_by: Iterable[str] = ()
    ) -> Result[E]:
        """Load the first matching entity (explicit ``limit(1)``); NotFound if none."""
        query = self.base_query()
        if predicate is not None:
            query = query.where(predicate)
        for name in order_by:
            query = query.order_by(name.lstrip("-"), descending=name.startswith("-"))
        fetched = self._executor.fetch_one(query.limit(1))
        if not fetched.ok:
            return Result.failure(fetched.error)  # type: ignore[arg-type]
        return self._map_one(fetched.value)  # type: ignore[arg-type]

    def count(self, predicate: Predicate | None = None) -> Result[int]:
        """Count matching records with one aggregate query."""
        query = select_aggregates(self.collection, Aggregate.count("total"), limits=self._limits)
        if predicate is not None:
            query = query.where(predicate)
        rows = self._executor.fetch_aggregates(query)
        if not rows.ok:
            return Result.failure(rows.error)  # type: ignore[arg-type]
        return Result.success(rows.value[0]["total"] if rows.value else 0)

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    def save(self, entity: E) -> Result[None]:
        """Queue an insert (no id yet) or update (id set). Never flushes.

        Returns:
            Success, or a failure carrying FieldTypeMismatchError when an
            attribute does not fit its mapped field type, or the enqueue
            failure from the batch writer.
        """
        entity.validate()
        try:
            record = self.to_record(entity)
        except FieldTypeMismatchError as e:
            logger.error(
                "entity_mapping_failed",
                collection=self.collection,
                entity_id=entity.id,
                error=str(e),
            )
            return Result.failure(e)
        tracked = self._tracked.get(id(entity))

        if (
            entity.id is None
            and tracked is not None
            and tracked.state == WriteState.PENDING
            and tracked.record is not None
            and self._writer.pending.pending_kind(tracked.record) == OperationKind.INSERT
        ):
            # Already queued for insert: refresh the queued record in place
            tracked.record.fields = record.fields
            return Result.success()

        kind = OperationKind.INSERT if entity.id is None else OperationKind.UPDATE
        return self._enqueue(kind, entity, record)

    def save_all(self, entities: Iterable[E]) -> Result[None]:
        """save() each entity, stopping at the first failure."""
        for entity in entities:
            result = self.save(entity)
            if not result.ok:
                return result
        return Result.success()

    def delete(self, entity: E) -> Result[None]:
        """Queue a delete of a persisted entity."""
        record = Record(collection=self.collection, id=self._record_id(entity))
        return self._enqueue(OperationKind.DELETE, entity, record)

    def state_of(self, entity: E) -> WriteState:
        tracked = self._tracked.get(id(entity))
        if tracked is not None:
            return tracked.state
        return WriteState.UNSAVED if entity.id is None else WriteState.PERSISTED

    def last_error(self, entity: E) -> str | None:
        """Store error reported for the entity's last failed flush."""
        tracked = self._tracked.get(id(entity))
        return tracked.error if tracked is not None else None

    def _enqueue(self, kind: OperationKind, entity: E, record: Record) -> Result[None]:
        key = id(entity)

        def on_result(result: RecordResult) -> None:
            tracked = self._tracked.get(key)
            if tracked is None:
                return
            if result.success:
                if entity.id is None and result.assigned_id is not None:
                    entity.id = result.assigned_id
                tracked.state = (
                    WriteState.DELETED if kind == OperationKind.DELETE else WriteState.PERSISTED
                )
                tracked.error = None
            else:
                tracked.state = WriteState.FAILED
                tracked.error = result.error
                logger.warning(
                    "entity_write_failed",
                    collection=self.collection,
                    entity_id=entity.id,
                    kind=kind.value,
                    error=result.error,
                )
            tracked.record = None

        queued = self._writer.enqueue(kind, record, on_result)
        if queued.ok:
            self._tracked[key] = _Tracked(
                entity=weakref.ref(entity, self._untrack(key)),
                state=WriteState.PENDING,
                record=record,
            )
        return queued

    def _untrack(self, key: int) -> Callable[[weakref.ref[DomainEntity]], None]:
        # Drop the entry once its entity is collected
        def forget(ref: weakref.ref[DomainEntity]) -> None:
            tracked = self._tracked.get(key)
            if tracked is not None and tracked.entity is ref:
                del self._tracked[key]

        return forget

    @property
    def tracked_count(self) -> int:
        """Entities with a write state still held by this repository."""
        return len(self._tracked)

    # ------------------------------------------------------------------
    # Mapping
    # ------------------------------------------------------------------

    def to_record(self, entity: E) -> Record:
        """Map an entity to a record using the mapping table."""
        values = self._extract(entity)
        fields: dict[str, FieldValue] = {}
        for mapping in self.mappings:
            if not mapping.writable:
                continue
            raw = values.get(mapping.attribute)
            if mapping.type == FieldType.REFERENCE:
                fields[mapping.field] = FieldValue.reference(raw)
            else:
                value = FieldValue.of(raw)
                value.narrow(mapping.type, mapping.field)
                fields[mapping.field] = value
        return Record(collection=self.collection, id=self._record_id(entity), fields=fields)

    def to_entity(self, record: Record) -> E:
        """Map a record to an entity, narrowing every mapped field.

        Raises:
            FieldTypeMismatchError: If a field holds an unexpected variant.
        """
        values: dict[str, Any] = {}
        for mapping in self.mappings:
            values[mapping.attribute] = record.narrow(mapping.field, mapping.type)
        entity = self._construct(values)
        entity.id = record.id
        return entity  # type: ignore[return-value]

    def _extract(self, entity: E) -> dict[str, Any]:
        return {m.attribute: getattr(entity, m.attribute) for m in self.mappings}

    def _construct(self, values: dict[str, Any]) -> E:
        return self.entity_type(**values)  # type: ignore[return-value]

    @staticmethod
    def _record_id(entity: DomainEntity) -> RecordId | None:
        return RecordId(entity.id) if entity.id is not None else None

    def _map_one(self, record: Record) -> Result[E]:
        """to_entity() with mapping failures returned instead of raised."""
        error: DataAccessError
        try:
            return Result.success(self.to_entity(record))
        except FieldTypeMismatchError as e:
            error = e
        except EntityValidationError as e:
            error = RecordMappingError(self.collection, record.id, e)
        logger.error(
            "record_mapping_failed",
            collection=self.collection,
            record_id=record.id,
            error=str(error),
        )
        return Result.failure(error)

    def _map_many(self, records: list[Record]) -> Result[list[E]]:
        entities = []
        for record in records:
            mapped = self._map_one(record)
            if not mapped.ok:
                return Result.failure(mapped.error)  # type: ignore[arg-type]
            entities.append(mapped.value)
        return Result.success(entities)
