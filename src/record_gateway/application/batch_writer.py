"""Batch writer: accumulate writes for a unit of work, flush them in bulk.

Writes are queued per collection and operation kind and sent only on an
explicit flush(). Each operation kind present costs exactly one write-batch
reservation per flush, however many records it carries; that is the whole
point of batching.

Pending-set policy:
    - A record appears under at most one operation kind at a time.
    - Enqueueing the same record again under the same kind replaces the
      earlier entry in place (last write wins, position kept).
    - Enqueueing it under a different kind fails with
      ConflictingOperationError (e.g. update and delete in one unit of work).

Flush order follows OperationKind: inserts, updates, upserts, deletes.
"""

from __future__ import annotations

import time
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Callable, Hashable, Iterator

from record_gateway.domain.entities import Record
from record_gateway.domain.errors import (
    ConflictingOperationError,
    ExecutionError,
    InvalidOperationError,
)
from record_gateway.domain.value_objects import OperationKind, RecordId, Result
from record_gateway.infrastructure.logging import get_logger
from record_gateway.infrastructure.tracing import trace_span

if TYPE_CHECKING:
    from record_gateway.domain.services import ResourceGovernor
    from record_gateway.infrastructure.metrics import MetricsRegistry
    from record_gateway.ports.outbound import PerRecordResult, RecordStore

logger = get_logger(__name__)


@dataclass(frozen=True)
class RecordResult:
    """Outcome of one record in a flush."""

    record: Record
    kind: OperationKind
    success: bool
    assigned_id: RecordId | None = None
    error: str | None = None


ResultCallback = Callable[[RecordResult], None]


@dataclass
class PendingWrite:
    """A queued write and the callbacks to notify once it is flushed."""

    kind: OperationKind
    record: Record
    callbacks: list[ResultCallback] = field(default_factory=list)


@dataclass
class FlushReport:
    """Per-record outcome of a flush."""

    results: list[RecordResult] = field(default_factory=list)
    batches: int = 0

    @property
    def succeeded(self) -> list[RecordResult]:
        return [r for r in self.results if r.success]

    @property
    def failed(self) -> list[RecordResult]:
        return [r for r in self.results if not r.success]

    @property
    def all_succeeded(self) -> bool:
        return all(r.success for r in self.results)

    def for_kind(self, kind: OperationKind) -> list[RecordResult]:
        return [r for r in self.results if r.kind == kind]


class PendingWriteSet:
    """Pending writes grouped by collection, then by operation kind."""

    def __init__(self) -> None:
        self._groups: dict[str, dict[OperationKind, list[PendingWrite]]] = {}
        self._index: dict[Hashable, PendingWrite] = {}

    def add(
        self,
        kind: OperationKind,
        record: Record,
        on_result: ResultCallback | None = None,
    ) -> Result[None]:
        key = record.identity_key()
        existing = self._index.get(key)
        if existing is not None:
            if existing.kind != kind:
                return Result.failure(
                    ConflictingOperationError(key, existing.kind.value, kind.value)
                )
            existing.record = record
            if on_result is not None and on_result not in existing.callbacks:
                existing.callbacks.append(on_result)
            return Result.success()

        entry = PendingWrite(kind=kind, record=record)
        if on_result is not None:
            entry.callbacks.append(on_result)
        self._groups.setdefault(record.collection, {}).setdefault(kind, []).append(entry)
        self._index[key] = entry
        return Result.success()

    def pending_kind(self, record: Record) -> OperationKind | None:
        entry = self._index.get(record.identity_key())
        return entry.kind if entry is not None else None

    def entries(self, kind: OperationKind) -> list[PendingWrite]:
        """Entries under ``kind`` across collections, in enqueue order per collection."""
        return [
            entry
            for by_kind in self._groups.values()
            for entry in by_kind.get(kind, [])
        ]

    def records(self, collection: str, kind: OperationKind) -> list[Record]:
        return [e.record for e in self._groups.get(collection, {}).get(kind, [])]

    def kinds(self) -> list[OperationKind]:
        """Kinds with pending entries, in flush order."""
        present = {kind for by_kind in self._groups.values() for kind in by_kind}
        return [kind for kind in OperationKind if kind in present]

    def clear(self, kind: OperationKind) -> None:
        for collection in list(self._groups):
            by_kind = self._groups[collection]
            for entry in by_kind.pop(kind, []):
                self._index.pop(entry.record.identity_key(), None)
            if not by_kind:
                del self._groups[collection]

    def discard(self) -> None:
        self._groups.clear()
        self._index.clear()

    def __len__(self) -> int:
        return len(self._index)

    def __iter__(self) -> Iterator[PendingWrite]:
        for kind in self.kinds():
            yield from self.entries(kind)


class BatchWriter:
    """Queues writes for one unit of work and flushes them in bulk."""

    def __init__(
        self,
        store: RecordStore,
        governor: ResourceGovernor,
        metrics: MetricsRegistry | None = None,
    ) -> None:
        """Initialize the writer.

        Args:
            store: The record store to flush to.
            governor: Governor shared with every other participant of the
                transaction.
            metrics: Optional metrics registry.
        """
        self._store = store
        self._governor = governor
        self._metrics = metrics
        self._pending = PendingWriteSet()
        self._last_report: FlushReport | None = None

    @property
    def governor(self) -> ResourceGovernor:
        return self._governor

    @property
    def pending(self) -> PendingWriteSet:
        return self._pending

    @property
    def pending_count(self) -> int:
        return len(self._pending)

    @property
    def is_empty(self) -> bool:
        return len(self._pending) == 0

    @property
    def last_report(self) -> FlushReport | None:
        """Report of the latest flush, including the batches a failed flush sent."""
        return self._last_report

    def enqueue(
        self,
        kind: OperationKind,
        record: Record,
        on_result: ResultCallback | None = None,
    ) -> Result[None]:
        """Queue ``record`` under ``kind``.

        Args:
            kind: The write to perform.
            record: The record to write. Inserts must not carry an id;
                updates and deletes must.
            on_result: Called with the record's RecordResult after flush.

        Returns:
            Success, or a failure carrying ConflictingOperationError or
            InvalidOperationError.
        """
        if kind.forbids_id() and record.id is not None:
            return Result.failure(
                InvalidOperationError(f"Cannot insert {record.collection} {record.id}: id already set")
            )
        if kind.requires_id() and record.id is None:
            return Result.failure(
                InvalidOperationError(f"Cannot {kind.value} {record.collection} without an id")
            )

        result = self._pending.add(kind, record, on_result)
        if not result.ok:
            if self._metrics:
                self._metrics.write_conflicts_total.inc()
            logger.warning(
                "write_conflict",
                collection=record.collection,
                record_id=record.id,
                requested=kind.value,
            )
        return result

    def discard(self, reason: str = "discarded before flush") -> int:
        """Drop every pending write without sending it.

        Callbacks of dropped writes receive a failed RecordResult carrying
        ``reason``. Returns the count dropped.
        """
        entries = list(self._pending)
        self._pending.discard()
        for entry in entries:
            result = RecordResult(
                record=entry.record, kind=entry.kind, success=False, error=reason
            )
            for callback in entry.callbacks:
                callback(result)
        if entries:
            logger.info("pending_writes_discarded", count=len(entries), reason=reason)
        return len(entries)

    def flush(self, all_or_nothing: bool = False) -> Result[FlushReport]:
        """Send pending writes, one bulk call per operation kind.

        Args:
            all_or_nothing: Ask the store to roll back a whole batch when any
                record in it fails; later kinds are then left pending.

        Returns:
            A FlushReport, or a failure. On QuotaExceeded or ExecutionError
            the kinds already sent stay sent and the rest remain pending;
            last_report then holds the outcomes of the batches that were sent.
        """
        report = FlushReport()
        self._last_report = report
        if self.is_empty:
            return Result.success(report)

        for kind in self._pending.kinds():
            entries = self._pending.entries(kind)

            reservation = self._governor.reserve_write_batch()
            if not reservation.ok:
                logger.warning(
                    "flush_denied",
                    kind=kind.value,
                    records=len(entries),
                    sent_batches=report.batches,
                )
                return Result.failure(reservation.error)  # type: ignore[arg-type]

            sent = self._send(kind, entries, all_or_nothing)
            if not sent.ok:
                return Result.failure(sent.error)  # type: ignore[arg-type]

            self._pending.clear(kind)
            report.batches += 1
            batch_results = self._apply(kind, entries, sent.value or [])
            report.results.extend(batch_results)

            if all_or_nothing and not all(r.success for r in batch_results):
                logger.warning("flush_stopped", kind=kind.value, pending=len(self._pending))
                break

        return Result.success(report)

    def _send(
        self,
        kind: OperationKind,
        entries: list[PendingWrite],
        all_or_nothing: bool,
    ) -> Result[list[PerRecordResult]]:
        records = [entry.record for entry in entries]
        start = time.perf_counter()
        attributes = {"gateway.operation": kind.value, "gateway.records": len(records)}
        with trace_span("record_store.bulk_write", attributes) as span:
            try:
                outcomes = self._store.bulk_write(kind, records, all_or_none=all_or_nothing)
                if len(outcomes) != len(records):
                    raise ValueError(
                        f"store returned {len(outcomes)} results for {len(records)} records"
                    )
            except Exception as e:
                span.record_exception(e)
                self._observe("error", time.perf_counter() - start)
                logger.error("bulk_write_failed", kind=kind.value, records=len(records), error=str(e))
                return Result.failure(ExecutionError(e, f"bulk {kind.value}"))

        self._observe("success", time.perf_counter() - start)
        return Result.success(list(outcomes))

    def _apply(
        self,
        kind: OperationKind,
        entries: list[PendingWrite],
        outcomes: list[PerRecordResult],
    ) -> list[RecordResult]:
        results = []
        for entry, outcome in zip(entries, outcomes):
            record = entry.record
            if outcome.success and record.id is None and outcome.assigned_id is not None:
                record.id = outcome.assigned_id
            result = RecordResult(
                record=record,
                kind=kind,
                success=outcome.success,
                assigned_id=outcome.assigned_id,
                error=outcome.error,
            )
            results.append(result)
            for callback in entry.callbacks:
                callback(result)

        succeeded = sum(1 for r in results if r.success)
        if self._metrics:
            self._metrics.records_written_total.labels(
                operation=kind.value, status="success"
            ).inc(succeeded)
            self._metrics.records_written_total.labels(
                operation=kind.value, status="failure"
            ).inc(len(results) - succeeded)
        logger.info(
            "batch_flushed",
            kind=kind.value,
            records=len(results),
            succeeded=succeeded,
            failed=len(results) - succeeded,
        )
        return results

    def _observe(self, status: str, elapsed: float) -> None:
        if self._metrics:
            self._metrics.store_calls_total.labels(operation="bulk_write", status=status).inc()
            self._metrics.store_latency_seconds.labels(operation="bulk_write").observe(elapsed)
