"""Unit tests for BatchWriter."""

from __future__ import annotations

import pytest

from record_gateway.adapters.outbound import InMemoryRecordStore
from record_gateway.application import BatchWriter, RecordResult
from record_gateway.domain.entities import Record
from record_gateway.domain.errors import (
    ConflictingOperationError,
    ExecutionError,
    InvalidOperationError,
    QuotaExceeded,
)
from record_gateway.domain.services import ResourceGovernor
from record_gateway.domain.value_objects import OperationKind
from record_gateway.infrastructure.metrics import MetricsRegistry


def _new(name: str) -> Record:
    return Record.from_values("Account", {"Name": name})


@pytest.mark.unit
class TestEnqueue:
    """Pending-set policy."""

    def test_insert_with_id_rejected(self, writer: BatchWriter) -> None:
        record = Record.from_values("Account", {"Name": "Acme"}, id="001")
        result = writer.enqueue(OperationKind.INSERT, record)
        assert isinstance(result.error, InvalidOperationError)

    @pytest.mark.parametrize("kind", [OperationKind.UPDATE, OperationKind.DELETE])
    def test_update_or_delete_without_id_rejected(
        self, writer: BatchWriter, kind: OperationKind
    ) -> None:
        result = writer.enqueue(kind, _new("Acme"))
        assert isinstance(result.error, InvalidOperationError)

    def test_update_then_delete_conflicts(self, writer: BatchWriter) -> None:
        record = Record.from_values("Account", {"Name": "Acme"}, id="001")
        assert writer.enqueue(OperationKind.UPDATE, record).ok

        result = writer.enqueue(OperationKind.DELETE, Record("Account", id=record.id))

        assert isinstance(result.error, ConflictingOperationError)
        assert result.error.pending == "update"
        assert result.error.requested == "delete"
        assert writer.pending.pending_kind(record) == OperationKind.UPDATE

    def test_same_kind_replaces_in_place(self, writer: BatchWriter) -> None:
        first = Record.from_values("Account", {"Name": "A"}, id="001")
        second = Record.from_values("Account", {"Name": "B"}, id="001")

        writer.enqueue(OperationKind.UPDATE, first)
        writer.enqueue(OperationKind.UPDATE, Record.from_values("Account", {}, id="002"))
        writer.enqueue(OperationKind.UPDATE, second)

        records = writer.pending.records("Account", OperationKind.UPDATE)
        assert writer.pending_count == 2
        assert records[0] is second
        assert records[1].id == "002"

    def test_distinct_new_records_do_not_collide(self, writer: BatchWriter) -> None:
        writer.enqueue(OperationKind.INSERT, _new("A"))
        writer.enqueue(OperationKind.INSERT, _new("A"))
        assert writer.pending_count == 2

    def test_discard(self, writer: BatchWriter) -> None:
        writer.enqueue(OperationKind.INSERT, _new("A"))
        assert writer.discard() == 1
        assert writer.is_empty

    def test_discard_reports_failure_to_callbacks(self, writer: BatchWriter) -> None:
        outcomes: list[RecordResult] = []
        writer.enqueue(OperationKind.INSERT, _new("A"), outcomes.append)

        writer.discard(reason="aborted")

        assert [(r.kind, r.success, r.error) for r in outcomes] == [
            (OperationKind.INSERT, False, "aborted")
        ]


@pytest.mark.unit
class TestFlush:
    """Flush batching and outcomes."""

    def test_empty_flush_is_noop(
        self, writer: BatchWriter, governor: ResourceGovernor, store: InMemoryRecordStore
    ) -> None:
        report = writer.flush().unwrap()

        assert report.batches == 0
        assert report.results == []
        assert governor.write_batches_issued == 0
        assert store.calls["bulk_write"] == 0

    def test_one_reservation_per_kind(
        self, writer: BatchWriter, governor: ResourceGovernor, store: InMemoryRecordStore
    ) -> None:
        existing = store.add_many("Account", [{"Name": f"Old {i}"} for i in range(3)])
        for i in range(20):
            writer.enqueue(OperationKind.INSERT, _new(f"New {i}"))
        writer.enqueue(OperationKind.UPDATE, Record.from_values("Account", {"Name": "X"}, id=existing[0].id))
        writer.enqueue(OperationKind.DELETE, Record("Account", id=existing[1].id))

        report = writer.flush().unwrap()

        assert report.batches == 3
        assert governor.write_batches_issued == 3
        assert store.calls["bulk_write"] == 3
        assert report.all_succeeded
        assert len(report.for_kind(OperationKind.INSERT)) == 20
        assert store.count("Account") == 22
        assert writer.is_empty

    def test_flush_order(self, writer: BatchWriter, store: InMemoryRecordStore) -> None:
        existing = store.add("Account", {"Name": "Old"})
        writer.enqueue(OperationKind.DELETE, Record("Account", id=existing.id))
        writer.enqueue(OperationKind.INSERT, _new("New"))

        report = writer.flush().unwrap()

        assert [r.kind for r in report.results] == [OperationKind.INSERT, OperationKind.DELETE]

    def test_insert_assigns_ids_and_fires_callbacks(self, writer: BatchWriter) -> None:
        seen: list[RecordResult] = []
        record = _new("Acme")
        writer.enqueue(OperationKind.INSERT, record, seen.append)

        writer.flush().unwrap()

        assert record.id is not None
        assert len(seen) == 1
        assert seen[0].success
        assert seen[0].assigned_id == record.id

    def test_per_record_failures_reported(
        self, writer: BatchWriter, store: InMemoryRecordStore
    ) -> None:
        store.add_validation_rule("Account", lambda v: v.get("Name") != "Bad", "bad name")
        writer.enqueue(OperationKind.INSERT, _new("Good"))
        writer.enqueue(OperationKind.INSERT, _new("Bad"))

        report = writer.flush().unwrap()

        assert len(report.succeeded) == 1
        assert report.failed[0].error == "bad name"
        assert store.count("Account") == 1

    def test_all_or_nothing_rolls_back_and_stops(
        self, writer: BatchWriter, store: InMemoryRecordStore, governor: ResourceGovernor
    ) -> None:
        existing = store.add("Account", {"Name": "Old"})
        store.add_validation_rule("Account", lambda v: v.get("Name") != "Bad", "bad name")
        writer.enqueue(OperationKind.INSERT, _new("Good"))
        writer.enqueue(OperationKind.INSERT, _new("Bad"))
        writer.enqueue(OperationKind.DELETE, Record("Account", id=existing.id))

        report = writer.flush(all_or_nothing=True).unwrap()

        assert not report.all_succeeded
        assert report.batches == 1
        assert store.count("Account") == 1
        assert writer.pending_count == 1
        assert governor.write_batches_issued == 1

    def test_quota_exceeded_leaves_rest_pending(
        self, store: InMemoryRecordStore, metrics_registry: MetricsRegistry
    ) -> None:
        governor = ResourceGovernor(write_ceiling=1)
        writer = BatchWriter(store, governor, metrics_registry)
        existing = store.add("Account", {"Name": "Old"})
        writer.enqueue(OperationKind.INSERT, _new("New"))
        writer.enqueue(OperationKind.DELETE, Record("Account", id=existing.id))

        result = writer.flush()

        assert isinstance(result.error, QuotaExceeded)
        assert writer.pending.kinds() == [OperationKind.DELETE]
        assert store.count("Account") == 2
        assert store.calls["bulk_write"] == 1

    def test_last_report_keeps_sent_batches(
        self, store: InMemoryRecordStore, metrics_registry: MetricsRegistry
    ) -> None:
        governor = ResourceGovernor(write_ceiling=1)
        writer = BatchWriter(store, governor, metrics_registry)
        existing = store.add("Account", {"Name": "Old"})
        writer.enqueue(OperationKind.INSERT, _new("New"))
        writer.enqueue(OperationKind.DELETE, Record("Account", id=existing.id))

        assert not writer.flush().ok

        report = writer.last_report
        assert report is not None
        assert report.batches == 1
        assert [r.kind for r in report.succeeded] == [OperationKind.INSERT]
        assert store.get("Account", report.succeeded[0].assigned_id) is not None

    def test_store_error_keeps_kind_pending(
        self, writer: BatchWriter, store: InMemoryRecordStore
    ) -> None:
        store.fail_next(TimeoutError("slow"))
        writer.enqueue(OperationKind.INSERT, _new("Acme"))

        result = writer.flush()

        assert isinstance(result.error, ExecutionError)
        assert writer.pending_count == 1

        # A retry within quota sends it
        assert writer.flush().unwrap().all_succeeded
        assert store.count("Account") == 1

    def test_write_metrics(
        self, writer: BatchWriter, store: InMemoryRecordStore, metrics_registry: MetricsRegistry
    ) -> None:
        writer.enqueue(OperationKind.INSERT, _new("Acme"))
        writer.flush()

        written = metrics_registry.records_written_total.labels(
            operation="insert", status="success"
        )
        assert written._value.get() == 1
