"""Unit tests for QueryExecutor."""

from __future__ import annotations

import pytest

from record_gateway.adapters.outbound import InMemoryRecordStore
from record_gateway.application import QueryExecutor
from record_gateway.domain.errors import (
    ExecutionError,
    MalformedQueryError,
    MultipleResultsError,
    NotFound,
    QuotaExceeded,
)
from record_gateway.domain.query import Aggregate, eq, select, select_aggregates
from record_gateway.domain.services import ResourceGovernor
from record_gateway.infrastructure.metrics import MetricsRegistry


@pytest.fixture
def seeded(store: InMemoryRecordStore) -> InMemoryRecordStore:
    store.add_many(
        "Account",
        [
            {"Name": "Acme", "Industry": "Tech", "NumberOfEmployees": 10},
            {"Name": "Globex", "Industry": "Tech", "NumberOfEmployees": 20},
            {"Name": "Initech", "Industry": "Retail", "NumberOfEmployees": 5},
        ],
    )
    return store


@pytest.mark.unit
class TestFetchOne:
    """Single-result cardinality."""

    def test_zero_rows_is_not_found(self, seeded, executor: QueryExecutor) -> None:
        result = executor.fetch_one(select("Account", "Id").where(eq("Name", "Nobody")))

        assert isinstance(result.error, NotFound)
        assert result.error.target == "Account"

    def test_one_row(self, seeded, executor: QueryExecutor) -> None:
        result = executor.fetch_one(select("Account", "Id", "Name").where(eq("Name", "Acme")))

        assert result.ok
        assert result.value.value("Name") == "Acme"

    def test_many_rows_is_error(self, seeded, executor: QueryExecutor) -> None:
        result = executor.fetch_one(select("Account", "Id").where(eq("Industry", "Tech")))

        assert isinstance(result.error, MultipleResultsError)
        assert result.error.count == 2

    def test_limit_one_opts_into_first_row(self, seeded, executor: QueryExecutor) -> None:
        query = (
            select("Account", "Id", "Name")
            .where(eq("Industry", "Tech"))
            .order_by("NumberOfEmployees", descending=True)
            .limit(1)
        )
        result = executor.fetch_one(query)

        assert result.ok
        assert result.value.value("Name") == "Globex"


@pytest.mark.unit
class TestDispatch:
    """Governor and store interaction."""

    def test_each_fetch_reserves_one_query(
        self, seeded, executor: QueryExecutor, governor: ResourceGovernor
    ) -> None:
        executor.fetch_many(select("Account", "Id"))
        executor.fetch_one(select("Account", "Id").where(eq("Name", "Nobody")))

        assert governor.queries_issued == 2

    def test_denied_reservation_never_calls_store(
        self, seeded: InMemoryRecordStore, executor: QueryExecutor, governor: ResourceGovernor
    ) -> None:
        for _ in range(governor.query_ceiling):
            assert executor.fetch_many(select("Account", "Id")).ok

        result = executor.fetch_many(select("Account", "Id"))

        assert isinstance(result.error, QuotaExceeded)
        assert seeded.calls["query"] == governor.query_ceiling

    def test_store_failure_wrapped(
        self, seeded: InMemoryRecordStore, executor: QueryExecutor, governor: ResourceGovernor
    ) -> None:
        boom = ConnectionError("store unreachable")
        seeded.fail_next(boom)

        result = executor.fetch_many(select("Account", "Id"))

        assert isinstance(result.error, ExecutionError)
        assert result.error.cause is boom
        assert result.error.__cause__ is boom
        # The reservation was spent before the store was called
        assert governor.queries_issued == 1

    def test_fetch_many_empty(self, executor: QueryExecutor) -> None:
        result = executor.fetch_many(select("Account", "Id"))
        assert result.ok
        assert result.value == []

    def test_metrics(
        self, seeded, executor: QueryExecutor, metrics_registry: MetricsRegistry
    ) -> None:
        executor.fetch_many(select("Account", "Id"))

        calls = metrics_registry.store_calls_total.labels(operation="query", status="success")
        assert calls._value.get() == 1
        assert metrics_registry.rows_returned_total._value.get() == 3


@pytest.mark.unit
class TestFetchAggregates:
    def test_grouped_count(self, seeded, executor: QueryExecutor) -> None:
        query = select_aggregates(
            "Account", Aggregate.count("total"), group_by=["Industry"]
        ).order_by("Industry")

        rows = executor.fetch_aggregates(query).unwrap()

        assert [(r["Industry"], r["total"]) for r in rows] == [("Retail", 1), ("Tech", 2)]

    def test_sum_without_groups(self, seeded, executor: QueryExecutor) -> None:
        query = select_aggregates("Account", Aggregate("SUM", "NumberOfEmployees", "staff"))  # type: ignore[arg-type]

        rows = executor.fetch_aggregates(query).unwrap()

        assert len(rows) == 1
        assert rows[0]["staff"] == 35

    def test_non_aggregate_query_rejected_without_reservation(
        self, executor: QueryExecutor, governor: ResourceGovernor
    ) -> None:
        result = executor.fetch_aggregates(select("Account", "Id"))

        assert isinstance(result.error, MalformedQueryError)
        assert governor.queries_issued == 0
