"""Query executor: governed reads against the record store.

Every read reserves one query slot from the shared ResourceGovernor before
it is dispatched; a denied reservation is returned to the caller unchanged
and the store is never called. Store failures are wrapped in ExecutionError
and are not retried here; retry and timeout policy belong to the store
client.

Single-result semantics:
    fetch_one() fails with NotFound on zero rows and MultipleResultsError on
    more than one. Callers that want "first row wins" opt in explicitly by
    adding ``limit(1)`` to the query.
"""

from __future__ import annotations

import time
from typing import TYPE_CHECKING, Callable, TypeVar

from record_gateway.domain.entities import Record
from record_gateway.domain.errors import (
    ExecutionError,
    MalformedQueryError,
    MultipleResultsError,
    NotFound,
)
from record_gateway.domain.query import QueryExpression
from record_gateway.domain.value_objects import Result
from record_gateway.infrastructure.logging import get_logger
from record_gateway.infrastructure.tracing import trace_span
from record_gateway.ports.outbound import AggregateRow

if TYPE_CHECKING:
    from record_gateway.domain.services import ResourceGovernor
    from record_gateway.infrastructure.metrics import MetricsRegistry
    from record_gateway.ports.outbound import RecordStore

logger = get_logger(__name__)

T = TypeVar("T")


class QueryExecutor:
    """Executes query expressions through the governor and the store."""

    def __init__(
        self,
        store: RecordStore,
        governor: ResourceGovernor,
        metrics: MetricsRegistry | None = None,
    ) -> None:
        """Initialize the executor.

        Args:
            store: The record store to dispatch to.
            governor: Governor shared with every other participant of the
                transaction.
            metrics: Optional metrics registry.
        """
        self._store = store
        self._governor = governor
        self._metrics = metrics

    @property
    def governor(self) -> ResourceGovernor:
        return self._governor

    def fetch_one(self, query: QueryExpression) -> Result[Record]:
        """Run a query expected to match exactly one row."""
        result = self._dispatch("query", query, self._store.query)
        if not result.ok:
            return Result.failure(result.error)  # type: ignore[arg-type]

        rows = result.value or []
        if not rows:
            return Result.failure(NotFound(query.target, str(query.filter or "")))
        if len(rows) > 1:
            return Result.failure(MultipleResultsError(query.target, len(rows)))
        return Result.success(rows[0])

    def fetch_many(self, query: QueryExpression) -> Result[list[Record]]:
        """Run a query returning every matching row (possibly none)."""
        return self._dispatch("query", query, self._store.query)

    def fetch_aggregates(self, query: QueryExpression) -> Result[list[AggregateRow]]:
        """Run an aggregate query, one row per group.

        A query without aggregates is rejected before any reservation.
        """
        if not query.aggregates:
            return Result.failure(
                MalformedQueryError(f"Query on {query.target} has no aggregates")
            )
        return self._dispatch("aggregate", query, self._store.aggregate_query)

    def _dispatch(
        self,
        operation: str,
        query: QueryExpression,
        call: Callable[[QueryExpression], list[T]],
    ) -> Result[list[T]]:
        reservation = self._governor.reserve_query()
        if not reservation.ok:
            return Result.failure(reservation.error)  # type: ignore[arg-type]

        start = time.perf_counter()
        attributes = {"gateway.operation": operation, "gateway.target": query.target}
        with trace_span(f"record_store.{operation}", attributes) as span:
            try:
                rows = call(query)
            except Exception as e:
                elapsed = time.perf_counter() - start
                span.record_exception(e)
                self._observe(operation, "error", elapsed)
                logger.error(
                    "store_query_failed",
                    operation=operation,
                    target=query.target,
                    error=str(e),
                )
                return Result.failure(ExecutionError(e, f"{operation} on {query.target}"))
            span.set_attribute("gateway.rows", len(rows))

        elapsed = time.perf_counter() - start
        self._observe(operation, "success", elapsed)
        if self._metrics:
            self._metrics.rows_returned_total.inc(len(rows))
        logger.debug(
            "store_query_completed",
            operation=operation,
            target=query.target,
            rows=len(rows),
            elapsed_ms=round(elapsed * 1000, 3),
        )
        return Result.success(list(rows))

    def _observe(self, operation: str, status: str, elapsed: float) -> None:
        if self._metrics:
            self._metrics.store_calls_total.labels(operation=operation, status=status).inc()
            self._metrics.store_latency_seconds.labels(operation=operation).observe(elapsed)
