"""Resource governor: per-transaction ceilings on queries and write batches.

Every read query and every bulk write must reserve a slot here before it is
dispatched to the record store, so a denied reservation never results in a
store call. One governor instance is shared, by reference, by every
executor, batch writer and repository taking part in a transaction; quota is
therefore additive across nested call sites instead of per call site.

Lifecycle:

    reset() ──> reserve_query() / reserve_write_batch() ... ──> reset()
    (transaction start)                                  (next transaction)

reset() is invoked once at the start of each transaction scope by the
surrounding framework (see ``transaction()``), never mid-transaction.

Thread Safety:
    Check and increment happen under one lock, so concurrent callers can
    never both observe "under ceiling" and overshoot it.
"""

from __future__ import annotations

import threading
from contextlib import contextmanager
from dataclasses import dataclass
from typing import TYPE_CHECKING, Iterator

from record_gateway.domain.errors import QuotaExceeded, QuotaKind
from record_gateway.domain.value_objects import Result
from record_gateway.infrastructure.logging import (
    bind_transaction,
    get_logger,
    unbind_transaction,
)

if TYPE_CHECKING:
    from record_gateway.infrastructure.config import GovernorConfig
    from record_gateway.infrastructure.metrics import MetricsRegistry

logger = get_logger(__name__)


@dataclass(frozen=True)
class GovernorUsage:
    """Point-in-time view of quota consumption."""

    queries_issued: int
    query_ceiling: int
    write_batches_issued: int
    write_ceiling: int
    transaction: int

    @property
    def queries_remaining(self) -> int:
        return self.query_ceiling - self.queries_issued

    @property
    def write_batches_remaining(self) -> int:
        return self.write_ceiling - self.write_batches_issued


class ResourceGovernor:
    """Transaction-scoped counter of read queries and write batches."""

    def __init__(
        self,
        query_ceiling: int = 100,
        write_ceiling: int = 150,
        metrics: MetricsRegistry | None = None,
        name: str = "default",
    ) -> None:
        """Initialize the governor.

        Args:
            query_ceiling: Max read queries per transaction.
            write_ceiling: Max write batches per transaction.
            metrics: Optional metrics registry.
            name: Label telling this governor's usage gauge apart from
                other governors recording into the same registry.
        """
        if query_ceiling < 0 or write_ceiling < 0:
            raise ValueError("Governor ceilings must be non-negative")
        self._query_ceiling = query_ceiling
        self._write_ceiling = write_ceiling
        self._metrics = metrics
        self._name = name
        self._lock = threading.Lock()
        self._queries_issued = 0
        self._write_batches_issued = 0
        self._transaction = 0

    @classmethod
    def from_config(
        cls,
        config: GovernorConfig,
        metrics: MetricsRegistry | None = None,
        name: str = "default",
    ) -> ResourceGovernor:
        return cls(
            query_ceiling=config.query_ceiling,
            write_ceiling=config.write_ceiling,
            metrics=metrics,
            name=name,
        )

    @property
    def name(self) -> str:
        return self._name

    @property
    def query_ceiling(self) -> int:
        return self._query_ceiling

    @property
    def write_ceiling(self) -> int:
        return self._write_ceiling

    @property
    def queries_issued(self) -> int:
        with self._lock:
            return self._queries_issued

    @property
    def write_batches_issued(self) -> int:
        with self._lock:
            return self._write_batches_issued

    def reserve_query(self) -> Result[None]:
        """Reserve one read query slot.

        Returns:
            Success if a slot was taken, otherwise a QuotaExceeded failure.
            A failed reservation leaves the counter untouched.
        """
        return self._reserve(QuotaKind.QUERY)

    def reserve_write_batch(self) -> Result[None]:
        """Reserve one write batch slot; see reserve_query()."""
        return self._reserve(QuotaKind.WRITE_BATCH)

    def _reserve(self, kind: QuotaKind) -> Result[None]:
        with self._lock:
            if kind == QuotaKind.QUERY:
                issued, ceiling = self._queries_issued, self._query_ceiling
            else:
                issued, ceiling = self._write_batches_issued, self._write_ceiling

            if issued >= ceiling:
                error = QuotaExceeded(kind, ceiling, issued)
            else:
                error = None
                issued += 1
                if kind == QuotaKind.QUERY:
                    self._queries_issued = issued
                else:
                    self._write_batches_issued = issued

        if error is not None:
            logger.warning(
                "quota_exceeded", kind=kind.value, ceiling=ceiling, issued=issued
            )
            if self._metrics:
                self._metrics.quota_denials_total.labels(kind=kind.value).inc()
            return Result.failure(error)

        if self._metrics:
            self._metrics.reservations_total.labels(kind=kind.value).inc()
            self._metrics.governor_usage.labels(governor=self._name, kind=kind.value).set(issued)
        return Result.success()

    def reset(self) -> None:
        """Clear both counters. Call once at the start of a transaction."""
        with self._lock:
            self._queries_issued = 0
            self._write_batches_issued = 0
            self._transaction += 1
            sequence = self._transaction

        if self._metrics:
            self._metrics.transactions_total.inc()
            for kind in QuotaKind:
                self._metrics.governor_usage.labels(governor=self._name, kind=kind.value).set(0)
        logger.debug("governor_reset", transaction=sequence)

    def usage(self) -> GovernorUsage:
        """Snapshot of current consumption."""
        with self._lock:
            return GovernorUsage(
                queries_issued=self._queries_issued,
                query_ceiling=self._query_ceiling,
                write_batches_issued=self._write_batches_issued,
                write_ceiling=self._write_ceiling,
                transaction=self._transaction,
            )

    @contextmanager
    def transaction(self) -> Iterator[ResourceGovernor]:
        """Scope a transaction: reset on entry, log usage on exit.

        Example:
            >>> governor = ResourceGovernor(query_ceiling=2)
            >>> with governor.transaction():
            ...     governor.reserve_query().ok
            True
        """
        self.reset()
        usage = self.usage()
        bind_transaction(usage.transaction)
        try:
            yield self
        finally:
            usage = self.usage()
            logger.info(
                "transaction_usage",
                queries=usage.queries_issued,
                query_ceiling=usage.query_ceiling,
                write_batches=usage.write_batches_issued,
                write_ceiling=usage.write_ceiling,
            )
            unbind_transaction()

    def __repr__(self) -> str:
        usage = self.usage()
        return (
            f"ResourceGovernor(queries={usage.queries_issued}/{usage.query_ceiling}, "
            f"write_batches={usage.write_batches_issued}/{usage.write_ceiling})"
        )
