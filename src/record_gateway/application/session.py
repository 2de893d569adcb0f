"""Data session - unified entry point for the gateway.

This module provides the DataSession class that wires one ResourceGovernor,
one QueryExecutor, one BatchWriter and the repositories around a single
record store, so every participant of a transaction shares one quota.

Usage:
    from record_gateway.application import DataSession

    session = DataSession(store)
    with session.transaction():
        accounts = session.accounts.get_by_ids(ids).unwrap()
        for account in accounts:
            account.deactivate()
        session.accounts.save_all(accounts).unwrap()
    # pending writes flushed on successful exit
"""

from __future__ import annotations

from contextlib import contextmanager
from typing import TYPE_CHECKING, Any, Iterator

from record_gateway.application.batch_writer import BatchWriter, FlushReport
from record_gateway.application.executor import QueryExecutor
from record_gateway.application.repositories import AccountRepository, ContactRepository
from record_gateway.domain.query import QueryExpression, QueryLimits, select
from record_gateway.domain.services import GovernorUsage, ResourceGovernor
from record_gateway.domain.value_objects import Result
from record_gateway.infrastructure.config import Config, get_config
from record_gateway.infrastructure.logging import get_logger
from record_gateway.infrastructure.observability import configure_observability

if TYPE_CHECKING:
    from prometheus_client import CollectorRegistry

    from record_gateway.infrastructure.metrics import MetricsRegistry
    from record_gateway.ports.outbound import RecordStore

logger = get_logger(__name__)


class DataSession:
    """Owns the shared governor and every component drawing on it.

    Features:
        - One quota per transaction across reads, writes and repositories
        - Pending writes flushed on successful transaction exit
        - Pending writes discarded when the transaction body raises
        - Writes a failed flush did not send are discarded, never retried

    Thread Safety:
        The governor is safe to share across threads; the pending write set
        is not, so concurrent writers should each use their own session.
    """

    def __init__(
        self,
        store: RecordStore,
        config: Config | None = None,
        metrics: MetricsRegistry | None = None,
        auto_flush: bool = True,
        all_or_nothing: bool = False,
        name: str = "default",
    ) -> None:
        """Initialize the session.

        Args:
            store: Record store every component talks to.
            config: Gateway configuration. Uses get_config() if None.
            metrics: Optional metrics registry.
            auto_flush: Flush pending writes when a transaction exits cleanly.
            all_or_nothing: Ask the store to roll back a whole batch on any
                per-record failure.
            name: Governor label in metrics, to tell sessions apart.
        """
        self._config = config or get_config()
        self._store = store
        self._auto_flush = auto_flush
        self._all_or_nothing = all_or_nothing
        self._limits = QueryLimits(
            max_relation_depth=self._config.query.max_relation_depth,
            max_relations=self._config.query.max_relations,
        )

        self._governor = ResourceGovernor.from_config(
            self._config.governor, metrics, name=name
        )
        self._executor = QueryExecutor(store, self._governor, metrics)
        self._writer = BatchWriter(store, self._governor, metrics)
        self._accounts = AccountRepository(self._executor, self._writer, self._limits)
        self._contacts = ContactRepository(self._executor, self._writer, self._limits)
        self._last_flush: FlushReport | None = None

    @classmethod
    def create(
        cls,
        store: RecordStore,
        config: Config | None = None,
        registry: CollectorRegistry | None = None,
        serve_metrics: bool = False,
        **options: Any,
    ) -> DataSession:
        """Configure logging, tracing and metrics from config, then build a session.

        Args:
            store: Record store every component talks to.
            config: Gateway configuration. Uses get_config() if None.
            registry: Prometheus registry; the process-wide one if None.
            serve_metrics: Start the metrics HTTP server.
            **options: Passed on to DataSession().
        """
        config = config or get_config()
        metrics = configure_observability(
            config.observability, registry=registry, serve_metrics=serve_metrics
        )
        return cls(store, config=config, metrics=metrics, **options)

    @property
    def governor(self) -> ResourceGovernor:
        return self._governor

    @property
    def executor(self) -> QueryExecutor:
        return self._executor

    @property
    def writer(self) -> BatchWriter:
        return self._writer

    @property
    def accounts(self) -> AccountRepository:
        return self._accounts

    @property
    def contacts(self) -> ContactRepository:
        return self._contacts

    @property
    def limits(self) -> QueryLimits:
        return self._limits

    @property
    def last_flush(self) -> FlushReport | None:
        """Report of the most recent flush, partial when that flush failed."""
        return self._last_flush

    def select(self, target: str, *fields: str) -> QueryExpression:
        """Start a query validated against this session's shape limits."""
        return select(target, *fields, limits=self._limits)

    def usage(self) -> GovernorUsage:
        return self._governor.usage()

    def flush(self) -> Result[FlushReport]:
        """Flush pending writes now.

        Writes a flush could not send are discarded, never carried into a
        later transaction; their entities end up FAILED. last_flush holds
        the outcomes of whatever was sent, even when the flush failed.
        """
        result = self._writer.flush(all_or_nothing=self._all_or_nothing)
        self._last_flush = self._writer.last_report
        if not result.ok:
            dropped = self._writer.discard(reason=f"not sent: {result.error}")
            logger.warning(
                "flush_failed",
                sent_batches=self._last_flush.batches if self._last_flush else 0,
                discarded_writes=dropped,
                error=str(result.error),
            )
        elif not self._writer.is_empty:
            dropped = self._writer.discard(reason="not sent: an earlier batch failed")
            logger.warning("flush_stopped", discarded_writes=dropped)
        return result

    @contextmanager
    def transaction(self) -> Iterator[DataSession]:
        """Scope a transaction over the shared governor.

        Quota is reset on entry. On clean exit pending writes are flushed
        when auto_flush is on and a failed flush is raised, after its unsent
        writes were discarded; if the body raises, pending writes are
        discarded and the error propagates.
        """
        with self._governor.transaction():
            try:
                yield self
            except Exception:
                dropped = self._writer.discard(reason="transaction aborted")
                logger.warning("transaction_aborted", discarded_writes=dropped)
                raise

            if self._auto_flush and not self._writer.is_empty:
                report = self.flush().unwrap()
                if not report.all_succeeded:
                    logger.warning(
                        "transaction_partial_flush",
                        succeeded=len(report.succeeded),
                        failed=len(report.failed),
                    )
