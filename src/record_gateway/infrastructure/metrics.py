"""Prometheus metrics for the record gateway."""

from __future__ import annotations

from prometheus_client import (
    Counter,
    Gauge,
    Histogram,
    Info,
    start_http_server,
    REGISTRY,
    CollectorRegistry,
)


class MetricsRegistry:
    """Registry of all record gateway metrics."""

    def __init__(self, registry: CollectorRegistry | None = None) -> None:
        """Initialize metrics registry."""
        self._registry = registry or REGISTRY

        # Governor metrics
        self.reservations_total = Counter(
            "gateway_reservations_total",
            "Quota reservations granted",
            ["kind"],  # query, write_batch
            registry=self._registry,
        )

        self.quota_denials_total = Counter(
            "gateway_quota_denials_total",
            "Quota reservations denied because a ceiling was reached",
            ["kind"],
            registry=self._registry,
        )

        self.governor_usage = Gauge(
            "gateway_governor_usage",
            "Reservations issued in the current transaction",
            ["governor", "kind"],
            registry=self._registry,
        )

        self.transactions_total = Counter(
            "gateway_transactions_total",
            "Transaction scopes started",
            registry=self._registry,
        )

        # Store call metrics
        self.store_calls_total = Counter(
            "gateway_store_calls_total",
            "Calls dispatched to the record store",
            ["operation", "status"],  # operation: query, aggregate, bulk_write
            registry=self._registry,
        )

        self.store_latency_seconds = Histogram(
            "gateway_store_latency_seconds",
            "Record store call latency in seconds",
            ["operation"],
            buckets=(0.001, 0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0),
            registry=self._registry,
        )

        self.rows_returned_total = Counter(
            "gateway_rows_returned_total",
            "Rows returned by read queries",
            registry=self._registry,
        )

        # Write metrics
        self.records_written_total = Counter(
            "gateway_records_written_total",
            "Records sent in bulk writes",
            ["operation", "status"],  # status: success, failure
            registry=self._registry,
        )

        self.write_conflicts_total = Counter(
            "gateway_write_conflicts_total",
            "Enqueue attempts rejected for conflicting operations",
            registry=self._registry,
        )

        self.info = Info(
            "record_gateway",
            "Record gateway information",
            registry=self._registry,
        )


# Global metrics registry
_metrics: MetricsRegistry | None = None


def setup_metrics(port: int = 8001, registry: CollectorRegistry | None = None) -> MetricsRegistry:
    """
    Set up Prometheus metrics server.

    Args:
        port: Port for the metrics HTTP server
        registry: Optional custom registry

    Returns:
        The metrics registry
    """
    global _metrics
    _metrics = MetricsRegistry(registry)

    from record_gateway import __version__
    _metrics.info.info({
        "version": __version__,
    })

    start_http_server(port, registry=registry or REGISTRY)

    return _metrics


def get_metrics() -> MetricsRegistry:
    """Get the global metrics registry."""
    global _metrics
    if _metrics is None:
        _metrics = MetricsRegistry()
    return _metrics
