"""One-call observability setup driven by ObservabilityConfig."""

from __future__ import annotations

from prometheus_client import CollectorRegistry

from record_gateway.infrastructure.config import ObservabilityConfig
from record_gateway.infrastructure.logging import get_logger, setup_logging
from record_gateway.infrastructure.metrics import MetricsRegistry, get_metrics, setup_metrics
from record_gateway.infrastructure.tracing import setup_tracing


def configure_observability(
    config: ObservabilityConfig,
    registry: CollectorRegistry | None = None,
    serve_metrics: bool = False,
) -> MetricsRegistry:
    """
    Configure logging, tracing and metrics from one config section.

    Args:
        config: Observability settings
        registry: Prometheus registry to record into; the process-wide
            registry when None
        serve_metrics: Whether to start the metrics HTTP server on
            ``config.metrics_port``

    Returns:
        The metrics registry components should record into
    """
    setup_logging(level=config.log_level, log_format=config.log_format)
    setup_tracing(
        service_name=config.otel_service_name,
        otlp_endpoint=config.otel_endpoint,
    )

    if serve_metrics:
        metrics = setup_metrics(port=config.metrics_port, registry=registry)
    elif registry is not None:
        metrics = MetricsRegistry(registry)
    else:
        metrics = get_metrics()

    get_logger(__name__).info(
        "observability_configured",
        log_level=config.log_level,
        log_format=config.log_format,
        otel_endpoint=config.otel_endpoint,
        metrics_port=config.metrics_port if serve_metrics else None,
    )
    return metrics
