"""Infrastructure layer - cross-cutting concerns."""

from record_gateway.infrastructure.config import (
    Config,
    GovernorConfig,
    ObservabilityConfig,
    QueryConfig,
    get_config,
)
from record_gateway.infrastructure.logging import get_logger, setup_logging
from record_gateway.infrastructure.metrics import MetricsRegistry, get_metrics, setup_metrics
from record_gateway.infrastructure.observability import configure_observability
from record_gateway.infrastructure.tracing import get_tracer, setup_tracing, trace_span

__all__ = [
    "Config",
    "GovernorConfig",
    "QueryConfig",
    "ObservabilityConfig",
    "get_config",
    "setup_logging",
    "get_logger",
    "setup_metrics",
    "get_metrics",
    "MetricsRegistry",
    "setup_tracing",
    "get_tracer",
    "trace_span",
    "configure_observability",
]
