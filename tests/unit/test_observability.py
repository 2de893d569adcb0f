"""Unit tests for logging, metrics and tracing helpers."""

from __future__ import annotations

import pytest
import structlog
from prometheus_client import CollectorRegistry

from record_gateway.adapters.outbound import InMemoryRecordStore
from record_gateway.application import DataSession
from record_gateway.infrastructure.config import Config, ObservabilityConfig
from record_gateway.infrastructure.logging import (
    bind_transaction,
    get_logger,
    setup_logging,
    unbind_transaction,
)
from record_gateway.infrastructure.metrics import MetricsRegistry
from record_gateway.infrastructure.observability import configure_observability
from record_gateway.infrastructure.tracing import get_tracer, trace_span


@pytest.mark.unit
class TestLogging:
    def test_setup_and_get_logger(self) -> None:
        setup_logging(level="DEBUG", log_format="console")
        logger = get_logger("record_gateway.test", component="tests")
        logger.info("logger_ready")

    def test_transaction_binding(self) -> None:
        bind_transaction(7)
        assert structlog.contextvars.get_contextvars()["transaction"] == 7
        unbind_transaction()
        assert "transaction" not in structlog.contextvars.get_contextvars()


@pytest.mark.unit
class TestMetrics:
    def test_registry_isolated(self) -> None:
        registry = CollectorRegistry()
        metrics = MetricsRegistry(registry=registry)

        metrics.store_calls_total.labels(operation="query", status="success").inc()

        value = registry.get_sample_value(
            "gateway_store_calls_total", {"operation": "query", "status": "success"}
        )
        assert value == 1.0


@pytest.mark.unit
class TestTracing:
    def test_trace_span_sets_attributes(self) -> None:
        assert get_tracer() is not None
        with trace_span("unit.span", {"gateway.target": "Account"}) as span:
            assert span is not None


@pytest.mark.unit
class TestConfigureObservability:
    """Observability is driven by the observability config section."""

    def test_returns_registry_bound_metrics(self) -> None:
        registry = CollectorRegistry()
        config = ObservabilityConfig(
            log_level="DEBUG", log_format="console", otel_service_name="gateway-tests"
        )

        metrics = configure_observability(config, registry=registry)
        metrics.reservations_total.labels(kind="query").inc()

        assert registry.get_sample_value("gateway_reservations_total", {"kind": "query"}) == 1.0

    def test_session_create_records_into_registry(self) -> None:
        registry = CollectorRegistry()
        config = Config(observability=ObservabilityConfig(log_format="console"))

        session = DataSession.create(
            InMemoryRecordStore(), config=config, registry=registry, name="orders"
        )
        with session.transaction():
            assert session.accounts.count().unwrap() == 0

        assert session.governor.name == "orders"
        assert registry.get_sample_value(
            "gateway_governor_usage", {"governor": "orders", "kind": "query"}
        ) == 1.0
