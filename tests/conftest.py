"""Pytest configuration and fixtures for record_gateway tests."""

from __future__ import annotations

import pytest
from prometheus_client import CollectorRegistry

from record_gateway.adapters.outbound import InMemoryRecordStore
from record_gateway.application import BatchWriter, DataSession, QueryExecutor
from record_gateway.domain.services import ResourceGovernor
from record_gateway.infrastructure.config import Config, GovernorConfig
from record_gateway.infrastructure.metrics import MetricsRegistry


@pytest.fixture
def metrics_registry() -> MetricsRegistry:
    """Provide a fresh metrics registry for each test."""
    # Use a separate registry to avoid conflicts between tests
    registry = CollectorRegistry(auto_describe=True)
    return MetricsRegistry(registry=registry)


@pytest.fixture
def store() -> InMemoryRecordStore:
    """Provide an empty in-memory store with the Account/Contact relationship."""
    s = InMemoryRecordStore()
    s.define_relationship("Account", "Contacts", "Contact", "AccountId")
    return s


@pytest.fixture
def governor(metrics_registry: MetricsRegistry) -> ResourceGovernor:
    """Provide a governor with small ceilings, already inside a fresh scope."""
    g = ResourceGovernor(query_ceiling=5, write_ceiling=3, metrics=metrics_registry)
    g.reset()
    return g


@pytest.fixture
def executor(
    store: InMemoryRecordStore,
    governor: ResourceGovernor,
    metrics_registry: MetricsRegistry,
) -> QueryExecutor:
    return QueryExecutor(store, governor, metrics_registry)


@pytest.fixture
def writer(
    store: InMemoryRecordStore,
    governor: ResourceGovernor,
    metrics_registry: MetricsRegistry,
) -> BatchWriter:
    return BatchWriter(store, governor, metrics_registry)


@pytest.fixture
def test_config() -> Config:
    """Provide a configuration with the default ceilings."""
    return Config(governor=GovernorConfig(query_ceiling=100, write_ceiling=150))


@pytest.fixture
def session(
    store: InMemoryRecordStore,
    test_config: Config,
    metrics_registry: MetricsRegistry,
) -> DataSession:
    return DataSession(store, config=test_config, metrics=metrics_registry)


# Markers for test categories
def pytest_configure(config: pytest.Config) -> None:
    """Configure custom pytest markers."""
    config.addinivalue_line("markers", "unit: Unit tests (fast, isolated)")
    config.addinivalue_line("markers", "integration: Integration tests")
    config.addinivalue_line("markers", "slow: Slow tests")
