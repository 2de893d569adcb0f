"""Unit tests for configuration module."""

from __future__ import annotations

import pytest

from record_gateway.infrastructure.config import (
    Config,
    GovernorConfig,
    ObservabilityConfig,
    QueryConfig,
    get_config,
)


@pytest.mark.unit
class TestConfig:
    """Tests for Config class."""

    def test_default_config(self) -> None:
        """Test default configuration values."""
        config = Config()

        assert config.governor.query_ceiling == 100
        assert config.governor.write_ceiling == 150
        assert config.query.max_relation_depth == 1
        assert config.query.max_relations == 55
        assert config.observability.log_format == "json"
        assert config.observability.metrics_port == 8001

    def test_invalid_ceiling(self) -> None:
        """Ceilings must be positive."""
        with pytest.raises(ValueError):
            GovernorConfig(query_ceiling=0)

    def test_invalid_relation_depth(self) -> None:
        with pytest.raises(ValueError):
            QueryConfig(max_relation_depth=6)

    def test_invalid_log_format(self) -> None:
        with pytest.raises(ValueError):
            ObservabilityConfig(log_format="xml")  # type: ignore[arg-type]

    def test_env_override(self, monkeypatch: pytest.MonkeyPatch) -> None:
        """Nested settings are read from prefixed environment variables."""
        monkeypatch.setenv("RECORD_GATEWAY_GOVERNOR__QUERY_CEILING", "42")
        monkeypatch.setenv("RECORD_GATEWAY_OBSERVABILITY__LOG_LEVEL", "DEBUG")

        config = Config()

        assert config.governor.query_ceiling == 42
        assert config.governor.write_ceiling == 150
        assert config.observability.log_level == "DEBUG"

    def test_get_config_cached(self) -> None:
        get_config.cache_clear()
        try:
            assert get_config() is get_config()
        finally:
            get_config.cache_clear()
