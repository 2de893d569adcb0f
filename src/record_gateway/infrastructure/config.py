"""Configuration management for the record gateway."""

from __future__ import annotations

from functools import lru_cache
from typing import Literal

from pydantic import BaseModel, Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class GovernorConfig(BaseModel):
    """Per-transaction resource ceilings."""

    query_ceiling: int = Field(
        default=100, ge=1, description="Max read queries per transaction"
    )
    write_ceiling: int = Field(
        default=150, ge=1, description="Max write batches per transaction"
    )


class QueryConfig(BaseModel):
    """Query shape limits."""

    max_relation_depth: int = Field(
        default=1, ge=0, le=5, description="Max nesting of relationship sub-queries"
    )
    max_relations: int = Field(
        default=55, ge=0, description="Max relationship sub-queries per query level"
    )


class ObservabilityConfig(BaseModel):
    """Observability configuration."""

    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = Field(
        default="INFO", description="Log level"
    )
    log_format: Literal["json", "console"] = Field(default="json", description="Log format")
    otel_endpoint: str | None = Field(
        default=None, description="OpenTelemetry collector endpoint"
    )
    otel_service_name: str = Field(
        default="record_gateway", description="Service name for tracing"
    )
    metrics_port: int = Field(default=8001, ge=1, le=65535, description="Prometheus metrics port")


class Config(BaseSettings):
    """Main configuration for the record gateway."""

    model_config = SettingsConfigDict(
        env_prefix="RECORD_GATEWAY_",
        env_nested_delimiter="__",
        case_sensitive=False,
    )

    governor: GovernorConfig = Field(default_factory=GovernorConfig)
    query: QueryConfig = Field(default_factory=QueryConfig)
    observability: ObservabilityConfig = Field(default_factory=ObservabilityConfig)


@lru_cache
def get_config() -> Config:
    """Get the global configuration instance."""
    return Config()
