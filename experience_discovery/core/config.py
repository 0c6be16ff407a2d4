"""
Core configuration module for Experience Discovery.

This module provides centralized configuration management using Pydantic Settings.
All configuration is loaded from environment variables with the
EXPERIENCE_DISCOVERY_ prefix. Nested analysis constants use ``__`` as the
delimiter, e.g. EXPERIENCE_DISCOVERY_ANALYSIS__PATTERN_SPIKE_SIGMA=2.0

Every statistical threshold and similarity weight used by the tools lives in
AnalysisSettings so deployments can override them without code changes.
"""

from functools import lru_cache
from typing import Literal

from pydantic import BaseModel, Field, SecretStr, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class AnalysisSettings(BaseModel):
    """
    Named analysis constants consumed by the tool registry.

    Weights for the four connection signals must be non-negative and
    sum to a positive number; they are normalized over the enabled signals.
    """

    # =========================================================================
    # Connection Discovery Weights
    # =========================================================================
    semantic_weight: float = Field(default=0.4, ge=0.0, description="Weight of embedding similarity")
    geographic_weight: float = Field(default=0.3, ge=0.0, description="Weight of geographic proximity")
    temporal_weight: float = Field(default=0.2, ge=0.0, description="Weight of temporal proximity")
    attribute_weight: float = Field(default=0.1, ge=0.0, description="Weight of shared attributes")
    geo_horizon_km: float = Field(
        default=500.0,
        gt=0.0,
        description="Distance at which geographic proximity reaches zero",
    )
    temporal_horizon_days: float = Field(
        default=365.0,
        gt=0.0,
        description="Date difference at which temporal proximity reaches zero",
    )

    # =========================================================================
    # Pattern Detection Thresholds
    # =========================================================================
    pattern_spike_sigma: float = Field(
        default=1.5,
        gt=0.0,
        description="Standard deviations above the period mean that mark a spike",
    )
    hotspot_share: float = Field(
        default=0.25,
        gt=0.0,
        le=1.0,
        description="Share of records in one area that marks a hotspot",
    )
    dominance_share: float = Field(
        default=0.40,
        gt=0.0,
        le=1.0,
        description="Share of records in one category that marks dominance",
    )

    # =========================================================================
    # Correlation / Insight / Trend Thresholds
    # =========================================================================
    cooccurrence_floor: int = Field(
        default=3,
        ge=1,
        description="Minimum co-occurrences before an attribute pair is reported",
    )
    insight_spike_z: float = Field(default=2.0, gt=0.0, description="z-score for insight spikes")
    insight_trend_r_squared: float = Field(default=0.6, ge=0.0, le=1.0)
    insight_min_geo_records: int = Field(default=10, ge=1)
    hotspot_grid_degrees: float = Field(
        default=1.0,
        gt=0.0,
        le=90.0,
        description="Cell size for hotspot grids and heatmaps",
    )
    min_trend_points: int = Field(
        default=3,
        ge=3,
        description="Minimum non-zero buckets required to fit a trend",
    )
    stable_slope: float = Field(default=0.1, ge=0.0, description="|slope| below which a trend is stable")
    sparse_result_threshold: int = Field(default=5, ge=1)
    max_scan_rows: int = Field(
        default=1000,
        ge=1,
        le=100_000,
        description="Upper bound on rows a tool reads when it fetches its own data",
    )

    @model_validator(mode="after")
    def validate_weights(self) -> "AnalysisSettings":
        """Reject a weight vector that cannot produce a score."""
        total = (
            self.semantic_weight
            + self.geographic_weight
            + self.temporal_weight
            + self.attribute_weight
        )
        if total <= 0:
            raise ValueError("connection weights must sum to a positive value")
        return self


class Settings(BaseSettings):
    """
    Application settings loaded from environment variables.

    All fields use the EXPERIENCE_DISCOVERY_ prefix for environment variables.
    Example: EXPERIENCE_DISCOVERY_TOOL_BUDGET=20
    """

    # =========================================================================
    # Service Configuration
    # =========================================================================
    service_name: str = Field(
        default="experience-discovery",
        description="Name of the service for logging and identification",
    )
    port: int = Field(default=8080, ge=1, le=65535)
    environment: Literal["development", "staging", "production"] = Field(
        default="development",
        description="Deployment environment",
    )
    log_level: str = Field(default="INFO", description="Root log level")
    cors_origins: str = Field(
        default="",
        description="Comma-separated allowed origins outside development",
    )
    tracing_enabled: bool = Field(
        default=False,
        description="Install an OpenTelemetry provider with a console exporter",
    )

    # =========================================================================
    # Orchestration
    # =========================================================================
    tool_budget: int = Field(
        default=12,
        ge=1,
        le=200,
        description="Maximum tool invocations per orchestration pass",
    )
    tool_timeout_seconds: float = Field(
        default=10.0,
        gt=0.0,
        le=300.0,
        description="Timeout applied to every individual tool call",
    )
    max_steps: int = Field(
        default=4,
        ge=1,
        le=20,
        description="Maximum reasoning-engine decisions per pass",
    )
    request_timeout_seconds: float | None = Field(
        default=None,
        gt=0.0,
        description="Optional deadline for a whole pass",
    )
    retry_transient: bool = Field(
        default=True,
        description="Retry a timed-out or store-unavailable call once",
    )

    # =========================================================================
    # Storage Backend
    # =========================================================================
    store_backend: Literal["memory", "rest"] = Field(
        default="memory",
        description="Tenant-scoped store implementation",
    )
    store_url: str = Field(default="http://localhost:3000", description="REST store base URL")
    store_api_key: SecretStr = Field(default=SecretStr(""))
    store_timeout_seconds: float = Field(default=15.0, ge=1.0, le=300.0)
    circuit_breaker_failure_threshold: int = Field(default=5, ge=1, le=100)
    circuit_breaker_recovery_timeout_seconds: float = Field(default=30.0, ge=1.0, le=600.0)

    # =========================================================================
    # Reasoning Engine
    # Pattern: SecretStr for sensitive values
    # =========================================================================
    reasoning_engine: Literal["keyword", "anthropic", "openai"] = Field(
        default="keyword",
        description="Decision-maker that selects tools",
    )
    anthropic_api_key: SecretStr = Field(default=SecretStr(""))
    openai_api_key: SecretStr = Field(default=SecretStr(""))
    reasoning_model: str = Field(
        default="claude-3-5-haiku-20241022",
        description="Model used for simple requests and the free tier",
    )
    reasoning_model_advanced: str = Field(
        default="claude-sonnet-4-20250514",
        description="Model used for complex requests on paid tiers",
    )
    reasoning_max_tokens: int = Field(default=2048, ge=256, le=32768)

    # =========================================================================
    # Analysis Constants
    # =========================================================================
    analysis: AnalysisSettings = Field(default_factory=AnalysisSettings)

    model_config = SettingsConfigDict(
        env_prefix="EXPERIENCE_DISCOVERY_",
        env_nested_delimiter="__",
        case_sensitive=False,
        extra="ignore",
    )

    @field_validator("store_url")
    @classmethod
    def validate_store_url(cls, v: str) -> str:
        """Validate store URL format."""
        if not v.startswith(("http://", "https://")):
            raise ValueError("Store URL must start with http:// or https://")
        return v.rstrip("/")

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        """Normalize and validate the log level name."""
        level = v.upper()
        if level not in {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}:
            raise ValueError(f"Unknown log level: {v}")
        return level

    def get_cors_origins(self) -> list[str]:
        """Allowed CORS origins: everything in development, the configured list elsewhere."""
        if self.environment == "development":
            return ["*"]
        return [origin.strip() for origin in self.cors_origins.split(",") if origin.strip()]


@lru_cache
def get_settings() -> Settings:
    """
    Get the application settings singleton.

    Uses functools.lru_cache to ensure only one Settings instance is created.

    Returns:
        Settings: The application settings instance.
    """
    return Settings()
