"""
Configuration management using Pydantic Settings.

Environment variables can override all settings.
"""

from functools import lru_cache
from typing import Optional

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class KubernetesSettings(BaseSettings):
    """Kubernetes connection settings."""

    model_config = SettingsConfigDict(env_prefix="K8S_")

    kubeconfig_path: Optional[str] = Field(
        default=None,
        description="Path to kubeconfig file. If None, uses in-cluster config or ~/.kube/config.",
    )
    context: Optional[str] = Field(
        default=None,
        description="Kubernetes context to use. If None, uses current context.",
    )
    in_cluster: Optional[bool] = Field(
        default=None,
        description="Force in-cluster config on/off. If None, auto-detects.",
    )
    request_timeout_seconds: float = Field(
        default=30.0,
        gt=0,
        description="Timeout for a single API server request.",
    )


class DrainSettings(BaseSettings):
    """Node drain controller settings."""

    model_config = SettingsConfigDict(env_prefix="DRAIN_")

    enabled: bool = Field(default=True, description="Run the reconciliation loop")
    poll_period_seconds: float = Field(
        default=10.0,
        gt=0,
        description="Interval between two reconciliation passes over all nodes",
    )
    grace_period_seconds: float = Field(
        default=5 * 60,
        ge=0,
        description="Time old pods get after the replacement is ready before they are deleted",
    )
    save_attempts: int = Field(
        default=10,
        ge=1,
        description="Attempts to persist the node annotation before giving up for a pass",
    )
    scale_attempts: int = Field(
        default=3,
        ge=1,
        description="Attempts for a scale request before the node's pass is aborted",
    )


class TelemetrySettings(BaseSettings):
    """OpenTelemetry settings."""

    model_config = SettingsConfigDict(env_prefix="OTEL_")

    enabled: bool = Field(default=False, description="Enable OpenTelemetry tracing")
    service_name: str = Field(default="node-drain-controller", description="Service name for traces")
    exporter_endpoint: str = Field(
        default="http://otel-collector.observability:4317",
        description="OTLP exporter endpoint",
    )


class Settings(BaseSettings):
    """Main application settings."""

    model_config = SettingsConfigDict(
        env_prefix="APP_",
        env_nested_delimiter="__",
        extra="ignore",
    )

    # Application settings
    debug: bool = Field(default=False, description="Enable debug mode")
    host: str = Field(default="0.0.0.0", description="Server host")
    port: int = Field(default=8080, description="Server port")
    log_level: str = Field(default="INFO", description="Logging level")

    # Nested settings
    kubernetes: KubernetesSettings = Field(default_factory=KubernetesSettings)
    drain: DrainSettings = Field(default_factory=DrainSettings)
    telemetry: TelemetrySettings = Field(default_factory=TelemetrySettings)


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
