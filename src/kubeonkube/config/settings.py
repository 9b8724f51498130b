"""kube-on-kube Settings configuration.

Uses Pydantic Settings for type-safe configuration management
with support for environment variables and .env files.
"""

from __future__ import annotations

import os
from functools import lru_cache
from pathlib import Path
from typing import Literal

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

from kubeonkube.version import __version__


SERVICE_ACCOUNT_NAMESPACE_FILE = Path("/var/run/secrets/kubernetes.io/serviceaccount/namespace")
DEFAULT_NAMESPACE = "default"


class KubernetesSettings(BaseSettings):
    """Kubernetes configuration."""

    model_config = SettingsConfigDict(
        env_prefix="KOK_K8S_",
        extra="ignore",
    )

    in_cluster: bool = Field(
        default=False,
        description="Whether running inside a Kubernetes cluster",
    )
    kubeconfig: str | None = Field(
        default=None,
        description="Path to kubeconfig file (if not in-cluster)",
    )
    context: str | None = Field(
        default=None,
        description="Kubernetes context to use",
    )
    namespace: str | None = Field(
        default=None,
        description="Namespace the operator runs in (None = discover)",
    )
    api_timeout: int = Field(
        default=30,
        ge=1,
        description="Kubernetes API request timeout in seconds",
    )
    peering_name: str | None = Field(
        default=None,
        description="Kopf peering name (None = standalone)",
    )


class ReconcileSettings(BaseSettings):
    """Reconcile loop tuning."""

    model_config = SettingsConfigDict(
        env_prefix="KOK_RECONCILE_",
        extra="ignore",
    )

    operation_requeue_seconds: float = Field(
        default=3.0,
        gt=0,
        description="Fixed retry delay of the ClusterOperation loop",
    )
    cluster_requeue_seconds: float = Field(
        default=15.0,
        gt=0,
        description="Fixed retry delay of the Cluster loop",
    )
    config_map_name: str = Field(
        default="kubeonkube-config",
        description="Operator-wide ConfigMap read on every Cluster reconcile",
    )
    default_operations_limit: int = Field(
        default=30,
        ge=1,
        description="Operations kept per Cluster when the ConfigMap sets no usable limit",
    )
    max_operations_limit: int = Field(
        default=200,
        ge=1,
        description="Upper bound for the per-Cluster operations limit",
    )
    service_account_selector: str = Field(
        default="kubeonkube.io/operator=sa",
        description="Label selector of the service account the jobs run as",
    )


class ObservabilitySettings(BaseSettings):
    """Observability configuration."""

    model_config = SettingsConfigDict(
        env_prefix="KOK_OBSERVABILITY_",
        extra="ignore",
    )

    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = Field(
        default="INFO",
        description="Logging level",
    )
    log_format: Literal["json", "console"] = Field(
        default="json",
        description="Log output format",
    )

    metrics_enabled: bool = Field(
        default=True,
        description="Enable Prometheus metrics",
    )
    metrics_port: int = Field(
        default=8080,
        ge=1,
        le=65535,
        description="Port for metrics endpoint",
    )
    liveness_port: int = Field(
        default=8081,
        ge=1,
        le=65535,
        description="Port for the kopf liveness endpoint",
    )
    metrics_namespace: str = Field(
        default="kubeonkube",
        description="Prefix for every exported metric name",
    )


class Settings(BaseSettings):
    """Main kube-on-kube configuration."""

    model_config = SettingsConfigDict(
        env_prefix="KOK_",
        env_file=".env",
        env_file_encoding="utf-8",
        env_nested_delimiter="__",
        extra="ignore",
        case_sensitive=False,
    )

    version: str = Field(default=__version__)
    environment: Literal["development", "staging", "production"] = Field(
        default="development",
        description="Deployment environment",
    )
    debug: bool = Field(default=False, description="Enable debug logging")

    kubernetes: KubernetesSettings = Field(default_factory=KubernetesSettings)
    reconcile: ReconcileSettings = Field(default_factory=ReconcileSettings)
    observability: ObservabilitySettings = Field(default_factory=ObservabilitySettings)

    @property
    def is_production(self) -> bool:
        """Whether the operator runs in the production environment."""
        return self.environment == "production"


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance.

    Use this function to access settings throughout the application.
    Settings are cached after first load for performance.

    Returns:
        Settings: The application settings instance.
    """
    return Settings()


def reload_settings() -> Settings:
    """Force reload settings (clears cache).

    Returns:
        Settings: Fresh settings instance.
    """
    get_settings.cache_clear()
    return get_settings()


def current_namespace() -> str:
    """Namespace the operator pod runs in.

    Resolution order: explicit setting, ``POD_NAMESPACE``, the mounted
    service-account namespace file, then ``default``.
    """
    configured = get_settings().kubernetes.namespace
    if configured:
        return configured

    pod_namespace = os.environ.get("POD_NAMESPACE")
    if pod_namespace:
        return pod_namespace

    try:
        namespace = SERVICE_ACCOUNT_NAMESPACE_FILE.read_text(encoding="utf-8").strip()
    except OSError:
        namespace = ""
    return namespace or DEFAULT_NAMESPACE


__all__ = [
    "KubernetesSettings",
    "ObservabilitySettings",
    "ReconcileSettings",
    "Settings",
    "current_namespace",
    "get_settings",
    "reload_settings",
]
