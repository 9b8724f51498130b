"""kube-on-kube Prometheus metrics.

- Counter metrics for reconciles, finished operations, deletions and copies
- Histogram metrics for reconcile durations
"""

from prometheus_client import REGISTRY, CollectorRegistry, Counter, Histogram, start_http_server

from kubeonkube.config.settings import get_settings


_settings = get_settings()

registry = REGISTRY if _settings.observability.metrics_enabled else CollectorRegistry()


# ============================================================================
# Counter Metrics
# ============================================================================

reconcile_total = Counter(
    name="reconcile_total",
    documentation="Total number of reconcile invocations",
    labelnames=["kind", "result"],
    registry=registry,
    namespace=_settings.observability.metrics_namespace,
)

operations_finished_total = Counter(
    name="operations_finished_total",
    documentation="ClusterOperations that reached a terminal status",
    labelnames=["status"],
    registry=registry,
    namespace=_settings.observability.metrics_namespace,
)

operations_deleted_total = Counter(
    name="operations_deleted_total",
    documentation="ClusterOperations deleted by the retention engine",
    registry=registry,
    namespace=_settings.observability.metrics_namespace,
)

artifacts_copied_total = Counter(
    name="artifacts_copied_total",
    documentation="Configuration artifacts copied into operation-owned backups",
    labelnames=["kind"],
    registry=registry,
    namespace=_settings.observability.metrics_namespace,
)


# ============================================================================
# Histogram Metrics
# ============================================================================

reconcile_duration_seconds = Histogram(
    name="reconcile_duration_seconds",
    documentation="Duration of a single reconcile invocation",
    labelnames=["kind"],
    buckets=(0.01, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0),
    registry=registry,
    namespace=_settings.observability.metrics_namespace,
)


def start_metrics_server(port: int | None = None) -> None:
    """Expose the default registry over HTTP when metrics are enabled."""
    if not _settings.observability.metrics_enabled:
        return
    start_http_server(port or _settings.observability.metrics_port)


__all__ = [
    "artifacts_copied_total",
    "operations_deleted_total",
    "operations_finished_total",
    "reconcile_duration_seconds",
    "reconcile_total",
    "registry",
    "start_metrics_server",
]
