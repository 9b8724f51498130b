"""Cluster reconcile timer."""

import time
from typing import Any

import kopf

from kubeonkube.config.settings import get_settings
from kubeonkube.crd import CLUSTER_PLURAL, KOK_API_GROUP, KOK_API_VERSION
from kubeonkube.kubernetes.store import get_store
from kubeonkube.observability._logging import get_logger
from kubeonkube.observability._metrics import reconcile_duration_seconds, reconcile_total
from kubeonkube.reconcile.cluster import ClusterReconcileResult, ClusterReconciler


log = get_logger(__name__)

CLUSTER_REQUEUE_SECONDS = get_settings().reconcile.cluster_requeue_seconds


class _ReconcilerHolder:
    instance: ClusterReconciler | None = None


def get_cluster_reconciler() -> ClusterReconciler:
    """Get the singleton ClusterReconciler instance."""
    if _ReconcilerHolder.instance is None:
        _ReconcilerHolder.instance = ClusterReconciler(get_store())
    return _ReconcilerHolder.instance


@kopf.timer(  # type: ignore[misc]
    KOK_API_GROUP,
    KOK_API_VERSION,
    CLUSTER_PLURAL,
    interval=CLUSTER_REQUEUE_SECONDS,
)
def reconcile_cluster_timer(name: str, **_kwargs: Any) -> None:
    """Trim history, project statuses and adopt artifacts for one Cluster.

    Args:
        name: Cluster name
        **_kwargs: Additional kopf kwargs
    """
    started = time.perf_counter()
    result: ClusterReconcileResult | None = None
    try:
        result = get_cluster_reconciler().reconcile(name)
    finally:
        reconcile_total.labels(
            kind="Cluster",
            result=result.result if result else "exception",
        ).inc()
        reconcile_duration_seconds.labels(kind="Cluster").observe(time.perf_counter() - started)

    log.debug("cluster_reconciled", cluster=name, result=result.result)
