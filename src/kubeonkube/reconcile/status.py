"""Projection of child ClusterOperation statuses onto the Cluster."""

from __future__ import annotations

from collections.abc import Sequence
from datetime import UTC, datetime, timedelta

from kubeonkube.crd import Cluster, ClusterCondition, ClusterOperation
from kubeonkube.kubernetes.store import ResourceStore
from kubeonkube.observability._logging import get_logger
from kubeonkube.reconcile.retention import sort_operations


log = get_logger(__name__)

_EPOCH = datetime(1970, 1, 1, tzinfo=UTC)


def _millis(value: datetime | None) -> int:
    """Milliseconds since the epoch; an absent time sorts before every real one."""
    if value is None:
        return -1
    if value.tzinfo is None:
        value = value.replace(tzinfo=UTC)
    return (value - _EPOCH) // timedelta(milliseconds=1)


def same_condition(a: ClusterCondition, b: ClusterCondition) -> bool:
    return (
        a.cluster_ops == b.cluster_ops
        and (a.status or "") == (b.status or "")
        and _millis(a.start_time) == _millis(b.start_time)
        and _millis(a.end_time) == _millis(b.end_time)
    )


def same_conditions(a: Sequence[ClusterCondition], b: Sequence[ClusterCondition]) -> bool:
    return len(a) == len(b) and all(same_condition(x, y) for x, y in zip(a, b, strict=True))


def build_conditions(operations: Sequence[ClusterOperation]) -> list[ClusterCondition]:
    """One condition per operation, in retention order."""
    return [
        ClusterCondition(
            cluster_ops=op.name,
            status=op.status.status.value if op.status.status else None,
            start_time=op.status.start_time,
            end_time=op.status.end_time,
        )
        for op in sort_operations(operations)
    ]


def project(store: ResourceStore, cluster: Cluster) -> bool:
    """Rebuild the Cluster's conditions and write them if they changed.

    Returns:
        True if the Cluster status was written.
    """
    conditions = build_conditions(store.list_operations(cluster.name))
    if same_conditions(cluster.status.conditions, conditions):
        return False

    cluster.status.conditions = conditions
    store.replace_cluster_status(cluster)
    log.info("cluster_status_updated", cluster=cluster.name, conditions=len(conditions))
    return True


__all__ = ["build_conditions", "project", "same_condition", "same_conditions"]
