"""Retention of ClusterOperation history per Cluster.

Operations are ordered by elimination score ascending, newest first among
equal scores. Everything past the configured limit is deleted unless it
is still running.
"""

from __future__ import annotations

from collections.abc import Iterable
from datetime import datetime

from kubeonkube.crd import ELIMINATE_SCORE_ANNOTATION, Cluster, ClusterOperation, OperatorConfig
from kubeonkube.errors import ResourceNotFoundError
from kubeonkube.kubernetes.store import ResourceStore
from kubeonkube.observability._logging import get_logger
from kubeonkube.observability._metrics import operations_deleted_total


log = get_logger(__name__)


def eliminate_score(operation: ClusterOperation) -> int:
    """Integer value of the elimination score annotation, 0 when absent or invalid."""
    try:
        return int(operation.metadata.annotations.get(ELIMINATE_SCORE_ANNOTATION, ""))
    except ValueError:
        return 0


def _creation_key(operation: ClusterOperation) -> float:
    created = operation.metadata.creation_timestamp
    if created is None:
        # Unknown creation time sorts after every real one.
        return float("inf")
    return -created.timestamp()


def sort_operations(operations: Iterable[ClusterOperation]) -> list[ClusterOperation]:
    """Score ascending, then creation time descending."""
    return sorted(operations, key=lambda op: (eliminate_score(op), _creation_key(op)))


def resolve_operations_limit(config: OperatorConfig | None, default: int, maximum: int) -> int:
    """Parse the retention limit, falling back to ``default`` and capping at ``maximum``."""
    raw = config.cluster_operations_backend_limit if config is not None else ""
    try:
        value = int(raw)
    except ValueError:
        value = 0

    if value <= 0:
        log.warning("operations_limit_defaulted", value=raw, limit=default)
        return default
    if value >= maximum:
        log.warning("operations_limit_clamped", value=value, limit=maximum)
        return maximum
    return value


def trim(store: ResourceStore, cluster: Cluster, limit: int) -> bool:
    """Delete the Cluster's operations beyond ``limit``, sparing running ones.

    Returns:
        True if at least one deletion was attempted.

    Raises:
        TransientError: listing or deleting failed for a reason other than
            the operation already being gone.
    """
    operations = store.list_operations(cluster.name)
    if len(operations) <= limit:
        return False

    attempted = False
    for operation in sort_operations(operations)[limit:]:
        if operation.is_running():
            continue
        log.warning(
            "operation_deleted",
            cluster=cluster.name,
            operation=operation.name,
            created=_format_time(operation.metadata.creation_timestamp),
            status=operation.status.status.value if operation.status.status else "",
        )
        attempted = True
        try:
            store.delete_operation(operation.name)
        except ResourceNotFoundError:
            continue
        operations_deleted_total.inc()
    return attempted


def _format_time(value: datetime | None) -> str | None:
    return value.isoformat() if value else None


__all__ = ["eliminate_score", "resolve_operations_limit", "sort_operations", "trim"]
