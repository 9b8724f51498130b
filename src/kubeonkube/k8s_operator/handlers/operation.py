"""ClusterOperation reconcile timer.

Kopf runs one timer per ClusterOperation and never overlaps two ticks of
the same object, so each tick is a single state machine step against a
freshly fetched object. Operations stop being ticked once they carry the
completion label.
"""

import time
from typing import Any

import kopf

from kubeonkube.config.settings import get_settings
from kubeonkube.crd import COMPLETED_LABEL_KEY, KOK_API_GROUP, KOK_API_VERSION, OPERATION_PLURAL
from kubeonkube.kubernetes.store import get_store
from kubeonkube.observability._logging import get_logger
from kubeonkube.observability._metrics import reconcile_duration_seconds, reconcile_total
from kubeonkube.reconcile.operation import OperationReconciler, ReconcileResult


log = get_logger(__name__)

OPERATION_REQUEUE_SECONDS = get_settings().reconcile.operation_requeue_seconds


class _ReconcilerHolder:
    instance: OperationReconciler | None = None


def get_operation_reconciler() -> OperationReconciler:
    """Get the singleton OperationReconciler instance."""
    if _ReconcilerHolder.instance is None:
        _ReconcilerHolder.instance = OperationReconciler(get_store())
    return _ReconcilerHolder.instance


@kopf.timer(  # type: ignore[misc]
    KOK_API_GROUP,
    KOK_API_VERSION,
    OPERATION_PLURAL,
    interval=OPERATION_REQUEUE_SECONDS,
    labels={COMPLETED_LABEL_KEY: kopf.ABSENT},
)
def reconcile_operation_timer(name: str, **_kwargs: Any) -> None:
    """Advance one ClusterOperation by a single step.

    Args:
        name: ClusterOperation name
        **_kwargs: Additional kopf kwargs
    """
    started = time.perf_counter()
    result: ReconcileResult | None = None
    try:
        result = get_operation_reconciler().reconcile(name)
    finally:
        reconcile_total.labels(
            kind="ClusterOperation",
            result=result.result if result else "exception",
        ).inc()
        reconcile_duration_seconds.labels(kind="ClusterOperation").observe(time.perf_counter() - started)

    log.debug(
        "operation_reconciled",
        operation=name,
        state=result.state.value if result.state else None,
        result=result.result,
        requeue_after=result.requeue_after,
    )
