"""Cluster reconcile loop.

Per pass: read the operator config, trim the operation history, project
child statuses onto the Cluster, adopt the Cluster's artifacts. A pass
that deleted history stops there and lets the next one do the rest.
"""

from __future__ import annotations

from dataclasses import dataclass

from kubeonkube.config.settings import current_namespace, get_settings
from kubeonkube.crd import OperatorConfig
from kubeonkube.errors import KubeOnKubeError, ResourceNotFoundError
from kubeonkube.kubernetes.backup import ArtifactBackup
from kubeonkube.kubernetes.store import ResourceStore
from kubeonkube.observability._logging import get_logger
from kubeonkube.reconcile import retention, status


log = get_logger(__name__)


@dataclass
class ClusterReconcileResult:
    """What a Cluster reconcile did and when it wants to run again."""

    requeue_after: float | None
    result: str = "done"


class ClusterReconciler:
    """Keeps a Cluster's history, status and artifact ownership current.

    Attributes:
        store: Resource store used for reads and writes
        backup: Artifact helper used for adoption
        namespace: Operator namespace holding the runtime config
    """

    def __init__(
        self,
        store: ResourceStore,
        namespace: str | None = None,
        backup: ArtifactBackup | None = None,
    ) -> None:
        self.store = store
        self.namespace = namespace or current_namespace()
        self.backup = backup or ArtifactBackup(store, namespace=self.namespace)
        self.settings = get_settings().reconcile

    def operations_limit(self) -> int:
        """Retention limit from the operator config, read fresh each pass."""
        try:
            data = self.store.get_config_map_data(self.namespace, self.settings.config_map_name)
            config = OperatorConfig.model_validate(data)
        except KubeOnKubeError as e:
            log.debug("operator_config_unavailable", config_map=self.settings.config_map_name, error=e.message)
            config = None
        return retention.resolve_operations_limit(
            config,
            default=self.settings.default_operations_limit,
            maximum=self.settings.max_operations_limit,
        )

    def reconcile(self, name: str) -> ClusterReconcileResult:
        """Run one reconcile pass for the named Cluster."""
        requeue = self.settings.cluster_requeue_seconds
        try:
            cluster = self.store.get_cluster(name)
        except ResourceNotFoundError:
            return ClusterReconcileResult(requeue_after=None, result="gone")
        except KubeOnKubeError as e:
            log.error("cluster_fetch_failed", cluster=name, error=e.message)
            return ClusterReconcileResult(requeue_after=requeue, result="error")

        try:
            if retention.trim(self.store, cluster, self.operations_limit()):
                return ClusterReconcileResult(requeue_after=requeue, result="progress")
        except KubeOnKubeError as e:
            log.error("cluster_trim_failed", cluster=name, error=e.message)
            return ClusterReconcileResult(requeue_after=requeue, result="error")

        try:
            status.project(self.store, cluster)
        except KubeOnKubeError as e:
            log.error("cluster_status_update_failed", cluster=name, error=e.message)
            return ClusterReconcileResult(requeue_after=requeue, result="error")

        try:
            self.backup.adopt_cluster_artifacts(cluster)
        except KubeOnKubeError as e:
            log.error("cluster_artifact_adoption_failed", cluster=name, error=e.message)
            return ClusterReconcileResult(requeue_after=requeue, result="error")

        return ClusterReconcileResult(requeue_after=requeue)


__all__ = ["ClusterReconcileResult", "ClusterReconciler"]
