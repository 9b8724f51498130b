"""Copy-on-first-reconcile backups of Cluster artifacts.

A ClusterOperation runs against its own copies of the Cluster's hosts,
vars and SSH artifacts so later edits to the Cluster cannot change a job
that was already admitted. Copies are made one per reconcile pass, in the
fixed order hosts, vars, SSH.

The Cluster side adopts its own artifacts so they are garbage-collected
with it.
"""

from __future__ import annotations

import time
from collections.abc import Callable

from kubernetes import client

from kubeonkube.config.settings import current_namespace
from kubeonkube.crd import Cluster, ClusterOperation, ObjectRef, OwnerReference, ref_is_empty
from kubeonkube.errors import InputRejectedError, ResourceNotFoundError
from kubeonkube.kubernetes.store import ResourceStore, v1_owner_reference
from kubeonkube.observability._logging import get_logger
from kubeonkube.observability._metrics import artifacts_copied_total


log = get_logger(__name__)


def epoch_millis() -> int:
    return time.time_ns() // 1_000_000


class ArtifactBackup:
    """Backs up Cluster artifacts into operation-owned copies.

    Attributes:
        store: Resource store used for reads and writes
        namespace: Namespace the copies are created in
    """

    def __init__(
        self,
        store: ResourceStore,
        namespace: str | None = None,
        clock: Callable[[], int] = epoch_millis,
    ) -> None:
        self.store = store
        self.namespace = namespace or current_namespace()
        self._clock = clock

    def needs_backup(self, cluster: Cluster, operation: ClusterOperation) -> bool:
        """Whether any slot is still waiting for its copy."""
        spec = operation.spec
        return (
            ref_is_empty(spec.hosts_conf_ref)
            or ref_is_empty(spec.vars_conf_ref)
            or (ref_is_empty(spec.ssh_auth_ref) and not ref_is_empty(cluster.spec.ssh_auth_ref))
        )

    def backup_next(self, cluster: Cluster, operation: ClusterOperation) -> bool:
        """Copy the first missing artifact and record it on ``operation``.

        The new reference is set on ``operation.spec`` in memory; persisting
        the operation is left to the caller.

        Returns:
            True if a copy was made, False if nothing was left to copy.

        Raises:
            InputRejectedError: the Cluster lacks hosts or vars.
        """
        if ref_is_empty(cluster.spec.hosts_conf_ref) or ref_is_empty(cluster.spec.vars_conf_ref):
            msg = f"Cluster {cluster.name} hostsConfRef or varsConfRef is empty"
            raise InputRejectedError(msg, reason="MissingArtifact")

        suffix = f"-{self._clock()}"
        spec = operation.spec
        owner = operation.owner_reference()

        if ref_is_empty(spec.hosts_conf_ref):
            source = cluster.spec.hosts_conf_ref
            spec.hosts_conf_ref = self.copy_config_map(source, f"{source.name}{suffix}", owner)
            return True

        if ref_is_empty(spec.vars_conf_ref):
            source = cluster.spec.vars_conf_ref
            spec.vars_conf_ref = self.copy_config_map(source, f"{source.name}{suffix}", owner)
            return True

        if ref_is_empty(spec.ssh_auth_ref) and not ref_is_empty(cluster.spec.ssh_auth_ref):
            source = cluster.spec.ssh_auth_ref
            spec.ssh_auth_ref = self.copy_secret(source, f"{source.name}{suffix}", owner)
            return True

        return False

    def copy_config_map(self, source: ObjectRef, new_name: str, owner: OwnerReference) -> ObjectRef:
        original = self.store.get_config_map(source.namespace, source.name)
        copy = client.V1ConfigMap(
            api_version="v1",
            kind="ConfigMap",
            metadata=client.V1ObjectMeta(
                name=new_name,
                namespace=self.namespace,
                owner_references=[v1_owner_reference(owner)],
            ),
            data=original.data,
        )
        created = self.store.create_config_map(copy)
        artifacts_copied_total.labels(kind="ConfigMap").inc()
        log.info(
            "artifact_copied",
            kind="ConfigMap",
            source=f"{source.namespace}/{source.name}",
            target=f"{created.metadata.namespace}/{created.metadata.name}",
            owner=owner.name,
        )
        return ObjectRef(namespace=created.metadata.namespace, name=created.metadata.name)

    def copy_secret(self, source: ObjectRef, new_name: str, owner: OwnerReference) -> ObjectRef:
        original = self.store.get_secret(source.namespace, source.name)
        copy = client.V1Secret(
            api_version="v1",
            kind="Secret",
            metadata=client.V1ObjectMeta(
                name=new_name,
                namespace=self.namespace,
                owner_references=[v1_owner_reference(owner)],
            ),
            type=original.type,
            data=original.data,
        )
        created = self.store.create_secret(copy)
        artifacts_copied_total.labels(kind="Secret").inc()
        log.info(
            "artifact_copied",
            kind="Secret",
            source=f"{source.namespace}/{source.name}",
            target=f"{created.metadata.namespace}/{created.metadata.name}",
            owner=owner.name,
        )
        return ObjectRef(namespace=created.metadata.namespace, name=created.metadata.name)

    def adopt_cluster_artifacts(self, cluster: Cluster) -> int:
        """Attach the Cluster as owner of its unowned artifacts.

        Artifacts that no longer exist or already have an owner are skipped.

        Returns:
            Number of artifacts adopted.
        """
        owner = v1_owner_reference(cluster.owner_reference())
        adopted = 0

        for ref in cluster.spec.config_data_list():
            if ref_is_empty(ref):
                continue
            try:
                config_map = self.store.get_config_map(ref.namespace, ref.name)
            except ResourceNotFoundError:
                continue
            if config_map.metadata.owner_references:
                continue
            config_map.metadata.owner_references = [owner]
            self.store.replace_config_map(config_map)
            adopted += 1

        for ref in cluster.spec.secret_data_list():
            if ref_is_empty(ref):
                continue
            try:
                secret = self.store.get_secret(ref.namespace, ref.name)
            except ResourceNotFoundError:
                continue
            if secret.metadata.owner_references:
                continue
            secret.metadata.owner_references = [owner]
            self.store.replace_secret(secret)
            adopted += 1

        if adopted:
            log.info("cluster_artifacts_adopted", cluster=cluster.name, count=adopted)
        return adopted


__all__ = ["ArtifactBackup", "epoch_millis"]
