"""Admission checks run on every ClusterOperation reconcile."""

from __future__ import annotations

from kubeonkube.crd import Cluster, ClusterOperation, ref_is_empty
from kubeonkube.errors import InputRejectedError
from kubeonkube.kubernetes.store import ResourceStore


def is_valid_image_name(image: str) -> bool:
    """Non-empty, no whitespace, alphanumeric first and last characters."""
    if not image or any(ch.isspace() for ch in image):
        return False
    return image[0].isalnum() and image[-1].isalnum()


def check_artifact_refs(store: ResourceStore, cluster: Cluster, operation: ClusterOperation) -> None:
    """Verify the Cluster artifacts the operation still depends on.

    Slots already filled on the operation are its own copies and are not
    checked again. Every Cluster artifact that fills an empty slot must
    exist, and all of them must live in one namespace.

    Raises:
        InputRejectedError: a mandatory artifact is missing or the
            artifacts span more than one namespace.
        TransientError: the existence lookup itself failed.
    """
    name = cluster.name
    namespaces: set[str] = set()

    if ref_is_empty(operation.spec.hosts_conf_ref):
        ref = cluster.spec.hosts_conf_ref
        if ref_is_empty(ref):
            raise InputRejectedError(f"Cluster {name} hostsConfRef is empty", reason="MissingArtifact")
        if not store.config_map_exists(ref.namespace, ref.name):
            msg = f"Cluster {name} hostsConfRef {ref.namespace}/{ref.name} not found"
            raise InputRejectedError(msg, reason="MissingArtifact")
        namespaces.add(ref.namespace)

    if ref_is_empty(operation.spec.vars_conf_ref):
        ref = cluster.spec.vars_conf_ref
        if ref_is_empty(ref):
            raise InputRejectedError(f"Cluster {name} varsConfRef is empty", reason="MissingArtifact")
        if not store.config_map_exists(ref.namespace, ref.name):
            msg = f"Cluster {name} varsConfRef {ref.namespace}/{ref.name} not found"
            raise InputRejectedError(msg, reason="MissingArtifact")
        namespaces.add(ref.namespace)

    # SSH credentials are optional on the Cluster
    if ref_is_empty(operation.spec.ssh_auth_ref) and not ref_is_empty(cluster.spec.ssh_auth_ref):
        ref = cluster.spec.ssh_auth_ref
        if not store.secret_exists(ref.namespace, ref.name):
            msg = f"Cluster {name} sshAuthRef {ref.namespace}/{ref.name} not found"
            raise InputRejectedError(msg, reason="MissingArtifact")
        namespaces.add(ref.namespace)

    if len(namespaces) > 1:
        msg = f"Cluster {name} hostsConfRef, varsConfRef and sshAuthRef are not in the same namespace"
        raise InputRejectedError(msg, reason="NamespaceMismatch", details={"namespaces": sorted(namespaces)})


__all__ = ["check_artifact_refs", "is_valid_image_name"]
