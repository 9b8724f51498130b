"""Typed access to the objects the reconcilers read and write.

``ResourceStore`` wraps the kubernetes Python client for the four kinds the
operator touches (ConfigMaps, Secrets, Jobs and the two custom resources)
and is the only place that turns ``ApiException`` into the error taxonomy
of :mod:`kubeonkube.errors`.

Writes to custom resources use ``replace`` with the fetched
``resourceVersion`` so a concurrent edit surfaces as
``ResourceConflictError``; label stamping uses a merge patch.
"""

from __future__ import annotations

import json
from collections.abc import Iterator
from contextlib import contextmanager
from typing import Any

from kubernetes import client
from kubernetes import config as k8s_config
from kubernetes.client import ApiException

from kubeonkube.config.settings import get_settings
from kubeonkube.crd import (
    CLUSTER_LABEL_KEY,
    CLUSTER_PLURAL,
    KOK_API_GROUP,
    KOK_API_VERSION,
    OPERATION_PLURAL,
    Cluster,
    ClusterOperation,
    OwnerReference,
)
from kubeonkube.errors import (
    AlreadyExistsError,
    ResourceConflictError,
    ResourceNotFoundError,
    TransientError,
)


HTTP_NOT_FOUND = 404
HTTP_CONFLICT = 409


def load_kube_config() -> None:
    """Load in-cluster config, falling back to the local kubeconfig."""
    settings = get_settings().kubernetes
    if settings.in_cluster:
        k8s_config.load_incluster_config()
        return
    try:
        k8s_config.load_incluster_config()
    except k8s_config.ConfigException:
        k8s_config.load_kube_config(config_file=settings.kubeconfig, context=settings.context)


def _api_reason(error: ApiException) -> str | None:
    """Kubernetes ``Status.reason`` from the response body, if any."""
    if not error.body:
        return None
    try:
        payload = json.loads(error.body)
    except (TypeError, ValueError):
        return None
    return payload.get("reason") if isinstance(payload, dict) else None


def translate_api_error(error: ApiException, action: str, kind: str, name: str) -> Exception:
    """Map an ``ApiException`` onto the reconcile error taxonomy."""
    details = {"action": action, "kind": kind, "name": name, "status": error.status}
    message = f"{action} {kind} {name}: {error.reason}"
    if error.status == HTTP_NOT_FOUND:
        return ResourceNotFoundError(message, details=details)
    if error.status == HTTP_CONFLICT:
        if _api_reason(error) == "AlreadyExists":
            return AlreadyExistsError(message, details=details)
        return ResourceConflictError(message, details=details)
    return TransientError(message, details=details)


@contextmanager
def _api_call(action: str, kind: str, name: str) -> Iterator[None]:
    try:
        yield
    except ApiException as e:
        raise translate_api_error(e, action, kind, name) from e


class ResourceStore:
    """Get/list/create/replace/delete facade over the Kubernetes API.

    Attributes:
        core_api: Kubernetes CoreV1Api client
        batch_api: Kubernetes BatchV1Api client
        custom_api: Kubernetes CustomObjectsApi client
    """

    def __init__(
        self,
        core_api: client.CoreV1Api | None = None,
        batch_api: client.BatchV1Api | None = None,
        custom_api: client.CustomObjectsApi | None = None,
    ) -> None:
        if core_api is None or batch_api is None or custom_api is None:
            load_kube_config()

        self.core_api = core_api or client.CoreV1Api()
        self.batch_api = batch_api or client.BatchV1Api()
        self.custom_api = custom_api or client.CustomObjectsApi()
        self._timeout = get_settings().kubernetes.api_timeout

    # ------------------------------------------------------------------
    # Cluster
    # ------------------------------------------------------------------

    def get_cluster(self, name: str) -> Cluster:
        with _api_call("get", "Cluster", name):
            obj = self.custom_api.get_cluster_custom_object(
                group=KOK_API_GROUP,
                version=KOK_API_VERSION,
                plural=CLUSTER_PLURAL,
                name=name,
                _request_timeout=self._timeout,
            )
        return Cluster.from_kubernetes_object(obj)

    def replace_cluster_status(self, cluster: Cluster) -> Cluster:
        with _api_call("update status", "Cluster", cluster.name):
            obj = self.custom_api.replace_cluster_custom_object_status(
                group=KOK_API_GROUP,
                version=KOK_API_VERSION,
                plural=CLUSTER_PLURAL,
                name=cluster.name,
                body=cluster.to_dict(),
                _request_timeout=self._timeout,
            )
        return Cluster.from_kubernetes_object(obj)

    # ------------------------------------------------------------------
    # ClusterOperation
    # ------------------------------------------------------------------

    def get_operation(self, name: str) -> ClusterOperation:
        with _api_call("get", "ClusterOperation", name):
            obj = self.custom_api.get_cluster_custom_object(
                group=KOK_API_GROUP,
                version=KOK_API_VERSION,
                plural=OPERATION_PLURAL,
                name=name,
                _request_timeout=self._timeout,
            )
        return ClusterOperation.from_kubernetes_object(obj)

    def list_operations(self, cluster_name: str) -> list[ClusterOperation]:
        """All ClusterOperations labeled with ``clusterName=<cluster_name>``."""
        with _api_call("list", "ClusterOperation", cluster_name):
            result = self.custom_api.list_cluster_custom_object(
                group=KOK_API_GROUP,
                version=KOK_API_VERSION,
                plural=OPERATION_PLURAL,
                label_selector=f"{CLUSTER_LABEL_KEY}={cluster_name}",
                _request_timeout=self._timeout,
            )
        return [ClusterOperation.from_kubernetes_object(item) for item in result.get("items", [])]

    def replace_operation(self, operation: ClusterOperation) -> ClusterOperation:
        with _api_call("update", "ClusterOperation", operation.name):
            obj = self.custom_api.replace_cluster_custom_object(
                group=KOK_API_GROUP,
                version=KOK_API_VERSION,
                plural=OPERATION_PLURAL,
                name=operation.name,
                body=operation.to_dict(),
                _request_timeout=self._timeout,
            )
        return ClusterOperation.from_kubernetes_object(obj)

    def replace_operation_status(self, operation: ClusterOperation) -> ClusterOperation:
        with _api_call("update status", "ClusterOperation", operation.name):
            obj = self.custom_api.replace_cluster_custom_object_status(
                group=KOK_API_GROUP,
                version=KOK_API_VERSION,
                plural=OPERATION_PLURAL,
                name=operation.name,
                body=operation.to_dict(),
                _request_timeout=self._timeout,
            )
        return ClusterOperation.from_kubernetes_object(obj)

    def patch_operation_labels(self, name: str, labels: dict[str, str]) -> ClusterOperation:
        with _api_call("patch labels", "ClusterOperation", name):
            obj = self.custom_api.patch_cluster_custom_object(
                group=KOK_API_GROUP,
                version=KOK_API_VERSION,
                plural=OPERATION_PLURAL,
                name=name,
                body={"metadata": {"labels": labels}},
                _request_timeout=self._timeout,
            )
        return ClusterOperation.from_kubernetes_object(obj)

    def delete_operation(self, name: str) -> None:
        with _api_call("delete", "ClusterOperation", name):
            self.custom_api.delete_cluster_custom_object(
                group=KOK_API_GROUP,
                version=KOK_API_VERSION,
                plural=OPERATION_PLURAL,
                name=name,
                _request_timeout=self._timeout,
            )

    # ------------------------------------------------------------------
    # ConfigMaps and Secrets
    # ------------------------------------------------------------------

    def get_config_map(self, namespace: str, name: str) -> client.V1ConfigMap:
        with _api_call("get", "ConfigMap", f"{namespace}/{name}"):
            return self.core_api.read_namespaced_config_map(
                name=name, namespace=namespace, _request_timeout=self._timeout
            )

    def create_config_map(self, config_map: client.V1ConfigMap) -> client.V1ConfigMap:
        meta = config_map.metadata
        with _api_call("create", "ConfigMap", f"{meta.namespace}/{meta.name}"):
            return self.core_api.create_namespaced_config_map(
                namespace=meta.namespace, body=config_map, _request_timeout=self._timeout
            )

    def replace_config_map(self, config_map: client.V1ConfigMap) -> client.V1ConfigMap:
        meta = config_map.metadata
        with _api_call("update", "ConfigMap", f"{meta.namespace}/{meta.name}"):
            return self.core_api.replace_namespaced_config_map(
                name=meta.name,
                namespace=meta.namespace,
                body=config_map,
                _request_timeout=self._timeout,
            )

    def get_secret(self, namespace: str, name: str) -> client.V1Secret:
        with _api_call("get", "Secret", f"{namespace}/{name}"):
            return self.core_api.read_namespaced_secret(
                name=name, namespace=namespace, _request_timeout=self._timeout
            )

    def create_secret(self, secret: client.V1Secret) -> client.V1Secret:
        meta = secret.metadata
        with _api_call("create", "Secret", f"{meta.namespace}/{meta.name}"):
            return self.core_api.create_namespaced_secret(
                namespace=meta.namespace, body=secret, _request_timeout=self._timeout
            )

    def replace_secret(self, secret: client.V1Secret) -> client.V1Secret:
        meta = secret.metadata
        with _api_call("update", "Secret", f"{meta.namespace}/{meta.name}"):
            return self.core_api.replace_namespaced_secret(
                name=meta.name,
                namespace=meta.namespace,
                body=secret,
                _request_timeout=self._timeout,
            )

    def config_map_exists(self, namespace: str, name: str) -> bool:
        try:
            self.get_config_map(namespace, name)
        except ResourceNotFoundError:
            return False
        return True

    def secret_exists(self, namespace: str, name: str) -> bool:
        try:
            self.get_secret(namespace, name)
        except ResourceNotFoundError:
            return False
        return True

    # ------------------------------------------------------------------
    # Service accounts and Jobs
    # ------------------------------------------------------------------

    def list_service_accounts(self, namespace: str, label_selector: str) -> list[client.V1ServiceAccount]:
        with _api_call("list", "ServiceAccount", f"{namespace}?{label_selector}"):
            result = self.core_api.list_namespaced_service_account(
                namespace=namespace,
                label_selector=label_selector,
                _request_timeout=self._timeout,
            )
        return list(result.items or [])

    def get_job(self, namespace: str, name: str) -> client.V1Job:
        with _api_call("get", "Job", f"{namespace}/{name}"):
            return self.batch_api.read_namespaced_job(
                name=name, namespace=namespace, _request_timeout=self._timeout
            )

    def create_job(self, job: client.V1Job) -> client.V1Job:
        meta = job.metadata
        with _api_call("create", "Job", f"{meta.namespace}/{meta.name}"):
            return self.batch_api.create_namespaced_job(
                namespace=meta.namespace, body=job, _request_timeout=self._timeout
            )

    def get_config_map_data(self, namespace: str, name: str) -> dict[str, Any]:
        """``data`` of a ConfigMap, empty when it has none."""
        return dict(self.get_config_map(namespace, name).data or {})


def v1_owner_reference(owner: OwnerReference) -> client.V1OwnerReference:
    """Convert a CRD owner reference into the client model."""
    return client.V1OwnerReference(
        api_version=owner.api_version,
        kind=owner.kind,
        name=owner.name,
        uid=owner.uid,
        controller=owner.controller,
        block_owner_deletion=owner.block_owner_deletion,
    )


class _StoreHolder:
    instance: ResourceStore | None = None


def get_store() -> ResourceStore:
    """Get the singleton ResourceStore instance."""
    if _StoreHolder.instance is None:
        _StoreHolder.instance = ResourceStore()
    return _StoreHolder.instance


__all__ = [
    "ResourceStore",
    "get_store",
    "load_kube_config",
    "translate_api_error",
    "v1_owner_reference",
]
