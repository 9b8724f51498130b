"""Pytest configuration and fixtures for kube-on-kube tests."""

from __future__ import annotations

import copy
import os
from collections.abc import Callable
from datetime import UTC, datetime, timedelta
from typing import TYPE_CHECKING, Any

import pytest
from kubernetes import client

from kubeonkube.crd import (
    CLUSTER_LABEL_KEY,
    Cluster,
    ClusterOperation,
)
from kubeonkube.errors import AlreadyExistsError, ResourceNotFoundError


if TYPE_CHECKING:
    from collections.abc import Generator


OPERATOR_NAMESPACE = "kubeonkube-system"
ARTIFACT_NAMESPACE = "cluster-artifacts"

# Ensure we're using test configuration
os.environ.setdefault("KOK_ENVIRONMENT", "development")
os.environ.setdefault("KOK_K8S_NAMESPACE", OPERATOR_NAMESPACE)


@pytest.fixture(autouse=True)
def reset_settings() -> Generator[None, None, None]:
    """Reset settings cache before each test."""
    from kubeonkube.config.settings import get_settings

    get_settings.cache_clear()
    yield
    get_settings.cache_clear()


class FakeStore:
    """In-memory stand-in for ``ResourceStore``.

    Custom resources are kept as API dicts so every read returns a fresh
    copy, and object and status writes only touch their own half, as the
    API server does. ``writes`` records every mutating call.
    """

    def __init__(self) -> None:
        self.clusters: dict[str, dict[str, Any]] = {}
        self.operations: dict[str, dict[str, Any]] = {}
        self.config_maps: dict[tuple[str, str], client.V1ConfigMap] = {}
        self.secrets: dict[tuple[str, str], client.V1Secret] = {}
        self.jobs: dict[tuple[str, str], client.V1Job] = {}
        self.service_accounts: dict[str, list[client.V1ServiceAccount]] = {}
        self.writes: list[tuple[str, str]] = []
        self.failures: dict[str, Exception] = {}
        self._uid = 0

    # -- seeding -------------------------------------------------------

    def _next_uid(self, prefix: str) -> str:
        self._uid += 1
        return f"{prefix}-uid-{self._uid}"

    def add_cluster(self, cluster: Cluster) -> Cluster:
        cluster.metadata.uid = cluster.metadata.uid or self._next_uid("cluster")
        self.clusters[cluster.name] = cluster.to_dict()
        return self.get_cluster(cluster.name)

    def add_operation(self, operation: ClusterOperation) -> ClusterOperation:
        operation.metadata.uid = operation.metadata.uid or self._next_uid("op")
        if operation.metadata.creation_timestamp is None:
            operation.metadata.creation_timestamp = datetime(2024, 1, 1, tzinfo=UTC) + timedelta(
                minutes=self._uid
            )
        self.operations[operation.name] = operation.to_dict()
        return self.get_operation(operation.name)

    def add_config_map(self, namespace: str, name: str, data: dict[str, str]) -> None:
        self.config_maps[(namespace, name)] = client.V1ConfigMap(
            api_version="v1",
            kind="ConfigMap",
            metadata=client.V1ObjectMeta(name=name, namespace=namespace),
            data=dict(data),
        )

    def add_secret(self, namespace: str, name: str, data: dict[str, str]) -> None:
        self.secrets[(namespace, name)] = client.V1Secret(
            api_version="v1",
            kind="Secret",
            metadata=client.V1ObjectMeta(name=name, namespace=namespace),
            type="Opaque",
            data=dict(data),
        )

    def add_service_account(self, namespace: str, name: str) -> None:
        self.service_accounts.setdefault(namespace, []).append(
            client.V1ServiceAccount(metadata=client.V1ObjectMeta(name=name, namespace=namespace))
        )

    def set_job_condition(self, namespace: str, name: str, condition: str, completed_at: datetime | None = None) -> None:
        job = self.jobs[(namespace, name)]
        job.status = client.V1JobStatus(
            conditions=[client.V1JobCondition(type=condition, status="True")],
            completion_time=completed_at,
        )

    def _maybe_fail(self, method: str) -> None:
        if method in self.failures:
            raise self.failures[method]

    # -- Cluster -------------------------------------------------------

    def get_cluster(self, name: str) -> Cluster:
        self._maybe_fail("get_cluster")
        if name not in self.clusters:
            raise ResourceNotFoundError(f"get Cluster {name}: Not Found")
        return Cluster.from_kubernetes_object(copy.deepcopy(self.clusters[name]))

    def replace_cluster_status(self, cluster: Cluster) -> Cluster:
        self._maybe_fail("replace_cluster_status")
        self.writes.append(("cluster_status", cluster.name))
        self.clusters[cluster.name]["status"] = cluster.to_dict().get("status", {})
        return self.get_cluster(cluster.name)

    # -- ClusterOperation ----------------------------------------------

    def get_operation(self, name: str) -> ClusterOperation:
        self._maybe_fail("get_operation")
        if name not in self.operations:
            raise ResourceNotFoundError(f"get ClusterOperation {name}: Not Found")
        return ClusterOperation.from_kubernetes_object(copy.deepcopy(self.operations[name]))

    def list_operations(self, cluster_name: str) -> list[ClusterOperation]:
        self._maybe_fail("list_operations")
        return [
            ClusterOperation.from_kubernetes_object(copy.deepcopy(obj))
            for obj in self.operations.values()
            if obj.get("metadata", {}).get("labels", {}).get(CLUSTER_LABEL_KEY) == cluster_name
        ]

    def replace_operation(self, operation: ClusterOperation) -> ClusterOperation:
        self._maybe_fail("replace_operation")
        self.writes.append(("operation", operation.name))
        stored = self.operations[operation.name]
        data = operation.to_dict()
        data["status"] = stored.get("status", {})
        self.operations[operation.name] = data
        return self.get_operation(operation.name)

    def replace_operation_status(self, operation: ClusterOperation) -> ClusterOperation:
        self._maybe_fail("replace_operation_status")
        self.writes.append(("operation_status", operation.name))
        self.operations[operation.name]["status"] = operation.to_dict().get("status", {})
        return self.get_operation(operation.name)

    def patch_operation_labels(self, name: str, labels: dict[str, str]) -> ClusterOperation:
        self._maybe_fail("patch_operation_labels")
        self.writes.append(("operation_labels", name))
        metadata = self.operations[name].setdefault("metadata", {})
        metadata.setdefault("labels", {}).update(labels)
        return self.get_operation(name)

    def delete_operation(self, name: str) -> None:
        self._maybe_fail("delete_operation")
        self.writes.append(("delete_operation", name))
        if self.operations.pop(name, None) is None:
            raise ResourceNotFoundError(f"delete ClusterOperation {name}: Not Found")

    # -- ConfigMaps and Secrets ----------------------------------------

    def get_config_map(self, namespace: str, name: str) -> client.V1ConfigMap:
        self._maybe_fail("get_config_map")
        if (namespace, name) not in self.config_maps:
            raise ResourceNotFoundError(f"get ConfigMap {namespace}/{name}: Not Found")
        return copy.deepcopy(self.config_maps[(namespace, name)])

    def create_config_map(self, config_map: client.V1ConfigMap) -> client.V1ConfigMap:
        self._maybe_fail("create_config_map")
        key = (config_map.metadata.namespace, config_map.metadata.name)
        if key in self.config_maps:
            raise AlreadyExistsError(f"create ConfigMap {key[0]}/{key[1]}: Conflict")
        self.writes.append(("create_config_map", key[1]))
        self.config_maps[key] = copy.deepcopy(config_map)
        return copy.deepcopy(config_map)

    def replace_config_map(self, config_map: client.V1ConfigMap) -> client.V1ConfigMap:
        self._maybe_fail("replace_config_map")
        key = (config_map.metadata.namespace, config_map.metadata.name)
        self.writes.append(("replace_config_map", key[1]))
        self.config_maps[key] = copy.deepcopy(config_map)
        return copy.deepcopy(config_map)

    def get_secret(self, namespace: str, name: str) -> client.V1Secret:
        self._maybe_fail("get_secret")
        if (namespace, name) not in self.secrets:
            raise ResourceNotFoundError(f"get Secret {namespace}/{name}: Not Found")
        return copy.deepcopy(self.secrets[(namespace, name)])

    def create_secret(self, secret: client.V1Secret) -> client.V1Secret:
        self._maybe_fail("create_secret")
        key = (secret.metadata.namespace, secret.metadata.name)
        if key in self.secrets:
            raise AlreadyExistsError(f"create Secret {key[0]}/{key[1]}: Conflict")
        self.writes.append(("create_secret", key[1]))
        self.secrets[key] = copy.deepcopy(secret)
        return copy.deepcopy(secret)

    def replace_secret(self, secret: client.V1Secret) -> client.V1Secret:
        self._maybe_fail("replace_secret")
        key = (secret.metadata.namespace, secret.metadata.name)
        self.writes.append(("replace_secret", key[1]))
        self.secrets[key] = copy.deepcopy(secret)
        return copy.deepcopy(secret)

    def config_map_exists(self, namespace: str, name: str) -> bool:
        return (namespace, name) in self.config_maps

    def secret_exists(self, namespace: str, name: str) -> bool:
        return (namespace, name) in self.secrets

    def get_config_map_data(self, namespace: str, name: str) -> dict[str, Any]:
        return dict(self.get_config_map(namespace, name).data or {})

    # -- Service accounts and Jobs -------------------------------------

    def list_service_accounts(self, namespace: str, label_selector: str) -> list[client.V1ServiceAccount]:
        self._maybe_fail("list_service_accounts")
        return list(self.service_accounts.get(namespace, []))

    def get_job(self, namespace: str, name: str) -> client.V1Job:
        self._maybe_fail("get_job")
        if (namespace, name) not in self.jobs:
            raise ResourceNotFoundError(f"get Job {namespace}/{name}: Not Found")
        return copy.deepcopy(self.jobs[(namespace, name)])

    def create_job(self, job: client.V1Job) -> client.V1Job:
        self._maybe_fail("create_job")
        key = (job.metadata.namespace, job.metadata.name)
        if key in self.jobs:
            raise AlreadyExistsError(f"create Job {key[0]}/{key[1]}: Conflict")
        self.writes.append(("create_job", key[1]))
        self.jobs[key] = copy.deepcopy(job)
        return copy.deepcopy(job)


@pytest.fixture
def fake_store() -> FakeStore:
    """Empty in-memory store."""
    return FakeStore()


@pytest.fixture
def make_cluster() -> Callable[..., Cluster]:
    """Factory for Cluster objects referencing artifacts in ARTIFACT_NAMESPACE."""

    def _make(name: str = "cluster-1", ssh: bool = False, **spec: Any) -> Cluster:
        data: dict[str, Any] = {
            "hostsConfRef": {"namespace": ARTIFACT_NAMESPACE, "name": f"{name}-hosts"},
            "varsConfRef": {"namespace": ARTIFACT_NAMESPACE, "name": f"{name}-vars"},
        }
        if ssh:
            data["sshAuthRef"] = {"namespace": ARTIFACT_NAMESPACE, "name": f"{name}-ssh"}
        data.update(spec)
        return Cluster.model_validate({"metadata": {"name": name}, "spec": data})

    return _make


@pytest.fixture
def make_operation() -> Callable[..., ClusterOperation]:
    """Factory for ClusterOperation objects with a valid shell action."""

    def _make(
        name: str = "op-1",
        cluster: str = "cluster-1",
        image: str = "kubespray:v2.24",
        action_type: str = "shell",
        action: str = "echo hi",
        **spec: Any,
    ) -> ClusterOperation:
        data: dict[str, Any] = {
            "cluster": cluster,
            "image": image,
            "actionType": action_type,
            "action": action,
        }
        data.update(spec)
        return ClusterOperation.model_validate({"metadata": {"name": name}, "spec": data})

    return _make


@pytest.fixture
def seeded_store(fake_store: FakeStore, make_cluster: Callable[..., Cluster]) -> FakeStore:
    """Store holding ``cluster-1`` with its hosts and vars artifacts and a job service account."""
    cluster = make_cluster()
    fake_store.add_cluster(cluster)
    fake_store.add_config_map(ARTIFACT_NAMESPACE, "cluster-1-hosts", {"hosts.yml": "all: {}"})
    fake_store.add_config_map(ARTIFACT_NAMESPACE, "cluster-1-vars", {"group_vars.yml": "kube_version: v1.29"})
    fake_store.add_service_account(OPERATOR_NAMESPACE, "kubeonkube-runner")
    return fake_store
