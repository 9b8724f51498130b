"""Pydantic models for the kube-on-kube Custom Resources.

Both resources are cluster-scoped.

API Group: kubeonkube.io
API Version: v1alpha1
Kinds: Cluster, ClusterOperation
"""

from datetime import datetime
from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator


KOK_API_GROUP = "kubeonkube.io"
KOK_API_VERSION = "v1alpha1"
CLUSTER_KIND = "Cluster"
CLUSTER_PLURAL = "clusters"
OPERATION_KIND = "ClusterOperation"
OPERATION_PLURAL = "clusteroperations"

# Labels and annotations placed on ClusterOperations
CLUSTER_LABEL_KEY = "clusterName"
COMPLETED_LABEL_KEY = "hasCompleted"
COMPLETED_LABEL_VALUE = "done"
ELIMINATE_SCORE_ANNOTATION = "kubeonkube.io/eliminate-score"


class ActionType(str, Enum):
    """Kinds of command an action descriptor can compile to."""

    PLAYBOOK = "playbook"
    SHELL = "shell"


class ActionSource(str, Enum):
    """Where an action identifier comes from."""

    BUILTIN = "builtin"
    CONFIGMAP = "configmap"


class OperationStatus(str, Enum):
    """Three-valued status of a ClusterOperation."""

    RUNNING = "Running"
    SUCCEEDED = "Succeeded"
    FAILED = "Failed"


TERMINAL_STATUSES = frozenset({OperationStatus.SUCCEEDED, OperationStatus.FAILED})


class _CRDModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="allow")


class ObjectRef(_CRDModel):
    """Reference to a namespaced object (ConfigMap, Secret or Job)."""

    namespace: str | None = Field(default=None)
    name: str | None = Field(default=None)

    def is_empty(self) -> bool:
        """A reference is empty when either field is unset."""
        return not self.namespace or not self.name


def ref_is_empty(ref: ObjectRef | None) -> bool:
    """Treat a missing reference the same as an empty one."""
    return ref is None or ref.is_empty()


class OwnerReference(_CRDModel):
    """Back-reference from a child object to its owner."""

    api_version: str = Field(alias="apiVersion")
    kind: str
    name: str
    uid: str
    controller: bool | None = Field(default=None)
    block_owner_deletion: bool | None = Field(default=None, alias="blockOwnerDeletion")


class ObjectMeta(_CRDModel):
    """Subset of Kubernetes object metadata used by the reconcilers."""

    name: str = Field(default="")
    namespace: str | None = Field(default=None)
    uid: str | None = Field(default=None)
    resource_version: str | None = Field(default=None, alias="resourceVersion")
    labels: dict[str, str] = Field(default_factory=dict)
    annotations: dict[str, str] = Field(default_factory=dict)
    owner_references: list[OwnerReference] = Field(default_factory=list, alias="ownerReferences")
    creation_timestamp: datetime | None = Field(default=None, alias="creationTimestamp")

    @field_validator("labels", "annotations", mode="before")
    @classmethod
    def _none_as_empty_dict(cls, value: Any) -> Any:
        return {} if value is None else value

    @field_validator("owner_references", mode="before")
    @classmethod
    def _none_as_empty_list(cls, value: Any) -> Any:
        return [] if value is None else value


# ============================================================================
# Cluster
# ============================================================================


class ClusterSpec(_CRDModel):
    """Desired state of a managed cluster."""

    hosts_conf_ref: ObjectRef | None = Field(default=None, alias="hostsConfRef")
    vars_conf_ref: ObjectRef | None = Field(default=None, alias="varsConfRef")
    kube_conf_ref: ObjectRef | None = Field(default=None, alias="kubeConfRef")
    ssh_auth_ref: ObjectRef | None = Field(default=None, alias="sshAuthRef")
    pre_check_ref: ObjectRef | None = Field(default=None, alias="preCheckRef")

    def config_data_list(self) -> list[ObjectRef | None]:
        """ConfigMap references owned by the Cluster."""
        return [self.hosts_conf_ref, self.vars_conf_ref, self.kube_conf_ref, self.pre_check_ref]

    def secret_data_list(self) -> list[ObjectRef | None]:
        """Secret references owned by the Cluster."""
        return [self.ssh_auth_ref]


class ClusterCondition(_CRDModel):
    """Observed state of one child ClusterOperation."""

    cluster_ops: str = Field(alias="clusterOps")
    status: str | None = Field(default=None)
    start_time: datetime | None = Field(default=None, alias="startTime")
    end_time: datetime | None = Field(default=None, alias="endTime")


class ClusterStatus(_CRDModel):
    """Observed state of a Cluster."""

    conditions: list[ClusterCondition] = Field(default_factory=list)

    @field_validator("conditions", mode="before")
    @classmethod
    def _none_as_empty(cls, value: Any) -> Any:
        return [] if value is None else value


class Cluster(_CRDModel):
    """Cluster Custom Resource."""

    api_version: str = Field(default=f"{KOK_API_GROUP}/{KOK_API_VERSION}", alias="apiVersion")
    kind: str = Field(default=CLUSTER_KIND)
    metadata: ObjectMeta = Field(default_factory=ObjectMeta)
    spec: ClusterSpec = Field(default_factory=ClusterSpec)
    status: ClusterStatus = Field(default_factory=ClusterStatus)

    @property
    def name(self) -> str:
        return self.metadata.name

    def owner_reference(self) -> OwnerReference:
        """Controller reference pointing at this Cluster."""
        return _controller_ref(self.api_version, CLUSTER_KIND, self.metadata)

    def to_dict(self) -> dict[str, Any]:
        """Convert to Kubernetes API dict format."""
        return self.model_dump(by_alias=True, exclude_none=True, mode="json")

    @classmethod
    def from_kubernetes_object(cls, obj: dict[str, Any]) -> "Cluster":
        """Create a Cluster from a raw Kubernetes API response."""
        return cls.model_validate(obj)


# ============================================================================
# ClusterOperation
# ============================================================================


class HookAction(_CRDModel):
    """Pre- or post-step action descriptor."""

    action_type: str = Field(default="", alias="actionType")
    action: str = Field(default="")
    action_source: str | None = Field(default=ActionSource.BUILTIN.value, alias="actionSource")
    action_source_ref: ObjectRef | None = Field(default=None, alias="actionSourceRef")
    extra_args: str = Field(default="", alias="extraArgs")

    @property
    def is_builtin(self) -> bool:
        return self.action_source in (None, ActionSource.BUILTIN.value)


class ClusterOperationSpec(_CRDModel):
    """Desired state of a ClusterOperation."""

    cluster: str = Field(default="")
    hosts_conf_ref: ObjectRef | None = Field(default=None, alias="hostsConfRef")
    vars_conf_ref: ObjectRef | None = Field(default=None, alias="varsConfRef")
    ssh_auth_ref: ObjectRef | None = Field(default=None, alias="sshAuthRef")
    entrypoint_sh_ref: ObjectRef | None = Field(default=None, alias="entrypointSHRef")
    action_type: str = Field(default="", alias="actionType")
    action: str = Field(default="")
    action_source: str | None = Field(default=ActionSource.BUILTIN.value, alias="actionSource")
    action_source_ref: ObjectRef | None = Field(default=None, alias="actionSourceRef")
    extra_args: str = Field(default="", alias="extraArgs")
    image: str = Field(default="")
    pre_hook: list[HookAction] = Field(default_factory=list, alias="preHook")
    post_hook: list[HookAction] = Field(default_factory=list, alias="postHook")
    resources: dict[str, Any] = Field(default_factory=dict)
    active_deadline_seconds: int | None = Field(default=None, alias="activeDeadlineSeconds")

    @field_validator("pre_hook", "post_hook", mode="before")
    @classmethod
    def _hooks_none_as_empty(cls, value: Any) -> Any:
        return [] if value is None else value

    @field_validator("resources", mode="before")
    @classmethod
    def _resources_none_as_empty(cls, value: Any) -> Any:
        return {} if value is None else value

    @property
    def is_builtin(self) -> bool:
        return self.action_source in (None, ActionSource.BUILTIN.value)


class ClusterOperationStatus(_CRDModel):
    """Observed state of a ClusterOperation."""

    action: str | None = Field(default=None)
    job_ref: ObjectRef | None = Field(default=None, alias="jobRef")
    status: OperationStatus | None = Field(default=None)
    start_time: datetime | None = Field(default=None, alias="startTime")
    end_time: datetime | None = Field(default=None, alias="endTime")
    digest: str | None = Field(default=None)
    has_modified: bool = Field(default=False, alias="hasModified")

    @field_validator("status", mode="before")
    @classmethod
    def _blank_status_as_none(cls, value: Any) -> Any:
        return None if value == "" else value


class ClusterOperation(_CRDModel):
    """ClusterOperation Custom Resource: one job run against a Cluster."""

    api_version: str = Field(default=f"{KOK_API_GROUP}/{KOK_API_VERSION}", alias="apiVersion")
    kind: str = Field(default=OPERATION_KIND)
    metadata: ObjectMeta = Field(default_factory=ObjectMeta)
    spec: ClusterOperationSpec = Field(default_factory=ClusterOperationSpec)
    status: ClusterOperationStatus = Field(default_factory=ClusterOperationStatus)

    @property
    def name(self) -> str:
        return self.metadata.name

    def is_finished(self) -> bool:
        """Whether the operation reached Succeeded or Failed."""
        return self.status.status in TERMINAL_STATUSES

    def is_running(self) -> bool:
        return self.status.status == OperationStatus.RUNNING

    def is_owned_by(self, uid: str | None) -> bool:
        return any(ref.uid == uid for ref in self.metadata.owner_references)

    def owner_reference(self) -> OwnerReference:
        """Controller reference pointing at this ClusterOperation."""
        return _controller_ref(self.api_version, OPERATION_KIND, self.metadata)

    def to_dict(self) -> dict[str, Any]:
        """Convert to Kubernetes API dict format."""
        return self.model_dump(by_alias=True, exclude_none=True, mode="json")

    @classmethod
    def from_kubernetes_object(cls, obj: dict[str, Any]) -> "ClusterOperation":
        """Create a ClusterOperation from a raw Kubernetes API response."""
        return cls.model_validate(obj)


# ============================================================================
# Operator-wide configuration
# ============================================================================


class OperatorConfig(_CRDModel):
    """Recognized keys of the operator-wide ConfigMap."""

    cluster_operations_backend_limit: str = Field(
        default="", alias="CLUSTER_OPERATIONS_BACKEND_LIMIT"
    )


def _controller_ref(api_version: str, kind: str, metadata: ObjectMeta) -> OwnerReference:
    return OwnerReference(
        api_version=api_version,
        kind=kind,
        name=metadata.name,
        uid=metadata.uid or "",
        controller=True,
        block_owner_deletion=True,
    )


__all__ = [
    "CLUSTER_KIND",
    "CLUSTER_LABEL_KEY",
    "CLUSTER_PLURAL",
    "COMPLETED_LABEL_KEY",
    "COMPLETED_LABEL_VALUE",
    "ELIMINATE_SCORE_ANNOTATION",
    "KOK_API_GROUP",
    "KOK_API_VERSION",
    "OPERATION_KIND",
    "OPERATION_PLURAL",
    "TERMINAL_STATUSES",
    "ActionSource",
    "ActionType",
    "Cluster",
    "ClusterCondition",
    "ClusterOperation",
    "ClusterOperationSpec",
    "ClusterOperationStatus",
    "ClusterSpec",
    "ClusterStatus",
    "HookAction",
    "ObjectMeta",
    "ObjectRef",
    "OperationStatus",
    "OperatorConfig",
    "OwnerReference",
    "ref_is_empty",
]
