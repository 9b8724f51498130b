"""kube-on-kube Custom Resource Definition Models.

Pydantic models for parsing and writing the resources managed by the
operator.

Supported CRDs:
- Cluster (kubeonkube.io/v1alpha1)
- ClusterOperation (kubeonkube.io/v1alpha1)
"""

from kubeonkube.crd.models import (
    CLUSTER_KIND,
    CLUSTER_LABEL_KEY,
    CLUSTER_PLURAL,
    COMPLETED_LABEL_KEY,
    COMPLETED_LABEL_VALUE,
    ELIMINATE_SCORE_ANNOTATION,
    KOK_API_GROUP,
    KOK_API_VERSION,
    OPERATION_KIND,
    OPERATION_PLURAL,
    TERMINAL_STATUSES,
    ActionSource,
    ActionType,
    Cluster,
    ClusterCondition,
    ClusterOperation,
    ClusterOperationSpec,
    ClusterOperationStatus,
    ClusterSpec,
    ClusterStatus,
    HookAction,
    ObjectMeta,
    ObjectRef,
    OperationStatus,
    OperatorConfig,
    OwnerReference,
    ref_is_empty,
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
