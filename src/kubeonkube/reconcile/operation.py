"""ClusterOperation state machine.

Each reconcile derives the operation's state from the fetched object, runs
the admission checks, then performs the single step the transition table
assigns to that state and persists at most one mutation:

    UNLINKED -> UNSEALED -> SEALED -> BACKED_UP -> SCRIPTED -> DISPATCHED
                                                                   |
                                                      SUCCEEDED / FAILED

FAILED is also reachable from any non-terminal state when the admission
checks or script synthesis reject the operation's input.
"""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass, field
from enum import Enum

from kubernetes import client

from kubeonkube.config.settings import current_namespace, get_settings
from kubeonkube.crd import (
    CLUSTER_LABEL_KEY,
    COMPLETED_LABEL_KEY,
    COMPLETED_LABEL_VALUE,
    Cluster,
    ClusterOperation,
    ObjectRef,
    OperationStatus,
    ref_is_empty,
)
from kubeonkube.errors import (
    AlreadyExistsError,
    InputRejectedError,
    KubeOnKubeError,
    ResourceNotFoundError,
)
from kubeonkube.kubernetes.backup import ArtifactBackup
from kubeonkube.kubernetes.jobs import JobManager, now_utc
from kubeonkube.kubernetes.store import ResourceStore, v1_owner_reference
from kubeonkube.observability._logging import get_logger
from kubeonkube.observability._metrics import operations_finished_total
from kubeonkube.reconcile import digest, entrypoint
from kubeonkube.reconcile.validation import check_artifact_refs, is_valid_image_name


log = get_logger(__name__)


class OperationState(str, Enum):
    """Where a ClusterOperation is in its lifecycle."""

    UNLINKED = "Unlinked"
    UNSEALED = "Unsealed"
    SEALED = "Sealed"
    BACKED_UP = "BackedUp"
    SCRIPTED = "Scripted"
    DISPATCHED = "Dispatched"
    SUCCEEDED = "Succeeded"
    FAILED = "Failed"


class Write(str, Enum):
    """Which part of the ClusterOperation a transition persists."""

    NONE = "none"
    OBJECT = "object"
    STATUS = "status"
    LABELS = "labels"


@dataclass
class Transition:
    """Outcome of one step: the state reached and the mutation to persist."""

    next_state: OperationState
    write: Write = Write.NONE
    requeue: bool = True
    labels: dict[str, str] = field(default_factory=dict)


@dataclass
class ReconcileResult:
    """What a reconcile did and whether it wants to run again."""

    state: OperationState | None
    requeue_after: float | None = None
    result: str = "progress"

    @property
    def requeue(self) -> bool:
        return self.requeue_after is not None


def is_linked(operation: ClusterOperation, cluster: Cluster) -> bool:
    """Owned by the Cluster and labeled with its name."""
    return (
        operation.is_owned_by(cluster.metadata.uid)
        and operation.metadata.labels.get(CLUSTER_LABEL_KEY) == cluster.name
    )


def derive_state(operation: ClusterOperation, cluster: Cluster | None, backup: ArtifactBackup) -> OperationState:
    """Map the fetched object onto its state.

    ``cluster`` may be None only for terminal operations.
    """
    if operation.status.status == OperationStatus.SUCCEEDED:
        return OperationState.SUCCEEDED
    if operation.status.status == OperationStatus.FAILED:
        return OperationState.FAILED
    if cluster is None:
        raise ValueError("a Cluster is required to derive a non-terminal state")

    if not is_linked(operation, cluster):
        return OperationState.UNLINKED
    if not operation.status.digest:
        return OperationState.UNSEALED
    if backup.needs_backup(cluster, operation):
        return OperationState.SEALED
    if ref_is_empty(operation.spec.entrypoint_sh_ref):
        return OperationState.BACKED_UP
    if ref_is_empty(operation.status.job_ref):
        return OperationState.SCRIPTED
    return OperationState.DISPATCHED


def entrypoint_config_map_name(operation: ClusterOperation) -> str:
    return f"{operation.name}-entrypoint"


class OperationReconciler:
    """Advances one ClusterOperation by exactly one step per call.

    Attributes:
        store: Resource store used for reads and writes
        backup: Artifact backup helper
        jobs: Job lifecycle manager
        namespace: Operator namespace, home of every generated object
    """

    def __init__(
        self,
        store: ResourceStore,
        namespace: str | None = None,
        backup: ArtifactBackup | None = None,
        jobs: JobManager | None = None,
    ) -> None:
        self.store = store
        self.namespace = namespace or current_namespace()
        self.backup = backup or ArtifactBackup(store, namespace=self.namespace)
        self.jobs = jobs or JobManager(store, namespace=self.namespace)
        self.requeue_seconds = get_settings().reconcile.operation_requeue_seconds

        self._transitions: dict[
            OperationState, Callable[[ClusterOperation, Cluster | None], Transition]
        ] = {
            OperationState.UNLINKED: self._link_owner,
            OperationState.UNSEALED: self._seal_digest,
            OperationState.SEALED: self._backup_artifact,
            OperationState.BACKED_UP: self._publish_script,
            OperationState.SCRIPTED: self._dispatch_job,
            OperationState.DISPATCHED: self._poll_job,
            OperationState.SUCCEEDED: self._stamp_completed,
            OperationState.FAILED: self._stamp_completed,
        }

    def reconcile(self, name: str) -> ReconcileResult:
        """Run one reconcile pass for the named ClusterOperation."""
        try:
            operation = self.store.get_operation(name)
        except ResourceNotFoundError:
            return ReconcileResult(state=None, result="gone")
        except KubeOnKubeError as e:
            log.error("operation_fetch_failed", operation=name, error=e.message)
            return self._retry(None)

        if operation.is_finished():
            state = derive_state(operation, None, self.backup)
            return self._run(operation, None, state)

        try:
            cluster = self.store.get_cluster(operation.spec.cluster)
        except KubeOnKubeError as e:
            log.error(
                "cluster_fetch_failed",
                operation=name,
                cluster=operation.spec.cluster,
                error=e.message,
            )
            return self._retry(None)

        try:
            self._admit(operation, cluster)
        except InputRejectedError as e:
            return self._reject(operation, e)
        except KubeOnKubeError as e:
            log.error("admission_check_failed", operation=name, error=e.message)
            return self._retry(None)

        state = derive_state(operation, cluster, self.backup)

        # Checked on every pass after sealing until a divergence is flagged.
        if state not in (OperationState.UNLINKED, OperationState.UNSEALED) and self._is_modified(operation):
            operation.status.has_modified = True
            result = self._commit(operation, Transition(next_state=state, write=Write.STATUS))
            if result.result != "error":
                log.warning("operation_spec_modified", operation=name, digest=operation.status.digest)
            return result

        return self._run(operation, cluster, state)

    # ------------------------------------------------------------------
    # Checks run on every non-terminal pass
    # ------------------------------------------------------------------

    def _admit(self, operation: ClusterOperation, cluster: Cluster) -> None:
        if not is_valid_image_name(operation.spec.image):
            msg = f"ClusterOperation {operation.name} has an invalid image name {operation.spec.image!r}"
            raise InputRejectedError(msg, reason="InvalidImage")
        check_artifact_refs(self.store, cluster, operation)

    @staticmethod
    def _is_modified(operation: ClusterOperation) -> bool:
        return not operation.status.has_modified and digest.check_modified(operation)

    # ------------------------------------------------------------------
    # Transitions
    # ------------------------------------------------------------------

    def _link_owner(self, operation: ClusterOperation, cluster: Cluster | None) -> Transition:
        if not operation.is_owned_by(cluster.metadata.uid):
            operation.metadata.owner_references.append(cluster.owner_reference())
        operation.metadata.labels[CLUSTER_LABEL_KEY] = cluster.name
        return Transition(next_state=OperationState.UNSEALED, write=Write.OBJECT)

    def _seal_digest(self, operation: ClusterOperation, cluster: Cluster | None) -> Transition:
        operation.status.digest = digest.seal(operation)
        return Transition(next_state=OperationState.SEALED, write=Write.STATUS)

    def _backup_artifact(self, operation: ClusterOperation, cluster: Cluster | None) -> Transition:
        if not self.backup.backup_next(cluster, operation):
            return Transition(next_state=OperationState.BACKED_UP)
        next_state = OperationState.SEALED
        if not self.backup.needs_backup(cluster, operation):
            next_state = OperationState.BACKED_UP
        return Transition(next_state=next_state, write=Write.OBJECT)

    def _publish_script(self, operation: ClusterOperation, cluster: Cluster | None) -> Transition:
        script = entrypoint.synthesize(operation)
        config_map = client.V1ConfigMap(
            api_version="v1",
            kind="ConfigMap",
            metadata=client.V1ObjectMeta(
                name=entrypoint_config_map_name(operation),
                namespace=self.namespace,
                owner_references=[v1_owner_reference(operation.owner_reference())],
            ),
            data={entrypoint.ENTRYPOINT_KEY: script},
        )
        try:
            self.store.create_config_map(config_map)
        except AlreadyExistsError:
            log.warning(
                "entrypoint_config_map_overwritten",
                operation=operation.name,
                config_map=config_map.metadata.name,
            )
            self.store.replace_config_map(config_map)

        operation.spec.entrypoint_sh_ref = ObjectRef(namespace=self.namespace, name=config_map.metadata.name)
        return Transition(next_state=OperationState.SCRIPTED, write=Write.OBJECT)

    def _dispatch_job(self, operation: ClusterOperation, cluster: Cluster | None) -> Transition:
        if not self.jobs.ensure_job(operation):
            return Transition(next_state=OperationState.DISPATCHED)
        return Transition(next_state=OperationState.DISPATCHED, write=Write.STATUS)

    def _poll_job(self, operation: ClusterOperation, cluster: Cluster | None) -> Transition:
        status, completion_time = self.jobs.poll_job(operation)
        if status == OperationStatus.RUNNING:
            return Transition(next_state=OperationState.DISPATCHED)

        operation.status.status = status
        operation.status.end_time = completion_time or now_utc()
        next_state = OperationState.SUCCEEDED if status == OperationStatus.SUCCEEDED else OperationState.FAILED
        return Transition(next_state=next_state, write=Write.STATUS)

    def _stamp_completed(self, operation: ClusterOperation, cluster: Cluster | None) -> Transition:
        state = derive_state(operation, None, self.backup)
        if operation.metadata.labels.get(COMPLETED_LABEL_KEY) == COMPLETED_LABEL_VALUE:
            return Transition(next_state=state, requeue=False)
        return Transition(
            next_state=state,
            write=Write.LABELS,
            requeue=False,
            labels={COMPLETED_LABEL_KEY: COMPLETED_LABEL_VALUE},
        )

    # ------------------------------------------------------------------
    # Persistence
    # ------------------------------------------------------------------

    def _run(self, operation: ClusterOperation, cluster: Cluster | None, state: OperationState) -> ReconcileResult:
        step = self._transitions[state]
        try:
            transition = step(operation, cluster)
        except InputRejectedError as e:
            return self._reject(operation, e)
        except KubeOnKubeError as e:
            log.error(
                "operation_step_failed",
                operation=operation.name,
                step=step.__name__.lstrip("_"),
                state=state.value,
                error=e.message,
            )
            return self._retry(state)
        return self._commit(operation, transition)

    def _commit(self, operation: ClusterOperation, transition: Transition) -> ReconcileResult:
        try:
            if transition.write == Write.OBJECT:
                self.store.replace_operation(operation)
            elif transition.write == Write.STATUS:
                self.store.replace_operation_status(operation)
            elif transition.write == Write.LABELS:
                self.store.patch_operation_labels(operation.name, transition.labels)
        except ResourceNotFoundError:
            return ReconcileResult(state=transition.next_state, result="gone")
        except KubeOnKubeError as e:
            log.error(
                "operation_write_failed",
                operation=operation.name,
                write=transition.write.value,
                error=e.message,
            )
            return self._retry(transition.next_state)

        if transition.write == Write.STATUS and operation.is_finished():
            operations_finished_total.labels(status=operation.status.status.value).inc()
            log.info(
                "operation_finished",
                operation=operation.name,
                status=operation.status.status.value,
            )
        elif transition.write != Write.NONE:
            log.debug(
                "operation_advanced",
                operation=operation.name,
                state=transition.next_state.value,
                write=transition.write.value,
            )

        if not transition.requeue:
            return ReconcileResult(state=transition.next_state, result="done")
        result = "waiting" if transition.write == Write.NONE else "progress"
        return ReconcileResult(state=transition.next_state, requeue_after=self.requeue_seconds, result=result)

    def _reject(self, operation: ClusterOperation, error: InputRejectedError) -> ReconcileResult:
        log.error(
            "operation_rejected",
            operation=operation.name,
            reason=error.reason,
            error=error.message,
        )
        operation.status.status = OperationStatus.FAILED
        result = self._commit(operation, Transition(next_state=OperationState.FAILED, write=Write.STATUS))
        if result.result == "progress":
            result.result = "rejected"
        return result

    def _retry(self, state: OperationState | None) -> ReconcileResult:
        return ReconcileResult(state=state, requeue_after=self.requeue_seconds, result="error")


__all__ = [
    "OperationReconciler",
    "OperationState",
    "ReconcileResult",
    "Transition",
    "Write",
    "derive_state",
    "entrypoint_config_map_name",
    "is_linked",
]
