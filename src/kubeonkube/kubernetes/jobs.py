"""Job Lifecycle Manager.

Creates the batch job backing a ClusterOperation exactly once and maps the
job's condition flags onto the three-valued operation status.
"""

from __future__ import annotations

from datetime import UTC, datetime

from kubernetes import client

from kubeonkube.config.settings import current_namespace, get_settings
from kubeonkube.crd import ClusterOperation, ObjectRef, OperationStatus, ref_is_empty
from kubeonkube.errors import AlreadyExistsError, KubeOnKubeError, ResourceNotFoundError, TransientError
from kubeonkube.kubernetes.store import ResourceStore, v1_owner_reference
from kubeonkube.observability._logging import get_logger
from kubeonkube.reconcile.entrypoint import (
    ENTRYPOINT_KEY,
    ENTRYPOINT_PATH,
    HOSTS_PATH,
    PRIVATE_KEY_PATH,
    VARS_PATH,
)


log = get_logger(__name__)

CONTAINER_NAME = "kubeonkube"
ENTRYPOINT_MODE = 0o700
PRIVATE_KEY_MODE = 0o400

# Condition kinds in the order they are checked; the first true one wins.
CONDITION_PRIORITY: tuple[tuple[str, OperationStatus], ...] = (
    ("Complete", OperationStatus.SUCCEEDED),
    ("Failed", OperationStatus.FAILED),
    ("FailureTarget", OperationStatus.FAILED),
    ("Suspended", OperationStatus.FAILED),
)


def job_name(operation: ClusterOperation) -> str:
    return f"kubeonkube-{operation.name}-job"


def now_utc() -> datetime:
    return datetime.now(UTC).replace(microsecond=0)


def build_job(operation: ClusterOperation, service_account: str, namespace: str) -> client.V1Job:
    """Build the job that runs the operation's entrypoint script.

    Args:
        operation: ClusterOperation with its artifacts and script in place
        service_account: Service account the pod runs as
        namespace: Namespace the job is created in

    Returns:
        V1Job ready to be created
    """
    spec = operation.spec

    mounts = [
        client.V1VolumeMount(
            name="entrypoint",
            mount_path=ENTRYPOINT_PATH,
            sub_path=ENTRYPOINT_KEY,
            read_only=True,
        ),
        client.V1VolumeMount(name="hosts-conf", mount_path=HOSTS_PATH, sub_path="hosts.yml"),
        client.V1VolumeMount(name="vars-conf", mount_path=VARS_PATH, sub_path="group_vars.yml"),
    ]
    volumes = [
        client.V1Volume(
            name="entrypoint",
            config_map=client.V1ConfigMapVolumeSource(
                name=spec.entrypoint_sh_ref.name,
                default_mode=ENTRYPOINT_MODE,
            ),
        ),
        client.V1Volume(
            name="hosts-conf",
            config_map=client.V1ConfigMapVolumeSource(name=spec.hosts_conf_ref.name),
        ),
        client.V1Volume(
            name="vars-conf",
            config_map=client.V1ConfigMapVolumeSource(name=spec.vars_conf_ref.name),
        ),
    ]

    if not ref_is_empty(spec.ssh_auth_ref):
        mounts.append(
            client.V1VolumeMount(
                name="ssh-auth",
                mount_path=PRIVATE_KEY_PATH,
                sub_path="ssh-privatekey",
                read_only=True,
            )
        )
        volumes.append(
            client.V1Volume(
                name="ssh-auth",
                secret=client.V1SecretVolumeSource(
                    secret_name=spec.ssh_auth_ref.name,
                    default_mode=PRIVATE_KEY_MODE,
                ),
            )
        )

    resources = None
    if spec.resources:
        resources = client.V1ResourceRequirements(
            limits=spec.resources.get("limits"),
            requests=spec.resources.get("requests"),
        )

    container = client.V1Container(
        name=CONTAINER_NAME,
        image=spec.image,
        command=[ENTRYPOINT_PATH],
        env=[client.V1EnvVar(name="CLUSTER_NAME", value=spec.cluster)],
        volume_mounts=mounts,
        resources=resources,
    )

    active_deadline = None
    if spec.active_deadline_seconds is not None and spec.active_deadline_seconds > 0:
        active_deadline = spec.active_deadline_seconds

    return client.V1Job(
        api_version="batch/v1",
        kind="Job",
        metadata=client.V1ObjectMeta(
            name=job_name(operation),
            namespace=namespace,
            owner_references=[v1_owner_reference(operation.owner_reference())],
        ),
        spec=client.V1JobSpec(
            backoff_limit=0,
            active_deadline_seconds=active_deadline,
            template=client.V1PodTemplateSpec(
                spec=client.V1PodSpec(
                    restart_policy="Never",
                    service_account_name=service_account,
                    containers=[container],
                    volumes=volumes,
                ),
            ),
        ),
    )


def job_status(job: client.V1Job) -> OperationStatus:
    """Fold the job's true conditions through ``CONDITION_PRIORITY``."""
    conditions = (job.status.conditions if job.status else None) or []
    true_types = {c.type for c in conditions if c.status == "True"}
    for condition_type, status in CONDITION_PRIORITY:
        if condition_type in true_types:
            return status
    return OperationStatus.RUNNING


class JobManager:
    """Creates and polls the job backing a ClusterOperation.

    Attributes:
        store: Resource store used for reads and writes
        namespace: Namespace jobs are created in
    """

    def __init__(self, store: ResourceStore, namespace: str | None = None) -> None:
        self.store = store
        self.namespace = namespace or current_namespace()

    def resolve_service_account(self) -> str:
        selector = get_settings().reconcile.service_account_selector
        accounts = self.store.list_service_accounts(self.namespace, selector)
        if not accounts:
            msg = f"{self.namespace} has no service account matching {selector}"
            raise TransientError(msg, details={"namespace": self.namespace, "selector": selector})
        return accounts[0].metadata.name

    def ensure_job(self, operation: ClusterOperation) -> bool:
        """Create the job if none is recorded and stamp the Running status.

        The status change is made on ``operation`` in memory; persisting it
        is left to the caller.

        Returns:
            True if the job reference was recorded, False if one already was.
        """
        if not ref_is_empty(operation.status.job_ref):
            return False

        name = job_name(operation)
        service_account = self.resolve_service_account()
        job = build_job(operation, service_account, self.namespace)
        try:
            job = self.store.create_job(job)
            log.info("job_created", operation=operation.name, job=name, namespace=self.namespace)
        except AlreadyExistsError:
            job = self.store.get_job(self.namespace, name)
            log.info("job_already_exists", operation=operation.name, job=name)

        operation.status.job_ref = ObjectRef(namespace=job.metadata.namespace, name=job.metadata.name)
        operation.status.start_time = now_utc()
        operation.status.status = OperationStatus.RUNNING
        operation.status.action = operation.spec.action
        return True

    def poll_job(self, operation: ClusterOperation) -> tuple[OperationStatus, datetime | None]:
        """Current status of the recorded job and its completion time.

        A job that no longer exists is reported as Failed.

        Raises:
            KubeOnKubeError: no job is recorded on the operation.
        """
        ref = operation.status.job_ref
        if ref_is_empty(ref):
            raise KubeOnKubeError(f"ClusterOperation {operation.name} has no job")

        try:
            job = self.store.get_job(ref.namespace, ref.name)
        except ResourceNotFoundError:
            log.error("job_not_found", operation=operation.name, job=ref.name)
            return OperationStatus.FAILED, None

        status = job_status(job)
        if status == OperationStatus.RUNNING:
            return status, None
        return status, job.status.completion_time


__all__ = [
    "CONDITION_PRIORITY",
    "CONTAINER_NAME",
    "JobManager",
    "build_job",
    "job_name",
    "job_status",
    "now_utc",
]
