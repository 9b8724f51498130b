"""kube-on-kube Kubernetes package.

Kubernetes API access, artifact backups and job lifecycle.
"""

from kubeonkube.kubernetes.backup import ArtifactBackup
from kubeonkube.kubernetes.jobs import JobManager, build_job, job_name, job_status
from kubeonkube.kubernetes.store import ResourceStore, get_store, load_kube_config


__all__ = [
    "ArtifactBackup",
    "JobManager",
    "ResourceStore",
    "build_job",
    "get_store",
    "job_name",
    "job_status",
    "load_kube_config",
]
