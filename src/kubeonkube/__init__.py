"""kube-on-kube - Kubernetes cluster lifecycle operator.

Drives ClusterOperation resources through a reconcile state machine that
seals, backs up, scripts and runs a kubespray job against a managed Cluster,
and trims each Cluster's operation history under a retention limit.
"""

from kubeonkube.version import __version__


__all__ = ["__version__"]
