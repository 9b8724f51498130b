"""kube-on-kube Operator Handlers.

Kopf timers for the two custom resources:
- operation.py: one ClusterOperation state machine step per tick
- cluster.py: retention, status projection and artifact adoption per tick

All handlers are registered when this module is imported; main.py imports
it before calling kopf.run().
"""

from kubeonkube.k8s_operator.handlers import cluster, operation


__all__ = ["cluster", "operation"]
