"""kube-on-kube reconcile logic.

- digest.py: content fingerprint of a ClusterOperation
- entrypoint.py: entrypoint script synthesis
- validation.py: admission checks
- operation.py: ClusterOperation state machine
- retention.py: history trimming per Cluster
- status.py: Cluster condition projection
- cluster.py: Cluster reconcile loop
"""
