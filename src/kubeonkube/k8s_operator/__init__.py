"""kube-on-kube Operator package.

The kopf operator that drives the Cluster and ClusterOperation reconcile
loops.
"""

from importlib import import_module
from types import ModuleType


def __getattr__(name: str) -> ModuleType:
    """Lazy-load the handler modules so importing the package registers nothing."""
    if name == "handlers":
        return import_module("kubeonkube.k8s_operator.handlers")
    raise AttributeError(f"module {__name__!r} has no attribute {name!r}")


__all__ = ["handlers"]
