"""kube-on-kube observability package.

Logging and metrics for the operator.
"""

from kubeonkube.observability._logging import configure_logging, get_logger

__all__ = ["configure_logging", "get_logger"]
