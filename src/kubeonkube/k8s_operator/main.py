"""kube-on-kube Kubernetes Operator.

Main entry point for the operator that drives Cluster and ClusterOperation
resources using the Kopf framework.

This operator provides:
- One ClusterOperation state machine step per timer tick
- Retention of ClusterOperation history per Cluster
- Projection of operation statuses onto the Cluster
- Ownership of the Cluster's configuration artifacts

Usage:
    # Run in development mode (verbose)
    python -m kubeonkube.k8s_operator.main --dev --verbose

    # Run with peering for multi-instance deployment
    python -m kubeonkube.k8s_operator.main --peering=kubeonkube-operator
"""

import argparse
import logging
import sys
from typing import NoReturn

import kopf

# Import handlers to register their decorators
# This must happen before kopf.run() is called
from kubeonkube.k8s_operator import handlers  # noqa: F401
from kubeonkube.config.settings import current_namespace, get_settings
from kubeonkube.observability._logging import configure_logging, get_logger
from kubeonkube.observability._metrics import start_metrics_server
from kubeonkube.version import __version__


configure_logging()
logger = get_logger(__name__)


def main(
    peering_name: str | None = None,
    liveness_port: int | None = None,
    priority: int = 0,
    dev_mode: bool = False,
) -> NoReturn:
    """Main entry point for the kube-on-kube operator.

    Runs the kopf operator cluster-wide with every registered handler and
    blocks until it is stopped.

    Args:
        peering_name: Name for operator peering. If None, uses settings;
            the operator runs standalone when neither is set.
        liveness_port: Port for liveness probes. If None, uses settings.
        priority: Operator priority for peering (higher = more preferred).
        dev_mode: If True, runs in development mode (pauses other operators).

    Raises:
        SystemExit: Never returns normally, exits with code 0 on success
    """
    settings = get_settings()
    peering_name = peering_name or settings.kubernetes.peering_name
    liveness_port = liveness_port or settings.observability.liveness_port

    logger.info(
        "operator_starting",
        version=settings.version,
        namespace=current_namespace(),
        peering=peering_name or "standalone",
        liveness_port=liveness_port,
        dev_mode=dev_mode,
        debug=settings.debug,
    )
    logger.info(
        "operator_configuration",
        operation_requeue_seconds=settings.reconcile.operation_requeue_seconds,
        cluster_requeue_seconds=settings.reconcile.cluster_requeue_seconds,
        config_map=settings.reconcile.config_map_name,
        metrics_enabled=settings.observability.metrics_enabled,
    )

    start_metrics_server()

    # Same priority kopf's own --dev flag uses to pause other operators
    if dev_mode:
        priority = 666

    kopf_settings = kopf.OperatorSettings()
    kopf_settings.posting.level = logging.DEBUG if settings.debug else logging.INFO
    kopf_settings.watching.server_timeout = settings.kubernetes.api_timeout
    kopf_settings.watching.client_timeout = settings.kubernetes.api_timeout + 10

    try:
        kopf.run(
            settings=kopf_settings,
            standalone=peering_name is None,
            clusterwide=True,
            liveness_endpoint=f"http://0.0.0.0:{liveness_port}/healthz",
            priority=priority,
            peering_name=peering_name,
        )

    except KeyboardInterrupt:
        logger.info("operator_stopped")
        sys.exit(0)

    except Exception as error:
        logger.exception(
            "operator_crashed",
            error=str(error),
            error_type=type(error).__name__,
        )
        raise

    sys.exit(0)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="kubeonkube-operator",
        description="kube-on-kube Kubernetes Operator - cluster lifecycle operations",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # Run cluster-wide
  kubeonkube-operator

  # Run in development mode (verbose)
  kubeonkube-operator --dev --verbose

  # Run with peering for multi-instance
  kubeonkube-operator --peering kubeonkube-operator --priority 100

Environment Variables:
  KOK_K8S_NAMESPACE                 - Operator namespace override
  KOK_K8S_PEERING_NAME              - Peering name for multi-instance
  KOK_OBSERVABILITY_LIVENESS_PORT   - Port for the liveness endpoint
  KOK_DEBUG                         - Enable debug logging
        """,
    )

    parser.add_argument(
        "--version",
        action="version",
        version=f"%(prog)s {__version__}",
    )

    parser.add_argument(
        "--peering",
        type=str,
        default=None,
        help="Peering name for multi-instance coordination",
    )

    parser.add_argument(
        "--priority",
        type=int,
        default=0,
        help="Operator priority for peering (higher = preferred)",
    )

    parser.add_argument(
        "--liveness-port",
        type=int,
        default=None,
        help="Port for liveness probes",
    )

    parser.add_argument(
        "--dev",
        action="store_true",
        help="Run in development mode (pauses other operators)",
    )

    parser.add_argument(
        "--verbose",
        "-v",
        action="store_true",
        help="Enable verbose logging",
    )
    return parser


def cli() -> NoReturn:
    """CLI entry point for the kubeonkube-operator command."""
    args = build_parser().parse_args()

    if args.verbose:
        configure_logging(level="DEBUG")

    main(
        peering_name=args.peering,
        liveness_port=args.liveness_port,
        priority=args.priority,
        dev_mode=args.dev,
    )


if __name__ == "__main__":
    cli()
