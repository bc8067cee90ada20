"""
Controller process wiring: kube config, API clients, metrics, leader election.

Environment:
    KUBEDEBUG_WORKERS                    handler threads (kopf max_workers), default 2
    KUBEDEBUG_REQUEST_TIMEOUT_SECONDS    per API call, default 30
    KUBEDEBUG_RECONCILE_TIMEOUT_SECONDS  per reconcile, default 60
    METRICS_ENABLED / METRICS_PORT       Prometheus endpoint, default off / 8080
"""

import os

import kubernetes
from kubernetes import client

from ..core.profile import DebugProfile
from .leader_election import LeaderElector
from .logging_config import get_logger
from .metrics import start_metrics_server
from .reconciler import Reconciler
from .runtime import Controller
from .service import ServiceSynchronizer
from .workload import WorkloadAccessor


def load_kube_config() -> None:
    # Try in-cluster config first, fallback to kubeconfig for local development
    try:
        kubernetes.config.load_incluster_config()
    except kubernetes.config.ConfigException:
        kubernetes.config.load_kube_config()


def build_controller(profile: DebugProfile, observe_only: bool = False) -> Controller:
    request_timeout = float(os.getenv("KUBEDEBUG_REQUEST_TIMEOUT_SECONDS", "30"))
    reconcile_timeout = float(os.getenv("KUBEDEBUG_RECONCILE_TIMEOUT_SECONDS", "60"))
    workers = int(os.getenv("KUBEDEBUG_WORKERS", "2"))

    accessor = WorkloadAccessor.for_type(client.AppsV1Api(), profile.workload_type, request_timeout=request_timeout)
    services = ServiceSynchronizer(client.CoreV1Api(), profile, request_timeout=request_timeout)
    reconciler = Reconciler(accessor, services, profile, observe_only=observe_only, timeout=reconcile_timeout)
    elector = LeaderElector.from_env(namespace=profile.namespace)
    return Controller(reconciler, profile, leader_elector=elector, workers=workers, request_timeout=request_timeout)


def run_controller(profile: DebugProfile, observe_only: bool = False) -> None:
    """Start the controller and block until kopf exits on SIGINT or SIGTERM."""
    logger = get_logger(__name__)

    metrics_enabled = os.getenv("METRICS_ENABLED", "false").lower() == "true"
    metrics_port = int(os.getenv("METRICS_PORT", "8080"))
    start_metrics_server(enabled=metrics_enabled, port=metrics_port)

    load_kube_config()
    controller = build_controller(profile, observe_only=observe_only)

    logger.info(
        f"Starting {controller.kind.kind} controller",
        extra={
            "namespace": profile.namespace,
            "label_selector": profile.label_selector_string,
            "field_selector": profile.field_selector_string,
            "container": profile.container_name,
            "debug_port": profile.debug_port,
            "observe_only": observe_only,
            "workers": controller.workers,
            "metrics_enabled": metrics_enabled,
        },
    )
    controller.run()
