"""
Reconciliation controller that relaunches a workload container under dlv.

Components:
- WorkloadAccessor / WorkloadView: Deployment and StatefulSet access
- apply_debug_template: pure pod template mutation
- retry_on_conflict: optimistic-concurrency retry
- ServiceSynchronizer: owned NodePort companion Service
- Reconciler: fetch, observe, mutate, sync Service
- Controller: kopf handlers, owned-Service watch, leader gating
"""

from .workload import ObjectKey, WorkloadAccessor, WorkloadView, WORKLOAD_KINDS
from .mutator import apply_debug_template, debug_agent_args, debug_agent_command
from .retry import Backoff, DEFAULT_BACKOFF, retry_on_conflict
from .service import ServiceSynchronizer, service_name
from .reconciler import Reconciler, ReconcileResult
from .runtime import Controller

__all__ = [
    "ObjectKey",
    "WorkloadAccessor",
    "WorkloadView",
    "WORKLOAD_KINDS",
    "apply_debug_template",
    "debug_agent_args",
    "debug_agent_command",
    "Backoff",
    "DEFAULT_BACKOFF",
    "retry_on_conflict",
    "ServiceSynchronizer",
    "service_name",
    "Reconciler",
    "ReconcileResult",
    "Controller",
]
