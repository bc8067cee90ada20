"""
Workload reconciler.

One Reconciler serves one workload kind. Each call runs the full cycle for a
single object key:

    fetch -> observe -> (observe-only gate) -> mutate with conflict retry -> sync Service

The runtime guarantees at most one reconcile in flight per key; different keys
run in parallel on different workers.
"""

import threading
import time
from dataclasses import dataclass
from typing import Optional

from kubernetes.client.rest import ApiException

from ..core.profile import DebugProfile
from .logging_config import get_logger
from .metrics import track_reconcile, track_reconcile_duration
from .mutator import apply_debug_template, find_container_index
from .retry import DEFAULT_BACKOFF, Backoff, retry_on_conflict
from .service import ServiceSynchronizer
from .workload import ObjectKey, WorkloadAccessor, WorkloadView

# Delay before retrying a Service whose owner could not be referenced
OWNER_REFERENCE_REQUEUE_SECONDS = 5.0

# Budget for one reconcile; conflict retries are not started past it
DEFAULT_RECONCILE_TIMEOUT_SECONDS = 60.0


@dataclass(frozen=True)
class ReconcileResult:
    requeue_after: Optional[float] = None


@dataclass(frozen=True)
class TemplateWriteResult:
    changed: bool
    container_found: bool


class Reconciler:
    def __init__(
        self,
        accessor: WorkloadAccessor,
        services: ServiceSynchronizer,
        profile: DebugProfile,
        observe_only: bool = False,
        backoff: Backoff = DEFAULT_BACKOFF,
        timeout: float = DEFAULT_RECONCILE_TIMEOUT_SECONDS,
    ) -> None:
        self.accessor = accessor
        self.services = services
        self.profile = profile
        self.observe_only = observe_only
        self.backoff = backoff
        self.timeout = timeout

    @property
    def kind(self) -> str:
        return self.accessor.kind.kind

    def reconcile(self, key: ObjectKey, stop: Optional[threading.Event] = None) -> ReconcileResult:
        """
        Converge one workload to its debug shape.

        Returns:
            ReconcileResult; requeue_after is set when the Service could not be
            owned by the workload and should be retried later

        Raises:
            ApiException: Fetch, write or Service failures other than not-found
            ConflictRetryExhausted: The template write kept conflicting
            ReconcileCancelled: ``stop`` was set, or the reconcile timeout passed, while retrying
        """
        logger = get_logger(__name__, trace_id=str(key))
        with track_reconcile_duration(self.kind):
            try:
                result = self._reconcile(key, stop, time.monotonic() + self.timeout, logger)
            except Exception:
                track_reconcile(self.kind, "error")
                raise
        track_reconcile(self.kind, "requeue" if result.requeue_after else "success")
        return result

    def _reconcile(
        self, key: ObjectKey, stop: Optional[threading.Event], deadline: float, logger
    ) -> ReconcileResult:
        try:
            view = self.accessor.get(key)
        except ApiException as e:
            if e.status == 404:
                logger.debug(f"{self.kind} {key} not found, nothing to do")
                return ReconcileResult()
            raise

        self._observe(view, logger)

        if self.observe_only:
            return ReconcileResult()

        write = retry_on_conflict(
            lambda: self._write_template(key),
            backoff=self.backoff,
            stop=stop,
            deadline=deadline,
        )
        if not write.container_found:
            logger.warning(
                f"Container {self.profile.container_name!r} not found in {self.kind} {key}, "
                "leaving pod template unchanged"
            )
        elif write.changed:
            logger.info(f"Patched pod template of {self.kind} {key} for debugging")

        service = self.services.upsert(view, view.template_labels, logger=logger)
        if service.requeue:
            return ReconcileResult(requeue_after=OWNER_REFERENCE_REQUEUE_SECONDS)
        return ReconcileResult()

    def _observe(self, view: WorkloadView, logger) -> None:
        logger.info(
            f"Reconcile {self.kind} {view.key}",
            extra={
                "replicas": view.replicas,
                "ready": view.ready_replicas,
                "available": view.available_replicas,
                "labels": view.template_labels,
                "containers": view.container_summary(),
            },
        )

    def _write_template(self, key: ObjectKey) -> TemplateWriteResult:
        # Re-read on every attempt so a retry never writes a stale resourceVersion
        view = self.accessor.get(key)
        if find_container_index(view.template, self.profile.container_name) == -1:
            return TemplateWriteResult(changed=False, container_found=False)

        patched = apply_debug_template(view.template, self.profile)
        if patched == view.template:
            return TemplateWriteResult(changed=False, container_found=True)

        view.template = patched
        self.accessor.replace(view)
        return TemplateWriteResult(changed=True, container_found=True)
