"""
kopf binding for the reconciler.

Controller registers one handler set per profile into its own kopf registry:

- create/update/resume on the profile's workload kind, filtered by the label
  selector (server side) and the field selector (``when=`` callback), run
  Reconciler.reconcile for the object key.
- event on Services the workload owns: a MODIFIED or DELETED Service
  reconciles its owner again, so a removed or edited Service is put back.
- startup configures kopf (annotation storage, worker count, request timeout)
  and starts the leader loop; cleanup stops it and releases the lease.

A reconcile that asks to be requeued, a follower replica, and a cancelled
reconcile all surface as kopf.TemporaryError so kopf retries the handler
after the given delay. Any other exception is left to kopf's own backoff.
"""

import threading
from typing import Any, Dict, Mapping, Optional

import kopf

from ..core.errors import ReconcileCancelled
from ..core.profile import DebugProfile
from .leader_election import LeaderElector
from .logging_config import get_logger
from .metrics import set_leader_status, track_reconcile
from .reconciler import Reconciler, ReconcileResult
from .service import service_name
from .workload import DEFAULT_REQUEST_TIMEOUT_SECONDS, ObjectKey, WorkloadKind

ANNOTATION_PREFIX = "kubedebug.dev"
HANDLER_ID = "debug-template"
STANDBY_REQUEUE_SECONDS = 5.0
CANCELLED_REQUEUE_SECONDS = 10.0


class Controller:
    def __init__(
        self,
        reconciler: Reconciler,
        profile: DebugProfile,
        leader_elector: Optional[LeaderElector] = None,
        workers: int = 2,
        request_timeout: float = DEFAULT_REQUEST_TIMEOUT_SECONDS,
    ) -> None:
        if workers < 1:
            raise ValueError("workers must be >= 1")
        self.reconciler = reconciler
        self.profile = profile
        self.leader_elector = leader_elector
        self.workers = workers
        self.request_timeout = request_timeout
        self.stop = threading.Event()
        self.logger = get_logger(__name__, trace_id=self.kind.kind)
        self._key_locks: Dict[ObjectKey, threading.Lock] = {}
        self._key_locks_guard = threading.Lock()

    @property
    def kind(self) -> WorkloadKind:
        return self.reconciler.accessor.kind

    # ----- filters -----

    def matches_fields(self, body: Mapping[str, Any], **_: Any) -> bool:
        """Match the profile field selector (dotted paths such as ``metadata.name``) against a raw object."""
        for path, expected in self.profile.field_selector.items():
            value: Any = body
            for part in path.split("."):
                value = value.get(part) if isinstance(value, Mapping) else None
            if value is None or str(value) != expected:
                return False
        return True

    def owner_of(self, name: str, meta: Mapping[str, Any]) -> Optional[str]:
        """Name of the workload controlling Service ``name``, if it is one of ours."""
        for ref in meta.get("ownerReferences") or []:
            if not ref.get("controller"):
                continue
            if ref.get("kind") != self.kind.kind or ref.get("apiVersion") != self.kind.api_version:
                continue
            owner = ref.get("name")
            if owner and name == service_name(owner, self.profile):
                return owner
        return None

    def owns_service(self, name: str, meta: Mapping[str, Any], **_: Any) -> bool:
        return self.owner_of(name, meta) is not None

    # ----- reconcile -----

    def _lock_for(self, key: ObjectKey) -> threading.Lock:
        with self._key_locks_guard:
            return self._key_locks.setdefault(key, threading.Lock())

    def reconcile_key(self, key: ObjectKey) -> ReconcileResult:
        """Reconcile one key; the workload and Service handlers never run the same key concurrently."""
        with self._lock_for(key):
            return self.reconciler.reconcile(key, stop=self.stop)

    def _require_leader(self) -> bool:
        if self.leader_elector is None or not self.leader_elector.is_enabled():
            return True
        return self.leader_elector.is_leader()

    def _standby_delay(self) -> float:
        if self.leader_elector is None:
            return STANDBY_REQUEUE_SECONDS
        return float(self.leader_elector.config.retry_period_seconds)

    def on_workload(self, name: str, namespace: str, **_: Any) -> None:
        key = ObjectKey(namespace=namespace, name=name)
        if not self._require_leader():
            self.logger.info(f"Standby: not leader, deferring {key}")
            track_reconcile(self.kind.kind, "skipped")
            raise kopf.TemporaryError("standby: not leader", delay=self._standby_delay())

        try:
            result = self.reconcile_key(key)
        except ReconcileCancelled as e:
            raise kopf.TemporaryError(f"reconcile of {key} cancelled: {e}", delay=CANCELLED_REQUEUE_SECONDS)
        if result.requeue_after:
            raise kopf.TemporaryError(f"requeue {key}", delay=result.requeue_after)

    def on_service_event(self, event: Mapping[str, Any], name: str, namespace: str, meta: Mapping[str, Any], **_: Any) -> None:
        event_type = event.get("type")
        if event_type not in ("MODIFIED", "DELETED"):
            return
        owner = self.owner_of(name, meta)
        if owner is None or not self._require_leader():
            return

        key = ObjectKey(namespace=namespace, name=owner)
        self.logger.info(f"Service {namespace}/{name} {event_type.lower()}, reconciling {self.kind.kind} {key}")
        try:
            result = self.reconcile_key(key)
        except ReconcileCancelled as e:
            self.logger.info(f"Reconcile of {key} cancelled: {e}")
            return
        if result.requeue_after:
            self.logger.warning(f"Service of {key} could not be owned by its workload yet")

    # ----- lifecycle -----

    def _leader_loop(self) -> None:
        elector = self.leader_elector
        was_leader = False
        while not self.stop.is_set():
            try:
                is_leader = elector.ensure_leader()
            except Exception as e:
                self.logger.error(f"Leader election error: {e}")
                is_leader = False
            set_leader_status(is_leader)
            if is_leader != was_leader:
                self.logger.info(f"Leader status: {'LEADER' if is_leader else 'FOLLOWER'} ({elector.identity})")
                was_leader = is_leader
            self.stop.wait(elector.config.retry_period_seconds)

    def on_startup(self, settings: kopf.OperatorSettings, **_: Any) -> None:
        settings.persistence.progress_storage = kopf.AnnotationsProgressStorage(prefix=ANNOTATION_PREFIX)
        settings.persistence.diffbase_storage = kopf.AnnotationsDiffBaseStorage(
            prefix=ANNOTATION_PREFIX,
            key="last-handled-configuration",
        )
        settings.execution.max_workers = self.workers
        settings.networking.request_timeout = self.request_timeout

        if self.leader_elector is not None and self.leader_elector.is_enabled():
            thread = threading.Thread(target=self._leader_loop, daemon=True, name="LeaderElection")
            thread.start()
            self.logger.info(
                "Leader election loop started",
                extra={
                    "lease_name": self.leader_elector.config.lease_name,
                    "namespace": self.leader_elector.namespace,
                },
            )

        self.logger.info(
            "Controller startup complete",
            extra={"workers": self.workers, "namespace": self.profile.namespace},
        )

    def on_cleanup(self, **_: Any) -> None:
        self.stop.set()
        if self.leader_elector is not None:
            self.leader_elector.release()
        self.logger.info("Controller stopped")

    def on_login(self, **kwargs: Any) -> Optional[kopf.ConnectionInfo]:
        return kopf.login_via_client(**kwargs)

    def register(self, registry: Optional[kopf.OperatorRegistry] = None) -> kopf.OperatorRegistry:
        """Register every handler of this controller into ``registry`` (a fresh one by default)."""
        if registry is None:
            registry = kopf.OperatorRegistry()
        kind = self.kind

        kopf.on.login(registry=registry)(self.on_login)
        kopf.on.startup(registry=registry)(self.on_startup)
        kopf.on.cleanup(registry=registry)(self.on_cleanup)

        # Same function object and id for every cause; kopf calls it once per change
        handler = self.on_workload
        filters = {
            "registry": registry,
            "id": HANDLER_ID,
            "labels": dict(self.profile.label_selector) or None,
            "when": self.matches_fields if self.profile.field_selector else None,
        }
        kopf.on.create(kind.group, kind.version, kind.plural, **filters)(handler)
        kopf.on.update(kind.group, kind.version, kind.plural, **filters)(handler)
        kopf.on.resume(kind.group, kind.version, kind.plural, **filters)(handler)

        kopf.on.event("", "v1", "services", registry=registry, when=self.owns_service)(self.on_service_event)
        return registry

    def run(self, stop_flag: Optional[threading.Event] = None) -> None:
        """Run kopf in the calling thread until SIGINT/SIGTERM or ``stop_flag``."""
        kopf.run(
            registry=self.register(),
            standalone=True,
            namespaces=[self.profile.namespace],
            stop_flag=stop_flag,
        )
