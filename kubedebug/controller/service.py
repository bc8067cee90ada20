"""
Companion Service synchronization.

Every reconciled workload gets one NodePort Service that exposes the dlv port
and is controller-owned by the workload, so the cluster deletes it together
with the workload. The Service selector tracks the workload's current pod
template labels.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, Optional

from kubernetes import client
from kubernetes.client.rest import ApiException

from ..core.profile import DebugProfile
from .logging_config import get_logger
from .metrics import track_service_operation
from .workload import DEFAULT_REQUEST_TIMEOUT_SECONDS, WorkloadView

SERVICE_PORT_NAME = "dlv"
SERVICE_TYPE = "NodePort"


class OwnerReferenceStatus(str, Enum):
    ASSIGNED = "assigned"
    RETRY = "retry"
    FAILED = "failed"


@dataclass(frozen=True)
class OwnerReferenceResult:
    status: OwnerReferenceStatus
    reason: str = ""


@dataclass(frozen=True)
class ServiceSyncResult:
    name: str
    operation: str  # created, updated, unchanged, skipped
    owner_reference: OwnerReferenceResult

    @property
    def requeue(self) -> bool:
        return self.owner_reference.status != OwnerReferenceStatus.ASSIGNED


def service_name(workload_name: str, profile: DebugProfile) -> str:
    return f"{workload_name}-{profile.name}-{profile.debug_port}-dlv"


def _api_group(api_version: Optional[str]) -> str:
    if not api_version or "/" not in api_version:
        return ""
    return api_version.split("/", 1)[0]


def _same_object(a: client.V1OwnerReference, b: client.V1OwnerReference) -> bool:
    return (
        _api_group(a.api_version) == _api_group(b.api_version)
        and a.kind == b.kind
        and a.name == b.name
    )


def set_controller_reference(owner: WorkloadView, obj: Any) -> OwnerReferenceResult:
    """
    Make ``owner`` the controller of ``obj``.

    Returns:
        ASSIGNED when the reference is in place, RETRY when the owner cannot be
        referenced yet (no UID), FAILED when another object already controls
        ``obj``. The reason carries the cause for RETRY and FAILED.
    """
    if not owner.uid:
        return OwnerReferenceResult(
            OwnerReferenceStatus.RETRY,
            f"{owner.kind.kind} {owner.key} has no uid yet",
        )

    ref = owner.owner_reference()
    refs = list(obj.metadata.owner_references or [])
    for existing in refs:
        if existing.controller and not _same_object(existing, ref):
            return OwnerReferenceResult(
                OwnerReferenceStatus.FAILED,
                f"already controlled by {existing.kind} {existing.name}",
            )

    for i, existing in enumerate(refs):
        if _same_object(existing, ref):
            refs[i] = ref
            break
    else:
        refs.append(ref)

    obj.metadata.owner_references = refs
    return OwnerReferenceResult(OwnerReferenceStatus.ASSIGNED)


class ServiceSynchronizer:
    """Creates or updates the companion Service of a workload."""

    def __init__(
        self,
        core_api: client.CoreV1Api,
        profile: DebugProfile,
        request_timeout: float = DEFAULT_REQUEST_TIMEOUT_SECONDS,
    ) -> None:
        self.core_api = core_api
        self.profile = profile
        self.request_timeout = request_timeout

    def _read(self, name: str, namespace: str) -> Optional[client.V1Service]:
        try:
            return self.core_api.read_namespaced_service(
                name=name, namespace=namespace, _request_timeout=self.request_timeout
            )
        except ApiException as e:
            if e.status == 404:
                return None
            raise

    def _fill(self, service: client.V1Service, labels: Dict[str, str]) -> None:
        port = self.profile.debug_port
        service.metadata.labels = dict(labels) if labels else None

        spec = service.spec or client.V1ServiceSpec()
        spec.type = SERVICE_TYPE
        spec.ports = [
            client.V1ServicePort(
                name=SERVICE_PORT_NAME,
                protocol="TCP",
                port=port,
                target_port=port,
                node_port=port,
            )
        ]
        spec.selector = dict(labels) if labels else None
        service.spec = spec

    def upsert(self, owner: WorkloadView, selector_labels: Dict[str, str], logger=None) -> ServiceSyncResult:
        """
        Create the Service if absent, otherwise bring the live object in line.

        The live object is only written back when something differs, so repeated
        calls with the same inputs leave the cluster untouched.

        When the workload cannot be made the Service's controller (no UID yet,
        or another object controls it) nothing is written and the result asks
        for a requeue.

        Raises:
            ApiException: Any read or write failure
        """
        logger = logger or get_logger(__name__, trace_id=str(owner.key))
        name = service_name(owner.name, self.profile)
        namespace = owner.namespace

        existing = self._read(name, namespace)
        service = existing or client.V1Service(
            api_version="v1",
            kind="Service",
            metadata=client.V1ObjectMeta(name=name, namespace=namespace),
        )
        before = existing.to_dict() if existing is not None else None

        ref = set_controller_reference(owner, service)
        if ref.status != OwnerReferenceStatus.ASSIGNED:
            logger.warning(
                f"Cannot own Service {namespace}/{name}: {ref.reason}",
                extra={"owner_reference": ref.status.value},
            )
            track_service_operation("skipped")
            return ServiceSyncResult(name=name, operation="skipped", owner_reference=ref)

        self._fill(service, selector_labels)

        if existing is None:
            self.core_api.create_namespaced_service(
                namespace=namespace, body=service, _request_timeout=self.request_timeout
            )
            operation = "created"
        elif service.to_dict() == before:
            operation = "unchanged"
        else:
            self.core_api.replace_namespaced_service(
                name=name, namespace=namespace, body=service, _request_timeout=self.request_timeout
            )
            operation = "updated"

        track_service_operation(operation)
        if operation == "unchanged":
            logger.debug(f"Service {namespace}/{name} already up to date")
        else:
            logger.info(f"Service {namespace}/{name} {operation} (nodePort={self.profile.debug_port})")
        return ServiceSyncResult(name=name, operation=operation, owner_reference=ref)
