"""
Workload access.

Deployments and StatefulSets are structurally the same for this controller:
both carry a pod template, replica status counts, and can own other objects.
WorkloadAccessor reads and writes either kind through AppsV1Api, and
WorkloadView gives the reconciler one shape for both.
"""

from dataclasses import dataclass
from typing import Any, Callable, Dict, List

from kubernetes import client

from ..core.profile import WorkloadType

# Seconds allowed for each API call
DEFAULT_REQUEST_TIMEOUT_SECONDS = 30.0


@dataclass(frozen=True)
class ObjectKey:
    namespace: str
    name: str

    def __str__(self) -> str:
        return f"{self.namespace}/{self.name}"


@dataclass(frozen=True)
class WorkloadKind:
    workload_type: WorkloadType
    kind: str
    api_version: str
    plural: str
    resource: str  # AppsV1Api method suffix, e.g. read_namespaced_<resource>

    @property
    def group(self) -> str:
        return self.api_version.split("/", 1)[0]

    @property
    def version(self) -> str:
        return self.api_version.split("/", 1)[1]


WORKLOAD_KINDS: Dict[WorkloadType, WorkloadKind] = {
    WorkloadType.DEPLOYMENT: WorkloadKind(
        workload_type=WorkloadType.DEPLOYMENT,
        kind="Deployment",
        api_version="apps/v1",
        plural="deployments",
        resource="deployment",
    ),
    WorkloadType.STATEFULSET: WorkloadKind(
        workload_type=WorkloadType.STATEFULSET,
        kind="StatefulSet",
        api_version="apps/v1",
        plural="statefulsets",
        resource="stateful_set",
    ),
}


class WorkloadView:
    """Read view over a V1Deployment or V1StatefulSet."""

    def __init__(self, obj: Any, kind: WorkloadKind) -> None:
        self.obj = obj
        self.kind = kind

    @property
    def name(self) -> str:
        return self.obj.metadata.name

    @property
    def namespace(self) -> str:
        return self.obj.metadata.namespace

    @property
    def uid(self) -> str:
        return self.obj.metadata.uid

    @property
    def key(self) -> ObjectKey:
        return ObjectKey(namespace=self.namespace, name=self.name)

    @property
    def template(self) -> client.V1PodTemplateSpec:
        return self.obj.spec.template

    @template.setter
    def template(self, template: client.V1PodTemplateSpec) -> None:
        self.obj.spec.template = template

    @property
    def template_labels(self) -> Dict[str, str]:
        metadata = self.template.metadata
        if metadata is None or not metadata.labels:
            return {}
        return dict(metadata.labels)

    def _status_count(self, field: str) -> int:
        status = self.obj.status
        if status is None:
            return 0
        return getattr(status, field, None) or 0

    @property
    def replicas(self) -> int:
        return self._status_count("replicas")

    @property
    def ready_replicas(self) -> int:
        return self._status_count("ready_replicas")

    @property
    def available_replicas(self) -> int:
        return self._status_count("available_replicas")

    def container_summary(self) -> List[Dict[str, str]]:
        spec = self.template.spec
        containers = (spec.containers if spec else None) or []
        return [{"name": c.name, "image": c.image} for c in containers]

    def owner_reference(self) -> client.V1OwnerReference:
        return client.V1OwnerReference(
            api_version=self.kind.api_version,
            kind=self.kind.kind,
            name=self.name,
            uid=self.uid,
            controller=True,
            block_owner_deletion=True,
        )


class WorkloadAccessor:
    """Reads and replaces one workload kind through AppsV1Api."""

    def __init__(
        self,
        apps_api: client.AppsV1Api,
        kind: WorkloadKind,
        request_timeout: float = DEFAULT_REQUEST_TIMEOUT_SECONDS,
    ) -> None:
        self.apps_api = apps_api
        self.kind = kind
        self.request_timeout = request_timeout

    @classmethod
    def for_type(
        cls,
        apps_api: client.AppsV1Api,
        workload_type: WorkloadType,
        request_timeout: float = DEFAULT_REQUEST_TIMEOUT_SECONDS,
    ) -> "WorkloadAccessor":
        return cls(apps_api, WORKLOAD_KINDS[WorkloadType(workload_type)], request_timeout=request_timeout)

    def _method(self, verb: str) -> Callable[..., Any]:
        return getattr(self.apps_api, f"{verb}_namespaced_{self.kind.resource}")

    def wrap(self, obj: Any) -> WorkloadView:
        return WorkloadView(obj, self.kind)

    def get(self, key: ObjectKey) -> WorkloadView:
        """
        Read the workload.

        Raises:
            ApiException: 404 when the object does not exist, or any other API failure
        """
        obj = self._method("read")(
            name=key.name, namespace=key.namespace, _request_timeout=self.request_timeout
        )
        return self.wrap(obj)

    def replace(self, view: WorkloadView) -> WorkloadView:
        """
        Write the workload back. The body carries the resourceVersion it was
        read at, so a concurrent change makes the server answer 409.
        """
        obj = self._method("replace")(
            name=view.name,
            namespace=view.namespace,
            body=view.obj,
            _request_timeout=self.request_timeout,
        )
        return self.wrap(obj)
