"""
kopf handler tests: workload causes, owned-Service events, lifecycle hooks.

Handlers are plain methods, so they are called directly with the keyword
arguments kopf would pass.
"""

from types import SimpleNamespace

import kopf
import pytest
from kubernetes import client

from kubedebug.controller.reconciler import Reconciler, ReconcileResult
from kubedebug.controller.retry import Backoff
from kubedebug.controller.runtime import CANCELLED_REQUEUE_SECONDS, Controller
from kubedebug.controller.service import ServiceSynchronizer
from kubedebug.controller.workload import ObjectKey, WorkloadAccessor
from kubedebug.core import ReconcileCancelled, WorkloadType
from kubedebug.tests.fakes import FakeAppsApi, FakeCoreApi, make_deployment, make_profile

KEY = ObjectKey(namespace="default", name="api")
SERVICE = "api-api-debug-31000-dlv"


class StubReconciler:
    def __init__(self, result=None, error=None):
        self.accessor = WorkloadAccessor.for_type(FakeAppsApi(), WorkloadType.DEPLOYMENT)
        self.result = result or ReconcileResult()
        self.error = error
        self.calls = []

    def reconcile(self, key, stop=None):
        self.calls.append(key)
        if self.error is not None:
            raise self.error
        return self.result


class StubLeader:
    def __init__(self, leader):
        self.leader = leader
        self.config = SimpleNamespace(retry_period_seconds=2, lease_name="kubedebug-test")
        self.namespace = "default"
        self.identity = "a"
        self.released = False

    def is_enabled(self):
        return True

    def is_leader(self):
        return self.leader

    def release(self):
        self.released = True


def _controller(reconciler=None, leader=None, profile=None):
    return Controller(reconciler or StubReconciler(), profile or make_profile(), leader_elector=leader, workers=1)


def _real_controller(apps, core):
    profile = make_profile()
    reconciler = Reconciler(
        WorkloadAccessor.for_type(apps, WorkloadType.DEPLOYMENT),
        ServiceSynchronizer(core, profile),
        profile,
        backoff=Backoff(steps=3, duration=0.001),
    )
    return Controller(reconciler, profile, leader_elector=StubLeader(True))


def _service_meta(service):
    return client.ApiClient().sanitize_for_serialization(service.metadata)


def _owned_meta(owner="api", kind="Deployment", controller=True):
    return {
        "name": SERVICE,
        "namespace": "default",
        "ownerReferences": [
            {"apiVersion": "apps/v1", "kind": kind, "name": owner, "uid": "uid-api", "controller": controller},
        ],
    }


def test_workload_handler_reconciles_the_key():
    reconciler = StubReconciler()

    _controller(reconciler).on_workload(name="api", namespace="default")

    assert reconciler.calls == [KEY]


def test_requeue_after_becomes_temporary_error():
    controller = _controller(StubReconciler(result=ReconcileResult(requeue_after=5.0)))

    with pytest.raises(kopf.TemporaryError) as exc:
        controller.on_workload(name="api", namespace="default")

    assert exc.value.delay == 5.0


def test_cancelled_reconcile_is_retried_later():
    controller = _controller(StubReconciler(error=ReconcileCancelled("deadline")))

    with pytest.raises(kopf.TemporaryError) as exc:
        controller.on_workload(name="api", namespace="default")

    assert exc.value.delay == CANCELLED_REQUEUE_SECONDS


def test_other_errors_are_left_to_kopf():
    controller = _controller(StubReconciler(error=RuntimeError("boom")))

    with pytest.raises(RuntimeError):
        controller.on_workload(name="api", namespace="default")


def test_follower_defers_instead_of_reconciling():
    reconciler = StubReconciler()
    controller = _controller(reconciler, leader=StubLeader(False))

    with pytest.raises(kopf.TemporaryError) as exc:
        controller.on_workload(name="api", namespace="default")

    assert exc.value.delay == 2
    assert reconciler.calls == []


def test_field_selector_matches_dotted_paths():
    controller = _controller(profile=make_profile(fieldSelector={"metadata.name": "api"}))

    assert controller.matches_fields({"metadata": {"name": "api", "namespace": "default"}})
    assert not controller.matches_fields({"metadata": {"name": "web"}})
    assert not controller.matches_fields({"spec": {}})


def test_owned_service_is_recognised_by_controller_reference_and_name():
    controller = _controller()

    assert controller.owns_service(name=SERVICE, meta=_owned_meta())
    assert not controller.owns_service(name=SERVICE, meta=_owned_meta(kind="StatefulSet"))
    assert not controller.owns_service(name=SERVICE, meta=_owned_meta(controller=False))
    assert not controller.owns_service(name=SERVICE, meta=_owned_meta(owner="web"))
    assert not controller.owns_service(name="unrelated", meta={})


def test_service_added_event_is_ignored():
    reconciler = StubReconciler()

    _controller(reconciler).on_service_event(
        event={"type": "ADDED"}, name=SERVICE, namespace="default", meta=_owned_meta()
    )
    _controller(reconciler).on_service_event(
        event={"type": None}, name=SERVICE, namespace="default", meta=_owned_meta()
    )

    assert reconciler.calls == []


def test_follower_ignores_service_events():
    reconciler = StubReconciler()

    _controller(reconciler, leader=StubLeader(False)).on_service_event(
        event={"type": "DELETED"}, name=SERVICE, namespace="default", meta=_owned_meta()
    )

    assert reconciler.calls == []


def test_deleted_service_is_recreated_for_its_owner():
    apps, core = FakeAppsApi(make_deployment()), FakeCoreApi()
    controller = _real_controller(apps, core)
    controller.on_workload(name="api", namespace="default")
    meta = _service_meta(core.get(SERVICE))

    core.delete(SERVICE)
    controller.on_service_event(event={"type": "DELETED"}, name=SERVICE, namespace="default", meta=meta)

    assert core.created == 2
    assert core.get(SERVICE).metadata.owner_references[0].uid == "uid-api"
    assert apps.replace_calls == 1


def test_edited_service_is_put_back():
    apps, core = FakeAppsApi(make_deployment()), FakeCoreApi()
    controller = _real_controller(apps, core)
    controller.on_workload(name="api", namespace="default")
    stored = core.store.objects[("default", SERVICE)]
    stored.spec.ports[0].node_port = 32000
    stored.metadata.resource_version = "7"

    controller.on_service_event(
        event={"type": "MODIFIED"}, name=SERVICE, namespace="default", meta=_service_meta(stored)
    )

    assert core.replaced == 1
    assert core.get(SERVICE).spec.ports[0].node_port == 31000


def test_startup_configures_kopf():
    settings = kopf.OperatorSettings()

    _controller().on_startup(settings=settings)

    assert settings.execution.max_workers == 1
    assert isinstance(settings.persistence.progress_storage, kopf.AnnotationsProgressStorage)
    assert isinstance(settings.persistence.diffbase_storage, kopf.AnnotationsDiffBaseStorage)


def test_cleanup_stops_and_releases_the_lease():
    leader = StubLeader(True)
    controller = _controller(leader=leader)

    controller.on_cleanup()

    assert controller.stop.is_set()
    assert leader.released


def test_register_uses_a_private_registry():
    registry = _controller(profile=make_profile(fieldSelector={"metadata.name": "api"})).register()

    assert isinstance(registry, kopf.OperatorRegistry)
    assert registry is not kopf.get_default_registry()
