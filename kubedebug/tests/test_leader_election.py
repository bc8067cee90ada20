"""
Leader election behavior tests.
"""

from __future__ import annotations

import threading
from datetime import timedelta

from kubedebug.controller.leader_election import LeaderElectionConfig, LeaderElector, _now
from kubedebug.tests.fakes import FakeCoordinationApi


def _config(enabled=True):
    return LeaderElectionConfig(
        enabled=enabled,
        lease_name="kubedebug-test",
        lease_duration_seconds=15,
        renew_deadline_seconds=10,
        retry_period_seconds=2,
    )


def _elector(api, identity, enabled=True):
    return LeaderElector(namespace="default", identity=identity, config=_config(enabled), api=api)


def test_disabled_election_always_leads():
    elector = _elector(FakeCoordinationApi(), "a", enabled=False)
    assert elector.is_leader()
    assert elector.ensure_leader()


def test_first_candidate_creates_lease():
    api = FakeCoordinationApi()

    assert _elector(api, "a").ensure_leader()
    assert api.lease("kubedebug-test").spec.holder_identity == "a"


def test_second_candidate_stays_follower_while_lease_is_fresh():
    api = FakeCoordinationApi()
    leader, follower = _elector(api, "a"), _elector(api, "b")

    assert leader.ensure_leader()
    assert not follower.ensure_leader()
    assert leader.ensure_leader()
    assert api.lease("kubedebug-test").spec.holder_identity == "a"


def test_expired_lease_is_taken_over():
    api = FakeCoordinationApi()
    assert _elector(api, "a").ensure_leader()
    api.lease("kubedebug-test").spec.renew_time = _now() - timedelta(seconds=60)

    assert _elector(api, "b").ensure_leader()
    assert api.lease("kubedebug-test").spec.holder_identity == "b"


def test_release_hands_over_without_waiting_for_expiry():
    api = FakeCoordinationApi()
    leader, follower = _elector(api, "a"), _elector(api, "b")
    assert leader.ensure_leader()

    leader.release()

    assert not leader.is_leader()
    assert api.lease("kubedebug-test").spec.holder_identity is None
    assert follower.ensure_leader()


def test_renew_survives_one_conflict():
    api = FakeCoordinationApi()
    elector = _elector(api, "a")
    assert elector.ensure_leader()

    api.conflicts = 1
    assert elector.ensure_leader()



def test_takeover_conflict_rechecks_the_holder():
    api = FakeCoordinationApi()
    assert _elector(api, "b").ensure_leader()
    api.lease("kubedebug-test").spec.renew_time = _now() - timedelta(seconds=60)

    def renewed_by_holder():
        lease = api.lease("kubedebug-test")
        lease.spec.renew_time = _now()
        lease.metadata.resource_version = str(int(lease.metadata.resource_version) + 1)

    api.conflicts = 1
    api.on_conflict = renewed_by_holder
    elector = _elector(api, "a")

    assert not elector.ensure_leader()
    assert not elector.is_leader()
    assert api.lease("kubedebug-test").spec.holder_identity == "b"


def test_takeover_retries_when_the_lease_stays_free():
    api = FakeCoordinationApi()
    assert _elector(api, "b").ensure_leader()
    api.lease("kubedebug-test").spec.renew_time = _now() - timedelta(seconds=60)
    api.conflicts = 1

    assert _elector(api, "a").ensure_leader()
    assert api.lease("kubedebug-test").spec.holder_identity == "a"


def test_is_leader_reads_the_cached_result_within_a_retry_period():
    api = FakeCoordinationApi()
    elector = _elector(api, "a")
    assert elector.ensure_leader()
    api.lease("kubedebug-test").spec.holder_identity = "b"

    assert elector.is_leader()


def test_concurrent_callers_share_one_elector():
    api = FakeCoordinationApi()
    elector = _elector(api, "a")
    assert elector.ensure_leader()
    results = []

    threads = [threading.Thread(target=lambda: results.append(elector.ensure_leader())) for _ in range(8)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join(timeout=10)

    assert results == [True] * 8
    assert api.lease("kubedebug-test").metadata.resource_version == "9"

def test_identity_from_env(monkeypatch):
    monkeypatch.delenv("KUBEDEBUG_LEADER_ID", raising=False)
    monkeypatch.setenv("POD_NAME", "kubedebug-7d9f")
    monkeypatch.setenv("KUBEDEBUG_LEADER_ELECTION_ENABLED", "0")

    elector = LeaderElector.from_env(namespace="default")

    assert elector.identity == "kubedebug-7d9f"
    assert not elector.is_enabled()
