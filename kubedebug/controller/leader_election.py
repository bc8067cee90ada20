"""
Lease-based leader election for controller replicas.

The lease lives in the profile namespace. The holder reconciles; the other
replicas keep their kopf watches open and defer handlers until they win the
lease. One elector instance is shared by the renew loop and every handler
thread, so all lease state is read and written under a single lock.

Environment:
    KUBEDEBUG_LEADER_ELECTION_ENABLED   "1" (default) or "0"
    KUBEDEBUG_LEASE_NAME                default "kubedebug-controller-leader"
    KUBEDEBUG_LEASE_DURATION_SECONDS    default 15
    KUBEDEBUG_RENEW_DEADLINE_SECONDS    default 10
    KUBEDEBUG_RETRY_PERIOD_SECONDS      default 2
    KUBEDEBUG_LEADER_ID                 falls back to POD_NAME, then HOSTNAME
"""

import os
import random
import threading
import time
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Optional

from kubernetes import client
from kubernetes.client.rest import ApiException

from .metrics import track_leader_election_failure

WRITE_ATTEMPTS = 3


def _now() -> datetime:
    return datetime.now(timezone.utc)


def _env_int(name: str, default: int) -> int:
    return int(os.getenv(name, str(default)))


@dataclass(frozen=True)
class LeaderElectionConfig:
    enabled: bool = True
    lease_name: str = "kubedebug-controller-leader"
    lease_duration_seconds: int = 15
    renew_deadline_seconds: int = 10
    retry_period_seconds: int = 2

    @classmethod
    def from_env(cls) -> "LeaderElectionConfig":
        return cls(
            enabled=os.getenv("KUBEDEBUG_LEADER_ELECTION_ENABLED", "1") == "1",
            lease_name=os.getenv("KUBEDEBUG_LEASE_NAME", cls.lease_name),
            lease_duration_seconds=_env_int("KUBEDEBUG_LEASE_DURATION_SECONDS", cls.lease_duration_seconds),
            renew_deadline_seconds=_env_int("KUBEDEBUG_RENEW_DEADLINE_SECONDS", cls.renew_deadline_seconds),
            retry_period_seconds=_env_int("KUBEDEBUG_RETRY_PERIOD_SECONDS", cls.retry_period_seconds),
        )


def default_identity() -> str:
    return (
        os.getenv("KUBEDEBUG_LEADER_ID")
        or os.getenv("POD_NAME")
        or os.getenv("HOSTNAME")
        or "kubedebug-controller"
    )


class LeaderElector:
    def __init__(
        self,
        namespace: str,
        identity: str,
        config: LeaderElectionConfig,
        api: Optional[client.CoordinationV1Api] = None,
    ) -> None:
        self.namespace = namespace
        self.identity = identity
        self.config = config
        self._api = api or client.CoordinationV1Api()
        self._lock = threading.RLock()
        self._leader = False
        self._checked_at = 0.0

    @classmethod
    def from_env(cls, namespace: str) -> "LeaderElector":
        return cls(namespace=namespace, identity=default_identity(), config=LeaderElectionConfig.from_env())

    def is_enabled(self) -> bool:
        return self.config.enabled

    def is_leader(self) -> bool:
        """Cached leadership, refreshed from the lease once per retry period."""
        if not self.config.enabled:
            return True
        with self._lock:
            if time.monotonic() - self._checked_at < self.config.retry_period_seconds:
                return self._leader
            return self._elect()

    def ensure_leader(self) -> bool:
        """Acquire or renew the lease now."""
        if not self.config.enabled:
            return True
        with self._lock:
            return self._elect()

    def release(self) -> None:
        """Give up a held lease so a standby can take over without waiting for expiry."""
        if not self.config.enabled:
            return
        with self._lock:
            if not self._leader:
                return
            self._leader = False
            try:
                lease = self._read()
                if lease.spec is None or lease.spec.holder_identity != self.identity:
                    return
                lease.spec.holder_identity = None
                lease.spec.lease_duration_seconds = 1
                lease.spec.renew_time = _now()
                self._replace(lease)
            except ApiException:
                track_leader_election_failure("release_failed")

    # Everything below runs with self._lock held.

    def _elect(self) -> bool:
        self._checked_at = time.monotonic()
        try:
            lease = self._read()
        except ApiException as e:
            if e.status == 404:
                return self._set(self._create(), "create_failed")
            return self._set(False, "api_error")

        if lease.spec is None:
            lease.spec = client.V1LeaseSpec()
        if not self._available(lease.spec):
            return self._set(False)
        return self._write(lease)

    def _available(self, spec: client.V1LeaseSpec) -> bool:
        return spec.holder_identity in (None, "", self.identity) or self._is_expired(spec)

    def _write(self, lease: client.V1Lease) -> bool:
        """Stamp the lease with our identity; on 409 re-read and try again while it is still ours to take."""
        for attempt in range(WRITE_ATTEMPTS):
            spec = lease.spec
            now = _now()
            if spec.holder_identity != self.identity:
                spec.holder_identity = self.identity
                spec.acquire_time = now
            spec.renew_time = now
            spec.lease_duration_seconds = self.config.lease_duration_seconds
            try:
                self._replace(lease)
                return self._set(True)
            except ApiException as e:
                if e.status != 409:
                    return self._set(False, "api_error")

            if attempt == WRITE_ATTEMPTS - 1:
                break
            time.sleep((2 ** attempt) * 0.1 + random.uniform(0, 0.2))
            try:
                lease = self._read()
            except ApiException:
                return self._set(False, "api_error")
            if lease.spec is None or not self._available(lease.spec):
                return self._set(False, "lost_lease")
        return self._set(False, "conflict_retries_exhausted")

    def _set(self, leader: bool, failure: Optional[str] = None) -> bool:
        self._leader = leader
        if failure and not leader:
            track_leader_election_failure(failure)
        return leader

    def _read(self) -> client.V1Lease:
        return self._api.read_namespaced_lease(self.config.lease_name, self.namespace)

    def _replace(self, lease: client.V1Lease) -> None:
        self._api.replace_namespaced_lease(name=self.config.lease_name, namespace=self.namespace, body=lease)

    def _create(self) -> bool:
        now = _now()
        lease = client.V1Lease(
            metadata=client.V1ObjectMeta(name=self.config.lease_name, namespace=self.namespace),
            spec=client.V1LeaseSpec(
                holder_identity=self.identity,
                lease_duration_seconds=self.config.lease_duration_seconds,
                acquire_time=now,
                renew_time=now,
            ),
        )
        try:
            self._api.create_namespaced_lease(self.namespace, lease)
        except ApiException:
            return False
        return True

    def _is_expired(self, spec: client.V1LeaseSpec) -> bool:
        stamp = spec.renew_time or spec.acquire_time
        if stamp is None:
            return True
        duration = spec.lease_duration_seconds or self.config.lease_duration_seconds
        return (_now() - stamp).total_seconds() > duration
