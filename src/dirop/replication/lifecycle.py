# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

# src/dirop/replication/lifecycle.py
from __future__ import annotations

import logging
import threading
from typing import Optional

from ..config.models import DirectoryDeployment, WaitSettings
from ..config.server import ServerConfig
from ..errors import ConflictError, InstanceFailedError, NotFoundError
from ..k8s import manifests
from ..k8s.interface import Platform, pod_phase, pod_ready
from ..observers.dispatcher import BoundBus
from ..observers.events import ReplicaReady, ReplicaRemoved, ReplicaStarted, ReplicaStopped
from ..utils.poll import poll_until

log = logging.getLogger("dirop")


class LifecycleManager:
    """
    Creates and destroys single replica instances and their endpoints and
    runs the readiness / termination waits.
    """

    def __init__(
        self,
        platform: Platform,
        doc: DirectoryDeployment,
        config: ServerConfig,
        *,
        waits: Optional[WaitSettings] = None,
        cancel: Optional[threading.Event] = None,
        bus: Optional[BoundBus] = None,
    ):
        self.platform = platform
        self.doc = doc
        self.config = config
        self.waits = waits or WaitSettings()
        self.cancel = cancel
        self.bus = bus

    @property
    def namespace(self) -> str:
        return self.doc.namespace

    def instance(self, identity: str) -> str:
        return self.doc.replica_name(identity)

    def _emit(self, event_type, **fields) -> None:
        if self.bus:
            self.bus.emit(event_type, **fields)

    # ------------------------------------------------------------------
    # Start
    # ------------------------------------------------------------------
    def start_replica(self, identity: str) -> str:
        name = self.instance(identity)
        if self.platform.get_pod(self.namespace, name) is not None:
            log.info("[replica] %s already exists", name)
            return name
        log.info("[replica] starting %s (volume %s)", name, identity)
        self.platform.create_pod(self.namespace, manifests.replica_pod(self.doc, identity, self.config.port))
        self._emit(ReplicaStarted, identity=identity, instance=name)
        return name

    def create_endpoint(self, identity: str) -> None:
        name = self.instance(identity)
        try:
            self.platform.create_service(
                self.namespace, manifests.replica_service(self.doc, identity, self.config.port)
            )
        except ConflictError:
            log.debug("[replica] service %s already exists", name)

    def wait_ready(self, identity: str) -> None:
        name = self.instance(identity)

        def _ready() -> bool:
            pod = self.platform.get_pod(self.namespace, name)
            if pod is None:
                return False
            phase = pod_phase(pod)
            if phase in ("Failed", "Succeeded"):
                raise InstanceFailedError(f"The pod {name} stopped unexpectedly (phase {phase}).")
            return pod_ready(pod)

        log.info("[replica] waiting for %s to become ready", name)
        poll_until(
            _ready,
            timeout_seconds=self.waits.ready_timeout_seconds,
            interval_seconds=self.waits.interval_seconds,
            cancel=self.cancel,
            description=f"pod {name} to become ready",
        )
        self._emit(ReplicaReady, identity=identity, instance=name)

    def bring_up(self, identity: str) -> str:
        """Instance, endpoint, readiness: the order a reachable replica is started in."""
        name = self.start_replica(identity)
        self.create_endpoint(identity)
        self.wait_ready(identity)
        return name

    # ------------------------------------------------------------------
    # Stop
    # ------------------------------------------------------------------
    def stop_replica(self, identity: str, *, wait: bool = True, removed: bool = False) -> None:
        """
        Delete the endpoint and then the instance; the volume is left alone.
        Already-missing objects are fine so that an interrupted stop can be
        repeated.
        """
        name = self.instance(identity)
        log.info("[replica] stopping %s", name)
        try:
            self.platform.delete_service(self.namespace, name)
        except NotFoundError:
            log.debug("[replica] service %s already gone", name)
        try:
            self.platform.delete_pod(self.namespace, name)
        except NotFoundError:
            log.debug("[replica] pod %s already gone", name)

        if wait:
            self.wait_gone(identity)

        self._emit(ReplicaRemoved if removed else ReplicaStopped, identity=identity, instance=name)

    def wait_gone(self, identity: str) -> None:
        name = self.instance(identity)
        log.info("[replica] waiting for %s to terminate", name)
        poll_until(
            lambda: self.platform.get_pod(self.namespace, name) is None,
            timeout_seconds=self.waits.terminate_timeout_seconds,
            interval_seconds=self.waits.interval_seconds,
            cancel=self.cancel,
            description=f"pod {name} to terminate",
        )
