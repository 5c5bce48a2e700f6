# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

# src/dirop/controller/reconciler.py
from __future__ import annotations

import logging
import threading
import time
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Callable, List, Optional

from pydantic import ValidationError

from ..config.document import ConfigDocument
from ..config.models import DirectoryDeployment, OperatorSettings
from ..config.server import ServerConfig, resolve_server_config
from ..errors import (
    ConfigValidationError,
    ConflictError,
    DirectoryOperatorError,
    NotFoundError,
    PlatformError,
)
from ..k8s.interface import Platform
from ..observers.dispatcher import BoundBus, EventBus
from ..observers.events import PassFailed, PassSkipped, PassStarted, PassSucceeded, new_ctx
from ..proxy.generator import ProxyGenerator
from ..replication.agreements import AgreementManager
from ..replication.builder import TopologyBuilder
from ..replication.lifecycle import LifecycleManager
from ..replication.seeding import Seeder
from ..topology.diff import diff_topology
from ..topology.state import ReplicaStates
from ..topology.store import RunningTopology
from ..utils.retry import retry
from . import conditions

log = logging.getLogger("dirop")


@dataclass
class ReconcileResult:
    requeue: bool = False
    error: Optional[str] = None
    changed: bool = False


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def read_server_document(platform: Platform, doc: DirectoryDeployment) -> ConfigDocument:
    ref = doc.spec.pods.config_map.server
    cm = platform.get_config_map(doc.namespace, ref.name)
    if cm is None:
        raise NotFoundError(f"The ConfigMap {ref.name} does not exist.", kind="ConfigMap", name=ref.name)
    data = cm.get("data") or {}
    if ref.key not in data:
        raise ConfigValidationError(f"The ConfigMap {ref.name} does not contain the {ref.key} key.")
    return ConfigDocument.parse(
        data[ref.key], namespace=doc.namespace, secrets=platform, source=f"{ref.name}/{ref.key}"
    )


class Reconciler:
    """
    One reconciliation pass: diff, add plan, proxy, delete plan, conditions.

    The only place where an error becomes either a requeue or a terminal
    failure.  Callers (the kopf handlers) guarantee that a given
    deployment is never reconciled by two threads at once.
    """

    def __init__(
        self,
        platform: Platform,
        settings: Optional[OperatorSettings] = None,
        *,
        bus: Optional[EventBus] = None,
        cancel: Optional[threading.Event] = None,
        now: Callable[[], datetime] = _utcnow,
    ):
        self.platform = platform
        self.settings = settings or OperatorSettings()
        self.bus = bus or EventBus()
        self.cancel = cancel
        self.now = now

    # ------------------------------------------------------------------
    # Entry points
    # ------------------------------------------------------------------
    def reconcile(self, namespace: str, name: str) -> ReconcileResult:
        try:
            raw = self.platform.get_document(namespace, name)
        except DirectoryOperatorError as e:
            log.error("Failed to read %s/%s: %s", namespace, name, e)
            return ReconcileResult(requeue=e.retryable, error=e.message)

        if raw is None:
            log.info("%s/%s not found, it has been deleted", namespace, name)
            return ReconcileResult()

        try:
            doc = DirectoryDeployment.model_validate(raw)
        except ValidationError as e:
            log.error("Document %s/%s is invalid: %s", namespace, name, e)
            return ReconcileResult(error=str(e))

        return self.reconcile_document(doc)

    def reconcile_document(self, doc: DirectoryDeployment) -> ReconcileResult:
        bus = BoundBus(self.bus, new_ctx(doc.namespace, doc.name))
        started = time.monotonic()

        if doc.is_condition(conditions.IN_PROGRESS, "True") and not self._stale(doc):
            log.info("%s/%s: a previous pass is still in progress", doc.namespace, doc.name)
            bus.emit(PassSkipped, reason="in progress")
            return ReconcileResult(requeue=True)

        try:
            running = RunningTopology.load(self.platform, doc)
        except DirectoryOperatorError as e:
            log.error("%s/%s: failed to list the existing pods: %s", doc.namespace, doc.name, e)
            return self._finish(doc, bus, e)

        diff = diff_topology(doc.identities, running.identities())
        log.info(
            "%s/%s: running=%s to_add=%s to_delete=%s",
            doc.namespace, doc.name, running.identities(), list(diff.to_add), list(diff.to_delete),
        )
        if diff.empty:
            bus.emit(PassSkipped, reason="converged")
            return ReconcileResult()

        bus.emit(PassStarted, to_add=list(diff.to_add), to_delete=list(diff.to_delete))

        try:
            self._set_conditions(doc, conditions.in_progress(doc.metadata.generation))
        except DirectoryOperatorError as e:
            log.error("%s/%s: failed to mark the deployment in progress: %s", doc.namespace, doc.name, e)
            bus.emit(PassFailed, error=e.message, retryable=True)
            return ReconcileResult(requeue=True, error=e.message)

        states = ReplicaStates(running=running.identities(), absent=diff.to_add)
        builder: Optional[TopologyBuilder] = None
        error: Optional[DirectoryOperatorError] = None
        try:
            config = self.server_config(doc)
            builder = self._builder(doc, bus, states, config)
            final = self._run(doc, bus, config, builder, running.identities(), diff.to_add, diff.to_delete)
        except DirectoryOperatorError as e:
            error = e
        except Exception as e:
            log.exception("%s/%s: unexpected failure", doc.namespace, doc.name)
            error = PlatformError(f"Unexpected failure: {e}")

        if error is not None:
            log.error(
                "%s/%s: pass %s failed (retryable=%s): %s; replica states %s",
                doc.namespace, doc.name, bus.run_id, error.retryable, error.message, states.snapshot(),
            )
            if builder is not None:
                self._restore_principal(doc, builder)
            return self._finish(doc, bus, error)

        log.info("%s/%s: reconciled, running=%s", doc.namespace, doc.name, final)
        result = self._finish(doc, bus, None)
        if result.error is None:
            bus.emit(PassSucceeded, running=final, duration_ms=int((time.monotonic() - started) * 1000))
        result.changed = True
        return result

    # ------------------------------------------------------------------
    # Pass body
    # ------------------------------------------------------------------
    def server_config(self, doc: DirectoryDeployment) -> ServerConfig:
        return resolve_server_config(read_server_document(self.platform, doc))

    def _builder(
        self, doc: DirectoryDeployment, bus: BoundBus, states: ReplicaStates, config: ServerConfig
    ) -> TopologyBuilder:
        waits = self.settings.waits
        lifecycle = LifecycleManager(self.platform, doc, config, waits=waits, cancel=self.cancel, bus=bus)
        seeder = Seeder(self.platform, doc, config, waits=waits, cancel=self.cancel, bus=bus)
        agreements = AgreementManager(self.platform, doc.namespace, config, bus=bus)
        return TopologyBuilder(lifecycle, seeder, agreements, states=states, bus=bus)

    def _run(
        self,
        doc: DirectoryDeployment,
        bus: BoundBus,
        config: ServerConfig,
        builder: TopologyBuilder,
        running: List[str],
        to_add,
        to_delete,
    ) -> List[str]:
        members = builder.add_plan(to_add, running)
        ProxyGenerator(self.platform, doc, config, bus=bus).apply(doc.identities)
        return builder.delete_plan(to_delete, members)

    def _restore_principal(self, doc: DirectoryDeployment, builder: TopologyBuilder) -> None:
        try:
            builder.restore_principal()
        except DirectoryOperatorError as e:
            # the pass error is the one reported
            log.error("%s/%s: failed to restart the principal: %s", doc.namespace, doc.name, e)

    # ------------------------------------------------------------------
    # Conditions
    # ------------------------------------------------------------------
    def _stale(self, doc: DirectoryDeployment) -> bool:
        cond = doc.condition(conditions.IN_PROGRESS)
        if cond is None or cond.last_transition_time is None:
            return False
        since = cond.last_transition_time
        if since.tzinfo is None:
            since = since.replace(tzinfo=timezone.utc)
        age = (self.now() - since).total_seconds()
        if age > self.settings.stale_in_progress_seconds:
            log.warning(
                "%s/%s: InProgress has been set for %ds, taking over the deployment",
                doc.namespace, doc.name, int(age),
            )
            return True
        return False

    def _set_conditions(self, doc: DirectoryDeployment, *new) -> None:
        now = self.now()
        for cond in new:
            conditions.set_condition(doc.status.conditions, cond, now)
        self._write_status(doc)

    @retry(attempts=3, delay=0.5, retry_on=(ConflictError,))
    def _write_status(self, doc: DirectoryDeployment) -> None:
        self.platform.replace_document_status(doc.namespace, doc.name, conditions.status_body(doc))

    def _finish(
        self,
        doc: DirectoryDeployment,
        bus: BoundBus,
        error: Optional[DirectoryOperatorError],
    ) -> ReconcileResult:
        message = error.message if error else None
        try:
            self._set_conditions(
                doc,
                conditions.processed(doc.metadata.generation),
                conditions.available(doc, message),
            )
        except DirectoryOperatorError as e:
            log.error("%s/%s: failed to record the outcome: %s", doc.namespace, doc.name, e)
            bus.emit(PassFailed, error=e.message, retryable=True)
            return ReconcileResult(requeue=True, error=message or e.message)

        if error is None:
            return ReconcileResult()

        bus.emit(PassFailed, error=error.message, retryable=error.retryable)
        return ReconcileResult(requeue=error.retryable, error=error.message)
