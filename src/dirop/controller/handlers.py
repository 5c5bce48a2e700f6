# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

# src/dirop/controller/handlers.py
from __future__ import annotations

import logging
import threading
from typing import Any, Mapping, Optional, Set

import kopf
from kubernetes import client

from ..admission.validator import AdmissionValidator
from ..config.loader import load_document
from ..config.models import OperatorSettings
from ..errors import DirectoryOperatorError
from .reconciler import ReconcileResult, Reconciler

log = logging.getLogger("dirop")


def _plain(value: Any) -> Any:
    """kopf bodies are read-only mapping views; the models want plain dicts."""
    if isinstance(value, Mapping):
        return {k: _plain(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [_plain(v) for v in value]
    return value


class DirectoryController:
    """
    kopf handlers for directory deployments.

    Change handlers run one reconciliation pass and translate its outcome:
    a retryable failure is a ``kopf.TemporaryError`` retried after
    ``settings.requeue_seconds``, a terminal one a ``kopf.PermanentError``.
    kopf serialises the change handlers of one object, but the resync timer
    runs beside them, so passes are also claimed per key here.
    """

    def __init__(
        self,
        reconciler: Reconciler,
        settings: Optional[OperatorSettings] = None,
        validator: Optional[AdmissionValidator] = None,
    ):
        self.reconciler = reconciler
        self.settings = settings or reconciler.settings
        self.validator = validator
        self._lock = threading.Lock()
        self._busy: Set[str] = set()

    # ------------------------------------------------------------------
    # Reconciliation
    # ------------------------------------------------------------------
    def _reconcile(self, namespace: str, name: str) -> Optional[ReconcileResult]:
        """None when another pass holds the key."""
        key = f"{namespace}/{name}"
        with self._lock:
            if key in self._busy:
                return None
            self._busy.add(key)
        try:
            return self.reconciler.reconcile(namespace, name)
        finally:
            with self._lock:
                self._busy.discard(key)

    def on_change(self, name: str, namespace: str, **_: Any) -> None:
        result = self._reconcile(namespace, name)
        if result is None:
            raise kopf.TemporaryError(
                f"{namespace}/{name} is being reconciled", delay=self.settings.requeue_seconds
            )
        if result.requeue:
            raise kopf.TemporaryError(
                result.error or "a previous pass is still in progress", delay=self.settings.requeue_seconds
            )
        if result.error:
            raise kopf.PermanentError(result.error)

    def on_resync(self, name: str, namespace: str, **_: Any) -> None:
        """Periodic pass; failures wait for the next tick instead of stopping the timer."""
        result = self._reconcile(namespace, name)
        if result is None:
            log.debug("[resync] %s/%s is being reconciled, skipped", namespace, name)
        elif result.error:
            log.warning("[resync] %s/%s: %s", namespace, name, result.error)

    # ------------------------------------------------------------------
    # Admission
    # ------------------------------------------------------------------
    def on_validate(
        self,
        body: Mapping[str, Any],
        old: Optional[Mapping[str, Any]] = None,
        operation: Optional[str] = None,
        subresource: Optional[str] = None,
        **_: Any,
    ) -> None:
        # status writes come from the operator itself
        if subresource or self.validator is None:
            return
        try:
            if operation == "CREATE":
                self.validator.validate_create(load_document(_plain(body)))
            elif operation == "UPDATE":
                doc = load_document(_plain(body))
                previous = load_document(_plain(old or {}))
                if doc.spec == previous.spec:
                    log.debug("[admission] %s/%s: spec unchanged", doc.namespace, doc.name)
                    return
                self.validator.validate_update(doc, previous)
            elif operation == "DELETE":
                # kopf's old is an essence without status; body is the deleted object
                self.validator.validate_delete(load_document(_plain(body or old)))
        except DirectoryOperatorError as e:
            log.info("[admission] %s rejected: %s", operation, e.message)
            raise kopf.AdmissionError(e.message) from e

    # ------------------------------------------------------------------
    # Operator lifecycle
    # ------------------------------------------------------------------
    def configure(self, settings: kopf.OperatorSettings, **_: Any) -> None:
        settings.execution.max_workers = self.settings.workers
        admission = self.settings.admission
        if admission.enabled:
            settings.admission.server = kopf.WebhookServer(
                port=admission.port,
                host=admission.host,
                certfile=admission.certfile,
                pkeyfile=admission.pkeyfile,
            )
            settings.admission.managed = admission.managed
        log.info(
            "controller started: namespace=%s workers=%d admission=%s",
            self.settings.namespace or "*", self.settings.workers, admission.enabled,
        )

    def login(self, **_: Any) -> kopf.ConnectionInfo:
        """Reuse the cluster credentials the platform client was configured with."""
        config = client.Configuration.get_default_copy()
        header = config.get_api_key_with_prefix("authorization")
        parts = header.split(" ", 1) if header else []
        scheme, token = (parts[0], parts[1]) if len(parts) == 2 else (None, parts[0] if parts else None)
        return kopf.ConnectionInfo(
            server=config.host,
            ca_path=config.ssl_ca_cert,
            insecure=not config.verify_ssl,
            username=config.username or None,
            password=config.password or None,
            scheme=scheme,
            token=token,
            certificate_path=config.cert_file,
            private_key_path=config.key_file,
        )

    def stop(self, **_: Any) -> None:
        """Abort the waits of in-flight passes."""
        if self.reconciler.cancel is not None:
            self.reconciler.cancel.set()
        log.info("controller stopped")


def build_registry(controller: DirectoryController) -> kopf.OperatorRegistry:
    registry = kopf.OperatorRegistry()
    settings = controller.settings
    resource = (settings.crd.group, settings.crd.version, settings.crd.plural)

    kopf.on.startup(id="configure", registry=registry)(controller.configure)
    kopf.on.login(id="login", registry=registry)(controller.login)
    kopf.on.cleanup(id="stop", registry=registry)(controller.stop)

    kopf.on.create(*resource, id="reconcile-create", registry=registry)(controller.on_change)
    kopf.on.update(*resource, id="reconcile-update", registry=registry)(controller.on_change)
    kopf.on.resume(*resource, id="reconcile-resume", registry=registry)(controller.on_change)
    kopf.timer(
        *resource,
        id="resync",
        interval=settings.resync_seconds,
        initial_delay=settings.resync_seconds,
        registry=registry,
    )(controller.on_resync)

    if controller.validator is not None:
        kopf.on.validate(*resource, id="validate-directory", registry=registry)(controller.on_validate)
    return registry
