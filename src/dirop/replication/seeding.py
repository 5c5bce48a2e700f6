# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

# src/dirop/replication/seeding.py
from __future__ import annotations

import logging
import threading
from typing import Dict, List, Optional

from ..config.models import DirectoryDeployment, WaitSettings
from ..config.server import ServerConfig
from ..errors import ConflictError, NotFoundError, SeedJobFailedError
from ..k8s import manifests
from ..k8s.interface import Object, Platform
from ..names import seed_config_name, seed_job_name
from ..observers.dispatcher import BoundBus
from ..observers.events import SeedFinished, SeedStarted
from ..utils.poll import poll_until

log = logging.getLogger("dirop")


def job_finished(job: Object) -> bool:
    """True once succeeded; raises on any failed pod."""
    status = job.get("status") or {}
    if (status.get("failed") or 0) > 0:
        raise SeedJobFailedError(f"The seed job {job['metadata']['name']} failed.")
    return (status.get("succeeded") or 0) > 0


class Seeder:
    """
    Bulk-loads new replica volumes from the stopped principal's volume.

    One job per new identity, all created before any is waited on; the
    shared one-shot configuration document is removed whatever the outcome.
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

    def _emit(self, event_type, **fields) -> None:
        if self.bus:
            self.bus.emit(event_type, **fields)

    # ------------------------------------------------------------------
    def seed(self, principal: str, identities: List[str]) -> None:
        if not identities:
            return

        self._create_config()
        try:
            jobs: Dict[str, str] = {}
            for identity in identities:
                jobs[identity] = self._create_job(principal, identity)
            self._wait_all(jobs)
        finally:
            self._delete_config()

    # ------------------------------------------------------------------
    def _create_config(self) -> None:
        body = manifests.seed_config_map(self.doc)
        try:
            self.platform.create_config_map(self.namespace, body)
        except ConflictError:
            # left behind by an interrupted pass
            self.platform.replace_config_map(self.namespace, body)

    def _delete_config(self) -> None:
        name = seed_config_name(self.doc.name)
        try:
            self.platform.delete_config_map(self.namespace, name)
        except NotFoundError:
            log.debug("[seed] config map %s already gone", name)

    def _create_job(self, principal: str, identity: str) -> str:
        name = seed_job_name(self.doc.name, identity)

        if self.platform.get_job(self.namespace, name) is not None:
            log.info("[seed] removing stale job %s", name)
            try:
                self.platform.delete_job(self.namespace, name)
            except NotFoundError:
                pass
            poll_until(
                lambda: self.platform.get_job(self.namespace, name) is None,
                timeout_seconds=self.waits.terminate_timeout_seconds,
                interval_seconds=self.waits.interval_seconds,
                cancel=self.cancel,
                description=f"stale job {name} to be removed",
            )

        log.info("[seed] seeding %s from %s (job %s)", identity, principal, name)
        self.platform.create_job(
            self.namespace,
            manifests.seed_job(self.doc, principal, identity, self.config.license_key),
        )
        self._emit(SeedStarted, identity=identity, principal=principal, job=name)
        return name

    def _wait_all(self, jobs: Dict[str, str]) -> None:
        pending = dict(jobs)

        def _done() -> bool:
            for identity, name in list(pending.items()):
                job = self.platform.get_job(self.namespace, name)
                if job is None:
                    raise SeedJobFailedError(f"The seed job {name} disappeared before completing.")
                try:
                    finished = job_finished(job)
                except SeedJobFailedError as e:
                    self._emit(SeedFinished, identity=identity, job=name, ok=False, error=e.message)
                    raise
                if finished:
                    log.info("[seed] job %s completed", name)
                    self._emit(SeedFinished, identity=identity, job=name, ok=True)
                    del pending[identity]
            return not pending

        poll_until(
            _done,
            timeout_seconds=self.waits.seed_timeout_seconds,
            interval_seconds=self.waits.interval_seconds,
            cancel=self.cancel,
            description=f"seed jobs {sorted(pending.values())}",
        )
