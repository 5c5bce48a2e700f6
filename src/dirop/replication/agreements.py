# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

# src/dirop/replication/agreements.py
from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import Enum
from typing import List, Optional

from ..config.server import ServerConfig
from ..errors import CommandError, DirectoryOperatorError
from ..k8s.interface import Platform
from ..observers.dispatcher import BoundBus
from ..observers.events import AgreementCreated, AgreementRemoved

log = logging.getLogger("dirop")

MANAGE_REPLICA = "isvd_manage_replica"


class AgreementKind(str, Enum):
    PRINCIPAL_TO_PEER = "principal-to-peer"
    PEER_TO_PEER = "peer-to-peer"


@dataclass(frozen=True)
class Agreement:
    """
    Directed replication relation, created by running an administrative
    command on the source instance.  Instance names (not identities) are
    what the directory servers know each other by.
    """

    source: str
    destination: str
    principal: str
    port: int
    secure: bool = False

    @property
    def kind(self) -> AgreementKind:
        if self.source == self.principal:
            return AgreementKind.PRINCIPAL_TO_PEER
        return AgreementKind.PEER_TO_PEER

    def add_command(self) -> List[str]:
        port = str(self.port)
        if self.kind is AgreementKind.PRINCIPAL_TO_PEER:
            cmd = [
                MANAGE_REPLICA, "-ap",
                "-h", self.destination,
                "-p", port,
                "-i", self.destination,
                "-ph", self.source,
                "-pp", port,
            ]
        else:
            cmd = [
                MANAGE_REPLICA, "-ar",
                "-h", self.destination,
                "-p", port,
                "-i", self.destination,
                "-s", self.principal,
            ]
        if self.secure:
            cmd.append("-z")
        return cmd

    def remove_command(self) -> List[str]:
        return remove_command(self.destination)


def remove_command(replica_id: str) -> List[str]:
    return [MANAGE_REPLICA, "-r", "-i", replica_id]


class AgreementManager:
    """Creates and tears down agreements through the platform's exec channel."""

    def __init__(self, platform: Platform, namespace: str, config: ServerConfig, bus: Optional[BoundBus] = None):
        self.platform = platform
        self.namespace = namespace
        self.config = config
        self.bus = bus

    # ------------------------------------------------------------------
    def _run(self, pod: str, command: List[str]) -> str:
        log.info("[%s] %s", pod, " ".join(command))
        rc, out, err = self.platform.exec_command(self.namespace, pod, command)
        if out:
            log.debug("[%s] stdout: %s", pod, out.strip())
        if err:
            log.debug("[%s] stderr: %s", pod, err.strip())
        if rc != 0:
            raise CommandError(
                f"'{' '.join(command)}' failed in {pod} (rc={rc}): {(err or out).strip()}",
                stdout=out,
                stderr=err,
            )
        return out

    # ------------------------------------------------------------------
    def agreement(self, principal: str, source: str, destination: str) -> Agreement:
        return Agreement(
            source=source,
            destination=destination,
            principal=principal,
            port=self.config.port,
            secure=self.config.secure,
        )

    def create(self, agreement: Agreement) -> None:
        """
        Any stale agreement towards the same destination is removed first
        so that re-running a partially applied plan does not duplicate it.
        """
        self.remove(agreement.source, agreement.destination)
        self._run(agreement.source, agreement.add_command())
        if self.bus:
            self.bus.emit(
                AgreementCreated,
                source=agreement.source,
                destination=agreement.destination,
                kind=agreement.kind.value,
                secure=agreement.secure,
            )

    def remove(self, source: str, replica_id: str) -> bool:
        """Best effort: a missing agreement (or an unreachable source) is not an error."""
        try:
            self._run(source, remove_command(replica_id))
        except DirectoryOperatorError as e:
            log.debug("removing agreement %s -> %s: %s", source, replica_id, e)
            return False
        if self.bus:
            self.bus.emit(AgreementRemoved, source=source, destination=replica_id)
        return True
