# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

# src/dirop/observers/events.py

from __future__ import annotations
from dataclasses import dataclass, asdict
from typing import List, Dict, Any, Optional
from datetime import datetime, timezone
import uuid


# ---------------------------------------------------------------------
# Base context and helper
# ---------------------------------------------------------------------
@dataclass(frozen=True)
class BaseEvent:
    ts: str             # ISO timestamp
    run_id: str         # correlates all events of one reconciliation pass
    namespace: str      # namespace of the directory deployment
    deployment: str     # name of the directory deployment

    def dict(self) -> Dict[str, Any]:
        return asdict(self)


def utc_now() -> str:
    return datetime.now(timezone.utc).isoformat(timespec="seconds").replace("+00:00", "Z")


def new_ctx(namespace: str, deployment: str, run_id: Optional[str] = None) -> Dict[str, Any]:
    return {
        "ts": utc_now(),
        "run_id": run_id or str(uuid.uuid4()),
        "namespace": namespace,
        "deployment": deployment,
    }


# ---------------------------------------------------------------------
# Reconciliation pass
# ---------------------------------------------------------------------
@dataclass(frozen=True)
class PassStarted(BaseEvent):
    to_add: List[str]
    to_delete: List[str]

@dataclass(frozen=True)
class PassSkipped(BaseEvent):
    reason: str

@dataclass(frozen=True)
class PassSucceeded(BaseEvent):
    running: List[str]
    duration_ms: int

@dataclass(frozen=True)
class PassFailed(BaseEvent):
    error: str
    retryable: bool


# ---------------------------------------------------------------------
# Replica lifecycle
# ---------------------------------------------------------------------
@dataclass(frozen=True)
class PrincipalElected(BaseEvent):
    identity: str
    standalone: bool

@dataclass(frozen=True)
class ReplicaStarted(BaseEvent):
    identity: str
    instance: str

@dataclass(frozen=True)
class ReplicaReady(BaseEvent):
    identity: str
    instance: str

@dataclass(frozen=True)
class ReplicaStopped(BaseEvent):
    identity: str
    instance: str

@dataclass(frozen=True)
class ReplicaRemoved(BaseEvent):
    identity: str
    instance: str


# ---------------------------------------------------------------------
# Replication agreements
# ---------------------------------------------------------------------
@dataclass(frozen=True)
class AgreementCreated(BaseEvent):
    source: str
    destination: str
    kind: str           # "principal-to-peer" | "peer-to-peer"
    secure: bool

@dataclass(frozen=True)
class AgreementRemoved(BaseEvent):
    source: str
    destination: str


# ---------------------------------------------------------------------
# Seeding
# ---------------------------------------------------------------------
@dataclass(frozen=True)
class SeedStarted(BaseEvent):
    identity: str
    principal: str
    job: str

@dataclass(frozen=True)
class SeedFinished(BaseEvent):
    identity: str
    job: str
    ok: bool
    error: Optional[str] = None


# ---------------------------------------------------------------------
# Proxy
# ---------------------------------------------------------------------
@dataclass(frozen=True)
class ProxyConfigUnchanged(BaseEvent):
    config_map: str

@dataclass(frozen=True)
class ProxyConfigUpdated(BaseEvent):
    config_map: str
    servers: List[str]

@dataclass(frozen=True)
class ProxyRestarted(BaseEvent):
    name: str

@dataclass(frozen=True)
class ProxyCreated(BaseEvent):
    name: str
    port: int
