# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

# src/dirop/topology/state.py
from __future__ import annotations

import logging
import threading
from enum import Enum
from typing import Dict, Iterable

log = logging.getLogger("dirop")


class ReplicaState(str, Enum):
    ABSENT = "Absent"
    PRINCIPAL_ELECTED = "PrincipalElected"
    SEEDING = "Seeding"
    STARTING = "Starting"
    RUNNING = "Running"
    AGREEMENTS_PENDING = "AgreementsPending"
    STOPPING = "Stopping"
    REMOVED = "Removed"


# Transitions the add/delete plans are allowed to make.
_ALLOWED = {
    ReplicaState.ABSENT: {ReplicaState.PRINCIPAL_ELECTED, ReplicaState.SEEDING, ReplicaState.STARTING},
    ReplicaState.PRINCIPAL_ELECTED: {ReplicaState.STARTING, ReplicaState.RUNNING, ReplicaState.STOPPING},
    ReplicaState.SEEDING: {ReplicaState.STARTING},
    ReplicaState.STARTING: {ReplicaState.RUNNING, ReplicaState.AGREEMENTS_PENDING},
    ReplicaState.AGREEMENTS_PENDING: {ReplicaState.RUNNING},
    ReplicaState.RUNNING: {
        ReplicaState.PRINCIPAL_ELECTED,
        ReplicaState.AGREEMENTS_PENDING,
        ReplicaState.STOPPING,
    },
    ReplicaState.STOPPING: {ReplicaState.REMOVED, ReplicaState.STARTING, ReplicaState.SEEDING},
    ReplicaState.REMOVED: set(),
}


class ReplicaStates:
    """
    Per-identity state for a single pass.

    Not persisted: seeded from the running snapshot at the start of a pass
    and advanced as the plans execute, so a failed pass can report where
    each replica stopped.
    """

    def __init__(self, running: Iterable[str] = (), absent: Iterable[str] = ()):
        self._lock = threading.Lock()
        self._states: Dict[str, ReplicaState] = {}
        self.track(running, absent)

    def track(self, running: Iterable[str] = (), absent: Iterable[str] = ()) -> None:
        """Start tracking identities not seen yet; known ones keep their state."""
        with self._lock:
            for identity in running:
                self._states.setdefault(identity, ReplicaState.RUNNING)
            for identity in absent:
                self._states.setdefault(identity, ReplicaState.ABSENT)

    def get(self, identity: str) -> ReplicaState:
        with self._lock:
            return self._states.get(identity, ReplicaState.ABSENT)

    def set(self, identity: str, state: ReplicaState) -> None:
        with self._lock:
            current = self._states.get(identity, ReplicaState.ABSENT)
            if current is not state and state not in _ALLOWED[current]:
                raise ValueError(f"replica {identity}: {current.value} -> {state.value} is not a valid transition")
            log.debug("replica %s: %s -> %s", identity, current.value, state.value)
            self._states[identity] = state

    def snapshot(self) -> Dict[str, str]:
        with self._lock:
            return {i: s.value for i, s in self._states.items()}
