# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

# src/dirop/replication/builder.py
from __future__ import annotations

import logging
from typing import Iterable, List, Optional

from ..observers.dispatcher import BoundBus
from ..observers.events import PrincipalElected
from ..topology.state import ReplicaState, ReplicaStates
from .agreements import AgreementManager
from .lifecycle import LifecycleManager
from .seeding import Seeder

log = logging.getLogger("dirop")


class TopologyBuilder:
    """
    Sequences the add and delete plans.

    The builder alone decides which replica is the principal and which
    agreements exist; the lifecycle manager, seeder and agreement manager
    only carry out single steps.
    """

    def __init__(
        self,
        lifecycle: LifecycleManager,
        seeder: Seeder,
        agreements: AgreementManager,
        *,
        states: Optional[ReplicaStates] = None,
        bus: Optional[BoundBus] = None,
    ):
        self.lifecycle = lifecycle
        self.seeder = seeder
        self.agreements = agreements
        self.states = states or ReplicaStates()
        self.bus = bus
        # set while the principal is down for seeding
        self.stopped_principal: Optional[str] = None

    def _instance(self, identity: str) -> str:
        return self.lifecycle.instance(identity)

    # ------------------------------------------------------------------
    # Add plan
    # ------------------------------------------------------------------
    def elect_principal(self, to_add: List[str], running: List[str]) -> str:
        """Any running member, else the first identity to add."""
        if running:
            return running[0]
        return to_add[0]

    def add_plan(self, to_add: Iterable[str], running: Iterable[str]) -> List[str]:
        """
        Bring every identity in ``to_add`` into the topology.

        Returns the running identities once the plan has completed.
        """
        to_add = list(to_add)
        members = list(running)
        if not to_add:
            return members
        self.states.track(running=members, absent=to_add)

        principal = self.elect_principal(to_add, members)
        standalone = principal not in members
        self.states.set(principal, ReplicaState.PRINCIPAL_ELECTED)
        if self.bus:
            self.bus.emit(PrincipalElected, identity=principal, standalone=standalone)
        log.info("[topology] principal is %s%s", principal, " (new, standalone)" if standalone else "")

        if standalone:
            to_add.remove(principal)
            self.states.set(principal, ReplicaState.STARTING)
            self.lifecycle.bring_up(principal)
            self.states.set(principal, ReplicaState.RUNNING)
            members.append(principal)
            if not to_add:
                return members

        principal_pod = self._instance(principal)

        # 1. prime the principal with an agreement towards every new replica
        for identity in to_add:
            self.agreements.create(
                self.agreements.agreement(principal_pod, principal_pod, self._instance(identity))
            )

        # 2. quiesce the principal so its volume can be copied
        self.states.set(principal, ReplicaState.STOPPING)
        self.stopped_principal = principal
        self.lifecycle.stop_replica(principal, wait=True)

        # 3. seed every new volume from the principal's volume
        for identity in to_add:
            self.states.set(identity, ReplicaState.SEEDING)
        self.seeder.seed(principal, to_add)

        # 4. start the seeded replicas, not yet reachable through an endpoint
        for identity in to_add:
            self.states.set(identity, ReplicaState.STARTING)
            self.lifecycle.start_replica(identity)
        for identity in to_add:
            self.lifecycle.wait_ready(identity)

        # 5. mesh every new replica with the other members (principal excluded, it is down)
        target = members + to_add
        for identity in to_add:
            self.states.set(identity, ReplicaState.AGREEMENTS_PENDING)
            for source in target:
                if source in (principal, identity):
                    continue
                self.agreements.create(
                    self.agreements.agreement(principal_pod, self._instance(source), self._instance(identity))
                )
            self.states.set(identity, ReplicaState.RUNNING)

        # 6. make the new replicas reachable
        for identity in to_add:
            self.lifecycle.create_endpoint(identity)

        # 7. bring the principal back
        self.states.set(principal, ReplicaState.STARTING)
        self.lifecycle.bring_up(principal)
        self.states.set(principal, ReplicaState.RUNNING)
        self.stopped_principal = None

        return target

    def restore_principal(self) -> Optional[str]:
        """
        Restart a principal the add plan stopped before it failed.

        Left down, the next pass would see no running member and elect a
        fresh principal, seeding every replica from an empty volume.
        """
        principal = self.stopped_principal
        if principal is None:
            return None
        log.warning("[topology] restarting principal %s after a failed add plan", principal)
        if self.states.get(principal) is not ReplicaState.STARTING:
            self.states.set(principal, ReplicaState.STARTING)
        self.lifecycle.bring_up(principal)
        self.states.set(principal, ReplicaState.RUNNING)
        self.stopped_principal = None
        return principal

    # ------------------------------------------------------------------
    # Delete plan
    # ------------------------------------------------------------------
    def delete_plan(self, to_delete: Iterable[str], running: Iterable[str]) -> List[str]:
        """
        Sever every agreement towards each deleted replica from the members
        that stay, then remove its endpoint and instance and wait for it to
        terminate.  Returns the remaining identities.
        """
        to_delete = list(to_delete)
        running = list(running)
        remaining = [i for i in running if i not in set(to_delete)]
        self.states.track(running=running + to_delete)

        for identity in to_delete:
            replica_id = self._instance(identity)
            for other in remaining:
                self.agreements.remove(self._instance(other), replica_id)

            self.states.set(identity, ReplicaState.STOPPING)
            self.lifecycle.stop_replica(identity, wait=True, removed=True)
            self.states.set(identity, ReplicaState.REMOVED)
            log.info("[topology] removed %s", identity)

        return remaining
