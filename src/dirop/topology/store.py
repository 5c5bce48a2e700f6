# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

# src/dirop/topology/store.py
from __future__ import annotations

import logging
from typing import Dict, Iterator, List

from ..config.models import DirectoryDeployment
from ..k8s.interface import Platform, object_name, pod_labels, pod_ready
from ..names import PVC_LABEL, labels_for_app

log = logging.getLogger("dirop")


class RunningTopology:
    """
    identity -> live instance name, recomputed on every pass.

    Insertion order follows the platform's listing, so "any running member"
    is the first one listed.
    """

    def __init__(self, instances: Dict[str, str] | None = None, ready: Dict[str, bool] | None = None):
        self.instances: Dict[str, str] = dict(instances or {})
        self.ready: Dict[str, bool] = dict(ready or {})

    def __contains__(self, identity: object) -> bool:
        return identity in self.instances

    def __iter__(self) -> Iterator[str]:
        return iter(self.instances)

    def __len__(self) -> int:
        return len(self.instances)

    def identities(self) -> List[str]:
        return list(self.instances)

    def instance(self, identity: str) -> str:
        return self.instances[identity]

    def is_ready(self, identity: str) -> bool:
        return self.ready.get(identity, False)

    def not_ready(self, identities: List[str]) -> List[str]:
        return [i for i in identities if not self.is_ready(i)]

    @classmethod
    def load(cls, platform: Platform, doc: DirectoryDeployment) -> "RunningTopology":
        pods = platform.list_pods(doc.namespace, labels_for_app(doc.name))
        instances: Dict[str, str] = {}
        ready: Dict[str, bool] = {}
        for pod in pods:
            identity = pod_labels(pod).get(PVC_LABEL)
            if not identity:
                continue
            instances[identity] = object_name(pod)
            ready[identity] = pod_ready(pod)
        log.debug("running topology for %s/%s: %s", doc.namespace, doc.name, instances)
        return cls(instances, ready)
