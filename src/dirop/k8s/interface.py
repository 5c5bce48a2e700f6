# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

# src/dirop/k8s/interface.py
from __future__ import annotations

from typing import Any, Dict, List, Optional, Protocol, Tuple

Object = Dict[str, Any]


class Platform(Protocol):
    """
    Everything the engine needs from the orchestration platform.

    Objects travel as plain manifest dicts (camelCase keys).  ``get_*``
    return None for a missing object; ``delete_*`` raise NotFoundError so the
    caller decides whether a missing object matters.  Every other failure is
    a PlatformError.
    """

    # directory deployment documents
    def get_document(self, namespace: str, name: str) -> Optional[Object]: ...
    def replace_document_status(self, namespace: str, name: str, status: Object) -> Object: ...

    # pods
    def list_pods(self, namespace: str, labels: Dict[str, str]) -> List[Object]: ...
    def get_pod(self, namespace: str, name: str) -> Optional[Object]: ...
    def create_pod(self, namespace: str, body: Object) -> None: ...
    def delete_pod(self, namespace: str, name: str) -> None: ...
    def exec_command(self, namespace: str, pod: str, command: List[str]) -> Tuple[int, str, str]: ...

    # services
    def get_service(self, namespace: str, name: str) -> Optional[Object]: ...
    def create_service(self, namespace: str, body: Object) -> None: ...
    def delete_service(self, namespace: str, name: str) -> None: ...

    # jobs
    def get_job(self, namespace: str, name: str) -> Optional[Object]: ...
    def create_job(self, namespace: str, body: Object) -> None: ...
    def delete_job(self, namespace: str, name: str) -> None: ...

    # config maps / secrets / claims
    def get_config_map(self, namespace: str, name: str) -> Optional[Object]: ...
    def create_config_map(self, namespace: str, body: Object) -> None: ...
    def replace_config_map(self, namespace: str, body: Object) -> None: ...
    def delete_config_map(self, namespace: str, name: str) -> None: ...
    def get_secret(self, namespace: str, name: str) -> Optional[Object]: ...
    def read_secret_value(self, namespace: str, name: str, key: str) -> Optional[str]: ...
    def get_pvc(self, namespace: str, name: str) -> Optional[Object]: ...

    # deployments
    def get_deployment(self, namespace: str, name: str) -> Optional[Object]: ...
    def create_deployment(self, namespace: str, body: Object) -> None: ...
    def patch_deployment(self, namespace: str, name: str, patch: Object) -> None: ...


def pod_phase(pod: Object) -> str:
    return (pod.get("status") or {}).get("phase", "Unknown")


def pod_ready(pod: Object) -> bool:
    """Running with the (single) container reporting ready."""
    status = pod.get("status") or {}
    if status.get("phase") != "Running":
        return False
    containers = status.get("containerStatuses") or []
    return bool(containers) and bool(containers[0].get("ready"))


def pod_labels(pod: Object) -> Dict[str, str]:
    return (pod.get("metadata") or {}).get("labels") or {}


def object_name(obj: Object) -> str:
    return (obj.get("metadata") or {}).get("name", "")
