# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

# src/dirop/admission/validator.py
from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional

from ..config.document import ConfigDocument
from ..config.models import ConfigMapRef, DirectoryDeployment
from ..errors import AdmissionError, DirectoryOperatorError
from ..k8s.interface import Platform
from ..proxy.generator import GENERATED_KEYS
from ..proxy.guard import PrimaryCoordinatorGuard
from ..topology.store import RunningTopology

log = logging.getLogger("dirop")

IN_PROGRESS_UPDATE = (
    "The last update to this document is still being processed by the operator.  "
    "Wait until the existing document has been fully processed before attempting "
    "to update the document."
)
IN_PROGRESS_DELETE = (
    "The last update to this document is still being processed by the operator.  "
    "Wait until the existing document has been fully processed before attempting "
    "to delete the document."
)
FAILED_STATE = (
    "The deployment is in a failing state which means that it cannot be updated "
    "and instead must be deleted and then recreated."
)

# spec.pods fields which cannot change once the document exists
IMMUTABLE_FIELDS = (
    ("image", "Image"),
    ("config_map", "ConfigMap"),
    ("resources", "Resources"),
    ("env_from", "EnvFrom"),
    ("env", "Env"),
    ("service_account_name", "ServiceAccountName"),
)


def _dump(value: Any) -> Any:
    return value.model_dump(by_alias=True) if hasattr(value, "model_dump") else value


class AdmissionValidator:
    """
    Accepts or rejects create/update/delete requests for a directory
    deployment before they are persisted.  Every rejection is an
    AdmissionError carrying the message shown to the user.
    """

    def __init__(self, platform: Platform, guard: Optional[PrimaryCoordinatorGuard] = None):
        self.platform = platform
        self.guard = guard

    # ------------------------------------------------------------------
    # Operations
    # ------------------------------------------------------------------
    def validate_create(self, doc: DirectoryDeployment) -> None:
        log.debug("[admission] create %s/%s", doc.namespace, doc.name)
        self.validate_document(doc)

    def validate_update(self, doc: DirectoryDeployment, old: DirectoryDeployment) -> None:
        log.debug("[admission] update %s/%s", doc.namespace, doc.name)
        if doc.is_condition("InProgress", "True"):
            raise AdmissionError(IN_PROGRESS_UPDATE)

        self.validate_document(doc)

        if doc.is_condition("Available", "False"):
            raise AdmissionError(FAILED_STATE)

        self.validate_immutable(doc, old)

        if self.guard is not None:
            running = RunningTopology.load(self.platform, doc)
            self.guard.check(doc, running)

    def validate_delete(self, doc: DirectoryDeployment) -> None:
        log.debug("[admission] delete %s/%s", doc.namespace, doc.name)
        if doc.is_condition("InProgress", "True"):
            raise AdmissionError(IN_PROGRESS_DELETE)

    # ------------------------------------------------------------------
    # Document checks
    # ------------------------------------------------------------------
    def validate_document(self, doc: DirectoryDeployment) -> None:
        pods = doc.spec.pods

        seen: Dict[str, bool] = {}
        claims: List[str] = list(doc.identities)
        if pods.proxy.pvc:
            claims.append(pods.proxy.pvc)
        for claim in claims:
            self._validate_pvc(doc.namespace, claim)
            if claim in seen:
                raise AdmissionError(
                    f"The document contains a PVC which is referenced more than once: {claim}.  "
                    "Each PVC in the document must be unique."
                )
            seen[claim] = True

        self._validate_config_map(doc.namespace, pods.config_map.server)
        self._validate_config_map(doc.namespace, pods.config_map.proxy)

        for source in pods.env_from:
            if "configMapRef" in source:
                ref = source["configMapRef"] or {}
                if not ref.get("optional"):
                    self._validate_config_map(doc.namespace, ConfigMapRef(name=ref.get("name", ""), key=""))
            if "secretRef" in source:
                ref = source["secretRef"] or {}
                if not ref.get("optional"):
                    self._validate_secret(doc.namespace, ref.get("name", ""))

        self._validate_proxy_config_map(doc)

    def validate_immutable(self, doc: DirectoryDeployment, old: DirectoryDeployment) -> None:
        """Strict equality; adding to a list counts as a change."""
        for attr, label in IMMUTABLE_FIELDS:
            if _dump(getattr(doc.spec.pods, attr)) != _dump(getattr(old.spec.pods, attr)):
                raise AdmissionError(
                    f"The spec.pods.{label} entry has been changed.  If you need to modify "
                    f"spec.pods.{label} you must first delete the document and then recreate it."
                )

    # ------------------------------------------------------------------
    def _validate_pvc(self, namespace: str, name: str) -> None:
        if self.platform.get_pvc(namespace, name) is None:
            raise AdmissionError(f"The PVC, {name}, doesn't exist!")

    def _validate_config_map(self, namespace: str, ref: ConfigMapRef) -> Dict[str, Any]:
        cm = self.platform.get_config_map(namespace, ref.name)
        if cm is None:
            raise AdmissionError(f"The ConfigMap, {ref.name}, doesn't exist!")
        if ref.key and ref.key not in (cm.get("data") or {}):
            raise AdmissionError(f"The ConfigMap, {ref.name}, does not contain the {ref.key} key!")
        return cm

    def _validate_secret(self, namespace: str, name: str) -> None:
        if self.platform.get_secret(namespace, name) is None:
            raise AdmissionError(f"The secret, {name}, doesn't exist!")

    def _validate_proxy_config_map(self, doc: DirectoryDeployment) -> None:
        ref = doc.spec.pods.config_map.proxy
        cm = self._validate_config_map(doc.namespace, ref)
        try:
            body = ConfigDocument.parse(cm["data"][ref.key], namespace=doc.namespace, source=ref.name)
        except DirectoryOperatorError as e:
            raise AdmissionError(e.message) from e

        for key in GENERATED_KEYS:
            if body.has(["proxy", key]):
                raise AdmissionError(
                    f"The proxy ConfigMap key, {ref.name}:{ref.key}, includes the proxy.{key} "
                    "configuration entry. This is not allowed as this entry will be generated "
                    "by the operator."
                )
