# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

# src/dirop/config/models.py

from __future__ import annotations

from datetime import datetime
from typing import Any, Dict, List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field

from ..names import proxy_config_name, proxy_deployment_name, replica_name


class _CamelModel(BaseModel):
    """Accepts both the camelCase wire names and the python field names."""

    model_config = ConfigDict(populate_by_name=True, extra="ignore")


# ---------------------------------------------------------------------
# Directory deployment document
# ---------------------------------------------------------------------
class ImageSpec(_CamelModel):
    repo: str = "icr.io/isvd"
    label: str = "latest"
    image_pull_policy: Optional[str] = Field(default=None, alias="imagePullPolicy")
    image_pull_secrets: List[Dict[str, Any]] = Field(default_factory=list, alias="imagePullSecrets")


class ConfigMapRef(_CamelModel):
    name: str
    key: str


class ConfigMaps(_CamelModel):
    # the proxy document carries everything except the proxied servers
    proxy: ConfigMapRef
    server: ConfigMapRef


class ProxySpec(_CamelModel):
    pvc: str = ""


class PodsSpec(_CamelModel):
    image: ImageSpec = Field(default_factory=ImageSpec)
    config_map: ConfigMaps = Field(alias="configMap")
    resources: Dict[str, Any] = Field(default_factory=dict)
    env: List[Dict[str, Any]] = Field(default_factory=list)
    env_from: List[Dict[str, Any]] = Field(default_factory=list, alias="envFrom")
    service_account_name: str = Field(default="", alias="serviceAccountName")
    proxy: ProxySpec = Field(default_factory=ProxySpec)


class ReplicasSpec(_CamelModel):
    pvcs: List[str] = Field(default_factory=list)


class DirectorySpec(_CamelModel):
    replicas: ReplicasSpec
    pods: PodsSpec


class Condition(_CamelModel):
    type: str
    status: Literal["True", "False", "Unknown"]
    reason: str = ""
    message: str = ""
    last_transition_time: Optional[datetime] = Field(default=None, alias="lastTransitionTime")
    observed_generation: Optional[int] = Field(default=None, alias="observedGeneration")


class DirectoryStatus(_CamelModel):
    conditions: List[Condition] = Field(default_factory=list)


class ObjectMeta(_CamelModel):
    name: str
    namespace: str = "default"
    generation: int = 1
    uid: str = ""
    resource_version: str = Field(default="", alias="resourceVersion")


class DirectoryDeployment(_CamelModel):
    api_version: str = Field(default="dirop.io/v1", alias="apiVersion")
    kind: str = "DirectoryDeployment"
    metadata: ObjectMeta
    spec: DirectorySpec
    status: DirectoryStatus = Field(default_factory=DirectoryStatus)

    # Helper methods
    @property
    def name(self) -> str:
        return self.metadata.name

    @property
    def namespace(self) -> str:
        return self.metadata.namespace

    @property
    def identities(self) -> List[str]:
        return list(self.spec.replicas.pvcs)

    def replica_name(self, identity: str) -> str:
        return replica_name(self.name, identity)

    def proxy_name(self) -> str:
        return proxy_deployment_name(self.name)

    def proxy_config_name(self) -> str:
        return proxy_config_name(self.name)

    def condition(self, type_: str) -> Optional[Condition]:
        for c in self.status.conditions:
            if c.type == type_:
                return c
        return None

    def is_condition(self, type_: str, status: str) -> bool:
        c = self.condition(type_)
        return c is not None and c.status == status

    def owner_reference(self) -> Dict[str, Any]:
        """Attached to every object we create so deleting the document cleans up."""
        return {
            "apiVersion": self.api_version,
            "kind": self.kind,
            "name": self.name,
            "uid": self.metadata.uid,
            "controller": True,
            "blockOwnerDeletion": True,
        }


# ---------------------------------------------------------------------
# Operator settings
# ---------------------------------------------------------------------
class CrdSpec(BaseModel):
    group: str = "dirop.io"
    version: str = "v1"
    plural: str = "directorydeployments"
    kind: str = "DirectoryDeployment"


class WaitSettings(BaseModel):
    ready_timeout_seconds: float = 600
    terminate_timeout_seconds: float = 300
    seed_timeout_seconds: float = 600
    interval_seconds: float = 1


class AdmissionSettings(BaseModel):
    """Webhook server the API server calls for admission reviews."""

    enabled: bool = True
    port: int = 9443
    # address the API server uses to reach the operator
    host: Optional[str] = None
    certfile: Optional[str] = None
    pkeyfile: Optional[str] = None
    # ValidatingWebhookConfiguration kept in sync with the handlers
    managed: Optional[str] = "dirop.io"


class OperatorSettings(BaseModel):
    namespace: Optional[str] = None         # None watches every namespace
    kube_context: Optional[str] = None
    in_cluster: bool = False
    workers: int = Field(default=4, ge=1)
    requeue_seconds: float = 10
    resync_seconds: float = 300
    liveness_endpoint: Optional[str] = None
    # an InProgress=true condition older than this is treated as abandoned
    stale_in_progress_seconds: float = 3600
    exec_timeout_seconds: float = 120
    log_dir: Optional[str] = None
    crd: CrdSpec = Field(default_factory=CrdSpec)
    waits: WaitSettings = Field(default_factory=WaitSettings)
    admission: AdmissionSettings = Field(default_factory=AdmissionSettings)
