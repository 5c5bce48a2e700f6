# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

# src/dirop/k8s/client.py
from __future__ import annotations

import base64
import contextlib
import logging
from typing import Any, Dict, Iterator, List, Optional, Tuple

from kubernetes import client, config
from kubernetes.client.rest import ApiException
from kubernetes.stream import stream

from ..config.models import CrdSpec
from ..errors import ConflictError, NotFoundError, PlatformError
from ..names import selector

log = logging.getLogger("dirop")

Object = Dict[str, Any]


def load_kube(*, in_cluster: bool = False, context: Optional[str] = None) -> None:
    """In-cluster service account first, kubeconfig as a fallback."""
    if in_cluster:
        config.load_incluster_config()
        return
    try:
        config.load_incluster_config()
    except config.ConfigException:
        config.load_kube_config(context=context)


@contextlib.contextmanager
def _translate(action: str, kind: str, name: str) -> Iterator[None]:
    try:
        yield
    except ApiException as e:
        if e.status == 404:
            raise NotFoundError(f"{kind} {name} was not found", kind=kind, name=name) from e
        if e.status == 409:
            raise ConflictError(f"{action} {kind} {name} conflicted: {e.reason}") from e
        raise PlatformError(f"{action} {kind} {name} failed: {e.status} {e.reason}", status=e.status) from e


class KubePlatform:
    """Platform implementation on the official kubernetes client."""

    def __init__(
        self,
        *,
        crd: Optional[CrdSpec] = None,
        exec_timeout_seconds: float = 120,
        api_client: Optional[client.ApiClient] = None,
    ):
        self.crd = crd or CrdSpec()
        self.exec_timeout_seconds = exec_timeout_seconds
        self.api_client = api_client or client.ApiClient()
        self.core = client.CoreV1Api(self.api_client)
        self.apps = client.AppsV1Api(self.api_client)
        self.batch = client.BatchV1Api(self.api_client)
        self.custom = client.CustomObjectsApi(self.api_client)
        # stream() swaps the request method of the api client it is given
        self._exec_core = client.CoreV1Api(client.ApiClient(self.api_client.configuration))

    # ------------------------------------------------------------------
    def _to_dict(self, obj: Any) -> Object:
        return self.api_client.sanitize_for_serialization(obj)

    def _get(self, kind: str, name: str, fn, *args, **kwargs) -> Optional[Object]:
        try:
            with _translate("get", kind, name):
                return self._to_dict(fn(*args, **kwargs))
        except NotFoundError:
            return None

    # ------------------------------------------------------------------
    # Directory deployment documents
    # ------------------------------------------------------------------
    def get_document(self, namespace: str, name: str) -> Optional[Object]:
        try:
            with _translate("get", self.crd.kind, name):
                return self.custom.get_namespaced_custom_object(
                    self.crd.group, self.crd.version, namespace, self.crd.plural, name
                )
        except NotFoundError:
            return None

    def replace_document_status(self, namespace: str, name: str, status: Object) -> Object:
        """Read-modify-write of the status subresource; a lost race surfaces as ConflictError."""
        with _translate("get", self.crd.kind, name):
            current = self.custom.get_namespaced_custom_object(
                self.crd.group, self.crd.version, namespace, self.crd.plural, name
            )
        # kopf keeps its own progress under status.kopf
        current["status"] = {**(current.get("status") or {}), **status}
        with _translate("update status of", self.crd.kind, name):
            return self.custom.replace_namespaced_custom_object_status(
                self.crd.group, self.crd.version, namespace, self.crd.plural, name, current
            )

    # ------------------------------------------------------------------
    # Pods
    # ------------------------------------------------------------------
    def list_pods(self, namespace: str, labels: Dict[str, str]) -> List[Object]:
        with _translate("list", "Pod", selector(labels)):
            resp = self.core.list_namespaced_pod(namespace, label_selector=selector(labels))
        return [self._to_dict(p) for p in resp.items]

    def get_pod(self, namespace: str, name: str) -> Optional[Object]:
        return self._get("Pod", name, self.core.read_namespaced_pod, name, namespace)

    def create_pod(self, namespace: str, body: Object) -> None:
        with _translate("create", "Pod", body["metadata"]["name"]):
            self.core.create_namespaced_pod(namespace, body)

    def delete_pod(self, namespace: str, name: str) -> None:
        with _translate("delete", "Pod", name):
            self.core.delete_namespaced_pod(name, namespace)

    def exec_command(self, namespace: str, pod: str, command: List[str]) -> Tuple[int, str, str]:
        log.debug("exec in %s/%s: %s", namespace, pod, " ".join(command))
        with _translate("exec in", "Pod", pod):
            resp = stream(
                self._exec_core.connect_get_namespaced_pod_exec,
                pod,
                namespace,
                command=command,
                stderr=True,
                stdin=False,
                stdout=True,
                tty=False,
                _preload_content=False,
            )
        try:
            resp.run_forever(timeout=self.exec_timeout_seconds)
            out = resp.read_stdout() or ""
            err = resp.read_stderr() or ""
            rc = resp.returncode
        finally:
            resp.close()
        if rc is None:
            raise PlatformError(f"command in pod {pod} did not complete within {self.exec_timeout_seconds}s")
        return rc, out, err

    # ------------------------------------------------------------------
    # Services
    # ------------------------------------------------------------------
    def get_service(self, namespace: str, name: str) -> Optional[Object]:
        return self._get("Service", name, self.core.read_namespaced_service, name, namespace)

    def create_service(self, namespace: str, body: Object) -> None:
        with _translate("create", "Service", body["metadata"]["name"]):
            self.core.create_namespaced_service(namespace, body)

    def delete_service(self, namespace: str, name: str) -> None:
        with _translate("delete", "Service", name):
            self.core.delete_namespaced_service(name, namespace)

    # ------------------------------------------------------------------
    # Jobs
    # ------------------------------------------------------------------
    def get_job(self, namespace: str, name: str) -> Optional[Object]:
        return self._get("Job", name, self.batch.read_namespaced_job, name, namespace)

    def create_job(self, namespace: str, body: Object) -> None:
        with _translate("create", "Job", body["metadata"]["name"]):
            self.batch.create_namespaced_job(namespace, body)

    def delete_job(self, namespace: str, name: str) -> None:
        # the job's pod goes with it
        with _translate("delete", "Job", name):
            self.batch.delete_namespaced_job(
                name, namespace, body=client.V1DeleteOptions(propagation_policy="Background")
            )

    # ------------------------------------------------------------------
    # Config maps, secrets, claims
    # ------------------------------------------------------------------
    def get_config_map(self, namespace: str, name: str) -> Optional[Object]:
        return self._get("ConfigMap", name, self.core.read_namespaced_config_map, name, namespace)

    def create_config_map(self, namespace: str, body: Object) -> None:
        with _translate("create", "ConfigMap", body["metadata"]["name"]):
            self.core.create_namespaced_config_map(namespace, body)

    def replace_config_map(self, namespace: str, body: Object) -> None:
        name = body["metadata"]["name"]
        with _translate("update", "ConfigMap", name):
            self.core.replace_namespaced_config_map(name, namespace, body)

    def delete_config_map(self, namespace: str, name: str) -> None:
        with _translate("delete", "ConfigMap", name):
            self.core.delete_namespaced_config_map(name, namespace)

    def get_secret(self, namespace: str, name: str) -> Optional[Object]:
        return self._get("Secret", name, self.core.read_namespaced_secret, name, namespace)

    def read_secret_value(self, namespace: str, name: str, key: str) -> Optional[str]:
        secret = self.get_secret(namespace, name)
        if secret is None:
            return None
        data = secret.get("data") or {}
        if key not in data:
            return None
        return base64.b64decode(data[key]).decode("utf-8")

    def get_pvc(self, namespace: str, name: str) -> Optional[Object]:
        return self._get(
            "PersistentVolumeClaim", name,
            self.core.read_namespaced_persistent_volume_claim, name, namespace,
        )

    # ------------------------------------------------------------------
    # Deployments
    # ------------------------------------------------------------------
    def get_deployment(self, namespace: str, name: str) -> Optional[Object]:
        return self._get("Deployment", name, self.apps.read_namespaced_deployment, name, namespace)

    def create_deployment(self, namespace: str, body: Object) -> None:
        with _translate("create", "Deployment", body["metadata"]["name"]):
            self.apps.create_namespaced_deployment(namespace, body)

    def patch_deployment(self, namespace: str, name: str, patch: Object) -> None:
        with _translate("patch", "Deployment", name):
            self.apps.patch_namespaced_deployment(name, namespace, patch)
