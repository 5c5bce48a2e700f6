# tests/conftest.py
from __future__ import annotations

import base64
import copy
import textwrap
from typing import Any, Dict, List, Optional, Tuple

import pytest

from dirop.config.models import DirectoryDeployment, WaitSettings
from dirop.config.server import ServerConfig
from dirop.errors import ConflictError, NotFoundError
from dirop.k8s import manifests
from dirop.observers.dispatcher import BoundBus, EventBus
from dirop.observers.events import new_ctx
from dirop.proxy.guard import PARTITIONS_BASE

SERVER_CONFIG = textwrap.dedent("""
    general:
      ports:
        ldap: 9389
      license:
        key: LICENSE-KEY
      admin:
        dn: cn=root
        pwd: passw0rd
    server:
      suffixes:
        - dn: dc=example,dc=com
""")

PROXY_CONFIG = textwrap.dedent("""
    general:
      ports:
        ldap: 9389
      license:
        key: LICENSE-KEY
      admin:
        pwd: passw0rd
    proxy:
      connection-pool-size: 10
""")


class FakePlatform:
    """
    In-memory stand-in for the cluster.

    Pods become ready as soon as they are created and disappear as soon as
    they are deleted; jobs succeed unless listed in ``failing_jobs``.  The
    exec channel understands the replica management command well enough to
    keep track of which agreements exist.
    """

    def __init__(self):
        self.objects: Dict[str, Dict[Tuple[str, str], Dict[str, Any]]] = {
            kind: {} for kind in (
                "document", "pod", "service", "job", "configmap",
                "deployment", "pvc", "secret",
            )
        }
        self.ops: List[Tuple[str, str]] = []
        self.commands: List[Tuple[str, List[str]]] = []
        self.agreements: set = set()
        self.failing_jobs: set = set()
        self.pod_phase = "Running"
        self.pod_ready = True
        self.exec_rc: Optional[int] = None
        self.status_writes: List[Dict[str, Any]] = []

    # ------------------------------------------------------------------
    def _put(self, kind: str, namespace: str, body: Dict[str, Any]) -> None:
        name = body["metadata"]["name"]
        if (namespace, name) in self.objects[kind]:
            raise ConflictError(f"{kind} {name} already exists")
        self.ops.append((f"create_{kind}", name))
        self.objects[kind][(namespace, name)] = copy.deepcopy(body)

    def _get(self, kind: str, namespace: str, name: str):
        obj = self.objects[kind].get((namespace, name))
        return copy.deepcopy(obj) if obj is not None else None

    def _delete(self, kind: str, namespace: str, name: str) -> None:
        if (namespace, name) not in self.objects[kind]:
            raise NotFoundError(f"{kind} {name} was not found", kind=kind, name=name)
        self.ops.append((f"delete_{kind}", name))
        del self.objects[kind][(namespace, name)]

    def names(self, kind: str) -> List[str]:
        return sorted(name for _, name in self.objects[kind])

    def ops_of(self, *kinds: str) -> List[Tuple[str, str]]:
        return [op for op in self.ops if op[0] in kinds]

    # seeding helpers ---------------------------------------------------
    def add_pvc(self, name: str, namespace: str = "default") -> None:
        self.objects["pvc"][(namespace, name)] = {"metadata": {"name": name}}

    def add_config_map(self, name: str, data: Dict[str, str], namespace: str = "default") -> None:
        self.objects["configmap"][(namespace, name)] = {"metadata": {"name": name}, "data": dict(data)}

    def add_secret(self, name: str, data: Dict[str, str], namespace: str = "default") -> None:
        encoded = {k: base64.b64encode(v.encode()).decode() for k, v in data.items()}
        self.objects["secret"][(namespace, name)] = {"metadata": {"name": name}, "data": encoded}

    def add_document(self, body: Dict[str, Any]) -> None:
        meta = body["metadata"]
        self.objects["document"][(meta.get("namespace", "default"), meta["name"])] = copy.deepcopy(body)

    def add_running(self, doc: DirectoryDeployment, identity: str, *, ready: bool = True) -> None:
        pod = manifests.replica_pod(doc, identity, 9389)
        pod["status"] = {
            "phase": "Running",
            "containerStatuses": [{"ready": ready}],
        }
        self.objects["pod"][(doc.namespace, pod["metadata"]["name"])] = pod
        svc = manifests.replica_service(doc, identity, 9389)
        self.objects["service"][(doc.namespace, svc["metadata"]["name"])] = svc

    # documents ----------------------------------------------------------
    def get_document(self, namespace, name):
        return self._get("document", namespace, name)

    def replace_document_status(self, namespace, name, status):
        doc = self.objects["document"].get((namespace, name))
        if doc is None:
            raise NotFoundError(f"document {name} was not found")
        doc["status"] = copy.deepcopy(status)
        self.status_writes.append(copy.deepcopy(status))
        return copy.deepcopy(doc)

    # pods -----------------------------------------------------------------
    def list_pods(self, namespace, labels):
        out = []
        for (ns, _), pod in self.objects["pod"].items():
            pod_labels = pod["metadata"].get("labels") or {}
            if ns == namespace and all(pod_labels.get(k) == v for k, v in labels.items()):
                out.append(copy.deepcopy(pod))
        return out

    def get_pod(self, namespace, name):
        return self._get("pod", namespace, name)

    def create_pod(self, namespace, body):
        body = copy.deepcopy(body)
        body["status"] = {
            "phase": self.pod_phase,
            "containerStatuses": [{"ready": self.pod_ready}],
        }
        self._put("pod", namespace, body)

    def delete_pod(self, namespace, name):
        self._delete("pod", namespace, name)

    def exec_command(self, namespace, pod, command):
        self.commands.append((pod, list(command)))
        if self.exec_rc is not None:
            return self.exec_rc, "", "forced failure"
        if "-r" in command:
            key = (pod, command[command.index("-i") + 1])
            if key in self.agreements:
                self.agreements.discard(key)
                return 0, "removed", ""
            return 1, "", "no such agreement"
        if "-ap" in command or "-ar" in command:
            self.agreements.add((pod, command[command.index("-i") + 1]))
            return 0, "added", ""
        return 0, "", ""

    # services ------------------------------------------------------------
    def get_service(self, namespace, name):
        return self._get("service", namespace, name)

    def create_service(self, namespace, body):
        self._put("service", namespace, body)

    def delete_service(self, namespace, name):
        self._delete("service", namespace, name)

    # jobs -----------------------------------------------------------------
    def get_job(self, namespace, name):
        return self._get("job", namespace, name)

    def create_job(self, namespace, body):
        body = copy.deepcopy(body)
        name = body["metadata"]["name"]
        body["status"] = {"failed": 1} if name in self.failing_jobs else {"succeeded": 1}
        self._put("job", namespace, body)

    def delete_job(self, namespace, name):
        self._delete("job", namespace, name)

    # config maps / secrets / claims ------------------------------------
    def get_config_map(self, namespace, name):
        return self._get("configmap", namespace, name)

    def create_config_map(self, namespace, body):
        self._put("configmap", namespace, body)

    def replace_config_map(self, namespace, body):
        name = body["metadata"]["name"]
        if (namespace, name) not in self.objects["configmap"]:
            raise NotFoundError(f"configmap {name} was not found")
        self.ops.append(("replace_configmap", name))
        self.objects["configmap"][(namespace, name)] = copy.deepcopy(body)

    def delete_config_map(self, namespace, name):
        self._delete("configmap", namespace, name)

    def get_secret(self, namespace, name):
        return self._get("secret", namespace, name)

    def read_secret_value(self, namespace, name, key):
        secret = self.get_secret(namespace, name)
        if secret is None or key not in secret.get("data", {}):
            return None
        return base64.b64decode(secret["data"][key]).decode()

    def get_pvc(self, namespace, name):
        return self._get("pvc", namespace, name)

    # deployments -----------------------------------------------------------
    def get_deployment(self, namespace, name):
        return self._get("deployment", namespace, name)

    def create_deployment(self, namespace, body):
        self._put("deployment", namespace, body)

    def patch_deployment(self, namespace, name, patch):
        if (namespace, name) not in self.objects["deployment"]:
            raise NotFoundError(f"deployment {name} was not found")
        self.ops.append(("patch_deployment", name))
        annotations = patch["spec"]["template"]["metadata"]["annotations"]
        dep = self.objects["deployment"][(namespace, name)]
        dep["spec"]["template"]["metadata"].setdefault("annotations", {}).update(annotations)


class Capture:
    """Observer which keeps every event it is given."""

    def __init__(self):
        self.events = []

    def notify(self, event):
        self.events.append(event)

    def of(self, event_type):
        return [e for e in self.events if isinstance(e, event_type)]

    def names(self):
        return [type(e).__name__ for e in self.events]


class FakeQuery:
    """Directory query client answering from a fixed list of entries."""

    def __init__(self, entries=None, error=None):
        self.entries = entries or []
        self.error = error
        self.calls = []

    def search_base(self, endpoint, base):
        self.calls.append((endpoint, base))
        if self.error:
            raise self.error
        return self.entries


def partition_entry(identity, role, deployment="directory"):
    dn = f"ibm-slapdProxyBackendServerName={deployment}-{identity},cn=split_0,{PARTITIONS_BASE}"
    return dn, {"ibm-slapdProxyCurrentServerRole": [role]}


def make_document(
    pvcs: List[str],
    *,
    name: str = "directory",
    namespace: str = "default",
    generation: int = 1,
    conditions: Optional[List[Dict[str, Any]]] = None,
    proxy_pvc: str = "",
) -> Dict[str, Any]:
    return {
        "apiVersion": "dirop.io/v1",
        "kind": "DirectoryDeployment",
        "metadata": {
            "name": name,
            "namespace": namespace,
            "generation": generation,
            "uid": "1234-abcd",
        },
        "spec": {
            "replicas": {"pvcs": list(pvcs)},
            "pods": {
                "image": {"repo": "icr.io/isvd", "label": "24.12"},
                "configMap": {
                    "server": {"name": "server-config", "key": "config.yaml"},
                    "proxy": {"name": "proxy-config", "key": "config.yaml"},
                },
                "proxy": {"pvc": proxy_pvc},
            },
        },
        "status": {"conditions": conditions or []},
    }


@pytest.fixture
def platform() -> FakePlatform:
    p = FakePlatform()
    p.add_config_map("server-config", {"config.yaml": SERVER_CONFIG})
    p.add_config_map("proxy-config", {"config.yaml": PROXY_CONFIG})
    for claim in ("v1", "v2", "v3", "v4", "proxy-data"):
        p.add_pvc(claim)
    return p


@pytest.fixture
def capture() -> Capture:
    return Capture()


@pytest.fixture
def bus(capture) -> BoundBus:
    return BoundBus(EventBus([capture]), new_ctx("default", "directory", run_id="test-run"))


@pytest.fixture
def waits() -> WaitSettings:
    return WaitSettings(
        ready_timeout_seconds=0.05,
        terminate_timeout_seconds=0.05,
        seed_timeout_seconds=0.05,
        interval_seconds=0.01,
    )


@pytest.fixture
def server_config() -> ServerConfig:
    return ServerConfig(
        port=9389,
        secure=False,
        license_key="LICENSE-KEY",
        admin_dn="cn=root",
        admin_pwd="passw0rd",
        suffixes=("dc=example,dc=com",),
    )


@pytest.fixture
def proxy_platform(platform) -> FakePlatform:
    platform.objects["service"][("default", "directory-proxy")] = {
        "metadata": {"name": "directory-proxy"},
        "spec": {"clusterIP": "10.0.0.12", "ports": [{"port": 9636}]},
    }
    platform.add_secret("proxy-admin", {"password": "from-secret"})
    platform.add_config_map("directory-proxy", {"config.yaml": textwrap.dedent("""
        general:
          ports:
            ldap: 0
          admin:
            pwd: "secret:proxy-admin/password"
    """)})
    return platform
