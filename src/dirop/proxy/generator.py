# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

# src/dirop/proxy/generator.py
from __future__ import annotations

import copy
import logging
from datetime import datetime, timezone
from typing import Any, Callable, Dict, List, Optional

import yaml

from ..config.document import ConfigDocument
from ..config.models import DirectoryDeployment
from ..config.server import ServerConfig, resolve_port
from ..errors import ConfigValidationError, ConflictError, NotFoundError
from ..k8s import manifests
from ..k8s.interface import Platform
from ..names import PROXY_CONFIG_KEY, RESTARTED_AT_ANNOTATION
from ..observers.dispatcher import BoundBus
from ..observers.events import ProxyConfigUnchanged, ProxyConfigUpdated, ProxyCreated, ProxyRestarted

log = logging.getLogger("dirop")

# Keys under "proxy" that only the generator may write.
GENERATED_KEYS = ("server-groups", "suffixes")


def check_generated_keys(doc: ConfigDocument) -> None:
    for key in GENERATED_KEYS:
        if doc.has(["proxy", key]):
            raise ConfigValidationError(
                f"The proxy.{key} configuration is managed by the operator and must not be supplied."
            )


def read_proxy_document(platform: Platform, doc: DirectoryDeployment) -> ConfigDocument:
    """The user-supplied base configuration of the proxy."""
    ref = doc.spec.pods.config_map.proxy
    cm = platform.get_config_map(doc.namespace, ref.name)
    if cm is None:
        raise NotFoundError(f"The ConfigMap {ref.name} does not exist.", kind="ConfigMap", name=ref.name)
    data = cm.get("data") or {}
    if ref.key not in data:
        raise ConfigValidationError(f"The ConfigMap {ref.name} does not contain the {ref.key} key.")
    return ConfigDocument.parse(
        data[ref.key], namespace=doc.namespace, secrets=platform, source=f"{ref.name}/{ref.key}"
    )


def render_proxy_config(base: ConfigDocument, instances: List[str], config: ServerConfig) -> str:
    """
    Full proxy document: the base document with one partition per suffix
    (every instance serving every suffix) and a single server group.

    Keys are sorted so identical inputs render byte-identical output.
    """
    check_generated_keys(base)

    body: Dict[str, Any] = copy.deepcopy(base.to_dict())
    proxy = body.get("proxy")
    if proxy is None:
        proxy = {}
    if not isinstance(proxy, dict):
        raise ConfigValidationError("The proxy configuration is incorrect.")

    proxy["suffixes"] = [
        {
            "base": suffix,
            "name": f"split_{idx}",
            "servers": [{"name": name} for name in instances],
        }
        for idx, suffix in enumerate(config.suffixes)
    ]
    proxy["server-groups"] = [
        {
            "name": "proxy",
            "servers": [
                {
                    "name": name,
                    "id": name,
                    "target": f"{config.scheme}://{name}:{config.port}",
                    "user": {"dn": config.admin_dn, "password": config.admin_pwd},
                }
                for name in instances
            ],
        }
    ]
    body["proxy"] = proxy

    return yaml.safe_dump(body, sort_keys=True, default_flow_style=False)


def _now() -> str:
    return datetime.now(timezone.utc).isoformat(timespec="seconds").replace("+00:00", "Z")


class ProxyGenerator:
    """
    Owns the generated proxy configuration document and the proxy
    deployment built from it.
    """

    def __init__(
        self,
        platform: Platform,
        doc: DirectoryDeployment,
        config: ServerConfig,
        *,
        bus: Optional[BoundBus] = None,
        clock: Callable[[], str] = _now,
    ):
        self.platform = platform
        self.doc = doc
        self.config = config
        self.bus = bus
        self.clock = clock

    @property
    def namespace(self) -> str:
        return self.doc.namespace

    def _emit(self, event_type, **fields) -> None:
        if self.bus:
            self.bus.emit(event_type, **fields)

    # ------------------------------------------------------------------
    def render(self, identities: List[str]) -> tuple[str, int]:
        base = read_proxy_document(self.platform, self.doc)
        port, _ = resolve_port(base)
        instances = [self.doc.replica_name(i) for i in identities]
        return render_proxy_config(base, instances, self.config), port

    def apply(self, identities: List[str]) -> bool:
        """
        Render, store if changed, and restart (or create) the proxy.
        Returns True when the stored document changed.
        """
        content, port = self.render(identities)
        updated = self.save(content, [self.doc.replica_name(i) for i in identities])
        if updated:
            self.deploy(port)
        elif self.platform.get_deployment(self.namespace, self.doc.proxy_name()) is None:
            # configuration survived but the deployment did not
            self.deploy(port)
        return updated

    def save(self, content: str, servers: List[str]) -> bool:
        name = self.doc.proxy_config_name()
        existing = self.platform.get_config_map(self.namespace, name)

        if existing is not None and (existing.get("data") or {}).get(PROXY_CONFIG_KEY) == content:
            log.info("[proxy] configuration %s is unchanged", name)
            self._emit(ProxyConfigUnchanged, config_map=name)
            return False

        body = manifests.proxy_config_map(self.doc, content)
        if existing is None:
            self.platform.create_config_map(self.namespace, body)
        else:
            self.platform.replace_config_map(self.namespace, body)
        log.info("[proxy] configuration %s written (%d servers)", name, len(servers))
        self._emit(ProxyConfigUpdated, config_map=name, servers=servers)
        return True

    def deploy(self, port: int) -> None:
        name = self.doc.proxy_name()
        if self.platform.get_deployment(self.namespace, name) is not None:
            patch = {
                "spec": {
                    "template": {
                        "metadata": {"annotations": {RESTARTED_AT_ANNOTATION: self.clock()}}
                    }
                }
            }
            self.platform.patch_deployment(self.namespace, name, patch)
            log.info("[proxy] rolling restart of %s", name)
            self._emit(ProxyRestarted, name=name)
            return

        self.platform.create_deployment(self.namespace, manifests.proxy_deployment(self.doc, port))
        try:
            self.platform.create_service(self.namespace, manifests.proxy_service(self.doc, port))
        except ConflictError:
            log.debug("[proxy] service %s already exists", name)
        log.info("[proxy] created %s on port %d", name, port)
        self._emit(ProxyCreated, name=name, port=port)
