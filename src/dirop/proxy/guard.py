# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

# src/dirop/proxy/guard.py
from __future__ import annotations

import logging
import re
import ssl
from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Protocol, Set, Tuple

from ldap3 import BASE, Connection, Server, Tls
from ldap3.core.exceptions import LDAPException

from ..config.document import ConfigDocument
from ..config.models import DirectoryDeployment
from ..config.server import DEFAULT_ADMIN_DN
from ..errors import AdmissionError, DirectoryOperatorError
from ..k8s.interface import Platform
from ..names import PROXY_CONFIG_KEY
from ..topology.diff import diff_topology
from ..topology.store import RunningTopology

log = logging.getLogger("dirop")

PARTITIONS_BASE = "cn=partitions,cn=proxy,cn=monitor"
ROLE_ATTRIBUTE = "ibm-slapdProxyCurrentServerRole"
PRIMARY_ROLE = "primarywriteserver"

# (dn, {attribute: [values]})
Entry = Tuple[str, Dict[str, List[str]]]


@dataclass(frozen=True)
class ProxyEndpoint:
    host: str
    port: int
    secure: bool
    bind_dn: str
    password: str = field(repr=False)

    @property
    def url(self) -> str:
        return f"{'ldaps' if self.secure else 'ldap'}://{self.host}:{self.port}"


class DirectoryQueryClient(Protocol):
    def search_base(self, endpoint: ProxyEndpoint, base: str) -> List[Entry]:
        """Bind with the endpoint's credential and return the base-scope entries."""
        ...


class Ldap3QueryClient:
    """DirectoryQueryClient on ldap3; the proxy's certificate is not verified."""

    def __init__(self, timeout_seconds: int = 10):
        self.timeout_seconds = timeout_seconds

    def search_base(self, endpoint: ProxyEndpoint, base: str) -> List[Entry]:
        tls = Tls(validate=ssl.CERT_NONE) if endpoint.secure else None
        server = Server(
            endpoint.host,
            port=endpoint.port,
            use_ssl=endpoint.secure,
            tls=tls,
            connect_timeout=self.timeout_seconds,
        )
        conn = Connection(
            server,
            user=endpoint.bind_dn,
            password=endpoint.password,
            receive_timeout=self.timeout_seconds,
            raise_exceptions=True,
        )
        try:
            conn.bind()
            conn.search(base, "(objectClass=*)", search_scope=BASE, attributes=["*"])
            return [
                (entry["dn"], {k: [str(v) for v in (vals if isinstance(vals, list) else [vals])]
                               for k, vals in entry.get("attributes", {}).items()})
                for entry in conn.response or []
                if entry.get("type") == "searchResEntry"
            ]
        finally:
            conn.unbind()


def primaries_from_entries(deployment: str, entries: Iterable[Entry]) -> Set[str]:
    """
    Identities designated primary writer for some partition.  The owning
    identity is taken from the backend server name in the entry DN.
    """
    pattern = re.compile(
        rf".*ibm-slapdProxyBackendServerName={re.escape(deployment)}-([^+,]*)", re.IGNORECASE
    )
    primaries: Set[str] = set()
    for dn, attributes in entries:
        for name, values in attributes.items():
            if name.lower() != ROLE_ATTRIBUTE.lower():
                continue
            if len(values) == 1 and values[0] == PRIMARY_ROLE:
                match = pattern.match(dn)
                if match:
                    primaries.add(match.group(1).lower())
    return primaries


class PrimaryCoordinatorGuard:
    """
    Vetoes topology changes that would remove the proxy's primary writer
    or that are requested while a surviving replica is not ready.
    """

    def __init__(self, platform: Platform, query: DirectoryQueryClient):
        self.platform = platform
        self.query = query

    # ------------------------------------------------------------------
    def endpoint(self, doc: DirectoryDeployment) -> ProxyEndpoint:
        """Address from the proxy service, credentials from the generated proxy document."""
        name = doc.proxy_name()
        svc = self.platform.get_service(doc.namespace, name)
        if svc is None:
            raise AdmissionError(f"The proxy service, {name}, does not exist.")
        spec = svc.get("spec") or {}
        ports = spec.get("ports") or []
        if not spec.get("clusterIP") or not ports:
            raise AdmissionError(f"The proxy service, {name}, has no address.")

        cm = self.platform.get_config_map(doc.namespace, doc.proxy_config_name())
        if cm is None:
            raise AdmissionError(f"The proxy ConfigMap, {doc.proxy_config_name()}, does not exist.")

        try:
            cfg = ConfigDocument.parse(
                (cm.get("data") or {}).get(PROXY_CONFIG_KEY, ""),
                namespace=doc.namespace,
                secrets=self.platform,
                source=doc.proxy_config_name(),
            )
            ldap = cfg.get_int("general.ports.ldap")
            admin_dn = cfg.get_str("general.admin.dn", resolve=True) or DEFAULT_ADMIN_DN
            admin_pwd = cfg.get_str("general.admin.pwd", resolve=True)
        except DirectoryOperatorError as e:
            raise AdmissionError(e.message) from e
        if admin_pwd is None:
            raise AdmissionError("The general.admin.pwd configuration is missing.")

        return ProxyEndpoint(
            host=spec["clusterIP"],
            port=int(ports[0]["port"]),
            secure=ldap == 0,
            bind_dn=admin_dn,
            password=admin_pwd,
        )

    def primaries(self, doc: DirectoryDeployment) -> Set[str]:
        endpoint = self.endpoint(doc)
        log.debug("[guard] querying %s for primary writers", endpoint.url)
        try:
            entries = self.query.search_base(endpoint, PARTITIONS_BASE)
        except LDAPException as e:
            raise AdmissionError(f"Failed to query the LDAP proxy at {endpoint.url}: {e}") from e
        if not entries:
            raise AdmissionError("The split information does not exist in the LDAP proxy.")
        found = primaries_from_entries(doc.name, entries)
        log.info("[guard] primary writers for %s/%s: %s", doc.namespace, doc.name, sorted(found))
        return found

    # ------------------------------------------------------------------
    def check(self, doc: DirectoryDeployment, running: RunningTopology) -> None:
        """
        Raise AdmissionError if the requested topology change is unsafe.
        Unchanged topologies are always allowed.
        """
        diff = diff_topology(doc.identities, running.identities())
        if diff.empty:
            return

        not_ready = running.not_ready(diff.remaining(running.identities()))
        if not_ready:
            raise AdmissionError(
                f"The pod, {running.instance(not_ready[0])}, is not currently ready.  You must wait "
                "until all pods are ready before attempting to edit the document."
            )

        if not diff.to_delete:
            return

        primaries = self.primaries(doc)
        for identity in diff.to_delete:
            if identity.lower() in primaries:
                raise AdmissionError(
                    f"The pvc, {identity}, is currently being used as the primary write master "
                    "by the LDAP proxy. As a result it is not currently possible to remove this PVC."
                )
