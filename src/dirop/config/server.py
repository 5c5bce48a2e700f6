# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

# src/dirop/config/server.py

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import List, Tuple

from ..errors import ConfigValidationError
from .document import ConfigDocument

log = logging.getLogger("dirop")

DEFAULT_LDAP_PORT = 9389
DEFAULT_LDAPS_PORT = 9636
DEFAULT_ADMIN_DN = "cn=root"


@dataclass(frozen=True)
class ServerConfig:
    port: int
    secure: bool
    license_key: str
    admin_dn: str
    admin_pwd: str = field(repr=False)
    suffixes: Tuple[str, ...] = ()

    @property
    def scheme(self) -> str:
        return "ldaps" if self.secure else "ldap"


def resolve_port(doc: ConfigDocument) -> Tuple[int, bool]:
    """
    general.ports.ldap wins unless it is 0, which means plain LDAP is
    disabled and the (possibly defaulted) LDAPS port is used instead.
    """
    port, secure = DEFAULT_LDAP_PORT, False

    ldap = doc.get_int("general.ports.ldap")
    if ldap is not None:
        port = ldap
        if port == 0:
            secure = True
            port = DEFAULT_LDAPS_PORT
            ldaps = doc.get_int("general.ports.ldaps")
            if ldaps is not None:
                port = ldaps

    return port, secure


def resolve_suffixes(doc: ConfigDocument) -> List[str]:
    entries = doc.get_value("server.suffixes")
    if entries is None:
        raise ConfigValidationError("The server.suffixes configuration is missing.")
    if not isinstance(entries, list):
        raise ConfigValidationError("The server.suffixes configuration is incorrect.")

    suffixes: List[str] = []
    for entry in entries:
        if not isinstance(entry, dict) or not isinstance(entry.get("dn"), str):
            raise ConfigValidationError("The server.suffixes configuration is incorrect.")
        suffixes.append(entry["dn"])
    return suffixes


def resolve_server_config(doc: ConfigDocument) -> ServerConfig:
    """
    Derive the scalar server configuration from the server document.

    The license key and admin password are mandatory; the admin DN falls
    back to cn=root because existing deployments rely on that default.
    """
    port, secure = resolve_port(doc)

    license_key = doc.get_str("general.license.key")
    if license_key is None:
        raise ConfigValidationError("The general.license.key configuration is missing.")

    admin_dn = doc.get_str("general.admin.dn")
    if admin_dn is None:
        admin_dn = DEFAULT_ADMIN_DN

    admin_pwd = doc.get_str("general.admin.pwd")
    if admin_pwd is None:
        raise ConfigValidationError("The general.admin.pwd configuration is missing.")

    cfg = ServerConfig(
        port=port,
        secure=secure,
        license_key=license_key,
        admin_dn=admin_dn,
        admin_pwd=admin_pwd,
        suffixes=tuple(resolve_suffixes(doc)),
    )

    log.info(
        "[config] server configuration: port=%d secure=%s admin.dn=%s admin.pwd=XXX suffixes=%s",
        cfg.port, cfg.secure, cfg.admin_dn, list(cfg.suffixes),
    )
    return cfg
