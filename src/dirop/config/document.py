# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

# src/dirop/config/document.py

from __future__ import annotations

import logging
import re
from typing import Any, List, Optional, Protocol, Sequence, Union

import yaml

from ..errors import ConfigValidationError

log = logging.getLogger("dirop")

SECRET_PREFIX = "secret:"
_SECRET_RE = re.compile(r"secret:(.[^/]*)/(.*)")

Path = Union[str, Sequence[str]]


class SecretReader(Protocol):
    def read_secret_value(self, namespace: str, name: str, key: str) -> Optional[str]:
        """Return the decoded value, or None if the secret or key does not exist."""
        ...


def _normalise(node: Any) -> Any:
    """YAML allows non-string keys; paths are always strings."""
    if isinstance(node, dict):
        return {str(k): _normalise(v) for k, v in node.items()}
    if isinstance(node, list):
        return [_normalise(v) for v in node]
    return node


def _segments(path: Path) -> List[str]:
    if isinstance(path, str):
        return [p for p in path.split(".") if p]
    return list(path)


def _dotted(path: Path) -> str:
    return path if isinstance(path, str) else ".".join(path)


class ConfigDocument:
    """
    Typed, read-only view over a hierarchical configuration document.

    Every getter returns None when the path is absent and raises
    ConfigValidationError when the value is present with the wrong type.
    With ``resolve=True`` a ``secret:<name>/<key>`` value is dereferenced
    through the secret reader; an unresolvable reference reads as absent.
    """

    def __init__(
        self,
        body: dict,
        *,
        namespace: str = "default",
        secrets: Optional[SecretReader] = None,
        source: str = "",
    ):
        self.body = _normalise(body)
        self.namespace = namespace
        self.secrets = secrets
        self.source = source

    @classmethod
    def parse(
        cls,
        text: str,
        *,
        namespace: str = "default",
        secrets: Optional[SecretReader] = None,
        source: str = "",
    ) -> "ConfigDocument":
        try:
            body = yaml.safe_load(text or "")
        except yaml.YAMLError as e:
            raise ConfigValidationError(f"The configuration {source} cannot be parsed: {e}") from e

        if body is None:
            body = {}
        if not isinstance(body, dict):
            raise ConfigValidationError(f"The configuration {source} cannot be parsed.")

        return cls(body, namespace=namespace, secrets=secrets, source=source)

    # ------------------------------------------------------------------
    def has(self, path: Path) -> bool:
        return self.get_value(path) is not None

    def get_value(self, path: Path, *, resolve: bool = False) -> Any:
        node: Any = self.body
        for key in _segments(path):
            if not isinstance(node, dict) or key not in node:
                return None
            node = node[key]
        if resolve:
            return self.resolve(node)
        return node

    def resolve(self, value: Any) -> Any:
        if not isinstance(value, str) or not value.startswith(SECRET_PREFIX):
            return value

        match = _SECRET_RE.fullmatch(value)
        if match is None or self.secrets is None:
            return None

        name, key = match.group(1), match.group(2)
        resolved = self.secrets.read_secret_value(self.namespace, name, key)
        log.debug("[config] resolved secret reference %s/%s (found=%s)", name, key, resolved is not None)
        return resolved

    # ------------------------------------------------------------------
    def get_int(self, path: Path, *, resolve: bool = True) -> Optional[int]:
        value = self.get_value(path, resolve=resolve)
        if value is None:
            return None
        if isinstance(value, bool) or not isinstance(value, int):
            raise ConfigValidationError(f"The {_dotted(path)} configuration is incorrect.")
        return value

    def get_str(self, path: Path, *, resolve: bool = False) -> Optional[str]:
        value = self.get_value(path, resolve=resolve)
        if value is None:
            return None
        if not isinstance(value, str):
            raise ConfigValidationError(f"The {_dotted(path)} configuration is incorrect.")
        return value

    def get_list(self, path: Path) -> Optional[list]:
        value = self.get_value(path)
        if value is None:
            return None
        if not isinstance(value, list):
            raise ConfigValidationError(f"The {_dotted(path)} configuration is incorrect.")
        return value

    def to_dict(self) -> dict:
        return _normalise(self.body)
