# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

# src/dirop/config/loader.py

import logging
import os
import yaml
from pathlib import Path
from typing import Any, Dict

from pydantic import ValidationError

from ..errors import ConfigValidationError
from .models import DirectoryDeployment, OperatorSettings

log = logging.getLogger("dirop")


def _deep_merge(base: dict, override: dict) -> dict:
    """
    Recursively merge *override* into *base* (mutates base).
    Only overwrites when the override value is non-empty.
    """
    for key, value in override.items():
        if (
            key in base
            and isinstance(base[key], dict)
            and isinstance(value, dict)
        ):
            _deep_merge(base[key], value)
        else:
            if value not in (None, ""):
                base[key] = value
    return base


def _find_overrides_file(settings_path: Path) -> Path | None:
    """
    Locate the local overrides file using this priority:

    1. DIROP_OVERRIDES_FILE environment variable (explicit override)
    2. settings.local.yaml in the same directory as the settings file
    """
    env = os.environ.get("DIROP_OVERRIDES_FILE")
    if env:
        p = Path(env)
        if p.is_file():
            return p
        log.warning("DIROP_OVERRIDES_FILE=%s does not exist, skipping", env)
        return None

    p = settings_path.parent / "settings.local.yaml"
    if p.is_file():
        return p

    return None


def _load_yaml(path: Path) -> dict:
    """Load a YAML file, expanding ${ENV_VAR} references."""
    raw = path.read_text()
    expanded = os.path.expandvars(raw)
    return yaml.safe_load(expanded) or {}


def load_settings(path: str | Path | None = None, **overrides: Any) -> OperatorSettings:
    """
    Load and validate the operator settings.

    Without a path the defaults are used.  Keyword overrides (typically
    CLI flags) win over both files; None values are ignored.

    **Local overrides**
        A ``settings.local.yaml`` next to the settings file (or the file
        named by ``DIROP_OVERRIDES_FILE``) is deep-merged into the settings
        before validation, which keeps cluster specific values out of the
        shared file.  ``${ENV_VAR}`` placeholders are expanded in both.
    """
    data: Dict[str, Any] = {}

    if path is not None:
        path = Path(path)
        data = _load_yaml(path)

        overrides_path = _find_overrides_file(path)
        if overrides_path:
            log.debug("Merging local overrides from %s", overrides_path)
            _deep_merge(data, _load_yaml(overrides_path))
        else:
            log.debug("No local overrides found, using %s as is", path)

    _deep_merge(data, {k: v for k, v in overrides.items() if v is not None})

    try:
        return OperatorSettings.model_validate(data)
    except ValidationError as e:
        raise ConfigValidationError(f"Invalid operator settings: {e}") from e


def load_document(source: str | Path | dict) -> DirectoryDeployment:
    """Load a directory deployment document from a YAML file or a dict."""
    if isinstance(source, dict):
        data = source
    else:
        data = yaml.safe_load(Path(source).read_text()) or {}

    try:
        return DirectoryDeployment.model_validate(data)
    except ValidationError as e:
        raise ConfigValidationError(f"The directory deployment document is invalid: {e}") from e
