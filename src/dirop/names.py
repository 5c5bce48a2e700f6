# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

# src/dirop/names.py
from __future__ import annotations

from typing import Dict

PVC_LABEL = "app.kubernetes.io/pvc-name"
CREATED_BY_LABEL = "app.kubernetes.io/created-by"
PART_OF_LABEL = "app.kubernetes.io/part-of"
CR_NAME_LABEL = "app.kubernetes.io/cr-name"
KIND_LABEL = "app.kubernetes.io/kind"

CONFIG_KEY = "config.yaml"
PROXY_CONFIG_KEY = "config.yaml"
RESTARTED_AT_ANNOTATION = "kubectl.kubernetes.io/restartedAt"

SERVER_IMAGE = "verify-directory-server"
SEED_IMAGE = "verify-directory-seed"
PROXY_IMAGE = "verify-directory-proxy"


def replica_name(deployment: str, identity: str) -> str:
    """Instance, endpoint and server id of a replica."""
    return f"{deployment}-{identity}".lower()


def seed_job_name(deployment: str, identity: str) -> str:
    return f"{replica_name(deployment, identity)}-seed"


def seed_config_name(deployment: str) -> str:
    return f"{deployment}-seed".lower()


def proxy_deployment_name(deployment: str) -> str:
    return f"{deployment}-proxy".lower()


def proxy_config_name(deployment: str) -> str:
    return f"{deployment}-proxy".lower()


def image_name(repo: str, image: str, label: str) -> str:
    return f"{repo}/{image}:{label}"


def labels_for_app(deployment: str, identity: str = "") -> Dict[str, str]:
    labels = {
        CREATED_BY_LABEL: "directory-operator",
        PART_OF_LABEL: "verify-directory",
        CR_NAME_LABEL: deployment,
    }
    if identity:
        labels[PVC_LABEL] = identity
    return labels


def selector(labels: Dict[str, str]) -> str:
    return ",".join(f"{k}={v}" for k, v in sorted(labels.items()))
