# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

# src/dirop/k8s/manifests.py

from __future__ import annotations

from typing import Any, Dict, List

from ..config.models import DirectoryDeployment
from ..names import (
    CONFIG_KEY,
    CR_NAME_LABEL,
    KIND_LABEL,
    PROXY_CONFIG_KEY,
    PROXY_IMAGE,
    SEED_IMAGE,
    SERVER_IMAGE,
    image_name,
    labels_for_app,
    proxy_config_name,
    proxy_deployment_name,
    replica_name,
    seed_config_name,
    seed_job_name,
)

SEED_CONFIG = "seed: \n  replica: \n    clean: true\n"

_LIVENESS = {
    "initialDelaySeconds": 2,
    "periodSeconds": 10,
    "exec": {"command": ["/sbin/health_check.sh", "livenessProbe"]},
}

_READINESS = {
    "initialDelaySeconds": 4,
    "periodSeconds": 5,
    "exec": {"command": ["/sbin/health_check.sh"]},
}


def _metadata(doc: DirectoryDeployment, name: str, labels: Dict[str, str]) -> Dict[str, Any]:
    meta: Dict[str, Any] = {
        "name": name,
        "namespace": doc.namespace,
        "labels": labels,
    }
    if doc.metadata.uid:
        meta["ownerReferences"] = [doc.owner_reference()]
    return meta


def _image(doc: DirectoryDeployment, image: str) -> str:
    return image_name(doc.spec.pods.image.repo, image, doc.spec.pods.image.label)


def _container_common(doc: DirectoryDeployment) -> Dict[str, Any]:
    pods = doc.spec.pods
    c: Dict[str, Any] = {}
    if pods.image.image_pull_policy:
        c["imagePullPolicy"] = pods.image.image_pull_policy
    return c


def _pod_spec_common(doc: DirectoryDeployment) -> Dict[str, Any]:
    pods = doc.spec.pods
    spec: Dict[str, Any] = {}
    if pods.image.image_pull_secrets:
        spec["imagePullSecrets"] = list(pods.image.image_pull_secrets)
    if pods.service_account_name:
        spec["serviceAccountName"] = pods.service_account_name
    return spec


def _config_volume(name: str, config_map: str, key: str) -> Dict[str, Any]:
    return {
        "name": name,
        "configMap": {"name": config_map, "items": [{"key": key, "path": key}]},
    }


def _claim_volume(name: str, claim: str, read_only: bool) -> Dict[str, Any]:
    return {
        "name": name,
        "persistentVolumeClaim": {"claimName": claim, "readOnly": read_only},
    }


def _service(meta: Dict[str, Any], selector: Dict[str, str], port: int) -> Dict[str, Any]:
    return {
        "apiVersion": "v1",
        "kind": "Service",
        "metadata": meta,
        "spec": {
            "type": "ClusterIP",
            "selector": selector,
            "ports": [
                {
                    "name": meta["name"],
                    "protocol": "TCP",
                    "port": port,
                    "targetPort": port,
                }
            ],
        },
    }


# ---------------------------------------------------------------------
# Replica instance / endpoint
# ---------------------------------------------------------------------
def replica_pod(doc: DirectoryDeployment, identity: str, port: int) -> Dict[str, Any]:
    pods = doc.spec.pods
    name = replica_name(doc.name, identity)
    server = pods.config_map.server

    env: List[Dict[str, Any]] = list(pods.env) + [
        {"name": "YAML_CONFIG_FILE", "value": f"/var/isvd/config/{server.key}"},
        {"name": "general.id", "value": name},
    ]

    container = {
        "name": name,
        "image": _image(doc, SERVER_IMAGE),
        "env": env,
        "ports": [{"name": "ldap", "containerPort": port, "protocol": "TCP"}],
        "livenessProbe": dict(_LIVENESS),
        "readinessProbe": dict(_READINESS),
        "volumeMounts": [
            {"name": "isvd-server-config", "mountPath": "/var/isvd/config"},
            {"name": "isvd-data", "mountPath": "/var/isvd/data"},
        ],
        **_container_common(doc),
    }
    if pods.env_from:
        container["envFrom"] = list(pods.env_from)
    if pods.resources:
        container["resources"] = dict(pods.resources)

    return {
        "apiVersion": "v1",
        "kind": "Pod",
        "metadata": _metadata(doc, name, labels_for_app(doc.name, identity)),
        "spec": {
            "hostname": name,
            "containers": [container],
            "volumes": [
                _config_volume("isvd-server-config", server.name, server.key),
                _claim_volume("isvd-data", identity, read_only=False),
            ],
            **_pod_spec_common(doc),
        },
    }


def replica_service(doc: DirectoryDeployment, identity: str, port: int) -> Dict[str, Any]:
    labels = labels_for_app(doc.name, identity)
    meta = _metadata(doc, replica_name(doc.name, identity), labels)
    return _service(meta, labels, port)


# ---------------------------------------------------------------------
# Seeding
# ---------------------------------------------------------------------
def seed_config_map(doc: DirectoryDeployment) -> Dict[str, Any]:
    name = seed_config_name(doc.name)
    return {
        "apiVersion": "v1",
        "kind": "ConfigMap",
        "metadata": _metadata(doc, name, labels_for_app(doc.name, name)),
        "data": {CONFIG_KEY: SEED_CONFIG},
    }


def seed_job(
    doc: DirectoryDeployment,
    principal: str,
    identity: str,
    license_key: str,
) -> Dict[str, Any]:
    """
    One-shot task which copies the (stopped) principal's data volume into
    the new replica's volume with a destructive clean seed.
    """
    pods = doc.spec.pods
    name = seed_job_name(doc.name, identity)

    env: List[Dict[str, Any]] = list(pods.env) + [
        {"name": "general.license.accept", "value": "limited"},
        {"name": "general.license.key", "value": license_key},
        {"name": "YAML_CONFIG_FILE", "value": f"/var/isvd/config/{CONFIG_KEY}"},
    ]

    container = {
        "name": name,
        "image": _image(doc, SEED_IMAGE),
        "env": env,
        "volumeMounts": [
            {"name": "isvd-server-config", "mountPath": "/var/isvd/config"},
            {"name": "isvd-data", "mountPath": "/var/isvd/data"},
            {"name": "isvd-principal", "mountPath": "/var/isvd/source"},
        ],
        **_container_common(doc),
    }

    return {
        "apiVersion": "batch/v1",
        "kind": "Job",
        "metadata": _metadata(doc, name, labels_for_app(doc.name, identity)),
        "spec": {
            "completions": 1,
            "backoffLimit": 1,
            "ttlSecondsAfterFinished": 60,
            "template": {
                "spec": {
                    "restartPolicy": "Never",
                    "containers": [container],
                    "volumes": [
                        _config_volume("isvd-server-config", seed_config_name(doc.name), CONFIG_KEY),
                        _claim_volume("isvd-data", identity, read_only=False),
                        _claim_volume("isvd-principal", principal, read_only=True),
                    ],
                    **_pod_spec_common(doc),
                }
            },
        },
    }


# ---------------------------------------------------------------------
# Proxy
# ---------------------------------------------------------------------
def proxy_labels(doc: DirectoryDeployment) -> Dict[str, str]:
    return {
        KIND_LABEL: doc.kind,
        CR_NAME_LABEL: proxy_deployment_name(doc.name),
    }


def proxy_config_map(doc: DirectoryDeployment, content: str) -> Dict[str, Any]:
    name = proxy_config_name(doc.name)
    return {
        "apiVersion": "v1",
        "kind": "ConfigMap",
        "metadata": _metadata(doc, name, labels_for_app(doc.name, name)),
        "data": {PROXY_CONFIG_KEY: content},
    }


def proxy_deployment(doc: DirectoryDeployment, port: int) -> Dict[str, Any]:
    pods = doc.spec.pods
    name = proxy_deployment_name(doc.name)
    labels = proxy_labels(doc)

    volumes = [_config_volume("isvd-proxy-config", proxy_config_name(doc.name), PROXY_CONFIG_KEY)]
    mounts = [{"name": "isvd-proxy-config", "mountPath": "/var/isvd/config"}]

    if pods.proxy.pvc:
        volumes.append(_claim_volume("isvd-proxy-data", pods.proxy.pvc, read_only=False))
        mounts.append({"name": "isvd-proxy-data", "mountPath": "/var/isvd/data"})

    container = {
        "name": name,
        "image": _image(doc, PROXY_IMAGE),
        "env": list(pods.env) + [
            {"name": "YAML_CONFIG_FILE", "value": f"/var/isvd/config/{PROXY_CONFIG_KEY}"},
        ],
        "ports": [{"name": "ldap", "containerPort": port, "protocol": "TCP"}],
        "livenessProbe": dict(_LIVENESS),
        "readinessProbe": dict(_READINESS),
        "volumeMounts": mounts,
        **_container_common(doc),
    }
    if pods.env_from:
        container["envFrom"] = list(pods.env_from)
    if pods.resources:
        container["resources"] = dict(pods.resources)

    return {
        "apiVersion": "apps/v1",
        "kind": "Deployment",
        "metadata": _metadata(doc, name, labels_for_app(doc.name, name)),
        "spec": {
            "replicas": 1,
            "selector": {"matchLabels": labels},
            "template": {
                "metadata": {"labels": labels},
                "spec": {
                    "hostname": name,
                    "containers": [container],
                    "volumes": volumes,
                    **_pod_spec_common(doc),
                },
            },
        },
    }


def proxy_service(doc: DirectoryDeployment, port: int) -> Dict[str, Any]:
    labels = proxy_labels(doc)
    meta = _metadata(doc, proxy_deployment_name(doc.name), labels)
    return _service(meta, labels, port)
