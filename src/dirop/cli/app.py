# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

# src/dirop/cli/app.py
from __future__ import annotations

import threading
from pathlib import Path
from typing import Optional

import kopf
import typer

from dirop.admission.validator import AdmissionValidator
from dirop.config.loader import load_document, load_settings
from dirop.config.models import OperatorSettings
from dirop.config.server import resolve_server_config
from dirop.controller.handlers import DirectoryController, build_registry
from dirop.controller.reconciler import Reconciler, read_server_document
from dirop.errors import DirectoryOperatorError
from dirop.k8s.client import KubePlatform, load_kube
from dirop.logging.log import init_logging
from dirop.observers.console import ConsoleObserver
from dirop.observers.dispatcher import EventBus
from dirop.observers.jsonfile import JsonFileObserver
from dirop.observers.logger import LoggerObserver
from dirop.proxy.generator import ProxyGenerator
from dirop.proxy.guard import Ldap3QueryClient, PrimaryCoordinatorGuard

# ------------------------------------------------------------------------------
# CLI setup
# ------------------------------------------------------------------------------

app = typer.Typer(help="Directory replica topology operator")

OPERATIONS = ("create", "update", "delete")


def _settings(settings_file: Optional[Path], **overrides) -> OperatorSettings:
    try:
        return load_settings(settings_file, **overrides)
    except DirectoryOperatorError as e:
        typer.echo(f"[settings] {e.message}", err=True)
        raise typer.Exit(2)


def _platform(settings: OperatorSettings) -> KubePlatform:
    load_kube(in_cluster=settings.in_cluster, context=settings.kube_context)
    return KubePlatform(crd=settings.crd, exec_timeout_seconds=settings.exec_timeout_seconds)


def _bus(settings: OperatorSettings, logger, run_id: str, *, console: bool) -> EventBus:
    log_dir = Path(settings.log_dir) if settings.log_dir else Path.home() / ".dirop" / "logs"
    observers = [
        LoggerObserver(logger),
        JsonFileObserver(log_dir / f"{run_id}.jsonl"),
    ]
    if console:
        observers.append(ConsoleObserver())
    return EventBus(observers=observers)


# ------------------------------------------------------------------------------
# Commands
# ------------------------------------------------------------------------------

@app.command()
def run(
    settings_file: Optional[Path] = typer.Option(None, "--settings", help="Operator settings YAML"),
    namespace: Optional[str] = typer.Option(None, "--namespace", help="Watch a single namespace"),
    workers: Optional[int] = typer.Option(None, "--workers", min=1),
    verbose: bool = typer.Option(False, "--verbose"),
):
    """Watch directory deployments and keep them converged."""
    settings = _settings(settings_file, namespace=namespace, workers=workers)
    logger, run_id, log_path = init_logging(
        base_dir=Path(settings.log_dir) if settings.log_dir else None, verbose=verbose
    )
    typer.echo(f"  Run ID   : {run_id}")
    typer.echo(f"  Logs     : {log_path}")

    platform = _platform(settings)
    reconciler = Reconciler(
        platform, settings, bus=_bus(settings, logger, run_id, console=False), cancel=threading.Event()
    )
    validator = AdmissionValidator(platform, PrimaryCoordinatorGuard(platform, Ldap3QueryClient()))
    registry = build_registry(DirectoryController(reconciler, settings, validator))

    kopf.run(
        registry=registry,
        standalone=True,
        clusterwide=settings.namespace is None,
        namespaces=[settings.namespace] if settings.namespace else [],
        liveness_endpoint=settings.liveness_endpoint,
    )


@app.command()
def reconcile(
    name: str = typer.Argument(..., help="Directory deployment name"),
    namespace: str = typer.Option("default", "--namespace"),
    settings_file: Optional[Path] = typer.Option(None, "--settings"),
    verbose: bool = typer.Option(False, "--verbose"),
):
    """Run a single reconciliation pass and print the outcome."""
    settings = _settings(settings_file)
    logger, run_id, _ = init_logging(
        base_dir=Path(settings.log_dir) if settings.log_dir else None, verbose=verbose
    )
    reconciler = Reconciler(
        _platform(settings), settings, bus=_bus(settings, logger, run_id, console=True)
    )

    result = reconciler.reconcile(namespace, name)
    if result.error:
        typer.echo(f"[reconcile] {namespace}/{name} failed (requeue={result.requeue}): {result.error}")
        raise typer.Exit(1)
    if result.requeue:
        typer.echo(f"[reconcile] {namespace}/{name} deferred, try again later")
        raise typer.Exit(3)
    typer.echo(f"[reconcile] {namespace}/{name} {'updated' if result.changed else 'already converged'}")


@app.command()
def validate(
    document: Path = typer.Argument(..., exists=True, help="Directory deployment YAML"),
    old: Optional[Path] = typer.Option(None, "--old", exists=True, help="Current document (update only)"),
    operation: str = typer.Option("create", "--operation", help="create, update or delete"),
    settings_file: Optional[Path] = typer.Option(None, "--settings"),
):
    """Run the admission checks for a document against the live cluster."""
    if operation not in OPERATIONS:
        raise typer.BadParameter(f"operation must be one of {', '.join(OPERATIONS)}")
    if operation == "update" and old is None:
        raise typer.BadParameter("--old is required for update")

    settings = _settings(settings_file)
    init_logging(to_file=False)
    platform = _platform(settings)
    validator = AdmissionValidator(platform, PrimaryCoordinatorGuard(platform, Ldap3QueryClient()))

    try:
        doc = load_document(document)
        if operation == "create":
            validator.validate_create(doc)
        elif operation == "update":
            validator.validate_update(doc, load_document(old))
        else:
            validator.validate_delete(doc)
    except DirectoryOperatorError as e:
        typer.echo(f"[validate] rejected: {e.message}")
        raise typer.Exit(1)

    typer.echo(f"[validate] {operation} of {doc.namespace}/{doc.name} allowed")


@app.command("render-proxy")
def render_proxy(
    name: str = typer.Argument(..., help="Directory deployment name"),
    namespace: str = typer.Option("default", "--namespace"),
    settings_file: Optional[Path] = typer.Option(None, "--settings"),
):
    """Print the proxy configuration that the next pass would write."""
    settings = _settings(settings_file)
    init_logging(to_file=False)
    platform = _platform(settings)

    raw = platform.get_document(namespace, name)
    if raw is None:
        typer.echo(f"[render-proxy] {namespace}/{name} not found", err=True)
        raise typer.Exit(1)

    try:
        doc = load_document(raw)
        config = resolve_server_config(read_server_document(platform, doc))
        content, _ = ProxyGenerator(platform, doc, config).render(doc.identities)
    except DirectoryOperatorError as e:
        typer.echo(f"[render-proxy] {e.message}", err=True)
        raise typer.Exit(1)

    typer.echo(content, nl=False)


if __name__ == "__main__":
    app()
