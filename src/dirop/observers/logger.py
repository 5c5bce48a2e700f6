# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

# src/dirop/observers/logger.py
from __future__ import annotations
import logging
from .events import BaseEvent, PassFailed, SeedFinished

_CTX = ("ts", "run_id", "namespace", "deployment")


def _level(event: BaseEvent) -> int:
    if isinstance(event, PassFailed):
        return logging.WARNING
    if isinstance(event, SeedFinished) and not event.ok:
        return logging.WARNING
    return logging.INFO


class LoggerObserver:
    """Mirrors events into the operator log, one line per event."""

    def __init__(self, logger: logging.Logger):
        self.logger = logger

    def notify(self, event: BaseEvent) -> None:
        d = event.dict()
        fields = " ".join(f"{k}={v}" for k, v in d.items() if k not in _CTX)
        self.logger.log(
            _level(event),
            "[event] %s/%s %s run=%s %s",
            d["namespace"], d["deployment"], event.__class__.__name__, d["run_id"], fields,
        )
