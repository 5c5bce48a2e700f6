# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

# src/dirop/observers/dispatcher.py
from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional

from .events import BaseEvent, utc_now

log = logging.getLogger("dirop")


class EventBus:
    def __init__(self, observers: Optional[List] = None):
        self._observers = observers or []

    def emit(self, event: BaseEvent) -> None:
        for ob in self._observers:
            try:
                ob.notify(event)
            except Exception:
                # observers must not break a reconciliation pass
                log.debug("observer %r failed on %s", ob, event.__class__.__name__, exc_info=True)


class BoundBus:
    """
    An EventBus bound to the context of one pass, so emitters only
    supply the event-specific fields.
    """

    def __init__(self, bus: EventBus, ctx: Dict[str, Any]):
        self.bus = bus
        self.ctx = ctx

    @property
    def run_id(self) -> str:
        return self.ctx["run_id"]

    def emit(self, event_type: type, **fields: Any) -> None:
        ctx = dict(self.ctx, ts=utc_now())
        self.bus.emit(event_type(**ctx, **fields))
