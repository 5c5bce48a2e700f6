# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

# src/dirop/observers/interface.py
from __future__ import annotations
from typing import Protocol, runtime_checkable
from .events import BaseEvent


@runtime_checkable
class Observer(Protocol):
    """Anything that wants to hear about reconciliation lifecycle events."""

    def notify(self, event: BaseEvent) -> None: ...
