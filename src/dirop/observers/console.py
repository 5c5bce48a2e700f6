# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

# src/dirop/observers/console.py
from .events import BaseEvent

_CTX = ("ts", "run_id", "namespace", "deployment")


class ConsoleObserver:
    def notify(self, event: BaseEvent) -> None:
        d = event.dict()
        k = event.__class__.__name__
        print(f"[{d['ts']}] {k} run={d['run_id']} {d['namespace']}/{d['deployment']} data={{"
              + ", ".join(f"{x}={y}" for x, y in d.items() if x not in _CTX) + "}")
