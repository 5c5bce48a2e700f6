# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

# src/dirop/topology/diff.py
from __future__ import annotations

from dataclasses import dataclass
from typing import Iterable, List, Mapping, Tuple


@dataclass(frozen=True)
class TopologyDiff:
    """
    Result of comparing the desired identities with the running ones.

    ``to_add`` keeps the desired order (the first entry becomes the principal
    when nothing is running); ``to_delete`` keeps the running order.
    """

    to_add: Tuple[str, ...] = ()
    to_delete: Tuple[str, ...] = ()

    @property
    def empty(self) -> bool:
        return not self.to_add and not self.to_delete

    def remaining(self, running: Iterable[str]) -> List[str]:
        """Running identities that survive the delete plan."""
        gone = set(self.to_delete)
        return [i for i in running if i not in gone]


def diff_topology(desired: Iterable[str], running: Mapping[str, str] | Iterable[str]) -> TopologyDiff:
    desired = list(dict.fromkeys(desired))
    running_ids = list(running)
    wanted = set(desired)
    live = set(running_ids)
    return TopologyDiff(
        to_add=tuple(i for i in desired if i not in live),
        to_delete=tuple(i for i in running_ids if i not in wanted),
    )
