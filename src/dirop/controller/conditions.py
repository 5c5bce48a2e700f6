# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

# src/dirop/controller/conditions.py
from __future__ import annotations

from datetime import datetime
from typing import List, Optional

from ..config.models import Condition, DirectoryDeployment

IN_PROGRESS = "InProgress"
AVAILABLE = "Available"


def set_condition(conditions: List[Condition], new: Condition, now: datetime) -> None:
    """
    Insert or update ``new`` in place.  The transition time only moves when
    the status flips.
    """
    for idx, current in enumerate(conditions):
        if current.type != new.type:
            continue
        changed = current.status != new.status
        conditions[idx] = new.model_copy(
            update={
                "last_transition_time": now if changed or current.last_transition_time is None
                else current.last_transition_time
            }
        )
        return
    conditions.append(new.model_copy(update={"last_transition_time": now}))


def in_progress(generation: Optional[int] = None) -> Condition:
    return Condition(
        type=IN_PROGRESS,
        status="True",
        reason="DeploymentProgress",
        message="The deployment is being processed.",
        observed_generation=generation,
    )


def processed(generation: Optional[int] = None) -> Condition:
    return Condition(
        type=IN_PROGRESS,
        status="False",
        reason="DeploymentProgress",
        message="The deployment has been processed.",
        observed_generation=generation,
    )


def available(doc: DirectoryDeployment, error: Optional[str] = None) -> Condition:
    if doc.metadata.generation == 1:
        reason, message = "DeploymentCreated", "The deployment has been created."
    else:
        reason, message = "DeploymentUpdated", "The deployment has been updated."
    return Condition(
        type=AVAILABLE,
        status="False" if error else "True",
        reason=reason,
        message=error or message,
        observed_generation=doc.metadata.generation,
    )


def status_body(doc: DirectoryDeployment) -> dict:
    return doc.status.model_dump(by_alias=True, mode="json", exclude_none=True)
