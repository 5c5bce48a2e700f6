# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

# src/dirop/utils/poll.py
from __future__ import annotations

import logging
import threading
import time
from typing import Callable, Optional

from ..errors import PassCancelledError, WaitTimeoutError

log = logging.getLogger("dirop")


def poll_until(
    predicate: Callable[[], bool],
    *,
    timeout_seconds: float,
    interval_seconds: float = 1.0,
    cancel: Optional[threading.Event] = None,
    description: str = "condition",
    clock: Callable[[], float] = time.monotonic,
) -> None:
    """
    Evaluate ``predicate`` immediately and then every ``interval_seconds``
    until it returns True.

    The predicate may raise to abort the wait early (e.g. a failed job).
    Raises WaitTimeoutError once ``timeout_seconds`` elapse and
    PassCancelledError as soon as ``cancel`` is set.
    """
    deadline = clock() + timeout_seconds
    attempt = 0
    while True:
        if cancel is not None and cancel.is_set():
            raise PassCancelledError(f"Cancelled while waiting for {description}")

        attempt += 1
        if predicate():
            log.debug("[poll] %s satisfied after %d attempt(s)", description, attempt)
            return

        if clock() >= deadline:
            raise WaitTimeoutError(
                f"Timed out after {timeout_seconds:g}s waiting for {description}"
            )

        # Event.wait doubles as an interruptible sleep
        if cancel is not None:
            if cancel.wait(interval_seconds):
                raise PassCancelledError(f"Cancelled while waiting for {description}")
        else:
            time.sleep(interval_seconds)
