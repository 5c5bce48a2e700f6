# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

# src/dirop/utils/retry.py
from __future__ import annotations

import functools
import logging
import time
from typing import Callable

log = logging.getLogger("dirop")


def retry(
    *,
    attempts: int,
    delay: float,
    backoff: float = 2.0,
    retry_on: tuple[type[Exception], ...] = (Exception,),
    on_retry: Callable[[int, Exception], None] | None = None,
):
    """
    Retry decorator for idempotent platform writes (status updates mostly).

    attempts: total number of calls before giving up
    delay: seconds before the second call
    backoff: multiplier applied to the delay after every failure
    retry_on: exception types to retry; anything else propagates at once
    on_retry: callback(attempt, exception)

    The last exception is re-raised unchanged so callers keep its
    retryability.
    """

    def decorator(fn):
        @functools.wraps(fn)
        def wrapper(*args, **kwargs):
            wait = delay
            for attempt in range(1, attempts + 1):
                try:
                    return fn(*args, **kwargs)
                except retry_on as exc:
                    if attempt == attempts:
                        raise
                    if on_retry:
                        on_retry(attempt, exc)
                    log.debug("[retry] %s attempt %d failed: %s", fn.__name__, attempt, exc)
                    time.sleep(wait)
                    wait *= backoff
        return wrapper
    return decorator
