# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

# src/dirop/errors.py
from __future__ import annotations


class DirectoryOperatorError(RuntimeError):
    """
    Base class for every failure raised while reconciling or admitting a
    directory deployment.

    ``retryable`` travels with the error so that only the orchestrator
    decides between re-queueing the pass and recording a terminal failure.
    """

    retryable: bool = True

    def __init__(self, message: str, *, retryable: bool | None = None):
        super().__init__(message)
        self.message = message
        if retryable is not None:
            self.retryable = retryable


# ---------------------------------------------------------------------
# Validation (never retried)
# ---------------------------------------------------------------------
class ConfigValidationError(DirectoryOperatorError):
    """Malformed or missing configuration, or a generator-owned key conflict."""

    retryable = False


class AdmissionError(DirectoryOperatorError):
    """A create/update/delete request that must be rejected."""

    retryable = False


# ---------------------------------------------------------------------
# Platform / transient (retried)
# ---------------------------------------------------------------------
class PlatformError(DirectoryOperatorError):
    """A platform API call failed for a reason other than not-found."""

    def __init__(self, message: str, *, status: int | None = None, retryable: bool | None = None):
        super().__init__(message, retryable=retryable)
        self.status = status


class NotFoundError(PlatformError):
    """The referenced platform object does not exist."""

    def __init__(self, message: str, *, kind: str = "", name: str = ""):
        super().__init__(message, status=404)
        self.kind = kind
        self.name = name


class ConflictError(PlatformError):
    """The object already exists, or a write lost an optimistic-lock race."""

    def __init__(self, message: str):
        super().__init__(message, status=409)


class CommandError(PlatformError):
    """An administrative command inside a replica instance failed."""

    def __init__(self, message: str, *, stdout: str = "", stderr: str = ""):
        super().__init__(message)
        self.stdout = stdout
        self.stderr = stderr


class WaitTimeoutError(DirectoryOperatorError):
    """A bounded poll ran out of time."""


class PassCancelledError(DirectoryOperatorError):
    """The pass was cancelled while waiting."""


class SeedJobFailedError(DirectoryOperatorError):
    """A seed task reported a failed pod."""


class InstanceFailedError(DirectoryOperatorError):
    """A replica instance stopped running while we waited for it to become ready."""
