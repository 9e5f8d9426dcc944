"""
Error taxonomy for taskloop.

Propagation policy:
    - ValidationError: malformed task/trigger/note input. Raised to the caller.
    - NotFoundError: update/remove referencing an absent key. Raised to the caller.
    - ServiceFailure: the completion service failed or returned a malformed
      result. Caught at the call site, logged, treated as "no effect this cycle".
    - PersistenceFailure: a record store operation failed. Never swallowed by
      the core; it aborts the current cycle.
"""

from __future__ import annotations


class TaskLoopError(Exception):
    """Base class for all taskloop errors."""

    pass


class ValidationError(TaskLoopError):
    """Malformed task, trigger, or note input."""

    pass


class NotFoundError(TaskLoopError):
    """An update or removal referenced a key that does not exist."""

    def __init__(self, kind: str, key: str):
        self.kind = kind
        self.key = key
        super().__init__(f"{kind} '{key}' not found")


class ServiceFailure(TaskLoopError):
    """The completion service errored or produced a malformed result."""

    def __init__(self, message: str, cause: Exception | None = None):
        self.cause = cause
        super().__init__(message)


class PersistenceFailure(TaskLoopError):
    """A record store operation failed."""

    def __init__(self, operation: str, cause: Exception | None = None):
        self.operation = operation
        self.cause = cause
        detail = f": {cause}" if cause else ""
        super().__init__(f"Record store {operation} failed{detail}")


__all__ = [
    "TaskLoopError",
    "ValidationError",
    "NotFoundError",
    "ServiceFailure",
    "PersistenceFailure",
]
