"""Error taxonomy shared by the reconcile loops.

Reconcilers only branch on these types: ``InputRejectedError`` is terminal
and recorded on the object, ``TransientError`` is retried after the fixed
delay, ``ResourceNotFoundError`` means the object is gone.
"""

from __future__ import annotations

from typing import Any


class KubeOnKubeError(RuntimeError):
    """Base class for every error raised by kube-on-kube."""

    def __init__(self, message: str, *, details: dict[str, Any] | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def to_dict(self) -> dict[str, Any]:
        """Serialize the error for structured logs."""
        return {
            "error_type": type(self).__name__,
            "message": self.message,
            "details": self.details,
        }


class TransientError(KubeOnKubeError):
    """Infrastructure failure that is retried, never recorded on the object."""


class ResourceConflictError(TransientError):
    """Optimistic-concurrency write conflict; re-fetch and retry."""


class AlreadyExistsError(KubeOnKubeError):
    """Create of an object whose name is already taken."""


class ResourceNotFoundError(KubeOnKubeError):
    """The requested object does not exist."""


class InputRejectedError(KubeOnKubeError):
    """Bad user input; the operation is failed and never retried."""

    def __init__(
        self,
        message: str,
        *,
        reason: str = "InvalidInput",
        details: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(message, details=details)
        self.reason = reason

    def to_dict(self) -> dict[str, Any]:
        """Serialize the error including its reason code."""
        return {**super().to_dict(), "reason": self.reason}


class ScriptArgsError(InputRejectedError):
    """A hook or action descriptor could not be compiled into the entrypoint."""

    def __init__(self, message: str, *, details: dict[str, Any] | None = None) -> None:
        super().__init__(message, reason="InvalidActionArgs", details=details)


__all__ = [
    "AlreadyExistsError",
    "InputRejectedError",
    "KubeOnKubeError",
    "ResourceConflictError",
    "ResourceNotFoundError",
    "ScriptArgsError",
    "TransientError",
]
