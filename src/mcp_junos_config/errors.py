"""Error taxonomy for the reconciliation engine.

Callers branch on the error type:
- TransportError: connectivity, authentication or deadline problems
- LockConflict: another session holds the candidate configuration
- ConfigConflict: the device rejected statements on load, validate or commit
- CommitUnknown: commit outcome unknown, re-read before retrying
- AlreadyExists / ObjectVanished: existence prechecks failed

A missing object is not an error for reads: the State Reader reports it
with ``found=False``.
"""
from typing import Iterable, Optional


class ReconcileError(Exception):
    """Base class for every engine error.

    Carries the configuration paths involved, the verbatim device message
    and any cleanup failures that happened while handling this error.
    """

    kind = "reconcile_error"

    def __init__(
        self,
        message: str,
        *,
        paths: Iterable[str] = (),
        device_message: Optional[str] = None,
        resource: Optional[str] = None,
    ):
        super().__init__(message)
        self.message = message
        self.paths: list[str] = [str(p) for p in paths]
        self.device_message = device_message
        self.resource = resource
        self.statements: list[str] = []
        self.cleanup_errors: list[Exception] = []

    def annotate(
        self,
        resource: Optional[str] = None,
        statements: Iterable[str] = (),
    ) -> "ReconcileError":
        """Attach the resource identifier and statement batch, keeping existing values."""
        if resource and not self.resource:
            self.resource = resource
        if not self.statements:
            self.statements = [str(s) for s in statements]
        return self

    def add_cleanup_error(self, error: Exception) -> None:
        """Record a failure that happened while cleaning up after this error."""
        self.cleanup_errors.append(error)

    def __str__(self) -> str:
        parts = []
        if self.resource:
            parts.append(f"[{self.resource}]")
        parts.append(self.message)
        text = " ".join(parts)
        if self.paths:
            text += f" (paths: {', '.join(self.paths)})"
        if self.device_message:
            text += f": {self.device_message}"
        for cleanup in self.cleanup_errors:
            text += f"; additionally during cleanup: {cleanup}"
        return text

    def to_dict(self) -> dict:
        """Convert to dictionary for JSON serialization."""
        return {
            "kind": self.kind,
            "message": self.message,
            "resource": self.resource,
            "paths": self.paths,
            "device_message": self.device_message,
            "statements": self.statements,
            "cleanup_errors": [str(e) for e in self.cleanup_errors],
        }


class TransportError(ReconcileError):
    """Connection refused, authentication failure, timeout or dropped session."""

    kind = "transport_error"

    def __init__(self, message: str, *, transient: bool = False, timed_out: bool = False, **kwargs):
        super().__init__(message, **kwargs)
        self.transient = transient or timed_out
        self.timed_out = timed_out


class LockConflict(ReconcileError):
    """Another session (local or remote) holds the candidate configuration lock."""

    kind = "lock_conflict"


class LockReleaseError(ReconcileError):
    """Unlocking the candidate configuration failed."""

    kind = "lock_release_error"


class ConfigConflict(ReconcileError):
    """The device rejected the change on load, validate or commit. Not retryable."""

    kind = "config_conflict"


class CommitUnknown(ReconcileError):
    """Commit timed out or the session dropped mid-commit.

    The change may or may not be active on the device; callers must re-read
    before deciding to retry.
    """

    kind = "commit_unknown"


class AlreadyExists(ReconcileError):
    """Create found a pre-existing object."""

    kind = "already_exists"


class ObjectVanished(ReconcileError):
    """Update or delete found no object on the device."""

    kind = "object_vanished"


class ValidationError(ReconcileError):
    """Desired state is malformed for its resource type."""

    kind = "validation_error"


class DecodeError(ReconcileError):
    """Live configuration could not be decoded into the typed model."""

    kind = "decode_error"
