"""Data types passed between the engine's components."""
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Optional

from .statement import Statement, render_hierarchy


class TransactionState(str, Enum):
    """Transaction lifecycle.

    Success: IDLE -> LOCK_ACQUIRED -> LOADED -> VALIDATED -> COMMITTED -> LOCK_RELEASED
    Failure: ... -> ROLLED_BACK -> LOCK_RELEASED
    """
    IDLE = "idle"
    LOCK_ACQUIRED = "lock_acquired"
    LOADED = "loaded"
    VALIDATED = "validated"
    COMMITTED = "committed"
    ROLLED_BACK = "rolled_back"
    LOCK_RELEASED = "lock_released"


@dataclass
class ChangeSet:
    """Statements produced by the change builder.

    `to_delete` is ordered most specific first, `to_set` in dependency
    order. Deletes are always sent before sets.
    """
    to_delete: list[Statement] = field(default_factory=list)
    to_set: list[Statement] = field(default_factory=list)

    @property
    def empty(self) -> bool:
        return not self.to_delete and not self.to_set

    @property
    def statements(self) -> list[Statement]:
        return [*self.to_delete, *self.to_set]

    def lines(self) -> list[str]:
        return [s.to_text() for s in self.statements]

    def to_dict(self) -> dict:
        return {
            "to_delete": [s.to_text() for s in self.to_delete],
            "to_set": [s.to_text() for s in self.to_set],
            "preview": render_hierarchy(self.to_set),
        }


@dataclass
class Transaction:
    """An ordered batch of statements plus bookkeeping.

    Either fully committed or fully discarded.
    """
    device_id: str
    statements: list[Statement] = field(default_factory=list)
    comment: str = ""
    operation: str = "raw"
    resource: Optional[str] = None
    state: TransactionState = TransactionState.IDLE
    history: list[TransactionState] = field(default_factory=list)
    loaded: bool = False
    validated: bool = False
    committed: bool = False
    attempts: int = 0
    warnings: list[str] = field(default_factory=list)
    failed_phase: Optional[str] = None
    started_at: Optional[str] = None
    finished_at: Optional[str] = None

    @classmethod
    def from_changes(cls, device_id: str, changes: ChangeSet, **kw) -> "Transaction":
        return cls(device_id=device_id, statements=changes.statements, **kw)

    @property
    def empty(self) -> bool:
        return not self.statements

    def lines(self) -> list[str]:
        return [s.to_text() for s in self.statements]

    def advance(self, state: TransactionState) -> None:
        self.state = state
        self.history.append(state)
        if state == TransactionState.LOADED:
            self.loaded = True
        elif state == TransactionState.VALIDATED:
            self.validated = True
        elif state == TransactionState.COMMITTED:
            self.committed = True

    def reset_attempt(self) -> None:
        """Start a fresh attempt; history is kept across attempts."""
        self.attempts += 1
        self.state = TransactionState.IDLE
        self.loaded = False
        self.validated = False
        self.committed = False
        self.failed_phase = None

    def mark_started(self) -> None:
        self.started_at = datetime.now(timezone.utc).isoformat()

    def mark_finished(self) -> None:
        self.finished_at = datetime.now(timezone.utc).isoformat()

    def to_dict(self) -> dict:
        return {
            "device_id": self.device_id,
            "operation": self.operation,
            "resource": self.resource,
            "state": self.state.value,
            "history": [s.value for s in self.history],
            "committed": self.committed,
            "attempts": self.attempts,
            "failed_phase": self.failed_phase,
            "statements": self.lines(),
            "warnings": self.warnings,
            "comment": self.comment,
        }


@dataclass
class ResourceState:
    """Snapshot of one configuration object, desired or read from the device."""
    type: str
    identifier: str
    attributes: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict:
        return {"type": self.type, "identifier": self.identifier, "attributes": self.attributes}


@dataclass
class ReadResult:
    """Outcome of reading one object. `found=False` is not an error."""
    state: Optional[ResourceState]
    found: bool
    lines: list[str] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {
            "found": self.found,
            "state": self.state.to_dict() if self.state else None,
        }


@dataclass
class ReconcileResult:
    """Outcome of a create/update/delete/apply."""
    operation: str
    changes: ChangeSet
    transaction: Optional[Transaction] = None
    state: Optional[ResourceState] = None
    dry_run: bool = False

    @property
    def changed(self) -> bool:
        return not self.changes.empty and not self.dry_run

    def to_dict(self) -> dict:
        return {
            "operation": self.operation,
            "changed": self.changed,
            "dry_run": self.dry_run,
            "changes": self.changes.to_dict(),
            "transaction": self.transaction.to_dict() if self.transaction else None,
            "state": self.state.to_dict() if self.state else None,
        }
