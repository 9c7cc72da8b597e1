"""Audit logging for configuration transactions.

One JSON line per transaction: device, resource, statements sent, final
state and error kind. Written to a dedicated `junoscraft.audit` logger so
the records can be routed to their own file.
"""
import json
import logging
import os
from dataclasses import dataclass, asdict, field
from datetime import datetime, timezone
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Optional

audit_logger = logging.getLogger("junoscraft.audit")


def setup_audit_logging(log_dir: Optional[str] = None) -> Path:
    """Configure audit logging to file.

    Args:
        log_dir: Directory for audit logs. Defaults to ~/.junoscraft/

    Returns:
        Path of the audit log file
    """
    if log_dir is None:
        log_dir = os.path.expanduser("~/.junoscraft")

    Path(log_dir).mkdir(parents=True, exist_ok=True)
    audit_file = Path(log_dir) / "audit.log"

    audit_logger.setLevel(logging.INFO)
    audit_logger.handlers.clear()

    handler = RotatingFileHandler(
        audit_file,
        maxBytes=10 * 1024 * 1024,  # 10MB
        backupCount=10,
        encoding="utf-8",
    )
    handler.setFormatter(logging.Formatter("%(message)s"))
    audit_logger.addHandler(handler)
    audit_logger.propagate = False
    return audit_file


@dataclass
class TransactionRecord:
    """Record of one configuration transaction."""
    timestamp: str
    device_id: str
    operation: str  # create, update, delete, raw
    resource: Optional[str]
    success: bool
    final_state: str
    attempts: int
    statements: list[str] = field(default_factory=list)
    comment: str = ""
    error_kind: Optional[str] = None
    error: Optional[str] = None

    def to_json(self) -> str:
        return json.dumps(asdict(self), indent=None)

    @classmethod
    def from_json(cls, json_str: str) -> "TransactionRecord":
        return cls(**json.loads(json_str))


def log_transaction(
    device_id: str,
    operation: str,
    statements: list[str],
    success: bool,
    final_state: str,
    attempts: int = 1,
    resource: Optional[str] = None,
    comment: str = "",
    error: Optional[BaseException] = None,
) -> TransactionRecord:
    """Write an audit record for a finished transaction."""
    record = TransactionRecord(
        timestamp=datetime.now(timezone.utc).isoformat(),
        device_id=device_id,
        operation=operation,
        resource=resource,
        success=success,
        final_state=final_state,
        attempts=attempts,
        statements=list(statements),
        comment=comment,
        error_kind=getattr(error, "kind", type(error).__name__) if error else None,
        error=str(error) if error else None,
    )
    audit_logger.info(record.to_json())
    return record


def get_recent_transactions(
    log_file: Optional[str] = None,
    device_id: Optional[str] = None,
    limit: int = 100,
) -> list[TransactionRecord]:
    """Read recent transactions from the audit log, most recent first."""
    if log_file is None:
        log_file = os.path.expanduser("~/.junoscraft/audit.log")

    if not os.path.exists(log_file):
        return []

    records = []
    with open(log_file, "r", encoding="utf-8") as f:
        for line in f:
            line = line.strip()
            if not line:
                continue
            try:
                record = TransactionRecord.from_json(line)
            except (json.JSONDecodeError, TypeError):
                continue  # Skip malformed lines
            if device_id and record.device_id != device_id:
                continue
            records.append(record)

    return list(reversed(records[-limit:]))
