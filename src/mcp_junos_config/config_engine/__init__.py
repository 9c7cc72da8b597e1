"""Config Engine - reconcile typed resources against Junos configuration.

- Statement model for set/delete configuration text
- Change builder turning desired state into ordered statements
- Lock manager and transaction coordinator for atomic commits
- State reader decoding live configuration for drift detection

Usage:
    from mcp_junos_config.config_engine.engine import ReconcileEngine

    engine = ReconcileEngine(inventory)
    result = await engine.apply("srx-edge", "vlan", {"name": "users", "vlan_id": 100})

ReconcileEngine is not re-exported here; import it from the engine module.
"""

from .statement import (
    ConfigPath,
    Statement,
    StatementOp,
    build_path,
    new_statement,
    parse_statement,
    parse_statements,
    render_hierarchy,
)
from .schema import (
    ChangeSet,
    ReadResult,
    ReconcileResult,
    ResourceState,
    Transaction,
    TransactionState,
)

__all__ = [
    # Statement model
    "ConfigPath",
    "Statement",
    "StatementOp",
    "build_path",
    "new_statement",
    "parse_statement",
    "parse_statements",
    "render_hierarchy",
    # Schema classes
    "ChangeSet",
    "ReadResult",
    "ReconcileResult",
    "ResourceState",
    "Transaction",
    "TransactionState",
]
