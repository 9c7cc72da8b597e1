"""Reconcile engine: one entry point per resource operation.

Wires the shared lock manager, change builder, state reader and
transaction coordinator together and opens a fresh session per call:

    engine = ReconcileEngine(inventory)
    result = await engine.apply("srx-edge", "interface_physical",
                                {"name": "ge-0/0/0", "vlan_tagging": True})
"""
import logging
from contextlib import asynccontextmanager
from typing import Any, Mapping, Optional

from ..config.inventory import DeviceInventory
from ..devices.base import NetworkDevice
from ..resources import get_resource_type
from ..utils.connection import backoff_retrying, is_transient
from ..utils.logging_config import log_context, timed_section
from .builder import ChangeBuilder
from .coordinator import TransactionCoordinator
from .lock import ConfigLockManager
from .reader import Identifier, StateReader
from .reconciler import ResourceReconciler
from .schema import ChangeSet, ReconcileResult, ResourceState, Transaction
from .statement import parse_statement

logger = logging.getLogger(__name__)


class ReconcileEngine:
    """Resource operations by device id and type tag."""

    def __init__(
        self,
        inventory: DeviceInventory,
        lock_manager: Optional[ConfigLockManager] = None,
    ):
        self.inventory = inventory
        self.locks = lock_manager or ConfigLockManager()
        self.builder = ChangeBuilder()
        self.reader = StateReader(self.builder)
        self.coordinator = TransactionCoordinator(self.locks)

    @asynccontextmanager
    async def session(self, device_id: str):
        """Open a session scoped to one logical operation."""
        session: NetworkDevice = self.inventory.open_session(device_id)
        with log_context(device=device_id):
            await self._connect(session)
            try:
                yield session
            finally:
                await session.disconnect()

    @staticmethod
    async def _connect(session: NetworkDevice) -> None:
        """Open the session, retrying transient failures (config.retries attempts)."""
        config = session.config
        async for attempt in backoff_retrying(config.retries, is_transient, min_wait=config.retry_delay):
            with attempt:
                await session.connect()

    def reconciler(self, type_tag: str) -> ResourceReconciler:
        return ResourceReconciler(
            get_resource_type(type_tag), self.coordinator, self.reader, self.builder
        )

    async def create(
        self, device_id: str, type_tag: str, attributes: Mapping[str, Any],
        dry_run: bool = False,
    ) -> ReconcileResult:
        reconciler = self.reconciler(type_tag)
        async with timed_section("create", device_id=device_id, type=type_tag):
            async with self.session(device_id) as session:
                return await reconciler.create(session, attributes, dry_run=dry_run)

    async def read(
        self, device_id: str, type_tag: str, identifier: Identifier,
    ) -> Optional[ResourceState]:
        reconciler = self.reconciler(type_tag)
        async with timed_section("read", device_id=device_id, type=type_tag):
            async with self.session(device_id) as session:
                return await reconciler.read(session, identifier)

    async def update(
        self, device_id: str, type_tag: str, attributes: Mapping[str, Any],
        previous: Optional[Mapping[str, Any]] = None, dry_run: bool = False,
    ) -> ReconcileResult:
        reconciler = self.reconciler(type_tag)
        async with timed_section("update", device_id=device_id, type=type_tag):
            async with self.session(device_id) as session:
                return await reconciler.update(
                    session, attributes, previous=previous, dry_run=dry_run
                )

    async def delete(
        self, device_id: str, type_tag: str, identifier: Identifier,
        dry_run: bool = False,
    ) -> ReconcileResult:
        reconciler = self.reconciler(type_tag)
        async with timed_section("delete", device_id=device_id, type=type_tag):
            async with self.session(device_id) as session:
                return await reconciler.delete(session, identifier, dry_run=dry_run)

    async def apply(
        self, device_id: str, type_tag: str, attributes: Mapping[str, Any],
        dry_run: bool = False,
    ) -> ReconcileResult:
        """Create the object when absent, update it otherwise."""
        reconciler = self.reconciler(type_tag)
        async with timed_section("apply", device_id=device_id, type=type_tag):
            async with self.session(device_id) as session:
                return await reconciler.apply(session, attributes, dry_run=dry_run)

    async def plan(
        self, device_id: str, type_tag: str, attributes: Mapping[str, Any],
    ) -> ChangeSet:
        """Statements that `apply` would send, computed against live state."""
        reconciler = self.reconciler(type_tag)
        async with self.session(device_id) as session:
            return await reconciler.plan(session, attributes)

    async def apply_statements(
        self, device_id: str, lines: list[str], comment: str = "",
    ) -> Transaction:
        """Apply raw set/delete lines as one transaction."""
        statements = [parse_statement(line) for line in lines if line.strip()]
        transaction = Transaction(
            device_id=device_id, statements=statements, comment=comment, operation="raw",
        )
        async with self.session(device_id) as session:
            return await self.coordinator.run(session, transaction)

    async def facts(self, device_id: str) -> dict:
        async with self.session(device_id) as session:
            facts = session.facts
        return {
            "device_id": device_id,
            "hostname": facts.hostname,
            "model": facts.model,
            "os_name": facts.os_name,
            "os_version": facts.os_version,
            "serial_number": facts.serial_number,
        }
