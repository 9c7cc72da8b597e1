"""Per-resource create/read/update/delete orchestration.

    create: build -> run (precheck: must not exist, prerequisites present) -> read back
    read:   read only
    update: build diff -> run (precheck: must exist) -> read back
    delete: build delete-only -> run (precheck: must exist, type guards)
"""
import logging
from typing import Any, Mapping, Optional

from ..devices.base import NetworkDevice
from ..errors import AlreadyExists, ConfigConflict, ObjectVanished, ReconcileError
from ..resources.base import ResourceType
from .builder import ChangeBuilder
from .coordinator import TransactionCoordinator
from .reader import Identifier, StateReader
from .schema import ChangeSet, ReconcileResult, ResourceState, Transaction

logger = logging.getLogger(__name__)


class ResourceReconciler:
    """CRUD for one resource type over an explicitly passed session."""

    def __init__(
        self,
        rtype: ResourceType,
        coordinator: TransactionCoordinator,
        reader: StateReader,
        builder: Optional[ChangeBuilder] = None,
    ):
        self.rtype = rtype
        self.coordinator = coordinator
        self.reader = reader
        self.builder = builder or reader.builder

    def _label(self, source: Identifier) -> str:
        return f"{self.rtype.type_tag} {self.rtype.identifier(self.rtype.identity(source))}"

    async def _run(
        self,
        session: NetworkDevice,
        operation: str,
        changes: ChangeSet,
        label: str,
        precheck,
    ) -> Transaction:
        transaction = Transaction.from_changes(
            session.device_id, changes, operation=operation, resource=label,
        )
        await self.coordinator.run(session, transaction, precheck=precheck)
        return transaction

    async def _refresh(
        self, session: NetworkDevice, ident: dict, label: str, expected: Mapping[str, Any],
    ) -> ResourceState:
        result = await self.reader.read(session, self.rtype, ident)
        if result.found:
            return result.state
        # An object with every attribute unset has nothing left to display
        if all(attr.is_unset(expected[attr.name]) for attr in self.rtype.attributes):
            return ResourceState(
                self.rtype.type_tag, self.rtype.identifier(ident), self.rtype.empty_state(ident)
            )
        raise ObjectVanished(f"{label} not found on {session.device_id} after commit")

    async def create(
        self,
        session: NetworkDevice,
        desired: Mapping[str, Any],
        dry_run: bool = False,
    ) -> ReconcileResult:
        """Create a new object.

        Raises:
            AlreadyExists: the object is already configured
        """
        label = None
        changes = ChangeSet()
        try:
            state = self.rtype.normalize(desired)
            ident = self.rtype.identity(state)
            label = self._label(ident)
            root = self.rtype.root_path(ident)
            changes = self.builder.for_create(self.rtype, state)
            if dry_run:
                return ReconcileResult("create", changes, dry_run=True)

            async def must_not_exist(s: NetworkDevice) -> None:
                if await self.reader.exists(s, self.rtype, ident):
                    raise AlreadyExists(
                        f"{label} already exists on {s.device_id}", paths=[root]
                    )
                for what, path in self.rtype.prerequisites(ident):
                    if not await self.reader.query(s, path):
                        raise ConfigConflict(
                            f"{what} must exist on {s.device_id} before {label} is created",
                            paths=[path],
                        )

            transaction = await self._run(session, "create", changes, label, must_not_exist)
            refreshed = await self._refresh(session, ident, label, state)
        except ReconcileError as e:
            e.annotate(resource=label, statements=changes.lines())
            raise

        logger.info(f"Created {label} on {session.device_id}")
        return ReconcileResult("create", changes, transaction, refreshed)

    async def read(self, session: NetworkDevice, identifier: Identifier) -> Optional[ResourceState]:
        """Current state, or None when the object does not exist."""
        try:
            result = await self.reader.read(session, self.rtype, identifier)
        except ReconcileError as e:
            e.annotate(resource=self._label(identifier))
            raise
        return result.state if result.found else None

    async def update(
        self,
        session: NetworkDevice,
        desired: Mapping[str, Any],
        previous: Optional[Mapping[str, Any]] = None,
        dry_run: bool = False,
    ) -> ReconcileResult:
        """Converge an existing object to `desired`.

        `previous` defaults to the live state. Identical states produce an
        empty change set and no device writes.

        Raises:
            ObjectVanished: the object no longer exists
        """
        label = None
        changes = ChangeSet()
        try:
            state = self.rtype.normalize(desired)
            ident = self.rtype.identity(state)
            label = self._label(ident)
            root = self.rtype.root_path(ident)

            if previous is None:
                current = await self.reader.read(session, self.rtype, ident)
                if not current.found:
                    raise ObjectVanished(f"{label} not found on {session.device_id}", paths=[root])
                previous = current.state.attributes

            changes = self.builder.for_update(self.rtype, state, {**previous, **ident})
            if changes.empty:
                logger.info(f"{label} on {session.device_id} already up to date")
                return ReconcileResult(
                    "update", changes,
                    state=ResourceState(self.rtype.type_tag, self.rtype.identifier(ident), state),
                )
            if dry_run:
                return ReconcileResult("update", changes, dry_run=True)

            async def must_exist(s: NetworkDevice) -> None:
                if not await self.reader.exists(s, self.rtype, ident):
                    raise ObjectVanished(f"{label} vanished from {s.device_id}", paths=[root])

            transaction = await self._run(session, "update", changes, label, must_exist)
            refreshed = await self._refresh(session, ident, label, state)
        except ReconcileError as e:
            e.annotate(resource=label, statements=changes.lines())
            raise

        logger.info(f"Updated {label} on {session.device_id}")
        return ReconcileResult("update", changes, transaction, refreshed)

    async def delete(
        self,
        session: NetworkDevice,
        identifier: Identifier,
        previous: Optional[Mapping[str, Any]] = None,
        dry_run: bool = False,
    ) -> ReconcileResult:
        """Remove an object and the membership entries it owns.

        Raises:
            ObjectVanished: the object does not exist
            ConfigConflict: a type-specific guard refused the delete
        """
        label = None
        changes = ChangeSet()
        try:
            ident = self.rtype.identity(identifier)
            label = self._label(ident)
            root = self.rtype.root_path(ident)

            if previous is None:
                current = await self.reader.read(session, self.rtype, ident)
                if not current.found:
                    raise ObjectVanished(f"{label} not found on {session.device_id}", paths=[root])
                previous = current.state.attributes

            changes = self.builder.for_delete(self.rtype, {**previous, **ident})
            if dry_run:
                return ReconcileResult("delete", changes, dry_run=True)

            async def deletable(s: NetworkDevice) -> None:
                lines = await self.reader.query(s, root)
                if not any(self.rtype.owns(ident, line) for line in lines):
                    raise ObjectVanished(f"{label} vanished from {s.device_id}", paths=[root])
                reason = self.rtype.delete_guard(ident, lines)
                if reason:
                    raise ConfigConflict(f"Refusing to delete {label}: {reason}", paths=[root])

            transaction = await self._run(session, "delete", changes, label, deletable)
        except ReconcileError as e:
            e.annotate(resource=label, statements=changes.lines())
            raise

        logger.info(f"Deleted {label} from {session.device_id}")
        return ReconcileResult("delete", changes, transaction)

    async def apply(
        self,
        session: NetworkDevice,
        desired: Mapping[str, Any],
        dry_run: bool = False,
    ) -> ReconcileResult:
        """Create when absent, update otherwise."""
        if await self.reader.exists(session, self.rtype, desired):
            return await self.update(session, desired, dry_run=dry_run)
        return await self.create(session, desired, dry_run=dry_run)

    async def plan(self, session: NetworkDevice, desired: Mapping[str, Any]) -> ChangeSet:
        """Drift between the live object and `desired`."""
        try:
            return await self.reader.drift(session, self.rtype, desired)
        except ReconcileError as e:
            e.annotate(resource=self._label(desired))
            raise
