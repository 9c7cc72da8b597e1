"""State reader: live configuration back into the typed model.

Reads use `show configuration <path> | display set` and take no edit
lock. They reflect the committed configuration only; candidate edits of
an in-flight transaction are not visible.
"""
import logging
from typing import Any, Mapping, Optional, Union

from ..devices.base import NetworkDevice
from ..errors import DecodeError
from ..resources.base import ResourceType
from .builder import ChangeBuilder
from .schema import ChangeSet, ReadResult, ResourceState
from .statement import ConfigPath, StatementOp, parse_statements

logger = logging.getLogger(__name__)

Identifier = Union[str, Mapping[str, Any]]


class StateReader:
    """Decodes live configuration with the same attribute tables the builder writes."""

    def __init__(self, builder: Optional[ChangeBuilder] = None):
        self.builder = builder or ChangeBuilder()

    async def query(self, session: NetworkDevice, scope: ConfigPath) -> list[ConfigPath]:
        """Return the `set` paths under `scope`.

        Raises:
            TransportError: the session failed
            DecodeError: the device rejected the query or returned unparseable text
        """
        command = f"show configuration {scope.to_text()} | display set"
        reply = await session.command(command)
        if not reply.ok:
            raise DecodeError(
                f"{session.device_id} rejected configuration query",
                paths=[scope],
                device_message=reply.error_message,
            )
        try:
            statements = parse_statements(reply.output)
        except ValueError as e:
            raise DecodeError(
                f"Could not parse configuration returned by {session.device_id}: {e}",
                paths=[scope],
            ) from e
        return [s.path for s in statements if s.op == StatementOp.SET]

    async def read(
        self,
        session: NetworkDevice,
        rtype: ResourceType,
        identifier: Identifier,
    ) -> ReadResult:
        """Read one object.

        Returns:
            ReadResult with found=False when the object has no configuration
        """
        ident = rtype.identity(identifier)
        root = rtype.root_path(ident)
        name = rtype.identifier(ident)

        lines = [line for line in await self.query(session, root) if rtype.owns(ident, line)]
        if not lines:
            logger.debug(f"{rtype.type_tag} {name} not found on {session.device_id}")
            return ReadResult(state=None, found=False)

        for scope in rtype.scopes(ident)[1:]:
            for line in await self.query(session, scope):
                if line not in lines:
                    lines.append(line)

        attributes = rtype.decode(ident, lines)
        logger.debug(f"Read {rtype.type_tag} {name} from {session.device_id}: {attributes}")
        return ReadResult(
            state=ResourceState(type=rtype.type_tag, identifier=name, attributes=attributes),
            found=True,
            lines=[f"set {line.to_text()}" for line in lines],
        )

    async def exists(self, session: NetworkDevice, rtype: ResourceType,
                     identifier: Identifier) -> bool:
        ident = rtype.identity(identifier)
        root = rtype.root_path(ident)
        return any(rtype.owns(ident, line) for line in await self.query(session, root))

    async def drift(
        self,
        session: NetworkDevice,
        rtype: ResourceType,
        desired: Mapping[str, Any],
    ) -> ChangeSet:
        """Statements needed to bring the live object to `desired`.

        Empty when there is no drift.
        """
        result = await self.read(session, rtype, desired)
        if not result.found:
            return self.builder.for_create(rtype, desired)
        return self.builder.for_update(rtype, desired, result.state.attributes)
