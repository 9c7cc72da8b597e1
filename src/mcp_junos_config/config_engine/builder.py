"""Change builder: desired state (and previous state) to ordered statements.

Ordering rules:
- create: root-local attributes in declaration order, then memberships.
  A bare `set <root>` is emitted only when nothing else would create the
  object.
- delete: only paths this resource owns, in reverse create order, so
  membership entries go before the object they point at.
- update: attribute-level diff; deletes in reverse declaration order,
  sets in declaration order.
"""
import logging
from typing import Any, Mapping, Optional

from ..errors import ValidationError
from ..resources.base import Membership, ResourceType
from .schema import ChangeSet
from .statement import ConfigPath, Statement, StatementOp, dedupe, new_statement

logger = logging.getLogger(__name__)


class ChangeBuilder:
    """Builds ChangeSets for one resource at a time.

    Usage:
        builder = ChangeBuilder()
        changes = builder.for_create(rtype, {"name": "ge-0/0/0", "vlan_tagging": True})
        changes.lines()  # ["set interfaces ge-0/0/0 vlan-tagging"]
    """

    def for_create(self, rtype: ResourceType, desired: Mapping[str, Any]) -> ChangeSet:
        state = rtype.normalize(desired)
        ident = rtype.identity(state)
        root = rtype.root_path(ident)

        local: list[Statement] = []
        members: list[Statement] = []
        for attr in rtype.attributes:
            value = state[attr.name]
            if attr.is_unset(value):
                continue
            target = members if isinstance(attr, Membership) else local
            target.extend(attr.set_statements(root, value, ident))

        if not local:
            local.append(new_statement(root))

        changes = ChangeSet(to_set=dedupe([*local, *members]))
        logger.debug(
            f"create {rtype.type_tag} {rtype.identifier(ident)}: {len(changes.to_set)} statements"
        )
        return changes

    def for_update(
        self,
        rtype: ResourceType,
        desired: Mapping[str, Any],
        previous: Mapping[str, Any],
    ) -> ChangeSet:
        new = rtype.normalize(desired)
        old = rtype.normalize(previous)
        ident = rtype.identity(new)
        if ident != rtype.identity(old):
            raise ValidationError(
                f"Cannot change the identity of {rtype.type_tag} "
                f"{rtype.identifier(rtype.identity(old))} to {rtype.identifier(ident)}"
            )
        root = rtype.root_path(ident)

        deletes: list[Statement] = []
        sets: list[Statement] = []
        for attr in reversed(rtype.attributes):
            attr_deletes, _ = attr.diff(root, old[attr.name], new[attr.name], ident)
            deletes.extend(attr_deletes)
        for attr in rtype.attributes:
            _, attr_sets = attr.diff(root, old[attr.name], new[attr.name], ident)
            sets.extend(attr_sets)

        if deletes or sets:
            deletes.extend(self._sticky_deletes(rtype, root, new, ident, deletes))

        changes = ChangeSet(to_delete=dedupe(deletes), to_set=dedupe(sets))
        logger.debug(
            f"update {rtype.type_tag} {rtype.identifier(ident)}: "
            f"{len(changes.to_delete)} deletes, {len(changes.to_set)} sets"
        )
        return changes

    def for_delete(self, rtype: ResourceType, previous: Mapping[str, Any]) -> ChangeSet:
        state = rtype.normalize(previous)
        ident = rtype.identity(state)
        root = rtype.root_path(ident)

        owned: list[ConfigPath] = [root]
        for attr in rtype.attributes:
            if isinstance(attr, Membership) and not attr.is_unset(state[attr.name]):
                owned.append(attr.entry(state[attr.name], ident))

        changes = ChangeSet(
            to_delete=[new_statement(path, StatementOp.DELETE) for path in reversed(owned)]
        )
        logger.debug(
            f"delete {rtype.type_tag} {rtype.identifier(ident)}: {len(changes.to_delete)} deletes"
        )
        return changes

    def for_state(
        self,
        rtype: ResourceType,
        desired: Mapping[str, Any],
        previous: Optional[Mapping[str, Any]],
    ) -> ChangeSet:
        """Create when there is no previous state, update otherwise."""
        if previous is None:
            return self.for_create(rtype, desired)
        return self.for_update(rtype, desired, previous)

    @staticmethod
    def _sticky_deletes(rtype, root, new, ident, deletes) -> list[Statement]:
        already = {s.path for s in deletes}
        result = []
        for attr in reversed(rtype.attributes):
            if not attr.sticky or not attr.is_unset(new[attr.name]):
                continue
            path = attr.target(root, ident)
            if path not in already:
                result.append(new_statement(path, StatementOp.DELETE))
        return result
