"""Attribute tables shared by the change builder and the state reader.

A resource type declares where its object lives (root path) and an ordered
table of attributes. Each attribute knows how to:

- normalize a desired value (validation happens here, before device I/O)
- emit the `set` statements that create it
- emit the `delete` statements that remove it
- diff an old value against a new one
- decode its value back from `display set` lines

Because both directions use the same table, anything the builder writes
the reader can re-derive.
"""
from typing import Any, Iterable, Mapping, Optional, Union

from ..config_engine.statement import (
    ConfigPath,
    Statement,
    StatementOp,
    build_path,
    new_statement,
)
from ..errors import DecodeError, ValidationError

Identity = dict[str, Any]


def _relative(path: ConfigPath, root: ConfigPath) -> Optional[ConfigPath]:
    if not path.startswith(root):
        return None
    return ConfigPath(path[len(root):])


def _values_after(lines: Iterable[ConfigPath], root: ConfigPath, path: tuple) -> list[str]:
    """First value token following `root + path` in each line, in order.

    Handles the bracketed form `vrf-import [ a b ]` as well.
    """
    prefix = root / path
    values: list[str] = []
    for line in lines:
        rest = _relative(line, prefix)
        if not rest:
            continue
        if rest[0] == "[":
            items = [t for t in rest[1:] if t != "]"]
        else:
            items = [rest[0]]
        for item in items:
            if item not in values:
                values.append(item)
    return values


class Attribute:
    """Base class for one entry of a resource's attribute table."""

    kind = "attribute"

    def __init__(self, name: str, path: Union[str, tuple] = (), sticky: bool = False,
                 doc: str = ""):
        self.name = name
        self.path = tuple(path.split()) if isinstance(path, str) else tuple(path)
        self.sticky = sticky
        self.doc = doc

    @property
    def empty(self) -> Any:
        return None

    def is_unset(self, value: Any) -> bool:
        return value is None or value is False or value == [] or value == ""

    def normalize(self, value: Any) -> Any:
        return value

    def target(self, root: ConfigPath, ident: Identity) -> ConfigPath:
        """Path that `delete` removes this attribute with."""
        return root / self.path

    def scope(self, root: ConfigPath, ident: Identity) -> ConfigPath:
        """Configuration prefix the reader must query to decode this attribute."""
        return root

    def set_statements(self, root: ConfigPath, value: Any, ident: Identity) -> list[Statement]:
        raise NotImplementedError

    def delete_statements(self, root: ConfigPath, value: Any, ident: Identity) -> list[Statement]:
        return [new_statement(self.target(root, ident), StatementOp.DELETE)]

    def diff(self, root: ConfigPath, old: Any, new: Any,
             ident: Identity) -> tuple[list[Statement], list[Statement]]:
        """Return (deletes, sets) turning `old` into `new`."""
        if old == new:
            return [], []
        deletes = [] if self.is_unset(old) else self.delete_statements(root, old, ident)
        sets = [] if self.is_unset(new) else self.set_statements(root, new, ident)
        return deletes, sets

    def decode(self, root: ConfigPath, lines: list[ConfigPath], ident: Identity) -> Any:
        raise NotImplementedError

    def describe(self) -> dict:
        info = {"name": self.name, "kind": self.kind, "path": " ".join(self.path)}
        if self.sticky:
            info["sticky"] = True
        if self.doc:
            info["doc"] = self.doc
        return info


class Flag(Attribute):
    """Presence-only statement such as `vlan-tagging` or `disable`."""

    kind = "flag"

    @property
    def empty(self) -> Any:
        return False

    def normalize(self, value: Any) -> bool:
        if value is None:
            return False
        if not isinstance(value, bool):
            raise ValidationError(f"{self.name} must be a boolean, got {value!r}")
        return value

    def set_statements(self, root, value, ident):
        return [new_statement(root / self.path)]

    def decode(self, root, lines, ident) -> bool:
        prefix = root / self.path
        return any(line.startswith(prefix) for line in lines)


class Leaf(Attribute):
    """Single-valued statement such as `description "text"` or `mtu 9192`."""

    kind = "leaf"

    def __init__(self, name: str, path: Union[str, tuple] = (), type: type = str,
                 choices: Optional[Iterable[str]] = None, minimum: Optional[int] = None,
                 maximum: Optional[int] = None, quoted: bool = False,
                 key: bool = False, required: Optional[bool] = None, **kw):
        super().__init__(name, path, **kw)
        self.type = type
        self.choices = tuple(choices) if choices else None
        self.minimum = minimum
        self.maximum = maximum
        self.quoted = quoted
        self.key = key
        self.required = key if required is None else required

    def normalize(self, value: Any) -> Any:
        if value is None or value == "":
            if self.required:
                raise ValidationError(f"{self.name} is required")
            return None
        if self.type is int:
            if isinstance(value, bool):
                raise ValidationError(f"{self.name} must be an integer, got {value!r}")
            try:
                value = int(value)
            except (TypeError, ValueError):
                raise ValidationError(f"{self.name} must be an integer, got {value!r}")
            if self.minimum is not None and value < self.minimum:
                raise ValidationError(f"{self.name} must be >= {self.minimum}, got {value}")
            if self.maximum is not None and value > self.maximum:
                raise ValidationError(f"{self.name} must be <= {self.maximum}, got {value}")
            return value
        if not isinstance(value, str):
            raise ValidationError(f"{self.name} must be a string, got {value!r}")
        if self.choices and value not in self.choices:
            raise ValidationError(
                f"{self.name} must be one of {', '.join(self.choices)}, got {value!r}"
            )
        return value

    def set_statements(self, root, value, ident):
        return [new_statement(root / self.path, value=value, quoted=self.quoted)]

    def decode(self, root, lines, ident) -> Any:
        values = _values_after(lines, root, self.path)
        if not values:
            return None
        # Last one wins, as the device would show after a replace
        raw = values[-1]
        if self.type is int:
            try:
                return int(raw)
            except ValueError:
                raise DecodeError(
                    f"Expected an integer for {self.name}, device returned {raw!r}",
                    paths=[root / self.path],
                )
        return raw


class LeafList(Attribute):
    """Multi-valued statement: one `set` line per element.

    Unordered lists are diffed per element. Ordered lists (policy chains
    such as `vrf-import`) are deleted and re-set whole when they differ.

    `qualifiers` names bare keywords allowed after an element, e.g.
    `clients 10.0.0.0/8 restrict`. They stay part of the element value
    ("10.0.0.0/8 restrict") and are written as separate unquoted tokens.
    """

    kind = "list"

    def __init__(self, name: str, path: Union[str, tuple] = (), ordered: bool = False,
                 item_type: type = str, qualifiers: Iterable[str] = (), **kw):
        super().__init__(name, path, **kw)
        self.ordered = ordered
        self.item_type = item_type
        self.qualifiers = tuple(qualifiers)

    @property
    def empty(self) -> Any:
        return []

    def _canonical(self, item: str) -> str:
        if not self.qualifiers:
            return item
        head, *rest = item.split()
        unknown = [t for t in rest if t not in self.qualifiers]
        if unknown:
            raise ValidationError(
                f"{self.name} entry {item!r} has unknown qualifier(s) {', '.join(unknown)} "
                f"(allowed: {', '.join(self.qualifiers)})"
            )
        return " ".join([head, *rest])

    def head(self, item: str) -> str:
        """Element token the entry is addressed by."""
        return item.split()[0] if self.qualifiers else item

    def normalize(self, value: Any) -> list:
        if value is None:
            return []
        if isinstance(value, (str, int)):
            value = [value]
        if not isinstance(value, (list, tuple)):
            raise ValidationError(f"{self.name} must be a list, got {value!r}")
        items = []
        for item in value:
            if not isinstance(item, (str, int)) or isinstance(item, bool) or str(item).strip() == "":
                raise ValidationError(f"{self.name} contains an invalid entry: {item!r}")
            item = self._canonical(str(item))
            if item not in items:
                items.append(item)
        return items if self.ordered else sorted(items)

    def _set(self, root: ConfigPath, item: str) -> Statement:
        if self.qualifiers:
            return new_statement(root / self.path / item.split())
        return new_statement(root / self.path, value=item)

    def set_statements(self, root, value, ident):
        return [self._set(root, item) for item in value]

    def diff(self, root, old, new, ident):
        old, new = old or [], new or []
        if old == new:
            return [], []
        if self.ordered:
            deletes = [new_statement(root / self.path, StatementOp.DELETE)] if old else []
            return deletes, self.set_statements(root, new, ident)
        deletes = [
            new_statement(root / self.path / self.head(item), StatementOp.DELETE)
            for item in old if item not in new
        ]
        sets = [self._set(root, item) for item in new if item not in old]
        return deletes, sets

    def decode(self, root, lines, ident) -> list:
        if not self.qualifiers:
            values = _values_after(lines, root, self.path)
            return values if self.ordered else sorted(values)
        prefix = root / self.path
        values = []
        for line in lines:
            rest = _relative(line, prefix)
            if not rest:
                continue
            words = [rest[0], *(t for t in rest[1:] if t in self.qualifiers)]
            item = " ".join(words)
            if item not in values:
                values.append(item)
        return values if self.ordered else sorted(values)

    def describe(self) -> dict:
        info = super().describe()
        if self.qualifiers:
            info["qualifiers"] = list(self.qualifiers)
        return info


class Membership(Attribute):
    """Entry this resource owns inside another object's container.

    Example: a logical interface placing itself in a routing instance owns
    `routing-instances <value> interface <member>`, never the instance.
    The entry path is `container + value + suffix + member`, where member is
    the resource's own identifier.
    """

    kind = "membership"

    def __init__(self, name: str, container: Union[str, tuple], suffix: Union[str, tuple],
                 member_key: str = "name", **kw):
        super().__init__(name, (), **kw)
        self.container = tuple(container.split()) if isinstance(container, str) else tuple(container)
        self.suffix = tuple(suffix.split()) if isinstance(suffix, str) else tuple(suffix)
        self.member_key = member_key

    def normalize(self, value: Any) -> Optional[str]:
        if value is None or value == "":
            return None
        if not isinstance(value, str):
            raise ValidationError(f"{self.name} must be a string, got {value!r}")
        return value

    def entry(self, value: str, ident: Identity) -> ConfigPath:
        return build_path(self.container, value, self.suffix, str(ident[self.member_key]))

    def target(self, root, ident):
        raise TypeError("Membership entries are addressed through entry()")

    def scope(self, root, ident) -> ConfigPath:
        return ConfigPath(self.container)

    def set_statements(self, root, value, ident):
        return [new_statement(self.entry(value, ident))]

    def delete_statements(self, root, value, ident):
        return [new_statement(self.entry(value, ident), StatementOp.DELETE)]

    def decode(self, root, lines, ident) -> Optional[str]:
        member = str(ident[self.member_key])
        depth = len(self.container)
        for line in lines:
            if not line.startswith(self.container) or len(line) < depth + len(self.suffix) + 2:
                continue
            if tuple(line[depth + 1:depth + 1 + len(self.suffix)]) != self.suffix:
                continue
            if line[depth + 1 + len(self.suffix)] == member:
                return line[depth]
        return None

    def describe(self) -> dict:
        info = super().describe()
        info["path"] = " ".join((*self.container, "<value>", *self.suffix, "<self>"))
        return info


class ResourceType:
    """A configuration object kind with a fixed root path and attribute table.

    Subclasses set `type_tag`, `keys` (key attributes forming the identity
    and the root path) and `attributes` (non-key, in canonical order).
    """

    type_tag: str = ""
    description: str = ""
    keys: tuple[Leaf, ...] = ()
    attributes: tuple[Attribute, ...] = ()

    def root_path(self, ident: Identity) -> ConfigPath:
        raise NotImplementedError

    # Identity
    def identity(self, source: Union[str, Mapping[str, Any]]) -> Identity:
        """Extract and validate key fields.

        A plain string is accepted as the value of the first key.
        """
        if isinstance(source, str):
            source = {self.keys[0].name: source}
        ident = {}
        for key in self.keys:
            ident[key.name] = key.normalize(source.get(key.name))
        return ident

    def identifier(self, ident: Mapping[str, Any]) -> str:
        """Human-readable identifier, e.g. `10.0.0.0/8 (routing_instance=blue)`."""
        primary = str(ident[self.keys[0].name])
        extras = [
            f"{k.name}={ident[k.name]}" for k in self.keys[1:] if ident.get(k.name) is not None
        ]
        return f"{primary} ({', '.join(extras)})" if extras else primary

    # Normalization
    def normalize(self, desired: Mapping[str, Any]) -> dict[str, Any]:
        """Validate a desired-state mapping and return its canonical form.

        Every attribute is present in the result, unset ones with their
        empty value (False, None or []).
        """
        if not isinstance(desired, Mapping):
            raise ValidationError(f"{self.type_tag} state must be a mapping")
        known = {k.name for k in self.keys} | {a.name for a in self.attributes}
        unknown = sorted(set(desired) - known)
        if unknown:
            raise ValidationError(
                f"Unknown attribute(s) for {self.type_tag}: {', '.join(unknown)}"
            )
        state = self.identity(desired)
        for attr in self.attributes:
            state[attr.name] = attr.normalize(desired.get(attr.name))
        self.check(state)
        return state

    def check(self, state: dict[str, Any]) -> None:
        """Cross-attribute validation hook."""

    def empty_state(self, ident: Identity) -> dict[str, Any]:
        state = dict(ident)
        for attr in self.attributes:
            state[attr.name] = attr.empty
        return state

    # Reading
    def scopes(self, ident: Identity) -> list[ConfigPath]:
        """Distinct configuration prefixes the reader has to query."""
        root = self.root_path(ident)
        result = [root]
        for attr in self.attributes:
            scope = attr.scope(root, ident)
            if scope not in result:
                result.append(scope)
        return result

    def decode(self, ident: Identity, lines: list[ConfigPath]) -> dict[str, Any]:
        root = self.root_path(ident)
        state = dict(ident)
        for attr in self.attributes:
            state[attr.name] = attr.decode(root, lines, ident)
        return state

    def owns(self, ident: Identity, line: ConfigPath) -> bool:
        """Whether a configuration line under the root belongs to this object."""
        return line.startswith(self.root_path(ident))

    def prerequisites(self, ident: Identity) -> list[tuple[str, ConfigPath]]:
        """(label, root path) of objects that must exist before this one is created."""
        return []

    def delete_guard(self, ident: Identity, lines: list[ConfigPath]) -> Optional[str]:
        """Reason the object cannot be deleted, given its live configuration."""
        return None

    def describe(self) -> dict:
        return {
            "type": self.type_tag,
            "description": self.description,
            "keys": [k.name for k in self.keys],
            "attributes": [a.describe() for a in self.attributes],
        }
