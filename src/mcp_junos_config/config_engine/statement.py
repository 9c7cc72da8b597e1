"""Statement model for Junos hierarchical configuration.

A configuration node is addressed by a ConfigPath (ordered hierarchy
tokens). A Statement pairs a path with an operation (set/delete) and an
optional leaf value, and serializes to the exact text the device parses:

    set interfaces ge-0/0/0 description "uplink to core"
    delete interfaces ge-0/0/0 vlan-tagging
"""
from dataclasses import dataclass
from enum import Enum
from typing import Iterable, Optional, Union

# Characters that force a token to be double-quoted
SPECIAL_CHARS = set(" \t\r\n\"';{}#[]\\")

INDENT = "    "


class StatementOp(str, Enum):
    """Statement operation."""
    SET = "set"
    DELETE = "delete"


class ConfigPath(tuple):
    """Immutable sequence of hierarchy tokens.

    Example:
        build_path("interfaces", "ge-0/0/0", "unit", "0")
    """

    def __new__(cls, tokens: Iterable[str] = ()):
        return super().__new__(cls, (str(t) for t in tokens))

    def __truediv__(self, other: Union["ConfigPath", str, Iterable[str]]) -> "ConfigPath":
        if isinstance(other, str):
            return ConfigPath((*self, other))
        return ConfigPath((*self, *other))

    def startswith(self, prefix: Iterable[str]) -> bool:
        prefix = tuple(prefix)
        return tuple(self[:len(prefix)]) == prefix

    @property
    def parent(self) -> "ConfigPath":
        return ConfigPath(self[:-1])

    def to_text(self) -> str:
        return " ".join(quote_token(t) for t in self)

    def __str__(self) -> str:
        return self.to_text()

    def __repr__(self) -> str:
        return f"ConfigPath({self.to_text()!r})"


def build_path(*tokens: Union[str, int, Iterable[str]]) -> ConfigPath:
    """Build a ConfigPath, flattening nested paths and tuples."""
    flat: list[str] = []
    for token in tokens:
        if isinstance(token, (str, int)):
            flat.append(str(token))
        else:
            flat.extend(str(t) for t in token)
    return ConfigPath(flat)


def needs_quotes(token: str) -> bool:
    return token == "" or any(ch in SPECIAL_CHARS for ch in token)


def quote_token(token: str, force: bool = False) -> str:
    """Quote a token the way the device prints it in `display set` output."""
    if not force and not needs_quotes(token):
        return token
    escaped = token.replace("\\", "\\\\").replace('"', '\\"')
    return f'"{escaped}"'


@dataclass(frozen=True)
class Statement:
    """One set/delete instruction targeting a configuration path."""
    path: ConfigPath
    op: StatementOp = StatementOp.SET
    value: Optional[str] = None
    quoted: bool = False

    def to_text(self) -> str:
        text = f"{self.op.value} {self.path.to_text()}"
        if self.value is not None:
            text += " " + quote_token(self.value, force=self.quoted)
        return text.rstrip()

    def key(self) -> tuple:
        """Identity used to detect duplicates.

        Deletes are duplicates when path and operation match, whatever the value.
        """
        if self.op == StatementOp.DELETE:
            return (self.op, self.path)
        return (self.op, self.path, self.value)

    @property
    def full_path(self) -> ConfigPath:
        """Path including the leaf value as a final token."""
        if self.value is None:
            return self.path
        return self.path / self.value

    def __str__(self) -> str:
        return self.to_text()


def new_statement(
    path: Union[ConfigPath, Iterable[str]],
    op: Union[StatementOp, str] = StatementOp.SET,
    value: Optional[Union[str, int]] = None,
    quoted: bool = False,
) -> Statement:
    """Create a Statement, coercing the path, op and value."""
    return Statement(
        path=path if isinstance(path, ConfigPath) else ConfigPath(path),
        op=StatementOp(op),
        value=None if value is None else str(value),
        quoted=quoted,
    )


def dedupe(statements: Iterable[Statement]) -> list[Statement]:
    """Drop duplicate statements, keeping first occurrence and order."""
    seen: set = set()
    result = []
    for stmt in statements:
        key = stmt.key()
        if key in seen:
            continue
        seen.add(key)
        result.append(stmt)
    return result


def tokenize(line: str) -> list[str]:
    """Split one configuration line into tokens.

    Handles double-quoted tokens with backslash escapes and strips trailing
    comments (`## SECRET-DATA`, `# note`) that sit outside quotes.
    """
    tokens: list[str] = []
    current: list[str] = []
    in_quotes = False
    quoted_token = False
    i = 0
    while i < len(line):
        ch = line[i]
        if in_quotes:
            if ch == "\\" and i + 1 < len(line):
                current.append(line[i + 1])
                i += 2
                continue
            if ch == '"':
                in_quotes = False
            else:
                current.append(ch)
        elif ch == '"':
            in_quotes = True
            quoted_token = True
        elif ch == "#" and not current and not quoted_token:
            break
        elif ch.isspace():
            if current or quoted_token:
                tokens.append("".join(current))
                current = []
                quoted_token = False
        else:
            current.append(ch)
        i += 1

    if in_quotes:
        raise ValueError(f"Unterminated quote in line: {line!r}")
    if current or quoted_token:
        tokens.append("".join(current))
    return tokens


def parse_statement(line: str) -> Statement:
    """Parse one `set ...` / `delete ...` line into a Statement.

    All tokens after the operation become the path; the value is None.
    """
    tokens = tokenize(line.strip())
    if not tokens:
        raise ValueError("Empty statement")
    try:
        op = StatementOp(tokens[0])
    except ValueError:
        raise ValueError(f"Unknown statement operation: {tokens[0]!r}")
    return Statement(path=ConfigPath(tokens[1:]), op=op)


def parse_statements(text: str) -> list[Statement]:
    """Parse `display set` output, skipping blank lines and comments."""
    statements = []
    for line in text.splitlines():
        line = line.strip()
        if not line or line.startswith("#") or line.startswith("/*"):
            continue
        if not (line.startswith("set ") or line.startswith("delete ")):
            continue
        statements.append(parse_statement(line))
    return statements


def render_hierarchy(statements: Iterable[Statement]) -> str:
    """Render set statements as curly-brace hierarchical configuration text.

    Each path's final token becomes a leaf (`name;` or `name value;`),
    intermediate tokens become containers:

        interfaces {
            ge-0/0/0 {
                vlan-tagging;
            }
        }
    """
    tree: dict = {}
    for stmt in statements:
        if stmt.op != StatementOp.SET:
            continue
        node = tree
        tokens = list(stmt.full_path)
        for token in tokens:
            node = node.setdefault(token, {})

    lines: list[str] = []

    def walk(node: dict, depth: int) -> None:
        for token, child in node.items():
            pad = INDENT * depth
            # Collapse single-child chains ending in a leaf: `description "x";`
            chain = [quote_token(token)]
            while len(child) == 1:
                (next_token, next_child), = child.items()
                if next_child:
                    break
                chain.append(quote_token(next_token))
                child = next_child
            if child:
                lines.append(f"{pad}{' '.join(chain)} {{")
                walk(child, depth + 1)
                lines.append(f"{pad}}}")
            else:
                lines.append(f"{pad}{' '.join(chain)};")

    walk(tree, 0)
    return "\n".join(lines)
