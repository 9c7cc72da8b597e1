"""In-memory Junos device for tests and offline dry runs.

A MockJunosBackend plays the part of one physical device: committed
configuration, a shared candidate, the candidate lock owner and a log of
every command received. Any number of MockJunosDevice sessions can be
attached to the same backend to exercise lock contention.

Configuration is stored as token paths (one per `set` line). `delete P`
removes P and every path below it, `set P` adds P if absent. Single-valued
leaves are not replaced implicitly; callers delete the old value first.
"""
import asyncio
import itertools
import logging
from dataclasses import dataclass, field
from typing import ClassVar, Optional

from ..config_engine.statement import (
    ConfigPath,
    StatementOp,
    parse_statement,
    quote_token,
    tokenize,
)
from ..errors import TransportError
from .base import (
    Command,
    CommandKind,
    DeviceConfig,
    DeviceFacts,
    NetworkDevice,
    Reply,
    SessionState,
)

logger = logging.getLogger(__name__)

# Command kinds that change device state
WRITE_KINDS = {CommandKind.LOAD, CommandKind.COMMIT, CommandKind.DISCARD}

_session_ids = itertools.count(1)


@dataclass
class InjectedFault:
    """A failure to produce the next `times` times a command kind is sent."""
    kind: CommandKind
    error: Optional[str] = None       # in-band device error message
    raises: Optional[type] = None     # exception type raised instead of replying
    times: int = 1
    apply_first: bool = False         # perform the command before failing


@dataclass
class MockJunosBackend:
    """State of one simulated device."""
    hostname: str = "mock-junos"
    committed: list[ConfigPath] = field(default_factory=list)
    candidate: Optional[list[ConfigPath]] = None
    lock_owner: Optional[str] = None
    commits: int = 0
    log: list[tuple[str, Command]] = field(default_factory=list)
    faults: list[InjectedFault] = field(default_factory=list)
    # statement prefix text -> device error message for load
    reject_statements: dict[str, str] = field(default_factory=dict)
    # statement prefix text -> device error message for commit check
    reject_on_commit: dict[str, str] = field(default_factory=dict)

    reachable: bool = True
    # connection attempts that time out before one succeeds
    flaky_connects: int = 0
    connects: int = 0

    _registry: ClassVar[dict] = {}

    @classmethod
    def for_device(cls, device_id: str) -> "MockJunosBackend":
        """Backend shared by all mock sessions opened for one inventory device."""
        if device_id not in cls._registry:
            cls._registry[device_id] = cls(hostname=device_id)
        return cls._registry[device_id]

    @classmethod
    def reset_registry(cls) -> None:
        cls._registry.clear()

    # Seeding and inspection
    def seed(self, text: str) -> None:
        """Add `set` lines directly to the committed configuration."""
        for line in text.splitlines():
            line = line.strip()
            if line.startswith("set "):
                _add(self.committed, parse_statement(line).path)

    def lock_by_other(self, owner: str = "admin") -> None:
        """Simulate another client holding the candidate lock."""
        self.lock_owner = f"other:{owner}"

    def inject(self, kind: CommandKind, error: Optional[str] = None,
               raises: Optional[type] = None, times: int = 1,
               apply_first: bool = False) -> None:
        self.faults.append(InjectedFault(kind, error, raises, times, apply_first))

    def committed_text(self) -> str:
        return "\n".join(_render(p) for p in _display(self.committed))

    def writes(self) -> list[Command]:
        return [cmd for _, cmd in self.log if cmd.kind in WRITE_KINDS]

    def sent(self, kind: CommandKind) -> list[Command]:
        return [cmd for _, cmd in self.log if cmd.kind == kind]

    def take_fault(self, kind: CommandKind) -> Optional[InjectedFault]:
        for fault in self.faults:
            if fault.kind == kind and fault.times > 0:
                fault.times -= 1
                return fault
        return None


def _add(store: list[ConfigPath], path: ConfigPath) -> None:
    if path not in store:
        store.append(path)


def _remove(store: list[ConfigPath], path: ConfigPath) -> int:
    """Delete `path` and everything below it.

    A top-level named entry (`interfaces ge-0/0/0`, `vlans users`) whose
    last child goes away stays behind as an empty entry.
    """
    before = len(store)
    store[:] = [p for p in store if not p.startswith(path)]
    removed = before - len(store)
    parent = path.parent
    if removed and len(parent) == 2 and not any(p.startswith(parent) for p in store):
        store.append(parent)
    return removed


def _display(store: list[ConfigPath]) -> list[ConfigPath]:
    """Paths as `display set` shows them: containers with children are implied."""
    return [
        p for p in store
        if not any(len(o) > len(p) and o.startswith(p) for o in store)
    ]


def _render(path: ConfigPath) -> str:
    return "set " + " ".join(quote_token(t) for t in path)


class MockJunosDevice(NetworkDevice):
    """Session to a MockJunosBackend."""

    def __init__(self, device_id: str, config: DeviceConfig,
                 backend: Optional[MockJunosBackend] = None):
        super().__init__(device_id, config)
        self.backend = backend or MockJunosBackend.for_device(device_id)
        self.session_id = f"session-{next(_session_ids)}"

    async def connect(self) -> bool:
        self.backend.connects += 1
        if not self.backend.reachable:
            raise TransportError(f"Error connecting to {self.device_id}: Connection refused")
        if self.backend.flaky_connects > 0:
            self.backend.flaky_connects -= 1
            raise TransportError(f"Timed out connecting to {self.device_id}", timed_out=True)
        self.state = SessionState.CONNECTED
        self.facts = DeviceFacts(
            hostname=self.backend.hostname,
            model="vSRX",
            os_name="junos",
            os_version="mock",
        )
        logger.debug(f"Mock session {self.session_id} connected to {self.device_id}")
        return True

    async def disconnect(self) -> None:
        # Session teardown discards this session's candidate edits
        if self.backend.lock_owner == self.session_id:
            self.backend.lock_owner = None
            self.backend.candidate = None
        self.state = SessionState.DISCONNECTED

    async def _send(self, command: Command) -> Reply:
        self.backend.log.append((self.session_id, command))
        await asyncio.sleep(0)

        fault = self.backend.take_fault(command.kind)
        if fault and fault.apply_first:
            self._apply(command)
        if fault and fault.raises:
            if issubclass(fault.raises, (ConnectionError, EOFError)):
                await self.disconnect()
            raise fault.raises(f"injected {command.kind.value} failure")
        if fault and fault.error:
            return Reply(errors=[fault.error])
        if fault and fault.apply_first:
            return Reply()
        return self._apply(command)

    def _apply(self, command: Command) -> Reply:
        handler = {
            CommandKind.SHOW: self._show,
            CommandKind.LOAD: self._load,
            CommandKind.VALIDATE: self._validate,
            CommandKind.COMMIT: self._commit,
            CommandKind.LOCK: self._lock,
            CommandKind.UNLOCK: self._unlock,
            CommandKind.DISCARD: self._discard,
        }[command.kind]
        return handler(command)

    def _locked_by_other(self) -> bool:
        return self.backend.lock_owner not in (None, self.session_id)

    def _lock_message(self) -> str:
        owner = self.backend.lock_owner or ""
        return f"configuration database locked by: {owner.split(':')[-1]}"

    def _show(self, command: Command) -> Reply:
        text = command.text.strip()
        if not text.startswith("show configuration"):
            return Reply(errors=[f"error: syntax error: {text.split()[0] if text else ''}"])
        expr = text[len("show configuration"):].split("|")[0]
        prefix = ConfigPath(tokenize(expr))
        # Reads report committed configuration only
        matches = [p for p in _display(self.backend.committed) if p.startswith(prefix)]
        return Reply(output="\n".join(_render(p) for p in matches))

    def _load(self, command: Command) -> Reply:
        if self._locked_by_other():
            return Reply(errors=[self._lock_message()])
        if self.backend.candidate is None:
            self.backend.candidate = list(self.backend.committed)
        reply = Reply()
        for line in command.lines:
            for prefix, message in self.backend.reject_statements.items():
                if line.startswith(prefix):
                    reply.errors.append(f"{message} (statement: {line})")
                    return reply
            stmt = parse_statement(line)
            if stmt.op == StatementOp.SET:
                _add(self.backend.candidate, stmt.path)
            elif _remove(self.backend.candidate, stmt.path) == 0:
                reply.warnings.append(f"warning: statement not found: {line}")
        return reply

    def _check(self) -> list[str]:
        candidate = self.backend.candidate or []
        errors = []
        for path in candidate:
            line = _render(path)
            for prefix, message in self.backend.reject_on_commit.items():
                if line.startswith(prefix):
                    errors.append(f"{message} (statement: {line})")
        return errors

    def _validate(self, command: Command) -> Reply:
        return Reply(errors=self._check())

    def _commit(self, command: Command) -> Reply:
        if self._locked_by_other():
            return Reply(errors=[self._lock_message()])
        errors = self._check()
        if errors:
            return Reply(errors=errors)
        if self.backend.candidate is not None:
            self.backend.committed = list(self.backend.candidate)
            self.backend.candidate = None
        self.backend.commits += 1
        return Reply(output="commit complete")

    def _lock(self, command: Command) -> Reply:
        if self._locked_by_other():
            return Reply(errors=[self._lock_message()])
        self.backend.lock_owner = self.session_id
        return Reply()

    def _unlock(self, command: Command) -> Reply:
        if self.backend.lock_owner != self.session_id:
            return Reply(errors=["configuration database not locked"])
        self.backend.lock_owner = None
        return Reply()

    def _discard(self, command: Command) -> Reply:
        if self._locked_by_other():
            return Reply(errors=[self._lock_message()])
        self.backend.candidate = None
        return Reply()
