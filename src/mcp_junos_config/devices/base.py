"""Base device abstraction for Junos configuration sessions."""
import asyncio
import logging
import os
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Optional

from ..errors import TransportError

logger = logging.getLogger(__name__)


@dataclass
class DeviceConfig:
    """Configuration for a Junos device."""
    type: str
    name: str
    host: str
    port: int = 830
    username: str = "netconf"
    protocol: str = "netconf"
    password: Optional[str] = None
    password_env: str = "JUNOS_PASSWORD"
    ssh_key_file: Optional[str] = None
    ssh_key_passphrase: Optional[str] = None
    timeout: int = 30
    retries: int = 3
    retry_delay: float = 2
    # Candidate lock behaviour
    lock_timeout: float = 60
    lock_wait: bool = True
    lock_retries: int = 5
    lock_retry_delay: float = 1
    # Transaction behaviour
    max_attempts: int = 3
    load_batch_size: int = 0  # 0 = whole batch in one RPC
    commit_comment_prefix: str = "junoscraft"
    # Device-specific options
    options: dict = field(default_factory=dict)

    def get_password(self) -> str:
        """Get password from config or environment variable."""
        if self.password:
            return self.password
        return os.environ.get(self.password_env, "")


class SessionState(str, Enum):
    """Lifecycle of one configuration session."""
    DISCONNECTED = "disconnected"
    CONNECTED = "connected"
    LOCKED = "locked"
    UNLOCKED = "unlocked"


class CommandKind(str, Enum):
    """Kinds of command a session can send."""
    SHOW = "show"          # operational / `show configuration` command, text reply
    LOAD = "load"          # load set/delete lines into the candidate
    VALIDATE = "validate"  # commit check
    COMMIT = "commit"
    LOCK = "lock"
    UNLOCK = "unlock"
    DISCARD = "discard"    # throw away uncommitted candidate edits


@dataclass(frozen=True)
class Command:
    """A command sent over a session."""
    kind: CommandKind
    text: str = ""
    lines: tuple[str, ...] = ()

    def describe(self) -> str:
        if self.kind == CommandKind.LOAD:
            return f"load ({len(self.lines)} lines)"
        if self.text:
            return f"{self.kind.value} {self.text}"
        return self.kind.value


@dataclass
class Reply:
    """Decoded reply to a command.

    Semantic failures are reported in-band by the device, so `errors`
    holds the device's own error messages; transport failures raise
    TransportError instead of producing a Reply.
    """
    output: str = ""
    errors: list[str] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return not self.errors

    @property
    def error_message(self) -> str:
        return "\n".join(self.errors)


@dataclass
class DeviceFacts:
    """Basic facts gathered when the session opens."""
    hostname: Optional[str] = None
    model: Optional[str] = None
    os_name: Optional[str] = None
    os_version: Optional[str] = None
    serial_number: Optional[str] = None


class NetworkDevice(ABC):
    """Abstract base class for a configuration session to one device.

    One instance is one logical session. It is passed explicitly to the
    lock manager, coordinator and reader, never shared implicitly.
    """

    def __init__(self, device_id: str, config: DeviceConfig):
        self.device_id = device_id
        self.config = config
        self.state = SessionState.DISCONNECTED
        self.facts = DeviceFacts()
        self._connection: Any = None

    @property
    def name(self) -> str:
        return self.config.name

    @property
    def host(self) -> str:
        return self.config.host

    @property
    def is_connected(self) -> bool:
        return self.state != SessionState.DISCONNECTED

    # Connection management
    @abstractmethod
    async def connect(self) -> bool:
        """Establish the session."""
        pass

    @abstractmethod
    async def disconnect(self) -> None:
        """Close the session. Uncommitted candidate edits are discarded by the device."""
        pass

    @abstractmethod
    async def _send(self, command: Command) -> Reply:
        """Send one command and decode the reply. Runs without a deadline."""
        pass

    async def send(self, command: Command, timeout: Optional[float] = None) -> Reply:
        """Send a command under a deadline.

        Args:
            command: Command to send
            timeout: Deadline in seconds (defaults to config.timeout)

        Returns:
            Reply with the device output and any in-band errors

        Raises:
            TransportError: connection problem or deadline expiry

        A session whose command timed out is closed: a late reply must never
        be read as the answer to a later command.
        """
        if not self.is_connected:
            raise TransportError(f"Session to {self.device_id} is not connected")

        deadline = timeout if timeout is not None else self.config.timeout
        try:
            return await asyncio.wait_for(self._send(command), timeout=deadline)
        except TransportError as e:
            if e.timed_out:
                await self._abandon(command)
            raise
        except asyncio.TimeoutError as e:
            await self._abandon(command)
            raise TransportError(
                f"{command.describe()} on {self.device_id} timed out after {deadline}s",
                timed_out=True,
            ) from e
        except (ConnectionResetError, BrokenPipeError, EOFError) as e:
            self.state = SessionState.DISCONNECTED
            raise TransportError(
                f"Connection to {self.device_id} lost during {command.describe()}: {e}",
                transient=True,
            ) from e
        except OSError as e:
            self.state = SessionState.DISCONNECTED
            raise TransportError(
                f"I/O error on {self.device_id} during {command.describe()}: {e}"
            ) from e

    async def _abandon(self, command: Command) -> None:
        logger.warning(f"{command.describe()} on {self.device_id} timed out, closing the session")
        await self.disconnect()

    async def command(self, text: str, timeout: Optional[float] = None) -> Reply:
        """Run a show command."""
        return await self.send(Command(CommandKind.SHOW, text=text), timeout)

    # Context manager support
    async def __aenter__(self):
        await self.connect()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.disconnect()
        return False
