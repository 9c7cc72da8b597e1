"""Junos NETCONF session over SSH (ncclient).

Each CommandKind maps onto one ncclient manager operation with the Junos
device handler:

- SHOW      -> command(format="text")          <command format="text">
- LOAD      -> load_configuration(action="set") <load-configuration action="set">
- VALIDATE  -> commit(check=True)               <commit-configuration><check/>
- COMMIT    -> commit(comment=...)              <commit-configuration><log>
- LOCK      -> lock(target="candidate")
- UNLOCK    -> unlock(target="candidate")
- DISCARD   -> discard_changes()

ncclient operations block, so they run in the default executor. The
manager runs with RaiseMode.NONE: Junos reports semantic failures in-band
(rpc-error elements and `error:` lines in text output), never as transport
status, and every reply is decoded by parse_reply.
"""
import asyncio
import functools
import logging
import re
from typing import Any, Optional

import paramiko
from lxml.etree import XMLSyntaxError
from ncclient import manager
from ncclient.operations import RaiseMode, RPCError, TimeoutExpiredError
from ncclient.transport.errors import (
    AuthenticationError,
    SessionCloseError,
    TransportError as NetconfTransportError,
)
from ncclient.xml_ import to_ele

from ..errors import TransportError
from ..utils.logging_config import timed, perf_logger
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

DEVICE_PARAMS = {"name": "junos"}

RPC_SYSTEM_INFO = "<get-system-information/>"

# In-band error markers in text output
ERROR_PATTERNS = [
    "error:",
    "syntax error",
    "unknown command",
    "missing argument",
    "invalid value",
]

# Lines that look like errors but are informational
INFO_PATTERNS = [
    "warning:",
    "statement not found",
]

# Elements holding command text output, in lookup order
OUTPUT_TAGS = ("configuration-output", "output", "configuration-text")

BAD_ELEMENT = re.compile(r"<(?:\w+:)?bad-element>([^<]*)</(?:\w+:)?bad-element>")


def _local(tag: Any) -> str:
    """Strip the XML namespace from a tag. Comments and PIs have no name."""
    if not isinstance(tag, str):
        return ""
    return tag.rsplit("}", 1)[-1]


def _find(element, name: str):
    for child in element.iter():
        if _local(child.tag) == name:
            return child
    return None


def _text(element, name: str) -> Optional[str]:
    found = _find(element, name)
    if found is None or found.text is None:
        return None
    return found.text.strip()


def rpc_call(command: Command) -> tuple[str, dict]:
    """Manager operation name and keyword arguments for a Command."""
    if command.kind == CommandKind.SHOW:
        return "command", {"command": command.text, "format": "text"}
    if command.kind == CommandKind.LOAD:
        return "load_configuration", {"action": "set", "config": list(command.lines)}
    if command.kind == CommandKind.VALIDATE:
        return "commit", {"check": True}
    if command.kind == CommandKind.COMMIT:
        return "commit", {"comment": command.text}
    if command.kind == CommandKind.LOCK:
        return "lock", {"target": "candidate"}
    if command.kind == CommandKind.UNLOCK:
        return "unlock", {"target": "candidate"}
    if command.kind == CommandKind.DISCARD:
        return "discard_changes", {}
    raise ValueError(f"Unsupported command kind: {command.kind}")


def scan_text_errors(output: str) -> list[str]:
    """Find error lines in text output.

    Ignores lines matching INFO_PATTERNS (false positives).
    """
    errors = []
    for line in output.splitlines():
        line_lower = line.strip().lower()
        if not line_lower or line_lower.startswith(("set ", "#")):
            continue
        if any(info in line_lower for info in INFO_PATTERNS):
            continue
        if any(line_lower.startswith(p) or p in line_lower for p in ERROR_PATTERNS):
            errors.append(line.strip())
    return errors


def _add_by_severity(reply: Reply, severity: Optional[str], message: str) -> None:
    if (severity or "error").lower() == "error":
        reply.errors.append(message)
    else:
        reply.warnings.append(message)


def reply_from_rpc_error(error: RPCError) -> Reply:
    """Reply for an RPCError raised by ncclient instead of returned in-band."""
    reply = Reply()
    message = (error.message or str(error)).strip() or "unknown error"
    bad_element = BAD_ELEMENT.search(error.info or "")
    if bad_element:
        message = f"{message} (statement: {bad_element.group(1).strip()})"
    _add_by_severity(reply, error.severity, message)
    return reply


def parse_reply(raw: str) -> Reply:
    """Decode a raw <rpc-reply> into a Reply.

    rpc-error elements with severity `error` become errors, anything else
    (typically `warning`) becomes a warning. Text output outside
    <configuration-output> is scanned for in-band error lines.
    """
    try:
        root = to_ele(raw.strip())
    except XMLSyntaxError as e:
        raise TransportError(f"Malformed NETCONF reply: {e}") from e

    reply = Reply()
    for element in root.iter():
        if _local(element.tag) != "rpc-error":
            continue
        message = _text(element, "error-message") or "unknown error"
        bad_element = _text(element, "bad-element")
        if bad_element:
            message = f"{message} (statement: {bad_element})"
        _add_by_severity(reply, _text(element, "error-severity"), message)

    for tag in OUTPUT_TAGS:
        found = _find(root, tag)
        if found is not None:
            reply.output = (found.text or "").strip("\n")
            if tag != "configuration-output":
                for line in scan_text_errors(reply.output):
                    if line not in reply.errors:
                        reply.errors.append(line)
            break

    return reply


class JunosNetconfDevice(NetworkDevice):
    """Junos device handler over NETCONF/SSH."""

    def __init__(self, device_id: str, config: DeviceConfig):
        super().__init__(device_id, config)
        self._manager: Optional[manager.Manager] = None

    def _open(self) -> manager.Manager:
        """Open SSH and the netconf subsystem (blocking)."""
        return manager.connect(
            host=self.host,
            port=self.config.port,
            username=self.config.username,
            # ncclient also uses the password to unlock key files
            password=self.config.get_password() or self.config.ssh_key_passphrase or None,
            key_filename=self.config.ssh_key_file,
            allow_agent=self.config.ssh_key_file is None,
            look_for_keys=False,
            hostkey_verify=False,
            timeout=self.config.timeout,
            device_params=DEVICE_PARAMS,
        )

    async def _call(self, operation: str, **kwargs) -> Any:
        """Run one blocking manager operation in the executor."""
        if self._manager is None:
            raise TransportError(f"Session to {self.device_id} is not connected")
        method = getattr(self._manager, operation)
        loop = asyncio.get_event_loop()
        return await loop.run_in_executor(None, functools.partial(method, **kwargs))

    @timed("connect")
    async def connect(self) -> bool:
        """Connect to the device and gather system information."""
        logger.info(f"Connecting to Junos {self.device_id} at {self.host}:{self.config.port}")
        loop = asyncio.get_event_loop()
        try:
            self._manager = await loop.run_in_executor(None, self._open)
        except AuthenticationError as e:
            raise TransportError(f"Authentication failed for {self.device_id}") from e
        except (NetconfTransportError, paramiko.SSHException, OSError) as e:
            raise TransportError(
                f"Error connecting to {self.device_id}: {e}", transient=True
            ) from e

        self._manager.raise_mode = RaiseMode.NONE
        self._manager.timeout = self.config.timeout
        self.state = SessionState.CONNECTED
        try:
            await self._gather_facts()
        except TransportError:
            await self.disconnect()
            raise

        logger.info(
            f"Connected to {self.device_id} "
            f"({self.facts.model or 'unknown model'}, {self.facts.os_version or 'unknown version'})"
        )
        return True

    async def disconnect(self) -> None:
        """Close the NETCONF session. The device drops the candidate lock with it."""
        if self._manager is not None and self.state != SessionState.DISCONNECTED:
            try:
                await asyncio.wait_for(self._call("close_session"), timeout=5)
            except (NetconfTransportError, RPCError, TimeoutExpiredError, asyncio.TimeoutError) as e:
                logger.debug(f"close-session on {self.device_id} failed: {e}")
        self._manager = None
        self.state = SessionState.DISCONNECTED
        logger.info(f"Disconnected from {self.device_id}")

    async def _gather_facts(self) -> None:
        try:
            raw = (await self._call("rpc", rpc=RPC_SYSTEM_INFO)).xml
        except TimeoutExpiredError as e:
            raise TransportError(
                f"get-system-information on {self.device_id} timed out", timed_out=True
            ) from e
        except RPCError as e:
            logger.warning(f"Could not read system information from {self.device_id}: {e}")
            return
        try:
            root = to_ele(raw)
        except XMLSyntaxError:
            logger.warning(f"Could not parse system information from {self.device_id}")
            return
        self.facts = DeviceFacts(
            hostname=_text(root, "host-name"),
            model=_text(root, "hardware-model"),
            os_name=_text(root, "os-name"),
            os_version=_text(root, "os-version"),
            serial_number=_text(root, "serial-number"),
        )

    async def _send(self, command: Command) -> Reply:
        operation, kwargs = rpc_call(command)
        try:
            rpc_reply = await self._call(operation, **kwargs)
        except RPCError as e:
            reply = reply_from_rpc_error(e)
        except TimeoutExpiredError as e:
            raise TransportError(
                f"{command.describe()} on {self.device_id} timed out after {self._manager.timeout}s",
                timed_out=True,
            ) from e
        except (SessionCloseError, NetconfTransportError) as e:
            self.state = SessionState.DISCONNECTED
            raise TransportError(
                f"Connection to {self.device_id} lost during {command.describe()}: {e}",
                transient=True,
            ) from e
        else:
            reply = parse_reply(rpc_reply.xml)

        perf_logger.debug(
            f"{'rpc':20s} | {self.device_id:15s} | {command.describe()[:50]} | "
            f"{'OK' if reply.ok else 'FAIL'}"
        )
        if reply.warnings:
            logger.debug(f"{self.device_id} warnings for {command.describe()}: {reply.warnings}")
        return reply
