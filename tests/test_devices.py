"""Tests for device sessions: factory, base send semantics and the simulator."""
import asyncio

import pytest

from mcp_junos_config.devices import (
    DEVICE_TYPES,
    Command,
    CommandKind,
    DeviceConfig,
    JunosNetconfDevice,
    MockJunosDevice,
    NetworkDevice,
    Reply,
    SessionState,
    create_device,
)
from mcp_junos_config.errors import TransportError


class SlowDevice(NetworkDevice):
    """Session whose replies take longer than any test deadline."""

    async def connect(self) -> bool:
        self.state = SessionState.CONNECTED
        return True

    async def disconnect(self) -> None:
        self.state = SessionState.DISCONNECTED

    async def _send(self, command: Command) -> Reply:
        await asyncio.sleep(10)
        return Reply()


class TestCreateDevice:
    """Tests for the device factory."""

    def test_registry(self):
        assert DEVICE_TYPES["junos"] is JunosNetconfDevice
        assert DEVICE_TYPES["mock"] is MockJunosDevice

    def test_create_junos(self):
        device = create_device("srx", {"type": "junos", "host": "192.0.2.1", "port": 22})
        assert isinstance(device, JunosNetconfDevice)
        assert device.name == "srx"
        assert device.host == "192.0.2.1"
        assert device.config.port == 22
        assert device.state == SessionState.DISCONNECTED

    def test_type_is_case_insensitive(self):
        assert isinstance(create_device("lab", {"type": "Mock", "host": "x"}), MockJunosDevice)

    def test_unknown_type(self):
        with pytest.raises(ValueError, match="Unknown device type"):
            create_device("sw", {"type": "ios", "host": "x"})


class TestDeviceConfig:
    """Tests for DeviceConfig."""

    def test_defaults(self):
        config = DeviceConfig(type="junos", name="srx", host="192.0.2.1")
        assert config.port == 830
        assert config.lock_wait is True
        assert config.load_batch_size == 0
        assert config.commit_comment_prefix == "junoscraft"

    def test_password_from_env(self, monkeypatch):
        monkeypatch.setenv("SRX_PASSWORD", "from-env")
        config = DeviceConfig(type="junos", name="srx", host="h", password_env="SRX_PASSWORD")
        assert config.get_password() == "from-env"

    def test_explicit_password_wins(self, monkeypatch):
        monkeypatch.setenv("JUNOS_PASSWORD", "from-env")
        config = DeviceConfig(type="junos", name="srx", host="h", password="inline")
        assert config.get_password() == "inline"


class TestSend:
    """Deadline and error mapping in NetworkDevice.send."""

    @pytest.mark.asyncio
    async def test_deadline(self):
        device = SlowDevice("slow", DeviceConfig(type="mock", name="slow", host="h"))
        await device.connect()

        with pytest.raises(TransportError) as exc_info:
            await device.send(Command(CommandKind.COMMIT), timeout=0.01)

        assert exc_info.value.timed_out
        assert exc_info.value.transient
        assert device.state == SessionState.DISCONNECTED

    @pytest.mark.asyncio
    async def test_timeout_closes_session(self, backend, make_session):
        """A late reply can never answer the next command."""
        backend.inject(CommandKind.VALIDATE, raises=asyncio.TimeoutError)
        session = await make_session()
        await session.send(Command(CommandKind.LOCK))

        with pytest.raises(TransportError) as exc_info:
            await session.send(Command(CommandKind.VALIDATE))

        assert exc_info.value.timed_out
        assert not session.is_connected
        assert backend.lock_owner is None
        with pytest.raises(TransportError, match="not connected"):
            await session.send(Command(CommandKind.COMMIT))

    @pytest.mark.asyncio
    async def test_not_connected(self):
        device = SlowDevice("slow", DeviceConfig(type="mock", name="slow", host="h"))
        with pytest.raises(TransportError, match="not connected"):
            await device.command("show version")

    @pytest.mark.asyncio
    async def test_context_manager(self, backend):
        config = DeviceConfig(type="mock", name="lab", host="localhost")
        async with MockJunosDevice("lab", config, backend=backend) as session:
            assert session.is_connected
        assert not session.is_connected

    def test_describe(self):
        assert Command(CommandKind.LOAD, lines=("a", "b")).describe() == "load (2 lines)"
        assert Command(CommandKind.SHOW, text="show version").describe() == "show show version"
        assert Command(CommandKind.LOCK).describe() == "lock"


class TestMockDevice:
    """Behaviour of the simulated device."""

    @pytest.mark.asyncio
    async def test_candidate_lock_contention(self, backend, make_session):
        first = await make_session()
        second = await make_session()

        assert (await first.send(Command(CommandKind.LOCK))).ok
        reply = await second.send(Command(CommandKind.LOCK))

        assert not reply.ok
        assert "locked by" in reply.error_message

    @pytest.mark.asyncio
    async def test_disconnect_discards_candidate(self, backend, make_session):
        session = await make_session()
        await session.send(Command(CommandKind.LOCK))
        await session.send(Command(CommandKind.LOAD, lines=("set vlans users vlan-id 100",)))
        assert backend.candidate is not None

        await session.disconnect()

        assert backend.candidate is None
        assert backend.lock_owner is None
        assert backend.committed_text() == ""

    @pytest.mark.asyncio
    async def test_delete_missing_is_warning(self, backend, make_session):
        session = await make_session()
        reply = await session.send(Command(CommandKind.LOAD, lines=("delete vlans nothing",)))
        assert reply.ok
        assert reply.warnings

    @pytest.mark.asyncio
    async def test_show_rejects_other_commands(self, make_session):
        session = await make_session()
        reply = await session.command("request system reboot")
        assert not reply.ok

    @pytest.mark.asyncio
    async def test_show_displays_leaves_only(self, backend, make_session):
        backend.seed("set interfaces ge-0/0/0\nset interfaces ge-0/0/0 mtu 9192\nset interfaces ge-0/0/1")
        session = await make_session()

        reply = await session.command("show configuration interfaces | display set")

        assert reply.output.splitlines() == [
            "set interfaces ge-0/0/0 mtu 9192",
            "set interfaces ge-0/0/1",
        ]

    @pytest.mark.asyncio
    async def test_fault_after_apply(self, backend, make_session):
        """A commit can take effect even though the reply is lost."""
        backend.inject(CommandKind.COMMIT, raises=ConnectionResetError, apply_first=True)
        session = await make_session()
        await session.send(Command(CommandKind.LOAD, lines=("set vlans users vlan-id 100",)))

        with pytest.raises(TransportError):
            await session.send(Command(CommandKind.COMMIT, text="c"))

        assert backend.commits == 1
        assert backend.committed_text() == "set vlans users vlan-id 100"
        assert not session.is_connected

    @pytest.mark.asyncio
    async def test_unreachable(self, backend):
        backend.reachable = False
        session = MockJunosDevice("lab", DeviceConfig(type="mock", name="lab", host="x"), backend=backend)
        with pytest.raises(TransportError):
            await session.connect()
