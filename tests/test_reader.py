"""Tests for the state reader."""
import pytest

from mcp_junos_config.config_engine.builder import ChangeBuilder
from mcp_junos_config.config_engine.reader import StateReader
from mcp_junos_config.config_engine.statement import parse_statement
from mcp_junos_config.devices.base import CommandKind, Reply
from mcp_junos_config.errors import DecodeError
from mcp_junos_config.resources import get_resource_type


def canned(session, monkeypatch, output="", errors=None):
    """Make every show command on `session` return fixed output."""
    sent = []

    async def command(text, timeout=None):
        sent.append(text)
        return Reply(output=output, errors=errors or [])

    monkeypatch.setattr(session, "command", command)
    return sent


@pytest.fixture
def reader():
    return StateReader()


class TestRead:
    """Reading objects from committed configuration."""

    @pytest.mark.asyncio
    async def test_read_vlan(self, backend, make_session, reader):
        backend.seed(
            "set vlans users vlan-id 100\n"
            'set vlans users description "Users LAN"\n'
            "set vlans users l3-interface irb.100\n"
            "set vlans guests vlan-id 200"
        )
        session = await make_session()

        result = await reader.read(session, get_resource_type("vlan"), "users")

        assert result.found
        assert result.state.identifier == "users"
        assert result.state.attributes == {
            "name": "users",
            "vlan_id": 100,
            "description": "Users LAN",
            "l3_interface": "irb.100",
            "vni": None,
        }
        assert 'set vlans users description "Users LAN"' in result.lines

    @pytest.mark.asyncio
    async def test_not_found_is_not_an_error(self, make_session, reader):
        session = await make_session()
        result = await reader.read(session, get_resource_type("vlan"), "missing")
        assert not result.found
        assert result.state is None

    @pytest.mark.asyncio
    async def test_reads_take_no_lock(self, backend, make_session, reader):
        backend.seed("set vlans users vlan-id 100")
        backend.lock_by_other()
        session = await make_session()

        result = await reader.read(session, get_resource_type("vlan"), "users")

        assert result.found
        assert backend.sent(CommandKind.LOCK) == []

    @pytest.mark.asyncio
    async def test_memberships_decoded_from_containers(self, backend, make_session, reader):
        backend.seed(
            "set interfaces ge-0/0/0 unit 0 family inet address 10.0.0.1/24\n"
            "set routing-instances blue instance-type virtual-router\n"
            "set routing-instances blue interface ge-0/0/0.0\n"
            "set routing-instances blue interface ge-0/0/1.0\n"
            "set security zones security-zone trust interfaces ge-0/0/0.0 "
            "host-inbound-traffic system-services ping"
        )
        session = await make_session()

        result = await reader.read(session, get_resource_type("interface_logical"), "ge-0/0/0.0")

        attrs = result.state.attributes
        assert attrs["family_inet_address"] == ["10.0.0.1/24"]
        assert attrs["routing_instance"] == "blue"
        assert attrs["security_zone"] == "trust"

    @pytest.mark.asyncio
    async def test_units_do_not_make_a_physical_interface(self, backend, make_session, reader):
        backend.seed(
            "set interfaces ge-0/0/0 unit 0 family inet address 10.0.0.1/24\n"
            "set interfaces ge-0/0/1 unit 0 family ethernet-switching vlan members users"
        )
        session = await make_session()
        rtype = get_resource_type("interface_physical")

        assert not await reader.exists(session, rtype, "ge-0/0/0")
        assert not await reader.exists(session, rtype, "ge-0/0/1")
        result = await reader.read(session, rtype, "ge-0/0/0")
        assert not result.found

    @pytest.mark.asyncio
    async def test_physical_read_leaves_out_unit_lines(self, backend, make_session, reader):
        backend.seed(
            "set interfaces ge-0/0/0 vlan-tagging\n"
            "set interfaces ge-0/0/0 unit 0 disable\n"
            "set interfaces ge-0/0/0 unit 0 vlan-id 10"
        )
        session = await make_session()

        result = await reader.read(session, get_resource_type("interface_physical"), "ge-0/0/0")

        assert result.found
        assert result.lines == ["set interfaces ge-0/0/0 vlan-tagging"]
        assert result.state.attributes["disable"] is False

    @pytest.mark.asyncio
    async def test_restricted_snmp_client(self, backend, make_session, reader):
        backend.seed(
            "set snmp community public clients 10.0.0.0/8 restrict\n"
            "set snmp community public clients 10.1.0.0/16"
        )
        session = await make_session()
        rtype = get_resource_type("snmp_community")

        result = await reader.read(session, rtype, "public")
        assert result.state.attributes["clients"] == ["10.0.0.0/8 restrict", "10.1.0.0/16"]

        drift = await reader.drift(
            session, rtype, {"name": "public", "clients": ["10.0.0.0/8 restrict", "10.1.0.0/16"]}
        )
        assert drift.empty

    @pytest.mark.asyncio
    async def test_policy_action_ignores_other_then_statements(self, backend, make_session, reader):
        backend.seed(
            "set security policies from-zone trust to-zone untrust policy p1 match source-address any\n"
            "set security policies from-zone trust to-zone untrust policy p1 match destination-address any\n"
            "set security policies from-zone trust to-zone untrust policy p1 match application any\n"
            "set security policies from-zone trust to-zone untrust policy p1 then deny\n"
            "set security policies from-zone trust to-zone untrust policy p1 then log session-init\n"
            "set security policies from-zone trust to-zone untrust policy p1 then count"
        )
        session = await make_session()

        result = await reader.read(
            session, get_resource_type("security_policy"),
            {"name": "p1", "from_zone": "trust", "to_zone": "untrust"},
        )

        attrs = result.state.attributes
        assert attrs["action"] == "deny"
        assert attrs["count"] is True
        assert attrs["log_session_init"] is True
        assert attrs["log_session_close"] is False
        assert result.state.identifier == "p1 (from_zone=trust, to_zone=untrust)"

    @pytest.mark.asyncio
    async def test_ignores_candidate_edits(self, backend, make_session, reader):
        backend.seed("set vlans users vlan-id 100")
        backend.candidate = [
            *backend.committed, parse_statement("set vlans users description draft").path,
        ]
        session = await make_session()

        result = await reader.read(session, get_resource_type("vlan"), "users")
        assert result.state.attributes["description"] is None


class TestRoundTrip:
    """Whatever the builder writes, the reader re-derives with no drift."""

    @pytest.mark.parametrize("type_tag,desired", [
        ("interface_physical", {
            "name": "ge-0/0/3", "description": "to core", "mtu": 9192, "vlan_tagging": True,
        }),
        ("routing_instance", {
            "name": "blue", "instance_type": "vrf", "route_distinguisher": "65000:1",
            "vrf_import": ["imp-b", "imp-a"], "vrf_table_label": True,
        }),
        ("static_route", {
            "destination": "10.20.0.0/16", "routing_instance": "blue",
            "next_hop": ["192.0.2.2", "192.0.2.1"], "preference": 10,
        }),
        ("interface_logical", {
            "name": "ge-0/0/1.0", "description": "blue uplink",
            "family_inet_address": ["10.1.0.1/30", "10.1.0.5/30"],
            "routing_instance": "blue", "security_zone": "trust",
        }),
        ("interface_logical", {
            "name": "ge-0/0/2.0", "vlan_members": ["users", "guests"],
        }),
        ("vlan", {
            "name": "users", "vlan_id": 100, "description": "Users LAN",
            "l3_interface": "irb.100",
        }),
        ("snmp_community", {
            "name": "public", "authorization": "read-only",
            "clients": ["10.0.0.0/8 restrict", "10.1.0.0/16", "192.0.2.0/24"],
        }),
        ("security_zone", {
            "name": "trust", "description": "inside", "application_tracking": True,
            "inbound_services": ["ssh", "ping"], "inbound_protocols": ["ospf"],
        }),
        ("system_syslog_host", {
            "host": "192.0.2.50", "any_severity": "warning", "port": 5514,
            "source_address": "192.0.2.1", "structured_data": True,
        }),
        ("security_policy", {
            "name": "allow-web", "from_zone": "trust", "to_zone": "untrust",
            "source_address": ["any"], "destination_address": ["web-servers"],
            "application": ["junos-http", "junos-https"], "action": "permit",
            "count": True, "log_session_close": True,
        }),
    ])
    @pytest.mark.asyncio
    async def test_no_drift_after_create(self, backend, make_session, reader, type_tag, desired):
        rtype = get_resource_type(type_tag)
        backend.seed("\n".join(ChangeBuilder().for_create(rtype, desired).lines()))
        session = await make_session()

        drift = await reader.drift(session, rtype, desired)

        assert drift.empty


class TestDecoding:
    """Decoding raw display-set text."""

    @pytest.mark.asyncio
    async def test_comments_and_secret_markers(self, make_session, reader, monkeypatch):
        session = await make_session()
        canned(session, monkeypatch, output=(
            "## Last changed: 2024-05-01\n"
            "set snmp community public authorization read-only\n"
            "set snmp community public clients 10.0.0.0/8 ## SECRET-DATA\n"
        ))

        result = await reader.read(session, get_resource_type("snmp_community"), "public")

        assert result.state.attributes["authorization"] == "read-only"
        assert result.state.attributes["clients"] == ["10.0.0.0/8"]

    @pytest.mark.asyncio
    async def test_bracketed_list(self, make_session, reader, monkeypatch):
        session = await make_session()
        canned(session, monkeypatch, output=(
            "set routing-instances blue instance-type virtual-router\n"
            "set routing-instances blue vrf-import [ first second ]\n"
        ))

        result = await reader.read(session, get_resource_type("routing_instance"), "blue")
        assert result.state.attributes["vrf_import"] == ["first", "second"]

    @pytest.mark.asyncio
    async def test_query_command(self, make_session, reader, monkeypatch):
        session = await make_session()
        sent = canned(session, monkeypatch)

        await reader.read(session, get_resource_type("interface_physical"), "ge-0/0/0")
        assert sent == ["show configuration interfaces ge-0/0/0 | display set"]

    @pytest.mark.asyncio
    async def test_unparseable_output(self, make_session, reader, monkeypatch):
        session = await make_session()
        canned(session, monkeypatch, output='set vlans users description "unterminated')

        with pytest.raises(DecodeError):
            await reader.read(session, get_resource_type("vlan"), "users")

    @pytest.mark.asyncio
    async def test_bad_integer(self, make_session, reader, monkeypatch):
        session = await make_session()
        canned(session, monkeypatch, output="set vlans users vlan-id many")

        with pytest.raises(DecodeError, match="integer"):
            await reader.read(session, get_resource_type("vlan"), "users")

    @pytest.mark.asyncio
    async def test_query_rejected(self, make_session, reader, monkeypatch):
        session = await make_session()
        canned(session, monkeypatch, errors=["error: syntax error"])

        with pytest.raises(DecodeError) as exc_info:
            await reader.read(session, get_resource_type("vlan"), "users")
        assert exc_info.value.device_message == "error: syntax error"
