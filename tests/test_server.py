"""Tests for the MCP tool handlers."""
import json

import pytest

from mcp_junos_config import server
from mcp_junos_config.config.inventory import DeviceInventory
from mcp_junos_config.config_engine.engine import ReconcileEngine
from mcp_junos_config.devices.mock import MockJunosBackend


@pytest.fixture
def lab(monkeypatch):
    inv = DeviceInventory(config={
        "defaults": {"retry_delay": 0, "lock_retry_delay": 0, "lock_retries": 1},
        "devices": {"lab": {"type": "mock", "host": "localhost", "password": "secret"}},
        "groups": {"labs": ["lab"]},
    })
    monkeypatch.setattr(server, "inventory", inv)
    monkeypatch.setattr(server, "engine", ReconcileEngine(inv))
    return MockJunosBackend.for_device("lab")


def payload(result):
    assert len(result) == 1
    return json.loads(result[0].text)


class TestTools:
    """Tool dispatch."""

    @pytest.mark.asyncio
    async def test_list_tools(self):
        names = {tool.name for tool in await server.list_tools()}
        assert {
            "list_devices", "list_resource_types", "read_resource",
            "plan_resource", "apply_resource", "delete_resource", "get_audit_log",
        } <= names

    @pytest.mark.asyncio
    async def test_list_devices(self, lab):
        data = payload(await server.call_tool("list_devices", {}))
        assert data["devices"][0]["id"] == "lab"
        assert "password" not in data["devices"][0]
        assert data["groups"] == {"labs": ["lab"]}

    @pytest.mark.asyncio
    async def test_list_resource_types(self):
        data = payload(await server.call_tool("list_resource_types", {}))
        types = {t["type"]: t for t in data["resource_types"]}
        assert "interface_logical" in types
        assert types["snmp_community"]["attributes"][0]["sticky"] is True

    @pytest.mark.asyncio
    async def test_apply_read_delete(self, lab):
        attrs = {"name": "users", "vlan_id": 100}

        applied = payload(await server.call_tool(
            "apply_resource", {"device_id": "lab", "type": "vlan", "attributes": attrs}
        ))
        assert applied["success"]
        assert applied["changes"]["to_set"] == ["set vlans users vlan-id 100"]
        assert applied["transaction"]["state"] == "lock_released"

        read = payload(await server.call_tool(
            "read_resource", {"device_id": "lab", "type": "vlan", "identifier": "users"}
        ))
        assert read["found"]
        assert read["state"]["attributes"]["vlan_id"] == 100

        deleted = payload(await server.call_tool(
            "delete_resource", {"device_id": "lab", "type": "vlan", "identifier": "users"}
        ))
        assert deleted["changes"]["to_delete"] == ["delete vlans users"]
        assert lab.committed_text() == ""

    @pytest.mark.asyncio
    async def test_plan(self, lab):
        lab.seed("set vlans users vlan-id 100")
        data = payload(await server.call_tool(
            "plan_resource",
            {"device_id": "lab", "type": "vlan", "attributes": {"name": "users", "vlan_id": 100}},
        ))
        assert data["in_sync"]

    @pytest.mark.asyncio
    async def test_dry_run(self, lab):
        data = payload(await server.call_tool("apply_resource", {
            "device_id": "lab", "type": "vlan",
            "attributes": {"name": "users", "vlan_id": 7}, "dry_run": True,
        }))
        assert data["dry_run"]
        assert not data["changed"]
        assert lab.writes() == []


class TestErrors:
    """Engine errors come back as structured JSON."""

    @pytest.mark.asyncio
    async def test_reconcile_error(self, lab):
        lab.seed("set vlans users vlan-id 100")
        data = payload(await server.call_tool("delete_resource", {
            "device_id": "lab", "type": "vlan", "identifier": "guests",
        }))
        assert data["success"] is False
        assert data["error"]["kind"] == "object_vanished"
        assert data["error"]["resource"] == "vlan guests"

    @pytest.mark.asyncio
    async def test_validation_error(self, lab):
        data = payload(await server.call_tool("apply_resource", {
            "device_id": "lab", "type": "vlan", "attributes": {"name": "users", "vlan_id": 9999},
        }))
        assert data["error"]["kind"] == "validation_error"

    @pytest.mark.asyncio
    async def test_missing_argument(self, lab):
        data = payload(await server.call_tool("read_resource", {"device_id": "lab"}))
        assert data["error"]["kind"] == "bad_request"

    @pytest.mark.asyncio
    async def test_unknown_tool(self):
        result = await server.call_tool("reboot", {})
        assert "Unknown tool" in result[0].text


class TestResources:
    """Device facts resources."""

    @pytest.mark.asyncio
    async def test_list_resources(self, lab):
        resources = await server.list_resources()
        assert [str(r.uri) for r in resources] == ["junos://lab/facts"]

    @pytest.mark.asyncio
    async def test_read_facts(self, lab):
        data = json.loads(await server.read_resource("junos://lab/facts"))
        assert data["hostname"] == "lab"

    @pytest.mark.asyncio
    async def test_unknown_resource(self, lab):
        data = json.loads(await server.read_resource("junos://lab/config"))
        assert "Unknown resource" in data["error"]
