"""Tests for the MCP tool handlers."""
import json

import pytest
from natm import server
from natm.config import NatInventory
from natm.devices.mock import TABLE_HEADER, format_translation_row


@pytest.fixture
def inventory(monkeypatch, tmp_path):
    for name in ("NATM_CONFIG", "NATM_CI_TEST", "NATM_LOG", "NATM_LOG_DIR"):
        monkeypatch.delenv(name, raising=False)
    inv = NatInventory.from_dict({
        "settings": {"ci_test": True, "log_dir": str(tmp_path)},
        "devices": {
            "rtr-1": {
                "name": "Edge 1",
                "vrf": "BLUE",
                "static_nats": [
                    {"name": "a", "state": "present",
                     "inside_private": "10.0.0.1", "outside_public": "203.0.113.1"},
                ],
                "mock_table": "\n".join([
                    TABLE_HEADER, format_translation_row("10.0.0.9", "203.0.113.9"),
                ]),
            },
        },
        "groups": {"edge": ["rtr-1"]},
    })
    monkeypatch.setattr(server, "inventory", inv)
    return inv


def payload(result):
    return json.loads(result[0].text)


class TestToolHandlers:
    """Tests for tool handlers."""

    @pytest.mark.asyncio
    async def test_list_devices(self, inventory):
        data = payload(await server.handle_list_devices(inventory))

        assert data["devices"] == [{
            "id": "rtr-1",
            "name": "Edge 1",
            "type": "ios",
            "host": None,
            "vrf": "BLUE",
            "groups": ["edge"],
            "static_nats": 1,
        }]

    @pytest.mark.asyncio
    async def test_get_nat_table(self, inventory):
        data = payload(await server.handle_get_nat_table(inventory, "rtr-1"))

        assert data["command"] == "show ip nat translations vrf BLUE"
        assert "203.0.113.9" in data["table"]

    @pytest.mark.asyncio
    async def test_validate_nats(self, inventory):
        data = payload(await server.handle_validate_nats(inventory, "rtr-1"))

        assert data["valid"]
        assert data["vrf"] == "BLUE"
        assert data["entries"][0]["inside_private"] == "10.0.0.1"

    @pytest.mark.asyncio
    async def test_preview_nats(self, inventory):
        data = payload(await server.handle_preview_nats(inventory, "rtr-1"))

        assert data["dry_run"]
        assert data["commands"] == [
            "ip nat inside source static 10.0.0.1 203.0.113.1 vrf BLUE"
        ]

    @pytest.mark.asyncio
    async def test_apply_then_check(self, inventory):
        applied = payload(await server.handle_apply_nats(inventory, group="edge"))
        assert applied["success"]
        assert applied["summary"]["changed"] == 1

        checked = payload(await server.handle_check_nats(inventory, "rtr-1"))
        assert checked["in_sync"]


class TestCallTool:
    """Tests for tool dispatch."""

    @pytest.mark.asyncio
    async def test_unknown_tool(self, inventory):
        result = await server.call_tool("reboot", {})
        assert result[0].text == "Unknown tool: reboot"

    @pytest.mark.asyncio
    async def test_errors_become_text(self, inventory):
        result = await server.call_tool("get_nat_table", {"device_id": "rtr-9"})
        assert result[0].text.startswith("Error: Unknown device")

    @pytest.mark.asyncio
    async def test_dispatch(self, inventory):
        result = await server.call_tool("validate_nats", {"device_id": "rtr-1"})
        assert payload(result)["valid"]


class TestResources:
    """Tests for NAT table resources."""

    @pytest.mark.asyncio
    async def test_read_table_resource(self, inventory):
        text = await server.read_resource("nat://rtr-1/table")
        assert json.loads(text)["device_id"] == "rtr-1"

    @pytest.mark.asyncio
    async def test_unknown_resource(self, inventory):
        text = await server.read_resource("nat://rtr-1/config")
        assert "Unknown resource" in json.loads(text)["error"]
