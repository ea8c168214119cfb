"""End-to-end tests for the reconcile engine against mock routers."""
import pytest
from natm.config import NatInventory
from natm.devices.mock import TABLE_HEADER, format_translation_row
from natm.reconcile import ReconcileEngine
from natm.utils.run_log import RunContext


ENTRY_A = {
    "name": "a",
    "state": "present",
    "inside_private": "10.0.0.1",
    "outside_public": "203.0.113.1",
}
ENTRY_B = {
    "name": "b",
    "state": "absent",
    "inside_private": "10.0.0.2",
    "outside_public": "203.0.113.2",
}


def mock_table(*mappings):
    return "\n".join([TABLE_HEADER] + [format_translation_row(i, o) for i, o in mappings])


def make_inventory(devices, **settings):
    return NatInventory.from_dict({
        "settings": {"ci_test": True, **settings},
        "devices": devices,
    })


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    for name in ("NATM_CONFIG", "NATM_CI_TEST", "NATM_LOG", "NATM_LOG_DIR"):
        monkeypatch.delenv(name, raising=False)


@pytest.fixture
def inventory():
    """One router holding only entry b."""
    return make_inventory({
        "rtr-1": {
            "static_nats": [ENTRY_A, ENTRY_B],
            "mock_table": mock_table(("10.0.0.2", "203.0.113.2")),
        },
    })


@pytest.fixture
def run_context(tmp_path):
    return RunContext.create(tmp_path, enabled=True)


class TestReconcile:
    """Tests for single-device reconciliation."""

    @pytest.mark.asyncio
    async def test_add_and_remove_converge(self, inventory, run_context):
        """The before table holding only b yields Add(a), Remove(b) and verifies."""
        engine = ReconcileEngine(inventory, run_context=run_context)

        result = await engine.reconcile("rtr-1")

        assert result.success, result.errors
        assert result.stage == "done"
        assert result.operations == ["Add(a)", "Remove(b)"]
        assert result.commands == [
            "ip nat inside source static 10.0.0.1 203.0.113.1",
            "no ip nat inside source static 10.0.0.2 203.0.113.2",
        ]
        assert result.changed

        device = inventory.get_device("rtr-1")
        assert "10.0.0.1" in device.table_text
        assert "10.0.0.2" not in device.table_text

    @pytest.mark.asyncio
    async def test_second_run_is_idempotent(self, inventory, run_context):
        """Re-running against a converged router sends nothing."""
        engine = ReconcileEngine(inventory, run_context=run_context)
        await engine.reconcile("rtr-1")
        device = inventory.get_device("rtr-1")
        device.history.clear()

        result = await engine.reconcile("rtr-1")

        assert result.success
        assert result.operations == []
        assert result.commands == []
        assert not result.changed
        assert device.history == ["show ip nat translations"]

    @pytest.mark.asyncio
    async def test_log_file_written_with_crlf(self, inventory, run_context):
        """Applied commands are logged to <log_dir>/natm_<DTG>/<device>.txt."""
        engine = ReconcileEngine(inventory, run_context=run_context)

        result = await engine.reconcile("rtr-1")

        expected = run_context.log_dir / "rtr-1.txt"
        assert result.log_file == str(expected)
        assert run_context.log_dir.name == f"natm_{run_context.dtg}"
        assert expected.read_bytes() == (
            b"ip nat inside source static 10.0.0.1 203.0.113.1\r\n"
            b"no ip nat inside source static 10.0.0.2 203.0.113.2\r\n"
        )

    @pytest.mark.asyncio
    async def test_no_log_when_disabled(self, inventory, tmp_path):
        engine = ReconcileEngine(
            inventory, run_context=RunContext.create(tmp_path, enabled=False)
        )

        result = await engine.reconcile("rtr-1")

        assert result.success
        assert result.log_file is None
        assert list(tmp_path.iterdir()) == []

    @pytest.mark.asyncio
    async def test_no_log_without_changes(self, run_context):
        inv = make_inventory({
            "rtr-1": {
                "static_nats": [ENTRY_A],
                "mock_table": mock_table(("10.0.0.1", "203.0.113.1")),
            },
        })

        result = await ReconcileEngine(inv, run_context=run_context).reconcile("rtr-1")

        assert result.success
        assert result.log_file is None
        assert not run_context.log_dir.exists()

    @pytest.mark.asyncio
    async def test_vrf_qualifies_every_command(self, run_context):
        """With a VRF, both the table query and changes carry the VRF."""
        inv = make_inventory({
            "rtr-1": {
                "vrf": " CUSTOMER-A ",
                "static_nats": [ENTRY_A, ENTRY_B],
                "mock_table": mock_table(("10.0.0.2", "203.0.113.2")),
            },
        })

        result = await ReconcileEngine(inv, run_context=run_context).reconcile("rtr-1")

        assert result.success
        assert result.vrf == "CUSTOMER-A"
        assert all(cmd.endswith(" vrf CUSTOMER-A") for cmd in result.commands)
        history = inv.get_device("rtr-1").history
        assert history[0] == "show ip nat translations vrf CUSTOMER-A"
        assert history[-1] == "show ip nat translations vrf CUSTOMER-A"

    @pytest.mark.asyncio
    async def test_save_config(self, run_context):
        inv = make_inventory({
            "rtr-1": {"static_nats": [ENTRY_A], "mock_table": mock_table()},
        }, save_config=True)

        result = await ReconcileEngine(inv, run_context=run_context).reconcile("rtr-1")

        assert result.success
        assert "write memory" in inv.get_device("rtr-1").history
        assert "write memory" not in result.commands


class TestReconcileFailures:
    """Tests for failures at each stage."""

    @pytest.mark.asyncio
    async def test_validation_failure_touches_no_device(self, run_context):
        """Invalid desired state aborts before any device I/O."""
        inv = make_inventory({
            "rtr-1": {
                "static_nats": [
                    {**ENTRY_A, "inside_private": "10.0.0.5/24"},
                    {**ENTRY_B, "outside_public": "203.0.113.1"},
                ],
                "mock_table": mock_table(),
            },
        })

        result = await ReconcileEngine(inv, run_context=run_context).reconcile("rtr-1")

        assert not result.success
        assert result.stage == "validate"
        assert len(result.errors) >= 2
        assert inv.get_device("rtr-1").history == []

    @pytest.mark.asyncio
    async def test_missing_entries_fail_validation(self, run_context):
        inv = make_inventory({"rtr-1": {"mock_table": mock_table()}})

        result = await ReconcileEngine(inv, run_context=run_context).reconcile("rtr-1")

        assert result.stage == "validate"
        assert result.errors == ["'static_nats' must be defined and non-empty"]

    @pytest.mark.asyncio
    async def test_malformed_entries_fail_validation(self, run_context):
        inv = make_inventory({"rtr-1": {"static_nats": "web1"}})

        result = await ReconcileEngine(inv, run_context=run_context).reconcile("rtr-1")

        assert not result.success
        assert result.stage == "validate"

    @pytest.mark.asyncio
    async def test_unconverged_router_fails_verification(self, inventory, run_context):
        """A router that accepts commands but does not change fails verify."""
        inventory.get_device("rtr-1").frozen = True
        engine = ReconcileEngine(inventory, run_context=run_context)

        result = await engine.reconcile("rtr-1")

        assert not result.success
        assert result.stage == "verify"
        assert (
            "NAT entry 10.0.0.1,203.0.113.1 with name a not found when state was 'present'"
            in result.errors
        )
        assert (
            "NAT entry 10.0.0.2,203.0.113.2 with name b found when state was 'absent'"
            in result.errors
        )
        # Applied commands are still logged
        assert result.log_file is not None

    @pytest.mark.asyncio
    async def test_rejected_command_fails_execute(self, inventory, run_context):
        inventory.get_device("rtr-1").rejected.add(
            "ip nat inside source static 10.0.0.1 203.0.113.1"
        )
        engine = ReconcileEngine(inventory, run_context=run_context)

        result = await engine.reconcile("rtr-1")

        assert not result.success
        assert result.stage == "execute"
        assert any("% Invalid input" in e for e in result.errors)

    @pytest.mark.asyncio
    async def test_transport_failure_recorded(self, inventory, run_context):
        """Unexpected device errors are recorded, not raised."""
        device = inventory.get_device("rtr-1")

        async def broken(command):
            raise OSError("Connection reset by peer")

        device.get_nat_table = broken
        engine = ReconcileEngine(inventory, run_context=run_context)

        result = await engine.reconcile("rtr-1")

        assert not result.success
        assert result.stage == "fetch"
        assert result.errors == ["Transport failure: OSError: Connection reset by peer"]

    @pytest.mark.asyncio
    async def test_unknown_device(self, inventory, run_context):
        result = await ReconcileEngine(inventory, run_context=run_context).reconcile("rtr-9")

        assert not result.success
        assert result.stage == "load"
        assert "Unknown device" in result.errors[0]


class TestPreviewAndCheck:
    """Tests for the no-change modes."""

    @pytest.mark.asyncio
    async def test_preview_changes_nothing(self, inventory, run_context):
        engine = ReconcileEngine(inventory, run_context=run_context)

        result = await engine.preview("rtr-1")

        assert result.success
        assert result.dry_run
        assert result.operations == ["Add(a)", "Remove(b)"]
        assert len(result.commands) == 2
        assert not result.changed
        device = inventory.get_device("rtr-1")
        assert device.history == ["show ip nat translations"]
        assert "10.0.0.2" in device.table_text
        assert not run_context.log_dir.exists()

    @pytest.mark.asyncio
    async def test_check_reports_drift(self, inventory, run_context):
        engine = ReconcileEngine(inventory, run_context=run_context)

        result = await engine.check("rtr-1")

        assert not result.success
        assert result.stage == "verify"
        assert len(result.errors) == 2
        assert inventory.get_device("rtr-1").history == ["show ip nat translations"]

    @pytest.mark.asyncio
    async def test_check_after_reconcile(self, inventory, run_context):
        engine = ReconcileEngine(inventory, run_context=run_context)
        await engine.reconcile("rtr-1")

        result = await engine.check("rtr-1")

        assert result.success
        assert result.stage == "done"

    @pytest.mark.asyncio
    async def test_check_invalid_state(self, run_context):
        inv = make_inventory({"rtr-1": {"static_nats": []}})

        result = await ReconcileEngine(inv, run_context=run_context).check("rtr-1")

        assert not result.success
        assert result.stage == "validate"


class TestReconcileAll:
    """Tests for multi-device runs."""

    @pytest.mark.asyncio
    async def test_devices_are_independent(self, run_context):
        """A failing device does not affect the others."""
        inv = make_inventory({
            "rtr-bad": {"static_nats": [{**ENTRY_A, "inside_private": "bogus"}]},
            "rtr-good": {
                "static_nats": [ENTRY_A, ENTRY_B],
                "mock_table": mock_table(("10.0.0.2", "203.0.113.2")),
            },
            "rtr-frozen": {
                "static_nats": [ENTRY_A],
                "mock_table": mock_table(),
            },
        })
        inv.get_device("rtr-frozen").frozen = True
        engine = ReconcileEngine(inv, run_context=run_context)

        run = await engine.reconcile_all()

        by_id = {d.device_id: d for d in run.devices}
        assert [d.device_id for d in run.devices] == ["rtr-bad", "rtr-good", "rtr-frozen"]
        assert by_id["rtr-bad"].stage == "validate"
        assert by_id["rtr-good"].success
        assert by_id["rtr-frozen"].stage == "verify"
        assert not run.success
        assert run.timestamp == run_context.dtg

        summary = run.to_dict()["summary"]
        assert summary["passed"] == 1
        assert summary["failed"] == 2

    @pytest.mark.asyncio
    async def test_selected_devices_only(self, inventory, run_context):
        engine = ReconcileEngine(inventory, run_context=run_context)

        run = await engine.reconcile_all(["rtr-1"], dry_run=True)

        assert len(run.devices) == 1
        assert run.devices[0].dry_run

    @pytest.mark.asyncio
    async def test_check_mode(self, inventory, run_context):
        engine = ReconcileEngine(inventory, run_context=run_context)

        run = await engine.reconcile_all(check=True)

        assert not run.success
        assert run.devices[0].stage == "verify"

    @pytest.mark.asyncio
    async def test_exact_match_mode(self, run_context):
        """Exact matching adds an entry hidden by an overlapping address."""
        inv = make_inventory({
            "rtr-1": {
                "static_nats": [ENTRY_A],
                "mock_table": mock_table(("10.0.0.10", "203.0.113.10")),
            },
        }, match_mode="exact")

        result = await ReconcileEngine(inv, run_context=run_context).reconcile("rtr-1")

        assert result.success
        assert result.operations == ["Add(a)"]


class TestChangeRecords:
    """Tests for when reconcile writes an audit record."""

    @pytest.fixture
    def records(self, monkeypatch):
        recorded = []

        def record_change(self, device_id, vrf, commands, success, errors=None, dry_run=False):
            recorded.append((device_id, list(commands), success))

        monkeypatch.setattr(RunContext, "record_change", record_change)
        return recorded

    @pytest.mark.asyncio
    async def test_validation_failure_not_recorded(self, run_context, records):
        """No commands were generated, so there is nothing to audit."""
        inv = make_inventory({
            "rtr-1": {
                "static_nats": [{**ENTRY_A, "inside_private": "10.0.0.5/24"}],
                "mock_table": mock_table(),
            },
        })

        result = await ReconcileEngine(inv, run_context=run_context).reconcile("rtr-1")

        assert result.stage == "validate"
        assert records == []

    @pytest.mark.asyncio
    async def test_unknown_device_not_recorded(self, inventory, run_context, records):
        await ReconcileEngine(inventory, run_context=run_context).reconcile("rtr-9")

        assert records == []

    @pytest.mark.asyncio
    async def test_no_change_not_recorded(self, run_context, records):
        inv = make_inventory({
            "rtr-1": {
                "static_nats": [ENTRY_A],
                "mock_table": mock_table(("10.0.0.1", "203.0.113.1")),
            },
        })

        result = await ReconcileEngine(inv, run_context=run_context).reconcile("rtr-1")

        assert result.success
        assert records == []

    @pytest.mark.asyncio
    async def test_failed_verification_recorded(self, inventory, run_context, records):
        """Applied commands are audited even when the router did not converge."""
        inventory.get_device("rtr-1").frozen = True

        result = await ReconcileEngine(inventory, run_context=run_context).reconcile("rtr-1")

        assert result.stage == "verify"
        assert len(records) == 1
        device_id, commands, success = records[0]
        assert device_id == "rtr-1"
        assert commands == result.commands
        assert success is False

    @pytest.mark.asyncio
    async def test_preview_not_recorded(self, inventory, run_context, records):
        engine = ReconcileEngine(inventory, run_context=run_context)

        result = await engine.reconcile("rtr-1", dry_run=True)

        assert result.commands
        assert records == []


class TestDeviceTypeErrors:
    """Tests for misconfigured device types."""

    @pytest.mark.asyncio
    async def test_unknown_type_fails_connect(self, run_context):
        inv = make_inventory({
            "rtr-1": {"type": "junos", "static_nats": [ENTRY_A]},
        })

        result = await ReconcileEngine(inv, run_context=run_context).reconcile("rtr-1")

        assert not result.success
        assert result.stage == "connect"
        assert result.errors == ["Unknown device type for rtr-1: junos"]
