"""Tests for bulk import: routing, per-row isolation, dedup, rollback and auditing."""

from unittest import mock

import pytest

from assettrack.db import get_history_logs
from assettrack.db_inventory import find_asset_by_serial, find_orphaned_assets, get_asset_peripherals
from assettrack.errors import EmptyBatchError, LinkingError
from assettrack.services.audit_logger import AuditStore, UserContext
from assettrack.services.batch_writer import bulk_import
from assettrack.services.project_linker import get_asset_link


async def _count(db, table: str) -> int:
    cursor = await db.execute(f"SELECT COUNT(*) FROM {table}")
    return (await cursor.fetchone())[0]


def _scenario_rows():
    base = {
        "tag_id": "T1",
        "item_name": "Laptop",
        "peripheral_name": "Mouse, Keyboard",
        "project_reference_num": "P001",
        "customer_name": "Acme",
        "branch": "HQ",
    }
    return [
        {**base, "serial_number": "SN1", "serial_code": "S1, S2"},
        {**base, "serial_number": "SN2", "tag_id": "T2", "serial_code": "S3, S4"},
        {**base, "serial_number": "SN1", "serial_code": "S1, S2"},
    ]


@pytest.mark.asyncio
async def test_empty_batch_rejected(db):
    with pytest.raises(EmptyBatchError):
        await bulk_import([], db=db)


@pytest.mark.asyncio
async def test_unknown_mode_rejected(db, asset_row):
    with pytest.raises(ValueError):
        await bulk_import([asset_row()], import_mode="replace", db=db)


@pytest.mark.asyncio
async def test_end_to_end_new_assets_with_repeated_serial(db, project):
    summary = await bulk_import(_scenario_rows(), import_mode="new_assets", db=db)

    assert summary.imported == 2
    assert summary.assets_created == 2
    assert summary.failed == 1
    assert summary.total == 3
    assert summary.mode == "new_assets"
    assert len(summary.errors) == 1
    assert summary.errors[0].serial_number == "SN1"
    assert "SN1" in summary.errors[0].error

    for serial in ("SN1", "SN2"):
        asset = await find_asset_by_serial(db, serial)
        assert len(await get_asset_peripherals(db, asset["asset_id"])) == 2
        link = await get_asset_link(db, asset["asset_id"])
        assert link["project_ref_number"] == "P001"
        assert link["customer_name"] == "Acme"

    assert await _count(db, "assets") == 2
    assert await _count(db, "customers") == 1
    assert await _count(db, "peripheral_types") == 2
    assert await find_orphaned_assets(db) == []


@pytest.mark.asyncio
async def test_identical_row_twice(db, project, asset_row):
    row = asset_row("SN9")
    summary = await bulk_import([row, dict(row)], import_mode="new_assets", db=db)
    assert summary.assets_created == 1
    assert summary.failed == 1
    assert summary.errors[0].serial_number == "SN9"


@pytest.mark.asyncio
async def test_identical_row_twice_in_auto_mode(db, project, asset_row):
    row = asset_row("SN1")
    summary = await bulk_import([row, dict(row)], db=db)

    assert summary.assets_created == 1
    assert summary.imported == 1
    assert summary.skipped == 1
    assert summary.failed == 0
    assert summary.duplicates == 2
    assert summary.peripherals_added == 0
    asset = await find_asset_by_serial(db, "SN1")
    assert len(await get_asset_peripherals(db, asset["asset_id"])) == 2
    assert await _count(db, "peripherals") == 2


@pytest.mark.asyncio
async def test_repeated_serial_adds_new_peripherals_after_create(db, project, asset_row):
    rows = [asset_row("SN1"), asset_row("SN2"), asset_row("SN1", peripheral_name="Monitor", serial_code="MON-1")]
    summary = await bulk_import(rows, db=db)

    assert summary.assets_created == 2
    assert summary.peripherals_added == 1
    assert summary.failed == 0
    asset = await find_asset_by_serial(db, "SN1")
    names = sorted(p["peripheral_name"] for p in await get_asset_peripherals(db, asset["asset_id"]))
    assert names == ["Keyboard", "Monitor", "Mouse"]


@pytest.mark.asyncio
async def test_repeated_serial_across_chunk_boundary(db, project, asset_row):
    rows = [asset_row(f"SN{i}") for i in range(4)] + [asset_row("SN0")]
    with mock.patch("assettrack.services.batch_writer.settings.import_chunk_size", 2):
        summary = await bulk_import(rows, db=db)

    assert summary.assets_created == 4
    assert summary.skipped == 1
    assert summary.duplicates == 2
    assert await _count(db, "peripherals") == 8


@pytest.mark.asyncio
async def test_errors_reported_in_input_order(db, project, asset_row):
    rows = [asset_row("SN1"), asset_row("SN1"), {"serial_number": "SN2"}]
    summary = await bulk_import(rows, import_mode="new_assets", db=db)
    assert [e.row for e in summary.errors] == [2, 3]


@pytest.mark.asyncio
async def test_new_assets_mode_rejects_existing_serial(db, project, asset_row):
    await bulk_import([asset_row("SN1")], db=db)
    summary = await bulk_import([asset_row("SN1")], import_mode="new_assets", db=db)
    assert summary.failed == 1
    assert "already exists" in summary.errors[0].error


@pytest.mark.asyncio
async def test_rerun_reports_duplicates_not_failures(db, project):
    rows = _scenario_rows()[:2]
    await bulk_import(rows, db=db)

    summary = await bulk_import(rows, import_mode="add_peripherals", db=db)
    assert summary.failed == 0
    assert summary.duplicates == 4
    assert summary.skipped == 2
    assert summary.peripherals_added == 0
    assert summary.mode == "add_peripherals"


@pytest.mark.asyncio
async def test_add_peripherals_to_existing_asset(db, project, asset_row):
    await bulk_import([asset_row("SN1")], db=db)
    summary = await bulk_import(
        [{"serial_number": "SN1", "peripheral_name": "Mouse, Monitor", "serial_code": "SN1-M, MON-1"}],
        db=db,
    )
    assert summary.mode == "add_peripherals"
    assert summary.imported == 1
    assert summary.assets_created == 0
    assert summary.peripherals_added == 1
    assert summary.duplicates == 1

    asset = await find_asset_by_serial(db, "SN1")
    names = [p["peripheral_name"] for p in await get_asset_peripherals(db, asset["asset_id"])]
    assert sorted(names) == ["Keyboard", "Monitor", "Mouse"]


@pytest.mark.asyncio
async def test_add_peripherals_mode_unknown_serial_fails(db, project):
    summary = await bulk_import([{"serial_number": "NOPE", "peripheral_name": "Mouse"}], "add_peripherals", db=db)
    assert summary.failed == 1
    assert "not found" in summary.errors[0].error
    assert await _count(db, "assets") == 0


@pytest.mark.asyncio
async def test_existing_asset_without_peripherals_is_skipped(db, project, asset_row):
    await bulk_import([asset_row("SN1")], db=db)
    summary = await bulk_import([{"serial_number": "SN1", "tag_id": "T-SN1"}], db=db)
    assert summary.skipped == 1
    assert summary.failed == 0
    assert summary.warnings


@pytest.mark.asyncio
async def test_mixed_batch_in_auto_mode(db, project, asset_row):
    await bulk_import([asset_row("SN1")], db=db)
    summary = await bulk_import(
        [{"serial_number": "SN1", "peripheral_name": "Headset"}, asset_row("SN2")],
        db=db,
    )
    assert summary.mode == "mixed"
    assert summary.assets_created == 1
    assert summary.peripherals_added == 1
    assert summary.imported == 2
    assert summary.mode_analysis.existing_assets == 1


@pytest.mark.asyncio
async def test_missing_required_fields_fail_row_only(db, project, asset_row):
    summary = await bulk_import([asset_row("SN1"), {"serial_number": "SN2", "tag_id": "T2"}], db=db)
    assert summary.assets_created == 1
    assert summary.failed == 1
    assert summary.errors[0].row == 2
    assert "item_name" in summary.errors[0].error
    assert "project_reference_num" in summary.errors[0].error


@pytest.mark.asyncio
async def test_non_mapping_row_fails_row_only(db, project, asset_row):
    summary = await bulk_import([asset_row("SN1"), "not a row"], db=db)
    assert summary.assets_created == 1
    assert summary.failed == 1
    assert summary.errors[0].serial_number is None


@pytest.mark.asyncio
async def test_unknown_project_writes_nothing(db, project, asset_row):
    summary = await bulk_import([asset_row("SN1", project_reference_num="P404")], db=db)
    assert summary.failed == 1
    assert "P404" in summary.errors[0].error
    assert await _count(db, "assets") == 0
    assert await _count(db, "categories") == 0


@pytest.mark.asyncio
async def test_link_failure_removes_asset(db, project, asset_row):
    with mock.patch(
        "assettrack.services.batch_writer.link_asset_to_project",
        mock.AsyncMock(side_effect=LinkingError("inventory unavailable")),
    ):
        summary = await bulk_import([asset_row("SN1")], db=db)

    assert summary.failed == 1
    assert "inventory unavailable" in summary.errors[0].error
    assert await find_asset_by_serial(db, "SN1") is None
    assert await _count(db, "peripherals") == 0
    assert await find_orphaned_assets(db) == []


@pytest.mark.asyncio
async def test_customer_branch_fallback_warns(db, project, asset_row):
    await bulk_import([asset_row("SN1")], db=db)
    summary = await bulk_import([asset_row("SN2", branch="Warehouse")], db=db)
    assert summary.assets_created == 1
    assert any("Warehouse" in w.message for w in summary.warnings)
    assert await _count(db, "customers") == 1


@pytest.mark.asyncio
async def test_catalog_values_resolved_once(db, project, asset_row):
    rows = [asset_row(f"SN{i}", category="laptop" if i % 2 else "Laptop", software="Office 365") for i in range(12)]
    summary = await bulk_import(rows, db=db)
    assert summary.assets_created == 12
    assert await _count(db, "categories") == 1
    assert await _count(db, "models") == 1
    assert await _count(db, "software") == 1
    assert await _count(db, "asset_software") == 12


@pytest.mark.asyncio
async def test_recipient_needs_department(db, project, asset_row):
    summary = await bulk_import([asset_row("SN1", recipient_name="Jane Doe")], db=db)
    assert summary.assets_created == 1
    assert any("department" in w.message for w in summary.warnings)
    assert await _count(db, "recipients") == 0


@pytest.mark.asyncio
async def test_one_audit_entry_per_row(db, project):
    user = UserContext(5, "importer")
    await bulk_import(_scenario_rows()[:2], db=db, user=user)
    logs = await get_history_logs(db)
    assert len(logs) == 2
    assert {log["action_type"] for log in logs} == {"INSERT"}
    assert {log["username"] for log in logs} == {"importer"}
    fields = {c["field_name"] for c in logs[0]["changes"]}
    assert {"serial_number", "tag_id", "Peripheral (Mouse)", "Peripheral (Keyboard)"} <= fields

    await bulk_import([{"serial_number": "SN1", "peripheral_name": "Monitor", "serial_code": "MON-1"}], db=db)
    logs = await get_history_logs(db)
    assert len(logs) == 3
    update = [log for log in logs if log["action_type"] == "UPDATE"][0]
    assert update["changes"] == [{"field_name": "Peripheral (Monitor)", "old_value": "", "new_value": "MON-1"}]


@pytest.mark.asyncio
async def test_audit_failure_does_not_fail_import(db, project, asset_row):
    store = mock.Mock(spec=AuditStore)
    store.create_log = mock.AsyncMock(side_effect=RuntimeError("audit store down"))
    summary = await bulk_import([asset_row("SN1")], db=db, audit_store=store)
    assert summary.assets_created == 1
    assert summary.failed == 0
    assert store.create_log.await_count == 1


@pytest.mark.asyncio
async def test_error_list_capped(db, project):
    rows = [{"serial_number": f"SN{i}"} for i in range(60)]
    with mock.patch("assettrack.services.batch_writer.settings.import_error_cap", 50):
        summary = await bulk_import(rows, import_mode="new_assets", db=db)
    assert summary.failed == 60
    assert len(summary.errors) == 50


@pytest.mark.asyncio
async def test_summary_serializes_with_camel_case(db, project, asset_row):
    summary = await bulk_import([asset_row("SN1")], db=db)
    data = summary.model_dump(by_alias=True)
    assert data["assetsCreated"] == 1
    assert data["peripheralsAdded"] == 0
    assert data["modeAnalysis"]["newAssets"] == 1
    assert data["success"] is True
