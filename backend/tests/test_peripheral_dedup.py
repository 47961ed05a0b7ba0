"""Tests for detecting peripherals already attached to an asset."""

import pytest
import pytest_asyncio

from assettrack.db_inventory import insert_asset, insert_peripheral
from assettrack.services.entity_resolver import resolve_peripheral_type
from assettrack.services.peripheral_dedup import is_duplicate_peripheral


@pytest_asyncio.fixture
async def asset_id(db):
    asset_id = await insert_asset(db, "SN1", "T1", "Laptop")
    mouse = await resolve_peripheral_type(db, "Mouse")
    dock = await resolve_peripheral_type(db, "Dock")
    await insert_peripheral(db, asset_id, mouse, "S1")
    await insert_peripheral(db, asset_id, dock, None)
    return asset_id


@pytest.mark.asyncio
async def test_same_type_and_serial_is_duplicate(db, asset_id):
    assert await is_duplicate_peripheral(db, asset_id, "Mouse", "S1")


@pytest.mark.asyncio
async def test_type_name_match_is_case_insensitive(db, asset_id):
    assert await is_duplicate_peripheral(db, asset_id, "mouse", " S1 ")


@pytest.mark.asyncio
async def test_different_serial_is_not_duplicate(db, asset_id):
    assert not await is_duplicate_peripheral(db, asset_id, "Mouse", "S2")


@pytest.mark.asyncio
async def test_both_serials_empty_is_duplicate(db, asset_id):
    assert await is_duplicate_peripheral(db, asset_id, "Dock", None)
    assert await is_duplicate_peripheral(db, asset_id, "Dock", "")


@pytest.mark.asyncio
async def test_other_asset_not_considered(db, asset_id):
    other = await insert_asset(db, "SN2", "T2", "Desktop")
    assert not await is_duplicate_peripheral(db, other, "Mouse", "S1")


@pytest.mark.asyncio
async def test_unknown_type_is_not_duplicate(db, asset_id):
    assert not await is_duplicate_peripheral(db, asset_id, "Keyboard", "S1")
