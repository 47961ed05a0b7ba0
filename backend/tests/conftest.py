"""
Shared fixtures for AssetTrack backend tests.
"""
import os
import sys
from unittest import mock

import pytest
import pytest_asyncio

# Ensure the backend package is importable
sys.path.insert(0, os.path.join(os.path.dirname(__file__), ".."))

# Keep tests independent of a local .env
os.environ.setdefault("AUDIT_ENABLED", "true")
os.environ.setdefault("IMPORT_CHUNK_SIZE", "10")

import assettrack.db as db_mod  # noqa: E402
from assettrack.db import close_db, get_db  # noqa: E402
from assettrack.db_inventory import insert_project  # noqa: E402


@pytest_asyncio.fixture
async def db(tmp_path):
    """Fresh temp database per test; the module-level connection points at it."""
    db_mod._db = None
    temp_path = tmp_path / "test.db"
    with mock.patch.object(db_mod, "DB_PATH", temp_path):
        conn = await get_db()
        yield conn
        await close_db()


@pytest_asyncio.fixture
async def project(db):
    """A seeded project that import rows can link to."""
    await insert_project(db, "P001", project_title="Office Refresh")
    return "P001"


@pytest.fixture
def asset_row():
    """Factory for a complete import row."""

    def _make(serial: str = "SN1", **overrides):
        row = {
            "serial_number": serial,
            "tag_id": f"T-{serial}",
            "item_name": "Laptop",
            "category": "Laptop",
            "model": "ThinkPad T14",
            "peripheral_name": "Mouse, Keyboard",
            "serial_code": f"{serial}-M, {serial}-K",
            "project_reference_num": "P001",
            "customer_name": "Acme",
            "branch": "HQ",
        }
        row.update(overrides)
        return row

    return _make
