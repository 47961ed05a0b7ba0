"""
Inventory data layer: assets, peripherals, software links, projects.
Used by the bulk import pipeline, the asset update service and the import CLIs.

Every function takes the connection explicitly so callers (and tests) decide
which store they run against.
"""

import aiosqlite

from assettrack.errors import DuplicateSerialError

# Asset columns that may be written by import/update paths
ASSET_COLUMNS = (
    "tag_id",
    "item_name",
    "status",
    "category_id",
    "model_id",
    "recipient_id",
    "windows",
    "microsoft_office",
    "monthly_prices",
)


async def find_asset_by_serial(db: aiosqlite.Connection, serial_number: str) -> dict | None:
    """Fetch one asset by exact serial number."""
    cursor = await db.execute(
        "SELECT * FROM assets WHERE serial_number = ? LIMIT 1",
        (serial_number.strip(),),
    )
    row = await cursor.fetchone()
    return dict(row) if row else None


async def get_asset_detail(db: aiosqlite.Connection, asset_id: int) -> dict | None:
    """Fetch an asset joined with its catalog names (category, model, recipient)."""
    cursor = await db.execute(
        """SELECT a.*, c.name AS category, m.name AS model,
                  r.recipient_name, r.department AS department_name, r.position
           FROM assets a
           LEFT JOIN categories c ON c.category_id = a.category_id
           LEFT JOIN models m ON m.model_id = a.model_id
           LEFT JOIN recipients r ON r.recipient_id = a.recipient_id
           WHERE a.asset_id = ?""",
        (asset_id,),
    )
    row = await cursor.fetchone()
    return dict(row) if row else None


async def insert_asset(
    db: aiosqlite.Connection,
    serial_number: str,
    tag_id: str,
    item_name: str,
    status: str = "Active",
    category_id: int | None = None,
    model_id: int | None = None,
    recipient_id: int | None = None,
    windows: str | None = None,
    microsoft_office: str | None = None,
    monthly_prices: float | None = None,
) -> int:
    """Insert an asset. Returns asset_id; raises DuplicateSerialError on a serial clash."""
    try:
        cursor = await db.execute(
            """INSERT INTO assets
               (serial_number, tag_id, item_name, status, category_id, model_id, recipient_id,
                windows, microsoft_office, monthly_prices, created_at, updated_at)
               VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, datetime('now'), datetime('now'))""",
            (
                serial_number,
                tag_id,
                item_name,
                status,
                category_id,
                model_id,
                recipient_id,
                windows,
                microsoft_office,
                monthly_prices,
            ),
        )
    except aiosqlite.IntegrityError as e:
        if "assets.serial_number" in str(e):
            raise DuplicateSerialError(serial_number) from e
        raise
    await db.commit()
    return cursor.lastrowid


async def update_asset_columns(db: aiosqlite.Connection, asset_id: int, values: dict) -> bool:
    """Update the given asset columns. Unknown columns are ignored. Returns True if a row changed."""
    columns = [c for c in values if c in ASSET_COLUMNS]
    if not columns:
        return False
    assignments = ", ".join(f"{c} = ?" for c in columns)
    cursor = await db.execute(
        f"UPDATE assets SET {assignments}, updated_at = datetime('now') WHERE asset_id = ?",
        (*[values[c] for c in columns], asset_id),
    )
    await db.commit()
    return cursor.rowcount > 0


async def delete_asset(db: aiosqlite.Connection, asset_id: int) -> bool:
    """Delete an asset; peripherals and software links cascade."""
    cursor = await db.execute("DELETE FROM assets WHERE asset_id = ?", (asset_id,))
    await db.commit()
    return cursor.rowcount > 0


async def insert_peripheral(
    db: aiosqlite.Connection,
    asset_id: int,
    peripheral_type_id: int,
    serial_code: str | None = None,
    condition: str | None = None,
    remarks: str | None = None,
) -> int:
    """Insert a peripheral for an asset. Returns peripheral_id."""
    cursor = await db.execute(
        """INSERT INTO peripherals (asset_id, peripheral_type_id, serial_code, condition, remarks, created_at)
           VALUES (?, ?, ?, ?, ?, datetime('now'))""",
        (asset_id, peripheral_type_id, serial_code, condition, remarks),
    )
    await db.commit()
    return cursor.lastrowid


async def get_asset_peripherals(db: aiosqlite.Connection, asset_id: int) -> list[dict]:
    """List an asset's peripherals with their type names."""
    cursor = await db.execute(
        """SELECT p.peripheral_id, pt.name AS peripheral_name, p.serial_code, p.condition, p.remarks
           FROM peripherals p
           JOIN peripheral_types pt ON pt.peripheral_type_id = p.peripheral_type_id
           WHERE p.asset_id = ?
           ORDER BY p.peripheral_id""",
        (asset_id,),
    )
    return [dict(row) for row in await cursor.fetchall()]


async def link_software(db: aiosqlite.Connection, asset_id: int, software_id: int) -> bool:
    """Attach software to an asset. Returns False if the link already existed."""
    cursor = await db.execute(
        "INSERT OR IGNORE INTO asset_software (asset_id, software_id) VALUES (?, ?)",
        (asset_id, software_id),
    )
    await db.commit()
    return cursor.rowcount > 0


# ─── Projects ────────────────────────────────────────────────────────


async def insert_project(
    db: aiosqlite.Connection,
    project_ref_number: str,
    project_title: str | None = None,
    solution_principal: str | None = None,
    warranty: str | None = None,
    preventive_maintenance: str | None = None,
    start_date: str | None = None,
    end_date: str | None = None,
) -> int:
    """Insert a project. Returns project_id."""
    cursor = await db.execute(
        """INSERT INTO projects
           (project_ref_number, project_title, solution_principal, warranty,
            preventive_maintenance, start_date, end_date, created_at)
           VALUES (?, ?, ?, ?, ?, ?, ?, datetime('now'))""",
        (
            project_ref_number.strip(),
            project_title,
            solution_principal,
            warranty,
            preventive_maintenance,
            start_date,
            end_date,
        ),
    )
    await db.commit()
    return cursor.lastrowid


async def get_project_by_ref(db: aiosqlite.Connection, project_ref_number: str) -> dict | None:
    """Fetch a project by exact reference number."""
    cursor = await db.execute(
        "SELECT * FROM projects WHERE project_ref_number = ? LIMIT 1",
        (project_ref_number.strip(),),
    )
    row = await cursor.fetchone()
    return dict(row) if row else None


# ─── Orphans ─────────────────────────────────────────────────────────


async def find_orphaned_assets(db: aiosqlite.Connection) -> list[dict]:
    """Assets with no inventory link. Reported only; never auto-assigned."""
    cursor = await db.execute(
        """SELECT a.asset_id, a.serial_number, a.tag_id, a.item_name, a.status, a.created_at
           FROM assets a
           LEFT JOIN inventory i ON i.asset_id = a.asset_id
           WHERE i.inventory_id IS NULL
           ORDER BY a.asset_id"""
    )
    return [dict(row) for row in await cursor.fetchall()]
