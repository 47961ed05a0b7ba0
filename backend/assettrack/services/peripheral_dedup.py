"""
Detect peripherals already attached to an asset.

Used on the add-to-existing path so re-running the same import does not
duplicate peripherals. Matching is by peripheral type name (case-insensitive)
plus serial code; two peripherals with no serial code and the same type are
treated as the same peripheral.
"""

import aiosqlite


def _serial_key(serial_code: str | None) -> str:
    return (serial_code or "").strip().lower()


async def is_duplicate_peripheral(
    db: aiosqlite.Connection,
    asset_id: int,
    type_name: str,
    serial_code: str | None,
) -> bool:
    """True when an equivalent peripheral already exists on the asset."""
    cursor = await db.execute(
        """SELECT p.serial_code
           FROM peripherals p
           JOIN peripheral_types pt ON pt.peripheral_type_id = p.peripheral_type_id
           WHERE p.asset_id = ? AND pt.name = ? COLLATE NOCASE""",
        (asset_id, type_name.strip()),
    )
    wanted = _serial_key(serial_code)
    for row in await cursor.fetchall():
        if _serial_key(row["serial_code"]) == wanted:
            return True
    return False
