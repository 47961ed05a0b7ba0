"""
Resolve free-text catalog names to ids, creating rows on first sight.

- Lookup is case-insensitive and exact (names are trimmed first).
- Inserts rely on the UNIQUE ... COLLATE NOCASE constraints: when two row
  tasks race on the same new name, the loser hits IntegrityError, re-reads
  and returns the winner's id.
- Catalog rows are never deleted or renamed here.
"""

import logging
from dataclasses import dataclass
from typing import Literal

import aiosqlite

from assettrack.errors import CatalogConflictError

logger = logging.getLogger(__name__)

CatalogKind = Literal["category", "model", "software", "peripheral_type"]


@dataclass(frozen=True)
class CatalogTable:
    table: str
    id_column: str
    extra_columns: tuple[str, ...] = ()


CATALOG_TABLES: dict[str, CatalogTable] = {
    "category": CatalogTable("categories", "category_id"),
    "model": CatalogTable("models", "model_id", ("category_id",)),
    "software": CatalogTable("software", "software_id", ("price",)),
    "peripheral_type": CatalogTable("peripheral_types", "peripheral_type_id"),
}


def _table_for(kind: str) -> CatalogTable:
    try:
        return CATALOG_TABLES[kind]
    except KeyError:
        raise ValueError(f"Unknown catalog kind: {kind}") from None


def _clean_name(name: str | None) -> str:
    if name is None or not str(name).strip():
        raise ValueError("Catalog name must not be blank")
    return str(name).strip()


async def find_existing(db: aiosqlite.Connection, kind: CatalogKind, name: str | None) -> int | None:
    """Read-only case-insensitive lookup. Blank names resolve to None."""
    if name is None or not str(name).strip():
        return None
    catalog = _table_for(kind)
    cursor = await db.execute(
        f"SELECT {catalog.id_column} FROM {catalog.table} WHERE name = ? COLLATE NOCASE LIMIT 1",
        (str(name).strip(),),
    )
    row = await cursor.fetchone()
    return row[0] if row else None


async def get_or_create(db: aiosqlite.Connection, kind: CatalogKind, name: str, **extra) -> int:
    """
    Return the id of the catalog row named `name`, inserting it if absent.

    Extra columns (e.g. category_id for models, price for software) are only
    written on insert. A uniqueness violation means another writer got there
    first; the row is re-read and its id returned.
    """
    catalog = _table_for(kind)
    clean = _clean_name(name)

    existing = await find_existing(db, kind, clean)
    if existing is not None:
        return existing

    columns = ["name"] + [c for c in catalog.extra_columns if c in extra]
    values = [clean] + [extra[c] for c in columns[1:]]
    placeholders = ", ".join("?" for _ in columns)
    try:
        cursor = await db.execute(
            f"INSERT INTO {catalog.table} ({', '.join(columns)}) VALUES ({placeholders})",
            values,
        )
        await db.commit()
    except aiosqlite.IntegrityError:
        existing = await find_existing(db, kind, clean)
        if existing is None:
            raise CatalogConflictError(f"Could not create or find {kind} '{clean}'") from None
        logger.debug(f"Concurrent insert of {kind} '{clean}', using id={existing}")
        return existing

    logger.info(f"Created {kind} '{clean}' (id={cursor.lastrowid})")
    return cursor.lastrowid


async def resolve_category(db: aiosqlite.Connection, name: str) -> int:
    return await get_or_create(db, "category", name)


async def resolve_model(db: aiosqlite.Connection, name: str, category_id: int | None = None) -> int:
    """Get or create a model; backfill its category link if it has none."""
    model_id = await get_or_create(db, "model", name, category_id=category_id)
    if category_id is not None:
        cursor = await db.execute(
            "UPDATE models SET category_id = ? WHERE model_id = ? AND category_id IS NULL",
            (category_id, model_id),
        )
        if cursor.rowcount:
            logger.info(f"Linked model id={model_id} to category id={category_id}")
        await db.commit()
    return model_id


async def resolve_software(db: aiosqlite.Connection, name: str, price: float | None = None) -> int:
    return await get_or_create(db, "software", name, price=price)


async def resolve_peripheral_type(db: aiosqlite.Connection, name: str) -> int:
    return await get_or_create(db, "peripheral_type", name)


async def find_recipient(db: aiosqlite.Connection, name: str, department: str) -> dict | None:
    cursor = await db.execute(
        """SELECT recipient_id, recipient_name, department, position
           FROM recipients
           WHERE recipient_name = ? COLLATE NOCASE AND department = ? COLLATE NOCASE
           LIMIT 1""",
        (name.strip(), department.strip()),
    )
    row = await cursor.fetchone()
    return dict(row) if row else None


async def resolve_recipient(
    db: aiosqlite.Connection,
    name: str,
    department: str,
    position: str | None = None,
) -> int:
    """
    Get or create a recipient keyed on (name, department).

    On an existing recipient only a supplied position is written; an absent
    position never clears the stored one.
    """
    clean_name = _clean_name(name)
    clean_dept = _clean_name(department)
    position = position.strip() if position and position.strip() else None

    existing = await find_recipient(db, clean_name, clean_dept)
    if existing is None:
        try:
            cursor = await db.execute(
                "INSERT INTO recipients (recipient_name, department, position) VALUES (?, ?, ?)",
                (clean_name, clean_dept, position),
            )
            await db.commit()
            logger.info(f"Created recipient '{clean_name}' ({clean_dept}) id={cursor.lastrowid}")
            return cursor.lastrowid
        except aiosqlite.IntegrityError:
            existing = await find_recipient(db, clean_name, clean_dept)
            if existing is None:
                raise CatalogConflictError(
                    f"Could not create or find recipient '{clean_name}' ({clean_dept})"
                ) from None

    if position is not None and existing["position"] != position:
        await db.execute(
            "UPDATE recipients SET position = ? WHERE recipient_id = ?",
            (position, existing["recipient_id"]),
        )
        await db.commit()
    return existing["recipient_id"]


async def find_distinct_asset_values(db: aiosqlite.Connection, column: str) -> set[str]:
    """Lower-cased distinct values of a free-text asset column (windows, microsoft_office)."""
    if column not in ("windows", "microsoft_office"):
        raise ValueError(f"Unsupported column: {column}")
    cursor = await db.execute(
        f"SELECT DISTINCT LOWER(TRIM({column})) FROM assets WHERE {column} IS NOT NULL AND TRIM({column}) != ''"
    )
    return {row[0] for row in await cursor.fetchall()}
