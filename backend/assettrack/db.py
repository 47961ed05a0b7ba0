"""
SQLite database layer for AssetTrack.

Stores:
- catalog tables: categories, models, recipients, software, peripheral_types
- assets, peripherals, asset_software
- projects, customers, inventory (asset <-> project/customer links)
- history_log / history_log_changes: field-level audit trail

Uses aiosqlite for async SQLite access. The database file lives at
backend/data/assettrack.db (or settings.database_path) and is auto-created
on first use. Catalog names are unique modulo case (COLLATE NOCASE); the
import pipeline relies on these constraints for race-safe get-or-create.
"""

import logging
from pathlib import Path

import aiosqlite

from assettrack.config import settings

logger = logging.getLogger(__name__)

# Database file location
DB_PATH = (
    Path(settings.database_path)
    if settings.database_path
    else Path(__file__).parent.parent / "data" / "assettrack.db"
)

_db: aiosqlite.Connection | None = None


async def get_db() -> aiosqlite.Connection:
    """Get or create the database connection."""
    global _db
    if _db is None:
        DB_PATH.parent.mkdir(parents=True, exist_ok=True)
        _db = await aiosqlite.connect(str(DB_PATH))
        _db.row_factory = aiosqlite.Row
        await _db.execute("PRAGMA journal_mode=WAL")
        await _db.execute("PRAGMA foreign_keys=ON")
        await _init_tables(_db)
        logger.info(f"SQLite database initialized at {DB_PATH}")
    return _db


async def close_db():
    """Close the database connection."""
    global _db
    if _db:
        await _db.close()
        _db = None
        logger.info("SQLite database connection closed")


async def _init_tables(db: aiosqlite.Connection):
    """Create tables if they don't exist."""
    await db.executescript("""
        CREATE TABLE IF NOT EXISTS categories (
            category_id INTEGER PRIMARY KEY AUTOINCREMENT,
            name TEXT NOT NULL UNIQUE COLLATE NOCASE,
            created_at TEXT NOT NULL DEFAULT (datetime('now'))
        );

        CREATE TABLE IF NOT EXISTS models (
            model_id INTEGER PRIMARY KEY AUTOINCREMENT,
            name TEXT NOT NULL UNIQUE COLLATE NOCASE,
            category_id INTEGER REFERENCES categories(category_id),
            created_at TEXT NOT NULL DEFAULT (datetime('now'))
        );

        CREATE TABLE IF NOT EXISTS recipients (
            recipient_id INTEGER PRIMARY KEY AUTOINCREMENT,
            recipient_name TEXT NOT NULL COLLATE NOCASE,
            department TEXT NOT NULL COLLATE NOCASE,
            position TEXT,
            created_at TEXT NOT NULL DEFAULT (datetime('now')),
            UNIQUE (recipient_name, department)
        );

        CREATE TABLE IF NOT EXISTS software (
            software_id INTEGER PRIMARY KEY AUTOINCREMENT,
            name TEXT NOT NULL UNIQUE COLLATE NOCASE,
            price REAL,
            created_at TEXT NOT NULL DEFAULT (datetime('now'))
        );

        CREATE TABLE IF NOT EXISTS peripheral_types (
            peripheral_type_id INTEGER PRIMARY KEY AUTOINCREMENT,
            name TEXT NOT NULL UNIQUE COLLATE NOCASE,
            created_at TEXT NOT NULL DEFAULT (datetime('now'))
        );

        CREATE TABLE IF NOT EXISTS projects (
            project_id INTEGER PRIMARY KEY AUTOINCREMENT,
            project_ref_number TEXT NOT NULL UNIQUE,
            project_title TEXT,
            solution_principal TEXT,
            warranty TEXT,
            preventive_maintenance TEXT,
            start_date TEXT,
            end_date TEXT,
            created_at TEXT NOT NULL DEFAULT (datetime('now'))
        );

        CREATE TABLE IF NOT EXISTS customers (
            customer_id INTEGER PRIMARY KEY AUTOINCREMENT,
            customer_ref_number TEXT NOT NULL UNIQUE,
            customer_name TEXT NOT NULL COLLATE NOCASE,
            branch TEXT NOT NULL DEFAULT '' COLLATE NOCASE,
            created_at TEXT NOT NULL DEFAULT (datetime('now')),
            UNIQUE (customer_name, branch)
        );

        CREATE TABLE IF NOT EXISTS assets (
            asset_id INTEGER PRIMARY KEY AUTOINCREMENT,
            serial_number TEXT NOT NULL UNIQUE,
            tag_id TEXT NOT NULL,
            item_name TEXT NOT NULL,
            status TEXT NOT NULL DEFAULT 'Active',
            category_id INTEGER REFERENCES categories(category_id),
            model_id INTEGER REFERENCES models(model_id),
            recipient_id INTEGER REFERENCES recipients(recipient_id),
            windows TEXT,
            microsoft_office TEXT,
            monthly_prices REAL,
            created_at TEXT NOT NULL DEFAULT (datetime('now')),
            updated_at TEXT NOT NULL DEFAULT (datetime('now'))
        );

        CREATE TABLE IF NOT EXISTS peripherals (
            peripheral_id INTEGER PRIMARY KEY AUTOINCREMENT,
            asset_id INTEGER NOT NULL REFERENCES assets(asset_id) ON DELETE CASCADE,
            peripheral_type_id INTEGER NOT NULL REFERENCES peripheral_types(peripheral_type_id),
            serial_code TEXT,
            condition TEXT,
            remarks TEXT,
            created_at TEXT NOT NULL DEFAULT (datetime('now'))
        );

        CREATE INDEX IF NOT EXISTS idx_peripherals_asset
            ON peripherals(asset_id);

        CREATE TABLE IF NOT EXISTS asset_software (
            asset_id INTEGER NOT NULL REFERENCES assets(asset_id) ON DELETE CASCADE,
            software_id INTEGER NOT NULL REFERENCES software(software_id),
            PRIMARY KEY (asset_id, software_id)
        );

        CREATE TABLE IF NOT EXISTS inventory (
            inventory_id INTEGER PRIMARY KEY AUTOINCREMENT,
            project_id INTEGER NOT NULL REFERENCES projects(project_id),
            customer_id INTEGER NOT NULL REFERENCES customers(customer_id),
            asset_id INTEGER REFERENCES assets(asset_id) ON DELETE SET NULL,
            created_at TEXT NOT NULL DEFAULT (datetime('now'))
        );

        CREATE INDEX IF NOT EXISTS idx_inventory_project_customer
            ON inventory(project_id, customer_id);
        CREATE UNIQUE INDEX IF NOT EXISTS idx_inventory_asset
            ON inventory(asset_id) WHERE asset_id IS NOT NULL;

        CREATE TABLE IF NOT EXISTS history_log (
            log_id INTEGER PRIMARY KEY AUTOINCREMENT,
            user_id INTEGER NOT NULL,
            username TEXT,
            table_name TEXT NOT NULL,
            record_id INTEGER NOT NULL,
            action_type TEXT NOT NULL,
            action_desc TEXT NOT NULL,
            timestamp TEXT NOT NULL DEFAULT (datetime('now'))
        );

        CREATE INDEX IF NOT EXISTS idx_history_log_record
            ON history_log(table_name, record_id);

        CREATE TABLE IF NOT EXISTS history_log_changes (
            change_id INTEGER PRIMARY KEY AUTOINCREMENT,
            log_id INTEGER NOT NULL REFERENCES history_log(log_id) ON DELETE CASCADE,
            field_name TEXT NOT NULL,
            old_value TEXT NOT NULL DEFAULT '',
            new_value TEXT NOT NULL DEFAULT ''
        );
    """)
    await db.commit()


# ─── History Log ─────────────────────────────────────────────────────


async def get_history_logs(db: aiosqlite.Connection, page: int = 1, limit: int = 100) -> list[dict]:
    """Get audit log entries, newest first, each with its field changes."""
    offset = (page - 1) * limit
    cursor = await db.execute(
        """SELECT log_id, user_id, COALESCE(username, 'Unknown') AS username, table_name,
                  record_id, action_type, action_desc, timestamp
           FROM history_log
           ORDER BY timestamp DESC, log_id DESC
           LIMIT ? OFFSET ?""",
        (limit, offset),
    )
    logs = [dict(row) for row in await cursor.fetchall()]
    if not logs:
        return []

    log_ids = [log["log_id"] for log in logs]
    placeholders = ",".join("?" for _ in log_ids)
    cursor = await db.execute(
        f"""SELECT log_id, field_name, old_value, new_value
            FROM history_log_changes
            WHERE log_id IN ({placeholders})
            ORDER BY change_id""",
        log_ids,
    )
    changes_by_log: dict[int, list[dict]] = {}
    for row in await cursor.fetchall():
        changes_by_log.setdefault(row["log_id"], []).append(
            {"field_name": row["field_name"], "old_value": row["old_value"], "new_value": row["new_value"]}
        )
    for log in logs:
        log["changes"] = changes_by_log.get(log["log_id"], [])
    return logs


async def get_history_log_count(db: aiosqlite.Connection) -> int:
    """Total number of audit log entries."""
    cursor = await db.execute("SELECT COUNT(*) FROM history_log")
    return (await cursor.fetchone())[0]
