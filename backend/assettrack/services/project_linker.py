"""
Attach assets to the project/customer hierarchy through inventory links.

Projects must already exist (seeded by import_projects.py). Customers are
matched on (name, branch), fall back to any customer with the same name, and
are created with the next M#### reference otherwise. Every step that can race
with a sibling row task goes through lookup -> insert -> re-lookup on
IntegrityError; no in-process locks.
"""

import logging
import re
from dataclasses import dataclass

import aiosqlite

from assettrack.config import settings
from assettrack.errors import LinkingError

logger = logging.getLogger(__name__)


@dataclass
class CustomerResolution:
    customer_id: int
    created: bool = False
    branch_fallback: bool = False
    matched_branch: str | None = None


async def resolve_project(db: aiosqlite.Connection, project_reference_num: str | None) -> int:
    """Project id for an exact reference number. Missing projects are fatal for the row."""
    ref = (project_reference_num or "").strip()
    if not ref:
        raise LinkingError("Project reference number is required to link the asset")
    cursor = await db.execute(
        "SELECT project_id FROM projects WHERE project_ref_number = ? LIMIT 1",
        (ref,),
    )
    row = await cursor.fetchone()
    if not row:
        raise LinkingError(f"Project with reference number '{ref}' not found")
    return row["project_id"]


async def _find_customer(db: aiosqlite.Connection, name: str, branch: str) -> dict | None:
    cursor = await db.execute(
        """SELECT customer_id, customer_name, branch FROM customers
           WHERE customer_name = ? COLLATE NOCASE AND branch = ? COLLATE NOCASE
           LIMIT 1""",
        (name, branch),
    )
    row = await cursor.fetchone()
    return dict(row) if row else None


async def _find_customer_by_name(db: aiosqlite.Connection, name: str) -> dict | None:
    cursor = await db.execute(
        """SELECT customer_id, customer_name, branch FROM customers
           WHERE customer_name = ? COLLATE NOCASE
           ORDER BY customer_id
           LIMIT 1""",
        (name,),
    )
    row = await cursor.fetchone()
    return dict(row) if row else None


async def next_customer_ref(db: aiosqlite.Connection) -> str:
    """
    Next generated customer reference: prefix + zero-padded counter.
    The counter continues from the highest existing reference of that shape.
    """
    prefix = settings.customer_ref_prefix
    pattern = re.compile(rf"^{re.escape(prefix)}(\d+)$")
    cursor = await db.execute(
        "SELECT customer_ref_number FROM customers WHERE customer_ref_number LIKE ?",
        (f"{prefix}%",),
    )
    highest = 0
    for row in await cursor.fetchall():
        m = pattern.match(row[0] or "")
        if m:
            highest = max(highest, int(m.group(1)))
    return f"{prefix}{highest + 1:0{settings.customer_ref_width}d}"


async def resolve_customer(
    db: aiosqlite.Connection,
    customer_name: str | None,
    branch: str | None,
) -> CustomerResolution:
    """
    Resolve a customer for (name, branch).

    1. Exact (name, branch) match.
    2. Any customer with the same name; branch mismatch is tolerated and
       reported through branch_fallback so the caller can warn.
    3. Create with a generated reference. A reference collision with a
       concurrent writer regenerates the reference, up to
       settings.customer_ref_max_attempts times.
    """
    name = (customer_name or "").strip()
    branch = (branch or "").strip()
    if not name:
        raise LinkingError("Customer name is required to link the asset")

    existing = await _find_customer(db, name, branch)
    if existing:
        return CustomerResolution(existing["customer_id"])

    same_name = await _find_customer_by_name(db, name)
    if same_name:
        logger.warning(
            f"Customer '{name}' has no branch '{branch}', reusing customer_id={same_name['customer_id']} "
            f"(branch '{same_name['branch']}')"
        )
        return CustomerResolution(
            same_name["customer_id"],
            branch_fallback=True,
            matched_branch=same_name["branch"],
        )

    for attempt in range(1, settings.customer_ref_max_attempts + 1):
        ref = await next_customer_ref(db)
        try:
            cursor = await db.execute(
                "INSERT INTO customers (customer_ref_number, customer_name, branch) VALUES (?, ?, ?)",
                (ref, name, branch),
            )
            await db.commit()
        except aiosqlite.IntegrityError:
            # Either another task created this customer, or it took our reference
            existing = await _find_customer(db, name, branch)
            if existing:
                return CustomerResolution(existing["customer_id"])
            logger.debug(f"Customer reference {ref} taken (attempt {attempt}), regenerating")
            continue
        logger.info(f"Created customer '{name}' / '{branch}' as {ref} (id={cursor.lastrowid})")
        return CustomerResolution(cursor.lastrowid, created=True)

    raise LinkingError(f"Could not create customer '{name}' ({branch}): reference numbers exhausted")


async def link_asset_to_project(
    db: aiosqlite.Connection,
    asset_id: int,
    project_id: int,
    customer_id: int,
) -> int:
    """
    Attach an asset to (project, customer). Returns inventory_id.

    Fills the first link whose asset slot is empty; the conditional UPDATE
    means two tasks can never claim the same slot. Otherwise inserts a new
    populated link.
    """
    try:
        cursor = await db.execute(
            """SELECT inventory_id FROM inventory
               WHERE project_id = ? AND customer_id = ? AND asset_id IS NULL
               ORDER BY inventory_id""",
            (project_id, customer_id),
        )
        free_slots = [row["inventory_id"] for row in await cursor.fetchall()]
        for inventory_id in free_slots:
            cursor = await db.execute(
                "UPDATE inventory SET asset_id = ? WHERE inventory_id = ? AND asset_id IS NULL",
                (asset_id, inventory_id),
            )
            await db.commit()
            if cursor.rowcount == 1:
                return inventory_id

        cursor = await db.execute(
            "INSERT INTO inventory (project_id, customer_id, asset_id) VALUES (?, ?, ?)",
            (project_id, customer_id, asset_id),
        )
        await db.commit()
        return cursor.lastrowid
    except aiosqlite.Error as e:
        raise LinkingError(f"Failed to link asset {asset_id} to project {project_id}: {e}") from e


async def get_asset_link(db: aiosqlite.Connection, asset_id: int) -> dict | None:
    """The inventory link of an asset, with project and customer references."""
    cursor = await db.execute(
        """SELECT i.inventory_id, i.project_id, i.customer_id,
                  p.project_ref_number, c.customer_ref_number, c.customer_name, c.branch
           FROM inventory i
           JOIN projects p ON p.project_id = i.project_id
           JOIN customers c ON c.customer_id = i.customer_id
           WHERE i.asset_id = ?""",
        (asset_id,),
    )
    row = await cursor.fetchone()
    return dict(row) if row else None
