"""
Audited single-asset maintenance used outside the bulk import: field updates
and the orphan report.
"""

import logging
from typing import Any

import aiosqlite

from assettrack.db_inventory import find_orphaned_assets, get_asset_detail, update_asset_columns
from assettrack.services.audit_logger import SqliteAuditStore, UserContext, detect_changes, log_asset_change
from assettrack.services.entity_resolver import resolve_category, resolve_model, resolve_recipient
from assettrack.utils.row_normalizer import parse_price

logger = logging.getLogger(__name__)

# Editable asset fields, as named in the asset detail view
TRACKED_FIELDS = (
    "tag_id",
    "item_name",
    "status",
    "windows",
    "microsoft_office",
    "monthly_prices",
    "category",
    "model",
    "recipient_name",
    "department_name",
    "position",
)

_DIRECT_COLUMNS = ("tag_id", "item_name", "status", "windows", "microsoft_office", "monthly_prices")
_RECIPIENT_FIELDS = ("recipient_name", "department_name", "position")


def _clean(value: Any) -> Any:
    if isinstance(value, str):
        value = value.strip()
        return value or None
    return value


async def update_asset(
    db: aiosqlite.Connection,
    asset_id: int,
    data: dict[str, Any],
    user: UserContext | None = None,
) -> dict | None:
    """
    Apply field updates to an asset and audit them as one UPDATE entry.

    Only tracked fields present in `data` are considered, and only the ones
    that actually change are written. Returns the refreshed asset detail, or
    None if the asset does not exist.
    """
    before = await get_asset_detail(db, asset_id)
    if before is None:
        return None

    requested = {k: _clean(v) for k, v in data.items() if k in TRACKED_FIELDS}
    if "monthly_prices" in requested:
        requested["monthly_prices"] = parse_price(requested["monthly_prices"])

    changes = detect_changes(before, requested, requested.keys())
    if not changes:
        logger.debug(f"Asset {asset_id}: no changes")
        return before

    changed = {c.field_name for c in changes}
    columns: dict[str, Any] = {f: requested[f] for f in _DIRECT_COLUMNS if f in changed}

    category_id = before["category_id"]
    if "category" in changed:
        category_id = await resolve_category(db, requested["category"]) if requested["category"] else None
        columns["category_id"] = category_id
    if "model" in changed:
        columns["model_id"] = (
            await resolve_model(db, requested["model"], category_id) if requested["model"] else None
        )

    if changed & set(_RECIPIENT_FIELDS):
        merged = {f: requested.get(f, before.get(f)) for f in _RECIPIENT_FIELDS}
        if merged["recipient_name"] and merged["department_name"]:
            columns["recipient_id"] = await resolve_recipient(
                db, merged["recipient_name"], merged["department_name"], merged["position"]
            )
        elif "recipient_name" in changed and not merged["recipient_name"]:
            columns["recipient_id"] = None
        else:
            logger.warning(f"Asset {asset_id}: recipient needs both a name and a department, not reassigned")

    await update_asset_columns(db, asset_id, columns)
    after = await get_asset_detail(db, asset_id)

    if changed & set(_RECIPIENT_FIELDS):
        # Recipient fields are audited as stored, not as requested
        changes = [c for c in changes if c.field_name not in _RECIPIENT_FIELDS]
        changes += detect_changes(before, after, _RECIPIENT_FIELDS)
    if not changes:
        logger.debug(f"Asset {asset_id}: no stored changes")
        return after

    await log_asset_change(
        SqliteAuditStore(db),
        user,
        asset_id,
        "UPDATE",
        f"Updated asset {before['serial_number']}: {', '.join(c.field_name for c in changes)}",
        changes,
    )
    logger.info(f"Asset {asset_id} updated ({len(changes)} field(s))")
    return after


async def list_orphaned_assets(db: aiosqlite.Connection) -> dict:
    """Orphan report: assets without an inventory link. Never auto-assigned."""
    orphans = await find_orphaned_assets(db)
    if orphans:
        logger.warning(f"Found {len(orphans)} orphaned assets - manual assignment required")
    return {
        "orphaned": len(orphans),
        "assets": orphans,
        "message": f"Found {len(orphans)} orphaned assets - manual assignment required",
    }
