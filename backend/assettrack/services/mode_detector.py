"""
Classify an import batch before writing anything.

A batch is `new_assets` when no serial exists yet, `add_peripherals` when all
do, `mixed` otherwise. Each row gets an action; the detail list is parallel to
the input so the batch writer can index it by row position.
"""

import logging

import aiosqlite

from assettrack.db_inventory import find_asset_by_serial
from assettrack.schemas.imports import (
    CanonicalAssetRecord,
    ImportRecommendations,
    ModeAnalysis,
    RowClassification,
)

logger = logging.getLogger(__name__)


async def detect_import_mode(
    db: aiosqlite.Connection,
    records: list[CanonicalAssetRecord],
) -> ModeAnalysis:
    """Look up every serial and tally the batch. Read-only."""
    details: list[RowClassification] = []
    existing = new = with_peripherals = 0

    for record in records:
        serial = record.serial_number.strip()
        if not serial:
            details.append(RowClassification(serial="", action="invalid"))
            continue

        asset = await find_asset_by_serial(db, serial)
        if record.has_peripherals:
            with_peripherals += 1

        if asset:
            existing += 1
            details.append(
                RowClassification(
                    serial=serial,
                    asset_id=asset["asset_id"],
                    exists=True,
                    has_peripheral=record.has_peripherals,
                    action="add_peripheral" if record.has_peripherals else "skip",
                )
            )
        else:
            new += 1
            details.append(
                RowClassification(
                    serial=serial,
                    exists=False,
                    has_peripheral=record.has_peripherals,
                    action="create_asset",
                )
            )

    if existing == 0 and new > 0:
        mode = "new_assets"
    elif new == 0 and existing > 0:
        mode = "add_peripherals"
    else:
        mode = "mixed"

    logger.info(f"Import mode detected: {mode} (existing={existing}, new={new}, rows={len(records)})")
    return ModeAnalysis(
        mode=mode,
        existing_assets=existing,
        new_assets=new,
        assets_with_peripherals=with_peripherals,
        total_rows=len(records),
        details=details,
    )


def get_import_recommendations(analysis: ModeAnalysis) -> ImportRecommendations:
    """Operator-facing advice for a detected mode."""
    rec = ImportRecommendations()

    if analysis.mode == "add_peripherals":
        rec.suggestions.append(
            f"All {analysis.existing_assets} assets already exist; only peripherals will be added"
        )
        if analysis.assets_with_peripherals == 0:
            rec.can_proceed = False
            rec.warnings.append("All assets exist but no peripheral data was found")
            rec.required_actions.append("Add peripheral columns or remove the existing assets from the file")
    elif analysis.mode == "mixed":
        rec.warnings.append(
            f"Mixed import: {analysis.new_assets} new assets, {analysis.existing_assets} existing assets"
        )
        rec.suggestions.append("New assets will be created; existing assets will receive peripherals only")
        rec.required_actions.append("Review the existing assets before importing")
    else:
        rec.suggestions.append(f"All {analysis.new_assets} assets are new and will be created")

    skipped = sum(1 for d in analysis.details if d.action == "skip")
    if skipped:
        rec.warnings.append(f"{skipped} existing assets have no peripheral data and will be skipped")
    invalid = sum(1 for d in analysis.details if d.action == "invalid")
    if invalid:
        rec.warnings.append(f"{invalid} rows have no serial number")

    return rec


def separate_rows_by_action(
    records: list[CanonicalAssetRecord],
    analysis: ModeAnalysis,
) -> dict[str, list[tuple[int, CanonicalAssetRecord]]]:
    """Group (row_index, record) pairs by their detected action."""
    groups: dict[str, list[tuple[int, CanonicalAssetRecord]]] = {
        "create_asset": [],
        "add_peripheral": [],
        "skip": [],
        "invalid": [],
    }
    for index, (record, detail) in enumerate(zip(records, analysis.details)):
        groups[detail.action].append((index, record))
    return groups
