"""
Dry run of a bulk import: which catalog values would be created, which rows
would fail validation, and how the batch would be classified. Nothing is
written.
"""

import logging
from typing import Any

import aiosqlite

from assettrack.db import get_db
from assettrack.errors import AssetTrackError, EmptyBatchError
from assettrack.schemas.imports import CanonicalAssetRecord, ImportPreview, ImportRowError
from assettrack.services.batch_writer import REQUIRED_FIELDS
from assettrack.services.entity_resolver import find_distinct_asset_values, find_existing
from assettrack.services.mode_detector import detect_import_mode
from assettrack.utils.row_normalizer import normalize_row

logger = logging.getLogger(__name__)


class _NewValues:
    """Collects unseen values once each, case-insensitively, keeping the first spelling."""

    def __init__(self):
        self._seen: set[str] = set()
        self.values: list[str] = []

    def add(self, value: str) -> None:
        key = value.strip().lower()
        if key and key not in self._seen:
            self._seen.add(key)
            self.values.append(value.strip())


async def preview_import(db: aiosqlite.Connection | None, rows: list[Any]) -> ImportPreview:
    if not rows:
        raise EmptyBatchError("No assets provided for import")
    db = db or await get_db()

    records: list[CanonicalAssetRecord] = []
    invalid: list[ImportRowError] = []
    for index, raw in enumerate(rows):
        try:
            records.append(normalize_row(raw))
        except AssetTrackError as e:
            records.append(CanonicalAssetRecord())
            invalid.append(ImportRowError(row=index + 1, error=str(e)))

    analysis = await detect_import_mode(db, records)

    categories, models, software = _NewValues(), _NewValues(), _NewValues()
    windows, office, peripheral_types = _NewValues(), _NewValues(), _NewValues()
    known_windows = await find_distinct_asset_values(db, "windows")
    known_office = await find_distinct_asset_values(db, "microsoft_office")
    reported = {e.row for e in invalid}

    for index, (record, detail) in enumerate(zip(records, analysis.details)):
        row = index + 1
        if row not in reported:
            required = REQUIRED_FIELDS if detail.action in ("create_asset", "invalid") else ("serial_number",)
            missing = [f for f in required if not str(getattr(record, f) or "").strip()]
            if missing:
                invalid.append(
                    ImportRowError(
                        row=row,
                        serial_number=record.serial_number or None,
                        error=f"Missing required fields: {', '.join(missing)}",
                    )
                )

        if detail.action == "create_asset":
            if record.category and await find_existing(db, "category", record.category) is None:
                categories.add(record.category)
            if record.model and await find_existing(db, "model", record.model) is None:
                models.add(record.model)
            if record.software and await find_existing(db, "software", record.software) is None:
                software.add(record.software)
            if record.windows and record.windows.lower() not in known_windows:
                windows.add(record.windows)
            if record.microsoft_office and record.microsoft_office.lower() not in known_office:
                office.add(record.microsoft_office)

        for spec in record.peripherals:
            if await find_existing(db, "peripheral_type", spec.peripheral_name) is None:
                peripheral_types.add(spec.peripheral_name)

    invalid.sort(key=lambda e: e.row)
    preview = ImportPreview(
        total_rows=len(rows),
        new_categories=categories.values,
        new_models=models.values,
        new_software=software.values,
        new_windows=windows.values,
        new_office=office.values,
        new_peripheral_types=peripheral_types.values,
        invalid_rows=invalid,
        mode_analysis=analysis,
    )
    logger.info(
        f"Import preview: {len(rows)} rows, {len(invalid)} invalid, "
        f"new values pending confirmation={preview.has_new_values}"
    )
    return preview
