"""
Bulk import: write a batch of asset rows and report one summary.

Flow per batch:
1. Normalize every raw row into a CanonicalAssetRecord.
2. Detect the import mode (new assets, peripherals for existing assets, mixed).
3. Process rows in chunks of settings.import_chunk_size. Chunks run one after
   another; rows inside a chunk run concurrently on the shared connection.
   Rows repeating a serial wait for a later chunk than the row before them.
4. Aggregate per-row RowOutcome / RowError values into an ImportSummary.

A row never raises out of its task. Rows that create an asset resolve the
project and customer first, and delete the asset again if any later step
(peripherals, software link, inventory link) fails, so a failed row never
leaves an orphan behind.
"""

import asyncio
import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Any

import aiosqlite

from assettrack.config import settings
from assettrack.db import get_db
from assettrack.db_inventory import delete_asset, find_asset_by_serial, insert_asset, insert_peripheral, link_software
from assettrack.errors import (
    AssetNotFoundError,
    AssetTrackError,
    DuplicateSerialError,
    EmptyBatchError,
    RowValidationError,
)
from assettrack.schemas.imports import (
    CanonicalAssetRecord,
    ImportRowError,
    ImportSummary,
    ImportWarning,
    ModeAnalysis,
    PeripheralSpec,
)
from assettrack.services.audit_logger import (
    SYSTEM_USER,
    AuditStore,
    FieldChange,
    SqliteAuditStore,
    UserContext,
    detect_changes,
    log_asset_change,
)
from assettrack.services.entity_resolver import (
    resolve_category,
    resolve_model,
    resolve_peripheral_type,
    resolve_recipient,
    resolve_software,
)
from assettrack.services.mode_detector import detect_import_mode, separate_rows_by_action
from assettrack.services.peripheral_dedup import is_duplicate_peripheral
from assettrack.services.project_linker import link_asset_to_project, resolve_customer, resolve_project
from assettrack.utils.row_normalizer import normalize_row

logger = logging.getLogger(__name__)

IMPORT_MODES = ("auto", "new_assets", "add_peripherals")

REQUIRED_FIELDS = ("serial_number", "tag_id", "item_name", "project_reference_num")

# Fields recorded in the INSERT audit entry of an imported asset
AUDITED_FIELDS = (
    "serial_number",
    "tag_id",
    "item_name",
    "status",
    "category",
    "model",
    "recipient_name",
    "department_name",
    "position",
    "software",
    "windows",
    "microsoft_office",
    "monthly_prices",
    "project_reference_num",
    "customer_name",
    "branch",
)


class RowState(str, Enum):
    PENDING = "pending"
    NORMALIZED = "normalized"
    CLASSIFIED = "classified"
    RESOLVING = "resolving"
    WRITTEN = "written"
    FAILED = "failed"
    SKIPPED = "skipped"


@dataclass
class RowOutcome:
    """A row that was written or deliberately skipped."""

    row: int
    serial_number: str
    state: RowState
    action: str  # created | augmented | skipped
    asset_id: int | None = None
    peripherals_added: int = 0
    duplicates: int = 0
    warnings: list[str] = field(default_factory=list)


@dataclass
class RowError:
    """A row that failed; siblings are unaffected."""

    row: int
    serial_number: str | None
    error: str
    state: RowState = RowState.FAILED
    duplicates: int = 0
    warnings: list[str] = field(default_factory=list)


RowResult = RowOutcome | RowError


class _RowTask:
    """State for one row while it is processed."""

    def __init__(self, row: int, record: CanonicalAssetRecord | None, error: str | None = None):
        self.row = row
        self.record = record
        self.normalize_error = error
        self.state = RowState.PENDING if record is None else RowState.NORMALIZED
        self.warnings: list[str] = []
        # Filled from the mode analysis before the row runs
        self.planned_action = "invalid"
        self.asset_id: int | None = None
        self.repeats_serial = False

    @property
    def serial(self) -> str | None:
        if self.record is None:
            return None
        return self.record.serial_number or None

    def advance(self, state: RowState) -> None:
        logger.debug(f"Row {self.row} ({self.serial}): {self.state.value} -> {state.value}")
        self.state = state

    def outcome(self, action: str, **kwargs) -> RowOutcome:
        state = RowState.SKIPPED if action == "skipped" else RowState.WRITTEN
        self.advance(state)
        return RowOutcome(
            row=self.row,
            serial_number=self.record.serial_number,
            state=state,
            action=action,
            warnings=self.warnings,
            **kwargs,
        )

    def failure(self, error: str, duplicates: int = 0) -> RowError:
        self.advance(RowState.FAILED)
        return RowError(
            row=self.row,
            serial_number=self.serial,
            error=error,
            duplicates=duplicates,
            warnings=self.warnings,
        )


# ─── Row steps ───────────────────────────────────────────────────────


def _validate_for_create(record: CanonicalAssetRecord) -> None:
    missing = [f for f in REQUIRED_FIELDS if not str(getattr(record, f) or "").strip()]
    if missing:
        raise RowValidationError(f"Missing required fields: {', '.join(missing)}")


def _record_fields(record: CanonicalAssetRecord) -> dict[str, Any]:
    return {f: getattr(record, f) for f in AUDITED_FIELDS}


def _peripheral_change(spec: PeripheralSpec) -> FieldChange:
    return FieldChange(f"Peripheral ({spec.peripheral_name})", "", spec.serial_code or "N/A")


async def _create_asset(
    db: aiosqlite.Connection,
    task: _RowTask,
    store: AuditStore,
    user: UserContext,
) -> RowOutcome:
    record = task.record
    _validate_for_create(record)
    task.advance(RowState.RESOLVING)

    # Project and customer first: a row that cannot be linked must not write an asset
    project_id = await resolve_project(db, record.project_reference_num)
    customer = await resolve_customer(db, record.customer_name, record.branch)
    if customer.branch_fallback:
        task.warnings.append(
            f"Branch '{record.branch}' not found for customer '{record.customer_name}'; "
            f"linked to existing branch '{customer.matched_branch}'"
        )

    category_id = await resolve_category(db, record.category) if record.category else None
    model_id = await resolve_model(db, record.model, category_id) if record.model else None

    recipient_id = None
    if record.recipient_name and record.department_name:
        recipient_id = await resolve_recipient(db, record.recipient_name, record.department_name, record.position)
    elif record.recipient_name or record.department_name:
        task.warnings.append("Recipient needs both a name and a department; asset left unassigned")

    software_id = await resolve_software(db, record.software) if record.software else None

    asset_id = await insert_asset(
        db,
        serial_number=record.serial_number,
        tag_id=record.tag_id,
        item_name=record.item_name,
        status=record.status,
        category_id=category_id,
        model_id=model_id,
        recipient_id=recipient_id,
        windows=record.windows,
        microsoft_office=record.microsoft_office,
        monthly_prices=record.monthly_prices,
    )

    try:
        for spec in record.peripherals:
            type_id = await resolve_peripheral_type(db, spec.peripheral_name)
            await insert_peripheral(db, asset_id, type_id, spec.serial_code, spec.condition, spec.remarks)
        if software_id is not None:
            await link_software(db, asset_id, software_id)
        await link_asset_to_project(db, asset_id, project_id, customer.customer_id)
    except Exception:
        logger.warning(f"Row {task.row}: rolling back asset {record.serial_number} (id={asset_id})")
        await delete_asset(db, asset_id)
        raise

    changes = detect_changes({}, _record_fields(record), AUDITED_FIELDS)
    changes += [_peripheral_change(spec) for spec in record.peripherals]
    await log_asset_change(
        store,
        user,
        asset_id,
        "INSERT",
        f"Imported asset {record.serial_number} ({record.item_name}) with {len(record.peripherals)} peripheral(s)",
        changes,
    )
    return task.outcome("created", asset_id=asset_id)


async def _add_peripherals(
    db: aiosqlite.Connection,
    task: _RowTask,
    asset_id: int,
    store: AuditStore,
    user: UserContext,
) -> RowResult:
    record = task.record
    if not record.has_peripherals:
        task.warnings.append("Asset already exists and the row has no peripheral data")
        return task.outcome("skipped", asset_id=asset_id)

    task.advance(RowState.RESOLVING)
    added: list[PeripheralSpec] = []
    failures: list[str] = []
    duplicates = 0

    for spec in record.peripherals:
        try:
            if await is_duplicate_peripheral(db, asset_id, spec.peripheral_name, spec.serial_code):
                duplicates += 1
                continue
            type_id = await resolve_peripheral_type(db, spec.peripheral_name)
            await insert_peripheral(db, asset_id, type_id, spec.serial_code, spec.condition, spec.remarks)
            added.append(spec)
        except (AssetTrackError, ValueError, aiosqlite.Error) as e:
            failures.append(f"{spec.peripheral_name}: {e}")

    if not added:
        if failures:
            return task.failure(f"No peripherals added: {'; '.join(failures)}", duplicates=duplicates)
        return task.outcome("skipped", asset_id=asset_id, duplicates=duplicates)

    task.warnings.extend(f"Peripheral not added - {msg}" for msg in failures)
    await log_asset_change(
        store,
        user,
        asset_id,
        "UPDATE",
        f"Added {len(added)} peripheral(s) to asset {record.serial_number} via import",
        [_peripheral_change(spec) for spec in added],
    )
    return task.outcome("augmented", asset_id=asset_id, peripherals_added=len(added), duplicates=duplicates)


async def _run_row(
    db: aiosqlite.Connection,
    task: _RowTask,
    import_mode: str,
    store: AuditStore,
    user: UserContext,
) -> RowResult:
    record = task.record
    if task.planned_action == "invalid":
        raise RowValidationError("Missing required fields: serial_number")

    asset_id = task.asset_id
    if task.repeats_serial:
        # An earlier row of this batch may have created the asset since the analysis ran
        existing = await find_asset_by_serial(db, record.serial_number)
        asset_id = existing["asset_id"] if existing else None
    task.advance(RowState.CLASSIFIED)

    if import_mode == "add_peripherals":
        if asset_id is None:
            raise AssetNotFoundError(record.serial_number)
        return await _add_peripherals(db, task, asset_id, store, user)

    if import_mode == "new_assets":
        if asset_id is not None:
            raise DuplicateSerialError(record.serial_number)
        return await _create_asset(db, task, store, user)

    if asset_id is not None:
        return await _add_peripherals(db, task, asset_id, store, user)
    try:
        return await _create_asset(db, task, store, user)
    except DuplicateSerialError:
        # A sibling row created the same serial first
        existing = await find_asset_by_serial(db, record.serial_number)
        if not existing:
            raise
        return await _add_peripherals(db, task, existing["asset_id"], store, user)


async def _process_row(
    db: aiosqlite.Connection,
    task: _RowTask,
    import_mode: str,
    store: AuditStore,
    user: UserContext,
) -> RowResult:
    """Row-task boundary: every exception becomes a RowError."""
    if task.record is None:
        return task.failure(task.normalize_error or "Row could not be read")
    try:
        return await _run_row(db, task, import_mode, store, user)
    except (AssetTrackError, ValueError) as e:
        logger.warning(f"Row {task.row} ({task.serial}) failed: {e}")
        return task.failure(str(e))
    except Exception as e:
        logger.exception(f"Row {task.row} ({task.serial}) failed unexpectedly")
        return task.failure(str(e) or type(e).__name__)


# ─── Batch ───────────────────────────────────────────────────────────


def _plan_rows(tasks: list[_RowTask], analysis: ModeAnalysis) -> dict[str, list]:
    """Copy each row's detected action onto its task and flag repeated serials."""
    records = [t.record or CanonicalAssetRecord() for t in tasks]
    groups = separate_rows_by_action(records, analysis)
    for action, members in groups.items():
        for index, _ in members:
            tasks[index].planned_action = action
            tasks[index].asset_id = analysis.details[index].asset_id

    seen: set[str] = set()
    for task in tasks:
        if task.serial is None:
            continue
        task.repeats_serial = task.serial in seen
        seen.add(task.serial)
    return groups


def _chunks(tasks: list[_RowTask], size: int):
    """
    Yield chunks of at most `size` tasks, input order kept.

    A chunk never holds two rows with the same serial: a later row is held
    back until the chunk with the earlier one has finished.
    """
    pending = tasks
    while pending:
        chunk: list[_RowTask] = []
        held: list[_RowTask] = []
        serials: set[str] = set()
        for task in pending:
            if len(chunk) >= size or (task.serial is not None and task.serial in serials):
                held.append(task)
                continue
            chunk.append(task)
            if task.serial is not None:
                serials.add(task.serial)
        yield chunk
        pending = held


def _summarize(
    results: list[RowResult],
    mode: str,
    analysis: ModeAnalysis,
    total: int,
) -> ImportSummary:
    cap = settings.import_error_cap
    outcomes = [r for r in results if isinstance(r, RowOutcome)]
    failures = [r for r in results if isinstance(r, RowError)]

    created = sum(1 for r in outcomes if r.action == "created")
    augmented = [r for r in outcomes if r.action == "augmented"]
    skipped = sum(1 for r in outcomes if r.action == "skipped")
    imported = created + len(augmented)
    duplicates = sum(r.duplicates for r in results)

    errors = [ImportRowError(row=r.row, serial_number=r.serial_number, error=r.error) for r in failures]
    warnings = [
        ImportWarning(row=r.row, serial_number=r.serial_number, message=msg) for r in results for msg in r.warnings
    ]

    message = f"Import completed: {imported} imported, {len(failures)} failed, {skipped} skipped"
    if duplicates:
        message += f", {duplicates} duplicate peripheral(s) ignored"

    return ImportSummary(
        success=imported > 0 or not failures,
        message=message,
        imported=imported,
        failed=len(failures),
        skipped=skipped,
        assets_created=created,
        peripherals_added=sum(r.peripherals_added for r in augmented),
        duplicates=duplicates,
        errors=errors[:cap],
        warnings=warnings[:cap],
        mode=mode,
        mode_analysis=analysis,
        total=total,
    )


async def bulk_import(
    rows: list[Any],
    import_mode: str = "auto",
    user: UserContext | None = None,
    db: aiosqlite.Connection | None = None,
    audit_store: AuditStore | None = None,
) -> ImportSummary:
    """
    Import a batch of raw asset rows.

    Raises EmptyBatchError for an empty batch; every other problem is reported
    per row in the returned summary.
    """
    if not rows:
        raise EmptyBatchError("No assets provided for import")
    if import_mode not in IMPORT_MODES:
        raise ValueError(f"Unknown import mode: {import_mode}")

    db = db or await get_db()
    store = audit_store or SqliteAuditStore(db)
    user = user or SYSTEM_USER

    tasks: list[_RowTask] = []
    for index, raw in enumerate(rows):
        try:
            tasks.append(_RowTask(index + 1, normalize_row(raw)))
        except AssetTrackError as e:
            tasks.append(_RowTask(index + 1, None, str(e)))

    # Unreadable rows take an empty record so the detail list stays parallel to the input
    analysis = await detect_import_mode(db, [t.record or CanonicalAssetRecord() for t in tasks])
    mode = analysis.mode if import_mode == "auto" else import_mode
    groups = _plan_rows(tasks, analysis)
    logger.info(f"Bulk import started: {len(rows)} rows, requested={import_mode}, mode={mode}, user={user.username}")
    logger.info(
        f"Planned: {len(groups['create_asset'])} create, {len(groups['add_peripheral'])} add, "
        f"{len(groups['skip'])} skip, {len(groups['invalid'])} invalid"
    )

    results: list[RowResult] = []
    for chunk in _chunks(tasks, max(1, settings.import_chunk_size)):
        results.extend(
            await asyncio.gather(*(_process_row(db, task, import_mode, store, user) for task in chunk))
        )
    results.sort(key=lambda r: r.row)

    summary = _summarize(results, mode, analysis, len(rows))
    logger.info(summary.message)
    return summary
