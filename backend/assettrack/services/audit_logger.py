"""
Field-level audit trail.

One history_log row per mutating call, carrying one history_log_changes row
per changed field. Logging is best-effort: log_change never raises, it
returns the new log id or None and reports failures through the logger.
"""

import logging
from abc import ABC, abstractmethod
from collections.abc import Iterable, Mapping
from dataclasses import dataclass
from typing import Any

import aiosqlite

from assettrack.config import settings

logger = logging.getLogger(__name__)

ACTION_TYPES = ("INSERT", "UPDATE", "DELETE")


@dataclass(frozen=True)
class UserContext:
    """Who performed a mutation."""

    user_id: int
    username: str


SYSTEM_USER = UserContext(settings.system_user_id, settings.system_username)


@dataclass(frozen=True)
class FieldChange:
    field_name: str
    old_value: str
    new_value: str


@dataclass(frozen=True)
class ChangeLogEntry:
    user_id: int
    username: str
    table_name: str
    record_id: int
    action_type: str
    action_desc: str


# ─── Change detection ────────────────────────────────────────────────


def _is_empty(value: Any) -> bool:
    return value is None or (isinstance(value, str) and value.strip() == "")


def _as_number(value: Any) -> float | None:
    if isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        return float(value)
    if isinstance(value, str):
        try:
            return float(value.strip())
        except ValueError:
            return None
    return None


def values_equal(old: Any, new: Any) -> bool:
    """
    Loose equality used for diffing.
    None, missing and "" are equal; 12 == "12.0"; everything else compares as strings.
    """
    if _is_empty(old) and _is_empty(new):
        return True
    if _is_empty(old) or _is_empty(new):
        return False
    old_num, new_num = _as_number(old), _as_number(new)
    if old_num is not None and new_num is not None:
        return old_num == new_num
    return str(old).strip() == str(new).strip()


def _stringify(value: Any) -> str:
    if value is None:
        return ""
    return str(value)


def detect_changes(
    old: Mapping[str, Any] | None,
    new: Mapping[str, Any] | None,
    fields: Iterable[str] | None = None,
) -> list[FieldChange]:
    """Diff two records. Without `fields`, every key present in `new` is tracked."""
    old = old or {}
    new = new or {}
    tracked = list(fields) if fields is not None else list(new.keys())

    changes: list[FieldChange] = []
    for field in tracked:
        before, after = old.get(field), new.get(field)
        if values_equal(before, after):
            continue
        changes.append(FieldChange(field, _stringify(before), _stringify(after)))
    return changes


# ─── Stores ──────────────────────────────────────────────────────────


class AuditStore(ABC):
    """Persistence for audit entries."""

    @abstractmethod
    async def create_log(self, entry: ChangeLogEntry) -> int:
        """Persist an entry and return its log id."""
        pass

    @abstractmethod
    async def create_changes(self, log_id: int, changes: list[FieldChange]) -> None:
        pass


class SqliteAuditStore(AuditStore):
    """Writes to history_log / history_log_changes on the given connection."""

    def __init__(self, db: aiosqlite.Connection):
        self.db = db

    async def create_log(self, entry: ChangeLogEntry) -> int:
        cursor = await self.db.execute(
            """INSERT INTO history_log
               (user_id, username, table_name, record_id, action_type, action_desc, timestamp)
               VALUES (?, ?, ?, ?, ?, ?, datetime('now'))""",
            (
                entry.user_id,
                entry.username,
                entry.table_name,
                entry.record_id,
                entry.action_type,
                entry.action_desc,
            ),
        )
        await self.db.commit()
        return cursor.lastrowid

    async def create_changes(self, log_id: int, changes: list[FieldChange]) -> None:
        await self.db.executemany(
            """INSERT INTO history_log_changes (log_id, field_name, old_value, new_value)
               VALUES (?, ?, ?, ?)""",
            [(log_id, c.field_name, c.old_value, c.new_value) for c in changes],
        )
        await self.db.commit()


# ─── Logging ─────────────────────────────────────────────────────────


async def log_change(
    store: AuditStore,
    user: UserContext | None,
    table_name: str,
    record_id: int | None,
    action_type: str,
    action_desc: str,
    changes: list[FieldChange] | None = None,
) -> int | None:
    """
    Record one audit entry with its field changes.

    Returns the log id, or None when the entry was skipped or could not be
    written. Never raises.
    """
    if not settings.audit_enabled:
        return None

    user = user or SYSTEM_USER
    changes = changes or []
    action = (action_type or "").upper()

    if user.user_id is None or not table_name or record_id is None or not action or not action_desc:
        logger.warning(
            f"Audit log skipped - missing required fields: user={user.user_id}, "
            f"table={table_name}, record={record_id}, action={action_type}"
        )
        return None
    if action not in ACTION_TYPES:
        logger.warning(f"Audit log skipped - unknown action type '{action_type}'")
        return None
    if action == "UPDATE" and not changes:
        logger.debug(f"No changes on {table_name} {record_id}, nothing to log")
        return None

    entry = ChangeLogEntry(
        user_id=user.user_id,
        username=user.username,
        table_name=table_name.upper(),
        record_id=record_id,
        action_type=action,
        action_desc=action_desc,
    )
    try:
        log_id = await store.create_log(entry)
        if changes:
            await store.create_changes(log_id, changes)
    except Exception as e:
        logger.error(f"Failed to create audit log for {entry.table_name} {record_id}: {e}")
        return None

    logger.debug(
        f"Audit log created: log_id={log_id}, user={user.username}, action={action}, "
        f"table={entry.table_name}, changes={len(changes)}"
    )
    return log_id


async def log_asset_change(
    store: AuditStore,
    user: UserContext | None,
    asset_id: int,
    action_type: str,
    action_desc: str,
    changes: list[FieldChange] | None = None,
) -> int | None:
    return await log_change(store, user, "ASSET", asset_id, action_type, action_desc, changes)
