"""
Import row normalization.

Spreadsheet exports arrive with inconsistent headers ("Serial Number",
"serialNumber", "serial") and with peripherals either nested as a list or
flattened into comma-joined columns. Everything downstream only ever sees
the CanonicalAssetRecord produced here.
"""

import re
from collections.abc import Mapping
from typing import Any

from assettrack.config import settings
from assettrack.errors import RowNormalizationError
from assettrack.schemas.imports import CanonicalAssetRecord, PeripheralSpec

# Tokens that mean "no value" in peripheral and software columns
EMPTY_TOKENS = {"n/a", "none"}

# canonical field -> accepted spellings (after key normalization)
FIELD_ALIASES: dict[str, tuple[str, ...]] = {
    "serial_number": ("serial_number", "serialnumber", "serial", "serial_no", "asset_serial_number"),
    "tag_id": ("tag_id", "tagid", "tag", "asset_tag_id", "asset_tag"),
    "item_name": ("item_name", "itemname", "item", "asset_name"),
    "status": ("status", "asset_status"),
    "category": ("category", "category_name", "asset_category"),
    "model": ("model", "model_name", "asset_model"),
    "recipient_name": ("recipient_name", "recipientname", "recipient", "assigned_to"),
    "department_name": ("department_name", "departmentname", "department", "dept"),
    "position": ("position", "recipient_position", "job_title"),
    "software": ("software", "software_name"),
    "windows": ("windows", "windows_version", "os"),
    "microsoft_office": ("microsoft_office", "microsoftoffice", "ms_office", "office"),
    "monthly_prices": ("monthly_prices", "monthly_price", "monthlyprices", "price"),
    "project_reference_num": (
        "project_reference_num",
        "projectreferencenum",
        "project_reference_number",
        "project_ref_number",
        "project_ref",
        "project_reference",
    ),
    "customer_name": ("customer_name", "customername", "customer"),
    "branch": ("branch", "customer_branch", "branch_name"),
    "peripherals": ("peripherals",),
    "peripheral_name": ("peripheral_name", "peripheralname", "peripheral", "peripheral_type"),
    "serial_code": ("serial_code", "serialcode", "serial_code_name", "peripheral_serial", "peripheral_serial_code"),
    "condition": ("condition", "peripheral_condition"),
    "remarks": ("remarks", "peripheral_remarks"),
}

_ALIAS_LOOKUP = {alias: field for field, aliases in FIELD_ALIASES.items() for alias in aliases}

# Keys inside a nested peripheral object, where a bare "serial" means the peripheral's own serial
PERIPHERAL_ALIASES: dict[str, tuple[str, ...]] = {
    "peripheral_name": ("peripheral_name", "peripheralname", "peripheral", "peripheral_type", "name", "type"),
    "serial_code": (
        "serial_code",
        "serialcode",
        "serial_code_name",
        "serial",
        "serial_number",
        "serialnumber",
        "serial_no",
        "peripheral_serial",
        "peripheral_serial_code",
    ),
    "condition": ("condition", "peripheral_condition"),
    "remarks": ("remarks", "peripheral_remarks", "notes"),
}

_PERIPHERAL_LOOKUP = {alias: field for field, aliases in PERIPHERAL_ALIASES.items() for alias in aliases}

_KEY_SEPARATORS = re.compile(r"[\s\-]+")


def normalize_key(key: Any) -> str:
    """'Serial Number' / 'serial-number' / 'Serial_Number' -> 'serial_number'."""
    return _KEY_SEPARATORS.sub("_", str(key).strip()).lower()


def canonicalize_keys(raw: Mapping, lookup: dict[str, str] | None = None) -> dict[str, Any]:
    """Map aliased keys onto canonical field names. First non-empty value wins."""
    lookup = _ALIAS_LOOKUP if lookup is None else lookup
    out: dict[str, Any] = {}
    for key, value in raw.items():
        field = lookup.get(normalize_key(key))
        if field is None:
            continue
        if field in out and not _is_blank(out[field]):
            continue
        out[field] = value
    return out


def _is_blank(value: Any) -> bool:
    if value is None:
        return True
    if isinstance(value, str):
        return value.strip() == ""
    return False


def _text(value: Any) -> str:
    """Stringify and strip a scalar; None becomes ''."""
    if value is None:
        return ""
    if isinstance(value, float) and value.is_integer():
        # Spreadsheet readers turn numeric serials into floats
        return str(int(value))
    return str(value).strip()


def _optional_text(value: Any) -> str | None:
    text = _text(value)
    return text or None


def _clean_token(token: Any) -> str | None:
    """Strip a peripheral token; n/a, none and empty become None."""
    text = _text(token)
    if not text or text.lower() in EMPTY_TOKENS:
        return None
    return text


def parse_price(value: Any) -> float | None:
    """
    Parse a monthly price cell.
    Handles "$1,234.50", "1234.5", 99 and blanks; unparseable text yields None.
    """
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        return float(value)
    cleaned = str(value).replace("$", "").replace(",", "").replace("€", "").replace("£", "").strip()
    if not cleaned:
        return None
    try:
        return float(cleaned)
    except ValueError:
        return None


def split_joined(value: Any) -> list[str | None]:
    """Split a comma-joined cell into cleaned tokens, keeping positions."""
    if value is None:
        return []
    if isinstance(value, (list, tuple)):
        return [_clean_token(v) for v in value]
    text = _text(value)
    if not text:
        return []
    return [_clean_token(part) for part in text.split(",")]


def split_flat_peripherals(
    names: Any,
    serials: Any = None,
    condition: Any = None,
    remarks: Any = None,
) -> list[PeripheralSpec]:
    """
    Build peripheral specs from flat comma-joined columns.

    Names and serial codes are aligned by index; the shorter list pads with
    None. Peripherals whose name is missing after cleaning are dropped.
    """
    name_tokens = split_joined(names)
    serial_tokens = split_joined(serials)
    count = max(len(name_tokens), len(serial_tokens))
    name_tokens += [None] * (count - len(name_tokens))
    serial_tokens += [None] * (count - len(serial_tokens))

    default_condition = settings.default_peripheral_condition
    condition_text = _text(condition)
    condition_tokens = [_clean_token(c) for c in condition_text.split(",")] if condition_text else []
    per_index_condition = len(condition_tokens) > 1 and len(condition_tokens) == count
    shared_condition = condition_text if condition_text and not per_index_condition else None

    specs: list[PeripheralSpec] = []
    for i in range(count):
        name = name_tokens[i]
        if not name:
            continue
        if per_index_condition:
            cond = condition_tokens[i] or default_condition
        else:
            cond = shared_condition or default_condition
        specs.append(
            PeripheralSpec(
                peripheral_name=name,
                serial_code=serial_tokens[i],
                condition=cond,
                remarks=_optional_text(remarks),
            )
        )
    return specs


def _nested_peripherals(items: list) -> list[PeripheralSpec]:
    specs: list[PeripheralSpec] = []
    for item in items:
        if not isinstance(item, Mapping):
            continue
        fields = canonicalize_keys(item, _PERIPHERAL_LOOKUP)
        name = _clean_token(fields.get("peripheral_name"))
        if not name:
            continue
        specs.append(
            PeripheralSpec(
                peripheral_name=name,
                serial_code=_clean_token(fields.get("serial_code")),
                condition=_optional_text(fields.get("condition")) or settings.default_peripheral_condition,
                remarks=_optional_text(fields.get("remarks")),
            )
        )
    return specs


def extract_peripherals(fields: Mapping) -> list[PeripheralSpec]:
    """Peripherals from canonicalized row fields; nested list takes precedence over flat columns."""
    nested = fields.get("peripherals")
    if isinstance(nested, (list, tuple)):
        return _nested_peripherals(list(nested))
    if isinstance(nested, str) and nested.strip():
        # "Mouse, Keyboard" given directly as the peripherals cell
        return split_flat_peripherals(nested, fields.get("serial_code"), fields.get("condition"), fields.get("remarks"))
    if not _is_blank(fields.get("peripheral_name")):
        return split_flat_peripherals(
            fields.get("peripheral_name"),
            fields.get("serial_code"),
            fields.get("condition"),
            fields.get("remarks"),
        )
    return []


def normalize_row(raw: Any) -> CanonicalAssetRecord:
    """Convert one raw import row into a CanonicalAssetRecord."""
    if not isinstance(raw, Mapping):
        raise RowNormalizationError(f"Row must be an object, got {type(raw).__name__}")

    fields = canonicalize_keys(raw)

    software = _optional_text(fields.get("software"))
    if software and software.lower() in EMPTY_TOKENS:
        software = None

    return CanonicalAssetRecord(
        serial_number=_text(fields.get("serial_number")),
        tag_id=_text(fields.get("tag_id")),
        item_name=_text(fields.get("item_name")),
        status=_text(fields.get("status")) or settings.default_asset_status,
        category=_optional_text(fields.get("category")),
        model=_optional_text(fields.get("model")),
        recipient_name=_optional_text(fields.get("recipient_name")),
        department_name=_optional_text(fields.get("department_name")),
        position=_optional_text(fields.get("position")),
        software=software,
        windows=_optional_text(fields.get("windows")),
        microsoft_office=_optional_text(fields.get("microsoft_office")),
        monthly_prices=parse_price(fields.get("monthly_prices")),
        peripherals=tuple(extract_peripherals(fields)),
        project_reference_num=_text(fields.get("project_reference_num")),
        customer_name=_text(fields.get("customer_name")),
        branch=_text(fields.get("branch")),
    )
