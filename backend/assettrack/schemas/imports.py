"""
Pydantic schemas for bulk import requests, canonical records and summaries.
"""

from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field

ImportMode = Literal["auto", "new_assets", "add_peripherals"]
DetectedMode = Literal["new_assets", "add_peripherals", "mixed"]
RowAction = Literal["create_asset", "add_peripheral", "skip", "invalid"]


class PeripheralSpec(BaseModel):
    """One peripheral to attach to an asset."""

    model_config = ConfigDict(frozen=True)

    peripheral_name: str
    serial_code: str | None = None
    condition: str = "Good"
    remarks: str | None = None


class CanonicalAssetRecord(BaseModel):
    """Alias-free representation of one import row. Built once, never mutated."""

    model_config = ConfigDict(frozen=True)

    serial_number: str = ""
    tag_id: str = ""
    item_name: str = ""
    status: str = "Active"
    category: str | None = None
    model: str | None = None
    recipient_name: str | None = None
    department_name: str | None = None
    position: str | None = None
    software: str | None = None
    windows: str | None = None
    microsoft_office: str | None = None
    monthly_prices: float | None = None
    peripherals: tuple[PeripheralSpec, ...] = ()
    project_reference_num: str = ""
    customer_name: str = ""
    branch: str = ""

    @property
    def has_peripherals(self) -> bool:
        return len(self.peripherals) > 0


# ── Mode detection ──────────────────────────────────────────────────


class RowClassification(BaseModel):
    """Per-row result of import mode detection."""

    serial: str
    asset_id: int | None = Field(None, serialization_alias="assetId")
    exists: bool = False
    has_peripheral: bool = Field(False, serialization_alias="hasPeripheral")
    action: RowAction


class ModeAnalysis(BaseModel):
    """Batch-level import mode plus the per-row details, parallel to the input rows."""

    mode: DetectedMode = "mixed"
    existing_assets: int = Field(0, serialization_alias="existingAssets")
    new_assets: int = Field(0, serialization_alias="newAssets")
    assets_with_peripherals: int = Field(0, serialization_alias="assetsWithPeripherals")
    total_rows: int = Field(0, serialization_alias="totalRows")
    details: list[RowClassification] = Field(default_factory=list)


class ImportRecommendations(BaseModel):
    can_proceed: bool = True
    warnings: list[str] = Field(default_factory=list)
    suggestions: list[str] = Field(default_factory=list)
    required_actions: list[str] = Field(default_factory=list)


# ── Requests ────────────────────────────────────────────────────────


class BulkImportRequest(BaseModel):
    """Body of the bulk import and preview calls."""

    model_config = ConfigDict(populate_by_name=True)

    assets: list[dict[str, Any]]
    import_mode: ImportMode = Field("auto", alias="importMode")


# ── Summaries ───────────────────────────────────────────────────────


class ImportRowError(BaseModel):
    row: int
    serial_number: str | None = None
    error: str


class ImportWarning(BaseModel):
    row: int | None = None
    serial_number: str | None = None
    message: str


class ImportSummary(BaseModel):
    """Aggregated result of one bulk import call."""

    success: bool = False
    message: str = ""
    imported: int = 0
    failed: int = 0
    skipped: int = 0
    assets_created: int = Field(0, serialization_alias="assetsCreated")
    peripherals_added: int = Field(0, serialization_alias="peripheralsAdded")
    duplicates: int = 0
    errors: list[ImportRowError] = Field(default_factory=list)
    warnings: list[ImportWarning] = Field(default_factory=list)
    mode: DetectedMode
    mode_analysis: ModeAnalysis | None = Field(None, serialization_alias="modeAnalysis")
    total: int = 0


class ImportPreview(BaseModel):
    """Catalog values a batch would create, computed without writing anything."""

    total_rows: int = Field(0, serialization_alias="totalRows")
    new_categories: list[str] = Field(default_factory=list, serialization_alias="newCategories")
    new_models: list[str] = Field(default_factory=list, serialization_alias="newModels")
    new_software: list[str] = Field(default_factory=list, serialization_alias="newSoftware")
    new_windows: list[str] = Field(default_factory=list, serialization_alias="newWindows")
    new_office: list[str] = Field(default_factory=list, serialization_alias="newOffice")
    new_peripheral_types: list[str] = Field(default_factory=list, serialization_alias="newPeripheralTypes")
    invalid_rows: list[ImportRowError] = Field(default_factory=list, serialization_alias="invalidRows")
    mode_analysis: ModeAnalysis | None = Field(None, serialization_alias="modeAnalysis")

    @property
    def has_new_values(self) -> bool:
        return any(
            (
                self.new_categories,
                self.new_models,
                self.new_software,
                self.new_windows,
                self.new_office,
                self.new_peripheral_types,
            )
        )
