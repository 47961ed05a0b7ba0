"""
Exceptions raised by the import pipeline.

Per-row exceptions are caught at the row-task boundary and turned into
summary entries; only EmptyBatchError escapes a bulk import call.
"""


class AssetTrackError(Exception):
    """Base class for domain errors."""


class EmptyBatchError(AssetTrackError):
    """The import request carried no rows."""


class RowNormalizationError(AssetTrackError):
    """A raw row could not be read at all (e.g. not a mapping)."""


class RowValidationError(AssetTrackError):
    """A required field is missing or blank."""


class DuplicateSerialError(AssetTrackError):
    """An asset with the same serial number already exists."""

    def __init__(self, serial_number: str):
        self.serial_number = serial_number
        super().__init__(f"Asset with serial number '{serial_number}' already exists")


class AssetNotFoundError(AssetTrackError):
    """No asset carries the given serial number."""

    def __init__(self, serial_number: str):
        self.serial_number = serial_number
        super().__init__(f"Asset with serial number '{serial_number}' not found")


class CatalogConflictError(AssetTrackError):
    """Insert hit a uniqueness violation and the re-lookup found nothing."""


class LinkingError(AssetTrackError):
    """The asset could not be attached to a project/customer inventory link."""
