"""
Bulk import API routes.

POST /assets/bulk-import runs the import and returns the batch summary;
POST /assets/validate-import previews the same payload without writing.
"""

import logging

from fastapi import APIRouter, Depends, HTTPException

from assettrack.api.deps import get_current_user
from assettrack.db import get_db
from assettrack.errors import EmptyBatchError
from assettrack.schemas.imports import BulkImportRequest
from assettrack.services.assets import list_orphaned_assets
from assettrack.services.audit_logger import UserContext
from assettrack.services.batch_writer import bulk_import
from assettrack.services.import_preview import preview_import
from assettrack.services.mode_detector import get_import_recommendations

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/assets", tags=["assets"])


@router.post("/bulk-import")
async def bulk_import_endpoint(
    req: BulkImportRequest,
    user: UserContext = Depends(get_current_user),
):
    """Import a batch of asset rows."""
    try:
        summary = await bulk_import(req.assets, import_mode=req.import_mode, user=user)
    except EmptyBatchError as e:
        raise HTTPException(status_code=400, detail=str(e))
    return summary.model_dump(by_alias=True)


@router.post("/validate-import")
async def validate_import_endpoint(req: BulkImportRequest):
    """Preview new catalog values, invalid rows and the detected import mode."""
    db = await get_db()
    try:
        preview = await preview_import(db, req.assets)
    except EmptyBatchError as e:
        raise HTTPException(status_code=400, detail=str(e))
    result = preview.model_dump(by_alias=True)
    result["hasNewValues"] = preview.has_new_values
    result["recommendations"] = get_import_recommendations(preview.mode_analysis).model_dump()
    return result


@router.get("/orphaned")
async def orphaned_assets():
    """Assets that are not linked to any project/customer."""
    db = await get_db()
    return await list_orphaned_assets(db)
