"""
Audit history API endpoints.
"""

from fastapi import APIRouter, Query

from assettrack.db import get_db, get_history_log_count, get_history_logs

router = APIRouter(prefix="/history", tags=["history"])


@router.get("/logs")
async def history_logs(
    page: int = Query(1, ge=1),
    limit: int = Query(100, ge=1, le=500),
):
    """Audit log entries, newest first, with their field changes."""
    db = await get_db()
    logs = await get_history_logs(db, page, limit)
    total = await get_history_log_count(db)
    return {
        "logs": logs,
        "count": len(logs),
        "total": total,
        "page": page,
        "pages": (total + limit - 1) // limit,
    }
