"""Check history and incident endpoints for a monitor."""
from typing import List, Optional

from fastapi import APIRouter, HTTPException, Query

from ..schemas.status import CheckResultResponse, IncidentResponse
from ..services.store import result_store

router = APIRouter(prefix="/api/monitors", tags=["monitors"])


@router.get("/{monitor_id}/results", response_model=List[CheckResultResponse])
async def get_results(monitor_id: str, limit: int = Query(50, ge=1, le=500)):
    """Most recent check results, newest first."""
    if await result_store.get_monitor(monitor_id) is None:
        raise HTTPException(status_code=404, detail="Monitor not found")
    return await result_store.recent_check_results(monitor_id, limit)


@router.get("/{monitor_id}/incidents", response_model=List[IncidentResponse])
async def get_incidents(
    monitor_id: str,
    status: Optional[str] = Query(None, pattern="^(open|resolved)$"),
):
    """Incidents of a monitor, newest first."""
    if await result_store.get_monitor(monitor_id) is None:
        raise HTTPException(status_code=404, detail="Monitor not found")
    return await result_store.list_incidents(monitor_id=monitor_id, status=status)
