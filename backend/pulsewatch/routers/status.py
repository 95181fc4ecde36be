"""Status overview API per owner."""
from datetime import timedelta

from fastapi import APIRouter

from ..schemas.status import StatusOverview, MonitorSummary, IncidentResponse
from ..services.store import MonitorFilter, result_store
from ..utils.clock import utcnow

router = APIRouter(prefix="/api/status", tags=["status"])


@router.get("/{owner_id}", response_model=StatusOverview)
async def get_status_overview(owner_id: str):
    """Current status of every monitor an owner has, plus open incidents."""
    monitors = await result_store.list_monitors(MonitorFilter(active_only=False, owner_id=owner_id))
    open_incidents = await result_store.list_incidents(owner_id=owner_id, status="open")

    counts = {"up": 0, "down": 0, "unknown": 0}
    cutoff_24h = utcnow() - timedelta(hours=24)
    summaries = []

    for monitor in monitors:
        status = monitor.current_status if monitor.current_status in counts else "unknown"
        counts[status] += 1

        summaries.append(MonitorSummary(
            id=monitor.id,
            name=monitor.name,
            url=monitor.url,
            type=monitor.type,
            is_active=bool(monitor.is_active),
            status=status,
            consecutive_failures=monitor.consecutive_failures or 0,
            uptime_24h=await result_store.uptime_percent(monitor.id, cutoff_24h),
            last_checked_at=monitor.last_checked_at,
            ssl_status=monitor.ssl_status,
            ssl_days_until_expiry=monitor.ssl_days_until_expiry,
        ))

    return StatusOverview(
        owner_id=owner_id,
        total_monitors=len(monitors),
        monitors_up=counts["up"],
        monitors_down=counts["down"],
        monitors_unknown=counts["unknown"],
        open_incidents=[IncidentResponse.model_validate(i) for i in open_incidents],
        monitors=summaries,
    )
