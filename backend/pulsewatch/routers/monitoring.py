"""Manual check and ad-hoc probe endpoints."""
import logging

from fastapi import APIRouter, HTTPException

from ..schemas.monitoring import (
    ManualCheckRequest,
    ManualCheckResponse,
    ProbeTestRequest,
    ProbeTestResponse,
)
from ..services.checker import checker_service
from ..services.outcome import CheckKind
from ..services.scheduler import scheduler_service, MonitorBusyError, MonitorNotFoundError

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/monitoring", tags=["monitoring"])


@router.post("/check", response_model=ManualCheckResponse)
async def trigger_check(request: ManualCheckRequest):
    """Check one monitor now through the same path as scheduled runs."""
    if not request.monitor_id:
        raise HTTPException(status_code=400, detail="Monitor ID is required")

    kind = CheckKind(request.kind) if request.kind else None
    try:
        outcome = await scheduler_service.run_monitor(request.monitor_id, kind)
    except MonitorNotFoundError:
        raise HTTPException(status_code=404, detail="Monitor not found")
    except MonitorBusyError:
        raise HTTPException(status_code=409, detail="A check for this monitor is already running")

    probe = outcome.probe
    if outcome.skipped:
        message = outcome.skip_reason.value
    else:
        message = probe.error_message

    return ManualCheckResponse(
        success=not outcome.skipped,
        monitor_id=outcome.monitor_id,
        kind=outcome.check_kind.value,
        status=outcome.status,
        response_time_ms=probe.response_time_ms if probe else None,
        http_status_code=probe.http_status_code if probe else None,
        error_kind=(probe.error_kind.value if probe and probe.error_kind else None),
        message=message,
        consecutive_failures=outcome.consecutive_failures,
        timestamp=outcome.checked_at,
    )


@router.post("/test", response_model=ProbeTestResponse)
async def test_url(request: ProbeTestRequest):
    """Probe a URL once without storing anything."""
    if not request.url:
        raise HTTPException(status_code=400, detail="URL is required")

    timeout = request.timeout_ms / 1000 if request.timeout_ms else None
    result = await checker_service.probe_http(request.url, timeout=timeout)

    return ProbeTestResponse(
        status=result.success,
        response_time_ms=result.response_time_ms,
        status_code=result.http_status_code,
        error_kind=result.error_kind.value if result.error_kind else None,
        message=result.error_message,
    )
