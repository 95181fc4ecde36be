"""Status, history and incident schemas."""
from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel


class CheckResultResponse(BaseModel):
    """One stored check result."""
    id: int
    monitor_id: str
    check_kind: str
    status: bool
    response_time_ms: Optional[int] = None
    http_status_code: Optional[int] = None
    error_kind: Optional[str] = None
    error_message: str = ""
    created_at: datetime

    class Config:
        from_attributes = True


class IncidentResponse(BaseModel):
    """An incident record."""
    id: str
    monitor_id: str
    owner_id: str
    title: str
    description: Optional[str] = None
    severity: str
    status: str  # open, resolved
    start_time: datetime
    resolved_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class MonitorSummary(BaseModel):
    """Summary of a monitor for an owner's overview."""
    id: str
    name: Optional[str] = None
    url: Optional[str] = None
    type: str
    is_active: bool
    status: str  # up, down, unknown
    consecutive_failures: int
    uptime_24h: Optional[float] = None  # Percentage, None without checks
    last_checked_at: Optional[datetime] = None
    ssl_status: Optional[str] = None
    ssl_days_until_expiry: Optional[int] = None


class StatusOverview(BaseModel):
    """Overview of one owner's monitors and incidents."""
    owner_id: str
    total_monitors: int
    monitors_up: int
    monitors_down: int
    monitors_unknown: int
    open_incidents: List[IncidentResponse]
    monitors: List[MonitorSummary]
