"""Schemas for manual checks and ad-hoc probes."""
from datetime import datetime
from typing import Optional

from pydantic import BaseModel, Field


class ManualCheckRequest(BaseModel):
    """Request to check one monitor now."""
    monitor_id: Optional[str] = None
    kind: Optional[str] = Field(None, pattern="^(uptime|ssl|browser)$")


class ManualCheckResponse(BaseModel):
    """Outcome of a manual check."""
    success: bool
    monitor_id: str
    kind: str
    status: str  # up, down, skipped
    response_time_ms: Optional[int] = None
    http_status_code: Optional[int] = None
    error_kind: Optional[str] = None
    message: str = ""
    consecutive_failures: int = 0
    timestamp: datetime


class ProbeTestRequest(BaseModel):
    """Ad-hoc HTTP probe of a URL, nothing is stored."""
    url: Optional[str] = None
    timeout_ms: Optional[int] = Field(None, ge=100, le=60000)


class ProbeTestResponse(BaseModel):
    """Result of an ad-hoc probe."""
    status: bool
    response_time_ms: Optional[int] = None
    status_code: Optional[int] = None
    error_kind: Optional[str] = None
    message: str = ""
