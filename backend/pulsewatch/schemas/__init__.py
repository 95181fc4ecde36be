"""Pydantic schemas for API request/response models."""
from .monitoring import (
    ManualCheckRequest,
    ManualCheckResponse,
    ProbeTestRequest,
    ProbeTestResponse,
)
from .status import (
    CheckResultResponse,
    IncidentResponse,
    MonitorSummary,
    StatusOverview,
)

__all__ = [
    "ManualCheckRequest",
    "ManualCheckResponse",
    "ProbeTestRequest",
    "ProbeTestResponse",
    "CheckResultResponse",
    "IncidentResponse",
    "MonitorSummary",
    "StatusOverview",
]
