"""Check outcome shared by the evaluator, incident manager and scheduler."""
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Dict, Optional

from .checker import ErrorKind, ProbeResult


class CheckKind(str, Enum):
    """Monitor classes, each with its own probe and cadence."""
    UPTIME = "uptime"
    SSL = "ssl"
    BROWSER = "browser"


@dataclass
class CheckOutcome:
    """Verdict of evaluating one monitor once.

    The status write and the incident reconciliation both consume this
    same object, so they cannot disagree about what was observed.
    """
    monitor_id: str
    owner_id: str
    monitor_name: str
    url: Optional[str]
    check_kind: CheckKind
    is_up: bool
    prior_status: str
    checked_at: datetime
    probe: Optional[ProbeResult] = None
    consecutive_failures: int = 0
    skipped: bool = False
    skip_reason: Optional[ErrorKind] = None
    monitor_updates: Dict[str, Any] = field(default_factory=dict)

    @property
    def status(self) -> str:
        if self.skipped:
            return "skipped"
        return "up" if self.is_up else "down"

    @property
    def error_message(self) -> str:
        return self.probe.error_message if self.probe else ""
