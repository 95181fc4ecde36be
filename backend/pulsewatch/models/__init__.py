"""Database models."""
from .monitor import Monitor
from .check_result import CheckResult, BrowserCheckResult
from .incident import Incident
from .ssl_alert import SSLAlert

__all__ = ["Monitor", "CheckResult", "BrowserCheckResult", "Incident", "SSLAlert"]
