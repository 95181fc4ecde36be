"""Services for probing, evaluation, incidents, and scheduling."""
from .checker import CheckerService
from .browser import BrowserProbe
from .store import ResultStore
from .incidents import IncidentManager
from .evaluator import MonitorEvaluator
from .scheduler import SchedulerService

__all__ = [
    "CheckerService",
    "BrowserProbe",
    "ResultStore",
    "IncidentManager",
    "MonitorEvaluator",
    "SchedulerService",
]
