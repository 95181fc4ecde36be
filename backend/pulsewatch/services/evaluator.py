"""Monitor evaluator - runs one probe for a monitor and derives its new status.

A full check is one logical transaction in two ordered steps:

1. the monitor's status fields and the check history are written,
2. incidents are reconciled against the same outcome.

Step 2 only starts once step 1 is durable. If the process dies in between,
the incident sweep repairs the incident state from the stored status.
"""
import asyncio
import logging
from datetime import datetime
from typing import Any, Dict, Optional

from ..models import Monitor, CheckResult, BrowserCheckResult
from ..utils.clock import utcnow
from .browser import BrowserProbe, browser_probe
from .checker import CheckerService, ErrorKind, ProbeResult, checker_service
from .incidents import IncidentManager, incident_manager
from .outcome import CheckKind, CheckOutcome
from .store import ResultStore, result_store

logger = logging.getLogger(__name__)

UPTIME_TYPES = ("http", "https", "ping")


def skip_reason(monitor: Monitor, check_kind: CheckKind) -> Optional[ErrorKind]:
    """Why a monitor cannot be checked for this kind, or None."""
    if not monitor.is_active:
        return ErrorKind.SKIPPED_INACTIVE
    if not monitor.url:
        return ErrorKind.SKIPPED_INVALID_CONFIG
    if check_kind == CheckKind.UPTIME and monitor.type not in UPTIME_TYPES:
        return ErrorKind.SKIPPED_INVALID_CONFIG
    if check_kind == CheckKind.BROWSER and not monitor.browser_check_enabled:
        return ErrorKind.SKIPPED_INVALID_CONFIG
    if check_kind == CheckKind.SSL and not monitor.url.startswith("https://"):
        return ErrorKind.SKIPPED_INVALID_CONFIG
    return None


def status_updates(monitor: Monitor, is_up: bool, now: datetime) -> Dict[str, Any]:
    """Status fields after one observation.

    ``consecutive_failures`` resets on success and is the only input to
    the down classification. ``last_up``/``last_down`` move only on their
    own side.
    """
    updates = {
        "current_status": "up" if is_up else "down",
        "consecutive_failures": 0 if is_up else (monitor.consecutive_failures or 0) + 1,
        "last_checked_at": now,
    }
    if is_up:
        updates["last_up"] = now
    else:
        updates["last_down"] = now
    return updates


class MonitorEvaluator:
    """Evaluates monitors and persists the outcome."""

    def __init__(
        self,
        store: Optional[ResultStore] = None,
        checker: Optional[CheckerService] = None,
        browser: Optional[BrowserProbe] = None,
        incidents: Optional[IncidentManager] = None,
    ):
        self.store = store or result_store
        self.checker = checker or checker_service
        self.browser = browser or browser_probe
        self.incidents = incidents or incident_manager

    async def evaluate(self, monitor: Monitor, check_kind: CheckKind) -> CheckOutcome:
        """Probe a monitor and compute its new status without writing anything."""
        now = utcnow()
        outcome = CheckOutcome(
            monitor_id=monitor.id,
            owner_id=monitor.owner_id,
            monitor_name=monitor.display_name,
            url=monitor.url,
            check_kind=check_kind,
            is_up=False,
            prior_status=monitor.current_status or "unknown",
            checked_at=now,
            consecutive_failures=monitor.consecutive_failures or 0,
        )

        reason = skip_reason(monitor, check_kind)
        if reason:
            outcome.skipped = True
            outcome.skip_reason = reason
            logger.debug(f"Skipping {check_kind.value} check for {monitor.display_name}: {reason.value}")
            return outcome

        probe = await self._run_probe(monitor, check_kind)
        outcome.probe = probe
        outcome.is_up = probe.success
        # Stamp completion, not start
        outcome.checked_at = utcnow()

        if check_kind == CheckKind.SSL:
            return outcome

        updates = status_updates(monitor, probe.success, outcome.checked_at)
        if check_kind == CheckKind.UPTIME:
            updates["last_response_time_ms"] = probe.response_time_ms
            updates["last_http_status"] = probe.http_status_code
        else:
            updates["last_browser_check_at"] = outcome.checked_at
        outcome.monitor_updates = updates
        outcome.consecutive_failures = updates["consecutive_failures"]
        return outcome

    async def _run_probe(self, monitor: Monitor, check_kind: CheckKind) -> ProbeResult:
        if check_kind == CheckKind.SSL:
            return await self.checker.probe_ssl(monitor.url)
        if check_kind == CheckKind.BROWSER:
            return await self.browser.probe(monitor.url, wait_for_selector=monitor.browser_wait_for_selector)
        return await self.checker.probe_http(monitor.url, ping=monitor.type == "ping")

    async def run_check(self, monitor: Monitor, check_kind: CheckKind) -> CheckOutcome:
        """Evaluate, persist the status and history, then reconcile incidents."""
        outcome = await self.evaluate(monitor, check_kind)
        if outcome.skipped:
            return outcome

        if check_kind == CheckKind.SSL:
            await self._persist_ssl(monitor, outcome)
        else:
            await self._persist_status(outcome)
            await self.incidents.reconcile(outcome)

        probe = outcome.probe
        logger.debug(
            f"Checked {check_kind.value} {monitor.url}: {outcome.status.upper()}, "
            f"responseTime={probe.response_time_ms}ms, httpStatus={probe.http_status_code}"
        )
        return outcome

    async def _persist_status(self, outcome: CheckOutcome):
        probe = outcome.probe
        writes = [
            self.store.update_monitor(outcome.monitor_id, outcome.monitor_updates),
            self.store.append_check_result(CheckResult(
                monitor_id=outcome.monitor_id,
                owner_id=outcome.owner_id,
                check_kind=outcome.check_kind.value,
                status=outcome.is_up,
                response_time_ms=probe.response_time_ms,
                http_status_code=probe.http_status_code,
                error_kind=probe.error_kind.value if probe.error_kind else None,
                error_message=probe.error_message or "",
                created_at=outcome.checked_at,
            )),
        ]
        if outcome.check_kind == CheckKind.BROWSER and probe.browser is not None:
            metrics = probe.browser
            writes.append(self.store.append_browser_check(BrowserCheckResult(
                monitor_id=outcome.monitor_id,
                owner_id=outcome.owner_id,
                status=outcome.is_up,
                load_time_ms=metrics.load_time_ms,
                dom_ready_ms=metrics.dom_ready_ms,
                found_selector=metrics.found_selector,
                console_errors=list(metrics.console_errors),
                error_message=probe.error_message or "",
                created_at=outcome.checked_at,
            )))
        # Independent writes for the same monitor, none reads another's row.
        # All of them settle before an error surfaces and the monitor is released.
        results = await asyncio.gather(*writes, return_exceptions=True)
        for result in results:
            if isinstance(result, BaseException):
                raise result

    async def _persist_ssl(self, monitor: Monitor, outcome: CheckOutcome):
        snapshot = outcome.probe.ssl
        if snapshot is None:
            logger.warning(f"SSL check failed for {monitor.url}: {outcome.error_message}")
            await self.store.mark_ssl_invalid(monitor.id, outcome.checked_at)
            return
        await self.store.append_ssl_snapshot(monitor, snapshot, outcome.checked_at)
        logger.debug(f"Checked SSL for {monitor.url}: {snapshot.state.value}, {snapshot.days_until_expiry} days left")


# Global instance
monitor_evaluator = MonitorEvaluator()
