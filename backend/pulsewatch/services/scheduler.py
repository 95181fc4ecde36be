"""Scheduler service - runs each monitor class on its own fixed cadence.

Cadences (defaults, see config):
- uptime (http/https/ping): every 5 minutes
- ssl (https URLs): every 60 minutes
- browser (browser check enabled): every 15 minutes, one browser at a time,
  300s deadline per run
- incident sweep: every 60 minutes

Within a run every monitor is an independent task. A slow monitor only
holds its own semaphore slot, a crashing one is logged and counted, and
a run past its deadline cancels what is left. Cancelled monitors are
picked up on the next tick; there is no catch-up queue.
"""
import asyncio
import logging
import time
from contextlib import contextmanager
from dataclasses import dataclass
from typing import Dict, Iterator, Optional, Set, Tuple

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.interval import IntervalTrigger

from ..config import settings
from ..models import Monitor
from .evaluator import MonitorEvaluator, UPTIME_TYPES, monitor_evaluator
from .incidents import IncidentManager, incident_manager
from .outcome import CheckKind, CheckOutcome
from .store import MonitorFilter, ResultStore, result_store

logger = logging.getLogger(__name__)


class MonitorBusyError(Exception):
    """A check for this monitor is already in flight."""


class MonitorNotFoundError(Exception):
    """No monitor with this id."""


@dataclass
class ClassPolicy:
    """How one monitor class is selected and run."""
    monitor_filter: MonitorFilter
    interval_minutes: int
    concurrency: int
    deadline_seconds: Optional[float] = None


@dataclass
class RunSummary:
    """Counts for one scheduled run."""
    kind: str
    total: int = 0
    checked: int = 0
    up: int = 0
    down: int = 0
    skipped: int = 0
    busy: int = 0
    failed: int = 0
    not_reached: int = 0
    duration_ms: int = 0


def default_policies() -> Dict[CheckKind, ClassPolicy]:
    return {
        CheckKind.UPTIME: ClassPolicy(
            monitor_filter=MonitorFilter(types=UPTIME_TYPES),
            interval_minutes=settings.uptime_interval_minutes,
            concurrency=settings.uptime_concurrency,
            deadline_seconds=settings.uptime_run_deadline_seconds,
        ),
        CheckKind.SSL: ClassPolicy(
            monitor_filter=MonitorFilter(https_only=True),
            interval_minutes=settings.ssl_interval_minutes,
            concurrency=settings.ssl_concurrency,
            deadline_seconds=settings.ssl_run_deadline_seconds,
        ),
        CheckKind.BROWSER: ClassPolicy(
            monitor_filter=MonitorFilter(browser_check_enabled=True),
            interval_minutes=settings.browser_interval_minutes,
            concurrency=settings.browser_concurrency,
            deadline_seconds=settings.browser_run_deadline_seconds,
        ),
    }


def lock_group(check_kind: CheckKind) -> str:
    """Kinds that write the same monitor fields must not overlap.

    Uptime and browser checks both drive current_status and incidents;
    SSL checks only touch the SSL fields.
    """
    return "ssl" if check_kind == CheckKind.SSL else "status"


class SchedulerService:
    """Schedules runs and serializes work per monitor."""

    def __init__(
        self,
        store: Optional[ResultStore] = None,
        evaluator: Optional[MonitorEvaluator] = None,
        incidents: Optional[IncidentManager] = None,
        policies: Optional[Dict[CheckKind, ClassPolicy]] = None,
    ):
        self.store = store or result_store
        self.evaluator = evaluator or monitor_evaluator
        self.incidents = incidents or incident_manager
        self.policies = policies or default_policies()
        self.scheduler: Optional[AsyncIOScheduler] = None
        self._running = False
        self._in_flight: Set[Tuple[str, str]] = set()

    def start(self):
        """Start the scheduler."""
        if self._running:
            return

        self.scheduler = AsyncIOScheduler()

        for kind, policy in self.policies.items():
            self.scheduler.add_job(
                self._run_job,
                trigger=IntervalTrigger(minutes=policy.interval_minutes),
                args=[kind],
                id=f"run_{kind.value}_checks",
                replace_existing=True,
                max_instances=1,
                coalesce=True,
                misfire_grace_time=60,
            )

        self.scheduler.add_job(
            self._run_sweep_job,
            trigger=IntervalTrigger(minutes=settings.reconcile_interval_minutes),
            id="reconcile_incidents",
            replace_existing=True,
            max_instances=1,
            coalesce=True,
        )

        self.scheduler.start()
        self._running = True
        logger.info(
            "Scheduler started ("
            + ", ".join(f"{k.value}={p.interval_minutes}m/x{p.concurrency}" for k, p in self.policies.items())
            + f", sweep={settings.reconcile_interval_minutes}m)"
        )

    def stop(self):
        """Stop the scheduler."""
        if self.scheduler and self._running:
            self.scheduler.shutdown(wait=False)
            self._running = False
            logger.info("Scheduler stopped")

    def is_in_flight(self, monitor_id: str, check_kind: CheckKind) -> bool:
        return (monitor_id, lock_group(check_kind)) in self._in_flight

    async def _run_job(self, kind: CheckKind):
        try:
            await self.run_class(kind)
        except Exception as e:
            logger.error(f"Error running {kind.value} checks: {e}")

    async def _run_sweep_job(self):
        try:
            await self.run_sweep()
        except Exception as e:
            logger.error(f"Error running incident sweep: {e}")

    async def run_class(self, kind: CheckKind) -> RunSummary:
        """Evaluate every monitor of one class, concurrently and bounded."""
        policy = self.policies[kind]
        start = time.monotonic()
        summary = RunSummary(kind=kind.value)

        monitors = await self.store.list_monitors(policy.monitor_filter)
        summary.total = len(monitors)
        if not monitors:
            return summary

        semaphore = asyncio.Semaphore(max(1, policy.concurrency))
        tasks = [
            asyncio.create_task(self._check_with_limit(monitor.id, kind, semaphore))
            for monitor in monitors
        ]
        done, pending = await asyncio.wait(tasks, timeout=policy.deadline_seconds)

        if pending:
            for task in pending:
                task.cancel()
            await asyncio.gather(*pending, return_exceptions=True)
            summary.not_reached = len(pending)
            logger.warning(
                f"{kind.value} run hit its {policy.deadline_seconds}s deadline, "
                f"{len(pending)} of {len(monitors)} monitors not reached"
            )

        for task in done:
            status = task.result()
            if status in ("up", "down"):
                summary.checked += 1
            if status == "up":
                summary.up += 1
            elif status == "down":
                summary.down += 1
            elif status == "skipped":
                summary.skipped += 1
            elif status == "busy":
                summary.busy += 1
            else:
                summary.failed += 1

        summary.duration_ms = int((time.monotonic() - start) * 1000)
        logger.info(
            f"{kind.value} run complete: {summary.checked}/{summary.total} checked, "
            f"{summary.up} up, {summary.down} down, {summary.skipped} skipped, "
            f"{summary.busy} busy, {summary.failed} failed in {summary.duration_ms}ms"
        )
        return summary

    async def _check_with_limit(self, monitor_id: str, kind: CheckKind, semaphore: asyncio.Semaphore) -> str:
        """One monitor's unit of work. Never raises except on cancellation."""
        key = (monitor_id, lock_group(kind))
        if key in self._in_flight:
            logger.warning(f"Monitor {monitor_id} still in flight, skipping this {kind.value} tick")
            return "busy"

        self._in_flight.add(key)
        try:
            async with semaphore:
                # Re-read so this run sees what the previous run persisted
                monitor = await self.store.get_monitor(monitor_id)
                if monitor is None:
                    return "skipped"
                outcome = await self.evaluator.run_check(monitor, kind)
            return outcome.status
        except Exception:
            logger.exception(f"Error checking monitor {monitor_id} ({kind.value})")
            return "failed"
        finally:
            self._in_flight.discard(key)

    async def run_monitor(self, monitor_id: str, kind: Optional[CheckKind] = None) -> CheckOutcome:
        """Check one monitor now, outside the cadence.

        Raises:
            MonitorNotFoundError: Unknown monitor id
            MonitorBusyError: A check of the same group is already running
        """
        monitor = await self.store.get_monitor(monitor_id)
        if monitor is None:
            raise MonitorNotFoundError(monitor_id)

        kind = kind or self.default_kind(monitor)
        key = (monitor_id, lock_group(kind))
        if key in self._in_flight:
            raise MonitorBusyError(monitor_id)

        self._in_flight.add(key)
        try:
            logger.info(f"Manual {kind.value} check for monitor {monitor_id}")
            return await self.evaluator.run_check(monitor, kind)
        finally:
            self._in_flight.discard(key)

    @staticmethod
    def default_kind(monitor: Monitor) -> CheckKind:
        if monitor.type == "browser":
            return CheckKind.BROWSER
        if monitor.type == "ssl":
            return CheckKind.SSL
        return CheckKind.UPTIME

    @contextmanager
    def _claim(self, monitor_id: str, check_kind: CheckKind) -> Iterator[bool]:
        """Mark a monitor in flight for one lock group; yields False if it already is."""
        key = (monitor_id, lock_group(check_kind))
        if key in self._in_flight:
            yield False
            return
        self._in_flight.add(key)
        try:
            yield True
        finally:
            self._in_flight.discard(key)

    async def run_sweep(self) -> int:
        """Reconcile incidents against stored status. Returns changes made."""
        events = await self.incidents.sweep(claim=lambda monitor_id: self._claim(monitor_id, CheckKind.UPTIME))
        return len(events)


# Global instance
scheduler_service = SchedulerService()
