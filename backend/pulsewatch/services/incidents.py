"""Incident manager - opens and resolves incidents from check outcomes."""
import logging
from contextlib import nullcontext
from dataclasses import dataclass, field
from datetime import datetime
from typing import Callable, ContextManager, List, Optional

from ..models import Monitor, Incident
from ..utils.clock import utcnow
from .outcome import CheckKind, CheckOutcome
from .store import MonitorFilter, ResultStore, result_store

logger = logging.getLogger(__name__)


@dataclass
class IncidentEvent:
    """What a reconciliation changed."""
    action: str  # opened, resolved
    monitor_id: str
    incident_ids: List[str] = field(default_factory=list)


def incident_title(monitor_name: str, check_kind: CheckKind) -> str:
    if check_kind == CheckKind.BROWSER:
        return f"Browser Check Failed: {monitor_name}"
    return f"Monitor Down: {monitor_name}"


class IncidentManager:
    """Keeps at most one open incident per monitor.

    A down outcome opens an incident only if none is open; an up outcome
    resolves every open incident of the monitor. Both directions are
    idempotent, so replaying an outcome is always safe.
    """

    def __init__(self, store: Optional[ResultStore] = None):
        self.store = store or result_store

    async def reconcile(self, outcome: CheckOutcome) -> Optional[IncidentEvent]:
        """Apply one outcome to the monitor's incidents."""
        if outcome.skipped or outcome.check_kind == CheckKind.SSL:
            return None

        if not outcome.is_up:
            description = (
                f"Monitor is DOWN. Last checked at {outcome.checked_at.isoformat()}Z."
            )
            if outcome.error_message:
                description += f" Error: {outcome.error_message}"
            return await self._open(
                monitor_id=outcome.monitor_id,
                owner_id=outcome.owner_id,
                title=incident_title(outcome.monitor_name, outcome.check_kind),
                description=description,
                now=outcome.checked_at,
            )

        return await self._resolve_all(outcome.monitor_id, outcome.checked_at)

    async def sweep_monitor(self, monitor: Monitor) -> Optional[IncidentEvent]:
        """Bring incidents in line with the monitor's stored status.

        Repairs the window where a status write landed but the incident
        write did not. Unknown status is left alone. The title follows the
        kind of the latest check, which is the one that set the status.
        """
        now = utcnow()
        if monitor.current_status == "up":
            return await self._resolve_all(monitor.id, now)
        if monitor.current_status == "down":
            latest = await self.store.recent_check_results(monitor.id, limit=1)
            check_kind = CheckKind(latest[0].check_kind) if latest else CheckKind.UPTIME
            last_down = monitor.last_down or now
            return await self._open(
                monitor_id=monitor.id,
                owner_id=monitor.owner_id,
                title=incident_title(monitor.display_name, check_kind),
                description=(
                    f"Monitor is DOWN. Last checked at {last_down.isoformat()}Z. "
                    "Opened by reconciliation sweep."
                ),
                now=now,
            )
        return None

    async def sweep(self, claim: Optional[Callable[[str], ContextManager[bool]]] = None) -> List[IncidentEvent]:
        """Run sweep_monitor over every active monitor with a known status.

        ``claim(monitor_id)`` guards each monitor against a check running at
        the same time; monitors it refuses are left for the next sweep.
        Each monitor is re-read under the claim and failures stay per monitor.
        """
        monitors = await self.store.list_monitors(MonitorFilter(statuses=["up", "down"]))
        events = []
        for monitor in monitors:
            with (claim(monitor.id) if claim else nullcontext(True)) as claimed:
                if not claimed:
                    continue
                try:
                    current = await self.store.get_monitor(monitor.id)
                    event = await self.sweep_monitor(current) if current is not None else None
                except Exception:
                    logger.exception(f"Error reconciling incidents for monitor {monitor.id}")
                    continue
            if event:
                events.append(event)
                logger.warning(f"Sweep {event.action} incident(s) for monitor {monitor.id}")
        logger.info(f"Incident sweep complete: {len(events)} change(s) across {len(monitors)} monitors")
        return events

    async def _open(
        self,
        monitor_id: str,
        owner_id: str,
        title: str,
        description: str,
        now: datetime,
    ) -> Optional[IncidentEvent]:
        existing = await self.store.find_open_incident(monitor_id)
        if existing is not None:
            return None

        incident = await self.store.create_incident(Incident(
            monitor_id=monitor_id,
            owner_id=owner_id,
            title=title,
            description=description,
            severity="high",
            status="open",
            start_time=now,
            created_at=now,
            updated_at=now,
        ))
        logger.info(f"Incident opened for monitor {monitor_id}: {title}")
        return IncidentEvent(action="opened", monitor_id=monitor_id, incident_ids=[incident.id])

    async def _resolve_all(self, monitor_id: str, now: datetime) -> Optional[IncidentEvent]:
        open_incidents = await self.store.find_open_incidents(monitor_id)
        if not open_incidents:
            return None

        if len(open_incidents) > 1:
            logger.warning(f"Monitor {monitor_id} had {len(open_incidents)} open incidents, resolving all")

        resolved = []
        for incident in open_incidents:
            if await self.store.resolve_incident(incident.id, now):
                resolved.append(incident.id)
        if not resolved:
            return None

        logger.info(f"Resolved {len(resolved)} incident(s) for monitor {monitor_id}")
        return IncidentEvent(action="resolved", monitor_id=monitor_id, incident_ids=resolved)


# Global instance
incident_manager = IncidentManager()
