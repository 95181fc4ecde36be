"""Result store - the persistence boundary of the check engine.

Each write is an independent, monitor-scoped transaction in its own
session. Nothing here spans more than one monitor, so evaluations of
different monitors never contend for the same rows.
"""
import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Dict, List, Optional, Sequence

from sqlalchemy import case, func, select, update
from sqlalchemy.ext.asyncio import async_sessionmaker

from ..database import async_session
from ..models import Monitor, CheckResult, BrowserCheckResult, Incident, SSLAlert
from ..utils.clock import utcnow
from ..utils.db_utils import retry_on_lock
from .checker import SSLCertificateSnapshot, SSLState

logger = logging.getLogger(__name__)

ALERTING_SSL_STATES = (SSLState.EXPIRING_SOON.value, SSLState.EXPIRED.value)


@dataclass
class MonitorFilter:
    """Which monitors a scheduled run applies to."""
    active_only: bool = True
    types: Optional[Sequence[str]] = None
    browser_check_enabled: Optional[bool] = None
    https_only: bool = False
    owner_id: Optional[str] = None
    statuses: Optional[Sequence[str]] = None


class ResultStore:
    """Reads monitors and writes check history, SSL state and incidents."""

    def __init__(self, session_factory: async_sessionmaker = async_session):
        self.session_factory = session_factory

    # Monitors

    async def list_monitors(self, monitor_filter: Optional[MonitorFilter] = None) -> List[Monitor]:
        monitor_filter = monitor_filter or MonitorFilter()
        query = select(Monitor)
        if monitor_filter.active_only:
            query = query.where(Monitor.is_active == 1)
        if monitor_filter.types:
            query = query.where(Monitor.type.in_(list(monitor_filter.types)))
        if monitor_filter.browser_check_enabled is not None:
            query = query.where(Monitor.browser_check_enabled == int(monitor_filter.browser_check_enabled))
        if monitor_filter.https_only:
            query = query.where(Monitor.url.startswith("https://"))
        if monitor_filter.owner_id:
            query = query.where(Monitor.owner_id == monitor_filter.owner_id)
        if monitor_filter.statuses:
            query = query.where(Monitor.current_status.in_(list(monitor_filter.statuses)))

        async with self.session_factory() as session:
            result = await session.execute(query.order_by(Monitor.created_at))
            return list(result.scalars().all())

    async def get_monitor(self, monitor_id: str) -> Optional[Monitor]:
        async with self.session_factory() as session:
            return await session.get(Monitor, monitor_id)

    async def update_monitor(self, monitor_id: str, fields: Dict[str, Any]):
        """Partial update of one monitor. Always stamps updated_at."""
        values = dict(fields)
        values["updated_at"] = utcnow()

        async def _write():
            async with self.session_factory() as session:
                await session.execute(
                    update(Monitor).where(Monitor.id == monitor_id).values(**values)
                )
                await session.commit()

        await retry_on_lock(_write)

    # Check history

    async def append_check_result(self, result: CheckResult) -> CheckResult:
        return await self._insert(result)

    async def append_browser_check(self, result: BrowserCheckResult) -> BrowserCheckResult:
        return await self._insert(result)

    async def recent_check_results(self, monitor_id: str, limit: int = 50) -> List[CheckResult]:
        async with self.session_factory() as session:
            result = await session.execute(
                select(CheckResult)
                .where(CheckResult.monitor_id == monitor_id)
                .order_by(CheckResult.created_at.desc(), CheckResult.id.desc())
                .limit(limit)
            )
            return list(result.scalars().all())

    async def uptime_percent(self, monitor_id: str, since: datetime) -> Optional[float]:
        """Share of up uptime checks since a point in time, None without any."""
        async with self.session_factory() as session:
            result = await session.execute(
                select(func.count(CheckResult.id), func.sum(case((CheckResult.status.is_(True), 1), else_=0)))
                .where(
                    CheckResult.monitor_id == monitor_id,
                    CheckResult.check_kind == "uptime",
                    CheckResult.created_at >= since,
                )
            )
            total, up = result.one()
        if not total:
            return None
        return round((up or 0) / total * 100, 2)

    # SSL

    async def append_ssl_snapshot(
        self,
        monitor: Monitor,
        snapshot: SSLCertificateSnapshot,
        checked_at: Optional[datetime] = None,
    ) -> Optional[SSLAlert]:
        """Store the monitor's SSL fields and raise an alert on first transition.

        An alert is only created when the monitor has no alert in
        expiring_soon or expired yet. Returns the new alert, if any.
        """
        checked_at = checked_at or utcnow()
        state = SSLState(snapshot.state).value
        await self.update_monitor(monitor.id, {
            "ssl_status": state,
            "ssl_expiry_date": snapshot.valid_to,
            "ssl_issuer": snapshot.issuer_name,
            "ssl_days_until_expiry": snapshot.days_until_expiry,
            "last_ssl_check_at": checked_at,
        })

        if state not in ALERTING_SSL_STATES:
            return None

        async def _raise_alert() -> Optional[SSLAlert]:
            async with self.session_factory() as session:
                existing = await session.execute(
                    select(SSLAlert.id)
                    .where(
                        SSLAlert.monitor_id == monitor.id,
                        SSLAlert.ssl_status.in_(ALERTING_SSL_STATES),
                    )
                    .limit(1)
                )
                if existing.scalar_one_or_none() is not None:
                    return None

                alert = SSLAlert(
                    monitor_id=monitor.id,
                    owner_id=monitor.owner_id,
                    monitor_name=monitor.name,
                    monitor_url=monitor.url,
                    ssl_status=state,
                    days_until_expiry=snapshot.days_until_expiry,
                    expiry_date=snapshot.valid_to,
                    severity="critical" if state == SSLState.EXPIRED.value else "warning",
                    description=f"SSL certificate for {monitor.display_name} is {state.replace('_', ' ')}.",
                    created_at=checked_at,
                    updated_at=checked_at,
                )
                session.add(alert)
                await session.commit()
                return alert

        alert = await retry_on_lock(_raise_alert)
        if alert:
            logger.info(f"SSL alert raised for {monitor.display_name}: {state}")
        return alert

    async def mark_ssl_invalid(self, monitor_id: str, checked_at: Optional[datetime] = None):
        await self.update_monitor(monitor_id, {
            "ssl_status": SSLState.INVALID.value,
            "last_ssl_check_at": checked_at or utcnow(),
        })

    async def list_ssl_alerts(self, monitor_id: str) -> List[SSLAlert]:
        async with self.session_factory() as session:
            result = await session.execute(
                select(SSLAlert)
                .where(SSLAlert.monitor_id == monitor_id)
                .order_by(SSLAlert.created_at.desc())
            )
            return list(result.scalars().all())

    # Incidents

    async def find_open_incident(self, monitor_id: str) -> Optional[Incident]:
        incidents = await self.find_open_incidents(monitor_id)
        return incidents[0] if incidents else None

    async def find_open_incidents(self, monitor_id: str) -> List[Incident]:
        async with self.session_factory() as session:
            result = await session.execute(
                select(Incident)
                .where(Incident.monitor_id == monitor_id, Incident.status == "open")
                .order_by(Incident.start_time.desc())
            )
            return list(result.scalars().all())

    async def create_incident(self, incident: Incident) -> Incident:
        return await self._insert(incident)

    async def resolve_incident(self, incident_id: str, resolved_at: Optional[datetime] = None) -> bool:
        """Mark an open incident resolved. False if it was not open."""
        resolved_at = resolved_at or utcnow()

        async def _write() -> bool:
            async with self.session_factory() as session:
                result = await session.execute(
                    update(Incident)
                    .where(Incident.id == incident_id, Incident.status == "open")
                    .values(status="resolved", resolved_at=resolved_at, updated_at=resolved_at)
                )
                await session.commit()
                return result.rowcount > 0

        return await retry_on_lock(_write)

    async def list_incidents(
        self,
        monitor_id: Optional[str] = None,
        owner_id: Optional[str] = None,
        status: Optional[str] = None,
        limit: int = 100,
    ) -> List[Incident]:
        query = select(Incident)
        if monitor_id:
            query = query.where(Incident.monitor_id == monitor_id)
        if owner_id:
            query = query.where(Incident.owner_id == owner_id)
        if status:
            query = query.where(Incident.status == status)
        async with self.session_factory() as session:
            result = await session.execute(query.order_by(Incident.start_time.desc()).limit(limit))
            return list(result.scalars().all())

    async def _insert(self, row):
        async def _write():
            async with self.session_factory() as session:
                session.add(row)
                await session.commit()
            return row

        return await retry_on_lock(_write)


# Global instance
result_store = ResultStore()
