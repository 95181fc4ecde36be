"""Test doubles and factories shared across test modules."""
import asyncio
from typing import Dict, List, Optional

from pulsewatch.database import async_session
from pulsewatch.models import Monitor
from pulsewatch.services.browser import BrowserProbe
from pulsewatch.services.checker import CheckerService, ErrorKind, ProbeResult


async def create_monitor(**fields) -> Monitor:
    values = {
        "owner_id": "user-1",
        "name": "Example",
        "url": "https://example.com",
        "type": "https",
        "is_active": 1,
        "current_status": "unknown",
        "consecutive_failures": 0,
    }
    values.update(fields)
    monitor = Monitor(**values)
    async with async_session() as session:
        session.add(monitor)
        await session.commit()
    return monitor


def up_result(response_time_ms: int = 150, status_code: int = 200) -> ProbeResult:
    return ProbeResult(success=True, response_time_ms=response_time_ms, http_status_code=status_code)


def refused_result(response_time_ms: int = 3) -> ProbeResult:
    return ProbeResult(
        success=False,
        response_time_ms=response_time_ms,
        error_kind=ErrorKind.CONNECTION_ERROR,
        error_message="[Errno 111] Connection refused",
    )


class FakeChecker(CheckerService):
    """Returns scripted results per URL instead of touching the network.

    A result may be an exception instance (raised) or a float (seconds to
    hang before answering up).
    """

    def __init__(self, results: Optional[Dict[str, list]] = None, ssl_results: Optional[Dict[str, list]] = None):
        super().__init__(http_timeout=1, ssl_timeout=1)
        self.results = results or {}
        self.ssl_results = ssl_results or {}
        self.calls: List[dict] = []

    async def _next(self, table: Dict[str, list], url: str) -> ProbeResult:
        queue = table.get(url) or [up_result()]
        result = queue.pop(0) if len(queue) > 1 else queue[0]
        if isinstance(result, BaseException):
            raise result
        if isinstance(result, (int, float)):
            await asyncio.sleep(result)
            return up_result()
        return result

    async def probe_http(self, url, timeout=None, ping=False):
        self.calls.append({"kind": "http", "url": url, "ping": ping})
        return await self._next(self.results, url)

    async def probe_ssl(self, target, timeout=None):
        self.calls.append({"kind": "ssl", "url": target})
        return await self._next(self.ssl_results, target)


class FakeBrowserProbe(BrowserProbe):
    """Scripted browser probe that records peak concurrency."""

    def __init__(self, result: Optional[ProbeResult] = None, delay: float = 0):
        super().__init__(navigation_timeout=1, selector_timeout=1)
        self.result = result or up_result()
        self.delay = delay
        self.active = 0
        self.peak = 0
        self.calls: List[dict] = []

    async def probe(self, url, wait_for_selector=None, navigation_timeout=None, selector_timeout=None):
        self.calls.append({"url": url, "selector": wait_for_selector})
        self.active += 1
        self.peak = max(self.peak, self.active)
        try:
            await asyncio.sleep(self.delay)
            return self.result
        finally:
            self.active -= 1
