"""Browser probe - loads a page in headless Chromium via Playwright."""
import asyncio
import logging
import time
from typing import Optional

from playwright.async_api import Error as PlaywrightError
from playwright.async_api import TimeoutError as PlaywrightTimeoutError
from playwright.async_api import async_playwright

from ..config import settings
from .checker import BrowserMetrics, ErrorKind, ProbeResult

logger = logging.getLogger(__name__)

# Headroom for launching and closing Chromium on top of the page waits
LAUNCH_BUDGET_SECONDS = 15

CHROMIUM_ARGS = [
    "--no-sandbox",
    "--disable-gpu",
    "--disable-extensions",
    "--disable-background-networking",
    "--disable-sync",
    "--no-first-run",
    "--no-default-browser-check",
    # Avoid renderer crashes when /dev/shm is tiny.
    "--disable-dev-shm-usage",
]

DOM_READY_SCRIPT = """() => {
    if (document.readyState === 'complete' && performance.timing) {
        return performance.timing.domContentLoadedEventEnd - performance.timing.navigationStart;
    }
    return null;
}"""


class BrowserProbe:
    """Runs one page load per probe in a fresh, isolated browser.

    The browser, its context and page are closed on every exit path:
    success, probe failure, exceptions and task cancellation.
    """

    def __init__(
        self,
        navigation_timeout: Optional[float] = None,
        selector_timeout: Optional[float] = None,
        executable_path: Optional[str] = None,
    ):
        self.navigation_timeout = navigation_timeout or settings.browser_navigation_timeout_seconds
        self.selector_timeout = selector_timeout or settings.browser_selector_timeout_seconds
        self.executable_path = executable_path or settings.chromium_executable_path

    async def probe(
        self,
        url: str,
        wait_for_selector: Optional[str] = None,
        navigation_timeout: Optional[float] = None,
        selector_timeout: Optional[float] = None,
    ) -> ProbeResult:
        """Navigate to ``url`` and optionally wait for a CSS selector.

        Up iff navigation returned an ok response and, when a selector is
        configured, the selector appeared within ``selector_timeout``.
        """
        navigation_timeout = navigation_timeout or self.navigation_timeout
        selector_timeout = selector_timeout or self.selector_timeout
        hard_limit = navigation_timeout + LAUNCH_BUDGET_SECONDS
        if wait_for_selector:
            hard_limit += selector_timeout

        metrics = BrowserMetrics()
        start = time.monotonic()
        try:
            return await asyncio.wait_for(
                self._load_page(url, wait_for_selector, navigation_timeout, selector_timeout, metrics, start),
                timeout=hard_limit,
            )
        except asyncio.TimeoutError:
            error_kind, message = ErrorKind.TIMEOUT, f"Browser check exceeded {hard_limit:.0f}s"
        except PlaywrightTimeoutError as e:
            error_kind, message = ErrorKind.TIMEOUT, f"Navigation timeout: {e.message}"
        except PlaywrightError as e:
            error_kind, message = ErrorKind.CONNECTION_ERROR, e.message or "Browser error"

        return ProbeResult(
            success=False,
            response_time_ms=metrics.load_time_ms or int((time.monotonic() - start) * 1000),
            error_kind=error_kind,
            error_message=message[:500],
            browser=metrics,
        )

    async def _load_page(
        self,
        url: str,
        wait_for_selector: Optional[str],
        navigation_timeout: float,
        selector_timeout: float,
        metrics: BrowserMetrics,
        start: float,
    ) -> ProbeResult:
        launch_kwargs = {"headless": True, "args": CHROMIUM_ARGS}
        if self.executable_path:
            launch_kwargs["executable_path"] = self.executable_path

        async with async_playwright() as p:
            browser = await p.chromium.launch(**launch_kwargs)
            try:
                context = await browser.new_context()
                page = await context.new_page()

                def on_console(msg):
                    if msg.type == "error":
                        metrics.console_errors.append(msg.text[:500])

                page.on("console", on_console)

                response = await page.goto(url, timeout=navigation_timeout * 1000)
                metrics.load_time_ms = int((time.monotonic() - start) * 1000)
                metrics.dom_ready_ms = await self._dom_ready_ms(page)

                if wait_for_selector:
                    try:
                        await page.wait_for_selector(wait_for_selector, timeout=selector_timeout * 1000)
                        metrics.found_selector = True
                    except PlaywrightTimeoutError:
                        metrics.found_selector = False

                return self._verdict(response, wait_for_selector, selector_timeout, metrics)
            finally:
                # Closing the browser tears down its contexts and pages
                await browser.close()

    async def _dom_ready_ms(self, page) -> Optional[int]:
        try:
            value = await page.evaluate(DOM_READY_SCRIPT)
        except PlaywrightError as e:
            logger.debug(f"Could not read performance timing: {e.message}")
            return None
        return int(value) if value is not None else None

    def _verdict(
        self,
        response,
        wait_for_selector: Optional[str],
        selector_timeout: float,
        metrics: BrowserMetrics,
    ) -> ProbeResult:
        status_code = response.status if response is not None else None

        if response is None or not response.ok:
            return ProbeResult(
                success=False,
                response_time_ms=metrics.load_time_ms,
                http_status_code=status_code,
                error_kind=ErrorKind.PROTOCOL_ERROR,
                error_message=f"HTTP {status_code}" if status_code else "Navigation returned no response",
                browser=metrics,
            )

        if wait_for_selector and not metrics.found_selector:
            return ProbeResult(
                success=False,
                response_time_ms=metrics.load_time_ms,
                http_status_code=status_code,
                error_kind=ErrorKind.SELECTOR_NOT_FOUND,
                error_message=f"Selector '{wait_for_selector}' not found: timed out after {selector_timeout:g}s",
                browser=metrics,
            )

        return ProbeResult(
            success=True,
            response_time_ms=metrics.load_time_ms,
            http_status_code=status_code,
            browser=metrics,
        )


# Global instance
browser_probe = BrowserProbe()
