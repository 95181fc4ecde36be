"""Tests for the browser probe, with Playwright replaced by fakes."""
from __future__ import annotations

import asyncio
from types import SimpleNamespace

import pytest
from playwright.async_api import Error as PlaywrightError
from playwright.async_api import TimeoutError as PlaywrightTimeoutError

from pulsewatch.services.browser import BrowserProbe
from pulsewatch.services.checker import ErrorKind


class _FakeResponse:
    def __init__(self, status: int) -> None:
        self.status = status
        self.ok = 200 <= status < 300


class _FakePage:
    def __init__(self, browser: _FakeBrowser) -> None:
        self._browser = browser
        self._handlers = {}

    def on(self, event: str, handler) -> None:
        self._handlers[event] = handler

    async def goto(self, url: str, timeout: float):
        self._browser.goto_timeout = timeout
        if self._browser.goto_started is not None:
            self._browser.goto_started.set()
        if self._browser.goto_delay:
            await asyncio.sleep(self._browser.goto_delay)
        if self._browser.goto_error is not None:
            raise self._browser.goto_error
        if "console" in self._handlers:
            self._handlers["console"](SimpleNamespace(type="error", text="Uncaught TypeError: x is undefined"))
            self._handlers["console"](SimpleNamespace(type="log", text="hello"))
        return _FakeResponse(self._browser.status)

    async def evaluate(self, _script: str):
        return 420

    async def wait_for_selector(self, selector: str, timeout: float):
        self._browser.selector_timeout = timeout
        if selector not in self._browser.selectors:
            raise PlaywrightTimeoutError(f"Timeout {timeout:.0f}ms exceeded waiting for {selector}")


class _FakeContext:
    def __init__(self, browser: _FakeBrowser) -> None:
        self._browser = browser

    async def new_page(self) -> _FakePage:
        return _FakePage(self._browser)


class _FakeBrowser:
    def __init__(self, status: int = 200, selectors=(), goto_error=None, goto_delay: float = 0) -> None:
        self.status = status
        self.selectors = set(selectors)
        self.goto_error = goto_error
        self.goto_delay = goto_delay
        self.goto_started: asyncio.Event | None = None
        self.goto_timeout = None
        self.selector_timeout = None
        self.closed = False

    async def new_context(self) -> _FakeContext:
        return _FakeContext(self)

    async def close(self) -> None:
        self.closed = True


class _FakePlaywright:
    def __init__(self, browser: _FakeBrowser) -> None:
        self.browser = browser
        self.launch_kwargs = None
        self.stopped = False
        self.chromium = self

    async def launch(self, **kwargs) -> _FakeBrowser:
        self.launch_kwargs = kwargs
        return self.browser

    async def __aenter__(self) -> _FakePlaywright:
        return self

    async def __aexit__(self, exc_type, exc, tb) -> bool:
        self.stopped = True
        return False


@pytest.fixture
def fake_playwright(monkeypatch: pytest.MonkeyPatch):
    holder = {}

    def _install(browser: _FakeBrowser) -> _FakePlaywright:
        fake = _FakePlaywright(browser)
        holder["fake"] = fake
        monkeypatch.setattr("pulsewatch.services.browser.async_playwright", lambda: fake)
        return fake

    return _install


@pytest.mark.asyncio
async def test_browser_probe_up_when_selector_found(fake_playwright) -> None:
    fake = fake_playwright(_FakeBrowser(status=200, selectors={"#app"}))

    result = await BrowserProbe(navigation_timeout=20, selector_timeout=10).probe(
        "https://example.com", wait_for_selector="#app"
    )

    assert result.success is True
    assert result.http_status_code == 200
    assert result.browser.found_selector is True
    assert result.browser.dom_ready_ms == 420
    assert result.browser.load_time_ms is not None
    assert result.browser.console_errors == ["Uncaught TypeError: x is undefined"]
    assert fake.launch_kwargs["headless"] is True
    assert fake.browser.goto_timeout == 20000
    assert fake.browser.closed is True
    assert fake.stopped is True


@pytest.mark.asyncio
async def test_browser_probe_selector_never_appears(fake_playwright) -> None:
    fake = fake_playwright(_FakeBrowser(status=200, selectors=()))

    result = await BrowserProbe(navigation_timeout=20, selector_timeout=10).probe(
        "https://example.com", wait_for_selector="#app"
    )

    assert result.success is False
    assert result.error_kind == ErrorKind.SELECTOR_NOT_FOUND
    assert "#app" in result.error_message
    assert "timed out" in result.error_message
    assert result.browser.found_selector is False
    assert fake.browser.selector_timeout == 10000
    assert fake.browser.closed is True


@pytest.mark.asyncio
async def test_browser_probe_without_selector_only_needs_ok_response(fake_playwright) -> None:
    fake_playwright(_FakeBrowser(status=200))

    result = await BrowserProbe().probe("https://example.com")

    assert result.success is True
    assert result.browser.found_selector is False


@pytest.mark.asyncio
async def test_browser_probe_error_status_is_down(fake_playwright) -> None:
    fake = fake_playwright(_FakeBrowser(status=502))

    result = await BrowserProbe().probe("https://example.com")

    assert result.success is False
    assert result.error_kind == ErrorKind.PROTOCOL_ERROR
    assert result.error_message == "HTTP 502"
    assert fake.browser.closed is True


@pytest.mark.asyncio
async def test_browser_probe_navigation_failure_releases_browser(fake_playwright) -> None:
    fake = fake_playwright(_FakeBrowser(goto_error=PlaywrightError("net::ERR_NAME_NOT_RESOLVED")))

    result = await BrowserProbe().probe("https://nope.invalid")

    assert result.success is False
    assert result.error_kind == ErrorKind.CONNECTION_ERROR
    assert "ERR_NAME_NOT_RESOLVED" in result.error_message
    assert fake.browser.closed is True
    assert fake.stopped is True


@pytest.mark.asyncio
async def test_browser_probe_navigation_timeout(fake_playwright) -> None:
    fake = fake_playwright(_FakeBrowser(goto_error=PlaywrightTimeoutError("Timeout 20000ms exceeded.")))

    result = await BrowserProbe().probe("https://slow.example.com")

    assert result.error_kind == ErrorKind.TIMEOUT
    assert fake.browser.closed is True


@pytest.mark.asyncio
async def test_browser_probe_cancellation_releases_browser(fake_playwright) -> None:
    browser = _FakeBrowser(goto_delay=30)
    browser.goto_started = asyncio.Event()
    fake = fake_playwright(browser)

    task = asyncio.create_task(BrowserProbe().probe("https://hang.example.com"))
    await browser.goto_started.wait()
    task.cancel()

    with pytest.raises(asyncio.CancelledError):
        await task
    assert browser.closed is True
    assert fake.stopped is True
