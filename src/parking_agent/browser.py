"""Chromium session bootstrap via Playwright."""

from __future__ import annotations

import asyncio
import subprocess
from typing import Iterable, List, Optional

import httpx
import structlog
from playwright.async_api import Browser, BrowserContext, Page, async_playwright
from tenacity import AsyncRetrying, RetryError, retry_if_exception_type, stop_after_delay, wait_fixed

from .config import Settings
from .errors import BrowserBootstrapError

LOGGER = structlog.get_logger(__name__)

PORT_SEARCH_LIMIT = 100
CHROME_STARTUP_SECONDS = 2.5
DEBUGGER_WAIT_SECONDS = 60.0
CHROME_EXIT_SECONDS = 5.0

# Debugging ports handed out by this process.
ACTIVE_PORTS: List[int] = []


def find_available_port(start_port: int, active_ports: Iterable[int] = ()) -> int:
    """First port at or above ``start_port`` that is not already in use by us."""
    active = set(active_ports)
    port = start_port
    while port in active:
        port += 1
        if port > start_port + PORT_SEARCH_LIMIT:
            raise BrowserBootstrapError("No available ports found")
    return port


def chrome_flags(settings: Settings, port: int) -> List[str]:
    return [
        f"--remote-debugging-port={port}",
        "--no-first-run",
        "--no-default-browser-check",
        f"--window-size={settings.window_width},{settings.window_height}",
        "--incognito",
    ]


async def fetch_websocket_url(port: int, *, wait_seconds: float = DEBUGGER_WAIT_SECONDS) -> str:
    """Ask the Chrome debugging endpoint for its browser websocket URL."""
    url = f"http://localhost:{port}/json/version"
    try:
        async for attempt in AsyncRetrying(
            wait=wait_fixed(1),
            stop=stop_after_delay(wait_seconds),
            retry=retry_if_exception_type((httpx.HTTPError, KeyError, ValueError)),
            reraise=False,
        ):
            with attempt:
                LOGGER.info("chrome.debugger.fetch", url=url, attempt=attempt.retry_state.attempt_number)
                async with httpx.AsyncClient(timeout=5.0) as client:
                    response = await client.get(url)
                    response.raise_for_status()
                    ws_url = response.json()["webSocketDebuggerUrl"]
                LOGGER.info("chrome.debugger.ready", websocket_url=ws_url)
                return ws_url
    except RetryError as exc:
        raise BrowserBootstrapError(f"Chrome debugging endpoint on port {port} never came up") from exc
    raise BrowserBootstrapError("Failed to load websocket URL")  # safety net


class ParkingBrowser:
    """Owns the Playwright browser, context and the single page of a run."""

    def __init__(self, settings: Settings):
        self._settings = settings
        self._playwright = None
        self._browser: Optional[Browser] = None
        self._context: Optional[BrowserContext] = None
        self._page: Optional[Page] = None
        self._chrome_process: Optional[subprocess.Popen] = None
        self._port: Optional[int] = None

    @property
    def page(self) -> Page:
        if not self._page:
            raise RuntimeError("Playwright page has not been initialised")
        return self._page

    @property
    def context(self) -> BrowserContext:
        if not self._context:
            raise RuntimeError("Playwright context has not been initialised")
        return self._context

    async def __aenter__(self) -> "ParkingBrowser":
        self._playwright = await async_playwright().start()
        try:
            if self._settings.attach_to_chrome:
                await self._attach()
            else:
                await self._launch()
        except BaseException:
            await self.close()
            raise
        # Give the window a moment before the first navigation.
        await asyncio.sleep(1)
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.close()

    async def _launch(self) -> None:
        settings = self._settings
        args = [f"--window-size={settings.window_width},{settings.window_height}", "--incognito"]
        if settings.devtools:
            args.append("--auto-open-devtools-for-tabs")
        LOGGER.info("browser.launch", headless=settings.headless, devtools=settings.devtools)
        self._browser = await self._playwright.chromium.launch(headless=settings.headless, args=args)
        self._context = await self._browser.new_context(
            viewport={"width": settings.window_width, "height": settings.window_height},
        )
        self._page = await self._context.new_page()

    async def _attach(self) -> None:
        settings = self._settings
        self._port = find_available_port(settings.debugging_port, ACTIVE_PORTS)
        ACTIVE_PORTS.append(self._port)
        flags = chrome_flags(settings, self._port)

        LOGGER.info("chrome.start", executable=settings.chrome_path, flags=" ".join(flags))
        try:
            self._chrome_process = subprocess.Popen([settings.chrome_path, *flags])
        except OSError as exc:
            raise BrowserBootstrapError(f"Could not start Chrome at {settings.chrome_path}") from exc

        await asyncio.sleep(CHROME_STARTUP_SECONDS)
        ws_url = await fetch_websocket_url(self._port)

        self._browser = await self._playwright.chromium.connect_over_cdp(ws_url)
        self._context = self._browser.contexts[0] if self._browser.contexts else await self._browser.new_context()
        self._page = await self._context.new_page()
        await self._page.set_viewport_size({"width": settings.window_width, "height": settings.window_height})

    async def close(self) -> None:
        if self._browser:
            await self._browser.close()
            self._browser = None
        if self._playwright:
            await self._playwright.stop()
            self._playwright = None
        if self._chrome_process and self._chrome_process.poll() is None:
            LOGGER.info("chrome.terminate", pid=self._chrome_process.pid)
            self._chrome_process.terminate()
            try:
                await asyncio.to_thread(self._chrome_process.wait, CHROME_EXIT_SECONDS)
            except subprocess.TimeoutExpired:
                LOGGER.warning("chrome.kill", pid=self._chrome_process.pid)
                self._chrome_process.kill()
                await asyncio.to_thread(self._chrome_process.wait)
        self._chrome_process = None
        if self._port in ACTIVE_PORTS:
            ACTIVE_PORTS.remove(self._port)
        self._context = None
        self._page = None
