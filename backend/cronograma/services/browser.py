"""Chromium session provider and page factory for the portal scraper."""

from __future__ import annotations

import asyncio
import logging
import os
import sys
from pathlib import Path
from typing import Any, Awaitable, Callable, Dict, FrozenSet, Iterable, List, Optional

from playwright.async_api import Browser, Page, Playwright, Route, async_playwright
from playwright.async_api import Error as PlaywrightError

from cronograma.config import config
from cronograma.exceptions import SessionLaunchError

logger = logging.getLogger(__name__)

LOCAL_LAUNCH_ARGS = ["--no-sandbox", "--disable-setuid-sandbox"]
SERVERLESS_LAUNCH_ARGS = [
    "--no-sandbox",
    "--disable-setuid-sandbox",
    "--disable-dev-shm-usage",
    "--disable-gpu",
    "--no-first-run",
    "--no-zygote",
    "--single-process",
    "--disable-extensions",
    "--disable-background-timer-throttling",
    "--disable-backgrounding-occluded-windows",
    "--disable-renderer-backgrounding",
]


def build_launch_options(profile: str) -> Dict[str, Any]:
    """Return ``chromium.launch`` keyword arguments for a deployment profile."""
    if profile == "serverless":
        options: Dict[str, Any] = {
            "headless": True,
            "args": list(SERVERLESS_LAUNCH_ARGS),
            "timeout": config.BROWSER_LAUNCH_TIMEOUT_MS,
        }
        if config.BROWSER_EXECUTABLE_PATH:
            options["executable_path"] = config.BROWSER_EXECUTABLE_PATH
        return options
    return {
        "headless": True,
        "args": list(LOCAL_LAUNCH_ARGS),
        "timeout": config.BROWSER_LAUNCH_TIMEOUT_MS,
    }


def build_context_options(profile: str) -> Dict[str, Any]:
    """Return ``browser.new_context`` keyword arguments: viewport and identity."""
    options: Dict[str, Any] = {
        "viewport": {"width": config.BROWSER_VIEWPORT_WIDTH, "height": config.BROWSER_VIEWPORT_HEIGHT},
        "device_scale_factor": 1,
        "user_agent": config.BROWSER_USER_AGENT,
    }
    if profile == "serverless":
        options["ignore_https_errors"] = True
    return options


def is_blocked_resource(resource_type: str, blocked: Iterable[str]) -> bool:
    """Return True when requests of ``resource_type`` should be aborted."""
    return (resource_type or "").lower() in blocked


def make_route_handler(blocked: Iterable[str]) -> Callable[[Route], Awaitable[None]]:
    """Build a route handler that aborts blocked resource classes and continues the rest."""
    blocked_types: FrozenSet[str] = frozenset(item.lower() for item in blocked)

    async def _handle(route: Route) -> None:
        if is_blocked_resource(route.request.resource_type, blocked_types):
            await route.abort()
        else:
            await route.continue_()

    return _handle


async def _close_quietly(close: Callable[[], Awaitable[Any]], what: str) -> None:
    try:
        await close()
    except Exception:  # pragma: no cover - best effort cleanup
        logger.debug("Failed to close %s", what, exc_info=True)


class BrowserManager:
    """Owns the single shared Chromium session and opens pages inside it.

    The browser is launched lazily on first use and relaunched whenever the
    previous one is no longer connected. Pages are always opened in their own
    context so concurrent fetches never share navigation state.
    """

    def __init__(self, profile: Optional[str] = None, blocked_resource_types: Optional[List[str]] = None) -> None:
        """Prepare launch settings; nothing is started until ``acquire``."""
        self._profile = profile or config.DEPLOYMENT_PROFILE
        self._blocked = list(
            config.BROWSER_BLOCKED_RESOURCE_TYPES if blocked_resource_types is None else blocked_resource_types
        )
        self._route_handler = make_route_handler(self._blocked)
        self._lock = asyncio.Lock()
        self._playwright: Optional[Playwright] = None
        self._browser: Optional[Browser] = None
        self._install_attempted = False
        browsers_path = os.environ.setdefault("PLAYWRIGHT_BROWSERS_PATH", config.PLAYWRIGHT_BROWSERS_PATH)
        try:
            Path(browsers_path).mkdir(parents=True, exist_ok=True)
        except Exception:  # pragma: no cover - best effort
            logger.debug("Failed to ensure PLAYWRIGHT_BROWSERS_PATH exists", exc_info=True)

    @property
    def profile(self) -> str:
        return self._profile

    async def acquire(self) -> Browser:
        """Return the live shared browser, launching a new one if needed.

        Raises:
            SessionLaunchError: If Chromium cannot be started.
        """
        browser = self._browser
        if browser is not None and browser.is_connected():
            return browser

        async with self._lock:
            if self._browser is not None and self._browser.is_connected():
                return self._browser
            if self._browser is not None:
                logger.warning("Chromium session disconnected; relaunching")
                await self._close_session_unlocked()
            self._browser = await self._launch()
            return self._browser

    async def launch_dedicated(self) -> Browser:
        """Launch a browser owned by the caller, who must pass it to ``release_browser``."""
        async with self._lock:
            await self._ensure_driver()
        return await self._launch()

    async def release_browser(self, browser: Browser) -> None:
        await _close_quietly(browser.close, "dedicated Chromium browser")

    async def open_page(self, browser: Browser) -> Page:
        """Open a configured page in a fresh context of ``browser``.

        The context gets the fixed viewport and user agent; the page routes
        every request through the resource filter for its whole lifetime.
        """
        context = await browser.new_context(**build_context_options(self._profile))
        try:
            context.set_default_timeout(config.BROWSER_DEFAULT_TIMEOUT_MS)
            context.set_default_navigation_timeout(config.PORTAL_NAVIGATION_TIMEOUT_MS)
            page = await context.new_page()
            await page.route("**/*", self._route_handler)
            return page
        except BaseException:
            await _close_quietly(context.close, "Playwright context")
            raise

    async def release_page(self, page: Page) -> None:
        """Close the page's context; failures are logged and never raised."""
        await _close_quietly(page.context.close, "Playwright context")

    async def shutdown(self) -> None:
        """Close the shared browser and stop the Playwright driver."""
        async with self._lock:
            await self._close_session_unlocked()

    async def _close_session_unlocked(self) -> None:
        # A dead driver also disconnects the browser, so both are discarded together.
        if self._browser is not None:
            await _close_quietly(self._browser.close, "Chromium browser")
            self._browser = None
        if self._playwright is not None:
            await _close_quietly(self._playwright.stop, "Playwright driver")
            self._playwright = None

    async def _ensure_driver(self) -> Playwright:
        if self._playwright is not None:
            return self._playwright
        try:
            self._playwright = await async_playwright().start()
        except Exception as exc:
            raise SessionLaunchError(f"Failed to start Playwright driver: {exc}") from exc
        return self._playwright

    async def _launch(self) -> Browser:
        playwright = await self._ensure_driver()
        options = build_launch_options(self._profile)
        logger.info("Starting Chromium session", extra={"deployment_profile": self._profile})
        try:
            return await playwright.chromium.launch(**options)
        except PlaywrightError as exc:
            if not await self._maybe_install_browsers(exc):
                raise SessionLaunchError(f"Failed to launch Chromium: {exc}") from exc
        try:
            return await playwright.chromium.launch(**options)
        except PlaywrightError as exc:
            raise SessionLaunchError(f"Failed to launch Chromium after install: {exc}") from exc

    async def _maybe_install_browsers(self, exc: PlaywrightError) -> bool:
        if not config.BROWSER_AUTO_INSTALL or self._install_attempted:
            return False
        if "playwright install" not in str(exc).lower():
            return False
        logger.info("Chromium executable missing; attempting automatic install...")
        self._install_attempted = True
        try:
            process = await asyncio.create_subprocess_exec(
                sys.executable,
                "-m",
                "playwright",
                "install",
                "chromium",
                "--with-deps",
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
            )
            _, stderr = await process.communicate()
        except Exception:
            logger.exception("Automatic Chromium install failed")
            return False
        if process.returncode != 0:
            logger.error("Automatic Chromium install failed: %s", stderr.decode(errors="replace").strip())
            return False
        logger.info("Chromium installed successfully.")
        return True
