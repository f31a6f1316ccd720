"""Bounded-retry wrapper around the portal protocol."""

from __future__ import annotations

import asyncio
import logging
import time
from typing import Any, Awaitable, Callable, Optional

from playwright.async_api import Error as PlaywrightError
from playwright.async_api import Page

from cronograma.config import config
from cronograma.exceptions import CronogramaError
from cronograma.schemas import CronogramaQuery
from cronograma.services.browser import BrowserManager
from cronograma.services.portal import PortalSettings, run_query

logger = logging.getLogger(__name__)

RETRYABLE_ERRORS = (CronogramaError, PlaywrightError)

# Called as ``runner(page, query, settings=...)``.
QueryRunner = Callable[..., Awaitable[Any]]


def compute_backoff(attempt: int, base: float, strategy: str = "linear") -> float:
    """Return the delay before the next attempt.

    Args:
        attempt: 1-based count of attempts that have failed so far.
        base: Base interval in seconds.
        strategy: ``"linear"`` (``base * attempt``) or ``"exponential"``
            (``base * 2 ** attempt``).

    Returns:
        float: Seconds to sleep; never below ``base`` for ``attempt >= 1``.
    """
    attempt = max(attempt, 1)
    if strategy == "exponential":
        return base * (2**attempt)
    return base * attempt


class CronogramaFetcher:
    """Run the portal protocol with bounded retries and scoped page release."""

    def __init__(
        self,
        browser_manager: BrowserManager,
        *,
        settings: Optional[PortalSettings] = None,
        max_retries: Optional[int] = None,
        backoff_base: Optional[float] = None,
        backoff_strategy: Optional[str] = None,
        reuse_session: Optional[bool] = None,
        protocol: QueryRunner = run_query,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ) -> None:
        self._browsers = browser_manager
        self._settings = settings or PortalSettings.from_config()
        self._max_retries = config.MAX_RETRIES if max_retries is None else max(0, max_retries)
        self._backoff_base = config.BACKOFF_BASE_SECONDS if backoff_base is None else backoff_base
        self._backoff_strategy = backoff_strategy or config.BACKOFF_STRATEGY
        self._reuse_session = config.BROWSER_REUSE_SESSION if reuse_session is None else reuse_session
        self._protocol = protocol
        self._sleep = sleep

    async def fetch(self, query: CronogramaQuery, max_retries: Optional[int] = None) -> Any:
        """Fetch the cronograma for ``query``, retrying transient failures.

        Performs at most ``max_retries + 1`` attempts. Each attempt's page (and
        dedicated browser, when sessions are not reused) is released before
        the attempt returns or raises.

        Raises:
            CronogramaError: The last error once every attempt has failed.
            playwright.async_api.Error: Same, for unclassified Playwright failures.
        """
        retries = self._max_retries if max_retries is None else max(0, max_retries)
        attempt = 0
        while True:
            try:
                return await self._attempt(query, attempt + 1)
            except RETRYABLE_ERRORS as exc:
                attempt += 1
                logger.warning(
                    "Cronograma fetch attempt %d/%d failed: %s",
                    attempt,
                    retries + 1,
                    exc,
                    extra={"error_code": getattr(exc, "code", "playwright_error")},
                )
                if attempt > retries:
                    raise
                await self._sleep(compute_backoff(attempt, self._backoff_base, self._backoff_strategy))

    async def _attempt(self, query: CronogramaQuery, number: int) -> Any:
        if self._reuse_session:
            browser = await self._browsers.acquire()
            dedicated = None
        else:
            browser = dedicated = await self._browsers.launch_dedicated()

        page: Optional[Page] = None
        started = time.perf_counter()
        try:
            page = await self._browsers.open_page(browser)
            data = await self._protocol(page, query, settings=self._settings)
        finally:
            if page is not None:
                await self._browsers.release_page(page)
            if dedicated is not None:
                await self._browsers.release_browser(dedicated)

        logger.info(
            "Cronograma fetched",
            extra={"attempt": number, "duration_ms": int((time.perf_counter() - started) * 1000)},
        )
        return data
