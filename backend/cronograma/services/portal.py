"""Fixed form-fill and response-capture sequence against the cronograma portal."""

from __future__ import annotations

import json
import logging
import time
from dataclasses import dataclass
from typing import Any, Tuple

from playwright.async_api import Page, Response
from playwright.async_api import TimeoutError as PlaywrightTimeoutError

from cronograma.config import config
from cronograma.exceptions import (
    ElementTimeoutError,
    InvalidPayloadError,
    MissingControlError,
    NavigationTimeoutError,
    ResponseTimeoutError,
)
from cronograma.schemas import CronogramaQuery

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class PortalSettings:
    """Upstream contract: where the form lives and how its response looks."""

    url: str
    program_selector: str
    campus_selector: str
    resource_selector: str
    search_selector: str
    response_marker: str
    navigation_timeout_ms: int
    selector_timeout_ms: int
    response_timeout_ms: int

    @classmethod
    def from_config(cls) -> "PortalSettings":
        return cls(
            url=config.PORTAL_URL,
            program_selector=config.PORTAL_PROGRAM_SELECTOR,
            campus_selector=config.PORTAL_CAMPUS_SELECTOR,
            resource_selector=config.PORTAL_RESOURCE_SELECTOR,
            search_selector=config.PORTAL_SEARCH_SELECTOR,
            response_marker=config.PORTAL_RESPONSE_MARKER,
            navigation_timeout_ms=config.PORTAL_NAVIGATION_TIMEOUT_MS,
            selector_timeout_ms=config.PORTAL_SELECTOR_TIMEOUT_MS,
            response_timeout_ms=config.PORTAL_RESPONSE_TIMEOUT_MS,
        )

    def form_fields(self, query: CronogramaQuery) -> Tuple[Tuple[str, str], ...]:
        """Return ``(selector, value)`` pairs in the order the form is filled."""
        return (
            (self.program_selector, query.programa),
            (self.campus_selector, query.sede),
            (self.resource_selector, query.recurso),
        )

    def matches_search_response(self, response: Response) -> bool:
        return (
            self.response_marker in response.url
            and response.request.method == "POST"
            and response.status == 200
        )


async def run_query(page: Page, query: CronogramaQuery, *, settings: PortalSettings) -> Any:
    """Fill the portal form for ``query`` and return the parsed search response.

    Steps run strictly in order: navigate, wait for the three controls, select
    their values, then click search with the response matcher already armed.
    The caller owns ``page`` and is responsible for releasing it.

    Args:
        page: Freshly opened page.
        query: Resolved query.
        settings: Portal contract and per-step timeouts.

    Returns:
        Any: JSON value decoded from the intercepted response body.

    Raises:
        NavigationTimeoutError: The portal did not reach DOMContentLoaded in time.
        ElementTimeoutError: A form control was not visible, selectable or
            clickable in time.
        MissingControlError: The search trigger is not on the page.
        ResponseTimeoutError: No matching POST 200 response followed the click.
        InvalidPayloadError: The response body is not JSON.
    """
    started = time.perf_counter()

    try:
        await page.goto(settings.url, wait_until="domcontentloaded", timeout=settings.navigation_timeout_ms)
    except PlaywrightTimeoutError as exc:
        raise NavigationTimeoutError(f"Timed out loading {settings.url}") from exc

    fields = settings.form_fields(query)
    for selector, _ in fields:
        try:
            await page.wait_for_selector(selector, state="visible", timeout=settings.selector_timeout_ms)
        except PlaywrightTimeoutError as exc:
            raise ElementTimeoutError(f"Form control {selector} not visible") from exc

    for selector, value in fields:
        try:
            await page.select_option(selector, value, timeout=settings.selector_timeout_ms)
        except PlaywrightTimeoutError as exc:
            raise ElementTimeoutError(f"Could not select {value!r} in {selector}") from exc

    trigger = await page.query_selector(settings.search_selector)
    if trigger is None:
        raise MissingControlError(f"search trigger not found ({settings.search_selector})")

    try:
        async with page.expect_response(
            settings.matches_search_response, timeout=settings.response_timeout_ms
        ) as response_info:
            try:
                await trigger.click(timeout=settings.selector_timeout_ms)
            except PlaywrightTimeoutError as exc:
                raise ElementTimeoutError(f"Search trigger {settings.search_selector} not clickable") from exc
        response = await response_info.value
    except PlaywrightTimeoutError as exc:
        raise ResponseTimeoutError(f"No {settings.response_marker} response received after search") from exc

    raw = await response.text()
    try:
        data = json.loads(raw)
    except ValueError as exc:
        raise InvalidPayloadError(f"Portal returned a non-JSON body ({len(raw)} bytes)") from exc

    logger.info(
        "Portal query completed",
        extra={
            "programa": query.programa,
            "sede": query.sede,
            "recurso": query.recurso,
            "duration_ms": int((time.perf_counter() - started) * 1000),
        },
    )
    return data
