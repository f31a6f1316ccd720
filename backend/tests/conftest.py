"""Pytest fixtures for the cronograma backend tests."""

from __future__ import annotations

import os
import tempfile
from pathlib import Path
from typing import Any, Iterable, List

os.environ.setdefault("CRONOGRAMA_CONFIG_FILE", str(Path(__file__).resolve().parents[1] / "cronograma" / "config.toml"))
os.environ.setdefault("PLAYWRIGHT_BROWSERS_PATH", tempfile.mkdtemp(prefix="ms-playwright-"))

import pytest  # noqa: E402

from cronograma.schemas import CronogramaQuery  # noqa: E402


class FakeBrowserManager:
    """Stands in for BrowserManager and records every acquire/open/release."""

    def __init__(self, open_page_errors: Iterable[BaseException] = ()) -> None:
        self.browser = object()
        self.acquired = 0
        self.opened: List[object] = []
        self.released: List[object] = []
        self.dedicated: List[object] = []
        self.released_browsers: List[object] = []
        self._open_page_errors = list(open_page_errors)

    async def acquire(self) -> object:
        self.acquired += 1
        return self.browser

    async def launch_dedicated(self) -> object:
        browser = object()
        self.dedicated.append(browser)
        return browser

    async def release_browser(self, browser: object) -> None:
        self.released_browsers.append(browser)

    async def open_page(self, browser: object) -> object:
        if self._open_page_errors:
            raise self._open_page_errors.pop(0)
        page = object()
        self.opened.append(page)
        return page

    async def release_page(self, page: object) -> None:
        self.released.append(page)


class ScriptedProtocol:
    """Query runner that replays a list of outcomes, one per call.

    Exceptions in the script are raised; anything else is returned. The last
    outcome repeats once the script is exhausted.
    """

    def __init__(self, outcomes: Iterable[Any]) -> None:
        self.outcomes = list(outcomes)
        self.calls: List[tuple] = []

    async def __call__(self, page: Any, query: CronogramaQuery, *, settings: Any) -> Any:
        self.calls.append((page, query))
        index = min(len(self.calls), len(self.outcomes)) - 1
        outcome = self.outcomes[index]
        if isinstance(outcome, BaseException):
            raise outcome
        return outcome


@pytest.fixture
def query() -> CronogramaQuery:
    return CronogramaQuery(programa="82", sede="10", recurso="2")


@pytest.fixture
def fake_browsers() -> FakeBrowserManager:
    return FakeBrowserManager()


@pytest.fixture
def sample_payload() -> list:
    """Shape of the portal's search response: program -> level -> courses."""
    return [
        {
            "TECNOLOGIA EN GESTION EMPRESARIAL": {
                "NIVEL 1": [
                    {
                        "asignatura": "MATEMATICAS BASICAS",
                        "actividades": [
                            {"grupo": "A1", "fecha_inicio": "2026-10-19 08:00:00", "fecha_fin": "2026-10-19 10:00:00"}
                        ],
                    }
                ]
            }
        }
    ]
