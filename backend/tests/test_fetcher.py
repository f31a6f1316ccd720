"""Tests for the retrying fetcher."""

from __future__ import annotations

import asyncio
from unittest.mock import AsyncMock

import pytest
from playwright.async_api import Error as PlaywrightError

from conftest import FakeBrowserManager, ScriptedProtocol
from cronograma.exceptions import (
    InvalidPayloadError,
    MissingControlError,
    NavigationTimeoutError,
    SessionLaunchError,
)
from cronograma.schemas import CronogramaQuery
from cronograma.services.fetcher import CronogramaFetcher, compute_backoff


def make_fetcher(browsers, protocol, **kwargs) -> CronogramaFetcher:
    kwargs.setdefault("max_retries", 1)
    kwargs.setdefault("backoff_base", 1.0)
    kwargs.setdefault("backoff_strategy", "linear")
    kwargs.setdefault("reuse_session", True)
    kwargs.setdefault("sleep", AsyncMock())
    return CronogramaFetcher(browsers, protocol=protocol, **kwargs)


class TestComputeBackoff:
    def test_linear(self) -> None:
        assert [compute_backoff(n, 1.0, "linear") for n in (1, 2, 3)] == [1.0, 2.0, 3.0]

    def test_exponential(self) -> None:
        assert [compute_backoff(n, 0.5, "exponential") for n in (1, 2, 3)] == [1.0, 2.0, 4.0]

    @pytest.mark.parametrize("strategy", ["linear", "exponential"])
    def test_monotonic_and_bounded_below_by_base(self, strategy: str) -> None:
        delays = [compute_backoff(n, 0.25, strategy) for n in range(1, 8)]

        assert delays == sorted(delays)
        assert min(delays) >= 0.25


class TestFetchSuccess:
    @pytest.mark.asyncio
    async def test_first_attempt_success_returns_immediately(
        self, fake_browsers: FakeBrowserManager, query: CronogramaQuery, sample_payload: list
    ) -> None:
        protocol = ScriptedProtocol([sample_payload])
        sleep = AsyncMock()
        fetcher = make_fetcher(fake_browsers, protocol, sleep=sleep)

        result = await fetcher.fetch(query)

        assert result == sample_payload
        assert len(protocol.calls) == 1
        assert protocol.calls[0][1] == query
        assert fake_browsers.acquired == 1
        assert fake_browsers.released == fake_browsers.opened
        sleep.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_invalid_payload_then_valid_returns_valid(
        self, fake_browsers: FakeBrowserManager, query: CronogramaQuery, sample_payload: list
    ) -> None:
        protocol = ScriptedProtocol([InvalidPayloadError("not json"), sample_payload])
        sleep = AsyncMock()
        fetcher = make_fetcher(fake_browsers, protocol, sleep=sleep, backoff_base=1.5)

        result = await fetcher.fetch(query, max_retries=1)

        assert result == sample_payload
        assert len(protocol.calls) == 2
        sleep.assert_awaited_once_with(1.5)

    @pytest.mark.asyncio
    async def test_session_launch_error_is_retried(self, query: CronogramaQuery, sample_payload: list) -> None:
        class FlakyLaunch(FakeBrowserManager):
            async def acquire(self) -> object:
                self.acquired += 1
                if self.acquired == 1:
                    raise SessionLaunchError("chromium missing")
                return self.browser

        browsers = FlakyLaunch()
        protocol = ScriptedProtocol([sample_payload])

        result = await make_fetcher(browsers, protocol).fetch(query)

        assert result == sample_payload
        assert browsers.acquired == 2
        assert len(protocol.calls) == 1


class TestRetryBound:
    @pytest.mark.asyncio
    @pytest.mark.parametrize("max_retries", [0, 1, 2, 3])
    async def test_always_failing_protocol_runs_exactly_n_plus_one_attempts(
        self, fake_browsers: FakeBrowserManager, query: CronogramaQuery, max_retries: int
    ) -> None:
        errors = [NavigationTimeoutError(f"attempt {i}") for i in range(max_retries + 2)]
        protocol = ScriptedProtocol(errors)
        sleep = AsyncMock()
        fetcher = make_fetcher(fake_browsers, protocol, sleep=sleep)

        with pytest.raises(NavigationTimeoutError) as exc_info:
            await fetcher.fetch(query, max_retries=max_retries)

        assert len(protocol.calls) == max_retries + 1
        assert exc_info.value is errors[max_retries]
        assert sleep.await_count == max_retries

    @pytest.mark.asyncio
    async def test_missing_control_is_retried(self, fake_browsers: FakeBrowserManager, query: CronogramaQuery) -> None:
        protocol = ScriptedProtocol([MissingControlError("search trigger not found")])

        with pytest.raises(MissingControlError, match="search trigger not found"):
            await make_fetcher(fake_browsers, protocol).fetch(query, max_retries=1)

        assert len(protocol.calls) == 2

    @pytest.mark.asyncio
    async def test_linear_backoff_sleeps_grow_with_attempts(
        self, fake_browsers: FakeBrowserManager, query: CronogramaQuery
    ) -> None:
        protocol = ScriptedProtocol([PlaywrightError("Target closed")])
        sleep = AsyncMock()

        with pytest.raises(PlaywrightError):
            await make_fetcher(fake_browsers, protocol, sleep=sleep, backoff_base=2.0).fetch(query, max_retries=2)

        assert [call.args[0] for call in sleep.await_args_list] == [2.0, 4.0]

    @pytest.mark.asyncio
    async def test_unexpected_errors_are_not_retried(
        self, fake_browsers: FakeBrowserManager, query: CronogramaQuery
    ) -> None:
        protocol = ScriptedProtocol([RuntimeError("bug")])
        sleep = AsyncMock()

        with pytest.raises(RuntimeError):
            await make_fetcher(fake_browsers, protocol, sleep=sleep).fetch(query, max_retries=3)

        assert len(protocol.calls) == 1
        assert fake_browsers.released == fake_browsers.opened
        sleep.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_default_retry_bound_comes_from_constructor(
        self, fake_browsers: FakeBrowserManager, query: CronogramaQuery
    ) -> None:
        protocol = ScriptedProtocol([InvalidPayloadError("x")])

        with pytest.raises(InvalidPayloadError):
            await make_fetcher(fake_browsers, protocol, max_retries=2).fetch(query)

        assert len(protocol.calls) == 3


class TestPageRelease:
    @pytest.mark.asyncio
    async def test_every_page_is_released_exactly_once_across_retries(
        self, fake_browsers: FakeBrowserManager, query: CronogramaQuery, sample_payload: list
    ) -> None:
        protocol = ScriptedProtocol([NavigationTimeoutError("a"), InvalidPayloadError("b"), sample_payload])

        await make_fetcher(fake_browsers, protocol).fetch(query, max_retries=2)

        assert len(fake_browsers.opened) == 3
        assert fake_browsers.released == fake_browsers.opened
        assert len({id(page) for page in fake_browsers.released}) == 3

    @pytest.mark.asyncio
    async def test_each_attempt_uses_its_own_page(
        self, fake_browsers: FakeBrowserManager, query: CronogramaQuery, sample_payload: list
    ) -> None:
        protocol = ScriptedProtocol([NavigationTimeoutError("a"), sample_payload])

        await make_fetcher(fake_browsers, protocol).fetch(query)

        first_page, second_page = (call[0] for call in protocol.calls)
        assert first_page is not second_page

    @pytest.mark.asyncio
    async def test_page_open_failure_releases_nothing_and_retries(
        self, query: CronogramaQuery, sample_payload: list
    ) -> None:
        browsers = FakeBrowserManager(open_page_errors=[PlaywrightError("context creation failed")])
        protocol = ScriptedProtocol([sample_payload])

        result = await make_fetcher(browsers, protocol).fetch(query)

        assert result == sample_payload
        assert len(browsers.opened) == 1
        assert browsers.released == browsers.opened

    @pytest.mark.asyncio
    async def test_cancellation_releases_page_and_is_not_retried(
        self, fake_browsers: FakeBrowserManager, query: CronogramaQuery
    ) -> None:
        protocol = ScriptedProtocol([asyncio.CancelledError()])

        with pytest.raises(asyncio.CancelledError):
            await make_fetcher(fake_browsers, protocol).fetch(query, max_retries=3)

        assert len(protocol.calls) == 1
        assert fake_browsers.released == fake_browsers.opened


class TestDedicatedSessions:
    @pytest.mark.asyncio
    async def test_each_attempt_launches_and_closes_its_own_browser(
        self, fake_browsers: FakeBrowserManager, query: CronogramaQuery, sample_payload: list
    ) -> None:
        protocol = ScriptedProtocol([NavigationTimeoutError("slow"), sample_payload])
        fetcher = make_fetcher(fake_browsers, protocol, reuse_session=False)

        result = await fetcher.fetch(query)

        assert result == sample_payload
        assert fake_browsers.acquired == 0
        assert len(fake_browsers.dedicated) == 2
        assert fake_browsers.released_browsers == fake_browsers.dedicated
        assert fake_browsers.released == fake_browsers.opened
