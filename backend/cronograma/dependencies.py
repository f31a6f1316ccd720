"""FastAPI dependency helpers."""

from typing import Optional

from cronograma.services.browser import BrowserManager
from cronograma.services.cache import ResultCache
from cronograma.services.fetcher import CronogramaFetcher

_browser_manager: Optional[BrowserManager] = None
_result_cache: Optional[ResultCache] = None
_fetcher: Optional[CronogramaFetcher] = None


def get_browser_manager() -> BrowserManager:
    """Return the process-wide browser manager, creating it on first use.

    Returns:
        BrowserManager: Owner of the shared Chromium session.
    """
    global _browser_manager
    if _browser_manager is None:
        _browser_manager = BrowserManager()
    return _browser_manager


def get_result_cache() -> ResultCache:
    """Return the process-wide result cache.

    Returns:
        ResultCache: Cache shared by every request.
    """
    global _result_cache
    if _result_cache is None:
        _result_cache = ResultCache()
    return _result_cache


def get_cronograma_fetcher() -> CronogramaFetcher:
    """Return the process-wide fetcher bound to the shared browser manager.

    Returns:
        CronogramaFetcher: Retrying portal client.
    """
    global _fetcher
    if _fetcher is None:
        _fetcher = CronogramaFetcher(get_browser_manager())
    return _fetcher


async def shutdown_browser() -> None:
    """Close the shared browser if one was ever created."""
    if _browser_manager is not None:
        await _browser_manager.shutdown()
