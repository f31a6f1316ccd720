"""In-memory result cache with a fixed time-to-live."""

from __future__ import annotations

import logging
import time
from typing import Any, Callable, Dict, Optional, Tuple

from cronograma.config import config

logger = logging.getLogger(__name__)


class ResultCache:
    """Map cache keys to the last successful payload.

    Entries expire once ``now - inserted_at > ttl`` and are evicted lazily on
    lookup. Concurrent writers for the same key are allowed; the last one wins.
    """

    def __init__(self, ttl_seconds: Optional[float] = None, clock: Callable[[], float] = time.monotonic) -> None:
        """Create an empty cache.

        Args:
            ttl_seconds: Expiry window; defaults to ``config.CACHE_TTL_SECONDS``.
            clock: Monotonic time source, replaceable in tests.
        """
        self._ttl = max(0.0, config.CACHE_TTL_SECONDS if ttl_seconds is None else float(ttl_seconds))
        self._clock = clock
        self._entries: Dict[str, Tuple[float, Any]] = {}

    @property
    def ttl(self) -> float:
        return self._ttl

    def get(self, key: str) -> Optional[Any]:
        """Return the payload stored under ``key`` or ``None`` when absent or expired."""
        entry = self._entries.get(key)
        if entry is None:
            return None
        inserted_at, payload = entry
        if self._clock() - inserted_at > self._ttl:
            self._entries.pop(key, None)
            logger.debug("Cache entry expired", extra={"cache_key": key})
            return None
        return payload

    def put(self, key: str, payload: Any) -> None:
        """Store ``payload`` under ``key`` with the current timestamp."""
        self._entries[key] = (self._clock(), payload)

    def clear(self) -> None:
        self._entries.clear()

    def __len__(self) -> int:
        return len(self._entries)
