"""Thread-safe in-memory cache with per-entry expiry.

Entries never leave this module: callers see either the stored value or a
miss.  Expired entries are dropped lazily the next time they are read.
"""

import logging
import threading
import time
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any

from lazykv.constants import DEFAULT_CACHE_TTL

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class _Entry:
    value: Any
    expires_at: float


class TTLCache:
    """Key/value store where every entry carries its own expiry time.

    Args:
        default_ttl: Lifetime in seconds used when ``set`` gets no ttl.
            Defaults to a year, i.e. "until explicitly invalidated".
        clock: Monotonic time source; injectable for tests.
    """

    def __init__(
        self,
        default_ttl: float = DEFAULT_CACHE_TTL,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._default_ttl = default_ttl
        self._clock = clock
        self._entries: dict[str, _Entry] = {}
        self._lock = threading.Lock()

    def get(self, key: str, default: Any = None) -> Any:
        """Return the live value for *key*, or *default* on a miss."""
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                return default
            if self._clock() < entry.expires_at:
                return entry.value
            del self._entries[key]
        logger.debug("cache entry expired: %s", key)
        return default

    def contains(self, key: str) -> bool:
        _missing = object()
        return self.get(key, _missing) is not _missing

    __contains__ = contains

    def set(self, key: str, value: Any, ttl: float | None = None) -> None:
        lifetime = self._default_ttl if ttl is None else ttl
        entry = _Entry(value=value, expires_at=self._clock() + lifetime)
        with self._lock:
            self._entries[key] = entry

    def invalidate(self, key: str) -> None:
        with self._lock:
            self._entries.pop(key, None)

    def invalidate_prefix(self, prefix: str) -> None:
        """Remove every entry whose key starts with *prefix*."""
        with self._lock:
            doomed = [k for k in self._entries if k.startswith(prefix)]
            for key in doomed:
                del self._entries[key]
        logger.debug("invalidated %d cache entries with prefix %r", len(doomed), prefix)

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()
        logger.debug("cache cleared")
